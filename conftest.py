import os
from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Load .env.test when present (e.g. TEST_DATABASE_URL pointing at PostgreSQL)
env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)

TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:"
)
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("XENDIT_WEBHOOK_TOKEN", "test-callback-token")
os.environ.setdefault("XENDIT_SECRET_KEY", "xnd_development_test")
os.environ.setdefault("APP_URL", "https://gocart.test")

from httpx import ASGITransport, AsyncClient  # noqa: E402
from libs.auth.models import AuthUser  # noqa: E402
from libs.common.config import get_settings  # noqa: E402
from libs.db.base import Base  # noqa: E402
from services.orders_service import models as _orders_models  # noqa: E402,F401
from services.orders_service.app.main import app  # noqa: E402
from services.orders_service.xendit_client import Invoice, XenditError  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

# Clear cached settings to reload with the test env vars
get_settings.cache_clear()
settings = get_settings()

BUYER = AuthUser(user_id="buyer-1", email="buyer@example.com", role="authenticated")
OTHER_BUYER = AuthUser(
    user_id="buyer-2", email="other@example.com", role="authenticated"
)
SERVICE = AuthUser(user_id="admin-dashboard", role="service_role")


@pytest_asyncio.fixture
async def test_engine():
    """
    Fresh schema per test. In-memory SQLite by default; set TEST_DATABASE_URL
    to run the suite against PostgreSQL.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def notifications_mock():
    """Notifications are fire-and-forget; never leave the process in tests."""
    with patch(
        "services.orders_service.services.notifications.internal_post",
        new_callable=AsyncMock,
        return_value=httpx.Response(202),
    ) as mocked:
        yield mocked


@pytest.fixture(autouse=True)
def buyer_profiles():
    """Users service lookups, answered with a regular buyer profile."""
    profile = {
        "user_id": BUYER.user_id,
        "email": "buyer@example.com",
        "name": "Juan Dela Cruz",
        "first_name": "Juan",
        "last_name": "Dela Cruz",
        "phone": "+639171234567",
        "plan": "free",
    }
    mocked = AsyncMock(return_value=profile)
    with patch(
        "services.orders_service.services.coupons.get_buyer_profile", mocked
    ), patch("services.orders_service.services.invoices.get_buyer_profile", mocked):
        yield mocked


class FakeXenditClient:
    """Stands in for XenditClient; records every invoice request."""

    def __init__(self):
        self.calls: list[dict] = []
        self.error: Exception | None = None

    async def create_invoice(self, payload: dict) -> Invoice:
        self.calls.append(payload)
        if self.error is not None:
            raise self.error
        number = len(self.calls)
        return Invoice(
            id=f"inv_{number}",
            external_id=payload["external_id"],
            invoice_url=f"https://checkout.xendit.co/web/inv_{number}",
            status="PENDING",
            amount=payload["amount"],
            expiry_date=None,
        )

    def fail_with(self, status_code: int = 503, message: str = "Service down"):
        self.error = XenditError(message=message, status_code=status_code)


@pytest.fixture
def xendit():
    return FakeXenditClient()


class AuthOverride:
    """Mutable caller identity for the test client."""

    def __init__(self, user: AuthUser):
        self.user = user


@pytest.fixture
def auth() -> AuthOverride:
    return AuthOverride(BUYER)


@pytest_asyncio.fixture
async def client(db_session, xendit, auth) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient with the app and overridden DB, auth and Xendit
    dependencies.
    """
    from libs.auth.dependencies import get_current_user, get_optional_user
    from libs.db.session import get_async_db
    from services.orders_service.dependencies import get_xendit_client

    async def _db():
        yield db_session

    app.dependency_overrides[get_async_db] = _db
    app.dependency_overrides[get_current_user] = lambda: auth.user
    app.dependency_overrides[get_optional_user] = lambda: auth.user
    app.dependency_overrides[get_xendit_client] = lambda: xendit

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def callback_headers() -> dict:
    return {"x-callback-token": settings.XENDIT_WEBHOOK_TOKEN}
