"""FastAPI application for the Orders Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from services.orders_service.routers import (
    admin_coupons_router,
    coupons_router,
    invoices_router,
    orders_router,
    webhooks_router,
)
from services.orders_service.services.order_builder import FlatShippingRate
from services.orders_service.xendit_client import XenditClient

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if not settings.XENDIT_SECRET_KEY:
        logger.warning("XENDIT_SECRET_KEY is not set; invoice creation will fail")
    if not settings.XENDIT_WEBHOOK_TOKEN:
        logger.warning("XENDIT_WEBHOOK_TOKEN is not set; callbacks will be rejected")

    app.state.xendit_client = XenditClient()
    app.state.shipping_policy = FlatShippingRate()
    try:
        yield
    finally:
        await app.state.xendit_client.aclose()


def create_app() -> FastAPI:
    """Create and configure the Orders Service FastAPI app."""
    app = FastAPI(
        title="GoCart Orders Service",
        version="0.1.0",
        description="Order lifecycle, stock reservations and Xendit settlement.",
        lifespan=lifespan,
    )
    add_observability_middleware(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "orders"}

    app.include_router(orders_router)
    app.include_router(invoices_router)
    app.include_router(webhooks_router)
    app.include_router(coupons_router)
    app.include_router(admin_coupons_router)

    return app


app = create_app()
