from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "Asia/Manila"
    APP_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Supabase (token verification only, sessions are issued elsewhere)
    SUPABASE_URL: str = "http://localhost"
    SUPABASE_JWT_SECRET: str = "test-jwt-secret"

    # Redis (ARQ worker)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Collaborating services
    USERS_SERVICE_URL: str = "http://users-service:8001"
    NOTIFICATIONS_SERVICE_URL: str = "http://notifications-service:8004"

    # Xendit
    XENDIT_SECRET_KEY: str = ""
    XENDIT_API_BASE_URL: str = "https://api.xendit.co"
    # Shared callback token; callbacks are rejected while this is empty.
    XENDIT_WEBHOOK_TOKEN: str = ""
    XENDIT_INVOICE_DURATION_SECONDS: int = 86400

    # Checkout
    CURRENCY: str = "PHP"
    ORDER_NUMBER_PREFIX: str = "GCP"
    SHIPPING_FLAT_FEE: Decimal = Decimal("150")
    # Must outlive the invoice window so the sweep never beats the EXPIRED callback.
    RESERVATION_TTL_MINUTES: int = 25 * 60
    # Holds are pushed past the invoice expiry by this much when it is issued.
    RESERVATION_INVOICE_MARGIN_MINUTES: int = 60

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
