"""Orders service routers package."""

from services.orders_service.routers.admin_coupons import (
    router as admin_coupons_router,
)
from services.orders_service.routers.coupons import router as coupons_router
from services.orders_service.routers.invoices import router as invoices_router
from services.orders_service.routers.orders import router as orders_router
from services.orders_service.routers.webhooks import router as webhooks_router

__all__ = [
    "admin_coupons_router",
    "coupons_router",
    "invoices_router",
    "orders_router",
    "webhooks_router",
]
