"""Orders Service models package."""

from services.orders_service.models.catalog import Product
from services.orders_service.models.coupons import Coupon, CouponUsage
from services.orders_service.models.enums import (
    ActorRole,
    DiscountType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ReservationStatus,
)
from services.orders_service.models.inventory import StockReservation
from services.orders_service.models.orders import (
    Order,
    OrderItem,
    OrderNumberSequence,
    OrderStatusHistory,
)
from services.orders_service.models.payments import PaymentTransaction

__all__ = [
    "ActorRole",
    "Coupon",
    "CouponUsage",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderNumberSequence",
    "OrderStatus",
    "OrderStatusHistory",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentTransaction",
    "Product",
    "ReservationStatus",
    "StockReservation",
]
