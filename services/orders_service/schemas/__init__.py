"""Orders Service schemas package."""

from services.orders_service.schemas.coupons import (
    CouponCreate,
    CouponResponse,
    CouponSummary,
    CouponUpdate,
    CouponVerifyRequest,
    CouponVerifyResponse,
)
from services.orders_service.schemas.orders import (
    OrderCreate,
    OrderCreateResponse,
    OrderItemIn,
    OrderItemResponse,
    OrderResponse,
    OrderStatusHistoryResponse,
)
from services.orders_service.schemas.payments import (
    CallbackStatus,
    InvoiceCallback,
    InvoiceRequest,
    InvoiceResponse,
    WebhookAck,
)

__all__ = [
    "CallbackStatus",
    "CouponCreate",
    "CouponResponse",
    "CouponSummary",
    "CouponUpdate",
    "CouponVerifyRequest",
    "CouponVerifyResponse",
    "InvoiceCallback",
    "InvoiceRequest",
    "InvoiceResponse",
    "OrderCreate",
    "OrderCreateResponse",
    "OrderItemIn",
    "OrderItemResponse",
    "OrderResponse",
    "OrderStatusHistoryResponse",
    "WebhookAck",
]
