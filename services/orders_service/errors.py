"""Error taxonomy for the orders service.

Every error is an ``HTTPException`` so FastAPI renders it directly; the
``detail`` always carries a machine-readable ``code`` next to the message.
"""

from typing import Optional

from fastapi import HTTPException, status


class OrdersError(HTTPException):
    """Base class: ``detail = {"code": ..., "message": ...}``."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(self, message: str, *, extra: Optional[dict] = None):
        self.message = message
        detail = {"code": self.code, "message": message}
        if extra:
            detail.update(extra)
        super().__init__(status_code=self.status_code, detail=detail)


class ValidationError(OrdersError):
    """Malformed or missing input; user-correctable."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class InsufficientStock(OrdersError):
    status_code = status.HTTP_409_CONFLICT
    code = "insufficient_stock"

    def __init__(self, product_name: str, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_name}: "
            f"requested {requested}, available {available}",
            extra={"requested": requested, "available": available},
        )


class InvalidCoupon(OrdersError):
    """Coupon rejected; ``reason`` is shown to the buyer as-is."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_coupon"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class PaymentProviderError(OrdersError):
    """Xendit or the network failed; safe to retry."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "payment_provider_error"


class Unauthorized(OrdersError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class NotFound(OrdersError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
