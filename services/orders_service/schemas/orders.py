import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from services.orders_service.models import (
    ActorRole,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)

# ============================================================================
# REQUESTS
# ============================================================================


class OrderItemIn(BaseModel):
    product_id: uuid.UUID
    quantity: int
    unit_price: Decimal


class OrderCreate(BaseModel):
    """Checkout request.

    Presence checks (items, address, payment method) are done by the order
    builder so they come back as ``validation_error`` rather than a 422.
    """

    user_id: Optional[str] = Field(default=None, alias="userId")
    store_id: str = Field(alias="storeId")
    items: List[OrderItemIn] = Field(default_factory=list)
    shipping_address_id: Optional[str] = Field(
        default=None, alias="shippingAddressId"
    )
    payment_method: Optional[PaymentMethod] = Field(
        default=None, alias="paymentMethod"
    )
    coupon_code: Optional[str] = Field(default=None, alias="couponCode")
    notes: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# RESPONSES
# ============================================================================


class OrderItemResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    user_id: str
    store_id: str
    items: List[OrderItemResponse] = []
    subtotal: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    coupon_code: Optional[str] = None
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    shipping_address_id: str
    notes: Optional[str] = None
    xendit_invoice_id: Optional[str] = None
    xendit_invoice_url: Optional[str] = None
    payment_deadline: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderCreateResponse(BaseModel):
    order: OrderResponse
    # Invoices are issued by POST /payments/invoices, never inline.
    checkout_url: Optional[str] = None
    message: str


class OrderStatusHistoryResponse(BaseModel):
    id: uuid.UUID
    old_status: Optional[OrderStatus] = None
    new_status: OrderStatus
    changed_by: Optional[str] = None
    changed_by_role: ActorRole
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
