"""Order, line item, status history and order-number sequence models."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.orders_service.models.enums import (
    ActorRole,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    enum_values,
)
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# ORDER MODELS
# ============================================================================


class Order(Base):
    """One checkout against one store."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, index=True
    )

    # Parties
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    store_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    # Pricing (in PHP)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    shipping: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0", nullable=False
    )
    discount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0", nullable=False
    )
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Status axes
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            values_callable=enum_values,
            name="order_status_enum",
            validate_strings=True,
        ),
        default=OrderStatus.PENDING,
        server_default="pending",
        nullable=False,
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(
            PaymentMethod,
            values_callable=enum_values,
            name="payment_method_enum",
            validate_strings=True,
        ),
        nullable=False,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            values_callable=enum_values,
            name="payment_status_enum",
            validate_strings=True,
        ),
        default=PaymentStatus.PENDING,
        server_default="pending",
        nullable=False,
    )

    shipping_address_id: Mapped[str] = mapped_column(String(64), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Hosted invoice (Xendit)
    xendit_invoice_id: Mapped[Optional[str]] = mapped_column(
        String(100), index=True, nullable=True
    )
    xendit_invoice_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Timestamps
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    # Relationships
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at",
    )

    __table_args__ = (
        CheckConstraint("total >= 0", name="non_negative_total"),
        Index(
            "ix_orders_payment_method_payment_status",
            "payment_method",
            "payment_status",
        ),
    )

    @property
    def awaiting_payment(self) -> bool:
        """Still pending on both axes: no payment and no seller action yet."""
        return (
            self.status == OrderStatus.PENDING
            and self.payment_status == PaymentStatus.PENDING
        )

    def __repr__(self):
        return f"<Order {self.order_number}>"


class OrderItem(Base):
    """Order line items (snapshot at order time)."""

    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id"), nullable=False
    )

    # Snapshot at order time (products may change)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    order = relationship("Order", back_populates="items")

    __table_args__ = (CheckConstraint("quantity > 0", name="positive_quantity"),)

    def __repr__(self):
        return f"<OrderItem {self.product_name} qty={self.quantity}>"


class OrderStatusHistory(Base):
    """Append-only audit trail of order status transitions."""

    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    old_status: Mapped[Optional[OrderStatus]] = mapped_column(
        SAEnum(
            OrderStatus,
            values_callable=enum_values,
            name="order_status_enum",
            validate_strings=True,
        ),
        nullable=True,
    )  # None for the creation entry
    new_status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            values_callable=enum_values,
            name="order_status_enum",
            validate_strings=True,
        ),
        nullable=False,
    )
    changed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    changed_by_role: Mapped[ActorRole] = mapped_column(
        SAEnum(
            ActorRole,
            values_callable=enum_values,
            name="actor_role_enum",
            validate_strings=True,
        ),
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<OrderStatusHistory {self.old_status} -> {self.new_status}>"


class OrderNumberSequence(Base):
    """Per-day counter backing ``PREFIX-YYYYMMDD-NNNN`` order numbers."""

    __tablename__ = "order_number_sequences"

    date_key: Mapped[str] = mapped_column(String(8), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
