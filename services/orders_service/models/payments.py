"""Payment transaction model (one row per order)."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONVariant
from services.orders_service.models.enums import (
    PaymentMethod,
    PaymentStatus,
    enum_values,
)
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class PaymentTransaction(Base):
    """Settlement record for an order, written via insert-or-update on order_id."""

    __tablename__ = "payment_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        unique=True,
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
    xendit_invoice_id: Mapped[Optional[str]] = mapped_column(
        String(100), index=True, nullable=True
    )
    xendit_payment_id: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
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
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Raw provider payload, kept for audit/debug
    provider_response: Mapped[Optional[dict]] = mapped_column(
        JSONVariant, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<PaymentTransaction order={self.order_id} {self.status}>"
