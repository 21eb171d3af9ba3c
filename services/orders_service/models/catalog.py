"""Product stock counters used by the reservation ledger.

Catalog content (images, descriptions, categories) is owned by the store
service; this table carries the pricing snapshot and the three stock counters
that must move together with reservation rows.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column


class Product(Base):
    """Sellable product with on-hand, reserved and sold counters."""

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    store_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Stock levels
    stock: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )  # Physically on hand
    reserved_stock: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )  # Held by active reservations
    sold_stock: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("stock >= 0", name="non_negative_stock"),
        CheckConstraint(
            "reserved_stock >= 0 AND reserved_stock <= stock",
            name="valid_reserved",
        ),
        CheckConstraint("sold_stock >= 0", name="non_negative_sold"),
    )

    @property
    def available_stock(self) -> int:
        """Available quantity (on hand minus reserved)."""
        return self.stock - self.reserved_stock

    def __repr__(self):
        return (
            f"<Product {self.name} stock={self.stock} "
            f"reserved={self.reserved_stock}>"
        )
