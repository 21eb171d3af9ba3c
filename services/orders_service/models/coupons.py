"""Coupon definitions and redemptions."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.orders_service.models.enums import DiscountType, enum_values
from sqlalchemy import Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Coupon(Base):
    """Promotional discount code. Codes are stored upper-case."""

    __tablename__ = "coupons"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    discount_type: Mapped[DiscountType] = mapped_column(
        SAEnum(
            DiscountType,
            values_callable=enum_values,
            name="discount_type_enum",
            validate_strings=True,
        ),
        nullable=False,
    )
    discount_value: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False
    )  # Percentage (10 = 10%) or fixed amount in PHP

    # Restrictions
    min_purchase: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0", nullable=False
    )
    max_discount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), nullable=True
    )  # Cap for percentage discounts
    usage_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    used_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    for_plus_only: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    for_new_users: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )

    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
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
        CheckConstraint("used_count >= 0", name="non_negative_used"),
        CheckConstraint("used_count <= usage_limit", name="within_usage_limit"),
        CheckConstraint("discount_value > 0", name="positive_value"),
    )

    def __repr__(self):
        return f"<Coupon {self.code}>"


class CouponUsage(Base):
    """One redemption of a coupon against an order."""

    __tablename__ = "coupon_usages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("coupons.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    discount_applied: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def __repr__(self):
        return f"<CouponUsage coupon={self.coupon_id} order={self.order_id}>"
