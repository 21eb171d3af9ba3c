"""Coupon eligibility, discount computation and redemption.

Validation is read-only. Redemption consumes one use and is only called from
inside the order builder transaction.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

import httpx
from libs.common.currency import ZERO, format_peso, round_whole_pesos
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from libs.common.service_client import get_buyer_profile
from services.orders_service.errors import InvalidCoupon
from services.orders_service.models import (
    Coupon,
    CouponUsage,
    DiscountType,
    Order,
    OrderStatus,
)
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# Membership plans that satisfy a plus-only coupon.
QUALIFYING_PLANS = frozenset({"plus", "pro", "enterprise"})


@dataclass
class CouponQuote:
    coupon: Coupon
    discount_amount: Decimal


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Discount for ``subtotal`` in whole pesos, never more than the subtotal."""
    subtotal = Decimal(subtotal)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = subtotal * Decimal(coupon.discount_value) / Decimal(100)
        if coupon.max_discount is not None:
            discount = min(discount, Decimal(coupon.max_discount))
    else:
        discount = Decimal(coupon.discount_value)

    discount = min(discount, subtotal)
    return round_whole_pesos(max(discount, ZERO))


async def get_coupon_by_code(db: AsyncSession, code: str) -> Optional[Coupon]:
    result = await db.execute(
        select(Coupon).where(func.upper(Coupon.code) == normalize_code(code))
    )
    return result.scalar_one_or_none()


async def _has_completed_orders(db: AsyncSession, user_id: str) -> bool:
    result = await db.execute(
        select(Order.id)
        .where(Order.user_id == user_id, Order.status == OrderStatus.COMPLETED)
        .limit(1)
    )
    return result.first() is not None


async def _has_used_coupon(
    db: AsyncSession, coupon_id: uuid.UUID, user_id: str
) -> bool:
    result = await db.execute(
        select(CouponUsage.id)
        .where(CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id)
        .limit(1)
    )
    return result.first() is not None


async def validate_coupon(
    db: AsyncSession,
    *,
    code: str,
    user_id: Optional[str],
    subtotal: Decimal,
    now: Optional[datetime] = None,
) -> CouponQuote:
    """Check a code against a cart subtotal.

    Checks run in a fixed order and the first failure is reported.

    Raises:
        InvalidCoupon: with the buyer-facing reason.
    """
    now = now or utc_now()
    coupon = await get_coupon_by_code(db, code)

    if coupon is None:
        raise InvalidCoupon("Invalid coupon code")

    if not coupon.is_active:
        raise InvalidCoupon("This coupon is no longer active")

    expires_at = ensure_utc(coupon.expires_at)
    if expires_at is not None and expires_at <= now:
        raise InvalidCoupon("This coupon has expired")

    if coupon.used_count >= coupon.usage_limit:
        raise InvalidCoupon("This coupon has reached its usage limit")

    if Decimal(subtotal) < Decimal(coupon.min_purchase):
        raise InvalidCoupon(
            f"Minimum purchase of {format_peso(coupon.min_purchase)} required"
        )

    if coupon.for_plus_only:
        profile = None
        if user_id:
            try:
                profile = await get_buyer_profile(user_id)
            except httpx.HTTPError as e:
                logger.warning("Buyer profile lookup failed for %s: %s", user_id, e)
                raise InvalidCoupon(
                    "Membership could not be verified, please try again"
                ) from e
        plan = ((profile or {}).get("plan") or "").lower()
        if plan not in QUALIFYING_PLANS:
            raise InvalidCoupon("This coupon is only available for Plus members")

    if coupon.for_new_users:
        if not user_id or await _has_completed_orders(db, user_id):
            raise InvalidCoupon("This coupon is only available for new users")

    if user_id and await _has_used_coupon(db, coupon.id, user_id):
        raise InvalidCoupon("You have already used this coupon")

    return CouponQuote(
        coupon=coupon, discount_amount=compute_discount(coupon, subtotal)
    )


async def redeem_coupon(
    db: AsyncSession,
    *,
    quote: CouponQuote,
    user_id: str,
    order_id: uuid.UUID,
) -> CouponUsage:
    """Consume one use of the quoted coupon for ``order_id``.

    The increment is conditional on remaining uses, so a coupon that ran out
    between validation and checkout is rejected instead of overdrawn.
    """
    result = await db.execute(
        update(Coupon)
        .where(
            Coupon.id == quote.coupon.id,
            Coupon.is_active.is_(True),
            Coupon.used_count < Coupon.usage_limit,
        )
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidCoupon("This coupon has reached its usage limit")

    usage = CouponUsage(
        coupon_id=quote.coupon.id,
        user_id=user_id,
        order_id=order_id,
        discount_applied=quote.discount_amount,
    )
    db.add(usage)
    await db.flush()

    logger.info(
        "Coupon %s redeemed for order %s (discount %s)",
        quote.coupon.code,
        order_id,
        quote.discount_amount,
    )
    return usage
