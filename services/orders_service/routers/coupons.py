"""Coupon verification for the checkout page."""

from typing import Optional

from fastapi import APIRouter, Depends
from libs.auth.dependencies import get_optional_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.errors import InvalidCoupon
from services.orders_service.schemas import (
    CouponSummary,
    CouponVerifyRequest,
    CouponVerifyResponse,
)
from services.orders_service.services.coupons import validate_coupon
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post(
    "/verify", response_model=CouponVerifyResponse, response_model_exclude_none=True
)
async def verify_coupon(
    payload: CouponVerifyRequest,
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Check a code against the cart total without consuming it."""
    user_id = payload.user_id or (current_user.user_id if current_user else None)
    try:
        quote = await validate_coupon(
            db, code=payload.code, user_id=user_id, subtotal=payload.cart_total
        )
    except InvalidCoupon as e:
        return CouponVerifyResponse(valid=False, error=e.reason)

    coupon = quote.coupon
    return CouponVerifyResponse(
        valid=True,
        coupon=CouponSummary(
            code=coupon.code,
            description=coupon.description,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            discount_amount=quote.discount_amount,
        ),
        message="Coupon applied successfully",
    )
