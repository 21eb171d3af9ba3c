"""Admin coupon management (service-role callers only)."""

import uuid

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.orders_service.errors import NotFound, ValidationError
from services.orders_service.models import Coupon
from services.orders_service.schemas import (
    CouponCreate,
    CouponResponse,
    CouponUpdate,
)
from services.orders_service.services.coupons import get_coupon_by_code
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/admin/coupons", tags=["admin"])
logger = get_logger(__name__)


async def _get_coupon(db: AsyncSession, coupon_ref: str) -> Coupon:
    """Look up by id, falling back to the code."""
    try:
        coupon = await db.get(Coupon, uuid.UUID(coupon_ref))
    except ValueError:
        coupon = await get_coupon_by_code(db, coupon_ref)
    if coupon is None:
        raise NotFound("Coupon not found")
    return coupon


@router.post("", response_model=CouponResponse, status_code=201)
async def create_coupon(
    payload: CouponCreate,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Create a coupon."""
    if await get_coupon_by_code(db, payload.code):
        raise ValidationError(f"Coupon code '{payload.code}' already exists")

    coupon = Coupon(**payload.model_dump())
    db.add(coupon)
    await db.commit()
    await db.refresh(coupon)
    logger.info("Coupon %s created by %s", coupon.code, current_user.user_id)
    return coupon


@router.get("", response_model=list[CouponResponse])
async def list_coupons(
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    result = await db.execute(select(Coupon).order_by(desc(Coupon.created_at)))
    return result.scalars().all()


@router.get("/{coupon_ref}", response_model=CouponResponse)
async def get_coupon(
    coupon_ref: str,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await _get_coupon(db, coupon_ref)


@router.patch("/{coupon_ref}", response_model=CouponResponse)
async def update_coupon(
    coupon_ref: str,
    payload: CouponUpdate,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Update a coupon. The code and discount type are fixed once created."""
    coupon = await _get_coupon(db, coupon_ref)

    update_data = payload.model_dump(exclude_unset=True)
    limit = update_data.get("usage_limit")
    if limit is not None and limit < coupon.used_count:
        raise ValidationError(
            f"Usage limit cannot be lower than current usage ({coupon.used_count})"
        )

    for field, value in update_data.items():
        setattr(coupon, field, value)

    await db.commit()
    await db.refresh(coupon)
    return coupon


@router.delete("/{coupon_ref}", response_model=CouponResponse)
async def deactivate_coupon(
    coupon_ref: str,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Deactivate a coupon. Rows are kept because redemptions reference them."""
    coupon = await _get_coupon(db, coupon_ref)
    coupon.is_active = False
    await db.commit()
    await db.refresh(coupon)
    logger.info("Coupon %s deactivated by %s", coupon.code, current_user.user_id)
    return coupon
