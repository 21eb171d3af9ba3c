"""Orders router: checkout and order lookups."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.dependencies import get_shipping_policy
from services.orders_service.errors import NotFound, ValidationError
from services.orders_service.models import Order, OrderStatusHistory
from services.orders_service.schemas import (
    OrderCreate,
    OrderCreateResponse,
    OrderResponse,
    OrderStatusHistoryResponse,
)
from services.orders_service.services.order_builder import (
    ShippingRatePolicy,
    create_order,
    get_order,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/orders", tags=["orders"])


async def _get_owned_order(
    db: AsyncSession, order_id: uuid.UUID, current_user: AuthUser
) -> Order:
    order = await get_order(db, order_id)
    # Someone else's order is reported as missing.
    if order is None or not current_user.can_act_for(order.user_id):
        raise NotFound(f"Order {order_id} not found")
    return order


@router.post(
    "",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def place_order(
    payload: OrderCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    shipping_policy: ShippingRatePolicy = Depends(get_shipping_policy),
):
    """Create a pending order and hold its stock.

    Online payments are started separately with ``POST /payments/invoices``.
    """
    user_id = payload.user_id or (
        None if current_user.is_service_role else current_user.user_id
    )
    if not user_id:
        raise ValidationError("user_id is required")
    if not current_user.can_act_for(user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot place orders for another user",
        )

    order = await create_order(
        db, user_id=user_id, payload=payload, shipping_policy=shipping_policy
    )
    return OrderCreateResponse(
        order=OrderResponse.model_validate(order),
        checkout_url=None,
        message="Order placed successfully",
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order_detail(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await _get_owned_order(db, order_id, current_user)


@router.get(
    "/{order_id}/history", response_model=list[OrderStatusHistoryResponse]
)
async def get_order_history(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Status transitions of an order, oldest first."""
    await _get_owned_order(db, order_id, current_user)
    result = await db.execute(
        select(OrderStatusHistory)
        .where(OrderStatusHistory.order_id == order_id)
        .order_by(OrderStatusHistory.created_at.asc())
    )
    return result.scalars().all()
