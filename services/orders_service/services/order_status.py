"""Order status changes and their audit trail."""

from typing import Optional

from libs.common.datetime_utils import utc_now
from services.orders_service.models import (
    ActorRole,
    Order,
    OrderStatus,
    OrderStatusHistory,
)
from sqlalchemy.ext.asyncio import AsyncSession


def append_history(
    db: AsyncSession,
    order: Order,
    *,
    old_status: Optional[OrderStatus],
    new_status: OrderStatus,
    actor_role: ActorRole,
    changed_by: Optional[str] = None,
    notes: Optional[str] = None,
) -> OrderStatusHistory:
    entry = OrderStatusHistory(
        order_id=order.id,
        old_status=old_status,
        new_status=new_status,
        changed_by=changed_by,
        changed_by_role=actor_role,
        notes=notes,
    )
    db.add(entry)
    return entry


def record_status_change(
    db: AsyncSession,
    order: Order,
    new_status: OrderStatus,
    *,
    actor_role: ActorRole,
    changed_by: Optional[str] = None,
    notes: Optional[str] = None,
) -> Optional[OrderStatusHistory]:
    """Set ``order.status`` and append one history row.

    Returns None (and writes nothing) when the order is already in
    ``new_status``.
    """
    old_status = order.status
    if old_status == new_status:
        return None

    order.status = new_status
    if new_status == OrderStatus.CANCELLED:
        order.cancelled_at = utc_now()

    return append_history(
        db,
        order,
        old_status=old_status,
        new_status=new_status,
        actor_role=actor_role,
        changed_by=changed_by,
        notes=notes,
    )
