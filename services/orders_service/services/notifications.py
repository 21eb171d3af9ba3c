"""Notification triggers.

Delivery belongs to the notifications service; this module only posts the
event. Failures are logged and never propagate to checkout or settlement.
"""

from typing import Any, Optional

from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.service_client import internal_post
from services.orders_service.models import Order

logger = get_logger(__name__)

ORDER_PLACED = "order_placed"
PAYMENT_RECEIVED = "payment_received"
ORDER_CANCELLED = "order_cancelled"
PAYMENT_FAILED = "payment_failed"


async def notify(
    event: str, order: Order, data: Optional[dict[str, Any]] = None
) -> bool:
    """Post ``event`` for ``order``. Returns whether the service accepted it."""
    settings = get_settings()
    payload = {
        "type": event,
        "user_id": order.user_id,
        "store_id": order.store_id,
        "order_id": str(order.id),
        "order_number": order.order_number,
        "total": str(order.total),
        "data": data or {},
    }
    try:
        resp = await internal_post(
            service_url=settings.NOTIFICATIONS_SERVICE_URL,
            path="/internal/notifications",
            json=payload,
        )
    except Exception as e:
        logger.warning(
            "Failed to send %s notification for order %s: %s",
            event,
            order.order_number,
            e,
        )
        return False

    if resp.status_code >= 400:
        logger.warning(
            "Notifications service rejected %s for order %s: %s",
            event,
            order.order_number,
            resp.status_code,
        )
        return False
    return True


async def order_placed(order: Order) -> bool:
    return await notify(
        ORDER_PLACED, order, {"payment_method": order.payment_method.value}
    )


async def payment_received(order: Order) -> bool:
    return await notify(PAYMENT_RECEIVED, order)


async def order_cancelled(order: Order, reason: str) -> bool:
    return await notify(ORDER_CANCELLED, order, {"reason": reason})


async def payment_failed(order: Order) -> bool:
    return await notify(PAYMENT_FAILED, order)
