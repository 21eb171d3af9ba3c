"""Background tasks for the orders service."""

from __future__ import annotations

from datetime import datetime

from libs.common.logging import get_logger
from libs.db.config import AsyncSessionLocal
from services.orders_service.services.reservations import expire_stale_reservations

logger = get_logger(__name__)

# Rows handled per run; the next run picks up any remainder.
SWEEP_BATCH_SIZE = 200


async def sweep_expired_reservations(
    session_factory=AsyncSessionLocal, now: datetime | None = None
) -> int:
    """Return stock held by unpaid Xendit orders whose holds have lapsed.

    Safeguard for EXPIRED callbacks that never arrive.
    """
    async with session_factory() as db:
        try:
            expired = await expire_stale_reservations(
                db, now=now, limit=SWEEP_BATCH_SIZE
            )
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Reservation sweep failed")
            raise

    if expired:
        logger.info("Reservation sweep expired %d reservations", expired)
    return expired
