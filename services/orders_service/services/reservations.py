"""Stock reservation ledger.

Every transition pairs the reservation row update with the product counter
update inside the caller's transaction. Nothing here commits.

Counters on ``products``:
    stock           physically on hand
    reserved_stock  held by active reservations
    sold_stock      confirmed sales

Reservations move ``active`` -> ``confirmed`` | ``released`` | ``expired``
through compare-and-set updates, so a concurrent or repeated transition
affects zero rows and leaves the counters alone.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.orders_service.errors import InsufficientStock, NotFound, ValidationError
from services.orders_service.models import (
    Order,
    PaymentMethod,
    PaymentStatus,
    Product,
    ReservationStatus,
    StockReservation,
)
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Reserve
# ---------------------------------------------------------------------------


async def reserve(
    db: AsyncSession,
    *,
    product_id: uuid.UUID,
    quantity: int,
    order_id: uuid.UUID,
    expires_at: Optional[datetime] = None,
) -> StockReservation:
    """Hold ``quantity`` units of a product for an order.

    The product row is claimed with a single conditional UPDATE, so two
    concurrent reservations can never both pass the availability check.

    Raises:
        NotFound: product missing or inactive.
        InsufficientStock: fewer than ``quantity`` units available.
    """
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")

    result = await db.execute(
        update(Product)
        .where(
            Product.id == product_id,
            Product.is_active.is_(True),
            Product.stock - Product.reserved_stock >= quantity,
        )
        .values(reserved_stock=Product.reserved_stock + quantity)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        product = await db.get(Product, product_id, populate_existing=True)
        if product is None or not product.is_active:
            raise NotFound(f"Product {product_id} not found")
        logger.info(
            "Reservation refused for product %s: requested=%d available=%d",
            product_id,
            quantity,
            product.available_stock,
        )
        raise InsufficientStock(product.name, quantity, product.available_stock)

    now = utc_now()
    if expires_at is None:
        expires_at = now + timedelta(minutes=get_settings().RESERVATION_TTL_MINUTES)

    reservation = StockReservation(
        order_id=order_id,
        product_id=product_id,
        quantity=quantity,
        status=ReservationStatus.ACTIVE,
        reserved_at=now,
        expires_at=expires_at,
    )
    db.add(reservation)
    await db.flush()
    return reservation


# ---------------------------------------------------------------------------
# Terminal transitions
# ---------------------------------------------------------------------------


async def _transition(
    db: AsyncSession,
    reservation: StockReservation,
    target: ReservationStatus,
) -> bool:
    """Move an active reservation to ``target`` and settle the counters.

    Returns False when the reservation already left ``active``.
    """
    now = utc_now()
    stamp = (
        {"confirmed_at": now}
        if target == ReservationStatus.CONFIRMED
        else {"released_at": now}
    )
    result = await db.execute(
        update(StockReservation)
        .where(
            StockReservation.id == reservation.id,
            StockReservation.status == ReservationStatus.ACTIVE,
        )
        .values(status=target, **stamp)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    qty = reservation.quantity
    if target == ReservationStatus.CONFIRMED:
        counters = {
            "stock": Product.stock - qty,
            "reserved_stock": Product.reserved_stock - qty,
            "sold_stock": Product.sold_stock + qty,
        }
    else:
        counters = {"reserved_stock": Product.reserved_stock - qty}

    await db.execute(
        update(Product)
        .where(Product.id == reservation.product_id)
        .values(**counters)
        .execution_options(synchronize_session=False)
    )
    return True


async def _load(db: AsyncSession, reservation_id: uuid.UUID) -> StockReservation:
    reservation = await db.get(
        StockReservation, reservation_id, populate_existing=True
    )
    if reservation is None:
        raise NotFound(f"Reservation {reservation_id} not found")
    return reservation


async def _apply(
    db: AsyncSession, reservation_id: uuid.UUID, target: ReservationStatus
) -> StockReservation:
    reservation = await _load(db, reservation_id)
    changed = await _transition(db, reservation, target)
    if not changed:
        logger.debug(
            "Reservation %s already %s, skipping %s",
            reservation.id,
            reservation.status.value,
            target.value,
        )
    return await _load(db, reservation_id)


async def confirm(db: AsyncSession, reservation_id: uuid.UUID) -> StockReservation:
    """Turn a hold into a sale: on-hand and reserved both drop, sold rises."""
    return await _apply(db, reservation_id, ReservationStatus.CONFIRMED)


async def release(db: AsyncSession, reservation_id: uuid.UUID) -> StockReservation:
    """Return the held quantity to the available pool."""
    return await _apply(db, reservation_id, ReservationStatus.RELEASED)


async def expire(db: AsyncSession, reservation_id: uuid.UUID) -> StockReservation:
    """Same as release, recorded as ``expired``."""
    return await _apply(db, reservation_id, ReservationStatus.EXPIRED)


# ---------------------------------------------------------------------------
# Per-order helpers
# ---------------------------------------------------------------------------


async def get_active_reservations(
    db: AsyncSession, order_id: uuid.UUID
) -> list[StockReservation]:
    result = await db.execute(
        select(StockReservation)
        .where(
            StockReservation.order_id == order_id,
            StockReservation.status == ReservationStatus.ACTIVE,
        )
        .order_by(StockReservation.reserved_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _apply_for_order(
    db: AsyncSession, order_id: uuid.UUID, target: ReservationStatus
) -> int:
    count = 0
    for reservation in await get_active_reservations(db, order_id):
        if await _transition(db, reservation, target):
            count += 1
    return count


async def confirm_for_order(db: AsyncSession, order_id: uuid.UUID) -> int:
    """Confirm every active reservation of an order. Returns how many moved."""
    return await _apply_for_order(db, order_id, ReservationStatus.CONFIRMED)


async def release_for_order(db: AsyncSession, order_id: uuid.UUID) -> int:
    """Release every active reservation of an order. Returns how many moved."""
    return await _apply_for_order(db, order_id, ReservationStatus.RELEASED)


async def has_confirmed_reservations(db: AsyncSession, order_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(StockReservation.id)
        .where(
            StockReservation.order_id == order_id,
            StockReservation.status == ReservationStatus.CONFIRMED,
        )
        .limit(1)
    )
    return result.first() is not None


async def extend_for_order(
    db: AsyncSession, order_id: uuid.UUID, expires_at: datetime
) -> int:
    """Push active holds of an order out to at least ``expires_at``.

    Holds never get shorter. Returns how many rows moved.
    """
    result = await db.execute(
        update(StockReservation)
        .where(
            StockReservation.order_id == order_id,
            StockReservation.status == ReservationStatus.ACTIVE,
            StockReservation.expires_at < expires_at,
        )
        .values(expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def reserve_and_confirm(
    db: AsyncSession,
    *,
    product_id: uuid.UUID,
    quantity: int,
    order_id: uuid.UUID,
) -> StockReservation:
    """Take stock for an already paid line in one step.

    Raises the same errors as ``reserve``; nothing is held when it fails.
    """
    reservation = await reserve(
        db, product_id=product_id, quantity=quantity, order_id=order_id
    )
    await _transition(db, reservation, ReservationStatus.CONFIRMED)
    return await _load(db, reservation.id)


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------


async def expire_stale_reservations(
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
    limit: int = 200,
) -> int:
    """Expire active holds past ``expires_at`` on unpaid Xendit orders.

    Covers orders still waiting on the buyer's payment and orders whose
    payment failed; COD holds are settled by the seller flow. The order
    itself is left untouched so a late PAID callback can still be applied.
    """
    now = now or utc_now()
    result = await db.execute(
        select(StockReservation)
        .join(Order, Order.id == StockReservation.order_id)
        .where(
            StockReservation.status == ReservationStatus.ACTIVE,
            StockReservation.expires_at <= now,
            Order.payment_method == PaymentMethod.XENDIT,
            Order.payment_status.in_((PaymentStatus.PENDING, PaymentStatus.FAILED)),
        )
        .order_by(StockReservation.expires_at)
        .limit(limit)
    )
    expired = 0
    for reservation in result.scalars().all():
        if await _transition(db, reservation, ReservationStatus.EXPIRED):
            expired += 1
            logger.info(
                "Expired reservation %s (order %s, product %s, qty %d)",
                reservation.id,
                reservation.order_id,
                reservation.product_id,
                reservation.quantity,
            )
    return expired
