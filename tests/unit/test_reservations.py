"""Unit tests for the stock reservation ledger.

Tests call the ledger directly with the db_session fixture.
"""

import uuid
from datetime import timedelta

import pytest
from libs.common.datetime_utils import ensure_utc, utc_now
from services.orders_service.errors import (
    InsufficientStock,
    NotFound,
    ValidationError,
)
from services.orders_service.models import (
    PaymentMethod,
    PaymentStatus,
    Product,
    ReservationStatus,
    StockReservation,
)
from services.orders_service.services import reservations
from sqlalchemy import func, select
from tests.factories import OrderFactory, ProductFactory, ReservationFactory

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _product_and_order(db, stock=5, **order_overrides):
    product = ProductFactory.create(stock=stock)
    order = OrderFactory.create(**order_overrides)
    db.add_all([product, order])
    await db.commit()
    return product, order


async def _fresh_product(db, product_id) -> Product:
    return await db.get(Product, product_id, populate_existing=True)


async def _reservation_count(db, product_id) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(StockReservation)
        .where(StockReservation.product_id == product_id)
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# reserve
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reserve_full_stock_then_one_more_fails(db_session):
    """Holding all 5 units leaves nothing for a second request of 1."""
    product, order = await _product_and_order(db_session, stock=5)
    other_order = OrderFactory.create()
    db_session.add(other_order)
    await db_session.commit()

    reservation = await reservations.reserve(
        db_session, product_id=product.id, quantity=5, order_id=order.id
    )
    await db_session.commit()
    assert reservation.status == ReservationStatus.ACTIVE

    with pytest.raises(InsufficientStock) as exc:
        await reservations.reserve(
            db_session, product_id=product.id, quantity=1, order_id=other_order.id
        )

    assert exc.value.available == 0
    assert exc.value.status_code == 409
    assert exc.value.detail["code"] == "insufficient_stock"
    assert await _reservation_count(db_session, product.id) == 1

    fresh = await _fresh_product(db_session, product.id)
    assert fresh.stock == 5
    assert fresh.reserved_stock == 5


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reserve_more_than_available_creates_no_row(db_session):
    product, order = await _product_and_order(db_session, stock=2)

    with pytest.raises(InsufficientStock):
        await reservations.reserve(
            db_session, product_id=product.id, quantity=3, order_id=order.id
        )

    assert await _reservation_count(db_session, product.id) == 0
    fresh = await _fresh_product(db_session, product.id)
    assert fresh.reserved_stock == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reserve_unknown_product_is_not_found(db_session):
    order = OrderFactory.create()
    db_session.add(order)
    await db_session.commit()

    with pytest.raises(NotFound):
        await reservations.reserve(
            db_session, product_id=uuid.uuid4(), quantity=1, order_id=order.id
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reserve_inactive_product_is_not_found(db_session):
    product = ProductFactory.create(is_active=False)
    order = OrderFactory.create()
    db_session.add_all([product, order])
    await db_session.commit()

    with pytest.raises(NotFound):
        await reservations.reserve(
            db_session, product_id=product.id, quantity=1, order_id=order.id
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reserve_rejects_non_positive_quantity(db_session):
    product, order = await _product_and_order(db_session)

    with pytest.raises(ValidationError):
        await reservations.reserve(
            db_session, product_id=product.id, quantity=0, order_id=order.id
        )


# ---------------------------------------------------------------------------
# confirm / release
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_confirm_moves_hold_into_sold_stock_once(db_session):
    product, order = await _product_and_order(db_session, stock=10)
    reservation = await reservations.reserve(
        db_session, product_id=product.id, quantity=3, order_id=order.id
    )
    await db_session.commit()

    confirmed = await reservations.confirm(db_session, reservation.id)
    await db_session.commit()
    assert confirmed.status == ReservationStatus.CONFIRMED
    assert confirmed.confirmed_at is not None

    # Second confirm is a no-op
    await reservations.confirm(db_session, reservation.id)
    await db_session.commit()

    fresh = await _fresh_product(db_session, product.id)
    assert fresh.stock == 7
    assert fresh.reserved_stock == 0
    assert fresh.sold_stock == 3


@pytest.mark.asyncio
@pytest.mark.unit
async def test_release_returns_quantity_to_pool(db_session):
    product, order = await _product_and_order(db_session, stock=4)
    reservation = await reservations.reserve(
        db_session, product_id=product.id, quantity=4, order_id=order.id
    )
    await db_session.commit()

    released = await reservations.release(db_session, reservation.id)
    await reservations.release(db_session, reservation.id)
    await db_session.commit()

    assert released.status == ReservationStatus.RELEASED
    fresh = await _fresh_product(db_session, product.id)
    assert fresh.stock == 4
    assert fresh.reserved_stock == 0
    assert fresh.available_stock == 4


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expire_returns_quantity_and_records_release_time(db_session):
    product, order = await _product_and_order(db_session, stock=3)
    reservation = await reservations.reserve(
        db_session, product_id=product.id, quantity=2, order_id=order.id
    )
    await db_session.commit()

    expired = await reservations.expire(db_session, reservation.id)
    confirmed = await reservations.confirm(db_session, reservation.id)
    await db_session.commit()

    assert expired.status == ReservationStatus.EXPIRED
    assert expired.released_at is not None
    assert confirmed.status == ReservationStatus.EXPIRED
    fresh = await _fresh_product(db_session, product.id)
    assert (fresh.stock, fresh.reserved_stock, fresh.sold_stock) == (3, 0, 0)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_release_after_confirm_is_noop(db_session):
    """A reservation takes exactly one terminal transition."""
    product, order = await _product_and_order(db_session, stock=5)
    reservation = await reservations.reserve(
        db_session, product_id=product.id, quantity=2, order_id=order.id
    )
    await reservations.confirm(db_session, reservation.id)
    result = await reservations.release(db_session, reservation.id)
    await db_session.commit()

    assert result.status == ReservationStatus.CONFIRMED
    fresh = await _fresh_product(db_session, product.id)
    assert fresh.stock == 3
    assert fresh.reserved_stock == 0
    assert fresh.sold_stock == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_confirm_unknown_reservation_is_not_found(db_session):
    with pytest.raises(NotFound):
        await reservations.confirm(db_session, uuid.uuid4())


@pytest.mark.asyncio
@pytest.mark.unit
async def test_confirm_for_order_counts_only_active(db_session):
    product, order = await _product_and_order(db_session, stock=10)
    first = await reservations.reserve(
        db_session, product_id=product.id, quantity=1, order_id=order.id
    )
    await reservations.reserve(
        db_session, product_id=product.id, quantity=2, order_id=order.id
    )
    await reservations.release(db_session, first.id)
    await db_session.commit()

    assert await reservations.confirm_for_order(db_session, order.id) == 1
    assert await reservations.confirm_for_order(db_session, order.id) == 0
    await db_session.commit()

    fresh = await _fresh_product(db_session, product.id)
    assert fresh.stock == 8
    assert fresh.reserved_stock == 0
    assert fresh.sold_stock == 2


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_sweep_expires_only_unpaid_xendit_holds(db_session):
    past = utc_now() - timedelta(hours=1)
    product = ProductFactory.create(stock=10, reserved_stock=4)
    unpaid = OrderFactory.create()
    cod = OrderFactory.create(payment_method=PaymentMethod.COD)
    paid = OrderFactory.create(payment_status=PaymentStatus.PAID)
    fresh_order = OrderFactory.create()
    db_session.add_all([product, unpaid, cod, paid, fresh_order])
    await db_session.flush()

    stale = ReservationFactory.create(unpaid.id, product.id, expires_at=past)
    cod_hold = ReservationFactory.create(cod.id, product.id, expires_at=past)
    paid_hold = ReservationFactory.create(paid.id, product.id, expires_at=past)
    live_hold = ReservationFactory.create(fresh_order.id, product.id)
    db_session.add_all([stale, cod_hold, paid_hold, live_hold])
    await db_session.commit()

    expired = await reservations.expire_stale_reservations(db_session)
    await db_session.commit()

    assert expired == 1
    statuses = {
        r.id: r.status
        for r in (
            await db_session.execute(
                select(StockReservation).execution_options(populate_existing=True)
            )
        ).scalars()
    }
    assert statuses[stale.id] == ReservationStatus.EXPIRED
    assert statuses[cod_hold.id] == ReservationStatus.ACTIVE
    assert statuses[paid_hold.id] == ReservationStatus.ACTIVE
    assert statuses[live_hold.id] == ReservationStatus.ACTIVE

    fresh = await _fresh_product(db_session, product.id)
    assert fresh.reserved_stock == 3
    assert fresh.stock == 10


@pytest.mark.asyncio
@pytest.mark.unit
async def test_sweep_frees_holds_of_failed_payments(db_session):
    """FAILED leaves holds active; a missing EXPIRED must not pin them forever."""
    product = ProductFactory.create(stock=5, reserved_stock=2)
    failed = OrderFactory.create(payment_status=PaymentStatus.FAILED)
    db_session.add_all([product, failed])
    await db_session.flush()
    hold = ReservationFactory.create(
        failed.id, product.id, quantity=2, expires_at=utc_now() - timedelta(hours=1)
    )
    db_session.add(hold)
    await db_session.commit()

    expired = await reservations.expire_stale_reservations(db_session)
    await db_session.commit()

    assert expired == 1
    fresh = await _fresh_product(db_session, product.id)
    assert fresh.reserved_stock == 0
    assert fresh.available_stock == 5


@pytest.mark.asyncio
@pytest.mark.unit
async def test_extend_for_order_only_pushes_active_holds_later(db_session):
    product = ProductFactory.create(stock=10, reserved_stock=3)
    order = OrderFactory.create()
    db_session.add_all([product, order])
    await db_session.flush()
    soon = utc_now() + timedelta(hours=1)
    late = utc_now() + timedelta(days=3)
    short = ReservationFactory.create(order.id, product.id, expires_at=soon)
    long_ = ReservationFactory.create(order.id, product.id, expires_at=late)
    done = ReservationFactory.create(
        order.id, product.id, status=ReservationStatus.RELEASED, expires_at=soon
    )
    db_session.add_all([short, long_, done])
    await db_session.commit()

    target = utc_now() + timedelta(days=1)
    moved = await reservations.extend_for_order(db_session, order.id, target)
    await db_session.commit()

    assert moved == 1
    rows = {
        r.id: ensure_utc(r.expires_at)
        for r in (
            await db_session.execute(
                select(StockReservation).execution_options(populate_existing=True)
            )
        ).scalars()
    }
    assert rows[short.id] == target
    assert rows[long_.id] == ensure_utc(late)
    assert rows[done.id] == ensure_utc(soon)
