"""Unit tests for invoice issuance."""

import uuid
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
from libs.common.config import get_settings
from libs.common.datetime_utils import ensure_utc, utc_now
from services.orders_service.errors import (
    NotFound,
    PaymentProviderError,
    ValidationError,
)
from services.orders_service.models import (
    Order,
    PaymentMethod,
    PaymentStatus,
    PaymentTransaction,
    ReservationStatus,
    StockReservation,
)
from services.orders_service.services.invoices import issue_invoice
from sqlalchemy import func, select
from tests.factories import OrderFactory, ProductFactory, ReservationFactory


async def _order(db, **overrides) -> Order:
    order = OrderFactory.create(**overrides)
    db.add(order)
    await db.commit()
    return order


async def _transactions(db, order_id) -> list[PaymentTransaction]:
    result = await db.execute(
        select(PaymentTransaction)
        .where(PaymentTransaction.order_id == order_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
@pytest.mark.unit
async def test_issue_invoice_persists_reference_and_pending_transaction(
    db_session, xendit
):
    order = await _order(db_session, total=Decimal("1150.00"))

    invoice = await issue_invoice(db_session, order_id=order.id, client=xendit)

    assert invoice.invoice_id == "inv_1"
    assert invoice.invoice_url.endswith("inv_1")
    assert len(xendit.calls) == 1

    payload = xendit.calls[0]
    assert payload["external_id"] == str(order.id)
    assert payload["amount"] == 1150
    assert payload["currency"] == "PHP"
    assert payload["invoice_duration"] == 86400
    assert payload["description"] == f"Order #{order.order_number}"
    assert payload["payer_email"] == "buyer@example.com"
    assert payload["customer"]["given_names"] == "Juan"
    assert payload["success_redirect_url"].endswith(
        f"/orders/{order.id}?payment=success"
    )
    assert payload["failure_redirect_url"].endswith(
        f"/orders/{order.id}?payment=failed"
    )

    fresh = await db_session.get(Order, order.id, populate_existing=True)
    assert fresh.xendit_invoice_id == "inv_1"
    assert fresh.xendit_invoice_url == invoice.invoice_url
    deadline = ensure_utc(fresh.payment_deadline)
    remaining = (deadline - utc_now()).total_seconds()
    assert 86000 < remaining <= 86400

    txns = await _transactions(db_session, order.id)
    assert len(txns) == 1
    assert txns[0].status == PaymentStatus.PENDING
    assert txns[0].amount == Decimal("1150.00")
    assert txns[0].xendit_invoice_id == "inv_1"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_second_call_returns_same_invoice_without_provider_call(
    db_session, xendit
):
    order = await _order(db_session)

    first = await issue_invoice(db_session, order_id=order.id, client=xendit)
    second = await issue_invoice(db_session, order_id=order.id, client=xendit)

    assert second.invoice_id == first.invoice_id
    assert second.invoice_url == first.invoice_url
    assert len(xendit.calls) == 1
    assert len(await _transactions(db_session, order.id)) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_provider_failure_persists_nothing(db_session, xendit):
    order = await _order(db_session)
    xendit.fail_with(status_code=503)

    with pytest.raises(PaymentProviderError) as exc:
        await issue_invoice(db_session, order_id=order.id, client=xendit)

    assert exc.value.status_code == 502
    fresh = await db_session.get(Order, order.id, populate_existing=True)
    assert fresh.xendit_invoice_id is None
    assert fresh.payment_deadline is None
    count = (
        await db_session.execute(
            select(func.count()).select_from(PaymentTransaction)
        )
    ).scalar_one()
    assert count == 0

    # Retry succeeds once the provider is back.
    xendit.error = None
    invoice = await issue_invoice(db_session, order_id=order.id, client=xendit)
    assert invoice.invoice_id == "inv_2"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_network_error_is_provider_error(db_session, xendit):
    order = await _order(db_session)
    xendit.error = httpx.ConnectTimeout("timed out")

    with pytest.raises(PaymentProviderError):
        await issue_invoice(db_session, order_id=order.id, client=xendit)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_profile_lookup_failure_still_issues(db_session, xendit, buyer_profiles):
    order = await _order(db_session)
    buyer_profiles.side_effect = httpx.ConnectError("users service down")

    await issue_invoice(db_session, order_id=order.id, client=xendit)

    assert "payer_email" not in xendit.calls[0]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cod_order_cannot_get_invoice(db_session, xendit):
    order = await _order(db_session, payment_method=PaymentMethod.COD)

    with pytest.raises(ValidationError):
        await issue_invoice(db_session, order_id=order.id, client=xendit)
    assert xendit.calls == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expired_order_cannot_get_invoice(db_session, xendit):
    order = await _order(db_session, payment_status=PaymentStatus.EXPIRED)

    with pytest.raises(ValidationError):
        await issue_invoice(db_session, order_id=order.id, client=xendit)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_missing_order(db_session, xendit):
    with pytest.raises(NotFound):
        await issue_invoice(db_session, order_id=uuid.uuid4(), client=xendit)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_issue_invoice_keeps_holds_past_invoice_expiry(db_session, xendit):
    """An invoice issued late in the hold window must not outlive the stock."""
    product = ProductFactory.create(stock=3, reserved_stock=1)
    order = OrderFactory.create()
    db_session.add_all([product, order])
    await db_session.flush()
    hold = ReservationFactory.create(
        order.id, product.id, expires_at=utc_now() + timedelta(hours=2)
    )
    db_session.add(hold)
    await db_session.commit()

    await issue_invoice(db_session, order_id=order.id, client=xendit)

    fresh_order = await db_session.get(Order, order.id, populate_existing=True)
    fresh_hold = await db_session.get(
        StockReservation, hold.id, populate_existing=True
    )
    margin = timedelta(minutes=get_settings().RESERVATION_INVOICE_MARGIN_MINUTES)
    assert ensure_utc(fresh_hold.expires_at) >= (
        ensure_utc(fresh_order.payment_deadline) + margin
    )
    assert fresh_hold.status == ReservationStatus.ACTIVE
