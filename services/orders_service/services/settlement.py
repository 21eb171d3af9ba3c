"""Xendit invoice callback settlement.

Reported status -> effect:

    PAID / SETTLED  txn paid,    order payment paid,    confirm active holds
                    (stock is taken again when the holds lapsed)
    EXPIRED         txn expired, order payment expired, order cancelled,
                    release active holds
    FAILED          txn failed,  order payment failed
    anything else   logged, nothing written

Callbacks may be redelivered or arrive out of order. The transaction row is
an insert-or-update keyed by order, reservation transitions are
compare-and-set, and history is only written when the order status actually
changes, so replays settle to the same state. A paid order is never moved
back to expired or failed.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from libs.common.currency import to_money
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.db.upsert import upsert
from services.orders_service.errors import InsufficientStock, NotFound
from services.orders_service.models import (
    ActorRole,
    Order,
    OrderStatus,
    PaymentStatus,
    PaymentTransaction,
)
from services.orders_service.schemas import CallbackStatus, InvoiceCallback
from services.orders_service.services import notifications, reservations
from services.orders_service.services.order_builder import get_order
from services.orders_service.services.order_status import record_status_change
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# Outcomes reported back in the webhook acknowledgement.
PAID = "paid"
EXPIRED = "expired"
FAILED = "failed"
DUPLICATE = "duplicate"
IGNORED = "ignored"
UNKNOWN_ORDER = "unknown_order"
UNHANDLED = "unhandled"


@dataclass
class SettlementResult:
    outcome: str
    order_id: Optional[uuid.UUID] = None
    reservations_changed: int = 0


def _parse_order_id(external_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(external_id))
    except ValueError:
        return None


async def _record_transaction(
    db: AsyncSession,
    order: Order,
    callback: InvoiceCallback,
    raw_payload: dict,
    status: PaymentStatus,
    paid_at: Optional[datetime] = None,
) -> None:
    """Insert or update the order's single payment transaction row."""
    now = utc_now()
    extra = callback.model_extra or {}
    invoice_id = callback.id or order.xendit_invoice_id
    payment_id = extra.get("payment_id") or callback.id
    amount = (
        to_money(callback.paid_amount)
        if callback.paid_amount is not None
        else order.total
    )

    await upsert(
        db,
        PaymentTransaction,
        conflict_columns=["order_id"],
        values={
            "id": uuid.uuid4(),
            "order_id": order.id,
            "payment_method": order.payment_method,
            "xendit_invoice_id": invoice_id,
            "xendit_payment_id": payment_id,
            "amount": amount,
            "status": status,
            "paid_at": paid_at,
            "provider_response": raw_payload,
            "created_at": now,
            "updated_at": now,
        },
        update_values={
            "xendit_invoice_id": invoice_id,
            "xendit_payment_id": payment_id,
            "amount": amount,
            "status": status,
            "paid_at": paid_at,
            "provider_response": raw_payload,
            "updated_at": now,
        },
    )


async def _resecure_stock(db: AsyncSession, order: Order) -> int:
    """Take stock again for a paid order whose holds lapsed before payment.

    Lines that can no longer be covered are logged for manual follow-up.
    """
    secured = 0
    for item in order.items:
        try:
            await reservations.reserve_and_confirm(
                db,
                product_id=item.product_id,
                quantity=item.quantity,
                order_id=order.id,
            )
        except (InsufficientStock, NotFound) as e:
            logger.error(
                "Paid order %s could not secure %d x %s: %s; needs manual follow-up",
                order.order_number,
                item.quantity,
                item.product_name,
                e.message,
                extra={
                    "extra_fields": {
                        "order_id": str(order.id),
                        "product_id": str(item.product_id),
                    }
                },
            )
            continue
        secured += 1

    logger.warning(
        "Holds for paid order %s had lapsed; re-secured %d of %d lines",
        order.order_number,
        secured,
        len(order.items),
        extra={"extra_fields": {"order_id": str(order.id)}},
    )
    return secured


async def _settle_paid(
    db: AsyncSession, order: Order, callback: InvoiceCallback, raw_payload: dict
) -> SettlementResult:
    already_paid = order.payment_status == PaymentStatus.PAID

    paid_amount = callback.paid_amount
    if paid_amount is not None and to_money(paid_amount) != to_money(order.total):
        logger.warning(
            "Paid amount mismatch for order %s: got %s, expected %s",
            order.order_number,
            callback.paid_amount,
            order.total,
            extra={"extra_fields": {"order_id": str(order.id)}},
        )

    if order.status == OrderStatus.CANCELLED:
        logger.warning(
            "Payment received for cancelled order %s; needs manual follow-up",
            order.order_number,
            extra={"extra_fields": {"order_id": str(order.id)}},
        )

    paid_at = order.paid_at or callback.paid_at or utc_now()
    await _record_transaction(
        db, order, callback, raw_payload, PaymentStatus.PAID, paid_at=paid_at
    )
    order.payment_status = PaymentStatus.PAID
    order.paid_at = paid_at

    confirmed = await reservations.confirm_for_order(db, order.id)
    if (
        not confirmed
        and not already_paid
        and order.status != OrderStatus.CANCELLED
        and not await reservations.has_confirmed_reservations(db, order.id)
    ):
        confirmed = await _resecure_stock(db, order)
    return SettlementResult(
        outcome=DUPLICATE if already_paid else PAID,
        order_id=order.id,
        reservations_changed=confirmed,
    )


async def _settle_expired(
    db: AsyncSession, order: Order, callback: InvoiceCallback, raw_payload: dict
) -> SettlementResult:
    if order.payment_status == PaymentStatus.PAID:
        logger.warning(
            "Ignoring EXPIRED callback for paid order %s", order.order_number
        )
        return SettlementResult(outcome=IGNORED, order_id=order.id)

    already_expired = order.payment_status == PaymentStatus.EXPIRED
    await _record_transaction(db, order, callback, raw_payload, PaymentStatus.EXPIRED)
    order.payment_status = PaymentStatus.EXPIRED

    if not order.status.is_terminal:
        record_status_change(
            db,
            order,
            OrderStatus.CANCELLED,
            actor_role=ActorRole.SYSTEM,
            notes="Payment invoice expired",
        )

    released = await reservations.release_for_order(db, order.id)
    return SettlementResult(
        outcome=DUPLICATE if already_expired else EXPIRED,
        order_id=order.id,
        reservations_changed=released,
    )


async def _settle_failed(
    db: AsyncSession, order: Order, callback: InvoiceCallback, raw_payload: dict
) -> SettlementResult:
    if order.payment_status == PaymentStatus.PAID:
        logger.warning("Ignoring FAILED callback for paid order %s", order.order_number)
        return SettlementResult(outcome=IGNORED, order_id=order.id)

    already_failed = order.payment_status == PaymentStatus.FAILED
    await _record_transaction(db, order, callback, raw_payload, PaymentStatus.FAILED)
    order.payment_status = PaymentStatus.FAILED
    return SettlementResult(
        outcome=DUPLICATE if already_failed else FAILED, order_id=order.id
    )


async def settle_invoice_callback(
    db: AsyncSession, callback: InvoiceCallback, raw_payload: dict
) -> SettlementResult:
    """Apply one Xendit invoice callback and commit.

    Unknown orders and unhandled statuses are acknowledged without writes.
    Errors propagate to the caller, which rolls back.
    """
    log_fields = {
        "external_id": callback.external_id,
        "status": callback.raw_status or callback.status.value,
    }

    if callback.status == CallbackStatus.UNKNOWN:
        logger.warning(
            "Unhandled Xendit invoice status %r for %s",
            callback.raw_status,
            callback.external_id,
            extra={"extra_fields": log_fields},
        )
        return SettlementResult(outcome=UNHANDLED)

    order_id = _parse_order_id(callback.external_id)
    order = await get_order(db, order_id, for_update=True) if order_id else None
    if order is None:
        logger.warning(
            "Xendit callback for unknown order %s",
            callback.external_id,
            extra={"extra_fields": log_fields},
        )
        return SettlementResult(outcome=UNKNOWN_ORDER)

    if callback.is_paid:
        result = await _settle_paid(db, order, callback, raw_payload)
    elif callback.status == CallbackStatus.EXPIRED:
        result = await _settle_expired(db, order, callback, raw_payload)
    else:
        result = await _settle_failed(db, order, callback, raw_payload)

    await db.commit()

    logger.info(
        "Settled Xendit callback for order %s: %s (%d reservations changed)",
        order.order_number,
        result.outcome,
        result.reservations_changed,
        extra={"extra_fields": log_fields},
    )

    if result.outcome == PAID:
        await notifications.payment_received(order)
    elif result.outcome == EXPIRED:
        await notifications.order_cancelled(order, reason="Payment invoice expired")
    elif result.outcome == FAILED:
        await notifications.payment_failed(order)

    return result
