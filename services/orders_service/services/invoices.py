"""Hosted invoice issuance for online-payment orders."""

import uuid
from datetime import timedelta
from typing import Optional

import httpx
from libs.common.config import get_settings
from libs.common.currency import to_provider_amount
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from libs.common.service_client import get_buyer_profile
from libs.db.upsert import upsert
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
)
from services.orders_service.schemas import InvoiceResponse
from services.orders_service.services import reservations
from services.orders_service.services.order_builder import get_order
from services.orders_service.xendit_client import XenditClient, XenditError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def build_invoice_payload(order: Order, profile: Optional[dict]) -> dict:
    """Xendit ``/v2/invoices`` body for an order."""
    settings = get_settings()
    profile = profile or {}
    order_url = f"{settings.APP_URL.rstrip('/')}/orders/{order.id}"

    payload = {
        "external_id": str(order.id),
        "amount": to_provider_amount(order.total),
        "description": f"Order #{order.order_number}",
        "invoice_duration": settings.XENDIT_INVOICE_DURATION_SECONDS,
        "currency": settings.CURRENCY,
        "success_redirect_url": f"{order_url}?payment=success",
        "failure_redirect_url": f"{order_url}?payment=failed",
        "items": [
            {
                "name": item.product_name,
                "quantity": item.quantity,
                "price": to_provider_amount(item.unit_price),
            }
            for item in order.items
        ],
    }

    email = profile.get("email")
    if email:
        payload["payer_email"] = email

    customer = {
        "given_names": profile.get("first_name") or profile.get("name"),
        "surname": profile.get("last_name"),
        "email": email,
        "mobile_number": profile.get("phone"),
    }
    customer = {k: v for k, v in customer.items() if v}
    if customer:
        payload["customer"] = customer

    return payload


def _existing_invoice(order: Order) -> InvoiceResponse:
    return InvoiceResponse(
        invoice_url=order.xendit_invoice_url,
        invoice_id=order.xendit_invoice_id,
        expiry_date=ensure_utc(order.payment_deadline),
    )


async def issue_invoice(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    client: XenditClient,
) -> InvoiceResponse:
    """Create (or return the already issued) Xendit invoice for an order.

    The order row stays locked while Xendit is called so two concurrent
    requests cannot both create an invoice.
    The order's stock holds are extended past the invoice expiry, so the
    sweep cannot free them while the invoice is still payable.

    Raises:
        NotFound: order does not exist.
        ValidationError: not a Xendit order, or no longer awaiting payment.
        PaymentProviderError: Xendit or the network failed; nothing persisted.
    """
    settings = get_settings()
    order = await get_order(db, order_id, for_update=True)
    if order is None:
        raise NotFound(f"Order {order_id} not found")

    if order.xendit_invoice_id and order.xendit_invoice_url:
        logger.info(
            "Invoice %s already issued for order %s",
            order.xendit_invoice_id,
            order.order_number,
        )
        existing = _existing_invoice(order)
        await db.rollback()
        return existing

    if order.payment_method != PaymentMethod.XENDIT:
        raise ValidationError("Order is not payable online")
    if not order.awaiting_payment:
        raise ValidationError(
            f"Order is {order.status.value} with payment {order.payment_status.value}"
        )

    try:
        profile = await get_buyer_profile(order.user_id)
    except httpx.HTTPError as e:
        # Contact details are optional for Xendit; issue without them.
        logger.warning("Buyer profile lookup failed for %s: %s", order.user_id, e)
        profile = None

    payload = build_invoice_payload(order, profile)
    try:
        invoice = await client.create_invoice(payload)
    except (XenditError, httpx.HTTPError) as e:
        order_number, order_ref = order.order_number, str(order.id)
        await db.rollback()
        logger.error(
            "Invoice creation failed for order %s: %s",
            order_number,
            e,
            extra={
                "extra_fields": {
                    "order_id": order_ref,
                    "status_code": getattr(e, "status_code", None),
                }
            },
        )
        raise PaymentProviderError(
            "Payment provider is unavailable, please try again"
        ) from e

    duration = timedelta(seconds=settings.XENDIT_INVOICE_DURATION_SECONDS)
    deadline = utc_now() + duration
    order.xendit_invoice_id = invoice.id
    order.xendit_invoice_url = invoice.invoice_url
    order.payment_deadline = deadline
    hold_until = max(deadline, invoice.expiry_date or deadline) + timedelta(
        minutes=settings.RESERVATION_INVOICE_MARGIN_MINUTES
    )
    await reservations.extend_for_order(db, order.id, hold_until)

    await upsert(
        db,
        PaymentTransaction,
        conflict_columns=["order_id"],
        values={
            "id": uuid.uuid4(),
            "order_id": order.id,
            "payment_method": PaymentMethod.XENDIT,
            "xendit_invoice_id": invoice.id,
            "amount": order.total,
            "status": PaymentStatus.PENDING,
            "created_at": utc_now(),
            "updated_at": utc_now(),
        },
        update_values={"xendit_invoice_id": invoice.id, "updated_at": utc_now()},
    )
    await db.commit()

    logger.info(
        "Issued invoice %s for order %s (total %s)",
        invoice.id,
        order.order_number,
        order.total,
    )
    return InvoiceResponse(
        invoice_url=invoice.invoice_url,
        invoice_id=invoice.id,
        expiry_date=invoice.expiry_date or deadline,
    )
