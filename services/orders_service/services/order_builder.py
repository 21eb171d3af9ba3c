"""Checkout: turn a cart into a pending order with stock held.

The whole checkout is one transaction. Order row, items, reservations,
history entry and coupon redemption are committed together or not at all.
"""

import uuid
from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.currency import ZERO, to_money
from libs.common.datetime_utils import local_date_stamp, utc_now
from libs.common.logging import get_logger
from libs.db.upsert import upsert
from services.orders_service.errors import NotFound, ValidationError
from services.orders_service.models import (
    ActorRole,
    Order,
    OrderItem,
    OrderNumberSequence,
    OrderStatus,
    PaymentStatus,
    Product,
)
from services.orders_service.schemas import OrderCreate
from services.orders_service.services import notifications, reservations
from services.orders_service.services.coupons import (
    CouponQuote,
    normalize_code,
    redeem_coupon,
    validate_coupon,
)
from services.orders_service.services.order_status import append_history
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Shipping
# ---------------------------------------------------------------------------


class ShippingRatePolicy:
    """Prices delivery for a checkout."""

    def quote(
        self, *, store_id: str, shipping_address_id: str, subtotal: Decimal
    ) -> Decimal:
        raise NotImplementedError


class FlatShippingRate(ShippingRatePolicy):
    """Same fee for every order (``SHIPPING_FLAT_FEE``)."""

    def __init__(self, fee: Optional[Decimal] = None):
        if fee is None:
            fee = get_settings().SHIPPING_FLAT_FEE
        self.fee = to_money(fee)

    def quote(
        self, *, store_id: str, shipping_address_id: str, subtotal: Decimal
    ) -> Decimal:
        return self.fee


# ---------------------------------------------------------------------------
# Order numbers
# ---------------------------------------------------------------------------


async def next_order_number(db: AsyncSession) -> str:
    """Allocate ``PREFIX-YYYYMMDD-NNNN`` from the per-day counter.

    The counter row is advanced with an insert-or-update, so concurrent
    checkouts on the same day always get distinct numbers.
    """
    settings = get_settings()
    date_key = local_date_stamp()
    table = OrderNumberSequence.__table__
    now = utc_now()

    result = await upsert(
        db,
        OrderNumberSequence,
        conflict_columns=["date_key"],
        values={"date_key": date_key, "last_value": 1, "updated_at": now},
        update_values={"last_value": table.c.last_value + 1, "updated_at": now},
        returning=table.c.last_value,
    )
    sequence = result.scalar_one()
    return f"{settings.ORDER_NUMBER_PREFIX}-{date_key}-{str(sequence).zfill(4)}"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_order(
    db: AsyncSession, order_id: uuid.UUID, *, for_update: bool = False
) -> Optional[Order]:
    """Load an order with its items, optionally locking the row."""
    query = (
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update(of=Order)
    result = await db.execute(query)
    return result.scalar_one_or_none()


def _validate_request(payload: OrderCreate) -> None:
    if not payload.items:
        raise ValidationError("Order must contain at least one item")
    for item in payload.items:
        if item.quantity <= 0:
            raise ValidationError("Item quantity must be greater than zero")
    if not payload.shipping_address_id or not payload.shipping_address_id.strip():
        raise ValidationError("Shipping address is required")
    if payload.payment_method is None:
        raise ValidationError("Payment method is required")


async def _load_products(
    db: AsyncSession, payload: OrderCreate
) -> dict[uuid.UUID, Product]:
    product_ids = {item.product_id for item in payload.items}
    result = await db.execute(select(Product).where(Product.id.in_(product_ids)))
    products = {p.id: p for p in result.scalars().all()}

    for item in payload.items:
        product = products.get(item.product_id)
        if product is None or not product.is_active:
            raise NotFound(f"Product {item.product_id} not found")
        if product.store_id != payload.store_id:
            raise ValidationError(f"{product.name} is not sold by this store")
        if to_money(item.unit_price) != to_money(product.price):
            raise ValidationError(
                f"Price of {product.name} has changed, please refresh your cart"
            )
    return products


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


async def create_order(
    db: AsyncSession,
    *,
    user_id: str,
    payload: OrderCreate,
    shipping_policy: Optional[ShippingRatePolicy] = None,
) -> Order:
    """Create a pending order, hold its stock and redeem its coupon.

    Raises:
        ValidationError: malformed cart.
        NotFound: unknown or inactive product.
        InvalidCoupon: coupon rejected or exhausted at redemption.
        InsufficientStock: any line could not be reserved; nothing is kept.
    """
    _validate_request(payload)
    shipping_policy = shipping_policy or FlatShippingRate()

    products = await _load_products(db, payload)

    items = []
    subtotal = ZERO
    for line in payload.items:
        product = products[line.product_id]
        unit_price = to_money(line.unit_price)
        line_total = to_money(unit_price * line.quantity)
        subtotal += line_total
        items.append(
            OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit_price=unit_price,
                line_total=line_total,
            )
        )
    subtotal = to_money(subtotal)

    quote: Optional[CouponQuote] = None
    discount = ZERO
    if payload.coupon_code and payload.coupon_code.strip():
        quote = await validate_coupon(
            db, code=payload.coupon_code, user_id=user_id, subtotal=subtotal
        )
        discount = quote.discount_amount

    shipping = to_money(
        shipping_policy.quote(
            store_id=payload.store_id,
            shipping_address_id=payload.shipping_address_id,
            subtotal=subtotal,
        )
    )
    total = to_money(max(subtotal + shipping - discount, ZERO))

    try:
        order = Order(
            order_number=await next_order_number(db),
            user_id=user_id,
            store_id=payload.store_id,
            subtotal=subtotal,
            shipping=shipping,
            discount=discount,
            total=total,
            coupon_code=normalize_code(payload.coupon_code) if quote else None,
            status=OrderStatus.PENDING,
            payment_method=payload.payment_method,
            payment_status=PaymentStatus.PENDING,
            shipping_address_id=payload.shipping_address_id.strip(),
            notes=payload.notes,
            items=items,
        )
        db.add(order)
        await db.flush()

        for line in payload.items:
            await reservations.reserve(
                db,
                product_id=line.product_id,
                quantity=line.quantity,
                order_id=order.id,
            )

        append_history(
            db,
            order,
            old_status=None,
            new_status=OrderStatus.PENDING,
            actor_role=ActorRole.CUSTOMER,
            changed_by=user_id,
            notes="Order placed",
        )

        if quote:
            await redeem_coupon(db, quote=quote, user_id=user_id, order_id=order.id)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    order = await get_order(db, order.id)
    logger.info(
        "Order %s created for user %s: subtotal=%s shipping=%s discount=%s total=%s",
        order.order_number,
        user_id,
        order.subtotal,
        order.shipping,
        order.discount,
        order.total,
    )

    await notifications.order_placed(order)
    return order
