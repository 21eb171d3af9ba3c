"""Integration tests for the orders and invoices endpoints."""

import uuid
from decimal import Decimal

import pytest
from conftest import OTHER_BUYER, SERVICE
from tests.factories import STORE_ID, CouponFactory, ProductFactory


def _order_body(*lines, **overrides) -> dict:
    body = {
        "store_id": STORE_ID,
        "items": [
            {"product_id": str(p.id), "quantity": qty, "unit_price": str(p.price)}
            for p, qty in lines
        ],
        "shipping_address_id": "addr-1",
        "payment_method": "xendit",
    }
    body.update(overrides)
    return body


async def _products(db, *specs):
    products = [ProductFactory.create(**spec) for spec in specs]
    db.add_all(products)
    await db.commit()
    return products


# ---------------------------------------------------------------------------
# POST /orders
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_place_order(client, db_session):
    (product,) = await _products(db_session, {"price": Decimal("1500.00")})

    response = await client.post("/orders", json=_order_body((product, 2)))

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["checkout_url"] is None
    order = data["order"]
    assert order["user_id"] == "buyer-1"
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert Decimal(order["subtotal"]) == Decimal("3000")
    assert Decimal(order["total"]) == Decimal("3150")
    assert order["items"][0]["quantity"] == 2


@pytest.mark.asyncio
@pytest.mark.integration
async def test_place_order_accepts_camel_case(client, db_session):
    (product,) = await _products(db_session, {})
    body = {
        "storeId": STORE_ID,
        "items": [
            {"product_id": str(product.id), "quantity": 1, "unit_price": "1000.00"}
        ],
        "shippingAddressId": "addr-9",
        "paymentMethod": "cod",
        "couponCode": None,
    }

    response = await client.post("/orders", json=body)

    assert response.status_code == 201, response.text
    assert response.json()["order"]["payment_method"] == "cod"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_place_order_with_coupon(client, db_session):
    (product,) = await _products(db_session, {"price": Decimal("2500.00")})
    db_session.add(
        CouponFactory.create(
            code="SAVE10",
            max_discount=Decimal("400"),
            min_purchase=Decimal("1000"),
        )
    )
    await db_session.commit()

    response = await client.post(
        "/orders", json=_order_body((product, 2), coupon_code="SAVE10")
    )

    assert response.status_code == 201, response.text
    order = response.json()["order"]
    assert Decimal(order["discount"]) == Decimal("400")
    assert Decimal(order["total"]) == Decimal("4750")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_insufficient_stock_returns_409(client, db_session):
    (product,) = await _products(db_session, {"stock": 1, "name": "Rare Vinyl"})

    response = await client.post("/orders", json=_order_body((product, 2)))

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "insufficient_stock"
    assert "Rare Vinyl" in detail["message"]
    assert detail["available"] == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_empty_cart_returns_validation_error(client):
    response = await client.post("/orders", json=_order_body())

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "validation_error"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invalid_coupon_returns_reason(client, db_session):
    (product,) = await _products(db_session, {})

    response = await client.post(
        "/orders", json=_order_body((product, 1), coupon_code="GHOST")
    )

    assert response.status_code == 400
    assert response.json()["detail"] == {
        "code": "invalid_coupon",
        "message": "Invalid coupon code",
    }


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cannot_order_for_someone_else(client, db_session):
    (product,) = await _products(db_session, {})

    response = await client.post(
        "/orders", json=_order_body((product, 1), user_id="buyer-2")
    )

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_service_role_orders_on_behalf_of_buyer(client, db_session, auth):
    (product,) = await _products(db_session, {})
    auth.user = SERVICE

    missing = await client.post("/orders", json=_order_body((product, 1)))
    assert missing.status_code == 400

    response = await client.post(
        "/orders", json=_order_body((product, 1), user_id="buyer-2")
    )
    assert response.status_code == 201, response.text
    assert response.json()["order"]["user_id"] == "buyer-2"


# ---------------------------------------------------------------------------
# GET /orders/{id}
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_get_order_and_history(client, db_session, auth):
    (product,) = await _products(db_session, {})
    created = await client.post("/orders", json=_order_body((product, 1)))
    order_id = created.json()["order"]["id"]

    response = await client.get(f"/orders/{order_id}")
    assert response.status_code == 200
    assert response.json()["id"] == order_id

    history = await client.get(f"/orders/{order_id}/history")
    assert history.status_code == 200
    entries = history.json()
    assert len(entries) == 1
    assert entries[0]["old_status"] is None
    assert entries[0]["new_status"] == "pending"
    assert entries[0]["changed_by_role"] == "customer"

    auth.user = OTHER_BUYER
    hidden = await client.get(f"/orders/{order_id}")
    assert hidden.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_get_missing_order(client):
    response = await client.get(f"/orders/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "not_found"


# ---------------------------------------------------------------------------
# POST /payments/invoices
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invoice_endpoint_is_idempotent(client, db_session, xendit):
    (product,) = await _products(db_session, {})
    created = await client.post("/orders", json=_order_body((product, 1)))
    order_id = created.json()["order"]["id"]

    first = await client.post("/payments/invoices", json={"order_id": order_id})
    second = await client.post("/payments/invoices", json={"orderId": order_id})

    assert first.status_code == 200, first.text
    assert second.status_code == 200
    assert first.json()["invoice_url"] == second.json()["invoice_url"]
    assert first.json()["invoice_id"] == second.json()["invoice_id"]
    assert first.json()["expiry_date"] is not None
    assert len(xendit.calls) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invoice_provider_failure_returns_502(client, db_session, xendit):
    (product,) = await _products(db_session, {})
    created = await client.post("/orders", json=_order_body((product, 1)))
    order_id = created.json()["order"]["id"]
    xendit.fail_with()

    response = await client.post("/payments/invoices", json={"order_id": order_id})

    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "payment_provider_error"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invoice_for_cod_order_rejected(client, db_session, xendit):
    (product,) = await _products(db_session, {})
    created = await client.post(
        "/orders", json=_order_body((product, 1), payment_method="cod")
    )
    order_id = created.json()["order"]["id"]

    response = await client.post("/payments/invoices", json={"order_id": order_id})

    assert response.status_code == 400
    assert xendit.calls == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invoice_for_other_buyers_order_is_hidden(client, db_session, auth):
    (product,) = await _products(db_session, {})
    created = await client.post("/orders", json=_order_body((product, 1)))
    order_id = created.json()["order"]["id"]
    auth.user = OTHER_BUYER

    response = await client.post("/payments/invoices", json={"order_id": order_id})

    assert response.status_code == 404
