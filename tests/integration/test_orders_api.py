"""Integration tests for checkout, order history, payment and cancellation."""

import json
import re
from decimal import Decimal

import pytest
from services.store_service.app.main import app
from services.store_service.models import OrderStatus, PaymentStatus, Product
from tests.conftest import SNAP_TOKEN, make_admin_user, make_customer_user, override_auth
from tests.factories import (
    OrderFactory,
    OrderItemFactory,
    ProductFactory,
    UserAddressFactory,
    shipping_address,
)

BATAM = shipping_address(city="Batam", state="Kepulauan Riau", postal_code="29711")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _seed_product(db, **overrides):
    product = ProductFactory.create(**overrides)
    db.add(product)
    await db.commit()
    return product


async def _seed_order(db, user_id="customer-1", **overrides):
    product = await _seed_product(db, stock=3)
    order = OrderFactory.create(
        items=[OrderItemFactory.create(product=product, quantity=2)],
        user_id=user_id,
        **overrides,
    )
    db.add(order)
    await db.commit()
    return order, product


async def _checkout(client, product, quantity=2, **payload):
    response = await client.post(
        "/cart/items", json={"product_id": str(product.id), "quantity": quantity}
    )
    assert response.status_code == 201, response.text
    body = {"shipping_address": BATAM}
    body.update(payload)
    return await client.post("/orders", json=body)


async def _stock(db, product_id):
    product = await db.get(Product, product_id, populate_existing=True)
    return product.stock


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_creates_pending_order(client, db_session):
    """POST /orders: 2 x 50,000 to Batam is 115,000 and reserves stock."""
    product = await _seed_product(db_session, price=Decimal("50000.00"), stock=5)

    response = await _checkout(client, product, notes="Tolong dibungkus rapi")

    assert response.status_code == 201, response.text
    data = response.json()
    assert re.fullmatch(r"ORD-\d{8}-0001", data["order_number"])
    assert data["status"] == "pending"
    assert data["payment_status"] == "pending"
    assert Decimal(str(data["subtotal"])) == Decimal("100000")
    assert Decimal(str(data["shipping_cost"])) == Decimal("15000")
    assert Decimal(str(data["total_amount"])) == Decimal("115000")
    assert data["shipping_address"]["city"] == "Batam"
    assert data["notes"] == "Tolong dibungkus rapi"
    assert data["items"][0]["product_sku"] == product.sku

    assert await _stock(db_session, product.id) == 3
    cart = (await client.get("/cart")).json()
    assert cart["items"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_with_saved_address(client, db_session, customer):
    product = await _seed_product(db_session)
    address = UserAddressFactory.create(
        user_id=customer.user_id, city="Jakarta", postal_code="10110"
    )
    db_session.add(address)
    await db_session.commit()

    response = await _checkout(
        client, product, quantity=1, shipping_address=None, address_id=str(address.id)
    )

    assert response.status_code == 201, response.text
    assert response.json()["shipping_address"]["postal_code"] == "10110"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_with_someone_elses_address(client, db_session):
    product = await _seed_product(db_session)
    address = UserAddressFactory.create(user_id="customer-2")
    db_session.add(address)
    await db_session.commit()

    response = await _checkout(
        client, product, quantity=1, shipping_address=None, address_id=str(address.id)
    )

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_requires_an_address(client, db_session):
    response = await client.post("/orders", json={"courier_service": "regular"})

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_empty_cart(client, db_session):
    response = await client.post("/orders", json={"shipping_address": BATAM})

    assert response.status_code == 400
    assert response.json()["code"] == "EMPTY_CART"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_when_stock_ran_out(client, db_session):
    """Stock sold elsewhere after add-to-cart fails checkout and keeps the cart."""
    product = await _seed_product(db_session, stock=2)
    product_id = product.id
    await client.post(
        "/cart/items", json={"product_id": str(product.id), "quantity": 2}
    )
    product.stock = 1
    await db_session.commit()

    response = await client.post("/orders", json={"shipping_address": BATAM})

    assert response.status_code == 409
    assert response.json()["code"] == "INSUFFICIENT_STOCK"
    assert await _stock(db_session, product_id) == 1
    assert len((await client.get("/cart")).json()["items"]) == 1


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_list_my_orders_only(client, db_session):
    mine, _ = await _seed_order(db_session)
    await _seed_order(db_session, user_id="customer-2")

    response = await client.get("/orders")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["order_number"] == mine.order_number


@pytest.mark.asyncio
@pytest.mark.integration
async def test_list_orders_filtered_by_status(client, db_session):
    await _seed_order(db_session)
    await _seed_order(db_session, status=OrderStatus.CANCELLED)

    response = await client.get("/orders", params={"status": "cancelled"})

    assert response.json()["total"] == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_foreign_order_is_not_found(client, db_session):
    order, _ = await _seed_order(db_session, user_id="customer-2")

    response = await client.get(f"/orders/{order.order_number}")

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_can_read_any_order(client, db_session):
    order, _ = await _seed_order(db_session, user_id="customer-2")

    with override_auth(app, make_admin_user()):
        response = await client.get(f"/orders/{order.order_number}")

    assert response.status_code == 200


@pytest.mark.asyncio
@pytest.mark.integration
async def test_order_status_poll(client, db_session):
    order, _ = await _seed_order(db_session)

    response = await client.get(f"/orders/{order.order_number}/status")

    assert response.json() == {
        "order_number": order.order_number,
        "status": "pending",
        "payment_status": "pending",
    }


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_order_number(client, db_session):
    response = await client.get("/orders/ORD-20260101-9999")

    assert response.status_code == 404
    assert response.json()["code"] == "ORDER_NOT_FOUND"


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_create_payment_returns_snap_token(client, db_session, snap_recorder):
    order, _ = await _seed_order(db_session)

    response = await client.post(f"/orders/{order.order_number}/payment")

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["snap_token"] == SNAP_TOKEN
    assert data["order_number"] == order.order_number

    body = json.loads(snap_recorder.requests[0].content)
    assert body["transaction_details"]["gross_amount"] == int(order.total_amount)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cannot_pay_twice(client, db_session, snap_recorder):
    order, _ = await _seed_order(
        db_session, status=OrderStatus.PROCESSING, payment_status=PaymentStatus.PAID
    )

    response = await client.post(f"/orders/{order.order_number}/payment")

    assert response.status_code == 400
    assert response.json()["code"] == "PAYMENT_NOT_ALLOWED"
    assert snap_recorder.requests == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cannot_pay_cancelled_order(client, db_session):
    order, _ = await _seed_order(
        db_session, status=OrderStatus.CANCELLED, payment_status=PaymentStatus.FAILED
    )

    response = await client.post(f"/orders/{order.order_number}/payment")

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gateway_rejection_is_a_bad_gateway(client, db_session, snap_recorder):
    order, _ = await _seed_order(db_session)
    snap_recorder.status_code = 401
    snap_recorder.body = {"error_messages": ["Access denied"]}

    response = await client.post(f"/orders/{order.order_number}/payment")

    assert response.status_code == 502
    assert "Access denied" in response.json()["detail"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cannot_pay_foreign_order(client, db_session):
    order, _ = await _seed_order(db_session, user_id="customer-2")

    response = await client.post(f"/orders/{order.order_number}/payment")

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cancel_pending_order_restores_stock(client, db_session):
    product = await _seed_product(db_session, stock=5)
    order = (await _checkout(client, product)).json()
    assert await _stock(db_session, product.id) == 3

    response = await client.post(f"/orders/{order['order_number']}/cancel")

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "cancelled"
    assert await _stock(db_session, product.id) == 5


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cancel_paid_order_is_rejected(client, db_session):
    order, product = await _seed_order(
        db_session, status=OrderStatus.PROCESSING, payment_status=PaymentStatus.PAID
    )
    product_id = product.id

    response = await client.post(f"/orders/{order.order_number}/cancel")

    assert response.status_code == 409
    assert response.json()["code"] == "CANNOT_CANCEL_PAID_ORDER"
    assert await _stock(db_session, product_id) == 3


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cancel_foreign_order(client, db_session):
    order, _ = await _seed_order(db_session, user_id="customer-2")

    with override_auth(app, make_customer_user("customer-3")):
        response = await client.post(f"/orders/{order.order_number}/cancel")

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Staff status changes and tracking
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_customer_cannot_change_status(client, db_session):
    order, _ = await _seed_order(db_session)

    response = await client.patch(
        f"/orders/{order.order_number}/status", json={"status": "processing"}
    )

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_staff_status_change_and_invalid_transition(client, db_session):
    order, _ = await _seed_order(db_session)

    with override_auth(app, make_admin_user()):
        processing = await client.patch(
            f"/orders/{order.order_number}/status", json={"status": "processing"}
        )
        invalid = await client.patch(
            f"/orders/{order.order_number}/status", json={"status": "pending"}
        )

    assert processing.status_code == 200, processing.text
    assert processing.json()["payment_status"] == "paid"
    assert invalid.status_code == 409
    assert invalid.json()["code"] == "INVALID_TRANSITION"
    assert invalid.json()["from"] == "processing"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_tracking_update_and_read(client, db_session):
    order, _ = await _seed_order(
        db_session, status=OrderStatus.PROCESSING, payment_status=PaymentStatus.PAID
    )

    with override_auth(app, make_admin_user(name="Gudang Pekanbaru")):
        update = await client.put(
            f"/orders/{order.order_number}/tracking",
            json={
                "tracking_status": "in_transit",
                "location": "Pekanbaru",
                "tracking_number": "JNE0001",
            },
        )
    assert update.status_code == 200, update.text

    response = await client.get(f"/orders/{order.order_number}/tracking")

    data = response.json()
    assert data["status"] == "shipped"
    assert data["tracking_number"] == "JNE0001"
    assert data["tracking_progress"] == 60
    assert data["latest_status"]["status"] == "in_transit"
    assert data["latest_status"]["updated_by"] == "Gudang Pekanbaru"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_tracking_on_unpaid_order_is_rejected(client, db_session):
    order, _ = await _seed_order(db_session)

    with override_auth(app, make_admin_user()):
        response = await client.put(
            f"/orders/{order.order_number}/tracking",
            json={"tracking_status": "packed"},
        )

    assert response.status_code == 409
    assert response.json()["code"] == "TRACKING_NOT_ALLOWED"
