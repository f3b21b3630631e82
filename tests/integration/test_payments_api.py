"""Integration tests for the Midtrans notification webhook."""

from decimal import Decimal

import pytest
from services.store_service.models import Order, OrderStatus, PaymentStatus, Product
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from tests.conftest import make_notification
from tests.factories import OrderFactory, OrderItemFactory, ProductFactory


async def _seed_order(db):
    product = ProductFactory.create(price=Decimal("50000.00"), stock=3)
    db.add(product)
    order = OrderFactory.create(
        items=[OrderItemFactory.create(product=product, quantity=2)],
        shipping_cost=Decimal("15000.00"),
        user_id="customer-1",
    )
    db.add(order)
    await db.commit()
    return order, product


async def _reload(db, order_id):
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .options(selectinload(Order.items))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_settlement_notification_marks_order_paid(client, db_session):
    """POST /payment/notification: settlement pays and advances the order."""
    order, _ = await _seed_order(db_session)

    response = await client.post(
        "/payment/notification",
        json=make_notification(order.order_number, "115000.00"),
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["applied"] is True
    assert data["status"] == "paid"

    reloaded = await _reload(db_session, order.id)
    assert reloaded.payment_status == PaymentStatus.PAID
    assert reloaded.status == OrderStatus.PROCESSING


@pytest.mark.asyncio
@pytest.mark.integration
async def test_duplicate_notification_is_acknowledged(client, db_session):
    order, _ = await _seed_order(db_session)
    payload = make_notification(order.order_number, "115000.00")

    await client.post("/payment/notification", json=payload)
    response = await client.post("/payment/notification", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["already_processed"] is True
    assert data["applied"] is False
    assert data["message"] == "Payment already processed"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_tampered_notification_is_forbidden(client, db_session):
    order, _ = await _seed_order(db_session)
    order_id = order.id
    payload = make_notification(order.order_number, "115000.00")
    payload["signature_key"] = payload["signature_key"][::-1]

    response = await client.post("/payment/notification", json=payload)

    assert response.status_code == 403
    assert response.json()["code"] == "INVALID_SIGNATURE"
    reloaded = await _reload(db_session, order_id)
    assert reloaded.payment_status == PaymentStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.integration
async def test_expired_payment_cancels_and_restocks(client, db_session):
    order, product = await _seed_order(db_session)

    response = await client.post(
        "/payment/notification",
        json=make_notification(
            order.order_number,
            "115000.00",
            transaction_status="expire",
            status_code="407",
        ),
    )

    assert response.status_code == 200, response.text
    reloaded = await _reload(db_session, order.id)
    assert reloaded.status == OrderStatus.CANCELLED
    assert reloaded.payment_status == PaymentStatus.FAILED
    refreshed = await db_session.get(Product, product.id, populate_existing=True)
    assert refreshed.stock == 5


@pytest.mark.asyncio
@pytest.mark.integration
async def test_amount_mismatch_is_rejected(client, db_session):
    order, _ = await _seed_order(db_session)

    response = await client.post(
        "/payment/notification",
        json=make_notification(order.order_number, "1.00"),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "PAYMENT_AMOUNT_MISMATCH"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_notification_for_unknown_order(client, db_session):
    response = await client.post(
        "/payment/notification",
        json=make_notification("ORD-20260101-0404", "1000.00"),
    )

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_malformed_notification(client, db_session):
    response = await client.post(
        "/payment/notification", json={"transaction_status": "settlement"}
    )

    assert response.status_code == 400
