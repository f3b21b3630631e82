"""Integration tests for the shipping endpoints."""

from decimal import Decimal

import pytest
from tests.factories import ProductFactory


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "store"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_supported_cities_and_origin(client):
    cities = await client.get("/shipping/cities")
    origin = await client.get("/shipping/origin")

    assert "pekanbaru" in cities.json()
    assert len(cities.json()) == 20
    assert origin.json()["city"] == "Pekanbaru"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_courier_services_for_destination(client):
    major = await client.get(
        "/shipping/courier-services", params={"destination": "Surabaya"}
    )
    minor = await client.get(
        "/shipping/courier-services", params={"destination": "Rengat"}
    )

    assert [s["code"] for s in major.json()] == ["regular", "express", "same_day"]
    assert [s["code"] for s in minor.json()] == ["regular", "express"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_calculate_shipping(client):
    """POST /shipping/calculate: priced from the rate table."""
    response = await client.post(
        "/shipping/calculate",
        json={"destination": "Jakarta", "weight": 3, "courier_service": "express"},
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert Decimal(str(data["cost"])) == Decimal("50000")
    assert data["weight_category"] == "medium"
    assert data["used_fallback"] is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_calculate_shipping_unknown_destination(client):
    response = await client.post(
        "/shipping/calculate", json={"destination": "99999", "weight": 1}
    )

    data = response.json()
    assert data["used_fallback"] is True
    assert Decimal(str(data["cost"])) == Decimal("15000")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_calculate_shipping_validates_weight(client):
    response = await client.post(
        "/shipping/calculate", json={"destination": "Jakarta", "weight": 0}
    )

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_calculate_cart_shipping(client, db_session):
    """POST /shipping/calculate-cart: weight comes from the cart contents."""
    product = ProductFactory.create(name="Helm Sepeda", weight=None, stock=5)
    db_session.add(product)
    await db_session.commit()
    await client.post(
        "/cart/items", json={"product_id": str(product.id), "quantity": 2}
    )

    response = await client.post(
        "/shipping/calculate-cart", json={"destination": "Pekanbaru"}
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["weight"] == 2.4
    assert data["weight_category"] == "medium"
    assert Decimal(str(data["cost"])) == Decimal("12000")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_calculate_cart_shipping_with_empty_cart(client):
    response = await client.post(
        "/shipping/calculate-cart", json={"destination": "Pekanbaru"}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "EMPTY_CART"
