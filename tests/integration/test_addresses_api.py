"""Integration tests for the saved address book."""

import pytest
from services.store_service.app.main import app
from tests.conftest import make_customer_user, override_auth
from tests.factories import shipping_address


async def _create(client, **overrides):
    response = await client.post("/user-addresses", json=shipping_address(**overrides))
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_first_address_becomes_default(client, db_session):
    first = await _create(client)
    second = await _create(client, city="Dumai", postal_code="28281")

    assert first["is_default"] is True
    assert second["is_default"] is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_new_default_replaces_previous(client, db_session):
    first = await _create(client)
    await _create(client, city="Medan", postal_code="20111", is_default=True)

    listing = (await client.get("/user-addresses")).json()

    defaults = [a for a in listing if a["is_default"]]
    assert len(defaults) == 1
    assert defaults[0]["city"] == "Medan"
    assert listing[0]["is_default"] is True
    assert any(a["id"] == first["id"] and not a["is_default"] for a in listing)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_set_default(client, db_session):
    await _create(client)
    second = await _create(client, city="Batam", postal_code="29711")

    response = await client.post(f"/user-addresses/{second['id']}/set-default")

    assert response.status_code == 200
    listing = (await client.get("/user-addresses")).json()
    assert [a["id"] for a in listing if a["is_default"]] == [second["id"]]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_update_and_delete_address(client, db_session):
    address = await _create(client)

    updated = await client.put(
        f"/user-addresses/{address['id']}", json={"phone": "089999999999"}
    )
    deleted = await client.delete(f"/user-addresses/{address['id']}")
    gone = await client.get(f"/user-addresses/{address['id']}")

    assert updated.json()["phone"] == "089999999999"
    assert deleted.status_code == 204
    assert gone.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_addresses_are_private(client, db_session):
    address = await _create(client)

    with override_auth(app, make_customer_user("customer-2")):
        response = await client.get(f"/user-addresses/{address['id']}")
        listing = await client.get("/user-addresses")

    assert response.status_code == 404
    assert listing.json() == []
