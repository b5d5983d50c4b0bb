"""Tests for delivery zones and the delivery endpoints."""

import pytest

from vosc.models.delivery import DeliveryZone
from vosc.services.delivery import (
    DEFAULT_ZONES,
    UndeliverableCityError,
    get_delivery_quote,
    list_delivery_cities,
    normalize_city,
)


def test_normalize_city():
    assert normalize_city("  Thiès ") == "thies"
    assert normalize_city("SAINT  LOUIS") == "saint louis"


def test_default_zones_are_normalized():
    dakar, senegal = DEFAULT_ZONES

    assert dakar.normalized == {"dakar"}
    assert {"thies", "saint-louis", "sedhiou"} <= senegal.normalized


async def test_default_zones_when_none_configured(db_session):
    dakar = await get_delivery_quote(db_session, "Dakar", 14000)
    thies = await get_delivery_quote(db_session, "Thiès", 14000)

    assert dakar.cost == 0
    assert dakar.is_free
    assert thies.cost == 2500
    assert thies.zone == "Sénégal"


async def test_free_delivery_threshold(db_session):
    quote = await get_delivery_quote(db_session, "Saint Louis", 50000)

    assert quote.is_free


async def test_undeliverable_city(db_session):
    with pytest.raises(UndeliverableCityError):
        await get_delivery_quote(db_session, "Abidjan", 14000)


async def test_configured_zones_replace_defaults(db_session):
    db_session.add(DeliveryZone(name="Grand Dakar", cities=["Dakar", "Pikine", "Guédiawaye"], cost=1000))
    db_session.add(DeliveryZone(name="Inactive", cities=["Thiès"], cost=3000, is_active=False))
    await db_session.commit()

    quote = await get_delivery_quote(db_session, "guediawaye", 5000)
    assert quote.cost == 1000

    with pytest.raises(UndeliverableCityError):
        await get_delivery_quote(db_session, "Thiès", 5000)

    zones = await list_delivery_cities(db_session)
    assert [zone["zone"] for zone in zones] == ["Grand Dakar"]


# =============================================================================
# Endpoints
# =============================================================================


async def test_delivery_quote_endpoint(client):
    response = await client.get("/api/delivery/quote", params={"city": "Kaolack", "amount": 10000})

    assert response.status_code == 200
    data = response.json()
    assert data["cost"] == 2500
    assert data["cost_label"] == "2 500 FCFA"
    assert data["is_free"] is False


async def test_delivery_quote_unknown_city(client):
    response = await client.get("/api/delivery/quote", params={"city": "Bamako"})

    assert response.status_code == 404


async def test_delivery_cities_endpoint(client):
    response = await client.get("/api/delivery/cities")

    assert response.status_code == 200
    zones = response.json()["zones"]
    assert zones[0]["zone"] == "Dakar"
    assert "kaolack" in zones[1]["cities"]
