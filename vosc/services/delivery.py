"""Delivery zones and delivery fee calculation.

Zones are read from the `delivery_zones` table and cached in process for
ten minutes. When no active zone is configured, the built-in Senegal zones
apply.
"""

import logging
import time
import unicodedata
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vosc.models.delivery import DeliveryZone

logger = logging.getLogger(__name__)

ZONE_CACHE_TTL_SECONDS = 10 * 60

SENEGAL_PAID_CITIES = [
    "thies", "kaolack", "saint-louis", "ziguinchor", "diourbel", "louga",
    "fatick", "kolda", "matam", "kaffrine", "sedhiou", "kedougou",
    "tambacounda", "rufisque", "mbour", "joal", "saly", "somone",
    "tivaouane", "mekhe", "khombole",
]


class UndeliverableCityError(Exception):
    """Raised when no delivery zone covers a city."""

    def __init__(self, city: str) -> None:
        self.city = city
        super().__init__(f"No delivery zone for city: {city}")


@dataclass
class Zone:
    """In-memory view of a delivery zone."""

    name: str
    cities: list[str]
    cost: int
    free_delivery_threshold: int | None = None
    normalized: set[str] = field(init=False)

    def __post_init__(self) -> None:
        self.normalized = {normalize_city(city) for city in self.cities}


@dataclass(frozen=True)
class DeliveryQuote:
    """Delivery fee resolved for a city and order subtotal."""

    city: str
    zone: str
    cost: int

    @property
    def is_free(self) -> bool:
        return self.cost == 0


def normalize_city(city: str) -> str:
    """Lower-case a city name, strip accents and collapse whitespace.

    >>> normalize_city("  Thiès ")
    'thies'
    >>> normalize_city("Saint  Louis")
    'saint louis'
    """
    decomposed = unicodedata.normalize("NFKD", city)
    ascii_only = "".join(c for c in decomposed if not unicodedata.combining(c))
    return " ".join(ascii_only.lower().split())


DEFAULT_ZONES = [
    Zone(name="Dakar", cities=["dakar"], cost=0),
    Zone(
        name="Sénégal",
        cities=SENEGAL_PAID_CITIES,
        cost=2500,
        free_delivery_threshold=50000,
    ),
]


def _city_keys(city: str) -> set[str]:
    normalized = normalize_city(city)
    return {normalized, normalized.replace(" ", "-"), normalized.replace("-", " ")}


_cache: tuple[float, list[Zone]] | None = None


def clear_zone_cache() -> None:
    """Drop cached zones (after an admin edit, or between tests)."""
    global _cache
    _cache = None


async def load_zones(db: AsyncSession) -> list[Zone]:
    """Load active delivery zones, using the in-process cache when fresh."""
    global _cache
    now = time.monotonic()
    if _cache is not None and now - _cache[0] < ZONE_CACHE_TTL_SECONDS:
        return _cache[1]

    result = await db.execute(select(DeliveryZone).where(DeliveryZone.is_active.is_(True)))
    rows = result.scalars().all()

    if rows:
        zones = [
            Zone(
                name=row.name,
                cities=list(row.cities or []),
                cost=row.cost,
                free_delivery_threshold=row.free_delivery_threshold,
            )
            for row in rows
        ]
    else:
        logger.info("No delivery zones configured, using default zones")
        zones = list(DEFAULT_ZONES)

    _cache = (now, zones)
    return zones


def find_zone(zones: list[Zone], city: str) -> Zone | None:
    keys = _city_keys(city)
    for zone in zones:
        if keys & zone.normalized:
            return zone
    return None


def quote_for_zone(zone: Zone, city: str, subtotal: int) -> DeliveryQuote:
    cost = zone.cost
    if zone.free_delivery_threshold is not None and subtotal >= zone.free_delivery_threshold:
        cost = 0
    return DeliveryQuote(city=city, zone=zone.name, cost=cost)


async def get_delivery_quote(db: AsyncSession, city: str, subtotal: int = 0) -> DeliveryQuote:
    """Resolve the delivery fee for a city.

    Raises:
        UndeliverableCityError: No zone covers the city.
    """
    zones = await load_zones(db)
    zone = find_zone(zones, city)
    if zone is None:
        raise UndeliverableCityError(city)
    return quote_for_zone(zone, city, subtotal)


async def list_delivery_cities(db: AsyncSession) -> list[dict]:
    """Cities served, with their zone and base cost."""
    zones = await load_zones(db)
    return [
        {
            "zone": zone.name,
            "cities": sorted(zone.cities),
            "cost": zone.cost,
            "free_delivery_threshold": zone.free_delivery_threshold,
        }
        for zone in zones
    ]
