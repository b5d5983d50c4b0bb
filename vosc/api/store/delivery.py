"""Delivery zone endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException, Query

from vosc.api.deps import DbSession
from vosc.core.pricing import format_amount
from vosc.services.delivery import UndeliverableCityError, get_delivery_quote, list_delivery_cities

router = APIRouter(prefix="/api/delivery", tags=["Delivery"])


@router.get("/cities")
async def get_cities(db: DbSession) -> dict[str, Any]:
    """Cities served, grouped by delivery zone."""
    return {"zones": await list_delivery_cities(db)}


@router.get("/quote")
async def get_quote(
    db: DbSession,
    city: str = Query(min_length=1, max_length=100),
    amount: int = Query(default=0, ge=0, description="Order subtotal in FCFA"),
) -> dict[str, Any]:
    """Delivery fee for a city and order subtotal."""
    try:
        quote = await get_delivery_quote(db, city, amount)
    except UndeliverableCityError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {
        "city": quote.city,
        "zone": quote.zone,
        "cost": quote.cost,
        "cost_label": "Offerte" if quote.is_free else format_amount(quote.cost),
        "is_free": quote.is_free,
    }
