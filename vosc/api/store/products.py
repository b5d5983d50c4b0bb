"""Product catalog endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException

from vosc.api.deps import DbSession
from vosc.models.product import ProductStatus
from vosc.services.catalog import get_product_by_slug, list_products, serialize_product

router = APIRouter(prefix="/api/products", tags=["Products"])


@router.get("")
async def get_products(db: DbSession) -> dict[str, Any]:
    """List active products."""
    products = await list_products(db)
    return {"products": [serialize_product(p) for p in products]}


@router.get("/{slug}")
async def get_product(slug: str, db: DbSession) -> dict[str, Any]:
    product = await get_product_by_slug(db, slug)
    if product is None or product.status != ProductStatus.ACTIVE:
        raise HTTPException(status_code=404, detail="Produit introuvable")
    return serialize_product(product)
