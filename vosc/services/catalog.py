"""Product catalog queries and recommendations."""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vosc.core.pricing import format_amount
from vosc.models.product import Product, ProductStatus
from vosc.services.orders import as_uuid

logger = logging.getLogger(__name__)

RECOMMENDATION_LIMIT = 3


def serialize_product(product: Product) -> dict[str, Any]:
    return {
        "id": str(product.id),
        "name": product.name,
        "slug": product.slug,
        "description": product.description,
        "price": product.price,
        "price_label": format_amount(product.price),
        "compare_at_price": product.compare_at_price,
        "stock_quantity": product.stock_quantity,
        "in_stock": product.stock_quantity > 0,
        "images": product.images or [],
    }


async def list_products(db: AsyncSession) -> list[Product]:
    """Active products, newest first."""
    result = await db.execute(
        select(Product)
        .where(Product.status == ProductStatus.ACTIVE)
        .order_by(Product.created_at.desc())
    )
    return list(result.scalars().all())


async def get_product(db: AsyncSession, product_id: Any) -> Product | None:
    parsed = as_uuid(product_id)
    return await db.get(Product, parsed) if parsed else None


async def get_product_by_slug(db: AsyncSession, slug: str) -> Product | None:
    result = await db.execute(select(Product).where(Product.slug == slug))
    return result.scalar_one_or_none()


async def find_product(db: AsyncSession, identifier: str) -> Product | None:
    """Look a product up by id, falling back to its slug."""
    return await get_product(db, identifier) or await get_product_by_slug(db, identifier)


async def recommend_products(
    db: AsyncSession,
    exclude_ids: list[str],
    limit: int = RECOMMENDATION_LIMIT,
) -> list[Product]:
    """Other active, in-stock products to suggest during checkout."""
    excluded = [parsed for value in exclude_ids if (parsed := as_uuid(value)) is not None]
    query = select(Product).where(
        Product.status == ProductStatus.ACTIVE,
        Product.stock_quantity > 0,
    )
    if excluded:
        query = query.where(Product.id.not_in(excluded))
    result = await db.execute(query.order_by(Product.created_at.desc()).limit(limit))
    return list(result.scalars().all())
