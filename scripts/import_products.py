#!/usr/bin/env python3
"""Import card games from a CSV export and seed delivery zones.

This script:
1. Reads products from a CSV file (name, description, price, compare_at_price,
   stock_quantity, and optionally slug and images)
2. Creates or updates each product, matched by slug
3. Creates the default delivery zones when none exist

Usage:
    python scripts/import_products.py
    python scripts/import_products.py --csv data/produits.csv
    python scripts/import_products.py --skip-zones

Environment variables required:
    - DATABASE_URL: PostgreSQL connection string
"""

import argparse
import asyncio
import csv
import logging
import re
import sys
import unicodedata
from pathlib import Path
from typing import Any

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vosc.db.session import async_session_maker
from vosc.models.delivery import DeliveryZone
from vosc.models.product import Product, ProductStatus
from vosc.services.delivery import DEFAULT_ZONES

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

DEFAULT_STOCK = 100


def slugify(name: str) -> str:
    """URL slug for a product name.

    >>> slugify("Pour les Couples : Édition Saint-Valentin")
    'pour-les-couples-edition-saint-valentin'
    """
    decomposed = unicodedata.normalize("NFKD", name)
    ascii_only = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[^a-z0-9]+", "-", ascii_only.lower()).strip("-")


def detect_category(name: str) -> str:
    """Guess the game category from its name."""
    name_lower = name.lower()
    if "valentin" in name_lower or "couple" in name_lower:
        return "couples"
    elif "famille" in name_lower:
        return "famille"
    elif "collègue" in name_lower or "collegue" in name_lower:
        return "collegues"
    elif "ami" in name_lower:
        return "amis"
    else:
        return ""


def parse_int(value: str | None, default: int | None = None) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def row_to_product(row: dict[str, str]) -> dict[str, Any] | None:
    """Turn a CSV row into product fields, or None when the row is unusable."""
    name = (row.get("name") or "").strip()
    price = parse_int(row.get("price"))
    if not name or price is None:
        return None

    category = detect_category(name)
    images = [url.strip() for url in (row.get("images") or "").split("|") if url.strip()]
    return {
        "name": name,
        "slug": (row.get("slug") or "").strip() or slugify(name),
        "description": (row.get("description") or "").strip() or None,
        "price": price,
        "compare_at_price": parse_int(row.get("compare_at_price")),
        "stock_quantity": parse_int(row.get("stock_quantity"), DEFAULT_STOCK),
        "images": images,
        "metadata_": {
            "category": category,
            "players": "2 joueurs" if category == "couples" else "2-8 joueurs",
            "duration": "30-60 minutes",
            "language": "Français",
            "min_age": 12 if category == "famille" else 18,
        },
    }


async def import_products(db: AsyncSession, csv_path: Path) -> int:
    """Create or update products from a CSV file.

    Returns:
        Number of products imported
    """
    with csv_path.open(encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    logger.info(f"Read {len(rows)} rows from {csv_path.name}")

    imported = 0
    for i, row in enumerate(rows, 1):
        fields = row_to_product(row)
        if fields is None:
            logger.warning(f"[{i}/{len(rows)}] Skipping row without name or price")
            continue

        result = await db.execute(select(Product).where(Product.slug == fields["slug"]))
        product = result.scalar_one_or_none()
        if product is None:
            product = Product(status=ProductStatus.ACTIVE)
            db.add(product)

        for key, value in fields.items():
            setattr(product, key, value)

        imported += 1
        logger.info(f"[{i}/{len(rows)}] ✓ {fields['name']} ({fields['price']} FCFA)")

    await db.commit()
    return imported


async def seed_delivery_zones(db: AsyncSession) -> int:
    """Create the default delivery zones if the table is empty."""
    existing = await db.scalar(select(func.count(DeliveryZone.id))) or 0
    if existing:
        logger.info(f"{existing} delivery zones already configured, skipping")
        return 0

    for zone in DEFAULT_ZONES:
        db.add(
            DeliveryZone(
                name=zone.name,
                cities=list(zone.cities),
                cost=zone.cost,
                free_delivery_threshold=zone.free_delivery_threshold,
                is_active=True,
            )
        )
    await db.commit()
    return len(DEFAULT_ZONES)


async def main(csv_path: Path, skip_zones: bool) -> None:
    """Main entry point for the product import."""
    if not csv_path.exists():
        logger.error(f"File not found: {csv_path}")
        return

    async with async_session_maker() as db:
        count = await import_products(db, csv_path)
        logger.info(f"✅ Imported {count} products")

        if not skip_zones:
            zones = await seed_delivery_zones(db)
            logger.info(f"✅ Created {zones} delivery zones")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Import products from CSV and seed delivery zones"
    )
    parser.add_argument(
        "--csv",
        type=Path,
        default=Path(__file__).parent.parent / "produits.csv",
        help="CSV file to import (default: produits.csv at the project root)",
    )
    parser.add_argument(
        "--skip-zones",
        action="store_true",
        help="Do not create the default delivery zones",
    )
    args = parser.parse_args()

    asyncio.run(main(args.csv, args.skip_zones))
