"""Catalog product model."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import String, Text, DateTime, Enum, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from vosc.db.base import Base, JSONType, utcnow


class ProductStatus(str, enum.Enum):
    """Catalog visibility."""

    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


class Product(Base):
    """A card game sold on the storefront. Prices are whole FCFA."""

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    compare_at_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[ProductStatus] = mapped_column(
        Enum(ProductStatus), default=ProductStatus.ACTIVE, index=True
    )
    images: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    @property
    def is_available(self) -> bool:
        return self.status == ProductStatus.ACTIVE and self.stock_quantity > 0
