"""Delivery zone model."""

import uuid
from datetime import datetime

from sqlalchemy import String, DateTime, Integer, Boolean, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from vosc.db.base import Base, JSONType, utcnow


class DeliveryZone(Base):
    """Group of cities sharing a delivery fee.

    A cost of 0 means free delivery. When `free_delivery_threshold` is set,
    orders whose subtotal reaches it are delivered for free.
    """

    __tablename__ = "delivery_zones"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    cities: Mapped[list] = mapped_column(JSONType, nullable=False)
    cost: Mapped[int] = mapped_column(Integer, default=0)
    free_delivery_threshold: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
