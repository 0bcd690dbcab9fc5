from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column

from rental_api.db.base import Base, TimestampMixin, UUIDPkMixin


class PricingTier(UUIDPkMixin, TimestampMixin, Base):
    """
    Base price for a location and an inclusive volume band.

    city == "*" covers every city of the country that has no tier of its own.
    """
    __tablename__ = "pricing_tiers"
    __table_args__ = (
        CheckConstraint("volume_min >= 0", name="volume_min_non_negative"),
        CheckConstraint("volume_max > volume_min", name="volume_range"),
        CheckConstraint("base_price > 0", name="base_price_positive"),
        Index("ix_pricing_tiers_location", "country", "city"),
    )

    country: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(Text, nullable=False)
    volume_min: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    volume_max: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
