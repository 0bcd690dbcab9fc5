from __future__ import annotations

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select

from rental_api.db.models.pricing import PricingTier
from .base import BaseRepository

WILDCARD_CITY = "*"


class PricingTierRepository(BaseRepository):
    """Repository for location/volume pricing tiers."""

    async def get_tier(self, tier_id: UUID) -> Optional[PricingTier]:
        stmt = select(PricingTier).where(PricingTier.id == tier_id)
        return await self.first(stmt)

    async def find_active_tier(self, *, country: str, city: str, volume: Decimal) -> Optional[PricingTier]:
        """
        First active tier for the exact (country, city) whose inclusive volume
        band contains `volume`. Location matching is case-insensitive.
        """
        stmt = (
            select(PricingTier)
            .where(
                PricingTier.is_active.is_(True),
                func.lower(PricingTier.country) == country.strip().lower(),
                func.lower(PricingTier.city) == city.strip().lower(),
                PricingTier.volume_min <= volume,
                PricingTier.volume_max >= volume,
            )
            .order_by(PricingTier.volume_min.asc())
            .limit(1)
        )
        return await self.first(stmt)

    async def list_overlapping(
        self, *, country: str, city: str, volume_min: Decimal, volume_max: Decimal
    ) -> List[PricingTier]:
        """Active tiers of the same location whose band intersects [volume_min, volume_max]."""
        stmt = select(PricingTier).where(
            PricingTier.is_active.is_(True),
            func.lower(PricingTier.country) == country.strip().lower(),
            func.lower(PricingTier.city) == city.strip().lower(),
            PricingTier.volume_min <= volume_max,
            PricingTier.volume_max >= volume_min,
        )
        return await self.all(stmt)

    async def list_tiers(self, *, country: Optional[str] = None, active_only: bool = False) -> List[PricingTier]:
        stmt = select(PricingTier)
        if country:
            stmt = stmt.where(func.lower(PricingTier.country) == country.strip().lower())
        if active_only:
            stmt = stmt.where(PricingTier.is_active.is_(True))
        stmt = stmt.order_by(PricingTier.country.asc(), PricingTier.city.asc(), PricingTier.volume_min.asc())
        return await self.all(stmt)
