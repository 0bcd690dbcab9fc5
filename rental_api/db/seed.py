"""
Database seeding utilities for minimal reference data.

Seeds:
- Demo client company (25% PMG margin)
- Pricing tiers for Dubai, Abu Dhabi and a UAE-wide '*' fallback

Usage:
  python -m rental_api.db.run_migrations upgrade head
  python -m rental_api.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_api.db.models.orders import Company
from rental_api.db.models.pricing import PricingTier
from rental_api.db.session import get_async_session

logger = logging.getLogger(__name__)

DEMO_COMPANY = "Demo Events Co"

# (country, city, volume_min, volume_max, base_price)
DEMO_TIERS: List[Tuple[str, str, str, str, str]] = [
    ("United Arab Emirates", "Dubai", "0", "5", "500.00"),
    ("United Arab Emirates", "Dubai", "5.001", "10", "900.00"),
    ("United Arab Emirates", "Dubai", "10.001", "20", "1600.00"),
    ("United Arab Emirates", "Abu Dhabi", "0", "10", "1100.00"),
    ("United Arab Emirates", "*", "0", "20", "1800.00"),
]


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with minimal reference data.

    Idempotent: existing company and tiers (matched by location and band) are left alone.
    """
    async for session in get_async_session():
        await _seed_company(session)
        await _seed_tiers(session)
        await session.commit()


async def _seed_company(session: AsyncSession) -> Company:
    res = await session.execute(select(Company).where(Company.name == DEMO_COMPANY))
    company = res.scalar_one_or_none()
    if company is None:
        company = Company(name=DEMO_COMPANY, pmg_margin_percent=Decimal("25.00"))
        session.add(company)
        logger.info("Seeded company %s", DEMO_COMPANY)
    return company


async def _seed_tiers(session: AsyncSession) -> None:
    for country, city, vmin, vmax, price in DEMO_TIERS:
        res = await session.execute(
            select(PricingTier.id).where(
                PricingTier.country == country,
                PricingTier.city == city,
                PricingTier.volume_min == Decimal(vmin),
            )
        )
        if res.first() is not None:
            continue
        session.add(
            PricingTier(
                country=country,
                city=city,
                volume_min=Decimal(vmin),
                volume_max=Decimal(vmax),
                base_price=Decimal(price),
                is_active=True,
            )
        )
        logger.info("Seeded pricing tier %s/%s [%s, %s]", country, city, vmin, vmax)


if __name__ == "__main__":
    asyncio.run(seed_all())
