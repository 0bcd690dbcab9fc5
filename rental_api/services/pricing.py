from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rental_api.core.errors import GuardNotSatisfied, InvalidTransition, NotFound, ValidationError
from rental_api.core.settings import AppSettings, get_app_settings
from rental_api.db.base import utcnow
from rental_api.db.models.orders import Order
from rental_api.db.models.pricing import PricingTier
from rental_api.domain import pricing as money
from rental_api.domain.enums import NotificationType, OrderStatus
from rental_api.repositories.orders import OrderRepository
from rental_api.repositories.pricing import WILDCARD_CITY, PricingTierRepository
from rental_api.services.base import BaseService
from rental_api.services.lifecycle import Dispatcher, OrderLifecycleService

logger = logging.getLogger(__name__)


class PricingService(BaseService):
    """
    Tier lookup, estimates and the two-step (A2 then PMG) pricing approval.

    Approval steps write the pricing snapshot and the status change in the
    same transaction through OrderLifecycleService.apply().
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: Optional[Dispatcher] = None,
        settings: Optional[AppSettings] = None,
    ) -> None:
        super().__init__(session)
        self.settings = settings or get_app_settings()
        self.tiers = PricingTierRepository(session)
        self.orders = OrderRepository(session)
        self.lifecycle = OrderLifecycleService(session, dispatcher)

    # PUBLIC_INTERFACE
    async def find_matching_tier(self, country: str, city: str, volume: Any) -> Optional[PricingTier]:
        """
        Active tier for a location and volume, falling back to the country-wide
        '*' tier. None when nothing matches.
        """
        vol = money.to_decimal(volume, "volume")
        if vol < 0:
            raise ValidationError("volume must not be negative", details={"field": "volume"})
        if not country or not country.strip():
            raise ValidationError("country is required", details={"field": "country"})

        tier = None
        if city and city.strip():
            tier = await self.tiers.find_active_tier(country=country, city=city, volume=vol)
        if tier is None:
            tier = await self.tiers.find_active_tier(country=country, city=WILDCARD_CITY, volume=vol)
        return tier

    async def _margin_for(self, order: Order) -> Decimal:
        company = await self.orders.get_company(order.company_id)
        if company is not None and company.pmg_margin_percent is not None:
            return Decimal(company.pmg_margin_percent)
        return Decimal(self.settings.DEFAULT_MARGIN_PERCENT)

    async def _tier_for(self, order: Order) -> Optional[PricingTier]:
        if not order.venue_country:
            return None
        return await self.find_matching_tier(order.venue_country, order.venue_city or "", order.calculated_volume or 0)

    # PUBLIC_INTERFACE
    async def estimate(self, order_id: UUID) -> money.PricingEstimate:
        """Side-effect free estimate from the matched tier and the company margin."""
        order = await self.lifecycle.get_order(order_id)
        margin = await self._margin_for(order)
        tier = await self._tier_for(order)
        if tier is None:
            return money.estimate(None, margin)
        return money.estimate(Decimal(tier.base_price), margin, tier.id)

    def _require_status(self, order: Order, expected: OrderStatus, target: OrderStatus) -> None:
        if order.status is not expected:
            raise InvalidTransition(
                order.status,
                target,
                message=f"Order must be in {expected.value} status (current: {order.status.value})",
            )

    # PUBLIC_INTERFACE
    async def a2_adjust_pricing(self, order_id: UUID, actor_id: UUID, adjusted_price: Any, reason: Optional[str]) -> Order:
        """A2 proposes a non-standard price; the order waits for PMG approval."""
        price = money.positive_amount(adjusted_price, "adjusted_price")
        cleaned_reason = (reason or "").strip()
        if not cleaned_reason:
            raise ValidationError("reason is required", details={"field": "reason"})

        async with self.unit_of_work():
            order = await self.lifecycle.lock_order(order_id)
            self._require_status(order, OrderStatus.PRICING_REVIEW, OrderStatus.PENDING_APPROVAL)
            tier = await self._tier_for(order)
            if tier is not None:
                order.pricing_tier_id = tier.id
                order.a2_base_price = Decimal(tier.base_price)
            order.a2_adjusted_price = price
            order.a2_adjustment_reason = cleaned_reason
            order.a2_adjusted_at = utcnow()
            order.a2_adjusted_by = actor_id
            notification = await self.lifecycle.apply(
                order, OrderStatus.PENDING_APPROVAL, actor_id, f"A2 adjusted pricing: {cleaned_reason}"
            )
        logger.info("Order %s: A2 adjusted price to %s", order.order_code, price)
        self.lifecycle.notify(notification, order.id)
        return order

    # PUBLIC_INTERFACE
    async def a2_approve_standard_pricing(self, order_id: UUID, actor_id: UUID, notes: Optional[str] = None) -> Order:
        """A2 accepts the tier price; the company margin is applied and the quote goes out."""
        async with self.unit_of_work():
            order = await self.lifecycle.lock_order(order_id)
            self._require_status(order, OrderStatus.PRICING_REVIEW, OrderStatus.QUOTED)
            tier = await self._tier_for(order)
            if tier is None:
                raise GuardNotSatisfied(
                    "pricing_tier_missing",
                    "No pricing tier matches this order's venue and volume",
                    venue_country=order.venue_country,
                    venue_city=order.venue_city,
                    volume=str(order.calculated_volume),
                )
            base = money.quantize(Decimal(tier.base_price))
            pct = money.margin_percent(await self._margin_for(order))
            margin_amount, total = money.apply_margin(base, pct)

            order.pricing_tier_id = tier.id
            order.a2_base_price = base
            order.pmg_margin_percent = pct
            order.pmg_margin_amount = margin_amount
            order.final_total_price = total
            order.a2_adjusted_at = utcnow()
            order.a2_adjusted_by = actor_id
            notification = await self.lifecycle.apply(
                order, OrderStatus.QUOTED, actor_id, notes or "A2 approved standard pricing"
            )
        logger.info("Order %s: standard pricing approved, total %s", order.order_code, total)
        self.lifecycle.notify(notification, order.id)
        self.lifecycle.notify(NotificationType.A2_APPROVED_STANDARD, order.id)
        return order

    # PUBLIC_INTERFACE
    async def pmg_approve_pricing(
        self,
        order_id: UUID,
        actor_id: UUID,
        a2_base_price: Any,
        margin_percent: Any,
        notes: Optional[str] = None,
    ) -> Order:
        """
        PMG sets the base price and margin; final total = base + base * margin / 100.

        Raises:
            ValidationError: base <= 0, missing margin, margin outside 0..100, or a
                total too large to store.
            InvalidTransition: order is not PENDING_APPROVAL.
        """
        base = money.positive_amount(a2_base_price, "a2_base_price")
        pct = money.margin_percent(margin_percent)
        margin_amount, total = money.apply_margin(base, pct)
        money.storable_amount(total, "final_total_price")

        async with self.unit_of_work():
            order = await self.lifecycle.lock_order(order_id)
            self._require_status(order, OrderStatus.PENDING_APPROVAL, OrderStatus.QUOTED)
            order.a2_base_price = base
            order.pmg_margin_percent = pct
            order.pmg_margin_amount = margin_amount
            order.final_total_price = total
            order.pmg_reviewed_at = utcnow()
            order.pmg_reviewed_by = actor_id
            order.pmg_review_notes = notes
            notification = await self.lifecycle.apply(order, OrderStatus.QUOTED, actor_id, notes or "PMG approved pricing")
        logger.info("Order %s: PMG approved %s + %s%% = %s", order.order_code, base, pct, total)
        self.lifecycle.notify(notification, order.id)
        return order

    # PUBLIC_INTERFACE
    async def create_tier(
        self, country: str, city: str, volume_min: Any, volume_max: Any, base_price: Any, is_active: bool = True
    ) -> PricingTier:
        """Create a tier; bands of active tiers for the same location must not overlap."""
        country = (country or "").strip()
        city = (city or "").strip()
        if not country or not city:
            raise ValidationError("country and city are required", details={"field": "country" if not country else "city"})
        vmin = money.to_decimal(volume_min, "volume_min")
        vmax = money.to_decimal(volume_max, "volume_max")
        if vmin < 0:
            raise ValidationError("volume_min must not be negative", details={"field": "volume_min"})
        if vmax <= vmin:
            raise ValidationError("volume_max must be greater than volume_min", details={"field": "volume_max"})
        price = money.positive_amount(base_price, "base_price")

        if is_active:
            overlapping = await self.tiers.list_overlapping(country=country, city=city, volume_min=vmin, volume_max=vmax)
            if overlapping:
                raise ValidationError(
                    "Volume range overlaps an existing tier for this location",
                    details={"overlapping_tier_ids": [str(t.id) for t in overlapping]},
                )

        tier = PricingTier(
            country=country, city=city, volume_min=vmin, volume_max=vmax, base_price=price, is_active=is_active
        )
        async with self.unit_of_work():
            await self.tiers.add(tier)
        logger.info("Created pricing tier %s/%s [%s, %s] = %s", country, city, vmin, vmax, price)
        return tier

    # PUBLIC_INTERFACE
    async def set_tier_active(self, tier_id: UUID, is_active: bool) -> PricingTier:
        """Activate or deactivate a tier. Reactivation re-checks band overlap."""
        async with self.unit_of_work():
            tier = await self.tiers.get_tier(tier_id)
            if tier is None:
                raise NotFound("PricingTier", tier_id)
            if is_active and not tier.is_active:
                overlapping = await self.tiers.list_overlapping(
                    country=tier.country, city=tier.city, volume_min=tier.volume_min, volume_max=tier.volume_max
                )
                if overlapping:
                    raise ValidationError(
                        "Volume range overlaps an existing tier for this location",
                        details={"overlapping_tier_ids": [str(t.id) for t in overlapping]},
                    )
            tier.is_active = is_active
        return tier
