from decimal import Decimal
from uuid import uuid4

import pytest

from rental_api.core.errors import GuardNotSatisfied, InvalidTransition, NotFound, ValidationError
from rental_api.domain.enums import FinancialStatus, NotificationType, OrderStatus
from rental_api.services.pricing import PricingService

S = OrderStatus
UAE = "United Arab Emirates"


@pytest.fixture
def pricing(session, dispatcher, settings):
    return PricingService(session, dispatcher, settings)


@pytest.fixture
async def dubai_tiers(pricing):
    small = await pricing.create_tier(UAE, "Dubai", "0", "5", "500")
    medium = await pricing.create_tier(UAE, "Dubai", "5.001", "10", "900")
    fallback = await pricing.create_tier(UAE, "*", "0", "20", "1800")
    return small, medium, fallback


async def test_city_tier_matches_inclusive_band(pricing, dubai_tiers):
    small, medium, _ = dubai_tiers
    assert (await pricing.find_matching_tier(UAE, "Dubai", 5)).id == small.id
    assert (await pricing.find_matching_tier(UAE, "dubai", "0")).id == small.id
    assert (await pricing.find_matching_tier(UAE, "Dubai", "7.5")).id == medium.id


async def test_wildcard_city_is_the_fallback(pricing, dubai_tiers):
    _, _, fallback = dubai_tiers
    assert (await pricing.find_matching_tier(UAE, "Sharjah", 3)).id == fallback.id
    # Dubai has no band above 10, so the country-wide tier applies.
    assert (await pricing.find_matching_tier(UAE, "Dubai", 15)).id == fallback.id
    assert await pricing.find_matching_tier(UAE, "Sharjah", 25) is None
    assert await pricing.find_matching_tier("Oman", "Muscat", 1) is None


async def test_inactive_tiers_are_ignored(pricing, dubai_tiers):
    small, _, fallback = dubai_tiers
    await pricing.set_tier_active(small.id, False)
    assert (await pricing.find_matching_tier(UAE, "Dubai", 2)).id == fallback.id


async def test_match_validates_input(pricing):
    with pytest.raises(ValidationError):
        await pricing.find_matching_tier(UAE, "Dubai", -1)
    with pytest.raises(ValidationError):
        await pricing.find_matching_tier("  ", "Dubai", 1)


async def test_create_tier_rejects_overlap_and_bad_ranges(pricing, dubai_tiers):
    with pytest.raises(ValidationError) as exc:
        await pricing.create_tier(UAE, "Dubai", "4", "6", "700")
    assert len(exc.value.details["overlapping_tier_ids"]) == 2
    with pytest.raises(ValidationError):
        await pricing.create_tier(UAE, "Abu Dhabi", "10", "10", "700")
    with pytest.raises(ValidationError):
        await pricing.create_tier(UAE, "Abu Dhabi", "0", "10", "0")
    # Inactive tiers may overlap; reactivation re-checks.
    shadow = await pricing.create_tier(UAE, "Dubai", "4", "6", "700", is_active=False)
    with pytest.raises(ValidationError):
        await pricing.set_tier_active(shadow.id, True)
    with pytest.raises(NotFound):
        await pricing.set_tier_active(uuid4(), True)


async def test_estimate_uses_company_margin(pricing, dubai_tiers, make_company, make_order):
    company = await make_company(pmg_margin_percent=Decimal("30"))
    order = await make_order(
        status=S.SUBMITTED,
        company=company,
        venue_country=UAE,
        venue_city="Dubai",
        calculated_volume=Decimal("3"),
    )
    est = await pricing.estimate(order.id)
    assert est.tier_found
    assert est.base_price == Decimal("500.00")
    assert est.margin_amount == Decimal("150.00")
    assert est.final_total_price == Decimal("650.00")

    unpriced = await make_order(status=S.SUBMITTED, venue_country="Oman", calculated_volume=Decimal("3"))
    est = await pricing.estimate(unpriced.id)
    assert not est.tier_found
    assert est.final_total_price is None


async def test_a2_adjust_then_pmg_approve(pricing, make_order, actor_id, dispatcher):
    order = await make_order(status=S.PRICING_REVIEW)
    order_id = order.id

    order = await pricing.a2_adjust_pricing(order_id, actor_id, 1000, "market rate")
    assert order.status is S.PENDING_APPROVAL
    assert order.a2_adjusted_price == Decimal("1000.00")
    assert order.a2_adjustment_reason == "market rate"
    assert order.a2_adjusted_by == actor_id

    order = await pricing.pmg_approve_pricing(order_id, actor_id, 1000, 25)
    assert order.status is S.QUOTED
    assert order.final_total_price == Decimal("1250.00")
    assert order.pmg_margin_amount == Decimal("250.00")
    assert order.pmg_reviewed_by == actor_id
    assert order.quote_sent_at is not None
    assert order.financial_status is FinancialStatus.QUOTE_SENT
    assert dispatcher.types() == [NotificationType.A2_ADJUSTED_PRICING, NotificationType.QUOTE_SENT]

    history = await pricing.lifecycle.get_status_history(order_id)
    assert [h.status for h in history] == [S.PENDING_APPROVAL, S.QUOTED]


async def test_pmg_approval_only_from_pending_approval(pricing, make_order, actor_id):
    order = await make_order(status=S.PRICING_REVIEW)
    order_id = order.id
    with pytest.raises(InvalidTransition):
        await pricing.pmg_approve_pricing(order_id, actor_id, 1000, 25)
    assert (await pricing.lifecycle.get_order(order_id)).final_total_price is None


@pytest.mark.parametrize("base,margin", [(0, 25), (-5, 25), (1000, None), (1000, 150), (1000, -1)])
async def test_pmg_approval_validates_amounts(pricing, make_order, actor_id, base, margin):
    order = await make_order(status=S.PENDING_APPROVAL)
    with pytest.raises(ValidationError):
        await pricing.pmg_approve_pricing(order.id, actor_id, base, margin)


async def test_pmg_approval_rejects_total_too_large_to_store(pricing, make_order, actor_id):
    order = await make_order(status=S.PENDING_APPROVAL)
    order_id = order.id

    with pytest.raises(ValidationError) as exc:
        await pricing.pmg_approve_pricing(order_id, actor_id, "90000000", 25)
    assert exc.value.details["field"] == "final_total_price"

    order = await pricing.lifecycle.get_order(order_id)
    assert order.status is S.PENDING_APPROVAL
    assert order.final_total_price is None


@pytest.mark.parametrize(
    "price,reason", [(1000, ""), (1000, "   "), (1000, None), (0, "market rate"), ("0.004", "market rate")]
)
async def test_a2_adjust_validates_input(pricing, make_order, actor_id, price, reason):
    order = await make_order(status=S.PRICING_REVIEW)
    with pytest.raises(ValidationError):
        await pricing.a2_adjust_pricing(order.id, actor_id, price, reason)


async def test_a2_approve_standard_pricing(pricing, dubai_tiers, make_order, actor_id, dispatcher):
    small, _, _ = dubai_tiers
    order = await make_order(
        status=S.PRICING_REVIEW, venue_country=UAE, venue_city="Dubai", calculated_volume=Decimal("4")
    )
    order = await pricing.a2_approve_standard_pricing(order.id, actor_id)
    assert order.status is S.QUOTED
    assert order.pricing_tier_id == small.id
    assert order.a2_base_price == Decimal("500.00")
    assert order.pmg_margin_percent == Decimal("25.00")
    assert order.final_total_price == Decimal("625.00")
    assert dispatcher.types() == [NotificationType.QUOTE_SENT, NotificationType.A2_APPROVED_STANDARD]


async def test_a2_approve_standard_needs_a_tier(pricing, make_order, actor_id):
    order = await make_order(status=S.PRICING_REVIEW, venue_country="Oman", calculated_volume=Decimal("4"))
    order_id = order.id
    with pytest.raises(GuardNotSatisfied) as exc:
        await pricing.a2_approve_standard_pricing(order_id, actor_id)
    assert exc.value.code == "pricing_tier_missing"
    assert (await pricing.lifecycle.get_order(order_id)).status is S.PRICING_REVIEW
