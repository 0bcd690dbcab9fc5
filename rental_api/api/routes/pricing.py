from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rental_api.core.deps import get_notification_dispatcher, get_session, require_roles
from rental_api.domain.enums import ActorRole
from rental_api.domain.lifecycle import Actor
from rental_api.schemas.orders import OrderRead
from rental_api.schemas.pricing import (
    A2AdjustPricingRequest,
    A2ApproveStandardRequest,
    PmgApprovePricingRequest,
    PricingEstimateRead,
    PricingTierCreate,
    PricingTierRead,
    PricingTierToggle,
)
from rental_api.services.notifications import NotificationDispatcher
from rental_api.services.pricing import PricingService

router = APIRouter(prefix="/orders/{order_id}/pricing", tags=["Pricing"])
tiers_router = APIRouter(prefix="/pricing-tiers", tags=["Pricing Tiers"])

ANY_ROLE = (ActorRole.PMG_ADMIN, ActorRole.A2_STAFF, ActorRole.CLIENT_USER)


# PUBLIC_INTERFACE
@router.get("/estimate", response_model=PricingEstimateRead, summary="Estimate order price")
async def estimate(
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(*ANY_ROLE)),
    session: AsyncSession = Depends(get_session),
) -> PricingEstimateRead:
    result = await PricingService(session).estimate(order_id)
    return PricingEstimateRead.model_validate(result)


# PUBLIC_INTERFACE
@router.post(
    "/adjust",
    response_model=OrderRead,
    summary="A2 adjust pricing",
    description="Propose a non-standard price with a reason; the order moves to PENDING_APPROVAL.",
)
async def a2_adjust_pricing(
    payload: A2AdjustPricingRequest,
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(ActorRole.A2_STAFF, ActorRole.PMG_ADMIN)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> OrderRead:
    order = await PricingService(session, dispatcher).a2_adjust_pricing(
        order_id, actor.id, payload.adjusted_price, payload.reason
    )
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.post(
    "/approve-standard",
    response_model=OrderRead,
    summary="A2 approve standard pricing",
    description="Apply the matched tier price and company margin; the quote goes straight to the client.",
)
async def a2_approve_standard_pricing(
    payload: A2ApproveStandardRequest,
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(ActorRole.A2_STAFF, ActorRole.PMG_ADMIN)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> OrderRead:
    order = await PricingService(session, dispatcher).a2_approve_standard_pricing(order_id, actor.id, payload.notes)
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.post(
    "/pmg-approve",
    response_model=OrderRead,
    summary="PMG approve pricing",
    description="Set base price and margin; final total = base + base * margin / 100. Order moves to QUOTED.",
)
async def pmg_approve_pricing(
    payload: PmgApprovePricingRequest,
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(ActorRole.PMG_ADMIN)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> OrderRead:
    order = await PricingService(session, dispatcher).pmg_approve_pricing(
        order_id, actor.id, payload.a2_base_price, payload.margin_percent, payload.notes
    )
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@tiers_router.get("/match", response_model=PricingTierRead, summary="Find matching pricing tier")
async def match_tier(
    country: str = Query(..., description="Venue country"),
    city: str = Query("", description="Venue city"),
    volume: Decimal = Query(..., description="Order volume (m3)"),
    actor: Actor = Depends(require_roles(*ANY_ROLE)),
    session: AsyncSession = Depends(get_session),
) -> PricingTierRead:
    tier = await PricingService(session).find_matching_tier(country, city, volume)
    if tier is None:
        raise HTTPException(status_code=404, detail="No pricing tier matches this location and volume")
    return PricingTierRead.model_validate(tier)


# PUBLIC_INTERFACE
@tiers_router.post(
    "",
    response_model=PricingTierRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create pricing tier",
)
async def create_tier(
    payload: PricingTierCreate,
    actor: Actor = Depends(require_roles(ActorRole.PMG_ADMIN)),
    session: AsyncSession = Depends(get_session),
) -> PricingTierRead:
    tier = await PricingService(session).create_tier(
        payload.country, payload.city, payload.volume_min, payload.volume_max, payload.base_price, payload.is_active
    )
    return PricingTierRead.model_validate(tier)


# PUBLIC_INTERFACE
@tiers_router.post("/{tier_id}/toggle", response_model=PricingTierRead, summary="Activate or deactivate tier")
async def toggle_tier(
    payload: PricingTierToggle,
    tier_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(ActorRole.PMG_ADMIN)),
    session: AsyncSession = Depends(get_session),
) -> PricingTierRead:
    tier = await PricingService(session).set_tier_active(tier_id, payload.is_active)
    return PricingTierRead.model_validate(tier)
