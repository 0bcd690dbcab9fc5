from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rental_api.core.deps import get_session, require_roles
from rental_api.domain.enums import ActorRole, ScanType
from rental_api.domain.lifecycle import Actor
from rental_api.schemas.orders import OrderRead
from rental_api.schemas.scanning import (
    GateProgressRead,
    ScanEventRead,
    ScanRequest,
    ScanResponse,
    TruckPhotosRequest,
)
from rental_api.services.scanning import ScanningService

router = APIRouter(prefix="/scanning", tags=["Scanning"])
events_router = APIRouter(prefix="/orders", tags=["Scanning"])

WAREHOUSE_ROLES = (ActorRole.A2_STAFF, ActorRole.PMG_ADMIN)
ANY_ROLE = (ActorRole.PMG_ADMIN, ActorRole.A2_STAFF, ActorRole.CLIENT_USER)


async def _scan(session: AsyncSession, order_id: UUID, scan_type: ScanType, payload: ScanRequest, actor: Actor) -> ScanResponse:
    service = ScanningService(session)
    event = await service.record_scan(
        order_id,
        scan_type,
        payload.quantity,
        actor.id,
        asset_id=payload.asset_id,
        condition=payload.condition,
        notes=payload.notes,
    )
    gate = await service.evaluate_gate(order_id, scan_type)
    return ScanResponse(
        event=ScanEventRead.model_validate(event),
        progress=GateProgressRead.model_validate(gate),
    )


# PUBLIC_INTERFACE
@router.post(
    "/{order_id}/outbound/scan",
    response_model=ScanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record outbound scan",
    description="Accepted only while the order is IN_PREPARATION.",
)
async def outbound_scan(
    payload: ScanRequest,
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(*WAREHOUSE_ROLES)),
    session: AsyncSession = Depends(get_session),
) -> ScanResponse:
    return await _scan(session, order_id, ScanType.OUTBOUND, payload, actor)


# PUBLIC_INTERFACE
@router.post(
    "/{order_id}/inbound/scan",
    response_model=ScanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record inbound scan",
    description="Accepted only while the order is AWAITING_RETURN.",
)
async def inbound_scan(
    payload: ScanRequest,
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(*WAREHOUSE_ROLES)),
    session: AsyncSession = Depends(get_session),
) -> ScanResponse:
    return await _scan(session, order_id, ScanType.INBOUND, payload, actor)


# PUBLIC_INTERFACE
@router.get("/{order_id}/outbound/progress", response_model=GateProgressRead, summary="Outbound scan progress")
async def outbound_progress(
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(*ANY_ROLE)),
    session: AsyncSession = Depends(get_session),
) -> GateProgressRead:
    gate = await ScanningService(session).evaluate_outbound_gate(order_id)
    return GateProgressRead.model_validate(gate)


# PUBLIC_INTERFACE
@router.get("/{order_id}/inbound/progress", response_model=GateProgressRead, summary="Inbound scan progress")
async def inbound_progress(
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(*ANY_ROLE)),
    session: AsyncSession = Depends(get_session),
) -> GateProgressRead:
    gate = await ScanningService(session).evaluate_inbound_gate(order_id)
    return GateProgressRead.model_validate(gate)


# PUBLIC_INTERFACE
@router.post("/{order_id}/truck-photos", response_model=OrderRead, summary="Attach truck loading photos")
async def add_truck_photos(
    payload: TruckPhotosRequest,
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(*WAREHOUSE_ROLES)),
    session: AsyncSession = Depends(get_session),
) -> OrderRead:
    order = await ScanningService(session).add_truck_photos(order_id, payload.photos)
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@events_router.get("/{order_id}/scan-events", response_model=List[ScanEventRead], summary="List scan events")
async def list_scan_events(
    order_id: UUID = Path(...),
    scan_type: Optional[ScanType] = Query(None, description="Filter by direction"),
    actor: Actor = Depends(require_roles(*ANY_ROLE)),
    session: AsyncSession = Depends(get_session),
) -> List[ScanEventRead]:
    events = await ScanningService(session).list_scan_events(order_id, scan_type)
    return [ScanEventRead.model_validate(e) for e in events]
