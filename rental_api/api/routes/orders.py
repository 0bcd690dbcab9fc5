from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from rental_api.core.deps import get_notification_dispatcher, get_session, require_roles
from rental_api.domain.enums import ActorRole, OrderStatus
from rental_api.domain.lifecycle import Actor
from rental_api.schemas.common import MessageResponse
from rental_api.schemas.orders import (
    CancelRequest,
    FinancialStatusRequest,
    OrderCreate,
    OrderItemCreate,
    OrderItemRead,
    OrderRead,
    StatusHistoryRead,
    StatusTransitionRequest,
)
from rental_api.services.lifecycle import OrderLifecycleService
from rental_api.services.notifications import NotificationDispatcher

router = APIRouter(prefix="/orders", tags=["Orders"])

ANY_ROLE = (ActorRole.PMG_ADMIN, ActorRole.A2_STAFF, ActorRole.CLIENT_USER)


def _service(session: AsyncSession, dispatcher: NotificationDispatcher) -> OrderLifecycleService:
    return OrderLifecycleService(session, dispatcher)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=OrderRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
    description="Create a DRAFT order with optional items for an existing company.",
)
async def create_order(
    payload: OrderCreate,
    actor: Actor = Depends(require_roles(ActorRole.CLIENT_USER, ActorRole.PMG_ADMIN)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> OrderRead:
    order = await _service(session, dispatcher).create_order(payload.model_dump(), actor.id)
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.get("/{order_id}", response_model=OrderRead, summary="Get order")
async def get_order(
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(*ANY_ROLE)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> OrderRead:
    order = await _service(session, dispatcher).get_order(order_id)
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.post(
    "/{order_id}/items",
    response_model=OrderItemRead,
    status_code=status.HTTP_201_CREATED,
    summary="Add order item",
    description="Add a line to a DRAFT order.",
)
async def add_item(
    payload: OrderItemCreate,
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(ActorRole.CLIENT_USER, ActorRole.PMG_ADMIN)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> OrderItemRead:
    item = await _service(session, dispatcher).add_item(order_id, payload.model_dump())
    return OrderItemRead.model_validate(item)


# PUBLIC_INTERFACE
@router.post("/{order_id}/submit", response_model=OrderRead, summary="Submit order")
async def submit_order(
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(ActorRole.CLIENT_USER, ActorRole.PMG_ADMIN)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> OrderRead:
    order = await _service(session, dispatcher).submit_order(order_id, actor.id)
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.post(
    "/{order_id}/status",
    response_model=OrderRead,
    summary="Transition order status",
    description=(
        "Move the order to target_status. 409 with error.type invalid_transition when the pair is "
        "not allowed, guard_not_satisfied when a precondition (scans, approval, date) is unmet."
    ),
)
async def transition_order(
    payload: StatusTransitionRequest,
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(*ANY_ROLE)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> OrderRead:
    order = await _service(session, dispatcher).transition(
        order_id, payload.target_status, actor.id, payload.note, actor_role=actor.role
    )
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.post("/{order_id}/cancel", response_model=OrderRead, summary="Cancel order")
async def cancel_order(
    payload: CancelRequest,
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(*ANY_ROLE)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> OrderRead:
    order = await _service(session, dispatcher).transition(
        order_id, OrderStatus.CANCELLED, actor.id, payload.reason, actor_role=actor.role
    )
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.post("/{order_id}/financial-status", response_model=OrderRead, summary="Update financial status")
async def update_financial_status(
    payload: FinancialStatusRequest,
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(ActorRole.PMG_ADMIN, ActorRole.A2_STAFF)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> OrderRead:
    order = await _service(session, dispatcher).update_financial_status(order_id, payload.target_status, actor.id)
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.delete("/{order_id}", response_model=MessageResponse, summary="Soft-delete order")
async def soft_delete_order(
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(ActorRole.PMG_ADMIN)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> MessageResponse:
    await _service(session, dispatcher).soft_delete_order(order_id, actor.id)
    return MessageResponse(message="Order deleted", details={"order_id": str(order_id)})


# PUBLIC_INTERFACE
@router.get("/{order_id}/status-history", response_model=List[StatusHistoryRead], summary="Order status history")
async def get_status_history(
    order_id: UUID = Path(...),
    actor: Actor = Depends(require_roles(*ANY_ROLE)),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> List[StatusHistoryRead]:
    rows = await _service(session, dispatcher).get_status_history(order_id)
    return [StatusHistoryRead.model_validate(r) for r in rows]
