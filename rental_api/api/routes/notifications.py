from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query

from rental_api.core.deps import get_notification_dispatcher, require_roles
from rental_api.domain.enums import ActorRole, NotificationStatus
from rental_api.schemas.notifications import NotificationRecordRead
from rental_api.services.notifications import NotificationDispatcher

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    dependencies=[Depends(require_roles(ActorRole.PMG_ADMIN))],
)


# PUBLIC_INTERFACE
@router.get(
    "/failed",
    response_model=List[NotificationRecordRead],
    summary="List failed notifications",
    description="Ledger rows that need attention, newest first. Defaults to status FAILED.",
)
async def list_failed_notifications(
    status: Optional[NotificationStatus] = Query(None, description="Ledger status filter"),
    order_id: Optional[UUID] = Query(None, description="Filter by order"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> List[NotificationRecordRead]:
    records = await dispatcher.list_failed_notifications(status=status, order_id=order_id, limit=limit, offset=offset)
    return [NotificationRecordRead.model_validate(r) for r in records]


# PUBLIC_INTERFACE
@router.post("/{record_id}/retry", response_model=NotificationRecordRead, summary="Retry a failed notification")
async def retry_notification(
    record_id: UUID = Path(...),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> NotificationRecordRead:
    record = await dispatcher.retry_notification(record_id)
    return NotificationRecordRead.model_validate(record)
