from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from rental_api.db.models.notifications import NotificationRecord
from rental_api.domain.enums import NotificationStatus, NotificationType
from .base import BaseRepository


class NotificationRepository(BaseRepository):
    """Repository for the notification delivery ledger."""

    async def get_record(self, record_id: UUID) -> Optional[NotificationRecord]:
        stmt = select(NotificationRecord).where(NotificationRecord.id == record_id)
        return await self.first(stmt)

    async def add_pending(self, order_id: UUID, notification_type: NotificationType) -> NotificationRecord:
        """PENDING row with no recipients yet; the dispatcher resolves them on delivery."""
        record = NotificationRecord(
            order_id=order_id,
            notification_type=notification_type,
            recipients={"to": [], "cc": []},
            status=NotificationStatus.PENDING,
            attempts=0,
        )
        await self.add(record)
        await self.flush()
        return record

    async def list_records(
        self,
        *,
        status: Optional[NotificationStatus] = None,
        order_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[NotificationRecord]:
        stmt = select(NotificationRecord)
        if status is not None:
            stmt = stmt.where(NotificationRecord.status == status)
        if order_id is not None:
            stmt = stmt.where(NotificationRecord.order_id == order_id)
        stmt = stmt.order_by(NotificationRecord.created_at.desc()).offset(offset).limit(limit)
        return await self.all(stmt)
