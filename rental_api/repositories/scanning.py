from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from rental_api.db.models.scanning import ScanEvent
from rental_api.domain.enums import ScanType
from .base import BaseRepository


class ScanEventRepository(BaseRepository):
    """Append-only access to scan events: there is no update or delete here."""

    async def list_events(self, order_id: UUID, scan_type: Optional[ScanType] = None) -> List[ScanEvent]:
        stmt = select(ScanEvent).where(ScanEvent.order_id == order_id)
        if scan_type is not None:
            stmt = stmt.where(ScanEvent.scan_type == scan_type)
        stmt = stmt.order_by(ScanEvent.scanned_at.asc(), ScanEvent.id.asc())
        return await self.all(stmt)

    async def append(self, event: ScanEvent) -> ScanEvent:
        await self.add(event)
        await self.flush()
        return event
