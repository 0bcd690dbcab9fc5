from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import desc, func, select

from rental_api.db.models.notifications import NotificationRecord
from rental_api.db.models.orders import Company, Order, OrderItem, OrderStatusHistory
from rental_api.domain.enums import NotificationType, OrderStatus
from .base import BaseRepository


class OrderRepository(BaseRepository):
    """Repository for orders, their items and status history."""

    async def get_order(self, order_id: UUID, *, for_update: bool = False) -> Optional[Order]:
        """Active (not soft-deleted) order; `for_update` takes a row lock."""
        stmt = select(Order).where(Order.id == order_id, Order.deleted_at.is_(None))
        if for_update:
            # populate_existing refreshes an identity-map copy with the locked row.
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.first(stmt)

    async def get_company(self, company_id: UUID) -> Optional[Company]:
        stmt = select(Company).where(Company.id == company_id, Company.deleted_at.is_(None))
        return await self.first(stmt)

    async def next_order_code(self, today: date) -> str:
        """Human-readable code, ORD-YYYYMMDD-###, sequenced per day."""
        prefix = f"ORD-{today.strftime('%Y%m%d')}-"
        stmt = (
            select(Order.order_code)
            .where(Order.order_code.like(f"{prefix}%"))
            .order_by(desc(Order.order_code))
            .limit(1)
        )
        last = await self.first(stmt)
        sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1
        return f"{prefix}{sequence:03d}"

    async def list_items(self, order_id: UUID) -> List[OrderItem]:
        stmt = select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.created_at.asc())
        return await self.all(stmt)

    async def next_history_seq(self, order_id: UUID) -> int:
        stmt = select(func.coalesce(func.max(OrderStatusHistory.seq_no), 0)).where(
            OrderStatusHistory.order_id == order_id
        )
        return int(await self.scalar(stmt)) + 1

    async def list_history(self, order_id: UUID) -> List[OrderStatusHistory]:
        stmt = (
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.seq_no.asc())
        )
        return await self.all(stmt)

    async def list_order_ids_due(
        self, *, status: OrderStatus, event_start: Optional[date] = None, event_end: Optional[date] = None
    ) -> List[UUID]:
        """Ids of active orders in `status` whose event starts/ends on the given day."""
        stmt = select(Order.id).where(Order.status == status, Order.deleted_at.is_(None))
        if event_start is not None:
            stmt = stmt.where(Order.event_start_date == event_start)
        if event_end is not None:
            stmt = stmt.where(Order.event_end_date == event_end)
        return await self.all(stmt.order_by(Order.order_code.asc()))

    async def list_orders_for_pickup_reminder(
        self, *, statuses: Sequence[OrderStatus], window_start: datetime, window_end: datetime
    ) -> List[Order]:
        """
        Active orders whose pickup window opens in [window_start, window_end]
        and that have no pickup reminder in the ledger yet, in any status.
        FAILED reminders are recovered through the manual retry, not re-queued.
        """
        already_handled = (
            select(NotificationRecord.id)
            .where(
                NotificationRecord.order_id == Order.id,
                NotificationRecord.notification_type == NotificationType.PICKUP_REMINDER,
            )
            .exists()
        )
        stmt = (
            select(Order)
            .where(
                Order.deleted_at.is_(None),
                Order.status.in_(list(statuses)),
                Order.pickup_window_start.is_not(None),
                Order.pickup_window_start >= window_start,
                Order.pickup_window_start <= window_end,
                ~already_handled,
            )
            .order_by(Order.pickup_window_start.asc())
        )
        return await self.all(stmt)
