from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rental_api.core.errors import DomainError
from rental_api.core.settings import AppSettings, get_app_settings
from rental_api.db.base import utcnow
from rental_api.db.session import get_session_maker
from rental_api.domain.enums import ActorRole, NotificationType, OrderStatus
from rental_api.repositories.notifications import NotificationRepository
from rental_api.repositories.orders import OrderRepository
from rental_api.services.lifecycle import Dispatcher, OrderLifecycleService

logger = logging.getLogger(__name__)

EVENT_START_NOTE = "Automatic transition on event start date"
EVENT_END_NOTE = "Automatic transition on event end date"

PICKUP_REMINDER_STATUSES = (OrderStatus.IN_USE, OrderStatus.AWAITING_RETURN)


@dataclass
class FailedTransition:
    order_id: UUID
    target_status: OrderStatus
    error: str


@dataclass
class ScheduledRunSummary:
    run_date: date
    event_start: int = 0
    event_end: int = 0
    failed: List[FailedTransition] = field(default_factory=list)

    @property
    def transitioned_count(self) -> int:
        return self.event_start + self.event_end


@dataclass
class PickupReminderSummary:
    window_start: datetime
    window_end: datetime
    reminders_queued: int = 0
    order_ids: List[UUID] = field(default_factory=list)


class ScheduledTransitionRunner:
    """
    Calendar-driven transitions for the daily cron call.

    Each order is moved in its own session and transaction so one bad order
    cannot block the rest of the batch. Re-running on the same day is a no-op
    for orders that already moved: the source status is re-checked under the
    row lock.
    """

    def __init__(
        self,
        *,
        session_maker: Optional[Callable[[], AsyncSession]] = None,
        dispatcher: Optional[Dispatcher] = None,
        settings: Optional[AppSettings] = None,
    ) -> None:
        self.settings = settings or get_app_settings()
        self._session_maker = session_maker or get_session_maker()
        self.dispatcher = dispatcher

    async def _due_order_ids(self, status: OrderStatus, today: date, *, by_start: bool) -> List[UUID]:
        async with self._session_maker() as session:
            repo = OrderRepository(session)
            if by_start:
                return await repo.list_order_ids_due(status=status, event_start=today)
            return await repo.list_order_ids_due(status=status, event_end=today)

    async def _move(
        self, order_id: UUID, source: OrderStatus, target: OrderStatus, note: str, today: date
    ) -> bool:
        async with self._session_maker() as session:
            service = OrderLifecycleService(session, self.dispatcher)
            order = await service.get_order(order_id)
            if order.status is not source:
                logger.info("Order %s already left %s; skipping", order.order_code, source.value)
                return False
            await service.transition(
                order_id,
                target,
                self.settings.SYSTEM_ACTOR_ID,
                note,
                actor_role=ActorRole.SYSTEM,
                today=today,
            )
            return True

    async def _run_batch(
        self,
        summary: ScheduledRunSummary,
        source: OrderStatus,
        target: OrderStatus,
        note: str,
        *,
        by_start: bool,
    ) -> int:
        moved = 0
        for order_id in await self._due_order_ids(source, summary.run_date, by_start=by_start):
            try:
                if await self._move(order_id, source, target, note, summary.run_date):
                    moved += 1
            except DomainError as exc:
                logger.warning("Scheduled transition of order %s to %s failed: %s", order_id, target.value, exc.message)
                summary.failed.append(FailedTransition(order_id, target, exc.message))
            except Exception as exc:
                logger.exception("Scheduled transition of order %s to %s crashed", order_id, target.value)
                summary.failed.append(FailedTransition(order_id, target, str(exc)))
        return moved

    # PUBLIC_INTERFACE
    async def run_scheduled_transitions(self, today: Optional[date] = None) -> ScheduledRunSummary:
        """
        DELIVERED orders whose event starts today -> IN_USE;
        IN_USE orders whose event ends today -> AWAITING_RETURN.
        """
        summary = ScheduledRunSummary(run_date=today or date.today())
        summary.event_start = await self._run_batch(
            summary, OrderStatus.DELIVERED, OrderStatus.IN_USE, EVENT_START_NOTE, by_start=True
        )
        summary.event_end = await self._run_batch(
            summary, OrderStatus.IN_USE, OrderStatus.AWAITING_RETURN, EVENT_END_NOTE, by_start=False
        )
        logger.info(
            "Scheduled run %s: %d started, %d ended, %d failed",
            summary.run_date.isoformat(),
            summary.event_start,
            summary.event_end,
            len(summary.failed),
        )
        return summary

    # PUBLIC_INTERFACE
    async def send_pickup_reminders(self, now: Optional[datetime] = None) -> PickupReminderSummary:
        """Queue one PICKUP_REMINDER per order whose pickup window opens within the reminder horizon."""
        window_start = now or utcnow()
        window_end = window_start + timedelta(hours=self.settings.PICKUP_REMINDER_HOURS)
        summary = PickupReminderSummary(window_start=window_start, window_end=window_end)

        claimed: List[Tuple[UUID, Optional[UUID]]] = []
        async with self._session_maker() as session:
            orders = await OrderRepository(session).list_orders_for_pickup_reminder(
                statuses=PICKUP_REMINDER_STATUSES, window_start=window_start, window_end=window_end
            )
            ledger = NotificationRepository(session)
            for order in orders:
                record_id = None
                if self.dispatcher is not None:
                    # The PENDING row marks the reminder as handled for later runs.
                    record_id = (await ledger.add_pending(order.id, NotificationType.PICKUP_REMINDER)).id
                claimed.append((order.id, record_id))
            await session.commit()

        for order_id, record_id in claimed:
            if self.dispatcher is not None:
                self.dispatcher.dispatch(NotificationType.PICKUP_REMINDER, order_id, record_id)
            summary.order_ids.append(order_id)
        summary.reminders_queued = len(summary.order_ids)
        logger.info("Queued %d pickup reminder(s)", summary.reminders_queued)
        return summary
