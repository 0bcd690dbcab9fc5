from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_exponential

from rental_api.core.errors import NotFound, NotificationDeliveryFailure, ValidationError
from rental_api.core.settings import AppSettings, get_app_settings
from rental_api.db.base import utcnow
from rental_api.db.models.notifications import NotificationRecord
from rental_api.db.models.orders import Order
from rental_api.db.session import get_session_maker
from rental_api.domain.enums import NotificationStatus, NotificationType
from rental_api.repositories.notifications import NotificationRepository
from rental_api.repositories.orders import OrderRepository

logger = logging.getLogger(__name__)

CLIENT = "client"
PMG = "pmg"
A2 = "a2"

# notification type -> (to groups, cc groups)
RECIPIENT_MATRIX: Dict[NotificationType, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    NotificationType.ORDER_SUBMITTED: ((CLIENT,), (PMG, A2)),
    NotificationType.A2_APPROVED_STANDARD: ((PMG,), ()),
    NotificationType.A2_ADJUSTED_PRICING: ((PMG,), ()),
    NotificationType.QUOTE_SENT: ((CLIENT,), (PMG,)),
    NotificationType.QUOTE_APPROVED: ((PMG, A2), ()),
    NotificationType.QUOTE_DECLINED: ((PMG, A2), ()),
    NotificationType.ORDER_CONFIRMED: ((PMG, A2, CLIENT), ()),
    NotificationType.READY_FOR_DELIVERY: ((PMG,), ()),
    NotificationType.IN_TRANSIT: ((CLIENT,), (PMG,)),
    NotificationType.DELIVERED: ((PMG, A2, CLIENT), ()),
    NotificationType.PICKUP_REMINDER: ((PMG, A2, CLIENT), ()),
    NotificationType.ORDER_CLOSED: ((PMG,), ()),
    NotificationType.ORDER_CANCELLED: ((CLIENT,), (PMG, A2)),
}

SUBJECTS: Dict[NotificationType, str] = {
    NotificationType.ORDER_SUBMITTED: "Order Submitted: {code}",
    NotificationType.A2_APPROVED_STANDARD: "FYI: Standard Pricing Approved for {code}",
    NotificationType.A2_ADJUSTED_PRICING: "Action Required: Pricing Adjustment for {code}",
    NotificationType.QUOTE_SENT: "Quote Ready: {code}",
    NotificationType.QUOTE_APPROVED: "Quote Approved: {code}",
    NotificationType.QUOTE_DECLINED: "Quote Declined: {code}",
    NotificationType.ORDER_CONFIRMED: "Order Confirmed: {code}",
    NotificationType.READY_FOR_DELIVERY: "Ready for Delivery: {code}",
    NotificationType.IN_TRANSIT: "Order In Transit: {code}",
    NotificationType.DELIVERED: "Order Delivered: {code}",
    NotificationType.PICKUP_REMINDER: "Pickup Reminder: {code} in 48 Hours",
    NotificationType.ORDER_CLOSED: "Order Completed: {code}",
    NotificationType.ORDER_CANCELLED: "Order Cancelled: {code}",
}


@dataclass
class NotificationMessage:
    """Rendered notification handed to a sender."""

    record_id: UUID
    notification_type: NotificationType
    order_id: UUID
    order_code: str
    to: List[str]
    cc: List[str] = field(default_factory=list)
    subject: str = ""
    body: str = ""

    def as_payload(self) -> Dict[str, Any]:
        return {
            "id": str(self.record_id),
            "type": self.notification_type.value,
            "order_id": str(self.order_id),
            "order_code": self.order_code,
            "to": self.to,
            "cc": self.cc,
            "subject": self.subject,
            "body": self.body,
        }


class NotificationSender:
    """Transport for rendered notifications. Raise NotificationDeliveryFailure on failure."""

    async def send(self, message: NotificationMessage) -> None:
        raise NotImplementedError


class LoggingSender(NotificationSender):
    """Default sender: writes the notification to the log and reports success."""

    async def send(self, message: NotificationMessage) -> None:
        logger.info(
            "Notification %s for order %s to=%s cc=%s subject=%r",
            message.notification_type.value,
            message.order_code,
            ", ".join(message.to),
            ", ".join(message.cc) or "-",
            message.subject,
        )


class WebhookSender(NotificationSender):
    """POSTs the notification as JSON to a configured URL."""

    def __init__(self, url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def send(self, message: NotificationMessage) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.url, json=message.as_payload())
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationDeliveryFailure(f"Webhook delivery failed: {exc}") from exc


def build_sender(settings: AppSettings) -> NotificationSender:
    if settings.NOTIFICATION_WEBHOOK_URL:
        return WebhookSender(settings.NOTIFICATION_WEBHOOK_URL, timeout=settings.NOTIFICATION_TIMEOUT_SECONDS)
    return LoggingSender()


def _unique(emails: Sequence[Optional[str]]) -> List[str]:
    seen: List[str] = []
    for email in emails:
        if email and email not in seen:
            seen.append(email)
    return seen


def resolve_recipients(
    notification_type: NotificationType, order: Order, settings: AppSettings
) -> Dict[str, List[str]]:
    """Apply the notification matrix to the order contact and the configured staff groups."""
    groups: Dict[str, List[Optional[str]]] = {
        CLIENT: [order.contact_email],
        PMG: list(settings.PMG_NOTIFICATION_EMAILS),
        A2: list(settings.A2_NOTIFICATION_EMAILS),
    }
    to_groups, cc_groups = RECIPIENT_MATRIX[notification_type]
    to = _unique([email for g in to_groups for email in groups[g]])
    cc = [email for email in _unique([email for g in cc_groups for email in groups[g]]) if email not in to]
    return {"to": to, "cc": cc}


def render_body(notification_type: NotificationType, order: Order, settings: AppSettings) -> str:
    lines = [
        f"Order {order.order_code} ({order.status.value})",
    ]
    if order.venue_name:
        lines.append(f"Venue: {order.venue_name}, {order.venue_city or ''} {order.venue_country or ''}".strip())
    if order.event_start_date:
        lines.append(f"Event: {order.event_start_date.isoformat()} to {order.event_end_date.isoformat() if order.event_end_date else '?'}")
    if notification_type is NotificationType.A2_ADJUSTED_PRICING and order.a2_adjusted_price is not None:
        lines.append(f"A2 adjusted price: {order.a2_adjusted_price}")
        lines.append(f"Reason: {order.a2_adjustment_reason}")
    if notification_type is NotificationType.QUOTE_SENT and order.final_total_price is not None:
        lines.append(f"Quoted total: {order.final_total_price}")
    if notification_type is NotificationType.PICKUP_REMINDER and order.pickup_window_start:
        lines.append(f"Pickup window opens: {order.pickup_window_start.isoformat()}")
    if notification_type is NotificationType.ORDER_CANCELLED and order.cancellation_reason:
        lines.append(f"Reason: {order.cancellation_reason}")
    lines.append(f"{settings.APP_BASE_URL.rstrip('/')}/orders/{order.id}")
    lines.append(f"Questions? Contact {settings.SUPPORT_EMAIL}")
    return "\n".join(lines)


QUEUE_FULL_ERROR = "Notification queue full"
SHUTDOWN_ERROR = "Notification worker stopped before delivery"


@dataclass(frozen=True)
class QueuedNotification:
    notification_type: NotificationType
    order_id: UUID
    # Ledger row already claimed by the caller, if any.
    record_id: Optional[UUID] = None


class NotificationDispatcher:
    """
    In-process outbound notification queue.

    dispatch() only enqueues; a single worker task drains the queue, writes a
    ledger row per message and delivers it with exponential backoff. Delivery
    failures end up in the ledger and the log, never in the caller.

    Messages that never reach the sender (queue full, still queued or in
    flight at shutdown) are written to the ledger as FAILED so that
    retry_notification() can recover them.
    """

    def __init__(
        self,
        *,
        session_maker: Optional[Callable[[], AsyncSession]] = None,
        sender: Optional[NotificationSender] = None,
        settings: Optional[AppSettings] = None,
    ) -> None:
        self.settings = settings or get_app_settings()
        self._session_maker = session_maker
        self.sender = sender or build_sender(self.settings)
        self.queue: asyncio.Queue[QueuedNotification] = asyncio.Queue(maxsize=self.settings.NOTIFICATION_QUEUE_SIZE)
        self._worker: Optional[asyncio.Task] = None
        self._undelivered: List[Tuple[QueuedNotification, str]] = []
        self._ledger_writes: Set[asyncio.Task] = set()

    def _sessions(self) -> Callable[[], AsyncSession]:
        if self._session_maker is None:
            self._session_maker = get_session_maker()
        return self._session_maker

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    # PUBLIC_INTERFACE
    def dispatch(
        self, notification_type: NotificationType, order_id: UUID, record_id: Optional[UUID] = None
    ) -> None:
        """Enqueue a notification for an order and return immediately."""
        item = QueuedNotification(notification_type, order_id, record_id)
        try:
            self.queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.error(
                "Notification queue full; recording %s for order %s as FAILED", notification_type.value, order_id
            )
            self._set_aside(item, QUEUE_FULL_ERROR)
            return
        logger.debug("Queued %s for order %s", notification_type.value, order_id)

    def _set_aside(self, item: QueuedNotification, reason: str) -> None:
        self._undelivered.append((item, reason))
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the next drain() or stop() writes it.
            return
        task = loop.create_task(self.record_undelivered())
        self._ledger_writes.add(task)
        task.add_done_callback(self._ledger_writes.discard)

    # PUBLIC_INTERFACE
    def start(self) -> None:
        """Start the worker task on the running event loop (idempotent)."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="notification-worker")
            logger.info("Notification worker started")

    # PUBLIC_INTERFACE
    async def stop(self, drain_timeout: float = 5.0) -> None:
        """
        Give queued messages a bounded chance to go out, then stop the worker.

        Whatever is still queued afterwards is recorded as FAILED.
        """
        if self._worker is not None:
            try:
                await asyncio.wait_for(self.queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning("Notification queue not drained on shutdown; %d pending", self.queue.qsize())
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        while not self.queue.empty():
            item = self.queue.get_nowait()
            self.queue.task_done()
            self._undelivered.append((item, SHUTDOWN_ERROR))
        await self._flush_undelivered()
        logger.info("Notification worker stopped")

    async def _run(self) -> None:
        while True:
            item = await self.queue.get()
            try:
                await self.process(item.notification_type, item.order_id, item.record_id)
            except Exception:
                logger.exception(
                    "Notification %s for order %s could not be processed", item.notification_type.value, item.order_id
                )
            finally:
                self.queue.task_done()

    async def drain(self) -> int:
        """Process everything currently queued in the caller's task. Returns the number processed."""
        processed = 0
        while not self.queue.empty():
            item = self.queue.get_nowait()
            try:
                await self.process(item.notification_type, item.order_id, item.record_id)
            finally:
                self.queue.task_done()
            processed += 1
        await self._flush_undelivered()
        return processed

    async def _flush_undelivered(self) -> None:
        if self._ledger_writes:
            await asyncio.gather(*list(self._ledger_writes))
        await self.record_undelivered()

    # PUBLIC_INTERFACE
    async def record_undelivered(self) -> int:
        """Write FAILED ledger rows for messages set aside before delivery. Returns the number written."""
        written = 0
        while self._undelivered:
            item, reason = self._undelivered.pop(0)
            try:
                async with self._sessions()() as session:
                    order = await OrderRepository(session).get_order(item.order_id)
                    if order is None:
                        logger.warning("Skipping %s: order %s not found", item.notification_type.value, item.order_id)
                        continue
                    record = await self._ledger_row(session, item, order)
                    record.status = NotificationStatus.FAILED
                    record.error_message = reason
                    await session.commit()
                    written += 1
            except Exception:
                logger.exception(
                    "Could not record undelivered %s for order %s", item.notification_type.value, item.order_id
                )
        return written

    async def _ledger_row(self, session: AsyncSession, item: QueuedNotification, order: Order) -> NotificationRecord:
        """The row claimed by the caller, or a new PENDING one; recipients are resolved now."""
        record = None
        if item.record_id is not None:
            record = await NotificationRepository(session).get_record(item.record_id)
        if record is None:
            record = NotificationRecord(
                order_id=order.id,
                notification_type=item.notification_type,
                status=NotificationStatus.PENDING,
                attempts=0,
            )
            session.add(record)
        record.recipients = resolve_recipients(item.notification_type, order, self.settings)
        return record

    # PUBLIC_INTERFACE
    async def process(
        self, notification_type: NotificationType, order_id: UUID, record_id: Optional[UUID] = None
    ) -> Optional[NotificationRecord]:
        """
        Resolve recipients, write the PENDING ledger row and deliver with retries.

        `record_id` points at a row the caller already claimed (pickup
        reminders); it is reused instead of adding a second one.
        Returns the final ledger row, or None when the order no longer exists.
        """
        async with self._sessions()() as session:
            order = await OrderRepository(session).get_order(order_id)
            if order is None:
                logger.warning("Skipping %s: order %s not found", notification_type.value, order_id)
                return None

            record = await self._ledger_row(session, QueuedNotification(notification_type, order_id, record_id), order)
            await session.commit()

            if not record.recipients["to"]:
                record.status = NotificationStatus.FAILED
                record.error_message = "No recipients resolved"
                await session.commit()
                logger.warning("No recipients for %s on order %s", notification_type.value, order.order_code)
                return record

            message = self._render(record, order)
            try:
                await self._deliver_with_retries(session, record, message)
            except asyncio.CancelledError:
                record.status = NotificationStatus.FAILED
                record.error_message = SHUTDOWN_ERROR
                try:
                    await session.commit()
                except Exception:
                    logger.exception("Could not record interrupted notification %s", record.id)
                raise
            return record

    def _render(self, record: NotificationRecord, order: Order) -> NotificationMessage:
        return NotificationMessage(
            record_id=record.id,
            notification_type=record.notification_type,
            order_id=order.id,
            order_code=order.order_code,
            to=list(record.recipients.get("to", [])),
            cc=list(record.recipients.get("cc", [])),
            subject=SUBJECTS[record.notification_type].format(code=order.order_code),
            body=render_body(record.notification_type, order, self.settings),
        )

    async def _attempt(self, session: AsyncSession, record: NotificationRecord, message: NotificationMessage) -> None:
        record.attempts += 1
        record.last_attempt_at = utcnow()
        try:
            await asyncio.wait_for(self.sender.send(message), timeout=self.settings.NOTIFICATION_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            failure = NotificationDeliveryFailure(
                f"Send timed out after {self.settings.NOTIFICATION_TIMEOUT_SECONDS}s"
            )
        except NotificationDeliveryFailure as exc:
            failure = exc
        except Exception as exc:
            # Any sender error is a failed attempt.
            failure = NotificationDeliveryFailure(f"{type(exc).__name__}: {exc}")
        else:
            record.status = NotificationStatus.SENT
            record.sent_at = utcnow()
            record.error_message = None
            await session.commit()
            return

        record.status = NotificationStatus.RETRYING
        record.error_message = str(failure)
        await session.commit()
        raise failure

    async def _deliver_with_retries(
        self, session: AsyncSession, record: NotificationRecord, message: NotificationMessage
    ) -> None:
        retrying = AsyncRetrying(
            wait=wait_exponential(
                multiplier=1,
                min=self.settings.NOTIFICATION_BACKOFF_MIN_SECONDS,
                max=self.settings.NOTIFICATION_BACKOFF_MAX_SECONDS,
            ),
            stop=stop_after_attempt(self.settings.NOTIFICATION_MAX_ATTEMPTS),
            retry=retry_if_exception_type(NotificationDeliveryFailure),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._attempt(session, record, message)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            record.status = NotificationStatus.FAILED
            record.error_message = str(last)
            await session.commit()
            logger.error(
                "Notification %s for order %s failed after %d attempts: %s",
                message.notification_type.value,
                message.order_code,
                record.attempts,
                last,
            )
            return
        logger.info(
            "Notification %s for order %s sent after %d attempt(s)",
            message.notification_type.value,
            message.order_code,
            record.attempts,
        )

    # PUBLIC_INTERFACE
    async def retry_notification(self, record_id: UUID) -> NotificationRecord:
        """
        Manually resend a FAILED ledger row once.

        Raises:
            NotFound: unknown record id.
            ValidationError: the record is not in FAILED state.
        """
        async with self._sessions()() as session:
            record = await NotificationRepository(session).get_record(record_id)
            if record is None:
                raise NotFound("NotificationRecord", record_id)
            if record.status is not NotificationStatus.FAILED:
                raise ValidationError(
                    f"Only FAILED notifications can be retried (status is {record.status.value})",
                    details={"status": record.status.value},
                )
            order = await OrderRepository(session).get_order(record.order_id)
            if order is None:
                raise NotFound("Order", record.order_id)

            # Recipients are resolved again so configuration fixes take effect.
            record.recipients = resolve_recipients(record.notification_type, order, self.settings)
            message = self._render(record, order)
            try:
                await self._attempt(session, record, message)
            except NotificationDeliveryFailure as exc:
                record.status = NotificationStatus.FAILED
                await session.commit()
                logger.warning("Manual retry of notification %s failed: %s", record.id, exc)
            else:
                logger.info("Manual retry of notification %s succeeded", record.id)
            return record

    # PUBLIC_INTERFACE
    async def list_failed_notifications(
        self,
        status: Optional[NotificationStatus] = None,
        order_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[NotificationRecord]:
        """Ledger rows needing attention, newest first; defaults to FAILED."""
        async with self._sessions()() as session:
            return await NotificationRepository(session).list_records(
                status=status or NotificationStatus.FAILED, order_id=order_id, limit=limit, offset=offset
            )


_DISPATCHER: Optional[NotificationDispatcher] = None


# PUBLIC_INTERFACE
def get_dispatcher() -> NotificationDispatcher:
    """Return the process-wide dispatcher, creating it on first use."""
    global _DISPATCHER
    if _DISPATCHER is None:
        _DISPATCHER = NotificationDispatcher()
    return _DISPATCHER
