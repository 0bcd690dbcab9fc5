import asyncio
import json
from uuid import uuid4

import httpx
import pytest

from rental_api.core.errors import NotFound, NotificationDeliveryFailure, ValidationError
from rental_api.db.models.orders import Order
from rental_api.domain.enums import NotificationStatus, NotificationType, OrderStatus
from rental_api.repositories.notifications import NotificationRepository
from rental_api.services.notifications import (
    QUEUE_FULL_ERROR,
    SHUTDOWN_ERROR,
    LoggingSender,
    NotificationDispatcher,
    NotificationMessage,
    NotificationSender,
    WebhookSender,
    build_sender,
    resolve_recipients,
)

from .conftest import A2_EMAIL, CLIENT_EMAIL, PMG_EMAIL


class RecordingSender(NotificationSender):
    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.messages = []

    async def send(self, message: NotificationMessage) -> None:
        self.messages.append(message)
        if self.failures > 0:
            self.failures -= 1
            raise NotificationDeliveryFailure("SMTP 451 temporary failure")


class SlowSender(NotificationSender):
    async def send(self, message: NotificationMessage) -> None:
        await asyncio.sleep(5)


class BrokenSender(NotificationSender):
    async def send(self, message: NotificationMessage) -> None:
        raise ConnectionResetError("peer reset the connection")


@pytest.fixture
def make_dispatcher(session_maker, settings):
    def _make(sender, **overrides):
        return NotificationDispatcher(
            session_maker=session_maker,
            sender=sender,
            settings=settings.model_copy(update=overrides) if overrides else settings,
        )

    return _make


def test_recipient_matrix(settings):
    order = Order(order_code="ORD-1", contact_email=CLIENT_EMAIL)
    assert resolve_recipients(NotificationType.ORDER_SUBMITTED, order, settings) == {
        "to": [CLIENT_EMAIL],
        "cc": [PMG_EMAIL, A2_EMAIL],
    }
    assert resolve_recipients(NotificationType.QUOTE_SENT, order, settings) == {
        "to": [CLIENT_EMAIL],
        "cc": [PMG_EMAIL],
    }
    assert resolve_recipients(NotificationType.A2_ADJUSTED_PRICING, order, settings) == {
        "to": [PMG_EMAIL],
        "cc": [],
    }
    assert resolve_recipients(NotificationType.DELIVERED, order, settings)["to"] == [
        PMG_EMAIL,
        A2_EMAIL,
        CLIENT_EMAIL,
    ]


def test_recipients_are_deduplicated(settings):
    shared = settings.model_copy(update={"A2_NOTIFICATION_EMAILS": [PMG_EMAIL]})
    order = Order(order_code="ORD-1", contact_email=PMG_EMAIL)
    assert resolve_recipients(NotificationType.ORDER_SUBMITTED, order, shared) == {"to": [PMG_EMAIL], "cc": []}


def test_sender_selection(settings):
    assert isinstance(build_sender(settings), LoggingSender)
    hooked = settings.model_copy(update={"NOTIFICATION_WEBHOOK_URL": "https://hooks.example.com/notify"})
    assert isinstance(build_sender(hooked), WebhookSender)


async def test_delivery_marks_record_sent(make_dispatcher, make_order):
    order = await make_order(status=OrderStatus.SUBMITTED)
    sender = RecordingSender()
    record = await make_dispatcher(sender).process(NotificationType.ORDER_SUBMITTED, order.id)

    assert record.status is NotificationStatus.SENT
    assert record.attempts == 1
    assert record.sent_at is not None
    assert record.recipients == {"to": [CLIENT_EMAIL], "cc": [PMG_EMAIL, A2_EMAIL]}
    [message] = sender.messages
    assert message.subject == f"Order Submitted: {order.order_code}"
    assert order.order_code in message.body


async def test_transient_failures_are_retried(make_dispatcher, make_order):
    order = await make_order(status=OrderStatus.QUOTED)
    sender = RecordingSender(failures=2)
    record = await make_dispatcher(sender).process(NotificationType.QUOTE_SENT, order.id)

    assert record.status is NotificationStatus.SENT
    assert record.attempts == 3
    assert record.error_message is None
    assert len(sender.messages) == 3


async def test_exhausted_retries_mark_record_failed(make_dispatcher, make_order):
    order = await make_order(status=OrderStatus.QUOTED)
    sender = RecordingSender(failures=10)
    record = await make_dispatcher(sender).process(NotificationType.QUOTE_SENT, order.id)

    assert record.status is NotificationStatus.FAILED
    assert record.attempts == 3
    assert "temporary failure" in record.error_message


async def test_slow_sender_times_out(make_dispatcher, make_order):
    order = await make_order(status=OrderStatus.DELIVERED)
    dispatcher = make_dispatcher(SlowSender(), NOTIFICATION_TIMEOUT_SECONDS=0.05, NOTIFICATION_MAX_ATTEMPTS=2)
    record = await dispatcher.process(NotificationType.DELIVERED, order.id)

    assert record.status is NotificationStatus.FAILED
    assert record.attempts == 2
    assert "timed out" in record.error_message


async def test_unexpected_sender_error_is_retried_then_failed(make_dispatcher, make_order):
    order = await make_order(status=OrderStatus.QUOTED)
    record = await make_dispatcher(BrokenSender()).process(NotificationType.QUOTE_SENT, order.id)

    assert record.status is NotificationStatus.FAILED
    assert record.attempts == 3
    assert record.error_message == "ConnectionResetError: peer reset the connection"
    assert record.last_attempt_at is not None


async def test_claimed_ledger_row_is_reused(make_dispatcher, make_order, session):
    order = await make_order(status=OrderStatus.IN_USE)
    claimed = await NotificationRepository(session).add_pending(order.id, NotificationType.PICKUP_REMINDER)
    await session.commit()
    dispatcher = make_dispatcher(RecordingSender())

    record = await dispatcher.process(NotificationType.PICKUP_REMINDER, order.id, claimed.id)

    assert record.id == claimed.id
    assert record.status is NotificationStatus.SENT
    assert record.recipients["to"] == [PMG_EMAIL, A2_EMAIL, CLIENT_EMAIL]
    sent = await dispatcher.list_failed_notifications(status=NotificationStatus.SENT, order_id=order.id)
    assert [r.id for r in sent] == [claimed.id]


async def test_missing_recipients_fail_without_sending(make_dispatcher, make_order):
    order = await make_order(status=OrderStatus.SUBMITTED, contact_email=None)
    sender = RecordingSender()
    record = await make_dispatcher(sender).process(NotificationType.ORDER_SUBMITTED, order.id)

    assert record.status is NotificationStatus.FAILED
    assert record.error_message == "No recipients resolved"
    assert sender.messages == []


async def test_unknown_order_is_skipped(make_dispatcher):
    assert await make_dispatcher(RecordingSender()).process(NotificationType.ORDER_CLOSED, uuid4()) is None


async def test_manual_retry_of_failed_record(make_dispatcher, make_order):
    order = await make_order(status=OrderStatus.QUOTED)
    failing = make_dispatcher(RecordingSender(failures=10))
    record = await failing.process(NotificationType.QUOTE_SENT, order.id)
    assert record.status is NotificationStatus.FAILED

    still_failing = await failing.retry_notification(record.id)
    assert still_failing.status is NotificationStatus.FAILED
    assert still_failing.attempts == 4

    healthy = make_dispatcher(RecordingSender())
    retried = await healthy.retry_notification(record.id)
    assert retried.status is NotificationStatus.SENT
    assert retried.attempts == 5

    with pytest.raises(ValidationError):
        await healthy.retry_notification(record.id)
    with pytest.raises(NotFound):
        await healthy.retry_notification(uuid4())


async def test_list_failed_notifications(make_dispatcher, make_order):
    first = await make_order(status=OrderStatus.QUOTED)
    second = await make_order(status=OrderStatus.QUOTED)
    failing = make_dispatcher(RecordingSender(failures=10))
    await failing.process(NotificationType.QUOTE_SENT, first.id)
    await failing.process(NotificationType.QUOTE_SENT, second.id)
    await make_dispatcher(RecordingSender()).process(NotificationType.QUOTE_SENT, first.id)

    failed = await failing.list_failed_notifications()
    assert {r.order_id for r in failed} == {first.id, second.id}
    assert all(r.status is NotificationStatus.FAILED for r in failed)

    only_first = await failing.list_failed_notifications(order_id=first.id)
    assert [r.order_id for r in only_first] == [first.id]

    sent = await failing.list_failed_notifications(status=NotificationStatus.SENT)
    assert len(sent) == 1


async def test_dispatch_never_raises_when_queue_is_full(make_dispatcher):
    dispatcher = make_dispatcher(RecordingSender(), NOTIFICATION_QUEUE_SIZE=1)
    dispatcher.dispatch(NotificationType.ORDER_SUBMITTED, uuid4())
    dispatcher.dispatch(NotificationType.ORDER_SUBMITTED, uuid4())
    assert dispatcher.queue.qsize() == 1
    # Neither order exists, so nothing reaches the ledger.
    assert await dispatcher.drain() == 1
    assert await dispatcher.list_failed_notifications() == []


async def test_overflowing_message_is_recorded_failed_and_retryable(make_dispatcher, make_order):
    order = await make_order(status=OrderStatus.CANCELLED, cancellation_reason="Event moved")
    sender = RecordingSender()
    dispatcher = make_dispatcher(sender, NOTIFICATION_QUEUE_SIZE=1)
    dispatcher.dispatch(NotificationType.ORDER_SUBMITTED, order.id)
    dispatcher.dispatch(NotificationType.ORDER_CANCELLED, order.id)

    assert await dispatcher.drain() == 1

    [dropped] = await dispatcher.list_failed_notifications()
    assert dropped.notification_type is NotificationType.ORDER_CANCELLED
    assert dropped.error_message == QUEUE_FULL_ERROR
    assert dropped.attempts == 0
    assert dropped.recipients["to"] == [CLIENT_EMAIL]

    retried = await dispatcher.retry_notification(dropped.id)
    assert retried.status is NotificationStatus.SENT
    assert [m.notification_type for m in sender.messages] == [
        NotificationType.ORDER_SUBMITTED,
        NotificationType.ORDER_CANCELLED,
    ]


async def test_stop_timeout_records_in_flight_and_queued_messages(make_dispatcher, make_order):
    order = await make_order(status=OrderStatus.DELIVERED)
    dispatcher = make_dispatcher(SlowSender(), NOTIFICATION_TIMEOUT_SECONDS=30)
    dispatcher.start()
    dispatcher.dispatch(NotificationType.DELIVERED, order.id)
    dispatcher.dispatch(NotificationType.PICKUP_REMINDER, order.id)
    await asyncio.sleep(0.2)

    await dispatcher.stop(drain_timeout=0.2)

    assert not dispatcher.is_running
    failed = await dispatcher.list_failed_notifications()
    by_type = {r.notification_type: r for r in failed}
    assert set(by_type) == {NotificationType.DELIVERED, NotificationType.PICKUP_REMINDER}
    assert all(r.error_message == SHUTDOWN_ERROR for r in failed)
    assert by_type[NotificationType.DELIVERED].attempts == 1
    assert by_type[NotificationType.PICKUP_REMINDER].attempts == 0
    assert await dispatcher.list_failed_notifications(status=NotificationStatus.RETRYING) == []
    assert await dispatcher.list_failed_notifications(status=NotificationStatus.PENDING) == []


async def test_worker_drains_queue_on_stop(make_dispatcher, make_order):
    order = await make_order(status=OrderStatus.SUBMITTED)
    sender = RecordingSender()
    dispatcher = make_dispatcher(sender)
    dispatcher.start()
    dispatcher.dispatch(NotificationType.ORDER_SUBMITTED, order.id)
    dispatcher.dispatch(NotificationType.ORDER_CANCELLED, order.id)
    await dispatcher.stop()

    assert [m.notification_type for m in sender.messages] == [
        NotificationType.ORDER_SUBMITTED,
        NotificationType.ORDER_CANCELLED,
    ]
    assert await dispatcher.list_failed_notifications() == []


async def test_drain_processes_in_caller_task(make_dispatcher, make_order):
    order = await make_order(status=OrderStatus.SUBMITTED)
    sender = RecordingSender()
    dispatcher = make_dispatcher(sender)
    dispatcher.dispatch(NotificationType.ORDER_SUBMITTED, order.id)
    assert await dispatcher.drain() == 1
    assert len(sender.messages) == 1


async def test_webhook_sender_posts_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(204)

    sender = WebhookSender("https://hooks.example.com/notify", transport=httpx.MockTransport(handler))
    message = NotificationMessage(
        record_id=uuid4(),
        notification_type=NotificationType.IN_TRANSIT,
        order_id=uuid4(),
        order_code="ORD-20261019-001",
        to=[CLIENT_EMAIL],
        cc=[PMG_EMAIL],
        subject="Order In Transit: ORD-20261019-001",
    )
    await sender.send(message)
    assert seen[0]["type"] == "IN_TRANSIT"
    assert seen[0]["to"] == [CLIENT_EMAIL]


async def test_webhook_sender_wraps_http_errors():
    sender = WebhookSender(
        "https://hooks.example.com/notify", transport=httpx.MockTransport(lambda request: httpx.Response(503))
    )
    message = NotificationMessage(
        record_id=uuid4(),
        notification_type=NotificationType.IN_TRANSIT,
        order_id=uuid4(),
        order_code="ORD-1",
        to=[CLIENT_EMAIL],
    )
    with pytest.raises(NotificationDeliveryFailure):
        await sender.send(message)
