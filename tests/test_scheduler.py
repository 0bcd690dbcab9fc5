from datetime import date, datetime, timedelta, timezone

import pytest

from rental_api.db.models.notifications import NotificationRecord
from rental_api.domain.enums import NotificationStatus, NotificationType, OrderStatus
from rental_api.repositories.notifications import NotificationRepository
from rental_api.services.lifecycle import OrderLifecycleService
from rental_api.services.scheduler import EVENT_END_NOTE, EVENT_START_NOTE, ScheduledTransitionRunner

S = OrderStatus
TODAY = date(2026, 10, 19)
NOW = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def runner(session_maker, dispatcher, settings):
    return ScheduledTransitionRunner(session_maker=session_maker, dispatcher=dispatcher, settings=settings)


async def _load(session_maker, order_id):
    async with session_maker() as session:
        service = OrderLifecycleService(session)
        return await service.get_order(order_id), await service.get_status_history(order_id)


async def test_delivered_order_starts_on_event_day(runner, session_maker, make_order, settings):
    order = await make_order(status=S.DELIVERED, event_start_date=TODAY, event_end_date=TODAY + timedelta(days=2))

    summary = await runner.run_scheduled_transitions(TODAY)

    assert summary.event_start == 1
    assert summary.event_end == 0
    assert summary.transitioned_count == 1
    assert summary.failed == []
    reloaded, history = await _load(session_maker, order.id)
    assert reloaded.status is S.IN_USE
    assert len(history) == 1
    assert history[0].actor_id == settings.SYSTEM_ACTOR_ID
    assert history[0].notes == EVENT_START_NOTE


async def test_in_use_order_awaits_return_on_event_end(runner, session_maker, make_order):
    order = await make_order(status=S.IN_USE, event_start_date=TODAY - timedelta(days=2), event_end_date=TODAY)

    summary = await runner.run_scheduled_transitions(TODAY)

    assert summary.event_end == 1
    reloaded, history = await _load(session_maker, order.id)
    assert reloaded.status is S.AWAITING_RETURN
    assert history[-1].notes == EVENT_END_NOTE


async def test_rerun_on_the_same_day_is_a_no_op(runner, session_maker, make_order):
    order = await make_order(status=S.DELIVERED, event_start_date=TODAY, event_end_date=TODAY + timedelta(days=1))

    first = await runner.run_scheduled_transitions(TODAY)
    second = await runner.run_scheduled_transitions(TODAY)

    assert first.transitioned_count == 1
    assert second.transitioned_count == 0
    _, history = await _load(session_maker, order.id)
    assert len(history) == 1


async def test_only_due_active_orders_are_picked(runner, session_maker, make_order, actor_id):
    tomorrow = await make_order(status=S.DELIVERED, event_start_date=TODAY + timedelta(days=1))
    wrong_status = await make_order(status=S.IN_TRANSIT, event_start_date=TODAY)
    deleted = await make_order(status=S.DELIVERED, event_start_date=TODAY)
    async with session_maker() as session:
        await OrderLifecycleService(session).soft_delete_order(deleted.id, actor_id)

    summary = await runner.run_scheduled_transitions(TODAY)

    assert summary.transitioned_count == 0
    assert (await _load(session_maker, tomorrow.id))[0].status is S.DELIVERED
    assert (await _load(session_maker, wrong_status.id))[0].status is S.IN_TRANSIT


async def test_one_failing_order_does_not_stop_the_batch(runner, session_maker, make_order, monkeypatch):
    bad = await make_order(status=S.DELIVERED, event_start_date=TODAY)
    good = await make_order(status=S.DELIVERED, event_start_date=TODAY)
    bad_id = bad.id
    real_transition = OrderLifecycleService.transition

    async def flaky(self, order_id, *args, **kwargs):
        if order_id == bad_id:
            raise RuntimeError("database hiccup")
        return await real_transition(self, order_id, *args, **kwargs)

    monkeypatch.setattr(OrderLifecycleService, "transition", flaky)

    summary = await runner.run_scheduled_transitions(TODAY)

    assert summary.event_start == 1
    assert len(summary.failed) == 1
    assert summary.failed[0].order_id == bad_id
    assert summary.failed[0].target_status is S.IN_USE
    assert "database hiccup" in summary.failed[0].error
    assert (await _load(session_maker, good.id))[0].status is S.IN_USE
    assert (await _load(session_maker, bad_id))[0].status is S.DELIVERED


async def test_pickup_reminders_within_horizon(runner, session, make_order, dispatcher):
    due = await make_order(status=S.IN_USE, pickup_window_start=NOW + timedelta(hours=24))
    await make_order(status=S.IN_USE, pickup_window_start=NOW + timedelta(hours=72))
    await make_order(status=S.DRAFT, pickup_window_start=NOW + timedelta(hours=24))
    already = await make_order(status=S.AWAITING_RETURN, pickup_window_start=NOW + timedelta(hours=12))
    session.add(
        NotificationRecord(
            order_id=already.id,
            notification_type=NotificationType.PICKUP_REMINDER,
            recipients={"to": ["client@example.com"], "cc": []},
            status=NotificationStatus.SENT,
            attempts=1,
        )
    )
    await session.commit()

    summary = await runner.send_pickup_reminders(NOW)

    assert summary.order_ids == [due.id]
    assert summary.reminders_queued == 1
    assert summary.window_end - summary.window_start == timedelta(hours=48)
    assert dispatcher.sent == [(NotificationType.PICKUP_REMINDER, due.id)]


async def test_pickup_reminders_are_claimed_once(runner, session_maker, make_order, dispatcher):
    due = await make_order(status=S.IN_USE, pickup_window_start=NOW + timedelta(hours=24))

    first = await runner.send_pickup_reminders(NOW)
    second = await runner.send_pickup_reminders(NOW + timedelta(hours=1))

    assert first.order_ids == [due.id]
    assert second.order_ids == []
    assert dispatcher.sent == [(NotificationType.PICKUP_REMINDER, due.id)]
    async with session_maker() as session:
        [claimed] = await NotificationRepository(session).list_records(order_id=due.id)
    assert claimed.status is NotificationStatus.PENDING
    assert claimed.notification_type is NotificationType.PICKUP_REMINDER
    assert dispatcher.record_ids == [claimed.id]


async def test_failed_pickup_reminder_is_not_requeued(runner, session, make_order, dispatcher):
    failed = await make_order(status=S.AWAITING_RETURN, pickup_window_start=NOW + timedelta(hours=6))
    session.add(
        NotificationRecord(
            order_id=failed.id,
            notification_type=NotificationType.PICKUP_REMINDER,
            recipients={"to": ["client@example.com"], "cc": []},
            status=NotificationStatus.FAILED,
            attempts=3,
            error_message="SMTP 451 temporary failure",
        )
    )
    await session.commit()

    summary = await runner.send_pickup_reminders(NOW)

    assert summary.reminders_queued == 0
    assert dispatcher.sent == []
