from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from rental_api.core.deps import get_transition_runner, require_cron_secret
from rental_api.schemas.cron import FailedTransitionRead, PickupReminderRead, ScheduledRunRead
from rental_api.services.scheduler import ScheduledTransitionRunner

router = APIRouter(prefix="/cron", tags=["Scheduler"], dependencies=[Depends(require_cron_secret)])


# PUBLIC_INTERFACE
@router.post(
    "/event-transitions",
    response_model=ScheduledRunRead,
    summary="Run event start/end transitions",
    description=(
        "Moves DELIVERED orders whose event starts today to IN_USE and IN_USE orders whose event "
        "ends today to AWAITING_RETURN. Requires 'Authorization: Bearer <CRON_SECRET>'."
    ),
)
async def run_event_transitions(
    run_date: Optional[date] = Query(None, description="Override the run date (defaults to today)"),
    runner: ScheduledTransitionRunner = Depends(get_transition_runner),
) -> ScheduledRunRead:
    summary = await runner.run_scheduled_transitions(run_date)
    return ScheduledRunRead(
        run_date=summary.run_date,
        event_start=summary.event_start,
        event_end=summary.event_end,
        transitioned_count=summary.transitioned_count,
        failed=[
            FailedTransitionRead(order_id=f.order_id, target_status=f.target_status, error=f.error)
            for f in summary.failed
        ],
    )


# PUBLIC_INTERFACE
@router.post("/pickup-reminders", response_model=PickupReminderRead, summary="Queue pickup reminders")
async def run_pickup_reminders(
    now: Optional[datetime] = Query(None, description="Override the reference time (defaults to now)"),
    runner: ScheduledTransitionRunner = Depends(get_transition_runner),
) -> PickupReminderRead:
    summary = await runner.send_pickup_reminders(now)
    return PickupReminderRead(
        window_start=summary.window_start,
        window_end=summary.window_end,
        reminders_queued=summary.reminders_queued,
        order_ids=summary.order_ids,
    )
