from __future__ import annotations

from datetime import date, datetime
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field

from rental_api.domain.enums import OrderStatus


class FailedTransitionRead(BaseModel):
    order_id: UUID
    target_status: OrderStatus
    error: str


class ScheduledRunRead(BaseModel):
    """Outcome of the daily event-date run."""
    run_date: date
    event_start: int = Field(..., description="Orders moved DELIVERED -> IN_USE")
    event_end: int = Field(..., description="Orders moved IN_USE -> AWAITING_RETURN")
    transitioned_count: int
    failed: List[FailedTransitionRead] = Field(default_factory=list)


class PickupReminderRead(BaseModel):
    window_start: datetime
    window_end: datetime
    reminders_queued: int
    order_ids: List[UUID] = Field(default_factory=list)
