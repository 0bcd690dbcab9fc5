from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from rental_api.domain.enums import NotificationStatus, NotificationType


class NotificationRecordRead(BaseModel):
    """Notification ledger row."""
    id: UUID
    order_id: UUID
    notification_type: NotificationType
    recipients: Dict[str, List[str]] = Field(default_factory=dict)
    status: NotificationStatus
    attempts: int
    last_attempt_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
