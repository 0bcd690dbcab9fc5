from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Plain acknowledgement, e.g. for a soft delete."""
    message: str = Field(..., description="Human readable message")
    details: Optional[dict] = Field(default=None, description="Optional extra data")


class HealthResponse(BaseModel):
    status: str = Field(default="ok")
    version: str = Field(..., description="Deployed application version")
    environment: Optional[str] = Field(default=None)
    notification_worker_running: bool = Field(..., description="Whether the background sender is consuming the queue")
    notifications_queued: int = Field(..., ge=0, description="Messages waiting in the in-process queue")


class ErrorInfo(BaseModel):
    """
    Machine-readable error part of the envelope.

    `type` is one of validation_error, not_found, invalid_transition,
    guard_not_satisfied, persistence_conflict, http_error or internal_error.
    """
    type: str = Field(..., description="Error type code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Any] = Field(default=None, description="Guard code, status pair, shortfall and similar context")
    retryable: bool = Field(default=False, description="True when the same request may succeed if repeated")


# PUBLIC_INTERFACE
class ErrorResponse(BaseModel):
    """Envelope returned for every non-2xx response."""
    status: int = Field(..., description="HTTP status code")
    error: ErrorInfo
    correlation_id: Optional[str] = Field(default=None, description="X-Correlation-ID of the request")
    actor_id: Optional[str] = Field(default=None, description="Calling actor (if authenticated)")
    path: Optional[str] = None
    method: Optional[str] = None
    timestamp: datetime = Field(..., description="Error timestamp (UTC)")
