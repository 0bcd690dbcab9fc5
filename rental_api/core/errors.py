"""
Domain error taxonomy.

Services raise these; the API layer converts them into the standard
ErrorResponse envelope (see rental_api.api.main). Each error carries its HTTP
status and a machine-readable type code so callers can branch on it.
"""
from __future__ import annotations

from typing import Any, Optional


class DomainError(Exception):
    """Base class for errors that are part of the service contract."""

    status_code: int = 400
    error_type: str = "domain_error"
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(DomainError):
    """Malformed or out-of-range input (non-positive price, blank reason...)."""

    status_code = 422
    error_type = "validation_error"


class NotFound(DomainError):
    """Order, tier, company or notification record does not exist."""

    status_code = 404
    error_type = "not_found"

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} not found", details={"entity": entity, "id": str(entity_id)})
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransition(DomainError):
    """The (current, target) status pair is not in the transition table."""

    status_code = 409
    error_type = "invalid_transition"

    def __init__(self, current: Any, target: Any, message: Optional[str] = None) -> None:
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            message or f"Invalid state transition from {current_value} to {target_value}",
            details={"current_status": current_value, "target_status": target_value},
        )
        self.current = current
        self.target = target


class GuardNotSatisfied(DomainError):
    """A transition precondition (scans, approval, date, reason) is unmet."""

    status_code = 409
    error_type = "guard_not_satisfied"

    def __init__(self, code: str, message: str, **detail: Any) -> None:
        super().__init__(message, details={"guard": code, **detail})
        self.code = code
        self.detail = detail


class PersistenceConflict(DomainError):
    """A concurrent writer changed the order first. Safe to retry."""

    status_code = 409
    error_type = "persistence_conflict"
    retryable = True

    def __init__(self, message: str = "Order was modified concurrently; retry the request") -> None:
        super().__init__(message, details={"retryable": True})


class NotificationDeliveryFailure(Exception):
    """
    Raised by notification senders. Never propagated to transition callers:
    the dispatcher records it in the notification ledger.
    """
