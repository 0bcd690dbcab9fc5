"""
Order lifecycle rules: the transition table, guard checks and the
transition -> notification mapping.

Everything here is pure; rental_api.services.lifecycle loads orders, evaluates
these rules under a row lock and persists the result.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, FrozenSet, Optional
from uuid import UUID

from rental_api.core.errors import GuardNotSatisfied
from rental_api.domain.enums import ActorRole, FinancialStatus, NotificationType, OrderStatus
from rental_api.domain.scanning import GateResult


@dataclass(frozen=True)
class Actor:
    """The caller of an operation, threaded explicitly through every service call."""

    id: UUID
    role: ActorRole


S = OrderStatus

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({S.CLOSED, S.DECLINED, S.CANCELLED})

# Orders that already reached the venue; cancelling them has billing consequences.
POST_DELIVERY_STATUSES: FrozenSet[OrderStatus] = frozenset({S.DELIVERED, S.IN_USE, S.AWAITING_RETURN})

_FORWARD: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.DRAFT: frozenset({S.SUBMITTED}),
    S.SUBMITTED: frozenset({S.PRICING_REVIEW}),
    S.PRICING_REVIEW: frozenset({S.PENDING_APPROVAL, S.QUOTED}),
    S.PENDING_APPROVAL: frozenset({S.QUOTED}),
    S.QUOTED: frozenset({S.CONFIRMED, S.DECLINED}),
    S.CONFIRMED: frozenset({S.AWAITING_FABRICATION, S.IN_PREPARATION}),
    S.AWAITING_FABRICATION: frozenset({S.IN_PREPARATION}),
    S.IN_PREPARATION: frozenset({S.READY_FOR_DELIVERY}),
    S.READY_FOR_DELIVERY: frozenset({S.IN_TRANSIT}),
    S.IN_TRANSIT: frozenset({S.DELIVERED}),
    S.DELIVERED: frozenset({S.IN_USE}),
    S.IN_USE: frozenset({S.AWAITING_RETURN}),
    S.AWAITING_RETURN: frozenset({S.CLOSED}),
}

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    status: (
        frozenset()
        if status in TERMINAL_STATUSES
        else _FORWARD.get(status, frozenset()) | {S.CANCELLED}
    )
    for status in OrderStatus
}

F = FinancialStatus

FINANCIAL_TRANSITIONS: Dict[FinancialStatus, FrozenSet[FinancialStatus]] = {
    F.PENDING_QUOTE: frozenset({F.QUOTE_SENT, F.CANCELLED}),
    F.QUOTE_SENT: frozenset({F.QUOTE_ACCEPTED, F.PENDING_QUOTE, F.CANCELLED}),
    F.QUOTE_ACCEPTED: frozenset({F.PENDING_INVOICE, F.CANCELLED}),
    F.PENDING_INVOICE: frozenset({F.INVOICED, F.CANCELLED}),
    F.INVOICED: frozenset({F.PAID, F.CANCELLED}),
    F.PAID: frozenset(),
    F.CANCELLED: frozenset(),
}

_NOTIFICATIONS: Dict[tuple, NotificationType] = {
    (S.DRAFT, S.SUBMITTED): NotificationType.ORDER_SUBMITTED,
    (S.PRICING_REVIEW, S.PENDING_APPROVAL): NotificationType.A2_ADJUSTED_PRICING,
    (S.PRICING_REVIEW, S.QUOTED): NotificationType.QUOTE_SENT,
    (S.PENDING_APPROVAL, S.QUOTED): NotificationType.QUOTE_SENT,
    (S.QUOTED, S.CONFIRMED): NotificationType.QUOTE_APPROVED,
    (S.QUOTED, S.DECLINED): NotificationType.QUOTE_DECLINED,
    (S.CONFIRMED, S.IN_PREPARATION): NotificationType.ORDER_CONFIRMED,
    (S.IN_PREPARATION, S.READY_FOR_DELIVERY): NotificationType.READY_FOR_DELIVERY,
    (S.READY_FOR_DELIVERY, S.IN_TRANSIT): NotificationType.IN_TRANSIT,
    (S.IN_TRANSIT, S.DELIVERED): NotificationType.DELIVERED,
    (S.AWAITING_RETURN, S.CLOSED): NotificationType.ORDER_CLOSED,
}


# PUBLIC_INTERFACE
def is_valid_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """True if (current, target) is in the transition table."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


# PUBLIC_INTERFACE
def is_valid_financial_transition(current: FinancialStatus, target: FinancialStatus) -> bool:
    """True if the financial status may move from current to target."""
    return target in FINANCIAL_TRANSITIONS.get(current, frozenset())


# PUBLIC_INTERFACE
def notification_for(current: OrderStatus, target: OrderStatus) -> Optional[NotificationType]:
    """Notification to enqueue after a successful transition, if any."""
    if target is S.CANCELLED:
        return NotificationType.ORDER_CANCELLED
    return _NOTIFICATIONS.get((current, target))


def require_pricing_approved(order) -> None:
    """Quotes may only go out once the margin and final total are recorded."""
    missing = [
        name
        for name in ("pmg_margin_percent", "pmg_margin_amount", "final_total_price")
        if getattr(order, name) is None
    ]
    if missing:
        raise GuardNotSatisfied(
            "pricing_approval_missing",
            "Pricing approval has not been recorded for this order",
            missing_fields=missing,
        )


def require_items(item_count: int) -> None:
    if item_count < 1:
        raise GuardNotSatisfied(
            "order_items_missing", "Order must contain at least one item before submission", item_count=item_count
        )


def require_adjustment_recorded(order) -> None:
    """PENDING_APPROVAL is only reachable through the A2 adjustment step."""
    missing = [name for name in ("a2_adjusted_price", "a2_adjustment_reason") if not getattr(order, name)]
    if missing:
        raise GuardNotSatisfied(
            "pricing_adjustment_missing",
            "A2 pricing adjustment has not been recorded for this order",
            missing_fields=missing,
        )


def require_scan_gate(gate: GateResult) -> None:
    if not gate.satisfied:
        direction = gate.scan_type.value.lower()
        raise GuardNotSatisfied(
            f"{direction}_scan_incomplete",
            f"Not all items scanned {'out' if direction == 'outbound' else 'in'}. "
            f"Scanned: {gate.scanned}, Required: {gate.required}",
            scan_type=gate.scan_type.value,
            required=gate.required,
            scanned=gate.scanned,
            shortfall=gate.shortfall,
        )


def require_event_date(today: date, event_date: Optional[date], code: str) -> None:
    if event_date is None:
        raise GuardNotSatisfied(code, "Order has no event date set", event_date=None, today=today.isoformat())
    if today < event_date:
        raise GuardNotSatisfied(
            code,
            f"Transition not allowed before {event_date.isoformat()}",
            event_date=event_date.isoformat(),
            today=today.isoformat(),
        )


def require_cancellation_reason(note: Optional[str]) -> str:
    reason = (note or "").strip()
    if not reason:
        raise GuardNotSatisfied("cancellation_reason_missing", "A cancellation reason is required")
    return reason


def require_client_decision(actor_role: Optional[ActorRole]) -> None:
    """Only the client (or a PMG admin forcing it) may decline a quote."""
    if actor_role is not None and actor_role not in (ActorRole.CLIENT_USER, ActorRole.PMG_ADMIN):
        raise GuardNotSatisfied(
            "client_decision_required",
            "Only the client can decline a quote",
            actor_role=actor_role.value,
        )
