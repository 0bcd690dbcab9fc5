from datetime import date

import pytest

from rental_api.core.errors import GuardNotSatisfied
from rental_api.domain import lifecycle as rules
from rental_api.domain.enums import ActorRole, FinancialStatus, NotificationType, OrderStatus

S = OrderStatus


def test_terminal_statuses_have_no_exits():
    for status in (S.CLOSED, S.DECLINED, S.CANCELLED):
        assert rules.ALLOWED_TRANSITIONS[status] == frozenset()
        for target in OrderStatus:
            assert not rules.is_valid_transition(status, target)


def test_every_active_status_can_be_cancelled():
    for status in OrderStatus:
        if status in rules.TERMINAL_STATUSES:
            continue
        assert rules.is_valid_transition(status, S.CANCELLED), status


@pytest.mark.parametrize(
    "current,target",
    [
        (S.DRAFT, S.SUBMITTED),
        (S.PRICING_REVIEW, S.QUOTED),
        (S.PRICING_REVIEW, S.PENDING_APPROVAL),
        (S.CONFIRMED, S.AWAITING_FABRICATION),
        (S.CONFIRMED, S.IN_PREPARATION),
        (S.AWAITING_RETURN, S.CLOSED),
    ],
)
def test_forward_pairs_are_allowed(current, target):
    assert rules.is_valid_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (S.DRAFT, S.QUOTED),
        (S.SUBMITTED, S.DRAFT),
        (S.IN_PREPARATION, S.IN_TRANSIT),
        (S.DELIVERED, S.CLOSED),
        (S.QUOTED, S.QUOTED),
    ],
)
def test_pairs_outside_the_table_are_rejected(current, target):
    assert not rules.is_valid_transition(current, target)


def test_every_status_is_covered_by_the_table():
    assert set(rules.ALLOWED_TRANSITIONS) == set(OrderStatus)


def test_notification_mapping():
    assert rules.notification_for(S.DRAFT, S.SUBMITTED) is NotificationType.ORDER_SUBMITTED
    assert rules.notification_for(S.PRICING_REVIEW, S.QUOTED) is NotificationType.QUOTE_SENT
    assert rules.notification_for(S.PENDING_APPROVAL, S.QUOTED) is NotificationType.QUOTE_SENT
    assert rules.notification_for(S.CONFIRMED, S.IN_PREPARATION) is NotificationType.ORDER_CONFIRMED
    assert rules.notification_for(S.IN_USE, S.CANCELLED) is NotificationType.ORDER_CANCELLED
    # Transitions without a message.
    assert rules.notification_for(S.SUBMITTED, S.PRICING_REVIEW) is None
    assert rules.notification_for(S.DELIVERED, S.IN_USE) is None


def test_financial_table():
    F = FinancialStatus
    assert rules.is_valid_financial_transition(F.PENDING_QUOTE, F.QUOTE_SENT)
    assert rules.is_valid_financial_transition(F.QUOTE_SENT, F.PENDING_QUOTE)
    assert rules.is_valid_financial_transition(F.INVOICED, F.PAID)
    assert rules.is_valid_financial_transition(F.INVOICED, F.CANCELLED)
    assert not rules.is_valid_financial_transition(F.PENDING_QUOTE, F.PAID)
    assert not rules.is_valid_financial_transition(F.PAID, F.CANCELLED)


def test_event_date_guard():
    rules.require_event_date(date(2026, 10, 19), date(2026, 10, 19), "event_not_started")
    with pytest.raises(GuardNotSatisfied) as exc:
        rules.require_event_date(date(2026, 10, 18), date(2026, 10, 19), "event_not_started")
    assert exc.value.code == "event_not_started"
    assert exc.value.details["event_date"] == "2026-10-19"

    with pytest.raises(GuardNotSatisfied):
        rules.require_event_date(date(2026, 10, 19), None, "event_not_ended")


def test_cancellation_reason_must_not_be_blank():
    assert rules.require_cancellation_reason("  venue closed ") == "venue closed"
    for blank in (None, "", "   "):
        with pytest.raises(GuardNotSatisfied) as exc:
            rules.require_cancellation_reason(blank)
        assert exc.value.code == "cancellation_reason_missing"


def test_decline_is_client_only():
    rules.require_client_decision(ActorRole.CLIENT_USER)
    rules.require_client_decision(ActorRole.PMG_ADMIN)
    rules.require_client_decision(None)
    with pytest.raises(GuardNotSatisfied):
        rules.require_client_decision(ActorRole.A2_STAFF)
