from icms.domain.enums import EventStatus, PaymentStatus, RegistrationStatus
from icms.domain.transitions import (
    ATTEND,
    CANCEL,
    CONFIRM,
    MARK_FREE,
    MARK_PAID,
    REFUND,
    available_actions,
    check_payment_transition,
    check_transition,
    decide_initial_status,
)

R = RegistrationStatus


def test_confirm_from_pending_and_waitlist_needs_a_seat():
    for status in (R.PENDING, R.WAITLIST):
        decision = check_transition(status, CONFIRM)
        assert decision.allowed
        assert decision.target == R.CONFIRMED.value
        assert decision.requires_capacity


def test_repeating_an_applied_action_is_a_noop():
    decision = check_transition(R.CONFIRMED, CONFIRM)
    assert decision.allowed and decision.noop
    decision = check_transition(R.CANCELLED, CANCEL)
    assert decision.allowed and decision.noop


def test_terminal_states_reject_changes():
    for status in (R.ATTENDED, R.CANCELLED):
        for action in (CONFIRM, ATTEND, CANCEL):
            decision = check_transition(status, action)
            if decision.noop:
                continue
            assert not decision.allowed
            assert "no further status changes" in decision.reason


def test_attend_requires_a_confirmed_registration():
    for status in (R.PENDING, R.WAITLIST):
        assert not check_transition(status, ATTEND).allowed
    attend = check_transition(R.CONFIRMED, ATTEND, event_status=EventStatus.COMPLETED)
    assert attend.allowed and not attend.requires_capacity


def test_cancel_is_blocked_once_the_event_is_completed():
    decision = check_transition(R.CONFIRMED, CANCEL, event_status=EventStatus.COMPLETED)
    assert not decision.allowed
    assert "completed" in decision.reason
    assert check_transition(R.CONFIRMED, CANCEL, event_status=EventStatus.ACTIVE).allowed


def test_unknown_action_is_rejected():
    decision = check_transition(R.PENDING, "approve")
    assert not decision.allowed


def test_available_actions_match_the_guard():
    assert available_actions(R.PENDING, PaymentStatus.PENDING) == [
        CONFIRM,
        CANCEL,
        MARK_PAID,
        MARK_FREE,
    ]
    assert available_actions(
        R.CONFIRMED, PaymentStatus.PAID, event_status=EventStatus.COMPLETED
    ) == [ATTEND]
    assert available_actions(R.ATTENDED) == []


def test_payment_transitions():
    assert check_payment_transition(PaymentStatus.PENDING, MARK_PAID).target == "PAID"
    assert check_payment_transition(PaymentStatus.PAID, MARK_PAID).noop
    assert not check_payment_transition(PaymentStatus.PAID, MARK_FREE).allowed
    assert check_payment_transition(PaymentStatus.PAID, REFUND).target == "REFUNDED"


def test_initial_status_respects_capacity():
    assert decide_initial_status(R.CONFIRMED, seats_taken=1, capacity=2) == R.CONFIRMED
    assert decide_initial_status(R.CONFIRMED, seats_taken=2, capacity=2) == R.WAITLIST
    assert decide_initial_status(R.PENDING, seats_taken=5, capacity=2) == R.WAITLIST
    assert decide_initial_status(R.PENDING, seats_taken=0, capacity=0) == R.WAITLIST
    assert decide_initial_status(R.WAITLIST, seats_taken=0, capacity=10) == R.WAITLIST
    assert decide_initial_status(R.ATTENDED, seats_taken=0, capacity=10) == R.PENDING


def test_attend_is_blocked_on_a_cancelled_event():
    decision = check_transition(R.CONFIRMED, ATTEND, event_status=EventStatus.CANCELLED)
    assert not decision.allowed
    assert "cancelled" in decision.reason
    assert check_transition(R.CONFIRMED, ATTEND, event_status=EventStatus.UPCOMING).allowed
    assert available_actions(R.CONFIRMED, event_status=EventStatus.CANCELLED) == [CANCEL]
