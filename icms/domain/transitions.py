"""Registration and payment state machines.

The tables below are the only place transitions are defined. Action
availability for clients and the server-side guard both read from them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .enums import EventStatus, PaymentStatus, RegistrationStatus

__all__ = [
    "CONFIRM",
    "ATTEND",
    "CANCEL",
    "REGISTRATION_ACTIONS",
    "REGISTRATION_TRANSITIONS",
    "MARK_PAID",
    "MARK_FREE",
    "REFUND",
    "FAIL",
    "PAYMENT_ACTIONS",
    "PAYMENT_TRANSITIONS",
    "TransitionDecision",
    "check_transition",
    "check_payment_transition",
    "available_actions",
    "decide_initial_status",
]

CONFIRM = "confirm"
ATTEND = "attend"
CANCEL = "cancel"
REGISTRATION_ACTIONS = (CONFIRM, ATTEND, CANCEL)

MARK_PAID = "mark_paid"
MARK_FREE = "mark_free"
REFUND = "refund"
FAIL = "fail"
PAYMENT_ACTIONS = (MARK_PAID, MARK_FREE, REFUND, FAIL)

_R = RegistrationStatus
_P = PaymentStatus

REGISTRATION_TRANSITIONS: Dict[Tuple[RegistrationStatus, str], RegistrationStatus] = {
    (_R.PENDING, CONFIRM): _R.CONFIRMED,
    (_R.WAITLIST, CONFIRM): _R.CONFIRMED,
    (_R.CONFIRMED, ATTEND): _R.ATTENDED,
    (_R.PENDING, CANCEL): _R.CANCELLED,
    (_R.CONFIRMED, CANCEL): _R.CANCELLED,
    (_R.WAITLIST, CANCEL): _R.CANCELLED,
}

# Target state of each action, used to recognise an already-applied transition.
_ACTION_TARGETS = {
    CONFIRM: _R.CONFIRMED,
    ATTEND: _R.ATTENDED,
    CANCEL: _R.CANCELLED,
}

_CAPACITY_GATED = {(_R.PENDING, CONFIRM), (_R.WAITLIST, CONFIRM)}

PAYMENT_TRANSITIONS: Dict[Tuple[PaymentStatus, str], PaymentStatus] = {
    (_P.PENDING, MARK_PAID): _P.PAID,
    (_P.PENDING, MARK_FREE): _P.FREE,
}
for _status in PaymentStatus:
    PAYMENT_TRANSITIONS[(_status, REFUND)] = _P.REFUNDED
    PAYMENT_TRANSITIONS[(_status, FAIL)] = _P.FAILED

_PAYMENT_TARGETS = {
    MARK_PAID: _P.PAID,
    MARK_FREE: _P.FREE,
    REFUND: _P.REFUNDED,
    FAIL: _P.FAILED,
}


@dataclass(frozen=True)
class TransitionDecision:
    """Outcome of checking an action against the current state."""

    allowed: bool
    current: str
    action: str
    target: Optional[str] = None
    noop: bool = False
    requires_capacity: bool = False
    reason: Optional[str] = None


def check_transition(
    current: RegistrationStatus,
    action: str,
    *,
    event_status: Optional[EventStatus] = None,
) -> TransitionDecision:
    """Decide whether ``action`` may be applied to a registration in ``current``."""

    current = RegistrationStatus(current)
    if action not in REGISTRATION_ACTIONS:
        return TransitionDecision(
            allowed=False,
            current=current.value,
            action=action,
            reason=f"Unknown registration action '{action}'.",
        )

    if _ACTION_TARGETS[action] == current:
        return TransitionDecision(
            allowed=True,
            current=current.value,
            action=action,
            target=current.value,
            noop=True,
        )

    target = REGISTRATION_TRANSITIONS.get((current, action))
    if target is None:
        if current in (_R.ATTENDED, _R.CANCELLED):
            reason = (
                f"Registration is {current.value.lower()}; no further status changes "
                "are allowed."
            )
        else:
            reason = f"Cannot {action} a registration that is {current.value.lower()}."
        return TransitionDecision(
            allowed=False, current=current.value, action=action, reason=reason
        )

    if action == CANCEL and event_status == EventStatus.COMPLETED:
        return TransitionDecision(
            allowed=False,
            current=current.value,
            action=action,
            reason="Event is completed; attendance is closed and registrations cannot be cancelled.",
        )
    if action == ATTEND and event_status == EventStatus.CANCELLED:
        return TransitionDecision(
            allowed=False,
            current=current.value,
            action=action,
            reason="Event has been cancelled; attendance cannot be recorded.",
        )

    return TransitionDecision(
        allowed=True,
        current=current.value,
        action=action,
        target=target.value,
        requires_capacity=(current, action) in _CAPACITY_GATED,
    )


def check_payment_transition(current: PaymentStatus, action: str) -> TransitionDecision:
    current = PaymentStatus(current)
    if action not in PAYMENT_ACTIONS:
        return TransitionDecision(
            allowed=False,
            current=current.value,
            action=action,
            reason=f"Unknown payment action '{action}'.",
        )
    if _PAYMENT_TARGETS[action] == current:
        return TransitionDecision(
            allowed=True, current=current.value, action=action, target=current.value, noop=True
        )
    target = PAYMENT_TRANSITIONS.get((current, action))
    if target is None:
        return TransitionDecision(
            allowed=False,
            current=current.value,
            action=action,
            reason=f"Cannot {action.replace('_', ' ')} a payment that is {current.value.lower()}.",
        )
    return TransitionDecision(
        allowed=True, current=current.value, action=action, target=target.value
    )


def available_actions(
    status: RegistrationStatus,
    payment_status: Optional[PaymentStatus] = None,
    *,
    event_status: Optional[EventStatus] = None,
) -> List[str]:
    """Actions a client may offer for a registration, excluding no-ops."""

    actions = []
    for action in REGISTRATION_ACTIONS:
        decision = check_transition(status, action, event_status=event_status)
        if decision.allowed and not decision.noop:
            actions.append(action)
    if payment_status is not None:
        # Gateway-driven outcomes are never offered as manual actions.
        for action in (MARK_PAID, MARK_FREE):
            decision = check_payment_transition(payment_status, action)
            if decision.allowed and not decision.noop:
                actions.append(action)
    return actions


def decide_initial_status(
    requested: RegistrationStatus, *, seats_taken: int, capacity: int
) -> RegistrationStatus:
    """Status a new registration starts in, given the seats already taken.

    CANCELLED and ATTENDED cannot be requested at creation; they fall back to
    PENDING. A full event places every newcomer on the waitlist.
    """

    requested = RegistrationStatus(requested)
    if requested not in (_R.PENDING, _R.CONFIRMED, _R.WAITLIST):
        requested = _R.PENDING
    if requested != _R.WAITLIST and seats_taken >= capacity:
        return _R.WAITLIST
    return requested
