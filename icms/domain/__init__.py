"""Pure decision functions for the event, registration and certificate lifecycle.

Nothing in this package performs I/O; services feed it snapshots and apply
the decisions it returns.
"""

from .aggregates import CapacityFill, capacity_fill, count_by, revenue_by_payment_status
from .eligibility import EligibilityDecision, can_generate, is_generation_listed
from .enums import (
    CertificateStatus,
    EventStatus,
    EventType,
    PaymentStatus,
    RegistrationStatus,
)
from .publishing import PublishValidation, validate_for_publish
from .status import compute_status, event_window, resolve_event_status
from .transitions import (
    TransitionDecision,
    available_actions,
    check_payment_transition,
    check_transition,
)

__all__ = [
    "CapacityFill",
    "CertificateStatus",
    "EligibilityDecision",
    "EventStatus",
    "EventType",
    "PaymentStatus",
    "PublishValidation",
    "RegistrationStatus",
    "TransitionDecision",
    "available_actions",
    "can_generate",
    "capacity_fill",
    "check_payment_transition",
    "check_transition",
    "compute_status",
    "count_by",
    "event_window",
    "is_generation_listed",
    "resolve_event_status",
    "revenue_by_payment_status",
    "validate_for_publish",
]
