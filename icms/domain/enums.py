"""Status enumerations shared by the domain modules, models and API."""
from __future__ import annotations

import enum


class EventStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    UPCOMING = "UPCOMING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class EventType(str, enum.Enum):
    CONFERENCE = "CONFERENCE"
    WORKSHOP = "WORKSHOP"
    SEMINAR = "SEMINAR"
    WEBINAR = "WEBINAR"
    CME = "CME"
    SYMPOSIUM = "SYMPOSIUM"


class RegistrationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    WAITLIST = "WAITLIST"
    ATTENDED = "ATTENDED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FREE = "FREE"
    REFUNDED = "REFUNDED"
    FAILED = "FAILED"


class CertificateStatus(str, enum.Enum):
    PENDING = "PENDING"
    ISSUED = "ISSUED"
    REVOKED = "REVOKED"


class CertificateAction(str, enum.Enum):
    CREATED = "CREATED"
    ISSUED = "ISSUED"
    REVOKED = "REVOKED"
    REGENERATED = "REGENERATED"


# Registrations occupying a seat; ATTENDED ones were CONFIRMED before check-in.
SEAT_HOLDING_STATUSES = frozenset(
    {RegistrationStatus.CONFIRMED, RegistrationStatus.ATTENDED}
)


def values(enum_cls) -> tuple:
    """Return the raw string values of an enumeration, in declaration order."""

    return tuple(member.value for member in enum_cls)
