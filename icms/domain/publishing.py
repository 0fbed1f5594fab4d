"""Checks an event must pass before it may be published."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Mapping, Optional

from .status import parse_time_of_day, to_utc_naive

__all__ = ["EMAIL_PATTERN", "PublishValidation", "validate_for_publish"]

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
LOCATION_PLACEHOLDERS = {"TBA", "TBD"}


@dataclass(frozen=True)
class PublishValidation:
    is_valid: bool
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"is_valid": self.is_valid, "errors": list(self.errors)}


def _blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, (date, datetime)):
        return to_utc_naive(value)
    if isinstance(value, str) and value.strip():
        try:
            return to_utc_naive(datetime.fromisoformat(value.strip()))
        except ValueError:
            return None
    return None


def _as_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def validate_for_publish(event: Mapping[str, Any]) -> PublishValidation:
    """Validate an event snapshot, accumulating every violation.

    The snapshot is read only; calling this repeatedly on the same input yields
    the same error list.
    """

    errors: List[str] = []

    if _blank(event.get("title")):
        errors.append("Event title is required")
    if _blank(event.get("description")):
        errors.append("Event description is required")

    start = _as_datetime(event.get("start_date"))
    end = _as_datetime(event.get("end_date"))
    if start is None:
        errors.append("Start date is required")
    if end is None:
        errors.append("End date is required")
    if start is not None and end is not None and start > end:
        errors.append("Start date must be on or before the end date")

    raw_start_time = event.get("start_time")
    raw_end_time = event.get("end_time")
    start_time = parse_time_of_day(raw_start_time)
    end_time = parse_time_of_day(raw_end_time)
    if not _blank(raw_start_time) and start_time is None:
        errors.append("Start time must use the HH:MM format")
    if not _blank(raw_end_time) and end_time is None:
        errors.append("End time must use the HH:MM format")
    if (
        start_time is not None
        and end_time is not None
        and start is not None
        and end is not None
        and start.date() == end.date()
        and start_time >= end_time
    ):
        errors.append("End time must be after the start time")

    raw_deadline = event.get("registration_deadline")
    if raw_deadline not in (None, ""):
        deadline = _as_datetime(raw_deadline)
        if deadline is None:
            errors.append("Registration deadline is invalid")
        elif start is not None and deadline > start:
            errors.append("Registration deadline must be on or before the start date")

    location = event.get("location")
    if not event.get("is_virtual") and (
        _blank(location) or location.strip().upper() in LOCATION_PLACEHOLDERS
    ):
        errors.append("Event location is required")

    capacity = event.get("capacity")
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
        errors.append("Event capacity must be set")

    if _blank(event.get("organizer")):
        errors.append("Organizer name is required")
    contact_email = event.get("contact_email")
    if _blank(contact_email):
        errors.append("Contact email is required")
    elif not EMAIL_PATTERN.match(contact_email.strip()):
        errors.append("Contact email is invalid")
    if _blank(event.get("contact_phone")):
        errors.append("Contact phone number is required")

    price = _as_decimal(event.get("price"))
    if price is None:
        errors.append("Event pricing must be set")
    elif price < 0:
        errors.append("Event price cannot be negative")

    if not event.get("speakers"):
        errors.append("At least one speaker is required")

    return PublishValidation(is_valid=not errors, errors=errors)
