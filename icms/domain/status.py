"""Time-derived event status.

Status is never scheduled: callers recompute it from the event window each
time they need it. Only the CANCELLED override is stored.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from typing import Optional, Tuple, Union

from .enums import EventStatus

__all__ = [
    "compute_status",
    "resolve_event_status",
    "event_window",
    "parse_time_of_day",
    "to_utc_naive",
    "utcnow",
]

TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

DateLike = Union[date, datetime]


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime, matching what the database stores."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime.combine(value, time.min)


def parse_time_of_day(value: Optional[str]) -> Optional[time]:
    """Parse an ``HH:MM`` string, returning ``None`` when absent or malformed."""

    if not isinstance(value, str):
        return None
    match = TIME_OF_DAY_PATTERN.match(value.strip())
    if match is None:
        return None
    return time(int(match.group(1)), int(match.group(2)))


def event_window(
    start_date: DateLike,
    end_date: DateLike,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
) -> Tuple[datetime, datetime]:
    """Return the ``(start, end)`` instants of an event.

    A time-of-day, when given, replaces the time component of its date. An
    end given as a bare date (or midnight) with no end time covers that whole
    day.
    """

    start = to_utc_naive(start_date)
    end = to_utc_naive(end_date)
    parsed_start = parse_time_of_day(start_time)
    parsed_end = parse_time_of_day(end_time)
    if parsed_start is not None:
        start = datetime.combine(start.date(), parsed_start)
    if parsed_end is not None:
        end = datetime.combine(end.date(), parsed_end)
    elif end.time() == time.min:
        end = datetime.combine(end.date(), time.max)
    return start, end


def compute_status(start: DateLike, end: DateLike, now: DateLike) -> EventStatus:
    """Map the event window and the current instant to a lifecycle status."""

    start_at = to_utc_naive(start)
    end_at = to_utc_naive(end)
    current = to_utc_naive(now)
    if current < start_at:
        return EventStatus.UPCOMING
    if current <= end_at:
        return EventStatus.ACTIVE
    return EventStatus.COMPLETED


def resolve_event_status(
    *,
    is_published: bool,
    cancelled: bool,
    start: Optional[DateLike],
    end: Optional[DateLike],
    now: DateLike,
) -> EventStatus:
    """Apply the CANCELLED and DRAFT overrides on top of :func:`compute_status`."""

    if cancelled:
        return EventStatus.CANCELLED
    if not is_published or start is None or end is None:
        return EventStatus.DRAFT
    return compute_status(start, end, now)
