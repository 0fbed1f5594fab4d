"""Service layer for event orchestration, publication and cancellation."""
from __future__ import annotations

import calendar
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from icms.domain.aggregates import capacity_fill
from icms.domain.enums import EventStatus, EventType, values
from icms.domain.publishing import EMAIL_PATTERN, validate_for_publish
from icms.domain.status import (
    TIME_OF_DAY_PATTERN,
    event_window,
    resolve_event_status,
    to_utc_naive,
    utcnow,
)
from icms.errors import IllegalTransitionError, NotFoundError, ValidationError
from icms.models import Event
from icms.repositories.events import EventRepository
from icms.repositories.registrations import RegistrationRepository

__all__ = [
    "EventService",
    "derive_event_status",
    "event_snapshot",
]

logger = logging.getLogger(__name__)

_TEXT_FIELDS = (
    "description",
    "location",
    "city",
    "organizer",
    "contact_phone",
    "signatory1_name",
    "signatory1_title",
    "signatory2_name",
    "signatory2_title",
)
_DATETIME_FIELDS = (
    "start_date",
    "end_date",
    "registration_deadline",
    "early_bird_deadline",
)
_MONEY_FIELDS = ("price", "early_bird_price", "cme_credits")
_BOOLEAN_FIELDS = ("is_virtual", "is_registration_open")
_DUPLICATE_MONTHS = 3
_PUBLIC_LISTING = (EventStatus.UPCOMING, EventStatus.ACTIVE)


def derive_event_status(event: Event, now: Optional[datetime] = None) -> EventStatus:
    """Recompute the lifecycle status of ``event`` at ``now``."""

    start = end = None
    if event.start_date is not None and event.end_date is not None:
        start, end = event_window(
            event.start_date, event.end_date, event.start_time, event.end_time
        )
    return resolve_event_status(
        is_published=bool(event.is_published),
        cancelled=event.cancelled_at is not None,
        start=start,
        end=end,
        now=now or utcnow(),
    )


def event_snapshot(event: Event) -> Dict[str, Any]:
    """Plain mapping of the fields the publish validator reads."""

    return {
        "title": event.title,
        "description": event.description,
        "start_date": event.start_date,
        "end_date": event.end_date,
        "start_time": event.start_time,
        "end_time": event.end_time,
        "registration_deadline": event.registration_deadline,
        "location": event.location,
        "is_virtual": event.is_virtual,
        "capacity": event.capacity,
        "organizer": event.organizer,
        "contact_email": event.contact_email,
        "contact_phone": event.contact_phone,
        "price": event.price,
        "speakers": [speaker.name for speaker in event.speakers],
    }


class EventService:
    """High level operations for managing events."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.repository = EventRepository(session)
        self.registrations = RegistrationRepository(session)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def list_events(
        self,
        *,
        event_type: Optional[str] = None,
        city: Optional[str] = None,
        search: Optional[str] = None,
        status: Optional[str] = None,
        published_only: bool = False,
    ) -> List[Dict[str, Any]]:
        status_filter = None
        if status:
            try:
                status_filter = EventStatus(status.strip().upper())
            except ValueError as exc:
                raise ValidationError({"status": ["Unknown event status."]}) from exc
        if event_type and event_type.strip().upper() not in values(EventType):
            raise ValidationError({"event_type": ["Unknown event type."]})

        events = self.repository.list_events(
            event_type=event_type.strip() if event_type else None,
            city=city.strip() if city else None,
            search=search.strip() if search else None,
            published=True if published_only else None,
        )
        now = utcnow()
        payload = []
        for event in events:
            current = derive_event_status(event, now)
            if published_only and current not in _PUBLIC_LISTING:
                continue
            if status_filter is not None and current != status_filter:
                continue
            payload.append(self._serialize_event(event, now=now))
        return payload

    def get_event(self, event_id: str, *, published_only: bool = False) -> Dict[str, Any]:
        event = self.repository.get_event(event_id)
        if published_only and derive_event_status(event) in (
            EventStatus.DRAFT,
            EventStatus.CANCELLED,
        ):
            # Drafts and cancelled events are invisible to the public.
            raise NotFoundError("Event", event_id)
        return self._serialize_event(event, include_speakers=True)

    def create_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        clean_payload = self._validate_event_payload(payload, require_title=True)
        event = self.repository.create_event(**clean_payload)
        self.session.commit()
        logger.info("Event %s created as draft", event.id)
        return self._serialize_event(event, include_speakers=True)

    def update_event(self, event_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        clean_payload = self._validate_event_payload(payload, require_title=False)
        event = self.repository.get_event(event_id)
        if not clean_payload:
            return self._serialize_event(event, include_speakers=True)

        speakers = clean_payload.pop("speakers", None)
        self._ensure_window(event, clean_payload)
        if "capacity" in clean_payload:
            taken = self.registrations.count_seats_taken(event.id)
            if clean_payload["capacity"] < taken:
                raise ValidationError(
                    {
                        "capacity": [
                            f"Capacity cannot be lower than the {taken} seat(s) already taken."
                        ]
                    }
                )

        event = self.repository.update_event(event, clean_payload)
        if speakers is not None:
            event = self.repository.replace_speakers(event, speakers)
        self.session.commit()
        return self._serialize_event(event, include_speakers=True)

    def delete_event(self, event_id: str) -> None:
        event = self.repository.get_event(event_id)
        if event.registrations:
            raise ValidationError(
                ["Cannot delete event with existing registrations. Cancel registrations first."],
                message="Event cannot be deleted.",
            )
        self.repository.remove_event(event)
        self.session.commit()
        logger.info("Event %s deleted", event_id)

    def publish_check(self, event_id: str) -> Dict[str, Any]:
        event = self.repository.get_event(event_id)
        return validate_for_publish(event_snapshot(event)).as_dict()

    def publish(self, event_id: str) -> Dict[str, Any]:
        event = self.repository.get_event(event_id)
        current = derive_event_status(event)
        if current == EventStatus.CANCELLED:
            raise IllegalTransitionError(
                current.value, "publish", "Cancelled events cannot be published."
            )
        if event.is_published:
            return self._serialize_event(event, include_speakers=True)

        validation = validate_for_publish(event_snapshot(event))
        if not validation.is_valid:
            logger.warning("Publish rejected for event %s: %s", event.id, validation.errors)
            raise ValidationError(validation.errors, message="Event cannot be published.")

        event = self.repository.update_event(
            event, {"is_published": True, "published_at": utcnow()}
        )
        self.session.commit()
        logger.info("Event %s published", event.id)
        return self._serialize_event(event, include_speakers=True)

    def unpublish(self, event_id: str) -> Dict[str, Any]:
        event = self.repository.get_event(event_id)
        current = derive_event_status(event)
        if current in (EventStatus.COMPLETED, EventStatus.CANCELLED):
            raise IllegalTransitionError(
                current.value,
                "unpublish",
                f"Event is {current.value.lower()} and cannot return to draft.",
            )
        if not event.is_published:
            return self._serialize_event(event, include_speakers=True)
        event = self.repository.update_event(
            event, {"is_published": False, "published_at": None}
        )
        self.session.commit()
        logger.info("Event %s unpublished", event.id)
        return self._serialize_event(event, include_speakers=True)

    def cancel(self, event_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        event = self.repository.lock_event(event_id)
        current = derive_event_status(event)
        if current == EventStatus.CANCELLED:
            return self._serialize_event(event, include_speakers=True)
        if current == EventStatus.COMPLETED:
            raise IllegalTransitionError(
                current.value, "cancel", "Completed events cannot be cancelled."
            )
        cleaned_reason = reason.strip() if isinstance(reason, str) and reason.strip() else None
        event = self.repository.update_event(
            event,
            {
                "cancelled_at": utcnow(),
                "cancellation_reason": cleaned_reason,
                "is_registration_open": False,
            },
        )
        self.session.commit()
        logger.info("Event %s cancelled (was %s)", event.id, current.value)
        return self._serialize_event(event, include_speakers=True)

    def duplicate(self, event_id: str) -> Dict[str, Any]:
        """Copy an event as a new draft scheduled three months after the original."""

        original = self.repository.get_event(event_id)
        base = original.end_date or original.start_date or utcnow()
        new_start = _add_months(base, _DUPLICATE_MONTHS)
        new_end = new_start
        if original.start_date and original.end_date:
            new_end = new_start + (original.end_date - original.start_date)

        def _shift(value: Optional[datetime]) -> Optional[datetime]:
            if value is None or original.start_date is None:
                return None
            return new_start + (value - original.start_date)

        fields = {
            column: getattr(original, column)
            for column in (
                "description",
                "event_type",
                "start_time",
                "end_time",
                "location",
                "city",
                "is_virtual",
                "capacity",
                "price",
                "currency",
                "early_bird_price",
                "organizer",
                "contact_email",
                "contact_phone",
                "cme_credits",
                "signatory1_name",
                "signatory1_title",
                "signatory2_name",
                "signatory2_title",
            )
        }
        copy = self.repository.create_event(
            title=f"{original.title} (Copy)",
            start_date=new_start,
            end_date=new_end,
            registration_deadline=_shift(original.registration_deadline),
            early_bird_deadline=_shift(original.early_bird_deadline),
            is_published=False,
            is_registration_open=True,
            speakers=[
                {
                    "name": speaker.name,
                    "designation": speaker.designation,
                    "institution": speaker.institution,
                    "session_title": speaker.session_title,
                    "session_order": speaker.session_order,
                }
                for speaker in original.speakers
            ],
            **fields,
        )
        self.session.commit()
        logger.info("Event %s duplicated as %s", original.id, copy.id)
        return self._serialize_event(copy, include_speakers=True)

    def capacity(self, event_id: str) -> Dict[str, Any]:
        event = self.repository.get_event(event_id)
        taken = self.registrations.count_seats_taken(event.id)
        payload = capacity_fill(taken, event.capacity).as_dict()
        payload["event_id"] = event.id
        payload["waitlist"] = len(self.registrations.waitlist(event.id))
        return payload

    def list_speakers(self, event_id: str) -> List[Dict[str, Any]]:
        event = self.repository.get_event(event_id)
        return [self._serialize_speaker(speaker) for speaker in event.speakers]

    def add_speaker(self, event_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        speaker = self._validate_speaker(payload)
        event = self.repository.get_event(event_id)
        assignment = self.repository.add_speaker(event, speaker)
        self.session.commit()
        return self._serialize_speaker(assignment)

    def remove_speaker(self, event_id: str, speaker_id: str) -> None:
        event = self.repository.get_event(event_id)
        self.repository.remove_speaker(event, speaker_id)
        self.session.commit()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _validate_event_payload(
        self, data: Dict[str, Any], *, require_title: bool
    ) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationError(
                {"_schema": ["Invalid JSON payload: an object is required."]}
            )

        errors: Dict[str, List[str]] = {}
        clean: Dict[str, Any] = {}

        if "title" in data or require_title:
            title = data.get("title")
            if not isinstance(title, str) or not title.strip():
                errors.setdefault("title", []).append("Required (non-empty string).")
            else:
                clean["title"] = title.strip()

        for field in _TEXT_FIELDS:
            if field in data:
                value = data.get(field)
                if value is not None and not isinstance(value, str):
                    errors.setdefault(field, []).append("Must be a string or null.")
                else:
                    clean[field] = value.strip() if isinstance(value, str) else None

        if "event_type" in data:
            event_type = data.get("event_type")
            if not isinstance(event_type, str) or event_type.strip().upper() not in values(
                EventType
            ):
                errors.setdefault("event_type", []).append(
                    f"Must be one of {', '.join(values(EventType))}."
                )
            else:
                clean["event_type"] = event_type.strip().upper()

        for field in _DATETIME_FIELDS:
            if field in data:
                value = data.get(field)
                if value is None:
                    clean[field] = None
                    continue
                parsed = _parse_datetime(value)
                if parsed is None:
                    errors.setdefault(field, []).append(
                        "Invalid date, expected ISO 8601 (YYYY-MM-DD or YYYY-MM-DDTHH:MM)."
                    )
                else:
                    clean[field] = parsed

        for field in ("start_time", "end_time"):
            if field in data:
                value = data.get(field)
                if value is None:
                    clean[field] = None
                elif not isinstance(value, str) or not TIME_OF_DAY_PATTERN.match(value.strip()):
                    errors.setdefault(field, []).append("Must use the HH:MM format.")
                else:
                    clean[field] = value.strip()

        if "capacity" in data:
            capacity = data.get("capacity")
            if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 0:
                errors.setdefault("capacity", []).append(
                    "Must be an integer >= 0 (booleans are not allowed)."
                )
            else:
                clean["capacity"] = capacity

        for field in _MONEY_FIELDS:
            if field in data:
                value = data.get(field)
                if value is None:
                    clean[field] = None
                    continue
                amount = _parse_decimal(value)
                if amount is None or amount < 0:
                    errors.setdefault(field, []).append("Must be a number >= 0 or null.")
                else:
                    clean[field] = amount

        if "currency" in data:
            currency = data.get("currency")
            if not isinstance(currency, str) or len(currency.strip()) != 3:
                errors.setdefault("currency", []).append("Must be a 3-letter currency code.")
            else:
                clean["currency"] = currency.strip().upper()

        if "contact_email" in data:
            email = data.get("contact_email")
            if email is None:
                clean["contact_email"] = None
            elif not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()):
                errors.setdefault("contact_email", []).append("Invalid email address.")
            else:
                clean["contact_email"] = email.strip()

        for field in _BOOLEAN_FIELDS:
            if field in data:
                value = data.get(field)
                if not isinstance(value, bool):
                    errors.setdefault(field, []).append("Must be a boolean.")
                else:
                    clean[field] = value

        if "speakers" in data:
            speakers = data.get("speakers")
            if speakers is None:
                clean["speakers"] = []
            elif not isinstance(speakers, list):
                errors.setdefault("speakers", []).append("Must be a list of speakers.")
            else:
                parsed_speakers = []
                for idx, speaker in enumerate(speakers):
                    try:
                        parsed_speakers.append(self._validate_speaker(speaker))
                    except ValidationError as exc:
                        for key, messages in exc.errors.items():
                            errors.setdefault(f"speakers[{idx}].{key}", []).extend(messages)
                clean["speakers"] = parsed_speakers

        start = clean.get("start_date")
        end = clean.get("end_date")
        if start is not None and end is not None and start > end:
            errors.setdefault("end_date", []).append(
                "End date must be on or after the start date."
            )

        if errors:
            raise ValidationError(errors)

        return clean

    @staticmethod
    def _validate_speaker(data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationError({"_schema": ["Speaker must be an object."]})
        errors: Dict[str, List[str]] = {}
        clean: Dict[str, Any] = {}
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.setdefault("name", []).append("Required (non-empty string).")
        else:
            clean["name"] = name.strip()
        for field in ("designation", "institution", "session_title"):
            value = data.get(field)
            if value is not None and not isinstance(value, str):
                errors.setdefault(field, []).append("Must be a string or null.")
            else:
                clean[field] = value.strip() if isinstance(value, str) else None
        order = data.get("session_order")
        if order is not None and (isinstance(order, bool) or not isinstance(order, int)):
            errors.setdefault("session_order", []).append("Must be an integer.")
        else:
            clean["session_order"] = order
        if errors:
            raise ValidationError(errors)
        return clean

    @staticmethod
    def _ensure_window(event: Event, updates: Dict[str, Any]) -> None:
        start = updates.get("start_date", event.start_date)
        end = updates.get("end_date", event.end_date)
        if start is not None and end is not None and start > end:
            raise ValidationError(
                {"end_date": ["End date must be on or after the start date."]}
            )

    def _serialize_event(
        self,
        event: Event,
        *,
        now: Optional[datetime] = None,
        include_speakers: bool = False,
    ) -> Dict[str, Any]:
        taken = self.registrations.count_seats_taken(event.id)
        payload = {
            "id": event.id,
            "title": event.title,
            "description": event.description,
            "event_type": event.event_type,
            "status": derive_event_status(event, now).value,
            "start_date": _serialize_datetime(event.start_date),
            "end_date": _serialize_datetime(event.end_date),
            "start_time": event.start_time,
            "end_time": event.end_time,
            "registration_deadline": _serialize_datetime(event.registration_deadline),
            "location": event.location,
            "city": event.city,
            "is_virtual": event.is_virtual,
            "capacity": event.capacity,
            "price": _serialize_decimal(event.price),
            "currency": event.currency,
            "early_bird_price": _serialize_decimal(event.early_bird_price),
            "early_bird_deadline": _serialize_datetime(event.early_bird_deadline),
            "organizer": event.organizer,
            "contact_email": event.contact_email,
            "contact_phone": event.contact_phone,
            "cme_credits": _serialize_decimal(event.cme_credits),
            "is_registration_open": event.is_registration_open,
            "is_published": event.is_published,
            "published_at": _serialize_datetime(event.published_at),
            "cancelled_at": _serialize_datetime(event.cancelled_at),
            "cancellation_reason": event.cancellation_reason,
            "signatories": [
                {"name": name, "title": title}
                for name, title in (
                    (event.signatory1_name, event.signatory1_title),
                    (event.signatory2_name, event.signatory2_title),
                )
                if name
            ],
            "capacity_fill": capacity_fill(taken, event.capacity).as_dict(),
            "created_at": _serialize_datetime(event.created_at),
            "updated_at": _serialize_datetime(event.updated_at),
        }
        if include_speakers:
            payload["speakers"] = [self._serialize_speaker(s) for s in event.speakers]
        return payload

    @staticmethod
    def _serialize_speaker(speaker) -> Dict[str, Any]:
        return {
            "id": speaker.id,
            "name": speaker.name,
            "designation": speaker.designation,
            "institution": speaker.institution,
            "session_title": speaker.session_title,
            "session_order": speaker.session_order,
        }


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return to_utc_naive(value)
    if isinstance(value, date):
        return to_utc_naive(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_utc_naive(datetime.fromisoformat(text))
    except ValueError:
        return None


def _parse_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str, Decimal)):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _serialize_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _serialize_decimal(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None
