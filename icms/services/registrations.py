"""Service layer dedicated to event registrations and the seat lifecycle."""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from icms.domain.enums import EventStatus, PaymentStatus, RegistrationStatus, values
from icms.domain.publishing import EMAIL_PATTERN
from icms.domain.status import utcnow
from icms.domain.transitions import (
    ATTEND,
    CANCEL,
    CONFIRM,
    MARK_FREE,
    MARK_PAID,
    available_actions,
    check_payment_transition,
    check_transition,
    decide_initial_status,
)
from icms.errors import (
    CapacityConflictError,
    DuplicateRegistrationError,
    IllegalTransitionError,
    LifecycleError,
    RegistrationClosedError,
    ValidationError,
)
from icms.models import Event, Registration
from icms.repositories.events import EventRepository
from icms.repositories.registrations import RegistrationRepository
from icms.services.events import derive_event_status

__all__ = [
    "BULK_ACTIONS",
    "RegistrationService",
]

logger = logging.getLogger(__name__)

SEND_EMAIL = "send_email"
# Bulk action names mirror the dashboard; "mark_attended" is the attend transition.
BULK_ACTIONS = {
    "confirm": CONFIRM,
    "cancel": CANCEL,
    "mark_attended": ATTEND,
    "mark_paid": MARK_PAID,
    SEND_EMAIL: SEND_EMAIL,
}
SINGLE_ACTIONS = (CONFIRM, ATTEND, CANCEL, MARK_PAID, MARK_FREE)
_OPTIONAL_TEXT_FIELDS = ("phone", "organization", "designation", "category", "notes")
PAYMENT_TEMPLATE = "registration.payment_received"
_NOTIFICATION_TEMPLATES = {
    RegistrationStatus.PENDING.value: "registration.received",
    RegistrationStatus.CONFIRMED.value: "registration.confirmed",
    RegistrationStatus.WAITLIST.value: "registration.waitlisted",
    RegistrationStatus.ATTENDED.value: "registration.attended",
    RegistrationStatus.CANCELLED.value: "registration.cancelled",
}


class RegistrationService:
    """High level operations for managing registrations and attendance."""

    def __init__(self, session: Session, *, notifier: Optional[Any] = None) -> None:
        self.session = session
        self.notifier = notifier
        self.repository = RegistrationRepository(session)
        self.events = EventRepository(session)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def register(
        self,
        payload: Dict[str, Any],
        *,
        staff: bool = False,
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a registration.

        Public registrations must respect the publication and registration
        window; staff registrations skip those checks and record who created
        them. A full event places the newcomer on the waitlist.
        """

        clean = self._validate_registration_payload(payload, staff=staff)
        event = self.events.lock_event(clean.pop("event_id"))
        now = utcnow()
        event_status = derive_event_status(event, now)
        if staff:
            if event_status == EventStatus.CANCELLED:
                raise RegistrationClosedError("Event has been cancelled.")
        else:
            self._ensure_registration_is_open(event, event_status, now)

        if self.repository.find_by_email(event.id, clean["email"]) is not None:
            raise DuplicateRegistrationError("You are already registered for this event.")

        requested = clean.pop("status", RegistrationStatus.PENDING)
        amount = self._resolve_amount(event, clean.pop("amount", None), now)
        payment_status = clean.pop("payment_status", PaymentStatus.PENDING)
        if amount == 0:
            payment_status = PaymentStatus.FREE

        seats_taken = self.repository.count_seats_taken(event.id)
        initial = decide_initial_status(
            requested, seats_taken=seats_taken, capacity=event.capacity
        )
        # Confirmation always goes through the seat-gated update below.
        insert_status = (
            RegistrationStatus.PENDING if initial == RegistrationStatus.CONFIRMED else initial
        )

        try:
            registration = self.repository.create(
                event_id=event.id,
                status=insert_status.value,
                payment_status=payment_status.value,
                amount=amount,
                currency=event.currency,
                paid_at=now if payment_status == PaymentStatus.PAID else None,
                registered_by_id=actor_id if staff else None,
                **clean,
            )
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateRegistrationError(
                "You are already registered for this event."
            ) from exc

        if initial == RegistrationStatus.CONFIRMED:
            if not self.repository.try_confirm(registration, capacity=event.capacity):
                self.repository.compare_and_set(
                    registration,
                    expected_status=RegistrationStatus.PENDING.value,
                    values={"status": RegistrationStatus.WAITLIST.value},
                )

        self.session.commit()
        logger.info(
            "Registration %s created for event %s as %s",
            registration.id,
            event.id,
            registration.status,
        )
        self._notify(registration, event)
        return self._serialize_registration(registration, event=event)

    def get_registration(self, registration_id: str) -> Dict[str, Any]:
        registration = self.repository.get(registration_id)
        return self._serialize_registration(registration, event=registration.event)

    def list_registrations(
        self,
        *,
        event_id: Optional[str] = None,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        errors: Dict[str, List[str]] = {}
        if status and status.strip().upper() not in values(RegistrationStatus):
            errors.setdefault("status", []).append("Unknown registration status.")
        if payment_status and payment_status.strip().upper() not in values(PaymentStatus):
            errors.setdefault("payment_status", []).append("Unknown payment status.")
        if errors:
            raise ValidationError(errors)

        registrations = self.repository.list_registrations(
            event_id=event_id,
            status=status.strip() if status else None,
            payment_status=payment_status.strip() if payment_status else None,
            search=search.strip() if search else None,
        )
        now = utcnow()
        return [
            self._serialize_registration(registration, event=registration.event, now=now)
            for registration in registrations
        ]

    def list_for_email(self, email: str) -> List[Dict[str, Any]]:
        """Registrations made under ``email``, across every event."""

        now = utcnow()
        return [
            self._serialize_registration(registration, event=registration.event, now=now)
            for registration in self.repository.list_registrations(email=email)
        ]

    def apply_action(self, registration_id: str, action: str) -> Dict[str, Any]:
        """Apply a single status or payment action and return the outcome."""

        if action not in SINGLE_ACTIONS:
            raise ValidationError(
                {"action": [f"Must be one of {', '.join(SINGLE_ACTIONS)}."]}
            )
        registration = self.repository.get(registration_id)
        try:
            outcome = self._apply(registration, action)
        except LifecycleError:
            self.session.rollback()
            raise
        self.session.commit()
        if outcome in ("updated", "waitlisted"):
            self._notify_outcome(registration, action)
        payload = self._serialize_registration(registration, event=registration.event)
        payload["outcome"] = outcome
        return payload

    def confirm(self, registration_id: str) -> Dict[str, Any]:
        return self.apply_action(registration_id, CONFIRM)

    def attend(self, registration_id: str) -> Dict[str, Any]:
        return self.apply_action(registration_id, ATTEND)

    def cancel(self, registration_id: str) -> Dict[str, Any]:
        return self.apply_action(registration_id, CANCEL)

    def mark_paid(self, registration_id: str) -> Dict[str, Any]:
        return self.apply_action(registration_id, MARK_PAID)

    def mark_free(self, registration_id: str) -> Dict[str, Any]:
        return self.apply_action(registration_id, MARK_FREE)

    def bulk(self, registration_ids: Iterable[str], action: str) -> Dict[str, Any]:
        """Apply ``action`` to many registrations, oldest registration first.

        Processing in creation order means the first to register wins the
        remaining seats whatever order the ids were submitted in. Items that
        fail are reported and do not abort the batch.
        """

        if action not in BULK_ACTIONS:
            raise ValidationError(
                {"action": [f"Must be one of {', '.join(sorted(BULK_ACTIONS))}."]}
            )
        ids = list(dict.fromkeys(registration_ids))
        if not ids or not all(isinstance(item, str) and item for item in ids):
            raise ValidationError({"registration_ids": ["Must be a non-empty list of ids."]})
        registrations = self.repository.list_by_ids(ids)
        if len(registrations) != len(ids):
            found = {registration.id for registration in registrations}
            missing = [item for item in ids if item not in found]
            raise ValidationError(
                {"registration_ids": [f"Unknown registration id(s): {', '.join(missing)}"]},
                message="Some registration IDs are invalid.",
            )

        if action == SEND_EMAIL:
            for registration in registrations:
                self._notify(registration, registration.event, template="registration.message")
            return {
                "action": action,
                "processed": len(registrations),
                "results": [
                    {"id": registration.id, "outcome": "queued", "status": registration.status}
                    for registration in registrations
                ],
            }

        transition = BULK_ACTIONS[action]
        results: List[Dict[str, Any]] = []
        notify: List[Registration] = []
        for registration in registrations:
            try:
                outcome = self._apply(registration, transition)
            except (IllegalTransitionError, CapacityConflictError) as exc:
                results.append(
                    {
                        "id": registration.id,
                        "outcome": "rejected",
                        "status": registration.status,
                        "reason": exc.message,
                    }
                )
                continue
            if outcome in ("updated", "waitlisted"):
                notify.append(registration)
            results.append(
                {"id": registration.id, "outcome": outcome, "status": registration.status}
            )
        self.session.commit()
        for registration in notify:
            self._notify_outcome(registration, transition)
        updated = sum(1 for item in results if item["outcome"] in ("updated", "waitlisted"))
        logger.info("Bulk %s applied to %d/%d registrations", action, updated, len(results))
        return {"action": action, "processed": len(results), "updated": updated, "results": results}

    def promote_waitlist(self, event_id: str) -> List[Dict[str, Any]]:
        """Move the oldest waitlisted registrations into free seats."""

        event = self.events.lock_event(event_id)
        current = derive_event_status(event)
        if current in (EventStatus.CANCELLED, EventStatus.COMPLETED):
            raise IllegalTransitionError(
                current.value,
                "promote",
                f"Event is {current.value.lower()}; the waitlist is closed.",
            )
        promoted: List[Registration] = []
        for registration in self.repository.waitlist(event.id):
            if not self.repository.try_confirm(registration, capacity=event.capacity):
                break
            promoted.append(registration)
        self.session.commit()
        if promoted:
            logger.info("Promoted %d waitlisted registration(s) for event %s", len(promoted), event.id)
        for registration in promoted:
            self._notify(registration, event)
        return [self._serialize_registration(item, event=event) for item in promoted]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _apply(self, registration: Registration, action: str) -> str:
        if action in (MARK_PAID, MARK_FREE):
            return self._apply_payment(registration, action)

        if action == CONFIRM:
            event = self.events.lock_event(registration.event_id)
            self.repository.reload(registration)
        else:
            event = registration.event
        event_status = derive_event_status(event)

        decision = check_transition(registration.status, action, event_status=event_status)
        if not decision.allowed:
            logger.warning(
                "Rejected %s on registration %s (%s): %s",
                action,
                registration.id,
                decision.current,
                decision.reason,
            )
            raise IllegalTransitionError(decision.current, action, decision.reason)
        if decision.noop:
            return "unchanged"
        if decision.requires_capacity:
            return self._confirm(registration, event)

        now = utcnow()
        changes: Dict[str, Any] = {"status": decision.target}
        if action == ATTEND:
            changes["checked_in_at"] = now
        elif action == CANCEL:
            changes["cancelled_at"] = now
        if not self.repository.compare_and_set(
            registration, expected_status=decision.current, values=changes
        ):
            # Another writer moved the row first; decide again on fresh state.
            return self._apply(registration, action)
        logger.info(
            "Registration %s moved %s -> %s", registration.id, decision.current, decision.target
        )
        return "updated"

    def _confirm(self, registration: Registration, event: Event) -> str:
        expected = registration.status
        if self.repository.try_confirm(registration, capacity=event.capacity):
            logger.info("Registration %s confirmed from %s", registration.id, expected)
            return "updated"
        if registration.status != expected:
            return self._apply(registration, CONFIRM)
        if expected == RegistrationStatus.PENDING.value:
            moved = self.repository.compare_and_set(
                registration,
                expected_status=expected,
                values={"status": RegistrationStatus.WAITLIST.value},
            )
            if not moved:
                return self._apply(registration, CONFIRM)
            logger.info("Registration %s waitlisted; event %s is full", registration.id, event.id)
            return "waitlisted"
        logger.warning(
            "Waitlisted registration %s could not be confirmed; event %s is full",
            registration.id,
            event.id,
        )
        raise CapacityConflictError(event.id, event.capacity)

    def _apply_payment(self, registration: Registration, action: str) -> str:
        decision = check_payment_transition(registration.payment_status, action)
        if not decision.allowed:
            raise IllegalTransitionError(decision.current, action, decision.reason)
        if decision.noop:
            return "unchanged"
        changes: Dict[str, Any] = {"payment_status": decision.target}
        if action == MARK_PAID:
            changes["paid_at"] = utcnow()
        elif action == MARK_FREE:
            changes["amount"] = Decimal("0")
        if not self.repository.compare_and_set_payment(
            registration, expected_payment_status=decision.current, values=changes
        ):
            return self._apply_payment(registration, action)
        logger.info(
            "Registration %s payment %s -> %s", registration.id, decision.current, decision.target
        )
        return "updated"

    @staticmethod
    def _ensure_registration_is_open(
        event: Event, event_status: EventStatus, now: datetime
    ) -> None:
        if not event.is_published or event_status == EventStatus.DRAFT:
            raise RegistrationClosedError("Event is not available for registration.")
        if event_status in (EventStatus.CANCELLED, EventStatus.COMPLETED):
            raise RegistrationClosedError(
                f"Event is {event_status.value.lower()}; registration is closed."
            )
        if not event.is_registration_open:
            raise RegistrationClosedError("Registration is closed for this event.")
        if event.registration_deadline and now > event.registration_deadline:
            raise RegistrationClosedError("Registration deadline has passed.")

    @staticmethod
    def _resolve_amount(event: Event, requested: Optional[Decimal], now: datetime) -> Decimal:
        if (
            event.early_bird_price is not None
            and event.early_bird_deadline is not None
            and now <= event.early_bird_deadline
        ):
            return Decimal(event.early_bird_price)
        if requested is not None:
            return requested
        return Decimal(event.price) if event.price is not None else Decimal("0")

    def _validate_registration_payload(
        self, data: Dict[str, Any], *, staff: bool
    ) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationError(
                {"_schema": ["Invalid JSON payload: an object is required."]}
            )

        errors: Dict[str, List[str]] = {}
        clean: Dict[str, Any] = {}

        event_id = data.get("event_id")
        if not isinstance(event_id, str) or not event_id.strip():
            errors.setdefault("event_id", []).append("Required (non-empty string).")
        else:
            clean["event_id"] = event_id.strip()

        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.setdefault("name", []).append("Required (non-empty string).")
        else:
            clean["name"] = name.strip()

        email = data.get("email")
        if not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()):
            errors.setdefault("email", []).append("A valid email address is required.")
        else:
            clean["email"] = email.strip().lower()

        for field in _OPTIONAL_TEXT_FIELDS:
            value = data.get(field)
            if value is None:
                continue
            if not isinstance(value, str):
                errors.setdefault(field, []).append("Must be a string or null.")
            else:
                clean[field] = value.strip() or None

        if staff:
            if "status" in data:
                try:
                    clean["status"] = RegistrationStatus(str(data["status"]).strip().upper())
                except ValueError:
                    errors.setdefault("status", []).append("Unknown registration status.")
            if "payment_status" in data:
                value = str(data["payment_status"]).strip().upper()
                if value not in (PaymentStatus.PENDING.value, PaymentStatus.PAID.value):
                    errors.setdefault("payment_status", []).append("Must be PENDING or PAID.")
                else:
                    clean["payment_status"] = PaymentStatus(value)
            if data.get("amount") is not None:
                amount = _parse_amount(data["amount"])
                if amount is None or amount < 0:
                    errors.setdefault("amount", []).append("Must be a number >= 0.")
                else:
                    clean["amount"] = amount

        if errors:
            raise ValidationError(errors)
        return clean

    def _notify_outcome(self, registration: Registration, action: str) -> None:
        # Recording a payment never re-announces the registration status.
        if action == MARK_PAID:
            self._notify(registration, registration.event, template=PAYMENT_TEMPLATE)
        elif action != MARK_FREE:
            self._notify(registration, registration.event)

    def _notify(
        self,
        registration: Registration,
        event: Event,
        *,
        template: Optional[str] = None,
    ) -> None:
        if self.notifier is None:
            return
        self.notifier.notify(
            template or _NOTIFICATION_TEMPLATES[registration.status],
            registration.email,
            {
                "registration_id": registration.id,
                "name": registration.name,
                "status": registration.status,
                "event_id": event.id,
                "event_title": event.title,
            },
        )

    def _serialize_registration(
        self,
        registration: Registration,
        *,
        event: Event,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        event_status = derive_event_status(event, now)
        certificate = registration.live_certificate
        return {
            "id": registration.id,
            "event_id": registration.event_id,
            "event_title": event.title,
            "event_status": event_status.value,
            "name": registration.name,
            "email": registration.email,
            "phone": registration.phone,
            "organization": registration.organization,
            "designation": registration.designation,
            "category": registration.category,
            "notes": registration.notes,
            "status": registration.status,
            "payment_status": registration.payment_status,
            "amount": str(registration.amount),
            "currency": registration.currency,
            "registered_by_id": registration.registered_by_id,
            "available_actions": available_actions(
                registration.status,
                registration.payment_status,
                event_status=event_status,
            ),
            "certificate_id": certificate.id if certificate is not None else None,
            "confirmed_at": _serialize_datetime(registration.confirmed_at),
            "paid_at": _serialize_datetime(registration.paid_at),
            "checked_in_at": _serialize_datetime(registration.checked_in_at),
            "cancelled_at": _serialize_datetime(registration.cancelled_at),
            "created_at": _serialize_datetime(registration.created_at),
        }


def _parse_amount(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def _serialize_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
