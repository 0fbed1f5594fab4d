"""Certificate generation, issuance, revocation and public verification."""
from __future__ import annotations

import base64
import logging
import secrets
import string
import time
from datetime import datetime
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Any, Dict, List, Optional

import qrcode
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from icms.domain.eligibility import (
    CERTIFICATE_EXISTS,
    can_generate,
    check_issue,
    check_regenerate,
    check_revoke,
    is_generation_listed,
    signatory_count,
)
from icms.domain.enums import CertificateAction, CertificateStatus, RegistrationStatus, values
from icms.domain.status import utcnow
from icms.errors import (
    CollaboratorFailure,
    IllegalTransitionError,
    NotFoundError,
    ValidationError,
)
from icms.integrations.base import IntegrationError
from icms.models import Certificate, Event, Registration
from icms.repositories.certificates import CertificateRepository
from icms.repositories.events import EventRepository
from icms.repositories.registrations import RegistrationRepository
from icms.services.events import derive_event_status

__all__ = [
    "CertificateService",
    "generate_certificate_code",
]

logger = logging.getLogger(__name__)

CODE_PREFIX = "ICMS"
_CODE_ALPHABET = string.digits + string.ascii_uppercase


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_CODE_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_certificate_code() -> str:
    """Return ``ICMS-<base36 millisecond timestamp>-<6 random chars>``."""

    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
    return f"{CODE_PREFIX}-{timestamp}-{suffix}"


class CertificateService:
    """High level operations for managing attendance certificates."""

    def __init__(
        self,
        session: Session,
        *,
        renderer: Optional[Any] = None,
        notifier: Optional[Any] = None,
        public_url: str = "http://localhost:5003",
    ) -> None:
        self.session = session
        self.renderer = renderer
        self.notifier = notifier
        self.public_url = public_url.rstrip("/")
        self.repository = CertificateRepository(session)
        self.registrations = RegistrationRepository(session)
        self.events = EventRepository(session)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def eligibility(self, registration_id: str) -> Dict[str, Any]:
        registration = self.registrations.get(registration_id)
        event = registration.event
        event_status = derive_event_status(event)
        decision = self._gate(registration, event)
        payload = decision.as_dict()
        payload.update(
            {
                "registration_id": registration.id,
                "registration_status": registration.status,
                "event_status": event_status.value,
                "listed": is_generation_listed(registration.status, event_status),
            }
        )
        return payload

    def list_certificates(
        self,
        *,
        event_id: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        if status and status.strip().upper() not in values(CertificateStatus):
            raise ValidationError({"status": ["Unknown certificate status."]})
        certificates = self.repository.list_certificates(
            event_id=event_id,
            status=status.strip() if status else None,
            search=search.strip() if search else None,
        )
        return [self._serialize_certificate(item) for item in certificates]

    def list_for_email(self, email: str) -> List[Dict[str, Any]]:
        """Certificates held by the attendee registered under ``email``."""

        certificates = self.repository.list_certificates(email=email)
        return [self._serialize_certificate(item) for item in certificates]

    def get_certificate(self, certificate_id: str) -> Dict[str, Any]:
        certificate = self.repository.get(certificate_id)
        payload = self._serialize_certificate(certificate)
        payload["history"] = [
            {
                "action": entry.action,
                "actor": entry.actor,
                "notes": entry.notes,
                "certificate_code": entry.certificate_code,
                "created_at": _serialize_datetime(entry.created_at),
            }
            for entry in self.repository.history(certificate.id)
        ]
        return payload

    def create(self, payload: Dict[str, Any], *, actor: Optional[str] = None) -> Dict[str, Any]:
        clean = self._validate_certificate_payload(payload, require_registration=True)
        registration = self.registrations.get(clean.pop("registration_id"))
        event = registration.event
        decision = self._gate(registration, event)
        if not decision.allowed:
            raise IllegalTransitionError(
                registration.status, "generate", self._gate_message(decision.reason)
            )

        issue = clean.pop("issue", False)
        try:
            certificate = self._insert(registration, event, issue=issue, **clean)
        except IntegrityError as exc:
            self.session.rollback()
            raise IllegalTransitionError(
                registration.status, "generate", self._gate_message(CERTIFICATE_EXISTS)
            ) from exc
        self.repository.log(certificate, action=CertificateAction.CREATED.value, actor=actor)
        if issue:
            self.repository.log(certificate, action=CertificateAction.ISSUED.value, actor=actor)
        self.session.commit()
        logger.info("Certificate %s created for registration %s", certificate.id, registration.id)
        if issue:
            self._notify("certificate.issued", certificate)
        result = self._serialize_certificate(certificate)
        result["warnings"] = list(decision.warnings)
        return result

    def bulk_create(self, payload: Dict[str, Any], *, actor: Optional[str] = None) -> Dict[str, Any]:
        """Issue certificates for every eligible registration of an event.

        Registrations that fail the gate are reported with the reason and
        skipped; one ineligible attendee never blocks the batch.
        """

        clean = self._validate_certificate_payload(payload, require_registration=False)
        event_id = payload.get("event_id") if isinstance(payload, dict) else None
        if not isinstance(event_id, str) or not event_id.strip():
            raise ValidationError({"event_id": ["Required (non-empty string)."]})
        event = self.events.get_event(event_id.strip())

        requested_ids = payload.get("registration_ids")
        if requested_ids is None:
            registrations = self.registrations.list_registrations(
                event_id=event.id, status=RegistrationStatus.ATTENDED.value
            )
        else:
            if not isinstance(requested_ids, list) or not all(
                isinstance(item, str) for item in requested_ids
            ):
                raise ValidationError({"registration_ids": ["Must be a list of ids."]})
            registrations = self.registrations.list_by_ids(requested_ids)
            found = {registration.id for registration in registrations}
            unknown = [item for item in requested_ids if item not in found]
            if unknown:
                raise ValidationError(
                    {"registration_ids": [f"Unknown registration id(s): {', '.join(unknown)}"]}
                )

        created: List[Certificate] = []
        skipped: List[Dict[str, Any]] = []
        warnings: List[str] = []
        for registration in registrations:
            if registration.event_id != event.id:
                skipped.append({"registration_id": registration.id, "reason": "other event"})
                continue
            decision = self._gate(registration, event)
            if not decision.allowed:
                skipped.append({"registration_id": registration.id, "reason": decision.reason})
                continue
            warnings.extend(w for w in decision.warnings if w not in warnings)
            certificate = self._insert(registration, event, issue=True, **clean)
            self.repository.log(
                certificate,
                action=CertificateAction.ISSUED.value,
                actor=actor,
                notes="bulk",
            )
            created.append(certificate)
        self.session.commit()
        logger.info(
            "Bulk certificate run for event %s: %d created, %d skipped",
            event.id,
            len(created),
            len(skipped),
        )
        for certificate in created:
            self._notify("certificate.issued", certificate)
        return {
            "event_id": event.id,
            "created": [self._serialize_certificate(item) for item in created],
            "skipped": skipped,
            "warnings": warnings,
        }

    def issue(self, certificate_id: str, *, actor: Optional[str] = None) -> Dict[str, Any]:
        certificate = self.repository.get(certificate_id)
        decision = check_issue(certificate.status)
        if not decision.allowed:
            raise IllegalTransitionError(certificate.status, "issue", decision.reason)
        if certificate.status == CertificateStatus.ISSUED.value:
            return self._serialize_certificate(certificate)
        certificate = self.repository.update(
            certificate,
            {"status": CertificateStatus.ISSUED.value, "issued_at": utcnow()},
        )
        self.repository.log(certificate, action=CertificateAction.ISSUED.value, actor=actor)
        self.session.commit()
        logger.info("Certificate %s issued", certificate.id)
        self._notify("certificate.issued", certificate)
        return self._serialize_certificate(certificate)

    def revoke(
        self,
        certificate_id: str,
        reason: Optional[str],
        *,
        actor: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not isinstance(reason, str) or not reason.strip():
            raise ValidationError({"reason": ["A revocation reason is required."]})
        certificate = self.repository.get(certificate_id)
        decision = check_revoke(certificate.status)
        if not decision.allowed:
            logger.warning("Revoke rejected for certificate %s: %s", certificate.id, decision.reason)
            raise IllegalTransitionError(certificate.status, "revoke", decision.reason)
        certificate = self.repository.update(
            certificate,
            {
                "status": CertificateStatus.REVOKED.value,
                "revoked_at": utcnow(),
                "revoked_reason": reason.strip(),
            },
        )
        self.repository.log(
            certificate,
            action=CertificateAction.REVOKED.value,
            actor=actor,
            notes=reason.strip(),
        )
        self.session.commit()
        logger.info("Certificate %s revoked", certificate.id)
        return self._serialize_certificate(certificate)

    def regenerate(self, certificate_id: str, *, actor: Optional[str] = None) -> Dict[str, Any]:
        """Replace a live certificate with a freshly coded, issued one."""

        old = self.repository.get(certificate_id)
        decision = check_regenerate(old.status)
        if not decision.allowed:
            raise IllegalTransitionError(old.status, "regenerate", decision.reason)
        registration = old.registration
        previous_code = old.certificate_code
        certificate = self.repository.replace(
            old,
            registration,
            event_id=old.event_id,
            certificate_code=self._new_code(),
            recipient_name=registration.name,
            recipient_email=registration.email,
            title=old.title,
            description=old.description,
            cme_credits=old.cme_credits,
            status=CertificateStatus.ISSUED.value,
            issued_at=utcnow(),
        )
        self.repository.log(
            certificate,
            action=CertificateAction.REGENERATED.value,
            actor=actor,
            notes=f"replaces {previous_code}",
        )
        self.session.commit()
        logger.info("Certificate %s regenerated as %s", certificate_id, certificate.id)
        self._notify("certificate.issued", certificate)
        return self._serialize_certificate(certificate)

    def verify(self, code: str) -> Dict[str, Any]:
        if not isinstance(code, str) or not code.strip():
            raise ValidationError({"code": ["A certificate code is required."]})
        certificate = self.repository.get_by_code(code)
        if certificate is None:
            raise NotFoundError("Certificate", code)
        event = certificate.event
        verification_url = self._verification_url(certificate.certificate_code)
        return {
            "valid": certificate.status == CertificateStatus.ISSUED.value,
            "verification_url": verification_url,
            "qr_code": _build_qr_code(verification_url),
            "certificate": {
                "certificate_code": certificate.certificate_code,
                "recipient_name": certificate.recipient_name,
                "title": certificate.title,
                "description": certificate.description,
                "cme_credits": _serialize_decimal(certificate.cme_credits),
                "status": certificate.status,
                "issued_at": _serialize_datetime(certificate.issued_at),
                "revoked_at": _serialize_datetime(certificate.revoked_at),
                "revoked_reason": certificate.revoked_reason,
                "event": {
                    "title": event.title,
                    "event_type": event.event_type,
                    "start_date": _serialize_datetime(event.start_date),
                    "end_date": _serialize_datetime(event.end_date),
                    "location": event.location,
                    "city": event.city,
                    "organizer": event.organizer,
                },
            },
        }

    def download(self, certificate_id: str) -> Dict[str, Any]:
        certificate = self.repository.get(certificate_id)
        if certificate.status != CertificateStatus.ISSUED.value:
            raise IllegalTransitionError(
                certificate.status, "download", "Only issued certificates can be downloaded."
            )
        if self.renderer is None:
            raise CollaboratorFailure("Certificate rendering is not configured.")
        try:
            artifact = self.renderer.render_certificate(self._render_payload(certificate))
        except IntegrationError as exc:
            logger.warning("Rendering failed for certificate %s: %s", certificate.id, exc)
            raise CollaboratorFailure("Certificate rendering service is unavailable.") from exc

        certificate = self.repository.record_download(certificate)
        self.session.commit()
        return {"certificate": self._serialize_certificate(certificate), "artifact": artifact}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _gate(self, registration: Registration, event: Event):
        return can_generate(
            registration.status,
            has_live_certificate=registration.live_certificate is not None,
            signatories=signatory_count(event.signatory1_name, event.signatory2_name),
        )

    @staticmethod
    def _gate_message(reason: Optional[str]) -> str:
        if reason == CERTIFICATE_EXISTS:
            return "A certificate already exists for this registration; regenerate it instead."
        return "Certificates can only be generated for attended registrations."

    def _insert(
        self,
        registration: Registration,
        event: Event,
        *,
        issue: bool,
        title: Optional[str] = None,
        description: Optional[str] = None,
        cme_credits: Optional[Decimal] = None,
    ) -> Certificate:
        return self.repository.create(
            registration=registration,
            event_id=event.id,
            certificate_code=self._new_code(),
            recipient_name=registration.name,
            recipient_email=registration.email,
            title=title or f"Certificate of Attendance - {event.title}",
            description=description,
            cme_credits=cme_credits if cme_credits is not None else event.cme_credits,
            status=(CertificateStatus.ISSUED if issue else CertificateStatus.PENDING).value,
            issued_at=utcnow() if issue else None,
        )

    def _new_code(self) -> str:
        code = generate_certificate_code()
        while self.repository.code_exists(code):
            code = generate_certificate_code()
        return code

    def _verification_url(self, code: str) -> str:
        return f"{self.public_url}/certificates/verify/{code}"

    def _validate_certificate_payload(
        self, data: Dict[str, Any], *, require_registration: bool
    ) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationError(
                {"_schema": ["Invalid JSON payload: an object is required."]}
            )
        errors: Dict[str, List[str]] = {}
        clean: Dict[str, Any] = {}

        if require_registration:
            registration_id = data.get("registration_id")
            if not isinstance(registration_id, str) or not registration_id.strip():
                errors.setdefault("registration_id", []).append("Required (non-empty string).")
            else:
                clean["registration_id"] = registration_id.strip()

        for field in ("title", "description"):
            value = data.get(field)
            if value is None:
                continue
            if not isinstance(value, str):
                errors.setdefault(field, []).append("Must be a string or null.")
            elif value.strip():
                clean[field] = value.strip()

        if data.get("cme_credits") is not None:
            value = data["cme_credits"]
            try:
                credits = (
                    None
                    if isinstance(value, bool) or not isinstance(value, (int, float, str))
                    else Decimal(str(value))
                )
            except (InvalidOperation, ValueError):
                credits = None
            if credits is None or not credits.is_finite() or credits < 0:
                errors.setdefault("cme_credits", []).append("Must be a number >= 0.")
            else:
                clean["cme_credits"] = credits

        if require_registration and "issue" in data:
            if not isinstance(data["issue"], bool):
                errors.setdefault("issue", []).append("Must be a boolean.")
            else:
                clean["issue"] = data["issue"]

        if errors:
            raise ValidationError(errors)
        return clean

    def _render_payload(self, certificate: Certificate) -> Dict[str, Any]:
        event = certificate.event
        return {
            "certificate_code": certificate.certificate_code,
            "recipient_name": certificate.recipient_name,
            "title": certificate.title,
            "description": certificate.description,
            "cme_credits": _serialize_decimal(certificate.cme_credits),
            "issued_at": _serialize_datetime(certificate.issued_at),
            "verification_url": self._verification_url(certificate.certificate_code),
            "event": {
                "title": event.title,
                "start_date": _serialize_datetime(event.start_date),
                "end_date": _serialize_datetime(event.end_date),
                "location": event.location,
                "organizer": event.organizer,
            },
            "signatories": [
                {"name": name, "title": title}
                for name, title in (
                    (event.signatory1_name, event.signatory1_title),
                    (event.signatory2_name, event.signatory2_title),
                )
                if name
            ],
        }

    def _notify(self, template: str, certificate: Certificate) -> None:
        if self.notifier is None:
            return
        self.notifier.notify(
            template,
            certificate.recipient_email,
            {
                "certificate_id": certificate.id,
                "certificate_code": certificate.certificate_code,
                "recipient_name": certificate.recipient_name,
                "title": certificate.title,
                "verification_url": self._verification_url(certificate.certificate_code),
            },
        )

    @staticmethod
    def _serialize_certificate(certificate: Certificate) -> Dict[str, Any]:
        return {
            "id": certificate.id,
            "registration_id": certificate.registration_id,
            "event_id": certificate.event_id,
            "certificate_code": certificate.certificate_code,
            "recipient_name": certificate.recipient_name,
            "recipient_email": certificate.recipient_email,
            "title": certificate.title,
            "description": certificate.description,
            "cme_credits": _serialize_decimal(certificate.cme_credits),
            "status": certificate.status,
            "issued_at": _serialize_datetime(certificate.issued_at),
            "revoked_at": _serialize_datetime(certificate.revoked_at),
            "revoked_reason": certificate.revoked_reason,
            "download_count": certificate.download_count,
            "last_downloaded_at": _serialize_datetime(certificate.last_downloaded_at),
            "created_at": _serialize_datetime(certificate.created_at),
        }


def _build_qr_code(data: str) -> str:
    qr = qrcode.QRCode(version=1, box_size=5, border=2)
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def _serialize_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _serialize_decimal(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None
