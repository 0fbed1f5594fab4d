"""Gate deciding whether a certificate may be generated, issued or revoked."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .enums import CertificateStatus, EventStatus, RegistrationStatus

__all__ = [
    "NOT_ATTENDED",
    "CERTIFICATE_EXISTS",
    "NO_SIGNATORIES",
    "EligibilityDecision",
    "can_generate",
    "is_generation_listed",
    "signatory_count",
    "check_issue",
    "check_revoke",
    "check_regenerate",
]

NOT_ATTENDED = "not attended"
CERTIFICATE_EXISTS = "certificate exists"
NO_SIGNATORIES = "no signatories"


@dataclass(frozen=True)
class EligibilityDecision:
    allowed: bool
    reason: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"allowed": self.allowed, "reason": self.reason, "warnings": list(self.warnings)}


def signatory_count(*names: Optional[str]) -> int:
    return sum(1 for name in names if isinstance(name, str) and name.strip())


def can_generate(
    registration_status: RegistrationStatus,
    *,
    has_live_certificate: bool,
    signatories: int,
) -> EligibilityDecision:
    """Check the generation rules in order; the first failing rule wins."""

    if RegistrationStatus(registration_status) != RegistrationStatus.ATTENDED:
        return EligibilityDecision(allowed=False, reason=NOT_ATTENDED)
    if has_live_certificate:
        return EligibilityDecision(allowed=False, reason=CERTIFICATE_EXISTS)
    warnings = [NO_SIGNATORIES] if signatories <= 0 else []
    return EligibilityDecision(allowed=True, warnings=warnings)


def is_generation_listed(
    registration_status: RegistrationStatus, event_status: EventStatus
) -> bool:
    """Whether read-only views should list the generate action.

    A completed event lists it for every registration so staff can mark
    attendance first; :func:`can_generate` still requires ATTENDED.
    """

    return (
        RegistrationStatus(registration_status) == RegistrationStatus.ATTENDED
        or EventStatus(event_status) == EventStatus.COMPLETED
    )


def check_issue(status: CertificateStatus) -> EligibilityDecision:
    status = CertificateStatus(status)
    if status == CertificateStatus.REVOKED:
        return EligibilityDecision(
            allowed=False, reason="Certificate has been revoked and cannot be issued."
        )
    return EligibilityDecision(allowed=True)


def check_revoke(status: CertificateStatus) -> EligibilityDecision:
    status = CertificateStatus(status)
    if status == CertificateStatus.REVOKED:
        return EligibilityDecision(allowed=False, reason="Certificate is already revoked.")
    if status != CertificateStatus.ISSUED:
        return EligibilityDecision(
            allowed=False, reason="Only issued certificates can be revoked."
        )
    return EligibilityDecision(allowed=True)


def check_regenerate(status: CertificateStatus) -> EligibilityDecision:
    if CertificateStatus(status) == CertificateStatus.REVOKED:
        return EligibilityDecision(
            allowed=False,
            reason="Revoked certificates cannot be regenerated; create a new certificate instead.",
        )
    return EligibilityDecision(allowed=True)
