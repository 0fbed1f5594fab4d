"""Role to capability matrix for staff and attendee accounts."""
from __future__ import annotations

from typing import Dict, FrozenSet, Optional

__all__ = [
    "SUPER_ADMIN",
    "EVENT_MANAGER",
    "REGISTRATION_MANAGER",
    "CERTIFICATE_MANAGER",
    "ATTENDEE",
    "ROLE_PERMISSIONS",
    "can",
]

SUPER_ADMIN = "SUPER_ADMIN"
EVENT_MANAGER = "EVENT_MANAGER"
REGISTRATION_MANAGER = "REGISTRATION_MANAGER"
CERTIFICATE_MANAGER = "CERTIFICATE_MANAGER"
ATTENDEE = "ATTENDEE"

_EVENTS = frozenset({"events.view", "events.create", "events.edit", "events.delete"})
_REGISTRATIONS = frozenset(
    {
        "registrations.view",
        "registrations.create",
        "registrations.edit",
        "registrations.delete",
        "registrations.approve",
    }
)
_CERTIFICATES = frozenset(
    {
        "certificates.view",
        "certificates.create",
        "certificates.edit",
        "certificates.delete",
        "certificates.issue",
    }
)
_DASHBOARD = frozenset({"dashboard.view", "dashboard.analytics"})
# Self-service access, scoped to the caller by the route.
_OWN = frozenset({"registrations.own", "certificates.own"})

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    SUPER_ADMIN: _EVENTS | _REGISTRATIONS | _CERTIFICATES | _DASHBOARD | _OWN,
    EVENT_MANAGER: _EVENTS | (_REGISTRATIONS - {"registrations.delete"}) | _DASHBOARD | _OWN,
    REGISTRATION_MANAGER: frozenset({"events.view", "dashboard.view"}) | _REGISTRATIONS | _OWN,
    CERTIFICATE_MANAGER: frozenset({"events.view", "registrations.view", "dashboard.view"})
    | _CERTIFICATES
    | _OWN,
    ATTENDEE: frozenset({"events.view"}) | _OWN,
}


def can(role: Optional[str], permission: str) -> bool:
    """Return whether ``role`` holds ``permission``; unknown roles hold nothing."""

    if not role:
        return False
    return permission in ROLE_PERMISSIONS.get(role.strip().upper(), frozenset())
