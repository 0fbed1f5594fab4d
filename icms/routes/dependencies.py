"""Utilities for accessing services within Flask request context."""
from __future__ import annotations

from typing import Any, Callable

from flask import current_app, g

from icms.config import get_settings
from icms.database import get_session
from icms.services.certificates import CertificateService
from icms.services.dashboard import DashboardService
from icms.services.events import EventService
from icms.services.registrations import RegistrationService

SERVICE_KEYS = (
    "event_service",
    "registration_service",
    "certificate_service",
    "dashboard_service",
)


def get_db_session():
    if "db_session" not in g:
        g.db_session = get_session()
    return g.db_session


def get_event_service() -> EventService:
    return _get_service("event_service", EventService)


def get_registration_service() -> RegistrationService:
    return _get_service(
        "registration_service",
        lambda session: RegistrationService(session, notifier=current_app.config.get("NOTIFIER")),
    )


def get_certificate_service() -> CertificateService:
    def factory(session):
        public_url = current_app.config.get("PUBLIC_URL") or get_settings().public_url
        return CertificateService(
            session,
            renderer=current_app.config.get("RENDERER"),
            notifier=current_app.config.get("NOTIFIER"),
            public_url=public_url,
        )

    return _get_service("certificate_service", factory)


def get_dashboard_service() -> DashboardService:
    return _get_service("dashboard_service", DashboardService)


def _get_service(key: str, factory: Callable[[Any], Any]) -> Any:
    if key not in g:
        session = get_db_session()
        setattr(g, key, factory(session))
    return g.get(key)


def cleanup_services(exception):
    session = g.pop("db_session", None)
    for key in SERVICE_KEYS:
        g.pop(key, None)
    if session is not None:
        try:
            if exception is not None:
                session.rollback()
        finally:
            session.close()
