"""Read-only aggregates for the staff dashboard."""
from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from icms.domain.aggregates import capacity_fill, count_by, revenue_by_payment_status
from icms.domain.enums import EventStatus, RegistrationStatus, values
from icms.domain.status import utcnow
from icms.repositories.certificates import CertificateRepository
from icms.repositories.events import EventRepository
from icms.repositories.registrations import RegistrationRepository
from icms.services.events import derive_event_status

__all__ = ["DashboardService"]

UPCOMING_LIMIT = 5
RECENT_LIMIT = 10


class DashboardService:
    """Compute dashboard statistics from freshly derived state."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.events = EventRepository(session)
        self.registrations = RegistrationRepository(session)
        self.certificates = CertificateRepository(session)

    def stats(self) -> Dict[str, Any]:
        now = utcnow()
        events = self.events.list_events()
        statuses = {event.id: derive_event_status(event, now) for event in events}

        revenue = revenue_by_payment_status(self.registrations.payment_rows())
        registrations_by_status = {status: 0 for status in values(RegistrationStatus)}
        registrations_by_status.update(self.registrations.count_by_status())

        upcoming: List[Dict[str, Any]] = []
        for event in events:
            if len(upcoming) >= UPCOMING_LIMIT:
                break
            if statuses[event.id] not in (EventStatus.UPCOMING, EventStatus.ACTIVE):
                continue
            taken = self.registrations.count_seats_taken(event.id)
            upcoming.append(
                {
                    "id": event.id,
                    "title": event.title,
                    "status": statuses[event.id].value,
                    "start_date": event.start_date.isoformat() if event.start_date else None,
                    "end_date": event.end_date.isoformat() if event.end_date else None,
                    "location": event.location,
                    "city": event.city,
                    "capacity_fill": capacity_fill(taken, event.capacity).as_dict(),
                }
            )

        return {
            "overview": {
                "total_events": len(events),
                "total_registrations": self.registrations.count_all(),
                "total_certificates": self.certificates.count_all(),
                "total_revenue": str(revenue["total_revenue"]),
                "monthly_registrations": self.registrations.count_created_since(
                    now - timedelta(days=30)
                ),
            },
            "events_by_status": count_by(statuses.values(), EventStatus),
            "registrations_by_status": registrations_by_status,
            "revenue_by_payment_status": {
                status: str(amount) for status, amount in revenue["by_payment_status"].items()
            },
            "upcoming_events": upcoming,
            "recent_registrations": [
                {
                    "id": registration.id,
                    "name": registration.name,
                    "email": registration.email,
                    "status": registration.status,
                    "payment_status": registration.payment_status,
                    "amount": str(registration.amount),
                    "event_id": registration.event_id,
                    "created_at": registration.created_at.isoformat(),
                }
                for registration in self.registrations.recent(RECENT_LIMIT)
            ],
        }
