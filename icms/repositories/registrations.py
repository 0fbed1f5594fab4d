"""Repository helpers for registrations, including the seat-gated confirmation."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Session, aliased, selectinload

from icms.domain.enums import SEAT_HOLDING_STATUSES, RegistrationStatus
from icms.domain.status import utcnow
from icms.errors import NotFoundError
from icms.models import Registration

_SEAT_HOLDING_VALUES = tuple(sorted(status.value for status in SEAT_HOLDING_STATUSES))


class RegistrationRepository:
    """Persistence operations for event registrations."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, **fields: Any) -> Registration:
        registration = Registration(**fields)
        self.session.add(registration)
        self.session.flush()
        self.session.refresh(registration)
        return registration

    def get(self, registration_id: str) -> Registration:
        query = (
            select(Registration)
            .options(selectinload(Registration.certificates))
            .where(Registration.id == registration_id)
        )
        try:
            return self.session.execute(query).scalar_one()
        except NoResultFound as exc:
            raise NotFoundError("Registration", registration_id) from exc

    def reload(self, registration: Registration) -> Registration:
        self.session.refresh(registration)
        return registration

    def find_by_email(self, event_id: str, email: str) -> Optional[Registration]:
        query = (
            select(Registration)
            .where(Registration.event_id == event_id)
            .where(Registration.email == email)
        )
        return self.session.scalars(query).first()

    def list_registrations(
        self,
        *,
        event_id: Optional[str] = None,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        search: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Sequence[Registration]:
        query = (
            select(Registration)
            .options(selectinload(Registration.certificates))
            .order_by(Registration.created_at.asc())
        )
        if event_id:
            query = query.where(Registration.event_id == event_id)
        if status:
            query = query.where(Registration.status == status.upper())
        if email:
            query = query.where(Registration.email == email.lower())
        if payment_status:
            query = query.where(Registration.payment_status == payment_status.upper())
        if search:
            pattern = f"%{search.casefold()}%"
            query = query.where(
                or_(
                    func.lower(Registration.name).like(pattern),
                    Registration.email.like(pattern),
                    func.lower(Registration.organization).like(pattern),
                )
            )
        return self.session.scalars(query).all()

    def list_by_ids(self, registration_ids: Sequence[str]) -> List[Registration]:
        """Return the matching registrations in creation order."""

        if not registration_ids:
            return []
        query = (
            select(Registration)
            .where(Registration.id.in_(list(registration_ids)))
            .order_by(Registration.created_at.asc())
        )
        return list(self.session.scalars(query).all())

    def waitlist(self, event_id: str) -> List[Registration]:
        query = (
            select(Registration)
            .where(Registration.event_id == event_id)
            .where(Registration.status == RegistrationStatus.WAITLIST.value)
            .order_by(Registration.created_at.asc())
        )
        return list(self.session.scalars(query).all())

    def count_seats_taken(self, event_id: str) -> int:
        query = (
            select(func.count())
            .select_from(Registration)
            .where(Registration.event_id == event_id)
            .where(Registration.status.in_(_SEAT_HOLDING_VALUES))
        )
        return int(self.session.execute(query).scalar_one())

    def count_by_status(self) -> Dict[str, int]:
        query = select(Registration.status, func.count()).group_by(Registration.status)
        return {status: int(total) for status, total in self.session.execute(query).all()}

    def payment_rows(self) -> List[Tuple[str, Any]]:
        query = select(Registration.payment_status, func.sum(Registration.amount)).group_by(
            Registration.payment_status
        )
        return [(status, amount) for status, amount in self.session.execute(query).all()]

    def count_all(self) -> int:
        query = select(func.count()).select_from(Registration)
        return int(self.session.execute(query).scalar_one())

    def count_created_since(self, since: datetime) -> int:
        query = (
            select(func.count())
            .select_from(Registration)
            .where(Registration.created_at >= since)
        )
        return int(self.session.execute(query).scalar_one())

    def recent(self, limit: int = 10) -> List[Registration]:
        query = select(Registration).order_by(Registration.created_at.desc()).limit(limit)
        return list(self.session.scalars(query).all())

    # ------------------------------------------------------------------
    # Conditional updates
    # ------------------------------------------------------------------
    def try_confirm(self, registration: Registration, *, capacity: int) -> bool:
        """Confirm ``registration`` only while a seat is free.

        The seat count is evaluated inside the ``UPDATE`` statement itself,
        so a count read earlier in the request can never let the event be
        oversold. Returns ``False`` when no row was updated.
        """

        holders = aliased(Registration)
        seats_taken = (
            select(func.count(holders.id))
            .where(holders.event_id == registration.event_id)
            .where(holders.status.in_(_SEAT_HOLDING_VALUES))
            .scalar_subquery()
        )
        now = utcnow()
        statement = (
            update(Registration)
            .where(Registration.id == registration.id)
            .where(Registration.status == registration.status)
            .where(seats_taken < capacity)
            .values(
                status=RegistrationStatus.CONFIRMED.value,
                confirmed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(statement)
        self.session.refresh(registration)
        return result.rowcount == 1

    def compare_and_set(
        self,
        registration: Registration,
        *,
        expected_status: str,
        values: Dict[str, Any],
    ) -> bool:
        """Apply ``values`` only if the row still has ``expected_status``."""

        payload = dict(values)
        payload.setdefault("updated_at", utcnow())
        statement = (
            update(Registration)
            .where(Registration.id == registration.id)
            .where(Registration.status == expected_status)
            .values(**payload)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(statement)
        self.session.refresh(registration)
        return result.rowcount == 1

    def compare_and_set_payment(
        self,
        registration: Registration,
        *,
        expected_payment_status: str,
        values: Dict[str, Any],
    ) -> bool:
        payload = dict(values)
        payload.setdefault("updated_at", utcnow())
        statement = (
            update(Registration)
            .where(Registration.id == registration.id)
            .where(Registration.payment_status == expected_payment_status)
            .values(**payload)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(statement)
        self.session.refresh(registration)
        return result.rowcount == 1

