"""Repository helpers for certificates and their audit trail."""
from __future__ import annotations

from typing import Any, Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Session, joinedload

from icms.domain.status import utcnow
from icms.errors import NotFoundError
from icms.models import Certificate, CertificateLog, Registration


class CertificateRepository:
    """Persistence operations for certificates."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, **fields: Any) -> Certificate:
        certificate = Certificate(**fields)
        self.session.add(certificate)
        self.session.flush()
        self.session.refresh(certificate)
        return certificate

    def get(self, certificate_id: str) -> Certificate:
        query = (
            select(Certificate)
            .options(joinedload(Certificate.event), joinedload(Certificate.registration))
            .where(Certificate.id == certificate_id)
        )
        try:
            return self.session.execute(query).scalar_one()
        except NoResultFound as exc:
            raise NotFoundError("Certificate", certificate_id) from exc

    def get_by_code(self, code: str) -> Optional[Certificate]:
        query = (
            select(Certificate)
            .options(joinedload(Certificate.event))
            .where(Certificate.certificate_code == code.strip().upper())
        )
        return self.session.scalars(query).first()

    def list_certificates(
        self,
        *,
        event_id: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Sequence[Certificate]:
        query = select(Certificate).order_by(Certificate.created_at.desc())
        if email:
            # Ownership follows the registration email.
            query = query.join(Registration, Certificate.registration_id == Registration.id).where(
                Registration.email == email.lower()
            )
        if event_id:
            query = query.where(Certificate.event_id == event_id)
        if status:
            query = query.where(Certificate.status == status.upper())
        if search:
            pattern = f"%{search.casefold()}%"
            query = query.where(
                or_(
                    func.lower(Certificate.recipient_name).like(pattern),
                    func.lower(Certificate.recipient_email).like(pattern),
                    func.lower(Certificate.certificate_code).like(pattern),
                )
            )
        return self.session.scalars(query).all()

    def code_exists(self, code: str) -> bool:
        query = select(Certificate.id).where(Certificate.certificate_code == code)
        return self.session.scalars(query).first() is not None

    def count_all(self) -> int:
        query = select(func.count()).select_from(Certificate)
        return int(self.session.execute(query).scalar_one())

    def update(self, certificate: Certificate, updates: dict) -> Certificate:
        for key, value in updates.items():
            setattr(certificate, key, value)
        self.session.flush()
        self.session.refresh(certificate)
        return certificate

    def record_download(self, certificate: Certificate) -> Certificate:
        """Count a download with an in-database increment so concurrent downloads all land."""

        statement = (
            update(Certificate)
            .where(Certificate.id == certificate.id)
            .values(
                download_count=Certificate.download_count + 1,
                last_downloaded_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        self.session.execute(statement)
        self.session.refresh(certificate)
        return certificate

    def replace(self, old: Certificate, registration: Registration, **fields: Any) -> Certificate:
        """Delete ``old`` and insert its successor in the current transaction.

        The delete is flushed first so the partial unique index on live
        certificates never sees two rows for the registration.
        """

        self.session.delete(old)
        self.session.flush()
        self.session.expire(registration, ["certificates"])
        successor = Certificate(registration_id=registration.id, **fields)
        self.session.add(successor)
        self.session.flush()
        self.session.refresh(successor)
        return successor

    def log(
        self,
        certificate: Certificate,
        *,
        action: str,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CertificateLog:
        entry = CertificateLog(
            certificate_id=certificate.id,
            certificate_code=certificate.certificate_code,
            registration_id=certificate.registration_id,
            action=action,
            actor=actor,
            notes=notes,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def history(self, certificate_id: str) -> Sequence[CertificateLog]:
        query = (
            select(CertificateLog)
            .where(CertificateLog.certificate_id == certificate_id)
            .order_by(CertificateLog.created_at.asc(), CertificateLog.id.asc())
        )
        return self.session.scalars(query).all()
