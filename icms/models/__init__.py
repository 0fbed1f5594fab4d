"""SQLAlchemy models for the event lifecycle domain."""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from icms.database import Base
from icms.domain.enums import (
    CertificateAction,
    CertificateStatus,
    EventType,
    PaymentStatus,
    RegistrationStatus,
    values,
)
from icms.domain.status import utcnow


def _new_id() -> str:
    return uuid.uuid4().hex


class TimestampMixin:
    """Mixin providing automatic created/updated timestamps."""

    # Client-side default keeps microsecond precision; creation order decides
    # who gets a seat first.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class Event(TimestampMixin, Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("capacity >= 0", name="ck_events_capacity_non_negative"),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_events_price_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    event_type: Mapped[str] = mapped_column(
        Enum(*values(EventType), name="event_type", native_enum=False),
        nullable=False,
        default=EventType.CONFERENCE.value,
    )
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime())
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime())
    start_time: Mapped[Optional[str]] = mapped_column(String(5))
    end_time: Mapped[Optional[str]] = mapped_column(String(5))
    registration_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime())
    location: Mapped[Optional[str]] = mapped_column(String(255))
    city: Mapped[Optional[str]] = mapped_column(String(120))
    is_virtual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    early_bird_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    early_bird_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime())
    organizer: Mapped[Optional[str]] = mapped_column(String(255))
    contact_email: Mapped[Optional[str]] = mapped_column(String(255))
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50))
    cme_credits: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))
    is_registration_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime())
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime())
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)
    signatory1_name: Mapped[Optional[str]] = mapped_column(String(255))
    signatory1_title: Mapped[Optional[str]] = mapped_column(String(255))
    signatory2_name: Mapped[Optional[str]] = mapped_column(String(255))
    signatory2_title: Mapped[Optional[str]] = mapped_column(String(255))

    speakers: Mapped[List["EventSpeaker"]] = relationship(
        "EventSpeaker",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventSpeaker.session_order",
    )
    registrations: Mapped[List["Registration"]] = relationship(
        "Registration", back_populates="event", order_by="Registration.created_at"
    )
    certificates: Mapped[List["Certificate"]] = relationship(
        "Certificate", back_populates="event"
    )


class EventSpeaker(TimestampMixin, Base):
    __tablename__ = "event_speakers"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    event_id: Mapped[str] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    designation: Mapped[Optional[str]] = mapped_column(String(255))
    institution: Mapped[Optional[str]] = mapped_column(String(255))
    session_title: Mapped[Optional[str]] = mapped_column(String(255))
    session_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    event: Mapped[Event] = relationship("Event", back_populates="speakers")


class Registration(TimestampMixin, Base):
    __tablename__ = "registrations"
    __table_args__ = (
        UniqueConstraint("email", "event_id", name="uq_registrations_email_event"),
        CheckConstraint("amount >= 0", name="ck_registrations_amount_non_negative"),
        Index("ix_registrations_event_status", "event_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    event_id: Mapped[str] = mapped_column(
        ForeignKey("events.id", ondelete="RESTRICT"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    organization: Mapped[Optional[str]] = mapped_column(String(255))
    designation: Mapped[Optional[str]] = mapped_column(String(255))
    category: Mapped[Optional[str]] = mapped_column(String(120))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        Enum(*values(RegistrationStatus), name="registration_status", native_enum=False),
        nullable=False,
        default=RegistrationStatus.PENDING.value,
    )
    payment_status: Mapped[str] = mapped_column(
        Enum(*values(PaymentStatus), name="payment_status", native_enum=False),
        nullable=False,
        default=PaymentStatus.PENDING.value,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    registered_by_id: Mapped[Optional[str]] = mapped_column(String(64))
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime())
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime())
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime())
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime())

    event: Mapped[Event] = relationship("Event", back_populates="registrations")
    certificates: Mapped[List["Certificate"]] = relationship(
        "Certificate", back_populates="registration", order_by="Certificate.created_at"
    )

    @property
    def live_certificate(self) -> Optional["Certificate"]:
        for certificate in self.certificates:
            if certificate.status != CertificateStatus.REVOKED.value:
                return certificate
        return None


class Certificate(TimestampMixin, Base):
    __tablename__ = "certificates"
    __table_args__ = (
        # At most one non-revoked certificate per registration.
        Index(
            "uq_certificates_live_registration",
            "registration_id",
            unique=True,
            sqlite_where=text("status != 'REVOKED'"),
            postgresql_where=text("status != 'REVOKED'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    registration_id: Mapped[str] = mapped_column(
        ForeignKey("registrations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    event_id: Mapped[str] = mapped_column(
        ForeignKey("events.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    certificate_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    cme_credits: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))
    status: Mapped[str] = mapped_column(
        Enum(*values(CertificateStatus), name="certificate_status", native_enum=False),
        nullable=False,
        default=CertificateStatus.PENDING.value,
    )
    issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime())
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime())
    revoked_reason: Mapped[Optional[str]] = mapped_column(Text)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_downloaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime())

    registration: Mapped[Registration] = relationship(
        "Registration", back_populates="certificates"
    )
    event: Mapped[Event] = relationship("Event", back_populates="certificates")


class CertificateLog(TimestampMixin, Base):
    __tablename__ = "certificate_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Not a foreign key: regenerated certificates are deleted but their log stays.
    certificate_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    certificate_code: Mapped[str] = mapped_column(String(64), nullable=False)
    registration_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    action: Mapped[str] = mapped_column(
        Enum(*values(CertificateAction), name="certificate_action", native_enum=False),
        nullable=False,
    )
    actor: Mapped[Optional[str]] = mapped_column(String(64))
    notes: Mapped[Optional[str]] = mapped_column(Text)


__all__ = [
    "Certificate",
    "CertificateLog",
    "Event",
    "EventSpeaker",
    "Registration",
]
