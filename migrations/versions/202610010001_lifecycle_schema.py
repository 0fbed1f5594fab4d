"""Event lifecycle schema: events, speakers, registrations and certificates."""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202610010001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp_columns():
    return [
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def _status(name, *values):
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "event_type",
            _status(
                "event_type", "CONFERENCE", "WORKSHOP", "SEMINAR", "WEBINAR", "CME", "SYMPOSIUM"
            ),
            nullable=False,
        ),
        sa.Column("start_date", sa.DateTime(), nullable=True),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("start_time", sa.String(length=5), nullable=True),
        sa.Column("end_time", sa.String(length=5), nullable=True),
        sa.Column("registration_deadline", sa.DateTime(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("is_virtual", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("early_bird_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("early_bird_deadline", sa.DateTime(), nullable=True),
        sa.Column("organizer", sa.String(length=255), nullable=True),
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        sa.Column("contact_phone", sa.String(length=50), nullable=True),
        sa.Column("cme_credits", sa.Numeric(5, 2), nullable=True),
        sa.Column(
            "is_registration_open", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("signatory1_name", sa.String(length=255), nullable=True),
        sa.Column("signatory1_title", sa.String(length=255), nullable=True),
        sa.Column("signatory2_name", sa.String(length=255), nullable=True),
        sa.Column("signatory2_title", sa.String(length=255), nullable=True),
        *_timestamp_columns(),
        sa.CheckConstraint("capacity >= 0", name="ck_events_capacity_non_negative"),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="ck_events_price_non_negative"),
    )

    op.create_table(
        "event_speakers",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column(
            "event_id",
            sa.String(length=32),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("designation", sa.String(length=255), nullable=True),
        sa.Column("institution", sa.String(length=255), nullable=True),
        sa.Column("session_title", sa.String(length=255), nullable=True),
        sa.Column("session_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamp_columns(),
    )
    op.create_index("ix_event_speakers_event_id", "event_speakers", ["event_id"])

    op.create_table(
        "registrations",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column(
            "event_id",
            sa.String(length=32),
            sa.ForeignKey("events.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("organization", sa.String(length=255), nullable=True),
        sa.Column("designation", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=120), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "status",
            _status(
                "registration_status", "PENDING", "CONFIRMED", "WAITLIST", "CANCELLED", "ATTENDED"
            ),
            nullable=False,
        ),
        sa.Column(
            "payment_status",
            _status("payment_status", "PENDING", "PAID", "FREE", "REFUNDED", "FAILED"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("registered_by_id", sa.String(length=64), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        *_timestamp_columns(),
        sa.UniqueConstraint("email", "event_id", name="uq_registrations_email_event"),
        sa.CheckConstraint("amount >= 0", name="ck_registrations_amount_non_negative"),
    )
    op.create_index("ix_registrations_event_status", "registrations", ["event_id", "status"])

    op.create_table(
        "certificates",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column(
            "registration_id",
            sa.String(length=32),
            sa.ForeignKey("registrations.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "event_id",
            sa.String(length=32),
            sa.ForeignKey("events.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("certificate_code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("recipient_name", sa.String(length=255), nullable=False),
        sa.Column("recipient_email", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cme_credits", sa.Numeric(5, 2), nullable=True),
        sa.Column(
            "status",
            _status("certificate_status", "PENDING", "ISSUED", "REVOKED"),
            nullable=False,
        ),
        sa.Column("issued_at", sa.DateTime(), nullable=True),
        sa.Column("revoked_at", sa.DateTime(), nullable=True),
        sa.Column("revoked_reason", sa.Text(), nullable=True),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_downloaded_at", sa.DateTime(), nullable=True),
        *_timestamp_columns(),
    )
    op.create_index("ix_certificates_registration_id", "certificates", ["registration_id"])
    op.create_index("ix_certificates_event_id", "certificates", ["event_id"])
    op.create_index(
        "uq_certificates_live_registration",
        "certificates",
        ["registration_id"],
        unique=True,
        sqlite_where=sa.text("status != 'REVOKED'"),
        postgresql_where=sa.text("status != 'REVOKED'"),
    )

    op.create_table(
        "certificate_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("certificate_id", sa.String(length=32), nullable=False),
        sa.Column("certificate_code", sa.String(length=64), nullable=False),
        sa.Column("registration_id", sa.String(length=32), nullable=False),
        sa.Column(
            "action",
            _status("certificate_action", "CREATED", "ISSUED", "REVOKED", "REGENERATED"),
            nullable=False,
        ),
        sa.Column("actor", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamp_columns(),
    )
    op.create_index("ix_certificate_logs_certificate_id", "certificate_logs", ["certificate_id"])
    op.create_index("ix_certificate_logs_registration_id", "certificate_logs", ["registration_id"])


def downgrade() -> None:
    op.drop_table("certificate_logs")
    op.drop_index("uq_certificates_live_registration", table_name="certificates")
    op.drop_table("certificates")
    op.drop_table("registrations")
    op.drop_table("event_speakers")
    op.drop_table("events")
