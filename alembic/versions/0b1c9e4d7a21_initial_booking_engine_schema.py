"""Initial schema for the booking engine.

Revision ID: 0b1c9e4d7a21
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0b1c9e4d7a21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum("pro", "client", name="userrole")
APPOINTMENT_STATUSES = ("PROPOSED", "ACCEPTED", "CONFIRMED", "PAID", "COMPLETED", "CANCELLED")
appointment_status = sa.Enum(*APPOINTMENT_STATUSES, name="appointmentstatus")
# The history table reuses the type created with the appointments table.
appointment_status_ref = sa.Enum(*APPOINTMENT_STATUSES, name="appointmentstatus").with_variant(
    postgresql.ENUM(*APPOINTMENT_STATUSES, name="appointmentstatus", create_type=False), "postgresql"
)
recurrence_frequency = sa.Enum("daily", "weekly", "monthly", name="recurrencefrequency")
payment_status = sa.Enum("PENDING", "COMPLETED", "FAILED", "REFUNDED", name="paymentstatus")
reminder_type = sa.Enum("booking", "payment", "follow_up", "marketing", "system", name="remindertype")
reminder_priority = sa.Enum("low", "normal", "high", name="reminderpriority")
reminder_status = sa.Enum("pending", "delivered", "skipped", "failed", "cancelled", name="reminderstatus")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(length=26), primary_key=True),
        sa.Column("role", user_role, nullable=False, server_default="client"),
        sa.Column("display_name", sa.String(length=100)),
        sa.Column("timezone", sa.String(length=64)),
        sa.Column("last_active_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )

    op.create_table(
        "appointments",
        sa.Column("appointment_id", sa.String(length=26), primary_key=True),
        sa.Column("pro_id", sa.String(length=26), sa.ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=False),
        sa.Column("client_id", sa.String(length=26), sa.ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=False),
        sa.Column("proposer_id", sa.String(length=26), nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("location", sa.String(length=200)),
        sa.Column("scheduled_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("deposit_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deposit_amount", sa.Numeric(10, 2)),
        sa.Column("status", appointment_status, nullable=False, server_default="PROPOSED"),
        sa.Column("recurrence_frequency", recurrence_frequency),
        sa.Column("recurrence_interval", sa.Integer()),
        sa.Column("recurrence_end_date", sa.Date()),
        sa.Column("recurrence_max_occurrences", sa.Integer()),
        sa.Column(
            "recurrence_parent_id",
            sa.String(length=26),
            sa.ForeignKey("appointments.appointment_id", ondelete="SET NULL"),
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("scheduled_end > scheduled_start", name="ck_appointments_time_order"),
        sa.CheckConstraint("price >= 0", name="ck_appointments_price"),
    )
    op.create_index("ix_appointments_pro_start", "appointments", ["pro_id", "scheduled_start"])
    op.create_index("ix_appointments_client_start", "appointments", ["client_id", "scheduled_start"])

    op.create_table(
        "appointment_candidates",
        sa.Column("candidate_id", sa.String(length=26), primary_key=True),
        sa.Column(
            "appointment_id",
            sa.String(length=26),
            sa.ForeignKey("appointments.appointment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "payment_records",
        sa.Column("payment_id", sa.String(length=26), primary_key=True),
        sa.Column(
            "appointment_id",
            sa.String(length=26),
            sa.ForeignKey("appointments.appointment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", payment_status, nullable=False, server_default="PENDING"),
        sa.Column("tag", sa.String(length=32), nullable=False),
        sa.Column("description", sa.String(length=200)),
        sa.Column("external_reference", sa.String(length=100), unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("amount > 0", name="ck_payment_records_amount"),
    )
    op.create_index("ix_payment_records_appointment_id", "payment_records", ["appointment_id"])

    op.create_table(
        "appointment_status_history",
        sa.Column("history_id", sa.String(length=26), primary_key=True),
        sa.Column(
            "appointment_id",
            sa.String(length=26),
            sa.ForeignKey("appointments.appointment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("old_status", appointment_status_ref),
        sa.Column("new_status", appointment_status_ref, nullable=False),
        sa.Column("changed_by", sa.String(length=26)),
        sa.Column("reason", sa.String(length=255)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_appointment_status_history_appointment_id", "appointment_status_history", ["appointment_id"]
    )

    op.create_table(
        "availability_slots",
        sa.Column("slot_id", sa.String(length=26), primary_key=True),
        sa.Column(
            "professional_id",
            sa.String(length=26),
            sa.ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("end_time > start_time", name="ck_availability_slots_time_order"),
    )
    op.create_index(
        "ix_availability_slots_professional_start", "availability_slots", ["professional_id", "start_time"]
    )

    op.create_table(
        "reminder_events",
        sa.Column("reminder_id", sa.String(length=26), primary_key=True),
        sa.Column("user_id", sa.String(length=26), sa.ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "appointment_id",
            sa.String(length=26),
            sa.ForeignKey("appointments.appointment_id", ondelete="CASCADE"),
        ),
        sa.Column(
            "payment_id",
            sa.String(length=26),
            sa.ForeignKey("payment_records.payment_id", ondelete="CASCADE"),
        ),
        sa.Column("type", reminder_type, nullable=False),
        sa.Column("priority", reminder_priority, nullable=False, server_default="normal"),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("original_scheduled_for", sa.DateTime(timezone=True)),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("conditions", sa.JSON()),
        sa.Column("repeat", sa.JSON()),
        sa.Column("repeat_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("status", reminder_status, nullable=False, server_default="pending"),
        sa.Column("last_error", sa.Text()),
        sa.Column("skip_reason", sa.String(length=255)),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("ix_reminder_events_status_scheduled", "reminder_events", ["status", "scheduled_for"])
    op.create_index("ix_reminder_events_appointment", "reminder_events", ["appointment_id"])


def downgrade() -> None:
    op.drop_index("ix_reminder_events_appointment", table_name="reminder_events")
    op.drop_index("ix_reminder_events_status_scheduled", table_name="reminder_events")
    op.drop_table("reminder_events")
    op.drop_index("ix_availability_slots_professional_start", table_name="availability_slots")
    op.drop_table("availability_slots")
    op.drop_index("ix_appointment_status_history_appointment_id", table_name="appointment_status_history")
    op.drop_table("appointment_status_history")
    op.drop_index("ix_payment_records_appointment_id", table_name="payment_records")
    op.drop_table("payment_records")
    op.drop_table("appointment_candidates")
    op.drop_index("ix_appointments_client_start", table_name="appointments")
    op.drop_index("ix_appointments_pro_start", table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (
        reminder_status,
        reminder_priority,
        reminder_type,
        payment_status,
        recurrence_frequency,
        appointment_status,
        user_role,
    ):
        enum.drop(bind, checkfirst=True)
