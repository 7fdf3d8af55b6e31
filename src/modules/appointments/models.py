"""Appointment ORM models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm.attributes import flag_modified

from src.core.database import Base
from src.shared.enums import AppointmentStatus, PaymentStatus, RecurrenceFrequency, enum_values
from src.shared.models import TimestampMixin, UTCDateTime, utc_now
from src.shared.ulid import ULID_LENGTH, generate_ulid


class Appointment(Base, TimestampMixin):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_pro_start", "pro_id", "scheduled_start"),
        Index("ix_appointments_client_start", "client_id", "scheduled_start"),
        CheckConstraint("scheduled_end > scheduled_start", name="ck_appointments_time_order"),
        CheckConstraint("price >= 0", name="ck_appointments_price"),
    )

    appointment_id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True, default=generate_ulid)
    pro_id: Mapped[str] = mapped_column(String(ULID_LENGTH), ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=False)
    client_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH), ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=False
    )
    proposer_id: Mapped[str] = mapped_column(String(ULID_LENGTH), nullable=False)

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    location: Mapped[str | None] = mapped_column(String(200))
    scheduled_start: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    scheduled_end: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    deposit_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deposit_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))

    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(
            AppointmentStatus,
            values_callable=enum_values,
            validate_strings=True,
            name="appointmentstatus",
        ),
        default=AppointmentStatus.PROPOSED,
        nullable=False,
    )

    recurrence_frequency: Mapped[RecurrenceFrequency | None] = mapped_column(
        Enum(
            RecurrenceFrequency,
            values_callable=enum_values,
            validate_strings=True,
            name="recurrencefrequency",
        )
    )
    recurrence_interval: Mapped[int | None] = mapped_column(Integer)
    recurrence_end_date: Mapped[date | None] = mapped_column(Date)
    recurrence_max_occurrences: Mapped[int | None] = mapped_column(Integer)
    recurrence_parent_id: Mapped[str | None] = mapped_column(
        String(ULID_LENGTH), ForeignKey("appointments.appointment_id", ondelete="SET NULL")
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    candidates: Mapped[list[AppointmentCandidate]] = relationship(
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentCandidate.position",
        lazy="selectin",
    )
    payments: Mapped[list[PaymentRecord]] = relationship(
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="PaymentRecord.sequence",
        lazy="selectin",
    )
    history: Mapped[list[AppointmentStatusHistory]] = relationship(
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentStatusHistory.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def record_status(
        self,
        new_status: AppointmentStatus,
        at: datetime,
        changed_by: str | None = None,
        reason: str | None = None,
    ) -> None:
        """Set the status and append the matching history row."""
        old_status = self.status if self.history else None
        self.history.append(
            AppointmentStatusHistory(
                sequence=len(self.history) + 1,
                old_status=old_status,
                new_status=new_status,
                changed_by=changed_by,
                reason=reason,
                created_at=at,
            )
        )
        self.status = new_status
        self.touch(at)

    def touch(self, at: datetime) -> None:
        """Force an UPDATE so the version counter moves even when only children changed."""
        self.updated_at = at
        flag_modified(self, "updated_at")

    def append_payment(self, record: PaymentRecord) -> PaymentRecord:
        record.sequence = len(self.payments) + 1
        self.payments.append(record)
        return record


class AppointmentCandidate(Base):
    """One proposed start time; candidates are ordered by position."""

    __tablename__ = "appointment_candidates"

    candidate_id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True, default=generate_ulid)
    appointment_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("appointments.appointment_id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    appointment: Mapped[Appointment] = relationship(back_populates="candidates")


class PaymentRecord(Base):
    """Append-only ledger entry; only PENDING entries may change status."""

    __tablename__ = "payment_records"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_payment_records_amount"),)

    payment_id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True, default=generate_ulid)
    appointment_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("appointments.appointment_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(
            PaymentStatus,
            values_callable=enum_values,
            validate_strings=True,
            name="paymentstatus",
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    tag: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str | None] = mapped_column(String(200))
    external_reference: Mapped[str | None] = mapped_column(String(100), unique=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    appointment: Mapped[Appointment] = relationship(back_populates="payments")


class AppointmentStatusHistory(Base):
    __tablename__ = "appointment_status_history"

    history_id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True, default=generate_ulid)
    appointment_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("appointments.appointment_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    old_status: Mapped[AppointmentStatus | None] = mapped_column(
        Enum(
            AppointmentStatus,
            values_callable=enum_values,
            validate_strings=True,
            name="appointmentstatus",
        )
    )
    new_status: Mapped[AppointmentStatus] = mapped_column(
        Enum(
            AppointmentStatus,
            values_callable=enum_values,
            validate_strings=True,
            name="appointmentstatus",
        ),
        nullable=False,
    )
    changed_by: Mapped[str | None] = mapped_column(String(ULID_LENGTH))
    reason: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now, nullable=False)

    appointment: Mapped[Appointment] = relationship(back_populates="history")
