"""Reminder ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.config import settings
from src.core.database import Base
from src.shared.enums import ReminderPriority, ReminderStatus, ReminderType, enum_values
from src.shared.models import TimestampMixin, UTCDateTime
from src.shared.ulid import ULID_LENGTH, generate_ulid


class ReminderEvent(Base, TimestampMixin):
    """A reminder waiting for, or done with, dispatch."""

    __tablename__ = "reminder_events"
    __table_args__ = (
        Index("ix_reminder_events_status_scheduled", "status", "scheduled_for"),
        Index("ix_reminder_events_appointment", "appointment_id"),
    )

    reminder_id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    appointment_id: Mapped[str | None] = mapped_column(
        String(ULID_LENGTH), ForeignKey("appointments.appointment_id", ondelete="CASCADE")
    )
    payment_id: Mapped[str | None] = mapped_column(
        String(ULID_LENGTH), ForeignKey("payment_records.payment_id", ondelete="CASCADE")
    )
    type: Mapped[ReminderType] = mapped_column(
        Enum(ReminderType, values_callable=enum_values, validate_strings=True, name="remindertype"),
        nullable=False,
    )
    priority: Mapped[ReminderPriority] = mapped_column(
        Enum(
            ReminderPriority,
            values_callable=enum_values,
            validate_strings=True,
            name="reminderpriority",
        ),
        nullable=False,
        default=ReminderPriority.NORMAL,
    )
    scheduled_for: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    # Set when a retry pushes scheduled_for back; repeats count from this slot.
    original_scheduled_for: Mapped[datetime | None] = mapped_column(UTCDateTime())

    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    conditions: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    repeat: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    repeat_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(
        Integer, nullable=False, default=lambda: settings.reminder_max_retries
    )
    status: Mapped[ReminderStatus] = mapped_column(
        Enum(ReminderStatus, values_callable=enum_values, validate_strings=True, name="reminderstatus"),
        nullable=False,
        default=ReminderStatus.PENDING,
    )
    last_error: Mapped[str | None] = mapped_column(Text)
    skip_reason: Mapped[str | None] = mapped_column(String(255))
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
