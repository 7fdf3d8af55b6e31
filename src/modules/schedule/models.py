"""Schedule ORM models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base
from src.shared.models import TimestampMixin, UTCDateTime
from src.shared.ulid import ULID_LENGTH, generate_ulid


class AvailabilitySlot(Base, TimestampMixin):
    """A window a professional has declared bookable."""

    __tablename__ = "availability_slots"
    __table_args__ = (
        Index("ix_availability_slots_professional_start", "professional_id", "start_time"),
        CheckConstraint("end_time > start_time", name="ck_availability_slots_time_order"),
    )

    slot_id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True, default=generate_ulid)
    professional_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
