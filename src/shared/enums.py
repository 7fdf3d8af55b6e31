"""Shared enumerations used across modules."""

from __future__ import annotations

from datetime import date
from enum import StrEnum
from typing import Iterable, TypeVar

EnumType = TypeVar("EnumType", bound=StrEnum)


def enum_values(enum_cls: Iterable[EnumType]) -> list[str]:
    """Return the .value for each enum member (used by SQLAlchemy)."""
    return [member.value for member in enum_cls]


class UserRole(StrEnum):
    PRO = "pro"
    CLIENT = "client"


class AppointmentStatus(StrEnum):
    PROPOSED = "PROPOSED"
    ACCEPTED = "ACCEPTED"
    CONFIRMED = "CONFIRMED"
    PAID = "PAID"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


# Statuses that hold a professional's time.
COMMITTED_STATUSES = (
    AppointmentStatus.PROPOSED,
    AppointmentStatus.ACCEPTED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.PAID,
)


class PaymentStatus(StrEnum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentKind(StrEnum):
    DEPOSIT = "deposit"
    BALANCE = "balance"
    FULL = "full"


class ResponseAction(StrEnum):
    ACCEPT = "accept"
    REJECT = "reject"


class RecurrenceFrequency(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RefundTier(StrEnum):
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


class ConflictType(StrEnum):
    OVERLAP = "overlap"
    INSUFFICIENT_TIME = "insufficient_time"
    UNAVAILABLE_HOURS = "unavailable_hours"
    DOUBLE_BOOKING = "double_booking"


class ConflictSeverity(StrEnum):
    WARNING = "warning"
    ERROR = "error"


class ReminderType(StrEnum):
    BOOKING = "booking"
    PAYMENT = "payment"
    FOLLOW_UP = "follow_up"
    MARKETING = "marketing"
    SYSTEM = "system"


class ReminderPriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class ReminderStatus(StrEnum):
    PENDING = "pending"
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Weekday(StrEnum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_index(cls, index: int) -> "Weekday":
        members = list(cls)
        if not 0 <= index < len(members):
            msg = f"weekday index {index} out of range"
            raise ValueError(msg)
        return members[index]

    @classmethod
    def from_date(cls, value: date) -> "Weekday":
        return cls.from_index(value.weekday())
