"""Domain events emitted by the appointment state machine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.shared.enums import AppointmentStatus, RefundTier


@dataclass(frozen=True)
class AppointmentEvent:
    appointment_id: str
    pro_id: str
    client_id: str
    title: str
    scheduled_start: datetime
    occurred_at: datetime


@dataclass(frozen=True)
class Proposed(AppointmentEvent):
    proposer_id: str


@dataclass(frozen=True)
class Accepted(AppointmentEvent):
    status: AppointmentStatus


@dataclass(frozen=True)
class Rejected(AppointmentEvent):
    actor_id: str | None


@dataclass(frozen=True)
class PaymentRequested(AppointmentEvent):
    payment_id: str
    amount: Decimal
    currency: str
    payment_created_at: datetime


@dataclass(frozen=True)
class PaymentRecorded(AppointmentEvent):
    payment_id: str
    amount: Decimal
    status: AppointmentStatus
    fully_paid: bool


@dataclass(frozen=True)
class Cancelled(AppointmentEvent):
    actor_id: str
    reason: str | None
    refund_amount: Decimal
    refund_tier: RefundTier


@dataclass(frozen=True)
class Completed(AppointmentEvent):
    actor_id: str | None
