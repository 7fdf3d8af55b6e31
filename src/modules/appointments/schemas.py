"""Appointments schemas."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.shared.enums import (
    AppointmentStatus,
    PaymentKind,
    PaymentStatus,
    RecurrenceFrequency,
    RefundTier,
    ResponseAction,
)


class RecurrencePattern(BaseModel):
    frequency: RecurrenceFrequency
    interval: int = Field(1, ge=1)
    end_date: date | None = None
    max_occurrences: int | None = Field(None, ge=1)


class AppointmentDraft(BaseModel):
    pro_id: str
    client_id: str
    proposer_id: str
    title: str = Field(..., min_length=3, max_length=100)
    description: str | None = Field(None, max_length=500)
    candidate_times: list[datetime]
    duration_minutes: int = Field(..., ge=15, le=480)
    location: str | None = Field(None, max_length=200)
    currency: str | None = Field(None, min_length=3, max_length=3)
    price: Decimal
    max_participants: int = Field(1, ge=1)
    deposit_required: bool = False
    deposit_amount: Decimal | None = None
    recurrence: RecurrencePattern | None = None


class CandidatePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    start_time: datetime


class PaymentRecordPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_id: str = Field(serialization_alias="id")
    amount: Decimal
    status: PaymentStatus
    tag: str
    description: str | None = None
    external_reference: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class StatusHistoryPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    old_status: AppointmentStatus | None
    new_status: AppointmentStatus
    changed_by: str | None = None
    reason: str | None = None
    created_at: datetime


class AppointmentSummary(BaseModel):
    paid_amount: Decimal
    outstanding: Decimal
    deposit_paid: bool
    fully_paid: bool
    can_be_cancelled: bool
    allowed_transitions: list[AppointmentStatus]
    allowed_actions: list[str]
    next_action: str


class AppointmentPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    appointment_id: str = Field(serialization_alias="id")
    pro_id: str
    client_id: str
    proposer_id: str
    title: str
    description: str | None = None
    location: str | None = None
    scheduled_start: datetime
    scheduled_end: datetime
    duration_minutes: int
    currency: str
    price: Decimal
    max_participants: int
    deposit_required: bool
    deposit_amount: Decimal | None = None
    status: AppointmentStatus
    recurrence_parent_id: str | None = None
    candidates: list[CandidatePublic] = []
    payments: list[PaymentRecordPublic] = []
    summary: AppointmentSummary | None = None


class RespondRequest(BaseModel):
    action: ResponseAction
    chosen_index: int | None = None
    actor_id: str | None = None


class PaymentCreate(BaseModel):
    amount: Decimal
    tag: str = Field(PaymentKind.BALANCE.value, min_length=1, max_length=32)


class PaymentRequestCreate(BaseModel):
    kind: PaymentKind


class PaymentSettle(BaseModel):
    succeeded: bool


class CheckoutPublic(BaseModel):
    payment: PaymentRecordPublic
    redirect_url: str


class CancelRequest(BaseModel):
    actor_id: str
    reason: str | None = Field(None, max_length=255)


class CompleteRequest(BaseModel):
    actor_id: str | None = None


class CancellationQuote(BaseModel):
    paid_amount: Decimal
    refund_amount: Decimal
    refund_tier: RefundTier
    policy: str
    hours_until_appointment: float


class CancellationResult(BaseModel):
    appointment: AppointmentPublic
    refund_amount: Decimal
    refund_tier: RefundTier
    policy: str


class RecurrenceResult(BaseModel):
    requested: int
    created: int
    failed: int
    appointment_ids: list[str]
