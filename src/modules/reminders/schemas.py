"""Reminder schemas, including the per-type payload union."""

from datetime import datetime, time
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.shared.enums import ReminderPriority, ReminderStatus, ReminderType, Weekday


class TimeWindow(BaseModel):
    """Local time-of-day window; `end` before `start` wraps past midnight."""

    start: time
    end: time

    def contains(self, value: time) -> bool:
        if self.start <= self.end:
            return self.start <= value <= self.end
        return value >= self.start or value <= self.end


class DeliveryConditions(BaseModel):
    time_windows: list[TimeWindow] = Field(default_factory=list)
    days_of_week: set[Weekday] | None = None
    require_user_active: bool = False


class RepeatPattern(BaseModel):
    every_minutes: int = Field(..., ge=1)
    count: int = Field(..., ge=1)


class BookingPayload(BaseModel):
    kind: Literal["booking"] = "booking"
    audience: Literal["client", "pro"]
    appointment_title: str
    scheduled_start: datetime
    minutes_before: int


class PaymentPayload(BaseModel):
    kind: Literal["payment"] = "payment"
    amount: Decimal
    currency: str
    due_at: datetime
    minutes_before_due: int


class FollowUpPayload(BaseModel):
    kind: Literal["follow_up"] = "follow_up"
    appointment_title: str
    scheduled_start: datetime


class MarketingPayload(BaseModel):
    kind: Literal["marketing"] = "marketing"
    campaign: str
    message: str


class SystemPayload(BaseModel):
    kind: Literal["system"] = "system"
    message: str
    code: str | None = None


ReminderPayload = Annotated[
    Union[BookingPayload, PaymentPayload, FollowUpPayload, MarketingPayload, SystemPayload],
    Field(discriminator="kind"),
]


class ReminderDraft(BaseModel):
    """A computed reminder that has not been stored yet."""

    user_id: str
    type: ReminderType
    priority: ReminderPriority
    scheduled_for: datetime
    payload: ReminderPayload
    appointment_id: str | None = None
    payment_id: str | None = None
    conditions: DeliveryConditions | None = None
    repeat: RepeatPattern | None = None

    @model_validator(mode="after")
    def payload_matches_type(self) -> "ReminderDraft":
        if self.payload.kind != self.type.value:
            raise ValueError(f"Payload kind '{self.payload.kind}' does not match type '{self.type.value}'")
        return self


CUSTOM_TYPES = (ReminderType.MARKETING, ReminderType.SYSTEM)


class CustomReminderCreate(BaseModel):
    user_id: str
    type: ReminderType
    priority: ReminderPriority = ReminderPriority.LOW
    scheduled_for: datetime
    payload: ReminderPayload
    conditions: DeliveryConditions | None = None
    repeat: RepeatPattern | None = None

    @model_validator(mode="after")
    def payload_matches_type(self) -> "CustomReminderCreate":
        if self.type not in CUSTOM_TYPES:
            raise ValueError("Only marketing and system reminders can be scheduled directly")
        if self.payload.kind != self.type.value:
            raise ValueError(f"Payload kind '{self.payload.kind}' does not match type '{self.type.value}'")
        if self.scheduled_for.tzinfo is None:
            raise ValueError("scheduled_for must be timezone-aware")
        return self


class ReminderPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reminder_id: str = Field(serialization_alias="id")
    user_id: str
    appointment_id: str | None = None
    payment_id: str | None = None
    type: ReminderType
    priority: ReminderPriority
    scheduled_for: datetime
    payload: dict
    conditions: dict | None = None
    repeat: dict | None = None
    retry_count: int
    max_retries: int
    status: ReminderStatus
    last_error: str | None = None
    skip_reason: str | None = None
    processed_at: datetime | None = None


class DispatchDecision(BaseModel):
    should_send: bool
    reason: str | None = None


class DispatchReport(BaseModel):
    delivered: int = 0
    skipped: int = 0
    retried: int = 0
    failed: int = 0
