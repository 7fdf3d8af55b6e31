"""Schedule schemas."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.shared.enums import ConflictSeverity, ConflictType


class ConflictReport(BaseModel):
    type: ConflictType
    severity: ConflictSeverity
    message: str
    suggested_solutions: list[str] = Field(..., min_length=2, max_length=3)


class ConflictCheckRequest(BaseModel):
    professional_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int | None = Field(None, ge=1)
    client_id: str | None = None
    exclude_appointment_id: str | None = None

    @model_validator(mode="after")
    def validate_range(self) -> "ConflictCheckRequest":
        if self.start_time.tzinfo is None or self.end_time.tzinfo is None:
            raise ValueError("start_time and end_time must be timezone-aware")
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    @property
    def requested_minutes(self) -> int:
        if self.duration_minutes is not None:
            return self.duration_minutes
        return int((self.end_time - self.start_time).total_seconds() // 60)


class ConflictCheckResult(BaseModel):
    conflicts: list[ConflictReport]
    blocking: bool


class SlotCreate(BaseModel):
    professional_id: str
    start_time: datetime
    end_time: datetime
    is_available: bool = True

    @model_validator(mode="after")
    def validate_range(self) -> "SlotCreate":
        if self.start_time.tzinfo is None or self.end_time.tzinfo is None:
            raise ValueError("start_time and end_time must be timezone-aware")
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class SlotPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    slot_id: str
    professional_id: str
    start_time: datetime
    end_time: datetime
    is_available: bool


class DaySchedule(BaseModel):
    professional_id: str
    day: date
    slots: list[SlotPublic]
