"""Pydantic schemas for users."""

from datetime import datetime
from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from src.shared.enums import UserRole


def _check_timezone(value: str | None) -> str | None:
    if value is None:
        return value
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone '{value}'") from exc
    return value


TimezoneName = Annotated[str | None, AfterValidator(_check_timezone)]


class UserCreate(BaseModel):
    role: UserRole = UserRole.CLIENT
    display_name: str | None = Field(None, max_length=100)
    timezone: TimezoneName = None


class UserUpdate(BaseModel):
    display_name: str | None = Field(None, max_length=100)
    timezone: TimezoneName = None


class UserPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    role: UserRole
    display_name: str | None = None
    timezone: str | None = None
    last_active_at: datetime | None = None
    created_at: datetime
