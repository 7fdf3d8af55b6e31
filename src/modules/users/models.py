"""ORM models for the users domain."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base
from src.shared.enums import UserRole, enum_values
from src.shared.models import TimestampMixin, UTCDateTime
from src.shared.ulid import ULID_LENGTH, generate_ulid


class User(Base, TimestampMixin):
    """Marketplace party as seen by the booking engine: a pro or a client."""

    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH),
        primary_key=True,
        default=generate_ulid,
    )
    role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            values_callable=enum_values,
            validate_strings=True,
            name="userrole",
        ),
        nullable=False,
        default=UserRole.CLIENT,
    )
    display_name: Mapped[str | None] = mapped_column(String(100))
    timezone: Mapped[str | None] = mapped_column(String(64))
    last_active_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
