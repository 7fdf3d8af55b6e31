"""Business logic for declared slots and conflict checks."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.exceptions import NotFoundError, ValidationError
from src.modules.appointments.models import Appointment
from src.modules.schedule.conflicts import detect_conflicts, overlaps
from src.modules.schedule.models import AvailabilitySlot
from src.modules.schedule.schemas import ConflictCheckRequest, ConflictReport, SlotCreate
from src.modules.users.models import User
from src.shared.enums import COMMITTED_STATUSES, UserRole

logger = logging.getLogger(__name__)


def day_bounds(target_date: date, tz: tzinfo) -> tuple[datetime, datetime]:
    day_start = datetime.combine(target_date, time.min, tz)
    return day_start, day_start + timedelta(days=1)


class ScheduleService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.tz = ZoneInfo(settings.default_timezone)

    async def check_conflicts(self, request: ConflictCheckRequest) -> list[ConflictReport]:
        start, end = request.start_time, request.end_time
        commitments = await self._professional_commitments(request.professional_id, start, end)
        slots = await self.slots_for_day(request.professional_id, start.astimezone(self.tz).date())
        client_commitments = []
        if request.client_id:
            client_commitments = await self._client_commitments(
                request.client_id, request.professional_id, start, end
            )
        conflicts = detect_conflicts(
            start,
            end,
            request.requested_minutes,
            commitments,
            slots,
            client_commitments=client_commitments,
            exclude_appointment_id=request.exclude_appointment_id,
        )
        if conflicts:
            logger.info(
                "Conflict check for %s at %s: %s",
                request.professional_id,
                start.isoformat(),
                ", ".join(conflict.type.value for conflict in conflicts),
            )
        return conflicts

    async def slots_for_day(self, professional_id: str, target_date: date) -> list[AvailabilitySlot]:
        day_start, day_end = day_bounds(target_date, self.tz)
        stmt = (
            select(AvailabilitySlot)
            .where(
                AvailabilitySlot.professional_id == professional_id,
                AvailabilitySlot.start_time >= day_start,
                AvailabilitySlot.start_time < day_end,
            )
            .order_by(AvailabilitySlot.start_time)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_slot(self, payload: SlotCreate) -> AvailabilitySlot:
        professional = await self.db.get(User, payload.professional_id)
        if professional is None:
            raise NotFoundError("Professional not found")
        if professional.role != UserRole.PRO:
            raise ValidationError("Slots can only be declared by professionals")

        existing = await self.slots_for_day(
            payload.professional_id, payload.start_time.astimezone(self.tz).date()
        )
        for slot in existing:
            if overlaps(payload.start_time, payload.end_time, slot.start_time, slot.end_time):
                raise ValidationError("Slot overlaps an existing declared slot")

        slot = AvailabilitySlot(
            professional_id=payload.professional_id,
            start_time=payload.start_time,
            end_time=payload.end_time,
            is_available=payload.is_available,
        )
        self.db.add(slot)
        await self.db.commit()
        return slot

    async def delete_slot(self, slot_id: str) -> None:
        slot = await self.db.get(AvailabilitySlot, slot_id)
        if slot is None:
            raise NotFoundError("Slot not found")
        await self.db.delete(slot)
        await self.db.commit()

    async def _professional_commitments(
        self, professional_id: str, start: datetime, end: datetime
    ) -> list[Appointment]:
        stmt = select(Appointment).where(
            Appointment.pro_id == professional_id,
            Appointment.status.in_(COMMITTED_STATUSES),
            Appointment.scheduled_start < end,
            Appointment.scheduled_end > start,
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _client_commitments(
        self, client_id: str, professional_id: str, start: datetime, end: datetime
    ) -> list[Appointment]:
        stmt = select(Appointment).where(
            Appointment.client_id == client_id,
            Appointment.pro_id != professional_id,
            Appointment.status.in_(COMMITTED_STATUSES),
            Appointment.scheduled_start < end,
            Appointment.scheduled_end > start,
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
