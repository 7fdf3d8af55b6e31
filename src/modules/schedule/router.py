"""Schedule routes."""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.modules.schedule.conflicts import has_blocking
from src.modules.schedule.schemas import (
    ConflictCheckRequest,
    ConflictCheckResult,
    DaySchedule,
    SlotCreate,
    SlotPublic,
)
from src.modules.schedule.service import ScheduleService

router = APIRouter(prefix="/api/v1/schedule", tags=["schedule"])


def get_service(db: AsyncSession = Depends(get_db)) -> ScheduleService:
    return ScheduleService(db)


@router.post("/conflicts", response_model=ConflictCheckResult)
async def check_conflicts(
    payload: ConflictCheckRequest,
    service: ScheduleService = Depends(get_service),
) -> ConflictCheckResult:
    conflicts = await service.check_conflicts(payload)
    return ConflictCheckResult(conflicts=conflicts, blocking=has_blocking(conflicts))


@router.get("/slots", response_model=DaySchedule)
async def list_slots(
    professional_id: str = Query(...),
    date_value: date = Query(..., alias="date"),
    service: ScheduleService = Depends(get_service),
) -> DaySchedule:
    slots = await service.slots_for_day(professional_id, date_value)
    return DaySchedule(
        professional_id=professional_id,
        day=date_value,
        slots=[SlotPublic.model_validate(slot) for slot in slots],
    )


@router.post("/slots", response_model=SlotPublic, status_code=status.HTTP_201_CREATED)
async def create_slot(
    payload: SlotCreate,
    service: ScheduleService = Depends(get_service),
) -> SlotPublic:
    return await service.create_slot(payload)


@router.delete("/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(
    slot_id: str,
    service: ScheduleService = Depends(get_service),
) -> None:
    await service.delete_slot(slot_id)
