"""Reminder routes."""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.modules.reminders.schemas import CustomReminderCreate, DispatchReport, ReminderPublic
from src.modules.reminders.service import ReminderService
from src.shared.enums import ReminderStatus

router = APIRouter(prefix="/api/v1/reminders", tags=["reminders"])


def get_service(request: Request, db: AsyncSession = Depends(get_db)) -> ReminderService:
    state = request.app.state
    return ReminderService(db, clock=state.clock, delivery=state.push_delivery)


@router.get("", response_model=list[ReminderPublic])
async def list_reminders(
    user_id: str = Query(...),
    status_value: ReminderStatus | None = Query(None, alias="status"),
    service: ReminderService = Depends(get_service),
) -> list[ReminderPublic]:
    return await service.list_for_user(user_id, status_value)


@router.post("", response_model=ReminderPublic, status_code=status.HTTP_201_CREATED)
async def create_reminder(
    payload: CustomReminderCreate,
    service: ReminderService = Depends(get_service),
) -> ReminderPublic:
    return await service.schedule_custom(payload)


@router.post("/dispatch", response_model=DispatchReport)
async def dispatch_due(service: ReminderService = Depends(get_service)) -> DispatchReport:
    return await service.dispatch_due()
