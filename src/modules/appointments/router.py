"""Appointments API routes."""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.modules.appointments.schemas import (
    AppointmentDraft,
    AppointmentPublic,
    CancellationQuote,
    CancellationResult,
    CancelRequest,
    CheckoutPublic,
    CompleteRequest,
    PaymentCreate,
    PaymentRecordPublic,
    PaymentRequestCreate,
    PaymentSettle,
    RecurrenceResult,
    RespondRequest,
    StatusHistoryPublic,
)
from src.modules.appointments.service import AppointmentService
from src.shared.enums import AppointmentStatus, UserRole

router = APIRouter(prefix="/api/v1/appointments", tags=["appointments"])
payments_router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


def get_service(request: Request, db: AsyncSession = Depends(get_db)) -> AppointmentService:
    state = request.app.state
    return AppointmentService(
        db,
        clock=state.clock,
        events=state.events,
        locks=state.locks,
        provider=state.payment_provider,
    )


class RespondResponse(AppointmentPublic):
    series: RecurrenceResult | None = None


@router.post("", response_model=AppointmentPublic, status_code=status.HTTP_201_CREATED)
async def propose_appointment(
    payload: AppointmentDraft,
    enforce_conflicts: bool = Query(False),
    service: AppointmentService = Depends(get_service),
) -> AppointmentPublic:
    appointment = await service.propose(payload, enforce_conflicts=enforce_conflicts)
    return service.present(appointment, payload.proposer_id)


@router.get("", response_model=list[AppointmentPublic])
async def list_appointments(
    user_id: str = Query(...),
    role: UserRole | None = Query(None),
    statuses: list[AppointmentStatus] | None = Query(None, alias="status"),
    service: AppointmentService = Depends(get_service),
) -> list[AppointmentPublic]:
    appointments = await service.list_for_user(user_id, role, statuses)
    return [service.present(appointment, user_id) for appointment in appointments]


@router.get("/{appointment_id}", response_model=AppointmentPublic)
async def get_appointment(
    appointment_id: str,
    actor_id: str | None = Query(None),
    service: AppointmentService = Depends(get_service),
) -> AppointmentPublic:
    appointment = await service.get(appointment_id)
    return service.present(appointment, actor_id)


@router.get("/{appointment_id}/history", response_model=list[StatusHistoryPublic])
async def appointment_history(
    appointment_id: str,
    service: AppointmentService = Depends(get_service),
) -> list[StatusHistoryPublic]:
    return await service.history(appointment_id)


@router.post("/{appointment_id}/respond", response_model=RespondResponse)
async def respond_to_appointment(
    appointment_id: str,
    payload: RespondRequest,
    service: AppointmentService = Depends(get_service),
) -> RespondResponse:
    outcome = await service.respond(appointment_id, payload.action, payload.chosen_index, payload.actor_id)
    public = service.present(outcome.appointment, payload.actor_id)
    return RespondResponse(**public.model_dump(), series=outcome.series)


@router.post("/{appointment_id}/payments", response_model=AppointmentPublic)
async def record_payment(
    appointment_id: str,
    payload: PaymentCreate,
    service: AppointmentService = Depends(get_service),
) -> AppointmentPublic:
    appointment = await service.record_payment(appointment_id, payload.amount, payload.tag)
    return service.present(appointment)


@router.post(
    "/{appointment_id}/checkout",
    response_model=CheckoutPublic,
    status_code=status.HTTP_201_CREATED,
)
async def request_payment(
    appointment_id: str,
    payload: PaymentRequestCreate,
    service: AppointmentService = Depends(get_service),
) -> CheckoutPublic:
    outcome = await service.request_payment(appointment_id, payload.kind)
    return CheckoutPublic(
        payment=PaymentRecordPublic.model_validate(outcome.payment),
        redirect_url=outcome.redirect_url,
    )


@router.get("/{appointment_id}/cancellation-quote", response_model=CancellationQuote)
async def quote_cancellation(
    appointment_id: str,
    service: AppointmentService = Depends(get_service),
) -> CancellationQuote:
    return await service.quote_cancellation(appointment_id)


@router.post("/{appointment_id}/cancel", response_model=CancellationResult)
async def cancel_appointment(
    appointment_id: str,
    payload: CancelRequest,
    service: AppointmentService = Depends(get_service),
) -> CancellationResult:
    outcome = await service.cancel(appointment_id, payload.actor_id, payload.reason)
    return CancellationResult(
        appointment=service.present(outcome.appointment, payload.actor_id),
        refund_amount=outcome.refund.amount,
        refund_tier=outcome.refund.tier,
        policy=outcome.refund.description,
    )


@router.post("/{appointment_id}/complete", response_model=AppointmentPublic)
async def complete_appointment(
    appointment_id: str,
    payload: CompleteRequest,
    service: AppointmentService = Depends(get_service),
) -> AppointmentPublic:
    appointment = await service.complete(appointment_id, payload.actor_id)
    return service.present(appointment, payload.actor_id)


@payments_router.post("/{payment_id}/settle", response_model=AppointmentPublic)
async def settle_payment(
    payment_id: str,
    payload: PaymentSettle,
    service: AppointmentService = Depends(get_service),
) -> AppointmentPublic:
    appointment = await service.settle_payment(payment_id, payload.succeeded)
    return service.present(appointment)


@payments_router.post("/by-reference/{reference}/settle", response_model=AppointmentPublic)
async def settle_payment_by_reference(
    reference: str,
    payload: PaymentSettle,
    service: AppointmentService = Depends(get_service),
) -> AppointmentPublic:
    appointment = await service.settle_by_reference(reference, payload.succeeded)
    return service.present(appointment)
