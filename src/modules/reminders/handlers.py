"""Wire appointment domain events to the reminder service."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.appointments import events as domain_events
from src.modules.reminders.service import ReminderService
from src.shared.clock import Clock
from src.shared.enums import ReminderType
from src.shared.events import EventBus


def register_reminder_handlers(bus: EventBus, clock: Clock) -> None:
    async def on_proposed(event: domain_events.Proposed, db: AsyncSession) -> None:
        await ReminderService(db, clock=clock).notify_proposal(event)

    async def on_accepted(event: domain_events.Accepted, db: AsyncSession) -> None:
        await ReminderService(db, clock=clock).schedule_booking(event)

    async def on_payment_requested(event: domain_events.PaymentRequested, db: AsyncSession) -> None:
        await ReminderService(db, clock=clock).schedule_payment(event)

    async def on_payment_recorded(event: domain_events.PaymentRecorded, db: AsyncSession) -> None:
        service = ReminderService(db, clock=clock)
        await service.cancel_pending(payment_id=event.payment_id)
        if event.fully_paid:
            await service.cancel_pending(appointment_id=event.appointment_id, types=[ReminderType.PAYMENT])

    async def on_rejected(event: domain_events.Rejected, db: AsyncSession) -> None:
        await ReminderService(db, clock=clock).cancel_pending(appointment_id=event.appointment_id)

    async def on_cancelled(event: domain_events.Cancelled, db: AsyncSession) -> None:
        await ReminderService(db, clock=clock).cancel_pending(appointment_id=event.appointment_id)

    bus.subscribe(domain_events.Proposed, on_proposed)
    bus.subscribe(domain_events.Accepted, on_accepted)
    bus.subscribe(domain_events.PaymentRequested, on_payment_requested)
    bus.subscribe(domain_events.PaymentRecorded, on_payment_recorded)
    bus.subscribe(domain_events.Rejected, on_rejected)
    bus.subscribe(domain_events.Cancelled, on_cancelled)
