"""Reminder persistence, cancellation and dispatch."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.exceptions import NotFoundError, ProviderUnavailableError
from src.modules.appointments import events as domain_events
from src.modules.reminders.delivery import DeliveryError, PushDelivery
from src.modules.reminders.models import ReminderEvent
from src.modules.reminders.scheduler import booking_reminders, evaluate_for_dispatch, payment_reminders
from src.modules.reminders.schemas import (
    CustomReminderCreate,
    DeliveryConditions,
    DispatchReport,
    ReminderDraft,
    RepeatPattern,
    SystemPayload,
)
from src.modules.users.models import User
from src.shared.clock import Clock, SystemClock
from src.shared.enums import ReminderPriority, ReminderStatus, ReminderType

logger = logging.getLogger(__name__)

# Re-queued deliveries wait this long per attempt already made.
RETRY_BACKOFF = timedelta(minutes=5)


class ReminderService:
    def __init__(
        self,
        db: AsyncSession,
        *,
        clock: Clock | None = None,
        delivery: PushDelivery | None = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.delivery = delivery

    # Scheduling

    async def store(self, drafts: Iterable[ReminderDraft]) -> list[ReminderEvent]:
        reminders = [self._from_draft(draft) for draft in drafts]
        self.db.add_all(reminders)
        await self.db.commit()
        return reminders

    async def schedule_booking(self, event: domain_events.Accepted) -> list[ReminderEvent]:
        drafts = booking_reminders(
            appointment_id=event.appointment_id,
            client_id=event.client_id,
            pro_id=event.pro_id,
            title=event.title,
            scheduled_start=event.scheduled_start,
            now=self.clock.now(),
        )
        reminders = await self.store(drafts)
        logger.info("Scheduled %d booking reminder(s) for %s", len(reminders), event.appointment_id)
        return reminders

    async def schedule_payment(self, event: domain_events.PaymentRequested) -> list[ReminderEvent]:
        drafts = payment_reminders(
            payment_id=event.payment_id,
            appointment_id=event.appointment_id,
            user_id=event.client_id,
            amount=event.amount,
            currency=event.currency,
            created_at=event.payment_created_at,
            now=self.clock.now(),
        )
        reminders = await self.store(drafts)
        logger.info("Scheduled %d payment reminder(s) for payment %s", len(reminders), event.payment_id)
        return reminders

    async def notify_proposal(self, event: domain_events.Proposed) -> list[ReminderEvent]:
        recipient = event.client_id if event.proposer_id == event.pro_id else event.pro_id
        draft = ReminderDraft(
            user_id=recipient,
            appointment_id=event.appointment_id,
            type=ReminderType.SYSTEM,
            priority=ReminderPriority.NORMAL,
            scheduled_for=event.occurred_at,
            payload=SystemPayload(message=f"New appointment proposal: {event.title}", code="proposal"),
        )
        return await self.store([draft])

    async def schedule_custom(self, payload: CustomReminderCreate) -> ReminderEvent:
        if await self.db.get(User, payload.user_id) is None:
            raise NotFoundError("User not found")
        draft = ReminderDraft(**payload.model_dump())
        (reminder,) = await self.store([draft])
        logger.info("Scheduled %s reminder %s for %s", reminder.type.value, reminder.reminder_id, payload.user_id)
        return reminder

    # Cancellation

    async def cancel_pending(
        self,
        *,
        appointment_id: str | None = None,
        payment_id: str | None = None,
        types: Sequence[ReminderType] | None = None,
    ) -> int:
        if appointment_id is None and payment_id is None:
            raise ValueError("appointment_id or payment_id is required")
        stmt = (
            update(ReminderEvent)
            .where(ReminderEvent.status == ReminderStatus.PENDING)
            .values(status=ReminderStatus.CANCELLED, processed_at=self.clock.now())
            .execution_options(synchronize_session="fetch")
        )
        if appointment_id is not None:
            stmt = stmt.where(ReminderEvent.appointment_id == appointment_id)
        if payment_id is not None:
            stmt = stmt.where(ReminderEvent.payment_id == payment_id)
        if types:
            stmt = stmt.where(ReminderEvent.type.in_(list(types)))
        result = await self.db.execute(stmt)
        await self.db.commit()
        if result.rowcount:
            logger.info(
                "Cancelled %d pending reminder(s) for %s", result.rowcount, appointment_id or payment_id
            )
        return result.rowcount

    # Dispatch

    async def list_for_user(self, user_id: str, status: ReminderStatus | None = None) -> list[ReminderEvent]:
        stmt = select(ReminderEvent).where(ReminderEvent.user_id == user_id)
        if status is not None:
            stmt = stmt.where(ReminderEvent.status == status)
        result = await self.db.execute(stmt.order_by(ReminderEvent.scheduled_for))
        return list(result.scalars().all())

    async def dispatch_due(self, now: datetime | None = None, batch_size: int | None = None) -> DispatchReport:
        """Evaluate and send every pending reminder whose time has come.

        A failing condition skips the reminder for good. A delivery error
        re-queues it until `max_retries` retries were spent, then marks it failed.
        """
        if self.delivery is None:
            raise ProviderUnavailableError("No push delivery channel is configured")
        now = now or self.clock.now()
        stmt = (
            select(ReminderEvent)
            .where(
                ReminderEvent.status == ReminderStatus.PENDING,
                ReminderEvent.scheduled_for <= now,
            )
            .order_by(ReminderEvent.scheduled_for)
            .limit(batch_size or settings.worker_batch_size)
        )
        result = await self.db.execute(stmt)
        report = DispatchReport()
        for reminder in list(result.scalars().all()):
            await self._dispatch_one(reminder, now, report)
            await self.db.commit()
        if report.delivered or report.skipped or report.retried or report.failed:
            logger.info(
                "Dispatch at %s: delivered=%d skipped=%d retried=%d failed=%d",
                now.isoformat(),
                report.delivered,
                report.skipped,
                report.retried,
                report.failed,
            )
        return report

    async def _dispatch_one(self, reminder: ReminderEvent, now: datetime, report: DispatchReport) -> None:
        user = await self.db.get(User, reminder.user_id)
        conditions = (
            DeliveryConditions.model_validate(reminder.conditions) if reminder.conditions else None
        )
        decision = evaluate_for_dispatch(
            conditions,
            now,
            user_timezone=user.timezone if user else None,
            last_active_at=user.last_active_at if user else None,
        )
        if not decision.should_send:
            reminder.status = ReminderStatus.SKIPPED
            reminder.skip_reason = decision.reason
            reminder.processed_at = now
            report.skipped += 1
            logger.info("Skipped reminder %s: %s", reminder.reminder_id, decision.reason)
            return

        try:
            await self.delivery.send(reminder)
        except DeliveryError as exc:
            reminder.last_error = str(exc)
            if reminder.retry_count < reminder.max_retries:
                if reminder.original_scheduled_for is None:
                    reminder.original_scheduled_for = reminder.scheduled_for
                reminder.retry_count += 1
                reminder.scheduled_for = now + RETRY_BACKOFF * reminder.retry_count
                report.retried += 1
                logger.warning(
                    "Delivery of reminder %s failed (retry %d/%d): %s",
                    reminder.reminder_id,
                    reminder.retry_count,
                    reminder.max_retries,
                    exc,
                )
            else:
                reminder.status = ReminderStatus.FAILED
                reminder.processed_at = now
                report.failed += 1
                logger.error(
                    "Reminder %s failed after %d retries: %s",
                    reminder.reminder_id,
                    reminder.retry_count,
                    exc,
                )
            return

        reminder.status = ReminderStatus.DELIVERED
        reminder.processed_at = now
        report.delivered += 1
        self._enqueue_repeat(reminder)

    def _enqueue_repeat(self, reminder: ReminderEvent) -> None:
        if not reminder.repeat:
            return
        pattern = RepeatPattern.model_validate(reminder.repeat)
        if reminder.repeat_index >= pattern.count:
            return
        slot = reminder.original_scheduled_for or reminder.scheduled_for
        self.db.add(
            ReminderEvent(
                user_id=reminder.user_id,
                appointment_id=reminder.appointment_id,
                payment_id=reminder.payment_id,
                type=reminder.type,
                priority=reminder.priority,
                scheduled_for=slot + timedelta(minutes=pattern.every_minutes),
                payload=reminder.payload,
                conditions=reminder.conditions,
                repeat=reminder.repeat,
                repeat_index=reminder.repeat_index + 1,
                max_retries=reminder.max_retries,
            )
        )

    @staticmethod
    def _from_draft(draft: ReminderDraft) -> ReminderEvent:
        return ReminderEvent(
            user_id=draft.user_id,
            appointment_id=draft.appointment_id,
            payment_id=draft.payment_id,
            type=draft.type,
            priority=draft.priority,
            scheduled_for=draft.scheduled_for,
            payload=draft.payload.model_dump(mode="json"),
            conditions=draft.conditions.model_dump(mode="json") if draft.conditions else None,
            repeat=draft.repeat.model_dump(mode="json") if draft.repeat else None,
            retry_count=0,
            max_retries=settings.reminder_max_retries,
            status=ReminderStatus.PENDING,
        )
