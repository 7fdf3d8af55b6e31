"""Appointment service layer."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.concurrency import KeyedLocks, run_with_optimistic_retry
from src.core.config import settings
from src.core.exceptions import (
    AlreadyFinalizedError,
    BusinessLogicError,
    InvalidCandidateIndexError,
    InvalidTransitionError,
    NotFoundError,
    OverpaymentRejectedError,
    ProviderUnavailableError,
    ValidationError,
)
from src.modules.appointments import events as domain_events
from src.modules.appointments.ledger import (
    ZERO,
    default_deposit,
    deposit_remaining,
    has_deposit_cleared,
    is_fully_paid,
    outstanding,
    paid_amount,
    to_money,
)
from src.modules.appointments.models import (
    Appointment,
    AppointmentCandidate,
    AppointmentStatusHistory,
    PaymentRecord,
)
from src.modules.appointments.refund_policy import RefundDecision, calculate_refund
from src.modules.appointments.schemas import (
    AppointmentDraft,
    AppointmentPublic,
    AppointmentSummary,
    CancellationQuote,
    RecurrenceResult,
)
from src.modules.appointments.transitions import (
    allowed_actions,
    can_be_cancelled,
    ensure_transition,
    get_allowed_transitions,
    next_action,
    settle_status,
)
from src.modules.payments.provider import PaymentProvider
from src.modules.recurrence.expander import pattern_of
from src.modules.recurrence.service import materialize_series
from src.modules.schedule.conflicts import ensure_no_blocking_conflicts
from src.modules.schedule.schemas import ConflictCheckRequest
from src.modules.schedule.service import ScheduleService
from src.modules.users.models import User
from src.shared.clock import Clock, SystemClock, ensure_aware
from src.shared.enums import (
    AppointmentStatus,
    PaymentKind,
    PaymentStatus,
    ResponseAction,
    UserRole,
)
from src.shared.events import EventBus

logger = logging.getLogger(__name__)

# Chosen start times must lie strictly after now + this lead time.
MIN_LEAD_TIME = timedelta(minutes=1)

AUTOMATIC_REASON = "ledger settled"
REJECTED_REASON = "rejected"
ELAPSED_REASON = "scheduled end passed"
REFUND_TAG = "refund"


@dataclass
class RespondOutcome:
    appointment: Appointment
    series: RecurrenceResult | None = None


@dataclass
class CancellationOutcome:
    appointment: Appointment
    refund: RefundDecision


@dataclass
class CheckoutOutcome:
    appointment: Appointment
    payment: PaymentRecord
    redirect_url: str


class AppointmentService:
    """State machine operations over persisted appointments.

    Every mutation runs under the per-appointment lock and inside an optimistic
    retry loop; domain events are published only once the write committed.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        clock: Clock | None = None,
        events: EventBus | None = None,
        locks: KeyedLocks | None = None,
        provider: PaymentProvider | None = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.events = events or EventBus()
        self.locks = locks or KeyedLocks()
        self.provider = provider
        self.attempts = settings.optimistic_retry_attempts
        self.tz = ZoneInfo(settings.default_timezone)

    # Proposal and response

    async def propose(self, draft: AppointmentDraft, *, enforce_conflicts: bool = False) -> Appointment:
        now = self.clock.now()
        starts = self._validate_draft(draft, now)
        pro = await self._get_user(draft.pro_id, "Professional")
        await self._get_user(draft.client_id, "Client")
        if pro.role != UserRole.PRO:
            raise ValidationError(f"User {draft.pro_id} is not a professional")

        duration = timedelta(minutes=draft.duration_minutes)
        if enforce_conflicts:
            schedule = ScheduleService(self.db)
            for start in starts:
                conflicts = await schedule.check_conflicts(
                    ConflictCheckRequest(
                        professional_id=draft.pro_id,
                        start_time=start,
                        end_time=start + duration,
                        duration_minutes=draft.duration_minutes,
                        client_id=draft.client_id,
                    )
                )
                ensure_no_blocking_conflicts(conflicts)

        price = to_money(draft.price)
        deposit_amount = to_money(draft.deposit_amount) if draft.deposit_amount is not None else None
        if draft.deposit_required and deposit_amount is None:
            deposit_amount = default_deposit(price)

        recurrence = draft.recurrence
        appointment = Appointment(
            pro_id=draft.pro_id,
            client_id=draft.client_id,
            proposer_id=draft.proposer_id,
            title=draft.title,
            description=draft.description,
            location=draft.location,
            scheduled_start=starts[0],
            scheduled_end=starts[0] + duration,
            duration_minutes=draft.duration_minutes,
            currency=(draft.currency or settings.default_currency).upper(),
            price=price,
            max_participants=draft.max_participants,
            deposit_required=draft.deposit_required,
            deposit_amount=deposit_amount,
            recurrence_frequency=recurrence.frequency if recurrence else None,
            recurrence_interval=recurrence.interval if recurrence else None,
            recurrence_end_date=recurrence.end_date if recurrence else None,
            recurrence_max_occurrences=recurrence.max_occurrences if recurrence else None,
            created_at=now,
            candidates=[
                AppointmentCandidate(position=position, start_time=start)
                for position, start in enumerate(starts)
            ],
            payments=[],
            history=[],
        )
        appointment.record_status(AppointmentStatus.PROPOSED, now, changed_by=draft.proposer_id)
        self.db.add(appointment)
        await self.db.commit()
        logger.info(
            "Appointment %s proposed by %s with %d candidate time(s)",
            appointment.appointment_id,
            draft.proposer_id,
            len(starts),
        )
        await self._publish(
            [domain_events.Proposed(**self._event_fields(appointment, now), proposer_id=draft.proposer_id)]
        )
        return appointment

    async def respond(
        self,
        appointment_id: str,
        action: ResponseAction,
        chosen_index: int | None = None,
        actor_id: str | None = None,
    ) -> RespondOutcome:
        async with self.locks.hold(appointment_id):
            outcome, emitted = await run_with_optimistic_retry(
                self.db,
                lambda: self._respond(appointment_id, action, chosen_index, actor_id),
                self.attempts,
            )
        await self._publish(emitted)
        return outcome

    async def _respond(
        self,
        appointment_id: str,
        action: ResponseAction,
        chosen_index: int | None,
        actor_id: str | None,
    ) -> tuple[RespondOutcome, list[domain_events.AppointmentEvent]]:
        now = self.clock.now()
        appointment = await self._load(appointment_id)
        if appointment.status != AppointmentStatus.PROPOSED:
            raise AlreadyFinalizedError(appointment.status.value, f"{action.value} the proposal")
        if actor_id is not None:
            self._ensure_party(appointment, actor_id)

        if action == ResponseAction.REJECT:
            ensure_transition(appointment.status, AppointmentStatus.CANCELLED)
            appointment.record_status(
                AppointmentStatus.CANCELLED, now, changed_by=actor_id, reason=REJECTED_REASON
            )
            await self.db.commit()
            logger.info("Appointment %s rejected by %s", appointment_id, actor_id)
            rejected = domain_events.Rejected(**self._event_fields(appointment, now), actor_id=actor_id)
            return RespondOutcome(appointment), [rejected]

        if actor_id is not None and actor_id == appointment.proposer_id:
            raise ValidationError("The proposer cannot accept their own proposal")
        candidate = self._choose_candidate(appointment, chosen_index)
        if candidate.start_time <= now + MIN_LEAD_TIME:
            raise ValidationError(
                f"Chosen time {candidate.start_time.isoformat()} is no longer at least one minute ahead"
            )

        ensure_transition(appointment.status, AppointmentStatus.ACCEPTED)
        appointment.scheduled_start = candidate.start_time
        appointment.scheduled_end = candidate.start_time + timedelta(minutes=appointment.duration_minutes)
        appointment.record_status(AppointmentStatus.ACCEPTED, now, changed_by=actor_id)
        self._apply_automatic(appointment, now)

        series = None
        pattern = pattern_of(appointment)
        if pattern is not None and appointment.recurrence_parent_id is None:
            await self.db.flush()
            series = await materialize_series(self.db, appointment, pattern, now, tz=self.tz)
        await self.db.commit()
        logger.info(
            "Appointment %s accepted for %s, now %s",
            appointment_id,
            appointment.scheduled_start.isoformat(),
            appointment.status.value,
        )

        emitted: list[domain_events.AppointmentEvent] = [
            domain_events.Accepted(**self._event_fields(appointment, now), status=appointment.status)
        ]
        if series is not None and series.appointment_ids:
            for occurrence in await self._load_many(series.appointment_ids):
                emitted.append(
                    domain_events.Accepted(**self._event_fields(occurrence, now), status=occurrence.status)
                )
        return RespondOutcome(appointment, series), emitted

    # Payments

    async def record_payment(
        self,
        appointment_id: str,
        amount: Decimal,
        tag: str = PaymentKind.BALANCE.value,
        description: str | None = None,
    ) -> Appointment:
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError("Payment amount must be greater than zero")
        async with self.locks.hold(appointment_id):
            appointment, emitted = await run_with_optimistic_retry(
                self.db,
                lambda: self._record_payment(appointment_id, amount, tag, description),
                self.attempts,
            )
        await self._publish(emitted)
        return appointment

    async def _record_payment(
        self, appointment_id: str, amount: Decimal, tag: str, description: str | None
    ) -> tuple[Appointment, list[domain_events.AppointmentEvent]]:
        now = self.clock.now()
        appointment = await self._load(appointment_id)
        self._ensure_payable(appointment, "record a payment")
        remaining = outstanding(appointment.price, appointment.payments)
        if amount > remaining:
            raise OverpaymentRejectedError(amount, remaining)

        record = appointment.append_payment(
            PaymentRecord(
                amount=amount,
                status=PaymentStatus.COMPLETED,
                tag=tag,
                description=description,
                created_at=now,
                completed_at=now,
            )
        )
        appointment.touch(now)
        self._apply_automatic(appointment, now)
        await self.db.commit()
        fully_paid = is_fully_paid(appointment.price, appointment.payments)
        logger.info(
            "Recorded %s %s on appointment %s (%s)",
            amount,
            appointment.currency,
            appointment_id,
            appointment.status.value,
        )
        recorded = domain_events.PaymentRecorded(
            **self._event_fields(appointment, now),
            payment_id=record.payment_id,
            amount=amount,
            status=appointment.status,
            fully_paid=fully_paid,
        )
        return appointment, [recorded]

    async def request_payment(self, appointment_id: str, kind: PaymentKind) -> CheckoutOutcome:
        """Open a provider checkout for the amount owed and log it as a pending entry."""
        if self.provider is None:
            raise ProviderUnavailableError("No payment provider is configured")
        async with self.locks.hold(appointment_id):
            appointment = await self._load(appointment_id)
            amount = self._amount_owed(appointment, kind)
            checkout = await self.provider.create_checkout(
                appointment_id=appointment_id,
                amount=amount,
                currency=appointment.currency,
                description=f"{kind.value.capitalize()} for {appointment.title}",
            )
            outcome, emitted = await run_with_optimistic_retry(
                self.db,
                lambda: self._append_pending(
                    appointment_id, kind, amount, checkout.reference, checkout.redirect_url
                ),
                self.attempts,
            )
        await self._publish(emitted)
        return outcome

    async def _append_pending(
        self,
        appointment_id: str,
        kind: PaymentKind,
        amount: Decimal,
        reference: str,
        redirect_url: str,
    ) -> tuple[CheckoutOutcome, list[domain_events.AppointmentEvent]]:
        now = self.clock.now()
        appointment = await self._load(appointment_id)
        self._ensure_payable(appointment, "request a payment")
        remaining = outstanding(appointment.price, appointment.payments)
        if amount > remaining:
            raise OverpaymentRejectedError(amount, remaining)

        record = appointment.append_payment(
            PaymentRecord(
                amount=amount,
                status=PaymentStatus.PENDING,
                tag=kind.value,
                description=f"{kind.value.capitalize()} checkout",
                external_reference=reference,
                created_at=now,
            )
        )
        appointment.touch(now)
        await self.db.commit()
        logger.info("Payment %s requested on appointment %s: %s", record.payment_id, appointment_id, amount)
        requested = domain_events.PaymentRequested(
            **self._event_fields(appointment, now),
            payment_id=record.payment_id,
            amount=amount,
            currency=appointment.currency,
            payment_created_at=now,
        )
        return CheckoutOutcome(appointment, record, redirect_url), [requested]

    async def settle_payment(self, payment_id: str, succeeded: bool) -> Appointment:
        """Apply the provider's verdict on a pending entry; settled entries are left as they are."""
        record = await self.db.get(PaymentRecord, payment_id)
        if record is None:
            raise NotFoundError("Payment not found")
        appointment_id = record.appointment_id
        async with self.locks.hold(appointment_id):
            appointment, emitted = await run_with_optimistic_retry(
                self.db,
                lambda: self._settle_payment(appointment_id, payment_id, succeeded),
                self.attempts,
            )
        await self._publish(emitted)
        return appointment

    async def settle_by_reference(self, reference: str, succeeded: bool) -> Appointment:
        result = await self.db.execute(
            select(PaymentRecord.payment_id).where(PaymentRecord.external_reference == reference)
        )
        payment_id = result.scalar_one_or_none()
        if payment_id is None:
            raise NotFoundError("Payment not found")
        return await self.settle_payment(payment_id, succeeded)

    async def _settle_payment(
        self, appointment_id: str, payment_id: str, succeeded: bool
    ) -> tuple[Appointment, list[domain_events.AppointmentEvent]]:
        now = self.clock.now()
        appointment = await self._load(appointment_id)
        record = next((item for item in appointment.payments if item.payment_id == payment_id), None)
        if record is None:
            raise NotFoundError("Payment not found")
        if record.status != PaymentStatus.PENDING:
            logger.info("Payment %s already settled as %s", payment_id, record.status.value)
            return appointment, []

        if succeeded:
            self._ensure_payable(appointment, "settle a payment")
            remaining = outstanding(appointment.price, appointment.payments)
            if record.amount > remaining:
                raise OverpaymentRejectedError(to_money(record.amount), remaining)
            record.status = PaymentStatus.COMPLETED
        else:
            record.status = PaymentStatus.FAILED
        record.completed_at = now
        appointment.touch(now)
        if succeeded:
            self._apply_automatic(appointment, now)
        await self.db.commit()
        logger.info("Payment %s settled as %s", payment_id, record.status.value)

        if not succeeded:
            return appointment, []
        recorded = domain_events.PaymentRecorded(
            **self._event_fields(appointment, now),
            payment_id=record.payment_id,
            amount=to_money(record.amount),
            status=appointment.status,
            fully_paid=is_fully_paid(appointment.price, appointment.payments),
        )
        return appointment, [recorded]

    # Cancellation and completion

    async def quote_cancellation(self, appointment_id: str) -> CancellationQuote:
        """What `cancel` would refund right now, without cancelling."""
        appointment = await self.get(appointment_id)
        if appointment.status.is_terminal:
            raise AlreadyFinalizedError(appointment.status.value, "cancel")
        paid = paid_amount(appointment.payments)
        refund = calculate_refund(self.clock.now(), appointment.scheduled_start, paid)
        return CancellationQuote(
            paid_amount=paid,
            refund_amount=refund.amount,
            refund_tier=refund.tier,
            policy=refund.description,
            hours_until_appointment=round(refund.hours_until_appointment, 2),
        )

    async def cancel(
        self, appointment_id: str, actor_id: str, reason: str | None = None
    ) -> CancellationOutcome:
        async with self.locks.hold(appointment_id):
            outcome, emitted = await run_with_optimistic_retry(
                self.db,
                lambda: self._cancel(appointment_id, actor_id, reason),
                self.attempts,
            )
        await self._publish(emitted)
        return outcome

    async def _cancel(
        self, appointment_id: str, actor_id: str, reason: str | None
    ) -> tuple[CancellationOutcome, list[domain_events.AppointmentEvent]]:
        now = self.clock.now()
        appointment = await self._load(appointment_id)
        if appointment.status.is_terminal:
            raise AlreadyFinalizedError(appointment.status.value, "cancel")
        self._ensure_party(appointment, actor_id)
        ensure_transition(appointment.status, AppointmentStatus.CANCELLED)

        refund = calculate_refund(now, appointment.scheduled_start, paid_amount(appointment.payments))
        appointment.record_status(AppointmentStatus.CANCELLED, now, changed_by=actor_id, reason=reason)
        for record in appointment.payments:
            if record.status == PaymentStatus.PENDING:
                record.status = PaymentStatus.FAILED
                record.completed_at = now
                logger.info("Open checkout %s closed by cancellation", record.payment_id)
        if refund.amount > ZERO:
            # Audit entry only; REFUNDED never counts towards the paid amount.
            appointment.append_payment(
                PaymentRecord(
                    amount=refund.amount,
                    status=PaymentStatus.REFUNDED,
                    tag=REFUND_TAG,
                    description=refund.description,
                    created_at=now,
                    completed_at=now,
                )
            )
        await self.db.commit()
        logger.info(
            "Appointment %s cancelled by %s, refund %s (%s)",
            appointment_id,
            actor_id,
            refund.amount,
            refund.tier.value,
        )
        cancelled = domain_events.Cancelled(
            **self._event_fields(appointment, now),
            actor_id=actor_id,
            reason=reason,
            refund_amount=refund.amount,
            refund_tier=refund.tier,
        )
        return CancellationOutcome(appointment, refund), [cancelled]

    async def complete(
        self, appointment_id: str, actor_id: str | None = None, reason: str | None = None
    ) -> Appointment:
        async with self.locks.hold(appointment_id):
            appointment, emitted = await run_with_optimistic_retry(
                self.db,
                lambda: self._complete(appointment_id, actor_id, reason),
                self.attempts,
            )
        await self._publish(emitted)
        return appointment

    async def _complete(
        self, appointment_id: str, actor_id: str | None, reason: str | None
    ) -> tuple[Appointment, list[domain_events.AppointmentEvent]]:
        now = self.clock.now()
        appointment = await self._load(appointment_id)
        if appointment.status.is_terminal:
            raise AlreadyFinalizedError(appointment.status.value, "complete")
        if actor_id is not None:
            self._ensure_party(appointment, actor_id)
        ensure_transition(appointment.status, AppointmentStatus.COMPLETED)
        appointment.record_status(AppointmentStatus.COMPLETED, now, changed_by=actor_id, reason=reason)
        await self.db.commit()
        logger.info("Appointment %s completed", appointment_id)
        completed = domain_events.Completed(**self._event_fields(appointment, now), actor_id=actor_id)
        return appointment, [completed]

    async def complete_elapsed(self, now: datetime | None = None) -> list[str]:
        """Complete every PAID appointment whose scheduled end has passed by `now`."""
        now = now or self.clock.now()
        stmt = (
            select(Appointment.appointment_id)
            .where(
                Appointment.status == AppointmentStatus.PAID,
                Appointment.scheduled_end <= now,
            )
            .order_by(Appointment.scheduled_end)
        )
        result = await self.db.execute(stmt)
        completed: list[str] = []
        for appointment_id in list(result.scalars().all()):
            try:
                await self.complete(appointment_id, reason=ELAPSED_REASON)
            except BusinessLogicError as exc:
                logger.warning("Could not complete appointment %s: %s", appointment_id, exc.detail)
                continue
            completed.append(appointment_id)
        return completed

    # Reads

    async def get(self, appointment_id: str) -> Appointment:
        return await self._load(appointment_id)

    async def list_for_user(
        self,
        user_id: str,
        role: UserRole | None = None,
        statuses: Sequence[AppointmentStatus] | None = None,
    ) -> list[Appointment]:
        stmt = select(Appointment)
        if role == UserRole.PRO:
            stmt = stmt.where(Appointment.pro_id == user_id)
        elif role == UserRole.CLIENT:
            stmt = stmt.where(Appointment.client_id == user_id)
        else:
            stmt = stmt.where(or_(Appointment.pro_id == user_id, Appointment.client_id == user_id))
        if statuses:
            stmt = stmt.where(Appointment.status.in_(list(statuses)))
        result = await self.db.execute(stmt.order_by(Appointment.scheduled_start))
        return list(result.scalars().all())

    async def history(self, appointment_id: str) -> list[AppointmentStatusHistory]:
        appointment = await self.get(appointment_id)
        return list(appointment.history)

    def summarize(self, appointment: Appointment, actor_id: str | None = None) -> AppointmentSummary:
        records = appointment.payments
        return AppointmentSummary(
            paid_amount=paid_amount(records),
            outstanding=outstanding(appointment.price, records),
            deposit_paid=not appointment.deposit_required
            or has_deposit_cleared(appointment.deposit_amount, records),
            fully_paid=is_fully_paid(appointment.price, records),
            can_be_cancelled=can_be_cancelled(appointment.status),
            allowed_transitions=list(get_allowed_transitions(appointment.status)),
            allowed_actions=allowed_actions(
                appointment.status, is_proposer=actor_id == appointment.proposer_id
            ),
            next_action=next_action(appointment.status),
        )

    def present(self, appointment: Appointment, actor_id: str | None = None) -> AppointmentPublic:
        public = AppointmentPublic.model_validate(appointment)
        public.summary = self.summarize(appointment, actor_id)
        return public

    # Helpers

    def _validate_draft(self, draft: AppointmentDraft, now: datetime) -> list[datetime]:
        if draft.price <= 0:
            raise ValidationError("Price must be greater than zero")
        if draft.deposit_amount is not None:
            if draft.deposit_amount <= 0:
                raise ValidationError("Deposit amount must be greater than zero")
            if draft.deposit_amount > draft.price:
                raise ValidationError(
                    f"Deposit {to_money(draft.deposit_amount)} cannot exceed price {to_money(draft.price)}"
                )
        if draft.pro_id == draft.client_id:
            raise ValidationError("Professional and client must be different users")
        if draft.proposer_id not in (draft.pro_id, draft.client_id):
            raise ValidationError("The proposer must be the professional or the client")
        if not draft.candidate_times:
            raise ValidationError("At least one candidate time is required")

        starts: list[datetime] = []
        for value in draft.candidate_times:
            try:
                start = ensure_aware(value)
            except ValueError as exc:
                raise ValidationError("Candidate times must include a timezone") from exc
            if start <= now + MIN_LEAD_TIME:
                raise ValidationError(
                    f"Candidate time {start.isoformat()} must be more than one minute in the future"
                )
            starts.append(start)

        recurrence = draft.recurrence
        if recurrence is not None and recurrence.end_date is not None:
            if recurrence.end_date < starts[0].astimezone(self.tz).date():
                raise ValidationError("Recurrence end date is before the first occurrence")
        return starts

    @staticmethod
    def _choose_candidate(appointment: Appointment, chosen_index: int | None) -> AppointmentCandidate:
        candidates = appointment.candidates
        count = len(candidates)
        if chosen_index is None:
            if count == 1:
                return candidates[0]
            raise InvalidCandidateIndexError(None, count)
        if not 0 <= chosen_index < count:
            raise InvalidCandidateIndexError(chosen_index, count)
        return candidates[chosen_index]

    @staticmethod
    def _ensure_party(appointment: Appointment, actor_id: str) -> None:
        if actor_id not in (appointment.pro_id, appointment.client_id):
            raise ValidationError(f"User {actor_id} is not a party to this appointment")

    @staticmethod
    def _ensure_payable(appointment: Appointment, attempted: str) -> None:
        current = appointment.status
        if current.is_terminal:
            raise AlreadyFinalizedError(current.value, attempted)
        if current == AppointmentStatus.PROPOSED:
            raise InvalidTransitionError(
                current.value,
                AppointmentStatus.PAID.value,
                [status.value for status in get_allowed_transitions(current)],
            )

    def _amount_owed(self, appointment: Appointment, kind: PaymentKind) -> Decimal:
        self._ensure_payable(appointment, "request a payment")
        records = appointment.payments
        remaining = outstanding(appointment.price, records)
        if kind == PaymentKind.DEPOSIT:
            if not appointment.deposit_required:
                raise ValidationError("This appointment does not require a deposit")
            amount = deposit_remaining(appointment.deposit_amount, records)
            if amount == ZERO:
                raise ValidationError("The deposit has already been paid")
            return amount
        if kind == PaymentKind.FULL:
            price = to_money(appointment.price)
            if price > remaining:
                raise OverpaymentRejectedError(price, remaining)
            return price
        if remaining == ZERO:
            raise ValidationError("Nothing is outstanding on this appointment")
        return remaining

    def _apply_automatic(self, appointment: Appointment, now: datetime) -> list[AppointmentStatus]:
        chain = settle_status(
            appointment.status,
            price=appointment.price,
            deposit_required=appointment.deposit_required,
            deposit_amount=appointment.deposit_amount,
            records=appointment.payments,
        )
        for status in chain:
            ensure_transition(appointment.status, status)
            appointment.record_status(status, now, reason=AUTOMATIC_REASON)
            logger.info("Appointment %s advanced to %s", appointment.appointment_id, status.value)
        return chain

    async def _get_user(self, user_id: str, label: str) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"{label} not found")
        return user

    async def _load(self, appointment_id: str) -> Appointment:
        stmt = (
            select(Appointment)
            .where(Appointment.appointment_id == appointment_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        appointment = result.scalar_one_or_none()
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    async def _load_many(self, appointment_ids: Sequence[str]) -> list[Appointment]:
        stmt = (
            select(Appointment)
            .where(Appointment.appointment_id.in_(list(appointment_ids)))
            .order_by(Appointment.scheduled_start)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def _event_fields(appointment: Appointment, now: datetime) -> dict:
        return {
            "appointment_id": appointment.appointment_id,
            "pro_id": appointment.pro_id,
            "client_id": appointment.client_id,
            "title": appointment.title,
            "scheduled_start": appointment.scheduled_start,
            "occurred_at": now,
        }

    async def _publish(self, emitted: Sequence[domain_events.AppointmentEvent]) -> None:
        for event in emitted:
            await self.events.publish(event, self.db)
