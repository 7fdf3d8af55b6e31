"""Reminder timing rules and dispatch-time condition checks.

Everything here is pure: callers pass `now` and the loaded recipient state,
and get back drafts or a decision.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.core.config import settings
from src.modules.reminders.schemas import (
    BookingPayload,
    DeliveryConditions,
    DispatchDecision,
    FollowUpPayload,
    PaymentPayload,
    ReminderDraft,
)
from src.shared.enums import ReminderPriority, ReminderType, Weekday

P = ReminderPriority

CLIENT_BOOKING_OFFSETS = (
    (timedelta(hours=24), P.NORMAL),
    (timedelta(hours=2), P.HIGH),
    (timedelta(minutes=30), P.HIGH),
)
PRO_BOOKING_OFFSET = (timedelta(hours=1), P.HIGH)
FOLLOW_UP_DELAY = timedelta(hours=2)

PAYMENT_OFFSETS = (
    (timedelta(days=3), P.NORMAL),
    (timedelta(days=1), P.HIGH),
    (timedelta(hours=6), P.HIGH),
    (timedelta(hours=1), P.HIGH),
)

ACTIVITY_WINDOW = timedelta(hours=24)


def _minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)


def booking_reminders(
    *,
    appointment_id: str,
    client_id: str,
    pro_id: str,
    title: str,
    scheduled_start: datetime,
    now: datetime,
) -> list[ReminderDraft]:
    """Client reminders before the start, one pro reminder, and the follow-up.

    Offsets already in the past at `now` are dropped; the follow-up is always
    created.
    """
    drafts: list[ReminderDraft] = []
    for offset, priority in CLIENT_BOOKING_OFFSETS:
        when = scheduled_start - offset
        if when <= now:
            continue
        drafts.append(
            ReminderDraft(
                user_id=client_id,
                appointment_id=appointment_id,
                type=ReminderType.BOOKING,
                priority=priority,
                scheduled_for=when,
                payload=BookingPayload(
                    audience="client",
                    appointment_title=title,
                    scheduled_start=scheduled_start,
                    minutes_before=_minutes(offset),
                ),
            )
        )

    offset, priority = PRO_BOOKING_OFFSET
    when = scheduled_start - offset
    if when > now:
        drafts.append(
            ReminderDraft(
                user_id=pro_id,
                appointment_id=appointment_id,
                type=ReminderType.BOOKING,
                priority=priority,
                scheduled_for=when,
                payload=BookingPayload(
                    audience="pro",
                    appointment_title=title,
                    scheduled_start=scheduled_start,
                    minutes_before=_minutes(offset),
                ),
            )
        )

    drafts.append(
        ReminderDraft(
            user_id=client_id,
            appointment_id=appointment_id,
            type=ReminderType.FOLLOW_UP,
            priority=P.NORMAL,
            scheduled_for=scheduled_start + FOLLOW_UP_DELAY,
            payload=FollowUpPayload(appointment_title=title, scheduled_start=scheduled_start),
        )
    )
    return drafts


def payment_due_at(created_at: datetime, due_days: int | None = None) -> datetime:
    days = settings.payment_due_days if due_days is None else due_days
    return created_at + timedelta(days=days)


def payment_reminders(
    *,
    payment_id: str,
    appointment_id: str | None,
    user_id: str,
    amount: Decimal,
    currency: str,
    created_at: datetime,
    now: datetime,
    completed: bool = False,
    due_days: int | None = None,
) -> list[ReminderDraft]:
    """Escalating reminders before the payment due date; none once it is paid."""
    if completed:
        return []
    due_at = payment_due_at(created_at, due_days)
    drafts: list[ReminderDraft] = []
    for offset, priority in PAYMENT_OFFSETS:
        when = due_at - offset
        if when <= now:
            continue
        drafts.append(
            ReminderDraft(
                user_id=user_id,
                appointment_id=appointment_id,
                payment_id=payment_id,
                type=ReminderType.PAYMENT,
                priority=priority,
                scheduled_for=when,
                payload=PaymentPayload(
                    amount=amount,
                    currency=currency,
                    due_at=due_at,
                    minutes_before_due=_minutes(offset),
                ),
            )
        )
    return drafts


def _zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or settings.default_timezone)
    except ZoneInfoNotFoundError:
        return ZoneInfo(settings.default_timezone)


def evaluate_for_dispatch(
    conditions: DeliveryConditions | None,
    now: datetime,
    *,
    user_timezone: str | None = None,
    last_active_at: datetime | None = None,
) -> DispatchDecision:
    """Re-check delivery conditions at dispatch time, in the recipient's timezone.

    Only configured conditions are checked; a reminder without conditions is
    always sent.
    """
    if conditions is None:
        return DispatchDecision(should_send=True)

    local_now = now.astimezone(_zone(user_timezone))
    if conditions.time_windows:
        local_time = local_now.time().replace(tzinfo=None)
        if not any(window.contains(local_time) for window in conditions.time_windows):
            return DispatchDecision(
                should_send=False,
                reason=f"outside delivery windows at {local_time.strftime('%H:%M')}",
            )

    if conditions.days_of_week:
        weekday = Weekday.from_date(local_now.date())
        if weekday not in conditions.days_of_week:
            return DispatchDecision(should_send=False, reason=f"{weekday.value} is not an allowed day")

    if conditions.require_user_active:
        if last_active_at is None or now - last_active_at > ACTIVITY_WINDOW:
            return DispatchDecision(should_send=False, reason="recipient inactive for more than 24h")

    return DispatchDecision(should_send=True)
