from datetime import time, timedelta
from decimal import Decimal

import pytest

from src.core.exceptions import NotFoundError, ProviderUnavailableError
from src.modules.reminders.delivery import DeliveryError
from src.modules.reminders.scheduler import booking_reminders, evaluate_for_dispatch, payment_reminders
from src.modules.reminders.schemas import (
    CustomReminderCreate,
    DeliveryConditions,
    MarketingPayload,
    RepeatPattern,
    SystemPayload,
    TimeWindow,
)
from src.modules.reminders.service import RETRY_BACKOFF, ReminderService
from src.shared.enums import ReminderPriority, ReminderStatus, ReminderType, Weekday


class FakeDelivery:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send(self, reminder):
        if self.fail:
            raise DeliveryError("gateway timeout")
        self.sent.append(reminder.reminder_id)


def _custom(user_id, now, **overrides):
    values = {
        "user_id": user_id,
        "type": ReminderType.MARKETING,
        "scheduled_for": now,
        "payload": MarketingPayload(campaign="spring", message="Book your spring session"),
    }
    values.update(overrides)
    return CustomReminderCreate(**values)


def test_booking_reminders_cover_both_parties_and_follow_up(now):
    start = now + timedelta(days=3)
    drafts = booking_reminders(
        appointment_id="a1", client_id="client", pro_id="pro", title="Yoga", scheduled_start=start, now=now
    )

    client = [draft for draft in drafts if draft.user_id == "client" and draft.type == ReminderType.BOOKING]
    assert [start - draft.scheduled_for for draft in client] == [
        timedelta(hours=24),
        timedelta(hours=2),
        timedelta(minutes=30),
    ]
    assert [draft.priority for draft in client] == [
        ReminderPriority.NORMAL,
        ReminderPriority.HIGH,
        ReminderPriority.HIGH,
    ]
    (pro,) = [draft for draft in drafts if draft.user_id == "pro"]
    assert start - pro.scheduled_for == timedelta(hours=1)
    assert pro.payload.audience == "pro"
    (follow_up,) = [draft for draft in drafts if draft.type == ReminderType.FOLLOW_UP]
    assert follow_up.scheduled_for == start + timedelta(hours=2)


def test_booking_reminders_skip_offsets_already_past(now):
    start = now + timedelta(minutes=90)
    drafts = booking_reminders(
        appointment_id="a1", client_id="client", pro_id="pro", title="Yoga", scheduled_start=start, now=now
    )

    assert [(draft.user_id, draft.type) for draft in drafts] == [
        ("client", ReminderType.BOOKING),
        ("pro", ReminderType.BOOKING),
        ("client", ReminderType.FOLLOW_UP),
    ]
    assert drafts[0].payload.minutes_before == 30


def test_payment_reminders_escalate_towards_due_date(now):
    drafts = payment_reminders(
        payment_id="p1",
        appointment_id="a1",
        user_id="client",
        amount=Decimal("60.00"),
        currency="EUR",
        created_at=now,
        now=now,
    )
    due_at = now + timedelta(days=7)
    assert [due_at - draft.scheduled_for for draft in drafts] == [
        timedelta(days=3),
        timedelta(days=1),
        timedelta(hours=6),
        timedelta(hours=1),
    ]
    assert all(draft.payload.due_at == due_at for draft in drafts)

    late = payment_reminders(
        payment_id="p1",
        appointment_id="a1",
        user_id="client",
        amount=Decimal("60.00"),
        currency="EUR",
        created_at=now - timedelta(days=6, hours=12),
        now=now,
    )
    assert [draft.payload.minutes_before_due for draft in late] == [360, 60]


def test_completed_payment_gets_no_reminders(now):
    assert (
        payment_reminders(
            payment_id="p1",
            appointment_id=None,
            user_id="client",
            amount=Decimal("10.00"),
            currency="EUR",
            created_at=now,
            now=now,
            completed=True,
        )
        == []
    )


def test_time_window_wraps_midnight():
    night = TimeWindow(start=time(22, 0), end=time(7, 0))
    assert night.contains(time(23, 30))
    assert night.contains(time(7, 0))
    assert not night.contains(time(12, 0))
    assert TimeWindow(start=time(9, 0), end=time(11, 0)).contains(time(11, 0))


def test_conditions_use_recipient_local_time(now):
    # 09:00 UTC is 10:00 in Paris and 18:00 in Tokyo.
    morning = DeliveryConditions(time_windows=[TimeWindow(start=time(9, 30), end=time(10, 30))])
    assert evaluate_for_dispatch(morning, now, user_timezone="Europe/Paris").should_send

    decision = evaluate_for_dispatch(morning, now, user_timezone="Asia/Tokyo")
    assert not decision.should_send
    assert decision.reason == "outside delivery windows at 18:00"

    night = DeliveryConditions(time_windows=[TimeWindow(start=time(22, 0), end=time(7, 0))])
    assert not evaluate_for_dispatch(night, now, user_timezone="Europe/Paris").should_send


def test_conditions_check_weekday_and_activity(now):
    weekdays = DeliveryConditions(days_of_week={Weekday.TUESDAY, Weekday.WEDNESDAY})
    decision = evaluate_for_dispatch(weekdays, now, user_timezone="Europe/Paris")
    assert decision.reason == "monday is not an allowed day"

    active = DeliveryConditions(require_user_active=True)
    assert not evaluate_for_dispatch(active, now).should_send
    assert not evaluate_for_dispatch(active, now, last_active_at=now - timedelta(hours=25)).should_send
    assert evaluate_for_dispatch(active, now, last_active_at=now - timedelta(hours=1)).should_send

    assert evaluate_for_dispatch(None, now).should_send


def test_custom_reminders_are_limited_to_marketing_and_system(now):
    with pytest.raises(ValueError):
        _custom("u1", now, type=ReminderType.BOOKING)
    with pytest.raises(ValueError):
        _custom("u1", now, type=ReminderType.SYSTEM)
    assert _custom("u1", now, type=ReminderType.SYSTEM, payload=SystemPayload(message="Maintenance tonight"))


@pytest.mark.asyncio
async def test_dispatch_delivers_and_skips(db_session, users, clock, now):
    delivery = FakeDelivery()
    service = ReminderService(db_session, clock=clock, delivery=delivery)
    client_id = users["client"].user_id

    sent = await service.schedule_custom(_custom(client_id, now))
    skipped = await service.schedule_custom(
        _custom(client_id, now, conditions=DeliveryConditions(days_of_week={Weekday.SUNDAY}))
    )
    later = await service.schedule_custom(_custom(client_id, now + timedelta(hours=1)))

    report = await service.dispatch_due()

    assert (report.delivered, report.skipped, report.retried, report.failed) == (1, 1, 0, 0)
    assert delivery.sent == [sent.reminder_id]
    assert sent.status == ReminderStatus.DELIVERED
    assert sent.processed_at == now
    assert skipped.status == ReminderStatus.SKIPPED
    assert skipped.retry_count == 0
    assert skipped.skip_reason == "monday is not an allowed day"
    assert later.status == ReminderStatus.PENDING


@pytest.mark.asyncio
async def test_delivery_errors_retry_then_fail(db_session, users, clock, now):
    service = ReminderService(db_session, clock=clock, delivery=FakeDelivery(fail=True))
    reminder = await service.schedule_custom(_custom(users["client"].user_id, now))
    assert reminder.max_retries == 3

    attempts = 0
    when = now
    while reminder.status == ReminderStatus.PENDING:
        report = await service.dispatch_due(when)
        attempts += 1
        if reminder.status == ReminderStatus.PENDING:
            assert report.retried == 1
            assert reminder.scheduled_for == when + RETRY_BACKOFF * reminder.retry_count
            when = reminder.scheduled_for

    assert attempts == 4
    assert report.failed == 1
    assert reminder.status == ReminderStatus.FAILED
    assert reminder.retry_count == 3
    assert reminder.last_error == "gateway timeout"


@pytest.mark.asyncio
async def test_repeat_pattern_enqueues_next_instance(db_session, users, clock, now):
    delivery = FakeDelivery()
    service = ReminderService(db_session, clock=clock, delivery=delivery)
    client_id = users["client"].user_id
    await service.schedule_custom(_custom(client_id, now, repeat=RepeatPattern(every_minutes=60, count=2)))

    for offset in (0, 60, 120, 180):
        await service.dispatch_due(now + timedelta(minutes=offset))

    reminders = await service.list_for_user(client_id)
    assert [item.repeat_index for item in reminders] == [0, 1, 2]
    assert [item.scheduled_for - now for item in reminders] == [
        timedelta(0),
        timedelta(minutes=60),
        timedelta(minutes=120),
    ]
    assert all(item.status == ReminderStatus.DELIVERED for item in reminders)
    assert len(delivery.sent) == 3


@pytest.mark.asyncio
async def test_repeat_keeps_original_slot_after_retry(db_session, users, clock, now):
    delivery = FakeDelivery(fail=True)
    service = ReminderService(db_session, clock=clock, delivery=delivery)
    client_id = users["client"].user_id
    first = await service.schedule_custom(
        _custom(client_id, now, repeat=RepeatPattern(every_minutes=60, count=1))
    )

    await service.dispatch_due(now)
    assert first.scheduled_for == now + RETRY_BACKOFF
    assert first.original_scheduled_for == now

    delivery.fail = False
    await service.dispatch_due(now + RETRY_BACKOFF)

    reminders = await service.list_for_user(client_id)
    assert [item.repeat_index for item in reminders] == [0, 1]
    assert reminders[1].scheduled_for == now + timedelta(minutes=60)
    assert reminders[1].status == ReminderStatus.PENDING


@pytest.mark.asyncio
async def test_cancel_pending_leaves_processed_reminders(db_session, users, clock, now):
    service = ReminderService(db_session, clock=clock, delivery=FakeDelivery())
    client_id = users["client"].user_id
    draft_payload = SystemPayload(message="Heads up")
    delivered = await service.schedule_custom(
        _custom(client_id, now, type=ReminderType.SYSTEM, payload=draft_payload)
    )
    await service.dispatch_due()
    pending = await service.schedule_custom(
        _custom(client_id, now + timedelta(days=1), type=ReminderType.SYSTEM, payload=draft_payload)
    )
    assert delivered.status == ReminderStatus.DELIVERED

    with pytest.raises(ValueError):
        await service.cancel_pending()
    assert await service.cancel_pending(appointment_id="01NOAPPOINTMENT00000000000") == 0

    pending_only = await service.list_for_user(client_id, ReminderStatus.PENDING)
    assert [item.reminder_id for item in pending_only] == [pending.reminder_id]


@pytest.mark.asyncio
async def test_custom_reminder_for_unknown_user(db_session, clock, now):
    service = ReminderService(db_session, clock=clock)
    with pytest.raises(NotFoundError):
        await service.schedule_custom(_custom("01NOBODY000000000000000000", now))
    with pytest.raises(ProviderUnavailableError):
        await service.dispatch_due()
