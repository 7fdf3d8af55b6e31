from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from src.modules.appointments.models import Appointment
from src.modules.appointments.schemas import AppointmentDraft, RecurrencePattern
from src.modules.appointments.service import AppointmentService
from src.modules.recurrence import service as recurrence_service
from src.modules.recurrence.expander import MAX_SERIES_LENGTH, series_limit
from src.shared.enums import AppointmentStatus, RecurrenceFrequency, ResponseAction

PARIS = ZoneInfo("Europe/Paris")

# Monday 23 March 2026, 10:00 in Paris; clocks move forward on the 29th.
FIRST_START = datetime(2026, 3, 23, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(db_session, clock, event_bus, locks):
    return AppointmentService(db_session, clock=clock, events=event_bus, locks=locks)


async def _accept_series(service, users, recurrence, start=FIRST_START, **overrides):
    values = {
        "pro_id": users["pro"].user_id,
        "client_id": users["client"].user_id,
        "proposer_id": users["client"].user_id,
        "title": "Weekly coaching",
        "candidate_times": [start],
        "duration_minutes": 45,
        "price": Decimal("70.00"),
        "recurrence": recurrence,
    }
    values.update(overrides)
    appointment = await service.propose(AppointmentDraft(**values))
    return await service.respond(appointment.appointment_id, ResponseAction.ACCEPT, actor_id=users["pro"].user_id)


async def _occurrences(db_session, base_id):
    result = await db_session.execute(
        select(Appointment)
        .where(Appointment.recurrence_parent_id == base_id)
        .order_by(Appointment.scheduled_start)
    )
    return list(result.scalars().all())


def test_series_limit_is_capped():
    weekly = RecurrenceFrequency.WEEKLY
    assert series_limit(RecurrencePattern(frequency=weekly)) == MAX_SERIES_LENGTH
    assert series_limit(RecurrencePattern(frequency=weekly, max_occurrences=10_000)) == MAX_SERIES_LENGTH
    assert series_limit(RecurrencePattern(frequency=weekly, max_occurrences=4)) == 4


@pytest.mark.asyncio
async def test_long_series_stops_at_fifty_including_the_base(service, users, db_session):
    pattern = RecurrencePattern(
        frequency=RecurrenceFrequency.WEEKLY,
        max_occurrences=10_000,
        end_date=date(2036, 3, 23),
    )
    outcome = await _accept_series(service, users, pattern)

    assert outcome.series.requested == 49
    assert outcome.series.created == 49
    assert outcome.series.failed == 0
    assert len(await _occurrences(db_session, outcome.appointment.appointment_id)) == 49


@pytest.mark.asyncio
async def test_weekly_series_keeps_local_wall_clock_across_dst(service, users, db_session):
    pattern = RecurrencePattern(frequency=RecurrenceFrequency.WEEKLY, max_occurrences=3)
    outcome = await _accept_series(service, users, pattern)

    occurrences = await _occurrences(db_session, outcome.appointment.appointment_id)
    local = [item.scheduled_start.astimezone(PARIS) for item in occurrences]
    assert [value.date() for value in local] == [date(2026, 3, 30), date(2026, 4, 6)]
    assert all((value.hour, value.minute) == (10, 0) for value in local)
    assert occurrences[0].scheduled_start == datetime(2026, 3, 30, 8, 0, tzinfo=timezone.utc)
    assert all(item.scheduled_end - item.scheduled_start == timedelta(minutes=45) for item in occurrences)


@pytest.mark.asyncio
async def test_end_date_is_inclusive(service, users, db_session):
    pattern = RecurrencePattern(frequency=RecurrenceFrequency.WEEKLY, end_date=date(2026, 4, 6))
    outcome = await _accept_series(service, users, pattern)

    assert outcome.series.created == 2
    occurrences = await _occurrences(db_session, outcome.appointment.appointment_id)
    assert occurrences[-1].scheduled_start.astimezone(PARIS).date() == date(2026, 4, 6)


@pytest.mark.asyncio
async def test_monthly_series_clamps_to_month_end(service, users, db_session):
    start = datetime(2026, 3, 31, 9, 0, tzinfo=timezone.utc)
    pattern = RecurrencePattern(frequency=RecurrenceFrequency.MONTHLY, max_occurrences=3)
    outcome = await _accept_series(service, users, pattern, start=start)

    occurrences = await _occurrences(db_session, outcome.appointment.appointment_id)
    assert [item.scheduled_start.astimezone(PARIS).date() for item in occurrences] == [
        date(2026, 4, 30),
        date(2026, 5, 31),
    ]


@pytest.mark.asyncio
async def test_occurrences_share_terms_and_settle_like_the_base(service, users, db_session):
    pattern = RecurrencePattern(frequency=RecurrenceFrequency.DAILY, interval=2, max_occurrences=3)
    outcome = await _accept_series(service, users, pattern, deposit_required=True)

    base = outcome.appointment
    occurrences = await _occurrences(db_session, base.appointment_id)
    assert [item.scheduled_start - base.scheduled_start for item in occurrences] == [
        timedelta(days=2),
        timedelta(days=4),
    ]
    for item in occurrences:
        assert item.status == AppointmentStatus.ACCEPTED == base.status
        assert item.deposit_amount == base.deposit_amount == Decimal("21.00")
        assert item.payments == []
        assert [row.new_status for row in item.history] == [AppointmentStatus.ACCEPTED]


@pytest.mark.asyncio
async def test_failed_occurrence_does_not_abort_the_series(service, users, db_session, monkeypatch):
    original = recurrence_service._persist_occurrence
    calls = {"count": 0}

    async def flaky(db, occurrence, now):
        calls["count"] += 1
        if calls["count"] == 2:
            raise SQLAlchemyError("insert failed")
        await original(db, occurrence, now)

    monkeypatch.setattr(recurrence_service, "_persist_occurrence", flaky)
    pattern = RecurrencePattern(frequency=RecurrenceFrequency.WEEKLY, max_occurrences=5)
    outcome = await _accept_series(service, users, pattern)

    assert outcome.series.requested == 4
    assert outcome.series.created == 3
    assert outcome.series.failed == 1
    assert outcome.appointment.status == AppointmentStatus.CONFIRMED
    occurrences = await _occurrences(db_session, outcome.appointment.appointment_id)
    assert len(occurrences) == 3
    assert all(item.status == AppointmentStatus.CONFIRMED for item in occurrences)
