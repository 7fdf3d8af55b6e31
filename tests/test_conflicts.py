from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from src.core.exceptions import ConflictDetectedError, ValidationError
from src.modules.appointments.models import Appointment
from src.modules.schedule.conflicts import (
    detect_conflicts,
    ensure_no_blocking_conflicts,
    has_blocking,
    overlaps,
)
from src.modules.schedule.schemas import ConflictCheckRequest, SlotCreate
from src.modules.schedule.service import ScheduleService
from src.shared.enums import AppointmentStatus, ConflictSeverity, ConflictType


@dataclass
class Booking:
    appointment_id: str
    scheduled_start: datetime
    scheduled_end: datetime
    status: AppointmentStatus = AppointmentStatus.CONFIRMED


@dataclass
class Slot:
    start_time: datetime
    end_time: datetime
    is_available: bool = True


def test_touching_ranges_do_not_overlap(now):
    hour = timedelta(hours=1)
    assert not overlaps(now, now + hour, now + hour, now + 2 * hour)
    assert overlaps(now, now + hour, now + timedelta(minutes=59), now + 2 * hour)


def test_overlap_and_unmatched_slot_both_reported(now):
    start, end = now + timedelta(hours=1), now + timedelta(hours=2)
    commitments = [
        Booking("a", now + timedelta(minutes=30), now + timedelta(minutes=90)),
        Booking("b", now + timedelta(minutes=90), now + timedelta(minutes=150)),
        Booking("c", now + timedelta(minutes=60), now + timedelta(minutes=120), AppointmentStatus.CANCELLED),
    ]

    conflicts = detect_conflicts(start, end, 60, commitments, slots=[])

    assert [conflict.type for conflict in conflicts] == [
        ConflictType.OVERLAP,
        ConflictType.UNAVAILABLE_HOURS,
    ]
    assert conflicts[0].message == "Conflicts with 2 existing appointment(s)"
    assert all(2 <= len(conflict.suggested_solutions) <= 3 for conflict in conflicts)
    assert has_blocking(conflicts)


def test_excluded_appointment_does_not_conflict_with_itself(now):
    start, end = now + timedelta(hours=1), now + timedelta(hours=2)
    conflicts = detect_conflicts(
        start,
        end,
        60,
        [Booking("self", start, end)],
        [Slot(start, end)],
        exclude_appointment_id="self",
    )
    assert conflicts == []


def test_slot_must_match_exactly_and_be_available(now):
    start, end = now + timedelta(hours=1), now + timedelta(hours=2)
    wider = [Slot(now, now + timedelta(hours=3))]
    closed = [Slot(start, end, is_available=False)]

    for slots in (wider, closed):
        conflicts = detect_conflicts(start, end, 60, [], slots)
        assert [conflict.type for conflict in conflicts] == [ConflictType.UNAVAILABLE_HOURS]


def test_short_slot_is_only_a_warning(now):
    start, end = now + timedelta(hours=1), now + timedelta(minutes=90)

    conflicts = detect_conflicts(start, end, 60, [], [Slot(start, end)])

    assert len(conflicts) == 1
    assert conflicts[0].type == ConflictType.INSUFFICIENT_TIME
    assert conflicts[0].severity == ConflictSeverity.WARNING
    assert not has_blocking(conflicts)
    ensure_no_blocking_conflicts(conflicts)


def test_client_double_booking_is_reported(now):
    start, end = now + timedelta(hours=1), now + timedelta(hours=2)
    elsewhere = [Booking("other", start + timedelta(minutes=15), end, AppointmentStatus.PROPOSED)]

    conflicts = detect_conflicts(start, end, 60, [], [Slot(start, end)], client_commitments=elsewhere)

    assert [conflict.type for conflict in conflicts] == [ConflictType.DOUBLE_BOOKING]
    with pytest.raises(ConflictDetectedError) as excinfo:
        ensure_no_blocking_conflicts(conflicts)
    payload = excinfo.value.to_payload()
    assert payload["code"] == "conflict_detected"
    assert payload["conflicts"][0]["type"] == "double_booking"


def test_check_request_requires_ordered_aware_range(now):
    with pytest.raises(ValueError):
        ConflictCheckRequest(professional_id="p", start_time=now, end_time=now)
    with pytest.raises(ValueError):
        ConflictCheckRequest(
            professional_id="p",
            start_time=now.replace(tzinfo=None),
            end_time=now.replace(tzinfo=None) + timedelta(hours=1),
        )


@pytest.mark.asyncio
async def test_service_checks_persisted_appointments_and_slots(db_session, users, now):
    pro_id = users["pro"].user_id
    client_id = users["client"].user_id
    schedule = ScheduleService(db_session)
    start = now + timedelta(days=1)
    end = start + timedelta(hours=1)

    await schedule.create_slot(SlotCreate(professional_id=pro_id, start_time=start, end_time=end))
    db_session.add(
        Appointment(
            pro_id=users["other_pro"].user_id,
            client_id=client_id,
            proposer_id=client_id,
            title="Physio session",
            scheduled_start=start,
            scheduled_end=end,
            duration_minutes=60,
            currency="EUR",
            price=Decimal("50.00"),
            status=AppointmentStatus.CONFIRMED,
        )
    )
    await db_session.commit()

    request = ConflictCheckRequest(professional_id=pro_id, start_time=start, end_time=end, client_id=client_id)
    conflicts = await schedule.check_conflicts(request)
    assert [conflict.type for conflict in conflicts] == [ConflictType.DOUBLE_BOOKING]

    request = ConflictCheckRequest(professional_id=pro_id, start_time=start, end_time=end)
    assert await schedule.check_conflicts(request) == []


@pytest.mark.asyncio
async def test_declared_slots_cannot_overlap(db_session, users, now):
    pro_id = users["pro"].user_id
    schedule = ScheduleService(db_session)
    start = now + timedelta(days=1)
    await schedule.create_slot(SlotCreate(professional_id=pro_id, start_time=start, end_time=start + timedelta(hours=1)))

    with pytest.raises(ValidationError):
        await schedule.create_slot(
            SlotCreate(
                professional_id=pro_id,
                start_time=start + timedelta(minutes=30),
                end_time=start + timedelta(hours=2),
            )
        )
    with pytest.raises(ValidationError):
        await schedule.create_slot(
            SlotCreate(
                professional_id=users["client"].user_id,
                start_time=start,
                end_time=start + timedelta(hours=1),
            )
        )

    slots = await schedule.slots_for_day(pro_id, start.date())
    assert len(slots) == 1
