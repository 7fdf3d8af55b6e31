"""Slot-conflict detection for a candidate time range.

Pure functions over already-loaded appointments and slots; nothing here reads
or writes the database.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from typing import Protocol

from src.core.exceptions import ConflictDetectedError
from src.modules.schedule.schemas import ConflictReport
from src.shared.enums import COMMITTED_STATUSES, AppointmentStatus, ConflictSeverity, ConflictType

OVERLAP_SOLUTIONS = [
    "Choose another time slot",
    "Reschedule the existing appointment",
    "Reduce the appointment duration",
]
UNAVAILABLE_SOLUTIONS = [
    "Choose one of the declared slots",
    "Check the professional's availability",
    "Contact the professional",
]
INSUFFICIENT_TIME_SOLUTIONS = [
    "Reduce the appointment duration",
    "Choose a longer slot",
    "Split into several appointments",
]
DOUBLE_BOOKING_SOLUTIONS = [
    "Choose another time slot",
    "Cancel the client's other appointment first",
]


class Commitment(Protocol):
    appointment_id: str
    scheduled_start: datetime
    scheduled_end: datetime
    status: AppointmentStatus


class DeclaredSlot(Protocol):
    start_time: datetime
    end_time: datetime
    is_available: bool


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Half-open ranges: touching end-to-start is not an overlap."""
    return start < other_end and other_start < end


def _committed(items: Iterable[Commitment], exclude_id: str | None) -> list[Commitment]:
    return [
        item
        for item in items
        if item.status in COMMITTED_STATUSES and item.appointment_id != exclude_id
    ]


def find_matching_slot(
    start: datetime, end: datetime, slots: Iterable[DeclaredSlot]
) -> DeclaredSlot | None:
    for slot in slots:
        if slot.is_available and slot.start_time == start and slot.end_time == end:
            return slot
    return None


def detect_conflicts(
    start: datetime,
    end: datetime,
    requested_minutes: int,
    commitments: Sequence[Commitment],
    slots: Sequence[DeclaredSlot],
    *,
    client_commitments: Sequence[Commitment] = (),
    exclude_appointment_id: str | None = None,
) -> list[ConflictReport]:
    """Run every check independently and return all conflicts found.

    `commitments` are the professional's appointments, `client_commitments` the
    client's appointments with other professionals (double booking check).
    """
    conflicts: list[ConflictReport] = []

    overlapping = [
        item
        for item in _committed(commitments, exclude_appointment_id)
        if overlaps(start, end, item.scheduled_start, item.scheduled_end)
    ]
    if overlapping:
        conflicts.append(
            ConflictReport(
                type=ConflictType.OVERLAP,
                severity=ConflictSeverity.ERROR,
                message=f"Conflicts with {len(overlapping)} existing appointment(s)",
                suggested_solutions=OVERLAP_SOLUTIONS,
            )
        )

    # Only an exact start/end match counts as available.
    slot = find_matching_slot(start, end, slots)
    if slot is None:
        conflicts.append(
            ConflictReport(
                type=ConflictType.UNAVAILABLE_HOURS,
                severity=ConflictSeverity.ERROR,
                message="This time range does not match an available slot",
                suggested_solutions=UNAVAILABLE_SOLUTIONS,
            )
        )
    elif slot.end_time - slot.start_time < timedelta(minutes=requested_minutes):
        slot_minutes = int((slot.end_time - slot.start_time).total_seconds() // 60)
        conflicts.append(
            ConflictReport(
                type=ConflictType.INSUFFICIENT_TIME,
                severity=ConflictSeverity.WARNING,
                message=f"The slot lasts {slot_minutes} min but {requested_minutes} min were requested",
                suggested_solutions=INSUFFICIENT_TIME_SOLUTIONS,
            )
        )

    double_booked = [
        item
        for item in _committed(client_commitments, exclude_appointment_id)
        if overlaps(start, end, item.scheduled_start, item.scheduled_end)
    ]
    if double_booked:
        conflicts.append(
            ConflictReport(
                type=ConflictType.DOUBLE_BOOKING,
                severity=ConflictSeverity.ERROR,
                message=f"The client already has {len(double_booked)} appointment(s) at this time",
                suggested_solutions=DOUBLE_BOOKING_SOLUTIONS,
            )
        )

    return conflicts


def has_blocking(conflicts: Iterable[ConflictReport]) -> bool:
    return any(conflict.severity == ConflictSeverity.ERROR for conflict in conflicts)


def ensure_no_blocking_conflicts(conflicts: list[ConflictReport]) -> None:
    """Raise when any error-severity conflict is present; warnings pass."""
    blocking = [conflict for conflict in conflicts if conflict.severity == ConflictSeverity.ERROR]
    if blocking:
        raise ConflictDetectedError(blocking)
