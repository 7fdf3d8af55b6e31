"""Expand an accepted appointment into its recurring series."""

from __future__ import annotations

import logging
from datetime import timezone, tzinfo
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from src.core.config import settings
from src.modules.appointments.models import Appointment
from src.modules.appointments.schemas import RecurrencePattern
from src.shared.enums import AppointmentStatus, RecurrenceFrequency

logger = logging.getLogger(__name__)

# Always enforced, whatever max_occurrences says. Counts the base appointment.
MAX_SERIES_LENGTH = 50

_COPIED_FIELDS = (
    "pro_id",
    "client_id",
    "proposer_id",
    "title",
    "description",
    "location",
    "duration_minutes",
    "currency",
    "price",
    "max_participants",
    "deposit_required",
    "deposit_amount",
    "recurrence_frequency",
    "recurrence_interval",
    "recurrence_end_date",
    "recurrence_max_occurrences",
)


def _step(frequency: RecurrenceFrequency, units: int) -> relativedelta:
    if frequency == RecurrenceFrequency.DAILY:
        return relativedelta(days=units)
    if frequency == RecurrenceFrequency.WEEKLY:
        return relativedelta(weeks=units)
    return relativedelta(months=units)


def pattern_of(appointment: Appointment) -> RecurrencePattern | None:
    if appointment.recurrence_frequency is None:
        return None
    return RecurrencePattern(
        frequency=appointment.recurrence_frequency,
        interval=appointment.recurrence_interval or 1,
        end_date=appointment.recurrence_end_date,
        max_occurrences=appointment.recurrence_max_occurrences,
    )


def series_limit(pattern: RecurrencePattern) -> int:
    if pattern.max_occurrences is None:
        return MAX_SERIES_LENGTH
    return min(pattern.max_occurrences, MAX_SERIES_LENGTH)


def expand_recurrence(
    base: Appointment,
    pattern: RecurrencePattern,
    tz: tzinfo | None = None,
) -> list[Appointment]:
    """Build the derived occurrences of `base`, unsaved.

    Occurrence k starts at base start + k * interval units, computed in local
    wall-clock time so a weekly 10:00 slot stays at 10:00 across DST changes.
    Generation stops at the first start whose local date is after
    `pattern.end_date`, or once the series (base included) reaches
    `max_occurrences` or MAX_SERIES_LENGTH.
    """
    tz = tz or ZoneInfo(settings.default_timezone)
    local_start = base.scheduled_start.astimezone(tz)
    duration = base.scheduled_end - base.scheduled_start
    limit = series_limit(pattern)

    occurrences: list[Appointment] = []
    index = 1
    while index < limit:
        next_local = local_start + _step(pattern.frequency, pattern.interval * index)
        if pattern.end_date is not None and next_local.date() > pattern.end_date:
            break
        start = next_local.astimezone(timezone.utc)
        occurrence = Appointment(**{field: getattr(base, field) for field in _COPIED_FIELDS})
        occurrence.scheduled_start = start
        occurrence.scheduled_end = start + duration
        occurrence.status = AppointmentStatus.ACCEPTED
        occurrence.recurrence_parent_id = base.appointment_id
        occurrences.append(occurrence)
        index += 1

    logger.debug(
        "Expanded appointment %s into %d occurrence(s) (%s every %d)",
        base.appointment_id,
        len(occurrences),
        pattern.frequency.value,
        pattern.interval,
    )
    return occurrences
