"""Persist an expanded recurring series."""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.appointments.models import Appointment
from src.modules.appointments.schemas import RecurrencePattern, RecurrenceResult
from src.modules.appointments.transitions import settle_status
from src.modules.recurrence.expander import expand_recurrence
from src.shared.enums import AppointmentStatus

logger = logging.getLogger(__name__)

SERIES_REASON = "recurring series"


async def _persist_occurrence(db: AsyncSession, occurrence: Appointment, now: datetime) -> None:
    occurrence.record_status(AppointmentStatus.ACCEPTED, now, reason=SERIES_REASON)
    for status in settle_status(
        occurrence.status,
        price=occurrence.price,
        deposit_required=occurrence.deposit_required,
        deposit_amount=occurrence.deposit_amount,
        records=occurrence.payments,
    ):
        occurrence.record_status(status, now, reason=SERIES_REASON)
    db.add(occurrence)
    await db.flush()


async def materialize_series(
    db: AsyncSession,
    base: Appointment,
    pattern: RecurrencePattern,
    now: datetime,
    tz: tzinfo | None = None,
) -> RecurrenceResult:
    """Insert every derived occurrence of `base`, each in its own savepoint.

    A failing occurrence is rolled back on its own and counted; the rest of the
    series and the caller's transaction are kept. The caller commits.
    """
    occurrences = expand_recurrence(base, pattern, tz=tz)
    created: list[str] = []
    failed = 0
    for occurrence in occurrences:
        try:
            async with db.begin_nested():
                await _persist_occurrence(db, occurrence, now)
        except SQLAlchemyError as exc:
            failed += 1
            logger.warning(
                "Could not create occurrence of %s starting %s: %s",
                base.appointment_id,
                occurrence.scheduled_start.isoformat(),
                exc,
            )
            continue
        created.append(occurrence.appointment_id)

    if failed:
        logger.warning(
            "Recurring series for %s: %d of %d occurrence(s) failed",
            base.appointment_id,
            failed,
            len(occurrences),
        )
    else:
        logger.info("Recurring series for %s: created %d occurrence(s)", base.appointment_id, len(created))
    return RecurrenceResult(
        requested=len(occurrences),
        created=len(created),
        failed=failed,
        appointment_ids=created,
    )
