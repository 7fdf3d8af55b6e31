"""Background worker: reminder dispatch and completion of elapsed appointments.

Run with ``python -m src.worker``.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.concurrency import KeyedLocks
from src.core.config import settings
from src.core.database import AsyncSessionLocal
from src.core.exceptions import BusinessLogicError
from src.core.logging_config import configure_logging
from src.modules.appointments.service import AppointmentService
from src.modules.reminders.delivery import HttpPushDelivery, PushDelivery
from src.modules.reminders.handlers import register_reminder_handlers
from src.modules.reminders.service import ReminderService
from src.shared.clock import Clock, SystemClock
from src.shared.events import EventBus

logger = logging.getLogger(__name__)


class Worker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        delivery: PushDelivery,
        clock: Clock | None = None,
    ):
        self.session_factory = session_factory
        self.delivery = delivery
        self.clock = clock or SystemClock()
        self.events = EventBus()
        self.locks = KeyedLocks()
        register_reminder_handlers(self.events, self.clock)

    async def tick(self) -> None:
        """One pass: complete elapsed appointments, then dispatch due reminders."""
        now = self.clock.now()
        async with self.session_factory() as db:
            service = AppointmentService(db, clock=self.clock, events=self.events, locks=self.locks)
            completed = await service.complete_elapsed(now)
            if completed:
                logger.info("Completed %d elapsed appointment(s)", len(completed))
        async with self.session_factory() as db:
            await ReminderService(db, clock=self.clock, delivery=self.delivery).dispatch_due(now)

    async def run(self, stop: asyncio.Event | None = None) -> None:
        stop = stop or asyncio.Event()
        logger.info("Worker started (poll interval %.0fs)", settings.worker_poll_interval_seconds)
        while not stop.is_set():
            try:
                await self.tick()
            except (SQLAlchemyError, BusinessLogicError):
                logger.exception("Worker tick failed; retrying on next tick")
            try:
                await asyncio.wait_for(stop.wait(), timeout=settings.worker_poll_interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("Worker stopped")


async def main() -> None:
    configure_logging()
    delivery = HttpPushDelivery()
    try:
        await Worker(AsyncSessionLocal, delivery).run()
    finally:
        await delivery.aclose()


if __name__ == "__main__":
    asyncio.run(main())
