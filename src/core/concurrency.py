"""Per-key serialization and optimistic retry helpers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import AsyncIterator, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.core.exceptions import ConcurrentModificationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyedLocks:
    """One asyncio.Lock per key, released from the registry once nobody waits on it.

    Constructed once per process and injected; never a module-level singleton.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


async def run_with_optimistic_retry(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    attempts: int,
) -> T:
    """Run a read-validate-write operation, retrying it whole on stale version writes."""
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except StaleDataError:
            await db.rollback()
            logger.warning("Concurrent write detected (attempt %d/%d), retrying", attempt, attempts)
    raise ConcurrentModificationError(
        f"The appointment was modified concurrently; gave up after {attempts} attempts."
    )
