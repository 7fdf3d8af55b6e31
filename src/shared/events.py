"""In-process domain event bus."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

Handler = Callable[[Any, AsyncSession], Awaitable[None]]


class EventBus:
    """Dispatch events to handlers subscribed by event class.

    Handlers run sequentially after the emitting transaction committed, on the
    same session, so they observe the committed state.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    async def publish(self, event: Any, db: AsyncSession) -> None:
        for handler in self._handlers.get(type(event), []):
            await handler(event, db)
        logger.debug("Published %s", type(event).__name__)
