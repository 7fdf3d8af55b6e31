"""Push gateway delivery client."""

from __future__ import annotations

from typing import Protocol

import httpx

from src.core.config import settings
from src.modules.reminders.models import ReminderEvent

_PUSH_PATH = "/v1/notifications"


class DeliveryError(Exception):
    """The delivery channel could not take the notification; worth retrying."""


class PushDelivery(Protocol):
    async def send(self, reminder: ReminderEvent) -> None: ...


class HttpPushDelivery:
    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=settings.push_gateway_base,
                timeout=settings.push_gateway_timeout_seconds,
            )
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, reminder: ReminderEvent) -> None:
        body = {
            "id": reminder.reminder_id,
            "user_id": reminder.user_id,
            "type": reminder.type.value,
            "priority": reminder.priority.value,
            "payload": reminder.payload,
        }
        try:
            response = await self._get_client().post(_PUSH_PATH, json=body)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Push gateway unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise DeliveryError(f"Push gateway returned status {response.status_code}")
