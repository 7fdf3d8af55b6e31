"""Payment provider checkout client."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

import httpx
from fastapi import status

from src.core.config import settings
from src.core.exceptions import ProviderUnavailableError

_CHECKOUT_PATH = "/v1/checkout/sessions"


@dataclass(frozen=True)
class CheckoutSession:
    reference: str
    redirect_url: str


class PaymentProvider(Protocol):
    async def create_checkout(
        self,
        *,
        appointment_id: str,
        amount: Decimal,
        currency: str,
        description: str,
    ) -> CheckoutSession: ...


class HttpPaymentProvider:
    """Creates hosted checkout sessions; completion arrives later through `settle_payment`."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {}
            if settings.payment_provider_key:
                headers["Authorization"] = f"Bearer {settings.payment_provider_key}"
            self._client = httpx.AsyncClient(
                base_url=settings.payment_provider_base,
                timeout=settings.payment_provider_timeout_seconds,
                headers=headers,
            )
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def create_checkout(
        self,
        *,
        appointment_id: str,
        amount: Decimal,
        currency: str,
        description: str,
    ) -> CheckoutSession:
        body = {
            "amount": str(amount),
            "currency": currency,
            "description": description,
            "metadata": {"appointment_id": appointment_id},
        }
        try:
            response = await self._get_client().post(_CHECKOUT_PATH, json=body)
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError("Payment provider is unavailable") from exc

        if response.status_code not in (status.HTTP_200_OK, status.HTTP_201_CREATED):
            raise ProviderUnavailableError(
                f"Payment provider returned an unexpected status {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderUnavailableError("Failed to parse payment provider response") from exc

        reference = payload.get("id")
        redirect_url = payload.get("url")
        if not reference or not redirect_url:
            raise ProviderUnavailableError("Payment provider response did not include a checkout session")
        return CheckoutSession(reference=reference, redirect_url=redirect_url)
