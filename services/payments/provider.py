"""Payment-provider client used to settle per-request payments."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from core.config import NETWORK_MAINNET, ServerConfig

logger = logging.getLogger(__name__)

SETTLED_STATUSES = {"settled", "completed", "confirmed"}


class PaymentProviderError(RuntimeError):
    """Raised when the payment provider returns an error response or cannot be reached."""

    def __init__(self, status_code: int, message: str, *, payload: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class InvalidPaymentProof(ValueError):
    """Raised when the ``X-Payment`` header cannot be parsed."""


@dataclass(frozen=True)
class PaymentProof:
    reference: str
    amount: int

    @classmethod
    def from_header(cls, value: str) -> "PaymentProof":
        try:
            payload = json.loads(value)
        except ValueError as exc:
            raise InvalidPaymentProof("Payment header must be a JSON object.") from exc
        if not isinstance(payload, dict):
            raise InvalidPaymentProof("Payment header must be a JSON object.")
        reference = payload.get("reference")
        amount = payload.get("amount")
        if not isinstance(reference, str) or not reference.strip():
            raise InvalidPaymentProof("Payment reference is required.")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidPaymentProof("Payment amount must be a non-negative integer.")
        return cls(reference=reference.strip(), amount=amount)


@dataclass(frozen=True)
class PaymentSettlement:
    reference: str
    amount: int
    status: str
    network: str

    @property
    def settled(self) -> bool:
        return self.status.lower() in SETTLED_STATUSES


class PaymentProvider(Protocol):
    network: str

    async def settle(self, proof: PaymentProof, *, required_amount: int, payer: str) -> PaymentSettlement:
        ...


def _bearer_header(api_key: str) -> str:
    return f"Bearer {api_key}"


@dataclass(slots=True)
class PaymentProviderClient:
    """HTTP client wrapper for the payment provider settlement API."""

    network: str
    api_key: str
    base_url: str

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        timeout: float = 10.0,
    ) -> Dict[str, Any]:
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        headers = {
            "Authorization": _bearer_header(self.api_key),
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as exc:
            logger.warning("Payment provider unreachable (%s): %s", self.network, exc)
            raise PaymentProviderError(503, "Payment provider is unavailable.") from exc
        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {"body": response.text}
            logger.warning("Payment provider API error %s (%s): %s", response.status_code, self.network, payload)
            raise PaymentProviderError(response.status_code, "Payment provider rejected the request.", payload=payload)
        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning("Payment provider returned a non-JSON body (%s)", self.network)
            raise PaymentProviderError(502, "Payment provider returned an unreadable response.") from exc
        if not isinstance(payload, dict):
            logger.warning(
                "Payment provider returned %s instead of an object (%s)", type(payload).__name__, self.network
            )
            raise PaymentProviderError(502, "Payment provider returned an unreadable response.")
        return payload

    async def settle(self, proof: PaymentProof, *, required_amount: int, payer: str) -> PaymentSettlement:
        """Ask the provider to settle ``proof`` for at least ``required_amount``."""
        logger.info("Settling payment reference=%s amount=%s network=%s", proof.reference, proof.amount, self.network)
        payload = await self._request(
            "POST",
            "/v1/payments/settle",
            json={
                "reference": proof.reference,
                "amount": proof.amount,
                "requiredAmount": required_amount,
                "payer": payer,
                "network": self.network,
            },
        )
        amount = payload.get("amount")
        return PaymentSettlement(
            reference=str(payload.get("reference") or proof.reference),
            amount=amount if isinstance(amount, int) and not isinstance(amount, bool) else 0,
            status=str(payload.get("status") or "unknown"),
            network=self.network,
        )


def build_payment_provider(config: ServerConfig, network: str = NETWORK_MAINNET) -> PaymentProviderClient:
    return PaymentProviderClient(
        network=network,
        api_key=config.payment_api_key_for(network),
        base_url=config.payment_provider_url,
    )


__all__ = [
    "InvalidPaymentProof",
    "PaymentProof",
    "PaymentProvider",
    "PaymentProviderClient",
    "PaymentProviderError",
    "PaymentSettlement",
    "build_payment_provider",
]
