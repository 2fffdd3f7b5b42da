"""Razorpay-style refund client.

Only the refund contract is implemented: ``POST /payments/{id}/refund`` with
the amount in paise, answered by ``{"id": ..., "status": ...}``. Anything
other than a well-formed answer is reported as ``ExternalGatewayFailure`` so
callers fail closed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import httpx

from payments_server.core.config import GatewaySettings
from payments_server.modules.common.exceptions import ExternalGatewayFailure

logger = logging.getLogger(__name__)


class GatewayRefundStatus(str, Enum):
    PROCESSED = "processed"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class GatewayRefundResult:
    refund_id: str
    status: GatewayRefundStatus
    amount: Optional[int] = None

    @property
    def confirmed(self) -> bool:
        return self.status is GatewayRefundStatus.PROCESSED


class PaymentGateway(Protocol):
    async def refund(
        self,
        payment_reference: str,
        amount: int,
        reason: str,
        *,
        idempotency_key: Optional[str] = None,
    ) -> GatewayRefundResult:
        ...

    async def aclose(self) -> None:
        ...


class RazorpayGateway:
    def __init__(self, settings: GatewaySettings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            auth=(settings.key_id, settings.key_secret),
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    async def refund(
        self,
        payment_reference: str,
        amount: int,
        reason: str,
        *,
        idempotency_key: Optional[str] = None,
    ) -> GatewayRefundResult:
        body: dict = {"amount": amount, "notes": {"reason": reason}}
        if idempotency_key:
            body["receipt"] = idempotency_key
        try:
            response = await self._client.post(f"/payments/{payment_reference}/refund", json=body)
        except httpx.TimeoutException as exc:
            logger.error("Gateway refund timed out for payment %s", payment_reference)
            raise ExternalGatewayFailure(f"gateway timed out refunding {payment_reference}") from exc
        except httpx.HTTPError as exc:
            logger.error("Gateway refund transport error for payment %s: %s", payment_reference, exc)
            raise ExternalGatewayFailure(f"gateway unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise ExternalGatewayFailure(
                f"gateway rejected refund for {payment_reference}: {_error_description(response)}"
            )

        try:
            payload = response.json()
            result = GatewayRefundResult(
                refund_id=str(payload["id"]),
                status=GatewayRefundStatus(payload["status"]),
                amount=payload.get("amount"),
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise ExternalGatewayFailure("gateway returned a malformed refund response") from exc

        logger.info(
            "Gateway refund %s for payment %s: %s (%s)",
            result.refund_id,
            payment_reference,
            result.status.value,
            amount,
        )
        return result

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_description(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["description"]
    except (ValueError, KeyError, TypeError):
        return f"HTTP {response.status_code}"
