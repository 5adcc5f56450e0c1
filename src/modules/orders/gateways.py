"""Payment gateway clients.

The order engine only needs ``charge``: it hands over the order amount and
the opaque payment details and gets back a gateway reference, or an error.

* ``HttpPaymentGateway`` posts to ``{PAYMENT_GATEWAY_URL}/charges`` with
  ``requests`` and a hard timeout.  A timeout is a failure, never a success.
* ``SimulatedPaymentGateway`` approves every charge with a ``pay_<uuid>``
  reference.  Used when no gateway URL is configured (local and tests).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol

import requests
import structlog
from django.conf import settings

logger = structlog.get_logger(__name__)


class PaymentGatewayError(Exception):
    """The gateway declined the charge or could not be reached."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class ChargeResult:
    reference_id: str


class PaymentGateway(Protocol):
    def charge(
        self,
        order_id: uuid.UUID,
        amount: Decimal,
        payment_method: str,
        details: Dict[str, Any],
    ) -> ChargeResult: ...


class HttpPaymentGateway:
    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._session = session or requests.Session()

    def charge(
        self,
        order_id: uuid.UUID,
        amount: Decimal,
        payment_method: str,
        details: Dict[str, Any],
    ) -> ChargeResult:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        payload = {
            "order_id": str(order_id),
            "amount": str(amount),
            "payment_method": payment_method,
            "payment_details": details,
        }
        log = logger.bind(order_id=str(order_id), payment_method=payment_method)

        try:
            response = self._session.post(
                f"{self._base_url}/charges",
                json=payload,
                headers=headers,
                timeout=self._timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as exc:
            log.warning("payment.gateway_timeout", timeout=self._timeout)
            raise PaymentGatewayError("timeout") from exc
        except requests.exceptions.JSONDecodeError as exc:
            log.warning("payment.gateway_invalid_response")
            raise PaymentGatewayError("invalid_response") from exc
        except requests.exceptions.RequestException as exc:
            log.warning("payment.gateway_error", error=str(exc))
            raise PaymentGatewayError("gateway_error") from exc

        reference_id = data.get("reference_id") if isinstance(data, dict) else None
        if not reference_id:
            reason = "declined"
            if isinstance(data, dict):
                reason = data.get("reason", reason)
            log.info("payment.declined", reason=reason)
            raise PaymentGatewayError(reason)

        log.info("payment.charged", reference_id=reference_id)
        return ChargeResult(reference_id=reference_id)


class SimulatedPaymentGateway:
    def charge(
        self,
        order_id: uuid.UUID,
        amount: Decimal,
        payment_method: str,
        details: Dict[str, Any],
    ) -> ChargeResult:
        reference_id = f"pay_{uuid.uuid4()}"
        logger.info(
            "payment.simulated_charge",
            order_id=str(order_id),
            amount=str(amount),
            reference_id=reference_id,
        )
        return ChargeResult(reference_id=reference_id)


def build_payment_gateway() -> PaymentGateway:
    """Gateway selected by ``PAYMENT_GATEWAY_URL`` (empty: simulated)."""
    if settings.PAYMENT_GATEWAY_URL:
        return HttpPaymentGateway(
            settings.PAYMENT_GATEWAY_URL,
            api_key=settings.PAYMENT_GATEWAY_API_KEY,
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT,
        )
    return SimulatedPaymentGateway()
