"""
Payment gateway collaborator.

Services receive a ``PaymentGateway`` as an argument (FastAPI dependency in the
routers), so order creation and verification can be exercised without a live gateway.
"""

import hashlib
import hmac
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional, Protocol

import httpx
from fastapi import status
from pydantic import BaseModel

from campus_fees.core.config import settings
from campus_fees.core.exceptions import GatewayError

logger = logging.getLogger(__name__)


class GatewayOrder(BaseModel):
    gateway_order_id: str
    amount: Decimal
    currency: str


class PaymentGateway(Protocol):
    key_id: Optional[str]

    async def create_order(
        self, total_amount: Decimal, currency: str, metadata: Dict[str, str]
    ) -> GatewayOrder:
        ...

    async def verify(
        self,
        payment_id: str,
        gateway_payment_id: str,
        gateway_order_id: str,
        signature: str,
    ) -> bool:
        ...


class RazorpayGateway:
    """Razorpay orders API plus checkout signature verification."""

    def __init__(
        self,
        key_id: Optional[str],
        key_secret: Optional[str],
        base_url: str = "https://api.razorpay.com",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.key_id = key_id
        self._key_secret = key_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _require_credentials(self) -> None:
        if not self.key_id or not self._key_secret:
            raise GatewayError(
                "Online payments are not configured. Please pay at the college office.",
                status.HTTP_503_SERVICE_UNAVAILABLE,
            )

    async def create_order(
        self, total_amount: Decimal, currency: str, metadata: Dict[str, str]
    ) -> GatewayOrder:
        self._require_credentials()
        # Razorpay takes the amount in the smallest currency unit (paise).
        minor_units = int((total_amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        payload = {
            "amount": minor_units,
            "currency": currency,
            "receipt": metadata.get("receipt"),
            "notes": metadata,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/v1/orders",
                    json=payload,
                    auth=(self.key_id, self._key_secret),
                )
        except httpx.TimeoutException:
            logger.error("Gateway order creation timed out for receipt %s", metadata.get("receipt"))
            raise GatewayError(
                "Payment gateway did not respond in time. Please try again.",
                status.HTTP_504_GATEWAY_TIMEOUT,
            )
        except httpx.HTTPError as e:
            logger.error("Gateway order creation failed: %s: %s", type(e).__name__, e)
            raise GatewayError("Could not reach the payment gateway. Please try again.")

        if response.status_code not in (200, 201):
            logger.error("Gateway rejected order: %s %s", response.status_code, response.text)
            raise GatewayError("Payment gateway rejected the order. Please try again.")
        try:
            data = response.json()
        except ValueError:
            raise GatewayError("Payment gateway returned an unreadable response")
        order_id = data.get("id")
        if not order_id:
            raise GatewayError("Payment gateway response is missing the order id")
        return GatewayOrder(
            gateway_order_id=order_id,
            amount=Decimal(data.get("amount", minor_units)) / 100,
            currency=data.get("currency", currency),
        )

    async def verify(
        self,
        payment_id: str,
        gateway_payment_id: str,
        gateway_order_id: str,
        signature: str,
    ) -> bool:
        self._require_credentials()
        message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
        expected = hmac.new(self._key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature or "")


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency: a gateway client built from settings for the current request."""
    return RazorpayGateway(
        key_id=settings.razorpay_key_id,
        key_secret=settings.razorpay_key_secret,
        base_url=settings.razorpay_base_url,
        timeout=settings.gateway_timeout_seconds,
    )
