"""Online payment gateway: order creation and signature checks.

Only order creation talks to the provider. Verification is a local HMAC
check over ``order_id|payment_id`` with the shared key secret.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from abc import ABC, abstractmethod

import httpx

from dairyledger.errors import GatewayUnavailable
from dairyledger.settings import settings

logger = logging.getLogger(__name__)


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    if not secret or not signature:
        return False
    expected = compute_signature(secret, order_id, payment_id)
    return hmac.compare_digest(expected, signature)


class PaymentGateway(ABC):
    @abstractmethod
    def create_order(self, amount: int, receipt: str, notes: dict) -> dict:
        """Create an order for ``amount`` paise and return the provider's order payload."""
        ...


class RazorpayGateway(PaymentGateway):
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        api_url: str = "https://api.razorpay.com/v1",
        client: httpx.Client | None = None,
    ) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url.rstrip("/")
        self.client = client or httpx.Client(timeout=15.0)

    def create_order(self, amount: int, receipt: str, notes: dict) -> dict:
        try:
            response = self.client.post(
                f"{self.api_url}/orders",
                auth=(self.key_id, self.key_secret),
                json={"amount": amount, "currency": "INR", "receipt": receipt, "notes": notes},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.exception("Gateway order creation failed")
            raise GatewayUnavailable(f"Payment gateway request failed: {exc}") from exc
        order = response.json()
        logger.info("Gateway order created: id=%s amount=%d", order.get("id"), amount)
        return order


def order_receipt(bill_id: int | None) -> str:
    return f"bill_{bill_id}_{int(time.time() * 1000)}"


def get_gateway() -> PaymentGateway | None:
    if not settings.gateway_configured:
        logger.info("Payment gateway disabled: Razorpay credentials are not set")
        return None
    return RazorpayGateway(
        key_id=settings.razorpay_key_id,
        key_secret=settings.razorpay_key_secret,
        api_url=settings.razorpay_api_url,
    )
