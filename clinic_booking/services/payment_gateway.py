"""
Razorpay client and payment signature helpers.

Only order creation is called on the gateway. Checkout happens in the
browser, which hands back ``order_id``, ``payment_id`` and a signature that
is checked here against the shared key secret.
"""
from typing import Any, Dict, Optional
import hashlib
import hmac
import logging

import httpx

from ..core.config import settings
from ..core.errors import GatewayError

logger = logging.getLogger(__name__)


def compute_payment_signature(secret: str, order_id: str, payment_id: str) -> str:
    """HMAC-SHA256 hex digest of ``order_id|payment_id``."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    """Constant-time check of a checkout signature."""
    if not secret or not signature:
        return False
    expected = compute_payment_signature(secret, order_id, payment_id)
    return hmac.compare_digest(expected, signature)


class RazorpayGateway:
    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.base_url = base_url or settings.RAZORPAY_BASE_URL
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self.transport = transport

    async def create_order(self, amount: int, currency: str, receipt: str) -> Dict[str, Any]:
        """Create an order for ``amount`` minor units; returns the gateway's order body."""
        if not self.key_id or not self.key_secret:
            raise GatewayError("Payment gateway keys not configured")

        payload = {"amount": amount, "currency": currency, "receipt": receipt}
        logger.info(f"Creating payment order: amount={amount} currency={currency} receipt={receipt}")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.post("/orders", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Payment gateway unreachable: {str(e)}")
            raise GatewayError("Payment gateway unreachable, please retry")

        if response.status_code not in (200, 201):
            logger.error(f"Payment gateway rejected order: {response.status_code} {response.text}")
            raise GatewayError(f"Payment gateway rejected order ({response.status_code})")

        order = response.json()
        if not order.get("id"):
            raise GatewayError("Payment gateway returned no order id")
        return order


def get_payment_gateway() -> RazorpayGateway:
    """FastAPI dependency; tests override it with a fake."""
    return RazorpayGateway()
