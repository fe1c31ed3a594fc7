"""
Razorpay payment gateway client
Creates orders over the REST API and verifies checkout signatures
"""
from dataclasses import dataclass
from typing import Optional, Dict, Any, Protocol
import hashlib
import hmac
import logging

import httpx

from app.core.config import settings
from app.core.exceptions import handle_external_service_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: int
    currency: str
    receipt: Optional[str] = None
    status: Optional[str] = None


class PaymentGateway(Protocol):
    async def create_order(
        self, amount: int, currency: str, receipt: str, notes: Optional[Dict[str, Any]] = None
    ) -> GatewayOrder:
        ...

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        ...


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    """HMAC-SHA256 hex digest of ``order_id|payment_id``"""
    payload = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class RazorpayGateway:
    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.key_id = key_id or settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret or settings.RAZORPAY_KEY_SECRET
        self.api_url = (api_url or settings.RAZORPAY_API_URL).rstrip("/")
        self.timeout = timeout or settings.RAZORPAY_TIMEOUT_SECONDS

    async def create_order(
        self, amount: int, currency: str, receipt: str, notes: Optional[Dict[str, Any]] = None
    ) -> GatewayOrder:
        if not self.key_id or not self.key_secret:
            raise handle_external_service_error(
                RuntimeError("Razorpay credentials are not configured"), "razorpay", "create_order"
            )

        payload = {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes or {}}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as http_client:
                response = await http_client.post(
                    f"{self.api_url}/orders",
                    json=payload,
                    auth=(self.key_id, self.key_secret),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Razorpay order creation failed: {e.response.status_code} {e.response.text}")
            raise handle_external_service_error(e, "razorpay", "create_order")
        except httpx.HTTPError as e:
            raise handle_external_service_error(e, "razorpay", "create_order")

        logger.info(f"Razorpay order {data.get('id')} created for receipt {receipt}")
        return GatewayOrder(
            id=data["id"],
            amount=data.get("amount", amount),
            currency=data.get("currency", currency),
            receipt=data.get("receipt"),
            status=data.get("status"),
        )

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self.key_secret:
            logger.error("Cannot verify payment signature: Razorpay secret is not configured")
            return False
        expected = compute_signature(self.key_secret, order_id, payment_id)
        return hmac.compare_digest(expected, signature or "")


payment_gateway = RazorpayGateway()
