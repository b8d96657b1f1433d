"""
Razorpay adapter: gateway order creation and callback/webhook signature checks.
"""
import hashlib
import hmac
import logging
from typing import Optional

from config import RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET, RAZORPAY_WEBHOOK_SECRET
from errors import ServiceUnavailable

logger = logging.getLogger(__name__)


def _hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def payment_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    return _hmac_hex(secret, f"{gateway_order_id}|{gateway_payment_id}".encode())


def verify_signature(secret: str, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
    if not secret or not signature:
        return False
    expected = payment_signature(secret, gateway_order_id, gateway_payment_id)
    return hmac.compare_digest(expected.encode(), signature.encode())


def verify_webhook_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(_hmac_hex(secret, body).encode(), signature.encode())


class RazorpayGateway:
    def __init__(self, key_id: str, key_secret: str):
        import razorpay

        self.key_id = key_id
        self.key_secret = key_secret
        self.client = razorpay.Client(auth=(key_id, key_secret))

    def create_order(self, amount: int, currency: str, receipt: str, notes: Optional[dict] = None) -> dict:
        """Create a gateway order for `amount` in minor units (paise)."""
        try:
            order = self.client.order.create(data={
                "amount": amount,
                "currency": currency,
                "receipt": receipt[:40],
                "notes": notes or {},
            })
        except Exception as e:
            logger.error("Razorpay order creation failed: %s", e)
            raise ServiceUnavailable() from e
        return {"id": order["id"], "amount": order["amount"], "currency": order["currency"]}


_gateway: Optional[RazorpayGateway] = None


def get_gateway() -> Optional[RazorpayGateway]:
    """Shared gateway client, or None when Razorpay is not configured."""
    global _gateway
    if not (RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET):
        logger.warning("Razorpay credentials not provided, payment functionality is unavailable")
        return None
    if _gateway is None:
        _gateway = RazorpayGateway(RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET)
    return _gateway


def get_gateway_secret() -> str:
    return RAZORPAY_KEY_SECRET


def get_key_id() -> str:
    return RAZORPAY_KEY_ID


def get_webhook_secret() -> str:
    return RAZORPAY_WEBHOOK_SECRET
