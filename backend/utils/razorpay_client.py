# backend/utils/razorpay_client.py
import hashlib
import hmac
import httpx
import logging
from dataclasses import dataclass
from urllib.parse import urljoin
from config import settings

logger = logging.getLogger(__name__)

@dataclass
class GatewaySession:
    session_id: str    # gateway-side order id
    client_token: str  # public key the checkout widget is opened with
    amount: int        # minor units (paise)
    currency: str

class RazorpayClient:
    def __init__(self, api_url=None, key_id=None, key_secret=None, webhook_secret=None, timeout=None):
        # Initialize configuration, falling back to application settings
        self.api_url = api_url or settings.RAZORPAY_API_URL
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.RAZORPAY_WEBHOOK_SECRET
        self.timeout = timeout if timeout is not None else settings.GATEWAY_TIMEOUT_SECONDS

    async def create_session(self, amount: float, currency: str, metadata: dict) -> GatewaySession:
        # Open a gateway order the customer pays against.
        # httpx.TimeoutException is left to the caller, the outcome is unknown at that point.
        order_url = urljoin(self.api_url, "/v1/orders")
        payload = {
            "amount": int(round(amount * 100)),
            "currency": currency,
            "receipt": str(metadata.get("order_number", "")),
            "notes": {k: str(v) for k, v in metadata.items()},
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(order_url, json=payload, auth=(self.key_id, self.key_secret))
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(f"Razorpay create order error: {e.response.text}")
                raise
            data = response.json()

        return GatewaySession(
            session_id=data["id"],
            client_token=self.key_id,
            amount=int(data.get("amount", payload["amount"])),
            currency=data.get("currency", currency),
        )

    def verify(self, session_id: str, signature: str, payload: dict) -> bool:
        """Checks the checkout signature: HMAC-SHA256 of "<order_id>|<payment_id>"."""
        payment_id = payload.get("gateway_payment_id")
        if not session_id or not payment_id or not signature:
            return False
        message = f"{session_id}|{payment_id}".encode("utf-8")
        expected = hmac.new(self.key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)

    def verify_webhook(self, body: bytes, signature: str) -> bool:
        """Checks the X-Razorpay-Signature header of a webhook delivery."""
        if not signature or not self.webhook_secret:
            return False
        expected = hmac.new(self.webhook_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)

razorpay_client = RazorpayClient()

def get_payment_gateway() -> RazorpayClient:
    return razorpay_client
