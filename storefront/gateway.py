import logging
import time
from decimal import ROUND_HALF_UP, Decimal

import requests

from .config import settings
from .errors import GatewayError

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """499.00 -> 49900 (paise, cents, ...)."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RazorpayClient:
    """Thin client for the gateway's Orders API."""

    def __init__(self, key_id: str, key_secret: str, base_url: str, timeout: float):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def create_order(self, amount: Decimal, currency: str, receipt: str = None) -> dict:
        """Create a remote order for ``amount`` (major units) and return the gateway's JSON."""
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt or f"order-{int(time.time() * 1000)}",
        }
        try:
            response = requests.post(
                f"{self.base_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
            response.raise_for_status()  # Raises an exception for 4xx/5xx status codes
            order = response.json()
        except requests.exceptions.RequestException as e:
            logger.error("Gateway order creation failed: %s", e)
            raise GatewayError("Something went wrong in creating order") from e
        except ValueError as e:
            logger.error("Gateway returned a non-JSON body: %s", e)
            raise GatewayError("Something went wrong in creating order") from e

        if "id" not in order:
            logger.error("Gateway response has no order id: %s", order)
            raise GatewayError("Something went wrong in creating order")
        logger.info("Gateway order %s created for %s %s", order["id"], payload["amount"], currency)
        return order


def get_gateway() -> RazorpayClient:
    """FastAPI dependency returning the configured gateway client."""
    return RazorpayClient(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        base_url=settings.RAZORPAY_BASE_URL,
        timeout=settings.GATEWAY_TIMEOUT_SECONDS,
    )
