import logging
import os
from typing import Optional

import requests

from errors import PaymentGatewayError

logger = logging.getLogger(__name__)

RAZORPAY_API_BASE = os.environ.get("RAZORPAY_API_BASE", "https://api.razorpay.com/v1")


def _bool_env(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def payments_enabled() -> bool:
    return _bool_env(os.environ.get("PAYMENTS_ENABLED"), default=False)


def to_minor_units(amount: float) -> int:
    return int(round(float(amount) * 100))


class RazorpayGateway:
    """Creates hosted-checkout orders through the Razorpay Orders API."""

    def __init__(self, key_id: Optional[str], key_secret: Optional[str], base_url: str = RAZORPAY_API_BASE, timeout: int = 15):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def create_order(self, amount: float, currency: str, receipt: str, notes: Optional[dict] = None) -> dict:
        if not self.configured:
            raise PaymentGatewayError("Payment gateway is not configured")
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            response = requests.post(
                f"{self.base_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
            response.raise_for_status()
            order = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Razorpay order creation failed for receipt %s: %s", receipt, exc)
            raise PaymentGatewayError() from exc

        if not order.get("id"):
            logger.error("Razorpay returned an order without id for receipt %s", receipt)
            raise PaymentGatewayError()
        return order


def get_payment_gateway() -> RazorpayGateway:
    return RazorpayGateway(
        key_id=os.environ.get("RAZORPAY_KEY_ID"),
        key_secret=os.environ.get("RAZORPAY_KEY_SECRET"),
    )
