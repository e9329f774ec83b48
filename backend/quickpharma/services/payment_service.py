"""
Online payment gateway client (Stripe Checkout REST API over requests).

Checkout never trusts the client about payment: an online order is only
accepted when the session it references reports payment_status == "paid".
"""
import logging
from decimal import Decimal
from typing import List, Optional

import requests

from quickpharma.core.config import settings

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    pass


class PaymentGateway:
    def __init__(self, secret_key: str, api_base: str, timeout: int = 15):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, data: Optional[dict] = None) -> dict:
        if not self.secret_key:
            raise PaymentGatewayError("Payment gateway is not configured")
        try:
            resp = requests.request(
                method,
                f"{self.api_base}{path}",
                data=data,
                auth=(self.secret_key, ""),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PaymentGatewayError(f"Payment gateway unreachable: {e}") from e

        if resp.status_code >= 400:
            raise PaymentGatewayError(f"Payment gateway returned {resp.status_code}: {resp.text[:200]}")
        return resp.json()

    def create_checkout_session(self, items: List[dict], delivery_fee: Decimal = Decimal("0")) -> str:
        """Create a hosted checkout session and return its URL.

        items: [{"name": str, "price": Decimal, "quantity": int}, ...]
        """
        data = {
            "mode": "payment",
            "success_url": f"{settings.FRONTEND_URL}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{settings.FRONTEND_URL}/payment-failed",
        }
        lines = list(items)
        if delivery_fee and Decimal(delivery_fee) > 0:
            lines.append({"name": "Delivery Fee", "price": Decimal(delivery_fee), "quantity": 1})

        for i, item in enumerate(lines):
            prefix = f"line_items[{i}]"
            data[f"{prefix}[quantity]"] = int(item["quantity"])
            data[f"{prefix}[price_data][currency]"] = settings.STRIPE_CURRENCY
            data[f"{prefix}[price_data][unit_amount]"] = int(Decimal(item["price"]) * 100)
            data[f"{prefix}[price_data][product_data][name]"] = item["name"]

        session = self._request("POST", "/checkout/sessions", data=data)
        return session["url"]

    def is_session_paid(self, session_id: str) -> bool:
        if not session_id:
            return False
        try:
            session = self._request("GET", f"/checkout/sessions/{session_id}")
        except PaymentGatewayError as e:
            logger.error(f"Could not verify payment session {session_id}: {e}")
            return False
        return session.get("payment_status") == "paid"


_gateway = PaymentGateway(settings.STRIPE_SECRET_KEY, settings.STRIPE_API_BASE, settings.PAYMENT_TIMEOUT_SECONDS)


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency; tests override it with a fake gateway."""
    return _gateway
