# orderease/services/payment_links.py
"""Razorpay Payment Links client."""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import requests
from pydantic import BaseModel

from orderease.core.config import settings
from orderease.core.errors import PaymentProviderError
from orderease.models.schemas import CustomerInfo

logger = logging.getLogger(__name__)


class LinkStatus(BaseModel):
    link_id: str
    status: str  # created | partially_paid | paid | expired | cancelled
    short_url: Optional[str] = None
    payment_id: Optional[str] = None
    amount_paid: Optional[Decimal] = None

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"


def to_subunits(amount: Decimal) -> int:
    """Rupees to paise."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentLinkIssuer:
    def __init__(self, key_id: str = None, key_secret: str = None, api_url: str = None, timeout: float = None):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.api_url = (api_url or settings.RAZORPAY_API_URL).rstrip("/")
        self.timeout = timeout or settings.EXTERNAL_TIMEOUT_SECONDS

    def _auth(self):
        if not self.key_id or not self.key_secret:
            raise PaymentProviderError("Razorpay keys are not configured")
        return (self.key_id, self.key_secret)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            return requests.request(
                method, f"{self.api_url}{path}", auth=self._auth(), timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise PaymentProviderError(f"Razorpay unreachable: {e}") from e

    def issue(self, amount: Decimal, correlation_id: str, customer: CustomerInfo = None,
              phone_number: str = None) -> str:
        """Create a payment link tagged with `correlation_id` and return its URL."""
        payload = {
            "amount": to_subunits(amount),
            "currency": settings.CURRENCY,
            "accept_partial": False,
            "reference_id": correlation_id,
            "description": f"{settings.PROJECT_NAME} order payment",
            "notify": {"sms": False, "email": False},
            "reminder_enable": False,
            "notes": {
                "whatsapp_order_id": correlation_id,
                "phone_number": phone_number or "",
                "source": "whatsapp",
            },
            "callback_url": f"{settings.BACKEND_URL}/payment-callback",
            "callback_method": "get",
        }
        if customer:
            payload["customer"] = {"name": customer.name, "contact": customer.phone}

        response = self._request("POST", "/payment_links", json=payload)

        if response.status_code == 400 and "reference_id" in response.text.lower():
            # A retried create: hand back the link that already exists
            existing = self.fetch_status(correlation_id)
            if existing and existing.short_url:
                logger.info("Reusing payment link %s for %s", existing.link_id, correlation_id)
                return existing.short_url

        if not response.ok:
            raise PaymentProviderError(f"Razorpay answered {response.status_code}: {response.text[:200]}")

        url = response.json().get("short_url")
        if not url:
            raise PaymentProviderError("Razorpay response carried no short_url")
        logger.info("Issued payment link for %s (%s paise)", correlation_id, payload["amount"])
        return url

    def fetch_status(self, correlation_id: str) -> Optional[LinkStatus]:
        """Current state of the link created for `correlation_id`, or None if there is none."""
        response = self._request("GET", "/payment_links", params={"reference_id": correlation_id})
        if not response.ok:
            raise PaymentProviderError(f"Razorpay answered {response.status_code}: {response.text[:200]}")

        links = response.json().get("payment_links") or []
        if not links:
            return None
        link = links[0]
        payments = link.get("payments") or []
        captured = [p for p in payments if p.get("status") == "captured"] or payments
        amount_paid = link.get("amount_paid")
        return LinkStatus(
            link_id=link["id"],
            status=link.get("status", "created"),
            short_url=link.get("short_url"),
            payment_id=captured[0].get("payment_id") if captured else None,
            amount_paid=Decimal(amount_paid) / 100 if amount_paid else None,
        )
