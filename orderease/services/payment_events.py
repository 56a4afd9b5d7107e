# orderease/services/payment_events.py
"""
Provider webhook parsing.

Razorpay payloads vary by event; they are turned into one of four small
models right here so nothing downstream digs through raw dictionaries:

    LinkPaid         payment_link.paid
    PaymentCaptured  payment.captured
    PaymentFailed    payment.failed
    UnknownEvent     anything else
"""
import hashlib
import hmac
import logging
import re
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from orderease.core.config import settings
from orderease.core.errors import SignatureInvalid

logger = logging.getLogger(__name__)


class _EventBase(BaseModel):
    correlation_id: Optional[str] = None
    payment_reference: Optional[str] = None
    phone_number: Optional[str] = None
    amount: Optional[Decimal] = None


class LinkPaid(_EventBase):
    kind: Literal["link_paid"] = "link_paid"


class PaymentCaptured(_EventBase):
    kind: Literal["payment_captured"] = "payment_captured"


class PaymentFailed(_EventBase):
    kind: Literal["payment_failed"] = "payment_failed"
    reason: Optional[str] = None


class UnknownEvent(_EventBase):
    kind: Literal["unknown"] = "unknown"
    event_name: Optional[str] = None


PaymentEvent = Annotated[
    Union[LinkPaid, PaymentCaptured, PaymentFailed, UnknownEvent],
    Field(discriminator="kind"),
]


def verify_webhook_signature(raw_body: bytes, signature: Optional[str], secret: str = None):
    """Raise SignatureInvalid unless `signature` is the HMAC-SHA256 hex digest of the body."""
    secret = secret if secret is not None else settings.RAZORPAY_WEBHOOK_SECRET
    if not secret:
        raise SignatureInvalid("RAZORPAY_WEBHOOK_SECRET is not configured")
    if not signature:
        raise SignatureInvalid("Missing webhook signature")
    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature):
        raise SignatureInvalid("Webhook signature mismatch")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    digits = re.sub(r"\D", "", str(phone))
    return digits or None


def _entity(payload: dict, name: str) -> dict:
    return ((payload.get("payload") or {}).get(name) or {}).get("entity") or {}


def _paise(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(value) / 100


def parse_provider_event(payload: dict):
    event_name = payload.get("event")
    link = _entity(payload, "payment_link")
    payment = _entity(payload, "payment")
    link_notes = link.get("notes") or {}
    payment_notes = payment.get("notes") or {}
    if not isinstance(link_notes, dict):
        link_notes = {}
    if not isinstance(payment_notes, dict):
        payment_notes = {}

    correlation_id = (
        link_notes.get("whatsapp_order_id")
        or link.get("reference_id")
        or payment_notes.get("whatsapp_order_id")
    )
    phone_number = normalize_phone(
        link_notes.get("phone_number")
        or payment_notes.get("phone_number")
        or payment.get("contact")
        or (link.get("customer") or {}).get("contact")
    )
    fields = {
        "correlation_id": correlation_id,
        "payment_reference": payment.get("id"),
        "phone_number": phone_number,
        "amount": _paise(payment.get("amount", link.get("amount_paid"))),
    }

    if event_name == "payment_link.paid":
        return LinkPaid(**fields)
    if event_name == "payment.captured":
        return PaymentCaptured(**fields)
    if event_name == "payment.failed":
        return PaymentFailed(reason=payment.get("error_description"), **fields)

    logger.info("Unhandled payment event %r", event_name)
    return UnknownEvent(event_name=event_name, **fields)
