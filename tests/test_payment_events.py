import hashlib
import hmac
from decimal import Decimal

import pytest

from orderease.core.errors import SignatureInvalid
from orderease.services.payment_events import (
    LinkPaid,
    PaymentCaptured,
    PaymentFailed,
    UnknownEvent,
    parse_provider_event,
    verify_webhook_signature,
)

SECRET = "whsec_unit"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class TestSignature:
    """HMAC-SHA256 over the raw body."""

    def test_valid(self):
        body = b'{"event": "payment.captured"}'
        verify_webhook_signature(body, _sign(body), secret=SECRET)

    def test_tampered_body(self):
        body = b'{"event": "payment.captured"}'
        with pytest.raises(SignatureInvalid):
            verify_webhook_signature(body + b" ", _sign(body), secret=SECRET)

    def test_missing_signature(self):
        with pytest.raises(SignatureInvalid):
            verify_webhook_signature(b"{}", None, secret=SECRET)

    def test_missing_secret(self):
        with pytest.raises(SignatureInvalid):
            verify_webhook_signature(b"{}", _sign(b"{}"), secret="")


class TestParseEvent:
    """Provider payloads become tagged events."""

    def test_link_paid(self):
        event = parse_provider_event({
            "event": "payment_link.paid",
            "payload": {
                "payment_link": {"entity": {
                    "id": "plink_1",
                    "reference_id": "draft123",
                    "notes": {"whatsapp_order_id": "draft123", "phone_number": "919876543210"},
                }},
                "payment": {"entity": {"id": "pay_1", "amount": 55000, "contact": "+919876543210"}},
            },
        })
        assert isinstance(event, LinkPaid)
        assert event.kind == "link_paid"
        assert event.correlation_id == "draft123"
        assert event.payment_reference == "pay_1"
        assert event.phone_number == "919876543210"
        assert event.amount == Decimal("550")

    def test_captured_without_notes_uses_contact(self):
        event = parse_provider_event({
            "event": "payment.captured",
            "payload": {"payment": {"entity": {"id": "pay_2", "amount": 5000, "contact": "+91 98765 43210", "notes": []}}},
        })
        assert isinstance(event, PaymentCaptured)
        assert event.correlation_id is None
        assert event.phone_number == "919876543210"

    def test_failed(self):
        event = parse_provider_event({
            "event": "payment.failed",
            "payload": {"payment": {"entity": {
                "id": "pay_3", "notes": {"whatsapp_order_id": "draft9"}, "error_description": "Card declined",
            }}},
        })
        assert isinstance(event, PaymentFailed)
        assert event.correlation_id == "draft9"
        assert event.reason == "Card declined"

    def test_unknown(self):
        event = parse_provider_event({"event": "refund.processed", "payload": {}})
        assert isinstance(event, UnknownEvent)
        assert event.event_name == "refund.processed"
