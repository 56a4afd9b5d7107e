# orderease/services/transport.py
"""Outbound delivery to customers, plus the message log behind the admin transcript."""
import logging
from typing import Callable, Optional

import requests
from sqlalchemy.orm import Session

from orderease.core import database
from orderease.core.config import settings
from orderease.core.timeutils import get_current_time_ms
from orderease.models.sql_models import Message

logger = logging.getLogger(__name__)


def log_message(contact_id: str, direction: str, body: str, platform: str = "whatsapp",
                session_factory: Optional[Callable[[], Session]] = None):
    """Append to the message log on its own db session, outside any open unit of work."""
    factory = session_factory or database.SessionLocal
    db = factory()
    try:
        db.add(Message(
            platform=platform,
            contact_id=str(contact_id),
            direction=direction,
            body=body,
            timestamp=get_current_time_ms(),
        ))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning("Could not log %s message for %s: %s", direction, contact_id, e)
    finally:
        db.close()


class MessageSender:
    """Delivers a text to a phone number. Returns False when delivery did not happen."""

    def send(self, phone_number: str, text: str) -> bool:
        raise NotImplementedError


class WhatsAppSender(MessageSender):
    def __init__(self, session_factory: Optional[Callable[[], Session]] = None, timeout: float = None):
        self.session_factory = session_factory
        self.timeout = timeout or settings.EXTERNAL_TIMEOUT_SECONDS

    def send(self, phone_number: str, text: str) -> bool:
        logger.info("Sending WhatsApp message to %s", phone_number)
        log_message(phone_number, "outbound", text, session_factory=self.session_factory)

        if not settings.META_API_TOKEN or not settings.WHATSAPP_PHONE_ID:
            logger.warning("WhatsApp credentials missing, message to %s not delivered", phone_number)
            return False

        url = f"https://graph.facebook.com/{settings.GRAPH_API_VERSION}/{settings.WHATSAPP_PHONE_ID}/messages"
        headers = {"Authorization": f"Bearer {settings.META_API_TOKEN}", "Content-Type": "application/json"}
        payload = {
            "messaging_product": "whatsapp",
            "to": phone_number,
            "type": "text",
            "text": {"body": text},
        }
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning("WhatsApp send to %s failed: %s", phone_number, e)
            return False
        return True
