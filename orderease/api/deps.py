# orderease/api/deps.py
"""Collaborators injected into the routers, overridable through app.dependency_overrides."""
from fastapi import Depends

from orderease.core.database import get_session_factory
from orderease.services.order_parsing import OrderParsingPipeline, build_pipeline
from orderease.services.payment_links import PaymentLinkIssuer
from orderease.services.transport import MessageSender, WhatsAppSender


def get_sender(session_factory=Depends(get_session_factory)) -> MessageSender:
    return WhatsAppSender(session_factory)


def get_pipeline() -> OrderParsingPipeline:
    return build_pipeline()


def get_issuer() -> PaymentLinkIssuer:
    return PaymentLinkIssuer()
