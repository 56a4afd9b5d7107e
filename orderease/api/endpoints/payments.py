# orderease/api/endpoints/payments.py
import json
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from orderease.api.deps import get_issuer, get_sender
from orderease.core.config import settings
from orderease.core.database import get_db, get_session_factory
from orderease.core.errors import SignatureInvalid
from orderease.services.payment_events import parse_provider_event, verify_webhook_signature
from orderease.services.reconciliation import PaymentReconciler, reconcile_event

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/payments/webhook")
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_razorpay_signature: Optional[str] = Header(None),
    sender=Depends(get_sender),
    session_factory=Depends(get_session_factory),
):
    raw_body = await request.body()
    try:
        verify_webhook_signature(raw_body, x_razorpay_signature)
    except SignatureInvalid as e:
        logger.warning("Rejected payment webhook: %s", e)
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    event = parse_provider_event(payload)
    logger.info("Payment webhook %s for %s", payload.get("event"), event.correlation_id)
    # Ack now; the provider's retry budget must not wait on reconciliation
    background_tasks.add_task(reconcile_event, session_factory, sender, event)
    return {"status": "success"}


def _tracking_url(**params) -> str:
    return f"{settings.FRONTEND_URL}/track?{urlencode(params)}"


@router.get("/payment-callback")
def payment_callback(
    payment_ref: Optional[str] = Query(None, alias="paymentRef"),
    razorpay_payment_id: Optional[str] = Query(None),
    correlation_hint: Optional[str] = Query(None, alias="correlationHint"),
    razorpay_payment_link_reference_id: Optional[str] = Query(None),
    razorpay_payment_link_status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    sender=Depends(get_sender),
    issuer=Depends(get_issuer),
):
    reconciler = PaymentReconciler(db, sender, issuer)
    result = reconciler.handle_redirect(
        payment_ref or razorpay_payment_id,
        correlation_hint or razorpay_payment_link_reference_id,
        razorpay_payment_link_status,
    )
    if result.display_id:
        url = _tracking_url(order_id=result.display_id, payment_success="true", source="whatsapp")
    else:
        logger.info("Payment redirect ended with %s", result.error)
        url = _tracking_url(error=result.error)
    return RedirectResponse(url, status_code=303)
