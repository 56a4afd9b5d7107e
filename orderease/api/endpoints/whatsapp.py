# orderease/api/endpoints/whatsapp.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from orderease.api.deps import get_issuer, get_pipeline, get_sender
from orderease.core.config import settings
from orderease.core.database import get_db, get_session_factory
from orderease.models.schemas import WhatsAppWebhookSchema
from orderease.services import replies
from orderease.services.chat_manager import ChatManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/webhook")
async def verify_webhook(
    mode: str = Query(None, alias="hub.mode"),
    token: str = Query(None, alias="hub.verify_token"),
    challenge: str = Query(None, alias="hub.challenge"),
):
    if mode == "subscribe" and token == settings.WHATSAPP_VERIFY_TOKEN:
        # Meta expects the challenge echoed back as plain text
        return PlainTextResponse(content=challenge or "", status_code=200)
    logger.warning("WhatsApp webhook verification rejected (mode=%s)", mode)
    raise HTTPException(status_code=403, detail="Invalid Token")


@router.post("/webhook")
def whatsapp_webhook(
    payload: WhatsAppWebhookSchema,
    db: Session = Depends(get_db),
    sender=Depends(get_sender),
    pipeline=Depends(get_pipeline),
    issuer=Depends(get_issuer),
    session_factory=Depends(get_session_factory),
):
    manager = ChatManager(db, sender, pipeline=pipeline, issuer=issuer, transcript=session_factory)
    for entry in payload.entry:
        for change in entry.changes:
            # Status callbacks (sent/delivered/read) carry no messages
            for message in change.value.messages:
                try:
                    if message.type != "text" or message.text is None:
                        logger.info("Skipping %s message from %s", message.type, message.from_)
                        sender.send(message.from_, replies.text_only_message())
                        continue
                    manager.handle_inbound(message.from_, message.text.body, message.id)
                except Exception:
                    logger.exception("WhatsApp message %s from %s failed", message.id, message.from_)

    # Always 200, otherwise Meta keeps retrying
    return {"status": "received"}
