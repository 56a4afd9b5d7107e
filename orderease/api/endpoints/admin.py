# orderease/api/endpoints/admin.py
"""Operator tooling: sessions, drafts, manual payment checks, transcripts."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from orderease.api.deps import get_issuer, get_pipeline, get_sender
from orderease.core.database import get_db
from orderease.core.errors import DraftNotFound, PaymentProviderError
from orderease.models.schemas import (
    ClearSessionRequest,
    DraftLines,
    DraftOrderOut,
    DraftStatus,
    ParseRequest,
    SessionSummary,
)
from orderease.models.sql_models import Message
from orderease.services import drafts
from orderease.services.menu_catalog import list_available_items
from orderease.services.reconciliation import PaymentReconciler, ReconcileResult
from orderease.services.session_store import SessionStore

router = APIRouter()


@router.get("/sessions", response_model=List[SessionSummary])
def list_sessions(limit: int = 50, db: Session = Depends(get_db)):
    return [
        SessionSummary(
            phone_number=session.phone_number,
            stage=session.stage,
            draft_total=session.draft.total,
            item_count=sum(line.quantity for line in session.draft.lines),
            message_count=len(session.message_history),
            last_activity=session.last_activity,
        )
        for session in SessionStore(db).list_active(limit)
    ]


@router.post("/clear-session")
def clear_session(request: ClearSessionRequest, db: Session = Depends(get_db)):
    session = SessionStore(db).reset(request.phone_number)
    if session is None:
        raise HTTPException(status_code=404, detail="No active session for this number")
    return {"status": "cleared", "phone_number": request.phone_number}


@router.get("/drafts", response_model=List[DraftOrderOut])
def list_drafts(status: Optional[DraftStatus] = None, limit: int = 50, db: Session = Depends(get_db)):
    return drafts.list_drafts(db, status.value if status else None, limit)


@router.post("/drafts/{draft_id}/reconcile", response_model=ReconcileResult)
def reconcile_draft(draft_id: str, db: Session = Depends(get_db), sender=Depends(get_sender),
                    issuer=Depends(get_issuer)):
    try:
        return PaymentReconciler(db, sender, issuer).probe(draft_id)
    except DraftNotFound:
        raise HTTPException(status_code=404, detail="Draft not found")
    except PaymentProviderError as e:
        raise HTTPException(status_code=502, detail=f"Payment provider unavailable: {e}")


@router.get("/messages/{phone_number}")
def message_history(phone_number: str, limit: int = 50, db: Session = Depends(get_db)):
    msgs = (
        db.query(Message)
        .filter(Message.contact_id == phone_number)
        .order_by(Message.timestamp.desc(), Message.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": str(m.id),
            "direction": m.direction,
            "body": m.body,
            "timestamp": m.timestamp,
            "platform": m.platform,
        } for m in reversed(msgs)
    ]


@router.post("/test-order-parsing")
def run_order_parsing(request: ParseRequest, db: Session = Depends(get_db), pipeline=Depends(get_pipeline)):
    lines = pipeline.parse(request.message, list_available_items(db))
    return {
        "message": request.message,
        "items": [line.model_dump() for line in lines],
        "total": DraftLines(lines=lines).total,
    }
