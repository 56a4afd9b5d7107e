# orderease/services/drafts.py
"""Draft ("pending") orders: the unpaid order behind a conversation.

Functions here flush but never commit; the caller owns the unit of work.
"""
import logging
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from orderease.models.schemas import (
    OPEN_DRAFT_STATUSES,
    TERMINAL_DRAFT_STATUSES,
    CustomerInfo,
    DraftLines,
    DraftStatus,
    OrderLine,
)
from orderease.models.sql_models import DraftOrder

logger = logging.getLogger(__name__)


def lines_of(draft: DraftOrder) -> List[OrderLine]:
    return [OrderLine(**line) for line in (draft.items or [])]


def get_draft(db: Session, draft_id: Optional[str]) -> Optional[DraftOrder]:
    if not draft_id:
        return None
    return db.get(DraftOrder, draft_id, populate_existing=True)


def find_by_correlation_id(db: Session, correlation_id: Optional[str]) -> Optional[DraftOrder]:
    if not correlation_id:
        return None
    draft = (
        db.query(DraftOrder)
        .filter(DraftOrder.payment_correlation_id == correlation_id)
        .populate_existing()
        .first()
    )
    # Correlation ids are draft ids, so a draft whose id was never stamped still resolves
    return draft or get_draft(db, correlation_id)


def find_latest_awaiting(db: Session, phone_number: Optional[str]) -> Optional[DraftOrder]:
    if not phone_number:
        return None
    return (
        db.query(DraftOrder)
        .filter(
            DraftOrder.phone_number == phone_number,
            DraftOrder.status == DraftStatus.AWAITING_PAYMENT.value,
        )
        .order_by(DraftOrder.created_at.desc())
        .populate_existing()
        .first()
    )


def find_by_payment_reference(db: Session, payment_reference: Optional[str]) -> Optional[DraftOrder]:
    if not payment_reference:
        return None
    return (
        db.query(DraftOrder)
        .filter(DraftOrder.payment_reference == payment_reference)
        .populate_existing()
        .first()
    )


def list_drafts(db: Session, status: Optional[str] = None, limit: int = 50) -> List[DraftOrder]:
    query = db.query(DraftOrder)
    if status:
        query = query.filter(DraftOrder.status == status)
    return query.order_by(DraftOrder.created_at.desc()).limit(limit).all()


def supersede_open_drafts(db: Session, phone_number: str, keep_id: Optional[str] = None) -> int:
    query = db.query(DraftOrder).filter(
        DraftOrder.phone_number == phone_number,
        DraftOrder.status.in_(OPEN_DRAFT_STATUSES),
    )
    if keep_id:
        query = query.filter(DraftOrder.id != keep_id)
    superseded = query.all()
    for draft in superseded:
        logger.info("Superseding draft %s (%s) for %s", draft.id, draft.status, phone_number)
        draft.status = DraftStatus.CANCELLED.value
    return len(superseded)


def save_lines(db: Session, phone_number: str, draft_id: Optional[str], lines: List[OrderLine]) -> DraftOrder:
    """Write the conversation's lines to its draft, starting a new draft if it has none."""
    draft = get_draft(db, draft_id)
    if draft is None or draft.status in TERMINAL_DRAFT_STATUSES:
        supersede_open_drafts(db, phone_number)
        draft = DraftOrder(
            id=uuid.uuid4().hex,
            phone_number=phone_number,
            status=DraftStatus.COLLECTING_ITEMS.value,
        )
        db.add(draft)
        logger.info("Created draft %s for %s", draft.id, phone_number)

    draft.items = [line.model_dump(mode="json") for line in lines]
    draft.total_amount = DraftLines(lines=lines).total
    db.flush()
    return draft


def attach_customer(draft: DraftOrder, customer: CustomerInfo):
    draft.customer_name = customer.name
    draft.customer_phone = customer.phone
    draft.customer_address = customer.address


def assign_correlation_id(draft: DraftOrder) -> str:
    """Stamp the correlation id once; later calls return the same value."""
    if not draft.payment_correlation_id:
        draft.payment_correlation_id = draft.id
    return draft.payment_correlation_id


def mark(draft: Optional[DraftOrder], status: DraftStatus):
    if draft is not None and draft.status not in TERMINAL_DRAFT_STATUSES:
        draft.status = status.value


def cancel_editable(db: Session, draft_id: Optional[str]) -> bool:
    """Cancel a draft the customer is still editing. Drafts awaiting payment are left alone."""
    draft = get_draft(db, draft_id)
    if draft is None or draft.status not in (
        DraftStatus.COLLECTING_ITEMS.value,
        DraftStatus.COLLECTING_DETAILS.value,
    ):
        return False
    draft.status = DraftStatus.CANCELLED.value
    db.flush()
    return True
