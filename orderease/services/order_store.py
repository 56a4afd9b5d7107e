# orderease/services/order_store.py
import logging
import re
import threading
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from orderease.core.timeutils import local_now, utcnow
from orderease.models.schemas import OrderStatus, OrderStatusUpdate, SourceChannel
from orderease.models.sql_models import DraftOrder, FinalOrder

logger = logging.getLogger(__name__)

DISPLAY_ID_RE = re.compile(r"^\d{8}-\d{3}$")

# Serializes minting inside this process; the unique index on display_id covers the rest
_sequence_lock = threading.Lock()


def mint_display_id(db: Session, now: datetime = None) -> str:
    """Next id for the restaurant's current day: YYYYMMDD-NNN."""
    prefix = local_now(now).strftime("%Y%m%d")
    rows = db.query(FinalOrder.display_id).filter(FinalOrder.display_id.like(f"{prefix}-%")).all()
    highest = 0
    for (display_id,) in rows:
        suffix = display_id.rsplit("-", 1)[-1]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}-{highest + 1:03d}"


def create_final_order(db: Session, draft: DraftOrder, payment_reference: Optional[str],
                       now: datetime = None, source: SourceChannel = SourceChannel.CHAT) -> FinalOrder:
    """Add the canonical order for a paid draft. Flushes, never commits."""
    now = now or utcnow()
    with _sequence_lock:
        order = FinalOrder(
            display_id=mint_display_id(db, now),
            items=draft.items or [],
            total_amount=draft.total_amount,
            customer_name=draft.customer_name,
            customer_phone=draft.customer_phone or draft.phone_number,
            customer_address=draft.customer_address,
            status=OrderStatus.QUEUED.value,
            source=source.value,
            payment_reference=payment_reference,
            created_at=now,
            updated_at=now,
        )
        db.add(order)
        db.flush()
    logger.info("Created order %s from draft %s", order.display_id, draft.id)
    return order


def find_by_display_id(db: Session, display_id: str) -> Optional[FinalOrder]:
    if not display_id or not DISPLAY_ID_RE.match(display_id):
        return None
    return db.query(FinalOrder).filter(FinalOrder.display_id == display_id).first()


def list_orders(db: Session, status: str = None, limit: int = 100) -> List[FinalOrder]:
    query = db.query(FinalOrder)
    if status:
        query = query.filter(FinalOrder.status == status)
    return query.order_by(FinalOrder.created_at.desc(), FinalOrder.id.desc()).limit(limit).all()


def update_status(db: Session, display_id: str, update: OrderStatusUpdate,
                  now: datetime = None) -> Optional[FinalOrder]:
    order = find_by_display_id(db, display_id)
    if order is None:
        return None
    now = now or utcnow()
    if update.status is not None:
        if update.status == OrderStatus.PREPARING and order.preparation_started_at is None:
            order.preparation_started_at = now
        order.status = update.status.value
    if update.time_required is not None:
        order.time_required = update.time_required
    order.updated_at = now
    db.commit()
    db.refresh(order)
    logger.info("Order %s is now %s", order.display_id, order.status)
    return order


def notification_phone(db: Session, order: FinalOrder) -> Optional[str]:
    """The chat number the order was placed from, falling back to the contact phone given."""
    draft = db.query(DraftOrder).filter(DraftOrder.final_order_id == order.id).first()
    if draft is not None:
        return draft.phone_number
    return order.customer_phone
