# orderease/api/endpoints/orders.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from orderease.api.deps import get_sender
from orderease.core.database import get_db
from orderease.models.schemas import FinalOrderOut, MenuItemOut, OrderStatus, OrderStatusUpdate
from orderease.services import order_store, replies
from orderease.services.menu_catalog import list_available_items

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/menu", response_model=List[MenuItemOut])
def get_menu(db: Session = Depends(get_db)):
    return [MenuItemOut(name=item.name, price=item.price, description=item.description)
            for item in list_available_items(db)]


@router.get("/orders", response_model=List[FinalOrderOut])
def list_orders(status: Optional[OrderStatus] = None, limit: int = 100, db: Session = Depends(get_db)):
    return order_store.list_orders(db, status.value if status else None, limit)


@router.get("/orders/{display_id}", response_model=FinalOrderOut)
def get_order(display_id: str, db: Session = Depends(get_db)):
    order = order_store.find_by_display_id(db, display_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.patch("/orders/{display_id}", response_model=FinalOrderOut)
def update_order(display_id: str, update: OrderStatusUpdate, db: Session = Depends(get_db),
                 sender=Depends(get_sender)):
    order = order_store.update_status(db, display_id, update)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")

    if update.notify_customer and update.status is not None:
        phone = order_store.notification_phone(db, order)
        if phone:
            sender.send(phone, replies.status_update_message(order))
        else:
            logger.info("Order %s has no phone to notify", order.display_id)
    return order
