# orderease/services/menu_catalog.py
from typing import List

from sqlalchemy.orm import Session

from orderease.core.config import settings
from orderease.models.schemas import MenuItemData
from orderease.models.sql_models import MenuItem


def list_available_items(db: Session) -> List[MenuItemData]:
    """Orderable items in catalog order (insertion order)."""
    items = db.query(MenuItem).filter(MenuItem.is_available == True).order_by(MenuItem.id).all()  # noqa: E712
    return [
        MenuItemData(name=item.name, price=item.price, available=True, description=item.description)
        for item in items
    ]


def format_price(amount) -> str:
    amount = f"{amount:.2f}"
    if amount.endswith(".00"):
        amount = amount[:-3]
    return f"{settings.CURRENCY_SYMBOL}{amount}"


def get_live_menu_text(menu: List[MenuItemData]) -> str:
    lines = []
    for index, item in enumerate(sorted(menu, key=lambda m: m.name.lower()), start=1):
        lines.append(f"{index}. *{item.name}* - {format_price(item.price)}")
        if item.description:
            lines.append(f"   _{item.description}_")
    return "\n".join(lines)
