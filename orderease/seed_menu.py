# orderease/seed_menu.py
"""Seed a sample catalog: python -m orderease.seed_menu"""
import logging
from decimal import Decimal

from orderease.core.database import Base, SessionLocal, engine
from orderease.core.logging_config import setup_logging
from orderease.models.sql_models import MenuItem

logger = logging.getLogger(__name__)

SAMPLE_MENU = [
    ("Margherita Pizza", Decimal("250"), "Tomato, mozzarella, basil"),
    ("Farmhouse Pizza", Decimal("320"), "Onion, capsicum, mushroom, tomato"),
    ("Veg Burger", Decimal("120"), "Crispy patty with lettuce and mayo"),
    ("Chicken Burger", Decimal("160"), None),
    ("French Fries", Decimal("90"), None),
    ("Coke", Decimal("50"), "300 ml"),
    ("Cold Coffee", Decimal("110"), None),
]


def seed(db) -> int:
    added = 0
    for name, price, description in SAMPLE_MENU:
        item = db.query(MenuItem).filter(MenuItem.name == name).first()
        if item:
            item.price, item.description, item.is_available = price, description, True
        else:
            db.add(MenuItem(name=name, price=price, description=description, is_available=True))
            added += 1
    db.commit()
    return added


if __name__ == "__main__":
    setup_logging()
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        logger.info("Seeded %d new menu item(s)", seed(db))
    finally:
        db.close()
