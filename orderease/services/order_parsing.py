# orderease/services/order_parsing.py
"""
Order parsing pipeline.

Tries the intelligent parser first and falls back to the deterministic
token scanner. Whatever a parser returns is checked against the live
catalog: unknown or unavailable dishes are dropped, prices always come from
the catalog, and repeated dishes are folded into one line.
"""
import logging
from typing import Dict, Iterable, List, Optional

from orderease.core.config import settings
from orderease.models.schemas import MenuItemData, OrderLine, ParsedItem
from orderease.services.fallback_parser import parse_fallback
from orderease.services.llm_engine import IntelligentOrderParser

logger = logging.getLogger(__name__)


def merge_lines(existing: Iterable[OrderLine], new: Iterable[OrderLine]) -> List[OrderLine]:
    """Sum quantities per dish name, keeping the order dishes first appeared in."""
    merged: Dict[str, OrderLine] = {}
    for line in list(existing) + list(new):
        if line.name in merged:
            merged[line.name].quantity += line.quantity
        else:
            merged[line.name] = line.model_copy()
    return list(merged.values())


def validate_items(items: Iterable, menu: List[MenuItemData]) -> List[OrderLine]:
    """Keep items naming an available dish with a positive integer quantity, priced from the catalog."""
    catalog = {dish.name.lower(): dish for dish in menu if dish.available}
    valid: List[OrderLine] = []
    for item in items:
        name = (item.name or "").strip().lower()
        dish = catalog.get(name)
        quantity = item.quantity
        if dish is None or not isinstance(quantity, int) or quantity < 1:
            logger.debug("Rejecting parsed item %r x %r", item.name, quantity)
            continue
        valid.append(OrderLine(name=dish.name, quantity=quantity, unit_price=dish.price))
    return merge_lines([], valid)


class OrderParsingPipeline:
    def __init__(self, intelligent: Optional[IntelligentOrderParser] = None):
        self.intelligent = intelligent

    def parse(self, raw_text: str, menu: List[MenuItemData], recent_context: str = None) -> List[OrderLine]:
        available = [dish for dish in menu if dish.available]
        if not available or not raw_text or not raw_text.strip():
            return []

        if self.intelligent is not None:
            parsed: Optional[List[ParsedItem]] = self.intelligent.parse(raw_text, available, recent_context)
            if parsed:
                lines = validate_items(parsed, available)
                if lines:
                    logger.info("Intelligent parser matched %d line(s)", len(lines))
                    return lines
            logger.info("Falling back to deterministic parsing")

        return validate_items(parse_fallback(raw_text, available), available)


def build_pipeline(mode: str = None) -> OrderParsingPipeline:
    mode = (mode or settings.ORDER_PARSER).lower()
    if mode == "fallback":
        return OrderParsingPipeline()
    if mode != "intelligent":
        logger.warning("Unknown ORDER_PARSER=%r, using the intelligent parser", mode)
    return OrderParsingPipeline(IntelligentOrderParser())
