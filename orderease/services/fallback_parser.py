# orderease/services/fallback_parser.py
"""
Deterministic order parsing (no LLM).

Scans the message for quantity + dish-name patterns such as "2 pizza 1 coke",
and when nothing matches that way, looks for a single bare dish name
("i want burger") with quantity 1.

Known ambiguity: when several dishes could match the same words, the first
one in catalog order wins, not the closest one.
"""
import logging
import re
from typing import List, Optional

from orderease.models.schemas import MenuItemData, OrderLine

logger = logging.getLogger(__name__)

# Words that appear in many dish names and say little about which dish is meant
GENERIC_WORDS_RE = re.compile(r"pizza|burger|coke|drink")

QUANTITY_RE = re.compile(r"^(\d+)x?$")

WORD_TO_NUM = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}

MAX_WINDOW = 3
# Shorter fragments ("a", "of") are contained in too many dish names
MIN_FRAGMENT = 3

_PUNCT_STRIP = ".,!?;:()\"'"


def tokenize(text: str) -> List[str]:
    tokens = []
    for raw in text.lower().split():
        token = raw.strip(_PUNCT_STRIP)
        if token:
            tokens.append(token)
    return tokens


def _quantity(token: str) -> Optional[int]:
    match = QUANTITY_RE.match(token)
    if match:
        value = int(match.group(1))
        return value if value > 0 else None
    return WORD_TO_NUM.get(token)


def _contains(haystack: str, needle: str) -> bool:
    return len(needle) >= MIN_FRAGMENT and needle in haystack


def fuzzy_match(dish_name: str, user_text: str) -> bool:
    """Compare what is left once generic words are removed from both sides."""
    clean_dish = GENERIC_WORDS_RE.sub("", dish_name).strip()
    clean_input = GENERIC_WORDS_RE.sub("", user_text).strip()
    if clean_dish and clean_input:
        return _contains(clean_input, clean_dish) or _contains(clean_dish, clean_input)
    return False


def _window_matches(dish_name: str, window: str) -> bool:
    singular = window[:-1] if window.endswith("s") else window
    return (
        _contains(dish_name, window)
        or _contains(window, dish_name)
        or _contains(dish_name, singular)
        or fuzzy_match(dish_name, window)
    )


def _find_dish(menu: List[MenuItemData], window: str) -> Optional[MenuItemData]:
    for dish in menu:
        if _window_matches(dish.name.lower(), window):
            return dish
    return None


def _add(lines: List[OrderLine], dish: MenuItemData, quantity: int):
    for line in lines:
        if line.name == dish.name:
            line.quantity += quantity
            return
    lines.append(OrderLine(name=dish.name, quantity=quantity, unit_price=dish.price))


def parse_fallback(text: str, menu: List[MenuItemData]) -> List[OrderLine]:
    menu = [dish for dish in menu if dish.available]
    if not menu or not text:
        return []

    tokens = tokenize(text)
    lines: List[OrderLine] = []

    for i, token in enumerate(tokens):
        quantity = _quantity(token)
        if quantity is None:
            continue
        for j in range(i + 1, min(i + 1 + MAX_WINDOW, len(tokens))):
            window = " ".join(tokens[i + 1:j + 1])
            dish = _find_dish(menu, window)
            if dish:
                _add(lines, dish, quantity)
                break

    if not lines:
        message = " ".join(tokens)
        for dish in menu:
            dish_lower = dish.name.lower()
            singular = dish_lower[:-1] if dish_lower.endswith("s") else dish_lower
            if (
                _contains(message, dish_lower)
                or _contains(message, singular)
                or fuzzy_match(dish_lower, message)
            ):
                # Only the first dish, guessing several would be noise
                _add(lines, dish, 1)
                break

    logger.debug("Fallback parser found %d line(s) in %r", len(lines), text)
    return lines
