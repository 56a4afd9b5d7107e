# orderease/services/customer_details.py
import re
from typing import Optional

from orderease.core.errors import ValidationFailed
from orderease.models.schemas import CustomerInfo

LABEL_RE = re.compile(r"^\s*(name|phone|mobile|number|address)\s*[:\-]\s*(.+?)\s*$", re.IGNORECASE)
LABEL_ALIASES = {"mobile": "phone", "number": "phone"}
PHONE_NOISE_RE = re.compile(r"[\s\-\.\(\)]")

MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 15


def validate_phone(phone: Optional[str]) -> str:
    digits = PHONE_NOISE_RE.sub("", phone or "")
    if digits.startswith("+"):
        digits = digits[1:]
    if not digits.isdigit() or not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
        raise ValidationFailed("The phone number should be 10 to 15 digits.")
    return digits


def validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if len(name) < 2 or not any(ch.isalpha() for ch in name):
        raise ValidationFailed("Please start with your name (at least 2 letters).")
    return name


def parse_customer_details(text: str) -> CustomerInfo:
    """
    Read a customer's name, phone and optional address.

    Accepts "Name, Phone, Address" on one line, or labeled lines:
        Name: John Doe
        Phone: 9876543210
        Address: 123 Main Street

    Raises ValidationFailed with a message that can be shown to the customer.
    """
    text = (text or "").strip()
    fields = {}
    for line in text.splitlines():
        match = LABEL_RE.match(line)
        if match:
            key = match.group(1).lower()
            fields[LABEL_ALIASES.get(key, key)] = match.group(2)

    if fields:
        name, phone, address = fields.get("name"), fields.get("phone"), fields.get("address")
    else:
        parts = [part.strip() for part in re.split(r"[,\n]", text) if part.strip()]
        if len(parts) < 2:
            raise ValidationFailed("Please send your name and phone number separated by a comma.")
        name, phone = parts[0], parts[1]
        address = ", ".join(parts[2:]) or None

    return CustomerInfo(name=validate_name(name), phone=validate_phone(phone), address=address)
