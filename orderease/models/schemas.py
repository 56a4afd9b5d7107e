# orderease/models/schemas.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from orderease.core.config import settings
from orderease.core.timeutils import utcnow


# --- Enums ---

class Stage(str, Enum):
    WELCOME = "welcome"
    BROWSING = "browsing"
    ORDERING = "ordering"
    CONFIRMING_ORDER = "confirming_order"
    COLLECTING_DETAILS = "collecting_details"
    PAYMENT_PENDING = "payment_pending"
    ORDER_PLACED = "order_placed"
    TRACKING = "tracking"


class DraftStatus(str, Enum):
    COLLECTING_ITEMS = "collecting_items"
    COLLECTING_DETAILS = "collecting_details"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"


TERMINAL_DRAFT_STATUSES = {DraftStatus.PAID.value, DraftStatus.CANCELLED.value}
# A failed payment can be retried on the same link, so it still counts as open
OPEN_DRAFT_STATUSES = [
    DraftStatus.COLLECTING_ITEMS.value,
    DraftStatus.COLLECTING_DETAILS.value,
    DraftStatus.AWAITING_PAYMENT.value,
    DraftStatus.PAYMENT_FAILED.value,
]


class OrderStatus(str, Enum):
    QUEUED = "queued"
    PREPARING = "preparing"
    READY = "ready"
    PICKED = "picked"


class SourceChannel(str, Enum):
    WEB = "web"
    CHAT = "chat"


# --- Catalog & order lines ---

class MenuItemData(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    name: str
    price: Decimal = Field(..., ge=0)
    available: bool = True
    description: Optional[str] = None


class ParsedItem(BaseModel):
    """Raw item as an external parser reports it, before catalog validation."""
    name: str
    quantity: int = 1


class OrderLine(BaseModel):
    name: str
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class DraftLines(BaseModel):
    lines: List[OrderLine] = []

    @property
    def total(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    def is_empty(self) -> bool:
        return not self.lines


class CustomerInfo(BaseModel):
    name: str
    phone: str
    address: Optional[str] = None


# --- Conversation session ---

class HistoryEntry(BaseModel):
    text: str
    timestamp: datetime
    direction: Literal["inbound", "outbound"]
    message_id: Optional[str] = None


class ConversationSession(BaseModel):
    phone_number: str
    stage: Stage = Stage.WELCOME
    previous_stage: Optional[Stage] = None
    draft: DraftLines = Field(default_factory=DraftLines)
    draft_id: Optional[str] = None
    customer_info: Optional[CustomerInfo] = None
    message_history: List[HistoryEntry] = []
    retry_count: int = 0
    last_activity: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    version: int = 0

    def add_message(self, text: str, direction: str, message_id: str = None, now: datetime = None):
        self.message_history.append(HistoryEntry(
            text=text,
            timestamp=now or utcnow(),
            direction=direction,
            message_id=message_id,
        ))
        # Ring buffer
        if len(self.message_history) > settings.MAX_HISTORY:
            self.message_history = self.message_history[-settings.MAX_HISTORY:]

    def has_seen(self, message_id: Optional[str]) -> bool:
        if not message_id:
            return False
        return any(entry.message_id == message_id for entry in self.message_history)

    def recent_context(self, limit: int = 3) -> str:
        return "\n".join(
            f"{'user' if entry.direction == 'inbound' else 'bot'}: {entry.text}"
            for entry in self.message_history[-limit:]
        )

    def update_stage(self, stage: Stage):
        self.stage = stage
        self.retry_count = 0

    def clear_draft(self):
        self.draft = DraftLines()
        self.draft_id = None

    def reset(self):
        self.stage = Stage.WELCOME
        self.previous_stage = None
        self.clear_draft()
        self.customer_info = None
        self.message_history = []
        self.retry_count = 0


# --- WhatsApp Cloud API webhook ---

class TextObject(BaseModel):
    body: str

class MessageObject(BaseModel):
    from_: str = Field(..., alias="from")
    id: str
    timestamp: Optional[str] = None
    text: Optional[TextObject] = None
    type: str = "text"

class ContactProfile(BaseModel):
    name: Optional[str] = None

class ContactObject(BaseModel):
    profile: Optional[ContactProfile] = None
    wa_id: str

class ValueObject(BaseModel):
    messaging_product: str = "whatsapp"
    metadata: dict = {}
    contacts: List[ContactObject] = []
    # Delivery/read status callbacks carry no messages
    messages: List[MessageObject] = []

class ChangeObject(BaseModel):
    value: ValueObject
    field: str = "messages"

class EntryObject(BaseModel):
    id: str
    changes: List[ChangeObject] = []

class WhatsAppWebhookSchema(BaseModel):
    object: str = "whatsapp_business_account"
    entry: List[EntryObject] = []

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "object": "whatsapp_business_account",
                "entry": [{
                    "id": "123456789",
                    "changes": [{
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"display_phone_number": "1234", "phone_number_id": "1234"},
                            "contacts": [{"profile": {"name": "Test User"}, "wa_id": "919876543210"}],
                            "messages": [{
                                "from": "919876543210",
                                "id": "wamid.HBg...",
                                "timestamp": "17000000",
                                "text": {"body": "2 pizza 1 coke"},
                                "type": "text"
                            }]
                        },
                        "field": "messages"
                    }]
                }]
            }
        },
    )


# --- API payloads ---

class MenuItemOut(BaseModel):
    name: str
    price: Decimal
    description: Optional[str] = None


class FinalOrderOut(BaseModel):
    display_id: str
    items: List[OrderLine]
    total_amount: Decimal
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    status: OrderStatus
    source: SourceChannel
    payment_reference: Optional[str] = None
    time_required: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DraftOrderOut(BaseModel):
    id: str
    phone_number: str
    items: List[OrderLine]
    total_amount: Decimal
    status: DraftStatus
    customer_name: Optional[str] = None
    payment_correlation_id: Optional[str] = None
    payment_reference: Optional[str] = None
    final_order_id: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SessionSummary(BaseModel):
    phone_number: str
    stage: Stage
    draft_total: Decimal
    item_count: int
    message_count: int
    last_activity: Optional[datetime] = None


class OrderStatusUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    time_required: Optional[int] = Field(None, ge=0)
    notify_customer: bool = True


class ClearSessionRequest(BaseModel):
    phone_number: str


class ParseRequest(BaseModel):
    message: str
