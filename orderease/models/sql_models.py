# orderease/models/sql_models.py
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from orderease.core.database import Base
from orderease.core.timeutils import utcnow


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, default=True)
    description = Column(Text, nullable=True)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    platform = Column(String, default="whatsapp")
    contact_id = Column(String, index=True)
    direction = Column(String)  # inbound | outbound
    body = Column(Text)
    timestamp = Column(BigInteger)


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    phone_number = Column(String, primary_key=True)
    stage = Column(String, nullable=False, default="welcome")
    previous_stage = Column(String, nullable=True)
    draft_id = Column(String, nullable=True)
    lines = Column(JSON, default=list)
    customer_info = Column(JSON, nullable=True)
    message_history = Column(JSON, default=list)
    retry_count = Column(Integer, default=0)
    last_activity = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, index=True)
    # Bumped on every save; updates are conditional on the version read
    version = Column(Integer, nullable=False, default=1)


class FinalOrder(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    display_id = Column(String, unique=True, index=True, nullable=False)
    items = Column(JSON, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    customer_name = Column(String)
    customer_phone = Column(String, index=True)
    customer_address = Column(String, nullable=True)
    status = Column(String, default="queued", index=True)
    source = Column(String, default="chat")
    payment_reference = Column(String, index=True, nullable=True)
    time_required = Column(Integer, nullable=True)  # minutes
    preparation_started_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class DraftOrder(Base):
    __tablename__ = "draft_orders"

    id = Column(String, primary_key=True)
    phone_number = Column(String, index=True, nullable=False)
    items = Column(JSON, default=list)
    total_amount = Column(Numeric(10, 2), default=0)
    status = Column(String, default="collecting_items", index=True)
    customer_name = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    customer_address = Column(String, nullable=True)
    payment_correlation_id = Column(String, unique=True, nullable=True)
    payment_reference = Column(String, index=True, nullable=True)
    final_order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
