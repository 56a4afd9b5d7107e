import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ORDER_PARSER"] = "fallback"
os.environ["GROQ_API_KEY"] = ""
os.environ["META_API_TOKEN"] = ""
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"
os.environ["BACKEND_URL"] = "https://api.orderease.test"
os.environ["FRONTEND_URL"] = "https://orderease.test"

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from orderease.api.deps import get_issuer, get_pipeline, get_sender  # noqa: E402
from orderease.core.database import Base, get_db, get_session_factory  # noqa: E402
from orderease.core.errors import PaymentProviderError  # noqa: E402
from orderease.core.locks import KeyedLocks  # noqa: E402
from orderease.main import app  # noqa: E402
from orderease.models.schemas import MenuItemData  # noqa: E402
from orderease.models.sql_models import MenuItem  # noqa: E402
from orderease.services.chat_manager import ChatManager  # noqa: E402
from orderease.services.order_parsing import OrderParsingPipeline  # noqa: E402
from orderease.services.payment_links import LinkStatus  # noqa: E402
from orderease.services.session_store import SessionStore  # noqa: E402
from orderease.services.transport import MessageSender  # noqa: E402

PHONE = "919876543210"


class RecordingSender(MessageSender):
    """Keeps every outbound message instead of calling WhatsApp."""

    def __init__(self):
        self.sent = []

    def send(self, phone_number, text):
        self.sent.append((phone_number, text))
        return True

    def texts_to(self, phone_number):
        return [text for phone, text in self.sent if phone == phone_number]


class FakeIssuer:
    """Payment link issuer double; `statuses` feeds the manual probe."""

    def __init__(self):
        self.issued = []
        self.statuses = {}
        self.fail = False

    def issue(self, amount, correlation_id, customer=None, phone_number=None):
        if self.fail:
            raise PaymentProviderError("provider down")
        self.issued.append((amount, correlation_id))
        return f"https://rzp.io/l/{correlation_id[:8]}"

    def fetch_status(self, correlation_id):
        return self.statuses.get(correlation_id)

    def mark_paid(self, correlation_id, payment_id="pay_TEST123"):
        self.statuses[correlation_id] = LinkStatus(
            link_id="plink_TEST", status="paid", payment_id=payment_id,
        )


@pytest.fixture
def menu():
    return [
        MenuItemData(name="Pizza", price=Decimal("250")),
        MenuItemData(name="Coke", price=Decimal("50")),
    ]


@pytest.fixture
def session_factory():
    """In-memory SQLite shared by every session (StaticPool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    session.add(MenuItem(name="Pizza", price=Decimal("250"), is_available=True))
    session.add(MenuItem(name="Coke", price=Decimal("50"), is_available=True))
    session.add(MenuItem(name="Garlic Bread", price=Decimal("120"), is_available=True,
                         description="Toasted with herb butter"))
    session.add(MenuItem(name="Brownie", price=Decimal("90"), is_available=False))
    session.commit()
    yield session
    session.close()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def issuer():
    return FakeIssuer()


@pytest.fixture
def manager(db, sender, issuer):
    return ChatManager(
        db, sender,
        pipeline=OrderParsingPipeline(),
        issuer=issuer,
        store=SessionStore(db, locks=KeyedLocks()),
    )


@pytest.fixture
def client(db, session_factory, sender, issuer):
    """TestClient wired to the in-memory database and the test doubles."""

    def override_get_db():
        db_sess = session_factory()
        try:
            yield db_sess
        finally:
            db_sess.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_sender] = lambda: sender
    app.dependency_overrides[get_issuer] = lambda: issuer
    app.dependency_overrides[get_pipeline] = lambda: OrderParsingPipeline()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def place_order(manager, phone=PHONE):
    """Drive a conversation up to payment_pending and return the session."""
    manager.handle_inbound(phone, "2 pizza 1 coke")
    manager.handle_inbound(phone, "yes")
    manager.handle_inbound(phone, "John Doe, 9876543210")
    return manager.store.get(phone)
