"""
Tests for the conversation engine, driven message by message.
"""
from decimal import Decimal

from conftest import PHONE, place_order

from orderease.models.schemas import DraftStatus, Stage
from orderease.models.sql_models import DraftOrder, FinalOrder
from orderease.services import replies
from orderease.services.menu_catalog import list_available_items


def _draft(db, draft_id):
    return db.get(DraftOrder, draft_id, populate_existing=True)


class TestWelcomeAndBrowsing:
    """First contact."""

    def test_greeting_gets_welcome(self, manager, sender):
        assert manager.handle_inbound(PHONE, "Hi") == [replies.welcome_message()]
        assert manager.store.get(PHONE).stage == Stage.WELCOME
        assert sender.texts_to(PHONE) == [replies.welcome_message()]

    def test_menu_moves_to_browsing(self, db, manager):
        reply = manager.handle_inbound(PHONE, "menu")
        assert "*Pizza*" in reply[0]
        assert "Brownie" not in reply[0]
        assert manager.store.get(PHONE).stage == Stage.BROWSING

    def test_greeting_words_only(self, manager):
        assert manager.handle_inbound(PHONE, "Good morning!") == [replies.welcome_message()]
        assert manager.store.get(PHONE).stage == Stage.WELCOME

    def test_greeting_followed_by_order(self, manager):
        manager.handle_inbound(PHONE, "hi 2 pizza")
        session = manager.store.get(PHONE)
        assert session.stage == Stage.CONFIRMING_ORDER
        assert [(line.name, line.quantity) for line in session.draft.lines] == [("Pizza", 2)]

    def test_small_talk_in_browsing_gets_hints(self, manager):
        manager.handle_inbound(PHONE, "menu")
        assert manager.handle_inbound(PHONE, "hmm") == [replies.ordering_hint()]
        assert manager.store.get(PHONE).stage == Stage.BROWSING

    def test_order_from_browsing(self, manager):
        manager.handle_inbound(PHONE, "menu")
        manager.handle_inbound(PHONE, "1 garlic bread")
        session = manager.store.get(PHONE)
        assert session.stage == Stage.CONFIRMING_ORDER
        assert [(line.name, line.quantity) for line in session.draft.lines] == [("Garlic Bread", 1)]


class TestOrdering:
    """Turning text into draft lines."""

    def test_pizza_and_coke_scenario(self, db, manager):
        reply = manager.handle_inbound(PHONE, "2 pizza 1 coke")
        session = manager.store.get(PHONE)

        assert session.stage == Stage.CONFIRMING_ORDER
        assert [(line.name, line.quantity, line.unit_price) for line in session.draft.lines] == [
            ("Pizza", 2, Decimal("250")),
            ("Coke", 1, Decimal("50")),
        ]
        assert session.draft.total == Decimal("550")
        assert "Total: ₹550" in reply[0]

        draft = _draft(db, session.draft_id)
        assert draft.status == DraftStatus.COLLECTING_ITEMS.value
        assert draft.total_amount == Decimal("550")

    def test_add_merges_quantities(self, manager):
        manager.handle_inbound(PHONE, "2 pizza")
        manager.handle_inbound(PHONE, "add 1 pizza and 2 coke")
        session = manager.store.get(PHONE)
        assert session.stage == Stage.CONFIRMING_ORDER
        assert [(line.name, line.quantity) for line in session.draft.lines] == [("Pizza", 3), ("Coke", 2)]
        assert session.draft.total == Decimal("850")

    def test_bare_add_asks_what(self, manager):
        manager.handle_inbound(PHONE, "2 pizza")
        assert manager.handle_inbound(PHONE, "add") == [replies.add_what()]

    def test_retry_ceiling_switches_to_simplified_prompt(self, db, manager):
        first = manager.handle_inbound(PHONE, "i want something nice")
        assert first == [replies.items_not_found()]
        assert manager.store.get(PHONE).stage == Stage.ORDERING

        second = manager.handle_inbound(PHONE, "something else")
        assert second == [replies.items_not_found()]
        assert manager.store.get(PHONE).retry_count == 2

        third = manager.handle_inbound(PHONE, "whatever you have")
        assert third == [replies.simplified_order_prompt(list_available_items(db))]
        assert manager.store.get(PHONE).retry_count == 3

    def test_retry_resets_after_success(self, manager):
        manager.handle_inbound(PHONE, "i want something nice")
        manager.handle_inbound(PHONE, "1 coke")
        assert manager.store.get(PHONE).retry_count == 0

    def test_no_cancels_draft(self, db, manager):
        manager.handle_inbound(PHONE, "2 pizza")
        draft_id = manager.store.get(PHONE).draft_id
        assert manager.handle_inbound(PHONE, "no") == [replies.order_cancelled()]

        session = manager.store.get(PHONE)
        assert session.stage == Stage.BROWSING
        assert session.draft.is_empty()
        assert _draft(db, draft_id).status == DraftStatus.CANCELLED.value

    def test_new_draft_supersedes_stale_one(self, db, manager):
        manager.handle_inbound(PHONE, "2 pizza")
        manager.handle_inbound(PHONE, "yes")
        old_id = manager.store.get(PHONE).draft_id
        # The conversation loses track of the draft without cancelling it
        session = manager.store.get(PHONE)
        session.clear_draft()
        session.update_stage(Stage.ORDERING)
        manager.store.save(session)

        manager.handle_inbound(PHONE, "1 coke")
        assert _draft(db, old_id).status == DraftStatus.CANCELLED.value
        open_drafts = db.query(DraftOrder).filter(DraftOrder.status != DraftStatus.CANCELLED.value).all()
        assert len(open_drafts) == 1


class TestDetails:
    """Collecting customer details and issuing the payment link."""

    def test_swapped_details_reprompt(self, manager):
        manager.handle_inbound(PHONE, "2 pizza 1 coke")
        manager.handle_inbound(PHONE, "yes")
        reply = manager.handle_inbound(PHONE, "9876543210, John")

        session = manager.store.get(PHONE)
        assert session.stage == Stage.COLLECTING_DETAILS
        assert session.retry_count == 1
        assert reply[0].startswith("⚠️")
        assert "Name, Phone, Address" in reply[0]

    def test_address_containing_track(self, manager, issuer):
        manager.handle_inbound(PHONE, "2 pizza 1 coke")
        manager.handle_inbound(PHONE, "yes")
        manager.handle_inbound(PHONE, "John Doe, 9876543210, 5 Race Track Road")

        session = manager.store.get(PHONE)
        assert session.stage == Stage.PAYMENT_PENDING
        assert session.customer_info.address == "5 Race Track Road"
        assert len(issuer.issued) == 1

    def test_track_while_collecting_details_is_read_as_details(self, manager):
        manager.handle_inbound(PHONE, "2 pizza")
        manager.handle_inbound(PHONE, "yes")
        reply = manager.handle_inbound(PHONE, "track")
        assert reply[0].startswith("⚠️")
        assert manager.store.get(PHONE).stage == Stage.COLLECTING_DETAILS

    def test_simplified_details_after_three_failures(self, manager):
        manager.handle_inbound(PHONE, "2 pizza")
        manager.handle_inbound(PHONE, "yes")
        manager.handle_inbound(PHONE, "x")
        manager.handle_inbound(PHONE, "y, 1")
        assert manager.handle_inbound(PHONE, "12345") == [replies.simplified_details_prompt()]

    def test_valid_details_issue_link(self, db, manager, issuer):
        session = place_order(manager)

        assert session.stage == Stage.PAYMENT_PENDING
        assert session.customer_info.name == "John Doe"
        draft = _draft(db, session.draft_id)
        assert draft.status == DraftStatus.AWAITING_PAYMENT.value
        assert draft.payment_correlation_id == draft.id
        assert draft.customer_phone == "9876543210"
        assert issuer.issued == [(Decimal("550"), draft.id)]

    def test_provider_failure_keeps_draft(self, db, manager, issuer):
        issuer.fail = True
        manager.handle_inbound(PHONE, "2 pizza 1 coke")
        manager.handle_inbound(PHONE, "yes")
        reply = manager.handle_inbound(PHONE, "John Doe, 9876543210")

        assert reply == [replies.payment_unavailable()]
        session = manager.store.get(PHONE)
        assert session.stage == Stage.COLLECTING_DETAILS
        assert session.draft.total == Decimal("550")
        draft = _draft(db, session.draft_id)
        assert draft.status == DraftStatus.COLLECTING_DETAILS.value

        issuer.fail = False
        reply = manager.handle_inbound(PHONE, "pay")
        assert "rzp.io" in reply[0]
        assert manager.store.get(PHONE).stage == Stage.PAYMENT_PENDING
        assert _draft(db, session.draft_id).payment_correlation_id == session.draft_id


class TestPaymentPending:
    """Waiting for the payment to land."""

    def test_reminder(self, manager):
        place_order(manager)
        assert manager.handle_inbound(PHONE, "hello?") == [replies.payment_reminder()]
        assert manager.store.get(PHONE).stage == Stage.PAYMENT_PENDING

    def test_paid_reply_before_payment(self, manager):
        place_order(manager)
        assert manager.handle_inbound(PHONE, "paid") == [replies.payment_checking()]

    def test_paid_reply_confirms(self, db, manager, issuer, sender):
        session = place_order(manager)
        issuer.mark_paid(session.draft_id)

        assert manager.handle_inbound(PHONE, "I have paid") == []
        assert manager.store.get(PHONE).stage == Stage.ORDER_PLACED
        order = db.query(FinalOrder).one()
        assert sender.texts_to(PHONE)[-1] == replies.payment_success_message(order)

        # A second "paid" starts over from welcome
        manager.handle_inbound(PHONE, "paid")
        assert db.query(FinalOrder).count() == 1
        assert manager.store.get(PHONE).stage == Stage.WELCOME


class TestGlobalCommands:
    """Commands honoured in every stage."""

    def test_quit_resets_everything(self, db, manager):
        manager.handle_inbound(PHONE, "2 pizza 1 coke")
        draft_id = manager.store.get(PHONE).draft_id
        assert manager.handle_inbound(PHONE, "Quit") == [replies.welcome_message()]

        session = manager.store.get(PHONE)
        assert session.stage == Stage.WELCOME
        assert session.draft.is_empty()
        assert session.customer_info is None
        assert _draft(db, draft_id).status == DraftStatus.CANCELLED.value

    def test_quit_with_punctuation(self, db, manager):
        manager.handle_inbound(PHONE, "2 pizza")
        draft_id = manager.store.get(PHONE).draft_id
        assert manager.handle_inbound(PHONE, "Quit!") == [replies.welcome_message()]
        assert manager.store.get(PHONE).stage == Stage.WELCOME
        assert _draft(db, draft_id).status == DraftStatus.CANCELLED.value

        manager.handle_inbound(PHONE, "menu")
        assert manager.handle_inbound(PHONE, "Start over.") == [replies.welcome_message()]
        assert manager.store.get(PHONE).stage == Stage.WELCOME

    def test_word_track_inside_sentence_is_not_a_command(self, manager):
        manager.handle_inbound(PHONE, "menu")
        assert manager.handle_inbound(PHONE, "lost track of time") == [replies.ordering_hint()]
        assert manager.store.get(PHONE).stage == Stage.BROWSING

    def test_quit_leaves_awaiting_draft_payable(self, db, manager):
        session = place_order(manager)
        manager.handle_inbound(PHONE, "start over")
        assert manager.store.get(PHONE).stage == Stage.WELCOME
        assert _draft(db, session.draft_id).status == DraftStatus.AWAITING_PAYMENT.value

    def test_order_id_lookup_keeps_stage(self, db, manager):
        db.add(FinalOrder(display_id="20250115-001", items=[], total_amount=Decimal("100"),
                          status="preparing", time_required=15))
        db.commit()
        manager.handle_inbound(PHONE, "menu")
        reply = manager.handle_inbound(PHONE, "where is 20250115-001?")
        assert "20250115-001" in reply[0]
        assert "15 min" in reply[0]
        assert manager.store.get(PHONE).stage == Stage.BROWSING

    def test_unknown_order_id(self, manager):
        assert manager.handle_inbound(PHONE, "20250115-999") == [replies.order_not_found("20250115-999")]

    def test_track_then_id_returns_to_previous_stage(self, db, manager):
        db.add(FinalOrder(display_id="20250115-002", items=[], total_amount=Decimal("50"), status="ready"))
        db.commit()
        manager.handle_inbound(PHONE, "2 pizza")
        assert manager.handle_inbound(PHONE, "track my order") == [replies.ask_for_order_id()]
        assert manager.store.get(PHONE).stage == Stage.TRACKING
        assert manager.handle_inbound(PHONE, "no idea") == [replies.ask_for_order_id()]

        manager.handle_inbound(PHONE, "20250115-002")
        session = manager.store.get(PHONE)
        assert session.stage == Stage.CONFIRMING_ORDER
        assert session.previous_stage is None
        assert [(line.name, line.quantity) for line in session.draft.lines] == [("Pizza", 2)]


class TestUnitOfWork:
    """Each inbound message is handled exactly once and atomically."""

    def test_duplicate_message_id_ignored(self, manager, sender):
        manager.handle_inbound(PHONE, "2 pizza", message_id="wamid.A")
        assert manager.handle_inbound(PHONE, "2 pizza", message_id="wamid.A") == []
        session = manager.store.get(PHONE)
        assert [(line.name, line.quantity) for line in session.draft.lines] == [("Pizza", 2)]
        assert len(sender.texts_to(PHONE)) == 1

    def test_failure_rolls_back_and_apologises(self, db, manager, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("parser crashed")

        monkeypatch.setattr(manager.pipeline, "parse", explode)
        assert manager.handle_inbound(PHONE, "2 pizza") == [replies.generic_error()]
        assert manager.store.get(PHONE) is None
        assert db.query(DraftOrder).count() == 0

    def test_history_records_both_directions(self, manager):
        manager.handle_inbound(PHONE, "hi", message_id="wamid.B")
        history = manager.store.get(PHONE).message_history
        assert [(entry.direction, entry.message_id) for entry in history] == [
            ("inbound", "wamid.B"),
            ("outbound", None),
        ]
