# orderease/services/chat_manager.py
"""
The conversation engine.

`ChatManager.handle_inbound` turns one inbound WhatsApp message into the
replies for it. The customer's session decides how the text is read:

    welcome -> browsing -> ordering -> confirming_order -> collecting_details
        -> payment_pending -> order_placed

plus `tracking`, entered by a message starting with "track" from any stage
but `collecting_details`. "quit" resets from any stage and an order id
(20250101-001) is answered from any stage.

Each message is one unit of work: the session and any draft changes are
committed together, and replies are only sent after that commit.
"""
import logging
import re
from typing import Callable, List, Optional, Set

from sqlalchemy.orm import Session

from orderease.core.config import settings
from orderease.core.errors import DraftNotFound, PaymentProviderError, StaleSessionError, ValidationFailed
from orderease.models.schemas import ConversationSession, DraftLines, DraftStatus, MenuItemData, Stage
from orderease.services import drafts, order_store, replies
from orderease.services.customer_details import parse_customer_details
from orderease.services.fallback_parser import tokenize
from orderease.services.menu_catalog import list_available_items
from orderease.services.order_parsing import OrderParsingPipeline, build_pipeline, merge_lines
from orderease.services.payment_links import PaymentLinkIssuer
from orderease.services.reconciliation import PaymentReconciler, ReconcileOutcome
from orderease.services.session_store import SessionStore
from orderease.services.transport import MessageSender, log_message

logger = logging.getLogger(__name__)

ORDER_ID_RE = re.compile(r"\b(\d{8}-\d{3})\b")
# The command itself, not the word inside an address
TRACK_RE = re.compile(r"^track\b")

QUIT_COMMANDS = {"quit", "reset", "start over", "restart"}
GREETING_WORDS = {"hi", "hii", "hello", "hey", "hola", "namaste", "start", "good", "morning", "evening", "there"}
MENU_WORDS = {"menu", "list"}
YES_WORDS = {"yes", "y", "yeah", "yep", "confirm", "ok", "okay", "sure"}
NO_WORDS = {"no", "n", "nope", "cancel"}
PAID_WORDS = {"paid", "payment", "status", "done"}
RETRY_PAYMENT_WORDS = {"pay", "retry"}
ORDER_KEYWORDS = {"want", "order", "get", "give", "like", "need", "add"}


def _words(text: str) -> Set[str]:
    return set(tokenize(text))


def is_greeting(text: str) -> bool:
    """A message made only of greeting words ("hi", "good morning"), nothing to order."""
    words = tokenize(text)
    return bool(words) and all(word in GREETING_WORDS for word in words)


def looks_like_order(text: str, menu: List[MenuItemData]) -> bool:
    if any(ch.isdigit() for ch in text):
        return True
    if _words(text) & ORDER_KEYWORDS:
        return True
    for dish in menu:
        name = dish.name.lower()
        if name in text or (name.endswith("s") and name[:-1] in text):
            return True
    return False


class ChatManager:
    def __init__(self, db: Session, sender: MessageSender, pipeline: OrderParsingPipeline = None,
                 issuer: PaymentLinkIssuer = None, reconciler: PaymentReconciler = None,
                 store: SessionStore = None, transcript: Callable[[], Session] = None):
        self.db = db
        self.sender = sender
        self.pipeline = pipeline or build_pipeline()
        self.issuer = issuer or PaymentLinkIssuer()
        self.reconciler = reconciler or PaymentReconciler(db, sender, self.issuer)
        self.store = store or SessionStore(db)
        # Session factory for the message log; None keeps no transcript
        self.transcript = transcript
        self._menu: Optional[List[MenuItemData]] = None

    def handle_inbound(self, phone_number: str, text: str, message_id: str = None) -> List[str]:
        """Process one inbound message and send the replies. Returns what was sent."""
        raw = (text or "").strip()
        self._menu = None
        outbound: List[str] = []
        accepted = False
        try:
            with self.store.transaction(phone_number) as session:
                if session.has_seen(message_id):
                    logger.info("Ignoring duplicate message %s from %s", message_id, phone_number)
                    return []
                accepted = True
                session.add_message(raw, "inbound", message_id)
                stage_before = session.stage
                outbound = self._route(session, raw.lower(), raw)
                for reply in outbound:
                    session.add_message(reply, "outbound")
                logger.info("%s: %s -> %s", phone_number, stage_before.value, session.stage.value)
        except StaleSessionError as e:
            logger.warning("Concurrent update for %s: %s", phone_number, e)
            outbound = [replies.busy_message()]
        except Exception:
            logger.exception("Failed to handle message from %s", phone_number)
            outbound = [replies.generic_error()]

        if accepted and self.transcript is not None:
            log_message(phone_number, "inbound", raw, session_factory=self.transcript)
        for reply in outbound:
            self.sender.send(phone_number, reply)
        return outbound

    # --- Routing ---

    def _route(self, session: ConversationSession, text: str, raw: str) -> List[str]:
        if " ".join(tokenize(text)) in QUIT_COMMANDS:
            return self._quit(session)

        if session.stage == Stage.ORDER_PLACED:
            history = session.message_history
            session.reset()
            session.message_history = history

        match = ORDER_ID_RE.search(text)
        if match:
            return self._track(session, match.group(1))

        if TRACK_RE.match(text) and session.stage not in (Stage.TRACKING, Stage.COLLECTING_DETAILS):
            session.previous_stage = session.stage
            session.update_stage(Stage.TRACKING)
            return [replies.ask_for_order_id()]

        handlers = {
            Stage.WELCOME: self._on_welcome,
            Stage.BROWSING: self._on_browsing,
            Stage.ORDERING: self._on_ordering,
            Stage.CONFIRMING_ORDER: self._on_confirming,
            Stage.COLLECTING_DETAILS: self._on_details,
            Stage.PAYMENT_PENDING: self._on_payment_pending,
            Stage.TRACKING: self._on_tracking,
        }
        return handlers[session.stage](session, text, raw)

    def _menu_items(self) -> List[MenuItemData]:
        if self._menu is None:
            self._menu = list_available_items(self.db)
        return self._menu

    def _quit(self, session: ConversationSession) -> List[str]:
        drafts.cancel_editable(self.db, session.draft_id)
        session.reset()
        return [replies.welcome_message()]

    def _track(self, session: ConversationSession, display_id: str) -> List[str]:
        order = order_store.find_by_display_id(self.db, display_id)
        if session.stage == Stage.TRACKING:
            session.update_stage(session.previous_stage or Stage.WELCOME)
            session.previous_stage = None
        if order is None:
            return [replies.order_not_found(display_id)]
        return [replies.order_status_message(order)]

    def _send_menu(self, session: ConversationSession) -> List[str]:
        menu = self._menu_items()
        if not menu:
            return [replies.empty_menu_message()]
        if session.stage == Stage.WELCOME:
            session.update_stage(Stage.BROWSING)
        return [replies.menu_message(menu)]

    # --- Stage handlers ---

    def _on_welcome(self, session: ConversationSession, text: str, raw: str) -> List[str]:
        if _words(text) & MENU_WORDS:
            return self._send_menu(session)
        if is_greeting(text):
            return [replies.welcome_message()]
        if looks_like_order(text, self._menu_items()):
            session.update_stage(Stage.ORDERING)
            return self._on_ordering(session, text, raw)
        return [replies.welcome_message()]

    def _on_browsing(self, session: ConversationSession, text: str, raw: str) -> List[str]:
        if _words(text) & MENU_WORDS:
            return self._send_menu(session)
        if looks_like_order(text, self._menu_items()):
            session.update_stage(Stage.ORDERING)
            return self._on_ordering(session, text, raw)
        return [replies.ordering_hint()]

    def _on_ordering(self, session: ConversationSession, text: str, raw: str) -> List[str]:
        if "menu" in _words(text):
            return self._send_menu(session)
        lines = self.pipeline.parse(text, self._menu_items(), session.recent_context())
        if not lines:
            return self._parse_failed(session)
        return self._add_lines(session, lines)

    def _parse_failed(self, session: ConversationSession) -> List[str]:
        session.retry_count += 1
        if session.retry_count >= settings.MAX_RETRIES:
            return [replies.simplified_order_prompt(self._menu_items())]
        return [replies.items_not_found()]

    def _add_lines(self, session: ConversationSession, lines) -> List[str]:
        session.draft = DraftLines(lines=merge_lines(session.draft.lines, lines))
        draft = drafts.save_lines(self.db, session.phone_number, session.draft_id, session.draft.lines)
        session.draft_id = draft.id
        session.update_stage(Stage.CONFIRMING_ORDER)
        return [replies.order_summary(session.draft)]

    def _on_confirming(self, session: ConversationSession, text: str, raw: str) -> List[str]:
        if text.startswith("add"):
            extra = text[3:].strip()
            if not extra:
                return [replies.add_what()]
            lines = self.pipeline.parse(extra, self._menu_items(), session.recent_context())
            if not lines:
                return self._parse_failed(session)
            return self._add_lines(session, lines)

        words = _words(text)
        if words & YES_WORDS:
            drafts.mark(drafts.get_draft(self.db, session.draft_id), DraftStatus.COLLECTING_DETAILS)
            session.update_stage(Stage.COLLECTING_DETAILS)
            return [replies.ask_customer_details()]
        if words & NO_WORDS:
            drafts.cancel_editable(self.db, session.draft_id)
            session.clear_draft()
            session.update_stage(Stage.BROWSING)
            return [replies.order_cancelled()]
        return [replies.confirm_options()]

    def _on_details(self, session: ConversationSession, text: str, raw: str) -> List[str]:
        if session.customer_info and _words(text) & RETRY_PAYMENT_WORDS:
            return self._issue_payment(session)
        try:
            customer = parse_customer_details(raw)
        except ValidationFailed as e:
            session.retry_count += 1
            logger.info("Invalid details from %s (attempt %d): %s", session.phone_number, session.retry_count, e.reason)
            if session.retry_count >= settings.MAX_RETRIES:
                return [replies.simplified_details_prompt()]
            return [replies.details_invalid(e.reason)]
        session.customer_info = customer
        return self._issue_payment(session)

    def _issue_payment(self, session: ConversationSession) -> List[str]:
        draft = drafts.get_draft(self.db, session.draft_id)
        if draft is None or session.draft.is_empty():
            session.clear_draft()
            session.update_stage(Stage.WELCOME)
            return [replies.no_pending_order()]

        drafts.attach_customer(draft, session.customer_info)
        correlation_id = drafts.assign_correlation_id(draft)
        drafts.mark(draft, DraftStatus.AWAITING_PAYMENT)
        # The draft must be claimable before a link exists that a webhook could report on
        self.db.commit()

        try:
            url = self.issuer.issue(
                session.draft.total, correlation_id,
                customer=session.customer_info, phone_number=session.phone_number,
            )
        except PaymentProviderError as e:
            logger.warning("Payment link for draft %s failed: %s", draft.id, e)
            drafts.mark(drafts.get_draft(self.db, draft.id), DraftStatus.COLLECTING_DETAILS)
            return [replies.payment_unavailable()]

        session.update_stage(Stage.PAYMENT_PENDING)
        return [replies.payment_link_message(session.customer_info, session.draft, url)]

    def _on_payment_pending(self, session: ConversationSession, text: str, raw: str) -> List[str]:
        if not _words(text) & PAID_WORDS:
            return [replies.payment_reminder()]
        try:
            result = self.reconciler.probe(session.draft_id, session=session)
        except (DraftNotFound, PaymentProviderError) as e:
            logger.warning("Payment probe for %s failed: %s", session.phone_number, e)
            return [replies.payment_checking()]

        if result.outcome == ReconcileOutcome.CONFIRMED:
            # The reconciler already told the customer and moved the session on
            return []
        if result.outcome == ReconcileOutcome.ALREADY_SETTLED and result.display_id:
            order = order_store.find_by_display_id(self.db, result.display_id)
            session.update_stage(Stage.ORDER_PLACED)
            session.clear_draft()
            return [replies.order_status_message(order)]
        return [replies.payment_checking()]

    def _on_tracking(self, session: ConversationSession, text: str, raw: str) -> List[str]:
        return [replies.ask_for_order_id()]
