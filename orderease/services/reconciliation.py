# orderease/services/reconciliation.py
"""
Payment reconciliation.

Three signals can report that a draft was paid: the provider webhook, the
browser redirect after checkout, and a manual probe (admin tooling or the
customer replying "paid"). They may arrive in any order, any number of
times. Every path funnels into `confirm`/`fail`, which claim the draft with
a conditional update, so exactly one of them creates the FinalOrder and
notifies the customer. The others see a settled draft and do nothing.
"""
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orderease.core.errors import DraftNotFound, OrderEaseError, PaymentProviderError
from orderease.core.locks import KeyedLocks, draft_locks
from orderease.core.timeutils import utcnow
from orderease.models.schemas import TERMINAL_DRAFT_STATUSES, ConversationSession, DraftStatus, Stage
from orderease.models.sql_models import DraftOrder, FinalOrder
from orderease.services import drafts, order_store, replies
from orderease.services.payment_events import PaymentEvent, PaymentFailed, UnknownEvent
from orderease.services.payment_links import PaymentLinkIssuer
from orderease.services.session_store import SessionStore
from orderease.services.transport import MessageSender

logger = logging.getLogger(__name__)

MAX_CONFIRM_ATTEMPTS = 3
CLAIMABLE_STATUSES = [DraftStatus.AWAITING_PAYMENT.value, DraftStatus.PAYMENT_FAILED.value]


class ReconcileOutcome(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    ALREADY_SETTLED = "already_settled"
    NOT_PAID = "not_paid"
    IGNORED = "ignored"


class ReconcileResult(BaseModel):
    outcome: ReconcileOutcome
    draft_id: Optional[str] = None
    display_id: Optional[str] = None


class RedirectResult(BaseModel):
    display_id: Optional[str] = None
    error: Optional[str] = None  # payment_info_missing | order_not_found | processing_error


class PaymentReconciler:
    def __init__(self, db: Session, sender: MessageSender, issuer: PaymentLinkIssuer = None,
                 locks: KeyedLocks = draft_locks, clock=utcnow):
        self.db = db
        self.sender = sender
        self.issuer = issuer
        self.locks = locks
        self.clock = clock

    # --- Resolution ---

    def resolve(self, correlation_id: str = None, phone_number: str = None) -> DraftOrder:
        draft = drafts.find_by_correlation_id(self.db, correlation_id)
        if draft is None and phone_number:
            draft = drafts.find_latest_awaiting(self.db, phone_number)
            if draft is not None:
                logger.warning(
                    "No draft for correlation id %r, using latest awaiting draft %s of %s",
                    correlation_id, draft.id, phone_number,
                )
        if draft is None:
            raise DraftNotFound(f"No draft for correlation id {correlation_id!r} / phone {phone_number!r}")
        return draft

    def _settled(self, draft: DraftOrder) -> ReconcileResult:
        display_id = None
        if draft.final_order_id:
            order = self.db.get(FinalOrder, draft.final_order_id)
            display_id = order.display_id if order else None
        return ReconcileResult(outcome=ReconcileOutcome.ALREADY_SETTLED, draft_id=draft.id, display_id=display_id)

    # --- Signals ---

    def handle_event(self, event: PaymentEvent) -> ReconcileResult:
        """Apply a verified webhook event. Raises DraftNotFound if no draft matches."""
        if isinstance(event, UnknownEvent):
            logger.info("Ignoring payment event %r", event.event_name)
            return ReconcileResult(outcome=ReconcileOutcome.IGNORED)

        draft = self.resolve(event.correlation_id, event.phone_number)
        if isinstance(event, PaymentFailed):
            return self.fail(draft.id, event.reason)
        return self.confirm(draft.id, event.payment_reference)

    def probe(self, key: str, session: ConversationSession = None) -> ReconcileResult:
        """Ask the provider whether the draft behind `key` (draft or correlation id) was paid."""
        draft = self.resolve(correlation_id=key)
        if draft.status in TERMINAL_DRAFT_STATUSES:
            return self._settled(draft)
        if draft.status not in CLAIMABLE_STATUSES or self.issuer is None:
            return ReconcileResult(outcome=ReconcileOutcome.NOT_PAID, draft_id=draft.id)

        status = self.issuer.fetch_status(draft.payment_correlation_id or draft.id)
        if status is None or not status.is_paid:
            logger.info("Probe for draft %s: provider reports %s", draft.id, status.status if status else "no link")
            return ReconcileResult(outcome=ReconcileOutcome.NOT_PAID, draft_id=draft.id)
        return self.confirm(draft.id, status.payment_id or status.link_id, session=session)

    def handle_redirect(self, payment_ref: Optional[str], correlation_hint: Optional[str] = None,
                        link_status: Optional[str] = None) -> RedirectResult:
        if not payment_ref:
            return RedirectResult(error="payment_info_missing")
        try:
            draft = drafts.find_by_correlation_id(self.db, correlation_hint)
            if draft is None:
                draft = drafts.find_by_payment_reference(self.db, payment_ref)
            if draft is None:
                logger.warning("Redirect for payment %s matched no draft", payment_ref)
                return RedirectResult(error="order_not_found")

            if draft.status != DraftStatus.PAID.value:
                if link_status and link_status != "paid":
                    logger.info("Redirect for draft %s reports link status %s", draft.id, link_status)
                    return RedirectResult(error="processing_error")
                self.probe(draft.id)

            result = self._settled(drafts.get_draft(self.db, draft.id))
            if result.display_id:
                return RedirectResult(display_id=result.display_id)
            return RedirectResult(error="processing_error")
        except (OrderEaseError, IntegrityError) as e:
            logger.warning("Redirect for payment %s could not be reconciled: %s", payment_ref, e)
            return RedirectResult(error="processing_error")

    # --- Transitions ---

    def confirm(self, draft_id: str, payment_reference: Optional[str],
                session: ConversationSession = None) -> ReconcileResult:
        with self.locks.hold(draft_id):
            for attempt in range(1, MAX_CONFIRM_ATTEMPTS + 1):
                try:
                    order = self._claim_and_create(draft_id, payment_reference)
                    break
                except IntegrityError:
                    self.db.rollback()
                    if attempt == MAX_CONFIRM_ATTEMPTS:
                        raise
                    logger.warning("Display id collision confirming draft %s, retrying", draft_id)
                except Exception:
                    self.db.rollback()
                    raise
            orphaned = order is None and self._record_cancelled_payment(draft_id, payment_reference)

        draft = drafts.get_draft(self.db, draft_id)
        if orphaned:
            self.sender.send(draft.phone_number, replies.payment_for_cancelled_order())
        if order is None:
            return self._settled(draft)

        self.sender.send(draft.phone_number, replies.payment_success_message(order))
        self._advance_session(draft.phone_number, draft_id, session)
        return ReconcileResult(outcome=ReconcileOutcome.CONFIRMED, draft_id=draft_id, display_id=order.display_id)

    def _claim_and_create(self, draft_id: str, payment_reference: Optional[str]) -> Optional[FinalOrder]:
        now = self.clock()
        draft = drafts.get_draft(self.db, draft_id)
        if draft is None:
            raise DraftNotFound(f"Draft {draft_id} disappeared")
        if draft.status in TERMINAL_DRAFT_STATUSES:
            return None

        claimed = self.db.execute(
            update(DraftOrder)
            .where(DraftOrder.id == draft_id, DraftOrder.status.in_(CLAIMABLE_STATUSES))
            .values(status=DraftStatus.PAID.value, payment_reference=payment_reference, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            self.db.rollback()
            logger.info("Draft %s is %s, not claimable", draft_id, draft.status)
            return None

        order = order_store.create_final_order(self.db, draft, payment_reference, now)
        draft.final_order_id = order.id
        self.db.commit()
        self.db.refresh(order)
        return order

    def _record_cancelled_payment(self, draft_id: str, payment_reference: Optional[str]) -> bool:
        """Stamp the first payment seen on a cancelled draft. True only for that first one."""
        recorded = self.db.execute(
            update(DraftOrder)
            .where(
                DraftOrder.id == draft_id,
                DraftOrder.status == DraftStatus.CANCELLED.value,
                DraftOrder.payment_reference.is_(None),
            )
            .values(payment_reference=payment_reference or draft_id, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if recorded.rowcount != 1:
            return False
        logger.warning("Payment %s arrived for cancelled draft %s, refund needed", payment_reference, draft_id)
        return True

    def fail(self, draft_id: str, reason: str = None) -> ReconcileResult:
        with self.locks.hold(draft_id):
            marked = self.db.execute(
                update(DraftOrder)
                .where(DraftOrder.id == draft_id, DraftOrder.status == DraftStatus.AWAITING_PAYMENT.value)
                .values(status=DraftStatus.PAYMENT_FAILED.value, updated_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            self.db.commit()

        if marked.rowcount != 1:
            return self._settled(drafts.get_draft(self.db, draft_id))

        draft = drafts.get_draft(self.db, draft_id)
        logger.info("Payment failed for draft %s: %s", draft_id, reason)
        self.sender.send(draft.phone_number, replies.payment_failure_message())
        return ReconcileResult(outcome=ReconcileOutcome.FAILED, draft_id=draft_id)

    def _advance_session(self, phone_number: str, draft_id: str, session: ConversationSession = None):
        def mark_placed(current: ConversationSession) -> bool:
            # A customer who moved on to a newer order keeps that conversation
            if current.draft_id != draft_id:
                return False
            current.update_stage(Stage.ORDER_PLACED)
            current.clear_draft()
            return True

        if session is not None and session.phone_number == phone_number:
            mark_placed(session)
            return
        try:
            SessionStore(self.db).update_if_active(phone_number, mark_placed)
        except OrderEaseError as e:
            logger.warning("Could not advance session for %s: %s", phone_number, e)


def reconcile_event(session_factory, sender: MessageSender, event: PaymentEvent):
    """Background entry point for webhook events, on its own db session. Never raises."""
    db = session_factory()
    try:
        result = PaymentReconciler(db, sender, PaymentLinkIssuer()).handle_event(event)
        logger.info("Payment event %s -> %s", event.kind, result.outcome.value)
    except DraftNotFound as e:
        logger.warning("Payment event %s: %s", event.kind, e)
    except (PaymentProviderError, IntegrityError) as e:
        logger.error("Payment event %s could not be reconciled: %s", event.kind, e)
    except Exception:
        logger.exception("Unexpected error reconciling payment event %s", event.kind)
    finally:
        db.close()
