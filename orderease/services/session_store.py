# orderease/services/session_store.py
"""
Conversation session store.

One row per phone number in `chat_sessions`. A unit of work for a phone
number runs under that number's lock:

    with store.transaction(phone_number) as session:
        session.add_message(text, "inbound")
        ...  # mutate freely, flush related rows on the same db session

On a clean exit the session is written with a version check and the
database transaction is committed; on an exception everything is rolled
back and nothing is saved.

Sessions expire `SESSION_TTL_MINUTES` after their last save. An expired row
is treated as absent: loading it hands back a fresh welcome-stage session.
The version column makes saves compare-and-swap, so two workers that loaded
the same version cannot both write: the loser gets StaleSessionError.
"""
import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import FlushError

from orderease.core.config import settings
from orderease.core.errors import StaleSessionError
from orderease.core.locks import KeyedLocks, session_locks
from orderease.core.timeutils import utcnow
from orderease.models.schemas import ConversationSession, DraftLines, Stage
from orderease.models.sql_models import ChatSession

logger = logging.getLogger(__name__)


def _from_row(row: ChatSession) -> ConversationSession:
    return ConversationSession(
        phone_number=row.phone_number,
        stage=Stage(row.stage),
        previous_stage=Stage(row.previous_stage) if row.previous_stage else None,
        draft=DraftLines(lines=row.lines or []),
        draft_id=row.draft_id,
        customer_info=row.customer_info,
        message_history=row.message_history or [],
        retry_count=row.retry_count or 0,
        last_activity=row.last_activity,
        expires_at=row.expires_at,
        version=row.version,
    )


def _row_values(session: ConversationSession) -> dict:
    return {
        "stage": session.stage.value,
        "previous_stage": session.previous_stage.value if session.previous_stage else None,
        "draft_id": session.draft_id,
        "lines": [line.model_dump(mode="json") for line in session.draft.lines],
        "customer_info": session.customer_info.model_dump() if session.customer_info else None,
        "message_history": [entry.model_dump(mode="json") for entry in session.message_history],
        "retry_count": session.retry_count,
        "last_activity": session.last_activity,
        "expires_at": session.expires_at,
    }


class SessionStore:
    def __init__(self, db: Session, locks: KeyedLocks = session_locks, clock: Callable = utcnow):
        self.db = db
        self.locks = locks
        self.clock = clock

    def _is_expired(self, row: ChatSession) -> bool:
        return row.expires_at is not None and row.expires_at <= self.clock()

    def get(self, phone_number: str) -> Optional[ConversationSession]:
        """The active session for a phone number, or None."""
        row = self.db.get(ChatSession, phone_number, populate_existing=True)
        if row is None or self._is_expired(row):
            return None
        return _from_row(row)

    def load(self, phone_number: str) -> ConversationSession:
        """The active session, or a fresh one if there is none (an expired row is discarded)."""
        row = self.db.get(ChatSession, phone_number, populate_existing=True)
        if row is not None and self._is_expired(row):
            logger.info("Session for %s expired at %s", phone_number, row.expires_at)
            self.db.delete(row)
            self.db.flush()
            row = None
        if row is None:
            return ConversationSession(phone_number=phone_number)
        return _from_row(row)

    def save(self, session: ConversationSession, commit: bool = True):
        now = self.clock()
        session.last_activity = now
        session.expires_at = now + timedelta(minutes=settings.SESSION_TTL_MINUTES)
        values = _row_values(session)

        if session.version == 0:
            self.db.add(ChatSession(phone_number=session.phone_number, version=1, **values))
            try:
                self.db.flush()
            except (IntegrityError, FlushError) as e:
                self.db.rollback()
                raise StaleSessionError(f"Session for {session.phone_number} was created concurrently") from e
        else:
            result = self.db.execute(
                update(ChatSession)
                .where(
                    ChatSession.phone_number == session.phone_number,
                    ChatSession.version == session.version,
                )
                .values(version=session.version + 1, **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                raise StaleSessionError(f"Session for {session.phone_number} changed since version {session.version}")

        if commit:
            self.db.commit()
        session.version += 1

    @contextmanager
    def transaction(self, phone_number: str):
        with self.locks.hold(phone_number):
            try:
                session = self.load(phone_number)
                yield session
                self.save(session)
            except Exception:
                self.db.rollback()
                raise

    def update_if_active(self, phone_number: str, mutate: Callable[[ConversationSession], bool]) -> bool:
        """
        Apply `mutate` to an existing, unexpired session and save it.

        `mutate` returns False to leave the session untouched. Returns whether
        a session was saved.
        """
        with self.locks.hold(phone_number):
            session = self.get(phone_number)
            if session is None:
                return False
            if not mutate(session):
                return False
            try:
                self.save(session)
            except Exception:
                self.db.rollback()
                raise
            return True

    def reset(self, phone_number: str) -> Optional[ConversationSession]:
        """Put an existing session back to the welcome stage."""
        with self.locks.hold(phone_number):
            session = self.get(phone_number)
            if session is None:
                return None
            session.reset()
            self.save(session)
            return session

    def list_active(self, limit: int = 50) -> List[ConversationSession]:
        rows = (
            self.db.query(ChatSession)
            .filter(ChatSession.expires_at > self.clock())
            .order_by(ChatSession.last_activity.desc())
            .limit(limit)
            .all()
        )
        return [_from_row(row) for row in rows]

    def purge_expired(self) -> int:
        count = (
            self.db.query(ChatSession)
            .filter(ChatSession.expires_at <= self.clock())
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if count:
            logger.info("Purged %d expired session(s)", count)
        return count
