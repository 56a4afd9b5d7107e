# orderease/core/locks.py
import threading
from contextlib import contextmanager
from typing import Dict, List


class KeyedLocks:
    """
    One re-entrant lock per key, created on demand and dropped when idle.

    Used to serialize the units of work for one phone number and the
    reconciliation of one draft. Re-entrant so the conversation engine can
    run a payment probe while it already holds the customer's lock.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, holders]
        self._locks: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


session_locks = KeyedLocks()
draft_locks = KeyedLocks()
