"""Per-key mutual exclusion for user-scoped read-modify-write."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class KeyedLock:
    """Lazily-created re-entrant lock per key.

    The ledger, the session store and the orchestrator share one instance so
    that everything touching a single user's balance or session is
    serialized, while different users never contend. Locks are re-entrant:
    the orchestrator holds a user's lock across a ledger call that takes it
    again. Entries are never pruned: the map holds one lock per user seen
    since start, the same lifetime as the in-memory sessions.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.RLock] = {}
        self._locks_lock = threading.Lock()

    def _get_lock(self, key: str) -> threading.RLock:
        with self._locks_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key) -> Iterator[None]:
        lock = self._get_lock(str(key))
        with lock:
            yield

    def __len__(self) -> int:
        with self._locks_lock:
            return len(self._locks)
