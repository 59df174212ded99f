"""Process-lifetime, per-user search sessions."""

from __future__ import annotations

import logging
import math
import threading

from engine.errors import OutOfRange, SessionExpired
from engine.keyed_lock import KeyedLock
from engine.models import ActionKind, PendingAction, ResolvedMedia, SearchResult, Session, SessionState

logger = logging.getLogger(__name__)


def total_pages(result_count: int, page_size: int) -> int:
    if result_count <= 0:
        return 0
    return int(math.ceil(result_count / float(page_size)))


class SessionStore:
    """One :class:`Session` per user, replaced wholesale by each new search.

    There is no expiry; sessions live until replaced, cleared or the process
    exits. Callers hold the shared :class:`KeyedLock` for multi-step updates;
    each method also takes it so single calls are safe on their own.
    """

    def __init__(self, *, locks: KeyedLock | None = None, page_size: int = 5) -> None:
        self.locks = locks if locks is not None else KeyedLock()
        self.page_size = max(1, int(page_size))
        self._sessions: dict[str, Session] = {}
        self._sessions_lock = threading.Lock()
        self._generation = 0

    def _require(self, user_id: str) -> Session:
        with self._sessions_lock:
            session = self._sessions.get(user_id)
        if session is None:
            raise SessionExpired(user_id=user_id)
        return session

    def get(self, user_id) -> Session | None:
        with self._sessions_lock:
            return self._sessions.get(str(user_id))

    def start_search(self, user_id, query: str, results: list[SearchResult]) -> Session:
        user_id = str(user_id)
        with self.locks.hold(user_id):
            with self._sessions_lock:
                self._generation += 1
                previous = self._sessions.get(user_id)
                session = Session(
                    user_id=user_id,
                    query=query,
                    results=list(results),
                    generation=self._generation,
                )
                self._sessions[user_id] = session
            if previous is not None and previous.pending_action is not None:
                logger.info(
                    "new search replaced session with pending %s user=%s",
                    previous.pending_action.kind.value,
                    user_id,
                )
            return session

    def set_page(self, user_id, page: int) -> Session:
        user_id = str(user_id)
        with self.locks.hold(user_id):
            session = self._require(user_id)
            pages = total_pages(len(session.results), self.page_size)
            if not 0 <= page < pages:
                raise OutOfRange(f"Page {page + 1} does not exist.", page=page, pages=pages)
            session.page = page
            session.state = SessionState.LISTED
            return session

    def select(self, user_id, index: int) -> SearchResult:
        user_id = str(user_id)
        with self.locks.hold(user_id):
            session = self._require(user_id)
            if not 0 <= index < len(session.results):
                raise OutOfRange(
                    f"Choose a number between 1 and {len(session.results)}.",
                    index=index,
                    count=len(session.results),
                )
            if session.selected_index != index:
                session.resolved = None
            session.selected_index = index
            return session.results[index]

    def set_resolved(self, user_id, resolved: ResolvedMedia | None) -> Session:
        user_id = str(user_id)
        with self.locks.hold(user_id):
            session = self._require(user_id)
            session.resolved = resolved
            return session

    def set_pending_action(self, user_id, kind: ActionKind, resolved_url: str | None, cost: int) -> Session:
        user_id = str(user_id)
        with self.locks.hold(user_id):
            session = self._require(user_id)
            if session.selected_index is None:
                raise OutOfRange("Nothing is selected.")
            session.pending_action = PendingAction(
                kind=kind,
                index=session.selected_index,
                resolved_url=resolved_url,
                cost=int(cost),
            )
            return session

    def clear_pending_action(self, user_id) -> PendingAction | None:
        user_id = str(user_id)
        with self.locks.hold(user_id):
            session = self._require(user_id)
            pending = session.pending_action
            session.pending_action = None
            return pending

    def set_state(self, user_id, state: SessionState) -> Session:
        user_id = str(user_id)
        with self.locks.hold(user_id):
            session = self._require(user_id)
            session.state = state
            return session

    def clear(self, user_id) -> Session | None:
        user_id = str(user_id)
        with self.locks.hold(user_id):
            with self._sessions_lock:
                return self._sessions.pop(user_id, None)

    def __len__(self) -> int:
        with self._sessions_lock:
            return len(self._sessions)
