"""Per-user orchestration of search, preview, watch holds and paid downloads.

``DeliverySession`` is the only component the chat transport talks to. Each
``on_*`` entry point returns a :class:`RenderPayload`; domain failures
(:class:`DeliveryError`) are turned into payloads with ``error`` set, while
anything unexpected is logged and re-raised.

Locking: every read-modify-write of a user's session or balance happens under
that user's lock from the shared :class:`KeyedLock`. Network work (search,
detail-page resolution, file download) always runs outside the lock, and
results that come back after the session was replaced are discarded.
"""

from __future__ import annotations

import logging
import os
import re
import uuid
from typing import Any, Protocol

from db.history import (
    DOWNLOAD_STATUS_COMPLETED,
    DOWNLOAD_STATUS_DOWNLOADING,
    DOWNLOAD_STATUS_FAILED,
    HistoryStore,
    NullHistoryStore,
)
from engine.config import DeliverySettings
from engine.errors import (
    ActionInProgress,
    DeliveryError,
    InsufficientFunds,
    InvalidTransition,
    NotFound,
    OutOfRange,
    ResolutionFailed,
    SessionExpired,
    UpstreamError,
)
from engine.http_client import FetchClient
from engine.json_utils import log_event
from engine.keyed_lock import KeyedLock
from engine.ledger import BalanceLedger
from engine.media_resolver import MediaResolver
from engine.models import ActionKind, SearchResult, Session, SessionState
from engine.paths import DOWNLOADS_DIR, ensure_dir, resolve_download_path
from engine.render import (
    RenderPayload,
    balance_fields,
    clean_title,
    format_balance,
    format_bytes,
    format_preview,
    format_search_list,
    pagination_controls,
    preview_action_controls,
)
from engine.search_extractor import SearchService
from engine.session_store import SessionStore

logger = logging.getLogger(__name__)

SEARCH_USAGE = "Usage: /cari <keyword>\nExample: /cari funny cats"
TOPUP_USAGE = "Usage: /topup <amount>\nExample: /topup 50000"
DOWNLOAD_STARTED = "⏳ Downloading file..."

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class Deliverer(Protocol):
    def deliver_file(self, user_id: str, local_path: str, caption_fields: dict[str, Any]) -> bool:
        """Send a downloaded file to the user; ``False`` means it did not arrive."""

    def deliver_text(self, user_id: str, text: str) -> bool:
        """Send a plain text message to the user."""


class NullDeliverer:
    def deliver_file(self, user_id, local_path, caption_fields):
        logger.info("deliver_file user=%s path=%s (no transport configured)", user_id, local_path)
        return True

    def deliver_text(self, user_id, text):
        logger.info("deliver_text user=%s (no transport configured)", user_id)
        return True


def download_filename(item: SearchResult) -> str:
    name = _UNSAFE_FILENAME_CHARS.sub("_", item.username or "").strip("._") or "video"
    ident = _UNSAFE_FILENAME_CHARS.sub("_", item.source_video_id or item.id).strip("._") or "item"
    return f"{name}_{ident}.mp4"


def staging_filename(user_id, filename: str) -> str:
    """On-disk name for one download request; never shared between requests."""
    owner = _UNSAFE_FILENAME_CHARS.sub("_", str(user_id)).strip("._") or "user"
    return f"{owner}_{uuid.uuid4().hex[:12]}_{filename}"


def _parse_position(value, name: str) -> int:
    if isinstance(value, bool):
        raise OutOfRange(f"Invalid {name}.", **{name: value})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise OutOfRange(f"Invalid {name}.", **{name: value}) from None


def parse_amount(text) -> int | None:
    raw = str(text or "").strip().replace("_", "")
    if not raw.isdigit():
        return None
    amount = int(raw)
    return amount if amount > 0 else None


class DeliverySession:
    def __init__(
        self,
        *,
        ledger: BalanceLedger,
        sessions: SessionStore,
        search_service: SearchService,
        resolver: MediaResolver,
        fetch_client: FetchClient,
        history: HistoryStore | None = None,
        deliverer: Deliverer | None = None,
        settings: DeliverySettings | None = None,
        downloads_dir: str | None = None,
    ) -> None:
        if ledger.locks is not sessions.locks:
            raise ValueError("ledger and session store must share one KeyedLock")
        self.ledger = ledger
        self.sessions = sessions
        self.locks: KeyedLock = ledger.locks
        self.search_service = search_service
        self.resolver = resolver
        self.fetch_client = fetch_client
        self.history = history if history is not None else NullHistoryStore()
        self.deliverer = deliverer if deliverer is not None else NullDeliverer()
        self.settings = settings or DeliverySettings()
        self.downloads_dir = str(downloads_dir or DOWNLOADS_DIR)

    # ------------------------------------------------------------------
    # Transport entry points

    def on_search_command(self, user_id, query, display_name="User") -> RenderPayload:
        return self._dispatch("search", user_id, display_name, self.search, query)

    def on_paginate(self, user_id, page, display_name="User") -> RenderPayload:
        return self._dispatch("paginate", user_id, display_name, self.paginate, page)

    def on_select(self, user_id, index, display_name="User") -> RenderPayload:
        return self._dispatch("select", user_id, display_name, self.select, index)

    def on_confirm_download(self, user_id, index, display_name="User") -> RenderPayload:
        return self._dispatch("confirm_download", user_id, display_name, self.confirm_download, index)

    def on_request_watch(self, user_id, index, display_name="User") -> RenderPayload:
        return self._dispatch("request_watch", user_id, display_name, self.request_watch, index)

    def on_confirm_watch(self, user_id, index, display_name="User") -> RenderPayload:
        return self._dispatch("confirm_watch", user_id, display_name, self.confirm_watch, index)

    def on_cancel_watch(self, user_id, index, display_name="User") -> RenderPayload:
        return self._dispatch("cancel_watch", user_id, display_name, self.cancel_watch, index)

    def on_topup(self, user_id, amount_text, display_name="User") -> RenderPayload:
        return self._dispatch("topup", user_id, display_name, self.topup, amount_text)

    def on_balance(self, user_id, display_name="User") -> RenderPayload:
        return self._dispatch("balance", user_id, display_name, self.balance)

    def on_history(self, user_id, limit=5, display_name="User") -> RenderPayload:
        return self._dispatch("history", user_id, display_name, self.history_summary, limit)

    def _dispatch(self, event, user_id, display_name, handler, *args) -> RenderPayload:
        user_id = str(user_id)
        try:
            self.ledger.ensure_account(user_id, display_name or "User")
            payload = handler(user_id, *args)
        except DeliveryError as exc:
            level = logging.WARNING if isinstance(exc, UpstreamError) else logging.INFO
            log_event(
                level,
                "delivery_rejected",
                logger=logger,
                event=event,
                user_id=user_id,
                code=exc.code,
                details=exc.details,
            )
            return RenderPayload(
                text=exc.message,
                state=self._current_state(user_id),
                fields=dict(exc.details),
                error=exc.code,
            )
        except Exception:
            logger.exception("Unhandled failure in %s for user %s", event, user_id)
            raise
        log_event(logging.INFO, "delivery_transition", logger=logger, event=event, user_id=user_id, state=payload.state)
        return payload

    def _current_state(self, user_id) -> SessionState:
        session = self.sessions.get(user_id)
        return session.state if session is not None else SessionState.IDLE

    def _require_session(self, user_id) -> Session:
        session = self.sessions.get(user_id)
        if session is None:
            raise SessionExpired(user_id=user_id)
        return session

    # ------------------------------------------------------------------
    # Search and listing

    def search(self, user_id: str, query) -> RenderPayload:
        query = str(query or "").strip()
        if not query:
            return RenderPayload(text=SEARCH_USAGE, state=self._current_state(user_id), error=None)

        results = self.search_service.search(query)
        self.history.record_search(user_id, query, [item.summary() for item in results])
        if not results:
            return RenderPayload(
                text=f'No videos found for "{query}".',
                state=SessionState.IDLE,
                fields={"query": query, "result_count": 0},
            )

        with self.locks.hold(user_id):
            previous = self.sessions.get(user_id)
            if previous is not None:
                self._release_watch_hold(user_id, previous, reason="new_search")
            session = self.sessions.start_search(user_id, query, results)
            return self._render_page(session)

    def paginate(self, user_id: str, page) -> RenderPayload:
        with self.locks.hold(user_id):
            if self.sessions.get(user_id) is None:
                return RenderPayload(text="", state=SessionState.IDLE, error=None)
            session = self.sessions.set_page(user_id, _parse_position(page, "page"))
            return self._render_page(session)

    def _render_page(self, session: Session) -> RenderPayload:
        page_size = self.sessions.page_size
        return RenderPayload(
            text=format_search_list(session.results, session.query, session.page, page_size),
            state=session.state,
            pagination_controls=pagination_controls(len(session.results), session.page, page_size),
            fields={"query": session.query, "result_count": len(session.results), "page": session.page},
        )

    # ------------------------------------------------------------------
    # Preview and watch holds

    def select(self, user_id: str, index) -> RenderPayload:
        index = _parse_position(index, "index")
        with self.locks.hold(user_id):
            item = self.sessions.select(user_id, index)
            session = self._require_session(user_id)
            generation = session.generation
            cached = session.resolved

        resolved = cached or self.resolver.resolve(item.detail_url)

        with self.locks.hold(user_id):
            session = self.sessions.get(user_id)
            if session is None or session.generation != generation:
                logger.info("discarding stale preview user=%s index=%s", user_id, index)
                raise SessionExpired(user_id=user_id, reason="superseded")
            item = self.sessions.select(user_id, index)
            self.sessions.set_resolved(user_id, resolved)

            pending = session.pending_action
            held = pending is not None and pending.kind == ActionKind.WATCH and pending.index == index
            if pending is not None and pending.kind == ActionKind.WATCH and not held:
                self._release_watch_hold(user_id, session, reason="reselect")

            watch_cost = self.settings.watch_cost
            if not held and resolved is not None:
                account = self.ledger.get_account(user_id)
                if account is not None and account.available_balance >= watch_cost:
                    self._charge(user_id, watch_cost)
                    self.sessions.set_pending_action(user_id, ActionKind.WATCH, resolved.direct_url, watch_cost)
                    held = True
            # an in-flight download keeps its state until it finishes
            state = session.state
            if state != SessionState.DOWNLOAD_COMMITTED:
                state = SessionState.PREVIEWED
                self.sessions.set_state(user_id, state)
            return self._render_preview(
                user_id, item, index, watch_enabled=held, resolved=resolved is not None, state=state
            )

    def _charge(self, user_id: str, cost: int) -> None:
        # zero-cost actions are free and never touch the ledger
        if cost > 0:
            self.ledger.debit(user_id, cost)

    def _refund(self, user_id: str, cost: int) -> None:
        if cost > 0:
            self.ledger.refund(user_id, cost)

    def _render_preview(
        self,
        user_id,
        item: SearchResult,
        index: int,
        *,
        watch_enabled: bool,
        resolved: bool,
        state: SessionState = SessionState.PREVIEWED,
    ) -> RenderPayload:
        account = self.ledger.get_account(user_id)
        text = format_preview(item, index)
        if not watch_enabled:
            if not resolved:
                text += "\n⛔ Streaming is not available for this video."
            else:
                text += f"\n⛔ Watching needs a balance of {self.settings.watch_cost}."
        fields = {
            "index": index,
            "title": item.title,
            "username": item.username,
            "video_id": item.source_video_id,
            "thumbnail_url": item.thumbnail_url,
            "resolved": resolved,
        }
        fields.update(balance_fields(account))
        return RenderPayload(
            text=text,
            state=state,
            action_controls=preview_action_controls(
                index,
                watch_enabled=watch_enabled,
                watch_cost=self.settings.watch_cost,
                download_cost=self.settings.download_cost,
            ),
            fields=fields,
        )

    def _pending_watch(self, user_id: str, index: int):
        session = self._require_session(user_id)
        if session.state == SessionState.DOWNLOAD_COMMITTED:
            raise ActionInProgress(index=index)
        pending = session.pending_action
        if pending is None or pending.kind != ActionKind.WATCH or pending.index != index:
            raise NotFound("Watching is not available for this video.", index=index)
        return session, pending

    def _release_watch_hold(self, user_id: str, session: Session, *, reason: str) -> bool:
        """Apply the cancel policy to an outstanding watch hold; caller holds the lock."""
        pending = session.pending_action
        if pending is None or pending.kind != ActionKind.WATCH:
            return False
        refunded = False
        if self.settings.refund_on_watch_cancel:
            self._refund(user_id, pending.cost)
            refunded = True
        if session is self.sessions.get(user_id):
            self.sessions.clear_pending_action(user_id)
        log_event(
            logging.INFO,
            "watch_hold_released",
            logger=logger,
            user_id=user_id,
            index=pending.index,
            cost=pending.cost,
            refunded=refunded,
            reason=reason,
        )
        return refunded

    def request_watch(self, user_id: str, index) -> RenderPayload:
        index = _parse_position(index, "index")
        with self.locks.hold(user_id):
            session, pending = self._pending_watch(user_id, index)
            item = session.results[index]
            self.sessions.set_state(user_id, SessionState.WATCH_PENDING)
            return RenderPayload(
                text=(
                    f"📺 Watch \"{clean_title(item.title)}\"?\n"
                    f"💰 {pending.cost} has been reserved from your balance."
                ),
                state=SessionState.WATCH_PENDING,
                action_controls={"index": index, "confirm_watch": True, "cancel_watch": True},
                fields={"index": index, "cost": pending.cost},
            )

    def confirm_watch(self, user_id: str, index) -> RenderPayload:
        index = _parse_position(index, "index")
        with self.locks.hold(user_id):
            session, pending = self._pending_watch(user_id, index)
            item = session.results[index]
            if session.state not in (SessionState.WATCH_PENDING, SessionState.WATCH_CONFIRMED):
                raise InvalidTransition("Tap Watch first, then confirm.", index=index)
            self.sessions.set_state(user_id, SessionState.WATCH_CONFIRMED)
            return RenderPayload(
                text=f"📺 {clean_title(item.title)}\n\n🔗 {pending.resolved_url}",
                state=SessionState.WATCH_CONFIRMED,
                fields={"index": index, "url": pending.resolved_url, "cost": pending.cost},
            )

    def cancel_watch(self, user_id: str, index) -> RenderPayload:
        index = _parse_position(index, "index")
        with self.locks.hold(user_id):
            session, pending = self._pending_watch(user_id, index)
            item = session.results[index]
            refunded = False
            if self.settings.refund_on_watch_cancel:
                refunded = self._release_watch_hold(user_id, session, reason="cancel")
            self.sessions.set_state(user_id, SessionState.PREVIEWED)
            payload = self._render_preview(user_id, item, index, watch_enabled=not refunded, resolved=True)
            if refunded:
                payload.text = format_preview(item, index) + f"\n↩️ {pending.cost} returned to your balance."
            payload.fields["refunded"] = refunded
            return payload

    # ------------------------------------------------------------------
    # Paid download

    def confirm_download(self, user_id: str, index) -> RenderPayload:
        index = _parse_position(index, "index")
        cost = self.settings.download_cost
        with self.locks.hold(user_id):
            session = self._require_session(user_id)
            if session.selected_index != index:
                raise OutOfRange("Open the preview of this video first.", index=index)
            in_progress = session.state == SessionState.DOWNLOAD_COMMITTED
            account = self.ledger.get_account(user_id)
            available = account.available_balance if account is not None else 0
            if available < cost:
                if not in_progress:
                    self.sessions.set_state(user_id, SessionState.PREVIEWED)
                raise InsufficientFunds(
                    f"Insufficient balance. Downloading costs {cost}, you have {available}.",
                    required=cost,
                    available=available,
                )
            if in_progress:
                raise ActionInProgress(index=index)
            item = session.results[index]
            generation = session.generation
            resolved = session.resolved

        if resolved is None:
            resolved = self.resolver.resolve(item.detail_url)
            if resolved is None:
                raise ResolutionFailed(index=index)

        with self.locks.hold(user_id):
            session = self.sessions.get(user_id)
            if session is None or session.generation != generation or session.selected_index != index:
                raise SessionExpired(user_id=user_id, reason="superseded")
            if session.state == SessionState.DOWNLOAD_COMMITTED:
                raise ActionInProgress(index=index)
            filename = download_filename(item)
            dest_path = resolve_download_path(staging_filename(user_id, filename), self.downloads_dir)
            self._charge(user_id, cost)
            self.sessions.set_resolved(user_id, resolved)
            self.sessions.set_state(user_id, SessionState.DOWNLOAD_COMMITTED)
            download_id = self.history.record_download(
                user_id, resolved.direct_url, filename, DOWNLOAD_STATUS_DOWNLOADING
            )

        ensure_dir(self.downloads_dir)
        self.deliverer.deliver_text(user_id, DOWNLOAD_STARTED)
        try:
            try:
                downloaded = self.fetch_client.fetch_to_file(resolved.direct_url, dest_path)
            except UpstreamError as exc:
                return self._download_failed(user_id, index, download_id, cost, exc.code)

            caption = {
                "title": clean_title(item.title, 150),
                "username": item.username,
                "size": format_bytes(downloaded.size_bytes),
                "size_bytes": downloaded.size_bytes,
                "video_id": item.source_video_id,
                "filename": filename,
            }
            if not self.deliverer.deliver_file(user_id, downloaded.path, caption):
                return self._download_failed(user_id, index, download_id, cost, "delivery_failed")
        finally:
            if os.path.exists(dest_path):
                os.remove(dest_path)

        self.history.update_download_status(download_id, DOWNLOAD_STATUS_COMPLETED)
        with self.locks.hold(user_id):
            if self.sessions.get(user_id) is not None:
                self.sessions.set_state(user_id, SessionState.DELIVERED)
            account = self.ledger.get_account(user_id)
        fields = dict(caption)
        fields.update(balance_fields(account))
        return RenderPayload(text="✅ Video sent.", state=SessionState.DELIVERED, fields=fields)

    def _download_failed(self, user_id, index, download_id, cost, reason) -> RenderPayload:
        self.history.update_download_status(download_id, DOWNLOAD_STATUS_FAILED)
        refunded = False
        with self.locks.hold(user_id):
            if self.settings.refund_on_delivery_failure:
                self._refund(user_id, cost)
                refunded = True
            if self.sessions.get(user_id) is not None:
                self.sessions.set_state(user_id, SessionState.PREVIEWED)
            account = self.ledger.get_account(user_id)
        log_event(
            logging.WARNING,
            "download_failed",
            logger=logger,
            user_id=user_id,
            index=index,
            download_id=download_id,
            reason=reason,
            refunded=refunded,
        )
        text = "❌ Download failed."
        if refunded:
            text += f" {cost} has been returned to your balance."
        fields = {"index": index, "reason": reason, "refunded": refunded}
        fields.update(balance_fields(account))
        return RenderPayload(text=text, state=SessionState.PREVIEWED, fields=fields, error="delivery_failed")

    # ------------------------------------------------------------------
    # Account commands

    def topup(self, user_id: str, amount_text) -> RenderPayload:
        amount = parse_amount(amount_text)
        if amount is None:
            return RenderPayload(text=TOPUP_USAGE, state=self._current_state(user_id), error=None)
        account = self.ledger.credit(user_id, amount)
        fields = {"added": amount}
        fields.update(balance_fields(account))
        return RenderPayload(
            text=f"✅ Top-up successful!\n\n💰 Amount: {amount}\n{format_balance(account)}",
            state=self._current_state(user_id),
            fields=fields,
        )

    def balance(self, user_id: str) -> RenderPayload:
        account = self.ledger.get_account(user_id)
        if account is None:
            raise NotFound(user_id=user_id)
        return RenderPayload(
            text=format_balance(account),
            state=self._current_state(user_id),
            fields=balance_fields(account),
        )

    def history_summary(self, user_id: str, limit: int = 5) -> RenderPayload:
        get_downloads = getattr(self.history, "get_download_history", None)
        get_searches = getattr(self.history, "get_search_history", None)
        downloads = get_downloads(user_id, limit) if get_downloads else []
        searches = get_searches(user_id, limit) if get_searches else []
        lines = ["📜 Recent downloads"]
        if downloads:
            for row in downloads:
                lines.append(f"• {row.get('filename') or row.get('url')} [{row.get('status')}]")
        else:
            lines.append("• none")
        lines.append("")
        lines.append("🔍 Recent searches")
        if searches:
            for row in searches:
                lines.append(f"• {row.get('query')} ({row.get('result_count', 0)} results)")
        else:
            lines.append("• none")
        return RenderPayload(
            text="\n".join(lines),
            state=self._current_state(user_id),
            fields={"downloads": downloads, "searches": searches},
        )


def build_delivery_session(
    settings: DeliverySettings | None = None,
    *,
    account_store=None,
    history: HistoryStore | None = None,
    deliverer: Deliverer | None = None,
    fetch_client: FetchClient | None = None,
    downloads_dir: str | None = None,
) -> DeliverySession:
    """Wire the default components around one shared :class:`KeyedLock`."""
    from engine.media_resolver import default_strategies as resolve_strategies
    from engine.search_extractor import ResultExtractor
    from engine.search_extractor import default_strategies as extract_strategies

    settings = settings or DeliverySettings()
    locks = KeyedLock()
    fetch_client = fetch_client or FetchClient(
        timeout_seconds=settings.fetch_timeout_seconds,
        max_redirects=settings.fetch_max_redirects,
        user_agent=settings.user_agent,
    )
    extractor = ResultExtractor(extract_strategies(settings.site_base_url, settings.fallback_result_limit))
    return DeliverySession(
        ledger=BalanceLedger(account_store, locks=locks, opening_balance=settings.opening_balance),
        sessions=SessionStore(locks=locks, page_size=settings.items_per_page),
        search_service=SearchService(fetch_client=fetch_client, extractor=extractor, base_url=settings.site_base_url),
        resolver=MediaResolver(fetch_client=fetch_client, strategies=resolve_strategies(settings.media_host)),
        fetch_client=fetch_client,
        history=history,
        deliverer=deliverer,
        settings=settings,
        downloads_dir=downloads_dir,
    )
