"""Semantic render payloads handed back to the chat transport.

The core never builds keyboards or markup. It emits text plus plain-dict
controls (which indices can be picked, which pages exist, which actions are
enabled) and the transport decides how to draw them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from engine.models import SearchResult, SessionState, UserAccount
from engine.session_store import total_pages

_LIST_TITLE_LIMIT = 45
_LIST_USERNAME_LIMIT = 15
_PREVIEW_TITLE_LIMIT = 150


@dataclass
class RenderPayload:
    text: str
    state: SessionState = SessionState.IDLE
    pagination_controls: dict[str, Any] | None = None
    action_controls: dict[str, Any] | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "state": self.state.value,
            "pagination_controls": self.pagination_controls,
            "action_controls": self.action_controls,
            "fields": dict(self.fields),
            "error": self.error,
        }


def _truncate(value: str, limit: int) -> str:
    if len(value) > limit:
        return value[:limit] + "..."
    return value


def clean_title(title: str | None, limit: int = _LIST_TITLE_LIMIT) -> str:
    """Strip trailing links and hashtags that the site glues onto titles."""
    clean = title or "Video"
    clean = clean.split("http")[0].split("#")[0].strip() or "Video"
    return _truncate(clean, limit)


def page_bounds(result_count: int, page: int, page_size: int) -> tuple[int, int]:
    start = page * page_size
    return start, min(start + page_size, result_count)


def format_search_list(results: list[SearchResult], query: str, page: int, page_size: int) -> str:
    pages = total_pages(len(results), page_size)
    start, end = page_bounds(len(results), page, page_size)
    lines = [f'🔍 "{query}"', f"📊 {len(results)} videos | page {page + 1}/{pages}", ""]
    for index in range(start, end):
        item = results[index]
        lines.append(f"{index + 1}. {clean_title(item.title)}")
        if item.username:
            lines.append(f"   👤 {_truncate(item.username, _LIST_USERNAME_LIMIT)}")
    lines.append("")
    lines.append("💡 Pick a number to preview")
    return "\n".join(lines)


def pagination_controls(result_count: int, page: int, page_size: int) -> dict[str, Any]:
    pages = total_pages(result_count, page_size)
    start, end = page_bounds(result_count, page, page_size)
    return {
        "page": page,
        "total_pages": pages,
        "indices": list(range(start, end)),
        "prev_page": page - 1 if page > 0 else None,
        "next_page": page + 1 if page < pages - 1 else None,
    }


def format_preview(item: SearchResult, index: int) -> str:
    lines = [f"📹 PREVIEW #{index + 1}", "", f"📌 {clean_title(item.title, _PREVIEW_TITLE_LIMIT)}", ""]
    if item.username:
        lines.append(f"👤 {item.username}")
    if item.source_video_id:
        lines.append(f"🆔 ID: {item.source_video_id}")
    lines.append("")
    lines.append('💡 Tap "Download" to get the video')
    return "\n".join(lines)


def preview_action_controls(index: int, *, watch_enabled: bool, watch_cost: int, download_cost: int) -> dict[str, Any]:
    return {
        "index": index,
        "watch": {"enabled": bool(watch_enabled), "cost": watch_cost},
        "download": {"enabled": True, "cost": download_cost},
        "back_to_list": True,
    }


def format_bytes(size: int | None) -> str:
    if not size:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(units) - 1:
        value /= 1024
        exponent += 1
    value = round(value, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {units[exponent]}"


def balance_fields(account: UserAccount | None) -> dict[str, Any]:
    if account is None:
        return {}
    return {
        "opening_balance": account.opening_balance,
        "balance": account.balance,
        "available_balance": account.available_balance,
    }


def format_balance(account: UserAccount) -> str:
    return (
        f"💳 Total funded: {account.balance}\n"
        f"💵 Available: {account.available_balance}\n"
        f"🎁 Opening balance: {account.opening_balance}"
    )
