"""Domain records passed between the extractor, ledger, sessions and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utc_now():
    return datetime.now(timezone.utc).replace(microsecond=0)


class ActionKind(Enum):
    WATCH = "watch"
    DOWNLOAD = "download"


class SessionState(Enum):
    IDLE = "idle"
    LISTED = "listed"
    PREVIEWED = "previewed"
    WATCH_PENDING = "watch_pending"
    WATCH_CONFIRMED = "watch_confirmed"
    DOWNLOAD_COMMITTED = "download_committed"
    DELIVERED = "delivered"


@dataclass(frozen=True)
class SearchResult:
    id: str
    title: str
    username: str
    thumbnail_url: str | None
    detail_url: str
    source_video_id: str | None = None
    category: str = "video"
    description: str = ""
    query: str = ""

    def summary(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "username": self.username,
            "detail_url": self.detail_url,
            "video_id": self.source_video_id,
        }


@dataclass(frozen=True)
class ResolvedMedia:
    direct_url: str
    resolved_at: datetime
    strategy: str | None = None


@dataclass(frozen=True)
class UserAccount:
    user_id: str
    display_name: str
    opening_balance: int
    balance: int
    available_balance: int
    active: bool = True
    joined_at: str | None = None


@dataclass(frozen=True)
class PendingAction:
    kind: ActionKind
    index: int
    resolved_url: str | None
    cost: int


@dataclass
class Session:
    user_id: str
    query: str
    results: list[SearchResult]
    page: int = 0
    selected_index: int | None = None
    pending_action: PendingAction | None = None
    resolved: ResolvedMedia | None = None
    state: SessionState = SessionState.LISTED
    generation: int = 0
    created_at: datetime = field(default_factory=utc_now)
