from __future__ import annotations

import pytest

from engine.errors import OutOfRange, SessionExpired
from engine.models import ActionKind, ResolvedMedia, SearchResult, SessionState, utc_now
from engine.session_store import SessionStore, total_pages


def _results(count: int) -> list[SearchResult]:
    return [
        SearchResult(
            id=f"result_{i}",
            title=f"Clip {i + 1}",
            username=f"user{i + 1}",
            thumbnail_url=None,
            detail_url=f"https://site.test/twjn.php?v={100 + i}",
            source_video_id=str(100 + i),
        )
        for i in range(count)
    ]


def test_total_pages_rounds_up() -> None:
    assert total_pages(0, 5) == 0
    assert total_pages(5, 5) == 1
    assert total_pages(12, 5) == 3


def test_start_search_replaces_previous_session() -> None:
    store = SessionStore(page_size=5)
    first = store.start_search("u", "cats", _results(3))
    store.select("u", 1)

    second = store.start_search("u", "dogs", _results(7))

    assert store.get("u") is second
    assert second.query == "dogs"
    assert second.selected_index is None
    assert second.page == 0
    assert second.state == SessionState.LISTED
    assert second.generation > first.generation


def test_set_page_bounds() -> None:
    store = SessionStore(page_size=5)
    store.start_search("u", "q", _results(12))

    assert store.set_page("u", 2).page == 2
    with pytest.raises(OutOfRange):
        store.set_page("u", 3)
    with pytest.raises(OutOfRange):
        store.set_page("u", -1)


def test_select_bounds_and_returns_item() -> None:
    store = SessionStore()
    store.start_search("u", "q", _results(4))

    assert store.select("u", 3).title == "Clip 4"
    with pytest.raises(OutOfRange):
        store.select("u", 4)
    with pytest.raises(OutOfRange):
        store.select("u", -1)


def test_selecting_a_different_item_drops_cached_resolution() -> None:
    store = SessionStore()
    store.start_search("u", "q", _results(4))
    store.select("u", 0)
    store.set_resolved("u", ResolvedMedia(direct_url="https://m.test/a.mp4", resolved_at=utc_now()))

    store.select("u", 0)
    assert store.get("u").resolved is not None

    store.select("u", 1)
    assert store.get("u").resolved is None


def test_pending_action_tracks_selected_index() -> None:
    store = SessionStore()
    store.start_search("u", "q", _results(4))
    store.select("u", 2)

    session = store.set_pending_action("u", ActionKind.WATCH, "https://m.test/a.mp4", 500)

    assert session.pending_action.index == 2
    assert session.pending_action.cost == 500
    cleared = store.clear_pending_action("u")
    assert cleared.kind == ActionKind.WATCH
    assert store.get("u").pending_action is None


def test_mutations_without_session_raise_session_expired() -> None:
    store = SessionStore()

    assert store.get("nobody") is None
    with pytest.raises(SessionExpired):
        store.set_page("nobody", 0)
    with pytest.raises(SessionExpired):
        store.select("nobody", 0)
    with pytest.raises(SessionExpired):
        store.clear_pending_action("nobody")


def test_clear_removes_session() -> None:
    store = SessionStore()
    store.start_search("u", "q", _results(1))

    assert store.clear("u") is not None
    assert store.get("u") is None
    assert len(store) == 0
