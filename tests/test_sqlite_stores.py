from __future__ import annotations

import sqlite3

from db.accounts import SqliteAccountStore
from db.history import SqliteHistoryStore
from engine.keyed_lock import KeyedLock
from engine.ledger import BalanceLedger
from engine.models import UserAccount


def test_account_store_round_trips(tmp_path) -> None:
    store = SqliteAccountStore(str(tmp_path / "vidpurse.sqlite"))
    account = UserAccount(
        user_id="42",
        display_name="alice",
        opening_balance=100,
        balance=600,
        available_balance=250,
        active=True,
        joined_at="2026-01-01T00:00:00+00:00",
    )

    store.upsert_account(account)

    assert store.get_account("42") == account
    assert store.get_account("missing") is None


def test_account_store_upsert_overwrites_and_lists_active(tmp_path) -> None:
    store = SqliteAccountStore(str(tmp_path / "vidpurse.sqlite"))
    base = UserAccount("1", "a", 0, 100, 100, True, "2026-01-01T00:00:00+00:00")
    store.upsert_account(base)
    store.upsert_account(UserAccount("2", "b", 0, 0, 0, True, "2026-01-02T00:00:00+00:00"))
    store.upsert_account(UserAccount("1", "a", 0, 100, 40, True, base.joined_at))

    store.set_active("2", False)

    assert store.get_account("1").available_balance == 40
    assert [a.user_id for a in store.list_active_accounts()] == ["1"]


def test_ledger_persists_through_sqlite_store(tmp_path) -> None:
    db_path = str(tmp_path / "vidpurse.sqlite")
    ledger = BalanceLedger(SqliteAccountStore(db_path), locks=KeyedLock())
    ledger.open_account("9", "zed", 0)
    ledger.credit("9", 1000)
    ledger.debit("9", 300)

    reloaded = BalanceLedger(SqliteAccountStore(db_path), locks=KeyedLock()).get_account("9")

    assert reloaded.balance == 1000
    assert reloaded.available_balance == 700


def test_accounts_table_rejects_invariant_violations(tmp_path) -> None:
    db_path = str(tmp_path / "vidpurse.sqlite")
    SqliteAccountStore(db_path).ensure_schema()
    conn = sqlite3.connect(db_path)
    try:
        try:
            conn.execute(
                "INSERT INTO accounts (user_id, balance, available_balance) VALUES ('x', 10, 20)"
            )
            raised = False
        except sqlite3.IntegrityError:
            raised = True
    finally:
        conn.close()
    assert raised is True


def test_download_history_lifecycle(tmp_path) -> None:
    history = SqliteHistoryStore(str(tmp_path / "vidpurse.sqlite"))

    first = history.record_download("u1", "https://video.test/a.mp4", "alice_1.mp4", "downloading")
    second = history.record_download("u1", "https://video.test/b.mp4", "bob_2.mp4", "downloading")
    history.record_download("u2", "https://video.test/c.mp4", "c_3.mp4", "downloading")
    history.update_download_status(first, "completed")
    history.update_download_status(second, "failed")

    rows = history.get_download_history("u1")

    assert [row["id"] for row in rows] == [second, first]
    assert {row["filename"]: row["status"] for row in rows} == {
        "alice_1.mp4": "completed",
        "bob_2.mp4": "failed",
    }
    assert len(history.get_download_history("u1", limit=1)) == 1


def test_search_history_keeps_result_summaries(tmp_path) -> None:
    history = SqliteHistoryStore(str(tmp_path / "vidpurse.sqlite"))
    summaries = [{"id": "result_0", "title": "Clip", "username": "alice", "video_id": "7"}]

    history.record_search("u1", "cats", summaries)
    history.record_search("u1", "dogs", [])

    rows = history.get_search_history("u1")

    assert [row["query"] for row in rows] == ["dogs", "cats"]
    assert rows[1]["results"] == summaries
    assert rows[1]["result_count"] == 1


def test_stats_count_accounts_downloads_and_searches(tmp_path) -> None:
    db_path = str(tmp_path / "vidpurse.sqlite")
    accounts = SqliteAccountStore(db_path)
    accounts.upsert_account(UserAccount("1", "a", 0, 0, 0, True, "2026-01-01T00:00:00+00:00"))
    accounts.upsert_account(UserAccount("2", "b", 0, 0, 0, False, "2026-01-01T00:00:00+00:00"))
    history = SqliteHistoryStore(db_path)
    history.record_download("1", "https://video.test/a.mp4", "a.mp4", "completed")
    history.record_search("1", "cats", [])

    assert history.get_stats() == {
        "total_users": 2,
        "active_users": 1,
        "total_downloads": 1,
        "total_searches": 1,
    }
