"""SQLite persistence for download and search history."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Protocol

from db.migrations import ensure_accounts_table, ensure_history_tables

DOWNLOAD_STATUS_PENDING = "pending"
DOWNLOAD_STATUS_DOWNLOADING = "downloading"
DOWNLOAD_STATUS_COMPLETED = "completed"
DOWNLOAD_STATUS_FAILED = "failed"


def utc_now():
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class HistoryStore(Protocol):
    def record_download(self, user_id: str, url: str, filename: str, status: str) -> int | None:
        """Record a download attempt and return its id."""

    def update_download_status(self, download_id: int | None, status: str) -> None:
        """Move a recorded download to ``status``."""

    def record_search(self, user_id: str, query: str, summaries: list[dict[str, Any]]) -> None:
        """Record a search and a summary of its results."""


class NullHistoryStore:
    """History sink for embedding without a database."""

    def record_download(self, user_id, url, filename, status):
        return None

    def update_download_status(self, download_id, status):
        return None

    def record_search(self, user_id, query, summaries):
        return None

    def get_download_history(self, user_id, limit=10):
        return []

    def get_search_history(self, user_id, limit=10):
        return []


class SqliteHistoryStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        ensure_history_tables(conn)
        return conn

    def ensure_schema(self) -> None:
        conn = self._connect()
        conn.close()

    def record_download(self, user_id: str, url: str, filename: str, status: str = DOWNLOAD_STATUS_PENDING) -> int:
        if not url:
            raise ValueError("url is required")
        now = utc_now()
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO downloads (user_id, url, filename, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (str(user_id), url, filename, status, now, now),
            )
            conn.commit()
            return int(cur.lastrowid)
        finally:
            conn.close()

    def update_download_status(self, download_id: int | None, status: str) -> None:
        if download_id is None:
            return
        conn = self._connect()
        try:
            conn.execute(
                "UPDATE downloads SET status=?, updated_at=? WHERE id=?",
                (status, utc_now(), int(download_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def record_search(self, user_id: str, query: str, summaries: list[dict[str, Any]]) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO searches (user_id, query, result_count, results_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    str(user_id),
                    query,
                    len(summaries or []),
                    json.dumps(summaries or [], ensure_ascii=False),
                    utc_now(),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def get_download_history(self, user_id: str, limit: int = 10) -> list[dict[str, Any]]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT id, url, filename, status, created_at, updated_at
                FROM downloads
                WHERE user_id=?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (str(user_id), int(limit)),
            )
            return [dict(row) for row in cur.fetchall()]
        finally:
            conn.close()

    def get_search_history(self, user_id: str, limit: int = 10) -> list[dict[str, Any]]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT id, query, result_count, results_json, created_at
                FROM searches
                WHERE user_id=?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (str(user_id), int(limit)),
            )
            rows = []
            for row in cur.fetchall():
                item = dict(row)
                raw = item.pop("results_json", None)
                try:
                    item["results"] = json.loads(raw) if raw else []
                except json.JSONDecodeError:
                    item["results"] = []
                rows.append(item)
            return rows
        finally:
            conn.close()

    def get_stats(self) -> dict[str, int]:
        conn = self._connect()
        try:
            ensure_accounts_table(conn)
            cur = conn.cursor()
            counts = {}
            for key, sql in (
                ("total_users", "SELECT COUNT(*) FROM accounts"),
                ("active_users", "SELECT COUNT(*) FROM accounts WHERE is_active=1"),
                ("total_downloads", "SELECT COUNT(*) FROM downloads"),
                ("total_searches", "SELECT COUNT(*) FROM searches"),
            ):
                cur.execute(sql)
                counts[key] = int(cur.fetchone()[0])
            return counts
        finally:
            conn.close()
