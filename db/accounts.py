"""SQLite persistence for user accounts."""

from __future__ import annotations

import sqlite3

from db.migrations import ensure_accounts_table
from engine.models import UserAccount


def _row_to_account(row: sqlite3.Row | None) -> UserAccount | None:
    if not row:
        return None
    return UserAccount(
        user_id=str(row["user_id"]),
        display_name=row["display_name"] or "User",
        opening_balance=int(row["opening_balance"]),
        balance=int(row["balance"]),
        available_balance=int(row["available_balance"]),
        active=bool(row["is_active"]),
        joined_at=row["joined_at"],
    )


class SqliteAccountStore:
    """Durable :class:`engine.ledger.AccountStore`.

    The ledger serializes per-user read-modify-write; this store only needs
    single-statement atomicity.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        ensure_accounts_table(conn)
        return conn

    def ensure_schema(self) -> None:
        conn = self._connect()
        conn.close()

    def get_account(self, user_id: str) -> UserAccount | None:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM accounts WHERE user_id=? LIMIT 1", (str(user_id),))
            return _row_to_account(cur.fetchone())
        finally:
            conn.close()

    def upsert_account(self, account: UserAccount) -> None:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO accounts (
                    user_id, display_name, joined_at, opening_balance,
                    balance, available_balance, is_active
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    display_name=excluded.display_name,
                    opening_balance=excluded.opening_balance,
                    balance=excluded.balance,
                    available_balance=excluded.available_balance,
                    is_active=excluded.is_active
                """,
                (
                    account.user_id,
                    account.display_name,
                    account.joined_at,
                    int(account.opening_balance),
                    int(account.balance),
                    int(account.available_balance),
                    1 if account.active else 0,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def set_active(self, user_id: str, active: bool) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "UPDATE accounts SET is_active=? WHERE user_id=?",
                (1 if active else 0, str(user_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def list_active_accounts(self) -> list[UserAccount]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM accounts WHERE is_active=1 ORDER BY joined_at ASC")
            return [_row_to_account(row) for row in cur.fetchall()]
        finally:
            conn.close()
