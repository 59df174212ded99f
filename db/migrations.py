"""SQLite migrations for accounts, download history and search history."""

from __future__ import annotations

import sqlite3


def ensure_accounts_table(conn: sqlite3.Connection) -> None:
    """Ensure the user accounts table exists."""
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS accounts (
            user_id TEXT PRIMARY KEY,
            display_name TEXT,
            joined_at TEXT,
            opening_balance INTEGER NOT NULL DEFAULT 0,
            balance INTEGER NOT NULL DEFAULT 0,
            available_balance INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1,
            CHECK (available_balance >= 0),
            CHECK (available_balance <= balance)
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_accounts_active ON accounts (is_active)")
    conn.commit()


def ensure_history_tables(conn: sqlite3.Connection) -> None:
    """Ensure download and search history tables and indexes exist."""
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS downloads (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            url TEXT NOT NULL,
            filename TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_downloads_user_created "
        "ON downloads (user_id, created_at DESC)"
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS searches (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            query TEXT NOT NULL,
            result_count INTEGER NOT NULL DEFAULT 0,
            results_json TEXT,
            created_at TEXT NOT NULL
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_searches_user_created "
        "ON searches (user_id, created_at DESC)"
    )
    conn.commit()
