"""Database helpers for vidpurse."""

from db.accounts import SqliteAccountStore
from db.history import NullHistoryStore, SqliteHistoryStore

__all__ = ["NullHistoryStore", "SqliteAccountStore", "SqliteHistoryStore"]
