"""Per-user prepaid balance ledger.

Each account carries two figures: ``balance`` (everything ever funded,
used for reporting) and ``available_balance`` (what can still be spent).
Spending only ever touches ``available_balance``; only ``credit`` and
``reset_to_opening`` touch ``balance``. Every mutation is a read-modify-write
under the user's lock and must leave ``0 <= available_balance <= balance``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Protocol

from config.settings import OPENING_BALANCE
from engine.errors import InsufficientFunds, NotFound
from engine.json_utils import log_event
from engine.keyed_lock import KeyedLock
from engine.models import UserAccount, utc_now

logger = logging.getLogger(__name__)


class AccountStore(Protocol):
    def get_account(self, user_id: str) -> UserAccount | None:
        """Return the stored account or ``None``."""

    def upsert_account(self, account: UserAccount) -> None:
        """Insert or overwrite the stored account."""


class InMemoryAccountStore:
    def __init__(self) -> None:
        self._accounts: dict[str, UserAccount] = {}
        self._lock = threading.Lock()

    def get_account(self, user_id):
        with self._lock:
            return self._accounts.get(str(user_id))

    def upsert_account(self, account):
        with self._lock:
            self._accounts[account.user_id] = account

    def list_active_accounts(self):
        with self._lock:
            return [account for account in self._accounts.values() if account.active]


def _require_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be an integer, got {amount!r}")
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")
    return amount


def _check_invariant(account: UserAccount) -> UserAccount:
    if not 0 <= account.available_balance <= account.balance:
        raise AssertionError(
            f"ledger invariant violated for user {account.user_id}: "
            f"available={account.available_balance} balance={account.balance}"
        )
    return account


class BalanceLedger:
    def __init__(
        self,
        store: AccountStore | None = None,
        *,
        locks: KeyedLock | None = None,
        opening_balance: int = OPENING_BALANCE,
    ) -> None:
        self.store = store if store is not None else InMemoryAccountStore()
        self.locks = locks if locks is not None else KeyedLock()
        self.opening_balance = max(0, int(opening_balance))

    def _load(self, user_id: str) -> UserAccount:
        account = self.store.get_account(user_id)
        if account is None:
            raise NotFound(f"No account for user {user_id}.", user_id=user_id)
        return account

    def _save(self, account: UserAccount, operation: str, amount: int | None = None) -> UserAccount:
        _check_invariant(account)
        self.store.upsert_account(account)
        log_event(
            logging.INFO,
            "ledger_mutation",
            logger=logger,
            operation=operation,
            user_id=account.user_id,
            amount=amount,
            balance=account.balance,
            available_balance=account.available_balance,
        )
        return account

    def get_account(self, user_id) -> UserAccount | None:
        user_id = str(user_id)
        with self.locks.hold(user_id):
            return self.store.get_account(user_id)

    def open_account(self, user_id, display_name: str, opening_balance: int) -> UserAccount:
        """Create the account on first sight; an existing account is returned untouched."""
        user_id = str(user_id)
        with self.locks.hold(user_id):
            existing = self.store.get_account(user_id)
            if existing is not None:
                return existing
            opening = int(opening_balance)
            if opening < 0:
                raise ValueError(f"opening balance must not be negative, got {opening}")
            account = UserAccount(
                user_id=user_id,
                display_name=display_name or "User",
                opening_balance=opening,
                balance=opening,
                available_balance=opening,
                active=True,
                joined_at=utc_now().isoformat(),
            )
            logger.info("Auto-registering user %s (%s)", user_id, account.display_name)
            return self._save(account, "open", opening)

    def ensure_account(self, user_id, display_name: str = "User") -> UserAccount:
        return self.open_account(user_id, display_name, self.opening_balance)

    def credit(self, user_id, amount: int) -> UserAccount:
        amount = _require_amount(amount)
        user_id = str(user_id)
        with self.locks.hold(user_id):
            account = self._load(user_id)
            updated = replace(
                account,
                balance=account.balance + amount,
                available_balance=account.available_balance + amount,
            )
            return self._save(updated, "credit", amount)

    def debit(self, user_id, amount: int) -> UserAccount:
        amount = _require_amount(amount)
        user_id = str(user_id)
        with self.locks.hold(user_id):
            account = self._load(user_id)
            if account.available_balance - amount < 0:
                logger.info(
                    "debit refused user=%s amount=%s available=%s",
                    user_id,
                    amount,
                    account.available_balance,
                )
                raise InsufficientFunds(required=amount, available=account.available_balance)
            updated = replace(account, available_balance=account.available_balance - amount)
            return self._save(updated, "debit", amount)

    def refund(self, user_id, amount: int) -> UserAccount:
        """Return a previously debited amount to ``available_balance``.

        Capped at ``balance``: a reset between the debit and the refund must
        not manufacture spendable funds.
        """
        amount = _require_amount(amount)
        user_id = str(user_id)
        with self.locks.hold(user_id):
            account = self._load(user_id)
            restored = min(account.balance, account.available_balance + amount)
            updated = replace(account, available_balance=restored)
            return self._save(updated, "refund", amount)

    def reset_to_opening(self, user_id) -> UserAccount:
        user_id = str(user_id)
        with self.locks.hold(user_id):
            account = self._load(user_id)
            updated = replace(
                account,
                balance=account.opening_balance,
                available_balance=account.opening_balance,
            )
            return self._save(updated, "reset")
