from __future__ import annotations

import random
from concurrent.futures import ThreadPoolExecutor

import pytest

from engine.errors import InsufficientFunds, NotFound
from engine.keyed_lock import KeyedLock
from engine.ledger import BalanceLedger, InMemoryAccountStore


def _ledger(opening_balance: int = 0) -> BalanceLedger:
    return BalanceLedger(InMemoryAccountStore(), locks=KeyedLock(), opening_balance=opening_balance)


def test_open_account_sets_all_figures_to_opening_balance() -> None:
    ledger = _ledger()
    account = ledger.open_account("42", "alice", 250)

    assert account.opening_balance == 250
    assert account.balance == 250
    assert account.available_balance == 250
    assert account.active is True
    assert account.joined_at


def test_open_account_is_idempotent() -> None:
    ledger = _ledger()
    first = ledger.open_account("42", "alice", 250)
    ledger.debit("42", 100)
    after_debit = ledger.get_account("42")

    second = ledger.open_account("42", "someone-else", 9999)

    assert second == after_debit
    assert second.display_name == first.display_name
    assert second.available_balance == 150


def test_credit_raises_both_figures() -> None:
    ledger = _ledger()
    ledger.open_account("1", "u", 0)

    account = ledger.credit("1", 1000)

    assert account.balance == 1000
    assert account.available_balance == 1000


def test_debit_only_touches_available_balance() -> None:
    ledger = _ledger()
    ledger.open_account("1", "u", 1000)

    account = ledger.debit("1", 400)

    assert account.balance == 1000
    assert account.available_balance == 600


def test_debit_beyond_available_leaves_account_unchanged() -> None:
    ledger = _ledger()
    ledger.open_account("1", "u", 300)
    before = ledger.get_account("1")

    with pytest.raises(InsufficientFunds) as excinfo:
        ledger.debit("1", 500)

    assert excinfo.value.required == 500
    assert excinfo.value.available == 300
    assert ledger.get_account("1") == before


@pytest.mark.parametrize("amount", [0, -5, 1.5, "10", True])
def test_invalid_amounts_are_rejected(amount) -> None:
    ledger = _ledger()
    ledger.open_account("1", "u", 100)

    with pytest.raises(ValueError):
        ledger.credit("1", amount)
    with pytest.raises(ValueError):
        ledger.debit("1", amount)


def test_mutating_unknown_account_raises_not_found() -> None:
    ledger = _ledger()

    with pytest.raises(NotFound):
        ledger.debit("missing", 10)
    with pytest.raises(NotFound):
        ledger.reset_to_opening("missing")


def test_reset_to_opening_restores_opening_figures() -> None:
    ledger = _ledger()
    ledger.open_account("1", "u", 200)
    ledger.credit("1", 800)
    ledger.debit("1", 900)

    account = ledger.reset_to_opening("1")

    assert account.balance == 200
    assert account.available_balance == 200


def test_refund_never_lifts_available_above_balance() -> None:
    ledger = _ledger()
    ledger.open_account("1", "u", 0)
    ledger.credit("1", 1000)
    ledger.debit("1", 800)
    ledger.reset_to_opening("1")

    account = ledger.refund("1", 800)

    assert account.balance == 0
    assert account.available_balance == 0


def test_ensure_account_uses_configured_opening_balance() -> None:
    ledger = _ledger(opening_balance=75)

    account = ledger.ensure_account("7")

    assert account.available_balance == 75
    assert account.display_name == "User"


def test_random_operation_sequences_keep_invariant() -> None:
    rng = random.Random(1234)
    ledger = _ledger()
    ledger.open_account("1", "u", 50)

    for _ in range(500):
        op = rng.choice(["credit", "debit", "refund", "reset"])
        amount = rng.randint(1, 400)
        try:
            if op == "credit":
                ledger.credit("1", amount)
            elif op == "debit":
                ledger.debit("1", amount)
            elif op == "refund":
                ledger.refund("1", amount)
            else:
                ledger.reset_to_opening("1")
        except InsufficientFunds:
            pass
        account = ledger.get_account("1")
        assert 0 <= account.available_balance <= account.balance


def test_concurrent_debits_never_overspend() -> None:
    ledger = _ledger()
    ledger.open_account("1", "u", 1000)

    def _try_debit(_):
        try:
            ledger.debit("1", 300)
            return True
        except InsufficientFunds:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(_try_debit, range(10)))

    assert outcomes.count(True) == 3
    assert ledger.get_account("1").available_balance == 100


def test_users_do_not_share_balances() -> None:
    ledger = _ledger()
    ledger.open_account("a", "a", 100)
    ledger.open_account("b", "b", 100)

    ledger.debit("a", 100)

    assert ledger.get_account("a").available_balance == 0
    assert ledger.get_account("b").available_balance == 100
