from __future__ import annotations

from decimal import Decimal
import sqlite3

import pytest

from order_settlement import ConcurrencyTimeout, LockOrderViolation, Order, OrderNotFound, Side
from order_settlement.storage import (
    LedgerStore,
    OrderJournal,
    PositionStore,
    RowLockManager,
    ScopeState,
    SQLiteDatabase,
    TransactionScope,
    position_key,
    wallet_key,
)


def _stores(tmp_path) -> tuple[SQLiteDatabase, RowLockManager, LedgerStore, PositionStore, OrderJournal]:
    database = SQLiteDatabase(tmp_path / "settlement.db")
    ledger = LedgerStore(database)
    ledger.create_wallet("alice", Decimal("10000.00"))
    return database, RowLockManager(), ledger, PositionStore(database), OrderJournal(database)


def _scope(database: SQLiteDatabase, locks: RowLockManager, transaction_timeout: float = 5.0) -> TransactionScope:
    return TransactionScope(
        database=database,
        lock_manager=locks,
        lock_timeout_seconds=0.1,
        transaction_timeout_seconds=transaction_timeout,
    )


def _order(order_id: str, shares: str = "1") -> Order:
    return Order(
        order_id=order_id,
        user_id="alice",
        symbol="AAPL",
        side=Side.BUY,
        shares=Decimal(shares),
        price_per_share=Decimal("150.25"),
        total_amount=Decimal("150.25") * Decimal(shares),
    )


def test_memory_database_is_rejected() -> None:
    with pytest.raises(ValueError):
        SQLiteDatabase(":memory:")


def test_row_lock_manager_times_out_and_cleans_up() -> None:
    locks = RowLockManager()
    assert locks.acquire(wallet_key("alice"), timeout=0.1)
    assert not locks.acquire(wallet_key("alice"), timeout=0.05)
    assert locks.acquire(wallet_key("bob"), timeout=0.05)
    locks.release(wallet_key("bob"))
    locks.release(wallet_key("alice"))
    assert locks.active_keys() == 0
    with pytest.raises(RuntimeError):
        locks.release(wallet_key("alice"))


def test_position_lock_requires_wallet_lock_first(tmp_path) -> None:
    database, locks, ledger, positions, _ = _stores(tmp_path)
    with _scope(database, locks) as scope:
        with pytest.raises(LockOrderViolation):
            positions.locked_read(scope, "alice", "AAPL")
        ledger.locked_read(scope, "alice")
        assert positions.locked_read(scope, "alice", "AAPL") == Decimal("0")
        assert scope.holds(position_key("alice", "AAPL"))
    assert locks.active_keys() == 0


def test_reads_in_scope_see_staged_writes_and_commit_applies_them(tmp_path) -> None:
    database, locks, ledger, positions, journal = _stores(tmp_path)
    with _scope(database, locks) as scope:
        ledger.apply_delta(scope, "alice", Decimal("-150.25"))
        positions.apply_delta(scope, "alice", "AAPL", Decimal("1"))
        assert ledger.locked_read(scope, "alice") == Decimal("9849.75")
        assert positions.locked_read(scope, "alice", "AAPL") == Decimal("1")
        # Nothing is visible outside the scope before commit.
        assert ledger.get_balance("alice") == Decimal("10000.00")
        journal.append(scope, _order("o-1"))
        assert scope.staged_writes == 3
        scope.commit()
        assert scope.state is ScopeState.COMMITTED

    assert ledger.get_balance("alice") == Decimal("9849.75")
    assert positions.get_position("alice", "AAPL").shares == Decimal("1")
    assert journal.get_order("alice", "o-1").total_amount == Decimal("150.25")


def test_scope_rolls_back_on_exception_and_on_missing_commit(tmp_path) -> None:
    database, locks, ledger, _, journal = _stores(tmp_path)
    with pytest.raises(KeyError):
        with _scope(database, locks) as scope:
            ledger.apply_delta(scope, "alice", Decimal("-500"))
            raise KeyError("boom")
    assert scope.state is ScopeState.ABORTED

    with _scope(database, locks) as scope:
        ledger.apply_delta(scope, "alice", Decimal("-500"))
        journal.append(scope, _order("o-2"))
    assert scope.state is ScopeState.ABORTED

    assert ledger.get_balance("alice") == Decimal("10000.00")
    assert journal.count() == 0
    assert locks.active_keys() == 0


def test_exhausted_transaction_budget_raises_timeout(tmp_path) -> None:
    database, locks, ledger, _, _ = _stores(tmp_path)
    with _scope(database, locks, transaction_timeout=0.0) as scope:
        with pytest.raises(ConcurrencyTimeout):
            ledger.locked_read(scope, "alice")


def test_orders_are_append_only(tmp_path) -> None:
    database, locks, _, _, journal = _stores(tmp_path)
    with _scope(database, locks) as scope:
        journal.append(scope, _order("o-1"))
        scope.commit()

    conn = sqlite3.connect(str(database.path))
    try:
        with pytest.raises(sqlite3.DatabaseError):
            conn.execute("UPDATE orders SET total_amount = '0' WHERE order_id = 'o-1'")
        with pytest.raises(sqlite3.DatabaseError):
            conn.execute("DELETE FROM orders WHERE order_id = 'o-1'")
    finally:
        conn.close()
    assert journal.count() == 1


def test_journal_lists_most_recent_first(tmp_path) -> None:
    database, locks, _, _, journal = _stores(tmp_path)
    for index in range(3):
        with _scope(database, locks) as scope:
            journal.append(scope, _order(f"o-{index}", shares=str(index + 1)))
            scope.commit()

    assert [order.order_id for order in journal.list_orders("alice")] == ["o-2", "o-1", "o-0"]
    assert [order.order_id for order in journal.list_orders("alice", limit=1, offset=1)] == ["o-1"]
    assert [order.order_id for order in journal.iter_all()] == ["o-0", "o-1", "o-2"]
    with pytest.raises(OrderNotFound):
        journal.get_order("bob", "o-1")


def test_wallet_creation_is_idempotent(tmp_path) -> None:
    _, _, ledger, _, _ = _stores(tmp_path)
    assert not ledger.create_wallet("alice", Decimal("1.00"))
    assert ledger.get_balance("alice") == Decimal("10000.00")
