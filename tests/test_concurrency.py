from __future__ import annotations

from decimal import Decimal
import random
import threading
import time

from order_settlement import InsufficientBalance, Side
from order_settlement.accounts import AccountProvisioner
from order_settlement.config import ConcurrencyConfig
from order_settlement.contracts import SettlementRequest
from order_settlement.pricing import InMemoryPriceOracle
from order_settlement.settlement import SettlementEngine, SettlementWorkerPool
from order_settlement.storage import SQLiteDatabase, wallet_key


def _build(tmp_path, users: list[str], **kwargs) -> SettlementEngine:
    oracle = InMemoryPriceOracle()
    oracle.set_quote("AAPL", "150.25", "Apple Inc.")
    oracle.set_quote("MSFT", "100.00", "Microsoft Corp.")
    engine = SettlementEngine(database=SQLiteDatabase(tmp_path / "settlement.db"), oracle=oracle, **kwargs)
    provisioner = AccountProvisioner(engine.ledger)
    for user_id in users:
        provisioner.open_account(user_id)
    return engine


def test_concurrent_overspending_buys_settle_exactly_once(tmp_path) -> None:
    engine = _build(tmp_path, ["alice"])
    requests = [SettlementRequest("alice", "MSFT", Side.BUY, Decimal("60")) for _ in range(2)]
    with SettlementWorkerPool(engine, max_workers=2) as pool:
        outcomes = pool.settle_many(requests)

    assert sum(1 for outcome in outcomes if outcome.ok) == 1
    failed = [outcome for outcome in outcomes if not outcome.ok]
    assert len(failed) == 1
    assert isinstance(failed[0].error, InsufficientBalance)
    assert engine.ledger.get_balance("alice") == Decimal("4000.00")
    assert engine.positions.get_position("alice", "MSFT").shares == Decimal("60")
    assert engine.journal.count("alice") == 1


def test_same_user_settlements_serialize_without_lost_updates(tmp_path) -> None:
    engine = _build(tmp_path, ["alice"])
    requests = [SettlementRequest("alice", "AAPL", Side.BUY, Decimal("1")) for _ in range(20)]
    with SettlementWorkerPool(engine, max_workers=8) as pool:
        outcomes = pool.settle_many(requests)

    assert all(outcome.ok for outcome in outcomes)
    assert engine.ledger.get_balance("alice") == Decimal("6995.00")
    assert engine.positions.get_position("alice", "AAPL").shares == Decimal("20")
    sequences = [order.sequence for order in engine.journal.iter_all()]
    assert sequences == sorted(sequences)
    assert len(set(sequences)) == 20


def test_conservation_under_mixed_concurrent_load(tmp_path) -> None:
    users = ["alice", "bob", "carol", "dave"]
    engine = _build(tmp_path, users)
    rng = random.Random(7)
    requests = [
        SettlementRequest(
            user_id=rng.choice(users),
            symbol=rng.choice(["AAPL", "MSFT"]),
            side=rng.choice([Side.BUY, Side.BUY, Side.SELL]),
            shares=Decimal(rng.choice(["1", "2.5", "7", "0.25"])),
        )
        for _ in range(120)
    ]
    with SettlementWorkerPool(engine, max_workers=8) as pool:
        outcomes = pool.settle_many(requests)
    assert any(outcome.ok for outcome in outcomes)

    for user_id in users:
        cash = Decimal("10000.00")
        held: dict[str, Decimal] = {"AAPL": Decimal("0"), "MSFT": Decimal("0")}
        for order in engine.journal.iter_all():
            if order.user_id != user_id:
                continue
            sign = 1 if order.side is Side.BUY else -1
            cash -= sign * order.total_amount
            held[order.symbol] += sign * order.shares
        assert engine.ledger.get_balance(user_id) == cash
        assert engine.ledger.get_balance(user_id) >= 0
        for position in engine.positions.list_positions(user_id, include_zero=True):
            assert position.shares == held[position.symbol]
            assert position.shares >= 0
    assert engine.lock_manager.active_keys() == 0


def test_other_users_do_not_wait_on_a_held_wallet(tmp_path) -> None:
    engine = _build(tmp_path, ["alice", "bob"], concurrency=ConcurrencyConfig(lock_timeout_seconds=5.0))
    engine.lock_manager.acquire(wallet_key("alice"), timeout=1.0)
    try:
        started = time.monotonic()
        order = engine.settle("bob", "AAPL", "BUY", 1)
        elapsed = time.monotonic() - started
    finally:
        engine.lock_manager.release(wallet_key("alice"))
    assert order.user_id == "bob"
    assert elapsed < 2.0


def test_waiting_settlement_proceeds_once_the_lock_is_released(tmp_path) -> None:
    engine = _build(tmp_path, ["alice"], concurrency=ConcurrencyConfig(lock_timeout_seconds=5.0))
    engine.lock_manager.acquire(wallet_key("alice"), timeout=1.0)
    results: list[object] = []

    worker = threading.Thread(target=lambda: results.append(engine.settle("alice", "AAPL", "BUY", 1)))
    worker.start()
    time.sleep(0.1)
    assert not results
    engine.lock_manager.release(wallet_key("alice"))
    worker.join(timeout=5.0)

    assert len(results) == 1
    assert engine.ledger.get_balance("alice") == Decimal("9849.75")
