from __future__ import annotations

from decimal import Decimal
import time

from order_settlement import InvalidSymbol, Side, StockQuote
from order_settlement.accounts import AccountProvisioner
from order_settlement.config import ConcurrencyConfig
from order_settlement.contracts import SettlementRequest
from order_settlement.pricing import InMemoryPriceOracle
from order_settlement.settlement import SettlementEngine, SettlementWorkerPool
from order_settlement.storage import SQLiteDatabase, wallet_key


def _engine(tmp_path) -> SettlementEngine:
    oracle = InMemoryPriceOracle()
    oracle.set_quote("AAPL", "150.25", "Apple Inc.")
    engine = SettlementEngine(
        database=SQLiteDatabase(tmp_path / "settlement.db"),
        oracle=oracle,
        concurrency=ConcurrencyConfig(lock_timeout_seconds=5.0),
    )
    provisioner = AccountProvisioner(engine.ledger)
    provisioner.open_account("alice")
    provisioner.open_account("bob")
    return engine


def test_settle_many_keeps_request_order(tmp_path) -> None:
    engine = _engine(tmp_path)
    requests = [
        SettlementRequest("alice", "AAPL", Side.BUY, Decimal("1")),
        SettlementRequest("bob", "ZZZZ", Side.BUY, Decimal("1")),
        SettlementRequest("bob", "AAPL", Side.BUY, Decimal("2")),
    ]
    with SettlementWorkerPool(engine, max_workers=3) as pool:
        outcomes = pool.settle_many(requests)

    assert [outcome.request for outcome in outcomes] == requests
    assert [outcome.ok for outcome in outcomes] == [True, False, True]
    assert isinstance(outcomes[1].error, InvalidSymbol)
    assert outcomes[1].to_dict()["error"]["code"] == "invalid_symbol"
    assert outcomes[2].order.total_amount == Decimal("300.50")


def test_request_cancelled_before_start_has_no_effect(tmp_path) -> None:
    engine = _engine(tmp_path)
    engine.lock_manager.acquire(wallet_key("alice"), timeout=1.0)
    pool = SettlementWorkerPool(engine, max_workers=1)
    try:
        blocked = pool.submit("alice", "AAPL", "BUY", 1)
        queued = pool.submit("bob", "AAPL", "BUY", 1)
        deadline = time.monotonic() + 5.0
        while not blocked.running() and time.monotonic() < deadline:
            time.sleep(0.01)
        assert blocked.running()
        pool.shutdown(wait=False, cancel_pending=True)
        assert queued.cancelled()
    finally:
        engine.lock_manager.release(wallet_key("alice"))

    assert blocked.result(timeout=5.0).user_id == "alice"
    assert engine.journal.count("bob") == 0
    assert engine.ledger.get_balance("bob") == Decimal("10000.00")


class _FlakyFeedOracle(InMemoryPriceOracle):
    def get_stock(self, symbol: str) -> StockQuote:
        if symbol == "BROKEN":
            raise RuntimeError("feed offline")
        return super().get_stock(symbol)


def test_settle_many_reports_unexpected_failures_per_request(tmp_path) -> None:
    oracle = _FlakyFeedOracle()
    oracle.set_quote("AAPL", "150.25", "Apple Inc.")
    engine = SettlementEngine(database=SQLiteDatabase(tmp_path / "settlement.db"), oracle=oracle)
    AccountProvisioner(engine.ledger).open_account("alice")
    requests = [
        SettlementRequest("alice", "BROKEN", Side.BUY, Decimal("1")),
        SettlementRequest("alice", "AAPL", Side.BUY, Decimal("1")),
        SettlementRequest("alice", "AAPL", Side.BUY, Decimal("2")),
    ]
    with SettlementWorkerPool(engine, max_workers=2) as pool:
        outcomes = pool.settle_many(requests)

    assert [outcome.ok for outcome in outcomes] == [False, True, True]
    payload = outcomes[0].to_dict()["error"]
    assert payload == {"code": "internal_error", "message": "Internal server error", "retryable": False}
    assert isinstance(outcomes[0].error.__cause__, RuntimeError)
    assert engine.journal.count("alice") == 2
