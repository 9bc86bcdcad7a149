"""Thread pool serving concurrent settlement requests."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterable
import logging

from order_settlement.contracts import Order, SettlementRequest
from order_settlement.errors import SettlementError

from .engine import SettlementEngine

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SettlementOutcome:
    request: SettlementRequest
    order: Order | None = None
    error: SettlementError | None = None

    @property
    def ok(self) -> bool:
        return self.order is not None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "user_id": self.request.user_id,
            "symbol": self.request.symbol,
            "side": str(self.request.side),
            "ok": self.ok,
        }
        if self.order is not None:
            payload["order"] = self.order.to_dict()
        if self.error is not None:
            payload["error"] = self.error.to_payload()["error"]
        return payload


class SettlementWorkerPool:
    """
    Run `SettlementEngine.settle` on a bounded set of worker threads.

    Each request settles independently; same-user requests serialize on the
    wallet row lock inside the engine, not in the pool.
    """

    def __init__(self, engine: SettlementEngine, max_workers: int = 8) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.engine = engine
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="settlement")

    def __enter__(self) -> "SettlementWorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)

    def submit(self, user_id: str, symbol: str, side: object, shares: object) -> Future:
        """Queue one settlement; the future resolves to an Order or raises."""
        return self._executor.submit(self.engine.settle, user_id, symbol, side, shares)

    def settle_many(self, requests: Iterable[SettlementRequest]) -> list[SettlementOutcome]:
        """
        Settle requests concurrently; outcomes are returned in request order.

        Every request gets an outcome. Unexpected exceptions are logged and
        reported as a generic `internal_error`.
        """
        pending = [
            (request, self.submit(request.user_id, request.symbol, request.side, request.shares))
            for request in requests
        ]
        outcomes: list[SettlementOutcome] = []
        for request, future in pending:
            try:
                outcomes.append(SettlementOutcome(request=request, order=future.result()))
            except SettlementError as exc:
                outcomes.append(SettlementOutcome(request=request, error=exc))
            except Exception as exc:
                logger.exception("unhandled error settling %s for user=%s", request.symbol, request.user_id)
                failure = SettlementError(details={"exception": type(exc).__name__})
                failure.__cause__ = exc
                outcomes.append(SettlementOutcome(request=request, error=failure))
        settled = sum(1 for outcome in outcomes if outcome.ok)
        logger.info("settle_many finished: %d settled, %d rejected", settled, len(outcomes) - settled)
        return outcomes

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        """Stop accepting work; queued requests that never started have no effect."""
        self._executor.shutdown(wait=wait, cancel_futures=cancel_pending)
