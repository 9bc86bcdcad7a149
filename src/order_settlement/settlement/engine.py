"""Order settlement engine: one atomic cash/position/journal unit per order."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Callable
from uuid import uuid4
import logging
import random
import time

from order_settlement.audit import AuditEvent, AuditOutcome, AuditTrail
from order_settlement.config import ConcurrencyConfig, PrecisionConfig, RetryPolicy
from order_settlement.contracts import Order, SettlementRequest, Side, now_utc
from order_settlement.errors import (
    ConcurrencyTimeout,
    InsufficientBalance,
    InsufficientShares,
    InvalidRequest,
    InvalidSymbol,
    SettlementError,
    StorageError,
)
from order_settlement.numeric import ZERO, canonical, fits_quantum, order_total, to_decimal
from order_settlement.pricing import PriceOracle, SymbolNotFound, normalize_symbol
from order_settlement.storage import (
    LedgerStore,
    OrderJournal,
    PositionStore,
    RowLockManager,
    SQLiteDatabase,
    TransactionScope,
)

logger = logging.getLogger(__name__)


class SettlementEngine:
    """
    Settle BUY/SELL requests against the oracle's snapshot price.

    Per attempt: open a scope, lock the wallet then the position, validate,
    stage both deltas and the journal row, commit. Any failure before the
    commit completes leaves no trace. Transient failures are retried from the
    scope opening with the same snapshot price.
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        oracle: PriceOracle,
        lock_manager: RowLockManager | None = None,
        concurrency: ConcurrencyConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        precision: PrecisionConfig | None = None,
        audit: AuditTrail | None = None,
        clock: Callable[[], datetime] = now_utc,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.database = database
        self.oracle = oracle
        self.lock_manager = lock_manager or RowLockManager()
        self.concurrency = concurrency or ConcurrencyConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        precision = precision or PrecisionConfig()
        self.money_quantum = Decimal(precision.money_quantum)
        self.share_quantum = Decimal(precision.share_quantum)
        self.max_shares = Decimal(precision.max_shares)
        self.audit = audit or AuditTrail()
        self.clock = clock
        self.sleep = sleep
        self.ledger = LedgerStore(database)
        self.positions = PositionStore(database)
        self.journal = OrderJournal(database)

    def open_scope(self) -> TransactionScope:
        return TransactionScope(
            database=self.database,
            lock_manager=self.lock_manager,
            lock_timeout_seconds=self.concurrency.lock_timeout_seconds,
            transaction_timeout_seconds=self.concurrency.transaction_timeout_seconds,
        )

    def validate(self, user_id: object, symbol: object, side: object, shares: object) -> SettlementRequest:
        """Check the request shape without touching storage."""
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidRequest("user_id must be a non-empty identifier")
        try:
            parsed_side = Side.parse(side)
        except ValueError as exc:
            raise InvalidRequest("order side must be BUY or SELL") from exc
        try:
            quantity = to_decimal(shares)
        except (TypeError, ValueError) as exc:
            raise InvalidRequest("shares must be a decimal quantity") from exc
        if quantity <= ZERO:
            raise InvalidRequest("shares must be positive")
        if quantity > self.max_shares:
            raise InvalidRequest(f"shares must not exceed {canonical(self.max_shares)}")
        if not fits_quantum(quantity, self.share_quantum):
            raise InvalidRequest(f"shares support at most {-self.share_quantum.as_tuple().exponent} decimal places")
        try:
            normalized = normalize_symbol(symbol)
        except ValueError as exc:
            raise InvalidSymbol() from exc
        return SettlementRequest(user_id=user_id.strip(), symbol=normalized, side=parsed_side, shares=quantity)

    def snapshot_price(self, symbol: str) -> Decimal:
        try:
            price = self.oracle.quote(symbol)
        except SymbolNotFound as exc:
            raise InvalidSymbol(details={"symbol": symbol}) from exc
        if price <= ZERO:
            raise InvalidSymbol("Symbol is not tradable", details={"symbol": symbol})
        return price

    def settle(self, user_id: object, symbol: object, side: object, shares: object) -> Order:
        """Validate, price, and atomically settle one order."""
        request: SettlementRequest | None = None
        attempts = 0
        try:
            request = self.validate(user_id, symbol, side, shares)
            price = self.snapshot_price(request.symbol)
            try:
                total = order_total(request.shares, price, self.money_quantum)
            except ArithmeticError as exc:
                raise InvalidRequest(
                    "order value exceeds supported precision",
                    details={"symbol": request.symbol, "price": canonical(price)},
                ) from exc
            while True:
                attempts += 1
                try:
                    order = self._settle_once(request, price, total)
                    break
                except (ConcurrencyTimeout, StorageError) as exc:
                    if attempts >= self.retry_policy.max_attempts:
                        raise
                    delay = self.retry_policy.delay_for(attempts)
                    delay += random.uniform(0.0, self.retry_policy.jitter_seconds)
                    logger.warning(
                        "settlement attempt %d for user=%s %s %s failed with %s; retrying in %.3fs",
                        attempts,
                        request.user_id,
                        request.side,
                        request.symbol,
                        exc.code,
                        delay,
                    )
                    self.sleep(delay)
        except SettlementError as exc:
            self._record_failure(exc, request, user_id, symbol, side, shares, attempts)
            raise
        logger.info(
            "settled %s %s %s @ %s total=%s user=%s order_id=%s",
            order.side,
            canonical(order.shares),
            order.symbol,
            canonical(order.price_per_share),
            canonical(order.total_amount),
            order.user_id,
            order.order_id,
        )
        self.audit.record(
            AuditEvent(
                outcome=AuditOutcome.SETTLED,
                user_id=order.user_id,
                symbol=order.symbol,
                side=str(order.side),
                shares=canonical(order.shares),
                order_id=order.order_id,
                attempts=attempts,
                details={"price_per_share": canonical(order.price_per_share), "total_amount": canonical(order.total_amount)},
            )
        )
        return order

    def settle_request(self, request: SettlementRequest) -> Order:
        return self.settle(request.user_id, request.symbol, request.side, request.shares)

    def _settle_once(self, request: SettlementRequest, price: Decimal, total: Decimal) -> Order:
        user_id, symbol, shares = request.user_id, request.symbol, request.shares
        with self.open_scope() as scope:
            # Lock order: wallet row first, then the position row.
            balance = self.ledger.locked_read(scope, user_id)
            held = self.positions.locked_read(scope, user_id, symbol)
            if request.side is Side.BUY:
                if balance < total:
                    raise InsufficientBalance(
                        details={"balance": canonical(balance), "required": canonical(total)}
                    )
                self.ledger.apply_delta(scope, user_id, total.copy_negate())
                self.positions.apply_delta(scope, user_id, symbol, shares)
            else:
                if held < shares:
                    raise InsufficientShares(details={"held": canonical(held), "requested": canonical(shares)})
                self.positions.apply_delta(scope, user_id, symbol, shares.copy_negate())
                self.ledger.apply_delta(scope, user_id, total)
            order = Order(
                order_id=uuid4().hex,
                user_id=user_id,
                symbol=symbol,
                side=request.side,
                shares=shares,
                price_per_share=price,
                total_amount=total,
                created_at=self.clock(),
            )
            self.journal.append(scope, order)
            scope.commit()
        return order

    def _record_failure(
        self,
        exc: SettlementError,
        request: SettlementRequest | None,
        user_id: object,
        symbol: object,
        side: object,
        shares: object,
        attempts: int,
    ) -> None:
        outcome = AuditOutcome.FAILED if exc.retryable else AuditOutcome.REJECTED
        if exc.retryable:
            logger.error("settlement failed after %d attempt(s): %s %s", attempts, exc.code, exc.details)
        else:
            logger.info("settlement rejected: %s %s", exc.code, exc.message)
        self.audit.record(
            AuditEvent(
                outcome=outcome,
                user_id=request.user_id if request else str(user_id),
                symbol=request.symbol if request else (str(symbol) if symbol is not None else None),
                side=str(request.side) if request else (str(side) if side is not None else None),
                shares=canonical(request.shares) if request else (str(shares) if shares is not None else None),
                error_code=exc.code,
                attempts=max(attempts, 1),
                details=dict(exc.details),
            )
        )
