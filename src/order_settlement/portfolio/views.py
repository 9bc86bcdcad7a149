"""Read-only projections over wallets, positions, the journal and quotes."""

from __future__ import annotations

import logging

from order_settlement.config import HistoryConfig
from order_settlement.contracts import Holding, Order, OrderHistoryPage, PortfolioSnapshot, StockQuote
from order_settlement.errors import InvalidRequest
from order_settlement.numeric import MONEY_QUANTUM, order_total
from order_settlement.pricing import PriceOracle, SymbolNotFound
from order_settlement.storage import LedgerStore, OrderJournal, PositionStore

logger = logging.getLogger(__name__)


class PortfolioReader:
    """
    Unlocked reads for portfolio and history handlers.

    Values are computed at the current quote, so they move with the market
    while the stored balances and shares do not.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        positions: PositionStore,
        journal: OrderJournal,
        oracle: PriceOracle,
        history: HistoryConfig | None = None,
        money_quantum=MONEY_QUANTUM,
    ) -> None:
        self.ledger = ledger
        self.positions = positions
        self.journal = journal
        self.oracle = oracle
        self.history = history or HistoryConfig()
        self.money_quantum = money_quantum

    def get_portfolio(self, user_id: str) -> PortfolioSnapshot:
        balance = self.ledger.get_balance(user_id)
        holdings: list[Holding] = []
        for position in self.positions.list_positions(user_id):
            try:
                quote = self.oracle.get_stock(position.symbol)
            except SymbolNotFound:
                logger.warning("position %s for user=%s has no listed quote; omitted", position.symbol, user_id)
                continue
            holdings.append(
                Holding(
                    symbol=position.symbol,
                    name=quote.name,
                    shares=position.shares,
                    current_price=quote.current_price,
                    value=order_total(position.shares, quote.current_price, self.money_quantum),
                )
            )
        return PortfolioSnapshot(user_id=user_id, balance=balance, holdings=holdings)

    def get_orders(self, user_id: str, limit: int | None = None, offset: int = 0) -> OrderHistoryPage:
        if limit is None:
            limit = self.history.default_page_size
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidRequest("limit must be a positive integer")
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise InvalidRequest("offset must be a non-negative integer")
        limit = min(limit, self.history.max_page_size)
        # One extra row tells us whether another page exists.
        rows = self.journal.list_orders(user_id, limit=limit + 1, offset=offset)
        return OrderHistoryPage(
            user_id=user_id,
            orders=rows[:limit],
            limit=limit,
            offset=offset,
            has_more=len(rows) > limit,
        )

    def get_order(self, user_id: str, order_id: str) -> Order:
        return self.journal.get_order(user_id, order_id)

    def list_stocks(self) -> list[StockQuote]:
        return self.oracle.list_stocks()
