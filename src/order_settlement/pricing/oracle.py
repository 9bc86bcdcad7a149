"""Price oracle: current quote per symbol, read-only from the engine's side."""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Iterable
import threading

from order_settlement.contracts import StockQuote, now_utc
from order_settlement.numeric import canonical, to_decimal
from order_settlement.storage.database import SQLiteDatabase


class SymbolNotFound(LookupError):
    """Raised when a symbol has no listed quote."""


def normalize_symbol(symbol: object) -> str:
    """Canonical uppercase form used for storage, lookup and output."""
    if not isinstance(symbol, str) or not symbol.strip():
        raise ValueError(f"symbol must be a non-empty string, got {symbol!r}")
    return symbol.strip().upper()


class PriceOracle(ABC):
    """Quote source interface."""

    @abstractmethod
    def get_stock(self, symbol: str) -> StockQuote:
        """Return the listed quote for `symbol` or raise SymbolNotFound."""

    @abstractmethod
    def list_stocks(self) -> list[StockQuote]:
        """Return every listed quote ordered by symbol."""

    def quote(self, symbol: str) -> Decimal:
        return self.get_stock(normalize_symbol(symbol)).current_price


class InMemoryPriceOracle(PriceOracle):
    """Thread-safe dictionary of quotes for tests and single-process runs."""

    def __init__(self, quotes: Iterable[StockQuote] | None = None) -> None:
        self._lock = threading.Lock()
        self._quotes: dict[str, StockQuote] = {}
        for quote in quotes or []:
            self.set_quote(quote.symbol, quote.current_price, quote.name)

    def set_quote(self, symbol: str, price: object, name: str | None = None) -> StockQuote:
        key = normalize_symbol(symbol)
        with self._lock:
            existing = self._quotes.get(key)
            quote = StockQuote(
                symbol=key,
                name=name or (existing.name if existing else key),
                current_price=to_decimal(price),
            )
            self._quotes[key] = quote
        return quote

    def get_stock(self, symbol: str) -> StockQuote:
        key = normalize_symbol(symbol)
        with self._lock:
            quote = self._quotes.get(key)
        if quote is None:
            raise SymbolNotFound(key)
        return quote

    def list_stocks(self) -> list[StockQuote]:
        with self._lock:
            return [self._quotes[key] for key in sorted(self._quotes)]


class SQLitePriceOracle(PriceOracle):
    """Quotes kept in the `stocks` table of the settlement database."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self.database = database

    def get_stock(self, symbol: str) -> StockQuote:
        key = normalize_symbol(symbol)
        with self.database.reader() as conn:
            row = conn.execute(
                "SELECT symbol, name, current_price FROM stocks WHERE symbol = ?", (key,)
            ).fetchone()
        if row is None:
            raise SymbolNotFound(key)
        return StockQuote(symbol=row["symbol"], name=row["name"], current_price=Decimal(row["current_price"]))

    def list_stocks(self) -> list[StockQuote]:
        with self.database.reader() as conn:
            rows = conn.execute("SELECT symbol, name, current_price FROM stocks ORDER BY symbol").fetchall()
        return [
            StockQuote(symbol=row["symbol"], name=row["name"], current_price=Decimal(row["current_price"]))
            for row in rows
        ]

    def upsert_quote(self, symbol: str, name: str, price: object) -> StockQuote:
        """Feed boundary: record the latest price for a listed symbol."""
        quote = StockQuote(symbol=normalize_symbol(symbol), name=name, current_price=to_decimal(price))
        with self.database.write_transaction() as conn:
            conn.execute(
                """
                INSERT INTO stocks (symbol, name, current_price, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (symbol) DO UPDATE SET
                    name = excluded.name,
                    current_price = excluded.current_price,
                    updated_at = excluded.updated_at
                """,
                (quote.symbol, quote.name, canonical(quote.current_price), now_utc().isoformat()),
            )
        return quote
