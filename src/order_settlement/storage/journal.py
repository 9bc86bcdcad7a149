"""Append-only order journal."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from order_settlement.contracts import Order, Side
from order_settlement.errors import OrderNotFound
from order_settlement.numeric import canonical

from .database import SQLiteDatabase
from .transaction import TransactionScope

_COLUMNS = "seq, order_id, user_id, symbol, side, shares, price_per_share, total_amount, created_at"


class OrderJournal:
    """Insert is the only mutation; the schema rejects UPDATE and DELETE."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self.database = database

    def append(self, scope: TransactionScope, order: Order) -> str:
        scope.stage(
            """
            INSERT INTO orders (order_id, user_id, symbol, side, shares, price_per_share, total_amount, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                order.order_id,
                order.user_id,
                order.symbol,
                str(order.side),
                canonical(order.shares),
                canonical(order.price_per_share),
                canonical(order.total_amount),
                order.created_at.isoformat(),
            ),
            expected_rows=1,
        )
        return order.order_id

    def list_orders(self, user_id: str, limit: int = 50, offset: int = 0) -> list[Order]:
        """Most recent commit first."""
        with self.database.reader() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM orders WHERE user_id = ? ORDER BY seq DESC LIMIT ? OFFSET ?",
                (user_id, limit, offset),
            ).fetchall()
        return [_to_order(row) for row in rows]

    def get_order(self, user_id: str, order_id: str) -> Order:
        with self.database.reader() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM orders WHERE order_id = ? AND user_id = ?",
                (order_id, user_id),
            ).fetchone()
        if row is None:
            raise OrderNotFound(details={"order_id": order_id})
        return _to_order(row)

    def iter_all(self) -> list[Order]:
        """Every journaled order in commit order."""
        with self.database.reader() as conn:
            rows = conn.execute(f"SELECT {_COLUMNS} FROM orders ORDER BY seq ASC").fetchall()
        return [_to_order(row) for row in rows]

    def count(self, user_id: str | None = None) -> int:
        with self.database.reader() as conn:
            if user_id is None:
                row = conn.execute("SELECT COUNT(*) FROM orders").fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM orders WHERE user_id = ?", (user_id,)).fetchone()
        return int(row[0])


def _to_order(row) -> Order:
    return Order(
        order_id=row["order_id"],
        user_id=row["user_id"],
        symbol=row["symbol"],
        side=Side(row["side"]),
        shares=Decimal(row["shares"]),
        price_per_share=Decimal(row["price_per_share"]),
        total_amount=Decimal(row["total_amount"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        sequence=int(row["seq"]),
    )
