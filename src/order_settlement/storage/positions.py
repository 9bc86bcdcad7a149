"""Position store: share count per (user, symbol)."""

from __future__ import annotations

from decimal import Decimal

from order_settlement.contracts import Position, now_utc
from order_settlement.numeric import ZERO, canonical, exact_add

from .database import SQLiteDatabase, parse_timestamp, translate_storage_errors
from .locks import position_key
from .transaction import TransactionScope


class PositionStore:
    """Position rows are created on first BUY and never deleted."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self.database = database

    def locked_read(self, scope: TransactionScope, user_id: str, symbol: str) -> Decimal:
        """Lock the (user, symbol) row and return its shares; zero if absent.

        The scope must already hold the user's wallet lock.
        """
        key = position_key(user_id, symbol)
        scope.lock(key)
        if not scope.has_value(key):
            with translate_storage_errors("positions.locked_read"):
                row = scope.read_connection().execute(
                    "SELECT shares FROM positions WHERE user_id = ? AND symbol = ?",
                    (user_id, symbol),
                ).fetchone()
            scope.remember(key, Decimal(row["shares"]) if row is not None else None)
        shares = scope.value(key)
        return ZERO if shares is None else shares

    def apply_delta(self, scope: TransactionScope, user_id: str, symbol: str, shares: Decimal) -> Decimal:
        """Stage an upsert of `shares += delta`; the caller guarantees the result is >= 0."""
        current = self.locked_read(scope, user_id, symbol)
        updated = exact_add(current, shares)
        scope.remember(position_key(user_id, symbol), updated)
        stamp = now_utc().isoformat()
        scope.stage(
            """
            INSERT INTO positions (user_id, symbol, shares, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (user_id, symbol) DO UPDATE SET shares = excluded.shares, updated_at = excluded.updated_at
            """,
            (user_id, symbol, canonical(updated), stamp),
            expected_rows=1,
        )
        return updated

    def get_position(self, user_id: str, symbol: str) -> Position | None:
        with self.database.reader() as conn:
            row = conn.execute(
                "SELECT user_id, symbol, shares, updated_at FROM positions WHERE user_id = ? AND symbol = ?",
                (user_id, symbol),
            ).fetchone()
        return _to_position(row) if row is not None else None

    def list_positions(self, user_id: str, include_zero: bool = False) -> list[Position]:
        with self.database.reader() as conn:
            rows = conn.execute(
                "SELECT user_id, symbol, shares, updated_at FROM positions WHERE user_id = ? ORDER BY symbol",
                (user_id,),
            ).fetchall()
        positions = [_to_position(row) for row in rows]
        if include_zero:
            return positions
        return [position for position in positions if position.shares > ZERO]


def _to_position(row) -> Position:
    return Position(
        user_id=row["user_id"],
        symbol=row["symbol"],
        shares=Decimal(row["shares"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )
