"""Ledger store: one cash balance per user."""

from __future__ import annotations

from decimal import Decimal

from order_settlement.contracts import Wallet, now_utc
from order_settlement.errors import AccountNotFound
from order_settlement.numeric import canonical, exact_add

from .database import SQLiteDatabase, parse_timestamp, translate_storage_errors
from .locks import wallet_key
from .transaction import TransactionScope


class LedgerStore:
    """Wallet rows. Mutated only through a settlement transaction scope."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self.database = database

    def locked_read(self, scope: TransactionScope, user_id: str) -> Decimal:
        """Lock the user's wallet row for the scope and return its balance."""
        key = wallet_key(user_id)
        scope.lock(key)
        if not scope.has_value(key):
            with translate_storage_errors("ledger.locked_read"):
                row = scope.read_connection().execute(
                    "SELECT balance FROM wallets WHERE user_id = ?", (user_id,)
                ).fetchone()
            scope.remember(key, Decimal(row["balance"]) if row is not None else None)
        balance = scope.value(key)
        if balance is None:
            raise AccountNotFound(details={"user_id": user_id})
        return balance

    def apply_delta(self, scope: TransactionScope, user_id: str, amount: Decimal) -> Decimal:
        """
        Stage `balance += amount` and return the new in-scope balance.

        The caller has already decided the result is acceptable; no
        non-negativity check happens here.
        """
        current = self.locked_read(scope, user_id)
        updated = exact_add(current, amount)
        scope.remember(wallet_key(user_id), updated)
        scope.stage(
            "UPDATE wallets SET balance = ?, updated_at = ? WHERE user_id = ?",
            (canonical(updated), now_utc().isoformat(), user_id),
            expected_rows=1,
        )
        return updated

    def get_balance(self, user_id: str) -> Decimal:
        return self.get_wallet(user_id).balance

    def get_wallet(self, user_id: str) -> Wallet:
        with self.database.reader() as conn:
            row = conn.execute(
                "SELECT user_id, balance, created_at, updated_at FROM wallets WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            raise AccountNotFound(details={"user_id": user_id})
        return Wallet(
            user_id=row["user_id"],
            balance=Decimal(row["balance"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )

    def create_wallet(self, user_id: str, starting_balance: Decimal) -> bool:
        """Insert a wallet if absent; True if a new row was created."""
        stamp = now_utc().isoformat()
        with self.database.write_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO wallets (user_id, balance, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (user_id) DO NOTHING
                """,
                (user_id, canonical(starting_balance), stamp, stamp),
            )
            return cursor.rowcount == 1
