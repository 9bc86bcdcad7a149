"""Transaction scope: row locks plus a staged write set committed as one unit."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Any, Hashable
import logging
import sqlite3
import time

from order_settlement.errors import ConcurrencyTimeout, LockOrderViolation, StorageError

from .database import SQLiteDatabase
from .locks import RowLockManager, wallet_key

logger = logging.getLogger(__name__)


class ScopeState(StrEnum):
    OPEN = "open"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass(slots=True)
class StagedWrite:
    sql: str
    params: tuple[Any, ...]
    expected_rows: int | None = None


class TransactionScope:
    """
    Locked, isolated read-modify-write access to named rows.

    Locks are taken as rows are first read and held until the scope ends.
    Writes are staged in order and only reach the database inside `commit()`,
    within a single `BEGIN IMMEDIATE` transaction. Leaving the scope without a
    successful commit discards every staged write.
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        lock_manager: RowLockManager,
        lock_timeout_seconds: float,
        transaction_timeout_seconds: float,
    ) -> None:
        self.database = database
        self.lock_manager = lock_manager
        self.lock_timeout_seconds = lock_timeout_seconds
        self.deadline = time.monotonic() + transaction_timeout_seconds
        self.state = ScopeState.OPEN
        self._held: list[Hashable] = []
        self._values: dict[Hashable, Decimal | None] = {}
        self._writes: list[StagedWrite] = []
        self._reader: sqlite3.Connection | None = None

    def __enter__(self) -> "TransactionScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.state is ScopeState.OPEN:
            self.rollback()

    def _ensure_open(self) -> None:
        if self.state is not ScopeState.OPEN:
            raise RuntimeError(f"transaction scope is {self.state}")

    def remaining_seconds(self) -> float:
        return self.deadline - time.monotonic()

    def holds(self, key: Hashable) -> bool:
        return key in self._held

    def lock(self, key: Hashable) -> None:
        """Acquire the row lock for `key` (no-op if already held)."""
        self._ensure_open()
        if key in self._held:
            return
        if key[0] == "position" and not self.holds(wallet_key(key[1])):
            raise LockOrderViolation(f"wallet lock for {key[1]!r} must be taken before {key!r}")
        remaining = self.remaining_seconds()
        if remaining <= 0:
            raise ConcurrencyTimeout("Transaction time budget exhausted", details={"key": repr(key)})
        timeout = min(self.lock_timeout_seconds, remaining)
        if not self.lock_manager.acquire(key, timeout):
            logger.info("lock wait on %r exceeded %.3fs", key, timeout)
            raise ConcurrencyTimeout(details={"key": repr(key)})
        self._held.append(key)

    def read_connection(self) -> sqlite3.Connection:
        self._ensure_open()
        if self._reader is None:
            self._reader = self.database.connect()
        return self._reader

    def has_value(self, key: Hashable) -> bool:
        return key in self._values

    def value(self, key: Hashable) -> Decimal | None:
        """Current in-scope value of a locked row (reflects staged writes)."""
        return self._values[key]

    def remember(self, key: Hashable, value: Decimal | None) -> None:
        if not self.holds(key):
            raise RuntimeError(f"row {key!r} is not locked by this scope")
        self._values[key] = value

    def stage(self, sql: str, params: tuple[Any, ...], expected_rows: int | None = None) -> None:
        self._ensure_open()
        self._writes.append(StagedWrite(sql=sql, params=params, expected_rows=expected_rows))

    @property
    def staged_writes(self) -> int:
        return len(self._writes)

    def commit(self) -> None:
        """Apply every staged write atomically, then release the locks."""
        self._ensure_open()
        try:
            if self.remaining_seconds() <= 0:
                raise ConcurrencyTimeout("Transaction time budget exhausted before commit")
            self._close_reader()
            with self.database.write_transaction() as conn:
                for write in self._writes:
                    cursor = conn.execute(write.sql, write.params)
                    if write.expected_rows is not None and cursor.rowcount != write.expected_rows:
                        raise StorageError(
                            details={"statement": write.sql.split()[0], "rowcount": cursor.rowcount}
                        )
        except BaseException:
            self.rollback()
            raise
        self.state = ScopeState.COMMITTED
        self._release_all()

    def rollback(self) -> None:
        if self.state is not ScopeState.OPEN:
            return
        self.state = ScopeState.ABORTED
        self._writes.clear()
        self._values.clear()
        self._close_reader()
        self._release_all()

    def _close_reader(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None

    def _release_all(self) -> None:
        # Reverse acquisition order.
        while self._held:
            self.lock_manager.release(self._held.pop())
