"""SQLite connection management, schema, and storage error translation."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator
import logging
import sqlite3

from order_settlement.errors import ConcurrencyTimeout, StorageError

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS stocks (
    symbol TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    current_price TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);

CREATE TABLE IF NOT EXISTS wallets (
    user_id TEXT PRIMARY KEY,
    balance TEXT NOT NULL CHECK (CAST(balance AS REAL) >= 0),
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);

CREATE TABLE IF NOT EXISTS positions (
    user_id TEXT NOT NULL REFERENCES wallets(user_id),
    symbol TEXT NOT NULL,
    shares TEXT NOT NULL CHECK (CAST(shares AS REAL) >= 0),
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (user_id, symbol)
);

CREATE TABLE IF NOT EXISTS orders (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL REFERENCES wallets(user_id),
    symbol TEXT NOT NULL,
    side TEXT NOT NULL CHECK (side IN ('BUY', 'SELL')),
    shares TEXT NOT NULL,
    price_per_share TEXT NOT NULL,
    total_amount TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_user_seq ON orders(user_id, seq);

CREATE TRIGGER IF NOT EXISTS orders_no_update
BEFORE UPDATE ON orders
BEGIN
    SELECT RAISE(ABORT, 'orders are append-only');
END;

CREATE TRIGGER IF NOT EXISTS orders_no_delete
BEFORE DELETE ON orders
BEGIN
    SELECT RAISE(ABORT, 'orders are append-only');
END;
"""


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _is_busy(exc: sqlite3.Error) -> bool:
    text = str(exc).lower()
    return "locked" in text or "busy" in text


@contextmanager
def translate_storage_errors(operation: str) -> Iterator[None]:
    """Re-raise sqlite3 failures as settlement errors without leaking detail."""
    try:
        yield
    except sqlite3.OperationalError as exc:
        if _is_busy(exc):
            logger.warning("storage busy during %s: %s", operation, exc)
            raise ConcurrencyTimeout(details={"operation": operation}) from exc
        logger.error("storage failure during %s: %s", operation, exc)
        raise StorageError(details={"operation": operation}) from exc
    except sqlite3.Error as exc:
        logger.error("storage failure during %s: %s", operation, exc)
        raise StorageError(details={"operation": operation}) from exc


class SQLiteDatabase:
    """
    File-backed SQLite store shared by the ledger, positions, journal and quotes.

    Connections are opened per unit of work in autocommit mode; write units
    use `BEGIN IMMEDIATE` so that a commit either applies every staged
    statement or none of them.
    """

    def __init__(self, path: str | Path, busy_timeout_seconds: float = 5.0) -> None:
        if str(path) == ":memory:":
            raise ValueError("SQLiteDatabase needs a file path; each connection would see its own :memory: db.")
        self.path = Path(path)
        self.busy_timeout_seconds = busy_timeout_seconds
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_seconds,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    def _init_db(self) -> None:
        with translate_storage_errors("init_schema"):
            conn = self.connect()
            try:
                conn.executescript(SCHEMA)
            finally:
                conn.close()

    @contextmanager
    def reader(self) -> Iterator[sqlite3.Connection]:
        """Autocommit connection for point reads and projections."""
        with translate_storage_errors("read"):
            conn = self.connect()
            try:
                yield conn
            finally:
                conn.close()

    @contextmanager
    def write_transaction(self) -> Iterator[sqlite3.Connection]:
        """Single atomic write unit: COMMIT on clean exit, ROLLBACK otherwise."""
        with translate_storage_errors("write"):
            conn = self.connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            finally:
                conn.close()
