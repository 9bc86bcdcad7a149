"""Transactional storage for wallets, positions, and the order journal."""

from .database import SQLiteDatabase, translate_storage_errors
from .journal import OrderJournal
from .ledger import LedgerStore
from .locks import RowLockManager, position_key, wallet_key
from .positions import PositionStore
from .transaction import ScopeState, TransactionScope

__all__ = [
    "LedgerStore",
    "OrderJournal",
    "PositionStore",
    "RowLockManager",
    "SQLiteDatabase",
    "ScopeState",
    "TransactionScope",
    "position_key",
    "translate_storage_errors",
    "wallet_key",
]
