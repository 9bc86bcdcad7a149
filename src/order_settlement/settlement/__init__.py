"""Settlement engine and its worker pool."""

from .engine import SettlementEngine
from .workers import SettlementOutcome, SettlementWorkerPool

__all__ = [
    "SettlementEngine",
    "SettlementOutcome",
    "SettlementWorkerPool",
]
