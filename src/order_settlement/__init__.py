"""Order settlement engine for a brokerage backend."""

from .config import SettlementConfig, apply_env_overrides, configure_logging, load_config, save_config
from .contracts import (
    Holding,
    Order,
    OrderHistoryPage,
    PortfolioSnapshot,
    SettlementRequest,
    SettlementResult,
    Side,
    StockQuote,
    Wallet,
)
from .errors import (
    AccountNotFound,
    ConcurrencyTimeout,
    InsufficientBalance,
    InsufficientShares,
    InvalidRequest,
    InvalidSymbol,
    LockOrderViolation,
    OrderNotFound,
    SettlementError,
    StorageError,
    error_payload,
)
from .service import BrokerageService, ServiceResponse
from .settlement import SettlementEngine, SettlementOutcome, SettlementWorkerPool

__all__ = [
    "AccountNotFound",
    "BrokerageService",
    "ConcurrencyTimeout",
    "Holding",
    "InsufficientBalance",
    "InsufficientShares",
    "InvalidRequest",
    "InvalidSymbol",
    "LockOrderViolation",
    "Order",
    "OrderHistoryPage",
    "OrderNotFound",
    "PortfolioSnapshot",
    "ServiceResponse",
    "SettlementConfig",
    "SettlementEngine",
    "SettlementError",
    "SettlementOutcome",
    "SettlementRequest",
    "SettlementResult",
    "SettlementWorkerPool",
    "Side",
    "StockQuote",
    "StorageError",
    "Wallet",
    "apply_env_overrides",
    "configure_logging",
    "error_payload",
    "load_config",
    "save_config",
]
