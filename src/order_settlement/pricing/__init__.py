"""Price oracle implementations."""

from .oracle import InMemoryPriceOracle, PriceOracle, SQLitePriceOracle, SymbolNotFound, normalize_symbol

__all__ = [
    "InMemoryPriceOracle",
    "PriceOracle",
    "SQLitePriceOracle",
    "SymbolNotFound",
    "normalize_symbol",
]
