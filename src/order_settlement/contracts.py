"""Typed records exchanged between the settlement engine and its callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Any

import pandas as pd

from .numeric import canonical


def now_utc() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Side(StrEnum):
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: object) -> "Side":
        """Case-insensitive parse; raises ValueError for anything else."""
        if isinstance(value, Side):
            return value
        if not isinstance(value, str):
            raise ValueError(f"side must be BUY or SELL, got {value!r}")
        return cls(value.strip().upper())


@dataclass(slots=True, frozen=True)
class StockQuote:
    symbol: str
    name: str
    current_price: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "current_price": canonical(self.current_price),
        }


@dataclass(slots=True, frozen=True)
class Wallet:
    user_id: str
    balance: Decimal
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class Position:
    user_id: str
    symbol: str
    shares: Decimal
    updated_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class Order:
    """One settled order. Journal rows are never updated or deleted."""

    order_id: str
    user_id: str
    symbol: str
    side: Side
    shares: Decimal
    price_per_share: Decimal
    total_amount: Decimal
    created_at: datetime = field(default_factory=now_utc)
    sequence: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "user_id": self.user_id,
            "symbol": self.symbol,
            "side": str(self.side),
            "shares": canonical(self.shares),
            "price_per_share": canonical(self.price_per_share),
            "total_amount": canonical(self.total_amount),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class SettlementRequest:
    """Validated, normalized order request."""

    user_id: str
    symbol: str
    side: Side
    shares: Decimal


@dataclass(slots=True, frozen=True)
class SettlementResult:
    """Client-facing confirmation of a settled order."""

    order_id: str
    symbol: str
    side: Side
    shares: Decimal
    price_per_share: Decimal
    total_amount: Decimal
    created_at: datetime

    @staticmethod
    def from_order(order: Order) -> "SettlementResult":
        return SettlementResult(
            order_id=order.order_id,
            symbol=order.symbol,
            side=order.side,
            shares=order.shares,
            price_per_share=order.price_per_share,
            total_amount=order.total_amount,
            created_at=order.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "symbol": self.symbol,
            "side": str(self.side),
            "shares": canonical(self.shares),
            "price_per_share": canonical(self.price_per_share),
            "total_amount": canonical(self.total_amount),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class Holding:
    symbol: str
    name: str
    shares: Decimal
    current_price: Decimal
    value: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "shares": canonical(self.shares),
            "current_price": canonical(self.current_price),
            "value": canonical(self.value),
        }


@dataclass(slots=True, frozen=True)
class PortfolioSnapshot:
    user_id: str
    balance: Decimal
    holdings: list[Holding]

    def to_dict(self) -> dict[str, Any]:
        return {
            "balance": canonical(self.balance),
            "holdings": [holding.to_dict() for holding in self.holdings],
        }

    def to_frame(self) -> pd.DataFrame:
        columns = ["symbol", "name", "shares", "current_price", "value"]
        if not self.holdings:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame(
            [{column: getattr(holding, column) for column in columns} for holding in self.holdings],
            columns=columns,
        )


@dataclass(slots=True, frozen=True)
class OrderHistoryPage:
    """Most-recent-first slice of a user's order journal."""

    user_id: str
    orders: list[Order]
    limit: int
    offset: int
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "orders": [order.to_dict() for order in self.orders],
            "limit": self.limit,
            "offset": self.offset,
            "has_more": self.has_more,
        }

    def to_frame(self) -> pd.DataFrame:
        columns = ["order_id", "symbol", "side", "shares", "price_per_share", "total_amount", "created_at"]
        if not self.orders:
            return pd.DataFrame(columns=columns)
        frame = pd.DataFrame(
            [
                {
                    "order_id": order.order_id,
                    "symbol": order.symbol,
                    "side": str(order.side),
                    "shares": order.shares,
                    "price_per_share": order.price_per_share,
                    "total_amount": order.total_amount,
                    "created_at": order.created_at,
                }
                for order in self.orders
            ],
            columns=columns,
        )
        frame["created_at"] = pd.to_datetime(frame["created_at"], utc=True)
        return frame
