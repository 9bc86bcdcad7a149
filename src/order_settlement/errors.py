"""Settlement error taxonomy and client-facing error payloads."""

from __future__ import annotations

from typing import Any


class SettlementError(Exception):
    """Base class for every failure a settlement caller can observe."""

    code = "internal_error"
    status = 500
    retryable = False
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "retryable": self.retryable,
            }
        }


class InvalidRequest(SettlementError):
    code = "invalid_request"
    status = 400
    default_message = "Invalid order request"


class InvalidSymbol(SettlementError):
    code = "invalid_symbol"
    status = 400
    default_message = "Invalid stock symbol"


class InsufficientBalance(SettlementError):
    code = "insufficient_balance"
    status = 400
    default_message = "Insufficient balance"


class InsufficientShares(SettlementError):
    code = "insufficient_shares"
    status = 400
    default_message = "Insufficient shares"


class AccountNotFound(SettlementError):
    code = "account_not_found"
    status = 404
    default_message = "Account not found"


class OrderNotFound(SettlementError):
    code = "order_not_found"
    status = 404
    default_message = "Order not found"


class ConcurrencyTimeout(SettlementError):
    """Lock wait or transaction budget exceeded; nothing was applied."""

    code = "concurrency_timeout"
    status = 503
    retryable = True
    default_message = "Server busy, retry the request"


class StorageError(SettlementError):
    """Store unavailable or commit failed; nothing was applied."""

    code = "storage_error"
    status = 500
    retryable = True
    default_message = "Storage error"


class LockOrderViolation(RuntimeError):
    """Raised when a position lock is requested before the owner's wallet lock."""


def error_payload(exc: BaseException) -> tuple[int, dict[str, Any]]:
    """Map any exception to a stable (status, body) pair."""
    if isinstance(exc, SettlementError):
        return exc.status, exc.to_payload()
    return SettlementError.status, SettlementError().to_payload()
