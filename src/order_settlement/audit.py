"""Settlement audit trail: one event per settlement attempt outcome."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any
import json
import logging
import threading

from .contracts import now_utc

logger = logging.getLogger(__name__)


class AuditOutcome(StrEnum):
    SETTLED = "settled"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(slots=True)
class AuditEvent:
    outcome: AuditOutcome
    user_id: str
    symbol: str | None
    side: str | None
    shares: str | None
    order_id: str | None = None
    error_code: str | None = None
    attempts: int = 1
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=now_utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": str(self.outcome),
            "user_id": self.user_id,
            "symbol": self.symbol,
            "side": self.side,
            "shares": self.shares,
            "order_id": self.order_id,
            "error_code": self.error_code,
            "attempts": self.attempts,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class AuditSink(ABC):
    """Abstract sink for audit events."""

    @abstractmethod
    def send(self, event: AuditEvent) -> None:
        """Deliver one audit event."""


class LoggingAuditSink(AuditSink):
    """Emit audit events through the module logger."""

    def send(self, event: AuditEvent) -> None:
        level = logging.ERROR if event.outcome is AuditOutcome.FAILED else logging.INFO
        logger.log(level, "audit %s", json.dumps(event.to_dict(), default=str, sort_keys=True))


class JsonlAuditSink(AuditSink):
    """Persist audit events as JSONL for incident review."""

    def __init__(self, output_path: str | Path) -> None:
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def send(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), default=str) + "\n"
        with self._lock:
            with self.output_path.open("a", encoding="utf-8") as handle:
                handle.write(line)

    def read_events(self) -> list[dict[str, Any]]:
        if not self.output_path.exists():
            return []
        with self.output_path.open("r", encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]


@dataclass(slots=True)
class AuditTrail:
    """Fan audit events out to every configured sink."""

    sinks: list[AuditSink] = field(default_factory=list)

    def record(self, event: AuditEvent) -> None:
        for sink in self.sinks:
            sink.send(event)

    @staticmethod
    def from_path(path: str | Path | None) -> "AuditTrail":
        if path is None:
            return AuditTrail()
        return AuditTrail(sinks=[JsonlAuditSink(path)])
