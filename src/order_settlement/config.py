"""Settlement service configuration objects and helpers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping
import logging
import os

import yaml


@dataclass(slots=True)
class StorageConfig:
    database_path: str = "outputs/settlement.db"
    busy_timeout_seconds: float = 5.0


@dataclass(slots=True)
class ConcurrencyConfig:
    lock_timeout_seconds: float = 2.0
    transaction_timeout_seconds: float = 5.0
    max_workers: int = 8


@dataclass(slots=True)
class RetryPolicy:
    """Backoff schedule for transient settlement failures."""

    max_attempts: int = 3
    base_delay_seconds: float = 0.05
    max_delay_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    jitter_seconds: float = 0.02

    def delay_for(self, attempt: int) -> float:
        """Return the un-jittered delay after a failed `attempt` (1-based)."""
        delay = self.base_delay_seconds * (self.backoff_multiplier ** max(attempt - 1, 0))
        return min(delay, self.max_delay_seconds)


@dataclass(slots=True)
class AccountConfig:
    starting_balance: str = "10000.00"


@dataclass(slots=True)
class PrecisionConfig:
    money_quantum: str = "0.01"
    share_quantum: str = "0.00000001"
    max_shares: str = "1000000000"


@dataclass(slots=True)
class HistoryConfig:
    default_page_size: int = 50
    max_page_size: int = 500


@dataclass(slots=True)
class AuditConfig:
    jsonl_path: str | None = None


@dataclass(slots=True)
class SettlementConfig:
    log_level: str = "INFO"
    storage: StorageConfig = field(default_factory=StorageConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    accounts: AccountConfig = field(default_factory=AccountConfig)
    precision: PrecisionConfig = field(default_factory=PrecisionConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "SettlementConfig":
        accounts = dict(payload.get("accounts", {}))
        if "starting_balance" in accounts:
            # YAML may hand us a float; keep the written digits.
            accounts["starting_balance"] = str(accounts["starting_balance"])
        precision = {key: str(value) for key, value in payload.get("precision", {}).items()}
        return SettlementConfig(
            log_level=str(payload.get("log_level", "INFO")).upper(),
            storage=StorageConfig(**payload.get("storage", {})),
            concurrency=ConcurrencyConfig(**payload.get("concurrency", {})),
            retry=RetryPolicy(**payload.get("retry", {})),
            accounts=AccountConfig(**accounts),
            precision=PrecisionConfig(**precision),
            history=HistoryConfig(**payload.get("history", {})),
            audit=AuditConfig(**payload.get("audit", {})),
        )


def load_config(path: str | Path) -> SettlementConfig:
    """Load settlement configuration from YAML."""
    file_path = Path(path)
    with file_path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    return SettlementConfig.from_dict(payload)


def save_config(config: SettlementConfig, path: str | Path) -> None:
    """Persist settlement configuration to YAML."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with file_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config.to_dict(), handle, sort_keys=False)


def apply_env_overrides(
    config: SettlementConfig,
    environ: Mapping[str, str] | None = None,
) -> SettlementConfig:
    """Layer SETTLEMENT_* environment variables over a loaded config."""
    env = os.environ if environ is None else environ
    if env.get("SETTLEMENT_DATABASE_PATH"):
        config.storage.database_path = env["SETTLEMENT_DATABASE_PATH"]
    if env.get("SETTLEMENT_LOG_LEVEL"):
        config.log_level = env["SETTLEMENT_LOG_LEVEL"].upper()
    if env.get("SETTLEMENT_STARTING_BALANCE"):
        config.accounts.starting_balance = env["SETTLEMENT_STARTING_BALANCE"]
    if env.get("SETTLEMENT_LOCK_TIMEOUT_SECONDS"):
        config.concurrency.lock_timeout_seconds = float(env["SETTLEMENT_LOCK_TIMEOUT_SECONDS"])
    return config


def configure_logging(level: str = "INFO") -> None:
    """Install one root handler with the service log format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
