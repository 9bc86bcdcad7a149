from __future__ import annotations

import logging

from order_settlement import SettlementConfig, apply_env_overrides, configure_logging, load_config, save_config
from order_settlement.config import RetryPolicy


def test_config_roundtrip(tmp_path) -> None:
    config = SettlementConfig()
    config.storage.database_path = str(tmp_path / "ledger.db")
    config.concurrency.max_workers = 4
    config.audit.jsonl_path = str(tmp_path / "audit.jsonl")
    path = tmp_path / "settlement.yaml"
    save_config(config, path)
    loaded = load_config(path)
    assert loaded.to_dict() == config.to_dict()


def test_config_from_yaml_keeps_decimal_text(tmp_path) -> None:
    path = tmp_path / "settlement.yaml"
    path.write_text(
        "log_level: debug\n"
        "accounts:\n"
        "  starting_balance: 2500.5\n"
        "precision:\n"
        "  money_quantum: 0.01\n"
        "retry:\n"
        "  max_attempts: 5\n",
        encoding="utf-8",
    )
    config = load_config(path)
    assert config.log_level == "DEBUG"
    assert config.accounts.starting_balance == "2500.5"
    assert config.precision.money_quantum == "0.01"
    assert config.precision.share_quantum == "0.00000001"
    assert config.precision.max_shares == "1000000000"
    assert config.retry.max_attempts == 5
    assert config.history.default_page_size == 50


def test_env_overrides_take_precedence() -> None:
    config = apply_env_overrides(
        SettlementConfig(),
        {
            "SETTLEMENT_DATABASE_PATH": "/var/lib/settlement/prod.db",
            "SETTLEMENT_LOG_LEVEL": "warning",
            "SETTLEMENT_STARTING_BALANCE": "500.00",
            "SETTLEMENT_LOCK_TIMEOUT_SECONDS": "0.5",
            "UNRELATED": "ignored",
        },
    )
    assert config.storage.database_path == "/var/lib/settlement/prod.db"
    assert config.log_level == "WARNING"
    assert config.accounts.starting_balance == "500.00"
    assert config.concurrency.lock_timeout_seconds == 0.5


def test_retry_backoff_is_capped() -> None:
    policy = RetryPolicy(base_delay_seconds=0.1, max_delay_seconds=0.3, backoff_multiplier=2.0)
    assert [policy.delay_for(attempt) for attempt in (1, 2, 3, 4)] == [0.1, 0.2, 0.3, 0.3]


def test_configure_logging_accepts_unknown_level() -> None:
    configure_logging("not-a-level")
    assert logging.getLogger("order_settlement").getEffectiveLevel() <= logging.WARNING
