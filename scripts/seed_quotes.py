"""Load listed symbols and prices from YAML into the settlement database."""

from __future__ import annotations

from pathlib import Path
import argparse

import yaml

from order_settlement import apply_env_overrides, configure_logging, load_config
from order_settlement.pricing import SQLitePriceOracle
from order_settlement.storage import SQLiteDatabase


def _load_yaml(path: str | Path) -> dict:
    with Path(path).open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed stock quotes into the settlement database.")
    parser.add_argument("--config", default="config/settlement.yaml")
    parser.add_argument("--quotes", default="config/quotes.yaml")
    args = parser.parse_args()

    config = apply_env_overrides(load_config(args.config))
    configure_logging(config.log_level)
    database = SQLiteDatabase(config.storage.database_path, busy_timeout_seconds=config.storage.busy_timeout_seconds)
    oracle = SQLitePriceOracle(database)

    for row in _load_yaml(args.quotes).get("stocks", []):
        # Prices are quoted strings in the file so they stay exact.
        quote = oracle.upsert_quote(row["symbol"], row["name"], str(row["current_price"]))
        print(f"{quote.symbol:<6} {quote.name:<28} {quote.current_price}")


if __name__ == "__main__":
    main()
