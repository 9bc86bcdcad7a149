"""Walk through a buy/sell session and a concurrent burst against a scratch database."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
import argparse
import json

from order_settlement import BrokerageService, Side, configure_logging, load_config
from order_settlement.contracts import SettlementRequest
from order_settlement.pricing import InMemoryPriceOracle
from order_settlement.settlement import SettlementWorkerPool


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the order settlement demo.")
    parser.add_argument("--config", default="config/settlement.yaml")
    parser.add_argument("--database", default="outputs/settlement_demo.db")
    parser.add_argument("--burst", type=int, default=40, help="Concurrent BUY requests in the burst.")
    args = parser.parse_args()

    config = load_config(args.config)
    config.storage.database_path = args.database
    Path(args.database).unlink(missing_ok=True)
    configure_logging(config.log_level)

    oracle = InMemoryPriceOracle()
    oracle.set_quote("AAPL", "150.25", "Apple Inc.")
    oracle.set_quote("MSFT", "410.10", "Microsoft Corp.")
    service = BrokerageService.from_config(config, oracle=oracle)
    service.open_account("demo")

    steps = [
        {"symbol": "AAPL", "order_type": "BUY", "shares": 10},
        {"symbol": "AAPL", "order_type": "SELL", "shares": 15},
        {"symbol": "ZZZZ", "order_type": "BUY", "shares": 1},
        {"symbol": "AAPL", "order_type": "BUY", "shares": 0},
    ]
    for payload in steps:
        response = service.place_order("demo", payload)
        print(response.status, json.dumps(response.body))

    oracle.set_quote("AAPL", "160.00")
    print(service.place_order("demo", {"symbol": "AAPL", "order_type": "SELL", "shares": 10}).body)

    requests = [SettlementRequest("demo", "MSFT", Side.BUY, Decimal("1")) for _ in range(args.burst)]
    with SettlementWorkerPool(service.engine, max_workers=config.concurrency.max_workers) as pool:
        outcomes = pool.settle_many(requests)
    settled = sum(1 for outcome in outcomes if outcome.ok)
    print(f"Burst: {settled}/{len(outcomes)} settled")

    print("Portfolio:")
    print(service.reader.get_portfolio("demo").to_frame().to_string(index=False))
    print("Recent orders:")
    print(service.reader.get_orders("demo", limit=10).to_frame().to_string(index=False))


if __name__ == "__main__":
    main()
