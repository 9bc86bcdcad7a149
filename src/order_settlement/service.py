"""Transport-neutral brokerage facade: payload in, (status, body) out."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping
import logging

from .accounts import AccountProvisioner
from .audit import AuditTrail, LoggingAuditSink
from .config import SettlementConfig
from .contracts import SettlementResult
from .errors import InvalidRequest, SettlementError, error_payload
from .numeric import canonical
from .portfolio import PortfolioReader
from .pricing import PriceOracle, SQLitePriceOracle
from .settlement import SettlementEngine
from .storage import RowLockManager, SQLiteDatabase

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ServiceResponse:
    status: int
    body: Any = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class BrokerageService:
    """Handlers for order placement, projections and account opening."""

    def __init__(
        self,
        engine: SettlementEngine,
        reader: PortfolioReader,
        provisioner: AccountProvisioner,
    ) -> None:
        self.engine = engine
        self.reader = reader
        self.provisioner = provisioner

    @staticmethod
    def from_config(config: SettlementConfig, oracle: PriceOracle | None = None) -> "BrokerageService":
        database = SQLiteDatabase(
            config.storage.database_path,
            busy_timeout_seconds=config.storage.busy_timeout_seconds,
        )
        oracle = oracle or SQLitePriceOracle(database)
        audit = AuditTrail.from_path(config.audit.jsonl_path)
        audit.sinks.append(LoggingAuditSink())
        engine = SettlementEngine(
            database=database,
            oracle=oracle,
            lock_manager=RowLockManager(),
            concurrency=config.concurrency,
            retry_policy=config.retry,
            precision=config.precision,
            audit=audit,
        )
        reader = PortfolioReader(
            ledger=engine.ledger,
            positions=engine.positions,
            journal=engine.journal,
            oracle=oracle,
            history=config.history,
            money_quantum=Decimal(config.precision.money_quantum),
        )
        provisioner = AccountProvisioner(engine.ledger, config.accounts.starting_balance)
        return BrokerageService(engine=engine, reader=reader, provisioner=provisioner)

    def place_order(self, user_id: str, payload: Mapping[str, Any]) -> ServiceResponse:
        def handler() -> dict[str, Any]:
            if not isinstance(payload, Mapping):
                raise InvalidRequest("order payload must be an object")
            side = payload.get("order_type", payload.get("side"))
            if side is None:
                raise InvalidRequest("order_type is required")
            if "shares" not in payload:
                raise InvalidRequest("shares is required")
            order = self.engine.settle(user_id, payload.get("symbol"), side, payload["shares"])
            return SettlementResult.from_order(order).to_dict()

        return self._respond("place_order", handler)

    def get_portfolio(self, user_id: str) -> ServiceResponse:
        return self._respond("get_portfolio", lambda: self.reader.get_portfolio(user_id).to_dict())

    def get_orders(self, user_id: str, limit: int | None = None, offset: int = 0) -> ServiceResponse:
        return self._respond("get_orders", lambda: self.reader.get_orders(user_id, limit, offset).to_dict())

    def get_order(self, user_id: str, order_id: str) -> ServiceResponse:
        return self._respond("get_order", lambda: self.reader.get_order(user_id, order_id).to_dict())

    def get_stocks(self) -> ServiceResponse:
        return self._respond("get_stocks", lambda: [quote.to_dict() for quote in self.reader.list_stocks()])

    def open_account(self, user_id: str) -> ServiceResponse:
        def handler() -> dict[str, Any]:
            wallet, created = self.provisioner.open_account(user_id)
            return {"user_id": wallet.user_id, "balance": canonical(wallet.balance), "created": created}

        return self._respond("open_account", handler)

    def health(self) -> str:
        return "OK"

    def _respond(self, operation: str, handler) -> ServiceResponse:
        try:
            return ServiceResponse(status=200, body=handler())
        except SettlementError as exc:
            status, body = error_payload(exc)
            return ServiceResponse(status=status, body=body)
        except Exception as exc:
            logger.exception("unhandled error in %s", operation)
            status, body = error_payload(exc)
            return ServiceResponse(status=status, body=body)
