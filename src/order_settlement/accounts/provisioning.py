"""Account provisioning: one wallet per user with a starting balance."""

from __future__ import annotations

from decimal import Decimal
import logging

from order_settlement.contracts import Wallet
from order_settlement.errors import InvalidRequest
from order_settlement.numeric import to_decimal
from order_settlement.storage import LedgerStore

logger = logging.getLogger(__name__)


class AccountProvisioner:
    def __init__(self, ledger: LedgerStore, starting_balance: object = "10000.00") -> None:
        balance = to_decimal(starting_balance)
        if balance < 0:
            raise ValueError("starting balance must be non-negative")
        self.ledger = ledger
        self.starting_balance: Decimal = balance

    def open_account(self, user_id: str) -> tuple[Wallet, bool]:
        """Create the user's wallet if absent. Returns (wallet, created)."""
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidRequest("user_id must be a non-empty identifier")
        user_id = user_id.strip()
        created = self.ledger.create_wallet(user_id, self.starting_balance)
        if created:
            logger.info("opened account for user=%s balance=%s", user_id, self.starting_balance)
        return self.ledger.get_wallet(user_id), created
