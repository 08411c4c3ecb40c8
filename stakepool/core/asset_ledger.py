"""
Asset ledger interface consumed by the pool, plus a reference token ledger.

The pool only ever moves assets through transfer_from / transfer and reads
custody through balance_of. TokenLedger is an ERC-20 style implementation
(balances + allowances) used by the node and tests.
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple
import logging

from protocol.types.common import InsufficientFunds, InsufficientAllowance, InvalidAmount
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)


class AssetLedger(ABC):
    @abstractmethod
    def transfer_from(self, payer: str, pool: str, amount: int) -> None:
        """Moves `amount` from payer to pool. Requires funds and prior approval."""

    @abstractmethod
    def transfer(self, pool: str, recipient: str, amount: int) -> None:
        """Moves `amount` out of the pool's custody."""

    @abstractmethod
    def balance_of(self, account: str) -> int:
        """Current custodied amount of `account`."""


class TokenLedger(AssetLedger):
    """
    Fungible token with balances and allowances.

    When a StorageDB is given, every mutation is written through so the node
    can restart with the same balances.
    """

    BALANCE_PREFIX = "tok:bal:"
    ALLOWANCE_PREFIX = "tok:allow:"

    def __init__(self, db: Optional[StorageDB] = None):
        self.db = db
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.total_supply = 0
        if db is not None:
            self._load()

    def _load(self):
        for key, value in self.db.get_state_by_prefix(self.BALANCE_PREFIX).items():
            self.balances[key[len(self.BALANCE_PREFIX):]] = int(value)
        for key, value in self.db.get_state_by_prefix(self.ALLOWANCE_PREFIX).items():
            owner, spender = key[len(self.ALLOWANCE_PREFIX):].split(":", 1)
            self.allowances[(owner, spender)] = int(value)
        self.total_supply = sum(self.balances.values())

    def _set_balance(self, account: str, value: int):
        self.balances[account] = value
        if self.db is not None:
            self.db.set_state(f"{self.BALANCE_PREFIX}{account}", str(value))

    def _set_allowance(self, owner: str, spender: str, value: int):
        self.allowances[(owner, spender)] = value
        if self.db is not None:
            self.db.set_state(f"{self.ALLOWANCE_PREFIX}{owner}:{spender}", str(value))

    def _move(self, sender: str, recipient: str, amount: int):
        if amount < 0:
            raise InvalidAmount("Transfer amount must be non-negative", amount=amount)
        have = self.balances.get(sender, 0)
        if have < amount:
            raise InsufficientFunds(f"Insufficient balance: have {have}, need {amount}")
        self._set_balance(sender, have - amount)
        self._set_balance(recipient, self.balances.get(recipient, 0) + amount)

    def mint(self, account: str, amount: int):
        if amount < 0:
            raise InvalidAmount("Mint amount must be non-negative", amount=amount)
        self._set_balance(account, self.balances.get(account, 0) + amount)
        self.total_supply += amount
        logger.info(f"Minted {amount} to {account}")

    def approve(self, owner: str, spender: str, amount: int):
        if amount < 0:
            raise InvalidAmount("Allowance must be non-negative", amount=amount)
        self._set_allowance(owner, spender, amount)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def send(self, sender: str, recipient: str, amount: int):
        """Plain transfer between two accounts (e.g. funding the vault)."""
        self._move(sender, recipient, amount)

    # --- AssetLedger ---
    def transfer_from(self, payer: str, pool: str, amount: int) -> None:
        allowed = self.allowance(payer, pool)
        if allowed < amount:
            raise InsufficientAllowance(f"Insufficient allowance: approved {allowed}, need {amount}")
        self._move(payer, pool, amount)
        self._set_allowance(payer, pool, allowed - amount)

    def transfer(self, pool: str, recipient: str, amount: int) -> None:
        self._move(pool, recipient, amount)

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)
