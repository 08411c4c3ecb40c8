"""
Per-account stake ledger.

Each account stores only its balance and the reward index at its last
settlement. Pending reward is `balance * (index - snapshot) / SCALE`,
folded into the balance whenever the account is touched.
"""
import logging

from protocol.types.common import InsufficientBalance, InvalidAmount
from protocol.types.pool import AccountState
from .accumulator import RewardIndexAccumulator
from .state import PoolState

logger = logging.getLogger(__name__)


class StakeLedger:
    def __init__(self, state: PoolState, accumulator: RewardIndexAccumulator):
        self.state = state
        self.accumulator = accumulator

    @property
    def scale(self) -> int:
        return self.accumulator.scale

    def _settled_balance(self, account: AccountState, total_staked: int, index: int) -> int:
        """Balance after folding pending reward at the given global (total, index)."""
        if account.balance == 0:
            return 0
        pending = account.balance * (index - account.index_snapshot) // self.scale
        balance = account.balance + pending

        # The sole staker owns the whole pool, truncation dust included
        if self.state.pool.staker_count == 1:
            balance = total_staked
        return balance

    def settle_account(self, address: str, now: int) -> AccountState:
        """Settles the pool, then folds the account's pending reward into its balance."""
        self.accumulator.settle_global(now)
        pool = self.state.pool

        account = self.state.get_account(address)
        balance = self._settled_balance(account, pool.total_staked, pool.reward_index)
        if balance != account.balance:
            logger.debug(f"Settled {address}: +{balance - account.balance}")

        account.balance = balance
        account.index_snapshot = pool.reward_index
        self.state.set_account(account)
        return account

    def credit_deposit(self, address: str, amount: int) -> AccountState:
        """Adds `amount` to a settled account and to the pool total."""
        if amount <= 0:
            raise InvalidAmount(amount=amount)
        pool = self.state.pool
        account = self.state.get_account(address)

        if account.balance == 0:
            pool.staker_count += 1
        account.balance += amount
        pool.total_staked += amount

        self.state.set_account(account)
        return account

    def debit_withdrawal(self, address: str, amount: int) -> AccountState:
        """Removes `amount` from a settled account and from the pool total."""
        if amount <= 0:
            raise InvalidAmount(amount=amount)
        pool = self.state.pool
        account = self.state.get_account(address)

        if amount > account.balance:
            raise InsufficientBalance(requested=amount, balance=account.balance)

        account.balance -= amount
        pool.total_staked -= amount
        if account.balance == 0:
            pool.staker_count -= 1

        self.state.set_account(account)
        return account

    def projected_total_staked(self, now: int) -> int:
        total, _ = self.accumulator.project(now)
        return total

    def projected_balance(self, address: str, now: int) -> int:
        """Balance the account would hold if settled at `now`. Read-only."""
        total, index = self.accumulator.project(now)
        return self._settled_balance(self.state.get_account(address), total, index)
