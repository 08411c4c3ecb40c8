# MIT License
# Copyright (c) 2025 Hashborn

from typing import Optional, List, Dict, Any
import json
import logging
import threading

from protocol.types.common import (
    OpType,
    ProtocolError,
    ClockRegression,
    ExceedsBalance,
    InvalidAmount,
    NothingStaked,
    Unauthorized,
)
from protocol.types.pool import AccountState, PoolView
from protocol.types.request import RequestType, SignedRequest
from protocol.config.params import NetworkConfig, CURRENT_NETWORK
from protocol.config.economic_model import EmissionConfig
from ..storage.db import StorageDB
from ..observability import metrics
from .accumulator import RewardIndexAccumulator
from .asset_ledger import AssetLedger, TokenLedger
from .auth import RequestVerifier
from .clock import SystemClock
from .events import EventBus, event_bus
from .stake_ledger import StakeLedger
from .state import PoolState
from .vault import VaultGuard

logger = logging.getLogger(__name__)


class StakingService:
    """
    Orchestrates deposits, withdrawals, rate updates and queries.

    Every public method runs under one lock, so operations are applied one
    at a time. Each mutation settles the pool first, then the account, then
    applies its own effect. All preconditions are checked before anything
    is mutated.
    """

    def __init__(self,
                 state: PoolState,
                 assets: AssetLedger,
                 network: Optional[NetworkConfig] = None,
                 clock=None,
                 events: Optional[EventBus] = None,
                 emission: Optional[EmissionConfig] = None,
                 operator: Optional[str] = None):
        self.network = network or CURRENT_NETWORK
        self.emission = emission or self.network.emission
        self.state = state
        self.assets = assets
        self.clock = clock or SystemClock()
        self.events = events if events is not None else event_bus
        self._lock = threading.RLock()

        self.pool_address = self.network.pool_address
        self.operator = operator or self.network.operator_address
        self.restrict_rate_updates = self.emission.restrict_rate_updates

        self.accumulator = RewardIndexAccumulator(state.pool, self.emission.index_scale)
        self.ledger = StakeLedger(state, self.accumulator)
        self.vault = VaultGuard(assets, self.pool_address)
        self.auth = RequestVerifier(state.db, self.pool_address, self.network.address_prefix)

    @classmethod
    def from_db_path(cls, db_path: str, network: Optional[NetworkConfig] = None, clock=None,
                     events: Optional[EventBus] = None, operator: Optional[str] = None) -> 'StakingService':
        """Opens (or creates) a pool persisted at `db_path`, with a TokenLedger in the same DB."""
        network = network or CURRENT_NETWORK
        clock = clock or SystemClock()
        db = StorageDB(db_path)

        state = PoolState(db)
        if state.load():
            logger.info(f"Pool loaded: total_staked={state.pool.total_staked}, "
                        f"rate={state.pool.reward_rate_per_second}, stakers={state.pool.staker_count}")
        else:
            state = PoolState.empty(db, start_time=clock.now(),
                                    reward_rate=network.emission.initial_reward_rate_per_second)
            state.persist()
            logger.info(f"Pool created on {network.network_id} "
                        f"(rate={state.pool.reward_rate_per_second}/s)")

        return cls(state, TokenLedger(db), network=network, clock=clock, events=events, operator=operator)

    # --- Internals ---
    def _now(self) -> int:
        now = self.clock.now()
        if now < self.state.pool.last_settlement_time:
            raise ClockRegression(now=now, last_settlement_time=self.state.pool.last_settlement_time)
        return now

    def _commit(self, op_type: OpType, account: str, now: int, event: str, **data: Any):
        self.state.persist()
        self.state.db.append_operation(
            now, op_type.value, account,
            json.dumps({k: str(v) for k, v in data.items()})
        )

        metrics.record_operation(op_type, data.get("amount", 0))
        metrics.update_metrics(self)

        logger.info(f"{op_type.value} applied for {account} at t={now}: "
                    + ", ".join(f"{k}={v}" for k, v in data.items()))
        self.events.emit(event, account=account, timestamp=now, **data)

    def _reject(self, op_type, account: str, error: ProtocolError):
        code = getattr(error, "code", "protocol_error")
        logger.warning(f"Rejected {op_type.value} from {account}: {code}: {error}")
        metrics.record_failure(op_type, code)
        self.events.emit("operation_failed", op_type=op_type.value, account=account, code=code, error=str(error))

    # --- Operations ---
    def deposit(self, account: str, amount: int) -> AccountState:
        """
        Stakes `amount` for `account`.

        The asset is pulled from the account via transfer_from before the
        pool is touched, so a failed transfer leaves no trace.
        """
        with self._lock:
            try:
                self.vault.check_funding_present()
                if amount <= 0:
                    raise InvalidAmount(amount=amount)
                now = self._now()

                self.assets.transfer_from(account, self.pool_address, amount)

                self.ledger.settle_account(account, now)
                acc = self.ledger.credit_deposit(account, amount)
            except ProtocolError as e:
                self._reject(OpType.DEPOSIT, account, e)
                raise

            self._commit(OpType.DEPOSIT, account, now, "deposited",
                         amount=amount, balance=acc.balance,
                         total_staked=self.state.pool.total_staked)
            return acc.model_copy()

    def withdraw(self, account: str, amount: int) -> AccountState:
        """
        Pays `amount` out of the account's settled balance.

        The settled balance is projected first so that every check runs
        before settlement touches stored state.
        """
        with self._lock:
            try:
                self.vault.check_vault_not_empty()
                if amount <= 0:
                    raise InvalidAmount(amount=amount)
                if self.state.pool.total_staked == 0:
                    raise NothingStaked()
                now = self._now()

                settled = self.ledger.projected_balance(account, now)
                if amount > settled:
                    raise ExceedsBalance(requested=amount, balance=settled)
                self.vault.check_sufficient_for_payout(amount)

                self.ledger.settle_account(account, now)
                acc = self.ledger.debit_withdrawal(account, amount)
                self.assets.transfer(self.pool_address, account, amount)
            except ProtocolError as e:
                self._reject(OpType.WITHDRAW, account, e)
                raise

            self._commit(OpType.WITHDRAW, account, now, "withdrawn",
                         amount=amount, balance=acc.balance,
                         total_staked=self.state.pool.total_staked)
            return acc.model_copy()

    def update_reward_rate(self, caller: str, new_rate: int) -> int:
        """
        Changes the emission rate from now on.

        Accrual up to now is settled under the old rate first. Returns the
        previous rate.
        """
        with self._lock:
            try:
                if self.restrict_rate_updates and caller != self.operator:
                    raise Unauthorized(caller=caller)
                if new_rate < 0:
                    raise InvalidAmount("Reward rate must be non-negative", rate=new_rate)
                now = self._now()

                self.accumulator.settle_global(now)
                old_rate = self.state.pool.reward_rate_per_second
                self.accumulator.set_rate(new_rate)
            except ProtocolError as e:
                self._reject(OpType.UPDATE_REWARD_RATE, caller, e)
                raise

            self._commit(OpType.UPDATE_REWARD_RATE, caller, now, "reward_rate_updated",
                         old_rate=old_rate, new_rate=new_rate)
            return old_rate

    def approve_allowance(self, owner: str, spender: str, amount: int) -> None:
        with self._lock:
            self.assets.approve(owner, spender, amount)
            logger.info(f"Allowance {owner} -> {spender} set to {amount}")

    def transfer_tokens(self, sender: str, recipient: str, amount: int) -> None:
        """Plain token transfer. Pool custody only leaves through withdrawals."""
        with self._lock:
            if sender == self.pool_address:
                raise Unauthorized("Pool funds can only be paid out by withdrawals", sender=sender)
            self.assets.send(sender, recipient, amount)
            logger.info(f"Token transfer {sender} -> {recipient}: {amount}")

    def submit(self, request: SignedRequest):
        """
        Applies a signed request on behalf of its verified sender.

        Returns what the underlying operation returns: the AccountState for
        deposits and withdrawals, the previous rate for a rate update, None
        for token requests. The sender's nonce is consumed only when the
        operation succeeds, so a rejected request leaves no trace.
        """
        with self._lock:
            try:
                self.auth.verify(request)
            except ProtocolError as e:
                self._reject(request.request_type, request.from_address, e)
                raise

            sender = request.from_address
            if request.request_type == RequestType.DEPOSIT:
                result = self.deposit(sender, request.amount)
            elif request.request_type == RequestType.WITHDRAW:
                result = self.withdraw(sender, request.amount)
            elif request.request_type == RequestType.UPDATE_REWARD_RATE:
                result = self.update_reward_rate(sender, request.amount)
            elif request.request_type == RequestType.TOKEN_APPROVE:
                result = self.approve_allowance(sender, request.to_address, request.amount)
            else:
                result = self.transfer_tokens(sender, request.to_address, request.amount)

            self.auth.consume(sender)
            return result

    def nonce_of(self, account: str) -> int:
        with self._lock:
            return self.auth.nonce_of(account)

    # --- Queries ---
    def get_current_staked_value(self) -> int:
        with self._lock:
            return self.ledger.projected_total_staked(self._now())

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self.ledger.projected_balance(account, self._now())

    def pool_status(self) -> PoolView:
        with self._lock:
            now = self._now()
            total, index = self.accumulator.project(now)
            pool = self.state.pool
            return PoolView(
                total_staked=total,
                reward_rate_per_second=pool.reward_rate_per_second,
                reward_index=index,
                last_settlement_time=pool.last_settlement_time,
                as_of=now,
                staker_count=pool.staker_count,
                vault_balance=self.vault.vault_balance(),
                operator=self.operator,
                restrict_rate_updates=self.restrict_rate_updates,
            )

    def get_history(self, account: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        """Applied operations from the journal, newest first (at least one row is asked for)."""
        with self._lock:
            rows = self.state.db.get_operations(account, max(1, limit))
        return [
            {
                "seq": seq,
                "timestamp": timestamp,
                "op_type": op_type,
                "account": acc,
                "data": json.loads(data),
            }
            for seq, timestamp, op_type, acc, data in rows
        ]
