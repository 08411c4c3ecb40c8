"""
Reward index accumulator.

Tracks a single global index of cumulative reward per unit of staked value.
Accounts compare their stored snapshot against this index to derive their
pro-rata share, so no per-account work is needed when time passes.
"""
from typing import Tuple
import logging

from protocol.types.common import ClockRegression, InvalidAmount
from protocol.types.pool import GlobalPoolState

logger = logging.getLogger(__name__)


class RewardIndexAccumulator:
    """
    Pure bookkeeping over GlobalPoolState.

    Emission over an interval is `rate * elapsed`. It is minted into
    `total_staked` and spread over the stake that existed before the
    interval's reward was added.
    """

    def __init__(self, pool: GlobalPoolState, scale: int):
        self.pool = pool
        self.scale = scale

    def _advance(self, now: int) -> Tuple[int, int]:
        """Returns (total_staked, reward_index) as of `now` without mutating."""
        pool = self.pool
        if now < pool.last_settlement_time:
            raise ClockRegression(now=now, last_settlement_time=pool.last_settlement_time)

        if pool.total_staked == 0:
            # Nobody staked: nothing accrues
            return 0, pool.reward_index

        elapsed = now - pool.last_settlement_time
        reward = pool.reward_rate_per_second * elapsed
        index = pool.reward_index + reward * self.scale // pool.total_staked
        return pool.total_staked + reward, index

    def project(self, now: int) -> Tuple[int, int]:
        """
        As-of-now view of (total_staked, reward_index).

        Identical to what settle_global(now) would store.
        """
        return self._advance(now)

    def settle_global(self, now: int) -> int:
        """
        Advances the pool to `now` under the rate active since the last settlement.

        Idempotent for equal `now`. Returns the reward minted by this call.
        """
        pool = self.pool
        total, index = self._advance(now)
        minted = total - pool.total_staked

        pool.total_staked = total
        pool.reward_index = index
        pool.last_settlement_time = now

        if minted:
            logger.debug(f"Settled pool at t={now}: minted={minted}, index={index}, total={total}")
        return minted

    def set_rate(self, rate: int):
        """Sets the emission rate. Callers settle first so past accrual keeps the old rate."""
        if rate < 0:
            raise InvalidAmount("Reward rate must be non-negative", rate=rate)
        self.pool.reward_rate_per_second = rate
