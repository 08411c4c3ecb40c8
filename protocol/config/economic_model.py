# MIT License
# Copyright (c) 2025 Hashborn

"""
StakePool Emission Model
Single source of truth for reward accrual parameters.

Rewards are emitted at a flat per-second rate and shared pro-rata between
stakers through a fixed-point reward index.
"""

from dataclasses import dataclass

# Fixed-point precision of the reward index
SCALE = 10**18


@dataclass
class EmissionConfig:
    """Emission parameters for a network."""

    # ═══════════════════════════════════════════════════════
    # REWARD INDEX
    # ═══════════════════════════════════════════════════════
    index_scale: int                    # Fixed-point scale of the reward index
    initial_reward_rate_per_second: int # Rate in asset units/second at pool creation

    # ═══════════════════════════════════════════════════════
    # ACCESS POLICY
    # ═══════════════════════════════════════════════════════
    restrict_rate_updates: bool         # Only the operator may change the rate

    # ═══════════════════════════════════════════════════════
    # ACCOUNTING TOLERANCE
    # ═══════════════════════════════════════════════════════
    comparison_tolerance: int           # Absolute tolerance for multi-staker comparisons

    # ═══════════════════════════════════════════════════════
    # HELPER METHODS
    # ═══════════════════════════════════════════════════════

    def emission_for(self, rate: int, elapsed: int) -> int:
        """Total reward minted over `elapsed` seconds at `rate`."""
        return rate * elapsed

    def daily_emission(self, rate: int = None) -> int:
        """Reward minted per day at `rate` (defaults to the initial rate)."""
        if rate is None:
            rate = self.initial_reward_rate_per_second
        return self.emission_for(rate, 24 * 60 * 60)


# ═══════════════════════════════════════════════════════════════════════════
# DEVNET CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════
DEVNET = EmissionConfig(
    index_scale=SCALE,
    initial_reward_rate_per_second=100,         # 100 minimal units / second
    restrict_rate_updates=True,
    comparison_tolerance=10**7,
)


# ═══════════════════════════════════════════════════════════════════════════
# TESTNET CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════
TESTNET = EmissionConfig(
    index_scale=SCALE,
    initial_reward_rate_per_second=10**12,      # ~0.086 tokens / day
    restrict_rate_updates=True,
    comparison_tolerance=10**7,
)


# ═══════════════════════════════════════════════════════════════════════════
# MAINNET CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════
MAINNET = EmissionConfig(
    index_scale=SCALE,
    initial_reward_rate_per_second=11_574_074_074_074,  # ~1 token / day
    restrict_rate_updates=True,
    comparison_tolerance=10**7,
)


EMISSION_CONFIGS = {
    "devnet": DEVNET,
    "testnet": TESTNET,
    "mainnet": MAINNET,
}
