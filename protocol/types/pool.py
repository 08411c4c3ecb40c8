from typing import Optional

from pydantic import BaseModel, Field


class GlobalPoolState(BaseModel):
    """Pool-wide accrual state. One instance per pool."""
    total_staked: int = 0               # Sum of all settled account balances (asset units)
    reward_rate_per_second: int = 0     # Emission rate (asset units / second)
    last_settlement_time: int = 0       # Unix seconds of last global settlement
    reward_index: int = 0               # Cumulative reward per staked unit, scaled by SCALE

    # Accounts whose stored balance is non-zero
    staker_count: int = 0


class AccountState(BaseModel):
    """Per-account stake record. Created on first deposit, never deleted."""
    address: str
    balance: int = 0                    # Principal + settled rewards
    index_snapshot: int = 0             # Global reward index at last settlement


class PoolView(BaseModel):
    """As-of-now projection of the pool returned by status queries."""
    total_staked: int = Field(..., description="Projected total staked value")
    reward_rate_per_second: int
    reward_index: int = Field(..., description="Projected reward index")
    last_settlement_time: int = Field(..., description="Last stored settlement time")
    as_of: int = Field(..., description="Time the projection was computed for")
    staker_count: int
    vault_balance: int = Field(..., description="Pool balance held on the asset ledger")
    operator: Optional[str] = Field(None, description="Account allowed to change the rate, if any")
    restrict_rate_updates: bool
