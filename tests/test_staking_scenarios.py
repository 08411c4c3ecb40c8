# MIT License
# Copyright (c) 2025 Hashborn

"""
End-to-end staking scenarios.

A 10,000 token supply is minted to the operator, two users receive 100
tokens each, and (unless a test says otherwise) half of the supply funds
the vault. Time only moves when the test advances the manual clock.
"""

import pytest

from protocol.config.params import NETWORKS
from protocol.types.common import (
    VaultUnfunded,
    VaultEmptied,
    VaultInsufficientFunds,
    NothingStaked,
    ExceedsBalance,
)
from stakepool.core.asset_ledger import TokenLedger
from stakepool.core.clock import ManualClock
from stakepool.core.events import EventBus
from stakepool.core.service import StakingService
from stakepool.core.state import PoolState
from stakepool.storage.db import StorageDB

NETWORK = NETWORKS["devnet"]
POOL = NETWORK.pool_address
OPERATOR = NETWORK.operator_address
ADDR1 = "addr1"
ADDR2 = "addr2"

TOTAL_SUPPLY = 10_000 * 10**18
FUNDING = 100 * 10**18
STAKE = 2 * 10**18
RATE = 100
TOLERANCE = NETWORK.emission.comparison_tolerance
DAY = 24 * 60 * 60


@pytest.fixture
def env(tmp_path):
    """Unfunded pool with two funded users."""
    db = StorageDB(str(tmp_path / "pool.db"))
    clock = ManualClock(start=1_700_000_000)

    tokens = TokenLedger(db)
    tokens.mint(OPERATOR, TOTAL_SUPPLY)
    tokens.send(OPERATOR, ADDR1, FUNDING)
    tokens.send(OPERATOR, ADDR2, FUNDING)

    state = PoolState.empty(db, start_time=clock.now(), reward_rate=RATE)
    service = StakingService(state, tokens, network=NETWORK, clock=clock, events=EventBus())
    yield service, tokens, clock
    db.close()


@pytest.fixture
def funded(env):
    service, tokens, clock = env
    tokens.send(OPERATOR, POOL, TOTAL_SUPPLY // 2)
    return env


def stake(service, tokens, account, amount):
    tokens.approve(account, POOL, amount)
    return service.deposit(account, amount)


def withdraw_all(service, account):
    return service.withdraw(account, service.balance_of(account))


def assert_close(actual, expected):
    assert abs(actual - expected) <= TOLERANCE, f"{actual} differs from {expected} by {actual - expected}"


# --- Post deployment ---

def test_staked_value_is_zero_without_deposits(funded):
    service, _, clock = funded
    assert service.get_current_staked_value() == 0
    clock.increase(1000)
    assert service.get_current_staked_value() == 0


def test_withdraw_without_any_stake_is_rejected(funded):
    service, _, _ = funded
    with pytest.raises(NothingStaked) as exc:
        service.withdraw(ADDR1, 10)
    assert "Existing tokens are required" in str(exc.value)


# --- Vault balance checks ---

def test_deposit_rejected_when_vault_unfunded(env):
    service, tokens, _ = env
    tokens.approve(ADDR1, POOL, STAKE)
    with pytest.raises(VaultUnfunded) as exc:
        service.deposit(ADDR1, STAKE)
    assert str(exc.value) == "Vault has ran out of funding. Please try again later"
    assert tokens.balance_of(ADDR1) == FUNDING


def test_withdraw_rejected_when_vault_empty(env):
    service, _, _ = env
    with pytest.raises(VaultEmptied) as exc:
        service.withdraw(ADDR1, STAKE)
    assert str(exc.value) == "Vault has been emptied"


def test_withdraw_rejected_when_vault_cannot_cover_payout(env):
    service, tokens, clock = env
    small = 200
    tokens.send(OPERATOR, POOL, small)

    stake(service, tokens, ADDR1, small * 4)
    service.update_reward_rate(OPERATOR, 10 * 10**4)
    clock.increase(40000)

    owed = service.balance_of(ADDR1)
    assert owed == small * 4 + 10**5 * 40000

    with pytest.raises(VaultInsufficientFunds) as exc:
        service.withdraw(ADDR1, owed)
    assert "Insufficient Value in Contract" in str(exc.value)
    # Nothing moved
    assert service.balance_of(ADDR1) == owed
    assert tokens.balance_of(POOL) == small * 5


# --- Input validation ---

def test_cannot_redeem_more_than_balance(funded):
    service, tokens, _ = funded
    stake(service, tokens, ADDR1, STAKE)

    with pytest.raises(ExceedsBalance) as exc:
        service.withdraw(ADDR1, service.balance_of(ADDR1) * 2)
    assert str(exc.value) == "Cannot redeem for more tokens than you have"


# --- Reward rate updates ---

def test_single_staker_rate_increase_is_exact(funded):
    service, tokens, clock = funded
    stake(service, tokens, ADDR1, STAKE)

    clock.increase(DAY)
    service.update_reward_rate(OPERATOR, RATE * 2)
    clock.increase(DAY)

    withdraw_all(service, ADDR1)

    expected_rewards = DAY * RATE + DAY * RATE * 2
    assert tokens.balance_of(ADDR1) == FUNDING + expected_rewards
    assert service.get_current_staked_value() == 0


def test_two_stakers_joining_after_rate_increase(funded):
    service, tokens, clock = funded
    stake(service, tokens, ADDR1, STAKE)

    clock.increase(DAY)
    service.update_reward_rate(OPERATOR, RATE * 2)
    clock.increase(DAY)

    stake(service, tokens, ADDR2, STAKE)
    addr1_lp = service.balance_of(ADDR1)
    addr2_lp = service.balance_of(ADDR2)
    total_lp = addr1_lp + addr2_lp

    clock.increase(DAY)
    withdraw_all(service, ADDR1)
    clock.increase(DAY)
    withdraw_all(service, ADDR2)

    new_rate = RATE * 2
    addr1_expected = DAY * RATE + DAY * new_rate + addr1_lp * new_rate * DAY // total_lp
    addr2_expected = addr2_lp * new_rate * DAY // total_lp + DAY * new_rate

    assert_close(tokens.balance_of(ADDR1), FUNDING + addr1_expected)
    assert_close(tokens.balance_of(ADDR2), FUNDING + addr2_expected)
    assert service.get_current_staked_value() == 0


# --- Staking and withdrawals ---

def test_stake_is_reflected_in_staked_value(funded):
    service, tokens, _ = funded
    stake(service, tokens, ADDR1, STAKE)
    assert service.get_current_staked_value() == STAKE


def test_single_staker_earns_rate_times_elapsed(funded):
    service, tokens, clock = funded
    stake(service, tokens, ADDR1, STAKE)
    assert tokens.balance_of(ADDR1) == FUNDING - STAKE
    assert service.get_current_staked_value() == STAKE

    clock.increase(2 * DAY)
    assert service.get_current_staked_value() == STAKE + 2 * DAY * RATE

    withdraw_all(service, ADDR1)
    assert tokens.balance_of(ADDR1) == FUNDING + 2 * DAY * RATE


def test_equal_deposits_share_rewards(funded):
    service, tokens, clock = funded
    stake(service, tokens, ADDR1, STAKE)
    clock.increase(1)
    stake(service, tokens, ADDR2, STAKE)

    assert tokens.balance_of(ADDR1) == FUNDING - STAKE
    assert tokens.balance_of(ADDR2) == FUNDING - STAKE
    assert service.get_current_staked_value() == 2 * STAKE + RATE

    clock.increase(2 * DAY)
    withdraw_all(service, ADDR1)
    withdraw_all(service, ADDR2)

    assert service.get_current_staked_value() == 0

    shared = 2 * DAY * RATE
    assert_close(tokens.balance_of(ADDR1), FUNDING + RATE + shared // 2)
    assert_close(tokens.balance_of(ADDR2), FUNDING + shared // 2)
    # Everything minted was paid out
    assert tokens.balance_of(ADDR1) + tokens.balance_of(ADDR2) == 2 * FUNDING + RATE + shared


def test_top_up_deposits_return_full_reward(funded):
    service, tokens, clock = funded
    tokens.approve(ADDR1, POOL, STAKE * 4)

    service.deposit(ADDR1, STAKE)
    clock.increase(DAY)
    service.deposit(ADDR1, STAKE * 2)
    clock.increase(DAY)
    service.deposit(ADDR1, STAKE)
    clock.increase(DAY)

    withdraw_all(service, ADDR1)
    assert tokens.balance_of(ADDR1) == FUNDING + 3 * DAY * RATE


def test_unequal_deposits_share_pro_rata(funded):
    service, tokens, clock = funded
    stake(service, tokens, ADDR1, STAKE)
    clock.increase(1)
    stake(service, tokens, ADDR2, STAKE * 3)

    assert service.get_current_staked_value() == 4 * STAKE + RATE

    clock.increase(2 * DAY)
    withdraw_all(service, ADDR1)
    withdraw_all(service, ADDR2)

    assert service.get_current_staked_value() == 0

    shared = 2 * DAY * RATE
    assert_close(tokens.balance_of(ADDR1), FUNDING + RATE + shared // 4)
    assert_close(tokens.balance_of(ADDR2), FUNDING + shared * 3 // 4)
