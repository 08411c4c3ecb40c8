# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports staking pool metrics in Prometheus format.

Metrics:
- Pool accounting (total staked, reward index, reward rate, stakers)
- Vault custody
- Operation counters (deposits, withdrawals, rate updates, failures)
"""

from prometheus_client import Counter, Gauge, CollectorRegistry
from protocol.types.common import OpType

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# POOL METRICS
# ═══════════════════════════════════════════════════════════════════

total_staked = Gauge(
    'stakepool_total_staked',
    'Projected total staked value (principal + accrued rewards)',
    registry=metrics_registry
)

reward_rate_per_second = Gauge(
    'stakepool_reward_rate_per_second',
    'Current emission rate in minimal units per second',
    registry=metrics_registry
)

reward_index = Gauge(
    'stakepool_reward_index',
    'Projected reward index (fixed-point, scaled)',
    registry=metrics_registry
)

staker_count = Gauge(
    'stakepool_staker_count',
    'Accounts with a non-zero stake',
    registry=metrics_registry
)

vault_balance = Gauge(
    'stakepool_vault_balance',
    'Pool custody on the asset ledger',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

operations_total = Counter(
    'stakepool_operations_total',
    'Total number of applied pool operations',
    ['op_type'],
    registry=metrics_registry
)

operations_failed_total = Counter(
    'stakepool_operations_failed_total',
    'Total number of rejected pool operations',
    ['op_type', 'code'],
    registry=metrics_registry
)

deposited_amount_total = Counter(
    'stakepool_deposited_amount_total',
    'Total amount deposited into the pool',
    registry=metrics_registry
)

withdrawn_amount_total = Counter(
    'stakepool_withdrawn_amount_total',
    'Total amount paid out by the pool',
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def record_operation(op_type, amount: int = 0):
    """
    Count an applied operation.

    Args:
        op_type: OpType of the operation
        amount: Deposited or withdrawn amount (ignored for rate updates)
    """
    operations_total.labels(op_type=op_type.value).inc()
    if op_type == OpType.DEPOSIT:
        deposited_amount_total.inc(amount)
    elif op_type == OpType.WITHDRAW:
        withdrawn_amount_total.inc(amount)


def record_failure(op_type, code: str):
    """op_type is an OpType, or the RequestType of a request rejected before dispatch."""
    operations_failed_total.labels(op_type=op_type.value, code=code).inc()


def update_metrics(service):
    """
    Update gauges from the service's as-of-now pool view.
    Called after each operation and when metrics are scraped.

    Args:
        service: StakingService instance
    """
    view = service.pool_status()

    total_staked.set(view.total_staked)
    reward_rate_per_second.set(view.reward_rate_per_second)
    reward_index.set(view.reward_index)
    staker_count.set(view.staker_count)
    vault_balance.set(view.vault_balance)
