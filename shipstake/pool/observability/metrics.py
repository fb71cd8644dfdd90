# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports staking pool metrics in Prometheus format.

Metrics:
- Pool totals (principal, weighted stake, open stakes, retained penalties)
- Current epoch
- Rewards recorded and claimed per asset
- Operations and failures per operation type
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# POOL METRICS
# ═══════════════════════════════════════════════════════════════════

total_staked = Gauge(
    'shipstake_total_staked',
    'Total principal locked in open stakes',
    registry=metrics_registry
)

total_weighted_stake = Gauge(
    'shipstake_total_weighted_stake',
    'Sum of principal * multiplier over open stakes',
    registry=metrics_registry
)

open_stakes = Gauge(
    'shipstake_open_stakes',
    'Number of open stakes',
    registry=metrics_registry
)

penalties_retained = Gauge(
    'shipstake_penalties_retained',
    'Early-exit penalties retained by the pool',
    registry=metrics_registry
)

current_epoch = Gauge(
    'shipstake_current_epoch',
    'Current epoch number',
    registry=metrics_registry
)

pool_paused = Gauge(
    'shipstake_pool_paused',
    '1 if the pool is paused',
    registry=metrics_registry
)

revenue_assets = Gauge(
    'shipstake_revenue_assets',
    'Number of registered revenue assets',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# REWARD METRICS
# ═══════════════════════════════════════════════════════════════════

rewards_recorded_total = Counter(
    'shipstake_rewards_recorded_total',
    'Reward amount finalized into epoch snapshots',
    ['asset'],
    registry=metrics_registry
)

rewards_claimed_total = Counter(
    'shipstake_rewards_claimed_total',
    'Reward amount paid out to stakers',
    ['asset'],
    registry=metrics_registry
)

epochs_recorded_total = Counter(
    'shipstake_epochs_recorded_total',
    'Number of epoch snapshots finalized',
    ['asset'],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

operations_total = Counter(
    'shipstake_operations_total',
    'Committed pool operations',
    ['op'],
    registry=metrics_registry
)

operation_failures_total = Counter(
    'shipstake_operation_failures_total',
    'Rejected or rolled back pool operations',
    ['op', 'error'],
    registry=metrics_registry
)


def update_metrics(pool):
    """
    Update all gauges from pool state.
    Called when metrics are scraped; Counters are updated as operations happen.

    Args:
        pool: StakingPool instance
    """
    totals = pool.pool_totals()
    total_staked.set(totals.total_principal)
    total_weighted_stake.set(totals.total_weighted)
    open_stakes.set(totals.stake_count)
    penalties_retained.set(totals.penalties_retained)

    current_epoch.set(pool.epoch_info()["epoch"])
    pool_paused.set(1 if pool.is_paused() else 0)
    revenue_assets.set(len(pool.supported_revenue_assets()))


def record_operation(op: str):
    operations_total.labels(op=op).inc()


def record_failure(op: str, error: Exception):
    operation_failures_total.labels(op=op, error=type(error).__name__).inc()


def record_epoch(asset: str, amount: int):
    epochs_recorded_total.labels(asset=asset).inc()
    rewards_recorded_total.labels(asset=asset).inc(amount)


def record_claim(asset: str, amount: int):
    rewards_claimed_total.labels(asset=asset).inc(amount)
