# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports staking and governance metrics in Prometheus format.

Metrics:
- Operations committed / rejected per engine
- Deposits, withdrawals (forced vs requested), distributions, votes
- Staking totals (staked, reward factor, remaining/stakers/owner reward)
- Governance phase and window proposal counts
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

operations_total = Counter(
    'centralex_operations_total',
    'Total number of committed operations',
    ['engine', 'operation'],
    registry=metrics_registry
)

rejections_total = Counter(
    'centralex_rejections_total',
    'Total number of rejected operations by error code',
    ['engine', 'code'],
    registry=metrics_registry
)

deposits_total = Counter(
    'centralex_deposits_total',
    'Total number of deposits (new slots and top-ups)',
    registry=metrics_registry
)

withdrawals_total = Counter(
    'centralex_withdrawals_total',
    'Total number of completed withdrawals',
    ['kind'],
    registry=metrics_registry
)

distributions_total = Counter(
    'centralex_distributions_total',
    'Total number of reward distributions',
    registry=metrics_registry
)

votes_total = Counter(
    'centralex_votes_total',
    'Total number of votes cast',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# STAKING METRICS
# ═══════════════════════════════════════════════════════════════════

total_staked = Gauge(
    'centralex_total_staked',
    'Total tokens locked in deposits',
    registry=metrics_registry
)

reward_factor = Gauge(
    'centralex_reward_factor',
    'Cumulative reward per staked unit (scaled by 1e18)',
    registry=metrics_registry
)

total_remaining_reward = Gauge(
    'centralex_total_remaining_reward',
    'Rewards and retained fees held by the ledger and not yet paid out',
    registry=metrics_registry
)

total_stakers_reward = Gauge(
    'centralex_total_stakers_reward',
    'Cumulative stakers share of distributed rewards',
    registry=metrics_registry
)

total_owner_reward = Gauge(
    'centralex_total_owner_reward',
    'Cumulative owner share of distributed rewards',
    registry=metrics_registry
)

stakers_count = Gauge(
    'centralex_stakers_count',
    'Number of accounts with a nonzero staked balance',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# GOVERNANCE METRICS
# ═══════════════════════════════════════════════════════════════════

governance_phase = Gauge(
    'centralex_governance_phase',
    'Current governance phase (0=DraftStarted .. 5=SnapshotCompleted)',
    registry=metrics_registry
)

governance_session = Gauge(
    'centralex_governance_session',
    'Number of governance sessions opened',
    registry=metrics_registry
)

proposals_current = Gauge(
    'centralex_proposals_current',
    'Proposals in the current session window',
    registry=metrics_registry
)

proposals_active = Gauge(
    'centralex_proposals_active',
    'Active proposals in the current session window',
    registry=metrics_registry
)

proposals_paused = Gauge(
    'centralex_proposals_paused',
    'Paused proposals in the current session window',
    registry=metrics_registry
)

winners_total = Gauge(
    'centralex_winners_total',
    'Winners declared over the lifetime of the governance engine',
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

# Operation name -> (counter, labels) for the domain counters
_OPERATION_COUNTERS = {
    "deposit": (deposits_total, None),
    "make_forced_withdrawal": (withdrawals_total, "forced"),
    "make_requested_withdrawal": (withdrawals_total, "requested"),
    "distribute": (distributions_total, None),
    "vote": (votes_total, None),
}


def record_operation(engine: str, operation: str) -> None:
    """
    Count a committed operation.

    Args:
        engine: Engine source name ('staking' or 'governance')
        operation: Operation name
    """
    operations_total.labels(engine=engine, operation=operation).inc()

    counter = _OPERATION_COUNTERS.get(operation)
    if counter:
        metric, kind = counter
        if kind:
            metric.labels(kind=kind).inc()
        else:
            metric.inc()


def record_rejection(engine: str, code: str) -> None:
    """Count a rejected operation by its error code."""
    rejections_total.labels(engine=engine, code=code).inc()


def update_metrics(system):
    """
    Update all gauges from the current engine state.
    Counters are only touched by record_operation / record_rejection.

    Args:
        system: StakingSystem instance
    """
    ledger = system.ledger
    rewards = ledger.rewards

    total_staked.set(rewards.total_staked)
    reward_factor.set(rewards.reward_factor)
    total_remaining_reward.set(rewards.total_remaining_reward)
    total_stakers_reward.set(rewards.total_stakers_reward)
    total_owner_reward.set(rewards.total_owner_reward)
    stakers_count.set(sum(1 for acc in ledger.state.accounts.values() if acc.total_balance() > 0))

    governance = system.governance
    governance_phase.set(int(governance.get_governance_status()))
    governance_session.set(governance.state.session)
    proposals_current.set(governance.get_current_proposals_count())
    proposals_active.set(governance.get_active_proposals_count())
    proposals_paused.set(governance.get_paused_proposals_count())
    winners_total.set(governance.state.winners_count)
