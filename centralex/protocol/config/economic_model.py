# MIT License
# Copyright (c) 2025 Hashborn

"""
Centralex Staking Economic Model
Single source of truth for fixed-point arithmetic and parameter bounds.

All amounts are integers in minimal token units. Percentages and the reward
factor are fixed-point values scaled by SCALE (1e18 == 100%).
Every division rounds toward zero, so dust always stays in ledger custody.
"""

from dataclasses import dataclass
from typing import Dict, Optional

SCALE = 10**18

HOUR = 3600
DAY = 24 * HOUR
WEEK = 7 * DAY

# Notice period between scheduling a parameter change and it taking effect
PARAM_UPDATE_DELAY = WEEK

# ═══════════════════════════════════════════════════════
# PARAMETER BOUNDS
# ═══════════════════════════════════════════════════════

@dataclass(frozen=True)
class ParamBounds:
    """Inclusive range for a delayed parameter. None means unbounded."""
    minimum: int = 0
    maximum: Optional[int] = None
    error: str = ""

    def contains(self, value: int) -> bool:
        if value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True


PARAM_BOUNDS: Dict[str, ParamBounds] = {
    "fee": ParamBounds(0, SCALE, "should be less than or equal to 1 ether"),
    "withdrawal_lock_duration": ParamBounds(0, 30 * DAY, "shouldn't be greater than 30 days"),
    "withdrawal_unlock_duration": ParamBounds(HOUR, None, "shouldn't be less than 1 hour"),
    "reward_share_percent": ParamBounds(0, SCALE, "should be less than or equal to 1 ether"),
}

# ═══════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════

def split_reward(reward: int, share_percent: int) -> Dict[str, int]:
    """
    Split a distributed reward between stakers and the owner.
    Returns: {'stakers_share': int, 'owner_share': int}
    The owner receives the rounding remainder.
    """
    stakers_share = reward * share_percent // SCALE
    return {
        'stakers_share': stakers_share,
        'owner_share': reward - stakers_share,
    }


def reward_factor_increment(stakers_share: int, total_staked: int) -> int:
    """Reward per staked unit (scaled) added by one distribution."""
    if total_staked <= 0:
        return 0
    return stakers_share * SCALE // total_staked


def accrued_reward(amount: int, reward_factor: int, snapshot: int) -> int:
    """Reward earned by `amount` since the factor was `snapshot`."""
    return amount * (reward_factor - snapshot) // SCALE


def withdrawal_fee(amount: int, fee: int) -> int:
    """Fee charged on principal only."""
    return amount * fee // SCALE


def is_reward_mature(deposit_date: int, now: int, maturity_duration: int) -> bool:
    """Cliff vesting: the whole reward unlocks once the deposit is old enough."""
    return now - deposit_date >= maturity_duration
