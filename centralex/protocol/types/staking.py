from pydantic import BaseModel, Field
from typing import Dict

class DelayedParameter(BaseModel):
    """A configuration value changed via schedule-then-apply."""
    current_value: int = 0
    pending_value: int = 0
    effective_at: int = 0     # unix seconds; pending_value is authoritative from here on

    def value_at(self, now: int) -> int:
        if now < self.effective_at:
            return self.current_value
        return self.pending_value

class Deposit(BaseModel):
    amount: int = 0
    deposit_date: int = 0             # last reset (first deposit or merge)
    reward_factor_snapshot: int = 0   # reward_factor at deposit_date

    @property
    def is_empty(self) -> bool:
        return self.amount == 0

class AccountDeposits(BaseModel):
    """All deposit slots owned by one account."""
    last_deposit_id: int = 0
    deposits: Dict[int, Deposit] = Field(default_factory=dict)
    # deposit id -> request timestamp (two-step withdrawal flow)
    withdrawal_requests: Dict[int, int] = Field(default_factory=dict)

    def get_deposit(self, deposit_id: int) -> Deposit:
        return self.deposits.get(deposit_id) or Deposit()

    def total_balance(self) -> int:
        return sum(d.amount for d in self.deposits.values())

class RewardState(BaseModel):
    reward_factor: int = 0            # cumulative reward per staked unit, scaled by 1e18
    total_staked: int = 0
    total_remaining_reward: int = 0   # undistributed rewards + retained fees held by the ledger
    total_stakers_reward: int = 0
    total_owner_reward: int = 0

class StakingParams(BaseModel):
    fee: DelayedParameter
    withdrawal_lock_duration: DelayedParameter
    withdrawal_unlock_duration: DelayedParameter
    reward_share_percent: DelayedParameter

class StakingState(BaseModel):
    owner: str
    ledger_address: str
    reward_maturity_duration: int
    params: StakingParams
    rewards: RewardState = Field(default_factory=RewardState)
    accounts: Dict[str, AccountDeposits] = Field(default_factory=dict)
    paused: bool = False
