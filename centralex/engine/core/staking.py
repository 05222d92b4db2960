# MIT License
# Copyright (c) 2025 Hashborn

"""
Staking Ledger

Accounts lock tokens in numbered deposit slots and earn a share of rewards
distributed by the owner, proportional to their stake.

Scalable reward distribution:
- reward_factor accumulates reward per staked unit (scaled by 1e18)
- each deposit remembers the factor at its last reset (snapshot)
- reward of a deposit = amount * (reward_factor - snapshot) / 1e18

Rewards vest on a cliff: they are paid only when the deposit has been left
untouched for reward_maturity_duration; otherwise they stay in the pool.
"""

from typing import Callable, Dict, Optional
import logging

from ...protocol.config.economic_model import (
    accrued_reward,
    is_reward_mature,
    reward_factor_increment,
    split_reward,
    withdrawal_fee,
)
from ...protocol.config.params import NetworkConfig, CURRENT_NETWORK
from ...protocol.types.common import (
    EventType,
    InsufficientFunds,
    InvalidParameter,
    TooEarly,
    TooLate,
    WrongDepositId,
)
from ...protocol.types.staking import AccountDeposits, Deposit, RewardState, StakingParams, StakingState
from ..storage.db import StorageDB
from .base import Engine, Operation
from .events import EventLog
from .params import ParameterStore, initial
from .token import TokenCollaborator

logger = logging.getLogger(__name__)


class StakingLedger(Engine):
    source = "staking"
    STATE_KEY = "staking"

    def __init__(
        self,
        owner: str,
        token: TokenCollaborator,
        fee: int,
        withdrawal_lock_duration: int,
        withdrawal_unlock_duration: int,
        reward_maturity_duration: int,
        reward_share_percent: int,
        ledger_address: str = "cenx1staking",
        events: Optional[EventLog] = None,
        clock: Callable[[], int] = None,
        state: Optional[StakingState] = None,
    ):
        if state is None:
            if not owner:
                raise InvalidParameter("zero address")
            if not ledger_address:
                raise InvalidParameter("ledger address is empty")
            if reward_maturity_duration < 0:
                raise InvalidParameter("reward maturity duration cannot be negative")
            state = StakingState(
                owner=owner,
                ledger_address=ledger_address,
                reward_maturity_duration=reward_maturity_duration,
                params=StakingParams(
                    fee=initial("fee", fee),
                    withdrawal_lock_duration=initial("withdrawal_lock_duration", withdrawal_lock_duration),
                    withdrawal_unlock_duration=initial("withdrawal_unlock_duration", withdrawal_unlock_duration),
                    reward_share_percent=initial("reward_share_percent", reward_share_percent),
                ),
            )
        if token is None:
            raise InvalidParameter("not a contract address")
        super().__init__(state, events=events, clock=clock)
        self.token = token

    @classmethod
    def from_config(cls, owner: str, token: TokenCollaborator, config: NetworkConfig = None,
                    events: Optional[EventLog] = None, clock: Callable[[], int] = None) -> 'StakingLedger':
        config = config or CURRENT_NETWORK
        return cls(
            owner=owner,
            token=token,
            fee=config.fee,
            withdrawal_lock_duration=config.withdrawal_lock_duration,
            withdrawal_unlock_duration=config.withdrawal_unlock_duration,
            reward_maturity_duration=config.reward_maturity_duration,
            reward_share_percent=config.reward_share_percent,
            ledger_address=config.ledger_address,
            events=events,
            clock=clock,
        )

    @classmethod
    def load(cls, db: StorageDB, token: TokenCollaborator, events: Optional[EventLog] = None,
             clock: Callable[[], int] = None) -> 'StakingLedger':
        state = cls._load_state(db, StakingState)
        return cls(owner=state.owner, token=token, fee=0, withdrawal_lock_duration=0,
                   withdrawal_unlock_duration=0, reward_maturity_duration=0, reward_share_percent=0,
                   events=events, clock=clock, state=state)

    # ═══════════════════════════════════════════════════════════════
    # VIEWS
    # ═══════════════════════════════════════════════════════════════

    @property
    def address(self) -> str:
        return self.state.ledger_address

    @property
    def rewards(self) -> RewardState:
        return self.state.rewards

    @property
    def reward_factor(self) -> int:
        return self.state.rewards.reward_factor

    @property
    def total_staked(self) -> int:
        return self.state.rewards.total_staked

    @property
    def total_remaining_reward(self) -> int:
        return self.state.rewards.total_remaining_reward

    @property
    def reward_maturity_duration(self) -> int:
        return self.state.reward_maturity_duration

    def fee(self) -> int:
        return ParameterStore(self.state.params).get("fee", self.now())

    def withdrawal_lock_duration(self) -> int:
        return ParameterStore(self.state.params).get("withdrawal_lock_duration", self.now())

    def withdrawal_unlock_duration(self) -> int:
        return ParameterStore(self.state.params).get("withdrawal_unlock_duration", self.now())

    def reward_share_percent(self) -> int:
        return ParameterStore(self.state.params).get("reward_share_percent", self.now())

    def parameters(self) -> Dict[str, Dict[str, int]]:
        store = ParameterStore(self.state.params)
        now = self.now()
        return {name: store.pending(name, now) for name in StakingParams.model_fields}

    def _account(self, account: str) -> AccountDeposits:
        return self.state.accounts.get(account) or AccountDeposits()

    def last_deposit_id(self, account: str) -> int:
        return self._account(account).last_deposit_id

    def balance_of(self, account: str, deposit_id: int) -> int:
        return self._account(account).get_deposit(deposit_id).amount

    def deposit_date(self, account: str, deposit_id: int) -> int:
        return self._account(account).get_deposit(deposit_id).deposit_date

    def deposit_reward_factor(self, account: str, deposit_id: int) -> int:
        return self._account(account).get_deposit(deposit_id).reward_factor_snapshot

    def withdrawal_request_date(self, account: str, deposit_id: int) -> int:
        return self._account(account).withdrawal_requests.get(deposit_id, 0)

    def total_user_balance(self, account: str) -> int:
        """Sum of all nonzero deposits of `account`. Eligibility query used by governance."""
        return self._account(account).total_balance()

    def pending_reward(self, account: str, deposit_id: int) -> int:
        """Reward accrued so far, whether or not it has matured."""
        dep = self._account(account).get_deposit(deposit_id)
        return accrued_reward(dep.amount, self.reward_factor, dep.reward_factor_snapshot)

    # ═══════════════════════════════════════════════════════════════
    # PARAMETERS (owner, delayed)
    # ═══════════════════════════════════════════════════════════════

    def set_param(self, sender: str, name: str, value: int) -> None:
        with self._operation(f"set_{name}") as op:
            self._require_owner(op.state, sender)
            event = ParameterStore(op.state.params).set(name, value, op.now)
            op.emit(event, value=value, sender=sender)

    def set_fee(self, sender: str, value: int) -> None:
        self.set_param(sender, "fee", value)

    def set_withdrawal_lock_duration(self, sender: str, value: int) -> None:
        self.set_param(sender, "withdrawal_lock_duration", value)

    def set_withdrawal_unlock_duration(self, sender: str, value: int) -> None:
        self.set_param(sender, "withdrawal_unlock_duration", value)

    def set_reward_share_percent(self, sender: str, value: int) -> None:
        self.set_param(sender, "reward_share_percent", value)

    # ═══════════════════════════════════════════════════════════════
    # DEPOSITS
    # ═══════════════════════════════════════════════════════════════

    def deposit(self, sender: str, amount: int) -> int:
        """
        Open a new deposit slot.

        Args:
            sender: Depositing account (must have approved the ledger)
            amount: Amount in minimal units, > 0

        Returns:
            The new deposit id
        """
        with self._operation("deposit") as op:
            self._require_not_paused(op.state)
            self._require_positive(amount, "deposit amount should be more than 0")

            acc = op.state.accounts.setdefault(sender, AccountDeposits())
            acc.last_deposit_id += 1
            deposit_id = acc.last_deposit_id
            self._deposit(op, sender, deposit_id, amount)

        logger.info(f"{sender} deposited {amount} (id {deposit_id}), total staked {self.total_staked}")
        return deposit_id

    def deposit_to(self, sender: str, deposit_id: int, amount: int) -> None:
        """
        Add to an existing (possibly emptied) deposit slot.

        Accrued reward is settled first: paid if the deposit has matured,
        forfeited to the pool otherwise. The slot's maturity clock restarts.
        """
        with self._operation("deposit") as op:
            self._require_not_paused(op.state)
            self._require_positive(amount, "deposit amount should be more than 0")
            self._require_deposit_id(op.state, sender, deposit_id)
            reward = self._deposit(op, sender, deposit_id, amount)

        logger.info(f"{sender} added {amount} to deposit {deposit_id} (reward paid {reward})")

    def _deposit(self, op: Operation, sender: str, deposit_id: int, amount: int) -> int:
        rewards = op.state.rewards
        acc = op.state.accounts[sender]
        dep = acc.deposits.setdefault(deposit_id, Deposit())

        reward = 0
        prev_deposit_duration = 0
        if not dep.is_empty:
            prev_deposit_duration = op.now - dep.deposit_date
            accrued = accrued_reward(dep.amount, rewards.reward_factor, dep.reward_factor_snapshot)
            if is_reward_mature(dep.deposit_date, op.now, op.state.reward_maturity_duration):
                reward = accrued
            elif accrued > 0:
                logger.debug(f"Deposit {sender}/{deposit_id} not mature, {accrued} stays in the pool")

        dep.amount += amount
        dep.deposit_date = op.now
        dep.reward_factor_snapshot = rewards.reward_factor
        rewards.total_staked += amount
        rewards.total_remaining_reward -= reward

        op.emit(
            EventType.DEPOSITED,
            sender=sender,
            id=deposit_id,
            amount=amount,
            user_balance=dep.amount,
            reward=reward,
            prev_deposit_duration=prev_deposit_duration,
            reward_factor=rewards.reward_factor,
            total_staked=rewards.total_staked,
        )

        ledger = op.state.ledger_address
        op.interact(lambda: self.token.transfer_from(ledger, sender, ledger, amount),
                    undo=lambda: self.token.transfer(ledger, sender, amount))
        if reward > 0:
            op.interact(lambda: self.token.transfer(ledger, sender, reward),
                        undo=lambda: self.token.transfer(sender, ledger, reward))
        return reward

    # ═══════════════════════════════════════════════════════════════
    # REWARDS
    # ═══════════════════════════════════════════════════════════════

    def distribute(self, sender: str, reward_amount: int) -> None:
        """
        Pull `reward_amount` from the owner and credit the stakers' share to
        every staked unit through the reward factor.

        With nothing staked the shares are still booked, but the factor is
        left unchanged: the stakers' share stays in the pool.
        """
        with self._operation("distribute") as op:
            self._require_owner(op.state, sender)
            self._require_not_paused(op.state)
            self._require_positive(reward_amount, "reward amount should be more than 0")

            rewards = op.state.rewards
            share_percent = ParameterStore(op.state.params).get("reward_share_percent", op.now)
            shares = split_reward(reward_amount, share_percent)

            rewards.total_remaining_reward += reward_amount
            rewards.total_stakers_reward += shares['stakers_share']
            rewards.total_owner_reward += shares['owner_share']

            if rewards.total_staked > 0:
                rewards.reward_factor += reward_factor_increment(shares['stakers_share'], rewards.total_staked)
                op.emit(
                    EventType.REWARD_FACTOR_UPDATED,
                    reward_factor=rewards.reward_factor,
                    total_staked=rewards.total_staked,
                )
            else:
                logger.warning(f"Distributed {reward_amount} with nothing staked; reward factor unchanged")

            op.emit(
                EventType.REWARD_UPDATED,
                stakers_reward=shares['stakers_share'],
                owner_reward=shares['owner_share'],
                total_remaining_reward=rewards.total_remaining_reward,
                total_stakers_reward=rewards.total_stakers_reward,
                total_owner_reward=rewards.total_owner_reward,
            )

            ledger = op.state.ledger_address
            op.interact(lambda: self.token.transfer_from(ledger, sender, ledger, reward_amount),
                        undo=lambda: self.token.transfer(ledger, sender, reward_amount))

        logger.info(
            f"Distributed {reward_amount} (stakers {shares['stakers_share']}, owner {shares['owner_share']}), "
            f"reward factor {self.reward_factor}"
        )

    # ═══════════════════════════════════════════════════════════════
    # WITHDRAWALS
    # ═══════════════════════════════════════════════════════════════

    def make_forced_withdrawal(self, sender: str, deposit_id: int) -> int:
        """
        Withdraw a whole deposit immediately, paying the withdrawal fee.

        Returns:
            Amount transferred to the sender (principal - fee + matured reward)
        """
        with self._operation("make_forced_withdrawal") as op:
            self._require_not_paused(op.state)
            self._require_deposit_id(op.state, sender, deposit_id)
            fee = ParameterStore(op.state.params).get("fee", op.now)
            withdrawal_sum = self._withdraw(op, sender, deposit_id, fee)

        logger.info(f"{sender} force-withdrew deposit {deposit_id}: {withdrawal_sum}")
        return withdrawal_sum

    def request_withdrawal(self, sender: str, deposit_id: int) -> None:
        """Start the fee-free two-step withdrawal of a deposit."""
        with self._operation("request_withdrawal") as op:
            self._require_not_paused(op.state)
            self._require_deposit_id(op.state, sender, deposit_id)
            acc = op.state.accounts[sender]
            if acc.get_deposit(deposit_id).is_empty:
                raise InsufficientFunds("insufficient funds")

            requested_at = acc.withdrawal_requests.get(deposit_id)
            if requested_at is not None:
                store = ParameterStore(op.state.params)
                window = (store.get("withdrawal_lock_duration", op.now)
                          + store.get("withdrawal_unlock_duration", op.now))
                if op.now - requested_at <= window:
                    raise InvalidParameter("withdrawal already requested", {"requested_at": requested_at})

            acc.withdrawal_requests[deposit_id] = op.now
            op.emit(EventType.WITHDRAWAL_REQUESTED, sender=sender, id=deposit_id)

        logger.info(f"{sender} requested withdrawal of deposit {deposit_id}")

    def make_requested_withdrawal(self, sender: str, deposit_id: int) -> int:
        """
        Complete a requested withdrawal inside its unlock window, fee-free.

        Returns:
            Amount transferred to the sender (principal + matured reward)
        """
        with self._operation("make_requested_withdrawal") as op:
            self._require_not_paused(op.state)
            self._require_deposit_id(op.state, sender, deposit_id)
            acc = op.state.accounts[sender]
            requested_at = acc.withdrawal_requests.get(deposit_id)
            if requested_at is None:
                raise InvalidParameter("withdrawal wasn't requested")

            store = ParameterStore(op.state.params)
            lock = store.get("withdrawal_lock_duration", op.now)
            unlock = store.get("withdrawal_unlock_duration", op.now)
            elapsed = op.now - requested_at
            if elapsed < lock:
                raise TooEarly("too early", {"elapsed": elapsed, "lock": lock})
            if elapsed > lock + unlock:
                raise TooLate("too late", {"elapsed": elapsed, "deadline": lock + unlock})

            withdrawal_sum = self._withdraw(op, sender, deposit_id, 0)

        logger.info(f"{sender} completed requested withdrawal of deposit {deposit_id}: {withdrawal_sum}")
        return withdrawal_sum

    def _withdraw(self, op: Operation, sender: str, deposit_id: int, fee_rate: int) -> int:
        rewards = op.state.rewards
        acc = op.state.accounts[sender]
        dep = acc.get_deposit(deposit_id)
        if dep.is_empty:
            raise InsufficientFunds("insufficient funds")

        amount = dep.amount
        reward = 0
        if is_reward_mature(dep.deposit_date, op.now, op.state.reward_maturity_duration):
            reward = accrued_reward(amount, rewards.reward_factor, dep.reward_factor_snapshot)
        fee = withdrawal_fee(amount, fee_rate)
        withdrawal_sum = amount - fee + reward
        last_deposit_duration = op.now - dep.deposit_date

        # Effects: total_staked first, then the slot, then the pool
        rewards.total_staked -= amount
        acc.deposits[deposit_id] = Deposit()
        acc.withdrawal_requests.pop(deposit_id, None)
        rewards.total_remaining_reward = rewards.total_remaining_reward - reward + fee

        op.emit(
            EventType.BEFORE_DEPOSIT_AND_REWARD_WITHDRAWN,
            sender=sender,
            id=deposit_id,
            deposit=amount,
            reward=reward,
        )
        op.emit(
            EventType.WITHDRAWN,
            sender=sender,
            id=deposit_id,
            withdrawal_sum=withdrawal_sum,
            fee=fee,
            balance=0,
            reward=reward,
            last_deposit_duration=last_deposit_duration,
            total_staked=rewards.total_staked,
            total_remaining_reward=rewards.total_remaining_reward,
        )

        ledger = op.state.ledger_address
        op.interact(lambda: self.token.transfer(ledger, sender, withdrawal_sum),
                    undo=lambda: self.token.transfer(sender, ledger, withdrawal_sum))
        return withdrawal_sum

    # ═══════════════════════════════════════════════════════════════
    # CHECKS
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    def _require_positive(amount: int, message: str) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidParameter("amount must be an integer", amount)
        if amount <= 0:
            raise InvalidParameter(message)

    @staticmethod
    def _require_deposit_id(state: StakingState, sender: str, deposit_id: int) -> None:
        acc = state.accounts.get(sender)
        last_id = acc.last_deposit_id if acc else 0
        if deposit_id <= 0 or deposit_id > last_id:
            raise WrongDepositId("wrong deposit id", {"id": deposit_id, "last_id": last_id})
