# MIT License
# Copyright (c) 2025 Hashborn

"""Shared fixtures: deterministic clock, funded local token, ledger and governance."""

import pytest

from centralex.engine.core.clock import ManualClock
from centralex.engine.core.events import EventLog
from centralex.engine.core.governance import GovernanceEngine
from centralex.engine.core.staking import StakingLedger
from centralex.engine.core.token import LocalToken
from centralex.protocol.config.economic_model import HOUR, SCALE, WEEK

OWNER = "owner"
ALICE = "alice"
BOB = "bob"
CAROL = "carol"
DAVE = "dave"

ACCOUNTS = [OWNER, ALICE, BOB, CAROL, DAVE]
INITIAL_BALANCE = 1_000_000
LEDGER = "cenx1staking"


class FakeStakes:
    """StakeView double with arbitrary balances."""

    def __init__(self, balances=None):
        self.balances = dict(balances or {})

    def total_user_balance(self, account: str) -> int:
        return self.balances.get(account, 0)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def token():
    t = LocalToken()
    for account in ACCOUNTS:
        t.mint(account, INITIAL_BALANCE)
        t.approve(account, LEDGER, 10**30)
    return t


@pytest.fixture
def make_ledger(token, events, clock):
    """Factory for ledgers with custom initial parameters."""
    def _make(**overrides):
        params = dict(
            fee=0,
            withdrawal_lock_duration=HOUR,
            withdrawal_unlock_duration=HOUR,
            reward_maturity_duration=2 * WEEK,
            reward_share_percent=25 * SCALE // 100,
        )
        params.update(overrides)
        return StakingLedger(OWNER, token, ledger_address=LEDGER, events=events, clock=clock, **params)
    return _make


@pytest.fixture
def ledger(make_ledger):
    return make_ledger()


@pytest.fixture
def governance(ledger, events, clock):
    return GovernanceEngine(OWNER, ledger, events=events, clock=clock)


def custody_holds(ledger, token) -> bool:
    """Ledger token balance covers exactly what it owes."""
    return token.balance_of(ledger.address) == ledger.total_staked + ledger.total_remaining_reward
