# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum, IntEnum
from typing import Any, Optional


class GovernancePhase(IntEnum):
    DRAFT_STARTED = 0
    DRAFT_COMPLETED = 1
    VOTING_STARTED = 2
    VOTING_COMPLETED = 3
    SNAPSHOT_STARTED = 4
    SNAPSHOT_COMPLETED = 5


class ProposalStatus(IntEnum):
    NONE = 0
    ACTIVE = 1
    PAUSED = 2
    CLOSED = 3
    CANCELED = 4


class EventType(str, Enum):
    # Staking ledger
    DEPOSITED = "Deposited"
    WITHDRAWN = "Withdrawn"
    BEFORE_DEPOSIT_AND_REWARD_WITHDRAWN = "BeforeDepositAndRewardWithdrawn"
    WITHDRAWAL_REQUESTED = "WithdrawalRequested"
    REWARD_UPDATED = "RewardUpdated"
    REWARD_FACTOR_UPDATED = "RewardFactorUpdated"

    # Delayed parameters
    FEE_SET = "FeeSet"
    WITHDRAWAL_LOCK_DURATION_SET = "WithdrawalLockDurationSet"
    WITHDRAWAL_UNLOCK_DURATION_SET = "WithdrawalUnlockDurationSet"
    REWARD_SHARE_PERCENT_SET = "RewardSharePercentSet"

    # Governance
    PHASE_CHANGED = "PhaseChanged"
    PROPOSAL_ADDED = "ProposalAdded"
    PROPOSAL_STATUS_CHANGED = "ProposalStatusChanged"
    VOTE_ADDED = "VoteAdded"
    CALCULATION_HAS_STARTED = "CalculationHasStarted"
    CALCULATION_HAS_COMPLETED = "CalculationHasCompleted"
    WINNER_FOUND = "WinnerFound"

    # Administration (both engines)
    PAUSED = "Paused"
    UNPAUSED = "Unpaused"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"


class ProtocolError(Exception):
    """Base error for every rejected ledger or governance operation.

    A raised ProtocolError means the operation was rolled back and left no
    observable side effects.
    """
    code = "ProtocolError"

    def __init__(self, reason: str = "", details: Optional[Any] = None):
        self.reason = reason or self.code
        self.details = details
        super().__init__(self.reason)

    def __str__(self) -> str:
        if self.details is None:
            return f"{self.code}: {self.reason}"
        return f"{self.code}: {self.reason} ({self.details})"


class Unauthorized(ProtocolError):
    code = "Unauthorized"


class InvalidPhase(ProtocolError):
    code = "InvalidPhase"


class InvalidParameter(ProtocolError):
    code = "InvalidParameter"


class DuplicateVote(InvalidParameter):
    code = "DuplicateVote"


class WrongDepositId(ProtocolError):
    code = "WrongDepositId"


class InsufficientFunds(ProtocolError):
    code = "InsufficientFunds"


class DuplicateProposal(ProtocolError):
    code = "DuplicateProposal"


class NotEligible(ProtocolError):
    code = "NotEligible"


class TooEarly(ProtocolError):
    code = "TooEarly"


class TooLate(ProtocolError):
    code = "TooLate"


class Paused(ProtocolError):
    code = "Paused"


class TransferFailed(ProtocolError):
    code = "TransferFailed"
