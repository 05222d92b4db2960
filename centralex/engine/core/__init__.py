# MIT License
# Copyright (c) 2025 Hashborn

"""
Core engines: delayed parameters, staking ledger, governance sessions.
"""

from .staking import StakingLedger
from .governance import GovernanceEngine, StakeView
from .system import StakingSystem

__all__ = ["StakingLedger", "GovernanceEngine", "StakeView", "StakingSystem"]
