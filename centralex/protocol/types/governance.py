from pydantic import BaseModel, Field
from typing import Dict, List
from .common import GovernancePhase, ProposalStatus

class Proposal(BaseModel):
    id: int                   # global, nonzero, never reused
    title: str
    status: ProposalStatus = ProposalStatus.ACTIVE
    vote_count: int = 0       # filled in by calculate_votes

class Vote(BaseModel):
    voter: str
    proposal_id: int
    session: int              # session number the vote was cast in

class GovernanceState(BaseModel):
    owner: str
    phase: GovernancePhase = GovernancePhase.SNAPSHOT_COMPLETED
    base_index: int = 0       # first proposal of the current/most recent session
    session: int = 0          # incremented by every open_proposal_draft
    proposals: List[Proposal] = Field(default_factory=list)
    # proposal id -> position in `proposals`
    proposal_positions: Dict[int, int] = Field(default_factory=dict)
    votes: List[Vote] = Field(default_factory=list)
    winners_count: int = 0    # winners declared over the engine's lifetime
    tallied: bool = False     # calculate_votes ran in the current SnapshotStarted phase
    paused: bool = False
