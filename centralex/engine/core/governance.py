# MIT License
# Copyright (c) 2025 Hashborn

"""
Governance Session Machine

Sessions cycle through a six-phase ring:
SnapshotCompleted -> DraftStarted -> DraftCompleted -> VotingStarted
-> VotingCompleted -> SnapshotStarted -> SnapshotCompleted

Proposals live in one append-only sequence; base_index marks where the
current session's window starts. Voter eligibility is a live stake check
against the staking ledger, at vote time and again at tally time.
"""

from typing import Callable, List, Optional, Protocol, runtime_checkable
import logging

from ...protocol.types.common import (
    DuplicateProposal,
    DuplicateVote,
    EventType,
    GovernancePhase,
    InvalidParameter,
    InvalidPhase,
    NotEligible,
    ProposalStatus,
)
from ...protocol.types.governance import GovernanceState, Proposal, Vote
from ..storage.db import StorageDB
from .base import Engine
from .events import EventLog

logger = logging.getLogger(__name__)


@runtime_checkable
class StakeView(Protocol):
    """Eligibility query governance needs from the staking ledger."""

    def total_user_balance(self, account: str) -> int: ...


class GovernanceEngine(Engine):
    source = "governance"
    STATE_KEY = "governance"

    def __init__(
        self,
        owner: str,
        stake_view: StakeView,
        events: Optional[EventLog] = None,
        clock: Callable[[], int] = None,
        state: Optional[GovernanceState] = None,
    ):
        if state is None:
            if not owner:
                raise InvalidParameter("zero address")
            state = GovernanceState(owner=owner)
        if stake_view is None:
            raise InvalidParameter("not a contract address")
        super().__init__(state, events=events, clock=clock)
        self.stake_view = stake_view

    @classmethod
    def load(cls, db: StorageDB, stake_view: StakeView, events: Optional[EventLog] = None,
             clock: Callable[[], int] = None) -> 'GovernanceEngine':
        state = cls._load_state(db, GovernanceState)
        return cls(owner=state.owner, stake_view=stake_view, events=events, clock=clock, state=state)

    # ═══════════════════════════════════════════════════════════════
    # PHASE TRANSITIONS (owner)
    # ═══════════════════════════════════════════════════════════════

    def _transition(self, sender: str, name: str, source: GovernancePhase, target: GovernancePhase) -> None:
        with self._operation(name) as op:
            self._require_owner(op.state, sender)
            self._require_not_paused(op.state)
            self._require_phase(op.state, source)
            if target == GovernancePhase.DRAFT_STARTED:
                op.state.base_index = len(op.state.proposals)
                op.state.session += 1
                op.state.votes = []
            elif target == GovernancePhase.SNAPSHOT_STARTED:
                op.state.tallied = False
            op.state.phase = target
            op.emit(EventType.PHASE_CHANGED, previous=int(source), phase=int(target), sender=sender)
        logger.info(f"Governance phase {source.name} -> {target.name}")

    def open_proposal_draft(self, sender: str) -> None:
        """Start a new session; proposals added from now on form its window."""
        self._transition(sender, "open_proposal_draft",
                         GovernancePhase.SNAPSHOT_COMPLETED, GovernancePhase.DRAFT_STARTED)

    def close_proposal_draft(self, sender: str) -> None:
        self._transition(sender, "close_proposal_draft",
                         GovernancePhase.DRAFT_STARTED, GovernancePhase.DRAFT_COMPLETED)

    def open_voting(self, sender: str) -> None:
        self._transition(sender, "open_voting",
                         GovernancePhase.DRAFT_COMPLETED, GovernancePhase.VOTING_STARTED)

    def close_voting(self, sender: str) -> None:
        self._transition(sender, "close_voting",
                         GovernancePhase.VOTING_STARTED, GovernancePhase.VOTING_COMPLETED)

    def open_calculation(self, sender: str) -> None:
        self._transition(sender, "open_calculation",
                         GovernancePhase.VOTING_COMPLETED, GovernancePhase.SNAPSHOT_STARTED)

    # ═══════════════════════════════════════════════════════════════
    # PROPOSALS
    # ═══════════════════════════════════════════════════════════════

    def add_proposal(self, sender: str, proposal_id: int, title: str) -> None:
        with self._operation("add_proposal") as op:
            self._require_owner(op.state, sender)
            self._require_not_paused(op.state)
            self._require_phase(op.state, GovernancePhase.DRAFT_STARTED)
            if isinstance(proposal_id, bool) or not isinstance(proposal_id, int) or proposal_id <= 0:
                raise InvalidParameter("proposal id should be more than 0", proposal_id)
            if proposal_id in op.state.proposal_positions:
                raise DuplicateProposal("proposal already exists", proposal_id)

            op.state.proposal_positions[proposal_id] = len(op.state.proposals)
            op.state.proposals.append(Proposal(id=proposal_id, title=title))
            op.emit(EventType.PROPOSAL_ADDED, proposal_id=proposal_id, title=title)

        logger.info(f"Proposal {proposal_id} added: {title!r}")

    def pause_proposal(self, sender: str, proposal_id: int) -> None:
        self._set_status(sender, "pause_proposal", proposal_id,
                         (ProposalStatus.ACTIVE,), ProposalStatus.PAUSED)

    def resume_proposal(self, sender: str, proposal_id: int) -> None:
        self._set_status(sender, "resume_proposal", proposal_id,
                         (ProposalStatus.PAUSED,), ProposalStatus.ACTIVE)

    def cancel_proposal(self, sender: str, proposal_id: int) -> None:
        """Withdraw a proposal from the session for good. Canceled proposals never win."""
        self._set_status(sender, "cancel_proposal", proposal_id,
                         (ProposalStatus.ACTIVE, ProposalStatus.PAUSED), ProposalStatus.CANCELED)

    def _set_status(self, sender: str, name: str, proposal_id: int, allowed: tuple,
                    status: ProposalStatus) -> None:
        with self._operation(name) as op:
            self._require_owner(op.state, sender)
            self._require_not_paused(op.state)
            proposal = self._window_proposal(op.state, proposal_id)
            if proposal.status not in allowed:
                raise InvalidParameter(
                    f"proposal is {proposal.status.name.lower()}",
                    {"proposal_id": proposal_id, "status": int(proposal.status)},
                )
            proposal.status = status
            op.emit(EventType.PROPOSAL_STATUS_CHANGED, proposal_id=proposal_id, status=int(status))

        logger.info(f"Proposal {proposal_id} -> {status.name}")

    # ═══════════════════════════════════════════════════════════════
    # VOTING & TALLY
    # ═══════════════════════════════════════════════════════════════

    def vote(self, sender: str, proposal_id: int) -> None:
        """
        Cast one vote for an active proposal of the current session.

        Args:
            sender: Voting account; needs a nonzero staked balance
            proposal_id: Proposal in the current window
        """
        with self._operation("vote") as op:
            self._require_not_paused(op.state)
            self._require_phase(op.state, GovernancePhase.VOTING_STARTED)
            proposal = self._window_proposal(op.state, proposal_id)
            if proposal.status != ProposalStatus.ACTIVE:
                raise InvalidParameter("proposal is not active", {"proposal_id": proposal_id})
            if self.stake_view.total_user_balance(sender) <= 0:
                raise NotEligible("not eligible to vote", sender)
            if any(v.voter == sender and v.proposal_id == proposal_id and v.session == op.state.session
                   for v in op.state.votes):
                raise DuplicateVote("already voted", {"proposal_id": proposal_id})

            op.state.votes.append(Vote(voter=sender, proposal_id=proposal_id, session=op.state.session))
            op.emit(EventType.VOTE_ADDED, proposal_id=proposal_id, voter=sender)

        logger.info(f"{sender} voted for proposal {proposal_id}")

    def calculate_votes(self, sender: str) -> None:
        """
        Recount every window proposal from zero.

        Only votes whose voter still has stake now are counted, so accounts
        that withdrew everything after voting drop out of the tally.
        """
        with self._operation("calculate_votes") as op:
            self._require_owner(op.state, sender)
            self._require_not_paused(op.state)
            self._require_phase(op.state, GovernancePhase.SNAPSHOT_STARTED)

            state = op.state
            window = self._window(state)
            op.emit(EventType.CALCULATION_HAS_STARTED, base_index=state.base_index, length=len(state.proposals))

            for proposal in window:
                proposal.vote_count = 0

            dropped = 0
            for vote in state.votes:
                if vote.session != state.session:
                    continue
                position = state.proposal_positions.get(vote.proposal_id)
                if position is None or position < state.base_index:
                    continue
                proposal = state.proposals[position]
                if proposal.status == ProposalStatus.CANCELED:
                    continue
                if self.stake_view.total_user_balance(vote.voter) <= 0:
                    dropped += 1
                    continue
                proposal.vote_count += 1

            state.tallied = True
            op.emit(EventType.CALCULATION_HAS_COMPLETED, sender=sender)

        if dropped:
            logger.info(f"Tally dropped {dropped} vote(s) from accounts without stake")
        logger.info(f"Votes calculated for {len(window)} proposal(s)")

    def close_calculation(self, sender: str) -> None:
        """Declare the winners (ties allowed), close the window and finish the session."""
        with self._operation("close_calculation") as op:
            self._require_owner(op.state, sender)
            self._require_not_paused(op.state)
            self._require_phase(op.state, GovernancePhase.SNAPSHOT_STARTED)
            if not op.state.tallied:
                raise InvalidPhase("votes are not calculated yet, run calculate_votes first")

            state = op.state
            candidates = [p for p in self._window(state) if p.status != ProposalStatus.CANCELED]
            max_count = max((p.vote_count for p in candidates), default=0)

            winners = []
            if max_count > 0:
                for proposal in candidates:
                    if proposal.vote_count == max_count:
                        state.winners_count += 1
                        winners.append(proposal.id)
                        op.emit(EventType.WINNER_FOUND, proposal_id=proposal.id, winners_count=state.winners_count)

            for proposal in candidates:
                proposal.status = ProposalStatus.CLOSED
                op.emit(EventType.PROPOSAL_STATUS_CHANGED, proposal_id=proposal.id, status=int(ProposalStatus.CLOSED))

            state.phase = GovernancePhase.SNAPSHOT_COMPLETED
            op.emit(
                EventType.PHASE_CHANGED,
                previous=int(GovernancePhase.SNAPSHOT_STARTED),
                phase=int(GovernancePhase.SNAPSHOT_COMPLETED),
                sender=sender,
            )

        logger.info(f"Session {self.state.session} closed, winners: {winners or 'none'} (max votes {max_count})")

    # ═══════════════════════════════════════════════════════════════
    # VIEWS
    # ═══════════════════════════════════════════════════════════════

    @property
    def phase(self) -> GovernancePhase:
        return self.state.phase

    @property
    def base_index(self) -> int:
        return self.state.base_index

    @property
    def winners_count(self) -> int:
        return self.state.winners_count

    def get_governance_status(self) -> GovernancePhase:
        return self.state.phase

    def get_current_proposals_count(self) -> int:
        return len(self._window(self.state))

    def get_active_proposals_count(self) -> int:
        return sum(1 for p in self._window(self.state) if p.status == ProposalStatus.ACTIVE)

    def get_paused_proposals_count(self) -> int:
        return sum(1 for p in self._window(self.state) if p.status == ProposalStatus.PAUSED)

    def get_result(self, proposal_id: int) -> int:
        """Vote count of a proposal in the current window; 0 for anything else."""
        position = self.state.proposal_positions.get(proposal_id)
        if position is None or position < self.state.base_index:
            return 0
        return self.state.proposals[position].vote_count

    def get_proposal_status(self, proposal_id: int) -> ProposalStatus:
        proposal = self.get_proposal(proposal_id)
        return proposal.status if proposal else ProposalStatus.NONE

    def get_proposal(self, proposal_id: int) -> Optional[Proposal]:
        position = self.state.proposal_positions.get(proposal_id)
        if position is None:
            return None
        return self.state.proposals[position]

    def get_proposals(self) -> List[Proposal]:
        """Proposals of the current (or most recent) session."""
        return list(self._window(self.state))

    def has_voted(self, account: str, proposal_id: int) -> bool:
        return any(v.voter == account and v.proposal_id == proposal_id and v.session == self.state.session
                   for v in self.state.votes)

    # ─── Helpers ──────────────────────────────────────────────────

    @staticmethod
    def _window(state: GovernanceState) -> List[Proposal]:
        return state.proposals[state.base_index:]

    @staticmethod
    def _window_proposal(state: GovernanceState, proposal_id: int) -> Proposal:
        position = state.proposal_positions.get(proposal_id)
        if position is None or position < state.base_index:
            raise InvalidParameter("proposal not found in current session", {"proposal_id": proposal_id})
        return state.proposals[position]

    @staticmethod
    def _require_phase(state: GovernanceState, phase: GovernancePhase) -> None:
        if state.phase != phase:
            raise InvalidPhase(
                f"expected phase {phase.name}, current phase is {state.phase.name}",
                {"expected": int(phase), "current": int(state.phase)},
            )
