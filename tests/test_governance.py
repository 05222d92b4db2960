# MIT License
# Copyright (c) 2025 Hashborn

"""
Governance Session Tests

1. Phase ring and InvalidPhase outside the source phase
2. Proposal registry (add, pause/resume, cancel, duplicates)
3. Voting eligibility and the tally
4. Winners, sessions and result views
"""

import pytest

from centralex.engine.core.governance import GovernanceEngine, StakeView
from centralex.protocol.types.common import (
    DuplicateProposal,
    DuplicateVote,
    GovernancePhase,
    InvalidParameter,
    InvalidPhase,
    NotEligible,
    Paused,
    ProposalStatus,
    Unauthorized,
)

from conftest import ALICE, BOB, CAROL, DAVE, OWNER, FakeStakes


def run_draft(gov, proposals=(100, 200, 300)):
    gov.open_proposal_draft(OWNER)
    for proposal_id in proposals:
        gov.add_proposal(OWNER, proposal_id, f"Proposal {proposal_id}")
    gov.close_proposal_draft(OWNER)
    gov.open_voting(OWNER)


def finish_session(gov):
    gov.close_voting(OWNER)
    gov.open_calculation(OWNER)
    gov.calculate_votes(OWNER)
    gov.close_calculation(OWNER)


@pytest.fixture
def stakes():
    return FakeStakes({ALICE: 10, BOB: 20, CAROL: 30})


@pytest.fixture
def gov(stakes, events, clock):
    return GovernanceEngine(OWNER, stakes, events=events, clock=clock)


# ═══════════════════════════════════════════════════════════════════
# PHASE RING
# ═══════════════════════════════════════════════════════════════════

def test_ledger_satisfies_stake_view(ledger):
    assert isinstance(ledger, StakeView)
    assert isinstance(FakeStakes(), StakeView)


def test_phase_ring_is_repeatable(gov, events):
    assert gov.get_governance_status() == GovernancePhase.SNAPSHOT_COMPLETED

    for _ in range(3):
        gov.open_proposal_draft(OWNER)
        assert gov.phase == GovernancePhase.DRAFT_STARTED
        gov.close_proposal_draft(OWNER)
        assert gov.phase == GovernancePhase.DRAFT_COMPLETED
        gov.open_voting(OWNER)
        assert gov.phase == GovernancePhase.VOTING_STARTED
        gov.close_voting(OWNER)
        assert gov.phase == GovernancePhase.VOTING_COMPLETED
        gov.open_calculation(OWNER)
        assert gov.phase == GovernancePhase.SNAPSHOT_STARTED
        gov.calculate_votes(OWNER)
        gov.close_calculation(OWNER)
        assert gov.phase == GovernancePhase.SNAPSHOT_COMPLETED

    assert len(events.by_name("PhaseChanged")) == 18
    assert events.last("PhaseChanged").data == {
        "previous": int(GovernancePhase.SNAPSHOT_STARTED),
        "phase": int(GovernancePhase.SNAPSHOT_COMPLETED),
        "sender": OWNER,
    }


@pytest.mark.parametrize("action", [
    "close_proposal_draft", "open_voting", "close_voting",
    "open_calculation", "calculate_votes", "close_calculation",
])
def test_transitions_outside_source_phase_fail(gov, action):
    with pytest.raises(InvalidPhase):
        getattr(gov, action)(OWNER)
    assert gov.phase == GovernancePhase.SNAPSHOT_COMPLETED


def test_open_draft_twice_fails(gov):
    gov.open_proposal_draft(OWNER)
    with pytest.raises(InvalidPhase):
        gov.open_proposal_draft(OWNER)


def test_transitions_are_owner_only(gov):
    with pytest.raises(Unauthorized):
        gov.open_proposal_draft(ALICE)


def test_base_index_moves_only_on_open_draft(gov):
    assert gov.base_index == 0
    run_draft(gov, (1, 2))
    assert gov.base_index == 0
    finish_session(gov)
    assert gov.base_index == 0

    gov.open_proposal_draft(OWNER)
    assert gov.base_index == 2
    gov.add_proposal(OWNER, 3, "third")
    assert gov.base_index == 2


# ═══════════════════════════════════════════════════════════════════
# PROPOSALS
# ═══════════════════════════════════════════════════════════════════

def test_pause_and_resume_counts(gov, events):
    gov.open_proposal_draft(OWNER)
    for proposal_id in (100, 200, 300):
        gov.add_proposal(OWNER, proposal_id, f"Proposal {proposal_id}")

    assert gov.get_active_proposals_count() == 3
    assert gov.get_current_proposals_count() == 3

    gov.pause_proposal(OWNER, 100)
    assert gov.get_paused_proposals_count() == 1
    assert gov.get_active_proposals_count() == 2
    assert gov.get_current_proposals_count() == 3
    assert events.last("ProposalStatusChanged").data == {"proposal_id": 100, "status": int(ProposalStatus.PAUSED)}

    gov.resume_proposal(OWNER, 100)
    assert gov.get_paused_proposals_count() == 0
    assert gov.get_active_proposals_count() == 3


def test_add_proposal_requires_draft_phase(gov):
    with pytest.raises(InvalidPhase):
        gov.add_proposal(OWNER, 1, "too early")
    gov.open_proposal_draft(OWNER)
    gov.close_proposal_draft(OWNER)
    with pytest.raises(InvalidPhase):
        gov.add_proposal(OWNER, 1, "too late")


def test_add_proposal_validation(gov):
    gov.open_proposal_draft(OWNER)
    with pytest.raises(InvalidParameter):
        gov.add_proposal(OWNER, 0, "zero id")
    with pytest.raises(Unauthorized):
        gov.add_proposal(ALICE, 1, "not owner")

    gov.add_proposal(OWNER, 1, "first")
    with pytest.raises(DuplicateProposal):
        gov.add_proposal(OWNER, 1, "again")


def test_proposal_ids_are_unique_forever(gov):
    run_draft(gov, (7,))
    finish_session(gov)
    gov.open_proposal_draft(OWNER)
    with pytest.raises(DuplicateProposal):
        gov.add_proposal(OWNER, 7, "reused id")


def test_status_toggles_validate_source_status(gov):
    gov.open_proposal_draft(OWNER)
    gov.add_proposal(OWNER, 1, "one")
    with pytest.raises(InvalidParameter):
        gov.resume_proposal(OWNER, 1)
    gov.pause_proposal(OWNER, 1)
    with pytest.raises(InvalidParameter):
        gov.pause_proposal(OWNER, 1)
    with pytest.raises(InvalidParameter):
        gov.pause_proposal(OWNER, 999)


def test_previous_session_proposals_are_out_of_window(gov):
    run_draft(gov, (1,))
    finish_session(gov)
    gov.open_proposal_draft(OWNER)

    with pytest.raises(InvalidParameter):
        gov.pause_proposal(OWNER, 1)
    assert gov.get_current_proposals_count() == 0
    assert gov.get_proposal_status(1) == ProposalStatus.CLOSED


def test_cancel_proposal(gov, stakes, events):
    run_draft(gov)
    gov.vote(ALICE, 100)
    gov.vote(BOB, 200)
    gov.cancel_proposal(OWNER, 100)

    with pytest.raises(InvalidParameter):
        gov.vote(CAROL, 100)
    with pytest.raises(InvalidParameter):
        gov.resume_proposal(OWNER, 100)

    finish_session(gov)
    assert gov.get_result(100) == 0
    assert gov.get_proposal_status(100) == ProposalStatus.CANCELED
    assert [e.data["proposal_id"] for e in events.by_name("WinnerFound")] == [200]


# ═══════════════════════════════════════════════════════════════════
# VOTING & TALLY
# ═══════════════════════════════════════════════════════════════════

def test_three_voters_elect_one_winner(gov, events):
    run_draft(gov)
    for voter in (ALICE, BOB, CAROL):
        gov.vote(voter, 100)
    assert events.last("VoteAdded").data == {"proposal_id": 100, "voter": CAROL}

    gov.close_voting(OWNER)
    gov.open_calculation(OWNER)
    gov.calculate_votes(OWNER)

    assert events.last("CalculationHasStarted").data == {"base_index": 0, "length": 3}
    assert events.last("CalculationHasCompleted").data == {"sender": OWNER}

    gov.close_calculation(OWNER)

    assert gov.get_result(100) == 3
    assert gov.get_result(200) == 0
    winners = events.by_name("WinnerFound")
    assert len(winners) == 1
    assert winners[0].data == {"proposal_id": 100, "winners_count": 1}
    for proposal_id in (100, 200, 300):
        assert gov.get_proposal_status(proposal_id) == ProposalStatus.CLOSED


def test_vote_requires_stake(gov):
    run_draft(gov)
    with pytest.raises(NotEligible):
        gov.vote(DAVE, 100)


def test_vote_requires_voting_phase(gov):
    gov.open_proposal_draft(OWNER)
    gov.add_proposal(OWNER, 100, "p")
    with pytest.raises(InvalidPhase):
        gov.vote(ALICE, 100)


def test_vote_requires_active_proposal(gov):
    gov.open_proposal_draft(OWNER)
    gov.add_proposal(OWNER, 100, "p")
    gov.pause_proposal(OWNER, 100)
    gov.close_proposal_draft(OWNER)
    gov.open_voting(OWNER)
    with pytest.raises(InvalidParameter):
        gov.vote(ALICE, 100)
    with pytest.raises(InvalidParameter):
        gov.vote(ALICE, 555)


def test_repeat_vote_is_rejected(gov, events):
    run_draft(gov)
    gov.vote(ALICE, 100)
    with pytest.raises(DuplicateVote):
        gov.vote(ALICE, 100)
    # other proposals are still open to the same voter
    gov.vote(ALICE, 200)

    assert len(events.by_name("VoteAdded")) == 2
    assert gov.has_voted(ALICE, 100)
    assert not gov.has_voted(BOB, 100)


def test_tally_drops_voters_without_stake(gov, stakes):
    run_draft(gov)
    gov.vote(ALICE, 100)
    gov.vote(BOB, 100)
    gov.vote(CAROL, 200)
    stakes.balances[ALICE] = 0
    stakes.balances[BOB] = 0

    finish_session(gov)
    assert gov.get_result(100) == 0
    assert gov.get_result(200) == 1


def test_tally_uses_live_ledger_balance(governance, ledger, events):
    ledger.deposit(ALICE, 100)
    ledger.deposit(BOB, 100)
    run_draft(governance)
    governance.vote(ALICE, 100)
    governance.vote(BOB, 200)
    ledger.make_forced_withdrawal(ALICE, 1)

    finish_session(governance)
    assert governance.get_result(100) == 0
    assert governance.get_result(200) == 1


def test_calculate_votes_is_idempotent(gov):
    run_draft(gov)
    gov.vote(ALICE, 100)
    gov.vote(BOB, 100)
    gov.close_voting(OWNER)
    gov.open_calculation(OWNER)
    gov.calculate_votes(OWNER)
    gov.calculate_votes(OWNER)
    assert gov.get_result(100) == 2


def test_close_calculation_requires_tally(gov, events):
    run_draft(gov)
    gov.vote(ALICE, 100)
    gov.vote(BOB, 100)
    gov.close_voting(OWNER)
    gov.open_calculation(OWNER)

    with pytest.raises(InvalidPhase):
        gov.close_calculation(OWNER)
    assert gov.phase == GovernancePhase.SNAPSHOT_STARTED
    assert gov.get_proposal_status(100) == ProposalStatus.ACTIVE
    assert events.by_name("WinnerFound") == []

    gov.calculate_votes(OWNER)
    gov.close_calculation(OWNER)
    assert gov.get_result(100) == 2
    assert events.last("WinnerFound").data == {"proposal_id": 100, "winners_count": 1}


def test_each_session_needs_its_own_tally(gov):
    run_draft(gov, (1, 2))
    gov.vote(ALICE, 1)
    finish_session(gov)

    run_draft(gov, (3, 4))
    gov.vote(BOB, 4)
    gov.close_voting(OWNER)
    gov.open_calculation(OWNER)
    with pytest.raises(InvalidPhase):
        gov.close_calculation(OWNER)


def test_ties_produce_multiple_winners(gov, events):
    run_draft(gov)
    gov.vote(ALICE, 100)
    gov.vote(BOB, 300)
    finish_session(gov)

    winners = [(e.data["proposal_id"], e.data["winners_count"]) for e in events.by_name("WinnerFound")]
    assert winners == [(100, 1), (300, 2)]


def test_no_votes_no_winner(gov, events):
    run_draft(gov)
    finish_session(gov)
    assert events.by_name("WinnerFound") == []
    assert gov.get_proposal_status(100) == ProposalStatus.CLOSED


def test_second_session_ignores_first_session_votes(gov, events):
    run_draft(gov, (1, 2))
    gov.vote(ALICE, 1)
    finish_session(gov)
    assert gov.get_result(1) == 1

    run_draft(gov, (3, 4))
    assert gov.get_result(1) == 0
    gov.vote(ALICE, 4)
    gov.vote(BOB, 4)
    finish_session(gov)

    assert gov.get_result(4) == 2
    assert gov.get_result(3) == 0
    assert events.last("WinnerFound").data == {"proposal_id": 4, "winners_count": 2}
    assert gov.winners_count == 2
    assert gov.get_proposal(1).vote_count == 1


def test_pause_blocks_governance(gov):
    run_draft(gov)
    gov.pause(OWNER)
    with pytest.raises(Paused):
        gov.vote(ALICE, 100)
    with pytest.raises(Paused):
        gov.close_voting(OWNER)

    gov.unpause(OWNER)
    gov.vote(ALICE, 100)


def test_get_proposal_for_unknown_id(gov):
    assert gov.get_proposal(42) is None
    assert gov.get_proposal_status(42) == ProposalStatus.NONE
    assert gov.get_result(42) == 0
