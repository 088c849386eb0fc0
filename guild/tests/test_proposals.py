import pytest

from guild.errors import StateGuardViolation, Unauthorized, UnknownProposal
from guild.proposals import ProposalQueue
from guild.types import ProposalKind, ProposalState, Vote


def _mk_queue() -> ProposalQueue:
    return ProposalQueue(voting_period_length=5, grace_period_length=5, emergency_exit_wait=5)


def _submit_and_sponsor(q: ProposalQueue, period: int, *, kind=ProposalKind.FUNDING, target=None):
    p = q.submit(kind=kind, proposer="alice", applicant="bob", target=target)
    return q.sponsor(p.proposal_id, sponsor="alice", current_period=period, total_weight=10, deposit=10)


def test_voting_windows_are_serialized():
    q = _mk_queue()
    a = _submit_and_sponsor(q, 0)
    b = _submit_and_sponsor(q, 0)
    c = _submit_and_sponsor(q, 20)
    assert (a.index, b.index, c.index) == (0, 1, 2)
    assert (a.starting_period, b.starting_period, c.starting_period) == (1, 2, 21)
    assert b.max_total_weight_at_yes_vote == 10 and b.deposit == 10


def test_index_follows_sponsorship_not_submission():
    q = _mk_queue()
    first = q.submit(kind=ProposalKind.FUNDING, proposer="alice", applicant="bob")
    second = q.submit(kind=ProposalKind.FUNDING, proposer="alice", applicant="carol")
    q.sponsor(second.proposal_id, sponsor="alice", current_period=0, total_weight=1, deposit=0)
    q.sponsor(first.proposal_id, sponsor="alice", current_period=0, total_weight=1, deposit=0)
    assert q.at(0).proposal_id == second.proposal_id
    assert q.at(1).proposal_id == first.proposal_id


def test_state_walks_through_the_lifecycle():
    q = _mk_queue()
    p = _submit_and_sponsor(q, 0)
    assert q.state(p, 0) is ProposalState.SPONSORED
    assert q.state(p, 1) is ProposalState.VOTING_OPEN
    assert q.state(p, 6) is ProposalState.GRACE
    assert q.state(p, 11) is ProposalState.READY
    q.mark_processed(0, did_pass=True)
    assert q.state(p, 11) is ProposalState.PROCESSED


def test_vote_window_and_write_once():
    q = _mk_queue()
    _submit_and_sponsor(q, 0)
    with pytest.raises(StateGuardViolation) as ei:
        q.cast_vote(0, member="alice", vote=Vote.YES, weight=1, current_period=0, total_weight=10)
    assert ei.value.reason == "voting period has not started"

    q.cast_vote(0, member="alice", vote=Vote.YES, weight=3, current_period=1, total_weight=12)
    with pytest.raises(StateGuardViolation) as ei:
        q.cast_vote(0, member="alice", vote=Vote.NO, weight=3, current_period=2)
    assert ei.value.reason == "member has already voted"

    with pytest.raises(StateGuardViolation) as ei:
        q.cast_vote(0, member="bob", vote=Vote.NO, weight=1, current_period=6)
    assert ei.value.reason == "proposal voting period has expired"

    with pytest.raises(StateGuardViolation) as ei:
        q.cast_vote(0, member="bob", vote=Vote.NULL, weight=1, current_period=2)
    assert ei.value.reason == "vote must be either Yes or No"

    p = q.at(0)
    assert (p.yes_votes, p.no_votes, p.max_total_weight_at_yes_vote) == (3, 0, 12)
    assert q.vote_of(0, "alice") is Vote.YES and q.vote_of(0, "bob") is Vote.NULL


def test_processing_is_fifo():
    q = _mk_queue()
    _submit_and_sponsor(q, 0)
    _submit_and_sponsor(q, 0)
    with pytest.raises(StateGuardViolation) as ei:
        q.check_processable(1, 11)
    assert ei.value.reason == "proposal is not ready to be processed"
    with pytest.raises(StateGuardViolation) as ei:
        q.check_processable(1, 12)
    assert ei.value.reason == "previous proposal must be processed"

    q.check_processable(0, 11)
    q.mark_processed(0, did_pass=False, failure_reason="no")
    q.check_processable(1, 12)
    assert q.first_unprocessed() == 1
    with pytest.raises(StateGuardViolation) as ei:
        q.check_processable(0, 12)
    assert ei.value.reason == "proposal has already been processed"


def test_emergency_deadline():
    q = _mk_queue()
    p = _submit_and_sponsor(q, 0)
    assert q.emergency_deadline(p) == 16
    assert not q.is_emergency(p, 15)
    assert q.is_emergency(p, 16)


def test_proposed_markers_block_duplicates_until_processed():
    q = _mk_queue()
    _submit_and_sponsor(q, 0, kind=ProposalKind.WHITELIST, target="DAI")
    with pytest.raises(StateGuardViolation) as ei:
        q.submit(kind=ProposalKind.WHITELIST, proposer="bob", target="DAI")
    assert ei.value.reason == "already proposed to whitelist"

    kick = _submit_and_sponsor(q, 0, kind=ProposalKind.GUILD_KICK, target="bob")
    with pytest.raises(StateGuardViolation) as ei:
        q.submit(kind=ProposalKind.GUILD_KICK, proposer="carol", target="bob")
    assert ei.value.reason == "already proposed to kick"

    q.mark_processed(0, did_pass=False, failure_reason="no")
    q.mark_processed(kick.index, did_pass=False, failure_reason="no")
    assert not q.proposed_to_whitelist and not q.proposed_to_kick
    q.submit(kind=ProposalKind.WHITELIST, proposer="bob", target="DAI")


def test_cancel_rules():
    q = _mk_queue()
    p = q.submit(kind=ProposalKind.FUNDING, proposer="bob", applicant="bob")
    with pytest.raises(Unauthorized) as ei:
        q.cancel(p.proposal_id, caller="alice")
    assert ei.value.reason == "solely the proposer can cancel"
    q.cancel(p.proposal_id, caller="bob")
    with pytest.raises(StateGuardViolation) as ei:
        q.cancel(p.proposal_id, caller="bob")
    assert ei.value.reason == "proposal has already been cancelled"
    with pytest.raises(StateGuardViolation) as ei:
        q.sponsor(p.proposal_id, sponsor="alice", current_period=0, total_weight=1, deposit=0)
    assert ei.value.reason == "proposal has been cancelled"

    s = _submit_and_sponsor(q, 0)
    with pytest.raises(StateGuardViolation) as ei:
        q.cancel(s.proposal_id, caller="alice")
    assert ei.value.reason == "proposal has already been sponsored"


def test_unknown_proposal():
    q = _mk_queue()
    with pytest.raises(UnknownProposal):
        q.get(7)
    with pytest.raises(UnknownProposal):
        q.at(0)
