import pytest

from guild.engine import FAIL_JAILED_APPLICANT
from guild.errors import StateGuardViolation, Unauthorized

from .conftest import GRACE, VOTING


def _kick(engine, advance, target, *, proposer="alice"):
    pid = engine.submit_guild_kick_proposal(proposer, target, "misconduct")
    index = engine.sponsor_proposal("alice", pid)
    advance(engine.get_proposal_at(index).starting_period - engine.current_period())
    engine.submit_vote("alice", index, "yes")
    advance(VOTING + GRACE)
    return index, engine.process_proposal("alice", index)


def test_kick_converts_shares_to_loot_and_jails(engine, weth, admit, advance):
    admit(engine, "bob", shares=3, tribute=100, voters=["alice"])
    # bob (3 shares) stays out of the vote so alice's yes carries
    index, passed = _kick(engine, advance, "bob")
    assert passed is True

    bob = engine.get_member("bob")
    assert (bob.shares, bob.loot, bob.jailed) == (0, 3, True)
    assert (engine.total_shares, engine.total_loot) == (1, 3)

    # kicked member can neither sponsor nor vote
    pid = engine.submit_proposal("carol", applicant="carol", tribute_token="WETH", payment_token="WETH")
    with pytest.raises(Unauthorized):
        engine.sponsor_proposal("bob", pid)
    i = engine.sponsor_proposal("alice", pid)
    advance(1)
    with pytest.raises(Unauthorized) as ei:
        engine.submit_vote("bob", i, "no")
    assert ei.value.reason == "not a delegate"

    # ... nor be funded again, but can still take his loot out
    with pytest.raises(StateGuardViolation) as ei:
        engine.submit_proposal("bob", applicant="bob", shares_requested=1,
                               tribute_token="WETH", payment_token="WETH")
    assert ei.value.reason == "proposal applicant must not be jailed"
    assert engine.ragequit("bob", 0, 3) == {"WETH": 75}
    assert engine.get_member("bob").loot == 0


def test_kick_submission_rules(engine, admit, advance):
    with pytest.raises(StateGuardViolation) as ei:
        engine.submit_guild_kick_proposal("alice", "nobody")
    assert ei.value.reason == "member must have at least one share"

    admit(engine, "bob")
    first = engine.submit_guild_kick_proposal("alice", "bob")
    engine.sponsor_proposal("alice", first)
    with pytest.raises(StateGuardViolation) as ei:
        engine.submit_guild_kick_proposal("carol", "bob")
    assert ei.value.reason == "already proposed to kick"

    advance(1)
    engine.submit_vote("alice", 1, "yes")
    advance(VOTING + GRACE)
    engine.process_proposal("alice", 1)
    with pytest.raises(StateGuardViolation) as ei:
        engine.submit_guild_kick_proposal("alice", "bob")
    assert ei.value.reason == "member must not already be jailed"


def test_failed_kick_clears_the_marker(engine, admit, advance):
    admit(engine, "bob")
    pid = engine.submit_guild_kick_proposal("alice", "bob")
    index = engine.sponsor_proposal("alice", pid)
    advance(1)
    engine.submit_vote("bob", index, "no")
    advance(VOTING + GRACE)
    assert engine.process_proposal("alice", index) is False
    assert not engine.get_member("bob").jailed
    engine.submit_guild_kick_proposal("alice", "bob")


def test_funding_for_member_kicked_in_flight_fails_and_refunds(engine, weth, admit, advance):
    admit(engine, "bob")
    kick = engine.sponsor_proposal("alice", engine.submit_guild_kick_proposal("alice", "bob"))
    pid = engine.submit_proposal("carol", applicant="bob", shares_requested=1, tribute_offered=50,
                                 tribute_token="WETH", payment_token="WETH")
    funding = engine.sponsor_proposal("alice", pid)
    assert weth.balance_of("carol") == 950

    advance(engine.get_proposal_at(kick).starting_period - engine.current_period())
    engine.submit_vote("alice", kick, "yes")
    advance(1)
    engine.submit_vote("alice", funding, "yes")
    advance(VOTING + GRACE)

    assert engine.process_proposal("alice", kick) is True
    assert engine.process_proposal("alice", funding) is False
    p = engine.get_proposal_at(funding)
    assert p.failure_reason == FAIL_JAILED_APPLICANT and not p.flags.emergency_processed
    assert weth.balance_of("carol") == 1_000
    bob = engine.get_member("bob")
    assert (bob.shares, bob.loot, bob.jailed) == (0, 1, True)
