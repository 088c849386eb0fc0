import pytest

from guild.errors import InsufficientBalance, StateGuardViolation
from guild.members import MembershipLedger


def _mk_ledger() -> MembershipLedger:
    led = MembershipLedger()
    led.grant("alice", 1, 0)
    return led


def test_grant_and_burn_keep_running_totals():
    led = _mk_ledger()
    led.grant("bob", 5, 3, joined_index=2)
    led.grant("alice", 2, 1)
    assert (led.total_shares, led.total_loot, led.total_weight) == (8, 4, 12)
    assert led.lookup("bob").joined_index == 2

    led.burn("bob", 2, 3)
    assert led.lookup("bob").shares == 3 and led.lookup("bob").loot == 0
    assert (led.total_shares, led.total_loot) == (6, 1)
    led.assert_consistent()


def test_burn_more_than_held_is_rejected():
    led = _mk_ledger()
    with pytest.raises(InsufficientBalance) as ei:
        led.burn("alice", 2, 0)
    assert ei.value.reason == "insufficient shares"
    assert ei.value.details["available"] == 1
    with pytest.raises(InsufficientBalance) as ei:
        led.burn("alice", 0, 1)
    assert ei.value.reason == "insufficient loot"
    assert led.total_shares == 1


def test_members_are_never_deleted():
    led = _mk_ledger()
    led.burn("alice", 1, 0)
    assert led.is_member("alice")
    assert led.member_by_delegate_key("alice").address == "alice"
    assert led.total_weight == 0


def test_convert_and_jail():
    led = _mk_ledger()
    led.grant("bob", 4, 1)
    with pytest.raises(StateGuardViolation):
        led.set_jailed("bob")
    assert led.convert_shares_to_loot("bob") == 4
    led.set_jailed("bob")
    bob = led.lookup("bob")
    assert (bob.shares, bob.loot, bob.jailed) == (0, 5, True)
    assert (led.total_shares, led.total_loot) == (1, 5)

    led.grant("bob", 0, 2)
    with pytest.raises(StateGuardViolation) as ei:
        led.grant("bob", 1, 0)
    assert ei.value.reason == "jailed member cannot receive shares"
    led.assert_consistent()


def test_highest_yes_vote_is_monotone():
    led = _mk_ledger()
    led.grant("bob", 2, 3)
    assert led.record_yes_vote("alice", 4) == 6
    led.record_yes_vote("alice", 2)
    assert led.lookup("alice").highest_index_yes_vote == 4


def test_new_member_reclaims_its_address_as_delegate_key():
    led = _mk_ledger()
    led.set_delegate_key("alice", "carol")
    assert led.member_address_by_delegate_key("carol") == "alice"
    assert led.member_by_delegate_key("alice") is None

    led.grant("carol", 1, 0)
    assert led.lookup("alice").delegate_key == "alice"
    assert led.member_address_by_delegate_key("alice") == "alice"
    assert led.member_address_by_delegate_key("carol") == "carol"
    led.assert_consistent()


def test_unknown_member_is_rejected():
    led = _mk_ledger()
    with pytest.raises(StateGuardViolation) as ei:
        led.burn("mallory", 0, 0)
    assert ei.value.reason == "not a member"


def test_snapshot_restore_roundtrip():
    led = _mk_ledger()
    snap = led.snapshot()
    led.grant("bob", 3, 3)
    led.set_delegate_key("alice", "key-a")
    led.restore(snap)
    assert led.lookup("bob") is None
    assert led.lookup("alice").delegate_key == "alice"
    assert led.total_weight == 1
    led.assert_consistent()
