from __future__ import annotations

"""
Membership ledger: the source of truth for voting power and payout share.

Maintains, per member: delegate key, shares, loot, existence, highest index
voted yes on, and jailed flag; plus the running aggregates `total_shares`
and `total_loot`, updated together with every grant/burn so dilution and
payout fractions are O(1).

Members are never deleted. A member that ragequits everything keeps its
record (and its delegate-key mapping) with zero shares and loot.

Invariants (checked by `assert_consistent`):
  • total_shares == sum(member.shares), total_loot == sum(member.loot)
  • every delegate key maps back to the member that holds it
  • jailed members hold no shares
"""

import copy
import logging
from typing import Any, Dict, Iterator, Optional

from .errors import GuildError, InsufficientBalance, StateGuardViolation
from .types import Address, Amount, Member

log = logging.getLogger(__name__)


def _ensure_nonneg(x: int, name: str) -> None:
    if x < 0:
        raise StateGuardViolation(f"{name} must be non-negative", value=x)


class MembershipLedger:
    def __init__(self) -> None:
        self._members: Dict[str, Member] = {}
        self._by_delegate: Dict[str, str] = {}
        self.total_shares: Amount = 0
        self.total_loot: Amount = 0

    # --- journal participant ---

    def snapshot(self) -> Any:
        return (copy.deepcopy(self._members), dict(self._by_delegate), self.total_shares, self.total_loot)

    def restore(self, snap: Any) -> None:
        members, by_delegate, shares, loot = snap
        self._members = copy.deepcopy(members)
        self._by_delegate = dict(by_delegate)
        self.total_shares = shares
        self.total_loot = loot

    # --- queries ---

    @property
    def total_weight(self) -> Amount:
        return self.total_shares + self.total_loot

    def __iter__(self) -> Iterator[Member]:
        return iter(self._members[k] for k in sorted(self._members))

    def __len__(self) -> int:
        return len(self._members)

    def lookup(self, identity: str) -> Optional[Member]:
        return self._members.get(str(identity))

    def is_member(self, identity: str) -> bool:
        m = self._members.get(str(identity))
        return m is not None and m.exists

    def member_address_by_delegate_key(self, key: str) -> Optional[Address]:
        addr = self._by_delegate.get(str(key))
        return Address(addr) if addr is not None else None

    def member_by_delegate_key(self, key: str) -> Optional[Member]:
        addr = self._by_delegate.get(str(key))
        return self._members.get(addr) if addr is not None else None

    # --- mutations ---

    def grant(self, identity: str, shares: Amount, loot: Amount, *, joined_index: int = 0) -> Member:
        """
        Mint shares/loot to `identity`, creating the member if needed. When a
        new member's address is currently another member's delegate key, that
        member's delegate key is reset to its own address first.
        """
        _ensure_nonneg(shares, "shares")
        _ensure_nonneg(loot, "loot")
        key = str(identity)
        member = self._members.get(key)
        if member is None:
            displaced = self._by_delegate.get(key)
            if displaced is not None and displaced != key:
                owner = self._members[displaced]
                owner.delegate_key = Address(displaced)
                self._by_delegate[displaced] = displaced
                log.info("members: delegate key %s reclaimed by new member; %s reset to self", key, displaced)
            member = Member(address=Address(key), delegate_key=Address(key), joined_index=joined_index)
            self._members[key] = member
            self._by_delegate[key] = key
            log.info("members: admitted %s", key)
        elif member.jailed and shares:
            raise StateGuardViolation("jailed member cannot receive shares", member=key)
        member.shares += shares
        member.loot += loot
        self.total_shares += shares
        self.total_loot += loot
        return member

    def burn(self, identity: str, shares: Amount, loot: Amount) -> Member:
        _ensure_nonneg(shares, "shares")
        _ensure_nonneg(loot, "loot")
        member = self._require(identity)
        if member.shares < shares:
            raise InsufficientBalance("insufficient shares", required=shares, available=member.shares)
        if member.loot < loot:
            raise InsufficientBalance("insufficient loot", required=loot, available=member.loot)
        member.shares -= shares
        member.loot -= loot
        self.total_shares -= shares
        self.total_loot -= loot
        return member

    def convert_shares_to_loot(self, identity: str) -> Amount:
        """Turn every share of `identity` into loot 1:1. Returns the amount converted."""
        member = self._require(identity)
        moved = member.shares
        member.shares = 0
        member.loot += moved
        self.total_shares -= moved
        self.total_loot += moved
        return moved

    def set_jailed(self, identity: str) -> Member:
        member = self._require(identity)
        if member.shares:
            raise StateGuardViolation("member must hold no shares to be jailed", member=str(identity))
        member.jailed = True
        return member

    def record_yes_vote(self, identity: str, proposal_index: int) -> Amount:
        """
        Raise the member's highest yes-vote index to `proposal_index` (never
        lowers it). Returns the current total weight (shares + loot), the
        snapshot the voted proposal folds into its dilution bound.
        """
        member = self._require(identity)
        if member.highest_index_yes_vote is None or proposal_index > member.highest_index_yes_vote:
            member.highest_index_yes_vote = proposal_index
        return self.total_weight

    def set_delegate_key(self, identity: str, new_key: str) -> Member:
        member = self._require(identity)
        old = member.delegate_key
        if self._by_delegate.get(old) == member.address:
            del self._by_delegate[old]
        self._by_delegate[str(new_key)] = member.address
        member.delegate_key = Address(str(new_key))
        return member

    # --- helpers ---

    def _require(self, identity: str) -> Member:
        member = self._members.get(str(identity))
        if member is None or not member.exists:
            raise StateGuardViolation("not a member", member=str(identity))
        return member

    def dump(self) -> Dict[str, Any]:
        return {
            "total_shares": self.total_shares,
            "total_loot": self.total_loot,
            "members": {k: self._members[k].to_dict() for k in sorted(self._members)},
        }

    def assert_consistent(self) -> None:
        shares = sum(m.shares for m in self._members.values())
        loot = sum(m.loot for m in self._members.values())
        if shares != self.total_shares or loot != self.total_loot:
            raise GuildError(
                "membership totals out of sync",
                details={"total_shares": self.total_shares, "sum_shares": shares,
                         "total_loot": self.total_loot, "sum_loot": loot},
            )
        for key, addr in self._by_delegate.items():
            if self._members[addr].delegate_key != key:
                raise GuildError("delegate key index out of sync", details={"key": key, "member": addr})
        for m in self._members.values():
            if m.jailed and m.shares:
                raise GuildError("jailed member holds shares", details={"member": m.address})


__all__ = ["MembershipLedger"]
