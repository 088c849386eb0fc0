from __future__ import annotations
"""
Core records of the guild: members, proposals and votes.

All records are plain dataclasses with JSON-friendly `to_dict()` helpers.
Mutation happens only through the ledgers that own them
(`guild.members.MembershipLedger`, `guild.proposals.ProposalQueue`); the
engine hands out copies on its query surface.
"""


from dataclasses import asdict, dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, NewType, Optional

Address = NewType("Address", str)
Amount = int
Period = int


class Vote(IntEnum):
    """Per (proposal, member) vote record. Write-once: NULL -> YES | NO."""
    NULL = 0
    YES = 1
    NO = 2


class ProposalKind(str, Enum):
    FUNDING = "funding"
    WHITELIST = "whitelist"
    GUILD_KICK = "guild_kick"


class ProposalState(str, Enum):
    """
    Lifecycle of a proposal. Terminal states: PROCESSED, CANCELLED.

        SUBMITTED -> SPONSORED -> VOTING_OPEN -> GRACE -> READY -> PROCESSED
        SUBMITTED -> CANCELLED
    """
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"
    SPONSORED = "sponsored"      # queued, voting window not yet open
    VOTING_OPEN = "voting_open"
    GRACE = "grace"
    READY = "ready"              # grace elapsed, awaiting processing
    PROCESSED = "processed"


@dataclass
class Member:
    address: Address
    delegate_key: Address
    shares: Amount = 0
    loot: Amount = 0
    exists: bool = True
    highest_index_yes_vote: Optional[int] = None
    jailed: bool = False
    # Queue length when the member was admitted. Proposals sponsored at a lower
    # index predate this membership and cannot be voted on by it.
    joined_index: int = 0

    @property
    def weight(self) -> Amount:
        return self.shares + self.loot

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProposalFlags:
    sponsored: bool = False
    processed: bool = False
    did_pass: bool = False
    cancelled: bool = False
    emergency_processed: bool = False


@dataclass
class Proposal:
    proposal_id: int
    kind: ProposalKind
    proposer: Address
    applicant: Optional[Address] = None
    shares_requested: Amount = 0
    loot_requested: Amount = 0
    tribute_offered: Amount = 0
    tribute_token: Optional[str] = None
    payment_requested: Amount = 0
    payment_token: Optional[str] = None
    details: str = ""
    # whitelist: asset to approve; guild kick: member to expel
    target: Optional[str] = None
    sponsor: Optional[Address] = None
    index: Optional[int] = None
    starting_period: Period = 0
    yes_votes: Amount = 0
    no_votes: Amount = 0
    max_total_weight_at_yes_vote: Amount = 0
    deposit: Amount = 0
    flags: ProposalFlags = field(default_factory=ProposalFlags)
    failure_reason: Optional[str] = None

    @property
    def is_whitelist(self) -> bool:
        return self.kind is ProposalKind.WHITELIST

    @property
    def is_guild_kick(self) -> bool:
        return self.kind is ProposalKind.GUILD_KICK

    @property
    def is_funding(self) -> bool:
        return self.kind is ProposalKind.FUNDING

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d


__all__ = [
    "Address",
    "Amount",
    "Period",
    "Vote",
    "ProposalKind",
    "ProposalState",
    "Member",
    "ProposalFlags",
    "Proposal",
]
