from __future__ import annotations
"""
Guild events.

One record per committed state transition, recorded in the engine's event
log (and only when the enclosing operation commits). All events are frozen
dataclasses with JSON-serializable fields.

Events:
  - SummonComplete:     guild created
  - SubmitProposal:     proposal created (unsponsored)
  - SponsorProposal:    proposal queued with a voting window
  - SubmitVote:         member voted on a queued proposal
  - ProcessProposal:    proposal processed (passed / failed / emergency)
  - Ragequit:           member burned shares/loot for a treasury payout
  - CancelProposal:     unsponsored proposal withdrawn by its proposer
  - UpdateDelegateKey:  member changed its voting key
"""


from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple


class EventType(str, Enum):
    SUMMON_COMPLETE = "SummonComplete"
    SUBMIT_PROPOSAL = "SubmitProposal"
    SPONSOR_PROPOSAL = "SponsorProposal"
    SUBMIT_VOTE = "SubmitVote"
    PROCESS_PROPOSAL = "ProcessProposal"
    RAGEQUIT = "Ragequit"
    CANCEL_PROPOSAL = "CancelProposal"
    UPDATE_DELEGATE_KEY = "UpdateDelegateKey"


@dataclass(frozen=True)
class Event:
    etype: ClassVar[EventType]
    period: int = 0

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["etype"] = self.etype.value
        return d


@dataclass(frozen=True)
class SummonComplete(Event):
    etype: ClassVar[EventType] = EventType.SUMMON_COMPLETE
    summoner: str = ""
    tokens: Tuple[str, ...] = ()
    summoning_time: int = 0


@dataclass(frozen=True)
class SubmitProposal(Event):
    etype: ClassVar[EventType] = EventType.SUBMIT_PROPOSAL
    proposal_id: int = 0
    kind: str = ""
    proposer: str = ""
    applicant: Optional[str] = None
    shares_requested: int = 0
    loot_requested: int = 0
    tribute_offered: int = 0
    tribute_token: Optional[str] = None
    payment_requested: int = 0
    payment_token: Optional[str] = None
    details: str = ""


@dataclass(frozen=True)
class SponsorProposal(Event):
    etype: ClassVar[EventType] = EventType.SPONSOR_PROPOSAL
    proposal_id: int = 0
    index: int = 0
    sponsor: str = ""
    delegate_key: str = ""
    starting_period: int = 0


@dataclass(frozen=True)
class SubmitVote(Event):
    etype: ClassVar[EventType] = EventType.SUBMIT_VOTE
    index: int = 0
    member: str = ""
    delegate_key: str = ""
    vote: str = ""
    weight: int = 0


@dataclass(frozen=True)
class ProcessProposal(Event):
    etype: ClassVar[EventType] = EventType.PROCESS_PROPOSAL
    index: int = 0
    proposal_id: int = 0
    kind: str = ""
    did_pass: bool = False
    emergency: bool = False
    failure_reason: Optional[str] = None
    processor: str = ""


@dataclass(frozen=True)
class Ragequit(Event):
    etype: ClassVar[EventType] = EventType.RAGEQUIT
    member: str = ""
    shares_burned: int = 0
    loot_burned: int = 0
    safe: bool = False
    payouts: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CancelProposal(Event):
    etype: ClassVar[EventType] = EventType.CANCEL_PROPOSAL
    proposal_id: int = 0
    proposer: str = ""


@dataclass(frozen=True)
class UpdateDelegateKey(Event):
    etype: ClassVar[EventType] = EventType.UPDATE_DELEGATE_KEY
    member: str = ""
    new_delegate_key: str = ""


class EventLog:
    """Append-only event log; a journal participant (revert truncates)."""

    def __init__(self) -> None:
        self._events: List[Event] = []

    def append(self, event: Event) -> Event:
        self._events.append(event)
        return event

    def since(self, mark: int) -> Tuple[Event, ...]:
        return tuple(self._events[mark:])

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(tuple(self._events))

    def of_type(self, etype: EventType) -> List[Event]:
        return [e for e in self._events if e.etype is etype]

    def snapshot(self) -> Any:
        return len(self._events)

    def restore(self, snap: Any) -> None:
        del self._events[snap:]


__all__ = [
    "EventType",
    "Event",
    "SummonComplete",
    "SubmitProposal",
    "SponsorProposal",
    "SubmitVote",
    "ProcessProposal",
    "Ragequit",
    "CancelProposal",
    "UpdateDelegateKey",
    "EventLog",
]
