from __future__ import annotations

"""
Proposal queue: the voting state machine.

Proposals are created unsponsored (keyed by a submission id), then promoted
into an append-only queue by a sponsor. The queue index is assigned at
sponsorship time, and so is the voting window:

    starting_period = max(current_period, previous.starting_period) + 1

which strictly serializes voting windows in queue order. A proposal is:

    SPONSORED    current <  start
    VOTING_OPEN  start   <= current < start + voting
    GRACE        start + voting <= current < start + voting + grace
    READY        current >= start + voting + grace, not yet processed
    PROCESSED    terminal

Processing is strict FIFO: index i can only be processed once i-1 is
processed. A queue head that stays unprocessed for `emergency_exit_wait`
periods past its grace period becomes eligible for emergency processing
(a forced failure that keeps its tribute in escrow), which unblocks the rest
of the queue.

Vote records are write-once per (proposal, member). The yes-vote path folds
the current pool size into `max_total_weight_at_yes_vote`, the running
maximum the processing-time dilution check compares against.

This module owns ordering, windows, tallies and the "proposed" markers only.
Token movements and membership effects live in `guild.engine`.
"""

import copy
import logging
from typing import Any, Dict, Iterator, List, Optional, Set

from .errors import StateGuardViolation, Unauthorized, UnknownProposal
from .types import Address, Amount, Proposal, ProposalKind, ProposalState, Vote

log = logging.getLogger(__name__)


class ProposalQueue:
    def __init__(self, *, voting_period_length: int, grace_period_length: int, emergency_exit_wait: int) -> None:
        self.voting_period_length = int(voting_period_length)
        self.grace_period_length = int(grace_period_length)
        self.emergency_exit_wait = int(emergency_exit_wait)
        self._proposals: Dict[int, Proposal] = {}
        self._queue: List[int] = []
        self._votes: Dict[int, Dict[str, Vote]] = {}
        self.proposed_to_whitelist: Set[str] = set()
        self.proposed_to_kick: Set[str] = set()

    # --- journal participant ---

    def snapshot(self) -> Any:
        return (
            copy.deepcopy(self._proposals),
            list(self._queue),
            {i: dict(v) for i, v in self._votes.items()},
            set(self.proposed_to_whitelist),
            set(self.proposed_to_kick),
        )

    def restore(self, snap: Any) -> None:
        proposals, queue, votes, to_whitelist, to_kick = snap
        self._proposals = copy.deepcopy(proposals)
        self._queue = list(queue)
        self._votes = {i: dict(v) for i, v in votes.items()}
        self.proposed_to_whitelist = set(to_whitelist)
        self.proposed_to_kick = set(to_kick)

    # --- queries ---

    @property
    def proposal_count(self) -> int:
        return len(self._proposals)

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self) -> Iterator[Proposal]:
        return iter(self._proposals[pid] for pid in self._queue)

    def get(self, proposal_id: int) -> Proposal:
        try:
            return self._proposals[int(proposal_id)]
        except KeyError:
            raise UnknownProposal("proposal does not exist", proposal_id=proposal_id) from None

    def at(self, index: int) -> Proposal:
        if not (0 <= int(index) < len(self._queue)):
            raise UnknownProposal("proposal does not exist", index=index)
        return self._proposals[self._queue[int(index)]]

    def vote_of(self, index: int, member: str) -> Vote:
        self.at(index)
        return self._votes.get(int(index), {}).get(str(member), Vote.NULL)

    def voting_ends(self, proposal: Proposal) -> int:
        return proposal.starting_period + self.voting_period_length

    def grace_ends(self, proposal: Proposal) -> int:
        return self.voting_ends(proposal) + self.grace_period_length

    def emergency_deadline(self, proposal: Proposal) -> int:
        return self.grace_ends(proposal) + self.emergency_exit_wait

    def has_voting_period_expired(self, starting_period: int, current_period: int) -> bool:
        return current_period >= starting_period + self.voting_period_length

    def state(self, proposal: Proposal, current_period: int) -> ProposalState:
        if proposal.flags.cancelled:
            return ProposalState.CANCELLED
        if not proposal.flags.sponsored:
            return ProposalState.SUBMITTED
        if proposal.flags.processed:
            return ProposalState.PROCESSED
        if current_period < proposal.starting_period:
            return ProposalState.SPONSORED
        if current_period < self.voting_ends(proposal):
            return ProposalState.VOTING_OPEN
        if current_period < self.grace_ends(proposal):
            return ProposalState.GRACE
        return ProposalState.READY

    def is_processed(self, index: Optional[int]) -> bool:
        """True when no proposal is referenced or the referenced one is processed."""
        if index is None:
            return True
        return self.at(index).flags.processed

    def first_unprocessed(self) -> Optional[int]:
        for i, pid in enumerate(self._queue):
            if not self._proposals[pid].flags.processed:
                return i
        return None

    # --- transitions ---

    def submit(
        self,
        *,
        kind: ProposalKind,
        proposer: str,
        applicant: Optional[str] = None,
        shares_requested: Amount = 0,
        loot_requested: Amount = 0,
        tribute_offered: Amount = 0,
        tribute_token: Optional[str] = None,
        payment_requested: Amount = 0,
        payment_token: Optional[str] = None,
        target: Optional[str] = None,
        details: str = "",
    ) -> Proposal:
        if kind is ProposalKind.WHITELIST and target in self.proposed_to_whitelist:
            raise StateGuardViolation("already proposed to whitelist", token=target)
        if kind is ProposalKind.GUILD_KICK and target in self.proposed_to_kick:
            raise StateGuardViolation("already proposed to kick", member=target)
        pid = len(self._proposals)
        proposal = Proposal(
            proposal_id=pid,
            kind=kind,
            proposer=Address(str(proposer)),
            applicant=Address(str(applicant)) if applicant is not None else None,
            shares_requested=int(shares_requested),
            loot_requested=int(loot_requested),
            tribute_offered=int(tribute_offered),
            tribute_token=tribute_token,
            payment_requested=int(payment_requested),
            payment_token=payment_token,
            target=target,
            details=details,
        )
        self._proposals[pid] = proposal
        return proposal

    def sponsor(
        self,
        proposal_id: int,
        *,
        sponsor: str,
        current_period: int,
        total_weight: Amount,
        deposit: Amount,
    ) -> Proposal:
        proposal = self.get(proposal_id)
        if proposal.flags.cancelled:
            raise StateGuardViolation("proposal has been cancelled", proposal_id=proposal_id)
        if proposal.flags.sponsored:
            raise StateGuardViolation("proposal has already been sponsored", proposal_id=proposal_id)
        if proposal.is_whitelist:
            if proposal.target in self.proposed_to_whitelist:
                raise StateGuardViolation("already proposed to whitelist", token=proposal.target)
            self.proposed_to_whitelist.add(str(proposal.target))
        elif proposal.is_guild_kick:
            if proposal.target in self.proposed_to_kick:
                raise StateGuardViolation("already proposed to kick", member=proposal.target)
            self.proposed_to_kick.add(str(proposal.target))

        previous_start = self.at(len(self._queue) - 1).starting_period if self._queue else 0
        proposal.starting_period = max(int(current_period), previous_start) + 1
        proposal.sponsor = Address(str(sponsor))
        proposal.index = len(self._queue)
        proposal.max_total_weight_at_yes_vote = int(total_weight)
        proposal.deposit = int(deposit)
        proposal.flags.sponsored = True
        self._queue.append(proposal.proposal_id)
        self._votes[proposal.index] = {}
        return proposal

    def cast_vote(
        self,
        index: int,
        *,
        member: str,
        vote: Vote,
        weight: Amount,
        current_period: int,
        total_weight: Optional[Amount] = None,
    ) -> Proposal:
        """
        Record a vote. `total_weight` is the pool size at the time of a yes
        vote (required for YES, ignored for NO).
        """
        proposal = self.at(index)
        if vote not in (Vote.YES, Vote.NO):
            raise StateGuardViolation("vote must be either Yes or No", vote=int(vote))
        if current_period < proposal.starting_period:
            raise StateGuardViolation("voting period has not started", index=index)
        if self.has_voting_period_expired(proposal.starting_period, current_period):
            raise StateGuardViolation("proposal voting period has expired", index=index)
        ballots = self._votes.setdefault(int(index), {})
        if ballots.get(str(member), Vote.NULL) is not Vote.NULL:
            raise StateGuardViolation("member has already voted", index=index, member=str(member))

        ballots[str(member)] = vote
        if vote is Vote.YES:
            if total_weight is None:
                raise ValueError("total_weight is required for a yes vote")
            proposal.yes_votes += int(weight)
            if total_weight > proposal.max_total_weight_at_yes_vote:
                proposal.max_total_weight_at_yes_vote = int(total_weight)
        else:
            proposal.no_votes += int(weight)
        return proposal

    def check_processable(self, index: int, current_period: int) -> Proposal:
        """
        Guards for normal processing: grace period over, not yet processed,
        predecessor processed. Raises StateGuardViolation otherwise.
        """
        proposal = self.at(index)
        if proposal.flags.processed:
            raise StateGuardViolation("proposal has already been processed", index=index)
        if current_period < self.grace_ends(proposal):
            raise StateGuardViolation("proposal is not ready to be processed", index=index)
        if index > 0 and not self.at(index - 1).flags.processed:
            raise StateGuardViolation("previous proposal must be processed", index=index)
        return proposal

    def is_emergency(self, proposal: Proposal, current_period: int) -> bool:
        return current_period >= self.emergency_deadline(proposal)

    def mark_processed(
        self,
        index: int,
        *,
        did_pass: bool,
        failure_reason: Optional[str] = None,
        emergency: bool = False,
    ) -> Proposal:
        proposal = self.at(index)
        if proposal.flags.processed:
            raise StateGuardViolation("proposal has already been processed", index=index)
        proposal.flags.processed = True
        proposal.flags.did_pass = bool(did_pass)
        proposal.flags.emergency_processed = bool(emergency)
        proposal.failure_reason = None if did_pass else failure_reason
        if proposal.is_whitelist:
            self.proposed_to_whitelist.discard(str(proposal.target))
        elif proposal.is_guild_kick:
            self.proposed_to_kick.discard(str(proposal.target))
        return proposal

    def cancel(self, proposal_id: int, *, caller: str) -> Proposal:
        proposal = self.get(proposal_id)
        if proposal.flags.sponsored:
            raise StateGuardViolation("proposal has already been sponsored", proposal_id=proposal_id)
        if proposal.flags.cancelled:
            raise StateGuardViolation("proposal has already been cancelled", proposal_id=proposal_id)
        if str(caller) != proposal.proposer:
            raise Unauthorized("solely the proposer can cancel", proposal_id=proposal_id, caller=str(caller))
        proposal.flags.cancelled = True
        return proposal

    def dump(self) -> Dict[str, Any]:
        return {
            "proposal_count": self.proposal_count,
            "queue": list(self._queue),
            "proposals": {str(pid): p.to_dict() for pid, p in sorted(self._proposals.items())},
            "votes": {
                str(i): {m: v.name for m, v in sorted(ballots.items())}
                for i, ballots in sorted(self._votes.items())
            },
            "proposed_to_whitelist": sorted(self.proposed_to_whitelist),
            "proposed_to_kick": sorted(self.proposed_to_kick),
        }


__all__ = ["ProposalQueue"]
