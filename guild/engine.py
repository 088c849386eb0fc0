from __future__ import annotations

"""
Guild Governance Engine
-----------------------

The single authority over a guild: it owns the membership ledger, the
proposal queue, the whitelist, the treasury and an escrow identity, and it is
the only place those are mutated.

Public operations
  • submit_proposal / submit_whitelist_proposal / submit_guild_kick_proposal
  • sponsor_proposal
  • submit_vote
  • process_proposal
  • ragequit / safe_ragequit
  • cancel_proposal
  • update_delegate_key

Every public mutating operation is one journal transaction over the guild's
ledgers *and* every registered asset ledger: any exception restores all of
them, so a rejected call leaves state exactly as it was. Events, metrics and
INFO logs are published only after the outermost transaction commits.

Custody
  • tribute: proposer -> escrow at submission; escrow -> treasury on pass,
    escrow -> proposer on failure or cancellation; stays in escrow after an
    emergency processing.
  • deposit: sponsor -> escrow at sponsorship; at processing the reward goes
    to the processor and the remainder back to the sponsor.

Pulls use `transfer_from`, so payers approve `engine.address` first.
"""

import copy
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from . import metrics
from .assets import AssetRegistry
from .clock import Clock, period_of, system_clock
from .config import MAX_NUMBER_OF_SHARES_AND_LOOT, GuildConfig, is_zero_address
from .errors import (
    ConfigurationError,
    ExternalTransferFailure,
    GuildError,
    StateGuardViolation,
    Unauthorized,
)
from .events import (
    CancelProposal,
    Event,
    EventLog,
    ProcessProposal,
    Ragequit,
    SponsorProposal,
    SubmitProposal,
    SubmitVote,
    SummonComplete,
    UpdateDelegateKey,
)
from .journal import Journal
from .members import MembershipLedger
from .proposals import ProposalQueue
from .treasury import Treasury, Whitelist, safe_transfer, safe_transfer_from
from .types import Address, Member, Proposal, ProposalKind, ProposalState, Vote

log = logging.getLogger(__name__)

# Failure reasons recorded on processed proposals.
FAIL_NO_MAJORITY = "yes votes did not exceed no votes"
FAIL_DILUTION = "dilution bound exceeded"
FAIL_POOL_SHRANK = "pool shrank below dilution bound"
FAIL_SHARE_LIMIT = "too many shares and loot"
FAIL_PAYMENT = "insufficient treasury balance for payment"
FAIL_JAILED_APPLICANT = "applicant is jailed"
FAIL_EMERGENCY = "emergency processing"


class GovernanceEngine:
    """
    Member-governed treasury. Construct with a validated-on-entry config and a
    registry holding every approved asset's ledger.
    """

    def __init__(
        self,
        config: GuildConfig,
        assets: AssetRegistry,
        *,
        clock: Clock = system_clock,
        address: str = "guild:escrow",
        bank_address: str = "guild:bank",
    ) -> None:
        config.validate()
        for token in config.approved_tokens:
            if token not in assets:
                raise ConfigurationError("approved token has no registered ledger", field="approved_tokens",
                                         details={"token": token})
        if address == bank_address:
            raise ConfigurationError("escrow and treasury addresses must differ", field="address")

        self.config = config
        self.assets = assets
        self.address = Address(str(address))
        self._clock = clock
        self.treasury = Treasury(assets, owner=self.address, address=bank_address)
        self._members = MembershipLedger()
        self._queue = ProposalQueue(
            voting_period_length=config.voting_period_length,
            grace_period_length=config.grace_period_length,
            emergency_exit_wait=config.emergency_exit_wait,
        )
        self._whitelist = Whitelist(config.approved_tokens)
        self._events = EventLog()
        self._journal = Journal([self._members, self._queue, self._whitelist, self._events, self.assets])

        self.summoning_time = int(clock())
        self._members.grant(config.summoner, 1, 0, joined_index=0)
        summoned = self._events.append(SummonComplete(
            period=0,
            summoner=str(config.summoner),
            tokens=tuple(config.approved_tokens),
            summoning_time=self.summoning_time,
        ))
        self._publish([summoned])

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def current_period(self) -> int:
        return period_of(self._clock(), self.summoning_time, self.config.period_duration)

    @property
    def deposit_token(self) -> str:
        return self._whitelist[0]

    @property
    def approved_tokens(self) -> List[str]:
        return list(self._whitelist)

    def is_whitelisted(self, token: str) -> bool:
        return token in self._whitelist

    @property
    def total_shares(self) -> int:
        return self._members.total_shares

    @property
    def total_loot(self) -> int:
        return self._members.total_loot

    @property
    def proposal_queue_length(self) -> int:
        return len(self._queue)

    @property
    def proposal_count(self) -> int:
        return self._queue.proposal_count

    @property
    def events(self) -> EventLog:
        return self._events

    def get_member(self, identity: str) -> Optional[Member]:
        member = self._members.lookup(identity)
        return copy.deepcopy(member) if member is not None else None

    def member_by_delegate_key(self, key: str) -> Optional[Member]:
        member = self._members.member_by_delegate_key(key)
        return copy.deepcopy(member) if member is not None else None

    def get_proposal(self, proposal_id: int) -> Proposal:
        return copy.deepcopy(self._queue.get(proposal_id))

    def get_proposal_at(self, index: int) -> Proposal:
        return copy.deepcopy(self._queue.at(index))

    def proposal_state(self, index: int) -> ProposalState:
        return self._queue.state(self._queue.at(index), self.current_period())

    def submission_state(self, proposal_id: int) -> ProposalState:
        return self._queue.state(self._queue.get(proposal_id), self.current_period())

    def get_member_proposal_vote(self, member: str, index: int) -> Vote:
        return self._queue.vote_of(index, member)

    def has_voting_period_expired(self, starting_period: int) -> bool:
        return self._queue.has_voting_period_expired(starting_period, self.current_period())

    def can_ragequit(self, highest_index_yes_vote: Optional[int]) -> bool:
        return self._queue.is_processed(highest_index_yes_vote)

    def treasury_balance(self, token: str) -> int:
        return self.treasury.balance_of(token)

    def escrow_balance(self, token: str) -> int:
        return int(self.assets.get(token).balance_of(self.address))

    def dump(self) -> Dict[str, Any]:
        tokens = list(self._whitelist)
        return {
            "config": self.config.to_dict(),
            "summoning_time": self.summoning_time,
            "current_period": self.current_period(),
            "address": self.address,
            "treasury_address": self.treasury.address,
            "whitelist": tokens,
            "treasury": self.treasury.balances(tokens),
            "escrow": {t: self.escrow_balance(t) for t in tokens},
            "members": self._members.dump(),
            "proposals": self._queue.dump(),
            "events": len(self._events),
        }

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    def submit_proposal(
        self,
        caller: str,
        *,
        applicant: str,
        shares_requested: int = 0,
        loot_requested: int = 0,
        tribute_offered: int = 0,
        tribute_token: str,
        payment_requested: int = 0,
        payment_token: str,
        details: str = "",
    ) -> int:
        """Create a funding proposal and pull its tribute into escrow. Returns the proposal id."""
        with self._operation("submit_proposal"):
            for name, value in (("shares_requested", shares_requested), ("loot_requested", loot_requested),
                                ("tribute_offered", tribute_offered), ("payment_requested", payment_requested)):
                if int(value) < 0:
                    raise StateGuardViolation(f"{name} must be non-negative", value=value)
            if int(shares_requested) + int(loot_requested) > MAX_NUMBER_OF_SHARES_AND_LOOT:
                raise StateGuardViolation("too many shares requested")
            if tribute_token not in self._whitelist:
                raise StateGuardViolation("tributeToken is not whitelisted", token=tribute_token)
            if payment_token not in self._whitelist:
                raise StateGuardViolation("payment is not whitelisted", token=payment_token)
            if is_zero_address(applicant):
                raise StateGuardViolation("applicant cannot be 0")
            if str(applicant) in (self.address, self.treasury.address):
                raise StateGuardViolation("applicant address cannot be reserved", applicant=str(applicant))
            existing = self._members.lookup(applicant)
            if existing is not None and existing.jailed:
                raise StateGuardViolation("proposal applicant must not be jailed", applicant=str(applicant))

            if tribute_offered > 0:
                safe_transfer_from(
                    self.assets.get(tribute_token), self.address, str(caller), self.address,
                    int(tribute_offered), operation="tribute",
                )

            proposal = self._queue.submit(
                kind=ProposalKind.FUNDING,
                proposer=caller,
                applicant=applicant,
                shares_requested=shares_requested,
                loot_requested=loot_requested,
                tribute_offered=tribute_offered,
                tribute_token=tribute_token,
                payment_requested=payment_requested,
                payment_token=payment_token,
                details=details,
            )
            self._emit_submitted(proposal)
            return proposal.proposal_id

    def submit_whitelist_proposal(self, caller: str, token: str, details: str = "") -> int:
        with self._operation("submit_whitelist_proposal"):
            if is_zero_address(token):
                raise StateGuardViolation("must provide token address")
            if token in self._whitelist:
                raise StateGuardViolation("cannot already have whitelisted the token", token=token)
            if token not in self.assets:
                raise StateGuardViolation("token has no registered ledger", token=token)
            proposal = self._queue.submit(
                kind=ProposalKind.WHITELIST, proposer=caller, target=str(token), details=details
            )
            self._emit_submitted(proposal)
            return proposal.proposal_id

    def submit_guild_kick_proposal(self, caller: str, member: str, details: str = "") -> int:
        with self._operation("submit_guild_kick_proposal"):
            target = self._members.lookup(member)
            if target is not None and target.jailed:
                raise StateGuardViolation("member must not already be jailed", member=str(member))
            if target is None or target.shares <= 0:
                raise StateGuardViolation("member must have at least one share", member=str(member))
            proposal = self._queue.submit(
                kind=ProposalKind.GUILD_KICK, proposer=caller, applicant=member,
                target=str(member), details=details,
            )
            self._emit_submitted(proposal)
            return proposal.proposal_id

    # ------------------------------------------------------------------ #
    # Sponsorship & voting
    # ------------------------------------------------------------------ #

    def sponsor_proposal(self, caller: str, proposal_id: int) -> int:
        """Queue a submitted proposal, pulling the deposit from `caller`. Returns its queue index."""
        with self._operation("sponsor_proposal"):
            member = self._require_delegate(caller)
            pending = self._queue.get(proposal_id)
            if pending.is_whitelist and pending.target in self._whitelist:
                raise StateGuardViolation("cannot already have whitelisted the token", token=pending.target)
            if pending.is_guild_kick:
                target = self._members.lookup(str(pending.target))
                if target is None or target.jailed:
                    raise StateGuardViolation("member must not already be jailed", member=pending.target)

            period = self.current_period()
            proposal = self._queue.sponsor(
                proposal_id,
                sponsor=member.address,
                current_period=period,
                total_weight=self._members.total_weight,
                deposit=self.config.proposal_deposit,
            )
            if self.config.proposal_deposit > 0:
                safe_transfer_from(
                    self.assets.get(self.deposit_token), self.address, str(caller), self.address,
                    self.config.proposal_deposit, operation="deposit",
                )
            self._events.append(SponsorProposal(
                period=period,
                proposal_id=proposal.proposal_id,
                index=int(proposal.index),
                sponsor=member.address,
                delegate_key=str(caller),
                starting_period=proposal.starting_period,
            ))
            return int(proposal.index)

    def submit_vote(self, caller: str, index: int, vote: Any) -> None:
        with self._operation("submit_vote"):
            member = self._require_delegate(caller)
            try:
                ballot = Vote(int(vote)) if not isinstance(vote, str) else Vote[vote.upper()]
            except (KeyError, ValueError):
                raise StateGuardViolation("vote must be less than 3", vote=str(vote)) from None
            proposal = self._queue.at(index)
            if member.joined_index > int(proposal.index):
                raise StateGuardViolation("member joined after sponsorship", member=member.address, index=index)

            period = self.current_period()
            total_weight = None
            if ballot is Vote.YES:
                total_weight = self._members.record_yes_vote(member.address, int(index))
            self._queue.cast_vote(
                index,
                member=member.address,
                vote=ballot,
                weight=member.shares,
                current_period=period,
                total_weight=total_weight,
            )
            self._events.append(SubmitVote(
                period=period,
                index=int(index),
                member=member.address,
                delegate_key=str(caller),
                vote=ballot.name,
                weight=member.shares,
            ))

    # ------------------------------------------------------------------ #
    # Processing
    # ------------------------------------------------------------------ #

    def process_proposal(self, caller: str, index: int) -> bool:
        """
        Process the proposal at queue `index`. Unprocessed predecessors that
        are all past their emergency deadline are emergency-processed first,
        in queue order. Returns whether the proposal passed.
        """
        with self._operation("process_proposal"):
            index = int(index)
            period = self.current_period()
            target = self._queue.at(index)
            if target.flags.processed:
                raise StateGuardViolation("proposal has already been processed", index=index)

            head = self._queue.first_unprocessed()
            stuck = list(range(head, index)) if head is not None else []
            for i in stuck:
                if not self._queue.is_emergency(self._queue.at(i), period):
                    raise StateGuardViolation("previous proposal must be processed", index=index)
            for i in stuck:
                self._process_one(caller, i, period, emergency=True)

            emergency = self._queue.is_emergency(target, period)
            if not emergency:
                self._queue.check_processable(index, period)
            return self._process_one(caller, index, period, emergency=emergency)

    def _process_one(self, caller: str, index: int, period: int, *, emergency: bool) -> bool:
        proposal = self._queue.at(index)
        reason = FAIL_EMERGENCY if emergency else self._evaluate(proposal)
        did_pass = reason is None
        self._queue.mark_processed(index, did_pass=did_pass, failure_reason=reason, emergency=emergency)

        if did_pass:
            if proposal.is_whitelist:
                self._whitelist.add(str(proposal.target))
                log.info("engine: whitelisted %s (proposal %d)", proposal.target, index)
            elif proposal.is_guild_kick:
                kicked = str(proposal.target)
                moved = self._members.convert_shares_to_loot(kicked)
                self._members.set_jailed(kicked)
                log.info("engine: kicked %s (%d shares converted to loot)", kicked, moved)
            else:
                self._members.grant(
                    str(proposal.applicant), proposal.shares_requested, proposal.loot_requested,
                    joined_index=len(self._queue),
                )
                if proposal.tribute_offered > 0:
                    safe_transfer(
                        self.assets.get(str(proposal.tribute_token)), self.address, self.treasury.address,
                        proposal.tribute_offered, operation="tribute",
                    )
                if proposal.payment_requested > 0:
                    self.treasury.pay_out(
                        self.address, str(proposal.payment_token), proposal.payment_requested,
                        str(proposal.applicant),
                    )
        elif proposal.is_funding and proposal.tribute_offered > 0 and not emergency:
            safe_transfer(
                self.assets.get(str(proposal.tribute_token)), self.address, proposal.proposer,
                proposal.tribute_offered, operation="refund",
            )

        self._settle_deposit(proposal, caller)
        self._events.append(ProcessProposal(
            period=period,
            index=index,
            proposal_id=proposal.proposal_id,
            kind=proposal.kind.value,
            did_pass=did_pass,
            emergency=emergency,
            failure_reason=reason,
            processor=str(caller),
        ))
        return did_pass

    def _evaluate(self, proposal: Proposal) -> Optional[str]:
        """None when the proposal passes, otherwise the reason it fails."""
        if proposal.yes_votes <= proposal.no_votes:
            return FAIL_NO_MAJORITY
        total = self._members.total_weight
        bound = self.config.dilution_bound
        if total > bound * proposal.max_total_weight_at_yes_vote:
            return FAIL_DILUTION
        if total * bound < proposal.max_total_weight_at_yes_vote:
            return FAIL_POOL_SHRANK
        if proposal.is_funding:
            # jailed by a kick processed after this proposal was submitted
            applicant = self._members.lookup(str(proposal.applicant))
            if applicant is not None and applicant.jailed:
                return FAIL_JAILED_APPLICANT
            if total + proposal.shares_requested + proposal.loot_requested > MAX_NUMBER_OF_SHARES_AND_LOOT:
                return FAIL_SHARE_LIMIT
            if proposal.payment_requested > self.treasury.balance_of(str(proposal.payment_token)):
                return FAIL_PAYMENT
        return None

    def _settle_deposit(self, proposal: Proposal, processor: str) -> None:
        ledger = self.assets.get(self.deposit_token)
        reward = min(self.config.processing_reward, proposal.deposit)
        if reward > 0:
            safe_transfer(ledger, self.address, str(processor), reward, operation="reward")
        remainder = proposal.deposit - reward
        if remainder > 0:
            safe_transfer(ledger, self.address, str(proposal.sponsor), remainder, operation="deposit")

    # ------------------------------------------------------------------ #
    # Exits
    # ------------------------------------------------------------------ #

    def ragequit(self, caller: str, shares: int, loot: int) -> Dict[str, int]:
        """
        Burn `shares`/`loot` and pay the caller its fair share of every
        whitelisted asset. Cost is linear in the whitelist and one refusing
        asset aborts the whole exit; `safe_ragequit` takes an explicit subset.
        """
        with self._operation("ragequit"):
            return self._ragequit(caller, shares, loot, list(self._whitelist), safe=False)

    def safe_ragequit(self, caller: str, shares: int, loot: int, tokens: Sequence[str]) -> Dict[str, int]:
        with self._operation("safe_ragequit"):
            seen = set()
            for token in tokens:
                if token not in self._whitelist:
                    raise StateGuardViolation("token must be whitelisted", token=token)
                if token in seen:
                    raise StateGuardViolation("token list must be unique", token=token)
                seen.add(token)
            return self._ragequit(caller, shares, loot, list(tokens), safe=True)

    def _ragequit(self, caller: str, shares: int, loot: int, tokens: List[str], *, safe: bool) -> Dict[str, int]:
        member = self._members.lookup(caller)
        if member is None or member.weight <= 0:
            raise Unauthorized("not a member", caller=str(caller))
        if not self.can_ragequit(member.highest_index_yes_vote):
            raise StateGuardViolation(
                "cannot ragequit until highest index proposal member voted YES on is processed",
                member=member.address, index=member.highest_index_yes_vote,
            )
        total = self._members.total_weight
        self._members.burn(member.address, int(shares), int(loot))
        payouts = self.treasury.withdraw(self.address, member.address, int(shares) + int(loot), total, tokens)
        self._events.append(Ragequit(
            period=self.current_period(),
            member=member.address,
            shares_burned=int(shares),
            loot_burned=int(loot),
            safe=safe,
            payouts=dict(payouts),
        ))
        return payouts

    # ------------------------------------------------------------------ #
    # Housekeeping
    # ------------------------------------------------------------------ #

    def cancel_proposal(self, caller: str, proposal_id: int) -> None:
        with self._operation("cancel_proposal"):
            proposal = self._queue.cancel(proposal_id, caller=caller)
            if proposal.tribute_offered > 0:
                safe_transfer(
                    self.assets.get(str(proposal.tribute_token)), self.address, proposal.proposer,
                    proposal.tribute_offered, operation="refund",
                )
            self._events.append(CancelProposal(
                period=self.current_period(), proposal_id=proposal.proposal_id, proposer=proposal.proposer,
            ))

    def update_delegate_key(self, caller: str, new_key: str) -> None:
        with self._operation("update_delegate_key"):
            member = self._members.lookup(caller)
            if member is None or member.shares <= 0:
                raise Unauthorized("not a shareholder", caller=str(caller))
            if is_zero_address(new_key):
                raise StateGuardViolation("newDelegateKey cannot be 0")
            if str(new_key) != member.address:
                if self._members.is_member(new_key):
                    raise StateGuardViolation("cannot overwrite existing members", key=str(new_key))
                holder = self._members.member_address_by_delegate_key(new_key)
                if holder is not None:
                    raise StateGuardViolation("cannot overwrite existing delegate keys", key=str(new_key))
            self._members.set_delegate_key(member.address, new_key)
            self._events.append(UpdateDelegateKey(
                period=self.current_period(), member=member.address, new_delegate_key=str(new_key),
            ))

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _require_delegate(self, caller: str) -> Member:
        member = self._members.member_by_delegate_key(caller)
        if member is None or member.shares <= 0 or member.jailed:
            raise Unauthorized("not a delegate", caller=str(caller))
        return member

    def _emit_submitted(self, proposal: Proposal) -> None:
        self._events.append(SubmitProposal(
            period=self.current_period(),
            proposal_id=proposal.proposal_id,
            kind=proposal.kind.value,
            proposer=proposal.proposer,
            applicant=proposal.applicant,
            shares_requested=proposal.shares_requested,
            loot_requested=proposal.loot_requested,
            tribute_offered=proposal.tribute_offered,
            tribute_token=proposal.tribute_token if proposal.is_funding else proposal.target,
            payment_requested=proposal.payment_requested,
            payment_token=proposal.payment_token,
            details=proposal.details,
        ))

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        outer = self._journal.depth() == 0
        mark = len(self._events)
        try:
            with self._journal.transaction():
                yield
        except ExternalTransferFailure as e:
            if outer:
                metrics.TRANSFER_FAILURES.labels(operation=str(e.details.get("operation", name))).inc()
            log.debug("engine: %s aborted: %s", name, e)
            raise
        except GuildError as e:
            log.debug("engine: %s rejected: %s", name, e)
            raise
        if outer:
            self._publish(self._events.since(mark))

    def _publish(self, events: Sequence[Event]) -> None:
        for ev in events:
            if isinstance(ev, SummonComplete):
                log.info("engine: summoned by %s with tokens %s", ev.summoner, list(ev.tokens))
            elif isinstance(ev, SubmitProposal):
                metrics.PROPOSALS_SUBMITTED.labels(kind=ev.kind).inc()
                log.debug("engine: proposal %d (%s) submitted by %s", ev.proposal_id, ev.kind, ev.proposer)
            elif isinstance(ev, SponsorProposal):
                kind = self._queue.at(ev.index).kind.value
                metrics.PROPOSALS_SPONSORED.labels(kind=kind).inc()
                log.info("engine: proposal %d sponsored by %s as index %d, voting from period %d",
                         ev.proposal_id, ev.sponsor, ev.index, ev.starting_period)
            elif isinstance(ev, SubmitVote):
                metrics.VOTES.labels(vote=ev.vote.lower()).inc()
                log.debug("engine: %s voted %s on %d with weight %d", ev.member, ev.vote, ev.index, ev.weight)
            elif isinstance(ev, ProcessProposal):
                outcome = "emergency" if ev.emergency else ("passed" if ev.did_pass else "failed")
                metrics.PROPOSALS_PROCESSED.labels(kind=ev.kind, outcome=outcome).inc()
                if ev.emergency:
                    log.warning("engine: proposal %d emergency-processed by %s", ev.index, ev.processor)
                else:
                    log.info("engine: proposal %d %s (%s)", ev.index, outcome, ev.failure_reason or "ok")
            elif isinstance(ev, Ragequit):
                metrics.RAGEQUITS.labels(mode="safe" if ev.safe else "full").inc()
                log.info("engine: %s ragequit %d shares %d loot, paid %s",
                         ev.member, ev.shares_burned, ev.loot_burned, ev.payouts)
            elif isinstance(ev, CancelProposal):
                metrics.PROPOSALS_CANCELLED.inc()
                log.info("engine: proposal %d cancelled by %s", ev.proposal_id, ev.proposer)
            elif isinstance(ev, UpdateDelegateKey):
                log.info("engine: %s delegated to %s", ev.member, ev.new_delegate_key)
        metrics.observe_totals(self._members.total_shares, self._members.total_loot)


__all__ = [
    "GovernanceEngine",
    "FAIL_NO_MAJORITY",
    "FAIL_DILUTION",
    "FAIL_POOL_SHRANK",
    "FAIL_SHARE_LIMIT",
    "FAIL_PAYMENT",
    "FAIL_JAILED_APPLICANT",
    "FAIL_EMERGENCY",
]
