from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterable, List, Sequence

import pytest

from guild.assets import AssetRegistry, Token
from guild.clock import ManualClock
from guild.config import GuildConfig
from guild.engine import GovernanceEngine

PERIOD = 60
VOTING = 5
GRACE = 5
EMERGENCY = 5
DEPOSIT = 10
REWARD = 1

HOLDERS = ("alice", "bob", "carol", "dave", "erin")


def base_config(tokens: Sequence[str], **overrides) -> GuildConfig:
    cfg = GuildConfig(
        summoner="alice",
        approved_tokens=tuple(tokens),
        period_duration=PERIOD,
        voting_period_length=VOTING,
        grace_period_length=GRACE,
        emergency_exit_wait=EMERGENCY,
        proposal_deposit=DEPOSIT,
        dilution_bound=3,
        processing_reward=REWARD,
    )
    return replace(cfg, **overrides)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def weth() -> Token:
    return Token("WETH", initial={h: 1_000 for h in HOLDERS})


@pytest.fixture
def make_engine(clock) -> Callable[..., GovernanceEngine]:
    """
    Build a summoned engine over `tokens` (first one is the deposit token).
    Every holder pre-approves the escrow on every token, so pulls only fail
    when a test wants them to.
    """

    def _make(tokens: Iterable[Token], **overrides) -> GovernanceEngine:
        tokens = list(tokens)
        engine = GovernanceEngine(
            base_config([t.address for t in tokens], **overrides), AssetRegistry(tokens), clock=clock
        )
        for t in tokens:
            for h in HOLDERS:
                t.approve(h, engine.address, 10**12)
        return engine

    return _make


@pytest.fixture
def engine(make_engine, weth) -> GovernanceEngine:
    return make_engine([weth])


@pytest.fixture
def advance(clock) -> Callable[[int], int]:
    def _advance(periods: int) -> int:
        return clock.advance_periods(periods, PERIOD)

    return _advance


@pytest.fixture
def admit(advance) -> Callable[..., int]:
    """
    Run a funding proposal for `applicant` through the whole cycle with every
    listed voter voting yes. Returns the queue index.
    """

    def _admit(
        engine: GovernanceEngine,
        applicant: str,
        *,
        shares: int = 1,
        loot: int = 0,
        tribute: int = 0,
        voters: List[str] = ("alice",),
        sponsor: str = "alice",
        processor: str = "alice",
    ) -> int:
        pid = engine.submit_proposal(
            applicant,
            applicant=applicant,
            shares_requested=shares,
            loot_requested=loot,
            tribute_offered=tribute,
            tribute_token=engine.deposit_token,
            payment_token=engine.deposit_token,
        )
        index = engine.sponsor_proposal(sponsor, pid)
        advance(engine.get_proposal_at(index).starting_period - engine.current_period())
        for v in voters:
            engine.submit_vote(v, index, "yes")
        advance(VOTING + GRACE)
        assert engine.process_proposal(processor, index) is True
        return index

    return _admit
