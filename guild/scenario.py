from __future__ import annotations

"""
Devnet scenarios: scripted runs of a guild over in-memory token ledgers.

A scenario is a mapping (JSON or YAML on disk):

    config:                     # GuildConfig fields
      summoner: alice
      approved_tokens: [WETH]
    clock: {start: 1700000000}  # optional ManualClock start
    tokens:
      - {address: WETH, balances: {alice: 1000, bob: 1000}}
      - {address: BAD, kind: failing}
    steps:
      - {op: approve, caller: bob, token: WETH, amount: 100}
      - {op: submit_proposal, caller: bob, applicant: bob, shares_requested: 1,
         tribute_offered: 100, tribute_token: WETH, payment_token: WETH}
      - {op: sponsor, caller: alice, proposal_id: 0}
      - {op: advance, periods: 1}
      - {op: vote, caller: alice, index: 0, vote: yes}
      - ...

Token kinds: token (default), failing, reverting, blacklist, fee, noop.
The `break_token` step switches an adversarial token into its failure mode
(`holders` names who to blacklist for `blacklist` tokens).

`run_scenario` returns the per-step results and the final engine dump. A
rejected step raises unless `stop_on_error=False`, in which case the error is
recorded on the step and the run continues.
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import yaml

from .assets import (
    AssetRegistry,
    BlacklistToken,
    FailingToken,
    FeeOnTransferToken,
    NoopToken,
    RevertingToken,
    Token,
)
from .clock import ManualClock
from .config import from_mapping
from .engine import GovernanceEngine
from .errors import GuildError

log = logging.getLogger(__name__)

TOKEN_KINDS: Dict[str, Callable[..., Token]] = {
    "token": Token,
    "failing": FailingToken,
    "reverting": RevertingToken,
    "blacklist": BlacklistToken,
    "fee": FeeOnTransferToken,
    "noop": NoopToken,
}


EXAMPLE_SCENARIO: Dict[str, Any] = {
    "config": {
        "summoner": "alice",
        "approved_tokens": ["WETH"],
        "period_duration": 60,
        "voting_period_length": 5,
        "grace_period_length": 5,
        "emergency_exit_wait": 5,
        "proposal_deposit": 10,
        "dilution_bound": 3,
        "processing_reward": 1,
    },
    "tokens": [
        {"address": "WETH", "balances": {"alice": 1_000, "bob": 1_000, "carol": 0}},
    ],
    "steps": [
        {"op": "approve", "caller": "bob", "token": "WETH", "amount": 100},
        {"op": "submit_proposal", "caller": "bob", "applicant": "bob", "shares_requested": 1,
         "tribute_offered": 100, "tribute_token": "WETH", "payment_token": "WETH",
         "details": "bob joins for 100 WETH"},
        {"op": "approve", "caller": "alice", "token": "WETH", "amount": 10},
        {"op": "sponsor", "caller": "alice", "proposal_id": 0},
        {"op": "advance", "periods": 1},
        {"op": "vote", "caller": "alice", "index": 0, "vote": "yes"},
        {"op": "advance", "periods": 10},
        {"op": "process", "caller": "carol", "index": 0},
        {"op": "ragequit", "caller": "bob", "shares": 1, "loot": 0},
    ],
}


def load_scenario(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"scenario {p} must be a mapping")
    return data


def build_tokens(specs: List[Mapping[str, Any]]) -> AssetRegistry:
    registry = AssetRegistry()
    for spec in specs:
        kind = str(spec.get("kind", "token"))
        try:
            factory = TOKEN_KINDS[kind]
        except KeyError:
            raise ValueError(f"unknown token kind {kind!r}") from None
        balances = {str(k): int(v) for k, v in (spec.get("balances") or {}).items()}
        # custody identities (@escrow, @treasury) are funded once the engine exists
        kwargs: Dict[str, Any] = {"initial": {k: v for k, v in balances.items() if not k.startswith("@")}}
        if kind == "fee" and "fee_bps" in spec:
            kwargs["fee_bps"] = int(spec["fee_bps"])
        registry.register(factory(str(spec["address"]), **kwargs))
    return registry


def _break_token(assets: AssetRegistry, step: Mapping[str, Any]) -> str:
    token = assets.get(str(step["token"]))
    if isinstance(token, FailingToken):
        token.failing = True
    elif isinstance(token, RevertingToken):
        token.reverting = True
    elif isinstance(token, NoopToken):
        token.noop = True
    elif isinstance(token, BlacklistToken):
        token.block(*[str(h) for h in step.get("holders", ())])
    else:
        raise ValueError(f"token {token.address} has no failure mode")
    return token.address


def _resolve(engine: GovernanceEngine, who: str) -> str:
    """`@escrow` and `@treasury` name the guild's own custody identities."""
    if who == "@escrow":
        return engine.address
    if who == "@treasury":
        return engine.treasury.address
    return who


def _apply(engine: GovernanceEngine, clock: ManualClock, step: Mapping[str, Any]) -> Any:
    op = step.get("op")
    caller = _resolve(engine, str(step.get("caller", "")))
    if op == "advance":
        periods = int(step.get("periods", 0))
        clock.advance_periods(periods, engine.config.period_duration)
        clock.advance(int(step.get("seconds", 0)))
        return engine.current_period()
    if op == "approve":
        spender = _resolve(engine, str(step.get("spender", "@escrow")))
        return engine.assets.get(str(step["token"])).approve(caller, spender, int(step["amount"]))
    if op == "mint":
        engine.assets.get(str(step["token"])).mint(_resolve(engine, str(step["to"])), int(step["amount"]))
        return None
    if op == "break_token":
        return _break_token(engine.assets, step)
    if op == "submit_proposal":
        return engine.submit_proposal(
            caller,
            applicant=str(step["applicant"]),
            shares_requested=int(step.get("shares_requested", 0)),
            loot_requested=int(step.get("loot_requested", 0)),
            tribute_offered=int(step.get("tribute_offered", 0)),
            tribute_token=str(step.get("tribute_token", engine.deposit_token)),
            payment_requested=int(step.get("payment_requested", 0)),
            payment_token=str(step.get("payment_token", engine.deposit_token)),
            details=str(step.get("details", "")),
        )
    if op == "submit_whitelist_proposal":
        return engine.submit_whitelist_proposal(caller, str(step["token"]), str(step.get("details", "")))
    if op == "submit_guild_kick_proposal":
        return engine.submit_guild_kick_proposal(caller, str(step["member"]), str(step.get("details", "")))
    if op == "sponsor":
        return engine.sponsor_proposal(caller, int(step["proposal_id"]))
    if op == "vote":
        vote = step["vote"]
        if isinstance(vote, bool):
            # YAML 1.1 reads bare yes/no as booleans
            vote = "yes" if vote else "no"
        engine.submit_vote(caller, int(step["index"]), vote)
        return None
    if op == "process":
        return engine.process_proposal(caller, int(step["index"]))
    if op == "ragequit":
        return engine.ragequit(caller, int(step.get("shares", 0)), int(step.get("loot", 0)))
    if op == "safe_ragequit":
        return engine.safe_ragequit(
            caller, int(step.get("shares", 0)), int(step.get("loot", 0)), [str(t) for t in step["tokens"]]
        )
    if op == "cancel":
        engine.cancel_proposal(caller, int(step["proposal_id"]))
        return None
    if op == "update_delegate_key":
        engine.update_delegate_key(caller, str(step["new_key"]))
        return None
    raise ValueError(f"unknown scenario op {op!r}")


def setup(data: Mapping[str, Any]) -> Tuple[GovernanceEngine, ManualClock]:
    clock = ManualClock(**(data.get("clock") or {}))
    assets = build_tokens(list(data.get("tokens") or []))
    config = from_mapping(dict(data.get("config") or {}))
    engine = GovernanceEngine(config, assets, clock=clock)
    for spec in data.get("tokens") or []:
        for holder, amount in (spec.get("balances") or {}).items():
            if str(holder).startswith("@"):
                assets.get(str(spec["address"])).mint(_resolve(engine, str(holder)), int(amount))
    return engine, clock


def run_scenario(
    data: Mapping[str, Any],
    *,
    stop_on_error: bool = True,
    engine: Optional[GovernanceEngine] = None,
    clock: Optional[ManualClock] = None,
) -> Dict[str, Any]:
    """
    Execute `data["steps"]` in order. Returns {"steps": [...], "state": dump}.
    Pass `engine`/`clock` to continue an existing run.
    """
    if engine is None or clock is None:
        engine, clock = setup(data)
    results: List[Dict[str, Any]] = []
    for i, step in enumerate(data.get("steps") or []):
        entry: Dict[str, Any] = {"step": i, "op": step.get("op")}
        try:
            entry["result"] = _apply(engine, clock, step)
            entry["ok"] = True
        except GuildError as e:
            log.info("scenario: step %d (%s) rejected: %s", i, step.get("op"), e.reason)
            if stop_on_error:
                raise
            entry["ok"] = False
            entry["error"] = e.to_dict()
        results.append(entry)
    return {"steps": results, "state": engine.dump()}


__all__ = [
    "TOKEN_KINDS",
    "EXAMPLE_SCENARIO",
    "load_scenario",
    "build_tokens",
    "setup",
    "run_scenario",
]
