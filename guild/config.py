from __future__ import annotations
"""
guild.config: deployment-time configuration for a guild treasury.

Covers:
- Summoner identity and the initial approved-asset list (the first entry is
  also the deposit / processing-reward asset)
- Period duration (seconds) and voting / grace / emergency-exit lengths (periods)
- Proposal deposit, processing reward and dilution bound

All values are validated once and are immutable afterwards (frozen dataclass).

Environment overrides (all optional):

  GUILD_SUMMONER=0xabc...
  GUILD_APPROVED_TOKENS=0xtokA,0xtokB
  GUILD_PERIOD_DURATION=17280
  GUILD_VOTING_PERIOD_LENGTH=35
  GUILD_GRACE_PERIOD_LENGTH=35
  GUILD_EMERGENCY_EXIT_WAIT=35
  GUILD_PROPOSAL_DEPOSIT=10
  GUILD_DILUTION_BOUND=3
  GUILD_PROCESSING_REWARD=1

You can also load from a JSON or YAML file via `GUILD_CONFIG_FILE=/path/to/config.(json|yaml|yml)`.
File values override defaults; environment overrides the file.
"""


from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Optional, Tuple
import json
import os
from pathlib import Path

import yaml

from .errors import ConfigurationError

ZERO_ADDRESS = "0x" + "0" * 40

# Hard limits. Each limit value itself is accepted; limit + 1 is rejected.
MAX_VOTING_PERIOD_LENGTH = 10**18
MAX_GRACE_PERIOD_LENGTH = 10**18
MAX_DILUTION_BOUND = 10**18
MAX_NUMBER_OF_SHARES_AND_LOOT = 10**18


def is_zero_address(addr: Optional[str]) -> bool:
    return addr is None or str(addr).strip() == "" or str(addr).lower() == ZERO_ADDRESS


# -------------------------- Data classes --------------------------


@dataclass(frozen=True)
class GuildConfig:
    """Top-level configuration container."""
    summoner: str = ZERO_ADDRESS
    approved_tokens: Tuple[str, ...] = field(default_factory=tuple)
    period_duration: int = 17_280             # seconds (4.8 hours)
    voting_period_length: int = 35            # periods (7 days)
    grace_period_length: int = 35             # periods (7 days)
    emergency_exit_wait: int = 35             # periods past the grace period
    proposal_deposit: int = 10                # deposit-token base units
    dilution_bound: int = 3                   # max multiple of the pool at yes vote
    processing_reward: int = 1                # paid out of the deposit to the processor

    def __post_init__(self) -> None:
        # Accept any iterable for approved_tokens but store a tuple.
        object.__setattr__(self, "approved_tokens", tuple(self.approved_tokens))

    @property
    def deposit_token(self) -> str:
        if not self.approved_tokens:
            raise ConfigurationError("need at least one approved token", field="approved_tokens")
        return self.approved_tokens[0]

    def validate(self) -> None:
        if is_zero_address(self.summoner):
            raise ConfigurationError("summoner cannot be 0", field="summoner")
        if self.period_duration <= 0:
            raise ConfigurationError("_periodDuration cannot be 0", field="period_duration")
        if self.voting_period_length <= 0:
            raise ConfigurationError("_votingPeriodLength cannot be 0", field="voting_period_length")
        if self.voting_period_length > MAX_VOTING_PERIOD_LENGTH:
            raise ConfigurationError("_votingPeriodLength exceeds limit", field="voting_period_length")
        if self.grace_period_length < 0:
            raise ConfigurationError("_gracePeriodLength cannot be negative", field="grace_period_length")
        if self.grace_period_length > MAX_GRACE_PERIOD_LENGTH:
            raise ConfigurationError("_gracePeriodLength exceeds limit", field="grace_period_length")
        if self.emergency_exit_wait <= 0:
            raise ConfigurationError("_emergencyExitWait cannot be 0", field="emergency_exit_wait")
        if self.dilution_bound <= 0:
            raise ConfigurationError("_dilutionBound cannot be 0", field="dilution_bound")
        if self.dilution_bound > MAX_DILUTION_BOUND:
            raise ConfigurationError("_dilutionBound exceeds limit", field="dilution_bound")
        if not self.approved_tokens:
            raise ConfigurationError("need at least one approved token", field="approved_tokens")
        if self.proposal_deposit < 0 or self.processing_reward < 0:
            raise ConfigurationError("deposit and reward must be non-negative", field="proposal_deposit")
        if self.proposal_deposit < self.processing_reward:
            raise ConfigurationError(
                "_proposalDeposit cannot be smaller than _processingReward", field="proposal_deposit"
            )
        seen = set()
        for token in self.approved_tokens:
            if is_zero_address(token):
                raise ConfigurationError("_approvedToken cannot be 0", field="approved_tokens")
            if token in seen:
                raise ConfigurationError("duplicate approved token", field="approved_tokens")
            seen.add(token)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["approved_tokens"] = list(self.approved_tokens)
        return d


# -------------------------- Loaders --------------------------


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(str(v).replace("_", ""))
    except Exception as e:
        raise ConfigurationError(f"Invalid int for {name}: {v!r}", field=name) from e


def _getenv_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return tuple(part.strip() for part in v.split(",") if part.strip())


def from_env(base: Optional[GuildConfig] = None, prefix: str = "GUILD_") -> GuildConfig:
    """
    Build a GuildConfig from environment variables, optionally layering on top of `base`.
    """
    cfg = base or GuildConfig()
    new_cfg = replace(
        cfg,
        summoner=os.getenv(f"{prefix}SUMMONER") or cfg.summoner,
        approved_tokens=_getenv_list(f"{prefix}APPROVED_TOKENS", cfg.approved_tokens),
        period_duration=_getenv_int(f"{prefix}PERIOD_DURATION", cfg.period_duration),
        voting_period_length=_getenv_int(f"{prefix}VOTING_PERIOD_LENGTH", cfg.voting_period_length),
        grace_period_length=_getenv_int(f"{prefix}GRACE_PERIOD_LENGTH", cfg.grace_period_length),
        emergency_exit_wait=_getenv_int(f"{prefix}EMERGENCY_EXIT_WAIT", cfg.emergency_exit_wait),
        proposal_deposit=_getenv_int(f"{prefix}PROPOSAL_DEPOSIT", cfg.proposal_deposit),
        dilution_bound=_getenv_int(f"{prefix}DILUTION_BOUND", cfg.dilution_bound),
        processing_reward=_getenv_int(f"{prefix}PROCESSING_REWARD", cfg.processing_reward),
    )
    new_cfg.validate()
    return new_cfg


def from_mapping(data: Dict[str, Any]) -> GuildConfig:
    """Build (and validate) a GuildConfig from a plain dict; unknown keys are rejected."""
    defaults = GuildConfig()
    known = set(defaults.to_dict().keys())
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"unknown config keys: {', '.join(unknown)}", field=unknown[0])

    def pick(key: str) -> Any:
        return data.get(key, getattr(defaults, key))

    try:
        cfg = GuildConfig(
            summoner=str(pick("summoner")),
            approved_tokens=tuple(str(t) for t in pick("approved_tokens")),
            period_duration=int(pick("period_duration")),
            voting_period_length=int(pick("voting_period_length")),
            grace_period_length=int(pick("grace_period_length")),
            emergency_exit_wait=int(pick("emergency_exit_wait")),
            proposal_deposit=int(pick("proposal_deposit")),
            dilution_bound=int(pick("dilution_bound")),
            processing_reward=int(pick("processing_reward")),
        )
    except (TypeError, ValueError) as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(f"invalid config value: {e}") from e
    cfg.validate()
    return cfg


def from_file(path: str | os.PathLike[str]) -> GuildConfig:
    """
    Load configuration from a JSON or YAML file.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {p} must contain a mapping")
    return from_mapping(data)


def load() -> GuildConfig:
    """
    Load configuration using the following precedence:
      1) File at $GUILD_CONFIG_FILE (JSON/YAML)
      2) Environment variables (GUILD_*), applied on top of defaults or file values
    """
    file_path = os.getenv("GUILD_CONFIG_FILE")
    base = from_file(file_path) if file_path else GuildConfig()
    return from_env(base=base)


# -------------------------- Utilities --------------------------


def pretty(cfg: Optional[GuildConfig] = None) -> str:
    """Return a human-readable JSON string of the current config."""
    obj = (cfg or load()).to_dict()
    return json.dumps(obj, indent=2, sort_keys=True)


__all__ = [
    "ZERO_ADDRESS",
    "MAX_VOTING_PERIOD_LENGTH",
    "MAX_GRACE_PERIOD_LENGTH",
    "MAX_DILUTION_BOUND",
    "MAX_NUMBER_OF_SHARES_AND_LOOT",
    "is_zero_address",
    "GuildConfig",
    "from_env",
    "from_mapping",
    "from_file",
    "load",
    "pretty",
]
