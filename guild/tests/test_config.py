import json

import pytest

from guild.assets import AssetRegistry, Token
from guild.config import (
    MAX_DILUTION_BOUND,
    MAX_GRACE_PERIOD_LENGTH,
    MAX_VOTING_PERIOD_LENGTH,
    ZERO_ADDRESS,
    GuildConfig,
    from_env,
    from_file,
    from_mapping,
    load,
    pretty,
)
from guild.engine import GovernanceEngine
from guild.errors import ConfigurationError

from .conftest import base_config


def _reason(cfg: GuildConfig) -> str:
    with pytest.raises(ConfigurationError) as ei:
        cfg.validate()
    return ei.value.reason


def test_valid_config_passes():
    cfg = base_config(["WETH", "DAI"])
    cfg.validate()
    assert cfg.deposit_token == "WETH"
    assert cfg.to_dict()["approved_tokens"] == ["WETH", "DAI"]


@pytest.mark.parametrize(
    "field, limit, reason",
    [
        ("voting_period_length", MAX_VOTING_PERIOD_LENGTH, "_votingPeriodLength exceeds limit"),
        ("grace_period_length", MAX_GRACE_PERIOD_LENGTH, "_gracePeriodLength exceeds limit"),
        ("dilution_bound", MAX_DILUTION_BOUND, "_dilutionBound exceeds limit"),
    ],
)
def test_limits_are_inclusive(field, limit, reason):
    base_config(["WETH"], **{field: limit}).validate()
    assert _reason(base_config(["WETH"], **{field: limit + 1})) == reason


@pytest.mark.parametrize(
    "overrides, reason",
    [
        ({"summoner": ZERO_ADDRESS}, "summoner cannot be 0"),
        ({"summoner": ""}, "summoner cannot be 0"),
        ({"period_duration": 0}, "_periodDuration cannot be 0"),
        ({"voting_period_length": 0}, "_votingPeriodLength cannot be 0"),
        ({"grace_period_length": -1}, "_gracePeriodLength cannot be negative"),
        ({"emergency_exit_wait": 0}, "_emergencyExitWait cannot be 0"),
        ({"dilution_bound": 0}, "_dilutionBound cannot be 0"),
        ({"approved_tokens": ()}, "need at least one approved token"),
        ({"processing_reward": -1}, "deposit and reward must be non-negative"),
        ({"proposal_deposit": 1, "processing_reward": 2}, "_proposalDeposit cannot be smaller than _processingReward"),
        ({"approved_tokens": ("WETH", ZERO_ADDRESS)}, "_approvedToken cannot be 0"),
        ({"approved_tokens": ("WETH", "WETH")}, "duplicate approved token"),
    ],
)
def test_config_rejections(overrides, reason):
    assert _reason(base_config(["WETH"], **overrides)) == reason


def test_zero_grace_period_is_allowed():
    base_config(["WETH"], grace_period_length=0).validate()


def test_config_error_is_value_error_with_code():
    with pytest.raises(ValueError) as ei:
        base_config([]).validate()
    assert ei.value.to_dict()["code"] == "GUILD_CONFIG_ERROR"
    assert ei.value.details["field"] == "approved_tokens"


def test_engine_refuses_invalid_config():
    weth = Token("WETH")
    with pytest.raises(ConfigurationError):
        GovernanceEngine(base_config(["WETH"], dilution_bound=0), AssetRegistry([weth]))


def test_engine_requires_registered_ledgers():
    weth = Token("WETH")
    with pytest.raises(ConfigurationError) as ei:
        GovernanceEngine(base_config(["WETH", "DAI"]), AssetRegistry([weth]))
    assert ei.value.reason == "approved token has no registered ledger"


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("GUILD_SUMMONER", "alice")
    monkeypatch.setenv("GUILD_APPROVED_TOKENS", "WETH, DAI")
    monkeypatch.setenv("GUILD_VOTING_PERIOD_LENGTH", "7")
    monkeypatch.setenv("GUILD_PROPOSAL_DEPOSIT", "1_000")
    cfg = from_env()
    assert cfg.summoner == "alice"
    assert cfg.approved_tokens == ("WETH", "DAI")
    assert cfg.voting_period_length == 7
    assert cfg.proposal_deposit == 1000
    assert cfg.grace_period_length == GuildConfig().grace_period_length


def test_from_env_rejects_garbage(monkeypatch):
    monkeypatch.setenv("GUILD_SUMMONER", "alice")
    monkeypatch.setenv("GUILD_APPROVED_TOKENS", "WETH")
    monkeypatch.setenv("GUILD_DILUTION_BOUND", "three")
    with pytest.raises(ConfigurationError):
        from_env()


def test_from_file_yaml_and_json(tmp_path):
    y = tmp_path / "guild.yaml"
    y.write_text("summoner: alice\napproved_tokens: [WETH]\nprocessing_reward: 2\n")
    assert from_file(y).processing_reward == 2

    j = tmp_path / "guild.json"
    j.write_text(json.dumps({"summoner": "bob", "approved_tokens": ["DAI"]}))
    cfg = from_file(j)
    assert cfg.summoner == "bob" and cfg.deposit_token == "DAI"


def test_from_mapping_rejects_unknown_keys():
    with pytest.raises(ConfigurationError) as ei:
        from_mapping({"summoner": "alice", "approved_tokens": ["WETH"], "quorum": 5})
    assert "quorum" in ei.value.reason


def test_load_layers_env_over_file(tmp_path, monkeypatch):
    f = tmp_path / "guild.yml"
    f.write_text("summoner: alice\napproved_tokens: [WETH]\ndilution_bound: 4\n")
    monkeypatch.setenv("GUILD_CONFIG_FILE", str(f))
    monkeypatch.setenv("GUILD_DILUTION_BOUND", "5")
    cfg = load()
    assert cfg.summoner == "alice"
    assert cfg.dilution_bound == 5
    assert json.loads(pretty(cfg))["dilution_bound"] == 5
