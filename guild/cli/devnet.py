from __future__ import annotations

"""
guild.cli.devnet
----------------

Devnet utility to drive a guild through a scripted scenario over in-memory
token ledgers.

Examples
--------
# Show the config resolved from $GUILD_CONFIG_FILE and GUILD_* variables
python -m guild.cli.devnet config

# Print the built-in end-to-end scenario, then run it
python -m guild.cli.devnet example > e2e.json
python -m guild.cli.devnet run e2e.json

# Keep going past rejected steps and emit JSON
python -m guild.cli.devnet run e2e.yaml --keep-going --json
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import typer

from guild import config as guild_config
from guild.errors import GuildError
from guild.scenario import EXAMPLE_SCENARIO, load_scenario, run_scenario

app = typer.Typer(
    name="devnet",
    add_completion=False,
    no_args_is_help=True,
    help="Run guild treasury scenarios (devnet/test tooling).",
)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fmt_result(result: Any) -> str:
    if isinstance(result, dict):
        return ", ".join(f"{k}={v}" for k, v in sorted(result.items())) or "-"
    return "-" if result is None else str(result)


def _print_steps(steps: List[Dict[str, Any]]) -> None:
    for s in steps:
        status = "ok" if s.get("ok") else "REJECTED"
        line = f"{s['step']:>3}  {str(s.get('op')):<28} {status:<9}"
        if s.get("ok"):
            line += f" {_fmt_result(s.get('result'))}"
        else:
            err = s.get("error") or {}
            line += f" {err.get('code', '')}: {err.get('message', '')}"
        typer.echo(line)


def _print_summary(state: Dict[str, Any]) -> None:
    typer.echo("")
    typer.secho("Members:", bold=True)
    for addr, m in state["members"]["members"].items():
        flag = " (jailed)" if m.get("jailed") else ""
        typer.echo(f"  {addr:<20} shares={m['shares']:<6} loot={m['loot']:<6}{flag}")
    typer.secho("Treasury:", bold=True)
    for token, bal in state["treasury"].items():
        typer.echo(f"  {token:<20} {bal}")
    typer.echo(f"Period {state['current_period']}, {state['proposals']['proposal_count']} proposals, "
               f"{len(state['proposals']['queue'])} queued")


@app.command("config")
def show_config() -> None:
    """Print the configuration resolved from $GUILD_CONFIG_FILE and GUILD_* variables."""
    try:
        typer.echo(guild_config.pretty())
    except GuildError as e:
        typer.secho(f"error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)


@app.command("run")
def run(
    scenario: Path = typer.Argument(..., exists=True, dir_okay=False, help="Scenario file (JSON or YAML)."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
    keep_going: bool = typer.Option(False, "--keep-going", help="Record rejected steps instead of stopping."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging to stderr."),
) -> None:
    """Execute a scenario file and print the step results and the final state."""
    _setup_logging(verbose)
    data = load_scenario(scenario)
    try:
        out = run_scenario(data, stop_on_error=not keep_going)
    except GuildError as e:
        typer.secho(f"error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    if json_out:
        typer.echo(json.dumps(out, indent=2, sort_keys=True, default=str))
        return
    _print_steps(out["steps"])
    _print_summary(out["state"])
    if any(not s["ok"] for s in out["steps"]):
        raise typer.Exit(1)


@app.command("example")
def example() -> None:
    """Print the built-in end-to-end scenario as JSON."""
    typer.echo(json.dumps(EXAMPLE_SCENARIO, indent=2))


def get_app() -> typer.Typer:
    return app


if __name__ == "__main__":
    app()
