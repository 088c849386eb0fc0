from __future__ import annotations
"""
guild - member-governed treasury.

A fixed set of members hold voting weight (shares) and a claim on a shared
pool of assets (loot). Membership changes, voting weight and treasury
disbursements only happen through a time-boxed proposal / vote / grace /
process cycle; members may exit at any time by ragequitting their fair share.

Public surface (lazily loaded):
- config, errors, metrics, events, types, clock
- assets, journal, treasury, members, proposals, engine
- scenario, cli
"""


from typing import List

from .version import __version__

__all__: List[str] = [
    "__version__",
    "config",
    "errors",
    "metrics",
    "events",
    "types",
    "clock",
    "assets",
    "journal",
    "treasury",
    "members",
    "proposals",
    "engine",
    "scenario",
    "cli",
]

# --- Lazy module loader (PEP 562) -------------------------------------------------
import importlib


_lazy_modules = set(__all__) - {"__version__"}


def __getattr__(name: str):
    if name in _lazy_modules:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(set(globals().keys()) | _lazy_modules)


def get_version() -> str:
    """Return the guild package version string."""
    return __version__
