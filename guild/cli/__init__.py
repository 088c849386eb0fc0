"""
guild.cli
---------
Command-line entrypoints (devnet tooling).

- devnet : print the resolved config, run a scenario file, print the example

Usage:
  python -m guild.cli.devnet --help
"""
from __future__ import annotations

from .devnet import app, get_app

__all__ = ["app", "get_app"]
