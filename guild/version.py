from __future__ import annotations

"""
guild.version: package version string.

BASE_VERSION is bumped on releases; GUILD_VERSION in the environment
overrides it (devnet builds stamp their own).
"""

import os

BASE_VERSION = "0.1.0"

__version__ = os.getenv("GUILD_VERSION") or BASE_VERSION


def get_version() -> str:
    return __version__


__all__ = ["__version__", "get_version", "BASE_VERSION"]
