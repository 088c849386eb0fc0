from __future__ import annotations
# guild/errors.py
"""
Error types for the guild treasury. These are lightweight, serializable, and
safe to surface in logs and CLI output.

Every rejection carries a stable `code` (one per class) and a specific
`reason` (in `details["reason"]`), so callers can tell *why* an operation was
refused, not only that it was.

Exports:
- GuildError (base)
- ConfigurationError
- StateGuardViolation
- Unauthorized
- UnknownProposal
- InsufficientBalance
- ExternalTransferFailure
"""


from typing import Any, Dict, Mapping, Optional
import json


class GuildError(Exception):
    """Base class for guild domain errors."""

    code: str = "GUILD_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    @property
    def reason(self) -> str:
        return str(self.details.get("reason", self.message))

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            try:
                packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"), default=str)
            except Exception:
                packed = str(self.details)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


def _with_reason(reason: str, details: Optional[Mapping[str, Any]], **extra: Any) -> Dict[str, Any]:
    d = dict(details or {})
    d.setdefault("reason", reason)
    for k, v in extra.items():
        if v is not None:
            d.setdefault(k, v)
    return d


class ConfigurationError(GuildError, ValueError):
    """Invalid construction-time parameters. Construction must not complete."""
    code = "GUILD_CONFIG_ERROR"

    def __init__(self, reason: str, *, field: Optional[str] = None,
                 details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(reason, details=_with_reason(reason, details, field=field))


class StateGuardViolation(GuildError):
    """
    An operation was attempted in the wrong state: voting outside the window,
    double vote, sponsoring a non-submitted proposal, processing out of order,
    cancelling a sponsored proposal, ragequitting with a pending yes vote, ...
    Nothing was mutated; retry with corrected arguments or timing.
    """
    code = "GUILD_STATE_GUARD"

    def __init__(self, reason: str, *, details: Optional[Mapping[str, Any]] = None, **context: Any) -> None:
        super().__init__(reason, details=_with_reason(reason, details, **context))


class Unauthorized(StateGuardViolation):
    """The caller does not hold the role the operation requires."""
    code = "GUILD_UNAUTHORIZED"


class UnknownProposal(StateGuardViolation):
    """Referenced proposal id / queue index does not exist."""
    code = "GUILD_UNKNOWN_PROPOSAL"


class InsufficientBalance(GuildError):
    """A burn or payout exceeds the held amount."""
    code = "GUILD_INSUFFICIENT_BALANCE"

    def __init__(
        self,
        reason: str,
        *,
        required: Optional[int] = None,
        available: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = _with_reason(reason, details)
        if required is not None:
            d["required"] = int(required)
        if available is not None:
            d["available"] = int(available)
        super().__init__(reason, details=d)


class ExternalTransferFailure(GuildError):
    """
    An asset ledger primitive reported failure, raised, or did not move the
    exact amount. Aborts the enclosing operation.
    """
    code = "GUILD_TRANSFER_FAILED"

    def __init__(
        self,
        reason: str,
        *,
        asset: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(reason, details=_with_reason(reason, details, asset=asset, operation=operation))


__all__ = [
    "GuildError",
    "ConfigurationError",
    "StateGuardViolation",
    "Unauthorized",
    "UnknownProposal",
    "InsufficientBalance",
    "ExternalTransferFailure",
]
