from __future__ import annotations

"""
Guild treasury (guild bank): custody of all approved assets.

The treasury keeps no balances of its own: the balance of an asset is exactly
what that asset's ledger reports for `treasury.address`. It exposes:

  • balance_of(asset)
  • pay_out(caller, asset, amount, recipient)   restricted to the owner (the engine)
  • withdraw(caller, recipient, weight, total_weight, assets)
        proportional payout used by ragequit / safe ragequit

Transfers never assume success beyond the primitive's contract. A transfer
is accepted only if the ledger call returns a truthy value *and* the sender's
balance dropped by exactly `amount` (catching silent no-ops); pulls into
custody additionally require the custodian's balance to grow by exactly
`amount` (catching fee-on-transfer assets). Anything else raises
ExternalTransferFailure.

Cost note: `withdraw` visits every asset it is given. With the full approved
list this grows linearly with the whitelist; callers that must bound the cost
or skip a broken asset pass an explicit subset.
"""

import logging
from typing import Any, Dict, Iterator, List, Sequence, Set

from .assets import AssetLedger, AssetRegistry
from .errors import ExternalTransferFailure, InsufficientBalance, Unauthorized

log = logging.getLogger(__name__)


def fair_share(balance: int, weight: int, total_weight: int) -> int:
    """balance × weight / total_weight, floored. Zero when the pool is empty."""
    if balance < 0 or weight < 0 or total_weight < 0:
        raise ValueError("fair_share inputs must be non-negative")
    if weight > total_weight:
        raise ValueError("weight cannot exceed total weight")
    if total_weight == 0:
        return 0
    return balance * weight // total_weight


def safe_transfer(ledger: AssetLedger, caller: str, to: str, amount: int, *, operation: str) -> None:
    """`ledger.transfer` with the defensive checks described in the module docstring."""
    before = ledger.balance_of(caller)
    try:
        ok = ledger.transfer(caller, to, amount)
    except Exception as e:
        log.warning("treasury: %s transfer of %d %s reverted: %s", operation, amount, ledger.address, e)
        raise ExternalTransferFailure(
            f"{operation} transfer reverted", asset=ledger.address, operation=operation,
            details={"error": str(e)},
        ) from e
    if not ok:
        log.warning("treasury: %s transfer of %d %s returned failure", operation, amount, ledger.address)
        raise ExternalTransferFailure(f"{operation} transfer failed", asset=ledger.address, operation=operation)
    moved = before - ledger.balance_of(caller)
    if caller != to and moved != amount:
        log.warning("treasury: %s transfer of %d %s moved %d", operation, amount, ledger.address, moved)
        raise ExternalTransferFailure(
            f"{operation} transfer moved {moved} instead of {amount}",
            asset=ledger.address, operation=operation,
        )


def safe_transfer_from(
    ledger: AssetLedger, caller: str, owner: str, to: str, amount: int, *, operation: str
) -> None:
    """`ledger.transfer_from` into custody; the custodian must receive exactly `amount`."""
    before = ledger.balance_of(to)
    try:
        ok = ledger.transfer_from(caller, owner, to, amount)
    except Exception as e:
        log.warning("treasury: %s pull of %d %s from %s reverted: %s", operation, amount, ledger.address, owner, e)
        raise ExternalTransferFailure(
            f"{operation} transfer reverted", asset=ledger.address, operation=operation,
            details={"error": str(e)},
        ) from e
    if not ok:
        log.warning("treasury: %s pull of %d %s from %s returned failure", operation, amount, ledger.address, owner)
        raise ExternalTransferFailure(f"{operation} transfer failed", asset=ledger.address, operation=operation)
    received = ledger.balance_of(to) - before
    if owner != to and received != amount:
        log.warning("treasury: %s pull of %d %s delivered %d", operation, amount, ledger.address, received)
        raise ExternalTransferFailure(
            f"{operation} transfer delivered {received} instead of {amount}",
            asset=ledger.address, operation=operation,
        )


class Whitelist:
    """
    Ordered set of approved assets. Append-only: assets are never removed.
    The first entry is the deposit asset.
    """

    def __init__(self, tokens: Sequence[str] = ()) -> None:
        self._order: List[str] = []
        self._set: Set[str] = set()
        for t in tokens:
            self.add(t)

    def add(self, token: str) -> None:
        token = str(token)
        if token in self._set:
            raise ValueError(f"duplicate approved token {token}")
        self._order.append(token)
        self._set.add(token)

    def __contains__(self, token: object) -> bool:
        return str(token) in self._set

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._order))

    def __len__(self) -> int:
        return len(self._order)

    def __getitem__(self, i: int) -> str:
        return self._order[i]

    def snapshot(self) -> Any:
        return list(self._order)

    def restore(self, snap: Any) -> None:
        self._order = list(snap)
        self._set = set(snap)


class Treasury:
    """
    Custody of the guild's assets. Only `owner` may move funds out.
    """

    __slots__ = ("assets", "owner", "address")

    def __init__(self, assets: AssetRegistry, *, owner: str, address: str = "guild:bank") -> None:
        self.assets = assets
        self.owner = str(owner)
        self.address = str(address)

    # --- queries ---

    def balance_of(self, asset: str) -> int:
        return int(self.assets.get(asset).balance_of(self.address))

    def balances(self, assets: Sequence[str]) -> Dict[str, int]:
        return {a: self.balance_of(a) for a in assets}

    # --- restricted ops ---

    def _require_owner(self, caller: str) -> None:
        if str(caller) != self.owner:
            raise Unauthorized("only the guild may move treasury funds", caller=str(caller))

    def pay_out(self, caller: str, asset: str, amount: int, recipient: str) -> None:
        self._require_owner(caller)
        if amount < 0:
            raise ValueError("amount must be non-negative")
        have = self.balance_of(asset)
        if amount > have:
            raise InsufficientBalance(
                "treasury balance too low for payout", required=amount, available=have,
                details={"asset": asset},
            )
        safe_transfer(self.assets.get(asset), self.address, str(recipient), amount, operation="payout")
        log.debug("treasury: paid %d %s to %s", amount, asset, recipient)

    def withdraw(
        self,
        caller: str,
        recipient: str,
        weight: int,
        total_weight: int,
        assets: Sequence[str],
    ) -> Dict[str, int]:
        """
        Pay `recipient` weight/total_weight of the current balance of every
        asset in `assets`. Any failing transfer aborts (the caller's journal
        rolls back the transfers already made). Returns the amounts paid.
        """
        self._require_owner(caller)
        paid: Dict[str, int] = {}
        for asset in assets:
            amount = fair_share(self.balance_of(asset), weight, total_weight)
            safe_transfer(self.assets.get(asset), self.address, str(recipient), amount, operation="withdraw")
            paid[asset] = amount
        log.debug("treasury: withdrew %s to %s (weight %d/%d)", paid, recipient, weight, total_weight)
        return paid


__all__ = ["fair_share", "safe_transfer", "safe_transfer_from", "Whitelist", "Treasury"]
