from __future__ import annotations
"""
Asset ledgers (fungible tokens) the guild holds and moves.

The guild treats assets as external collaborators. It relies only on the
narrow `AssetLedger` protocol below and assumes nothing beyond it:

    balance_of(holder) -> int
    transfer(caller, to, amount) -> bool            # payout
    transfer_from(caller, owner, to, amount) -> bool  # pull into custody
    snapshot() / restore(snap)                      # host-level revert

Mutating calls take the acting identity explicitly (`caller`), there is no
ambient sender. `snapshot`/`restore` let the host roll every touched ledger
back when a guild operation is rejected half-way (the all-or-nothing
transaction semantics a chain would provide).

`Token` is a small reference ledger (ERC-20 style: balances, allowances,
mint). The subclasses reproduce the failure modes the guild must survive:

- FailingToken        reports failure (returns False) while `failing` is set
- RevertingToken      raises while `reverting` is set
- BlacklistToken      refuses transfers touching a blacklisted holder
- FeeOnTransferToken  burns a fee in flight (recipient gets less)
- NoopToken           reports success but moves nothing while `noop` is set
"""


import logging
from typing import Any, Dict, Iterable, Iterator, Optional, Protocol, Set, Tuple, runtime_checkable

log = logging.getLogger(__name__)


class TokenReverted(Exception):
    """Raised by a reference token to model a reverting transfer."""


@runtime_checkable
class AssetLedger(Protocol):
    address: str

    def balance_of(self, holder: str) -> int: ...

    def transfer(self, caller: str, to: str, amount: int) -> bool: ...

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> bool: ...

    def snapshot(self) -> Any: ...

    def restore(self, snap: Any) -> None: ...


class Token:
    """
    Reference fungible token. Insufficient balance or allowance reverts
    (raises TokenReverted), like a standard ERC-20.
    """

    def __init__(self, address: str, *, name: str = "", initial: Optional[Dict[str, int]] = None) -> None:
        if not address:
            raise ValueError("token address required")
        self.address = str(address)
        self.name = name or self.address
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._total_supply = 0
        for holder, amount in (initial or {}).items():
            self.mint(holder, amount)

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"{self.__class__.__name__}({self.address!r})"

    # --- views ---

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, holder: str) -> int:
        return self._balances.get(str(holder), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((str(owner), str(spender)), 0)

    def holders(self) -> Iterator[Tuple[str, int]]:
        return iter(sorted((h, b) for h, b in self._balances.items() if b))

    # --- supply ---

    def mint(self, to: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        self._balances[str(to)] = self.balance_of(to) + int(amount)
        self._total_supply += int(amount)

    # --- transfers ---

    def approve(self, caller: str, spender: str, amount: int) -> bool:
        if amount < 0:
            raise TokenReverted("negative allowance")
        self._allowances[(str(caller), str(spender))] = int(amount)
        return True

    def transfer(self, caller: str, to: str, amount: int) -> bool:
        return self._transfer(str(caller), str(to), int(amount))

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> bool:
        caller, owner, amount = str(caller), str(owner), int(amount)
        allowed = self.allowance(owner, caller)
        if allowed < amount:
            raise TokenReverted(f"allowance {allowed} < {amount}")
        ok = self._transfer(owner, str(to), amount)
        if ok:
            self._allowances[(owner, caller)] = allowed - amount
        return ok

    def _transfer(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0:
            raise TokenReverted("negative amount")
        have = self.balance_of(sender)
        if have < amount:
            raise TokenReverted(f"balance {have} < {amount}")
        self._balances[sender] = have - amount
        self._balances[to] = self.balance_of(to) + amount
        return True

    # --- host revert support ---

    def snapshot(self) -> Any:
        return (dict(self._balances), dict(self._allowances), self._total_supply)

    def restore(self, snap: Any) -> None:
        balances, allowances, supply = snap
        self._balances = dict(balances)
        self._allowances = dict(allowances)
        self._total_supply = supply


class FailingToken(Token):
    """Returns False from every transfer while `failing` is set."""

    def __init__(self, address: str, **kw: Any) -> None:
        super().__init__(address, **kw)
        self.failing = False

    def _transfer(self, sender: str, to: str, amount: int) -> bool:
        if self.failing:
            return False
        return super()._transfer(sender, to, amount)


class RevertingToken(Token):
    """Raises from every transfer while `reverting` is set."""

    def __init__(self, address: str, **kw: Any) -> None:
        super().__init__(address, **kw)
        self.reverting = False

    def _transfer(self, sender: str, to: str, amount: int) -> bool:
        if self.reverting:
            raise TokenReverted(f"{self.address}: transfers disabled")
        return super()._transfer(sender, to, amount)


class BlacklistToken(Token):
    """Reverts any transfer whose sender or recipient is blacklisted."""

    def __init__(self, address: str, **kw: Any) -> None:
        super().__init__(address, **kw)
        self.blacklist: Set[str] = set()

    def block(self, *holders: str) -> None:
        self.blacklist.update(str(h) for h in holders)

    def _transfer(self, sender: str, to: str, amount: int) -> bool:
        if sender in self.blacklist or to in self.blacklist:
            raise TokenReverted(f"{self.address}: blacklisted")
        return super()._transfer(sender, to, amount)


class FeeOnTransferToken(Token):
    """Burns `fee_bps` basis points of every transfer."""

    def __init__(self, address: str, *, fee_bps: int = 100, **kw: Any) -> None:
        super().__init__(address, **kw)
        if not (0 <= fee_bps <= 10_000):
            raise ValueError("fee_bps must be within 0..10000")
        self.fee_bps = fee_bps

    def _transfer(self, sender: str, to: str, amount: int) -> bool:
        ok = super()._transfer(sender, to, amount)
        fee = amount * self.fee_bps // 10_000
        if ok and fee:
            self._balances[to] -= fee
            self._total_supply -= fee
        return ok


class NoopToken(Token):
    """Claims success without moving anything while `noop` is set."""

    def __init__(self, address: str, **kw: Any) -> None:
        super().__init__(address, **kw)
        self.noop = False

    def _transfer(self, sender: str, to: str, amount: int) -> bool:
        if self.noop:
            return True
        return super()._transfer(sender, to, amount)


class AssetRegistry:
    """
    Resolves asset identifiers to ledgers. Also a journal participant: its
    snapshot covers every registered ledger.
    """

    def __init__(self, ledgers: Iterable[AssetLedger] = ()) -> None:
        self._ledgers: Dict[str, AssetLedger] = {}
        for ledger in ledgers:
            self.register(ledger)

    def register(self, ledger: AssetLedger) -> AssetLedger:
        if not isinstance(ledger, AssetLedger):
            raise TypeError(f"{ledger!r} does not implement the AssetLedger protocol")
        key = str(ledger.address)
        if key in self._ledgers and self._ledgers[key] is not ledger:
            raise ValueError(f"asset {key} already registered")
        self._ledgers[key] = ledger
        log.debug("assets: registered %s (%s)", key, type(ledger).__name__)
        return ledger

    def __contains__(self, address: object) -> bool:
        return str(address) in self._ledgers

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ledgers))

    def __len__(self) -> int:
        return len(self._ledgers)

    def get(self, address: str) -> AssetLedger:
        try:
            return self._ledgers[str(address)]
        except KeyError:
            raise KeyError(f"unknown asset {address}") from None

    def snapshot(self) -> Any:
        return {addr: ledger.snapshot() for addr, ledger in self._ledgers.items()}

    def restore(self, snap: Any) -> None:
        for addr, ledger_snap in snap.items():
            self._ledgers[addr].restore(ledger_snap)


__all__ = [
    "TokenReverted",
    "AssetLedger",
    "Token",
    "FailingToken",
    "RevertingToken",
    "BlacklistToken",
    "FeeOnTransferToken",
    "NoopToken",
    "AssetRegistry",
]
