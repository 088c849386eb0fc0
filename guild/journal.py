from __future__ import annotations
"""
guild.journal: checkpoints, revert/commit over snapshottable participants.

Every public guild operation is an all-or-nothing transaction. The journal
keeps a stack of checkpoints; each checkpoint holds one snapshot per
participant (the guild's own ledgers and every asset ledger it knows).
`revert()` restores the top checkpoint, `commit()` discards it.

Intended usage
--------------
    j = Journal([members, queue, assets])
    with j.transaction():
        ...                        # any exception restores every participant

Nested transactions are cheap: inner `transaction()` blocks push their own
checkpoint, so an inner failure that the caller handles only rolls back the
inner work.

Notes
-----
- Participants must implement `snapshot() -> Any` and `restore(snap) -> None`.
- Snapshots are taken eagerly (copy on begin); guild state is small.
"""


from contextlib import contextmanager
from typing import Any, Iterator, List, Protocol, Sequence, Tuple, runtime_checkable


@runtime_checkable
class Snapshottable(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, snap: Any) -> None: ...


class Journal:
    def __init__(self, participants: Sequence[Snapshottable] = ()) -> None:
        self._participants: List[Snapshottable] = []
        self._checkpoints: List[List[Tuple[Snapshottable, Any]]] = []
        for p in participants:
            self.add(p)

    def add(self, participant: Snapshottable) -> None:
        if not isinstance(participant, Snapshottable):
            raise TypeError(f"{participant!r} cannot be journaled (snapshot/restore missing)")
        if self._checkpoints:
            raise RuntimeError("cannot add journal participants inside a transaction")
        self._participants.append(participant)

    def depth(self) -> int:
        """Number of open checkpoints."""
        return len(self._checkpoints)

    def begin(self) -> int:
        self._checkpoints.append([(p, p.snapshot()) for p in self._participants])
        return len(self._checkpoints)

    def commit(self) -> None:
        if not self._checkpoints:
            raise RuntimeError("commit without begin")
        self._checkpoints.pop()

    def revert(self) -> None:
        if not self._checkpoints:
            raise RuntimeError("revert without begin")
        for participant, snap in reversed(self._checkpoints.pop()):
            participant.restore(snap)

    @contextmanager
    def transaction(self) -> Iterator[int]:
        depth = self.begin()
        try:
            yield depth
        except BaseException:
            self.revert()
            raise
        else:
            self.commit()


__all__ = ["Snapshottable", "Journal"]
