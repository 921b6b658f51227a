from __future__ import annotations

"""Undo journal for one pool transaction.

Mutations are applied to the live pool in place. Before a field changes its
old value is recorded, and side effects outside the pool (custodian moves,
appended events) register an inverse. On failure the inverses run newest
first, which restores the pool exactly. The journal also remembers which
rows were touched so the store can persist only those.
"""

from typing import Any, Callable, List, Set, Tuple

from lockstake.ledger.types import PoolState

Undo = Callable[[], None]


class PoolTxn:
    def __init__(self, pool: PoolState) -> None:
        self.pool = pool
        self._undo: List[Undo] = []
        self.header_dirty = False
        self.dirty_accounts: Set[str] = set()
        self.dirty_deposits: Set[Tuple[str, int]] = set()

    def save(self, obj: Any, *field_names: str) -> None:
        """Record the current values of `field_names` on `obj`."""
        old = [(name, getattr(obj, name)) for name in field_names]

        def _restore() -> None:
            for name, v in old:
                setattr(obj, name, v)

        self._undo.append(_restore)
        if obj is self.pool:
            self.header_dirty = True

    def on_rollback(self, fn: Undo) -> None:
        self._undo.append(fn)

    def touch(self, account: str, deposit_id: int | None = None) -> None:
        self.dirty_accounts.add(account)
        if deposit_id is not None:
            self.dirty_deposits.add((account, int(deposit_id)))

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()
        self.header_dirty = False
        self.dirty_accounts.clear()
        self.dirty_deposits.clear()


__all__ = ["PoolTxn"]
