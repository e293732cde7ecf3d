"""Insert-if-absent sets guarding at-most-once processing."""

from __future__ import annotations

from typing import Generic, Hashable, Iterator, Set, TypeVar

from .schemas import ActionKey

K = TypeVar("K", bound=Hashable)


class WriteOnceSet(Generic[K]):
    """A set whose members can be claimed once and never removed."""

    def __init__(self) -> None:
        self._members: Set[K] = set()

    def claim(self, key: K) -> bool:
        """Insert ``key``; return False if it was already present."""

        if key in self._members:
            return False
        self._members.add(key)
        return True

    def __contains__(self, key: object) -> bool:
        return key in self._members

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[K]:
        return iter(set(self._members))


class ActionLedger(WriteOnceSet[ActionKey]):
    """ActionKeys whose purchase and liquidity sequence has been started."""


class SeenPools(WriteOnceSet[str]):
    """Pool addresses already evaluated by the reconciliation loop."""


__all__ = ["ActionLedger", "SeenPools", "WriteOnceSet"]
