from __future__ import annotations

from typing import Protocol

from .rate_types import DenomPair, RateEntry


class RateStore(Protocol):
    def read(self, from_denom: str, to_denom: str) -> RateEntry | None: ...

    def upsert(self, entry: RateEntry) -> None: ...


class PairRegistry(Protocol):
    def active_pairs(self, limit: int) -> list[DenomPair]: ...


__all__ = ["PairRegistry", "RateStore"]
