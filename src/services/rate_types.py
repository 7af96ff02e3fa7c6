from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class DenomPair:
    """Ordered pair of denominations; ``(a, b)`` and ``(b, a)`` are distinct."""

    from_denom: str
    to_denom: str


@dataclass(frozen=True)
class UpstreamQuote:
    rate: float
    path: list[str] | None = None
    liquidity: float | None = None


@dataclass(frozen=True)
class RateEntry:
    """Cached rate row with its freshness window."""

    from_denom: str
    to_denom: str
    rate: float
    path: list[str] | None
    liquidity: float | None
    source: str
    expires_at: datetime
    updated_at: datetime

    @property
    def pair(self) -> DenomPair:
        return DenomPair(from_denom=self.from_denom, to_denom=self.to_denom)

    def is_fresh(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass(frozen=True)
class RateLookup:
    rate: float
    path: list[str] | None
    liquidity: float | None
    cached: bool
    ttl: int | None = None


@dataclass(frozen=True)
class WarmResult:
    attempted: int
    warmed: int
    failed: int


__all__ = ["DenomPair", "RateEntry", "RateLookup", "UpstreamQuote", "WarmResult"]
