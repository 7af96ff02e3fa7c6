from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from .errors import ValidationError
from .quote_source import QuoteSource
from .rate_store import RateStore
from .rate_types import RateEntry, RateLookup, UpstreamQuote

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RateCacheService:
    """Read-through TTL cache in front of the quote API.

    A stored entry is served while ``expires_at`` is strictly in the future.
    Otherwise the quote is fetched once, written back with a new expiry and
    returned. Upstream and store failures propagate to the caller; a stale
    row is never used as a fallback.
    """

    def __init__(
        self,
        source: QuoteSource,
        store: RateStore,
        *,
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.source = source
        self.store = store
        self.default_ttl_seconds = _validate_ttl(default_ttl_seconds)
        self.clock = clock

    def get_rate(self, from_denom: Any, to_denom: Any, ttl_seconds: Any = None) -> RateLookup:
        _validate_denoms(from_denom, to_denom)
        ttl = self.resolve_ttl(ttl_seconds)

        existing = self.store.read(from_denom, to_denom)
        if existing is not None and existing.is_fresh(self.clock()):
            return RateLookup(
                rate=existing.rate,
                path=existing.path,
                liquidity=existing.liquidity,
                cached=True,
            )

        entry = self._fetch_and_store(from_denom, to_denom, ttl)
        return RateLookup(rate=entry.rate, path=entry.path, liquidity=entry.liquidity, cached=False, ttl=ttl)

    def refresh(self, from_denom: str, to_denom: str, ttl_seconds: int | None = None) -> RateEntry:
        """Fetch and write back unconditionally, ignoring any stored entry."""
        _validate_denoms(from_denom, to_denom)
        return self._fetch_and_store(from_denom, to_denom, self.resolve_ttl(ttl_seconds))

    def resolve_ttl(self, ttl_seconds: Any = None) -> int:
        if ttl_seconds is None:
            return self.default_ttl_seconds
        return _validate_ttl(ttl_seconds)

    def fetch(self, from_denom: str, to_denom: str) -> UpstreamQuote:
        return self.source.fetch_quote(from_denom, to_denom)

    def store_quote(self, from_denom: str, to_denom: str, quote: UpstreamQuote, ttl_seconds: int) -> RateEntry:
        now = self.clock()
        entry = RateEntry(
            from_denom=from_denom,
            to_denom=to_denom,
            rate=quote.rate,
            path=quote.path,
            liquidity=quote.liquidity,
            source=self.source.source_name,
            expires_at=now + timedelta(seconds=ttl_seconds),
            updated_at=now,
        )
        self.store.upsert(entry)
        return entry

    def _fetch_and_store(self, from_denom: str, to_denom: str, ttl_seconds: int) -> RateEntry:
        quote = self.fetch(from_denom, to_denom)
        entry = self.store_quote(from_denom, to_denom, quote, ttl_seconds)
        logger.info(
            "Cached %s/%s rate=%s ttl=%ds until %s",
            from_denom,
            to_denom,
            entry.rate,
            ttl_seconds,
            entry.expires_at.isoformat(),
        )
        return entry


def _validate_denoms(from_denom: Any, to_denom: Any) -> None:
    if not from_denom or not to_denom:
        raise ValidationError("from_denom and to_denom required")
    if not isinstance(from_denom, str) or not isinstance(to_denom, str):
        raise ValidationError("from_denom and to_denom must be strings")


def _validate_ttl(ttl_seconds: Any) -> int:
    if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds <= 0:
        raise ValidationError("ttl_seconds must be a positive integer")
    return ttl_seconds


__all__ = ["DEFAULT_TTL_SECONDS", "RateCacheService", "utc_now"]
