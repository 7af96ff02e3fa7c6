from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from time import perf_counter

from .errors import InvalidUpstreamResponse, UpstreamUnavailable
from .rate_service import RateCacheService
from .rate_store import PairRegistry
from .rate_types import DenomPair, UpstreamQuote, WarmResult

logger = logging.getLogger(__name__)

DEFAULT_PAIR_BATCH_LIMIT = 200

_PAIR_FAILURES = (UpstreamUnavailable, InvalidUpstreamResponse)


class CacheWarmer:
    """Refreshes every active registry pair with the default TTL.

    Pairs are independent: a failed fetch or write skips that pair and the
    cycle carries on. Only a failure to read the registry aborts the cycle.
    With ``max_workers > 1`` the upstream fetches run on a thread pool while
    writes stay on the calling thread, one upsert per pair.
    """

    def __init__(
        self,
        service: RateCacheService,
        registry: PairRegistry,
        *,
        batch_limit: int = DEFAULT_PAIR_BATCH_LIMIT,
        max_workers: int = 1,
    ) -> None:
        if batch_limit <= 0:
            raise ValueError("batch_limit must be > 0")
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")

        self.service = service
        self.registry = registry
        self.batch_limit = batch_limit
        self.max_workers = max_workers

    def warm_all(self) -> WarmResult:
        started = perf_counter()
        pairs = self.registry.active_pairs(self.batch_limit)
        ttl = self.service.resolve_ttl()

        if self.max_workers == 1 or len(pairs) <= 1:
            warmed = sum(self._warm_pair(pair, ttl) for pair in pairs)
        else:
            warmed = self._warm_concurrently(pairs, ttl)

        result = WarmResult(attempted=len(pairs), warmed=warmed, failed=len(pairs) - warmed)
        logger.info(
            "Warmed %d/%d pairs (%d failed) in %.2fs",
            result.warmed,
            result.attempted,
            result.failed,
            perf_counter() - started,
        )
        return result

    def _warm_pair(self, pair: DenomPair, ttl: int) -> bool:
        try:
            quote = self.service.fetch(pair.from_denom, pair.to_denom)
        except _PAIR_FAILURES as exc:
            self._log_skip(pair, exc)
            return False
        return self._write(pair, quote, ttl)

    def _warm_concurrently(self, pairs: list[DenomPair], ttl: int) -> int:
        warmed = 0
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pairs))) as pool:
            futures: dict[Future[UpstreamQuote], DenomPair] = {
                pool.submit(self.service.fetch, pair.from_denom, pair.to_denom): pair for pair in pairs
            }
            for future in as_completed(futures):
                pair = futures[future]
                try:
                    quote = future.result()
                except _PAIR_FAILURES as exc:
                    self._log_skip(pair, exc)
                    continue
                warmed += self._write(pair, quote, ttl)
        return warmed

    def _write(self, pair: DenomPair, quote: UpstreamQuote, ttl: int) -> bool:
        try:
            self.service.store_quote(pair.from_denom, pair.to_denom, quote, ttl)
        except _PAIR_FAILURES as exc:
            self._log_skip(pair, exc)
            return False
        return True

    @staticmethod
    def _log_skip(pair: DenomPair, exc: Exception) -> None:
        logger.warning("Skipping %s/%s: %s", pair.from_denom, pair.to_denom, exc)


__all__ = ["DEFAULT_PAIR_BATCH_LIMIT", "CacheWarmer"]
