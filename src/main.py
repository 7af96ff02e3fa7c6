from __future__ import annotations

import argparse
import json
import logging
from typing import Sequence

from sqlalchemy import make_url
from sqlalchemy.orm import Session

from config import AppSettings, config
from db.db import init_db
from db.repositories import SqlPairRegistry, SqlRateStore
from services.cache_warmer import CacheWarmer
from services.errors import RatesCacheError
from services.quote_source import QuoteSource, VpsQuoteSource
from services.rate_service import RateCacheService

logger = logging.getLogger(__name__)


def build_rate_service(session: Session, settings: AppSettings, source: QuoteSource) -> RateCacheService:
    return RateCacheService(
        source=source,
        store=SqlRateStore(session),
        default_ttl_seconds=settings.rates_ttl_seconds,
    )


def build_cache_warmer(session: Session, settings: AppSettings, source: QuoteSource) -> CacheWarmer:
    return CacheWarmer(
        service=build_rate_service(session, settings, source),
        registry=SqlPairRegistry(session),
        batch_limit=settings.pair_batch_limit,
        max_workers=settings.warm_max_workers,
    )


def run_rate(
    session: Session,
    settings: AppSettings,
    source: QuoteSource,
    *,
    from_denom: str,
    to_denom: str,
    ttl: int | None,
) -> int:
    service = build_rate_service(session, settings, source)
    try:
        lookup = service.get_rate(from_denom, to_denom, ttl)
    except RatesCacheError as exc:
        print(json.dumps({"error": str(exc)}))
        return 1

    result: dict[str, object] = {
        "rate": lookup.rate,
        "path": lookup.path,
        "liquidity": lookup.liquidity,
        "cached": lookup.cached,
    }
    if lookup.ttl is not None:
        result["ttl"] = lookup.ttl
    print(json.dumps(result))
    return 0


def run_warm(session: Session, settings: AppSettings, source: QuoteSource) -> int:
    warmer = build_cache_warmer(session, settings, source)
    try:
        result = warmer.warm_all()
    except RatesCacheError as exc:
        print(json.dumps({"error": str(exc)}))
        return 1
    print(json.dumps({"success": True, "warmed": result.warmed, "failed": result.failed}))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Read-through rates cache in front of the quote API.")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rate_parser = subparsers.add_parser("rate", help="Return a fresh rate for one pair")
    rate_parser.add_argument("from_denom")
    rate_parser.add_argument("to_denom")
    rate_parser.add_argument("--ttl", type=int, default=None)

    subparsers.add_parser("warm", help="Refresh all active pairs once")

    args = parser.parse_args(argv)
    settings = config()
    database_url = args.database_url or settings.database_url
    logger.info("Using database %s", make_url(database_url).render_as_string(hide_password=True))
    session = init_db(database_url)
    source = VpsQuoteSource(base_url=settings.quote_api_base, timeout=settings.quote_api_timeout)

    try:
        if args.command == "rate":
            return run_rate(
                session, settings, source, from_denom=args.from_denom, to_denom=args.to_denom, ttl=args.ttl
            )
        return run_warm(session, settings, source)
    finally:
        source.close()
        session.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    raise SystemExit(main())
