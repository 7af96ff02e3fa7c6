from typing import Annotated, Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from config import AppSettings, config
from db.repositories import SqlPairRegistry, SqlRateStore
from services.cache_warmer import CacheWarmer
from services.quote_source import QuoteSource, VpsQuoteSource
from services.rate_service import RateCacheService


def get_settings() -> AppSettings:
    return config()


def get_session(request: Request) -> Generator[Session, None, None]:
    with request.app.state.sessionmaker() as session:
        yield session


def build_quote_source(settings: AppSettings) -> VpsQuoteSource:
    return VpsQuoteSource(base_url=settings.quote_api_base, timeout=settings.quote_api_timeout)


def get_quote_source(request: Request) -> QuoteSource:
    return request.app.state.quote_source


def get_rate_service(
    session: Annotated[Session, Depends(get_session)],
    source: Annotated[QuoteSource, Depends(get_quote_source)],
    settings: Annotated[AppSettings, Depends(get_settings)],
) -> RateCacheService:
    return RateCacheService(
        source=source,
        store=SqlRateStore(session),
        default_ttl_seconds=settings.rates_ttl_seconds,
    )


def get_cache_warmer(
    session: Annotated[Session, Depends(get_session)],
    service: Annotated[RateCacheService, Depends(get_rate_service)],
    settings: Annotated[AppSettings, Depends(get_settings)],
) -> CacheWarmer:
    return CacheWarmer(
        service=service,
        registry=SqlPairRegistry(session),
        batch_limit=settings.pair_batch_limit,
        max_workers=settings.warm_max_workers,
    )
