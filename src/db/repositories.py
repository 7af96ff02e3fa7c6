from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import models
from services.errors import StoreError
from services.rate_store import PairRegistry, RateStore
from services.rate_types import DenomPair, RateEntry

_PAIR_KEY = ["from_denom", "to_denom"]


class SqlRateStore(RateStore):
    """``rates_cache`` table: one row per ordered denom pair, written by upsert."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def read(self, from_denom: str, to_denom: str) -> RateEntry | None:
        stmt = (
            select(models.RateCacheOrm)
            .where(models.RateCacheOrm.from_denom == from_denom)
            .where(models.RateCacheOrm.to_denom == to_denom)
            .limit(1)
        )
        try:
            row = self._session.scalar(stmt)
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"Failed to read cached rate {from_denom}/{to_denom}") from exc
        if row is None:
            return None
        return self._to_domain(row)

    def upsert(self, entry: RateEntry) -> None:
        values = {
            "from_denom": entry.from_denom,
            "to_denom": entry.to_denom,
            "rate": entry.rate,
            "path": list(entry.path) if entry.path is not None else None,
            "liquidity": entry.liquidity,
            "source": entry.source,
            "expires_at": _as_utc(entry.expires_at),
            "updated_at": _as_utc(entry.updated_at),
        }
        try:
            stmt = self._insert(values)
            stmt = stmt.on_conflict_do_update(
                index_elements=_PAIR_KEY,
                set_={key: stmt.excluded[key] for key in values if key not in _PAIR_KEY},
            )
            self._session.execute(stmt)
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"Failed to upsert cached rate {entry.from_denom}/{entry.to_denom}") from exc

    def _insert(self, values: dict[str, Any]) -> Any:
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql_insert(models.RateCacheOrm).values(values)
        if dialect == "sqlite":
            return sqlite_insert(models.RateCacheOrm).values(values)
        msg = f"Upsert is not supported on {dialect}"
        raise StoreError(msg)

    @staticmethod
    def _to_domain(row: models.RateCacheOrm) -> RateEntry:
        return RateEntry(
            from_denom=row.from_denom,
            to_denom=row.to_denom,
            rate=row.rate,
            path=list(row.path) if row.path is not None else None,
            liquidity=row.liquidity,
            source=row.source,
            expires_at=_as_utc(row.expires_at),
            updated_at=_as_utc(row.updated_at),
        )


class SqlPairRegistry(PairRegistry):
    def __init__(self, session: Session) -> None:
        self._session = session

    def active_pairs(self, limit: int) -> list[DenomPair]:
        if limit <= 0:
            raise ValueError("limit must be > 0")

        stmt = (
            select(models.PairOrm.base_denom, models.PairOrm.quote_denom)
            .where(models.PairOrm.is_active.is_(True))
            .order_by(models.PairOrm.base_denom, models.PairOrm.quote_denom)
            .limit(limit)
        )
        try:
            rows = self._session.execute(stmt).all()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError("Failed to read active pairs") from exc
        return [DenomPair(from_denom=base, to_denom=quote) for base, quote in rows]


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo; every timestamp is written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = ["SqlPairRegistry", "SqlRateStore"]
