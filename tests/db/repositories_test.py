from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.models import PairOrm, RateCacheOrm
from db.repositories import SqlPairRegistry, SqlRateStore
from services.errors import StoreError
from services.rate_types import DenomPair, RateEntry

NOW = datetime(2025, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


def _entry(
    from_denom: str = "ucore",
    to_denom: str = "uusdc",
    *,
    rate: float = 1.23,
    path: list[str] | None = None,
    liquidity: float | None = None,
    updated_at: datetime = NOW,
    ttl: int = 60,
) -> RateEntry:
    return RateEntry(
        from_denom=from_denom,
        to_denom=to_denom,
        rate=rate,
        path=path,
        liquidity=liquidity,
        source="VPS",
        expires_at=updated_at + timedelta(seconds=ttl),
        updated_at=updated_at,
    )


@pytest.fixture()
def store(test_session: Session) -> SqlRateStore:
    return SqlRateStore(test_session)


@pytest.fixture()
def registry(test_session: Session) -> SqlPairRegistry:
    return SqlPairRegistry(test_session)


def test_read_returns_none_for_unknown_pair(store: SqlRateStore) -> None:
    assert store.read("ucore", "uusdc") is None


@pytest.mark.parametrize(
    ("path", "liquidity"),
    [
        (None, None),
        (["ucore", "uatom", "uusdc"], None),
        (None, 1500.5),
        (["ucore", "uusdc"], 0.0),
        ([], 42.0),
    ],
)
def test_upsert_then_read_round_trips(store: SqlRateStore, path: list[str] | None, liquidity: float | None) -> None:
    entry = _entry(path=path, liquidity=liquidity)

    store.upsert(entry)

    assert store.read("ucore", "uusdc") == entry


def test_read_returns_utc_aware_timestamps(store: SqlRateStore) -> None:
    store.upsert(_entry(updated_at=NOW.astimezone(timezone(timedelta(hours=2)))))

    result = store.read("ucore", "uusdc")
    assert result is not None
    assert result.updated_at == NOW
    assert result.updated_at.tzinfo == timezone.utc
    assert result.expires_at == NOW + timedelta(seconds=60)


def test_upsert_replaces_existing_row(store: SqlRateStore, test_session: Session) -> None:
    store.upsert(_entry(rate=1.0, path=["a"], liquidity=10.0))
    later = NOW + timedelta(minutes=5)
    store.upsert(_entry(rate=2.0, path=None, liquidity=None, updated_at=later))

    count = test_session.scalar(select(func.count()).select_from(RateCacheOrm))
    assert count == 1
    result = store.read("ucore", "uusdc")
    assert result is not None
    assert result.rate == 2.0
    assert result.path is None
    assert result.liquidity is None
    assert result.updated_at == later


def test_direction_is_part_of_the_key(store: SqlRateStore) -> None:
    store.upsert(_entry("ucore", "uusdc", rate=2.0))
    store.upsert(_entry("uusdc", "ucore", rate=0.7))

    forward = store.read("ucore", "uusdc")
    backward = store.read("uusdc", "ucore")
    assert forward is not None and forward.rate == 2.0
    assert backward is not None and backward.rate == 0.7


def test_store_errors_are_wrapped(store: SqlRateStore, test_session: Session) -> None:
    RateCacheOrm.__table__.drop(test_session.get_bind())

    with pytest.raises(StoreError):
        store.read("ucore", "uusdc")
    with pytest.raises(StoreError):
        store.upsert(_entry())


def _add_pairs(session: Session, *pairs: tuple[str, str, bool]) -> None:
    session.add_all([PairOrm(base_denom=base, quote_denom=quote, is_active=active) for base, quote, active in pairs])
    session.commit()


def test_active_pairs_skips_inactive_and_orders(registry: SqlPairRegistry, test_session: Session) -> None:
    _add_pairs(
        test_session,
        ("uusdc", "ucore", True),
        ("ucore", "uusdc", True),
        ("ucore", "uatom", False),
    )

    assert registry.active_pairs(200) == [
        DenomPair(from_denom="ucore", to_denom="uusdc"),
        DenomPair(from_denom="uusdc", to_denom="ucore"),
    ]


def test_active_pairs_is_capped_by_limit(registry: SqlPairRegistry, test_session: Session) -> None:
    _add_pairs(test_session, *[(f"denom{i:02d}", "uusdc", True) for i in range(5)])

    pairs = registry.active_pairs(3)

    assert [pair.from_denom for pair in pairs] == ["denom00", "denom01", "denom02"]


def test_active_pairs_rejects_non_positive_limit(registry: SqlPairRegistry) -> None:
    with pytest.raises(ValueError):
        registry.active_pairs(0)


def test_active_pairs_wraps_store_errors(registry: SqlPairRegistry, test_session: Session) -> None:
    PairOrm.__table__.drop(test_session.get_bind())

    with pytest.raises(StoreError):
        registry.active_pairs(10)
