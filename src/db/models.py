from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class RateCacheOrm(Base):
    __tablename__ = "rates_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_denom: Mapped[str] = mapped_column(String, nullable=False)
    to_denom: Mapped[str] = mapped_column(String, nullable=False)
    rate: Mapped[float] = mapped_column(Float, nullable=False)
    path: Mapped[list[str] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    liquidity: Mapped[float | None] = mapped_column(Float, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (UniqueConstraint("from_denom", "to_denom", name="uq_rates_cache_pair"),)


class PairOrm(Base):
    __tablename__ = "pairs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    base_denom: Mapped[str] = mapped_column(String, nullable=False)
    quote_denom: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (UniqueConstraint("base_denom", "quote_denom", name="uq_pairs_denoms"),)
