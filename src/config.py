from __future__ import annotations

from functools import cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from services.cache_warmer import DEFAULT_PAIR_BATCH_LIMIT
from services.quote_source import DEFAULT_QUOTE_API_BASE
from services.rate_service import DEFAULT_TTL_SECONDS

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ARTIFACTS_DIR = PROJECT_ROOT / "artifacts"
DB_FILE = ARTIFACTS_DIR / "rates_cache.db"


class AppSettings(BaseSettings):
    rates_ttl_seconds: int = Field(default=DEFAULT_TTL_SECONDS, gt=0)
    quote_api_base: str = Field(
        default=DEFAULT_QUOTE_API_BASE,
        validation_alias=AliasChoices("quote_api_base", "coredex_vps_base"),
    )
    quote_api_timeout: float = Field(default=10.0, gt=0)
    pair_batch_limit: int = Field(default=DEFAULT_PAIR_BATCH_LIMIT, gt=0)
    warm_max_workers: int = Field(default=1, gt=0)
    database_url: str = f"sqlite:///{DB_FILE}"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@cache
def config() -> AppSettings:
    return AppSettings()
