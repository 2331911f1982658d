"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when configuration is missing or internally inconsistent."""


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    database_url: str
    worker_port: int = 9000
    cache_ttl_seconds: int = 1800
    max_concurrent_searches: int = 4
    search_timeout_seconds: float = 10.0
    max_suggestions: int = 20


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    worker_port = _int_env("WORKER_PORT", 9000)
    cache_ttl_seconds = _int_env("EVENT_CACHE_TTL_SECONDS", 1800)
    max_concurrent_searches = _int_env("MAX_CONCURRENT_SEARCHES", 4)
    search_timeout_seconds = _float_env("SEARCH_TIMEOUT_SECONDS", 10.0)
    max_suggestions = _int_env("MAX_GROUP_SUGGESTIONS", 20)

    if max_concurrent_searches < 1:
        raise ConfigError("MAX_CONCURRENT_SEARCHES must be at least 1")
    if cache_ttl_seconds < 0:
        raise ConfigError("EVENT_CACHE_TTL_SECONDS must not be negative")

    if not database_url:
        logger.warning("DATABASE_URL is not set; the Postgres event cache is unavailable.")
    if not google_api_key:
        logger.warning("GOOGLE_API_KEY is not configured; Places requests will fail.")

    return Settings(
        google_api_key=google_api_key,
        database_url=database_url,
        worker_port=worker_port,
        cache_ttl_seconds=cache_ttl_seconds,
        max_concurrent_searches=max_concurrent_searches,
        search_timeout_seconds=search_timeout_seconds,
        max_suggestions=max_suggestions,
    )
