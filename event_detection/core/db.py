"""Database helpers for the shared event cache."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from psycopg2 import extras, pool

from event_detection.core.config import ConfigError, get_settings

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise ConfigError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    except Exception:
        # an aborted transaction must not go back into the pool
        conn.rollback()
        raise
    finally:
        pg_pool.putconn(conn)


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS event_cache (
    cache_key TEXT PRIMARY KEY,
    events JSONB NOT NULL,
    expires_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_SELECT_LIVE = """
SELECT events
FROM event_cache
WHERE cache_key = %(cache_key)s
  AND expires_at > NOW();
"""

_UPSERT = """
INSERT INTO event_cache (
    cache_key,
    events,
    expires_at,
    updated_at
) VALUES (
    %(cache_key)s,
    %(events)s,
    NOW() + make_interval(secs => %(ttl_seconds)s),
    NOW()
)
ON CONFLICT (cache_key) DO UPDATE SET
    events = EXCLUDED.events,
    expires_at = EXCLUDED.expires_at,
    updated_at = NOW();
"""

_DELETE_EXPIRED = """
DELETE FROM event_cache WHERE expires_at <= NOW();
"""


def _prepare_params(cache_key: str, events: List[Dict[str, Any]], ttl_seconds: float) -> Dict[str, Any]:
    return {
        "cache_key": cache_key,
        "events": extras.Json(events),
        "ttl_seconds": float(ttl_seconds),
    }


def ensure_schema() -> None:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_CREATE_TABLE, {})
        conn.commit()
    logger.info("event_cache table ready")


def fetch_cached_events(cache_key: str) -> Optional[List[Dict[str, Any]]]:
    """Serialised events for ``cache_key``, or ``None`` when missing or expired."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_SELECT_LIVE, {"cache_key": cache_key})
            row = cur.fetchone()
        conn.commit()
    if row is None:
        return None
    return row[0]


def store_cached_events(cache_key: str, events: List[Dict[str, Any]], ttl_seconds: float) -> None:
    """Upsert the serialised events and drop expired rows; the last writer wins."""
    if not cache_key:
        raise ValueError("cache_key is required")

    params = _prepare_params(cache_key, events, ttl_seconds)
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_UPSERT, params)
            cur.execute(_DELETE_EXPIRED, {})
            purged = cur.rowcount
        conn.commit()
        logger.debug("Cached %d events under %s (%s expired rows purged)", len(events), cache_key, purged)


def purge_expired() -> int:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_DELETE_EXPIRED, {})
            deleted = cur.rowcount
        conn.commit()
    return deleted or 0

