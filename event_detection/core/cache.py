"""Event cache keyed by snapped location, radius and requested venue types."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from event_detection.core import db
from event_detection.core.geo import round_coordinate
from event_detection.models import ContactRef, Event

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60


def cache_key(latitude: float, longitude: float, radius: float, event_types: Iterable[str]) -> str:
    """``"36.132,-115.154-1000-convention_center,stadium"``; type order does not matter."""
    types = ",".join(sorted(set(event_types))) or "default"
    return f"{round_coordinate(latitude)},{round_coordinate(longitude)}-{radius:g}-{types}"


class EventCache(Protocol):
    def get(self, key: str) -> Optional[List[Event]]:
        ...

    def set(self, key: str, events: Sequence[Event], ttl: Optional[float] = None) -> None:
        ...


class InMemoryEventCache:
    """Process-local cache. Thread safe; concurrent writers are last-writer-wins."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, List[Event]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[List[Event]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, events = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return list(events)

    def set(self, key: str, events: Sequence[Event], ttl: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl is None else ttl
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[key] = (now + ttl, list(events))

    def _sweep(self, now: float) -> None:
        # caller holds the lock
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class PostgresEventCache:
    """Cache shared between workers, stored as JSON rows in ``event_cache``."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds

    def get(self, key: str) -> Optional[List[Event]]:
        rows = db.fetch_cached_events(key)
        if rows is None:
            return None
        events = []
        for raw in rows:
            try:
                events.append(Event.from_dict(raw))
            except (KeyError, ValueError) as exc:
                logger.warning("Dropping unreadable cached event under %s: %s", key, exc)
        return events

    def set(self, key: str, events: Sequence[Event], ttl: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl is None else ttl
        db.store_cached_events(key, [event.to_dict() for event in events], ttl)


def rebind_contacts(events: Iterable[Event], contacts: Sequence[ContactRef], contact_ids: Iterable[str]) -> List[Event]:
    """Cached events carry the contacts of whoever populated the cache; swap in the current ones."""
    ids = tuple(sorted(set(contact_ids)))
    return [replace(event, contacts_nearby=tuple(contacts), contact_ids=ids) for event in events]
