"""Nearby event detection job: venue search, clustering and group suggestions."""

from __future__ import annotations

import argparse
import json
import logging
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

import psycopg2

from event_detection.core import db
from event_detection.core.cache import EventCache, InMemoryEventCache, PostgresEventCache, cache_key, rebind_contacts
from event_detection.core.config import Settings, get_settings
from event_detection.core.detection_config import DEFAULT_CONFIG, DetectionConfig
from event_detection.detection.clustering import ClusteringResult, cluster_events, select_search_radius
from event_detection.detection.events import dedupe_events, events_from_venues
from event_detection.etl.preprocess import preprocess_locations
from event_detection.etl.transform import to_venue
from event_detection.grouping.ranking import rank_event
from event_detection.grouping.suggestions import generate_group_suggestions
from event_detection.models import (
    Cluster,
    Confidence,
    ContactRef,
    DiscoveryMethod,
    Event,
    GroupSuggestion,
    PreprocessedLocation,
    RawLocationPing,
)
from event_detection.vendors.google_places import PlacesClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DetectionRequest:
    locations: List[RawLocationPing]
    radius: Optional[float] = None
    event_types: List[str] = field(default_factory=list)
    include_text_search: bool = True
    max_results: int = 20
    cache_enabled: bool = True
    contacts: List[ContactRef] = field(default_factory=list)
    existing_groups: List[Any] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DetectionRequest":
        """Parse the inbound JSON shape; raises ``ValueError`` on malformed input."""
        locations = payload.get("locations")
        if not isinstance(locations, list) or not locations:
            raise ValueError("locations must be a non-empty list")
        if not all(isinstance(item, dict) for item in locations):
            raise ValueError("every location must be an object")

        radius = payload.get("radius")
        if radius is not None:
            try:
                radius = float(radius)
            except (TypeError, ValueError) as exc:
                raise ValueError("radius must be numeric") from exc
            if radius <= 0:
                raise ValueError("radius must be positive")

        max_results = payload.get("maxResults", 20)
        try:
            max_results = int(max_results)
        except (TypeError, ValueError) as exc:
            raise ValueError("maxResults must be numeric") from exc
        if max_results <= 0:
            raise ValueError("maxResults must be positive")

        event_types = payload.get("eventTypes") or []
        if not isinstance(event_types, list) or not all(isinstance(t, str) for t in event_types):
            raise ValueError("eventTypes must be a list of strings")

        existing_groups = payload.get("existingGroups") or []
        if not isinstance(existing_groups, list):
            raise ValueError("existingGroups must be a list")

        contacts = [
            c for c in (ContactRef.from_dict(raw) for raw in payload.get("contacts") or [] if isinstance(raw, dict)) if c
        ]

        return cls(
            locations=[RawLocationPing.from_dict(item) for item in locations],
            radius=radius,
            event_types=list(event_types),
            include_text_search=bool(payload.get("includeTextSearch", True)),
            max_results=max_results,
            cache_enabled=bool(payload.get("cacheEnabled", True)),
            contacts=contacts,
            existing_groups=existing_groups,
        )


@dataclass(slots=True)
class LocationOutcome:
    events: List[Event] = field(default_factory=list)
    cache_hit: bool = False
    cache_miss: bool = False
    cache_errors: int = 0


@dataclass(slots=True)
class DetectionResult:
    events: List[Event]
    clusters: List[Cluster]
    suggestions: List[GroupSuggestion]
    analytics: Dict[str, Any]
    clustering: ClusteringResult

    def cluster_info(self, event: Event) -> Optional[Dict[str, Any]]:
        for cluster in self.clusters:
            if any(member.id == event.id for member in cluster.events):
                return {
                    "clusterId": cluster.id,
                    "clusterSize": len(cluster.events),
                    "clusterConfidence": cluster.confidence.value,
                    "isPrimaryEvent": cluster.primary_event.id == event.id,
                }
        return None

    def to_dict(self) -> Dict[str, Any]:
        events = []
        for event in self.events:
            payload = event.to_dict()
            payload["clusterInfo"] = self.cluster_info(event)
            events.append(payload)
        return {
            "events": events,
            "eventClusters": [c.to_dict() for c in self.clusters],
            "autoGroupSuggestions": [s.to_dict() for s in self.suggestions],
            "analytics": self.analytics,
        }


class _PhaseTimer:
    def __init__(self) -> None:
        self.phases: List[Dict[str, Any]] = []

    def record(self, name: str, started: float, count: int) -> None:
        self.phases.append(
            {"name": name, "durationMs": round((time.perf_counter() - started) * 1000, 2), "count": count}
        )


def _detect_for_location(
    location: PreprocessedLocation,
    request: DetectionRequest,
    places_client: PlacesClient,
    cache: Optional[EventCache],
    config: DetectionConfig,
    ttl_seconds: float,
) -> LocationOutcome:
    outcome = LocationOutcome()
    coordinate = location.coordinate
    search_types = request.event_types or list(config.default_search_types)
    city = location.metadata.get("city") if isinstance(location.metadata, dict) else None
    radius = select_search_radius(search_types, city=city, requested=request.radius, config=config)
    key = cache_key(location.latitude, location.longitude, radius, request.event_types)

    if cache is not None and request.cache_enabled:
        try:
            cached = cache.get(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cache read failed for %s: %s", key, exc)
            outcome.cache_errors += 1
            cached = None
        if cached is not None:
            outcome.cache_hit = True
            outcome.events = rebind_contacts(cached, location.contacts, location.contact_ids)
            logger.info("Using %d cached events for %s", len(cached), key)
            return outcome
        outcome.cache_miss = True

    logger.info("Searching venues around %.3f,%.3f radius=%.0fm", location.latitude, location.longitude, radius)
    payload = places_client.search_nearby(
        coordinate,
        radius=radius,
        included_types=search_types,
        max_results=request.max_results,
        rank_preference="POPULARITY",
    )
    venues = [v for v in (to_venue(place) for place in payload.get("places") or []) if v]
    events = events_from_venues(
        venues,
        DiscoveryMethod.NEARBY_SEARCH,
        contacts=location.contacts,
        contact_ids=location.contact_ids,
        config=config,
    )

    if request.include_text_search and len(events) < config.text_search_min_events:
        found = {e.id for e in events}
        for result in places_client.contextual_text_search(
            coordinate, event_types=search_types, city=city, date_range="current"
        ):
            text_venues = [v for v in (to_venue(place) for place in result.get("places") or []) if v]
            extra = events_from_venues(
                text_venues,
                DiscoveryMethod.TEXT_SEARCH,
                contacts=location.contacts,
                contact_ids=location.contact_ids,
                search_query=result.get("query"),
                skip_ids=found,
                config=config,
            )
            found.update(e.id for e in extra)
            events.extend(extra)

    if cache is not None and request.cache_enabled and events:
        try:
            cache.set(key, events, ttl_seconds)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cache write failed for %s: %s", key, exc)
            outcome.cache_errors += 1

    outcome.events = events
    return outcome


def _collect_contacts(locations: List[PreprocessedLocation], extra: List[ContactRef]) -> List[ContactRef]:
    contacts: Dict[str, ContactRef] = {}
    for location in locations:
        for contact in location.contacts:
            contacts.setdefault(contact.id, contact)
    for contact in extra:
        contacts.setdefault(contact.id, contact)
    return list(contacts.values())


def detect_nearby_events(
    request: DetectionRequest,
    places_client: PlacesClient,
    cache: Optional[EventCache] = None,
    config: Optional[DetectionConfig] = None,
    settings: Optional[Settings] = None,
) -> DetectionResult:
    settings = settings or get_settings()
    if config is None:
        config = replace(DEFAULT_CONFIG, max_suggestions=settings.max_suggestions)
    timer = _PhaseTimer()

    started = time.perf_counter()
    preprocessed = preprocess_locations(request.locations, precision=config.coordinate_precision)
    locations = preprocessed.locations
    timer.record("preprocess", started, len(locations))

    started = time.perf_counter()
    found: List[Event] = []
    cache_hits = cache_misses = cache_errors = location_errors = 0
    executor = ThreadPoolExecutor(max_workers=settings.max_concurrent_searches)
    try:
        futures = [
            (
                location,
                executor.submit(
                    _detect_for_location,
                    location,
                    request,
                    places_client,
                    cache,
                    config,
                    settings.cache_ttl_seconds,
                ),
            )
            for location in locations
        ]
        for location, future in futures:
            try:
                outcome = future.result(timeout=settings.search_timeout_seconds)
            except FutureTimeoutError:
                logger.warning(
                    "Venue search timed out for %.3f,%.3f after %.1fs",
                    location.latitude,
                    location.longitude,
                    settings.search_timeout_seconds,
                )
                future.cancel()
                location_errors += 1
                continue
            except Exception as exc:  # noqa: BLE001
                logger.warning("Venue search failed for %.3f,%.3f: %s", location.latitude, location.longitude, exc)
                location_errors += 1
                continue
            found.extend(outcome.events)
            cache_hits += int(outcome.cache_hit)
            cache_misses += int(outcome.cache_miss)
            cache_errors += outcome.cache_errors
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    events = dedupe_events(found)
    timer.record("venue_search", started, len(events))

    started = time.perf_counter()
    clustering = cluster_events(events, config)
    timer.record("clustering", started, len(clustering.clusters))

    started = time.perf_counter()
    contacts = _collect_contacts(locations, request.contacts)
    suggestions = generate_group_suggestions(
        clustering.clusters,
        contacts,
        events,
        existing_groups=request.existing_groups,
        config=config,
    )
    timer.record("group_suggestions", started, len(suggestions))

    ranked = sorted(events, key=rank_event, reverse=True)[: request.max_results]

    venue_types = Counter(type_name for event in events for type_name in event.types)
    analytics = {
        "locationsRequested": len(request.locations),
        "locationsProcessed": len(locations),
        "locationDeduplication": preprocessed.duplicates_removed,
        "invalidLocations": preprocessed.invalid_skipped,
        "eventsFound": len(events),
        "highConfidenceEvents": sum(1 for e in events if e.confidence == Confidence.HIGH),
        "intelligentClusters": len(clustering.clusters),
        "autoGroupSuggestions": len(suggestions),
        "cacheHits": cache_hits,
        "cacheMisses": cache_misses,
        "cacheErrors": cache_errors,
        "locationErrors": location_errors,
        "venueTypes": dict(venue_types),
        "averageEventScore": round(sum(e.event_score for e in events) / len(events), 3) if events else 0.0,
        "rejectedClusters": [d.to_dict() for d in clustering.rejected],
        "processingPhases": timer.phases,
    }

    logger.info(
        "Detection complete: %d locations, %d events, %d clusters, %d suggestions",
        len(locations),
        len(events),
        len(clustering.clusters),
        len(suggestions),
    )
    return DetectionResult(
        events=ranked,
        clusters=clustering.clusters,
        suggestions=suggestions,
        analytics=analytics,
        clustering=clustering,
    )


def build_cache(settings: Settings) -> EventCache:
    if settings.database_url:
        try:
            db.ensure_schema()
        except psycopg2.Error as exc:
            # reads and writes will fail too; each one is counted as a cache error
            logger.error("Could not create event_cache table: %s", exc)
        return PostgresEventCache(ttl_seconds=settings.cache_ttl_seconds)
    return InMemoryEventCache(ttl_seconds=settings.cache_ttl_seconds)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Detect nearby events and suggest contact groups")
    parser.add_argument("--input", dest="input_path", required=True, help="JSON request file")
    parser.add_argument("--radius", dest="radius", type=float, help="Search radius in meters (default: auto)")
    parser.add_argument(
        "--no-text-search",
        dest="include_text_search",
        action="store_false",
        help="Skip the contextual text search fallback",
    )
    parser.add_argument("--max-results", dest="max_results", type=int, help="Maximum number of events returned")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    with open(args.input_path, encoding="utf-8") as handle:
        payload = json.load(handle)
    if args.radius is not None:
        payload["radius"] = args.radius
    if args.max_results is not None:
        payload["maxResults"] = args.max_results
    if not args.include_text_search:
        payload["includeTextSearch"] = False

    settings = get_settings()
    request = DetectionRequest.from_payload(payload)
    result = detect_nearby_events(
        request,
        PlacesClient(settings.google_api_key),
        cache=build_cache(settings),
        settings=settings,
    )
    print(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    main()
