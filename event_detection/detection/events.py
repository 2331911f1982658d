"""Turn scored venues into ``Event`` records."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from event_detection.core.detection_config import DEFAULT_CONFIG, DetectionConfig
from event_detection.core.geo import distance_between
from event_detection.detection.scoring import OPERATIONAL, score_venue
from event_detection.models import ContactRef, DiscoveryMethod, Event, Venue, VenueScore

logger = logging.getLogger(__name__)


def is_accepted(score: VenueScore, method: DiscoveryMethod, config: DetectionConfig = DEFAULT_CONFIG) -> bool:
    return score.event_score > config.acceptance_score(method)


def create_event(
    venue: Venue,
    score: VenueScore,
    method: DiscoveryMethod,
    contacts: Sequence[ContactRef] = (),
    contact_ids: Optional[Iterable[str]] = None,
    search_query: Optional[str] = None,
    config: DetectionConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
) -> Event:
    """Build an event; acceptance thresholds are applied by the caller."""
    if contact_ids is None:
        contact_ids = [c.id for c in contacts]

    distance = None
    if contacts and contacts[0].location is not None:
        distance = distance_between(contacts[0].location, venue.location)

    return Event(
        id=venue.id,
        name=venue.name,
        location=venue.location,
        types=venue.types,
        event_score=score.event_score,
        confidence=score.confidence,
        discovery_method=method,
        rating=venue.rating,
        user_rating_count=venue.user_rating_count,
        business_status=venue.business_status,
        vicinity=venue.vicinity,
        price_level=venue.price_level,
        contacts_nearby=tuple(contacts),
        contact_ids=tuple(sorted(set(contact_ids))),
        event_indicators=score.indicators,
        is_active=venue.business_status == OPERATIONAL,
        search_query=search_query,
        photos=venue.photos[: config.max_photos],
        distance_from_contacts=distance,
        timestamp=now or datetime.now(timezone.utc),
    )


def events_from_venues(
    venues: Iterable[Venue],
    method: DiscoveryMethod,
    contacts: Sequence[ContactRef] = (),
    contact_ids: Optional[Iterable[str]] = None,
    search_query: Optional[str] = None,
    skip_ids: Optional[set] = None,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> List[Event]:
    """Score every venue and keep the ones above the acceptance bar for ``method``."""
    contact_ids = list(contact_ids) if contact_ids is not None else None
    skip_ids = skip_ids or set()
    events: List[Event] = []
    for venue in venues:
        if venue.id in skip_ids:
            continue
        score = score_venue(venue, method, config)
        if not is_accepted(score, method, config):
            logger.debug("Rejected venue %s (%s) with score %.2f", venue.name, method.value, score.event_score)
            continue
        events.append(
            create_event(
                venue,
                score,
                method,
                contacts=contacts,
                contact_ids=contact_ids,
                search_query=search_query,
                config=config,
            )
        )
    return events


def dedupe_events(events: Iterable[Event]) -> List[Event]:
    seen = set()
    unique: List[Event] = []
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        unique.append(event)
    return unique
