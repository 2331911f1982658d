"""Priority scores and heuristic names shared by the suggestion generators."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence, Tuple

from event_detection.core.detection_config import DEFAULT_CONFIG, DetectionConfig
from event_detection.etl.transform import city_from_address
from event_detection.models import (
    Cluster,
    Confidence,
    ContactRef,
    Event,
    EventCategory,
    GroupSuggestion,
    SuggestionType,
)

_CATEGORY_TYPES: Tuple[Tuple[EventCategory, Tuple[str, ...]], ...] = (
    (EventCategory.CONFERENCE, ("convention_center", "expo_center")),
    (EventCategory.SPORTS, ("stadium", "arena")),
    (EventCategory.ENTERTAINMENT, ("concert_hall", "performing_arts_theater")),
    (EventCategory.EDUCATION, ("university", "school")),
    (EventCategory.CULTURAL, ("museum", "art_gallery")),
)


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def count_recent(contacts: Iterable[ContactRef], days: float, now: Optional[datetime] = None) -> int:
    cutoff = _now(now) - timedelta(days=days)
    return sum(1 for c in contacts if c.submitted_at is not None and c.submitted_at >= cutoff)


# ---------- Event clusters ----------


def cluster_tightness(cluster: Cluster, config: DetectionConfig = DEFAULT_CONFIG) -> float:
    """0 is very tight, 1 is as loose as the coherence ceiling allows."""
    validation = cluster.validation_results
    if len(cluster.events) < 2 or validation is None:
        return 0.0
    spread = validation.max_internal_distance + validation.average_distance
    return min(spread / (2 * config.max_intra_cluster_distance), 1.0)


def event_cluster_priority(cluster: Cluster, now: Optional[datetime] = None) -> float:
    priority = min(len(cluster.contacts) * 10, 50)

    if cluster.confidence == Confidence.HIGH:
        priority += 30
    elif cluster.confidence == Confidence.MEDIUM:
        priority += 15

    if cluster.company_context is not None:
        priority += 20 if cluster.company_context.confidence == Confidence.HIGH else 10

    validation = cluster.validation_results
    if validation is not None and validation.coherent:
        priority += 20
        if validation.max_internal_distance < 200:
            priority += 15
        elif validation.max_internal_distance < 400:
            priority += 10

    for event in cluster.events:
        if event.rating and event.rating > 4.0:
            priority += 10
        if event.user_rating_count and event.user_rating_count > 100:
            priority += 5

    priority += count_recent(cluster.contacts, 3, now) * 5
    return priority


def infer_event_name(cluster: Cluster, config: DetectionConfig = DEFAULT_CONFIG) -> str:
    primary = cluster.primary_event
    city = city_from_address(primary.vicinity)

    context = cluster.company_context
    if context is not None:
        company = context.company[:1].upper() + context.company[1:]
        if context.campus:
            return f"{company} - {context.campus}"
        return f"{company} Event"

    lowered = primary.name.lower()
    if any(keyword in lowered for keyword in config.convention_name_keywords):
        return primary.name

    for venue_key, event_name in config.known_venues.items():
        if venue_key in lowered:
            return f"{event_name} in {city}" if city else event_name

    if city:
        return f"{city} Event"
    return f"{primary.name} Event"


def categorize_cluster(cluster: Cluster) -> EventCategory:
    if cluster.company_context is not None:
        return EventCategory.BUSINESS
    types = {type_name for event in cluster.events for type_name in event.types}
    for category, category_types in _CATEGORY_TYPES:
        if types.intersection(category_types):
            return category
    return EventCategory.BUSINESS


def event_timeframe(contacts: Iterable[ContactRef]) -> Optional[str]:
    """``"Mar 04, 2026"`` for the earliest submission among the contacts."""
    dates = [c.submitted_at for c in contacts if c.submitted_at is not None]
    if not dates:
        return None
    return min(dates).strftime("%b %d, %Y")


# ---------- Non-geographic groups ----------


def company_priority(contacts: Sequence[ContactRef], now: Optional[datetime] = None) -> float:
    priority = len(contacts) * 10
    if len(contacts) >= 5:
        priority += 20
    if len(contacts) >= 10:
        priority += 30
    return priority + count_recent(contacts, 7, now) * 5


def domain_priority(contacts: Sequence[ContactRef]) -> float:
    return len(contacts) * 8 + 20


def location_priority(contacts: Sequence[ContactRef], now: Optional[datetime] = None) -> float:
    return len(contacts) * 8 + count_recent(contacts, 3, now) * 8


def temporal_priority(
    contacts: Sequence[ContactRef], hourly: bool, anchor: Optional[datetime], now: Optional[datetime] = None
) -> float:
    priority = len(contacts) * (20 if hourly else 12)
    if anchor is not None:
        age = _now(now) - anchor
        if age <= timedelta(days=1):
            priority += 25
        elif age <= timedelta(days=3):
            priority += 15
    return priority


def industry_priority(contacts: Sequence[ContactRef], industry: str, config: DetectionConfig = DEFAULT_CONFIG) -> float:
    priority = len(contacts) * 6
    if industry.lower() in config.high_value_industries:
        priority += 15
    return priority


def context_priority(contacts: Sequence[ContactRef], events: Sequence[Event]) -> float:
    average_score = sum(e.event_score for e in events) / len(events) if events else 0.5
    return len(contacts) * 12 + 30 + average_score * 20


def infer_industry(title: Optional[str], config: DetectionConfig = DEFAULT_CONFIG) -> Optional[str]:
    if not title:
        return None
    lowered = title.lower()
    for industry, keywords in config.industry_keywords.items():
        if any(re.search(rf"\b{re.escape(keyword)}", lowered) for keyword in keywords):
            return industry
    return None


def company_from_domain(domain: str) -> str:
    head = domain.split(".")[0]
    return head[:1].upper() + head[1:]


def is_free_mail(domain: str, config: DetectionConfig = DEFAULT_CONFIG) -> bool:
    domain = domain.lower()
    if domain in config.free_mail_providers:
        return True
    stems = {provider.split(".")[0] for provider in config.free_mail_providers}
    return domain.split(".")[0] in stems


# ---------- Ordering ----------


def rank_event(event: Event) -> float:
    bonus = {Confidence.HIGH: 0.1, Confidence.MEDIUM: 0.05}.get(event.confidence, 0.0)
    return (
        event.event_score * 0.4
        + len(event.contacts_nearby) * 0.3
        + (event.rating or 0) / 5 * 0.2
        + bonus
    )


def suggestion_sort_key(suggestion: GroupSuggestion) -> Tuple:
    """Coherent event clusters first; then priority, tightness, size and confidence."""
    metrics = suggestion.quality_metrics or {}
    coherent_event = suggestion.type == SuggestionType.EVENT and bool(metrics.get("coherent"))
    return (
        0 if coherent_event else 1,
        -suggestion.priority,
        metrics.get("clusterTightness", 1.0),
        -len(suggestion.contacts),
        -suggestion.confidence.rank,
    )
