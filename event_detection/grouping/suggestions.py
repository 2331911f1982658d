"""Group suggestions from event clusters and non-geographic contact signals.

Six independent generators (event, company/domain, location, temporal,
industry, context) each return their own pool. The pools are merged in a fixed
order and then filtered, de-duplicated, ranked and truncated by
``filter_and_rank``.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from event_detection.core.detection_config import DEFAULT_CONFIG, DetectionConfig
from event_detection.core.geo import centroid, distance_between, group_by_proximity, max_distance_from
from event_detection.grouping import ranking
from event_detection.models import (
    Cluster,
    Confidence,
    ContactRef,
    Event,
    GroupSuggestion,
    SuggestionType,
)

logger = logging.getLogger(__name__)


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", value.lower()).strip("_")


def _unique(contacts: Iterable[ContactRef]) -> List[ContactRef]:
    seen = set()
    unique: List[ContactRef] = []
    for contact in contacts:
        if contact.id in seen:
            continue
        seen.add(contact.id)
        unique.append(contact)
    return unique


# ---------- Generators ----------


def event_suggestions(
    clusters: Sequence[Cluster],
    config: DetectionConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
) -> List[GroupSuggestion]:
    suggestions: List[GroupSuggestion] = []
    for cluster in clusters:
        if len(cluster.contacts) < config.min_cluster_contacts or not cluster.is_coherent:
            continue

        name = ranking.infer_event_name(cluster, config)
        timeframe = ranking.event_timeframe(cluster.contacts)
        validation = cluster.validation_results
        description = f"{len(cluster.contacts)} contacts from {name}"
        if timeframe:
            description += f" ({timeframe})"

        suggestions.append(
            GroupSuggestion(
                id=cluster.id,
                type=SuggestionType.EVENT,
                sub_type=ranking.categorize_cluster(cluster).value,
                name=name,
                description=description,
                contacts=tuple(cluster.contacts),
                confidence=cluster.confidence,
                reason=f"Contacts found near {cluster.primary_event.name}",
                priority=ranking.event_cluster_priority(cluster, now),
                event_data={
                    "primaryVenue": cluster.primary_event.name,
                    "location": cluster.center_point.to_dict(),
                    "venues": [e.name for e in cluster.events],
                    "estimatedAttendees": len(cluster.contacts),
                    "radius": cluster.radius,
                    "types": sorted({t for e in cluster.events for t in e.types}),
                    "companyContext": cluster.company_context.to_dict() if cluster.company_context else None,
                    "validationResults": validation.to_dict(),
                },
                quality_metrics={
                    "coherent": validation.coherent,
                    "maxInternalDistance": round(validation.max_internal_distance),
                    "averageDistance": round(validation.average_distance),
                    "clusterTightness": ranking.cluster_tightness(cluster, config),
                },
                metadata={"analysisMethod": "event_clustering", "clusterId": cluster.id},
            )
        )
    return suggestions


def company_suggestions(
    contacts: Sequence[ContactRef],
    config: DetectionConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
) -> List[GroupSuggestion]:
    """Explicit company field (>= 2 contacts) and corporate email domain (>= 3)."""
    suggestions: List[GroupSuggestion] = []

    by_company: Dict[str, List[ContactRef]] = defaultdict(list)
    display: Dict[str, str] = {}
    for contact in contacts:
        if not contact.company:
            continue
        key = contact.company.lower()
        by_company[key].append(contact)
        display.setdefault(key, contact.company)

    used_ids = set()
    for key, members in by_company.items():
        if len(members) < config.min_company_contacts:
            continue
        company = display[key]
        # "Acme, Inc" and "Acme Inc" share a slug
        suggestion_id = f"company_{_slug(company)}"
        suffix = 2
        while suggestion_id in used_ids:
            suggestion_id = f"company_{_slug(company)}_{suffix}"
            suffix += 1
        used_ids.add(suggestion_id)
        if len(members) >= 5:
            confidence = Confidence.HIGH
        elif len(members) >= 3:
            confidence = Confidence.MEDIUM
        else:
            confidence = Confidence.LOW
        suggestions.append(
            GroupSuggestion(
                id=suggestion_id,
                type=SuggestionType.COMPANY,
                sub_type="organization",
                name=f"{company} Team",
                description=f"{len(members)} contacts from {company}",
                contacts=tuple(members),
                confidence=confidence,
                reason="Multiple contacts from the same organization",
                priority=ranking.company_priority(members, now),
                metadata={"company": company, "analysisMethod": "company_based_clustering"},
            )
        )

    by_domain: Dict[str, List[ContactRef]] = defaultdict(list)
    for contact in contacts:
        domain = contact.email_domain
        if domain and not ranking.is_free_mail(domain, config):
            by_domain[domain].append(contact)

    for domain, members in by_domain.items():
        if len(members) < config.min_domain_contacts:
            continue
        company = ranking.company_from_domain(domain)
        suggestions.append(
            GroupSuggestion(
                id=f"domain_{_slug(domain)}",
                type=SuggestionType.COMPANY,
                sub_type="email_domain",
                name=f"{company} Contacts",
                description=f"{len(members)} contacts from {domain}",
                contacts=tuple(members),
                confidence=Confidence.MEDIUM,
                reason="Contacts sharing the same email domain",
                priority=ranking.domain_priority(members),
                metadata={"domain": domain, "inferredCompany": company, "analysisMethod": "domain_based_clustering"},
            )
        )

    return suggestions


def location_suggestions(
    contacts: Sequence[ContactRef],
    config: DetectionConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
) -> List[GroupSuggestion]:
    located = [c for c in contacts if c.location is not None]
    groups = group_by_proximity(
        located, lambda c: c.location, config.location_group_distance, min_size=config.min_suggestion_contacts
    )

    suggestions: List[GroupSuggestion] = []
    for index, members in enumerate(groups):
        center = centroid(c.location for c in members)
        name = "Same Area" if any(c.address for c in members) else "Cluster Area"
        suggestions.append(
            GroupSuggestion(
                id=f"location_{index}",
                type=SuggestionType.LOCATION,
                sub_type="geographic_proximity",
                name=name,
                description=f"{len(members)} contacts in the same area",
                contacts=tuple(members),
                confidence=Confidence.MEDIUM,
                reason="Contacts located in the same geographic area",
                priority=ranking.location_priority(members, now),
                event_data={
                    "centerPoint": center.to_dict(),
                    "radius": max_distance_from(center, (c.location for c in members)),
                    "detectionMethod": "geographic_clustering",
                },
                metadata={"clusterSize": len(members), "analysisMethod": "location_based_clustering"},
            )
        )
    return suggestions


def temporal_suggestions(
    contacts: Sequence[ContactRef],
    config: DetectionConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
) -> List[GroupSuggestion]:
    """Same UTC calendar day (>= 3 contacts) and same UTC clock hour (>= 2)."""
    by_day: Dict[Any, List[ContactRef]] = defaultdict(list)
    by_hour: Dict[Any, List[ContactRef]] = defaultdict(list)
    for contact in contacts:
        if contact.submitted_at is None:
            continue
        submitted = contact.submitted_at
        if submitted.tzinfo is None:
            submitted = submitted.replace(tzinfo=timezone.utc)
        submitted = submitted.astimezone(timezone.utc)
        day = submitted.date()
        by_day[day].append(contact)
        by_hour[(day, submitted.hour)].append(contact)

    suggestions: List[GroupSuggestion] = []
    for day, members in sorted(by_day.items()):
        if len(members) < config.min_daily_contacts:
            continue
        label = day.strftime("%b %d, %Y")
        anchor = max(c.submitted_at for c in members)
        suggestions.append(
            GroupSuggestion(
                id=f"temporal_{day.isoformat()}",
                type=SuggestionType.TEMPORAL,
                sub_type="same_day",
                name=f"{label} Contacts",
                description=f"{len(members)} contacts met on {label}",
                contacts=tuple(members),
                confidence=Confidence.HIGH if len(members) >= 5 else Confidence.MEDIUM,
                reason="Contacts met on the same day",
                priority=ranking.temporal_priority(members, False, anchor, now),
                event_data={"date": day.isoformat(), "timeWindow": "daily"},
                metadata={"analysisMethod": "temporal_clustering"},
            )
        )

    for (day, hour), members in sorted(by_hour.items()):
        if len(members) < config.min_hourly_contacts:
            continue
        label = day.strftime("%b %d, %Y")
        anchor = max(c.submitted_at for c in members)
        suggestions.append(
            GroupSuggestion(
                id=f"hourly_{day.isoformat()}_{hour:02d}",
                type=SuggestionType.TEMPORAL,
                sub_type="same_hour",
                name=f"{label} {hour:02d}:00 Event",
                description=f"{len(members)} contacts met around {hour:02d}:00",
                contacts=tuple(members),
                confidence=Confidence.HIGH,
                reason="Contacts met within the same hour",
                priority=ranking.temporal_priority(members, True, anchor, now),
                event_data={"date": day.isoformat(), "hour": hour, "timeWindow": "hourly"},
                metadata={"analysisMethod": "hourly_temporal_clustering"},
            )
        )

    return suggestions


def industry_suggestions(
    contacts: Sequence[ContactRef],
    config: DetectionConfig = DEFAULT_CONFIG,
) -> List[GroupSuggestion]:
    by_industry: Dict[str, List[ContactRef]] = defaultdict(list)
    for contact in contacts:
        industry = ranking.infer_industry(contact.job_title, config)
        if industry:
            by_industry[industry].append(contact)

    suggestions: List[GroupSuggestion] = []
    for industry, members in by_industry.items():
        if len(members) < config.min_industry_contacts:
            continue
        suggestions.append(
            GroupSuggestion(
                id=f"industry_{_slug(industry)}",
                type=SuggestionType.INDUSTRY,
                sub_type="professional_category",
                name=f"{industry.capitalize()} Professionals",
                description=f"{len(members)} contacts from {industry}",
                contacts=tuple(members),
                confidence=Confidence.MEDIUM,
                reason="Contacts from the same industry",
                priority=ranking.industry_priority(members, industry, config),
                metadata={"industry": industry, "analysisMethod": "industry_based_clustering"},
            )
        )
    return suggestions


def context_suggestions(
    contacts: Sequence[ContactRef],
    events: Sequence[Event],
    config: DetectionConfig = DEFAULT_CONFIG,
) -> List[GroupSuggestion]:
    """Each located contact plus everyone seen near the same events."""
    suggestions: List[GroupSuggestion] = []
    for contact in contacts:
        if contact.location is None:
            continue
        nearby = [
            e for e in events if distance_between(contact.location, e.location) <= config.context_proximity_meters
        ]
        if not nearby:
            continue

        related = _unique([contact, *(c for e in nearby for c in e.contacts_nearby)])
        if len(related) < config.min_suggestion_contacts:
            continue

        primary = nearby[0]
        suggestions.append(
            GroupSuggestion(
                id=f"context_{_slug(contact.id)}",
                type=SuggestionType.CONTEXT,
                sub_type="event_proximity",
                name=f"{primary.name} Network",
                description=f"{len(related)} contacts connected through {primary.name}",
                contacts=tuple(related),
                confidence=Confidence.HIGH,
                reason=f"Contacts connected through proximity to {primary.name}",
                priority=ranking.context_priority(related, nearby),
                event_data={
                    "primaryEvent": primary.id,
                    "relatedEvents": [e.id for e in nearby],
                    "detectionMethod": "context_proximity_analysis",
                },
                metadata={"originContactId": contact.id, "eventCount": len(nearby)},
            )
        )
    return suggestions


# ---------- Merge ----------


def existing_group_keys(existing_groups: Iterable[Any]) -> set:
    """Order-independent contact-id sets of groups the caller already has."""
    keys = set()
    for group in existing_groups or ():
        ids = group.get("contactIds") if isinstance(group, dict) else group
        if ids:
            keys.add(frozenset(str(i) for i in ids))
    return keys


def filter_and_rank(
    suggestions: Iterable[GroupSuggestion],
    existing_groups: Iterable[Any] = (),
    config: DetectionConfig = DEFAULT_CONFIG,
) -> List[GroupSuggestion]:
    existing = existing_group_keys(existing_groups)

    candidates = []
    for suggestion in suggestions:
        if suggestion.contact_key in existing:
            continue
        if len(suggestion.contacts) < config.min_suggestion_contacts:
            continue
        if suggestion.confidence == Confidence.LOW and len(suggestion.contacts) < 3:
            continue
        candidates.append(suggestion)

    candidates.sort(key=ranking.suggestion_sort_key)

    seen = set()
    ranked: List[GroupSuggestion] = []
    for suggestion in candidates:
        if suggestion.contact_key in seen:
            continue
        seen.add(suggestion.contact_key)
        ranked.append(suggestion)

    return ranked[: config.max_suggestions]


def generate_group_suggestions(
    clusters: Sequence[Cluster],
    contacts: Sequence[ContactRef],
    events: Sequence[Event] = (),
    existing_groups: Iterable[Any] = (),
    config: DetectionConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
) -> List[GroupSuggestion]:
    contacts = _unique(contacts)
    pools = [
        event_suggestions(clusters, config, now),
        company_suggestions(contacts, config, now),
        location_suggestions(contacts, config, now),
        temporal_suggestions(contacts, config, now),
        industry_suggestions(contacts, config),
        context_suggestions(contacts, events, config),
    ]
    merged = [suggestion for pool in pools for suggestion in pool]
    ranked = filter_and_rank(merged, existing_groups, config)
    logger.info("Generated %d group suggestions from %d candidates", len(ranked), len(merged))
    return ranked
