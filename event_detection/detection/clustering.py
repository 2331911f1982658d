"""Context-aware proximity clustering of detected events.

Each unassigned event seeds a cluster. The seed's radius depends on its
company context (known campus or dominant contact company), its venue types
and its city. Neighbours inside that radius are absorbed only when they are
similar enough and pass the context checks. Every grown cluster is then
validated against a global pairwise-distance ceiling; incoherent clusters are
split with a tighter radius instead of being returned as-is.

No I/O and no exceptions for business outcomes: rejected seeds are reported in
``ClusteringResult.diagnostics``.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from event_detection.core.detection_config import DEFAULT_CONFIG, CompanyPattern, DetectionConfig
from event_detection.core.geo import centroid, distance_between, distance_meters
from event_detection.detection.scoring import OPERATIONAL
from event_detection.etl.transform import city_from_address
from event_detection.models import (
    Cluster,
    CompanyContext,
    Confidence,
    ContactRef,
    Event,
    ValidationResults,
)

logger = logging.getLogger(__name__)

ACCEPTED = "accepted"
REJECTED = "rejected"
SPLIT = "split"


@dataclass(slots=True)
class ClusterDiagnostic:
    seed_id: str
    seed_name: str
    radius: float
    absorbed_ids: List[str]
    company: Optional[str]
    validation: ValidationResults
    outcome: str
    reason: str
    sub_cluster_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seedId": self.seed_id,
            "seedName": self.seed_name,
            "radius": self.radius,
            "absorbedIds": list(self.absorbed_ids),
            "company": self.company,
            "validation": self.validation.to_dict(),
            "outcome": self.outcome,
            "reason": self.reason,
            "subClusterIds": list(self.sub_cluster_ids),
        }


@dataclass(slots=True)
class ClusteringResult:
    clusters: List[Cluster] = field(default_factory=list)
    diagnostics: List[ClusterDiagnostic] = field(default_factory=list)

    @property
    def rejected(self) -> List[ClusterDiagnostic]:
        return [d for d in self.diagnostics if d.outcome != ACCEPTED]


# ---------- Company context ----------


def find_company_pattern(company: str, config: DetectionConfig = DEFAULT_CONFIG) -> Optional[CompanyPattern]:
    company = company.lower()
    pattern = config.company_patterns.get(company)
    if pattern is not None:
        return pattern
    for candidate in config.company_patterns.values():
        if any(keyword in company for keyword in candidate.keywords):
            return candidate
    return None


def _context_radius(company: str, config: DetectionConfig) -> float:
    pattern = find_company_pattern(company, config)
    if pattern is not None and pattern.tight_clustering:
        return pattern.max_radius
    return config.corporate_default_radius


def detect_company_context(event: Event, config: DetectionConfig = DEFAULT_CONFIG) -> Optional[CompanyContext]:
    """Known campus coordinates first, then a majority vote over contact companies."""
    for company, pattern in config.company_patterns.items():
        for campus in pattern.campus_locations:
            distance = distance_meters(
                event.location.latitude, event.location.longitude, campus.latitude, campus.longitude
            )
            if distance <= campus.radius:
                return CompanyContext(
                    company=company,
                    confidence=Confidence.HIGH if distance <= campus.radius * 0.5 else Confidence.MEDIUM,
                    source="campus_location",
                    max_radius=_context_radius(company, config),
                    campus=campus.name,
                    distance=distance,
                )

    companies = [c.company for c in event.contacts_nearby if c.company]
    if not companies:
        return None

    dominant, count = Counter(companies).most_common(1)[0]
    if count < config.min_company_votes:
        return None

    company = dominant.lower()
    confidence = Confidence.HIGH if count >= len(companies) * config.company_high_confidence_ratio else Confidence.MEDIUM
    return CompanyContext(
        company=company,
        confidence=confidence,
        source="contact_analysis",
        max_radius=_context_radius(company, config),
    )


# ---------- Radius selection ----------


def _table_radius(types: Sequence[str], table) -> float:
    return max(table.get(type_name, table["default"]) for type_name in (types or ("default",)))


def select_cluster_radius(
    event: Event,
    company_context: Optional[CompanyContext] = None,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> float:
    """Per-seed clustering radius in meters."""
    if company_context is not None:
        return company_context.max_radius

    radius = _table_radius(event.types, config.cluster_radius_table)

    city = city_from_address(event.vicinity)
    adjustment = config.city_adjustments.get(city.lower()) if city else None
    if adjustment is not None:
        multiplier = adjustment.multiplier
        zone_cap = None
        haystack = f"{event.name} {event.vicinity or ''}".lower()
        for zone_name, zone in adjustment.zones.items():
            if zone_name in haystack:
                multiplier = zone.multiplier
                zone_cap = zone.max_radius
                break
        radius = round(radius * multiplier)
        if zone_cap is not None:
            radius = min(radius, zone_cap)
        if adjustment.corporate_mode:
            radius = min(radius, config.corporate_city_radius_cap)

    return float(min(max(radius, config.min_cluster_radius), config.max_cluster_radius))


def select_search_radius(
    event_types: Sequence[str],
    city: Optional[str] = None,
    requested: Optional[float] = None,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> float:
    """Radius for the upstream nearby search. An explicit request wins."""
    if requested:
        return float(requested)
    radius = _table_radius(event_types, config.search_radius_table)
    if city:
        radius *= config.search_city_multipliers.get(city.lower(), 1.0)
    return float(min(max(round(radius), config.min_search_radius), config.max_search_radius))


# ---------- Pairwise checks ----------


def name_similarity(a: str, b: str) -> float:
    return Levenshtein.normalized_similarity((a or "").lower(), (b or "").lower())


def event_similarity(a: Event, b: Event) -> float:
    """Weighted similarity in [0, 1]: types 0.5, name 0.3, status 0.1, rating 0.1."""
    similarity = 0.0

    larger = max(len(a.types), len(b.types))
    if larger:
        common = len(set(a.types) & set(b.types))
        similarity += common / larger * 0.5

    similarity += name_similarity(a.name, b.name) * 0.3

    if a.business_status == b.business_status:
        similarity += 0.1

    if a.rating and b.rating:
        similarity += (1 - abs(a.rating - b.rating) / 5) * 0.1

    return similarity


def _incompatible(types_a: Iterable[str], types_b: Iterable[str], config: DetectionConfig) -> bool:
    types_b = set(types_b)
    for type_name in types_a:
        if config.venue_incompatibilities.get(type_name, frozenset()) & types_b:
            return True
    return False


def validate_event_context(
    seed: Event,
    other: Event,
    company_context: Optional[CompanyContext] = None,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> bool:
    if company_context is not None:
        seed_companies = {c.company.lower() for c in seed.contacts_nearby if c.company}
        other_companies = {c.company.lower() for c in other.contacts_nearby if c.company}
        if not seed_companies & other_companies:
            return False

    if _incompatible(seed.types, other.types, config) or _incompatible(other.types, seed.types, config):
        return False
    return True


def grow_cluster(
    seed: Event,
    candidates: Iterable[Event],
    radius: float,
    company_context: Optional[CompanyContext] = None,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> List[Event]:
    """Candidates the seed absorbs: inside ``radius``, similar enough, context-compatible.

    Every check is against the seed alone, so a larger radius never absorbs fewer events.
    """
    absorbed: List[Event] = []
    for other in candidates:
        if other.id == seed.id:
            continue
        distance = distance_between(seed.location, other.location)
        if distance > radius:
            continue
        similarity = event_similarity(seed, other)
        if similarity <= config.min_event_similarity:
            logger.debug("Not clustering %s + %s: similarity %.2f", seed.name, other.name, similarity)
            continue
        if not validate_event_context(seed, other, company_context, config):
            logger.debug("Not clustering %s + %s: context mismatch", seed.name, other.name)
            continue
        absorbed.append(other)
    return absorbed


# ---------- Validation ----------


def validate_cluster_coherence(
    events: Sequence[Event], config: DetectionConfig = DEFAULT_CONFIG
) -> ValidationResults:
    ceiling = config.max_intra_cluster_distance
    if len(events) < 2:
        return ValidationResults(
            coherent=True,
            max_internal_distance=0.0,
            average_distance=0.0,
            max_allowed_distance=ceiling,
            reason="single_event",
        )

    max_distance = 0.0
    total = 0.0
    pairs = 0
    for i in range(len(events)):
        for j in range(i + 1, len(events)):
            distance = distance_between(events[i].location, events[j].location)
            # NaN never compares greater, so it has to mark the cluster incoherent explicitly
            if distance != distance:
                max_distance = float("inf")
            else:
                max_distance = max(max_distance, distance)
            total += distance
            pairs += 1

    coherent = max_distance <= ceiling
    return ValidationResults(
        coherent=coherent,
        max_internal_distance=max_distance,
        average_distance=total / pairs,
        max_allowed_distance=ceiling,
        reason="valid" if coherent else "distances_too_large",
    )


def cluster_confidence(events: Sequence[Event], validation: ValidationResults) -> Confidence:
    if not events:
        return Confidence.LOW

    total = 0.0
    high_count = 0
    for event in events:
        if event.confidence == Confidence.HIGH:
            high_count += 1
        quality = 0.0
        if event.rating:
            quality += event.rating / 5 * 0.4
        if event.user_rating_count:
            quality += min(event.user_rating_count / 100, 1) * 0.3
        if event.business_status == OPERATIONAL:
            quality += 0.3
        total += quality

    bonus = 0.0
    if validation.coherent:
        if validation.max_internal_distance < 200:
            bonus = 0.2
        elif validation.max_internal_distance < 400:
            bonus = 0.1

    final = total / len(events) + bonus
    ratio = high_count / len(events)
    if final > 0.8 and ratio > 0.6:
        return Confidence.HIGH
    if final > 0.6 and ratio > 0.4:
        return Confidence.MEDIUM
    return Confidence.LOW


# ---------- Assembly ----------


def merge_contacts(events: Iterable[Event]) -> List[ContactRef]:
    seen = set()
    contacts: List[ContactRef] = []
    for event in events:
        for contact in event.contacts_nearby:
            if contact.id in seen:
                continue
            seen.add(contact.id)
            contacts.append(contact)
    return contacts


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def build_cluster(
    members: Sequence[Event],
    radius: float,
    company_context: Optional[CompanyContext],
    config: DetectionConfig = DEFAULT_CONFIG,
    prefix: str = "cluster",
) -> Cluster:
    validation = validate_cluster_coherence(members, config)
    center = centroid(e.location for e in members) or members[0].location
    return Cluster(
        id=_new_id(prefix),
        primary_event=members[0],
        events=list(members),
        contacts=merge_contacts(members),
        center_point=center,
        radius=radius,
        confidence=cluster_confidence(members, validation),
        company_context=company_context,
        validation_results=validation,
    )


def split_incoherent_cluster(cluster: Cluster, config: DetectionConfig = DEFAULT_CONFIG) -> List[Cluster]:
    """Re-cluster the members of an incoherent cluster with a tighter radius.

    Sub-clusters absorb by distance to their own seed only and are kept when
    they have enough contacts and pass coherence validation themselves.
    """
    split_radius = min(cluster.radius * config.split_radius_factor, config.split_radius_cap)
    used = set()
    kept: List[Cluster] = []

    for event in cluster.events:
        if event.id in used:
            continue
        used.add(event.id)
        members = [event]
        for other in cluster.events:
            if other.id in used:
                continue
            if distance_between(event.location, other.location) <= split_radius:
                members.append(other)
                used.add(other.id)

        sub_cluster = build_cluster(members, split_radius, cluster.company_context, config, prefix="split")
        if len(sub_cluster.contacts) < config.min_cluster_contacts:
            continue
        if not sub_cluster.is_coherent:
            logger.warning(
                "Dropping sub-cluster of %s: still incoherent at %.0fm",
                event.name,
                sub_cluster.validation_results.max_internal_distance,
            )
            continue
        kept.append(sub_cluster)

    return kept


def cluster_events(events: Sequence[Event], config: DetectionConfig = DEFAULT_CONFIG) -> ClusteringResult:
    """Group events into coherent clusters; see the module docstring."""
    result = ClusteringResult()
    used = set()

    for seed in events:
        if seed.id in used:
            continue
        used.add(seed.id)

        company_context = detect_company_context(seed, config)
        radius = select_cluster_radius(seed, company_context, config)
        candidates = [e for e in events if e.id not in used]
        absorbed = grow_cluster(seed, candidates, radius, company_context, config)
        # absorbed events stay consumed even if this cluster is rejected below
        used.update(e.id for e in absorbed)

        cluster = build_cluster([seed, *absorbed], radius, company_context, config)
        validation = cluster.validation_results
        diagnostic = ClusterDiagnostic(
            seed_id=seed.id,
            seed_name=seed.name,
            radius=radius,
            absorbed_ids=[e.id for e in absorbed],
            company=company_context.company if company_context else None,
            validation=validation,
            outcome=ACCEPTED,
            reason=validation.reason,
        )

        if not validation.coherent:
            sub_clusters = split_incoherent_cluster(cluster, config)
            logger.warning(
                "Cluster around %s is incoherent (%.0fm > %.0fm); split into %d sub-clusters",
                seed.name,
                validation.max_internal_distance,
                validation.max_allowed_distance,
                len(sub_clusters),
            )
            diagnostic.outcome = SPLIT
            diagnostic.reason = f"{validation.reason}: {len(sub_clusters)} valid sub-clusters"
            diagnostic.sub_cluster_ids = [c.id for c in sub_clusters]
            result.clusters.extend(sub_clusters)
        elif len(cluster.contacts) >= config.min_cluster_contacts or cluster.confidence == Confidence.HIGH:
            result.clusters.append(cluster)
        else:
            diagnostic.outcome = REJECTED
            diagnostic.reason = "insufficient_contacts"
            logger.debug(
                "Rejected cluster around %s: %d contacts, %s confidence",
                seed.name,
                len(cluster.contacts),
                cluster.confidence.value,
            )

        result.diagnostics.append(diagnostic)

    logger.info(
        "Clustered %d events into %d clusters (%d seeds rejected or split)",
        len(events),
        len(result.clusters),
        len(result.rejected),
    )
    return result
