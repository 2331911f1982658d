"""Heuristic scoring of candidate venues as likely event locations."""

from __future__ import annotations

from typing import List

from event_detection.core.detection_config import DEFAULT_CONFIG, DetectionConfig
from event_detection.models import Confidence, DiscoveryMethod, Venue, VenueScore

OPERATIONAL = "OPERATIONAL"


def confidence_for_score(score: float, config: DetectionConfig = DEFAULT_CONFIG) -> Confidence:
    if score >= config.high_confidence_score:
        return Confidence.HIGH
    if score >= config.medium_confidence_score:
        return Confidence.MEDIUM
    return Confidence.LOW


def score_venue(
    venue: Venue,
    method: DiscoveryMethod = DiscoveryMethod.NEARBY_SEARCH,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> VenueScore:
    """Additive event score in [0, 1]. Never rejects; acceptance is the caller's call."""
    score = 0.0
    indicators: List[str] = []

    if config.event_venue_types.intersection(venue.types):
        score += 0.5
        indicators.append("event_venue_type")

    name = (venue.name or "").lower()
    if any(keyword in name for keyword in config.event_name_keywords):
        score += 0.3
        indicators.append("event_keyword")

    if venue.business_status == OPERATIONAL:
        score += 0.1
        indicators.append("operational")

    if venue.rating is not None and venue.rating >= 4.0:
        score += 0.1
        indicators.append("highly_rated")

    if method == DiscoveryMethod.TEXT_SEARCH:
        score += 0.1
        indicators.append("text_search_result")

    # float sums like 0.5 + 0.1 + 0.1 must land exactly on the tier boundaries
    score = round(min(score, 1.0), 4)
    return VenueScore(event_score=score, confidence=confidence_for_score(score, config), indicators=tuple(indicators))
