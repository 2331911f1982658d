from dataclasses import replace

import pytest

from event_detection.core.detection_config import DEFAULT_CONFIG
from event_detection.detection.events import is_accepted
from event_detection.detection.scoring import confidence_for_score, score_venue
from event_detection.models import Confidence, Coordinate, DiscoveryMethod, Venue


def make_venue(**overrides):
    values = {
        "id": "place-1",
        "name": "Las Vegas Convention Center",
        "location": Coordinate(36.1316, -115.1536),
        "types": ("convention_center", "point_of_interest"),
        "rating": 4.5,
        "business_status": "OPERATIONAL",
    }
    values.update(overrides)
    return Venue(**values)


def test_convention_center_scores_high():
    score = score_venue(make_venue())

    assert score.event_score == 1.0
    assert score.confidence == Confidence.HIGH
    assert score.indicators == ("event_venue_type", "event_keyword", "operational", "highly_rated")
    assert is_accepted(score, DiscoveryMethod.NEARBY_SEARCH)


def test_cafe_scores_zero_and_is_rejected():
    cafe = make_venue(name="Corner Cafe", types=("cafe", "food"), rating=None, business_status=None)

    score = score_venue(cafe)

    assert score.event_score == 0.0
    assert score.confidence == Confidence.LOW
    assert score.indicators == ()
    assert not is_accepted(score, DiscoveryMethod.NEARBY_SEARCH)


def test_text_search_bonus_is_clamped():
    score = score_venue(make_venue(), DiscoveryMethod.TEXT_SEARCH)

    assert score.event_score == 1.0
    assert "text_search_result" in score.indicators


def test_nearby_threshold_is_exclusive():
    keyword_only = make_venue(name="Union Hall", types=("bar",), rating=None, business_status=None)

    score = score_venue(keyword_only)

    assert score.event_score == 0.3
    assert not is_accepted(score, DiscoveryMethod.NEARBY_SEARCH)


def test_text_search_needs_a_higher_score():
    venue = make_venue(name="Union Hall", types=("bar",), rating=None, business_status=None)

    score = score_venue(venue, DiscoveryMethod.TEXT_SEARCH)

    assert score.event_score == 0.4
    assert score.confidence == Confidence.MEDIUM
    assert not is_accepted(score, DiscoveryMethod.TEXT_SEARCH)

    operational = score_venue(replace(venue, business_status="OPERATIONAL"), DiscoveryMethod.TEXT_SEARCH)
    assert operational.event_score == 0.5
    assert is_accepted(operational, DiscoveryMethod.TEXT_SEARCH)


def test_rating_below_four_adds_nothing():
    score = score_venue(make_venue(rating=3.9, business_status=None))
    assert score.event_score == 0.8
    assert "highly_rated" not in score.indicators


@pytest.mark.parametrize(
    "score, expected",
    [(0.0, Confidence.LOW), (0.39, Confidence.LOW), (0.4, Confidence.MEDIUM), (0.69, Confidence.MEDIUM), (0.7, Confidence.HIGH)],
)
def test_confidence_tiers(score, expected):
    assert confidence_for_score(score) == expected


def test_custom_thresholds():
    config = replace(DEFAULT_CONFIG, nearby_acceptance_score=0.0)
    venue = make_venue(name="Union Hall", types=("bar",), rating=None, business_status=None)

    assert is_accepted(score_venue(venue, config=config), DiscoveryMethod.NEARBY_SEARCH, config)
