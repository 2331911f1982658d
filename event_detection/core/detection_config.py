"""Tunable thresholds and lookup tables for event detection and grouping.

The numbers here are tuned defaults, not invariants. Build a custom
``DetectionConfig`` (or ``dataclasses.replace`` the default) to override any
of them; every instance is validated on construction so a broken table fails
at load time instead of on the first request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

from event_detection.core.config import ConfigError
from event_detection.models import DiscoveryMethod


@dataclass(frozen=True)
class CampusLocation:
    name: str
    latitude: float
    longitude: float
    radius: float


@dataclass(frozen=True)
class CompanyPattern:
    keywords: Tuple[str, ...]
    max_radius: float = 200.0
    tight_clustering: bool = True
    campus_locations: Tuple[CampusLocation, ...] = ()


@dataclass(frozen=True)
class ZoneAdjustment:
    multiplier: float
    max_radius: Optional[float] = None


@dataclass(frozen=True)
class CityAdjustment:
    multiplier: float
    corporate_mode: bool = False
    zones: Mapping[str, ZoneAdjustment] = field(default_factory=dict)


DEFAULT_SEARCH_TYPES: Tuple[str, ...] = (
    "convention_center",
    "university",
    "stadium",
    "performing_arts_theater",
    "community_center",
    "museum",
    "art_gallery",
    "event_venue",
    "tourist_attraction",
    "concert_hall",
    "opera_house",
    "auditorium",
    "cultural_center",
)

# Radius used for the upstream nearby search around a location.
SEARCH_RADIUS_TABLE: Dict[str, float] = {
    "convention_center": 2000,
    "expo_center": 2000,
    "conference_center": 2000,
    "stadium": 1500,
    "arena": 1500,
    "concert_hall": 800,
    "opera_house": 800,
    "performing_arts_theater": 500,
    "university": 3000,
    "business_center": 1000,
    "corporate_campus": 2000,
    "museum": 600,
    "art_gallery": 400,
    "cultural_center": 1000,
    "lodging": 500,
    "resort": 2000,
    "default": 1000,
}

SEARCH_CITY_MULTIPLIERS: Dict[str, float] = {
    "las vegas": 1.5,
    "orlando": 1.3,
    "austin": 1.2,
    "san francisco": 0.8,
    "new york": 0.7,
    "paris": 0.8,
    "barcelona": 0.8,
    "singapore": 0.9,
}

# Radius used when growing a cluster around a seed event.
CLUSTER_RADIUS_TABLE: Dict[str, float] = {
    "corporate_campus": 300,
    "office_building": 200,
    "convention_center": 800,
    "expo_center": 1000,
    "stadium": 500,
    "arena": 400,
    "university": 600,
    "museum": 300,
    "art_gallery": 200,
    "lodging": 300,
    "default": 250,
}

CITY_ADJUSTMENTS: Dict[str, CityAdjustment] = {
    "mountain view": CityAdjustment(
        multiplier=0.4,
        corporate_mode=True,
        zones={
            "googleplex": ZoneAdjustment(multiplier=0.3, max_radius=200),
            "downtown": ZoneAdjustment(multiplier=0.5),
        },
    ),
    "palo alto": CityAdjustment(multiplier=0.4, corporate_mode=True),
    "cupertino": CityAdjustment(
        multiplier=0.3,
        corporate_mode=True,
        zones={"apple park": ZoneAdjustment(multiplier=0.2, max_radius=150)},
    ),
    "redmond": CityAdjustment(multiplier=0.4, corporate_mode=True),
    "san francisco": CityAdjustment(multiplier=0.6),
    "new york": CityAdjustment(multiplier=0.5),
    "las vegas": CityAdjustment(
        multiplier=1.2,
        zones={
            "strip": ZoneAdjustment(multiplier=1.0),
            "convention": ZoneAdjustment(multiplier=0.8),
        },
    ),
}

COMPANY_PATTERNS: Dict[str, CompanyPattern] = {
    "google": CompanyPattern(
        keywords=("google", "googleplex", "alphabet"),
        max_radius=200,
        campus_locations=(
            CampusLocation("Googleplex Main", 37.4220, -122.0841, 150),
            CampusLocation("Google Charleston", 37.4043, -122.0748, 100),
        ),
    ),
    "apple": CompanyPattern(
        keywords=("apple", "apple park"),
        max_radius=150,
        campus_locations=(
            CampusLocation("Apple Park", 37.3348, -122.0090, 200),
            CampusLocation("Apple Infinite Loop", 37.3230, -122.0322, 100),
        ),
    ),
    "microsoft": CompanyPattern(keywords=("microsoft",), max_radius=250),
}

# Pairs listed here never share a cluster, in either direction.
VENUE_INCOMPATIBILITIES: Dict[str, FrozenSet[str]] = {
    "corporate_campus": frozenset({"stadium", "museum", "restaurant", "tourist_attraction"}),
    "convention_center": frozenset({"corporate_campus", "university", "residential"}),
    "university": frozenset({"corporate_campus", "industrial"}),
    "hospital": frozenset({"night_club", "nightclub", "bar", "casino"}),
}

INDUSTRY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "technology": ("engineer", "developer", "tech", "software", "data", "ai", "ml"),
    "finance": ("finance", "bank", "investment", "trading", "financial"),
    "healthcare": ("doctor", "nurse", "medical", "health", "physician"),
    "consulting": ("consultant", "advisor", "consulting", "strategy"),
    "marketing": ("marketing", "brand", "advertising", "digital"),
    "sales": ("sales", "business development", "account"),
    "education": ("teacher", "professor", "education", "academic"),
    "legal": ("lawyer", "attorney", "legal", "counsel"),
}

KNOWN_VENUES: Dict[str, str] = {
    "las vegas convention center": "CES",
    "mandalay bay": "NAB Show / Tech Events",
    "moscone center": "Tech Conferences",
    "jacob javits center": "NYC Conferences",
    "orange county convention center": "Orlando Events",
}


@dataclass(frozen=True)
class DetectionConfig:
    # venue scoring
    event_venue_types: FrozenSet[str] = frozenset(
        {"convention_center", "event_venue", "concert_hall", "university", "stadium"}
    )
    event_name_keywords: Tuple[str, ...] = ("convention", "conference", "center", "hall", "arena", "theater")
    high_confidence_score: float = 0.7
    medium_confidence_score: float = 0.4
    nearby_acceptance_score: float = 0.3
    text_acceptance_score: float = 0.4
    max_photos: int = 3

    # upstream search
    default_search_types: Tuple[str, ...] = DEFAULT_SEARCH_TYPES
    search_radius_table: Mapping[str, float] = field(default_factory=lambda: dict(SEARCH_RADIUS_TABLE))
    search_city_multipliers: Mapping[str, float] = field(default_factory=lambda: dict(SEARCH_CITY_MULTIPLIERS))
    min_search_radius: float = 500.0
    max_search_radius: float = 5000.0
    text_search_min_events: int = 3
    coordinate_precision: int = 3

    # cluster radius selection
    cluster_radius_table: Mapping[str, float] = field(default_factory=lambda: dict(CLUSTER_RADIUS_TABLE))
    city_adjustments: Mapping[str, CityAdjustment] = field(default_factory=lambda: dict(CITY_ADJUSTMENTS))
    corporate_city_radius_cap: float = 400.0
    min_cluster_radius: float = 100.0
    max_cluster_radius: float = 2000.0

    # company context
    company_patterns: Mapping[str, CompanyPattern] = field(default_factory=lambda: dict(COMPANY_PATTERNS))
    corporate_default_radius: float = 300.0
    min_company_votes: int = 2
    company_high_confidence_ratio: float = 0.7

    # absorption and coherence
    min_event_similarity: float = 0.5
    venue_incompatibilities: Mapping[str, FrozenSet[str]] = field(
        default_factory=lambda: dict(VENUE_INCOMPATIBILITIES)
    )
    max_intra_cluster_distance: float = 500.0
    split_radius_factor: float = 0.5
    split_radius_cap: float = 200.0
    min_cluster_contacts: int = 2

    # group suggestions
    location_group_distance: float = 250.0
    context_proximity_meters: float = 2000.0
    free_mail_providers: FrozenSet[str] = frozenset(
        {"gmail.com", "googlemail.com", "yahoo.com", "hotmail.com", "outlook.com", "live.com", "icloud.com", "aol.com"}
    )
    min_company_contacts: int = 2
    min_domain_contacts: int = 3
    min_daily_contacts: int = 3
    min_hourly_contacts: int = 2
    min_industry_contacts: int = 3
    min_suggestion_contacts: int = 2
    max_suggestions: int = 20
    industry_keywords: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: dict(INDUSTRY_KEYWORDS))
    high_value_industries: FrozenSet[str] = frozenset({"technology", "finance", "healthcare", "consulting"})
    known_venues: Mapping[str, str] = field(default_factory=lambda: dict(KNOWN_VENUES))
    convention_name_keywords: Tuple[str, ...] = ("convention", "conference", "expo", "summit", "congress")

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        for table_name in ("search_radius_table", "cluster_radius_table"):
            table = getattr(self, table_name)
            if "default" not in table:
                raise ConfigError(f"{table_name} must define a 'default' radius")
            bad = {key: value for key, value in table.items() if not value or value <= 0}
            if bad:
                raise ConfigError(f"{table_name} has non-positive radii: {bad}")

        if self.min_search_radius > self.max_search_radius:
            raise ConfigError("min_search_radius must not exceed max_search_radius")
        if self.min_cluster_radius > self.max_cluster_radius:
            raise ConfigError("min_cluster_radius must not exceed max_cluster_radius")
        if self.max_intra_cluster_distance <= 0:
            raise ConfigError("max_intra_cluster_distance must be positive")
        if self.corporate_default_radius <= 0 or self.split_radius_cap <= 0:
            raise ConfigError("corporate_default_radius and split_radius_cap must be positive")

        for name in (
            "high_confidence_score",
            "medium_confidence_score",
            "nearby_acceptance_score",
            "text_acceptance_score",
            "min_event_similarity",
            "company_high_confidence_ratio",
            "split_radius_factor",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must be within [0, 1], got {value}")
        if self.medium_confidence_score > self.high_confidence_score:
            raise ConfigError("medium_confidence_score must not exceed high_confidence_score")

        for company, pattern in self.company_patterns.items():
            if not pattern.keywords:
                raise ConfigError(f"company pattern {company!r} has no keywords")
            if pattern.max_radius <= 0:
                raise ConfigError(f"company pattern {company!r} needs a positive max_radius")
            for campus in pattern.campus_locations:
                if campus.radius <= 0:
                    raise ConfigError(f"campus {campus.name!r} needs a positive radius")

        for city, adjustment in self.city_adjustments.items():
            if adjustment.multiplier <= 0:
                raise ConfigError(f"city adjustment for {city!r} needs a positive multiplier")

        if self.min_suggestion_contacts < 1 or self.max_suggestions < 0:
            raise ConfigError("suggestion limits must be positive")

    def acceptance_score(self, method: DiscoveryMethod) -> float:
        """Minimum score (exclusive) for a venue found by ``method``."""
        if method == DiscoveryMethod.TEXT_SEARCH:
            return self.text_acceptance_score
        return self.nearby_acceptance_score


DEFAULT_CONFIG = DetectionConfig()
