"""Core data models shared by the event detection and grouping pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 1, "medium": 2, "high": 3}[self.value]


class DiscoveryMethod(str, Enum):
    NEARBY_SEARCH = "nearby_search"
    TEXT_SEARCH = "text_search"


class SuggestionType(str, Enum):
    EVENT = "event"
    COMPANY = "company"
    LOCATION = "location"
    TEMPORAL = "temporal"
    INDUSTRY = "industry"
    CONTEXT = "context"


class EventCategory(str, Enum):
    BUSINESS = "business"
    CONFERENCE = "conference"
    SPORTS = "sports"
    ENTERTAINMENT = "entertainment"
    EDUCATION = "education"
    CULTURAL = "cultural"


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> Optional["Coordinate"]:
        """Accept ``{latitude, longitude}`` or ``{lat, lng}``; ``None`` when unusable.

        NaN, infinite and out-of-range values are unusable.
        """
        from event_detection.core.geo import is_valid_coordinate  # geo imports this module

        if not isinstance(raw, dict):
            return None
        lat = _safe_float(raw.get("latitude", raw.get("lat")))
        lng = _safe_float(raw.get("longitude", raw.get("lng")))
        if not is_valid_coordinate(lat, lng):
            return None
        return cls(latitude=lat, longitude=lng)


@dataclass(frozen=True, slots=True)
class ContactRef:
    """A contact as seen by the pipeline. Only ``id`` is mandatory."""

    id: str
    name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    job_title: Optional[str] = None
    location: Optional[Coordinate] = None
    submitted_at: Optional[datetime] = None
    address: Optional[str] = None

    @property
    def email_domain(self) -> Optional[str]:
        if not self.email or "@" not in self.email:
            return None
        domain = self.email.rsplit("@", 1)[1].strip().lower()
        return domain or None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "company": self.company,
            "email": self.email,
            "jobTitle": self.job_title,
            "location": self.location.to_dict() if self.location else None,
            "submittedAt": self.submitted_at.isoformat() if self.submitted_at else None,
            "address": self.address,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> Optional["ContactRef"]:
        contact_id = raw.get("id")
        if contact_id is None or str(contact_id).strip() == "":
            return None
        return cls(
            id=str(contact_id),
            name=_strip_or_none(raw.get("name")),
            company=_strip_or_none(raw.get("company")),
            email=_strip_or_none(raw.get("email")),
            job_title=_strip_or_none(raw.get("jobTitle") or raw.get("title")),
            location=Coordinate.from_dict(raw.get("location")),
            submitted_at=parse_timestamp(raw.get("submittedAt") or raw.get("createdAt")),
            address=_strip_or_none(raw.get("address")),
        )


@dataclass(slots=True)
class RawLocationPing:
    """One scan/submission location as received; coordinates are unvalidated."""

    latitude: Any
    longitude: Any
    contact_ids: FrozenSet[str] = frozenset()
    contacts: List[ContactRef] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "RawLocationPing":
        metadata = raw.get("metadata") or {}
        raw_contacts = raw.get("contacts") or metadata.get("contacts") or []
        contacts = [c for c in (ContactRef.from_dict(item) for item in raw_contacts if isinstance(item, dict)) if c]
        contact_ids = frozenset(str(cid) for cid in (raw.get("contactIds") or []) if cid is not None)
        return cls(
            latitude=_safe_float(raw.get("latitude")),
            longitude=_safe_float(raw.get("longitude")),
            contact_ids=contact_ids,
            contacts=contacts,
            metadata=metadata,
        )


@dataclass(slots=True)
class PreprocessedLocation:
    latitude: float
    longitude: float
    contact_ids: set = field(default_factory=set)
    contacts: List[ContactRef] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class Venue:
    """Normalized place record from the external places-search collaborator."""

    id: str
    name: str
    location: Coordinate
    types: Tuple[str, ...] = ()
    rating: Optional[float] = None
    user_rating_count: Optional[int] = None
    business_status: Optional[str] = None
    vicinity: Optional[str] = None
    price_level: Optional[str] = None
    photos: Tuple[Any, ...] = ()


@dataclass(frozen=True, slots=True)
class VenueScore:
    event_score: float
    confidence: Confidence
    indicators: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Event:
    id: str
    name: str
    location: Coordinate
    types: Tuple[str, ...]
    event_score: float
    confidence: Confidence
    discovery_method: DiscoveryMethod
    rating: Optional[float] = None
    user_rating_count: Optional[int] = None
    business_status: Optional[str] = None
    vicinity: Optional[str] = None
    price_level: Optional[str] = None
    contacts_nearby: Tuple[ContactRef, ...] = ()
    contact_ids: Tuple[str, ...] = ()
    event_indicators: Tuple[str, ...] = ()
    is_active: bool = False
    search_query: Optional[str] = None
    photos: Tuple[Any, ...] = ()
    distance_from_contacts: Optional[float] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location.to_dict(),
            "types": list(self.types),
            "rating": self.rating,
            "userRatingCount": self.user_rating_count,
            "businessStatus": self.business_status,
            "vicinity": self.vicinity,
            "priceLevel": self.price_level,
            "contactsNearby": [c.to_dict() for c in self.contacts_nearby],
            "contactIds": list(self.contact_ids),
            "eventScore": self.event_score,
            "confidence": self.confidence.value,
            "eventIndicators": list(self.event_indicators),
            "discoveryMethod": self.discovery_method.value,
            "isActive": self.is_active,
            "searchQuery": self.search_query,
            "photos": list(self.photos),
            "distanceFromContacts": self.distance_from_contacts,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Event":
        """Inverse of ``to_dict``; used when events come back from a cache."""
        location = Coordinate.from_dict(raw.get("location"))
        if location is None:
            raise ValueError(f"event {raw.get('id')!r} has no usable location")
        contacts = tuple(
            c for c in (ContactRef.from_dict(item) for item in raw.get("contactsNearby") or []) if c
        )
        return cls(
            id=str(raw["id"]),
            name=raw.get("name") or "",
            location=location,
            types=tuple(raw.get("types") or ()),
            event_score=float(raw.get("eventScore") or 0.0),
            confidence=Confidence(raw.get("confidence") or Confidence.LOW.value),
            discovery_method=DiscoveryMethod(raw.get("discoveryMethod") or DiscoveryMethod.NEARBY_SEARCH.value),
            rating=_safe_float(raw.get("rating")),
            user_rating_count=raw.get("userRatingCount"),
            business_status=raw.get("businessStatus"),
            vicinity=raw.get("vicinity"),
            price_level=raw.get("priceLevel"),
            contacts_nearby=contacts,
            contact_ids=tuple(raw.get("contactIds") or ()),
            event_indicators=tuple(raw.get("eventIndicators") or ()),
            is_active=bool(raw.get("isActive")),
            search_query=raw.get("searchQuery"),
            photos=tuple(raw.get("photos") or ()),
            distance_from_contacts=_safe_float(raw.get("distanceFromContacts")),
            timestamp=parse_timestamp(raw.get("timestamp")),
        )


@dataclass(frozen=True, slots=True)
class CompanyContext:
    company: str
    confidence: Confidence
    source: str
    max_radius: float
    campus: Optional[str] = None
    distance: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company": self.company,
            "confidence": self.confidence.value,
            "source": self.source,
            "maxRadius": self.max_radius,
            "campus": self.campus,
            "distance": self.distance,
        }


@dataclass(frozen=True, slots=True)
class ValidationResults:
    coherent: bool
    max_internal_distance: float
    average_distance: float
    max_allowed_distance: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coherent": self.coherent,
            "maxInternalDistance": self.max_internal_distance,
            "averageDistance": self.average_distance,
            "maxAllowedDistance": self.max_allowed_distance,
            "reason": self.reason,
        }


@dataclass(slots=True)
class Cluster:
    id: str
    primary_event: Event
    events: List[Event]
    contacts: List[ContactRef]
    center_point: Coordinate
    radius: float
    confidence: Confidence
    company_context: Optional[CompanyContext] = None
    validation_results: Optional[ValidationResults] = None

    @property
    def contact_ids(self) -> List[str]:
        return [c.id for c in self.contacts]

    @property
    def is_coherent(self) -> bool:
        return bool(self.validation_results and self.validation_results.coherent)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "primaryEvent": self.primary_event.to_dict(),
            "events": [e.to_dict() for e in self.events],
            "contacts": [c.to_dict() for c in self.contacts],
            "centerPoint": self.center_point.to_dict(),
            "radius": self.radius,
            "confidence": self.confidence.value,
            "companyContext": self.company_context.to_dict() if self.company_context else None,
            "validationResults": self.validation_results.to_dict() if self.validation_results else None,
        }


@dataclass(frozen=True, slots=True)
class GroupSuggestion:
    id: str
    type: SuggestionType
    sub_type: str
    name: str
    description: str
    contacts: Tuple[ContactRef, ...]
    confidence: Confidence
    reason: str
    priority: float
    event_data: Optional[Dict[str, Any]] = None
    quality_metrics: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def contact_ids(self) -> List[str]:
        return [c.id for c in self.contacts]

    @property
    def contact_key(self) -> FrozenSet[str]:
        """Order-independent identity of the suggested group."""
        return frozenset(c.id for c in self.contacts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "subType": self.sub_type,
            "name": self.name,
            "description": self.description,
            "contactIds": self.contact_ids,
            "contacts": [c.to_dict() for c in self.contacts],
            "confidence": self.confidence.value,
            "reason": self.reason,
            "priority": self.priority,
            "eventData": self.event_data,
            "qualityMetrics": self.quality_metrics,
            "autoGenerated": True,
            "metadata": self.metadata,
        }


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO strings, epoch milliseconds or datetimes; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None or isinstance(value, bool):
            return None
        return float(value)
    except (TypeError, ValueError):
        return None
