"""Client utilities for the Google Places API (New)."""

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from event_detection.models import Coordinate

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://places.googleapis.com/v1/places"

_FIELD_MASK = ",".join(
    [
        "places.id",
        "places.displayName",
        "places.location",
        "places.types",
        "places.rating",
        "places.userRatingCount",
        "places.businessStatus",
        "places.formattedAddress",
        "places.priceLevel",
        "places.photos",
    ]
)

MAX_NEARBY_RADIUS = 2000
MAX_NEARBY_RESULTS = 15
MAX_TEXT_RADIUS = 2500
MAX_TEXT_RESULTS = 10
MAX_INCLUDED_TYPES = 5

_CITY_QUERIES = {
    "las vegas": ("CES convention center", "strip conference venues"),
    "austin": ("SXSW venues", "downtown conference center"),
    "san francisco": ("tech conference venues", "Moscone Center events"),
}


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""


class PlacesQuotaError(GooglePlacesError):
    """Raised on HTTP 429; callers should stop issuing further queries."""


def _circle(coordinate: Coordinate, radius: float) -> Dict[str, Any]:
    return {
        "circle": {
            "center": {"latitude": coordinate.latitude, "longitude": coordinate.longitude},
            "radius": float(radius),
        }
    }


def _post(method: str, body: Dict[str, Any], api_key: str) -> Dict[str, Any]:
    headers = {
        "Content-Type": "application/json",
        "X-Goog-Api-Key": api_key,
        "X-Goog-FieldMask": _FIELD_MASK,
    }
    response = _SESSION.post(f"{_BASE_URL}:{method}", json=body, headers=headers, timeout=10)
    if response.status_code >= 400:
        try:
            message = (response.json().get("error") or {}).get("message")
        except ValueError:
            message = None
        logger.error("%s failed: status=%s, error_message=%s", method, response.status_code, message)
        if response.status_code == 429:
            raise PlacesQuotaError(message or "API quota exceeded")
        raise GooglePlacesError(message or f"HTTP {response.status_code}")
    return response.json() or {}


def search_nearby(
    coordinate: Coordinate,
    api_key: str,
    radius: float = 1000,
    included_types: Optional[Sequence[str]] = None,
    max_results: int = 10,
    rank_preference: str = "POPULARITY",
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "locationRestriction": _circle(coordinate, min(radius, MAX_NEARBY_RADIUS)),
        "maxResultCount": max(1, min(int(max_results), MAX_NEARBY_RESULTS)),
        "rankPreference": rank_preference,
    }
    if included_types and len(included_types) <= MAX_INCLUDED_TYPES:
        body["includedTypes"] = list(included_types)

    payload = _post("searchNearby", body, api_key)
    logger.debug("searchNearby returned %d places", len(payload.get("places") or []))
    return payload


def search_text(
    query: str,
    coordinate: Coordinate,
    api_key: str,
    radius: float = 1500,
    max_results: int = 6,
) -> Dict[str, Any]:
    body = {
        "textQuery": query,
        "maxResultCount": max(1, min(int(max_results), MAX_TEXT_RESULTS)),
        "locationBias": _circle(coordinate, min(radius, MAX_TEXT_RADIUS)),
    }
    return _post("searchText", body, api_key)


def contextual_queries(
    event_types: Sequence[str] = (),
    city: Optional[str] = None,
    max_queries: int = 3,
) -> List[str]:
    queries: List[str] = []
    if city:
        lowered = city.lower()
        for city_key, city_queries in _CITY_QUERIES.items():
            if city_key in lowered:
                queries.extend(city_queries)
                break
    if len(queries) < max_queries:
        queries.extend(["conference center", "convention hall"])
    if "convention_center" in event_types and len(queries) < max_queries:
        queries.append("trade show venue")
    return queries[:max_queries]


def contextual_text_search(
    coordinate: Coordinate,
    api_key: str,
    event_types: Sequence[str] = (),
    city: Optional[str] = None,
    date_range: str = "current",
    max_queries: int = 3,
) -> List[Dict[str, Any]]:
    """Run a few targeted text queries around ``coordinate``.

    Returns ``[{"query": ..., "places": [...]}]`` for queries with results. A
    failing query is skipped; a quota error stops the remaining queries.
    """
    results: List[Dict[str, Any]] = []
    for query in contextual_queries(event_types, city, max_queries):
        try:
            payload = search_text(query, coordinate, api_key, radius=1500, max_results=6)
        except PlacesQuotaError:
            logger.warning("Quota exceeded, stopping contextual search after %r", query)
            break
        except (GooglePlacesError, requests.RequestException) as exc:
            logger.warning("Contextual query %r failed: %s", query, exc)
            continue
        places = payload.get("places") or []
        if places:
            results.append({"query": query, "places": places, "dateRange": date_range})
    return results


class PlacesClient:
    """Places search bound to one API key."""

    def __init__(self, api_key: str):
        if not api_key:
            raise GooglePlacesError("GOOGLE_API_KEY is required")
        self.api_key = api_key

    def search_nearby(self, coordinate: Coordinate, **options: Any) -> Dict[str, Any]:
        return search_nearby(coordinate, self.api_key, **options)

    def contextual_text_search(self, coordinate: Coordinate, **options: Any) -> List[Dict[str, Any]]:
        return contextual_text_search(coordinate, self.api_key, **options)
