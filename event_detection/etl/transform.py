"""Utilities for transforming Google Places (New) responses into venues."""

import logging
from typing import Any, Dict, Optional

from event_detection.models import Coordinate, Venue, _safe_float, _strip_or_none

logger = logging.getLogger(__name__)


def _display_name(place: Dict[str, Any]) -> Optional[str]:
    display = place.get("displayName")
    if isinstance(display, dict):
        return _strip_or_none(display.get("text"))
    if display:
        return _strip_or_none(display)
    return _strip_or_none(place.get("name"))


def city_from_address(address: Optional[str]) -> Optional[str]:
    """Second-to-last comma separated segment, e.g. ``"Las Vegas"`` for
    ``"3150 Paradise Rd, Las Vegas, NV 89109"``."""
    if not address:
        return None
    parts = [part.strip() for part in address.split(",")]
    if len(parts) < 2:
        return None
    return parts[-2] or None


def to_venue(place: Dict[str, Any]) -> Optional[Venue]:
    place_id = _strip_or_none(place.get("id") or place.get("place_id"))
    location = place.get("location") or (place.get("geometry") or {}).get("location")
    coordinate = Coordinate.from_dict(location)
    if not place_id or coordinate is None:
        logger.debug("Skipping place without id or location: %s", place.get("displayName") or place_id)
        return None

    rating_count = place.get("userRatingCount")
    try:
        rating_count = int(rating_count) if rating_count is not None else None
    except (TypeError, ValueError):
        rating_count = None

    return Venue(
        id=place_id,
        name=_display_name(place) or "",
        location=coordinate,
        types=tuple(place.get("types") or ()),
        rating=_safe_float(place.get("rating")),
        user_rating_count=rating_count,
        business_status=_strip_or_none(place.get("businessStatus")),
        vicinity=_strip_or_none(place.get("formattedAddress") or place.get("vicinity")),
        price_level=_strip_or_none(place.get("priceLevel")),
        photos=tuple(place.get("photos") or ()),
    )
