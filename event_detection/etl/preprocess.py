"""Collapse raw location pings into unique search locations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple, Union

from event_detection.core.geo import DEFAULT_PRECISION, grid_key, is_valid_coordinate
from event_detection.models import PreprocessedLocation, RawLocationPing

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PreprocessResult:
    locations: List[PreprocessedLocation]
    duplicates_removed: int
    invalid_skipped: int

    @property
    def original_count(self) -> int:
        return len(self.locations) + self.duplicates_removed + self.invalid_skipped


def preprocess_locations(
    pings: Iterable[Union[RawLocationPing, Dict]],
    precision: int = DEFAULT_PRECISION,
) -> PreprocessResult:
    """Merge pings that snap to the same grid cell.

    Pings with missing or non-numeric coordinates are skipped. Contact ids are
    unioned; contact records are appended once per contact id.
    """
    by_key: Dict[Tuple[float, float], PreprocessedLocation] = {}
    duplicates = 0
    invalid = 0

    for raw in pings:
        ping = raw if isinstance(raw, RawLocationPing) else RawLocationPing.from_dict(raw or {})
        if not is_valid_coordinate(ping.latitude, ping.longitude):
            logger.debug("Skipping ping with unusable coordinates: %r,%r", ping.latitude, ping.longitude)
            invalid += 1
            continue

        key = grid_key(ping.latitude, ping.longitude, precision)
        ids = set(ping.contact_ids) | {c.id for c in ping.contacts}

        existing = by_key.get(key)
        if existing is None:
            by_key[key] = PreprocessedLocation(
                latitude=key[0],
                longitude=key[1],
                contact_ids=ids,
                contacts=_unique_contacts(ping.contacts),
                metadata=dict(ping.metadata),
            )
            continue

        duplicates += 1
        existing.contact_ids |= ids
        known = {c.id for c in existing.contacts}
        for contact in ping.contacts:
            if contact.id not in known:
                existing.contacts.append(contact)
                known.add(contact.id)

    locations = list(by_key.values())
    if duplicates or invalid:
        logger.info(
            "Preprocessed %d pings into %d locations (%d duplicates, %d invalid)",
            len(locations) + duplicates + invalid,
            len(locations),
            duplicates,
            invalid,
        )
    return PreprocessResult(locations=locations, duplicates_removed=duplicates, invalid_skipped=invalid)


def _unique_contacts(contacts):
    seen = set()
    unique = []
    for contact in contacts:
        if contact.id in seen:
            continue
        seen.add(contact.id)
        unique.append(contact)
    return unique
