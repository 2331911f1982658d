"""HTTP entrypoint for event detection and group suggestions (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List

from flask import Flask, jsonify, request

from event_detection.core.config import get_settings
from event_detection.core.detection_config import DEFAULT_CONFIG
from event_detection.detection.clustering import cluster_events
from event_detection.grouping.suggestions import generate_group_suggestions
from event_detection.jobs.detect_events import DetectionRequest, build_cache, detect_nearby_events
from event_detection.models import ContactRef, Event
from event_detection.vendors.google_places import GooglePlacesError, PlacesClient

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App ----------
app = Flask(__name__)
_cache = None


def _get_cache():
    global _cache
    if _cache is None:
        _cache = build_cache(get_settings())
    return _cache


# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, never touches the database."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": settings.worker_port,
                "places_configured": bool(settings.google_api_key),
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/events/nearby")
def nearby_events() -> Any:
    """
    Detect events around the submitted locations.
    Required JSON fields: locations (non-empty list)
    Optional: radius, eventTypes, includeTextSearch, maxResults, existingGroups, contacts
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        detection_request = DetectionRequest.from_payload(payload)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    settings = get_settings()
    try:
        places_client = PlacesClient(settings.google_api_key)
    except GooglePlacesError as exc:
        logger.error("Places client unavailable: %s", exc)
        return jsonify({"error": "places search is not configured"}), 500

    try:
        result = detect_nearby_events(detection_request, places_client, cache=_get_cache(), settings=settings)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Event detection failed: %s", exc)
        return jsonify({"error": "event detection failed"}), 500

    return jsonify({"data": result.to_dict()}), 200


@app.post("/groups/suggest")
def suggest_groups() -> Any:
    """Group suggestions from caller-supplied contacts and events; no venue search."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    raw_contacts = payload.get("contacts")
    if not isinstance(raw_contacts, list) or not raw_contacts:
        return jsonify({"error": "contacts must be a non-empty list"}), 400
    raw_events = payload.get("events") or []
    if not isinstance(raw_events, list):
        return jsonify({"error": "events must be a list"}), 400
    existing_groups = payload.get("existingGroups") or []
    if not isinstance(existing_groups, list):
        return jsonify({"error": "existingGroups must be a list"}), 400

    contacts: List[ContactRef] = [
        c for c in (ContactRef.from_dict(raw) for raw in raw_contacts if isinstance(raw, dict)) if c
    ]
    try:
        events = [Event.from_dict(raw) for raw in raw_events]
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        return jsonify({"error": f"invalid event: {exc}"}), 400

    try:
        clustering = cluster_events(events, DEFAULT_CONFIG)
        suggestions = generate_group_suggestions(
            clustering.clusters, contacts, events, existing_groups=existing_groups, config=DEFAULT_CONFIG
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Group suggestion failed: %s", exc)
        return jsonify({"error": "group suggestion failed"}), 500

    return (
        jsonify(
            {
                "data": {
                    "eventClusters": [c.to_dict() for c in clustering.clusters],
                    "autoGroupSuggestions": [s.to_dict() for s in suggestions],
                    "rejectedClusters": [d.to_dict() for d in clustering.rejected],
                }
            }
        ),
        200,
    )


def main() -> None:
    """Cloud Run injects PORT; fall back to WORKER_PORT locally."""
    env_port = os.getenv("PORT")
    logger.info("[BOOT] ENV PORT=%s", env_port)

    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
