import argparse
import json
import threading

import psycopg2
import pytest

from event_detection.core.cache import InMemoryEventCache
from event_detection.jobs import detect_events
from event_detection.vendors.google_places import GooglePlacesError

LVCC_PLACE = {
    "id": "lvcc",
    "displayName": {"text": "Las Vegas Convention Center"},
    "location": {"latitude": 36.1318, "longitude": -115.1520},
    "types": ["convention_center", "point_of_interest"],
    "rating": 4.5,
    "businessStatus": "OPERATIONAL",
    "formattedAddress": "3150 Paradise Rd, Las Vegas, NV 89109",
}
CAFE_PLACE = {
    "id": "cafe",
    "displayName": {"text": "Corner Cafe"},
    "location": {"latitude": 36.1320, "longitude": -115.1530},
    "types": ["cafe"],
}
ANNEX_PLACE = {
    "id": "annex",
    "displayName": {"text": "Expo Hall Annex"},
    "location": {"latitude": 36.1330, "longitude": -115.1520},
    "types": ["event_venue"],
}


class DummySettings:
    def __init__(self, timeout=5.0):
        self.google_api_key = "test-key"
        self.database_url = ""
        self.worker_port = 9000
        self.cache_ttl_seconds = 600
        self.max_concurrent_searches = 2
        self.search_timeout_seconds = timeout
        self.max_suggestions = 20


class DummyPlacesClient:
    def __init__(self):
        self.nearby_calls = []
        self.text_calls = []

    def search_nearby(self, coordinate, **options):
        self.nearby_calls.append((coordinate, options))
        if coordinate.latitude > 40:
            raise GooglePlacesError("upstream exploded")
        return {"places": [LVCC_PLACE, CAFE_PLACE]}

    def contextual_text_search(self, coordinate, **options):
        self.text_calls.append((coordinate, options))
        return [{"query": "convention hall", "places": [ANNEX_PLACE, LVCC_PLACE], "dateRange": "current"}]


class BrokenCache:
    def get(self, key):
        raise RuntimeError("cache down")

    def set(self, key, events, ttl=None):
        raise RuntimeError("cache down")


def vegas_payload(**extra):
    payload = {
        "locations": [
            {"latitude": 36.1316, "longitude": -115.1536, "contacts": [{"id": "A", "name": "Ann"}]},
            {"latitude": 36.13161, "longitude": -115.15361, "contacts": [{"id": "B", "name": "Ben"}]},
        ]
    }
    payload.update(extra)
    return payload


def test_pipeline_detects_clusters_and_suggests_groups():
    payload = vegas_payload()
    payload["locations"].append({"latitude": 45.0, "longitude": -100.0, "contactIds": ["C"]})
    client = DummyPlacesClient()

    result = detect_events.detect_nearby_events(
        detect_events.DetectionRequest.from_payload(payload), client, settings=DummySettings()
    )

    analytics = result.analytics
    assert analytics["locationsRequested"] == 3
    assert analytics["locationsProcessed"] == 2
    assert analytics["locationDeduplication"] == 1
    assert analytics["locationErrors"] == 1
    assert analytics["eventsFound"] == 2
    assert analytics["highConfidenceEvents"] == 2
    assert analytics["intelligentClusters"] == 2
    assert analytics["venueTypes"] == {"convention_center": 1, "point_of_interest": 1, "event_venue": 1}
    assert [p["name"] for p in analytics["processingPhases"]] == [
        "preprocess",
        "venue_search",
        "clustering",
        "group_suggestions",
    ]

    assert [e.id for e in result.events] == ["lvcc", "annex"]
    annex = result.events[1]
    assert annex.discovery_method.value == "text_search"
    assert annex.search_query == "convention hall"
    assert annex.contact_ids == ("A", "B")

    assert len(result.suggestions) == 1
    suggestion = result.suggestions[0]
    assert suggestion.name == "Las Vegas Convention Center"
    assert sorted(suggestion.contact_ids) == ["A", "B"]

    body = result.to_dict()
    assert body["events"][0]["clusterInfo"]["isPrimaryEvent"] is True
    assert body["autoGroupSuggestions"][0]["autoGenerated"] is True


def test_pipeline_skips_text_search_when_disabled():
    client = DummyPlacesClient()
    request = detect_events.DetectionRequest.from_payload(vegas_payload(includeTextSearch=False))

    result = detect_events.detect_nearby_events(request, client, settings=DummySettings())

    assert client.text_calls == []
    assert [e.id for e in result.events] == ["lvcc"]


def test_requested_radius_and_types_reach_the_client():
    client = DummyPlacesClient()
    request = detect_events.DetectionRequest.from_payload(
        vegas_payload(radius=750, eventTypes=["stadium"], maxResults=5, includeTextSearch=False)
    )

    detect_events.detect_nearby_events(request, client, settings=DummySettings())

    _, options = client.nearby_calls[0]
    assert options["radius"] == 750
    assert options["included_types"] == ["stadium"]
    assert options["max_results"] == 5


def test_second_run_is_served_from_cache():
    client = DummyPlacesClient()
    cache = InMemoryEventCache(ttl_seconds=600)
    request = detect_events.DetectionRequest.from_payload(vegas_payload())

    first = detect_events.detect_nearby_events(request, client, cache=cache, settings=DummySettings())
    second = detect_events.detect_nearby_events(request, client, cache=cache, settings=DummySettings())

    assert first.analytics["cacheMisses"] == 1
    assert second.analytics["cacheHits"] == 1
    assert len(client.nearby_calls) == 1
    assert [e.id for e in second.events] == [e.id for e in first.events]


def test_cache_failures_do_not_fail_the_request(caplog):
    client = DummyPlacesClient()
    request = detect_events.DetectionRequest.from_payload(vegas_payload())

    with caplog.at_level("WARNING"):
        result = detect_events.detect_nearby_events(request, client, cache=BrokenCache(), settings=DummySettings())

    assert result.analytics["cacheErrors"] == 2
    assert result.analytics["eventsFound"] == 2
    assert "Cache read failed" in caplog.text


def test_slow_location_times_out():
    release = threading.Event()

    class SlowPlacesClient(DummyPlacesClient):
        def search_nearby(self, coordinate, **options):
            release.wait(2)
            return {"places": []}

    request = detect_events.DetectionRequest.from_payload(vegas_payload(includeTextSearch=False))
    try:
        result = detect_events.detect_nearby_events(request, SlowPlacesClient(), settings=DummySettings(timeout=0.05))
    finally:
        release.set()

    assert result.analytics["locationErrors"] == 1
    assert result.events == []


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"locations": []},
        {"locations": ["36.1,-115.1"]},
        {"locations": [{"latitude": 1, "longitude": 2}], "radius": "far"},
        {"locations": [{"latitude": 1, "longitude": 2}], "radius": -5},
        {"locations": [{"latitude": 1, "longitude": 2}], "maxResults": 0},
        {"locations": [{"latitude": 1, "longitude": 2}], "eventTypes": "stadium"},
        {"locations": [{"latitude": 1, "longitude": 2}], "existingGroups": {"id": "g"}},
    ],
)
def test_from_payload_rejects_malformed_requests(payload):
    with pytest.raises(ValueError):
        detect_events.DetectionRequest.from_payload(payload)


def test_from_payload_reads_contacts_and_defaults():
    request = detect_events.DetectionRequest.from_payload(
        {"locations": [{"latitude": 1, "longitude": 2}], "contacts": [{"id": "A"}, {"name": "no id"}]}
    )

    assert [c.id for c in request.contacts] == ["A"]
    assert request.radius is None
    assert request.include_text_search is True
    assert request.max_results == 20


def test_build_cache_prefers_postgres_and_creates_table(monkeypatch):
    schema_calls = []
    monkeypatch.setattr(detect_events.db, "ensure_schema", lambda: schema_calls.append(True))

    settings = DummySettings()
    assert isinstance(detect_events.build_cache(settings), InMemoryEventCache)
    assert schema_calls == []

    settings.database_url = "postgres://"
    assert isinstance(detect_events.build_cache(settings), detect_events.PostgresEventCache)
    assert schema_calls == [True]


def test_build_cache_survives_schema_failure(monkeypatch, caplog):
    def failing_schema():
        raise psycopg2.OperationalError("connection refused")

    monkeypatch.setattr(detect_events.db, "ensure_schema", failing_schema)
    settings = DummySettings()
    settings.database_url = "postgres://"

    with caplog.at_level("ERROR"):
        store = detect_events.build_cache(settings)

    assert isinstance(store, detect_events.PostgresEventCache)
    assert "Could not create event_cache table" in caplog.text


def test_build_parser():
    parser = detect_events.build_parser()
    args = parser.parse_args(["--input", "request.json", "--no-text-search", "--radius", "900"])

    assert isinstance(parser, argparse.ArgumentParser)
    assert args.input_path == "request.json"
    assert args.include_text_search is False
    assert args.radius == 900.0
    assert args.max_results is None


def test_main_prints_result(monkeypatch, tmp_path, capsys):
    request_file = tmp_path / "request.json"
    request_file.write_text(json.dumps(vegas_payload()), encoding="utf-8")
    client = DummyPlacesClient()

    monkeypatch.setattr(detect_events, "get_settings", lambda: DummySettings())
    monkeypatch.setattr(detect_events, "PlacesClient", lambda api_key: client)
    monkeypatch.setattr(detect_events, "build_cache", lambda settings: None)
    monkeypatch.setattr("sys.argv", ["detect-events", "--input", str(request_file), "--no-text-search"])

    detect_events.main()

    output = json.loads(capsys.readouterr().out)
    assert [e["id"] for e in output["events"]] == ["lvcc"]
    assert client.text_calls == []
