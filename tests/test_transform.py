from event_detection.etl import transform


def test_city_from_address():
    assert transform.city_from_address("3150 Paradise Rd, Las Vegas, NV 89109") == "Las Vegas"
    assert transform.city_from_address("Las Vegas") is None
    assert transform.city_from_address(None) is None


def test_to_venue_from_places_new_payload():
    place = {
        "id": "pid",
        "displayName": {"text": "Las Vegas Convention Center", "languageCode": "en"},
        "location": {"latitude": 36.1316, "longitude": -115.1536},
        "types": ["convention_center", "point_of_interest"],
        "rating": 4.4,
        "userRatingCount": "12000",
        "businessStatus": "OPERATIONAL",
        "formattedAddress": "3150 Paradise Rd, Las Vegas, NV 89109",
        "photos": [{"name": "photo-1"}],
    }

    venue = transform.to_venue(place)

    assert venue.id == "pid"
    assert venue.name == "Las Vegas Convention Center"
    assert venue.location.latitude == 36.1316
    assert venue.types == ("convention_center", "point_of_interest")
    assert venue.user_rating_count == 12000
    assert venue.vicinity == "3150 Paradise Rd, Las Vegas, NV 89109"
    assert venue.photos == ({"name": "photo-1"},)


def test_to_venue_uses_legacy_fallbacks():
    place = {
        "place_id": "legacy",
        "name": "Moscone Center",
        "geometry": {"location": {"lat": 37.784, "lng": -122.401}},
        "vicinity": "747 Howard St, San Francisco",
        "userRatingCount": "many",
    }

    venue = transform.to_venue(place)

    assert venue.id == "legacy"
    assert venue.name == "Moscone Center"
    assert venue.location.longitude == -122.401
    assert venue.user_rating_count is None
    assert venue.vicinity == "747 Howard St, San Francisco"


def test_to_venue_requires_id_and_location():
    assert transform.to_venue({"displayName": {"text": "Nowhere"}, "location": {"latitude": 1, "longitude": 2}}) is None
    assert transform.to_venue({"id": "pid", "displayName": {"text": "Nowhere"}}) is None
