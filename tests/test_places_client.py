import json
import logging
from pathlib import Path

import pytest
import requests

from placefinder import config
from placefinder.cache import Cache
from placefinder.errors import AreaSearchError, DetailFetchError
from placefinder.http import HttpClient, RequestMetrics
from placefinder.models import Location, PlaceDetails
from placefinder.places_client import (
    PlacesClient,
    build_nearby_search_body,
    details_url,
    parse_details_response,
    parse_nearby_response,
    parse_price_level,
)

CENTER = Location(52.4196882, 9.7984223)


def load_fixture(name):
    path = Path(__file__).parent / "fixtures" / name
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.headers = {}
        self.text = json.dumps(payload)

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, post_responses=None, get_responses=None):
        self.post_responses = list(post_responses or [])
        self.get_responses = dict(get_responses or {})
        self.posts = []
        self.gets = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append({"url": url, "body": json.loads(data), "headers": headers})
        response = self.post_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, params=None, headers=None, timeout=None):
        self.gets.append({"url": url, "params": params, "headers": headers})
        response = self.get_responses[url]
        if isinstance(response, Exception):
            raise response
        return response


def make_client(session, cache=None, no_cache=True, metrics=None, sleeps=None):
    http_client = HttpClient(api_key="dummy", timeout=1, retry_max=1, retry_delay=0.0)
    http_client.session = session
    return PlacesClient(
        http_client,
        cache=cache,
        no_cache=no_cache,
        metrics=metrics,
        sleep=(sleeps.append if sleeps is not None else (lambda _s: None)),
    )


def test_parse_nearby_response_skips_entries_without_id_or_location():
    stubs = parse_nearby_response(load_fixture("nearby_search.json"))

    assert [s.place_id for s in stubs] == ["ChIJcafe1", "ChIJbakery1"]
    assert stubs[1].name == "Bäckerei Zwei"
    assert stubs[1].types == ("bakery", "cafe", "store", "food")
    assert stubs[0].location == Location(52.4199, 9.7990)


def test_parse_nearby_response_plain_display_name_and_missing_places():
    assert parse_nearby_response({}) == []
    stubs = parse_nearby_response(
        {"places": [{"id": "x", "displayName": "Plain", "location": {"latitude": 1, "longitude": 2}}]}
    )
    assert stubs[0].name == "Plain"
    assert stubs[0].types == ()


def test_build_nearby_search_body_shape():
    body = build_nearby_search_body(CENTER, 500, "cafe", 20, page_token="tok")

    assert body["includedTypes"] == ["cafe"]
    assert body["maxResultCount"] == 20
    assert body["locationRestriction"]["circle"]["radius"] == 500.0
    assert body["locationRestriction"]["circle"]["center"] == {
        "latitude": CENTER.lat,
        "longitude": CENTER.lng,
    }
    assert body["pageToken"] == "tok"
    assert "pageToken" not in build_nearby_search_body(CENTER, 500, "cafe")


def test_search_nearby_follows_page_tokens_with_delay():
    page1 = load_fixture("nearby_search.json")
    page1 = dict(page1, nextPageToken="next-1")
    page2 = {"places": [{"id": "ChIJbar1", "types": ["bar"], "location": {"latitude": 52.42, "longitude": 9.8}}]}
    session = FakeSession(post_responses=[FakeResponse(page1), FakeResponse(page2)])
    metrics = RequestMetrics()
    sleeps = []
    client = make_client(session, metrics=metrics, sleeps=sleeps)

    stubs = client.search_nearby(CENTER, 1000, "cafe")

    assert [s.place_id for s in stubs] == ["ChIJcafe1", "ChIJbakery1", "ChIJbar1"]
    assert sleeps == [config.PAGE_TOKEN_DELAY_SECONDS]
    assert session.posts[1]["body"]["pageToken"] == "next-1"
    assert session.posts[0]["headers"]["X-Goog-FieldMask"] == config.PLACES_NEARBY_FIELD_MASK
    assert metrics.places_search == 2


def test_search_nearby_http_error_raises_area_search_error():
    session = FakeSession(post_responses=[FakeResponse({"error": {"code": 403}}, status_code=403)])
    client = make_client(session)

    with pytest.raises(AreaSearchError) as excinfo:
        client.search_nearby(CENTER, 1000, "bar")
    assert "403" in str(excinfo.value)


def test_search_nearby_transport_error_raises_area_search_error():
    session = FakeSession(post_responses=[requests.ConnectionError("boom")])
    client = make_client(session)

    with pytest.raises(AreaSearchError):
        client.search_nearby(CENTER, 1000, "bar")


def test_search_nearby_reuses_cached_response():
    cache = Cache(":memory:")
    session = FakeSession(post_responses=[FakeResponse(load_fixture("nearby_search.json"))])
    metrics = RequestMetrics()
    client = make_client(session, cache=cache, no_cache=False, metrics=metrics)
    client.search_nearby(CENTER, 1000, "cafe")
    cache.commit()

    fresh_session = FakeSession()
    second = make_client(fresh_session, cache=cache, no_cache=False, metrics=metrics)
    stubs = second.search_nearby(CENTER, 1000, "cafe")

    assert len(stubs) == 2
    assert fresh_session.posts == []
    assert metrics.places_search == 1
    assert metrics.cache_hits == 1
    cache.close()


def test_fetch_details_parses_fixture():
    url = details_url("ChIJcafe1")
    session = FakeSession(get_responses={url: FakeResponse(load_fixture("place_details.json"))})
    metrics = RequestMetrics()
    client = make_client(session, metrics=metrics)

    details = client.fetch_details("ChIJcafe1")

    assert details.rating == 4.6
    assert details.review_count == 312
    assert details.price_level == 2
    assert details.opening_hours_lines[0] == "Monday: 9:00 AM – 5:00 PM"
    assert details.url == "https://maps.google.com/?cid=123"
    assert session.gets[0]["headers"]["X-Goog-FieldMask"] == config.PLACES_DETAILS_FIELD_MASK
    assert metrics.places_details == 1


def test_fetch_details_failure_returns_empty_record(caplog):
    url = details_url("missing")
    session = FakeSession(get_responses={url: FakeResponse({"error": {}}, status_code=404)})
    client = make_client(session)

    with caplog.at_level(logging.WARNING):
        details = client.fetch_details("missing")

    assert details == PlaceDetails()
    assert "missing" in caplog.text


def test_details_url_strips_resource_prefix():
    assert details_url("places/ChIJabc") == details_url("ChIJabc")
    assert details_url("ChIJabc").endswith("/places/ChIJabc")


def test_parse_details_defaults():
    details = parse_details_response({})
    assert details == PlaceDetails(rating=None, review_count=0, price_level=None)
    assert details.opening_hours_lines is None


@pytest.mark.parametrize(
    "value,expected",
    [
        ("PRICE_LEVEL_FREE", 0),
        ("PRICE_LEVEL_VERY_EXPENSIVE", 4),
        ("PRICE_LEVEL_UNSPECIFIED", None),
        (3, 3),
        (7, None),
        (None, None),
        (True, None),
    ],
)
def test_parse_price_level(value, expected):
    assert parse_price_level(value) == expected


def place(place_id, lat=52.42, lng=9.8):
    return {"id": place_id, "types": ["cafe"], "location": {"latitude": lat, "longitude": lng}}


def test_search_nearby_flags_full_last_page_as_truncated():
    full_page = {"places": [place(f"p{i}") for i in range(config.SEARCH_RESULT_CAP)]}
    client = make_client(FakeSession(post_responses=[FakeResponse(full_page)]))

    stubs = client.search_nearby(CENTER, 1000, "cafe")

    assert len(stubs) == config.SEARCH_RESULT_CAP
    assert stubs.truncated is True


def test_search_nearby_complete_second_page_is_not_truncated():
    page1 = {"places": [place(f"p{i}") for i in range(20)], "nextPageToken": "next-1"}
    page2 = {"places": [place(f"q{i}") for i in range(5)]}
    client = make_client(FakeSession(post_responses=[FakeResponse(page1), FakeResponse(page2)]))

    stubs = client.search_nearby(CENTER, 1000, "cafe")

    assert len(stubs) == 25
    assert stubs.truncated is False


def test_malformed_search_page_is_not_cached():
    bad_page = {"places": [place("ok"), {"id": "bad", "location": {"latitude": "north", "longitude": 9.8}}]}
    cache = Cache(":memory:")
    client = make_client(FakeSession(post_responses=[FakeResponse(bad_page)]), cache=cache, no_cache=False)

    with pytest.raises(AreaSearchError) as excinfo:
        client.search_nearby(CENTER, 1000, "cafe")

    assert "Malformed" in str(excinfo.value)
    assert cache.pending_writes == 0
    assert cache.conn.execute("SELECT COUNT(*) FROM places_search_cache").fetchone()[0] == 0
    cache.close()


def test_malformed_details_degrade_to_empty_record_and_are_not_cached(caplog):
    url = details_url("ChIJodd")
    payload = {"rating": "four and a half", "userRatingCount": 12}
    cache = Cache(":memory:")
    client = make_client(
        FakeSession(get_responses={url: FakeResponse(payload)}), cache=cache, no_cache=False
    )

    with caplog.at_level(logging.WARNING):
        details = client.fetch_details("ChIJodd")

    assert details == PlaceDetails()
    assert "ChIJodd" in caplog.text
    assert cache.get_details_cache("ChIJodd") is None
    cache.close()


def test_parse_details_rejects_non_numeric_review_count():
    with pytest.raises(DetailFetchError):
        parse_details_response({"userRatingCount": "many"})
