"""Places API client with caching and response parsing."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

from . import config
from .cache import Cache, make_request_cache_key
from .errors import AreaSearchError, DetailFetchError, HttpError
from .http import HttpClient, RequestMetrics
from .models import Location, NearbyResults, PlaceDetails, POIStub

logger = logging.getLogger(__name__)

PRICE_LEVELS: Dict[str, int] = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}


class PlacesClient:
    def __init__(
        self,
        http_client: HttpClient,
        cache: Optional[Cache] = None,
        no_cache: bool = False,
        refresh_places: bool = False,
        metrics: Optional[RequestMetrics] = None,
        page_size: int = config.SEARCH_RESULT_CAP,
        max_pages: int = config.PLACES_MAX_PAGES_PER_SEARCH,
        page_token_delay: float = config.PAGE_TOKEN_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.http = http_client
        self.cache = cache
        self.no_cache = no_cache or cache is None
        self.refresh_places = refresh_places
        self.metrics = metrics
        self.page_size = page_size
        self.max_pages = max(1, int(max_pages))
        self.page_token_delay = page_token_delay
        self.sleep = sleep
        self._memory_cache: Dict[str, Dict[str, Any]] = {}

    def search_nearby(self, center: Location, radius_m: float, category: str) -> NearbyResults:
        """All stubs for one search circle, following page tokens.

        Raises AreaSearchError on any failure; nothing is returned partially.
        """
        stubs = NearbyResults()
        page_token: Optional[str] = None
        last_page_size = 0
        for _ in range(self.max_pages):
            if page_token:
                self.sleep(self.page_token_delay)
            body = build_nearby_search_body(center, radius_m, category, self.page_size, page_token)
            resp, page = self._post_search(body)
            stubs.extend(page)
            last_page_size = len(resp.get("places") or [])
            page_token = resp.get("nextPageToken")
            logger.debug(
                "Fetched %s %s result(s) at %.6f,%.6f r=%.0f%s",
                last_page_size,
                category,
                center.lat,
                center.lng,
                radius_m,
                " - has more pages" if page_token else "",
            )
            if not page_token:
                break
        stubs.truncated = bool(page_token) or last_page_size >= self.page_size
        return stubs

    def _post_search(self, body: Dict[str, Any]) -> Tuple[Dict[str, Any], List[POIStub]]:
        key = make_request_cache_key(
            config.PLACES_NEARBY_SEARCH_URL, config.PLACES_NEARBY_FIELD_MASK, body
        )
        cached = self._memory_cache.get(key)
        if cached is None and not self.no_cache and not self.refresh_places:
            cached = self.cache.get_search_cache(key)
            if cached is not None and self.metrics is not None:
                self.metrics.inc_cache_hit()
        if cached is not None:
            page = _parse_search_page(cached)
            self._memory_cache[key] = cached
            return cached, page

        if self.metrics is not None:
            self.metrics.inc_network("places_search")
        try:
            response = self.http.post_json(
                config.PLACES_NEARBY_SEARCH_URL, body, config.PLACES_NEARBY_FIELD_MASK
            )
        except HttpError as exc:
            raise AreaSearchError(f"Nearby search failed: {exc}") from exc
        # Only well-formed pages reach the cache.
        page = _parse_search_page(response)
        self._memory_cache[key] = response
        if not self.no_cache:
            self.cache.set_search_cache(key, response)
        return response, page

    def fetch_details(self, place_id: str) -> PlaceDetails:
        """Details for one place; failures degrade to an empty record."""
        try:
            return self._get_details(place_id)
        except DetailFetchError as exc:
            logger.warning("Place details failed for %s: %s", place_id, exc)
            return PlaceDetails()

    def _get_details(self, place_id: str) -> PlaceDetails:
        if not place_id:
            raise DetailFetchError("missing place id")
        if not self.no_cache and not self.refresh_places:
            cached = self.cache.get_details_cache(place_id)
            if cached is not None:
                if self.metrics is not None:
                    self.metrics.inc_cache_hit()
                return parse_details_response(cached)

        if self.metrics is not None:
            self.metrics.inc_network("places_details")
        try:
            data = self.http.get_json(details_url(place_id), field_mask=config.PLACES_DETAILS_FIELD_MASK)
        except HttpError as exc:
            raise DetailFetchError(str(exc)) from exc
        details = parse_details_response(data)
        if not self.no_cache:
            self.cache.set_details_cache(place_id, data)
        return details


def _parse_search_page(response: Dict[str, Any]) -> List[POIStub]:
    try:
        return parse_nearby_response(response)
    except (TypeError, ValueError, AttributeError) as exc:
        raise AreaSearchError(f"Malformed nearby search response: {exc}") from exc


def details_url(place_id: str) -> str:
    # Search results may carry the resource name form "places/<id>".
    if place_id.startswith("places/"):
        place_id = place_id[len("places/"):]
    return config.PLACES_DETAILS_URL_TEMPLATE.format(place_id=quote(place_id, safe=""))


def build_nearby_search_body(
    center: Location,
    radius_m: float,
    category: str,
    max_result_count: int = config.SEARCH_RESULT_CAP,
    page_token: Optional[str] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "includedTypes": [category],
        "maxResultCount": int(max_result_count),
        "locationRestriction": {
            "circle": {
                "center": {"latitude": center.lat, "longitude": center.lng},
                "radius": float(radius_m),
            }
        },
    }
    if page_token:
        body["pageToken"] = page_token
    return body


# Adapter/mapper for Places response fields

def parse_nearby_response(response: Dict[str, Any]) -> List[POIStub]:
    places = response.get("places") or []
    parsed: List[POIStub] = []
    for p in places:
        place_id = p.get("id") or p.get("name")
        if not place_id:
            continue
        location = p.get("location") or {}
        lat = location.get("latitude")
        lng = location.get("longitude")
        if lat is None or lng is None:
            logger.debug("Skipping %s without coordinates", place_id)
            continue
        display = p.get("displayName")
        if isinstance(display, dict):
            name = display.get("text")
        else:
            name = display
        types = p.get("types") or []
        parsed.append(
            POIStub(
                place_id=str(place_id),
                name=name or "Unknown",
                types=tuple(dict.fromkeys(str(t) for t in types)),
                location=Location(float(lat), float(lng)),
            )
        )
    return parsed


def parse_price_level(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 <= value <= 4 else None
    if isinstance(value, str):
        return PRICE_LEVELS.get(value)
    return None


def parse_details_response(data: Dict[str, Any]) -> PlaceDetails:
    """Map a details payload to PlaceDetails; raises DetailFetchError on malformed values."""
    hours = data.get("currentOpeningHours")
    lines = None
    if isinstance(hours, dict) and hours.get("weekdayDescriptions"):
        lines = [str(line) for line in hours["weekdayDescriptions"]]
    try:
        rating = _optional_float(data.get("rating"))
        review_count = int(data.get("userRatingCount") or 0)
    except (TypeError, ValueError) as exc:
        raise DetailFetchError(f"Malformed details response: {exc}") from exc
    return PlaceDetails(
        rating=rating,
        review_count=review_count,
        price_level=parse_price_level(data.get("priceLevel")),
        opening_hours_lines=lines,
        address=data.get("formattedAddress"),
        url=data.get("googleMapsUri"),
    )


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise TypeError("boolean is not a rating")
    return float(value)
