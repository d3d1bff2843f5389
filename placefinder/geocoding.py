"""Address geocoding via the Google Geocoding API."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from . import config
from .errors import GeocodeError, HttpError
from .http import HttpClient, RequestMetrics
from .models import Location

logger = logging.getLogger(__name__)


class Geocoder:
    def __init__(self, http_client: HttpClient, metrics: Optional[RequestMetrics] = None) -> None:
        self.http = http_client
        self.metrics = metrics

    def geocode(self, address: str) -> Location:
        if not address or not address.strip():
            raise GeocodeError("Address is empty")
        if self.metrics is not None:
            self.metrics.inc_network("geocoding")
        try:
            response = self.http.get_json(config.GEOCODE_URL, params={"address": address})
        except HttpError as exc:
            raise GeocodeError(f"Geocoding request failed: {exc}") from exc
        location = parse_geocode_response(response)
        logger.info('Geocoded "%s" to %s, %s', address, location.lat, location.lng)
        return location


def parse_geocode_response(response: Dict[str, Any]) -> Location:
    status = response.get("status")
    results = response.get("results") or []
    if status != "OK" or not results:
        reason = response.get("error_message") or "No results"
        raise GeocodeError(f"Geocoding failed: {status} - {reason}")

    geometry = results[0].get("geometry") or {}
    loc = geometry.get("location") or {}
    lat = loc.get("lat")
    lng = loc.get("lng")
    if lat is None or lng is None:
        raise GeocodeError("Geocoding result has no coordinates")
    return Location(float(lat), float(lng))
