"""Detail enrichment, distance computation and ordering."""
from __future__ import annotations

import logging
import re
import time
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from . import config
from .geo import distance_m
from .models import EnrichedPOI, Location, PlaceDetails, POIStub
from .reporting import ProgressReporter

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_HOURS_LINE_RE = re.compile(r"^(\w+):\s*(.+)$")


class DetailsFetcher(Protocol):
    def fetch_details(self, place_id: str) -> PlaceDetails:
        ...


def parse_opening_hours(lines: Optional[Sequence[str]]) -> Optional[Dict[str, str]]:
    """Map "Monday: 9:00 AM – 5:00 PM" style lines to {"monday": "9:00 AM – 5:00 PM"}.

    Lines without a weekday prefix are dropped. Returns None when nothing matched.
    """
    if not lines:
        return None
    hours: Dict[str, str] = {}
    for line in lines:
        match = _HOURS_LINE_RE.match(line)
        if not match:
            continue
        day = match.group(1).lower()
        if day in WEEKDAYS:
            hours[day] = match.group(2)
    return hours or None


def narrow_types(types: Iterable[str], venue_types: Sequence[str] = config.VENUE_TYPES) -> List[str]:
    types = list(types)
    relevant = [t for t in types if t in venue_types]
    return relevant if relevant else types[:3]


def build_enriched(stub: POIStub, details: PlaceDetails, origin: Location) -> EnrichedPOI:
    return EnrichedPOI(
        place_id=stub.place_id,
        name=stub.name,
        types=narrow_types(stub.types),
        distance_meters=distance_m(origin, stub.location),
        location=stub.location,
        rating=details.rating,
        review_count=details.review_count,
        price_level=details.price_level,
        opening_hours=parse_opening_hours(details.opening_hours_lines),
        address=details.address or "",
        google_maps_url=details.url or "",
    )


def enrich(
    stubs: Iterable[POIStub],
    origin: Location,
    fetcher: DetailsFetcher,
    delay_seconds: float = config.DETAILS_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    progress: Optional[ProgressReporter] = None,
) -> List[EnrichedPOI]:
    stubs = list(stubs)
    if progress is not None:
        progress.set_stage("details", total_estimate=len(stubs))
    enriched: List[EnrichedPOI] = []
    for idx, stub in enumerate(stubs, start=1):
        logger.debug("Fetching details %s/%s: %s", idx, len(stubs), stub.name)
        details = fetcher.fetch_details(stub.place_id)
        enriched.append(build_enriched(stub, details, origin))
        if progress is not None:
            progress.advance()
        if idx < len(stubs):
            sleep(delay_seconds)
    return enriched


def sort_by_distance(pois: Iterable[EnrichedPOI]) -> List[EnrichedPOI]:
    # sorted() is stable, so equal distances keep aggregation order.
    return sorted(pois, key=lambda poi: poi.distance_meters)
