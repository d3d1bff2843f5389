"""Project configuration.

Loads user-defined search parameters from search_config.json when available,
falling back to sensible defaults. Keep API request shapes centralized here.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
PLACES_NEARBY_SEARCH_URL = "https://places.googleapis.com/v1/places:searchNearby"
PLACES_DETAILS_URL_TEMPLATE = "https://places.googleapis.com/v1/places/{place_id}"

# --- Field masks ---

PLACES_NEARBY_FIELD_MASK = "places.id,places.displayName,places.types,places.location"
PLACES_DETAILS_FIELD_MASK = (
    "rating,userRatingCount,priceLevel,currentOpeningHours,formattedAddress,googleMapsUri"
)

# --- Search defaults ---

DEFAULT_RADIUS_M = 1000
DEFAULT_PLACE_TYPES: List[str] = ["restaurant", "bar", "cafe", "bakery"]
SEARCH_RESULT_CAP = 20
MIN_SEARCH_RADIUS_M = 500
# Child search radius multiplier applied on subdivision. Below sqrt(2) the four
# children leave the parent center uncovered.
SEARCH_OVERLAP = 1.5
PLACES_MAX_PAGES_PER_SEARCH = 3

# Types kept on output rows; anything else is provider noise.
VENUE_TYPES: List[str] = [
    "restaurant",
    "bar",
    "cafe",
    "bakery",
    "meal_takeaway",
    "meal_delivery",
    "night_club",
]

# --- Fixed delays (seconds) ---

DETAILS_DELAY_SECONDS = 0.1
PAGE_TOKEN_DELAY_SECONDS = 2.0

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 20
HTTP_RETRY_MAX = 3
HTTP_RETRY_DELAY_SECONDS = 1.0

# --- Cache and outputs ---

CACHE_DB_PATH = "cache.db"
OUTPUT_DIR = "out"
RESULTS_FILENAME = "places.json"
SEARCH_POINTS_FILENAME = "search_points.json"
SUMMARY_FILENAME = "summary.txt"
EXCLUDE_LIST_PATH = "exclude.json"
PROGRESS_LOG_EVERY = 10
PROGRESS_WRITE_INTERVAL_SECONDS = 5.0

API_KEY_ENV_VARS = ("GOOGLE_MAPS_API_KEY", "GOOGLE_API_KEY")


@dataclass(frozen=True)
class SearchSettings:
    radius_m: float = DEFAULT_RADIUS_M
    min_radius_m: float = MIN_SEARCH_RADIUS_M
    cap: int = SEARCH_RESULT_CAP
    overlap: float = SEARCH_OVERLAP
    place_types: tuple = tuple(DEFAULT_PLACE_TYPES)

    def validate(self) -> None:
        if self.radius_m <= 0:
            raise ValueError("radius_m must be positive")
        if self.min_radius_m <= 0:
            raise ValueError("min_radius_m must be positive")
        if self.cap <= 0:
            raise ValueError("cap must be positive")
        if not 1.0 <= self.overlap < 2.0:
            raise ValueError("overlap must be in [1.0, 2.0)")
        if not self.place_types:
            raise ValueError("at least one place type is required")


SEARCH_SETTINGS = SearchSettings()


def get_api_key() -> Optional[str]:
    for name in API_KEY_ENV_VARS:
        value = (os.environ.get(name) or "").strip()
        if value:
            return value
    return None


def load_search_config(path: Optional[str] = None) -> bool:
    """Load search configuration from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "search_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    globals_ref = globals()
    current: SearchSettings = globals_ref["SEARCH_SETTINGS"]

    radius = data.get("radius_m")
    min_radius = data.get("min_radius_m")
    cap = data.get("cap")
    overlap = data.get("overlap")
    place_types = data.get("place_types")

    settings = SearchSettings(
        radius_m=float(radius) if radius is not None else current.radius_m,
        min_radius_m=float(min_radius) if min_radius is not None else current.min_radius_m,
        cap=int(cap) if cap is not None else current.cap,
        overlap=float(overlap) if overlap is not None else current.overlap,
        place_types=tuple(place_types) if place_types else current.place_types,
    )
    settings.validate()
    globals_ref["SEARCH_SETTINGS"] = settings

    exclude_path = data.get("exclude_path")
    if exclude_path:
        globals_ref["EXCLUDE_LIST_PATH"] = str(exclude_path)

    output_dir = data.get("output_dir")
    if output_dir:
        globals_ref["OUTPUT_DIR"] = str(output_dir)

    return True
