"""Geospatial helpers."""
from __future__ import annotations

import math
from typing import List, Tuple

from .models import Location

EARTH_RADIUS_M = 6371000.0
METERS_PER_DEGREE_LAT = 111320.0

QUADRANTS: Tuple[Tuple[str, int, int], ...] = (
    ("NW", 1, -1),
    ("NE", 1, 1),
    ("SW", -1, -1),
    ("SE", -1, 1),
)


def haversine_m(a: Location, b: Location) -> float:
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlambda = math.radians(b.lng - a.lng)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c


def distance_m(a: Location, b: Location) -> int:
    """Great-circle distance rounded to the nearest metre."""
    return int(round(haversine_m(a, b)))


def meter_offsets(center: Location, meters: float) -> Tuple[float, float]:
    # Flat-earth approximation; fine at neighbourhood scale.
    offset_lat = meters / METERS_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(center.lat))
    if abs(cos_lat) < 1e-9:
        cos_lat = 1e-9
    offset_lng = meters / (METERS_PER_DEGREE_LAT * cos_lat)
    return offset_lat, offset_lng


def quadrant_centers(center: Location, offset_m: float) -> List[Tuple[str, Location]]:
    """Centers shifted by offset_m north/south and east/west, in NW, NE, SW, SE order."""
    offset_lat, offset_lng = meter_offsets(center, offset_m)
    return [
        (name, Location(center.lat + lat_sign * offset_lat, center.lng + lng_sign * offset_lng))
        for name, lat_sign, lng_sign in QUADRANTS
    ]
