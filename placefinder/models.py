"""Value types passed between pipeline stages."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class SearchPoint:
    center: Location
    radius_m: float

    def __post_init__(self) -> None:
        if self.radius_m <= 0:
            raise ValueError(f"radius_m must be positive, got {self.radius_m}")

    def to_dict(self) -> Dict[str, Any]:
        return {"center": self.center.to_dict(), "radius_m": self.radius_m}


def union_types(existing: Iterable[str], incoming: Iterable[str]) -> Tuple[str, ...]:
    merged: List[str] = list(existing)
    for t in incoming:
        if t not in merged:
            merged.append(t)
    return tuple(merged)


@dataclass(frozen=True)
class POIStub:
    place_id: str
    name: str
    types: Tuple[str, ...]
    location: Location

    def merged_with(self, other: "POIStub") -> "POIStub":
        if other.place_id != self.place_id:
            raise ValueError(f"Cannot merge {self.place_id} with {other.place_id}")
        return POIStub(
            place_id=self.place_id,
            name=self.name,
            types=union_types(self.types, other.types),
            location=self.location,
        )


class NearbyResults(list):
    """Stubs for one search circle.

    ``truncated`` is set when the provider may hold more places than it
    returned: the last page came back full, or a page token was left unfollowed.
    """

    def __init__(self, stubs: Iterable[POIStub] = (), truncated: bool = False) -> None:
        super().__init__(stubs)
        self.truncated = truncated


@dataclass(frozen=True)
class PlaceDetails:
    rating: Optional[float] = None
    review_count: int = 0
    price_level: Optional[int] = None
    opening_hours_lines: Optional[List[str]] = None
    address: Optional[str] = None
    url: Optional[str] = None


@dataclass
class EnrichedPOI:
    place_id: str
    name: str
    types: List[str]
    distance_meters: int
    location: Location
    rating: Optional[float] = None
    review_count: int = 0
    price_level: Optional[int] = None
    opening_hours: Optional[Dict[str, str]] = None
    address: str = ""
    google_maps_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "place_id": self.place_id,
            "name": self.name,
            "types": list(self.types),
            "distance_meters": self.distance_meters,
            "location": self.location.to_dict(),
            "rating": self.rating,
            "review_count": self.review_count,
            "price_level": self.price_level,
            "opening_hours": dict(self.opening_hours) if self.opening_hours is not None else None,
            "address": self.address,
            "google_maps_url": self.google_maps_url,
        }


@dataclass
class SearchVisit:
    point: SearchPoint
    category: str
    depth: int
    result_count: int
    subdivided: bool = False
    saturated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "depth": self.depth,
            "center": self.point.center.to_dict(),
            "radius_m": self.point.radius_m,
            "result_count": self.result_count,
            "subdivided": self.subdivided,
            "saturated": self.saturated,
        }


@dataclass
class AggregateCounts:
    unique: int = 0
    kept: int = 0
    too_far: int = 0
    excluded: int = 0
    rejected_ids: Dict[str, str] = field(default_factory=dict)
