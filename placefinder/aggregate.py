"""Merge per-category search results into one filtered set of places."""
from __future__ import annotations

import logging
from typing import AbstractSet, Dict, Iterable, List, Tuple

from .geo import distance_m
from .models import AggregateCounts, Location, POIStub

logger = logging.getLogger(__name__)


def merge_stubs(stub_lists: Iterable[Iterable[POIStub]]) -> Dict[str, POIStub]:
    """Key stubs by place id, unioning types on collision. First-seen order is kept."""
    merged: Dict[str, POIStub] = {}
    for stubs in stub_lists:
        for stub in stubs:
            existing = merged.get(stub.place_id)
            if existing is None:
                merged[stub.place_id] = stub
            else:
                merged[stub.place_id] = existing.merged_with(stub)
    return merged


def filter_stubs(
    stubs_by_id: Dict[str, POIStub],
    origin: Location,
    radius_m: float,
    exclude: AbstractSet[str],
) -> Tuple[Dict[str, POIStub], AggregateCounts]:
    # Sub-circles are offset from the origin, so the distance is always recomputed.
    kept: Dict[str, POIStub] = {}
    counts = AggregateCounts(unique=len(stubs_by_id))
    for place_id, stub in stubs_by_id.items():
        if distance_m(origin, stub.location) > radius_m:
            counts.too_far += 1
            counts.rejected_ids[place_id] = "too_far"
        elif place_id in exclude:
            counts.excluded += 1
            counts.rejected_ids[place_id] = "excluded"
        else:
            kept[place_id] = stub
    counts.kept = len(kept)
    return kept, counts


def aggregate(
    stub_lists: List[List[POIStub]],
    origin: Location,
    radius_m: float,
    exclude: AbstractSet[str],
) -> Tuple[Dict[str, POIStub], AggregateCounts]:
    """Dedup every stub list by id, then keep stubs within radius_m and not excluded."""
    kept, counts = filter_stubs(merge_stubs(stub_lists), origin, radius_m, exclude)
    logger.info(
        "Found %s unique place(s) within %sm (%s too far, %s excluded)",
        counts.kept,
        radius_m,
        counts.too_far,
        counts.excluded,
    )
    return kept, counts
