"""Adaptive quadrant-subdivision area search.

The nearby-search endpoint returns at most ``cap`` results per circle. When a
circle comes back full, it is split into four overlapping child circles
(NW, NE, SW, SE) of half the radius and each child is searched in turn, until
every circle returns fewer than ``cap`` results or the radius reaches the
configured floor.

Work is kept on an explicit stack so the depth is bounded by the radius
ratio, not by the interpreter's recursion limit.
"""
from __future__ import annotations

import logging
import math
from typing import List, Protocol, Tuple

from . import config
from .geo import quadrant_centers
from .models import Location, POIStub, SearchPoint, SearchVisit

logger = logging.getLogger(__name__)


class AreaSearcher(Protocol):
    def search_nearby(self, center: Location, radius_m: float, category: str) -> List[POIStub]:
        """Stubs inside the circle.

        A result with a ``truncated`` attribute (see NearbyResults) decides
        subdivision itself; a plain list counts as truncated once it holds ``cap``
        stubs.
        """


def subdivide(point: SearchPoint, overlap: float = 1.0) -> List[SearchPoint]:
    """Four child circles in NW, NE, SW, SE order.

    Child centers sit radius/2 north/south and east/west of the parent center;
    the child radius is radius/2 scaled by ``overlap``.
    """
    new_radius = point.radius_m / 2.0
    return [
        SearchPoint(center=center, radius_m=new_radius * overlap)
        for _name, center in quadrant_centers(point.center, new_radius)
    ]


def max_depth(radius_m: float, min_radius_m: float, overlap: float = 1.0) -> int:
    """Deepest subdivision level reachable from radius_m before the floor stops it."""
    if radius_m <= 0 or min_radius_m <= 0:
        raise ValueError("radii must be positive")
    if radius_m <= min_radius_m:
        return 0
    shrink = overlap / 2.0
    return int(math.ceil(math.log(min_radius_m / radius_m) / math.log(shrink)))


def max_calls(radius_m: float, min_radius_m: float, overlap: float = 1.0) -> int:
    """Upper bound on search calls: a full 4-ary tree down to max_depth."""
    depth = max_depth(radius_m, min_radius_m, overlap)
    return sum(4 ** level for level in range(depth + 1))


class AreaSearchEngine:
    def __init__(
        self,
        searcher: AreaSearcher,
        cap: int = config.SEARCH_RESULT_CAP,
        min_radius_m: float = config.MIN_SEARCH_RADIUS_M,
        overlap: float = config.SEARCH_OVERLAP,
    ) -> None:
        if cap <= 0:
            raise ValueError("cap must be positive")
        if min_radius_m <= 0:
            raise ValueError("min_radius_m must be positive")
        if not 1.0 <= overlap < 2.0:
            raise ValueError("overlap must be in [1.0, 2.0)")
        self.searcher = searcher
        self.cap = cap
        self.min_radius_m = min_radius_m
        self.overlap = overlap
        self.visits: List[SearchVisit] = []

    def search(self, center: Location, radius_m: float, category: str) -> List[POIStub]:
        """Every stub of ``category`` the provider reports within the circle.

        Results are concatenated in depth-first visit order and may contain
        duplicates. Provider errors propagate unchanged.
        """
        stack: List[Tuple[SearchPoint, int]] = [(SearchPoint(center, radius_m), 0)]
        results: List[POIStub] = []
        calls = 0

        while stack:
            point, depth = stack.pop()
            found = self.searcher.search_nearby(point.center, point.radius_m, category)
            calls += 1
            visit = SearchVisit(point=point, category=category, depth=depth, result_count=len(found))
            self.visits.append(visit)

            if not self._is_truncated(found):
                results.extend(found)
                continue

            if point.radius_m <= self.min_radius_m:
                visit.saturated = True
                logger.warning(
                    "%s search at %.6f,%.6f r=%.0fm still returned %s results at the minimum radius; "
                    "results for this region may be incomplete",
                    category,
                    point.center.lat,
                    point.center.lng,
                    point.radius_m,
                    len(found),
                )
                results.extend(found)
                continue

            visit.subdivided = True
            children = subdivide(point, self.overlap)
            logger.info(
                "Hit result limit for %s (%s found, r=%.0fm, depth %s) - subdividing into %s",
                category,
                len(found),
                point.radius_m,
                depth,
                len(children),
            )
            for child in reversed(children):
                stack.append((child, depth + 1))

        logger.info("%s search: %s call(s), %s result(s) before dedup", category, calls, len(results))
        return results

    def saturated_visits(self) -> List[SearchVisit]:
        return [v for v in self.visits if v.saturated]

    def _is_truncated(self, found: List[POIStub]) -> bool:
        truncated = getattr(found, "truncated", None)
        if truncated is None:
            return len(found) >= self.cap
        return bool(truncated)
