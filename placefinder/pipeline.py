"""Pipeline orchestration."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from . import config
from .aggregate import aggregate
from .cache import Cache
from .enrichment import enrich, sort_by_distance
from .exclusions import load_exclude_list
from .geocoding import Geocoder
from .http import HttpClient, RequestMetrics
from .models import EnrichedPOI, POIStub, SearchVisit
from .places_client import PlacesClient
from .reporting import (
    ProgressReporter,
    ensure_dir,
    render_summary,
    write_json_object,
    write_results_json,
    write_summary,
)
from .search import AreaSearchEngine, max_calls

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    places: List[EnrichedPOI]
    visits: List[SearchVisit]
    summary: Dict[str, Any]

    def rows(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self.places]


def build_http_client(api_key: str, sleep: Callable[[float], None] = time.sleep) -> HttpClient:
    return HttpClient(
        api_key,
        timeout=config.HTTP_TIMEOUT_SECONDS,
        retry_max=config.HTTP_RETRY_MAX,
        retry_delay=config.HTTP_RETRY_DELAY_SECONDS,
        sleep=sleep,
    )


def run(
    address: str,
    api_key: Optional[str] = None,
    settings: Optional[config.SearchSettings] = None,
    exclude_path: Optional[str] = None,
    cache_db_path: str = config.CACHE_DB_PATH,
    no_cache: bool = False,
    refresh_places: bool = False,
    output_dir: str = config.OUTPUT_DIR,
    write_outputs: bool = True,
    geocoder: Optional[Geocoder] = None,
    places_client: Optional[PlacesClient] = None,
    metrics: Optional[RequestMetrics] = None,
    details_delay: float = config.DETAILS_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> PipelineResult:
    settings = settings or config.SEARCH_SETTINGS
    settings.validate()
    if metrics is None:
        metrics = RequestMetrics()
    if exclude_path is None:
        exclude_path = config.EXCLUDE_LIST_PATH

    owned_cache: Optional[Cache] = None
    if geocoder is None or places_client is None:
        if not api_key:
            raise ValueError("api_key is required when clients are not provided")
        http_client = build_http_client(api_key, sleep=sleep)
        if geocoder is None:
            geocoder = Geocoder(http_client, metrics=metrics)
        if places_client is None:
            if not no_cache:
                owned_cache = Cache(cache_db_path)
            places_client = PlacesClient(
                http_client,
                cache=owned_cache,
                no_cache=no_cache,
                refresh_places=refresh_places,
                metrics=metrics,
                page_size=settings.cap,
                sleep=sleep,
            )

    if write_outputs:
        ensure_dir(output_dir)

    progress = ProgressReporter(
        output_path=f"{output_dir}/progress.json" if write_outputs else None,
        log_every=config.PROGRESS_LOG_EVERY,
        write_interval_seconds=config.PROGRESS_WRITE_INTERVAL_SECONDS,
        logger=logger,
        counters=metrics,
    )
    cache: Optional[Cache] = getattr(places_client, "cache", None)

    try:
        logger.info(
            'Searching for %s within %sm of "%s"',
            ", ".join(settings.place_types),
            settings.radius_m,
            address,
        )

        logger.info("Stage 1: geocode")
        progress.set_stage("geocode")
        origin = geocoder.geocode(address)

        exclude = load_exclude_list(exclude_path)

        logger.info("Stage 2: area search")
        call_bound = max_calls(settings.radius_m, settings.min_radius_m, settings.overlap)
        logger.info("At most %s search call(s) per category", call_bound)
        progress.set_stage("search", total_estimate=len(settings.place_types))
        engine = AreaSearchEngine(
            places_client,
            cap=settings.cap,
            min_radius_m=settings.min_radius_m,
            overlap=settings.overlap,
        )
        stub_lists: List[List[POIStub]] = []
        search_stats: Dict[str, Dict[str, int]] = {}
        for category in settings.place_types:
            first_visit = len(engine.visits)
            stubs = engine.search(origin, settings.radius_m, category)
            if cache is not None:
                cache.commit()
            stub_lists.append(stubs)
            category_visits = engine.visits[first_visit:]
            search_stats[category] = {
                "calls": len(category_visits),
                "results": len(stubs),
                "max_depth": max((v.depth for v in category_visits), default=0),
            }
            progress.advance()

        logger.info("Stage 3: aggregate")
        kept, counts = aggregate(stub_lists, origin, settings.radius_m, exclude)

        logger.info("Stage 4: details")
        enriched = enrich(
            kept.values(),
            origin,
            places_client,
            delay_seconds=details_delay,
            sleep=sleep,
            progress=progress,
        )
        if cache is not None:
            cache.commit()

        logger.info("Stage 5: sort")
        places = sort_by_distance(enriched)

        summary: Dict[str, Any] = {
            "address": address,
            "origin": origin.to_dict(),
            "radius_m": settings.radius_m,
            "min_radius_m": settings.min_radius_m,
            "cap": settings.cap,
            "overlap": settings.overlap,
            "place_types": list(settings.place_types),
            "searches": search_stats,
            "max_calls_per_category": call_bound,
            "saturated_regions": [v.to_dict() for v in engine.saturated_visits()],
            "unique_places": counts.unique,
            "kept_places": counts.kept,
            "too_far": counts.too_far,
            "excluded": counts.excluded,
            "requests": metrics.as_dict(),
        }
        result = PipelineResult(places=places, visits=list(engine.visits), summary=summary)

        if write_outputs:
            logger.info("Stage 6: outputs")
            progress.set_stage("outputs")
            write_results_json(f"{output_dir}/{config.RESULTS_FILENAME}", result.rows())
            write_json_object(
                f"{output_dir}/{config.SEARCH_POINTS_FILENAME}",
                {
                    "origin": origin.to_dict(),
                    "radius_m": settings.radius_m,
                    "visits": [v.to_dict() for v in engine.visits],
                },
            )
            write_summary(f"{output_dir}/{config.SUMMARY_FILENAME}", render_summary(summary))
            progress.set_stage("done", total_estimate=len(places))
        return result
    except BaseException:
        # Discard pending cache writes from the stage that failed.
        if cache is not None:
            cache.rollback()
        raise
    finally:
        if owned_cache is not None:
            owned_cache.close()
