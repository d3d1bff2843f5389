"""CLI entrypoint."""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from placefinder import config
from placefinder.errors import PlaceFinderError
from placefinder.http import RequestMetrics
from placefinder.pipeline import run


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    settings = config.SEARCH_SETTINGS
    parser = argparse.ArgumentParser(
        description="Find restaurants, bars, cafes and bakeries around an address"
    )
    parser.add_argument("address", nargs="?", help='Address to search around, e.g. "Main St 1, City"')
    parser.add_argument("--preflight", action="store_true", help="Run offline checks only")
    parser.add_argument("--config", type=str, default=None, help="Path to search_config.json")
    parser.add_argument("--radius-m", type=float, default=None, help=f"Search radius (default: {settings.radius_m})")
    parser.add_argument(
        "--min-radius-m",
        type=float,
        default=None,
        help=f"Smallest sub-circle radius before subdivision stops (default: {settings.min_radius_m})",
    )
    parser.add_argument("--cap", type=int, default=None, help=f"Results per search call (default: {settings.cap})")
    parser.add_argument(
        "--overlap",
        type=float,
        default=None,
        help=f"Child circle radius multiplier on subdivision, in [1.0, 2.0) (default: {settings.overlap})",
    )
    parser.add_argument("--types", type=str, default=None, help="Comma-separated place types")
    parser.add_argument("--exclude", type=str, default=None, help="Path to exclude list JSON")
    parser.add_argument("--cache-path", type=str, default=config.CACHE_DB_PATH)
    parser.add_argument("--no-cache", action="store_true")
    parser.add_argument("--refresh-places", action="store_true", help="Bypass Places cache reads")
    parser.add_argument("--out", type=str, default=None)
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> config.SearchSettings:
    settings = config.SEARCH_SETTINGS
    changes = {}
    if args.radius_m is not None:
        changes["radius_m"] = args.radius_m
    if args.min_radius_m is not None:
        changes["min_radius_m"] = args.min_radius_m
    if args.cap is not None:
        changes["cap"] = args.cap
    if args.overlap is not None:
        changes["overlap"] = args.overlap
    if args.types is not None:
        types = tuple(t.strip() for t in args.types.split(",") if t.strip())
        changes["place_types"] = types
    return replace(settings, **changes) if changes else settings


def run_preflight(api_key: Optional[str], settings: config.SearchSettings) -> int:
    ok = True

    if api_key:
        print("API key: OK")
    else:
        print(f"API key: MISSING (set one of {', '.join(config.API_KEY_ENV_VARS)})")
        ok = False

    try:
        settings.validate()
        print(
            "Settings: OK (radius_m={radius}, min_radius_m={min_radius}, cap={cap}, types={types})".format(
                radius=settings.radius_m,
                min_radius=settings.min_radius_m,
                cap=settings.cap,
                types=",".join(settings.place_types),
            )
        )
    except ValueError as exc:
        print(f"Settings: FAIL ({exc})")
        ok = False

    print("Preflight: PASS" if ok else "Preflight: FAIL")
    return 0 if ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        config.load_search_config(args.config)
        settings = settings_from_args(args)
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    api_key = config.get_api_key()
    if args.preflight:
        return run_preflight(api_key, settings)

    if not args.address:
        print('Usage: python run.py "Your Address, City"', file=sys.stderr)
        return 1
    if not api_key:
        print("Missing GOOGLE_MAPS_API_KEY in environment", file=sys.stderr)
        return 1

    output_dir = args.out or config.OUTPUT_DIR
    metrics = RequestMetrics()
    try:
        result = run(
            address=args.address,
            api_key=api_key,
            settings=settings,
            exclude_path=args.exclude,
            cache_db_path=args.cache_path,
            no_cache=args.no_cache,
            refresh_places=args.refresh_places,
            output_dir=output_dir,
            write_outputs=True,
            metrics=metrics,
        )
    except (PlaceFinderError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Done. Saved {len(result.places)} places to {output_dir}/{config.RESULTS_FILENAME}")
    print("API Usage Summary:")
    print(f"- Geocoding API: {metrics.geocoding}")
    print(f"- Places Search API: {metrics.places_search}")
    print(f"- Places Details API: {metrics.places_details}")
    print(f"- Total: {metrics.total}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
