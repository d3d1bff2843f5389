"""Output reporting helpers."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, TextIO


class RequestCounters(Protocol):
    total: int

    def as_dict(self) -> Dict[str, int]:
        ...


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except (OSError, AttributeError):
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding, newline=newline) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: str, text: str) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        f.write(text)


def write_results_json(path: str, rows: Iterable[Dict[str, Any]]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(list(rows), f, ensure_ascii=False, indent=2)


def write_json_object(path: str, payload: Dict[str, Any]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def write_summary(path: str, summary_lines: List[str]) -> None:
    atomic_write_text(path, "\n".join(summary_lines) + "\n")


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def render_summary(summary: Dict[str, Any]) -> List[str]:
    requests_ = summary.get("requests") or {}
    lines = [
        f"Address: {summary.get('address')}",
        f"Origin: {summary.get('origin', {}).get('lat')}, {summary.get('origin', {}).get('lng')}",
        f"Radius: {summary.get('radius_m')}m (min sub-radius {summary.get('min_radius_m')}m, cap {summary.get('cap')})",
        f"Place types: {', '.join(summary.get('place_types') or [])}",
        "",
        "Search:",
    ]
    for category, stats in (summary.get("searches") or {}).items():
        lines.append(
            f"- {category}: {_plural(stats.get('calls', 0), 'search point')}, "
            f"{stats.get('results', 0)} raw results, max depth {stats.get('max_depth', 0)}"
        )
    bound = summary.get("max_calls_per_category")
    if bound is not None:
        lines.append(f"- call bound per category: {bound}")
    saturated = summary.get("saturated_regions") or []
    if saturated:
        lines.append(f"- WARNING: {_plural(len(saturated), 'region')} still hit the cap at the minimum radius")
    lines.extend(
        [
            "",
            "Results:",
            f"- unique places: {summary.get('unique_places', 0)}",
            f"- within radius: {summary.get('kept_places', 0)}",
            f"- too far: {summary.get('too_far', 0)}",
            f"- excluded: {summary.get('excluded', 0)}",
            "",
            "API Usage Summary:",
            f"- Geocoding API: {_plural(requests_.get('geocoding', 0), 'call')}",
            f"- Places Search API: {_plural(requests_.get('places_search', 0), 'call')}",
            f"- Places Details API: {_plural(requests_.get('places_details', 0), 'call')}",
            f"- Cache hits: {requests_.get('cache_hits', 0)}",
            f"- Total: {_plural(requests_.get('total', 0), 'API call')}",
        ]
    )
    return lines


class ProgressReporter:
    def __init__(
        self,
        output_path: Optional[str],
        log_every: int = 10,
        write_interval_seconds: float = 5.0,
        logger: Optional[logging.Logger] = None,
        counters: Optional[RequestCounters] = None,
    ) -> None:
        self.output_path = output_path
        self.log_every = max(1, int(log_every)) if log_every else 0
        self.write_interval_seconds = float(write_interval_seconds)
        self.logger = logger or logging.getLogger(__name__)
        self._counters = counters
        self.stage = "init"
        self.processed_count = 0
        self.total_estimate: Optional[int] = None
        self._next_log = self.log_every if self.log_every else 0
        self._last_write = 0.0

    def set_stage(self, stage: str, total_estimate: Optional[int] = None) -> None:
        self.stage = stage
        self.processed_count = 0
        self.total_estimate = total_estimate
        self._next_log = self.log_every if self.log_every else 0
        self._write_if_due(force=True)

    def advance(self, count: int = 1) -> None:
        if count <= 0:
            return
        self.processed_count += count
        if self.log_every and self.processed_count >= self._next_log:
            if self.total_estimate is None:
                self.logger.info(
                    "Progress: stage=%s processed=%s api_calls=%s",
                    self.stage,
                    self.processed_count,
                    self._total_calls(),
                )
            else:
                self.logger.info(
                    "Progress: stage=%s processed=%s/%s api_calls=%s",
                    self.stage,
                    self.processed_count,
                    self.total_estimate,
                    self._total_calls(),
                )
            self._next_log += self.log_every
        self._write_if_due()

    def _total_calls(self) -> int:
        if self._counters is None:
            return 0
        return int(self._counters.total)

    def _write_if_due(self, force: bool = False) -> None:
        if not self.output_path:
            return
        now = time.monotonic()
        if not force and (now - self._last_write) < self.write_interval_seconds:
            return
        payload: Dict[str, Any] = {
            "stage": self.stage,
            "processed_count": self.processed_count,
            "total_estimate": self.total_estimate,
            "requests": self._counters.as_dict() if self._counters is not None else {},
            "timestamp": utc_now_iso(),
        }
        with atomic_writer(self.output_path, mode="w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        self._last_write = now
