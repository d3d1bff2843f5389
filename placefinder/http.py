"""HTTP client with fixed-delay retry and per-run request metrics."""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from .errors import HttpError

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


@dataclass
class RequestMetrics:
    geocoding: int = 0
    places_search: int = 0
    places_details: int = 0
    cache_hits: int = 0

    @property
    def total(self) -> int:
        return self.geocoding + self.places_search + self.places_details

    def inc_network(self, kind: str) -> None:
        if kind == "geocoding":
            self.geocoding += 1
        elif kind == "places_search":
            self.places_search += 1
        elif kind == "places_details":
            self.places_details += 1
        else:
            raise ValueError(f"Unknown request kind: {kind}")

    def inc_cache_hit(self) -> None:
        self.cache_hits += 1

    def as_dict(self) -> Dict[str, int]:
        return {
            "geocoding": self.geocoding,
            "places_search": self.places_search,
            "places_details": self.places_details,
            "cache_hits": self.cache_hits,
            "total": self.total,
        }


class HttpClient:
    def __init__(
        self,
        api_key: str,
        timeout: int = 20,
        retry_max: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.retry_max = max(1, int(retry_max))
        self.retry_delay = retry_delay
        self.sleep = sleep
        self.session = requests.Session()

    def post_json(
        self,
        url: str,
        body: Dict[str, Any],
        field_mask: str,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        headers = {
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": field_mask,
            "Content-Type": "application/json",
        }
        if extra_headers:
            headers.update(extra_headers)
        payload = json.dumps(body)
        return self._request(
            lambda: self.session.post(url, data=payload, headers=headers, timeout=self.timeout),
            url,
        )

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        field_mask: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers: Dict[str, str] = {}
        if field_mask is not None:
            # Places v1 authenticates by header; the legacy Geocoding API by query param.
            headers["X-Goog-Api-Key"] = self.api_key
            headers["X-Goog-FieldMask"] = field_mask
        else:
            params = dict(params or {})
            params["key"] = self.api_key
        return self._request(
            lambda: self.session.get(url, params=params, headers=headers, timeout=self.timeout),
            url,
        )

    def _request(self, send: Callable[[], requests.Response], url: str) -> Dict[str, Any]:
        for attempt in range(1, self.retry_max + 1):
            try:
                resp = send()
            except requests.RequestException as exc:
                if attempt >= self.retry_max:
                    raise HttpError(f"Request to {url} failed: {exc}") from exc
                logger.warning("Request error from %s (attempt %s): %s", url, attempt, exc)
                self.sleep(self.retry_delay)
                continue

            status = resp.status_code
            if status == 200:
                try:
                    data = resp.json()
                except ValueError as exc:
                    logger.error("Non-JSON response from %s", url)
                    raise HttpError(f"Non-JSON response from {url}", status) from exc
                if not isinstance(data, dict):
                    raise HttpError(f"Unexpected payload from {url}: {type(data).__name__}", status)
                return data

            if status in RETRYABLE_STATUSES and attempt < self.retry_max:
                logger.warning("HTTP %s from %s (attempt %s)", status, url, attempt)
                self.sleep(self.retry_delay)
                continue

            logger.error("HTTP %s from %s", status, url)
            raise HttpError(f"HTTP {status} from {url}: {_error_text(resp)}", status)

        raise RuntimeError("Unexpected HTTP retry loop exit")


def _error_text(resp: requests.Response) -> str:
    try:
        return json.dumps(resp.json())
    except ValueError:
        return (getattr(resp, "text", "") or "")[:200]
