"""Error taxonomy for the search pipeline."""
from __future__ import annotations

from typing import Optional


class PlaceFinderError(RuntimeError):
    pass


class HttpError(PlaceFinderError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GeocodeError(PlaceFinderError):
    """The address could not be resolved; the run cannot continue."""


class AreaSearchError(PlaceFinderError):
    """A nearby-search call failed; the whole area search is abandoned."""


class DetailFetchError(PlaceFinderError):
    """A details call failed; enrichment falls back to empty fields."""


class ExclusionListError(PlaceFinderError):
    """The exclude list could not be read; it is treated as empty."""
