"""Exclude-list loading."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import FrozenSet, Union

from .errors import ExclusionListError

logger = logging.getLogger(__name__)


def read_exclude_list(path: Union[str, Path]) -> FrozenSet[str]:
    """Strict reader: raises ExclusionListError on unreadable or malformed files."""
    exclude_path = Path(path)
    try:
        payload = json.loads(exclude_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ExclusionListError(f"Failed to load {exclude_path}: {exc}") from exc
    if not isinstance(payload, list):
        raise ExclusionListError(f"{exclude_path} is not an array")
    return frozenset(item for item in payload if isinstance(item, str) and item)


def load_exclude_list(path: Union[str, Path]) -> FrozenSet[str]:
    """Exclude set for a run. A missing file is empty; a broken one is empty with a warning."""
    exclude_path = Path(path)
    if not exclude_path.exists():
        return frozenset()
    try:
        excluded = read_exclude_list(exclude_path)
    except ExclusionListError as exc:
        logger.warning("%s, ignoring", exc)
        return frozenset()
    if excluded:
        logger.info("Loaded %s excluded place(s) from %s", len(excluded), exclude_path)
    return excluded
