"""
Provisional file tagging.

Files referenced from uploaded content are only made permanent when the
content is saved. Until then their paths carry a provisional marker so an
abandoned change leaves no committed files behind.
"""

from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

PROVISIONAL_SUFFIX = "#tmp"

_EXTERNAL_PATH = re.compile(r"^https?://", re.IGNORECASE)


def is_external(path: str) -> bool:
    """Whether path points to an external http(s) resource."""
    return bool(_EXTERNAL_PATH.match(path))


def tag_provisional(entry: dict[str, Any], suffix: str = PROVISIONAL_SUFFIX) -> bool:
    """Append the provisional marker to a file entry's path.

    External resources and paths already carrying the marker are left alone.

    Returns:
        True if the path was changed
    """
    path = entry.get("path")
    if not isinstance(path, str) or is_external(path):
        return False
    if path.endswith(suffix):
        return False
    entry["path"] = path + suffix
    return True


class FileTagger:
    """Callable file visitor that tags paths and counts what it did.

    Passed to ParameterWalker.walk() while handling an upload.
    """

    def __init__(self, suffix: str = PROVISIONAL_SUFFIX) -> None:
        self.suffix = suffix
        self.tagged = 0
        self.skipped = 0

    def __call__(self, entry: dict[str, Any]) -> None:
        if tag_provisional(entry, self.suffix):
            self.tagged += 1
        else:
            self.skipped += 1
            logger.debug("Left file untouched: %s", entry.get("path"))
