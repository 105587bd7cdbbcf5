"""
Semantics cache for the selector hub.

This module provides the process-lifetime cache of library semantics:
- SemanticsLoader: Protocol for anything that can fetch semantics
- SemanticsCache: Lazily populated cache with in-flight de-duplication
- InMemorySemanticsLoader: Loader backed by a dict, for tests and local use

The cache is an owned object: create one per editor session and pass it to
the walker and the hub. Nothing here is module-global.

Invariants:
    - At most one fetch in flight per library
    - Entries are never evicted or mutated after insertion
    - Failed fetches are not cached

Example:
    >>> cache = SemanticsCache(InMemorySemanticsLoader({"H5P.Text 1.0": []}))
    >>> fields = await cache.ensure("H5P.Text 1.0")
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .errors import HubError, SemanticsFetchError
from .schema import SemanticsField, parse_semantics

logger = logging.getLogger(__name__)

Semantics = tuple[SemanticsField, ...]


@runtime_checkable
class SemanticsLoader(Protocol):
    """Source of raw semantics JSON."""

    async def load_semantics(self, library: str) -> List[Dict[str, Any]]:
        """Fetch the semantics array of library ("machineName major.minor")."""
        ...


class SemanticsCache:
    """Library semantics keyed by library string.

    Concurrent ensure() calls for the same uncached library share one
    fetch through a registry of in-flight futures.

    Attributes:
        loader: Where semantics are fetched from
    """

    def __init__(self, loader: SemanticsLoader) -> None:
        """Initialize empty cache.

        Args:
            loader: Semantics source
        """
        self.loader = loader
        self._semantics: Dict[str, Semantics] = {}
        self._in_flight: Dict[str, asyncio.Future[Semantics]] = {}

    def __contains__(self, library: object) -> bool:
        return library in self._semantics

    def __len__(self) -> int:
        return len(self._semantics)

    def get(self, library: str) -> Optional[Semantics]:
        """Cached semantics, or None without fetching."""
        return self._semantics.get(library)

    async def ensure(self, library: str) -> Semantics:
        """Return semantics for library, fetching them once if needed.

        Raises:
            SemanticsFetchError: If the fetch fails
        """
        cached = self._semantics.get(library)
        if cached is not None:
            return cached

        pending = self._in_flight.get(library)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch(library))
            pending.add_done_callback(_consume_exception)
            self._in_flight[library] = pending
        # Shield so one cancelled waiter does not cancel the shared fetch
        return await asyncio.shield(pending)

    async def _fetch(self, library: str) -> Semantics:
        logger.debug("Loading semantics for %s", library)
        try:
            raw = await self.loader.load_semantics(library)
            semantics = parse_semantics(raw)
        except SemanticsFetchError:
            raise
        except (HubError, ValueError, TypeError, KeyError) as exc:
            raise SemanticsFetchError(
                f"Failed to load semantics for {library}: {exc}", library=library
            ) from exc
        finally:
            self._in_flight.pop(library, None)

        self._semantics[library] = semantics
        logger.debug("Cached semantics for %s (%d fields)", library, len(semantics))
        return semantics


def _consume_exception(future: asyncio.Future[Semantics]) -> None:
    # Waiters may all have been cancelled; mark a failure as retrieved
    if not future.cancelled():
        future.exception()


class InMemorySemanticsLoader:
    """Semantics loader backed by a dict.

    Useful for:
    - Unit tests that need semantics without a backend
    - Counting fetches to verify cache de-duplication

    Attributes:
        fetch_counts: Number of load_semantics calls per library
        delay: Seconds to sleep before answering, to let fetches overlap
    """

    def __init__(
        self,
        semantics: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        delay: float = 0.0,
    ) -> None:
        self._semantics = dict(semantics or {})
        self.delay = delay
        self.fetch_counts: Counter[str] = Counter()

    def add(self, library: str, semantics: List[Dict[str, Any]]) -> None:
        """Register semantics for a library."""
        self._semantics[library] = semantics

    async def load_semantics(self, library: str) -> List[Dict[str, Any]]:
        self.fetch_counts[library] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        if library not in self._semantics:
            raise SemanticsFetchError(f"Unknown library: {library}", library=library)
        return self._semantics[library]
