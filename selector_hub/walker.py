"""
Parameter tree walker.

Walks a parameter tree alongside its semantics and calls a visitor on every
file entry it reaches. Nested libraries are descended into after their
semantics have been loaded through the SemanticsCache, which is the only
point where a walk suspends on I/O.

Fan-out/fan-in is per sibling set: every dispatched field of a semantics
array (or every element of a list) runs as its own coroutine and the parent
returns once all of them have returned, or cancels the remaining ones as
soon as one fails.

Invariants:
    - Fields absent from (or null in) the parameter tree are skipped without
      visiting or fetching
    - Every reachable file entry is visited exactly once per walk
    - A single-field group without sub-content boundary is transparent
    - A failing nested library fails the whole walk and cancels its
      still-running siblings

Example:
    >>> walker = ParameterWalker(cache)
    >>> tagger = await walker.tag_files("H5P.Image 1.1", params)
    >>> tagger.tagged
    1
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from typing import Any

from .cache import SemanticsCache
from .errors import SemanticsFetchError, TreeWalkError
from .files import PROVISIONAL_SUFFIX, FileTagger
from .schema import FieldKind, SemanticsField

logger = logging.getLogger(__name__)

FileVisitor = Callable[[dict[str, Any]], None]


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _has_path(entry: Any) -> bool:
    return isinstance(entry, Mapping) and isinstance(entry.get("path"), str)


async def _run_siblings(branches: Iterable[Awaitable[None]]) -> None:
    """Run sibling branches concurrently; the first failure cancels the rest."""
    tasks = [asyncio.ensure_future(branch) for branch in branches]
    if not tasks:
        return

    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    errors = [task.exception() for task in tasks if not task.cancelled()]
    for error in errors:
        if error is not None:
            raise error


class ParameterWalker:
    """Walks parameter trees against semantics.

    Attributes:
        cache: Semantics cache used for nested libraries
    """

    def __init__(self, cache: SemanticsCache) -> None:
        self.cache = cache

    async def walk(
        self,
        semantics: Sequence[SemanticsField],
        params: Any,
        visit_file: FileVisitor,
        path: str = "",
    ) -> None:
        """Visit every file entry of params described by semantics.

        Args:
            semantics: Fields of the current level
            params: Parameter object of the current level
            visit_file: Called once per file entry
            path: Dotted field path of the current level, for errors

        Raises:
            TreeWalkError: If a nested library's semantics cannot be loaded
        """
        if not semantics or not isinstance(params, Mapping):
            return

        await _run_siblings(
            self._process_field(field, params[field.name], visit_file, _join(path, field.name))
            for field in semantics
            if params.get(field.name) is not None
        )

    async def _process_field(
        self,
        field: SemanticsField,
        value: Any,
        visit_file: FileVisitor,
        path: str,
    ) -> None:
        if value is None:
            return

        kind = field.kind
        if kind in (FieldKind.FILE, FieldKind.IMAGE):
            if _has_path(value):
                visit_file(value)
                original = value.get("originalImage")
                if _has_path(original):
                    visit_file(original)

        elif kind in (FieldKind.AUDIO, FieldKind.VIDEO):
            if isinstance(value, list):
                for entry in value:
                    if _has_path(entry):
                        visit_file(entry)

        elif kind == FieldKind.LIBRARY:
            if isinstance(value, Mapping) and value.get("library") and value.get("params") is not None:
                library = value["library"]
                try:
                    semantics = await self.cache.ensure(library)
                except SemanticsFetchError as exc:
                    raise TreeWalkError(
                        f"Cannot descend into {library} at '{path}': {exc.message}",
                        library=library,
                        path=path,
                    ) from exc
                await self.walk(semantics, value["params"], visit_file, path)

        elif kind == FieldKind.GROUP:
            if field.is_flattened_group:
                await self._process_field(field.fields[0], value, visit_file, path)
            else:
                await self.walk(field.fields, value, visit_file, path)

        elif kind == FieldKind.LIST:
            if isinstance(value, list) and value and field.field is not None:
                item = field.field
                await _run_siblings(
                    self._process_field(item, element, visit_file, f"{path}[{index}]")
                    for index, element in enumerate(value)
                )

        # FieldKind.OTHER is terminal

    async def tag_files(
        self,
        library: str,
        params: Any,
        suffix: str = PROVISIONAL_SUFFIX,
    ) -> FileTagger:
        """Mark every local file in params as provisional.

        Args:
            library: Library the params belong to
            params: Parameter tree, modified in place
            suffix: Provisional marker

        Returns:
            The FileTagger used, with its counters

        Raises:
            TreeWalkError: If any semantics along the way cannot be loaded
        """
        try:
            semantics = await self.cache.ensure(library)
        except SemanticsFetchError as exc:
            raise TreeWalkError(
                f"Cannot load semantics of {library}: {exc.message}", library=library
            ) from exc

        tagger = FileTagger(suffix)
        await self.walk(semantics, params, tagger)
        logger.info(
            f"Tagged {tagger.tagged} file(s) as provisional in {library} "
            f"({tagger.skipped} left untouched)"
        )
        return tagger
