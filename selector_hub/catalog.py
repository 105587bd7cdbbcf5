"""
Content type catalog and upgrade resolution.

The catalog is the list of content types known to the editor, as delivered by
the hub feed. Each entry carries two versions: the one installed locally and
the one declared by the catalog or an uploaded bundle.

Invariants:
    - Lookups are by machine name; first match wins
    - An upgrade is only offered to a strictly newer installed version
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from .schema import ComponentId


@dataclass(frozen=True)
class ContentTypeDescriptor:
    """Catalog entry for one content type.

    Attributes:
        machine_name: Library machine name
        title: Display title
        major_version: Declared major version
        minor_version: Declared minor version
        local_major_version: Installed major version (None if not installed)
        local_minor_version: Installed minor version (None if not installed)
        tutorial: Tutorial URL
        example: Example URL
    """

    machine_name: str
    title: str = ""
    major_version: int = 0
    minor_version: int = 0
    local_major_version: int | None = None
    local_minor_version: int | None = None
    tutorial: str | None = None
    example: str | None = None

    @property
    def installed(self) -> bool:
        """Whether a local version is installed."""
        return self.local_major_version is not None and self.local_minor_version is not None

    @property
    def display_title(self) -> str:
        """Title, falling back to the machine name."""
        return self.title or self.machine_name

    def to_component_id(self, use_local_version: bool = False) -> ComponentId:
        """Build a ComponentId from the local or the declared version.

        Raises:
            ValueError: If the local version is requested but not installed
        """
        if use_local_version:
            if not self.installed:
                raise ValueError(f"{self.machine_name} is not installed locally")
            return ComponentId(self.machine_name, self.local_major_version, self.local_minor_version)
        return ComponentId(self.machine_name, self.major_version, self.minor_version)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentTypeDescriptor:
        """Create from catalog JSON."""
        return cls(
            machine_name=data["machineName"],
            title=data.get("title") or "",
            major_version=int(data.get("majorVersion") or 0),
            minor_version=int(data.get("minorVersion") or 0),
            local_major_version=_optional_int(data.get("localMajorVersion")),
            local_minor_version=_optional_int(data.get("localMinorVersion")),
            tutorial=data.get("tutorial"),
            example=data.get("example"),
        )


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


class Catalog:
    """Ordered collection of content type descriptors."""

    def __init__(self, descriptors: Iterable[ContentTypeDescriptor] = ()) -> None:
        self._descriptors: tuple[ContentTypeDescriptor, ...] = tuple(descriptors)

    def __iter__(self) -> Iterator[ContentTypeDescriptor]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def get(self, machine_name: str) -> ContentTypeDescriptor | None:
        """Look up a content type by machine name."""
        for descriptor in self._descriptors:
            if descriptor.machine_name == machine_name:
                return descriptor
        return None

    def title_for(self, machine_name: str) -> str:
        """Panel title for a machine name; the name itself if not catalogued."""
        descriptor = self.get(machine_name)
        return descriptor.display_title if descriptor else machine_name

    @classmethod
    def from_list(cls, data: Iterable[dict[str, Any]] | dict[str, Any] | None) -> Catalog:
        """Create from catalog JSON.

        Accepts a bare list or the hub feed shape {"libraries": [...]}.
        """
        if data is None:
            return cls()
        if isinstance(data, dict):
            data = data.get("libraries") or []
        return cls(ContentTypeDescriptor.from_dict(item) for item in data)


def find_upgrade(
    candidate: ComponentId,
    catalog: Iterable[ContentTypeDescriptor],
) -> ContentTypeDescriptor | None:
    """Find a locally installed newer version of candidate.

    Args:
        candidate: Version declared by the uploaded bundle
        catalog: Installed content types

    Returns:
        Descriptor whose local version is strictly newer than candidate,
        None if the type is not installed or not newer.
    """
    for descriptor in catalog:
        if not candidate.same_component(descriptor.to_component_id()):
            continue
        if not descriptor.installed:
            return None
        local = descriptor.to_component_id(use_local_version=True)
        return descriptor if local.is_newer_than(candidate) else None
    return None
