"""
Schema types for the selector hub.

This module provides type definitions for content type semantics:
- ComponentId: Library identifier ("H5P.Image 1.1")
- FieldKind: Closed set of semantics field kinds
- SemanticsField: One entry of a library's semantics

Semantics arrive as JSON from the editor backend and are parsed once into
frozen SemanticsField trees; the walker only ever sees parsed fields.

Invariants:
    - ComponentId string form is "machineName major.minor"
    - Unknown field types map to FieldKind.OTHER
    - Parsed semantics are immutable

Example:
    >>> library = ComponentId.parse("H5P.Image 1.1")
    >>> str(library)
    'H5P.Image 1.1'
    >>> fields = parse_semantics([{"name": "file", "type": "image"}])
    >>> fields[0].kind
    <FieldKind.IMAGE: 'image'>
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class ComponentId:
    """Library identifier.

    Attributes:
        machine_name: Library machine name, e.g. "H5P.Image"
        major_version: Major version
        minor_version: Minor version
    """

    machine_name: str
    major_version: int
    minor_version: int

    def __post_init__(self) -> None:
        """Validate identifier."""
        if not self.machine_name:
            raise ValueError("machine_name cannot be empty")
        if self.major_version < 0 or self.minor_version < 0:
            raise ValueError(
                f"Versions must be non-negative, got {self.major_version}.{self.minor_version}"
            )

    def __str__(self) -> str:
        return f"{self.machine_name} {self.major_version}.{self.minor_version}"

    @property
    def version(self) -> tuple[int, int]:
        """(major, minor) tuple for ordering."""
        return (self.major_version, self.minor_version)

    def same_component(self, other: ComponentId) -> bool:
        """Whether both identifiers name the same library, ignoring version."""
        return self.machine_name == other.machine_name

    def is_newer_than(self, other: ComponentId) -> bool:
        """Whether this version is strictly newer than other's."""
        return self.version > other.version

    @classmethod
    def parse(cls, value: str) -> ComponentId:
        """Parse "machineName major.minor".

        Raises:
            ValueError: If the string has no version or a malformed one
        """
        name, _, version = value.strip().partition(" ")
        major, dot, minor = version.partition(".")
        if not name or not dot:
            raise ValueError(f"Invalid library identifier: {value!r}")
        try:
            return cls(name, int(major), int(minor))
        except ValueError as exc:
            raise ValueError(f"Invalid library identifier: {value!r}") from exc


def machine_name_of(library: str) -> str:
    """Machine name part of a library string, version or not."""
    return library.split(" ")[0]


class FieldKind(Enum):
    """Semantics field kinds the walker distinguishes."""

    FILE = "file"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    LIBRARY = "library"
    GROUP = "group"
    LIST = "list"
    OTHER = "other"

    @classmethod
    def from_str(cls, value: str | None) -> FieldKind:
        """Convert semantics type string to FieldKind.

        Scalar types (text, number, boolean, select, ...) all map to OTHER.
        """
        for kind in cls:
            if kind.value == value:
                return kind
        return cls.OTHER


@dataclass(frozen=True)
class SemanticsField:
    """A single semantics field.

    Attributes:
        name: Key of the field in the parameter object
        kind: Field kind
        fields: Child fields (groups only)
        field: Item template (lists only)
        is_sub_content: Group marks a sub-content boundary
        raw_type: Type string as declared in semantics
    """

    name: str
    kind: FieldKind
    fields: tuple[SemanticsField, ...] = ()
    field: SemanticsField | None = None
    is_sub_content: bool = False
    raw_type: str = ""

    @property
    def is_flattened_group(self) -> bool:
        """Single-field group without sub-content boundary.

        Such a group is transparent: its only child reads the group's own value.
        """
        return self.kind == FieldKind.GROUP and len(self.fields) == 1 and not self.is_sub_content


def parse_field(data: dict[str, Any]) -> SemanticsField:
    """Parse one semantics field from its JSON form.

    Raises:
        ValueError: If data is not an object
    """
    if not isinstance(data, dict):
        raise ValueError(f"Semantics field must be an object, got {type(data).__name__}")

    raw_type = data.get("type") or ""
    kind = FieldKind.from_str(raw_type)

    children: tuple[SemanticsField, ...] = ()
    item: SemanticsField | None = None
    if kind == FieldKind.GROUP:
        children = tuple(parse_field(child) for child in data.get("fields") or ())
    elif kind == FieldKind.LIST and data.get("field") is not None:
        item = parse_field(data["field"])

    return SemanticsField(
        name=data.get("name", ""),
        kind=kind,
        fields=children,
        field=item,
        # Backends send isSubContent as bool or as "1"/1
        is_sub_content=str(data.get("isSubContent", "")).lower() in ("true", "1"),
        raw_type=raw_type,
    )


def parse_semantics(data: list[dict[str, Any]] | None) -> tuple[SemanticsField, ...]:
    """Parse a semantics array. None or empty gives an empty tuple."""
    if not data:
        return ()
    return tuple(parse_field(item) for item in data)
