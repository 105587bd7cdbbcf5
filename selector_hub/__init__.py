"""
Selector hub - content type selection for the content editor.

This package handles what happens when an author replaces the content type
of the content being edited:
- Schema types and semantics parsing (ComponentId, SemanticsField)
- Semantics cache with de-duplicated async fetches
- Parameter tree walker and provisional file tagging
- Upgrade resolution against the installed catalog
- Gateway to the editor backend (filter, content upgrade, semantics)
- SelectorHub state machine tying it together

Example:
    >>> from selector_hub import Catalog, EditorGateway, SelectorHub, Settings
    >>>
    >>> settings = Settings()
    >>> async with EditorGateway(settings) as gateway:
    ...     hub = SelectorHub(Catalog.from_list(feed), gateway, settings=settings)
    ...     result = await hub.upload(upload_event)

Invariants:
    - Library, params and metadata are always replaced together
    - Failed transitions leave the active selection untouched
    - Local files of uploaded content are tagged provisional before use

Version: 1.0.0
"""

__version__ = "1.0.0"

from .cache import InMemorySemanticsLoader, SemanticsCache, SemanticsLoader
from .catalog import Catalog, ContentTypeDescriptor, find_upgrade
from .config import Settings, setup_logging
from .errors import (
    FilterResponseError,
    GatewayError,
    HubError,
    HubStateError,
    ManifestError,
    NotInstalledError,
    SemanticsFetchError,
    TreeWalkError,
    UpgradeError,
)
from .files import PROVISIONAL_SUFFIX, FileTagger, is_external, tag_provisional
from .gateway import ContentUpgrader, EditorGateway, FilterResult, UpgradeResult
from .hub import (
    HubSignal,
    HubState,
    Metadata,
    Selection,
    SelectorHub,
    TransitionResult,
    UploadPayload,
)
from .schema import ComponentId, FieldKind, SemanticsField, parse_semantics
from .walker import ParameterWalker

__all__ = [
    # Version
    "__version__",
    # Schema types
    "ComponentId",
    "FieldKind",
    "SemanticsField",
    "parse_semantics",
    # Catalog
    "Catalog",
    "ContentTypeDescriptor",
    "find_upgrade",
    # Cache
    "SemanticsCache",
    "SemanticsLoader",
    "InMemorySemanticsLoader",
    # Walking and tagging
    "ParameterWalker",
    "FileTagger",
    "tag_provisional",
    "is_external",
    "PROVISIONAL_SUFFIX",
    # Gateway
    "EditorGateway",
    "ContentUpgrader",
    "FilterResult",
    "UpgradeResult",
    # Hub
    "SelectorHub",
    "HubState",
    "HubSignal",
    "Selection",
    "Metadata",
    "UploadPayload",
    "TransitionResult",
    # Config
    "Settings",
    "setup_logging",
    # Errors
    "HubError",
    "SemanticsFetchError",
    "GatewayError",
    "FilterResponseError",
    "UpgradeError",
    "TreeWalkError",
    "ManifestError",
    "HubStateError",
    "NotInstalledError",
]
