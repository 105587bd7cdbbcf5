"""
Selector hub: the content type selection state machine.

This module owns the currently selected library, its params and metadata, and
reacts to the three things an author can do in the selector:
- pick a content type from the catalog (select)
- upload a packaged content bundle (upload)
- receive a refreshed catalog (update_catalog)

Uploads are the involved case. The bundle's main library is upgraded when a
newer version is installed locally, the params are filtered by the backend
against the target semantics, and every local file in the result is tagged
provisional. Only then is the new selection applied, or staged behind a
confirmation dialog when something was already selected.

States:
    IDLE                   active selection in force (possibly empty)
    APPLYING               upload being upgraded/filtered/tagged
    AWAITING_CONFIRMATION  candidate staged, dialog shown

Invariants:
    - Library, params and metadata are replaced together as one Selection
    - A failed transition never touches the active Selection
    - Within an upload: upgrade -> filter -> tag -> apply/confirm, strictly ordered

Example:
    >>> hub = SelectorHub(catalog, gateway, dialog=dialog, panel=panel)
    >>> hub.subscribe(HubSignal.SELECTED, on_selected)
    >>> result = await hub.upload(event)
    >>> if result.state is HubState.AWAITING_CONFIRMATION:
    ...     hub.confirm()
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from .cache import SemanticsCache
from .catalog import Catalog, ContentTypeDescriptor, find_upgrade
from .config import Settings
from .errors import HubError, HubStateError, ManifestError, NotInstalledError, UpgradeError
from .gateway import ContentUpgrader, FilterResult
from .schema import ComponentId, machine_name_of
from .walker import ParameterWalker

logger = logging.getLogger(__name__)


class HubState(Enum):
    """Selector hub states."""

    IDLE = "idle"
    APPLYING = "applying"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


class HubSignal(Enum):
    """Signals emitted to the embedding editor."""

    SELECTED = "selected"
    RESIZE = "resize"
    PASTE = "paste"


class HubPanel(Protocol):
    """Selector panel rendered by the embedding UI."""

    def set_panel_title(self, title: str, expanded: bool) -> None: ...

    def set_can_paste(self, can_paste: bool) -> None: ...

    def offset_top(self) -> int: ...


class ConfirmationDialog(Protocol):
    """Dialog asking the author to confirm replacing the content type."""

    def show(self, anchor_y: int) -> None: ...


class ParameterFilter(Protocol):
    """Backend filter round trip."""

    async def filter_parameters(
        self,
        library: str,
        params: Any,
        metadata: Optional[Dict[str, Any]],
    ) -> FilterResult: ...


@dataclass
class Metadata:
    """Authorship and licensing metadata of a content.

    Attributes mirror the bundle manifest fields.
    """

    title: Optional[str] = None
    authors: Optional[List[Dict[str, Any]]] = None
    license: Optional[str] = None
    license_version: Optional[str] = None
    license_extras: Optional[str] = None
    year_from: Optional[int] = None
    year_to: Optional[int] = None
    source: Optional[str] = None
    changes: Optional[List[Dict[str, Any]]] = None
    author_comments: Optional[str] = None
    default_language: Optional[str] = None

    _WIRE_NAMES = {
        "title": "title",
        "authors": "authors",
        "license": "license",
        "license_version": "licenseVersion",
        "license_extras": "licenseExtras",
        "year_from": "yearFrom",
        "year_to": "yearTo",
        "source": "source",
        "changes": "changes",
        "author_comments": "authorComments",
        "default_language": "defaultLanguage",
    }

    @classmethod
    def from_manifest(cls, manifest: Dict[str, Any]) -> Metadata:
        """Pick metadata fields out of a bundle manifest."""
        return cls(**{attr: manifest.get(wire) for attr, wire in cls._WIRE_NAMES.items()})

    def to_dict(self) -> Dict[str, Any]:
        """Wire form (camelCase keys), unset fields omitted."""
        result: Dict[str, Any] = {}
        for attr, wire in self._WIRE_NAMES.items():
            value = getattr(self, attr)
            if value is not None:
                result[wire] = value
        return result


@dataclass(frozen=True)
class Selection:
    """Library with the params and metadata that belong to it.

    Attributes:
        library: Library string ("machineName major.minor"), None if nothing selected
        params: Parameter tree, None when the editor should use the library defaults
        metadata: Metadata in wire form
    """

    library: Optional[str] = None
    params: Any = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def machine_name(self) -> Optional[str]:
        return machine_name_of(self.library) if self.library else None


@dataclass
class UploadPayload:
    """Upload signal payload.

    Attributes:
        content_types: Catalog delivered along with the upload
        manifest: Bundle manifest (h5p.json)
        content: Parameter tree of the bundle
    """

    content_types: Catalog
    manifest: Dict[str, Any]
    content: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> UploadPayload:
        """Create from the upload event.

        Raises:
            ManifestError: If the event has no manifest
        """
        manifest = data.get("h5p")
        if not isinstance(manifest, dict):
            raise ManifestError("Upload carries no bundle manifest")
        try:
            catalog = Catalog.from_list(data.get("contentTypes"))
        except (KeyError, TypeError, ValueError) as exc:
            raise ManifestError(f"Upload carries a malformed catalog: {exc}") from exc
        return cls(content_types=catalog, manifest=manifest, content=data.get("content"))

    def main_library(self) -> ComponentId:
        """Version of the main library, taken from the preloaded dependencies.

        Raises:
            ManifestError: If the main library is not among the dependencies
        """
        main = self.manifest.get("mainLibrary")
        for dependency in self.manifest.get("preloadedDependencies") or ():
            if dependency.get("machineName") != main:
                continue
            try:
                return ComponentId(
                    main, int(dependency["majorVersion"]), int(dependency["minorVersion"])
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ManifestError(
                    f"Malformed version for main library {main}", main_library=main
                ) from exc
        raise ManifestError(
            f"Main library {main!r} not found in preloaded dependencies", main_library=main
        )

    def metadata(self) -> Metadata:
        return Metadata.from_manifest(self.manifest)


@dataclass
class TransitionResult:
    """Outcome of an upload.

    Attributes:
        success: Whether the upload produced a new selection
        state: Hub state after the upload
        library: Library of the new selection
        upgraded_from: Library version the content was upgraded from
        files_tagged: Number of file paths tagged provisional
        error: Error message if failed
        error_code: HubError code if failed
    """

    success: bool
    state: HubState
    library: Optional[str] = None
    upgraded_from: Optional[str] = None
    files_tagged: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None


class SelectorHub:
    """Content type selector state machine.

    Example:
        >>> hub = SelectorHub(Catalog.from_list(feed), gateway)
        >>> hub.select(hub.get_content_type("H5P.Image"))
        <HubState.IDLE: 'idle'>
    """

    def __init__(
        self,
        catalog: Catalog | Iterable[ContentTypeDescriptor],
        gateway: ParameterFilter,
        *,
        cache: Optional[SemanticsCache] = None,
        upgrader: Optional[ContentUpgrader] = None,
        dialog: Optional[ConfirmationDialog] = None,
        panel: Optional[HubPanel] = None,
        settings: Optional[Settings] = None,
        selected_library: Optional[str] = None,
    ) -> None:
        """Initialize hub.

        Args:
            catalog: Installed content types
            gateway: Filter endpoint client; also the default upgrader and
                semantics loader when it implements those
            cache: Semantics cache (default: one loading through gateway)
            upgrader: Content upgrade procedure (default: gateway)
            dialog: Confirmation dialog
            panel: Selector panel
            settings: Hub settings
            selected_library: Library already selected when the editor opens
        """
        self.gateway = gateway
        self.upgrader: ContentUpgrader = upgrader or gateway
        self.cache = cache or SemanticsCache(gateway)
        self.walker = ParameterWalker(self.cache)
        self.dialog = dialog
        self.panel = panel
        self.settings = settings or Settings()

        self._catalog = catalog if isinstance(catalog, Catalog) else Catalog(catalog)
        self._active = Selection(library=selected_library)
        self._staged: Optional[Selection] = None
        self._state = HubState.IDLE
        self._subscribers: Dict[HubSignal, List[Callable[[], None]]] = defaultdict(list)

        # Panel starts expanded only when nothing is selected yet
        self.expanded = selected_library is None

    # -- accessors -----------------------------------------------------------

    @property
    def state(self) -> HubState:
        return self._state

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def active(self) -> Selection:
        """Selection currently in force."""
        return self._active

    @property
    def candidate(self) -> Optional[Selection]:
        """Selection waiting for confirmation."""
        return self._staged

    @property
    def library(self) -> Optional[str]:
        return self._active.library

    @property
    def params(self) -> Any:
        return self._active.params

    @property
    def metadata(self) -> Optional[Dict[str, Any]]:
        return self._active.metadata

    def get_content_type(self, machine_name: str) -> Optional[ContentTypeDescriptor]:
        """Look up a content type in the current catalog."""
        return self._catalog.get(machine_name)

    def panel_title(self, library: Optional[str] = None) -> Optional[str]:
        """Title shown on the panel for library (default: active library)."""
        library = library or self._active.library
        if not library:
            return None
        return self._catalog.title_for(machine_name_of(library))

    def get_selected_library(self) -> Dict[str, Any]:
        """Active library with its tutorial and example links."""
        selected: Dict[str, Any] = {"uberName": self._active.library}
        machine_name = self._active.machine_name
        content_type = self._catalog.get(machine_name) if machine_name else None
        if content_type:
            selected["tutorialUrl"] = content_type.tutorial
            selected["exampleUrl"] = content_type.example
        return selected

    # -- signals -------------------------------------------------------------

    def subscribe(self, signal: HubSignal, callback: Callable[[], None]) -> None:
        """Call callback whenever signal is emitted."""
        self._subscribers[signal].append(callback)

    def unsubscribe(self, signal: HubSignal, callback: Callable[[], None]) -> None:
        if callback in self._subscribers[signal]:
            self._subscribers[signal].remove(callback)

    def _emit(self, signal: HubSignal) -> None:
        logger.debug(f"Emitting {signal.value}")
        for callback in list(self._subscribers[signal]):
            callback()

    def notify_resize(self) -> None:
        """Relay a panel resize to the editor."""
        self._emit(HubSignal.RESIZE)

    def notify_paste(self) -> None:
        """Relay a paste request to the editor."""
        self._emit(HubSignal.PASTE)

    # -- transitions ---------------------------------------------------------

    def update_catalog(self, catalog: Catalog | Iterable[ContentTypeDescriptor]) -> None:
        """Replace the catalog used for lookups. The selection is unaffected."""
        self._catalog = catalog if isinstance(catalog, Catalog) else Catalog(catalog)
        logger.debug(f"Catalog updated ({len(self._catalog)} content types)")

    def select(self, content_type: ContentTypeDescriptor) -> HubState:
        """Handle a content type picked from the catalog.

        Raises:
            HubStateError: If an upload is being applied
            NotInstalledError: If the content type has no local version
        """
        if self._state is HubState.APPLYING:
            raise HubStateError("Cannot select while an upload is being applied", state=self._state.value)

        current = self._staged or self._active
        if content_type.machine_name == current.machine_name:
            return self._state

        if not content_type.installed:
            raise NotInstalledError(
                f"{content_type.machine_name} is not installed locally",
                machine_name=content_type.machine_name,
            )

        library = str(content_type.to_component_id(use_local_version=True))
        if self._active.library is None:
            logger.info(f"Selected {library}")
            self._active = Selection(library=library)
            self._emit(HubSignal.SELECTED)
            return self._state

        # Params and metadata come from the library defaults once confirmed
        self._stage(Selection(library=library))
        return self._state

    async def upload(self, payload: UploadPayload | Dict[str, Any]) -> TransitionResult:
        """Handle an uploaded content bundle.

        Never raises for HubError failures: they are logged and reported in
        the result, with the active selection left untouched.
        """
        if self._state is HubState.APPLYING:
            error = HubStateError("An upload is already being applied", state=self._state.value)
            logger.warning(error.message)
            return TransitionResult(
                success=False, state=self._state, error=error.message, error_code=error.code
            )

        self._staged = None
        self._state = HubState.APPLYING
        try:
            if not isinstance(payload, UploadPayload):
                payload = UploadPayload.from_dict(payload)
            self._catalog = payload.content_types
            selection, upgraded_from, files_tagged = await self._prepare_upload(payload)
        except HubError as exc:
            logger.error(f"Upload abandoned [{exc.code}]: {exc.message}")
            self._state = HubState.IDLE
            return TransitionResult(
                success=False,
                state=self._state,
                error=exc.message,
                error_code=exc.code,
            )
        except BaseException:
            self._state = HubState.IDLE
            raise

        if self._active.library is None:
            logger.info(f"Selected uploaded {selection.library}")
            self._active = selection
            self._state = HubState.IDLE
            self._emit(HubSignal.SELECTED)
        else:
            self._stage(selection)

        return TransitionResult(
            success=True,
            state=self._state,
            library=selection.library,
            upgraded_from=upgraded_from,
            files_tagged=files_tagged,
        )

    async def _prepare_upload(self, payload: UploadPayload) -> tuple[Selection, Optional[str], int]:
        uploaded = payload.main_library()
        library = uploaded
        params = payload.content
        metadata: Optional[Dict[str, Any]] = payload.metadata().to_dict()
        upgraded_from: Optional[str] = None

        upgrade = find_upgrade(uploaded, self._catalog)
        if upgrade is not None:
            target = upgrade.to_component_id(use_local_version=True)
            logger.info(f"Upgrading uploaded content from {uploaded} to {target}")
            try:
                result = await self.upgrader.upgrade_content(uploaded, target, params, metadata)
            except UpgradeError:
                self._restore_panel()
                raise
            params, metadata = result.params, result.metadata
            library, upgraded_from = target, str(uploaded)

        filtered = await self.gateway.filter_parameters(str(library), params, metadata)
        tagger = await self.walker.tag_files(
            str(library), filtered.params, self.settings.provisional_suffix
        )
        selection = Selection(
            library=filtered.library, params=filtered.params, metadata=filtered.metadata
        )
        return selection, upgraded_from, tagger.tagged

    def confirm(self) -> Selection:
        """Accept the staged candidate as the active selection.

        Raises:
            HubStateError: If nothing is awaiting confirmation
        """
        staged = self._require_staged()
        logger.info(f"Confirmed change from {self._active.library} to {staged.library}")
        self._active = staged
        self._staged = None
        self._state = HubState.IDLE
        self._emit(HubSignal.SELECTED)
        return self._active

    def reject(self) -> Selection:
        """Discard the staged candidate and keep the active selection.

        Raises:
            HubStateError: If nothing is awaiting confirmation
        """
        staged = self._require_staged()
        logger.info(f"Rejected change to {staged.library}, keeping {self._active.library}")
        self._staged = None
        self._state = HubState.IDLE
        self._restore_panel()
        return self._active

    def reset_selection(
        self,
        library: str,
        params: Any,
        metadata: Optional[Dict[str, Any]],
        expanded: bool,
    ) -> None:
        """Force the active selection, e.g. when the editor reloads content."""
        self._active = Selection(library=library, params=params, metadata=metadata)
        self._staged = None
        self._state = HubState.IDLE
        self._restore_panel(expanded)

    def set_can_paste(self, can_paste: bool) -> None:
        if self.panel is not None:
            self.panel.set_can_paste(can_paste)

    # -- helpers -------------------------------------------------------------

    def _require_staged(self) -> Selection:
        if self._state is not HubState.AWAITING_CONFIRMATION or self._staged is None:
            raise HubStateError("No content type change awaiting confirmation", state=self._state.value)
        return self._staged

    def _stage(self, selection: Selection) -> None:
        self._staged = selection
        self._state = HubState.AWAITING_CONFIRMATION
        logger.info(f"Change from {self._active.library} to {selection.library} needs confirmation")
        if self.dialog is not None:
            self.dialog.show(self.panel.offset_top() if self.panel is not None else 0)

    def _restore_panel(self, expanded: bool = True) -> None:
        title = self.panel_title()
        self.expanded = expanded
        if self.panel is not None and title is not None:
            self.panel.set_panel_title(title, expanded)
