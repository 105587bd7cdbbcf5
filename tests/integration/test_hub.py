"""
Integration tests for the selector hub.

Runs the hub against an in-memory semantics loader and a fake backend, with
mocked panel and dialog.

Tests cover:
- Catalog selection with and without an active content type
- Confirmation accept/reject
- Upload: upgrade -> filter -> tag -> apply/confirm
- Failure paths leaving the active selection untouched
- Signals and accessors
"""

import asyncio
import copy
from unittest.mock import MagicMock

import pytest

from selector_hub.cache import InMemorySemanticsLoader, SemanticsCache
from selector_hub.catalog import Catalog, ContentTypeDescriptor
from selector_hub.errors import (
    FilterResponseError,
    HubStateError,
    NotInstalledError,
    UpgradeError,
)
from selector_hub.gateway import FilterResult, UpgradeResult
from selector_hub.hub import (
    HubSignal,
    HubState,
    Metadata,
    Selection,
    SelectorHub,
    UploadPayload,
)

X_SEMANTICS = [
    {
        "name": "media",
        "type": "group",
        "fields": [{"name": "image", "type": "image"}],
    },
    {"name": "intro", "type": "text"},
]

CATALOG_FEED = [
    {
        "machineName": "X",
        "title": "Thing X",
        "majorVersion": 1,
        "minorVersion": 2,
        "localMajorVersion": 1,
        "localMinorVersion": 2,
        "tutorial": "https://example.com/x-tutorial",
        "example": "https://example.com/x-example",
    },
    {
        "machineName": "Y",
        "title": "Thing Y",
        "majorVersion": 1,
        "minorVersion": 0,
        "localMajorVersion": 1,
        "localMinorVersion": 0,
    },
]


class FakeBackend:
    """Filter and upgrade endpoints recording their calls."""

    def __init__(self):
        self.calls = []
        self.upgrade_error = None
        self.filter_error = None
        self.filter_gate = None

    async def upgrade_content(self, old_library, new_library, params, metadata):
        self.calls.append(("upgrade", str(old_library), str(new_library)))
        await asyncio.sleep(0)
        if self.upgrade_error:
            raise self.upgrade_error
        upgraded = copy.deepcopy(params)
        upgraded["upgraded"] = True
        return UpgradeResult(params=upgraded, metadata=metadata)

    async def filter_parameters(self, library, params, metadata):
        self.calls.append(("filter", library))
        if self.filter_gate is not None:
            await self.filter_gate.wait()
        await asyncio.sleep(0)
        if self.filter_error:
            raise self.filter_error
        return FilterResult(library=library, params=copy.deepcopy(params), metadata=metadata)


def upload_event(version=(1, 0), image_path="images/a.png", main="X"):
    """Upload signal payload for a bundle of X."""
    return {
        "contentTypes": copy.deepcopy(CATALOG_FEED),
        "h5p": {
            "title": "Uploaded",
            "mainLibrary": main,
            "license": "CC BY",
            "yearFrom": 2020,
            "authorComments": "hello",
            "preloadedDependencies": [
                {"machineName": "H5P.Other", "majorVersion": 3, "minorVersion": 0},
                {"machineName": "X", "majorVersion": version[0], "minorVersion": version[1]},
            ],
        },
        "content": {"media": {"path": image_path}, "intro": "text"},
    }


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def loader():
    return InMemorySemanticsLoader(
        {"X 1.0": copy.deepcopy(X_SEMANTICS), "X 1.2": copy.deepcopy(X_SEMANTICS), "Y 1.0": []}
    )


@pytest.fixture
def panel():
    panel = MagicMock()
    panel.offset_top.return_value = 120
    return panel


@pytest.fixture
def dialog():
    return MagicMock()


@pytest.fixture
def make_hub(backend, loader, panel, dialog):
    def _make(selected_library=None):
        return SelectorHub(
            Catalog.from_list(CATALOG_FEED),
            backend,
            cache=SemanticsCache(loader),
            dialog=dialog,
            panel=panel,
            selected_library=selected_library,
        )

    return _make


def record_signals(hub):
    emitted = []
    for signal in HubSignal:
        hub.subscribe(signal, lambda s=signal: emitted.append(s))
    return emitted


class TestCatalogSelection:
    """Tests for SelectorHub.select."""

    def test_first_pick_applies_immediately(self, make_hub, dialog):
        hub = make_hub()
        emitted = record_signals(hub)

        state = hub.select(hub.get_content_type("Y"))

        assert state is HubState.IDLE
        assert hub.library == "Y 1.0"
        assert hub.params is None
        assert emitted == [HubSignal.SELECTED]
        dialog.show.assert_not_called()

    def test_pick_with_active_requests_confirmation(self, make_hub, dialog):
        hub = make_hub("X 1.2")
        emitted = record_signals(hub)

        state = hub.select(hub.get_content_type("Y"))

        assert state is HubState.AWAITING_CONFIRMATION
        assert hub.library == "X 1.2"
        assert hub.candidate == Selection(library="Y 1.0")
        assert emitted == []
        dialog.show.assert_called_once_with(120)

    def test_pick_same_type_is_noop(self, make_hub, dialog):
        hub = make_hub("X 1.2")

        state = hub.select(hub.get_content_type("X"))

        assert state is HubState.IDLE
        assert hub.candidate is None
        dialog.show.assert_not_called()

    def test_pick_uninstalled_type_raises(self, make_hub, dialog):
        hub = make_hub("X 1.2")
        emitted = record_signals(hub)
        remote_only = ContentTypeDescriptor.from_dict(
            {"machineName": "Z", "title": "Thing Z", "majorVersion": 2, "minorVersion": 1}
        )

        with pytest.raises(NotInstalledError) as exc_info:
            hub.select(remote_only)

        assert exc_info.value.code == "NOT_INSTALLED"
        assert exc_info.value.machine_name == "Z"
        assert hub.state is HubState.IDLE
        assert hub.library == "X 1.2"
        assert hub.candidate is None
        assert emitted == []
        dialog.show.assert_not_called()

    def test_confirm_adopts_candidate(self, make_hub):
        hub = make_hub("X 1.2")
        hub.reset_selection("X 1.2", {"intro": "old"}, {"title": "Old"}, False)
        emitted = record_signals(hub)
        hub.select(hub.get_content_type("Y"))

        active = hub.confirm()

        assert active == Selection(library="Y 1.0")
        assert hub.params is None
        assert hub.metadata is None
        assert hub.state is HubState.IDLE
        assert emitted == [HubSignal.SELECTED]

    def test_reject_restores_previous(self, make_hub, panel):
        hub = make_hub("X 1.2")
        hub.select(hub.get_content_type("Y"))

        active = hub.reject()

        assert active.library == "X 1.2"
        assert hub.candidate is None
        assert hub.state is HubState.IDLE
        panel.set_panel_title.assert_called_with("Thing X", True)

    def test_confirm_without_candidate_raises(self, make_hub):
        hub = make_hub()

        with pytest.raises(HubStateError):
            hub.confirm()
        with pytest.raises(HubStateError):
            hub.reject()


class TestUpload:
    """Tests for SelectorHub.upload."""

    @pytest.mark.asyncio
    async def test_upgrade_filter_tag_apply_without_active(self, make_hub, backend, dialog):
        hub = make_hub()
        emitted = record_signals(hub)

        result = await hub.upload(upload_event(version=(1, 0)))

        assert result.success
        assert result.state is HubState.IDLE
        assert result.library == "X 1.2"
        assert result.upgraded_from == "X 1.0"
        assert result.files_tagged == 1
        assert backend.calls == [("upgrade", "X 1.0", "X 1.2"), ("filter", "X 1.2")]
        assert hub.library == "X 1.2"
        assert hub.params["media"]["path"] == "images/a.png#tmp"
        assert hub.params["upgraded"] is True
        assert emitted == [HubSignal.SELECTED]
        dialog.show.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_with_active_awaits_confirmation(self, make_hub, dialog):
        hub = make_hub("Y 1.0")

        result = await hub.upload(upload_event(version=(1, 0)))

        assert result.success
        assert result.state is HubState.AWAITING_CONFIRMATION
        assert hub.library == "Y 1.0"
        assert hub.candidate.library == "X 1.2"
        assert hub.candidate.params["media"]["path"] == "images/a.png#tmp"
        dialog.show.assert_called_once_with(120)

        hub.confirm()

        assert hub.library == "X 1.2"
        assert hub.params["media"]["path"] == "images/a.png#tmp"
        assert hub.metadata["title"] == "Uploaded"

    @pytest.mark.asyncio
    async def test_no_upgrade_filters_declared_version(self, make_hub, backend):
        hub = make_hub()

        result = await hub.upload(upload_event(version=(1, 2)))

        assert result.success
        assert result.upgraded_from is None
        assert backend.calls == [("filter", "X 1.2")]

    @pytest.mark.asyncio
    async def test_metadata_taken_from_manifest(self, make_hub, backend):
        hub = make_hub()

        await hub.upload(upload_event(version=(1, 2)))

        assert hub.metadata == {
            "title": "Uploaded",
            "license": "CC BY",
            "yearFrom": 2020,
            "authorComments": "hello",
        }

    @pytest.mark.asyncio
    async def test_external_files_untouched(self, make_hub):
        hub = make_hub()

        result = await hub.upload(upload_event(image_path="https://example.com/a.png"))

        assert result.files_tagged == 0
        assert hub.params["media"]["path"] == "https://example.com/a.png"

    @pytest.mark.asyncio
    async def test_catalog_replaced_by_upload(self, make_hub):
        hub = make_hub()
        event = upload_event(version=(1, 2))
        event["contentTypes"].append({"machineName": "Z", "title": "Zed"})

        await hub.upload(event)

        assert hub.get_content_type("Z").title == "Zed"

    @pytest.mark.asyncio
    async def test_accepts_upload_payload(self, make_hub):
        hub = make_hub()

        result = await hub.upload(UploadPayload.from_dict(upload_event(version=(1, 2))))

        assert result.success


class TestUploadFailures:
    """Failed uploads never touch the active selection."""

    @pytest.fixture
    def hub(self, make_hub):
        hub = make_hub("Y 1.0")
        hub.reset_selection("Y 1.0", {"keep": True}, {"title": "Mine"}, False)
        return hub

    def assert_untouched(self, hub):
        assert hub.active == Selection("Y 1.0", {"keep": True}, {"title": "Mine"})
        assert hub.candidate is None
        assert hub.state is HubState.IDLE

    @pytest.mark.asyncio
    async def test_upgrade_failure(self, hub, backend, panel, dialog):
        backend.upgrade_error = UpgradeError("Unsupported version jump")
        panel.reset_mock()

        result = await hub.upload(upload_event(version=(1, 0)))

        assert not result.success
        assert result.error_code == "UPGRADE_ERROR"
        assert backend.calls == [("upgrade", "X 1.0", "X 1.2")]
        panel.set_panel_title.assert_called_once_with("Thing Y", True)
        dialog.show.assert_not_called()
        self.assert_untouched(hub)

    @pytest.mark.asyncio
    async def test_malformed_filter_response(self, hub, backend):
        backend.filter_error = FilterResponseError("Malformed filter response", library="X 1.2")

        result = await hub.upload(upload_event(version=(1, 2)))

        assert not result.success
        assert result.error_code == "FILTER_RESPONSE_ERROR"
        self.assert_untouched(hub)

    @pytest.mark.asyncio
    async def test_semantics_unavailable(self, hub, loader):
        loader.add("X 1.2", [{"name": "media", "type": "library"}])
        event = upload_event(version=(1, 2))
        event["content"] = {"media": {"library": "H5P.Gone 1.0", "params": {}}}

        result = await hub.upload(event)

        assert not result.success
        assert result.error_code == "TREE_WALK_ERROR"
        self.assert_untouched(hub)

    @pytest.mark.asyncio
    async def test_main_library_missing(self, hub, backend):
        result = await hub.upload(upload_event(main="H5P.Unknown"))

        assert not result.success
        assert result.error_code == "MANIFEST_ERROR"
        assert backend.calls == []
        self.assert_untouched(hub)

    @pytest.mark.asyncio
    async def test_upload_while_applying_is_refused(self, hub, backend):
        backend.filter_gate = asyncio.Event()
        first = asyncio.ensure_future(hub.upload(upload_event(version=(1, 2))))
        await asyncio.sleep(0.01)
        assert hub.state is HubState.APPLYING

        second = await hub.upload(upload_event(version=(1, 2)))
        with pytest.raises(HubStateError):
            hub.select(hub.get_content_type("X"))

        backend.filter_gate.set()
        first_result = await first

        assert not second.success
        assert second.error_code == "HUB_STATE_ERROR"
        assert first_result.success
        assert first_result.state is HubState.AWAITING_CONFIRMATION


class TestAccessors:
    """Tests for signals relays and lookups."""

    def test_update_catalog_keeps_selection(self, make_hub):
        hub = make_hub("X 1.2")

        hub.update_catalog([ContentTypeDescriptor(machine_name="Q", title="Queue")])

        assert hub.library == "X 1.2"
        assert hub.get_content_type("Q").title == "Queue"
        assert hub.get_content_type("X") is None
        assert hub.panel_title() == "X"

    def test_get_selected_library(self, make_hub):
        hub = make_hub("X 1.2")

        assert hub.get_selected_library() == {
            "uberName": "X 1.2",
            "tutorialUrl": "https://example.com/x-tutorial",
            "exampleUrl": "https://example.com/x-example",
        }

    def test_get_selected_library_not_in_catalog(self, make_hub):
        hub = make_hub("H5P.Gone 1.0")

        assert hub.get_selected_library() == {"uberName": "H5P.Gone 1.0"}

    def test_resize_and_paste_relays(self, make_hub):
        hub = make_hub()
        emitted = record_signals(hub)

        hub.notify_resize()
        hub.notify_paste()

        assert emitted == [HubSignal.RESIZE, HubSignal.PASTE]

    def test_unsubscribe(self, make_hub):
        hub = make_hub()
        callback = MagicMock()
        hub.subscribe(HubSignal.RESIZE, callback)
        hub.unsubscribe(HubSignal.RESIZE, callback)

        hub.notify_resize()

        callback.assert_not_called()

    def test_set_can_paste(self, make_hub, panel):
        hub = make_hub()

        hub.set_can_paste(True)

        panel.set_can_paste.assert_called_once_with(True)

    def test_reset_selection_sets_title(self, make_hub, panel):
        hub = make_hub()

        hub.reset_selection("Y 1.0", {}, {}, False)

        assert hub.active == Selection("Y 1.0", {}, {})
        assert hub.expanded is False
        panel.set_panel_title.assert_called_once_with("Thing Y", False)

    def test_metadata_round_trip(self):
        metadata = Metadata.from_manifest({"title": "T", "licenseVersion": "4.0", "mainLibrary": "X"})

        assert metadata.license_version == "4.0"
        assert metadata.to_dict() == {"title": "T", "licenseVersion": "4.0"}
