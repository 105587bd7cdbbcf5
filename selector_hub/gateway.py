"""
HTTP gateway to the editor backend.

This module talks to the three backend endpoints the hub depends on:
- libraries: semantics of a library (used by SemanticsCache)
- filter: backend-authoritative reshaping of params to a library's semantics
- content-upgrade: migration of params from an old library version to a new one

Invariants:
    - Each call is one request/response round trip, never retried
    - Transport failures surface as HubError subclasses, never raw httpx errors
    - Filter and upgrade results are validated before they are returned
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, Field, ValidationError

from .config import Settings
from .errors import (
    FilterResponseError,
    GatewayError,
    SemanticsFetchError,
    UpgradeError,
)
from .schema import ComponentId

logger = logging.getLogger(__name__)


class FilterResult(BaseModel):
    """Library, params and metadata as shaped by the filter endpoint."""

    library: str
    params: Any = None
    metadata: Optional[Dict[str, Any]] = None


class FilterResponse(BaseModel):
    """Filter endpoint response body."""

    data: FilterResult


class UpgradeResult(BaseModel):
    """Content upgraded to a newer library version."""

    params: Any = None
    metadata: Optional[Dict[str, Any]] = Field(default=None)


@runtime_checkable
class ContentUpgrader(Protocol):
    """Procedure migrating params between two versions of a library."""

    async def upgrade_content(
        self,
        old_library: ComponentId,
        new_library: ComponentId,
        params: Any,
        metadata: Optional[Dict[str, Any]],
    ) -> UpgradeResult:
        """Upgrade params/metadata; raise UpgradeError if impossible."""
        ...


class EditorGateway:
    """Async client for the editor AJAX endpoints.

    Implements both SemanticsLoader and ContentUpgrader.

    Example:
        >>> async with EditorGateway(Settings()) as gateway:
        ...     result = await gateway.filter_parameters("H5P.Image 1.1", params, metadata)
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize gateway.

        Args:
            settings: Hub settings (endpoint URLs, timeout)
            client: Optional pre-built client; the gateway then does not close it
        """
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout)

    async def __aenter__(self) -> EditorGateway:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying client if the gateway created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise GatewayError(
                f"{method} {url} failed with status {exc.response.status_code}",
                url=url,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"{method} {url} failed: {exc}", url=url) from exc
        return response

    async def load_semantics(self, library: str) -> List[Dict[str, Any]]:
        """Fetch the semantics array of a library.

        Raises:
            SemanticsFetchError: If the request fails or carries no semantics
        """
        try:
            component = ComponentId.parse(library)
        except ValueError as exc:
            raise SemanticsFetchError(str(exc), library=library) from exc

        url = self.settings.action_url(self.settings.libraries_action)
        try:
            response = await self._send(
                "GET",
                url,
                params={
                    "machineName": component.machine_name,
                    "majorVersion": component.major_version,
                    "minorVersion": component.minor_version,
                },
            )
            body = response.json()
            semantics = body.get("semantics") if isinstance(body, dict) else None
            # Some backends send semantics as an encoded JSON string
            if isinstance(semantics, str):
                semantics = json.loads(semantics)
        except GatewayError as exc:
            raise SemanticsFetchError(exc.message, library=library) from exc
        except ValueError as exc:
            raise SemanticsFetchError(
                f"Malformed semantics response for {library}: {exc}", library=library
            ) from exc

        if not isinstance(semantics, list):
            raise SemanticsFetchError(f"No semantics returned for {library}", library=library)
        return semantics

    async def filter_parameters(
        self,
        library: str,
        params: Any,
        metadata: Optional[Dict[str, Any]],
    ) -> FilterResult:
        """Have the backend reshape params to library's semantics.

        Raises:
            GatewayError: If the request fails
            FilterResponseError: If the response body is malformed
        """
        url = self.settings.action_url(self.settings.filter_action)
        payload = json.dumps({"library": library, "params": params, "metadata": metadata})
        # (None, value) makes httpx send a plain multipart form field
        response = await self._send("POST", url, files={"libraryParameters": (None, payload)})

        try:
            result = FilterResponse.model_validate_json(response.content).data
        except ValidationError as exc:
            raise FilterResponseError(
                f"Malformed filter response for {library}",
                library=library,
                errors=[err["msg"] for err in exc.errors()],
            ) from exc

        logger.debug(f"Filtered params for {library} -> {result.library}")
        return result

    async def upgrade_content(
        self,
        old_library: ComponentId,
        new_library: ComponentId,
        params: Any,
        metadata: Optional[Dict[str, Any]],
    ) -> UpgradeResult:
        """Upgrade params from old_library to new_library.

        Raises:
            UpgradeError: If the upgrade cannot be performed
        """
        url = self.settings.action_url(self.settings.upgrade_action)
        try:
            response = await self._send(
                "POST",
                url,
                json={
                    "oldLibrary": str(old_library),
                    "newLibrary": str(new_library),
                    "params": params,
                    "metadata": metadata,
                },
            )
        except GatewayError as exc:
            raise UpgradeError(
                exc.message, old_library=str(old_library), new_library=str(new_library)
            ) from exc

        try:
            body = response.json()
            if isinstance(body, dict) and body.get("error"):
                raise UpgradeError(
                    f"Upgrade from {old_library} to {new_library} refused: {body['error']}",
                    old_library=str(old_library),
                    new_library=str(new_library),
                )
            # The upgrade procedure answers with the upgraded content as a JSON string
            if isinstance(body, str):
                return UpgradeResult.model_validate_json(body)
            return UpgradeResult.model_validate(body)
        except ValueError as exc:
            raise UpgradeError(
                f"Malformed upgrade result for {new_library}: {exc}",
                old_library=str(old_library),
                new_library=str(new_library),
            ) from exc
