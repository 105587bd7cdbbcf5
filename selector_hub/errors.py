"""
Error types for the selector hub.

This module defines all exception types raised by the package:
- HubError: Base exception
- SemanticsFetchError: Semantics of a library could not be loaded
- GatewayError: Filter/upgrade endpoint unreachable or failed
- FilterResponseError: Filter endpoint answered with a malformed body
- UpgradeError: Content upgrade could not be performed
- TreeWalkError: A branch of the parameter walk failed
- ManifestError: Uploaded bundle manifest is unusable
- HubStateError: Operation not allowed in the current hub state
- NotInstalledError: Picked content type has no local version

Invariants:
    - All errors inherit from HubError
    - Errors include context for debugging
    - A raised error never implies partially adopted state
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class HubError(Exception):
    """Base exception for all selector hub errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "HUB_ERROR"
        self.details = details or {}


class SemanticsFetchError(HubError):
    """Failed to load the semantics of a library.

    Raised when:
    - The libraries endpoint is unreachable
    - The library is unknown to the backend
    - The response carries no usable semantics
    """

    def __init__(
        self,
        message: str,
        library: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="SEMANTICS_FETCH_ERROR",
            details={"library": library},
        )
        self.library = library


class GatewayError(HubError):
    """Round trip to the editor backend failed.

    Raised when:
    - The endpoint is unreachable or times out
    - The endpoint answers with a non-success status
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="GATEWAY_ERROR",
            details={"url": url, "status_code": status_code},
        )
        self.url = url
        self.status_code = status_code


class FilterResponseError(HubError):
    """Filter endpoint answered with a body that cannot be used."""

    def __init__(
        self,
        message: str,
        library: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="FILTER_RESPONSE_ERROR",
            details={"library": library, "errors": errors or []},
        )
        self.library = library
        self.errors = errors or []


class UpgradeError(HubError):
    """Content upgrade could not be performed.

    Raised when:
    - The version jump is not supported by the upgrade procedure
    - The upgrade endpoint fails or reports an error
    - The upgraded content cannot be parsed
    """

    def __init__(
        self,
        message: str,
        old_library: Optional[str] = None,
        new_library: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="UPGRADE_ERROR",
            details={"old_library": old_library, "new_library": new_library},
        )
        self.old_library = old_library
        self.new_library = new_library


class TreeWalkError(HubError):
    """A branch of the parameter tree walk failed.

    Attributes:
        library: Library whose semantics could not be used
        path: Field path (dotted) where the walk stopped
    """

    def __init__(
        self,
        message: str,
        library: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="TREE_WALK_ERROR",
            details={"library": library, "path": path},
        )
        self.library = library
        self.path = path


class ManifestError(HubError):
    """Uploaded bundle manifest does not identify its main library."""

    def __init__(
        self,
        message: str,
        main_library: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="MANIFEST_ERROR",
            details={"main_library": main_library},
        )
        self.main_library = main_library


class HubStateError(HubError):
    """Operation is not allowed in the current hub state."""

    def __init__(
        self,
        message: str,
        state: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="HUB_STATE_ERROR",
            details={"state": state},
        )
        self.state = state


class NotInstalledError(HubError):
    """Content type picked from the catalog has no local version."""

    def __init__(
        self,
        message: str,
        machine_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="NOT_INSTALLED",
            details={"machine_name": machine_name},
        )
        self.machine_name = machine_name
