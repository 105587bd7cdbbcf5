"""
Configuration for the selector hub.

Uses pydantic-settings for environment variable loading. Every setting can be
overridden with a SELECTOR_HUB_ prefixed variable, e.g.
SELECTOR_HUB_AJAX_URL=https://example.org/editor/ajax.
"""

from __future__ import annotations

import logging

import json_log_formatter
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Selector hub configuration loaded from environment."""

    # Editor backend
    ajax_url: str = Field(
        default="http://localhost:8080/h5p/ajax", description="Base URL of the editor AJAX endpoints"
    )
    libraries_action: str = Field(default="libraries", description="Semantics endpoint action")
    filter_action: str = Field(default="filter", description="Parameter filter endpoint action")
    upgrade_action: str = Field(default="content-upgrade", description="Content upgrade endpoint action")

    # Requests hang forever without a timeout; None disables it
    request_timeout: float | None = Field(default=30.0, description="HTTP timeout in seconds")

    # File tagging
    provisional_suffix: str = Field(default="#tmp", description="Marker appended to provisional files")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: str = Field(default="text", description="'text' or 'json'")

    model_config = {"env_prefix": "SELECTOR_HUB_"}

    def action_url(self, action: str) -> str:
        """Full URL of an AJAX action."""
        return f"{self.ajax_url.rstrip('/')}/{action}"


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings.

    Args:
        settings: Hub settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
