"""
Configuration schema and loader for the WMS notification channel.
Uses Pydantic for validation; defaults come from the environment
(optionally populated from a .env file).
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from wms.core.exceptions import InvalidConfigError

# Load .env from current directory or parent directories
load_dotenv()


class ChannelSettings(BaseModel):
    """
    Settings for the real-time notification channel.

    Delays are in seconds.
    """

    model_config = ConfigDict(validate_default=True, extra="forbid")

    config_version: str = Field(default="1.0.0", description="Settings schema version")

    origin: str = Field(
        default_factory=lambda: os.getenv("WMS_ORIGIN", "http://localhost:5000"),
        description="Origin of the hosting page; the /ws endpoint is derived from it",
    )
    ws_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("WMS_WS_URL") or None,
        description="Explicit WebSocket URL (overrides the derived endpoint)",
    )

    # Reconnection
    base_delay: float = Field(
        default_factory=lambda: os.getenv("WMS_BASE_DELAY", "1.0"),
        gt=0,
        description="Initial reconnect delay",
    )
    max_delay: float = Field(
        default_factory=lambda: os.getenv("WMS_MAX_DELAY", "30.0"),
        gt=0,
        description="Reconnect delay ceiling",
    )
    max_attempts: int = Field(
        default_factory=lambda: os.getenv("WMS_MAX_ATTEMPTS", "10"),
        ge=2,
        description="Attempt count at which delays saturate at max_delay",
    )

    # Heartbeat
    ping_interval: float = Field(
        default_factory=lambda: os.getenv("WMS_PING_INTERVAL", "25.0"),
        gt=0,
        description="Inbound silence before a ping is sent",
    )
    health_check_timeout: float = Field(
        default_factory=lambda: os.getenv("WMS_HEALTH_CHECK_TIMEOUT", "10.0"),
        gt=0,
        description="Time to wait for any frame after a ping",
    )

    outbound_queue_size: int = Field(
        default_factory=lambda: os.getenv("WMS_OUTBOUND_QUEUE_SIZE", "0"),
        ge=0,
        description="Frames buffered while not open (0 disables buffering)",
    )

    # Logging
    log_level: str = Field(
        default_factory=lambda: os.getenv("WMS_LOG_LEVEL", "INFO"),
        description="Root log level",
    )
    log_json: bool = Field(
        default_factory=lambda: os.getenv("WMS_LOG_JSON", "false"),
        description="Emit JSON log lines",
    )

    @model_validator(mode="after")
    def _check_delays(self) -> "ChannelSettings":
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if not self.origin.startswith(("http://", "https://")):
            raise ValueError("origin must start with http:// or https://")
        return self


def load_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ChannelSettings:
    """
    Load channel settings.

    Priority:
    1. Explicit overrides
    2. Config file (if provided)
    3. Environment / defaults

    Raises:
        InvalidConfigError: if the file is unreadable or a value is invalid
    """
    data: Dict[str, Any] = {}

    if config_path and config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidConfigError(
                f"Cannot read settings file {config_path}",
                path=str(config_path),
                cause=e,
            ) from e
        if not isinstance(file_config, dict):
            raise InvalidConfigError(
                "Settings file must contain a JSON object",
                path=str(config_path),
            )
        data.update(file_config)

    if overrides:
        data.update(overrides)

    try:
        return ChannelSettings(**data)
    except ValidationError as e:
        raise InvalidConfigError(
            "Invalid channel settings",
            errors=[err["msg"] for err in e.errors()],
            cause=e,
        ) from e
