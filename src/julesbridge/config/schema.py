"""Configuration schema dataclasses for jules-bridge.

Defines the structure of configuration at all levels (user, project, env).
Every field has a default so partial configs merge cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_BASE_URL = "https://jules.googleapis.com/v1alpha"
DEFAULT_PROTOCOL_VERSION = "2024-11-05"


@dataclass
class ApiConfig:
    """Remote session API configuration.

    Example config.yaml:
        api:
          base_url: https://jules.googleapis.com/v1alpha
          timeout: 30
          max_attempts: 3
          base_delay: 1.0
    """

    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0  # Per-attempt timeout in seconds
    max_attempts: int = 3  # Total attempts for retryable calls
    base_delay: float = 1.0  # Backoff base: delay = base_delay * 2**retry_index
    page_size: int = 50
    max_page_size: int = 100


@dataclass
class BridgeConfig:
    """JSON-RPC bridge identity."""

    server_name: str = "jules-bridge"
    server_version: str | None = None  # Defaults to the package version
    protocol_version: str = DEFAULT_PROTOCOL_VERSION


@dataclass
class PollingConfig:
    """Session refresh loop configuration."""

    interval: float = 10.0  # Seconds between refresh ticks
    fetch_activities: bool = True


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0..4, overrides level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object."""

    api: ApiConfig = field(default_factory=ApiConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level sections are kept here untouched
    extra: dict[str, Any] = field(default_factory=dict)
