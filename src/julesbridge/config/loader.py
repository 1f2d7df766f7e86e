"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching with reset support
- Conversion from dict to the typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from julesbridge.config.merge import merge_layers
from julesbridge.config.paths import get_config_paths
from julesbridge.config.schema import (
    ApiConfig,
    BridgeConfig,
    Config,
    LoggingConfig,
    PollingConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("julesbridge.config")

_cached_config: Config | None = None

_KNOWN_SECTIONS = {"api", "bridge", "polling", "logging"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build a config layer from environment variables.

    The API key is deliberately not read here; see ``get_api_key()``.
    """
    overrides: dict[str, Any] = {}

    base_url = os.environ.get("JULES_API_BASE_URL")
    if base_url:
        overrides.setdefault("api", {})["base_url"] = base_url

    timeout = os.environ.get("JULES_TIMEOUT")
    if timeout:
        try:
            overrides.setdefault("api", {})["timeout"] = float(timeout)
        except ValueError:
            _log.warning("Ignoring non-numeric JULES_TIMEOUT=%r", timeout)

    log_path = os.environ.get("JB_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    log_level = os.environ.get("JB_LOG_LEVEL")
    if log_level:
        overrides.setdefault("logging", {})["level"] = log_level

    return overrides


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    defaults = Config()

    api_data = _section(data, "api")
    api = ApiConfig(
        base_url=str(api_data.get("base_url", defaults.api.base_url)).rstrip("/"),
        timeout=float(api_data.get("timeout", defaults.api.timeout)),
        max_attempts=max(1, int(api_data.get("max_attempts", defaults.api.max_attempts))),
        base_delay=float(api_data.get("base_delay", defaults.api.base_delay)),
        page_size=int(api_data.get("page_size", defaults.api.page_size)),
        max_page_size=int(api_data.get("max_page_size", defaults.api.max_page_size)),
    )

    bridge_data = _section(data, "bridge")
    bridge = BridgeConfig(
        server_name=bridge_data.get("server_name", defaults.bridge.server_name),
        server_version=bridge_data.get("server_version"),
        protocol_version=str(
            bridge_data.get("protocol_version", defaults.bridge.protocol_version)
        ),
    )

    polling_data = _section(data, "polling")
    polling = PollingConfig(
        interval=float(polling_data.get("interval", defaults.polling.interval)),
        fetch_activities=bool(
            polling_data.get("fetch_activities", defaults.polling.fetch_activities)
        ),
    )

    log_data = _section(data, "logging")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    extra = {k: v for k, v in data.items() if k not in _KNOWN_SECTIONS}

    return Config(
        api=api,
        bridge=bridge,
        polling=polling,
        logging=logging_config,
        extra=extra,
    )


def load_config(
    project_root: str | Path | None = None,
    config_path: Path | None = None,
    reload: bool = False,
) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Explicit ``config_path`` (CLI ``--config``)
    3. Project config ($root/.jules-bridge/config.yaml)
    4. User config

    Only the global config (no project root, no explicit path) is cached.
    """
    global _cached_config

    is_global = project_root is None and config_path is None
    if _cached_config is not None and not reload and is_global:
        return _cached_config

    layers: list[dict[str, Any]] = []
    paths = get_config_paths(project_root)
    if config_path is not None:
        paths.append(config_path)

    for path in paths:
        data = load_yaml_file(path)
        if data:
            _log.debug("Loaded config from %s", path)
            layers.append(data)

    env_layer = env_overrides()
    if env_layer:
        layers.append(env_layer)

    try:
        config = dict_to_config(merge_layers(*layers))
    except (TypeError, ValueError) as e:
        _log.warning("Invalid config values, using defaults: %s", e)
        config = Config()

    if is_global:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset the cached config (tests, forced reload)."""
    global _cached_config
    _cached_config = None
