"""Configuration management for jules-bridge.

Layered YAML configuration with:
- User-level config (~/.config/jules-bridge/ or ~/.jules-bridge/)
- Project-level config ($root/.jules-bridge/)
- Environment variable overrides (highest priority)

Example usage:
    from julesbridge.config import load_config

    config = load_config(project_root="/path/to/repo")
    print(config.api.base_url)
    print(config.polling.interval)
"""

from julesbridge.config.loader import (
    get_config,
    load_config,
    reset_config,
)
from julesbridge.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_user_config_path,
)
from julesbridge.config.schema import (
    ApiConfig,
    BridgeConfig,
    Config,
    LoggingConfig,
    PollingConfig,
)
from julesbridge.config.secrets import (
    clear_secret_cache,
    fetch_secret,
    get_api_key,
)

__all__ = [
    # Main API
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    # Schema types
    "ApiConfig",
    "BridgeConfig",
    "PollingConfig",
    "LoggingConfig",
    # Secrets
    "fetch_secret",
    "get_api_key",
    "clear_secret_cache",
    # Paths
    "get_config_paths",
    "get_user_config_path",
    "get_project_config_path",
]
