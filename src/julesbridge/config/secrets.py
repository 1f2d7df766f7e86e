"""Credential lookup for jules-bridge.

Secrets come from the process environment first, then from a
``.env.secrets`` file loaded with python-dotenv and cached.

The API key itself is never stored by jules-bridge; the host (IDE,
shell, MCP registration) is expected to put it in the environment.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import dotenv_values

SECRETS_FILE = ".env.secrets"

# Checked in order; the first non-blank value wins
API_KEY_ENV_VARS = ("JULES_API_KEY", "ANTIGRAVITY_API_KEY", "GEMINI_API_KEY")


@lru_cache(maxsize=1)
def _load_secrets(secrets_path: Path | None = None) -> dict[str, str | None]:
    """Load and cache the secrets file, or an empty dict if there is none."""
    path = secrets_path or Path(SECRETS_FILE)
    if path.exists():
        return dotenv_values(path)
    return {}


def fetch_secret(
    key: str,
    default: str | None = None,
    secrets_path: Path | None = None,
) -> str | None:
    """Fetch a secret from the environment or ``.env.secrets``.

    Environment variables take precedence so tests can use
    ``monkeypatch.setenv`` / ``delenv``.
    """
    value = os.environ.get(key)
    if value is not None:
        return value

    secrets = _load_secrets(secrets_path)
    if secrets.get(key) is not None:
        return secrets[key]

    return default


def get_api_key(secrets_path: Path | None = None) -> str | None:
    """Return the Jules API key, or None when no credential is configured."""
    for name in API_KEY_ENV_VARS:
        value = fetch_secret(name, secrets_path=secrets_path)
        if value and value.strip():
            return value.strip()
    return None


def clear_secret_cache() -> None:
    """Clear the secrets cache (after editing ``.env.secrets`` or in tests)."""
    _load_secrets.cache_clear()
