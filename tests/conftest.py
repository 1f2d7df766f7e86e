"""Root pytest configuration for all tests."""

from __future__ import annotations

import shutil
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from julesbridge.api.cache import SessionCache
from julesbridge.api.client import JulesClient
from julesbridge.config import ApiConfig, clear_secret_cache, reset_config
from julesbridge.logging import reset_logging
from tests.utils import BASE_URL, FakeSleep, git

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Keep real credentials, config files and log handlers out of every test."""
    for name in (
        "JULES_API_KEY",
        "ANTIGRAVITY_API_KEY",
        "GEMINI_API_KEY",
        "JULES_API_BASE_URL",
        "JULES_TIMEOUT",
        "JB_LOG",
        "JB_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.chdir(tmp_path)
    reset_config()
    clear_secret_cache()
    yield
    reset_config()
    clear_secret_cache()
    reset_logging()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def cache() -> SessionCache:
    return SessionCache()


@pytest.fixture
def make_client(cache: SessionCache, fake_sleep: FakeSleep):
    """Build a JulesClient whose HTTP calls go to ``handler``."""
    clients: list[JulesClient] = []

    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        *,
        api_key: str | None = "test-key",
        config: ApiConfig | None = None,
    ) -> JulesClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = JulesClient(
            cache,
            config=config or ApiConfig(base_url=BASE_URL, base_delay=0.5),
            api_key_provider=lambda: api_key,
            http_client=http,
            sleep=fake_sleep,
        )
        clients.append(client)
        return client

    return factory


@pytest.fixture
def git_repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A repository on ``main`` with two committed files, isolated from user git config."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for role in ("AUTHOR", "COMMITTER"):
        monkeypatch.setenv(f"GIT_{role}_NAME", "Test User")
        monkeypatch.setenv(f"GIT_{role}_EMAIL", "test@example.com")

    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    (repo / "hello.txt").write_text("hello\nworld\n", encoding="utf-8")
    (repo / "remove_me.txt").write_text("bye\n", encoding="utf-8")
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", "initial")
    return repo
