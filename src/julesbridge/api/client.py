"""HTTP client for the remote Jules session API.

JulesClient issues the session calls, translates remote records into the
local model and keeps the owned SessionCache up to date. It holds no state
of its own across calls besides configuration.

Retry policy:
- Listing, activities, diff and cancel go through ``with_retry``.
- Creation is attempted exactly once. Retrying a create that timed out
  after the server accepted it would start a duplicate remote session.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import httpx

from julesbridge.api.cache import SessionCache
from julesbridge.api.diffs import find_git_patch, split_unified_diff
from julesbridge.api.errors import (
    JulesApiError,
    JulesError,
    RateLimitError,
    RepositoryNotAccessibleError,
    ResponseFormatError,
    ServiceUnavailableError,
    UnauthenticatedError,
    sanitize_status,
)
from julesbridge.api.models import Activity, Session, SessionDiff, summarize_task
from julesbridge.api.retry import RetryPolicy, Sleep, with_retry
from julesbridge.api.states import map_session_state
from julesbridge.api.wire import (
    activity_from_wire,
    extract_records,
    parse_timestamp,
    resource_id,
    session_from_wire,
)
from julesbridge.config import ApiConfig, get_api_key
from julesbridge.logging import get_logger

log = get_logger("api.client")

API_KEY_HEADER = "X-Goog-Api-Key"

# Body marker of the 404 the API sends when it cannot see the repository
REPO_NOT_FOUND_MARKER = "Requested entity was not found"

ApiKeyProvider = Callable[[], str | None]


def default_title(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"Auto-Handoff: {now.strftime('%H:%M:%S')}"


class JulesClient:
    """Client for ``/sessions`` on the Jules API.

    Args:
        cache: Session store this client keeps in sync.
        config: API settings (base URL, timeout, retry budget, page size).
        api_key_provider: Called before every operation; ``None`` or an
            empty string raises UnauthenticatedError before any I/O.
        http_client: Pre-built ``httpx.AsyncClient`` (tests pass one with a
            ``MockTransport``). A client created here is closed by ``close``.
        sleep: Backoff sleep, injectable for tests.
    """

    def __init__(
        self,
        cache: SessionCache,
        *,
        config: ApiConfig | None = None,
        api_key_provider: ApiKeyProvider = get_api_key,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.cache = cache
        self.config = config or ApiConfig()
        self._api_key_provider = api_key_provider
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self.config.timeout)
        self._retry = RetryPolicy.from_config(self.config)
        self._sleep = sleep

    async def __aenter__(self) -> JulesClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    @property
    def sessions_url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/sessions"

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def create_session(
        self,
        owner: str,
        repo: str,
        branch: str,
        prompt: str,
        *,
        title: str | None = None,
        task: str | None = None,
    ) -> Session:
        """Start a remote session and register it in the cache as pending.

        Raises:
            UnauthenticatedError: No API key is configured.
            RepositoryNotAccessibleError: The service cannot see owner/repo.
            JulesApiError: Any other non-2xx response (sanitized message).
            ServiceUnavailableError: Transport failure or timeout.
        """
        headers = self._headers()
        payload = {
            "prompt": prompt.strip(),
            "sourceContext": {
                "source": f"sources/github/{owner}/{repo}",
                "githubRepoContext": {"startingBranch": branch},
            },
            "title": title or default_title(),
        }
        log.info("Creating session for %s/%s@%s", owner, repo, branch)

        try:
            data = await self._call(
                lambda: self._request("POST", self.sessions_url, headers, json=payload),
                "create session",
                RetryPolicy.single_attempt(self.config.timeout),
            )
        except JulesApiError as e:
            if e.status_code == 404 and REPO_NOT_FOUND_MARKER in (e.diagnostic or ""):
                raise RepositoryNotAccessibleError(owner, repo, diagnostic=e.diagnostic) from e
            raise

        if not isinstance(data, dict):
            raise ResponseFormatError("created session", diagnostic=repr(data)[:200])
        session_id = resource_id(data.get("name"), data.get("id"))
        if not session_id:
            raise ResponseFormatError("created session", diagnostic="no session id in response")

        created_at = parse_timestamp(data.get("createTime"))
        session = Session(
            id=session_id,
            task=summarize_task(task or prompt),
            status=map_session_state(data.get("state")),
            created_at=created_at,
            updated_at=created_at,
            remote_branch=data.get("outputBranch"),
        )
        self.cache.insert(session)
        log.info("Created session %s", session_id)
        return session

    async def fetch_sessions(self, page_size: int | None = None) -> list[Session]:
        """Fetch and parse one page of remote sessions, newest first.

        Malformed records are logged and skipped. Reads the cache for
        timestamps the remote omits but never writes it; see ``list_sessions``.
        """
        headers = self._headers()
        params = {"pageSize": self._page_size(page_size)}
        payload = await self._call(
            lambda: self._request("GET", self.sessions_url, headers, params=params),
            "list sessions",
        )
        sessions: list[Session] = []
        for record in extract_records(payload, "sessions", "sessions"):
            try:
                sessions.append(session_from_wire(record, lookup=self.cache.get))
            except ResponseFormatError as e:
                log.warning("Skipping malformed session record: %s", e.diagnostic)
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions

    async def list_sessions(self, page_size: int | None = None) -> list[Session]:
        """Fetch remote sessions, reconcile them into the cache, return the cache view.

        A listing that raced with a create or cancel is dropped rather than
        merged over the newer cache state.
        """
        token = self.cache.version
        remote = await self.fetch_sessions(page_size)
        if not self.cache.merge(remote, since=token):
            log.debug("Listing of %d session(s) not merged", len(remote))
        return self.cache.sessions()

    async def get_activities(self, session_id: str) -> list[Activity]:
        """Activities of a session, oldest first.

        Best-effort: any failure (missing key, network, bad status, bad
        body) is logged and yields an empty list. This never raises.
        """
        try:
            records = await self._activity_records(session_id)
            return [activity_from_wire(r, session_id) for r in records]
        except Exception as e:
            log.warning(
                "Activities for %s unavailable: %s",
                session_id,
                e.message if isinstance(e, JulesError) else type(e).__name__,
            )
            if isinstance(e, JulesError) and e.diagnostic:
                log.debug("Activity fetch diagnostic: %s", e.diagnostic)
            return []

    async def cancel_session(self, session_id: str) -> None:
        """Cancel a remote session; drop it from the cache only if that worked."""
        headers = self._headers()
        await self._call(
            lambda: self._request("POST", f"{self.sessions_url}/{session_id}:cancel", headers, json={}),
            "cancel session",
        )
        self.cache.remove(session_id)
        log.info("Cancelled session %s", session_id)

    async def get_session_diff(self, session_id: str) -> SessionDiff:
        """File-level change set published by a session.

        Raises JulesApiError (404) while the session has not published a
        patch yet.
        """
        headers = self._headers()
        record = await self._call(
            lambda: self._request("GET", f"{self.sessions_url}/{session_id}", headers),
            "get session",
        )
        if not isinstance(record, dict):
            raise ResponseFormatError("session", diagnostic=repr(record)[:200])

        patch = find_git_patch(await self._activity_records(session_id))
        if patch is None:
            raise JulesApiError("Session diff not yet available", status_code=404)

        files = split_unified_diff(patch)
        log.debug("Session %s diff touches %d file(s)", session_id, len(files))
        return SessionDiff(
            session_id=session_id,
            files=files,
            remote_branch=record.get("outputBranch"),
        )

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        api_key = self._api_key_provider()
        if not api_key:
            raise UnauthenticatedError()
        return {"Content-Type": "application/json", API_KEY_HEADER: api_key}

    def _page_size(self, page_size: int | None) -> int:
        size = page_size if page_size is not None else self.config.page_size
        return max(1, min(size, self.config.max_page_size))

    async def _activity_records(self, session_id: str) -> list[dict[str, Any]]:
        headers = self._headers()
        payload = await self._call(
            lambda: self._request("GET", f"{self.sessions_url}/{session_id}/activities", headers),
            "list activities",
        )
        return extract_records(payload, "activities", "activities")

    async def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._http.request(method, url, headers=headers, json=json, params=params)
        log.debug("%s %s -> %d", method, url, response.status_code)
        if response.is_error:
            body = response.text
            log.debug("Error body: %s", body[:2000])
            raise JulesApiError.from_status(response.status_code, body)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ResponseFormatError("response body", diagnostic=response.text[:2000]) from e

    async def _call(
        self,
        operation: Callable[[], Awaitable[Any]],
        description: str,
        policy: RetryPolicy | None = None,
    ) -> Any:
        """Run ``operation`` under the retry envelope and name what exhausted it."""
        policy = policy or self._retry
        try:
            return await with_retry(operation, policy, description=description, sleep=self._sleep)
        except asyncio.TimeoutError as e:
            raise ServiceUnavailableError(
                "Request to Jules timed out. Please try again.",
                status_code=408,
                diagnostic=f"{description} timed out after {policy.timeout}s",
            ) from e
        except httpx.TransportError as e:
            raise ServiceUnavailableError(status_code=None, diagnostic=f"{description}: {e!r}") from e
        except RateLimitError:
            raise
        except JulesApiError as e:
            if e.status_code == 429:
                raise RateLimitError(diagnostic=e.diagnostic) from e
            if e.status_code == 503:
                raise ServiceUnavailableError(sanitize_status(503), diagnostic=e.diagnostic) from e
            raise
