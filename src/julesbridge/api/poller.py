"""Periodic session refresh.

Polls the session listing (and optionally each session's activities) on a
fixed interval. A refresh never overlaps another one: a tick that fires
while a refresh is still running is skipped, and ``refresh()`` called by
hand while the loop is busy waits for the running one instead of starting
a second.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from julesbridge.api.errors import JulesError
from julesbridge.api.models import Activity, Session
from julesbridge.logging import get_logger

if TYPE_CHECKING:
    from julesbridge.api.client import JulesClient

log = get_logger("api.poller")

DEFAULT_POLL_INTERVAL = 10.0

UpdateCallback = Callable[["SessionSnapshot"], "Awaitable[None] | None"]


@dataclass
class SessionSnapshot:
    """Result of one refresh: sessions plus activities keyed by session id."""

    sessions: list[Session]
    activities: dict[str, list[Activity]] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form. Activities become an ordered list of [id, items] pairs."""
        data: dict[str, Any] = {
            "sessions": [s.to_dict() for s in self.sessions],
            "activities": [
                [session_id, [a.to_dict() for a in items]]
                for session_id, items in self.activities.items()
            ],
        }
        if self.error:
            data["error"] = self.error
        return data


class SessionPoller:
    """Drives ``JulesClient.list_sessions`` on a timer."""

    def __init__(
        self,
        client: JulesClient,
        interval: float = DEFAULT_POLL_INTERVAL,
        *,
        fetch_activities: bool = True,
        on_update: UpdateCallback | None = None,
    ) -> None:
        self._client = client
        self._interval = interval
        self._fetch_activities = fetch_activities
        self._on_update = on_update
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._in_flight: asyncio.Task[SessionSnapshot] | None = None
        self.last_snapshot: SessionSnapshot | None = None
        self.skipped_ticks = 0

    @property
    def refreshing(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def refresh(self) -> SessionSnapshot:
        """Run one refresh, or join the one already in flight."""
        in_flight = self._in_flight
        if in_flight is None or in_flight.done():
            in_flight = self._in_flight = asyncio.create_task(self._refresh_once())
        return await asyncio.shield(in_flight)

    async def _refresh_once(self) -> SessionSnapshot:
        try:
            sessions = await self._client.list_sessions()
        except JulesError as e:
            log.warning("Session refresh failed: %s", e.message)
            snapshot = SessionSnapshot(self._client.cache.sessions(), error=e.message)
        else:
            snapshot = SessionSnapshot(sessions)
            if self._fetch_activities:
                for session in sessions:
                    snapshot.activities[session.id] = await self._client.get_activities(session.id)

        self.last_snapshot = snapshot
        if self._on_update is not None:
            result = self._on_update(snapshot)
            if asyncio.iscoroutine(result):
                await result
        return snapshot

    async def _poll_loop(self) -> None:
        while self._running:
            if self.refreshing:
                self.skipped_ticks += 1
                log.debug("Refresh still running; skipping tick")
            else:
                self._in_flight = asyncio.create_task(self._refresh_once())
                self._in_flight.add_done_callback(self._log_failure)
            await asyncio.sleep(self._interval)

    @staticmethod
    def _log_failure(task: asyncio.Task[SessionSnapshot]) -> None:
        if not task.cancelled() and task.exception() is not None:
            log.error("Session refresh crashed: %s", task.exception())

    def start(self) -> None:
        """Start the refresh loop. Must be called from within an event loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        log.debug("Session poller started (interval=%.1fs)", self._interval)

    def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
        if self._in_flight and not self._in_flight.done():
            self._in_flight.cancel()
        log.debug("Session poller stopped")

    async def __aenter__(self) -> SessionPoller:
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        self.stop()
