"""In-memory session cache and remote-listing reconciler.

The cache is the one view of sessions handed to callers. Two writers feed
it: optimistic inserts/removals from the client, and ``merge`` with remote
listings. Remote indexing lags behind creation, so a merge keeps sessions
the remote has never listed.

Every mutation bumps ``version``. A caller that snapshots the version
before a slow listing can pass it back as ``merge(..., since=token)``;
if anything changed in between, the listing is stale and is dropped.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from julesbridge.api.models import Session
from julesbridge.logging import get_logger

log = get_logger("api.cache")


class SessionCache:
    """Owned, explicitly constructed session store keyed by session id."""

    def __init__(self, sessions: Iterable[Session] = ()) -> None:
        self._sessions: dict[str, Session] = {}
        # Ids that have appeared in at least one remote listing
        self._seen_remote: set[str] = set()
        self._version = 0
        for session in sessions:
            self._sessions[session.id] = session
        self._sort()

    @property
    def version(self) -> int:
        return self._version

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def sessions(self) -> list[Session]:
        """Sessions ordered newest first."""
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(self.sessions())

    def insert(self, session: Session) -> None:
        """Register a session the remote may not list yet."""
        self._sessions[session.id] = session
        self._sort()
        self._bump()
        log.debug("Cached session %s (%s)", session.id, session.status.value)

    def remove(self, session_id: str) -> Session | None:
        removed = self._sessions.pop(session_id, None)
        self._seen_remote.discard(session_id)
        if removed is not None:
            self._bump()
            log.debug("Removed session %s from cache", session_id)
        return removed

    def clear(self) -> None:
        self._sessions.clear()
        self._seen_remote.clear()
        self._bump()

    def merge(self, remote: Iterable[Session], since: int | None = None) -> bool:
        """Reconcile a remote listing into the cache.

        Returns False when the listing was discarded, either because it is
        stale (``since`` no longer matches ``version``) or because it is an
        empty listing while the cache still holds sessions.

        Rules:
        - An empty listing never empties a non-empty cache.
        - Sessions the remote has never listed are kept.
        - A session listed before but missing from a non-empty listing is gone.
        - A known session keeps its status if the remote one would regress it.
        """
        if since is not None and since != self._version:
            log.debug("Discarding stale listing (version %d, now %d)", since, self._version)
            return False

        remote_sessions = list(remote)
        if not remote_sessions:
            if self._sessions:
                log.debug("Empty listing with %d cached sessions; keeping cache", len(self))
                return False
            return True

        merged: dict[str, Session] = {}
        for incoming in remote_sessions:
            existing = self._sessions.get(incoming.id)
            if existing is not None and not existing.status.can_transition_to(incoming.status):
                log.debug(
                    "Keeping %s for %s (remote reported %s)",
                    existing.status.value,
                    incoming.id,
                    incoming.status.value,
                )
                incoming = incoming.with_status(existing.status)
            merged[incoming.id] = incoming

        listed = set(merged)
        for session_id, session in self._sessions.items():
            if session_id in listed:
                continue
            if session_id in self._seen_remote:
                log.debug("Session %s no longer listed remotely", session_id)
                continue
            merged[session_id] = session

        self._seen_remote = (self._seen_remote & set(merged)) | listed
        if merged == self._sessions:
            return True
        self._sessions = merged
        self._sort()
        self._bump()
        return True

    def to_dict(self) -> dict[str, Any]:
        """Plain JSON-safe form, ordered newest first."""
        return {"sessions": [s.to_dict() for s in self.sessions()]}

    def _sort(self) -> None:
        ordered = sorted(self._sessions.values(), key=lambda s: s.created_at, reverse=True)
        self._sessions = {s.id: s for s in ordered}

    def _bump(self) -> None:
        self._version += 1
