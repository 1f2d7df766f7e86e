"""Shared test utilities for jules-bridge tests."""

from __future__ import annotations

import json
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from julesbridge.api.models import Session, SessionStatus

BASE_URL = "https://jules.test/v1alpha"
SESSIONS_URL = f"{BASE_URL}/sessions"
T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_session(
    session_id: str,
    minutes: int = 0,
    status: SessionStatus = SessionStatus.PENDING,
    task: str | None = None,
) -> Session:
    """A session created ``minutes`` after T0."""
    created = T0 + timedelta(minutes=minutes)
    return Session(
        id=session_id,
        task=task or f"task {session_id}",
        status=status,
        created_at=created,
        updated_at=created,
    )


def remote_session(
    session_id: str,
    state: str = "IN_PROGRESS",
    minutes: int = 0,
    **fields: object,
) -> dict[str, object]:
    """A session record as the remote API returns it."""
    created = (T0 + timedelta(minutes=minutes)).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    record: dict[str, object] = {
        "name": f"sessions/{session_id}",
        "id": session_id,
        "title": f"task {session_id}",
        "state": state,
        "createTime": created,
        "updateTime": created,
    }
    record.update(fields)
    return record


class FakeSleep:
    """Records requested backoff delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


class FakeWriter:
    """Collects written bytes; stands in for asyncio.StreamWriter."""

    def __init__(self) -> None:
        self.data = bytearray()

    def write(self, data: bytes) -> None:
        self.data.extend(data)

    async def drain(self) -> None:
        pass

    def messages(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in self.data.decode().splitlines() if line]


def git(cwd: Path, *args: str) -> str:
    """Run git synchronously for test setup."""
    return subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    ).stdout
