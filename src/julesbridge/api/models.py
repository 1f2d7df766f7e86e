"""Local session model.

These are the stable, wire-independent types the rest of jules-bridge
works with. Remote JSON is translated into them by ``julesbridge.api.wire``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# Task text shown in listings is clipped to this many characters
MAX_TASK_LENGTH = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def summarize_task(text: str | None, fallback: str = "Jules Session") -> str:
    """Clip free text to a single bounded line for display."""
    if not text or not text.strip():
        return fallback
    line = " ".join(text.split())
    if len(line) <= MAX_TASK_LENGTH:
        return line
    return line[:MAX_TASK_LENGTH]


class SessionStatus(Enum):
    """Lifecycle state of a remote session.

    pending -> running -> {completed | failed | cancelled}
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def rank(self) -> int:
        if self is SessionStatus.PENDING:
            return 0
        if self is SessionStatus.RUNNING:
            return 1
        return 2

    def can_transition_to(self, new: SessionStatus) -> bool:
        """Whether moving from this state to ``new`` keeps the lifecycle monotonic.

        Staying put is always allowed. Terminal states never change, except
        that cancellation may still win over a non-terminal state.
        """
        if new is self:
            return True
        if self.is_terminal:
            return False
        return new.rank > self.rank


_TERMINAL = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED}
)


class ActivityCategory(Enum):
    """Coarse category of a unit of remote progress."""

    PLANNING = "planning"
    EXECUTING = "executing"
    REVIEWING = "reviewing"
    COMPLETED = "completed"


class FileStatus(Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass
class Session:
    """One remote delegated task."""

    id: str
    task: str
    status: SessionStatus = SessionStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    remote_branch: str | None = None
    error: str | None = None

    def with_status(self, status: SessionStatus) -> Session:
        return replace(self, status=status)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation for the bridge and the CLI."""
        data: dict[str, Any] = {
            "id": self.id,
            "task": self.task,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.remote_branch:
            data["remoteBranch"] = self.remote_branch
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class Activity:
    """One recorded unit of the remote agent's reasoning or progress."""

    id: str
    session_id: str
    content: str
    timestamp: datetime
    category: ActivityCategory

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "type": self.category.value,
        }


@dataclass(frozen=True)
class FileDiff:
    path: str
    status: FileStatus
    patch: str


@dataclass
class SessionDiff:
    """File-level change set produced by a completed session."""

    session_id: str
    files: list[FileDiff]
    remote_branch: str | None = None
    commit_hash: str | None = None

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "remoteBranch": self.remote_branch,
            "commitHash": self.commit_hash,
            "files": [
                {"path": f.path, "status": f.status.value, "patch": f.patch}
                for f in self.files
            ],
        }
