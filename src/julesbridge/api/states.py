"""Translation tables from remote vocabulary to the local model.

The remote service has used several spellings for the same lifecycle
state (``IN_PROGRESS``, ``in-progress``, ``Canceled``...). Keys are
normalized before lookup; anything unrecognized maps to PENDING.
"""

from __future__ import annotations

import re

from julesbridge.api.models import ActivityCategory, SessionStatus

SESSION_STATE_TABLE: dict[str, SessionStatus] = {
    "state_unspecified": SessionStatus.PENDING,
    "pending": SessionStatus.PENDING,
    "queued": SessionStatus.PENDING,
    "planning": SessionStatus.RUNNING,
    # Waiting on the user still counts as an active session remotely
    "awaiting_plan_approval": SessionStatus.RUNNING,
    "awaiting_user_feedback": SessionStatus.RUNNING,
    "waiting_for_approval": SessionStatus.RUNNING,
    "in_progress": SessionStatus.RUNNING,
    "running": SessionStatus.RUNNING,
    "active": SessionStatus.RUNNING,
    "paused": SessionStatus.RUNNING,
    "completed": SessionStatus.COMPLETED,
    "complete": SessionStatus.COMPLETED,
    "finished": SessionStatus.COMPLETED,
    "succeeded": SessionStatus.COMPLETED,
    "failed": SessionStatus.FAILED,
    "error": SessionStatus.FAILED,
    "cancelled": SessionStatus.CANCELLED,
    "canceled": SessionStatus.CANCELLED,
}

_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_state(state: str | None) -> str:
    if not state:
        return ""
    return _SEPARATORS.sub("_", state.strip().lower())


def map_session_state(state: str | None) -> SessionStatus:
    """Map a remote lifecycle string to a SessionStatus. Never raises."""
    return SESSION_STATE_TABLE.get(normalize_state(state), SessionStatus.PENDING)


# Ordered: the first matching fragment wins
_ACTIVITY_FRAGMENTS: tuple[tuple[tuple[str, ...], ActivityCategory], ...] = (
    (("plan",), ActivityCategory.PLANNING),
    (("execut", "code", "progress"), ActivityCategory.EXECUTING),
    (("review", "test"), ActivityCategory.REVIEWING),
    (("complete", "finish"), ActivityCategory.COMPLETED),
)


def map_activity_type(activity_type: str | None) -> ActivityCategory:
    """Map a remote activity type to a coarse category (default: executing)."""
    value = (activity_type or "").lower()
    for fragments, category in _ACTIVITY_FRAGMENTS:
        if any(fragment in value for fragment in fragments):
            return category
    return ActivityCategory.EXECUTING
