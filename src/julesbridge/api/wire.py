"""Remote wire format for the session API.

Pydantic models describe the JSON records the service returns, and the
helpers here turn them into ``julesbridge.api.models`` values.

Collection responses have come back in more than one shape, so
``extract_records`` tries the known shapes in a fixed order and raises
``ResponseFormatError`` if none of them fits.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from julesbridge.api.errors import ResponseFormatError
from julesbridge.api.models import Activity, Session, summarize_task, utcnow
from julesbridge.api.states import map_activity_type, map_session_state

# Activity payloads name their event by key instead of a ``type`` field
ACTIVITY_EVENT_KEYS = (
    "planGenerated",
    "planApproved",
    "progressUpdated",
    "userMessaged",
    "agentMessaged",
    "sessionCompleted",
    "sessionFailed",
)

_FRACTION = re.compile(r"\.(\d+)")


class WireModel(BaseModel):
    """Base for remote records: tolerate unknown fields, accept both names."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class RemoteSession(WireModel):
    name: str | None = None
    id: str | None = None
    title: str | None = None
    prompt: str | None = None
    state: str | None = None
    create_time: str | None = Field(default=None, alias="createTime")
    update_time: str | None = Field(default=None, alias="updateTime")
    output_branch: str | None = Field(default=None, alias="outputBranch")


class RemoteActivity(WireModel):
    name: str | None = None
    id: str | None = None
    type: str | None = None
    description: str | None = None
    create_time: str | None = Field(default=None, alias="createTime")

    def event_type(self) -> str | None:
        if self.type:
            return self.type
        extras = self.model_extra or {}
        for key in ACTIVITY_EVENT_KEYS:
            if key in extras:
                return key
        return None


def parse_timestamp(value: str | None, default: datetime | None = None) -> datetime:
    """Parse an RFC 3339 timestamp; missing or bad values give ``default``, else "now" (UTC).

    The API sends anywhere from 0 to 9 fractional digits; ``fromisoformat``
    wants exactly microseconds, so the fraction is padded or trimmed first.
    """
    if not value:
        return default or utcnow()
    text = _FRACTION.sub(_six_digit_fraction, value.strip(), count=1)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return default or utcnow()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _six_digit_fraction(match: re.Match[str]) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def resource_id(name: str | None, explicit: str | None = None) -> str | None:
    """Id from an explicit field, else the last segment of ``sessions/<id>``."""
    if explicit:
        return explicit
    if name:
        return name.rstrip("/").rsplit("/", 1)[-1] or None
    return None


def extract_records(payload: Any, key: str, what: str) -> list[dict[str, Any]]:
    """Pull the list of records out of a collection response.

    Shapes tried, in order:
    1. ``{"<key>": [...]}``
    2. ``{"items": [...]}``
    3. a bare JSON array
    4. an object with no records at all (``{}`` or only ``nextPageToken``),
       which the service sends for an empty collection
    """
    if isinstance(payload, dict):
        for candidate in (key, "items"):
            if candidate in payload:
                records = payload[candidate]
                if records is None:
                    return []
                if isinstance(records, list):
                    return _only_objects(records, what)
                raise ResponseFormatError(what, diagnostic=f"{candidate!r} is not a list")
        if set(payload) <= {"nextPageToken"}:
            return []
        raise ResponseFormatError(what, diagnostic=f"unknown keys: {sorted(payload)}")
    if isinstance(payload, list):
        return _only_objects(payload, what)
    raise ResponseFormatError(what, diagnostic=f"unexpected JSON type {type(payload).__name__}")


def _only_objects(records: list[Any], what: str) -> list[dict[str, Any]]:
    if not all(isinstance(r, dict) for r in records):
        raise ResponseFormatError(what, diagnostic="collection holds non-object entries")
    return records


def session_from_wire(
    record: dict[str, Any], lookup: Callable[[str], Session | None] | None = None
) -> Session:
    """Translate one remote session record.

    ``lookup`` finds an already known copy of the session by id. Its
    timestamps stand in for ones the record omits, so repeated listings of
    the same record compare equal.
    """
    try:
        remote = RemoteSession.model_validate(record)
    except ValidationError as e:
        raise ResponseFormatError("session", diagnostic=str(e)) from e

    session_id = resource_id(remote.name, remote.id)
    if not session_id:
        raise ResponseFormatError("session", diagnostic="record has neither name nor id")
    known = lookup(session_id) if lookup is not None else None

    return Session(
        id=session_id,
        task=summarize_task(remote.title or remote.prompt),
        status=map_session_state(remote.state),
        created_at=parse_timestamp(remote.create_time, known.created_at if known else None),
        updated_at=parse_timestamp(
            remote.update_time or remote.create_time, known.updated_at if known else None
        ),
        remote_branch=remote.output_branch,
    )


def activity_from_wire(record: dict[str, Any], session_id: str) -> Activity:
    """Translate one remote activity record."""
    try:
        remote = RemoteActivity.model_validate(record)
    except ValidationError as e:
        raise ResponseFormatError("activity", diagnostic=str(e)) from e

    event_type = remote.event_type()
    return Activity(
        id=resource_id(remote.name, remote.id) or "unknown",
        session_id=session_id,
        content=remote.description or event_type or "Activity",
        timestamp=parse_timestamp(remote.create_time),
        category=map_activity_type(event_type),
    )
