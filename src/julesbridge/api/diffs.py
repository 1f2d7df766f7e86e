"""Session diff extraction.

A finished session publishes its changes as a single unified diff inside
an activity artifact (``changeSet.gitPatch.unidiffPatch``). This module
finds that patch and splits it into per-file diffs.
"""

from __future__ import annotations

import re
from typing import Any

from julesbridge.api.models import FileDiff, FileStatus

_GIT_HEADER = re.compile(r"^diff --git a/(?P<old>.+?) b/(?P<new>.+)$")
_DEV_NULL = "/dev/null"


def _strip_prefix(path: str) -> str:
    path = path.split("\t", 1)[0].strip()
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path


def _file_from_chunk(lines: list[str]) -> FileDiff | None:
    old_path: str | None = None
    new_path: str | None = None
    status = FileStatus.MODIFIED

    header = _GIT_HEADER.match(lines[0])
    if header:
        old_path, new_path = header.group("old"), header.group("new")

    for line in lines:
        if line.startswith("new file mode"):
            status = FileStatus.ADDED
        elif line.startswith("deleted file mode"):
            status = FileStatus.DELETED
        elif line.startswith("--- "):
            source = line[4:].strip()
            if source == _DEV_NULL:
                status = FileStatus.ADDED
            else:
                old_path = _strip_prefix(source)
        elif line.startswith("+++ "):
            target = line[4:].strip()
            if target == _DEV_NULL:
                status = FileStatus.DELETED
            else:
                new_path = _strip_prefix(target)
            break

    path = old_path if status is FileStatus.DELETED else new_path
    path = path or old_path or new_path
    if not path:
        return None
    patch = "\n".join(lines)
    if not patch.endswith("\n"):
        patch += "\n"
    return FileDiff(path=path, status=status, patch=patch)


def split_unified_diff(patch: str) -> list[FileDiff]:
    """Split a multi-file unified diff into one FileDiff per file, in order.

    Handles both ``git diff`` output (``diff --git`` headers) and plain
    unified diffs that only have ``---``/``+++`` headers.
    """
    lines = patch.splitlines()
    use_git_headers = any(line.startswith("diff --git ") for line in lines)

    chunks: list[list[str]] = []
    current: list[str] = []
    for index, line in enumerate(lines):
        if use_git_headers:
            starts_file = line.startswith("diff --git ")
        else:
            following = lines[index + 1] if index + 1 < len(lines) else ""
            starts_file = line.startswith("--- ") and following.startswith("+++ ")
        if starts_file and current:
            chunks.append(current)
            current = []
        if starts_file or current:
            current.append(line)
    if current:
        chunks.append(current)

    files = []
    for chunk in chunks:
        file_diff = _file_from_chunk(chunk)
        if file_diff is not None:
            files.append(file_diff)
    return files


def find_git_patch(activities: list[dict[str, Any]]) -> str | None:
    """Return the newest unified diff published in an activity stream.

    Activities arrive oldest first; later change sets supersede earlier ones.
    """
    for record in reversed(activities):
        for artifact in record.get("artifacts") or []:
            if not isinstance(artifact, dict):
                continue
            change_set = artifact.get("changeSet") or {}
            git_patch = change_set.get("gitPatch") or {}
            patch = git_patch.get("unidiffPatch")
            if isinstance(patch, str) and patch.strip():
                return patch
    return None
