"""Workspace context for delegated tasks.

Collects what a remote agent needs to pick up local work: the GitHub
repository and branch, uncommitted changes, the planning artifacts the
local agent left behind, and any files the caller named explicitly.
Everything here is best-effort; a missing piece is simply left out of the
prompt.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from julesbridge.git.runner import GitCommandError, run_git
from julesbridge.logging import get_logger

log = get_logger("context")

MAX_DIFF_CHARS = 10_000
TRUNCATION_MARKER = "\n... (truncated)"
MAX_FILE_BYTES = 100_000
MAX_TOTAL_BYTES = 500_000
GIT_CONTEXT_TIMEOUT = 5.0

ARTIFACTS_DIR = Path(".gemini") / "antigravity" / "brain"
TASK_ARTIFACT = "task.md"
PLAN_ARTIFACT = "implementation_plan.md"

INSTRUCTION = (
    "You are an expert software engineer. You are working on a WIP branch. "
    "Analyze the workspace context and complete the mission brief."
)

_GITHUB_URL = re.compile(
    r"(?:git@|https://)(?:[\w.@]+)[/:]([a-zA-Z0-9_.-]+)/([a-zA-Z0-9_.-]+?)(?:\.git)?$"
)

_LANGUAGES = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".swift": "swift",
    ".cs": "csharp",
    ".cpp": "cpp",
    ".c": "c",
    ".h": "c",
    ".hpp": "cpp",
    ".rb": "ruby",
    ".php": "php",
    ".sql": "sql",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".xml": "xml",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".md": "markdown",
    ".sh": "shell",
    ".bash": "shell",
    ".zsh": "shell",
}


@dataclass
class GitContext:
    owner: str
    repo: str
    branch: str
    is_dirty: bool
    diff: str = ""


@dataclass
class ContextFile:
    path: str
    content: str
    language: str


@dataclass
class GatheredContext:
    git: GitContext | None = None
    task_checklist: str | None = None
    implementation_plan: str | None = None
    files: list[ContextFile] = field(default_factory=list)

    @property
    def owner(self) -> str:
        return self.git.owner if self.git else "unknown"

    @property
    def repo(self) -> str:
        return self.git.repo if self.git else "unknown"

    @property
    def branch(self) -> str:
        return self.git.branch if self.git and self.git.branch else "main"


class ContextProvider(Protocol):
    async def gather(self, context_files: list[str] | None = None) -> GatheredContext: ...


def parse_github_url(url: str) -> tuple[str, str] | None:
    """``(owner, repo)`` from an https or ssh GitHub remote URL."""
    match = _GITHUB_URL.search(url.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


def truncate_diff(diff: str, limit: int = MAX_DIFF_CHARS) -> str:
    if len(diff) <= limit:
        return diff
    return diff[:limit] + TRUNCATION_MARKER


def detect_language(path: str | Path) -> str:
    return _LANGUAGES.get(Path(path).suffix.lower(), "plaintext")


def load_context_files(
    paths: list[str],
    root: str | Path,
    *,
    max_file_bytes: int = MAX_FILE_BYTES,
    max_total_bytes: int = MAX_TOTAL_BYTES,
) -> list[ContextFile]:
    """Read the named files, relative paths resolved against ``root``.

    Missing, unreadable and oversized files are skipped. Reading stops at
    the first file that would push the total past ``max_total_bytes``.
    """
    loaded: list[ContextFile] = []
    total = 0
    for name in paths:
        path = Path(name)
        if not path.is_absolute():
            path = Path(root) / path
        try:
            size = path.stat().st_size
            if not path.is_file() or size > max_file_bytes:
                log.debug("Skipping context file %s", name)
                continue
            if total + size > max_total_bytes:
                log.debug("Context size limit reached at %s", name)
                break
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log.debug("Cannot read context file %s: %s", name, e)
            continue
        loaded.append(ContextFile(path=name, content=content, language=detect_language(name)))
        total += size
    return loaded


def read_artifacts(home: Path | None = None) -> tuple[str | None, str | None]:
    """Task checklist and implementation plan from the newest artifact directory."""
    brain = (home or Path.home()) / ARTIFACTS_DIR
    try:
        dirs = [d for d in brain.iterdir() if d.is_dir()]
    except OSError:
        return None, None
    if not dirs:
        return None, None

    latest = max(dirs, key=lambda d: d.stat().st_mtime)

    def read(name: str) -> str | None:
        try:
            return (latest / name).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None

    return read(TASK_ARTIFACT), read(PLAN_ARTIFACT)


def build_prompt(context: GatheredContext, task: str | None) -> str:
    """Render the prompt sent as the body of a new session."""
    workspace = ""

    git = context.git
    if git is not None:
        workspace += "<git_context>\n"
        workspace += f"<repository>{git.owner}/{git.repo}</repository>\n"
        workspace += f"<branch>{git.branch}</branch>\n"
        workspace += f"<has_uncommitted_changes>{str(git.is_dirty).lower()}</has_uncommitted_changes>\n"
        if git.diff:
            workspace += f"<diff>\n{git.diff}\n</diff>\n"
        workspace += "</git_context>\n"

    if context.task_checklist or context.implementation_plan:
        workspace += "<artifacts>\n"
        if context.task_checklist:
            workspace += f"<task_checklist>\n{context.task_checklist}\n</task_checklist>\n"
        if context.implementation_plan:
            workspace += (
                f"<implementation_plan>\n{context.implementation_plan}\n</implementation_plan>\n"
            )
        workspace += "</artifacts>\n"

    if context.files:
        workspace += "<context_files>\n"
        for f in context.files:
            workspace += f'<file path="{f.path}" language="{f.language}">\n{f.content}\n</file>\n'
        workspace += "</context_files>\n"

    brief = task or "[Describe your task here]"
    return (
        f"<instruction>{INSTRUCTION}</instruction>\n"
        f"<workspace_context>\n{workspace}</workspace_context>\n"
        f"<mission_brief>{brief}</mission_brief>"
    )


class WorkspaceContextGatherer:
    """Gathers context for a workspace rooted at ``root``."""

    def __init__(self, root: str | Path = ".", home: Path | None = None) -> None:
        self.root = Path(root)
        self._home = home

    async def gather(self, context_files: list[str] | None = None) -> GatheredContext:
        log.debug("Gathering workspace context in %s", self.root)
        git = await self.git_context()
        loop = asyncio.get_running_loop()
        task_checklist, plan = await loop.run_in_executor(None, read_artifacts, self._home)
        files = await loop.run_in_executor(None, load_context_files, context_files or [], self.root)
        return GatheredContext(
            git=git,
            task_checklist=task_checklist,
            implementation_plan=plan,
            files=files,
        )

    async def git_context(self) -> GitContext | None:
        """Repository, branch, dirty flag and diff; None outside a GitHub checkout."""
        try:
            remote = await self._git("config", "--get", "remote.origin.url")
            parsed = parse_github_url(remote) if remote else None
            if parsed is None:
                log.debug("No GitHub remote found in %s", self.root)
                return None
            owner, repo = parsed

            status = await self._git("status", "--porcelain")
            branch = await self._git("rev-parse", "--abbrev-ref", "HEAD") or "main"
            diff = await self._git("diff", "HEAD")
        except GitCommandError as e:
            log.warning("Git context unavailable: %s", e)
            return None

        return GitContext(
            owner=owner,
            repo=repo,
            branch=branch,
            is_dirty=bool(status),
            diff=truncate_diff(diff),
        )

    async def _git(self, *args: str) -> str:
        result = await run_git(*args, cwd=self.root, check=False, timeout=GIT_CONTEXT_TIMEOUT)
        return result.stdout.strip() if result.ok else ""
