"""Apply a session's change set to a local git working tree.

Changes never land on the user's branch directly. A side branch named
``jules-<first 8 chars of session id>`` is created from HEAD, every file
diff is applied there, and the result is committed once. When some files
fail to apply the tree is left on the side branch with the failing paths
reported, so the user can inspect or retry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from julesbridge.api.models import FileDiff, FileStatus, SessionDiff
from julesbridge.git.runner import GitCommandError, run_git
from julesbridge.logging import get_logger

log = get_logger("git.applier")

BRANCH_PREFIX = "jules-"


@dataclass
class ApplyResult:
    success: bool
    message: str
    conflict_files: list[str] = field(default_factory=list)
    branch: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.conflict_files:
            data["conflictFiles"] = list(self.conflict_files)
        if self.branch:
            data["branch"] = self.branch
        return data


def side_branch_name(session_id: str) -> str:
    return f"{BRANCH_PREFIX}{session_id[:8]}"


class GitWorkingTree:
    """A local repository checkout that session diffs are applied to."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    async def is_clean(self) -> bool:
        """True when there are no staged, unstaged or untracked changes."""
        result = await run_git("status", "--porcelain", cwd=self.root)
        return result.stdout.strip() == ""

    async def current_branch(self) -> str:
        result = await run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=self.root)
        return result.stdout.strip()

    async def conflict_files(self) -> list[str]:
        result = await run_git("diff", "--name-only", "--diff-filter=U", cwd=self.root, check=False)
        return [line for line in result.stdout.splitlines() if line.strip()]

    async def apply_session_diff(self, diff: SessionDiff) -> ApplyResult:
        """Apply ``diff`` on a side branch and commit it as one unit.

        Returns a failed result without touching the tree when the working
        tree is dirty or the diff is empty. Git errors become failed results.
        """
        log.info("Applying diff of session %s (%d file(s))", diff.session_id, len(diff.files))
        try:
            if not await self.is_clean():
                return ApplyResult(
                    success=False,
                    message="Working tree has uncommitted changes. Commit or stash them first.",
                )
            if not diff.files:
                return ApplyResult(success=False, message="Session diff contains no file changes.")

            branch = side_branch_name(diff.session_id)
            await run_git("checkout", "-q", "-b", branch, cwd=self.root)

            failed: list[str] = []
            for file_diff in diff.files:
                try:
                    await self._apply_file(file_diff)
                except GitCommandError as e:
                    log.warning("Could not apply %s: %s", file_diff.path, e)
                    failed.append(file_diff.path)

            if failed:
                for path in await self.conflict_files():
                    if path not in failed:
                        failed.append(path)
                return ApplyResult(
                    success=False,
                    message=f"Failed to apply changes to {len(failed)} file(s) on branch {branch}.",
                    conflict_files=failed,
                    branch=branch,
                )

            await run_git("add", "-A", cwd=self.root)
            await run_git(
                "commit",
                "-q",
                "-m",
                f"Apply Jules session {diff.session_id[:8]} changes",
                cwd=self.root,
            )
        except GitCommandError as e:
            log.error("Applying session %s failed: %s", diff.session_id, e)
            return ApplyResult(success=False, message=str(e))

        log.info("Session %s applied on %s", diff.session_id, branch)
        return ApplyResult(
            success=True,
            message=f"Changes applied and committed on branch {branch}.",
            branch=branch,
        )

    async def _apply_file(self, file_diff: FileDiff) -> None:
        if file_diff.status is FileStatus.DELETED:
            await run_git("rm", "-q", "--", file_diff.path, cwd=self.root)
        else:
            await run_git("apply", "--3way", "--index", cwd=self.root, input_text=file_diff.patch)
