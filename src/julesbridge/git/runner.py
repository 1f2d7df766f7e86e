"""Async ``git`` subprocess runner."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

from julesbridge.logging import get_logger

log = get_logger("git")

DEFAULT_GIT_TIMEOUT = 30.0


@dataclass(frozen=True)
class GitResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitCommandError(Exception):
    """A git command exited non-zero, timed out, or git is not installed."""

    def __init__(self, args: tuple[str, ...], returncode: int | None, stderr: str) -> None:
        self.command = args
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else f"exit code {returncode}"
        super().__init__(f"git {' '.join(args)} failed: {detail}")


async def run_git(
    *args: str,
    cwd: str | Path,
    input_text: str | None = None,
    check: bool = True,
    timeout: float | None = DEFAULT_GIT_TIMEOUT,
) -> GitResult:
    """Run ``git <args>`` in ``cwd``.

    Args:
        args: Arguments after ``git``.
        cwd: Working directory.
        input_text: Written to stdin when given.
        check: Raise GitCommandError on a non-zero exit.
        timeout: Seconds before the process is killed. None waits forever.
    """
    log.debug("git %s (cwd=%s)", " ".join(args), cwd)
    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
        )
    except FileNotFoundError as e:
        raise GitCommandError(args, None, "git executable not found") from e

    stdin_data = input_text.encode("utf-8") if input_text is not None else None
    try:
        stdout_data, stderr_data = await asyncio.wait_for(
            process.communicate(stdin_data), timeout=timeout
        )
    except asyncio.TimeoutError as e:
        try:
            process.kill()
            await process.wait()
        except ProcessLookupError:
            pass  # Process already gone
        raise GitCommandError(args, None, f"timed out after {timeout}s") from e

    result = GitResult(
        args=args,
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout_data.decode("utf-8", errors="replace"),
        stderr=stderr_data.decode("utf-8", errors="replace"),
    )
    if check and not result.ok:
        raise GitCommandError(args, result.returncode, result.stderr)
    return result
