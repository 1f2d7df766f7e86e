"""Local git plumbing: the subprocess runner and the session diff applier."""

from julesbridge.git.applier import ApplyResult, GitWorkingTree, side_branch_name
from julesbridge.git.runner import GitCommandError, GitResult, run_git

__all__ = [
    "ApplyResult",
    "GitWorkingTree",
    "side_branch_name",
    "GitCommandError",
    "GitResult",
    "run_git",
]
