"""jules-bridge: delegate coding tasks to Jules, track sessions, apply the results."""

__version__ = "0.1.0"

# Public API
from julesbridge.api import (
    Activity,
    JulesApiError,
    JulesClient,
    JulesError,
    RepositoryNotAccessibleError,
    Session,
    SessionCache,
    SessionDiff,
    SessionPoller,
    SessionStatus,
    UnauthenticatedError,
)
from julesbridge.bridge import BridgeServer, LineTransport
from julesbridge.config import Config, get_config, load_config
from julesbridge.context import WorkspaceContextGatherer, build_prompt
from julesbridge.git import ApplyResult, GitWorkingTree

__all__ = [
    # Client
    "JulesClient",
    "SessionCache",
    "SessionPoller",
    # Model
    "Session",
    "SessionStatus",
    "Activity",
    "SessionDiff",
    # Errors
    "JulesError",
    "JulesApiError",
    "UnauthenticatedError",
    "RepositoryNotAccessibleError",
    # Bridge
    "BridgeServer",
    "LineTransport",
    # Context and git
    "WorkspaceContextGatherer",
    "build_prompt",
    "GitWorkingTree",
    "ApplyResult",
    # Config
    "Config",
    "load_config",
    "get_config",
]
