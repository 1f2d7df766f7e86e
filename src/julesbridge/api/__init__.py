"""Remote session API: client, cache, retry envelope and session model."""

from julesbridge.api.cache import SessionCache
from julesbridge.api.client import JulesClient
from julesbridge.api.errors import (
    JulesApiError,
    JulesError,
    RateLimitError,
    RepositoryNotAccessibleError,
    ResponseFormatError,
    ServiceUnavailableError,
    UnauthenticatedError,
)
from julesbridge.api.models import (
    Activity,
    ActivityCategory,
    FileDiff,
    FileStatus,
    Session,
    SessionDiff,
    SessionStatus,
)
from julesbridge.api.poller import SessionPoller, SessionSnapshot
from julesbridge.api.retry import RetryPolicy, with_retry

__all__ = [
    # Client and cache
    "JulesClient",
    "SessionCache",
    "SessionPoller",
    "SessionSnapshot",
    "RetryPolicy",
    "with_retry",
    # Model
    "Session",
    "SessionStatus",
    "Activity",
    "ActivityCategory",
    "SessionDiff",
    "FileDiff",
    "FileStatus",
    # Errors
    "JulesError",
    "JulesApiError",
    "UnauthenticatedError",
    "RepositoryNotAccessibleError",
    "RateLimitError",
    "ServiceUnavailableError",
    "ResponseFormatError",
]
