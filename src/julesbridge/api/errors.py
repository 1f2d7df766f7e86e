"""Error taxonomy for the remote session API.

Every error carries a user-safe ``message`` (also its ``str()``) and an
optional ``diagnostic`` with raw detail meant for logs only. Raw response
bodies must never reach ``message``.
"""

from __future__ import annotations

REPO_SETTINGS_URL = "https://jules.google.com/settings/repositories"

_STATUS_MESSAGES = {
    400: "Invalid request. Please check your repository configuration.",
    401: "Authentication failed. Please verify your API key is correct.",
    403: "Access denied. Check your Jules permissions.",
    404: "Requested resource was not found in Jules.",
    408: "Request timed out. Please try again.",
    429: "Rate limit exceeded. Please try again later.",
    500: "Jules API error. Please try again.",
    503: "Jules service is temporarily unavailable.",
}


def sanitize_status(status_code: int) -> str:
    """Return the user-facing message for an HTTP status code."""
    return _STATUS_MESSAGES.get(status_code, f"API request failed with status {status_code}")


class JulesError(Exception):
    """Base exception for remote session API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        diagnostic: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.diagnostic = diagnostic


class UnauthenticatedError(JulesError):
    """Raised before any network call when no API key is configured."""

    def __init__(
        self,
        message: str = (
            "Jules API key is missing. Set the JULES_API_KEY environment variable."
        ),
        diagnostic: str | None = None,
    ) -> None:
        super().__init__(message, status_code=401, diagnostic=diagnostic)


class RepositoryNotAccessibleError(JulesError):
    """The remote service has no access to the source repository.

    Carries ``owner`` and ``repo`` so callers can drive a remediation flow
    (installing the GitHub app, then retrying).
    """

    def __init__(self, owner: str, repo: str, diagnostic: str | None = None) -> None:
        self.owner = owner
        self.repo = repo
        super().__init__(
            f"Jules does not have access to {owner}/{repo}. "
            f"Please install the Jules GitHub App at {REPO_SETTINGS_URL}",
            status_code=404,
            diagnostic=diagnostic,
        )


class JulesApiError(JulesError):
    """Non-2xx response from the API, with a sanitized message."""

    @classmethod
    def from_status(cls, status_code: int, body: str | None = None) -> JulesApiError:
        return cls(sanitize_status(status_code), status_code=status_code, diagnostic=body)


class RateLimitError(JulesApiError):
    """HTTP 429. Retried transparently; surfaced only when retries run out."""

    def __init__(self, diagnostic: str | None = None) -> None:
        super().__init__(sanitize_status(429), status_code=429, diagnostic=diagnostic)


class ServiceUnavailableError(JulesError):
    """Transport failure, timeout or 503 that outlived the retry budget."""

    def __init__(
        self,
        message: str = "Jules service is unavailable. Please try again.",
        status_code: int | None = 503,
        diagnostic: str | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, diagnostic=diagnostic)


class ResponseFormatError(JulesError):
    """The API answered 2xx but the body did not have a known shape."""

    def __init__(self, what: str, diagnostic: str | None = None) -> None:
        super().__init__(
            f"Unexpected response from Jules while reading {what}.",
            diagnostic=diagnostic,
        )
