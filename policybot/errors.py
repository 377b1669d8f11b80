"""Exception hierarchy for policybot.

Gateway errors carry the operation and the repository/ref/path they were
raised for, so a failure is self-describing once it reaches the orchestrator.
"""

from __future__ import annotations


class PolicyBotError(Exception):
    """Base class for every error raised by policybot."""


class CatalogError(PolicyBotError):
    """The policy catalog is malformed. Raised at startup, never per run."""

    def __init__(self, issues: list[str], source: str = ""):
        self.issues = list(issues)
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(f"invalid policy catalog{where}: " + "; ".join(self.issues))


class PatternError(PolicyBotError):
    """A file-match glob pattern is malformed."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"malformed pattern {pattern!r}: {reason}")


class ContentDecodeError(PolicyBotError):
    """File content returned by the gateway could not be decoded to text."""


class ContentFetchError(PolicyBotError):
    """Canonical policy content could not be fetched from its source URL."""

    def __init__(self, url: str, message: str, status: int | None = None):
        self.url = url
        self.status = status
        super().__init__(f"fetching {url}: {message}")


class GatewayError(PolicyBotError):
    """A remote repository-hosting API call failed."""

    def __init__(
        self,
        message: str,
        operation: str = "",
        repository: str = "",
        ref: str = "",
        path: str = "",
        status: int | None = None,
    ):
        self.message = message
        self.operation = operation
        self.repository = repository
        self.ref = ref
        self.path = path
        self.status = status
        super().__init__(self._format())

    def _format(self) -> str:
        context = [
            f"{label}={value}"
            for label, value in (
                ("repository", self.repository),
                ("ref", self.ref),
                ("path", self.path),
                ("status", self.status),
            )
            if value
        ]
        prefix = f"{self.operation}: " if self.operation else ""
        suffix = f" ({', '.join(context)})" if context else ""
        return f"{prefix}{self.message}{suffix}"


class NotFoundError(GatewayError):
    """The requested repository, ref, file or pull request does not exist."""


class AlreadyExistsError(GatewayError):
    """The object being created (typically a branch ref) already exists."""


class RateLimitError(GatewayError):
    """The API refused the request because the rate limit is exhausted.

    ``reset_at`` is the POSIX timestamp at which the limit resets, when known.
    """

    def __init__(self, message: str, reset_at: float | None = None, **context):
        self.reset_at = reset_at
        super().__init__(message, **context)


class MaxRetriesError(GatewayError):
    """Rate-limit retries were exhausted."""


class DriftError(PolicyBotError):
    """Evaluating one repository against the catalog failed."""

    def __init__(self, repository: str, policy: str, message: str):
        self.repository = repository
        self.policy = policy
        super().__init__(f"{repository}: policy {policy}: {message}")


class RemediationError(PolicyBotError):
    """One step of remediating a deviation failed."""

    def __init__(self, operation: str, repository: str, branch: str, cause: Exception):
        self.operation = operation
        self.repository = repository
        self.branch = branch
        self.cause = cause
        super().__init__(f"{operation} failed for {repository} on branch {branch}: {cause}")
