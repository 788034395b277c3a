"""Error types for the submission reviewer."""

from typing import Any, Literal


class ReviewerError(Exception):
    """Base exception for all submission reviewer errors."""


class ProviderNotConfigured(ReviewerError):
    """Raised when the credential for an AI provider is missing.

    This is a configuration problem, so jobs that hit it are not retried.

    Attributes:
        provider: The provider that was selected for the model
        env_var: The environment variable(s) that must be set
    """

    def __init__(self, provider: str, env_var: str, message: str | None = None):
        self.provider = provider
        self.env_var = env_var
        super().__init__(
            message or f"{env_var} environment variable is not set ({provider})"
        )


class ProviderError(ReviewerError):
    """Raised when an AI provider call fails.

    Rate limits and server errors are transient; the job's retry policy
    decides whether to try again.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        rate_limited: bool = False,
    ):
        self.status_code = status_code
        self.rate_limited = rate_limited
        if status_code is not None:
            message = f"{message} (status: {status_code})"
        super().__init__(message)


class SchemaValidationError(ReviewerError):
    """Raised when a provider's output cannot be coerced to the review schema."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        self.errors = errors or []
        super().__init__(message)


FetchErrorKind = Literal["not_found", "rate_limited", "private", "empty", "network"]


class ExternalFetchError(ReviewerError):
    """Raised when the code snapshot cannot be fetched.

    The kind lets callers render a precise message ("not found" vs
    "rate limited") instead of a generic failure.
    """

    def __init__(self, message: str, kind: FetchErrorKind = "network"):
        self.kind = kind
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Only rate limits and network failures can succeed on retry."""
        return self.kind in ("rate_limited", "network")


class AggregationError(ReviewerError):
    """Raised when chunk results cannot be aggregated (empty input)."""


class QueueBackendUnavailable(ReviewerError):
    """Raised when the queue backend cannot be reached."""

    def __init__(self, message: str, backend: str | None = None):
        self.backend = backend
        super().__init__(message)


def is_retryable(error: BaseException) -> bool:
    """Check whether a failed job should be retried for this error.

    Args:
        error: The exception raised by the job handler

    Returns:
        False for configuration and programmer errors, True otherwise
    """
    if isinstance(error, (ProviderNotConfigured, AggregationError)):
        return False
    if isinstance(error, ExternalFetchError):
        return error.is_retryable
    return True
