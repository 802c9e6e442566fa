"""
Artifact Cleaner Exception Hierarchy.

Defines the custom exceptions raised while discovering, classifying,
archiving and deleting artifacts. Remote failures are split by how the
discovery pool must react to them: transient failures are retried with
backoff, not-found is terminal, and anything else gets one more attempt.
"""

from typing import Any


class CleanerError(Exception):
    """
    Base exception for all Artifact Cleaner errors.

    All custom exceptions inherit from this class, allowing
    generic catch blocks and consistent error handling.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        """
        Initialize a CleanerError.

        Args:
            message: Human-readable error message
            details: Optional structured data for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with details."""
        base = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{base} ({details_str})"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class TransientNetworkError(CleanerError):
    """
    Connection or timeout failure talking to the repository service.

    Retried with a fixed backoff until the attempt budget is exhausted.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if url:
            details["url"] = url

        super().__init__(message, details=details)
        self.url = url


class RemoteServiceError(CleanerError):
    """
    The repository service answered with a failing HTTP status.

    Raised when:
    - A search, metadata fetch, download or delete call returns 4xx/5xx
    - The response body cannot be interpreted
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a RemoteServiceError.

        Args:
            message: Human-readable error message
            status_code: HTTP status code returned by the service
            url: URL of the failing request
            details: Optional structured data for debugging
        """
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        if url:
            details["url"] = url

        super().__init__(message, details=details)
        self.status_code = status_code
        self.url = url


class ArtifactNotFoundError(RemoteServiceError):
    """Raised when the service responds 404 for a requested resource."""

    def __init__(self, message: str = "Not found", *, url: str | None = None):
        super().__init__(message, status_code=404, url=url)


class DiscoveryCancelledError(CleanerError):
    """Raised inside a worker when the pool was cancelled mid-resolution."""


class ArchiveError(CleanerError):
    """
    Errors while archiving an artifact to the local filesystem.

    Fatal for the single artifact; batch runs record it and continue.
    """

    def __init__(
        self,
        message: str,
        *,
        artifact_uri: str | None = None,
        local_path: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if artifact_uri:
            details["artifact_uri"] = artifact_uri
        if local_path:
            details["local_path"] = local_path

        super().__init__(message, details=details)
        self.artifact_uri = artifact_uri
        self.local_path = local_path


class ArchiveFileNotWrittenError(ArchiveError):
    """Raised when the archived file is missing or empty after download."""


class ArchiveFileSizeMismatchError(ArchiveError):
    """Raised when the archived file's size differs from the declared size."""

    def __init__(
        self,
        message: str,
        *,
        expected_size: int,
        actual_size: int,
        **kwargs,
    ):
        details = kwargs.pop("details", {}) or {}
        details["expected_size"] = expected_size
        details["actual_size"] = actual_size
        kwargs["details"] = details

        super().__init__(message, **kwargs)
        self.expected_size = expected_size
        self.actual_size = actual_size


class BucketRoutingError(CleanerError):
    """
    Raised when no age bucket covers an artifact's computed age.

    This indicates a malformed boundary list (for example one that does
    not end with an unbounded bucket), never a reason to drop the artifact.
    """

    def __init__(self, message: str, *, age_days: float | None = None):
        details = {}
        if age_days is not None:
            details["age_days"] = round(age_days, 2)

        super().__init__(message, details=details)
        self.age_days = age_days


class ConfigurationError(CleanerError):
    """
    Errors in configuration loading or validation.

    Raised when:
    - Configuration files are missing or malformed
    - Bucket boundary lists are out of order
    - Required settings such as the endpoint are absent
    """

    def __init__(
        self,
        message: str,
        *,
        config_file: str | None = None,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a ConfigurationError.

        Args:
            message: Human-readable error message
            config_file: Path to configuration file if applicable
            config_key: Configuration key if applicable
            details: Optional structured data for debugging
        """
        details = details or {}
        if config_file:
            details["config_file"] = config_file
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, details=details)
        self.config_file = config_file
        self.config_key = config_key


class RuleValidationError(CleanerError):
    """Raised when a filter rule definition is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value

        super().__init__(message, details=details)
        self.field = field
        self.value = value


def format_exception(error: BaseException) -> str:
    """
    Format an exception for user-friendly display.

    Args:
        error: The exception to format

    Returns:
        Formatted error message string
    """
    if isinstance(error, CleanerError):
        return str(error)
    return f"{error.__class__.__name__}: {error}"


def is_transient_error(error: BaseException) -> bool:
    """Return True if the error is a connectivity failure worth waiting on."""
    return isinstance(error, TransientNetworkError)


def is_retriable_error(error: BaseException) -> bool:
    """
    Determine if a resolution error may be retried at all.

    Not-found is terminal; transient and other remote errors are retriable
    (the latter with a reduced budget, decided by the retry policy).
    """
    if isinstance(error, ArtifactNotFoundError):
        return False
    return isinstance(error, (TransientNetworkError, RemoteServiceError))
