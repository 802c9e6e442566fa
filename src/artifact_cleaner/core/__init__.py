"""
Artifact Cleaner Core Module.

Provides the exception hierarchy, configuration and shared helpers.
"""

__all__ = [
    # Configuration
    "CleanerConfig",
    "load_config",
    # Exceptions
    "CleanerError",
    "TransientNetworkError",
    "RemoteServiceError",
    "ArtifactNotFoundError",
    "DiscoveryCancelledError",
    "ArchiveError",
    "ArchiveFileNotWrittenError",
    "ArchiveFileSizeMismatchError",
    "BucketRoutingError",
    "ConfigurationError",
    "RuleValidationError",
    # Helpers
    "format_filesize",
]

from artifact_cleaner.core.config import CleanerConfig, load_config
from artifact_cleaner.core.exceptions import (
    ArchiveError,
    ArchiveFileNotWrittenError,
    ArchiveFileSizeMismatchError,
    ArtifactNotFoundError,
    BucketRoutingError,
    CleanerError,
    ConfigurationError,
    DiscoveryCancelledError,
    RemoteServiceError,
    RuleValidationError,
    TransientNetworkError,
)
from artifact_cleaner.core.units import format_filesize
