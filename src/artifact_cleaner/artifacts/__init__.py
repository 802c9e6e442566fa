"""
Artifact Cleaner Artifacts Module.

Artifact records, age buckets, filter rules, and batch archive/clean
runs over discovered artifacts.
"""

from .models import (
    CleanupCriteria,
    CleanupResult,
    CleanupTally,
    DiscoveredArtifact,
    RepoClass,
    RepositoryInfo,
    SearchHit,
)
from .buckets import DEFAULT_BUCKET_BOUNDARIES, ArtifactBucket, ArtifactBucketCollection
from .filters import ArtifactField, ArtifactFilter, ArtifactFilterRule, FilterAction
from .lifecycle import ArtifactLifecycle

__all__ = [
    # Models
    "DiscoveredArtifact",
    "SearchHit",
    "RepositoryInfo",
    "RepoClass",
    "CleanupCriteria",
    "CleanupResult",
    "CleanupTally",
    # Buckets
    "ArtifactBucket",
    "ArtifactBucketCollection",
    "DEFAULT_BUCKET_BOUNDARIES",
    # Filters
    "ArtifactField",
    "ArtifactFilter",
    "ArtifactFilterRule",
    "FilterAction",
    # Lifecycle
    "ArtifactLifecycle",
]
