"""
Artifact Cleaner Client Module.

Backends that give the discovery pipeline access to a repository service.
"""

from .artifactory import ArtifactoryClient
from .base import RepositoryBackend

__all__ = [
    "RepositoryBackend",
    "ArtifactoryClient",
]
