"""
Base class for repository service backends.

The discovery pipeline only needs five capabilities from the remote
service; every backend must implement them and translate its own failures
into the exceptions from ``artifact_cleaner.core.exceptions``:

- TransientNetworkError for connection failures and timeouts
- ArtifactNotFoundError for missing resources
- RemoteServiceError for any other failing response
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from artifact_cleaner.artifacts.models import DiscoveredArtifact, RepositoryInfo, SearchHit


class RepositoryBackend(ABC):
    """Abstract access to an artifact repository service."""

    @abstractmethod
    def list_repositories(self) -> list[RepositoryInfo]:
        """Return every repository on the server."""

    @abstractmethod
    def search_dates(
        self,
        date_from: datetime,
        date_to: datetime,
        repos: Sequence[str] | None = None,
    ) -> list[SearchHit]:
        """Return artifacts created, modified or downloaded in the range."""

    @abstractmethod
    def fetch_artifact(self, uri: str) -> DiscoveredArtifact:
        """Fetch full metadata for one artifact."""

    @abstractmethod
    def download(self, url: str, destination: Path) -> Path:
        """Stream the artifact at ``url`` into the file ``destination``."""

    @abstractmethod
    def delete(self, url: str) -> None:
        """Delete the artifact at ``url`` from the server."""

    def close(self) -> None:
        """Release any held connections."""

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
