"""Pytest configuration and fixtures."""

import tempfile
import threading
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from artifact_cleaner.artifacts.models import (
    DiscoveredArtifact,
    RepositoryInfo,
    SearchHit,
)
from artifact_cleaner.client.base import RepositoryBackend
from artifact_cleaner.core.exceptions import ArtifactNotFoundError, RemoteServiceError

# Fixed reference time so ages are deterministic
NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

SERVER = "http://artifactory.test/artifactory"


def make_artifact(
    name: str = "com/example/lib/1.0/lib-1.0.jar",
    size: int = 100,
    age_days: float = 0,
    created: datetime | None = None,
    last_modified: datetime | None = None,
    last_downloaded: datetime | None = None,
    repo: str = "libs-release",
    mime_type: str | None = "application/java-archive",
) -> DiscoveredArtifact:
    """Build an artifact record as the storage API would describe it."""
    if created is None:
        created = NOW - timedelta(days=age_days)
    return DiscoveredArtifact(
        uri=f"{SERVER}/api/storage/{repo}/{name}",
        repo=repo,
        path=f"/{name}",
        size=size,
        created=created,
        last_modified=last_modified,
        last_downloaded=last_downloaded,
        download_uri=f"{SERVER}/{repo}/{name}",
        mime_type=mime_type,
    )


class FakeBackend(RepositoryBackend):
    """
    In-memory repository service.

    Searches return hits for stored artifacts created in ``[from, to)``.
    Fetch failures can be scripted per URI and search failures in
    ``search_errors``; each scripted error is raised once, in order, before
    the call succeeds. ``search_error`` fails every search.
    """

    def __init__(self, fetch_delay: float = 0.0):
        self.artifacts: dict[str, DiscoveredArtifact] = {}
        self.last_downloaded: dict[str, datetime | None] = {}
        self.repositories: list[RepositoryInfo] = []
        self.fetch_errors: dict[str, list[Exception]] = {}
        self.search_errors: list[Exception] = []
        self.search_error: Exception | None = None
        self.download_content: dict[str, bytes] = {}
        self.delete_errors: dict[str, Exception] = {}
        self.fetch_delay = fetch_delay

        self.search_calls: list[tuple[datetime, datetime, Sequence[str] | None]] = []
        self.fetch_calls: list[str] = []
        self.downloads: list[tuple[str, Path]] = []
        self.deleted: list[str] = []

        self._lock = threading.Lock()
        self._active = 0
        self.max_active = 0

    def add(
        self,
        artifact: DiscoveredArtifact,
        last_downloaded: datetime | None = None,
    ) -> DiscoveredArtifact:
        self.artifacts[artifact.uri] = artifact
        self.last_downloaded[artifact.uri] = last_downloaded
        return artifact

    def fail(self, uri: str, *errors: Exception) -> None:
        self.fetch_errors.setdefault(uri, []).extend(errors)

    def list_repositories(self) -> list[RepositoryInfo]:
        return list(self.repositories)

    def search_dates(
        self,
        date_from: datetime,
        date_to: datetime,
        repos: Sequence[str] | None = None,
    ) -> list[SearchHit]:
        self.search_calls.append((date_from, date_to, repos))
        if self.search_errors:
            raise self.search_errors.pop(0)
        if self.search_error is not None:
            raise self.search_error
        return [
            SearchHit(uri=uri, last_downloaded=self.last_downloaded.get(uri))
            for uri, artifact in self.artifacts.items()
            if date_from <= artifact.created < date_to
            and (not repos or artifact.repo in repos)
        ]

    def fetch_artifact(self, uri: str) -> DiscoveredArtifact:
        with self._lock:
            self.fetch_calls.append(uri)
            self._active += 1
            self.max_active = max(self.max_active, self._active)
            errors = self.fetch_errors.get(uri)
            error = errors.pop(0) if errors else None
        try:
            if self.fetch_delay:
                time.sleep(self.fetch_delay)
            if error is not None:
                raise error
            if uri not in self.artifacts:
                raise ArtifactNotFoundError(url=uri)
            return self.artifacts[uri]
        finally:
            with self._lock:
                self._active -= 1

    def download(self, url: str, destination: Path) -> Path:
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        self.downloads.append((url, destination))
        if url in self.download_content:
            content = self.download_content[url]
        else:
            size = next((a.size for a in self.artifacts.values() if a.download_uri == url), 0)
            content = b"x" * size
        destination.write_bytes(content)
        return destination

    def delete(self, url: str) -> None:
        if url in self.delete_errors:
            raise self.delete_errors[url]
        self.deleted.append(url)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def now() -> datetime:
    """Reference time used to compute artifact ages."""
    return NOW


@pytest.fixture
def artifact_factory() -> Callable[..., DiscoveredArtifact]:
    """Factory building artifact records relative to the reference time."""
    return make_artifact


@pytest.fixture
def fake_backend() -> FakeBackend:
    """An empty in-memory repository service."""
    return FakeBackend()


@pytest.fixture
def no_sleep() -> Callable[[float], None]:
    """Backoff function that records delays instead of waiting."""
    delays: list[float] = []

    def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays  # type: ignore[attr-defined]
    return sleep


@pytest.fixture
def server_error() -> Callable[[], RemoteServiceError]:
    """Factory for a non-transient remote failure."""
    return lambda: RemoteServiceError("HTTP 500 from Artifactory", status_code=500)
