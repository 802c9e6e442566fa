"""
Discovery controller.

Central logic of the cleaner: lists repositories, runs date-ranged
searches in time chunks, resolves hits through a bounded worker pool,
sorts the results into age buckets, and archives or deletes individual
artifacts.
"""

import logging
import time
from collections.abc import Callable, Iterable, Iterator, Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path

from artifact_cleaner.artifacts.buckets import ArtifactBucketCollection
from artifact_cleaner.artifacts.models import (
    DiscoveredArtifact,
    RepoClass,
    RepositoryInfo,
    SearchHit,
)
from artifact_cleaner.client.base import RepositoryBackend
from artifact_cleaner.core.config import CleanerConfig
from artifact_cleaner.core.exceptions import (
    ArchiveError,
    ArchiveFileNotWrittenError,
    ArchiveFileSizeMismatchError,
    ArtifactNotFoundError,
    format_exception,
)
from artifact_cleaner.core.units import format_filesize
from artifact_cleaner.discovery.pool import DiscoveryPool
from artifact_cleaner.discovery.queues import Failed
from artifact_cleaner.discovery.worker import RetryPolicy, call_with_retries

logger = logging.getLogger(__name__)


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DiscoveryController:
    """
    Artifact discovery and cleanup operations against one repository server.

    Searches are split into chunks to bound the load each request puts on
    the server; hits from each chunk are resolved concurrently with at most
    ``concurrency`` requests in flight.
    """

    def __init__(
        self,
        backend: RepositoryBackend,
        config: CleanerConfig | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        """
        Initialize the controller.

        Args:
            backend: Repository service backend
            config: Discovery settings (threads, chunk size, retry budget)
            sleep: Backoff function override for search and worker retries
        """
        self._backend = backend
        self._config = config or CleanerConfig()
        self._retry_policy = RetryPolicy(
            max_attempts=self._config.max_attempts,
            delay_seconds=self._config.retry_delay_seconds,
        )
        self._sleep = sleep
        self._repos: dict[RepoClass, dict[str, RepositoryInfo]] | None = None
        self.last_errors: list[Failed] = []

    @classmethod
    def from_config(cls, config: CleanerConfig) -> "DiscoveryController":
        """Create a controller talking to the configured Artifactory server."""
        from artifact_cleaner.client.artifactory import ArtifactoryClient

        return cls(ArtifactoryClient(config), config=config)

    @property
    def backend(self) -> RepositoryBackend:
        return self._backend

    @property
    def config(self) -> CleanerConfig:
        return self._config

    def close(self) -> None:
        self._backend.close()

    def __enter__(self) -> "DiscoveryController":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # Repositories

    def discover_repos(self) -> dict[RepoClass, dict[str, RepositoryInfo]]:
        """
        Fetch all repositories grouped by class.

        Returns:
            Mapping of RepoClass to {repository key: RepositoryInfo}
        """
        start = time.perf_counter()
        repos: dict[RepoClass, dict[str, RepositoryInfo]] = {rc: {} for rc in RepoClass}
        for repo in self._backend.list_repositories():
            logger.debug(f"Found {repo.package_type} repo: {repo.key} ({repo.rclass.value})")
            repos[repo.rclass][repo.key] = repo
        logger.debug(
            f"Fetched {sum(len(r) for r in repos.values())} repos "
            f"in {time.perf_counter() - start:.2f} seconds"
        )
        self._repos = repos
        return repos

    # Discovery

    def _new_pool(self, concurrency: int | None) -> DiscoveryPool:
        return DiscoveryPool(
            self._backend,
            concurrency=concurrency or self._config.threads,
            retry_policy=self._retry_policy,
            sleep=self._sleep,
        )

    def _search(
        self,
        date_from: datetime,
        date_to: datetime,
        repos: Sequence[str] | None,
    ) -> list[SearchHit]:
        start = time.perf_counter()
        try:
            hits = call_with_retries(
                lambda: self._backend.search_dates(date_from, date_to, repos),
                f"searching {date_from.isoformat()} to {date_to.isoformat()}",
                policy=self._retry_policy,
                sleep=self._sleep or time.sleep,
            )
        except ArtifactNotFoundError:
            logger.debug(
                f"No artifacts between {date_from.isoformat()} and {date_to.isoformat()}"
            )
            return []
        logger.debug(
            f"Got {len(hits)} results from search in {time.perf_counter() - start:.2f} seconds"
        )
        return hits

    def _collect(self, pool: DiscoveryPool, hits: list[SearchHit]) -> list[DiscoveredArtifact]:
        start = time.perf_counter()
        artifacts, failures = pool.resolve(hits)
        for failure in failures:
            logger.error(
                f"Error from artifact fetch of {failure.hit.uri}: "
                f"{format_exception(failure.error)}"
            )
        self.last_errors.extend(failures)
        logger.debug(
            f"{len(artifacts)} artifacts fetched in {time.perf_counter() - start:.2f} seconds"
        )
        return artifacts

    def search_in_range(
        self,
        date_from: datetime,
        date_to: datetime | None = None,
        repos: Sequence[str] | None = None,
        concurrency: int | None = None,
        pool: DiscoveryPool | None = None,
    ) -> list[DiscoveredArtifact]:
        """
        Search one date range and resolve every hit.

        A 404 from the search itself means no artifacts in the range.
        Hits that fail to resolve are logged and recorded in
        ``last_errors`` rather than raised.

        Args:
            date_from: Start of the range
            date_to: End of the range (defaults to now)
            repos: Repository keys to search; all repositories if omitted
            concurrency: Maximum concurrent resolutions (defaults to config)
            pool: Existing pool to resolve with, shared across chunks

        Returns:
            Resolved records in completion order
        """
        self.last_errors = []
        return self._search_chunk(date_from, date_to, repos, concurrency, pool)

    def _search_chunk(
        self,
        date_from: datetime,
        date_to: datetime | None,
        repos: Sequence[str] | None,
        concurrency: int | None,
        pool: DiscoveryPool | None,
    ) -> list[DiscoveredArtifact]:
        date_from = _utc(date_from)
        date_to = _utc(date_to) if date_to else datetime.now(timezone.utc)

        hits = self._search(date_from, date_to, repos)
        if not hits:
            return []

        if pool is not None:
            return self._collect(pool, hits)
        with self._new_pool(concurrency) as own_pool:
            return self._collect(own_pool, hits)

    def iterate_in_range(
        self,
        date_from: datetime,
        date_to: datetime | None = None,
        repos: Sequence[str] | None = None,
        chunk_size_days: int | None = None,
        concurrency: int | None = None,
    ) -> Iterator[DiscoveredArtifact]:
        """
        Lazily yield every artifact discovered between two dates.

        The range is walked backwards from ``date_to`` in chunks of
        ``chunk_size_days``; the last chunk is clamped to ``date_from``. One
        worker pool serves the whole run and is shut down when the iterator
        is exhausted or closed.
        """
        chunk_days = chunk_size_days or self._config.chunk_size_days
        if chunk_days <= 0:
            raise ValueError(f"chunk_size_days must be positive, got {chunk_days}")

        date_from = _utc(date_from)
        chunk_end = _utc(date_to) if date_to else datetime.now(timezone.utc)
        increment = timedelta(days=chunk_days)
        self.last_errors = []

        with self._new_pool(concurrency) as pool:
            while chunk_end > date_from:
                chunk_start = max(chunk_end - increment, date_from)
                logger.debug(
                    f"Searching chunk {chunk_start.isoformat()} to {chunk_end.isoformat()}"
                )
                yield from self._search_chunk(chunk_start, chunk_end, repos, None, pool)
                chunk_end = chunk_start

    def bucketize(
        self,
        date_from: datetime,
        date_to: datetime | None = None,
        repos: Sequence[str] | None = None,
        chunk_size_days: int | None = None,
        concurrency: int | None = None,
        bucket_boundaries: ArtifactBucketCollection | Iterable[float | None] | None = None,
    ) -> ArtifactBucketCollection:
        """
        Discover artifacts and sort them into age buckets.

        Args:
            bucket_boundaries: A collection to fill, a list of boundaries, or None
                for the default boundaries

        Raises:
            BucketRoutingError: If an artifact's age has no bucket
        """
        if bucket_boundaries is None:
            collection = ArtifactBucketCollection()
        elif isinstance(bucket_boundaries, ArtifactBucketCollection):
            collection = bucket_boundaries
        else:
            collection = ArtifactBucketCollection(bucket_boundaries)

        # Ages are measured from the same instant the search ends at
        now = datetime.now(timezone.utc)
        for artifact in self.iterate_in_range(
            date_from,
            date_to or now,
            repos=repos,
            chunk_size_days=chunk_size_days,
            concurrency=concurrency,
        ):
            collection.add(artifact, now=now)
        return collection

    def bucketized_report(self, collection: ArtifactBucketCollection) -> list[str]:
        """Summary lines for a populated bucket collection."""
        return collection.report()

    # Archive / delete

    def archive_path_for(self, artifact: DiscoveredArtifact, destination_root: Path) -> Path:
        """Local path mirroring the artifact's path inside its repository."""
        root = Path(destination_root).resolve()
        target = (root / artifact.relative_path).resolve()
        if root not in target.parents:
            raise ArchiveError(
                "Artifact path escapes the archive directory",
                artifact_uri=artifact.uri,
                local_path=str(target),
            )
        return target

    def archive(self, artifact: DiscoveredArtifact, destination_root: Path) -> Path:
        """
        Download a verified copy of an artifact.

        Note that downloading updates the artifact's last-downloaded date on
        the server, so it may stop matching a usage-based search.

        Returns:
            Path of the archived file

        Raises:
            ArchiveFileNotWrittenError: If the file is missing or empty
            ArchiveFileSizeMismatchError: If the size differs from the record
        """
        target = self.archive_path_for(artifact, destination_root)
        logger.debug(f"Downloading {artifact} ({artifact.uri}) to {target}")

        start = time.perf_counter()
        archived = self._backend.download(artifact.download_uri or artifact.uri, target)
        elapsed = max(time.perf_counter() - start, 1e-6)
        logger.debug(
            f"{artifact.uri} {format_filesize(artifact.size)} downloaded in {elapsed:.2f} "
            f"seconds ({format_filesize(artifact.size / elapsed)}/s)"
        )

        if not archived.is_file():
            raise ArchiveFileNotWrittenError(
                f"Failed to write to {archived}",
                artifact_uri=artifact.uri,
                local_path=str(archived),
            )
        actual_size = archived.stat().st_size
        if actual_size == 0:
            raise ArchiveFileNotWrittenError(
                f"Archive file is empty: {archived}",
                artifact_uri=artifact.uri,
                local_path=str(archived),
            )
        if actual_size != artifact.size:
            raise ArchiveFileSizeMismatchError(
                f"{archived} size mismatch ({actual_size} != {artifact.size})",
                expected_size=artifact.size,
                actual_size=actual_size,
                artifact_uri=artifact.uri,
                local_path=str(archived),
            )
        return archived

    def delete(self, artifact: DiscoveredArtifact) -> None:
        """Delete an artifact from the server. This cannot be undone."""
        logger.debug(f"DELETE artifact {artifact} at {artifact.uri}")
        self._backend.delete(artifact.download_uri or artifact.uri)
