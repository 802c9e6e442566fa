"""
Artifact lifecycle management.

Batch archiving and deletion of discovered artifacts that meet date
cutoffs and pass the filter rules.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from artifact_cleaner.core.exceptions import CleanerError, format_exception
from artifact_cleaner.core.units import format_filesize

from .filters import ArtifactFilter, FilterAction
from .models import CleanupCriteria, CleanupResult, DiscoveredArtifact

if TYPE_CHECKING:
    from artifact_cleaner.discovery.controller import DiscoveryController

logger = logging.getLogger(__name__)


class ArtifactLifecycle:
    """
    Artifact lifecycle management.

    Walks a discovery run and, for each artifact:
    - skips it unless it meets the cutoffs and the filter includes it
    - archives it to a local directory when asked to
    - deletes it from the server when asked to, but never after a failed
      archive

    A failure on one artifact is recorded in the result and the run
    continues with the next.
    """

    def __init__(self, controller: "DiscoveryController"):
        self._controller = controller

    def should_process(
        self,
        artifact: DiscoveredArtifact,
        criteria: CleanupCriteria,
        artifact_filter: ArtifactFilter | None = None,
    ) -> bool:
        """Return True if the artifact meets the cutoffs and is included."""
        if not criteria.is_met_by(artifact):
            return False
        if artifact_filter is None:
            return True
        return artifact_filter.action_for(artifact) is FilterAction.INCLUDE

    def run(
        self,
        date_from: datetime,
        criteria: CleanupCriteria,
        *,
        repos: list[str] | None = None,
        artifact_filter: ArtifactFilter | None = None,
        archive_to: Path | None = None,
        delete: bool = False,
        dry_run: bool = False,
        concurrency: int | None = None,
    ) -> CleanupResult:
        """
        Archive and/or delete artifacts discovered since ``date_from``.

        The search ends at the earliest cutoff in ``criteria``.

        Args:
            date_from: Earliest date to search from
            criteria: Date cutoffs; at least one is required
            repos: Repository keys to search; all repositories if omitted
            artifact_filter: Include/exclude rules applied after the cutoffs
            archive_to: Directory to download artifacts into
            delete: Delete matching artifacts from the server
            dry_run: Count what would happen without touching anything
            concurrency: Maximum concurrent metadata fetches

        Returns:
            CleanupResult with per-disposition counts and errors
        """
        date_to = criteria.search_end
        if date_to is None:
            raise ValueError(
                "At least one cutoff date is required "
                "(created_before, modified_before, downloaded_before or last_used_before)"
            )

        result = CleanupResult(success=True)
        logger.debug(f"Cleanup run from {date_from.isoformat()} to {date_to.isoformat()}")

        for artifact in self._controller.iterate_in_range(
            date_from, date_to, repos=repos, concurrency=concurrency
        ):
            if not self.should_process(artifact, criteria, artifact_filter):
                logger.debug(f"Skipped {artifact} because it did not meet the criteria")
                result.skipped.add(artifact)
                continue

            if archive_to is not None:
                if dry_run:
                    logger.info(f"Would archive {artifact} to {archive_to}")
                else:
                    try:
                        self._controller.archive(artifact, archive_to)
                    except (CleanerError, OSError) as e:
                        self._record_failure(result, artifact, "archive", e)
                        continue
                result.archived.add(artifact)

            if delete:
                if dry_run:
                    logger.info(f"Would delete {artifact}")
                else:
                    try:
                        self._controller.delete(artifact)
                    except CleanerError as e:
                        self._record_failure(result, artifact, "delete", e)
                        continue
                result.deleted.add(artifact)

        for failure in self._controller.last_errors:
            result.errors.append(
                f"Failed to resolve {failure.hit.uri}: {format_exception(failure.error)}"
            )
            result.success = False

        return result

    def _record_failure(
        self,
        result: CleanupResult,
        artifact: DiscoveredArtifact,
        operation: str,
        error: Exception,
    ) -> None:
        logger.error(f"Failed to {operation} {artifact}: {format_exception(error)}")
        result.failed.add(artifact)
        result.errors.append(f"Failed to {operation} {artifact.uri}: {error}")
        result.success = False

    def archive(
        self,
        date_from: datetime,
        criteria: CleanupCriteria,
        archive_to: Path,
        **kwargs,
    ) -> CleanupResult:
        """Download matching artifacts without deleting them."""
        return self.run(date_from, criteria, archive_to=archive_to, delete=False, **kwargs)

    def clean(
        self,
        date_from: datetime,
        criteria: CleanupCriteria,
        archive_to: Path | None = None,
        **kwargs,
    ) -> CleanupResult:
        """Delete matching artifacts, archiving each one first if a directory is given."""
        return self.run(date_from, criteria, archive_to=archive_to, delete=True, **kwargs)

    @staticmethod
    def summary_lines(result: CleanupResult) -> list[str]:
        """One line per disposition: '<name> N artifacts totaling <size>'."""
        lines = []
        for name in ("deleted", "archived", "skipped", "failed"):
            tally = getattr(result, name)
            lines.append(
                f"{name} {tally.artifact_count} artifacts totaling {format_filesize(tally.bytes)}"
            )
        return lines
