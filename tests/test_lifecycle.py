"""Tests for batch archive and clean runs."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from artifact_cleaner.artifacts.filters import ArtifactFilter, ArtifactFilterRule
from artifact_cleaner.artifacts.lifecycle import ArtifactLifecycle
from artifact_cleaner.artifacts.models import CleanupCriteria
from artifact_cleaner.core.config import CleanerConfig
from artifact_cleaner.core.exceptions import RemoteServiceError, TransientNetworkError
from artifact_cleaner.discovery.controller import DiscoveryController


@pytest.fixture
def real_now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def lifecycle(fake_backend, no_sleep) -> ArtifactLifecycle:
    config = CleanerConfig(threads=2, max_attempts=2, retry_delay_seconds=1.0)
    return ArtifactLifecycle(DiscoveryController(fake_backend, config=config, sleep=no_sleep))


@pytest.fixture
def populated(fake_backend, artifact_factory, real_now):
    """Two old artifacts, one recently downloaded, and one old temp file."""
    old = fake_backend.add(
        artifact_factory(name="old/app.jar", size=100, created=real_now - timedelta(days=400))
    )
    used = fake_backend.add(
        artifact_factory(name="used/app.jar", size=200, created=real_now - timedelta(days=400)),
        last_downloaded=real_now - timedelta(days=2),
    )
    temp = fake_backend.add(
        artifact_factory(name="old/build.tmp", size=50, created=real_now - timedelta(days=300))
    )
    return {"old": old, "used": used, "temp": temp}


class TestArtifactLifecycle:
    """Tests for ArtifactLifecycle."""

    def test_requires_a_cutoff(self, lifecycle, real_now) -> None:
        """A run without any cutoff is refused."""
        with pytest.raises(ValueError):
            lifecycle.run(real_now - timedelta(days=10), CleanupCriteria())

    def test_clean_deletes_matching(self, lifecycle, fake_backend, populated, real_now) -> None:
        """Only artifacts meeting the cutoffs are deleted."""
        criteria = CleanupCriteria(last_used_before=real_now - timedelta(days=180))
        result = lifecycle.clean(real_now - timedelta(days=730), criteria)

        assert result.success
        assert sorted(fake_backend.deleted) == sorted(
            [populated["old"].download_uri, populated["temp"].download_uri]
        )
        assert result.deleted.artifact_count == 2
        assert result.deleted.bytes == 150
        assert result.skipped.artifact_count == 1
        assert result.skipped.bytes == 200
        assert result.archived.artifact_count == 0

    def test_filter_excludes(self, lifecycle, fake_backend, populated, real_now) -> None:
        """Excluded artifacts are skipped even when they meet the cutoffs."""
        artifact_filter = ArtifactFilter([ArtifactFilterRule(action="exclude", pattern=r"\.jar$")])
        criteria = CleanupCriteria(created_before=real_now - timedelta(days=200))

        result = lifecycle.clean(
            real_now - timedelta(days=730), criteria, artifact_filter=artifact_filter
        )
        assert fake_backend.deleted == [populated["temp"].download_uri]
        assert result.skipped.artifact_count == 2

    def test_dry_run_touches_nothing(self, lifecycle, fake_backend, populated, real_now, temp_dir: Path) -> None:
        """A dry run counts but neither downloads nor deletes."""
        criteria = CleanupCriteria(created_before=real_now - timedelta(days=200))
        result = lifecycle.clean(
            real_now - timedelta(days=730), criteria, archive_to=temp_dir, dry_run=True
        )

        assert fake_backend.deleted == []
        assert fake_backend.downloads == []
        assert result.deleted.artifact_count == 3
        assert result.archived.artifact_count == 3

    def test_archive_only(self, lifecycle, fake_backend, populated, real_now, temp_dir: Path) -> None:
        """Archive runs download without deleting."""
        criteria = CleanupCriteria(downloaded_before=real_now - timedelta(days=30))
        result = lifecycle.archive(real_now - timedelta(days=730), criteria, temp_dir)

        assert fake_backend.deleted == []
        assert result.archived.artifact_count == 2
        assert (temp_dir / "old" / "app.jar").read_bytes() == b"x" * 100
        assert (temp_dir / "old" / "build.tmp").exists()

    def test_failed_archive_prevents_delete(
        self, lifecycle, fake_backend, populated, real_now, temp_dir: Path
    ) -> None:
        """An artifact whose archive fails verification is not deleted."""
        fake_backend.download_content[populated["old"].download_uri] = b"short"
        criteria = CleanupCriteria(last_used_before=real_now - timedelta(days=180))

        result = lifecycle.clean(real_now - timedelta(days=730), criteria, archive_to=temp_dir)

        assert result.success is False
        assert fake_backend.deleted == [populated["temp"].download_uri]
        assert result.failed.artifact_count == 1
        assert result.archived.artifact_count == 1
        assert len(result.errors) == 1
        assert populated["old"].uri in result.errors[0]

    def test_failed_delete_continues(self, lifecycle, fake_backend, populated, real_now) -> None:
        """A delete failure is recorded and the run continues."""
        fake_backend.delete_errors[populated["old"].download_uri] = RemoteServiceError(
            "HTTP 403 from Artifactory", status_code=403
        )
        criteria = CleanupCriteria(last_used_before=real_now - timedelta(days=180))

        result = lifecycle.clean(real_now - timedelta(days=730), criteria)
        assert result.success is False
        assert fake_backend.deleted == [populated["temp"].download_uri]
        assert result.deleted.artifact_count == 1
        assert result.failed.artifact_count == 1

    def test_resolution_failures_reported(
        self, lifecycle, fake_backend, populated, real_now
    ) -> None:
        """Hits that could not be resolved make the run unsuccessful."""
        fake_backend.fail(
            populated["temp"].uri, TransientNetworkError("down"), TransientNetworkError("down")
        )
        criteria = CleanupCriteria(last_used_before=real_now - timedelta(days=180))

        result = lifecycle.clean(real_now - timedelta(days=730), criteria)
        assert result.success is False
        assert fake_backend.deleted == [populated["old"].download_uri]
        assert any(populated["temp"].uri in e for e in result.errors)

    def test_summary_lines(self, lifecycle, populated, real_now) -> None:
        """Summaries list each disposition with a human readable size."""
        criteria = CleanupCriteria(last_used_before=real_now - timedelta(days=180))
        result = lifecycle.clean(real_now - timedelta(days=730), criteria, dry_run=True)

        assert ArtifactLifecycle.summary_lines(result) == [
            "deleted 2 artifacts totaling 150.0 B",
            "archived 0 artifacts totaling 0.0 B",
            "skipped 1 artifacts totaling 200.0 B",
            "failed 0 artifacts totaling 0.0 B",
        ]
