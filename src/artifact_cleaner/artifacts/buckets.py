"""
Age buckets for usage analysis.

An ArtifactBucket holds the artifacts whose latest activity falls within
an age range (in days) and keeps a running byte total. The
ArtifactBucketCollection builds a contiguous run of buckets from a list of
boundaries and routes each artifact to the one bucket that covers its age.

An upper bound of ``None`` means the bucket is unbounded.
"""

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime

from artifact_cleaner.artifacts.models import DiscoveredArtifact
from artifact_cleaner.core.exceptions import BucketRoutingError, ConfigurationError
from artifact_cleaner.core.units import format_filesize

logger = logging.getLogger(__name__)

DEFAULT_BUCKET_BOUNDARIES: tuple[int | None, ...] = (30, 60, 90, 180, 365, 730, 1095, None)


def _require_artifact(artifact: object) -> DiscoveredArtifact:
    if not isinstance(artifact, DiscoveredArtifact):
        raise TypeError(f"expected DiscoveredArtifact, got {type(artifact).__name__}")
    return artifact


class ArtifactBucket:
    """
    Artifacts whose age falls in ``[min_age, max_age)`` days.

    ``total_size`` is maintained on insertion only. Removal (``pop``,
    ``del``, ``clear``) leaves it untouched; call ``recalculate_total`` to
    bring it back in line.
    """

    def __init__(self, min_age: float, max_age: float | None = None):
        self.min_age = min_age
        self.max_age = max_age
        self.total_size = 0
        self._artifacts: list[DiscoveredArtifact] = []

    @property
    def is_unbounded(self) -> bool:
        return self.max_age is None

    def covers(self, age: float) -> bool:
        """Return True if an artifact of this age (days) belongs here."""
        if age < self.min_age:
            return False
        return self.max_age is None or age < self.max_age

    def push(self, artifact: DiscoveredArtifact) -> "ArtifactBucket":
        """Append an artifact and add its size to the total."""
        artifact = _require_artifact(artifact)
        self._artifacts.append(artifact)
        self.total_size += artifact.size
        return self

    append = push

    def unshift(self, artifact: DiscoveredArtifact) -> "ArtifactBucket":
        """Insert an artifact at the front and add its size to the total."""
        artifact = _require_artifact(artifact)
        self._artifacts.insert(0, artifact)
        self.total_size += artifact.size
        return self

    def extend(self, artifacts: Iterable[DiscoveredArtifact]) -> "ArtifactBucket":
        for artifact in artifacts:
            self.push(artifact)
        return self

    def recalculate_total(self) -> int:
        """Recompute the byte total from the contained artifacts."""
        self.total_size = sum(a.size for a in self._artifacts)
        return self.total_size

    def pop(self, index: int = -1) -> DiscoveredArtifact:
        return self._artifacts.pop(index)

    def clear(self) -> None:
        self._artifacts.clear()

    def __setitem__(self, index: int, artifact: DiscoveredArtifact) -> None:
        artifact = _require_artifact(artifact)
        self.total_size -= self._artifacts[index].size
        self.total_size += artifact.size
        self._artifacts[index] = artifact

    def __getitem__(self, index):
        return self._artifacts[index]

    def __delitem__(self, index) -> None:
        del self._artifacts[index]

    def __iter__(self) -> Iterator[DiscoveredArtifact]:
        return iter(self._artifacts)

    def __len__(self) -> int:
        return len(self._artifacts)

    def __bool__(self) -> bool:
        return True

    def is_empty(self) -> bool:
        return not self._artifacts

    def describe_range(self) -> str:
        upper = "unbounded" if self.max_age is None else f"{self.max_age}"
        return f"{self.min_age} and {upper}"

    def __repr__(self) -> str:
        return (
            f"ArtifactBucket(min_age={self.min_age}, max_age={self.max_age}, "
            f"count={len(self)}, total_size={self.total_size})"
        )


class ArtifactBucketCollection:
    """
    Contiguous, non-overlapping age buckets spanning ``[0, last boundary)``.

    With the default boundaries the final bucket is unbounded, so every
    non-negative age has exactly one bucket.
    """

    def __init__(self, boundaries: Iterable[float | None] = DEFAULT_BUCKET_BOUNDARIES):
        self._buckets: list[ArtifactBucket] = []
        self.define_buckets(boundaries)

    def define_buckets(self, boundaries: Iterable[float | None]) -> None:
        """
        Append buckets built pairwise from ``boundaries``.

        Each bucket starts at the previous boundary (0 for the first). Only
        the last boundary may be None. Calling this on a collection that
        already has buckets appends a second run starting from 0, which
        overlaps the first; build a new collection instead.
        """
        boundaries = list(boundaries)
        last = 0
        for i, upper in enumerate(boundaries):
            if upper is None:
                if i != len(boundaries) - 1:
                    raise ConfigurationError(
                        "Only the final bucket boundary may be unbounded",
                        config_key="buckets",
                        details={"boundaries": boundaries},
                    )
            elif upper < last:
                raise ConfigurationError(
                    "Bucket boundaries must be non-decreasing",
                    config_key="buckets",
                    details={"boundaries": boundaries},
                )
            self._buckets.append(ArtifactBucket(last, upper))
            last = upper

    @property
    def bucket_bounds(self) -> list[float | None]:
        """Upper bound of each bucket, in order."""
        return [b.max_age for b in self._buckets]

    @property
    def artifact_count(self) -> int:
        return sum(len(b) for b in self._buckets)

    @property
    def total_size(self) -> int:
        return sum(b.total_size for b in self._buckets)

    def add(self, artifact: DiscoveredArtifact, now: datetime | None = None) -> "ArtifactBucketCollection":
        """
        Route an artifact to the bucket covering its age.

        Raises:
            TypeError: If ``artifact`` is not a DiscoveredArtifact
            BucketRoutingError: If no bucket covers the computed age
        """
        artifact = _require_artifact(artifact)
        age = artifact.age_days(now)
        if age < 0:
            # Activity stamped after ``now``, e.g. a server clock running ahead
            logger.debug(f"{artifact} has activity {-age:.4f} days in the future; age 0 used")
            age = 0.0
        bucket = self.bucket(age)
        if bucket is None:
            raise BucketRoutingError(
                f"No bucket available for an artifact of age {int(age)} days",
                age_days=age,
            )
        bucket.push(artifact)
        logger.debug(f"Routed {artifact} ({age:.1f} days) to bucket {bucket.describe_range()}")
        return self

    def bucket(self, age: float) -> ArtifactBucket | None:
        """Return the bucket covering ``age`` days, or None."""
        for b in self._buckets:
            if b.covers(age):
                return b
        return None

    def __getitem__(self, age: float) -> ArtifactBucket | None:
        return self.bucket(age)

    def clear(self) -> None:
        """Empty every bucket and reset its total."""
        for b in self._buckets:
            b.clear()
            b.recalculate_total()

    def __iter__(self) -> Iterator[ArtifactBucket]:
        return iter(self._buckets)

    def __len__(self) -> int:
        return len(self._buckets)

    @property
    def first(self) -> ArtifactBucket | None:
        return self._buckets[0] if self._buckets else None

    @property
    def last(self) -> ArtifactBucket | None:
        return self._buckets[-1] if self._buckets else None

    def report(self) -> list[str]:
        """One summary line per bucket followed by a total line."""
        lines = [
            f"{len(b)} artifacts between {b.describe_range()} days, "
            f"totaling {format_filesize(b.total_size)}"
            for b in self._buckets
        ]
        lines.append(
            f"Total: {format_filesize(self.total_size)} across {self.artifact_count} artifacts"
        )
        return lines
