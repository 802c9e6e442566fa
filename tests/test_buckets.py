"""Tests for age buckets and bucket collections."""

from datetime import timedelta

import pytest

from artifact_cleaner.artifacts.buckets import (
    DEFAULT_BUCKET_BOUNDARIES,
    ArtifactBucket,
    ArtifactBucketCollection,
)
from artifact_cleaner.core.exceptions import BucketRoutingError, ConfigurationError


class TestArtifactBucket:
    """Tests for a single age bucket."""

    def test_covers_half_open_range(self) -> None:
        """A bucket includes its minimum and excludes its maximum."""
        bucket = ArtifactBucket(30, 60)
        assert bucket.covers(30)
        assert bucket.covers(59.99)
        assert not bucket.covers(60)
        assert not bucket.covers(29.99)

    def test_unbounded_bucket(self) -> None:
        """A bucket with no maximum covers every larger age."""
        bucket = ArtifactBucket(1095)
        assert bucket.is_unbounded
        assert bucket.covers(1095)
        assert bucket.covers(100000)

    def test_push_accumulates_total(self, artifact_factory) -> None:
        """Pushing 100 then 50 bytes gives a total of 150."""
        bucket = ArtifactBucket(0, 30)
        bucket.push(artifact_factory(size=100))
        bucket.push(artifact_factory(size=50))
        assert bucket.total_size == 150
        assert len(bucket) == 2

    def test_unshift_and_extend(self, artifact_factory) -> None:
        """All insertion paths update the total."""
        bucket = ArtifactBucket(0, 30)
        first = artifact_factory(name="first.jar", size=1)
        bucket.extend([artifact_factory(size=10), artifact_factory(size=20)])
        bucket.unshift(first)
        assert bucket[0] is first
        assert bucket.total_size == 31
        assert bucket.recalculate_total() == 31

    def test_setitem_replaces_size(self, artifact_factory) -> None:
        """Replacing an element swaps its size in the total."""
        bucket = ArtifactBucket(0, 30)
        bucket.push(artifact_factory(size=100))
        bucket[0] = artifact_factory(size=40)
        assert bucket.total_size == 40

    def test_removal_leaves_total_until_recalculated(self, artifact_factory) -> None:
        """Removing elements does not touch the total until recalculated."""
        bucket = ArtifactBucket(0, 30)
        bucket.push(artifact_factory(size=100))
        bucket.push(artifact_factory(size=50))
        bucket.pop()
        assert bucket.total_size == 150
        assert bucket.recalculate_total() == 100
        assert bucket.total_size == 100

    def test_rejects_non_artifacts(self) -> None:
        """Only artifact records may be inserted."""
        bucket = ArtifactBucket(0, 30)
        with pytest.raises(TypeError):
            bucket.push("not an artifact")
        with pytest.raises(TypeError):
            bucket.unshift({"size": 10})
        assert bucket.is_empty()

    def test_empty_bucket_is_truthy(self) -> None:
        """An empty bucket is still a bucket."""
        bucket = ArtifactBucket(0, 30)
        assert bucket
        assert bucket.is_empty()


class TestArtifactBucketCollection:
    """Tests for bucket collections."""

    def test_default_boundaries(self) -> None:
        """The default collection ends with an unbounded bucket."""
        collection = ArtifactBucketCollection()
        assert collection.bucket_bounds == list(DEFAULT_BUCKET_BOUNDARIES)
        assert collection.first.min_age == 0
        assert collection.last.min_age == 1095
        assert collection.last.is_unbounded

    def test_buckets_are_contiguous(self) -> None:
        """Each bucket starts where the previous one ends."""
        buckets = list(ArtifactBucketCollection([30, 60, 90, None]))
        assert [(b.min_age, b.max_age) for b in buckets] == [
            (0, 30),
            (30, 60),
            (60, 90),
            (90, None),
        ]

    def test_routes_by_age(self, artifact_factory, now) -> None:
        """An artifact aged 45 days lands in the 30-60 bucket."""
        collection = ArtifactBucketCollection([30, 60, 90])
        collection.add(artifact_factory(age_days=45), now=now)
        bucket = collection[45]
        assert (bucket.min_age, bucket.max_age) == (30, 60)
        assert len(bucket) == 1

    def test_routes_to_unbounded_bucket(self, artifact_factory, now) -> None:
        """An artifact aged 95 days lands in the terminal unbounded bucket."""
        collection = ArtifactBucketCollection([30, 60, 90, None])
        collection.add(artifact_factory(age_days=95), now=now)
        assert len(collection.last) == 1
        assert collection.last.min_age == 90
        assert collection.last.max_age is None

    def test_boundary_age_goes_to_next_bucket(self, artifact_factory, now) -> None:
        """An age equal to a boundary belongs to the later bucket."""
        collection = ArtifactBucketCollection([30, 60, None])
        collection.add(artifact_factory(age_days=30), now=now)
        assert len(collection[30]) == 1
        assert collection[30].min_age == 30

    def test_exactly_one_bucket_covers_each_age(self) -> None:
        """Buckets never overlap and leave no gaps."""
        collection = ArtifactBucketCollection()
        for age in (0, 1, 29.9, 30, 364, 365, 1094.5, 1095, 5000):
            assert sum(1 for b in collection if b.covers(age)) == 1

    def test_counts_sum_to_insertions(self, artifact_factory, now) -> None:
        """Per-bucket counts add up to the number of artifacts added."""
        collection = ArtifactBucketCollection()
        ages = [0, 5, 31, 61, 95, 200, 400, 800, 1200, 3000]
        for age in ages:
            collection.add(artifact_factory(age_days=age, size=10), now=now)
        assert sum(len(b) for b in collection) == len(ages)
        assert collection.artifact_count == len(ages)
        assert collection.total_size == 10 * len(ages)

    def test_bounded_collection_rejects_old_artifact(self, artifact_factory, now) -> None:
        """An age beyond the last bounded bucket is a routing error."""
        collection = ArtifactBucketCollection([30, 60, 90])
        with pytest.raises(BucketRoutingError) as exc_info:
            collection.add(artifact_factory(age_days=120), now=now)
        assert exc_info.value.age_days == pytest.approx(120)
        assert collection.artifact_count == 0

    def test_future_activity_routed_to_first_bucket(self, artifact_factory, now) -> None:
        """Activity after the reference time counts as age zero, not a routing error."""
        collection = ArtifactBucketCollection()
        artifact = artifact_factory(age_days=40, last_downloaded=now + timedelta(seconds=5))
        collection.add(artifact, now=now)
        assert list(collection.first) == [artifact]
        assert collection.total_size == artifact.size

    def test_age_uses_latest_activity(self, artifact_factory, now) -> None:
        """A recent download makes an old artifact young."""
        collection = ArtifactBucketCollection()
        artifact = artifact_factory(age_days=400, last_downloaded=now - timedelta(days=3))
        collection.add(artifact, now=now)
        assert len(collection.first) == 1

    def test_rejects_non_artifacts(self) -> None:
        """Only artifact records may be added."""
        with pytest.raises(TypeError):
            ArtifactBucketCollection().add(object())

    def test_none_must_be_last(self) -> None:
        """Only the final boundary may be unbounded."""
        with pytest.raises(ConfigurationError):
            ArtifactBucketCollection([30, None, 90])

    def test_boundaries_must_not_decrease(self) -> None:
        """Out of order boundaries are rejected."""
        with pytest.raises(ConfigurationError):
            ArtifactBucketCollection([60, 30])

    def test_clear(self, artifact_factory, now) -> None:
        """Clearing empties every bucket and resets totals."""
        collection = ArtifactBucketCollection()
        collection.add(artifact_factory(age_days=10, size=5), now=now)
        collection.clear()
        assert collection.artifact_count == 0
        assert collection.total_size == 0
        assert len(collection) == len(DEFAULT_BUCKET_BOUNDARIES)

    def test_report(self, artifact_factory, now) -> None:
        """The report has one line per bucket plus a total."""
        collection = ArtifactBucketCollection([30, None])
        collection.add(artifact_factory(age_days=10, size=1024), now=now)
        collection.add(artifact_factory(age_days=50, size=2048), now=now)
        lines = collection.report()
        assert lines == [
            "1 artifacts between 0 and 30 days, totaling 1.0 KiB",
            "1 artifacts between 30 and unbounded days, totaling 2.0 KiB",
            "Total: 3.0 KiB across 2 artifacts",
        ]
