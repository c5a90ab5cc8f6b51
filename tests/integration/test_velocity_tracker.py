"""Integration tests for the engagement velocity tracker."""

import tempfile
from collections.abc import Generator
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from pathlib import Path

import pytest

from clipfeed.store import ClipStatus, SignalStore, SignalStoreError, StoreMetrics, VelocitySample
from clipfeed.velocity import (
    EngagementVelocityTracker,
    RefreshState,
    RefreshSummary,
    VelocityMetrics,
)
from tests.helpers.factories import make_clip
from tests.helpers.time import FIXED_NOW


@pytest.fixture
def store() -> Generator[SignalStore]:
    """Create a connected signal store in a temporary directory."""
    StoreMetrics.reset()
    with tempfile.TemporaryDirectory() as tmpdir:
        store = SignalStore(Path(tmpdir) / "signals.sqlite")
        store.connect()
        yield store
        store.close()


@pytest.fixture
def metrics() -> VelocityMetrics:
    """Fresh velocity metrics."""
    return VelocityMetrics()


@pytest.fixture
def tracker(store: SignalStore, metrics: VelocityMetrics) -> EngagementVelocityTracker:
    """Tracker with default configuration."""
    return EngagementVelocityTracker(store, metrics=metrics)


class TestRefreshVelocity:
    """Tests for single-clip snapshots."""

    def test_snapshot_uses_floor_bucket(
        self, store: SignalStore, tracker: EngagementVelocityTracker
    ) -> None:
        """Test the bucket is the floor of the clip age."""
        store.upsert_clip(
            make_clip(age_hours=2.5, reactions={"fire": 3, "heart": 2}, listens_count=9, reply_count=1)
        )

        sample = tracker.refresh_velocity("clip-1", now=FIXED_NOW)

        assert sample is not None
        assert sample.hour_bucket == 2
        assert sample.counters() == (5, 9, 1, 0)
        assert store.get_velocity_samples("clip-1") == [sample]

    def test_missing_clip(self, tracker: EngagementVelocityTracker) -> None:
        """Test unknown clips are skipped without error."""
        assert tracker.refresh_velocity("nope", now=FIXED_NOW) is None

    def test_future_clip(self, store: SignalStore, tracker: EngagementVelocityTracker) -> None:
        """Test clips created after the clock are not snapshotted."""
        store.upsert_clip(make_clip(age_hours=-1.0))

        assert tracker.refresh_velocity("clip-1", now=FIXED_NOW) is None
        assert store.get_velocity_samples("clip-1") == []

    def test_repeated_refresh_is_idempotent(
        self,
        store: SignalStore,
        tracker: EngagementVelocityTracker,
        metrics: VelocityMetrics,
    ) -> None:
        """Test refreshing twice in the same bucket stores one unchanged row."""
        store.upsert_clip(make_clip(age_hours=1.2, reactions={"fire": 4}))

        first = tracker.refresh_velocity("clip-1", now=FIXED_NOW)
        tracker.refresh_velocity("clip-1", now=FIXED_NOW + timedelta(minutes=20))

        assert store.get_velocity_samples("clip-1") == [first]
        assert metrics.samples_written_total == 1
        assert metrics.samples_unchanged_total == 1

    def test_counters_overwrite_bucket(
        self, store: SignalStore, tracker: EngagementVelocityTracker
    ) -> None:
        """Test a later refresh in the same bucket replaces the counters."""
        store.upsert_clip(make_clip(age_hours=1.2, reactions={"fire": 4}))
        tracker.refresh_velocity("clip-1", now=FIXED_NOW)
        store.update_clip_counters("clip-1", reactions={"fire": 9})

        tracker.refresh_velocity("clip-1", now=FIXED_NOW + timedelta(minutes=20))

        samples = store.get_velocity_samples("clip-1")
        assert len(samples) == 1
        assert samples[0].reactions_count == 9


class TestVelocity:
    """Tests for velocity reads through the store."""

    def test_two_hour_old_clip(self, store: SignalStore, tracker: EngagementVelocityTracker) -> None:
        """Test the documented 10 reactions / 40 listens example."""
        store.upsert_clip(make_clip(age_hours=2.0, reactions={"fire": 10}, listens_count=40))
        tracker.refresh_velocity("clip-1", now=FIXED_NOW)

        assert tracker.velocity("clip-1", now=FIXED_NOW) == pytest.approx(25.0)

    def test_velocity_is_repeatable(
        self, store: SignalStore, tracker: EngagementVelocityTracker
    ) -> None:
        """Test reads have no side effects."""
        store.upsert_clip(make_clip(age_hours=3.0, reactions={"fire": 6}))
        tracker.refresh_velocity("clip-1", now=FIXED_NOW)

        first = tracker.velocity("clip-1", now=FIXED_NOW)

        assert tracker.velocity("clip-1", now=FIXED_NOW) == first
        assert first == pytest.approx(6 / 3.0 * 3.0)

    def test_outside_window(self, store: SignalStore, tracker: EngagementVelocityTracker) -> None:
        """Test clips older than the window read as zero."""
        store.upsert_clip(make_clip(age_hours=30.0, reactions={"fire": 50}))
        tracker.refresh_velocity("clip-1", now=FIXED_NOW)

        assert tracker.velocity("clip-1", now=FIXED_NOW) == 0.0
        assert tracker.velocity("clip-1", window_hours=48, now=FIXED_NOW) > 0.0

    def test_unknown_clip(self, tracker: EngagementVelocityTracker) -> None:
        """Test unknown clips read as zero."""
        assert tracker.velocity("nope", now=FIXED_NOW) == 0.0


class TestRefreshAllRecent:
    """Tests for batch refresh runs."""

    def test_summary(self, store: SignalStore, tracker: EngagementVelocityTracker) -> None:
        """Test recent live clips are refreshed and expired samples purged."""
        store.upsert_clip(make_clip("new", age_hours=1.0, reactions={"fire": 1}))
        store.upsert_clip(make_clip("mid", age_hours=10.0))
        store.upsert_clip(make_clip("old", age_hours=60.0))
        store.upsert_clip(make_clip("hidden", age_hours=1.0, status=ClipStatus.HIDDEN))
        store.upsert_velocity_sample(
            VelocitySample(clip_id="old", hour_bucket=0, updated_at=FIXED_NOW - timedelta(days=8))
        )

        summary = tracker.refresh_all_recent(now=FIXED_NOW)

        assert summary.state == RefreshState.COMPLETED
        assert summary.clips_refreshed == 2
        assert summary.samples_written == 2
        assert summary.samples_unchanged == 0
        assert summary.samples_purged == 1
        assert summary.started_at == FIXED_NOW
        assert store.get_velocity_samples("old") == []
        assert store.get_velocity_samples("hidden") == []

    def test_second_run_is_unchanged(
        self, store: SignalStore, tracker: EngagementVelocityTracker
    ) -> None:
        """Test re-running with the same counters writes nothing."""
        store.upsert_clip(make_clip("a", age_hours=1.0))
        store.upsert_clip(make_clip("b", age_hours=2.0))
        tracker.refresh_all_recent(now=FIXED_NOW)

        summary = tracker.refresh_all_recent(now=FIXED_NOW)

        assert summary.samples_written == 0
        assert summary.samples_unchanged == 2
        assert summary.to_dict()["state"] == "COMPLETED"

    def test_batch_limit_prefers_newest(
        self, store: SignalStore, tracker: EngagementVelocityTracker
    ) -> None:
        """Test the batch limit keeps the newest clips."""
        store.upsert_clip(make_clip("older", age_hours=5.0))
        store.upsert_clip(make_clip("newer", age_hours=1.0))

        summary = tracker.refresh_all_recent(batch_limit=1, now=FIXED_NOW)

        assert summary.clips_refreshed == 1
        assert store.get_velocity_samples("newer") != []
        assert store.get_velocity_samples("older") == []

    def test_max_age(self, store: SignalStore, tracker: EngagementVelocityTracker) -> None:
        """Test max_age_hours narrows the refreshed set."""
        store.upsert_clip(make_clip("young", age_hours=1.0))
        store.upsert_clip(make_clip("day-old", age_hours=20.0))

        summary = tracker.refresh_all_recent(max_age_hours=12, now=FIXED_NOW)

        assert summary.clips_refreshed == 1

    def test_failure_marks_run_failed(
        self,
        store: SignalStore,
        tracker: EngagementVelocityTracker,
        metrics: VelocityMetrics,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test store errors propagate and are counted as failed runs."""
        store.upsert_clip(make_clip(age_hours=1.0))

        def broken_purge(before: object) -> int:
            raise SignalStoreError("disk full")

        monkeypatch.setattr(store, "purge_velocity_samples", broken_purge)

        with pytest.raises(SignalStoreError, match="disk full"):
            tracker.refresh_all_recent(now=FIXED_NOW)

        assert metrics.refresh_failures_total == 1
        assert metrics.refresh_runs_total == 0


class TestConcurrentRefresh:
    """Tests for overlapping refresh runs on one store."""

    def test_overlapping_runs_converge(
        self, store: SignalStore, tracker: EngagementVelocityTracker
    ) -> None:
        """Test parallel runs all complete and write each snapshot once."""
        clip_count = 200
        for i in range(clip_count):
            store.upsert_clip(
                make_clip(f"clip-{i:03d}", age_hours=1.0 + i % 40, reactions={"fire": i % 7})
            )

        def run_several(n: int) -> list[RefreshSummary]:
            return [tracker.refresh_all_recent(now=FIXED_NOW) for _ in range(n)]

        with ThreadPoolExecutor(max_workers=4) as executor:
            futures = [executor.submit(run_several, 5) for _ in range(4)]
            summaries = [summary for f in futures for summary in f.result()]

        assert len(summaries) == 20
        assert all(s.state == RefreshState.COMPLETED for s in summaries)
        assert all(s.clips_refreshed == clip_count for s in summaries)
        assert sum(s.samples_written for s in summaries) == clip_count
        assert sum(s.samples_unchanged for s in summaries) == clip_count * 19
        assert store.get_stats()["clip_engagement_velocity"] == clip_count
