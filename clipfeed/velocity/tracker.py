"""Engagement velocity tracker."""

import math
import time
import uuid
from datetime import UTC, datetime, timedelta

import structlog

from clipfeed.config import VelocityConfig
from clipfeed.store import SignalReader, SignalStore, VelocitySample, ensure_utc
from clipfeed.velocity.constants import MIN_AGE_HOURS, VELOCITY_WEIGHTS
from clipfeed.velocity.metrics import VelocityMetrics
from clipfeed.velocity.models import RefreshSummary
from clipfeed.velocity.state_machine import RefreshState, RefreshStateMachine


logger = structlog.get_logger()


def compute_velocity(
    samples: list[VelocitySample],
    age_hours: float,
    window_hours: float,
) -> float:
    """Combine bucketed snapshots into a weighted per-hour engagement rate.

    Pure function: the caller supplies the clip's samples and age.

    Args:
        samples: Velocity samples of one clip.
        age_hours: Clip age in hours.
        window_hours: Velocity window in hours.

    Returns:
        Weighted rate, or 0.0 if the clip is older than the window.
    """
    if age_hours > window_hours:
        return 0.0

    horizon = min(window_hours, age_hours)
    reactions = listens = replies = remixes = 0
    for sample in samples:
        if sample.hour_bucket > horizon:
            continue
        reactions += sample.reactions_count
        listens += sample.listens_count
        replies += sample.replies_count
        remixes += sample.remixes_count

    hours = max(age_hours, MIN_AGE_HOURS)
    return (
        reactions / hours * VELOCITY_WEIGHTS["reactions"]
        + replies / hours * VELOCITY_WEIGHTS["replies"]
        + remixes / hours * VELOCITY_WEIGHTS["remixes"]
        + listens / hours * VELOCITY_WEIGHTS["listens"]
    )


class VelocityReader:
    """Read side of the tracker: velocity from stored samples.

    Needs only the read contracts, so scoring can run against any
    ``SignalReader`` backend.
    """

    def __init__(
        self,
        store: SignalReader,
        config: VelocityConfig | None = None,
        metrics: VelocityMetrics | None = None,
    ) -> None:
        """Initialize the reader.

        Args:
            store: Signal store read contracts.
            config: Velocity configuration.
            metrics: Optional metrics instance.
        """
        self._store = store
        self._config = config or VelocityConfig()
        self._metrics = metrics or VelocityMetrics.get_instance()
        self._log = logger.bind(component="velocity")

    @property
    def config(self) -> VelocityConfig:
        """Get the velocity configuration."""
        return self._config

    def velocity(
        self,
        clip_id: str,
        window_hours: float | None = None,
        now: datetime | None = None,
    ) -> float:
        """Rate-weighted recent engagement of a clip.

        Args:
            clip_id: Clip identifier.
            window_hours: Window in hours (defaults to the configured window).
            now: Reference time (defaults to the current time).

        Returns:
            Velocity, 0.0 for unknown clips and clips older than the window.
        """
        window = window_hours if window_hours is not None else self._config.window_hours
        now = ensure_utc(now) if now is not None else datetime.now(UTC)
        self._metrics.record_read()

        clip = self._store.get_clip(clip_id)
        if clip is None:
            return 0.0

        age_hours = clip.age_hours(now)
        if age_hours > window:
            return 0.0

        samples = self._store.get_velocity_samples(clip_id, max_bucket=min(window, age_hours))
        return compute_velocity(samples, age_hours, window)


class EngagementVelocityTracker(VelocityReader):
    """Maintains hour-bucketed engagement snapshots and reads velocity.

    Each refresh writes the clip's current absolute counters into the
    bucket ``floor(age_hours)``. Snapshots overwrite rather than add, so
    overlapping or repeated refreshes converge on the same stored row.
    """

    def __init__(
        self,
        store: SignalStore,
        config: VelocityConfig | None = None,
        metrics: VelocityMetrics | None = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            store: Signal store (needs write access to velocity samples).
            config: Velocity configuration.
            metrics: Optional metrics instance.
        """
        super().__init__(store, config, metrics)
        self._writer = store

    def refresh_velocity(
        self,
        clip_id: str,
        now: datetime | None = None,
    ) -> VelocitySample | None:
        """Snapshot a clip's current counters into its hour bucket.

        Args:
            clip_id: Clip identifier.
            now: Reference time (defaults to the current time).

        Returns:
            The asserted sample, or None if the clip does not exist or was
            created after ``now``.
        """
        sample, _ = self._refresh(clip_id, ensure_utc(now) if now else datetime.now(UTC))
        return sample

    def _refresh(self, clip_id: str, now: datetime) -> tuple[VelocitySample | None, bool]:
        """Snapshot one clip.

        Returns:
            Tuple of (sample, whether the stored row changed).
        """
        clip = self._writer.get_clip(clip_id)
        if clip is None:
            self._log.debug("velocity_refresh_skipped", clip_id=clip_id, reason="not_found")
            return None, False

        age_hours = clip.age_hours(now)
        if age_hours < 0:
            self._log.debug("velocity_refresh_skipped", clip_id=clip_id, reason="future_clip")
            return None, False

        sample = VelocitySample(
            clip_id=clip.clip_id,
            hour_bucket=math.floor(age_hours),
            reactions_count=clip.total_reactions,
            listens_count=clip.listens_count,
            replies_count=clip.reply_count,
            remixes_count=clip.remix_count,
            updated_at=now,
        )
        written = self._writer.upsert_velocity_sample(sample)
        self._metrics.record_snapshot(written)

        self._log.debug(
            "velocity_refreshed",
            clip_id=clip_id,
            hour_bucket=sample.hour_bucket,
            written=written,
        )
        return sample, written

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete samples not updated within the retention window.

        Args:
            now: Reference time (defaults to the current time).

        Returns:
            Number of samples deleted.
        """
        now = ensure_utc(now) if now is not None else datetime.now(UTC)
        cutoff = now - timedelta(days=self._config.retention_days)
        purged = self._writer.purge_velocity_samples(cutoff)
        self._metrics.record_purged(purged)
        self._log.info("velocity_samples_purged", count=purged, cutoff=cutoff.isoformat())
        return purged

    def refresh_all_recent(
        self,
        max_age_hours: int | None = None,
        batch_limit: int | None = None,
        now: datetime | None = None,
    ) -> RefreshSummary:
        """Snapshot every recent live clip, then apply retention cleanup.

        Args:
            max_age_hours: Only clips younger than this are refreshed.
            batch_limit: Maximum clips refreshed in this run (newest first).
            now: Reference time (defaults to the current time).

        Returns:
            Summary of the run.

        Raises:
            SignalStoreError: If the store fails; the run is marked FAILED.
        """
        max_age = max_age_hours if max_age_hours is not None else self._config.refresh_max_age_hours
        limit = batch_limit if batch_limit is not None else self._config.refresh_batch_limit
        now = ensure_utc(now) if now is not None else datetime.now(UTC)

        run_id = str(uuid.uuid4())[:8]
        machine = RefreshStateMachine(run_id)
        log = self._log.bind(run_id=run_id)
        start = time.perf_counter()

        log.info("velocity_refresh_started", max_age_hours=max_age, batch_limit=limit)

        refreshed = written_count = unchanged = purged = 0
        try:
            machine.transition(RefreshState.REFRESHING)
            clip_ids = self._writer.live_clip_ids(
                created_after=now - timedelta(hours=max_age),
                limit=limit,
            )
            for clip_id in clip_ids:
                sample, written = self._refresh(clip_id, now)
                if sample is None:
                    continue
                refreshed += 1
                if written:
                    written_count += 1
                else:
                    unchanged += 1

            machine.transition(RefreshState.PURGING)
            purged = self.purge_expired(now)
            machine.transition(RefreshState.COMPLETED)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            machine.transition(RefreshState.FAILED)
            self._metrics.record_run(duration_ms, failed=True)
            log.error("velocity_refresh_failed", clips_refreshed=refreshed)
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        self._metrics.record_run(duration_ms)

        summary = RefreshSummary(
            run_id=run_id,
            started_at=now,
            state=machine.state,
            clips_refreshed=refreshed,
            samples_written=written_count,
            samples_unchanged=unchanged,
            samples_purged=purged,
            duration_ms=duration_ms,
        )
        log.info("velocity_refresh_complete", **summary.to_dict())
        return summary
