"""Metrics collection for the velocity tracker."""

from dataclasses import dataclass
from typing import ClassVar


@dataclass
class VelocityMetrics:
    """Metrics for velocity refresh and read operations.

    Attributes:
        refresh_runs_total: Completed refresh runs.
        refresh_failures_total: Refresh runs that failed.
        clips_refreshed_total: Clips snapshotted across all runs.
        samples_written_total: Snapshots that inserted or changed a row.
        samples_unchanged_total: Snapshots identical to the stored row.
        samples_purged_total: Samples removed by retention cleanup.
        velocity_reads_total: Velocity computations.
        refresh_duration_ms: Duration of the last refresh run.
    """

    refresh_runs_total: int = 0
    refresh_failures_total: int = 0
    clips_refreshed_total: int = 0
    samples_written_total: int = 0
    samples_unchanged_total: int = 0
    samples_purged_total: int = 0
    velocity_reads_total: int = 0
    refresh_duration_ms: float = 0.0

    _instance: ClassVar["VelocityMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "VelocityMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_snapshot(self, written: bool) -> None:
        """Record one clip snapshot.

        Args:
            written: Whether the stored sample changed.
        """
        self.clips_refreshed_total += 1
        if written:
            self.samples_written_total += 1
        else:
            self.samples_unchanged_total += 1

    def record_purged(self, count: int) -> None:
        """Record purged samples."""
        self.samples_purged_total += count

    def record_run(self, duration_ms: float, failed: bool = False) -> None:
        """Record the end of a refresh run.

        Args:
            duration_ms: Run duration in milliseconds.
            failed: Whether the run failed.
        """
        self.refresh_duration_ms = duration_ms
        if failed:
            self.refresh_failures_total += 1
        else:
            self.refresh_runs_total += 1

    def record_read(self) -> None:
        """Record a velocity computation."""
        self.velocity_reads_total += 1

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "refresh_runs_total": self.refresh_runs_total,
            "refresh_failures_total": self.refresh_failures_total,
            "clips_refreshed_total": self.clips_refreshed_total,
            "samples_written_total": self.samples_written_total,
            "samples_unchanged_total": self.samples_unchanged_total,
            "samples_purged_total": self.samples_purged_total,
            "velocity_reads_total": self.velocity_reads_total,
            "refresh_duration_ms": self.refresh_duration_ms,
        }
