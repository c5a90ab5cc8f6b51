"""Metrics collection for the signal store."""

from dataclasses import dataclass, field
from typing import ClassVar, Protocol


class MetricsRecorder(Protocol):
    """Sink for signal store counters.

    ``SignalStore`` reports velocity upserts, purges and transaction timings
    through this interface; tests may pass ``NullMetricsRecorder``.
    """

    def record_sample_written(self) -> None:
        """Record a velocity sample insert or overwrite."""
        ...

    def record_sample_unchanged(self) -> None:
        """Record a velocity refresh that left the sample as it was."""
        ...

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record how long one transaction took, in milliseconds."""
        ...

    def record_samples_purged(self, count: int) -> None:
        """Record number of velocity samples purged."""
        ...


@dataclass
class NullMetricsRecorder:
    """No-op metrics recorder for testing."""

    def record_sample_written(self) -> None:
        """No-op."""

    def record_sample_unchanged(self) -> None:
        """No-op."""

    def record_tx_duration(self, duration_ms: float) -> None:  # noqa: ARG002
        """No-op."""

    def record_samples_purged(self, count: int) -> None:  # noqa: ARG002
        """No-op."""


@dataclass
class StoreMetrics:
    """Metrics for signal store operations.

    Attributes:
        samples_written_total: Velocity samples inserted or overwritten.
        samples_unchanged_total: Velocity refreshes with identical counters.
        samples_purged_total: Velocity samples removed by retention.
        db_tx_duration_ms: Cumulative transaction duration in milliseconds.
        db_tx_count: Number of transactions.
    """

    samples_written_total: int = 0
    samples_unchanged_total: int = 0
    samples_purged_total: int = 0
    db_tx_duration_ms: float = 0.0
    db_tx_count: int = 0

    _instance: ClassVar["StoreMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "StoreMetrics":
        """Return the process-wide store metrics."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Discard the process-wide store metrics."""
        cls._instance = None

    def record_sample_written(self) -> None:
        """Record a velocity sample insert or overwrite."""
        self.samples_written_total += 1

    def record_sample_unchanged(self) -> None:
        """Record an unchanged velocity sample."""
        self.samples_unchanged_total += 1

    def record_tx_duration(self, duration_ms: float) -> None:
        """Add one committed or rolled back transaction.

        Args:
            duration_ms: Wall time spent inside the transaction.
        """
        self.db_tx_duration_ms += duration_ms
        self.db_tx_count += 1

    def record_samples_purged(self, count: int) -> None:
        """Record purged samples.

        Args:
            count: Number of samples purged.
        """
        self.samples_purged_total += count

    @property
    def avg_tx_duration_ms(self) -> float:
        """Average transaction duration in milliseconds."""
        if self.db_tx_count == 0:
            return 0.0
        return self.db_tx_duration_ms / self.db_tx_count

    def to_dict(self) -> dict[str, float | int]:
        """Snapshot the counters for JSON output.

        Returns:
            Counter name to value.
        """
        return {
            "samples_written_total": self.samples_written_total,
            "samples_unchanged_total": self.samples_unchanged_total,
            "samples_purged_total": self.samples_purged_total,
            "db_tx_duration_ms": self.db_tx_duration_ms,
            "db_tx_count": self.db_tx_count,
            "avg_tx_duration_ms": self.avg_tx_duration_ms,
        }


@dataclass
class TransactionContext:
    """Bookkeeping for one ``SignalStore._transaction`` block.

    Attributes:
        tx_id: Short random identifier used in log events.
        start_time_ns: ``time.perf_counter_ns`` at entry.
        operation: Name of the store method that opened it.
    """

    tx_id: str
    start_time_ns: int
    operation: str
    affected_rows: int = field(default=0)

    def add_affected_rows(self, rows: int) -> None:
        """Count rows touched by a statement in this transaction.

        Args:
            rows: Row count reported by the cursor.
        """
        self.affected_rows += rows
