"""Metrics collection for feed assembly."""

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class FeedMetrics:
    """Metrics for feed assembly.

    Attributes:
        pages_by_filter: Pages assembled per feed filter.
        candidates_fetched_total: Candidate clips read from the store.
        candidates_dropped_total: Candidates dropped after ordering keys.
        entries_returned_total: Entries returned on pages.
        assembly_duration_ms: Cumulative assembly time.
    """

    pages_by_filter: dict[str, int] = field(default_factory=dict)
    candidates_fetched_total: int = 0
    candidates_dropped_total: int = 0
    entries_returned_total: int = 0
    assembly_duration_ms: float = 0.0

    _instance: ClassVar["FeedMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "FeedMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_page(
        self,
        feed_filter: str,
        fetched: int,
        dropped: int,
        returned: int,
        duration_ms: float,
    ) -> None:
        """Record one assembled page.

        Args:
            feed_filter: Feed filter name.
            fetched: Candidates read from the store.
            dropped: Candidates dropped by the pipeline.
            returned: Entries on the page.
            duration_ms: Assembly duration in milliseconds.
        """
        self.pages_by_filter[feed_filter] = self.pages_by_filter.get(feed_filter, 0) + 1
        self.candidates_fetched_total += fetched
        self.candidates_dropped_total += dropped
        self.entries_returned_total += returned
        self.assembly_duration_ms += duration_ms

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "pages_by_filter": dict(self.pages_by_filter),
            "candidates_fetched_total": self.candidates_fetched_total,
            "candidates_dropped_total": self.candidates_dropped_total,
            "entries_returned_total": self.entries_returned_total,
            "assembly_duration_ms": self.assembly_duration_ms,
        }
