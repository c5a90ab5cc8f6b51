"""In-process counters for relevance and trending scoring."""

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class RankerMetrics:
    """Metrics for relevance and trending scoring.

    Attributes:
        clips_scored: Personalized scores computed.
        anonymous_scored: Trending-only scores for anonymous viewers.
        clips_missing: Score requests for unknown or non-live clips.
        excluded_by_reason: Hard exclusions per reason.
        score_values: All personalized scores for percentile calculation.
        scoring_duration_ms: Cumulative scoring time.
        trending_refreshed: Clips whose trending score was recomputed.
    """

    clips_scored: int = 0
    anonymous_scored: int = 0
    clips_missing: int = 0
    excluded_by_reason: dict[str, int] = field(default_factory=dict)
    score_values: list[float] = field(default_factory=list)
    scoring_duration_ms: float = 0.0
    trending_refreshed: int = 0

    _instance: ClassVar["RankerMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "RankerMetrics":
        """Shared metrics for this process."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Forget the shared instance; the next ``get_instance`` starts at zero."""
        cls._instance = None

    def record_score(self, score: float) -> None:
        """Record a personalized score.

        Args:
            score: Score value.
        """
        self.clips_scored += 1
        self.score_values.append(score)

    def record_anonymous(self) -> None:
        """Record a trending-only score."""
        self.anonymous_scored += 1

    def record_missing(self) -> None:
        """Record a request for a clip that cannot be scored."""
        self.clips_missing += 1

    def record_exclusion(self, reason: str) -> None:
        """Record a hard exclusion.

        Args:
            reason: Exclusion reason.
        """
        self.excluded_by_reason[reason] = self.excluded_by_reason.get(reason, 0) + 1

    def record_scoring_duration(self, duration_ms: float) -> None:
        """Add to cumulative scoring time."""
        self.scoring_duration_ms += duration_ms

    def record_trending_refreshed(self, count: int) -> None:
        """Record recomputed trending scores."""
        self.trending_refreshed += count

    def get_score_percentiles(self) -> dict[str, float]:
        """Nearest-rank percentiles of the recorded (non-excluded) scores.

        Returns:
            Mapping of ``p50``, ``p90`` and ``p99`` to scores.
        """
        if not self.score_values:
            return {"p50": 0.0, "p90": 0.0, "p99": 0.0}

        sorted_scores = sorted(self.score_values)
        n = len(sorted_scores)

        def percentile(p: float) -> float:
            idx = int(p * n / 100)
            return sorted_scores[min(idx, n - 1)]

        return {
            "p50": percentile(50),
            "p90": percentile(90),
            "p99": percentile(99),
        }

    def to_dict(self) -> dict[str, object]:
        """Serialize counters and percentiles.

        Returns:
            JSON-compatible mapping.
        """
        return {
            "clips_scored": self.clips_scored,
            "anonymous_scored": self.anonymous_scored,
            "clips_missing": self.clips_missing,
            "excluded_by_reason": dict(self.excluded_by_reason),
            "scoring_duration_ms": self.scoring_duration_ms,
            "trending_refreshed": self.trending_refreshed,
            "score_percentiles": self.get_score_percentiles(),
        }
