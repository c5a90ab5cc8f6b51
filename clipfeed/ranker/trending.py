"""Trending score computation.

The trending score is the viewer-independent signal that best-of-period,
topic and city feeds order by and that the relevance scorer uses as its
base term. It decays quickly, so it is recomputed on a schedule.
"""

import math
from datetime import UTC, datetime

import structlog

from clipfeed.ranker.constants import (
    DEFAULT_COMPLETION_RATE,
    MODERATION_RISK_FACTOR,
    SENSITIVE_CONTENT_FACTOR,
    TRENDING_DECAY_HOURS,
    TRENDING_ENGAGEMENT_LOG_BASE,
    TRENDING_ENGAGEMENT_WEIGHTS,
    TRENDING_SCALE,
)
from clipfeed.ranker.metrics import RankerMetrics
from clipfeed.store import Clip, SignalStore, ensure_utc


logger = structlog.get_logger()


def compute_trending_score(clip: Clip, now: datetime) -> float:
    """Compute a clip's trending score.

    score = engagement x freshness x quality x 1000, where engagement is a
    log-scaled weighted interaction count capped at 1, freshness decays
    exponentially with a 12-hour time constant, and quality is derived from
    the completion rate with penalties for sensitive or risky content.

    Args:
        clip: Clip to score.
        now: Reference time.

    Returns:
        Trending score (0.0 for non-live clips).
    """
    if not clip.is_live:
        return 0.0

    weighted = (
        clip.total_reactions * TRENDING_ENGAGEMENT_WEIGHTS["reactions"]
        + clip.listens_count * TRENDING_ENGAGEMENT_WEIGHTS["listens"]
        + clip.reply_count * TRENDING_ENGAGEMENT_WEIGHTS["replies"]
        + clip.remix_count * TRENDING_ENGAGEMENT_WEIGHTS["remixes"]
    )
    engagement = min(1.0, math.log(1 + weighted) / math.log(TRENDING_ENGAGEMENT_LOG_BASE))

    age_hours = max(0.0, clip.age_hours(now))
    freshness = math.exp(-age_hours / TRENDING_DECAY_HOURS)

    completion = clip.completion_rate
    if completion is None:
        completion = DEFAULT_COMPLETION_RATE
    quality = 0.5 + completion * 0.5
    if clip.content_rating == "sensitive":
        quality *= SENSITIVE_CONTENT_FACTOR
    if clip.moderation_risk > 0:
        quality *= 1 - MODERATION_RISK_FACTOR * min(1.0, clip.moderation_risk)

    return engagement * freshness * quality * TRENDING_SCALE


class TrendingScorer:
    """Recomputes and stores trending scores."""

    def __init__(self, store: SignalStore, metrics: RankerMetrics | None = None) -> None:
        """Initialize the scorer.

        Args:
            store: Signal store to read clips from and write scores to.
            metrics: Optional metrics instance.
        """
        self._store = store
        self._metrics = metrics or RankerMetrics.get_instance()
        self._log = logger.bind(component="ranker", subcomponent="trending")

    def compute(self, clip: Clip, now: datetime | None = None) -> float:
        """Compute a clip's trending score without storing it."""
        return compute_trending_score(clip, ensure_utc(now) if now else datetime.now(UTC))

    def refresh_all(self, now: datetime | None = None) -> int:
        """Recompute and store the trending score of every live clip.

        Args:
            now: Reference time (defaults to the current time).

        Returns:
            Number of clips updated.
        """
        now = ensure_utc(now) if now is not None else datetime.now(UTC)
        updated = 0
        for clip_id in self._store.live_clip_ids():
            clip = self._store.get_clip(clip_id)
            if clip is None:
                continue
            self._store.update_trending_score(clip_id, compute_trending_score(clip, now))
            updated += 1

        self._metrics.record_trending_refreshed(updated)
        self._log.info("trending_refreshed", clips_updated=updated)
        return updated
