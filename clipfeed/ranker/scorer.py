"""Relevance scoring engine for (clip, viewer) pairs."""

import math
import time
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

import structlog

from clipfeed.config import RankingConfig, SignalWeights
from clipfeed.ranker.constants import (
    COMPLETION_LOOKBACK_DAYS,
    COMPLETION_THRESHOLD,
    DIVERSITY_LOOKBACK_DAYS,
    DIVERSITY_NEW_FACTOR,
    DIVERSITY_SEEN_FACTOR,
    DURATION_IN_RANGE_BONUS,
    DURATION_LONG_PENALTY,
    DURATION_SHORT_BONUS,
    LISTENING_PATTERN_DAYS,
    PREFERRED_HOUR_BONUS,
    RECENT_TOPIC_ACTIVITY_FACTOR,
    RECENT_TOPIC_CLIPS_NORMALIZER,
    RECENT_TOPICS_LIMIT,
    REPUTATION_NORMALIZER,
    SIMILAR_CREATOR_WEIGHT,
    SKIP_LOOKBACK_DAYS,
    SKIP_RATE_THRESHOLD,
    SKIPPED_CLIP_PENALTY,
    TIME_TOPIC_BONUS,
    TOPIC_ACTIVITY_LOG_BASE,
    TOPIC_RECENT_HOURS,
    TOPIC_SKIP_FACTOR,
    TRENDING_NORMALIZER,
)
from clipfeed.ranker.metrics import RankerMetrics
from clipfeed.ranker.models import (
    Excluded,
    ScoreComponents,
    Scored,
    ScoreResult,
    SignalInputs,
)
from clipfeed.store import Clip, DayPeriod, SignalReader, ViewerPreference, ensure_utc
from clipfeed.velocity import VelocityReader


logger = structlog.get_logger()


def trending_component(trending_score: float, weights: SignalWeights) -> float:
    """Trending base term shared by anonymous and personalized scores."""
    return trending_score / TRENDING_NORMALIZER * weights.trending


def fuse_signals(
    inputs: SignalInputs,
    weights: SignalWeights,
    velocity_normalizer: float = 10.0,
) -> ScoreComponents:
    """Combine gathered signal inputs into a score breakdown.

    Pure function: no store access, so identical inputs always produce an
    identical breakdown. The total is clamped at zero; exclusion is decided
    before this is called.

    Args:
        inputs: Raw signal inputs for one (clip, viewer) pair.
        weights: Resolved signal weights.
        velocity_normalizer: Velocity that maps to a full velocity signal.

    Returns:
        ScoreComponents with the clamped total.
    """
    trending = trending_component(inputs.trending_score, weights)
    topic_follow = weights.topic_follow if inputs.subscribed else 0.0
    creator_follow = weights.creator_follow if inputs.following else 0.0

    completion = 0.0
    if inputs.clip_completion is not None and inputs.clip_completion > COMPLETION_THRESHOLD:
        completion = weights.completion * (inputs.clip_completion / 100.0)

    similar_creator = 0.0
    if inputs.author_completion is not None and inputs.author_completion > COMPLETION_THRESHOLD:
        similar_creator = SIMILAR_CREATOR_WEIGHT * (inputs.author_completion / 100.0)

    duration = 0.0
    if inputs.duration_range is not None:
        low, high = inputs.duration_range
        if inputs.duration_seconds < low:
            duration = DURATION_SHORT_BONUS
        elif inputs.duration_seconds > high:
            duration = -DURATION_LONG_PENALTY
        else:
            duration = DURATION_IN_RANGE_BONUS

    time_of_day = 0.0
    if inputs.hour_preferred:
        time_of_day += PREFERRED_HOUR_BONUS
    if inputs.topic_in_period:
        time_of_day += TIME_TOPIC_BONUS

    skip_penalty = 0.0
    if inputs.skip_signals and weights.skip_penalty > 0:
        if inputs.author_skip_rate > SKIP_RATE_THRESHOLD:
            skip_penalty -= weights.skip_penalty * (inputs.author_skip_rate / 100.0)
        if inputs.topic_skip_rate > SKIP_RATE_THRESHOLD:
            skip_penalty -= (
                weights.skip_penalty * TOPIC_SKIP_FACTOR * (inputs.topic_skip_rate / 100.0)
            )
        if inputs.clip_skipped:
            skip_penalty -= SKIPPED_CLIP_PENALTY

    velocity = 0.0
    if inputs.velocity > 0:
        velocity = min(1.0, inputs.velocity / velocity_normalizer) * weights.velocity

    reputation = 0.0
    if inputs.reputation > 0:
        reputation = min(1.0, inputs.reputation / REPUTATION_NORMALIZER) * weights.reputation

    topic_activity = 0.0
    if inputs.topic_id is not None and inputs.topic_clip_count > 0:
        topic_activity = (
            min(1.0, math.log(inputs.topic_clip_count + 1) / math.log(TOPIC_ACTIVITY_LOG_BASE))
            * weights.topic_activity
        )
        if inputs.recent_topic_clip_count > 0:
            topic_activity += (
                min(1.0, inputs.recent_topic_clip_count / RECENT_TOPIC_CLIPS_NORMALIZER)
                * weights.topic_activity
                * RECENT_TOPIC_ACTIVITY_FACTOR
            )

    diversity = 0.0
    if inputs.topic_id is not None and inputs.recent_topics:
        if inputs.topic_id in inputs.recent_topics:
            diversity = DIVERSITY_SEEN_FACTOR * weights.diversity
        else:
            diversity = DIVERSITY_NEW_FACTOR * weights.diversity

    raw_total = (
        trending
        + topic_follow
        + creator_follow
        + completion
        + similar_creator
        + duration
        + time_of_day
        + skip_penalty
        + velocity
        + reputation
        + topic_activity
        + diversity
    )

    return ScoreComponents(
        trending=trending,
        topic_follow=topic_follow,
        creator_follow=creator_follow,
        completion=completion,
        similar_creator=similar_creator,
        duration=duration,
        time_of_day=time_of_day,
        skip_penalty=skip_penalty,
        velocity=velocity,
        reputation=reputation,
        topic_activity=topic_activity,
        diversity=diversity,
        total=max(0.0, raw_total),
    )


class RelevanceScorer:
    """Computes the personalized relevance score of a clip for a viewer.

    Scoring order:
        1. Missing or non-live clip -> 0
        2. Anonymous viewer -> trending term only
        3. Muted topic or muted author -> Excluded
        4. Gather signal inputs from the store (honouring privacy toggles)
        5. Fuse with the viewer's resolved weights and clamp at zero
    """

    def __init__(
        self,
        store: SignalReader,
        velocity: VelocityReader,
        config: RankingConfig | None = None,
        metrics: RankerMetrics | None = None,
    ) -> None:
        """Initialize the scorer.

        Args:
            store: Signal store read contracts.
            velocity: Velocity reader (the tracker or a read-only reader).
            config: Ranking configuration.
            metrics: Optional metrics instance.
        """
        self._store = store
        self._velocity = velocity
        self._config = config or RankingConfig()
        self._metrics = metrics or RankerMetrics.get_instance()
        self._log = logger.bind(component="ranker", subcomponent="scorer")

    def score(
        self,
        clip_id: str,
        viewer_id: str | None,
        current_hour: int,
        device_type: str | None = None,
        now: datetime | None = None,
    ) -> ScoreResult:
        """Score a clip by ID.

        Args:
            clip_id: Clip identifier.
            viewer_id: Viewer identifier, or None for anonymous.
            current_hour: Viewer's current hour of day (0-23).
            device_type: Viewer's device type (accepted, not scored).
            now: Reference time for all windows.

        Returns:
            Scored result, or Excluded for muted topics/authors.
        """
        clip = self._store.get_clip(clip_id)
        if clip is None:
            self._metrics.record_missing()
            self._log.debug("clip_not_scored", clip_id=clip_id, reason="not_found")
            return Scored(0.0)
        return self.score_clip(clip, viewer_id, current_hour, device_type, now)

    def score_clip(
        self,
        clip: Clip,
        viewer_id: str | None,
        current_hour: int,
        device_type: str | None = None,
        now: datetime | None = None,
    ) -> ScoreResult:
        """Score an already-loaded clip.

        Args:
            clip: Clip to score.
            viewer_id: Viewer identifier, or None for anonymous.
            current_hour: Viewer's current hour of day (0-23).
            device_type: Viewer's device type (accepted, not scored).
            now: Reference time for all windows.

        Returns:
            Scored result, or Excluded for muted topics/authors.

        Raises:
            ValueError: If current_hour is outside 0-23.
        """
        if not 0 <= current_hour <= 23:
            msg = f"current_hour must be between 0 and 23, got {current_hour}"
            raise ValueError(msg)

        if not clip.is_live:
            self._metrics.record_missing()
            self._log.debug("clip_not_scored", clip_id=clip.clip_id, reason=clip.status.value)
            return Scored(0.0)

        if viewer_id is None:
            self._metrics.record_anonymous()
            trending = max(0.0, trending_component(clip.trending_score, self._config.weights))
            return Scored(trending, ScoreComponents(trending=trending, total=trending))

        exclusion = self._exclusion_reason(clip, viewer_id)
        if exclusion is not None:
            self._metrics.record_exclusion(exclusion)
            self._log.debug(
                "clip_excluded",
                clip_id=clip.clip_id,
                viewer_id=viewer_id,
                reason=exclusion,
            )
            return Excluded(exclusion)

        start = time.perf_counter()
        now = ensure_utc(now) if now is not None else datetime.now(UTC)
        prefs = self._store.get_preferences(viewer_id)
        weights = self._config.weights.resolve(prefs.weight_overrides if prefs else None)

        inputs = self._gather(clip, viewer_id, prefs, current_hour, now)
        components = fuse_signals(inputs, weights, self._config.velocity.normalizer)

        self._metrics.record_scoring_duration((time.perf_counter() - start) * 1000)
        self._metrics.record_score(components.total)
        self._log.debug(
            "clip_scored",
            clip_id=clip.clip_id,
            viewer_id=viewer_id,
            device_type=device_type,
            score=round(components.total, 6),
        )
        return Scored(components.total, components)

    def score_many(
        self,
        clips: Iterable[Clip],
        viewer_id: str | None,
        current_hour: int,
        device_type: str | None = None,
        now: datetime | None = None,
    ) -> list[tuple[Clip, ScoreResult]]:
        """Score several clips against one clock.

        Args:
            clips: Clips to score.
            viewer_id: Viewer identifier, or None for anonymous.
            current_hour: Viewer's current hour of day (0-23).
            device_type: Viewer's device type (accepted, not scored).
            now: Reference time for all windows.

        Returns:
            (clip, result) pairs in input order.
        """
        now = ensure_utc(now) if now is not None else datetime.now(UTC)
        results = [
            (clip, self.score_clip(clip, viewer_id, current_hour, device_type, now))
            for clip in clips
        ]

        excluded = sum(1 for _, result in results if result.excluded)
        self._log.info(
            "scoring_complete",
            viewer_id=viewer_id,
            clips_scored=len(results),
            clips_excluded=excluded,
        )
        return results

    def _exclusion_reason(self, clip: Clip, viewer_id: str) -> str | None:
        """Return the hard exclusion that applies, if any."""
        if clip.topic_id is not None and self._store.is_topic_muted(viewer_id, clip.topic_id):
            return "muted_topic"
        if self._store.is_creator_muted(viewer_id, clip.author_id):
            return "muted_creator"
        return None

    def _gather(
        self,
        clip: Clip,
        viewer_id: str,
        prefs: ViewerPreference | None,
        current_hour: int,
        now: datetime,
    ) -> SignalInputs:
        """Read every per-viewer signal input from the store.

        Args:
            clip: Live clip being scored.
            viewer_id: Viewer identifier.
            prefs: Viewer preferences, if saved.
            current_hour: Viewer's current hour of day.
            now: Reference time.

        Returns:
            SignalInputs with disabled signals left neutral.
        """
        store = self._store
        topic_id = clip.topic_id

        duration_range: tuple[int, int] | None = None
        hour_preferred = False
        topic_in_period = False
        if prefs is not None:
            duration_range = (prefs.preferred_duration_min, prefs.preferred_duration_max)
            if prefs.privacy.use_listening_patterns and prefs.time_aware:
                hours = store.preferred_hours(viewer_id, now - timedelta(days=LISTENING_PATTERN_DAYS))
                hour_preferred = current_hour in hours
                period = DayPeriod.for_hour(current_hour)
                topic_in_period = topic_id is not None and topic_id in prefs.topics_for(period)

        skip_signals = prefs is None or prefs.privacy.use_skip_data
        author_skip_rate = topic_skip_rate = 0.0
        clip_skipped = False
        if skip_signals:
            skip_since = now - timedelta(days=SKIP_LOOKBACK_DAYS)
            author_skip_rate = store.skip_rate(viewer_id, skip_since, author_id=clip.author_id)
            if topic_id is not None:
                topic_skip_rate = store.skip_rate(viewer_id, skip_since, topic_id=topic_id)
            clip_skipped = store.was_skipped(viewer_id, clip.clip_id)

        topic_clip_count = recent_topic_clip_count = 0
        recent_topics: tuple[str, ...] = ()
        if topic_id is not None:
            topic_clip_count, recent_topic_clip_count = store.topic_clip_counts(
                topic_id, now - timedelta(hours=TOPIC_RECENT_HOURS)
            )
            recent_topics = tuple(
                store.recent_topics(
                    viewer_id,
                    now - timedelta(days=DIVERSITY_LOOKBACK_DAYS),
                    limit=RECENT_TOPICS_LIMIT,
                )
            )

        return SignalInputs(
            trending_score=clip.trending_score,
            topic_id=topic_id,
            duration_seconds=clip.duration_seconds,
            subscribed=topic_id is not None and store.is_subscribed(viewer_id, topic_id),
            following=store.is_following(viewer_id, clip.author_id),
            clip_completion=store.viewer_clip_completion(viewer_id, clip.clip_id),
            author_completion=store.author_completion_rate(
                viewer_id,
                clip.author_id,
                now - timedelta(days=COMPLETION_LOOKBACK_DAYS),
                exclude_clip_id=clip.clip_id,
            ),
            duration_range=duration_range,
            hour_preferred=hour_preferred,
            topic_in_period=topic_in_period,
            skip_signals=skip_signals,
            author_skip_rate=author_skip_rate,
            topic_skip_rate=topic_skip_rate,
            clip_skipped=clip_skipped,
            velocity=self._velocity.velocity(
                clip.clip_id, self._config.velocity.window_hours, now=now
            ),
            reputation=store.author_reputation(clip.author_id),
            topic_clip_count=topic_clip_count,
            recent_topic_clip_count=recent_topic_clip_count,
            recent_topics=recent_topics,
        )
