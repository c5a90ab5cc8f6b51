"""Ranking configuration schema."""

from collections.abc import Mapping
from typing import Annotated, Any

import structlog
from pydantic import Field

from clipfeed.data_model import StrictBaseModel


logger = structlog.get_logger()

# Viewer-facing override keys, as stored in the preference weight map.
WEIGHT_OVERRIDE_KEYS: dict[str, str] = {
    "trending_weight": "trending",
    "topic_follow_weight": "topic_follow",
    "creator_follow_weight": "creator_follow",
    "completion_weight": "completion",
    "skip_penalty": "skip_penalty",
    "velocity_weight": "velocity",
    "reputation_weight": "reputation",
    "topic_activity_weight": "topic_activity",
    "diversity_weight": "diversity",
}


class SignalWeights(StrictBaseModel):
    """Weights for the overridable relevance signals.

    Attributes:
        trending: Weight of the normalized trending score.
        topic_follow: Bonus when the viewer subscribes to the clip topic.
        creator_follow: Bonus when the viewer follows the clip author.
        completion: Weight of the viewer's own completion on the clip.
        skip_penalty: Weight of skip-history penalties.
        velocity: Weight of normalized engagement velocity.
        reputation: Weight of normalized author reputation.
        topic_activity: Weight of topic activity (log-scaled volume).
        diversity: Weight of the topic diversity bonus/penalty.
    """

    trending: Annotated[float, Field(ge=0.0, le=5.0)] = 0.30
    topic_follow: Annotated[float, Field(ge=0.0, le=5.0)] = 0.25
    creator_follow: Annotated[float, Field(ge=0.0, le=5.0)] = 0.15
    completion: Annotated[float, Field(ge=0.0, le=5.0)] = 0.15
    skip_penalty: Annotated[float, Field(ge=0.0, le=5.0)] = 0.30
    velocity: Annotated[float, Field(ge=0.0, le=5.0)] = 0.10
    reputation: Annotated[float, Field(ge=0.0, le=5.0)] = 0.05
    topic_activity: Annotated[float, Field(ge=0.0, le=5.0)] = 0.05
    diversity: Annotated[float, Field(ge=0.0, le=5.0)] = 0.05

    def resolve(self, overrides: Mapping[str, Any] | None) -> "SignalWeights":
        """Apply a viewer's override map on top of these weights.

        Keys missing from the map keep their current value. Unknown keys
        and values that are not numbers within [0, 5] are ignored.

        Args:
            overrides: Override map keyed by preference key
                (e.g. ``"trending_weight"``).

        Returns:
            Resolved weights.
        """
        if not overrides:
            return self

        updates: dict[str, float] = {}
        for key, value in overrides.items():
            field_name = WEIGHT_OVERRIDE_KEYS.get(key)
            if field_name is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int | float):
                logger.debug("weight_override_ignored", key=key, reason="not_numeric")
                continue
            if not 0.0 <= float(value) <= 5.0:
                logger.debug("weight_override_ignored", key=key, reason="out_of_range")
                continue
            updates[field_name] = float(value)

        if not updates:
            return self
        return self.model_copy(update=updates)


class VelocityConfig(StrictBaseModel):
    """Engagement velocity configuration.

    Attributes:
        window_hours: Window used by scoring and the Rising feed.
        normalizer: Velocity that maps to a full velocity signal.
        retention_days: Days velocity samples are retained.
        refresh_max_age_hours: Only clips younger than this are refreshed.
        refresh_batch_limit: Maximum clips refreshed per run.
    """

    window_hours: Annotated[int, Field(ge=1, le=24 * 30)] = 24
    normalizer: Annotated[float, Field(gt=0.0)] = 10.0
    retention_days: Annotated[int, Field(ge=1, le=365)] = 7
    refresh_max_age_hours: Annotated[int, Field(ge=1, le=24 * 30)] = 48
    refresh_batch_limit: Annotated[int, Field(ge=1, le=100_000)] = 1000


class FeedsConfig(StrictBaseModel):
    """Feed pipeline configuration.

    Attributes:
        rising_pool_hours: Maximum clip age for the Rising feed.
        controversial_window_days: Maximum clip age for the Controversial feed.
        controversial_min_reactions: Reactions a clip needs to be controversial.
        overfetch_factor: Over-fetch multiplier for trending-ordered feeds.
        scored_overfetch_factor: Over-fetch multiplier for computed-score feeds.
        default_limit: Page size when none is requested.
        max_limit: Largest page size accepted.
    """

    rising_pool_hours: Annotated[int, Field(ge=1)] = 48
    controversial_window_days: Annotated[int, Field(ge=1)] = 7
    controversial_min_reactions: Annotated[int, Field(ge=0)] = 5
    overfetch_factor: Annotated[int, Field(ge=1, le=10)] = 2
    scored_overfetch_factor: Annotated[int, Field(ge=1, le=10)] = 3
    default_limit: Annotated[int, Field(ge=1)] = 50
    max_limit: Annotated[int, Field(ge=1)] = 200


class RankingConfig(StrictBaseModel):
    """Root configuration for ranking.yaml.

    Attributes:
        version: Schema version.
        weights: Default signal weights.
        velocity: Engagement velocity configuration.
        feeds: Feed pipeline configuration.
    """

    version: Annotated[str, Field(pattern=r"^\d+\.\d+$")] = "1.0"
    weights: SignalWeights = Field(default_factory=SignalWeights)
    velocity: VelocityConfig = Field(default_factory=VelocityConfig)
    feeds: FeedsConfig = Field(default_factory=FeedsConfig)
