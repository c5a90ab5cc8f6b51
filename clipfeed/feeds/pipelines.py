"""Feed pipeline definitions.

Each feed is a configuration of the same assembly loop: a candidate query,
an ordering key, and a few flags. Order keys return None to drop a clip.
"""

import statistics
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from clipfeed.config import FeedsConfig
from clipfeed.feeds.models import FeedFilter, TimePeriod
from clipfeed.ranker import RelevanceScorer
from clipfeed.store import CandidateOrder, CandidateQuery, Clip
from clipfeed.velocity import VelocityReader


@dataclass(frozen=True)
class FeedContext:
    """Per-request inputs shared by every pipeline.

    Attributes:
        viewer_id: Viewer identifier, or None for anonymous.
        now: Clock all windows are evaluated against.
        current_hour: Viewer's hour of day for relevance scoring.
        device_type: Viewer's device type, passed through to scoring.
        period: Best-of-period window.
        topic_id: Topic for the topic feed.
        city: City for the city feed.
    """

    viewer_id: str | None
    now: datetime
    current_hour: int
    device_type: str | None = None
    period: TimePeriod = TimePeriod.DAY
    topic_id: str | None = None
    city: str | None = None


QueryBuilder = Callable[[FeedContext, int], CandidateQuery]
OrderKey = Callable[[Clip, FeedContext], float | None]


@dataclass(frozen=True)
class FeedPipeline:
    """One named retrieval and ordering policy.

    Attributes:
        name: Feed filter this pipeline serves.
        build_query: Builds the candidate query for a context and pool size.
        order_key: Ordering key of a candidate (None drops it).
        overfetch_factor: Pool size multiplier over the requested window.
        drop_non_positive: Drop candidates whose key is zero or negative.
        requires_viewer: Anonymous requests get an empty page.
        sort_by_recency: Order newest first, using the key only on ties.
    """

    name: FeedFilter
    build_query: QueryBuilder
    order_key: OrderKey
    overfetch_factor: int
    drop_non_positive: bool = False
    requires_viewer: bool = False
    sort_by_recency: bool = False


def controversy_score(clip: Clip, now: datetime) -> float:
    """Reward heavy engagement spread across reaction kinds, decayed by age.

    key = total / (1 + stddev(kind counts)) x listens / max(1, age_hours)

    The standard deviation is the sample deviation across the clip's
    reaction kinds; with fewer than two kinds it is 0.

    Args:
        clip: Candidate clip.
        now: Reference time.

    Returns:
        Controversy score.
    """
    counts = list(clip.reactions.values())
    spread = statistics.stdev(counts) if len(counts) >= 2 else 0.0
    age_hours = max(1.0, clip.age_hours(now))
    return clip.total_reactions / (1.0 + spread) * (clip.listens_count / age_hours)


def trending_key(clip: Clip, ctx: FeedContext) -> float | None:  # noqa: ARG001
    """Order by the stored trending score."""
    return clip.trending_score


def build_pipelines(
    velocity: VelocityReader,
    scorer: RelevanceScorer,
    config: FeedsConfig,
) -> dict[FeedFilter, FeedPipeline]:
    """Build one pipeline per feed filter.

    Args:
        velocity: Velocity reader for the rising feed.
        scorer: Relevance scorer for the unheard and for-you feeds.
        config: Feed configuration.

    Returns:
        Mapping of feed filter to pipeline.
    """

    def best_query(ctx: FeedContext, pool: int) -> CandidateQuery:
        window = ctx.period.window()
        return CandidateQuery(
            created_after=ctx.now - window if window is not None else None,
            exclude_for_viewer=ctx.viewer_id,
            order=CandidateOrder.TRENDING,
            limit=pool,
        )

    def rising_query(ctx: FeedContext, pool: int) -> CandidateQuery:
        return CandidateQuery(
            created_after=ctx.now - timedelta(hours=config.rising_pool_hours),
            exclude_for_viewer=ctx.viewer_id,
            order=CandidateOrder.RECENCY,
            limit=pool,
        )

    def rising_key(clip: Clip, ctx: FeedContext) -> float | None:
        return velocity.velocity(clip.clip_id, now=ctx.now)

    def controversial_query(ctx: FeedContext, pool: int) -> CandidateQuery:
        return CandidateQuery(
            created_after=ctx.now - timedelta(days=config.controversial_window_days),
            min_total_reactions=config.controversial_min_reactions,
            exclude_for_viewer=ctx.viewer_id,
            order=CandidateOrder.RECENCY,
            limit=pool,
        )

    def controversial_key(clip: Clip, ctx: FeedContext) -> float | None:
        return controversy_score(clip, ctx.now)

    def topic_query(ctx: FeedContext, pool: int) -> CandidateQuery:
        return CandidateQuery(
            topic_id=ctx.topic_id,
            exclude_for_viewer=ctx.viewer_id,
            order=CandidateOrder.TRENDING,
            limit=pool,
        )

    def city_query(ctx: FeedContext, pool: int) -> CandidateQuery:
        return CandidateQuery(
            city=ctx.city,
            exclude_for_viewer=ctx.viewer_id,
            order=CandidateOrder.TRENDING,
            limit=pool,
        )

    def following_query(ctx: FeedContext, pool: int) -> CandidateQuery:
        return CandidateQuery(
            followed_by=ctx.viewer_id,
            exclude_for_viewer=ctx.viewer_id,
            order=CandidateOrder.RECENCY,
            limit=pool,
        )

    def unheard_query(ctx: FeedContext, pool: int) -> CandidateQuery:
        return CandidateQuery(
            unheard_by=ctx.viewer_id,
            exclude_for_viewer=ctx.viewer_id,
            order=CandidateOrder.TRENDING,
            limit=pool,
        )

    def for_you_query(ctx: FeedContext, pool: int) -> CandidateQuery:
        return CandidateQuery(
            exclude_for_viewer=ctx.viewer_id,
            order=CandidateOrder.TRENDING,
            limit=pool,
        )

    def relevance_key(clip: Clip, ctx: FeedContext) -> float | None:
        result = scorer.score_clip(
            clip, ctx.viewer_id, ctx.current_hour, ctx.device_type, now=ctx.now
        )
        if result.excluded:
            return None
        return result.as_number()

    trending_factor = config.overfetch_factor
    scored_factor = config.scored_overfetch_factor

    return {
        FeedFilter.BEST: FeedPipeline(
            name=FeedFilter.BEST,
            build_query=best_query,
            order_key=trending_key,
            overfetch_factor=trending_factor,
        ),
        FeedFilter.RISING: FeedPipeline(
            name=FeedFilter.RISING,
            build_query=rising_query,
            order_key=rising_key,
            overfetch_factor=scored_factor,
            drop_non_positive=True,
        ),
        FeedFilter.CONTROVERSIAL: FeedPipeline(
            name=FeedFilter.CONTROVERSIAL,
            build_query=controversial_query,
            order_key=controversial_key,
            overfetch_factor=scored_factor,
            drop_non_positive=True,
        ),
        FeedFilter.TOPIC: FeedPipeline(
            name=FeedFilter.TOPIC,
            build_query=topic_query,
            order_key=trending_key,
            overfetch_factor=trending_factor,
        ),
        FeedFilter.CITY: FeedPipeline(
            name=FeedFilter.CITY,
            build_query=city_query,
            order_key=trending_key,
            overfetch_factor=trending_factor,
        ),
        FeedFilter.FOLLOWING: FeedPipeline(
            name=FeedFilter.FOLLOWING,
            build_query=following_query,
            order_key=trending_key,
            overfetch_factor=trending_factor,
            requires_viewer=True,
            sort_by_recency=True,
        ),
        FeedFilter.UNHEARD: FeedPipeline(
            name=FeedFilter.UNHEARD,
            build_query=unheard_query,
            order_key=relevance_key,
            overfetch_factor=scored_factor,
            drop_non_positive=True,
            requires_viewer=True,
        ),
        FeedFilter.FOR_YOU: FeedPipeline(
            name=FeedFilter.FOR_YOU,
            build_query=for_you_query,
            order_key=relevance_key,
            overfetch_factor=scored_factor,
            drop_non_positive=True,
        ),
    }
