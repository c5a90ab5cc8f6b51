"""Feed assembler: candidate pools, ordering keys and pagination."""

import time
from datetime import UTC, datetime
from typing import Any

import structlog

from clipfeed.config import RankingConfig
from clipfeed.feeds.metrics import FeedMetrics
from clipfeed.feeds.models import FeedEntry, FeedFilter, FeedPage, PageRequest, TimePeriod
from clipfeed.feeds.pipelines import FeedContext, FeedPipeline, build_pipelines
from clipfeed.ranker import RelevanceScorer
from clipfeed.store import Clip, SignalReader, ensure_utc
from clipfeed.velocity import VelocityReader


logger = structlog.get_logger()


class FeedAssembler:
    """Serves the named feeds.

    Every feed runs the same loop:
        1. Fetch an over-sized candidate pool of live clips, with the
           viewer's mutes and blocks filtered out in the query
        2. Compute each candidate's ordering key, dropping clips the
           pipeline rejects
        3. Sort with a deterministic tie-break on clip ID
        4. Slice the requested page
    """

    def __init__(
        self,
        store: SignalReader,
        velocity: VelocityReader,
        scorer: RelevanceScorer,
        config: RankingConfig | None = None,
        metrics: FeedMetrics | None = None,
    ) -> None:
        """Initialize the assembler.

        Args:
            store: Signal store read contracts.
            velocity: Velocity reader for the rising feed.
            scorer: Relevance scorer for the unheard and for-you feeds.
            config: Ranking configuration.
            metrics: Optional metrics instance.
        """
        self._store = store
        self._config = (config or RankingConfig()).feeds
        self._metrics = metrics or FeedMetrics.get_instance()
        self._pipelines = build_pipelines(velocity, scorer, self._config)
        self._log = logger.bind(component="feeds")

    def pipeline(self, feed_filter: FeedFilter) -> FeedPipeline:
        """Get the pipeline serving a feed filter."""
        return self._pipelines[feed_filter]

    def best(
        self,
        viewer_id: str | None = None,
        period: TimePeriod = TimePeriod.DAY,
        limit: int | None = None,
        offset: int = 0,
        now: datetime | None = None,
    ) -> FeedPage:
        """Highest trending clips created within a time period."""
        return self._run(FeedFilter.BEST, viewer_id, limit, offset, now, period=period)

    def rising(
        self,
        viewer_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
        now: datetime | None = None,
    ) -> FeedPage:
        """Recent clips ordered by engagement velocity (velocity 0 excluded)."""
        return self._run(FeedFilter.RISING, viewer_id, limit, offset, now)

    def controversial(
        self,
        viewer_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
        now: datetime | None = None,
    ) -> FeedPage:
        """Recent, heavily reacted clips with divided reactions."""
        return self._run(FeedFilter.CONTROVERSIAL, viewer_id, limit, offset, now)

    def topic_top(
        self,
        viewer_id: str | None,
        topic_id: str,
        limit: int | None = None,
        offset: int = 0,
        now: datetime | None = None,
    ) -> FeedPage:
        """Highest trending clips in a topic."""
        return self._run(FeedFilter.TOPIC, viewer_id, limit, offset, now, topic_id=topic_id)

    def city_local(
        self,
        viewer_id: str | None,
        city: str,
        limit: int | None = None,
        offset: int = 0,
        now: datetime | None = None,
    ) -> FeedPage:
        """Highest trending clips from a city."""
        return self._run(FeedFilter.CITY, viewer_id, limit, offset, now, city=city)

    def followed_creators(
        self,
        viewer_id: str | None,
        limit: int | None = None,
        offset: int = 0,
        now: datetime | None = None,
    ) -> FeedPage:
        """Newest clips by creators the viewer follows."""
        return self._run(FeedFilter.FOLLOWING, viewer_id, limit, offset, now)

    def unheard(
        self,
        viewer_id: str | None,
        current_hour: int | None = None,
        device_type: str | None = None,
        limit: int | None = None,
        offset: int = 0,
        now: datetime | None = None,
    ) -> FeedPage:
        """Clips the viewer never listened to, by personal relevance."""
        return self._run(
            FeedFilter.UNHEARD,
            viewer_id,
            limit,
            offset,
            now,
            current_hour=current_hour,
            device_type=device_type,
        )

    def for_you(
        self,
        viewer_id: str | None,
        current_hour: int | None = None,
        device_type: str | None = None,
        limit: int | None = None,
        offset: int = 0,
        now: datetime | None = None,
    ) -> FeedPage:
        """Every live clip, ordered by the viewer's relevance score.

        The personalized home feed: unlike ``unheard`` it keeps clips the
        viewer already listened to. Anonymous viewers get clips ordered by
        their trending term; clips scoring 0 or excluded by a mute are dropped.
        """
        return self._run(
            FeedFilter.FOR_YOU,
            viewer_id,
            limit,
            offset,
            now,
            current_hour=current_hour,
            device_type=device_type,
        )

    def assemble(
        self,
        feed_filter: FeedFilter | str,
        viewer_id: str | None = None,
        **params: Any,
    ) -> FeedPage:
        """Serve any feed by name.

        Args:
            feed_filter: Feed filter (enum or its string value).
            viewer_id: Viewer identifier, or None for anonymous.
            **params: Pipeline parameters (``period``, ``topic_id``,
                ``city``, ``current_hour``, ``device_type``, ``limit``,
                ``offset``, ``now``).

        Returns:
            The requested feed page.

        Raises:
            ValueError: If the filter is unknown or a parameter is invalid.
        """
        feed_filter = FeedFilter(feed_filter)
        limit = params.pop("limit", None)
        offset = params.pop("offset", 0)
        now = params.pop("now", None)
        if "period" in params and params["period"] is not None:
            params["period"] = TimePeriod(params["period"])
        return self._run(feed_filter, viewer_id, limit, offset, now, **params)

    def _run(
        self,
        feed_filter: FeedFilter,
        viewer_id: str | None,
        limit: int | None,
        offset: int,
        now: datetime | None,
        period: TimePeriod | None = None,
        topic_id: str | None = None,
        city: str | None = None,
        current_hour: int | None = None,
        device_type: str | None = None,
    ) -> FeedPage:
        """Run one pipeline.

        Raises:
            ValueError: If pagination or pipeline parameters are invalid.
        """
        page = self._page_request(limit, offset)
        pipeline = self._pipelines[feed_filter]

        if feed_filter == FeedFilter.TOPIC and not topic_id:
            msg = "topic feed requires a topic_id"
            raise ValueError(msg)
        if feed_filter == FeedFilter.CITY and not city:
            msg = "city feed requires a city"
            raise ValueError(msg)

        if pipeline.requires_viewer and viewer_id is None:
            self._log.debug("feed_requires_viewer", filter=feed_filter.value)
            return FeedPage(filter=feed_filter, limit=page.limit, offset=page.offset)

        now = ensure_utc(now) if now is not None else datetime.now(UTC)
        ctx = FeedContext(
            viewer_id=viewer_id,
            now=now,
            current_hour=current_hour if current_hour is not None else now.hour,
            device_type=device_type,
            period=period or TimePeriod.DAY,
            topic_id=topic_id,
            city=city,
        )

        start = time.perf_counter()
        pool_size = page.window_size * pipeline.overfetch_factor
        candidates = self._store.fetch_candidates(pipeline.build_query(ctx, pool_size))

        ranked: list[tuple[Clip, float]] = []
        for clip in candidates:
            key = pipeline.order_key(clip, ctx)
            if key is None or (pipeline.drop_non_positive and key <= 0):
                continue
            ranked.append((clip, key))

        ranked.sort(key=self._sort_key(pipeline))
        selected = ranked[page.offset : page.offset + page.limit]
        entries = [
            FeedEntry(clip_id=clip.clip_id, score=key, payload=clip.to_payload())
            for clip, key in selected
        ]

        duration_ms = (time.perf_counter() - start) * 1000
        dropped = len(candidates) - len(ranked)
        self._metrics.record_page(
            feed_filter.value,
            fetched=len(candidates),
            dropped=dropped,
            returned=len(entries),
            duration_ms=duration_ms,
        )
        self._log.info(
            "feed_assembled",
            filter=feed_filter.value,
            viewer_id=viewer_id,
            candidates=len(candidates),
            dropped=dropped,
            returned=len(entries),
            limit=page.limit,
            offset=page.offset,
            duration_ms=round(duration_ms, 2),
        )

        return FeedPage(filter=feed_filter, entries=entries, limit=page.limit, offset=page.offset)

    def _page_request(self, limit: int | None, offset: int) -> PageRequest:
        """Validate pagination.

        Raises:
            ValueError: If limit or offset is out of range.
        """
        resolved = limit if limit is not None else self._config.default_limit
        if resolved > self._config.max_limit:
            msg = f"limit must be at most {self._config.max_limit}, got {resolved}"
            raise ValueError(msg)
        # pydantic.ValidationError subclasses ValueError
        return PageRequest(limit=resolved, offset=offset)

    @staticmethod
    def _sort_key(pipeline: FeedPipeline) -> Any:
        """Build the sort key for a pipeline's (clip, key) pairs."""
        if pipeline.sort_by_recency:
            return lambda item: (-item[0].created_at.timestamp(), -item[1], item[0].clip_id)
        return lambda item: (-item[1], -item[0].created_at.timestamp(), item[0].clip_id)
