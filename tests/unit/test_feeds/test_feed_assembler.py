"""Tests for FeedAssembler ordering, pagination and request validation."""

from datetime import timedelta

import pytest

from clipfeed.feeds import FeedAssembler, FeedFilter, FeedMetrics, TimePeriod
from clipfeed.ranker import RankerMetrics, RelevanceScorer
from clipfeed.store import CandidateOrder, VelocitySample
from clipfeed.velocity import VelocityMetrics, VelocityReader
from tests.helpers.factories import make_clip
from tests.helpers.signals import FakeSignals
from tests.helpers.time import FIXED_NOW


VIEWER = "viewer-1"


@pytest.fixture
def signals() -> FakeSignals:
    """Empty fake signals."""
    return FakeSignals()


@pytest.fixture
def feed_metrics() -> FeedMetrics:
    """Fresh feed metrics."""
    return FeedMetrics()


@pytest.fixture
def assembler(signals: FakeSignals, feed_metrics: FeedMetrics) -> FeedAssembler:
    """Assembler over the fake signals."""
    reader = VelocityReader(signals, metrics=VelocityMetrics())
    scorer = RelevanceScorer(signals, reader, metrics=RankerMetrics())
    return FeedAssembler(signals, reader, scorer, metrics=feed_metrics)


class TestTrendingOrder:
    """Tests for trending-ordered pipelines."""

    def test_best_orders_by_trending(self, signals: FakeSignals, assembler: FeedAssembler) -> None:
        """Test the best feed ranks by stored trending score."""
        signals.add_clip(make_clip("low", trending_score=10.0))
        signals.add_clip(make_clip("high", trending_score=90.0))
        signals.add_clip(make_clip("mid", trending_score=50.0))

        page = assembler.best(VIEWER, limit=10, now=FIXED_NOW)

        assert page.clip_ids == ["high", "mid", "low"]
        assert [e.score for e in page.entries] == [90.0, 50.0, 10.0]
        assert page.entries[0].payload["id"] == "high"

    def test_tie_break_newest_then_clip_id(
        self, signals: FakeSignals, assembler: FeedAssembler
    ) -> None:
        """Test equal keys fall back to creation time, then clip ID."""
        signals.add_clip(make_clip("b", age_hours=1.0, trending_score=5.0))
        signals.add_clip(make_clip("a", age_hours=1.0, trending_score=5.0))
        signals.add_clip(make_clip("newest", age_hours=0.5, trending_score=5.0))

        page = assembler.best(VIEWER, limit=10, now=FIXED_NOW)

        assert page.clip_ids == ["newest", "a", "b"]

    def test_pagination(self, signals: FakeSignals, assembler: FeedAssembler) -> None:
        """Test offset and limit slice the ordering."""
        for i in range(6):
            signals.add_clip(make_clip(f"clip-{i}", trending_score=float(100 - i)))

        first = assembler.best(VIEWER, limit=2, offset=0, now=FIXED_NOW)
        second = assembler.best(VIEWER, limit=2, offset=2, now=FIXED_NOW)

        assert first.clip_ids == ["clip-0", "clip-1"]
        assert second.clip_ids == ["clip-2", "clip-3"]
        assert second.offset == 2

    def test_best_query(self, signals: FakeSignals, assembler: FeedAssembler) -> None:
        """Test the pool is over-fetched and windowed by period."""
        assembler.best(VIEWER, period=TimePeriod.WEEK, limit=5, offset=5, now=FIXED_NOW)

        query = signals.queries[-1]
        assert query.limit == 20
        assert query.created_after == FIXED_NOW - timedelta(days=7)
        assert query.exclude_for_viewer == VIEWER
        assert query.order == CandidateOrder.TRENDING

    def test_best_all_time(self, signals: FakeSignals, assembler: FeedAssembler) -> None:
        """Test the ALL period has no creation bound."""
        assembler.best(period=TimePeriod.ALL, limit=5, now=FIXED_NOW)

        assert signals.queries[-1].created_after is None
        assert signals.queries[-1].exclude_for_viewer is None

    def test_topic_and_city_queries(self, signals: FakeSignals, assembler: FeedAssembler) -> None:
        """Test topic and city feeds constrain the pool."""
        assembler.topic_top(VIEWER, "t1", limit=5, now=FIXED_NOW)
        assembler.city_local(VIEWER, "Lisbon", limit=5, now=FIXED_NOW)

        assert signals.queries[0].topic_id == "t1"
        assert signals.queries[1].city == "Lisbon"


class TestComputedOrder:
    """Tests for pipelines with computed ordering keys."""

    def test_rising_orders_by_velocity(
        self, signals: FakeSignals, assembler: FeedAssembler
    ) -> None:
        """Test rising drops zero-velocity clips and ranks by velocity."""
        signals.add_clip(make_clip("steady", age_hours=2.0))
        signals.add_clip(make_clip("quick", age_hours=1.0))
        signals.add_clip(make_clip("silent", age_hours=1.0, trending_score=999.0))
        signals.samples["steady"] = [
            VelocitySample(clip_id="steady", hour_bucket=1, reactions_count=10, updated_at=FIXED_NOW)
        ]
        signals.samples["quick"] = [
            VelocitySample(clip_id="quick", hour_bucket=0, reactions_count=4, updated_at=FIXED_NOW)
        ]

        page = assembler.rising(limit=10, now=FIXED_NOW)

        assert page.clip_ids == ["steady", "quick"]
        assert page.entries[0].score == pytest.approx(15.0)
        query = signals.queries[-1]
        assert query.created_after == FIXED_NOW - timedelta(hours=48)
        assert query.limit == 30

    def test_controversial(self, signals: FakeSignals, assembler: FeedAssembler) -> None:
        """Test controversial ranks by split reactions and listens."""
        signals.add_clip(make_clip("split", reactions={"up": 5, "down": 5}, listens_count=10))
        signals.add_clip(make_clip("lopsided", reactions={"up": 9, "down": 1}, listens_count=10))
        signals.add_clip(make_clip("unheard", reactions={"up": 5, "down": 5}))

        page = assembler.controversial(limit=10, now=FIXED_NOW)

        assert page.clip_ids == ["split", "lopsided"]
        assert signals.queries[-1].min_total_reactions == 5
        assert signals.queries[-1].order == CandidateOrder.RECENCY

    def test_following_is_newest_first(
        self, signals: FakeSignals, assembler: FeedAssembler
    ) -> None:
        """Test the following feed ignores trending in favour of recency."""
        signals.add_clip(make_clip("old-hit", age_hours=5.0, trending_score=900.0))
        signals.add_clip(make_clip("new", age_hours=1.0, trending_score=1.0))

        page = assembler.followed_creators(VIEWER, limit=10, now=FIXED_NOW)

        assert page.clip_ids == ["new", "old-hit"]
        assert signals.queries[-1].followed_by == VIEWER

    def test_unheard_ranks_by_relevance(
        self, signals: FakeSignals, assembler: FeedAssembler
    ) -> None:
        """Test unheard drops excluded and zero-relevance clips."""
        signals.add_clip(make_clip("top", trending_score=500.0))
        signals.add_clip(make_clip("second", trending_score=100.0))
        signals.add_clip(make_clip("zero", trending_score=0.0))
        signals.add_clip(make_clip("muted", author_id="author-2", trending_score=900.0))
        signals.muted_creators.add((VIEWER, "author-2"))

        page = assembler.unheard(VIEWER, current_hour=12, limit=10, now=FIXED_NOW)

        assert page.clip_ids == ["top", "second"]
        assert page.entries[0].score == pytest.approx(0.15)
        assert signals.queries[-1].unheard_by == VIEWER

    def test_for_you_keeps_heard_clips(
        self, signals: FakeSignals, assembler: FeedAssembler
    ) -> None:
        """Test for-you ranks heard clips and still drops excluded ones."""
        signals.add_clip(make_clip("top", trending_score=500.0))
        signals.add_clip(make_clip("second", trending_score=100.0))
        signals.add_clip(make_clip("zero", trending_score=0.0))
        signals.add_clip(make_clip("muted", author_id="author-2", trending_score=900.0))
        signals.muted_creators.add((VIEWER, "author-2"))
        signals.listened.add((VIEWER, "top"))

        page = assembler.for_you(VIEWER, current_hour=12, limit=10, now=FIXED_NOW)

        assert page.filter == FeedFilter.FOR_YOU
        assert page.clip_ids == ["top", "second"]
        assert page.entries[0].score == pytest.approx(0.15)
        query = signals.queries[-1]
        assert query.unheard_by is None
        assert query.exclude_for_viewer == VIEWER
        assert query.order == CandidateOrder.TRENDING
        assert query.limit == 30

    def test_for_you_anonymous(self, signals: FakeSignals, assembler: FeedAssembler) -> None:
        """Test anonymous viewers get clips ordered by the trending term."""
        signals.add_clip(make_clip("low", trending_score=100.0))
        signals.add_clip(make_clip("high", trending_score=1000.0))
        signals.add_clip(make_clip("zero", trending_score=0.0))

        page = assembler.for_you(None, limit=10, now=FIXED_NOW)

        assert page.clip_ids == ["high", "low"]
        assert page.entries[0].score == pytest.approx(0.3)
        assert signals.queries[-1].exclude_for_viewer is None


class TestRequests:
    """Tests for request validation and anonymous viewers."""

    @pytest.mark.parametrize("feed_filter", [FeedFilter.FOLLOWING, FeedFilter.UNHEARD])
    def test_viewer_feeds_empty_for_anonymous(
        self, signals: FakeSignals, assembler: FeedAssembler, feed_filter: FeedFilter
    ) -> None:
        """Test personal feeds return nothing without touching the store."""
        signals.add_clip(make_clip(trending_score=100.0))

        page = assembler.assemble(feed_filter, None, limit=5, now=FIXED_NOW)

        assert page.entries == []
        assert page.limit == 5
        assert "fetch_candidates" not in signals.calls

    def test_topic_requires_topic_id(self, assembler: FeedAssembler) -> None:
        """Test the topic feed needs a topic."""
        with pytest.raises(ValueError, match="topic_id"):
            assembler.assemble("topic", VIEWER, now=FIXED_NOW)

    def test_city_requires_city(self, assembler: FeedAssembler) -> None:
        """Test the city feed needs a city."""
        with pytest.raises(ValueError, match="city"):
            assembler.assemble("city", VIEWER, now=FIXED_NOW)

    def test_unknown_filter(self, assembler: FeedAssembler) -> None:
        """Test unknown feed names are rejected."""
        with pytest.raises(ValueError):
            assembler.assemble("hot", VIEWER)

    @pytest.mark.parametrize(("limit", "offset"), [(0, 0), (201, 0), (10, -1)])
    def test_invalid_pagination(self, assembler: FeedAssembler, limit: int, offset: int) -> None:
        """Test out-of-range pagination is rejected."""
        with pytest.raises(ValueError):
            assembler.best(VIEWER, limit=limit, offset=offset, now=FIXED_NOW)

    def test_default_limit(self, assembler: FeedAssembler) -> None:
        """Test the configured default page size applies."""
        assert assembler.best(VIEWER, now=FIXED_NOW).limit == 50

    def test_assemble_by_name(self, signals: FakeSignals, assembler: FeedAssembler) -> None:
        """Test string filters and periods are accepted."""
        signals.add_clip(make_clip(trending_score=100.0))

        page = assembler.assemble("best", VIEWER, period="hour", limit=3, now=FIXED_NOW)

        assert page.filter == FeedFilter.BEST
        assert page.clip_ids == ["clip-1"]
        assert signals.queries[-1].created_after == FIXED_NOW - timedelta(hours=1)

    def test_records_metrics(
        self, signals: FakeSignals, assembler: FeedAssembler, feed_metrics: FeedMetrics
    ) -> None:
        """Test each page is recorded."""
        signals.add_clip(make_clip("a", trending_score=1.0))
        signals.add_clip(make_clip("b", trending_score=2.0))

        assembler.best(VIEWER, limit=1, now=FIXED_NOW)

        assert feed_metrics.pages_by_filter == {"best": 1}
        assert feed_metrics.candidates_fetched_total == 2
        assert feed_metrics.entries_returned_total == 1
