"""Tests for signal store data models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from clipfeed.store import (
    CandidateOrder,
    CandidateQuery,
    Clip,
    ClipStatus,
    DayPeriod,
    ListenRecord,
    VelocitySample,
    ViewerPreference,
)
from tests.helpers.factories import make_clip
from tests.helpers.time import FIXED_NOW


class TestDayPeriod:
    """Tests for hour to day-period mapping."""

    @pytest.mark.parametrize(
        ("hour", "period"),
        [
            (5, DayPeriod.MORNING),
            (11, DayPeriod.MORNING),
            (12, DayPeriod.AFTERNOON),
            (16, DayPeriod.AFTERNOON),
            (17, DayPeriod.EVENING),
            (21, DayPeriod.EVENING),
            (22, DayPeriod.NIGHT),
            (0, DayPeriod.NIGHT),
            (4, DayPeriod.NIGHT),
        ],
    )
    def test_for_hour(self, hour: int, period: DayPeriod) -> None:
        """Test period boundaries."""
        assert DayPeriod.for_hour(hour) == period


class TestClip:
    """Tests for the Clip model."""

    def test_naive_created_at_is_utc(self) -> None:
        """Test naive timestamps are interpreted as UTC."""
        clip = Clip(clip_id="c", author_id="a", created_at=datetime(2025, 1, 1, 8, 0))
        assert clip.created_at.tzinfo is not None
        assert clip.created_at.utcoffset() == timedelta(0)

    def test_offset_created_at_converted(self) -> None:
        """Test aware timestamps are converted to UTC."""
        tz = timezone(timedelta(hours=8))
        clip = Clip(clip_id="c", author_id="a", created_at=datetime(2025, 1, 1, 8, 0, tzinfo=tz))
        assert clip.created_at.hour == 0

    def test_age_hours(self) -> None:
        """Test fractional age."""
        clip = make_clip(age_hours=2.5)
        assert clip.age_hours(FIXED_NOW) == pytest.approx(2.5)

    def test_total_reactions(self) -> None:
        """Test reactions are summed across kinds."""
        clip = make_clip(reactions={"fire": 3, "laugh": 4})
        assert clip.total_reactions == 7

    def test_is_live(self) -> None:
        """Test only LIVE clips are rankable."""
        assert make_clip().is_live
        assert not make_clip(status=ClipStatus.HIDDEN).is_live

    def test_payload_fields(self) -> None:
        """Test the display payload carries the ranked clip attributes."""
        clip = make_clip(topic_id="t1", city="Lisbon", tags=["music"], reactions={"fire": 2})
        payload = clip.to_payload()

        assert payload["id"] == "clip-1"
        assert payload["topic_id"] == "t1"
        assert payload["city"] == "Lisbon"
        assert payload["tags"] == ["music"]
        assert payload["reactions"] == {"fire": 2}
        assert payload["status"] == "live"
        assert payload["created_at"] == clip.created_at.isoformat()

    def test_completion_rate_bounds(self) -> None:
        """Test completion rate is a 0-1 fraction."""
        with pytest.raises(ValidationError):
            make_clip(completion_rate=1.5)


class TestRecords:
    """Tests for interaction and sample records."""

    def test_velocity_sample_rejects_negative_bucket(self) -> None:
        """Test hour buckets start at zero."""
        with pytest.raises(ValidationError):
            VelocitySample(clip_id="c", hour_bucket=-1, updated_at=FIXED_NOW)

    def test_listen_completion_bounds(self) -> None:
        """Test completion percentage is within 0-100."""
        with pytest.raises(ValidationError):
            ListenRecord(viewer_id="v", clip_id="c", completion_percentage=120.0)

        listen = ListenRecord(viewer_id="v", clip_id="c")
        assert listen.completion_percentage is None

    def test_preference_defaults(self) -> None:
        """Test preference defaults."""
        prefs = ViewerPreference(viewer_id="v")

        assert prefs.preferred_duration_min == 15
        assert prefs.preferred_duration_max == 30
        assert prefs.time_aware
        assert prefs.privacy.use_skip_data
        assert prefs.privacy.use_listening_patterns
        assert prefs.topics_for(DayPeriod.MORNING) == []

    def test_preference_time_topics_from_strings(self) -> None:
        """Test day-period keys are parsed from their string values."""
        prefs = ViewerPreference.model_validate(
            {"viewer_id": "v", "time_topics": {"evening": ["jazz"]}}
        )
        assert prefs.topics_for(DayPeriod.EVENING) == ["jazz"]

    def test_candidate_query_defaults(self) -> None:
        """Test candidate queries pre-order by trending."""
        query = CandidateQuery()
        assert query.order == CandidateOrder.TRENDING
        assert query.limit == 100

        with pytest.raises(ValidationError):
            CandidateQuery(limit=0)
