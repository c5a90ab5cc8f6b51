"""Data models for the signal store."""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clipfeed.data_model import StrictBaseModel


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ClipStatus(str, Enum):
    """Publication status of a clip.

    Only LIVE clips are ever scored or returned by a feed.
    """

    LIVE = "live"
    PROCESSING = "processing"
    HIDDEN = "hidden"
    REMOVED = "removed"


class DayPeriod(str, Enum):
    """Coarse time-of-day bucket used for topic affinities."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"

    @classmethod
    def for_hour(cls, hour: int) -> "DayPeriod":
        """Map an hour of day (0-23) to its period.

        Args:
            hour: Hour of day.

        Returns:
            The day period containing the hour.
        """
        if 5 <= hour < 12:
            return cls.MORNING
        if 12 <= hour < 17:
            return cls.AFTERNOON
        if 17 <= hour < 22:
            return cls.EVENING
        return cls.NIGHT


class Clip(BaseModel):
    """A published audio clip with its mutable engagement counters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    clip_id: Annotated[str, Field(min_length=1, description="Clip identifier")]
    author_id: Annotated[str, Field(min_length=1, description="Author identifier")]
    topic_id: str | None = None
    community_id: str | None = None
    title: str = ""
    tags: list[str] = Field(default_factory=list)
    mood_emoji: str | None = None
    city: str | None = None
    duration_seconds: Annotated[int, Field(ge=0)] = 0
    created_at: datetime
    status: ClipStatus = ClipStatus.LIVE
    listens_count: Annotated[int, Field(ge=0)] = 0
    reactions: dict[str, int] = Field(default_factory=dict)
    completion_rate: Annotated[float | None, Field(ge=0.0, le=1.0)] = None
    trending_score: float = 0.0
    reply_count: Annotated[int, Field(ge=0)] = 0
    remix_count: Annotated[int, Field(ge=0)] = 0
    content_rating: str = "general"
    moderation_risk: Annotated[float, Field(ge=0.0)] = 0.0

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        """Store creation time as aware UTC."""
        return ensure_utc(v)

    @property
    def is_live(self) -> bool:
        """Whether the clip may be ranked."""
        return self.status == ClipStatus.LIVE

    @property
    def total_reactions(self) -> int:
        """Sum of reaction counts across all reaction kinds."""
        return sum(self.reactions.values())

    def age_hours(self, now: datetime) -> float:
        """Hours elapsed since creation (negative if created after ``now``).

        Args:
            now: Reference time.

        Returns:
            Age in fractional hours.
        """
        return (ensure_utc(now) - self.created_at).total_seconds() / 3600.0

    def to_payload(self) -> dict[str, Any]:
        """Build the display payload returned alongside a ranked clip.

        Returns:
            JSON-serializable dictionary.
        """
        return {
            "id": self.clip_id,
            "author_id": self.author_id,
            "title": self.title,
            "duration_seconds": self.duration_seconds,
            "tags": list(self.tags),
            "mood_emoji": self.mood_emoji,
            "status": self.status.value,
            "listens_count": self.listens_count,
            "reactions": dict(self.reactions),
            "created_at": self.created_at.isoformat(),
            "topic_id": self.topic_id,
            "community_id": self.community_id,
            "completion_rate": self.completion_rate,
            "trending_score": self.trending_score,
            "city": self.city,
            "reply_count": self.reply_count,
            "remix_count": self.remix_count,
        }


class VelocitySample(StrictBaseModel):
    """Absolute engagement counters of a clip as of one hour bucket.

    A sample is a snapshot, not a delta: writing the same bucket again
    overwrites it, so repeated refreshes never double-count.
    """

    clip_id: Annotated[str, Field(min_length=1)]
    hour_bucket: Annotated[int, Field(ge=0, description="floor(hours since creation)")]
    reactions_count: Annotated[int, Field(ge=0)] = 0
    listens_count: Annotated[int, Field(ge=0)] = 0
    replies_count: Annotated[int, Field(ge=0)] = 0
    remixes_count: Annotated[int, Field(ge=0)] = 0
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def counters(self) -> tuple[int, int, int, int]:
        """Return (reactions, listens, replies, remixes)."""
        return (
            self.reactions_count,
            self.listens_count,
            self.replies_count,
            self.remixes_count,
        )


class PrivacyPreferences(StrictBaseModel):
    """Which behavioural signals a viewer allows the ranker to use."""

    use_skip_data: bool = True
    use_listening_patterns: bool = True
    use_device_type: bool = True


class ViewerPreference(StrictBaseModel):
    """Per-viewer personalization settings.

    Attributes:
        viewer_id: Viewer identifier.
        preferred_duration_min: Shortest preferred clip, in seconds.
        preferred_duration_max: Longest preferred clip, in seconds.
        weight_overrides: Signal weight overrides keyed by preference key.
        time_aware: Whether time-of-day signals are enabled for the feed.
        privacy: Privacy toggles.
        time_topics: Preferred topic IDs per day period.
    """

    viewer_id: Annotated[str, Field(min_length=1)]
    preferred_duration_min: Annotated[int, Field(ge=0)] = 15
    preferred_duration_max: Annotated[int, Field(ge=0)] = 30
    weight_overrides: dict[str, float] = Field(default_factory=dict)
    time_aware: bool = True
    privacy: PrivacyPreferences = Field(default_factory=PrivacyPreferences)
    time_topics: dict[DayPeriod, list[str]] = Field(default_factory=dict)

    def topics_for(self, period: DayPeriod) -> list[str]:
        """Return the preferred topics for a day period."""
        return self.time_topics.get(period, [])


class ListenRecord(StrictBaseModel):
    """A viewer listened to a clip."""

    viewer_id: Annotated[str, Field(min_length=1)]
    clip_id: Annotated[str, Field(min_length=1)]
    completion_percentage: float | None = Field(default=None, ge=0.0, le=100.0)
    listened_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SkipRecord(StrictBaseModel):
    """A viewer explicitly skipped a clip."""

    viewer_id: Annotated[str, Field(min_length=1)]
    clip_id: Annotated[str, Field(min_length=1)]
    skipped_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    position_seconds: float | None = Field(default=None, ge=0.0)
    reason: str | None = None


class CandidateOrder(str, Enum):
    """Pre-ordering applied to a candidate pool before truncation.

    - TRENDING: trending score descending, newest first on ties
    - RECENCY: newest first
    """

    TRENDING = "trending"
    RECENCY = "recency"


class CandidateQuery(StrictBaseModel):
    """Constraints selecting a candidate pool of live clips.

    Attributes:
        created_after: Only clips created at or after this time.
        topic_id: Only clips in this topic.
        city: Only clips from this city.
        followed_by: Only clips whose author this viewer follows.
        unheard_by: Only clips this viewer has never listened to.
        min_total_reactions: Only clips with strictly more reactions.
        exclude_for_viewer: Drop clips from topics/creators this viewer
            muted and from authors this viewer blocked.
        order: Pre-ordering of the pool.
        limit: Maximum clips returned.
    """

    created_after: datetime | None = None
    topic_id: str | None = None
    city: str | None = None
    followed_by: str | None = None
    unheard_by: str | None = None
    min_total_reactions: int | None = Field(default=None, ge=0)
    exclude_for_viewer: str | None = None
    order: CandidateOrder = CandidateOrder.TRENDING
    limit: Annotated[int, Field(ge=1)] = 100
