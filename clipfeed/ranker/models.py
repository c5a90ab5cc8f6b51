"""Data models for the relevance scorer."""

from dataclasses import dataclass, field

from clipfeed.ranker.constants import EXCLUDED_SENTINEL


@dataclass(frozen=True)
class ScoreComponents:
    """Breakdown of a relevance score into signal contributions.

    Penalties are stored as negative contributions.

    Attributes:
        trending: Normalized trending score times its weight.
        topic_follow: Topic subscription bonus.
        creator_follow: Author follow bonus.
        completion: Viewer's own completion on the clip.
        similar_creator: Completion affinity for the author's other clips.
        duration: Duration preference bonus or penalty.
        time_of_day: Listening-hour and day-period topic bonuses.
        skip_penalty: Skip-history penalties (zero or negative).
        velocity: Normalized engagement velocity.
        reputation: Normalized author reputation.
        topic_activity: Topic volume and recent-activity bonus.
        diversity: Topic novelty bonus or repetition penalty.
        total: Clamped sum of all components.
    """

    trending: float = 0.0
    topic_follow: float = 0.0
    creator_follow: float = 0.0
    completion: float = 0.0
    similar_creator: float = 0.0
    duration: float = 0.0
    time_of_day: float = 0.0
    skip_penalty: float = 0.0
    velocity: float = 0.0
    reputation: float = 0.0
    topic_activity: float = 0.0
    diversity: float = 0.0
    total: float = 0.0

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary for serialization.

        Returns:
            Dictionary of component name to value.
        """
        return {
            "trending": self.trending,
            "topic_follow": self.topic_follow,
            "creator_follow": self.creator_follow,
            "completion": self.completion,
            "similar_creator": self.similar_creator,
            "duration": self.duration,
            "time_of_day": self.time_of_day,
            "skip_penalty": self.skip_penalty,
            "velocity": self.velocity,
            "reputation": self.reputation,
            "topic_activity": self.topic_activity,
            "diversity": self.diversity,
            "total": self.total,
        }


@dataclass(frozen=True)
class Scored:
    """A clip that may be shown, with its relevance score."""

    value: float
    components: ScoreComponents = field(default_factory=ScoreComponents)

    @property
    def excluded(self) -> bool:
        """Always False."""
        return False

    def as_number(self) -> float:
        """Numeric ordering key."""
        return self.value


@dataclass(frozen=True)
class Excluded:
    """A clip that must never be shown to this viewer.

    Attributes:
        reason: Which hard exclusion matched (``muted_topic`` or
            ``muted_creator``).
    """

    reason: str

    @property
    def excluded(self) -> bool:
        """Always True."""
        return True

    def as_number(self) -> float:
        """The exclusion sentinel."""
        return EXCLUDED_SENTINEL


ScoreResult = Scored | Excluded


@dataclass(frozen=True)
class SignalInputs:
    """Raw per-(clip, viewer) inputs gathered from the signal store.

    Every field is already resolved against the relevant privacy toggles;
    a disabled signal is represented by its neutral value.

    Attributes:
        trending_score: Clip trending score.
        topic_id: Clip topic, if any.
        duration_seconds: Clip duration.
        subscribed: Viewer subscribes to the clip topic.
        following: Viewer follows the clip author.
        clip_completion: Viewer's average completion on this clip (0-100).
        author_completion: Viewer's 30-day completion on the author's other clips.
        duration_range: Preferred (min, max) duration, or None without preferences.
        hour_preferred: Current hour is one of the viewer's listening hours.
        topic_in_period: Clip topic is preferred for the current day period.
        skip_signals: Whether skip history may be used.
        author_skip_rate: Viewer's skip rate against the author (0-100).
        topic_skip_rate: Viewer's skip rate against the topic (0-100).
        clip_skipped: Viewer skipped this exact clip.
        velocity: Clip engagement velocity.
        reputation: Author reputation.
        topic_clip_count: Live clips in the clip topic.
        recent_topic_clip_count: Live clips in the topic from the last 24 hours.
        recent_topics: Distinct topics the viewer heard in the last 7 days.
    """

    trending_score: float
    topic_id: str | None = None
    duration_seconds: int = 0
    subscribed: bool = False
    following: bool = False
    clip_completion: float | None = None
    author_completion: float | None = None
    duration_range: tuple[int, int] | None = None
    hour_preferred: bool = False
    topic_in_period: bool = False
    skip_signals: bool = False
    author_skip_rate: float = 0.0
    topic_skip_rate: float = 0.0
    clip_skipped: bool = False
    velocity: float = 0.0
    reputation: int = 0
    topic_clip_count: int = 0
    recent_topic_clip_count: int = 0
    recent_topics: tuple[str, ...] = ()
