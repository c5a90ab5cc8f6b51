"""Protocol interface for the signal store read contracts."""

from datetime import datetime
from typing import Protocol, runtime_checkable

from clipfeed.store.models import CandidateQuery, Clip, VelocitySample, ViewerPreference


@runtime_checkable
class SignalReader(Protocol):
    """Read-only view the ranking subsystem needs from the signal store.

    Any backend that answers these queries can drive the scorer and the
    feed assembler. Every time-windowed query takes the window start
    explicitly so one ranking request can evaluate all sub-queries against
    the same clock.
    """

    def get_clip(self, clip_id: str) -> Clip | None:
        """Look up a clip by ID regardless of status."""
        ...

    def fetch_candidates(self, query: CandidateQuery) -> list[Clip]:
        """Select live clips matching a candidate query."""
        ...

    def get_preferences(self, viewer_id: str) -> ViewerPreference | None:
        """Look up a viewer's personalization settings."""
        ...

    def is_following(self, viewer_id: str, creator_id: str) -> bool:
        """Whether the viewer follows the creator."""
        ...

    def is_subscribed(self, viewer_id: str, topic_id: str) -> bool:
        """Whether the viewer subscribes to the topic."""
        ...

    def is_topic_muted(self, viewer_id: str, topic_id: str) -> bool:
        """Whether the viewer muted the topic."""
        ...

    def is_creator_muted(self, viewer_id: str, creator_id: str) -> bool:
        """Whether the viewer muted the creator."""
        ...

    def is_blocked(self, viewer_id: str, creator_id: str) -> bool:
        """Whether the viewer blocked the creator."""
        ...

    def is_member(self, viewer_id: str, community_id: str) -> bool:
        """Whether the viewer belongs to the community."""
        ...

    def has_listened(self, viewer_id: str, clip_id: str) -> bool:
        """Whether the viewer ever listened to the clip."""
        ...

    def viewer_clip_completion(self, viewer_id: str, clip_id: str) -> float | None:
        """Viewer's average completion percentage on a clip."""
        ...

    def author_completion_rate(
        self,
        viewer_id: str,
        author_id: str,
        since: datetime,
        exclude_clip_id: str | None = None,
    ) -> float | None:
        """Viewer's average completion percentage on an author's clips."""
        ...

    def skip_rate(
        self,
        viewer_id: str,
        since: datetime,
        author_id: str | None = None,
        topic_id: str | None = None,
    ) -> float:
        """Viewer's skip rate (0-100) against an author or topic."""
        ...

    def was_skipped(self, viewer_id: str, clip_id: str) -> bool:
        """Whether the viewer skipped this exact clip."""
        ...

    def recent_topics(self, viewer_id: str, since: datetime, limit: int = 20) -> list[str]:
        """Distinct topics the viewer listened to since a time."""
        ...

    def preferred_hours(self, viewer_id: str, since: datetime) -> set[int]:
        """Hours of day the viewer listened at since a time."""
        ...

    def author_reputation(self, author_id: str) -> int:
        """Externally computed author reputation."""
        ...

    def topic_clip_counts(self, topic_id: str, recent_since: datetime) -> tuple[int, int]:
        """Live clip count in a topic: (total, created since ``recent_since``)."""
        ...

    def get_velocity_samples(
        self, clip_id: str, max_bucket: float | None = None
    ) -> list[VelocitySample]:
        """Velocity samples of a clip, oldest bucket first."""
        ...
