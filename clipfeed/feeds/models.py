"""Data models for feed assembly."""

from datetime import timedelta
from enum import Enum
from typing import Annotated, Any

from pydantic import Field

from clipfeed.data_model import StrictBaseModel


class FeedFilter(str, Enum):
    """Named feed pipelines."""

    BEST = "best"
    RISING = "rising"
    CONTROVERSIAL = "controversial"
    TOPIC = "topic"
    CITY = "city"
    FOLLOWING = "following"
    UNHEARD = "unheard"
    FOR_YOU = "for_you"


class TimePeriod(str, Enum):
    """Creation-time windows for the best-of-period feed."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"

    def window(self) -> timedelta | None:
        """Length of the window, or None for all time."""
        return _PERIOD_WINDOWS[self]


_PERIOD_WINDOWS: dict[TimePeriod, timedelta | None] = {
    TimePeriod.HOUR: timedelta(hours=1),
    TimePeriod.DAY: timedelta(days=1),
    TimePeriod.WEEK: timedelta(days=7),
    TimePeriod.MONTH: timedelta(days=30),
    TimePeriod.YEAR: timedelta(days=365),
    TimePeriod.ALL: None,
}


class PageRequest(StrictBaseModel):
    """Pagination parameters.

    Attributes:
        limit: Maximum entries on the page.
        offset: Entries to skip from the start of the ordering.
    """

    limit: Annotated[int, Field(ge=1)]
    offset: Annotated[int, Field(ge=0)] = 0

    @property
    def window_size(self) -> int:
        """Entries needed to serve this page."""
        return self.limit + self.offset


class FeedEntry(StrictBaseModel):
    """One ranked clip on a feed page.

    Attributes:
        clip_id: Clip identifier.
        score: Ordering key the pipeline ranked by.
        payload: Display payload.
    """

    clip_id: str
    score: float
    payload: dict[str, Any]


class FeedPage(StrictBaseModel):
    """An ordered page of a feed.

    Attributes:
        filter: Pipeline that produced the page.
        entries: Ranked entries.
        limit: Requested page size.
        offset: Requested offset.
    """

    filter: FeedFilter
    entries: list[FeedEntry] = Field(default_factory=list)
    limit: int
    offset: int = 0

    @property
    def clip_ids(self) -> list[str]:
        """Clip IDs in page order."""
        return [entry.clip_id for entry in self.entries]

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "filter": self.filter.value,
            "limit": self.limit,
            "offset": self.offset,
            "entries": [
                {"clip_id": e.clip_id, "score": e.score, "payload": e.payload}
                for e in self.entries
            ],
        }
