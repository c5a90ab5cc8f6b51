"""Feed assembly.

Seven named feeds (best, rising, controversial, topic, city, following,
unheard) share one assembly loop and differ only in candidate pool,
ordering key and a few flags.
"""

from clipfeed.feeds.assembler import FeedAssembler
from clipfeed.feeds.metrics import FeedMetrics
from clipfeed.feeds.models import FeedEntry, FeedFilter, FeedPage, PageRequest, TimePeriod
from clipfeed.feeds.pipelines import (
    FeedContext,
    FeedPipeline,
    build_pipelines,
    controversy_score,
)


__all__ = [
    "FeedAssembler",
    "FeedContext",
    "FeedEntry",
    "FeedFilter",
    "FeedMetrics",
    "FeedPage",
    "FeedPipeline",
    "PageRequest",
    "TimePeriod",
    "build_pipelines",
    "controversy_score",
]
