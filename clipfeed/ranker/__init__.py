"""Relevance scoring for clip feeds.

This module fuses per-viewer signals (follows, completion, skips, time of
day, velocity, reputation, topic activity and diversity) into a single
ordering key, treats mutes as hard exclusions, and maintains the
viewer-independent trending score.
"""

from clipfeed.ranker.constants import EXCLUDED_SENTINEL, SIMILAR_CREATOR_WEIGHT
from clipfeed.ranker.metrics import RankerMetrics
from clipfeed.ranker.models import (
    Excluded,
    ScoreComponents,
    Scored,
    ScoreResult,
    SignalInputs,
)
from clipfeed.ranker.scorer import RelevanceScorer, fuse_signals, trending_component
from clipfeed.ranker.trending import TrendingScorer, compute_trending_score


__all__ = [
    "EXCLUDED_SENTINEL",
    "SIMILAR_CREATOR_WEIGHT",
    "Excluded",
    "RankerMetrics",
    "RelevanceScorer",
    "ScoreComponents",
    "ScoreResult",
    "Scored",
    "SignalInputs",
    "TrendingScorer",
    "compute_trending_score",
    "fuse_signals",
    "trending_component",
]
