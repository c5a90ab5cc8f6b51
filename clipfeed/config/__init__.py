"""Ranking configuration loading and validation module."""

from clipfeed.config.loader import RankingConfigError, RankingConfigLoader
from clipfeed.config.schemas import (
    FeedsConfig,
    RankingConfig,
    SignalWeights,
    VelocityConfig,
)


__all__ = [
    "FeedsConfig",
    "RankingConfig",
    "RankingConfigError",
    "RankingConfigLoader",
    "SignalWeights",
    "VelocityConfig",
]
