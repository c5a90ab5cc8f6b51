"""Engagement velocity tracking.

Turns raw interaction counters into an hour-bucketed snapshot series per
clip and reads a rate-weighted velocity signal from it.
"""

from clipfeed.velocity.constants import RETENTION_DAYS, VELOCITY_WEIGHTS
from clipfeed.velocity.metrics import VelocityMetrics
from clipfeed.velocity.models import RefreshSummary
from clipfeed.velocity.state_machine import (
    RefreshState,
    RefreshStateError,
    RefreshStateMachine,
)
from clipfeed.velocity.tracker import (
    EngagementVelocityTracker,
    VelocityReader,
    compute_velocity,
)


__all__ = [
    "RETENTION_DAYS",
    "VELOCITY_WEIGHTS",
    "EngagementVelocityTracker",
    "RefreshState",
    "RefreshStateError",
    "RefreshStateMachine",
    "RefreshSummary",
    "VelocityMetrics",
    "VelocityReader",
    "compute_velocity",
]
