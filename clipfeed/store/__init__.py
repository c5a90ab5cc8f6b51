"""SQLite signal store for clips, viewer signals and velocity samples.

This module provides persistent storage for:
- Clips with their engagement counters and trending score
- Viewer preferences, social graph, mutes and blocks
- Listen, skip and listening-pattern history
- Hour-bucketed engagement velocity samples
"""

from clipfeed.store.errors import (
    ClipNotFoundError,
    MigrationError,
    SignalStoreError,
    StoreConnectionError,
)
from clipfeed.store.metrics import MetricsRecorder, NullMetricsRecorder, StoreMetrics
from clipfeed.store.models import (
    CandidateOrder,
    CandidateQuery,
    Clip,
    ClipStatus,
    DayPeriod,
    ListenRecord,
    PrivacyPreferences,
    SkipRecord,
    VelocitySample,
    ViewerPreference,
    ensure_utc,
)
from clipfeed.store.protocols import SignalReader
from clipfeed.store.store import SignalStore


__all__ = [
    # Errors
    "ClipNotFoundError",
    "MigrationError",
    "SignalStoreError",
    "StoreConnectionError",
    # Metrics
    "MetricsRecorder",
    "NullMetricsRecorder",
    "StoreMetrics",
    # Models
    "CandidateOrder",
    "CandidateQuery",
    "Clip",
    "ClipStatus",
    "DayPeriod",
    "ListenRecord",
    "PrivacyPreferences",
    "SkipRecord",
    "VelocitySample",
    "ViewerPreference",
    "ensure_utc",
    # Protocols
    "SignalReader",
    # Store
    "SignalStore",
]
