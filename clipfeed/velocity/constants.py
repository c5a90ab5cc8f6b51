"""Constants for the engagement velocity tracker."""

# Per-hour rate weights; an active reaction or reply outweighs a passive listen
VELOCITY_WEIGHTS: dict[str, float] = {
    "reactions": 3.0,
    "replies": 2.0,
    "remixes": 2.0,
    "listens": 0.5,
}

# Days a velocity sample is kept after its last update
RETENTION_DAYS: int = 7

# Default velocity window in hours
DEFAULT_WINDOW_HOURS: int = 24

# Refresh job bounds
DEFAULT_REFRESH_MAX_AGE_HOURS: int = 48
DEFAULT_REFRESH_BATCH_LIMIT: int = 1000

# Age floor (hours) used when converting sums to per-hour rates
MIN_AGE_HOURS: float = 1.0
