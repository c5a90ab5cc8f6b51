"""Constants for the ranker module."""

# Score returned for a hard-excluded (muted) clip; never a valid score
EXCLUDED_SENTINEL: float = -1.0

# Similar-creator affinity is not part of the viewer override table
SIMILAR_CREATOR_WEIGHT: float = 0.10

# Completion percentage above which completion signals apply
COMPLETION_THRESHOLD: float = 70.0

# Skip-rate percentage above which skip penalties apply
SKIP_RATE_THRESHOLD: float = 50.0
TOPIC_SKIP_FACTOR: float = 0.5
SKIPPED_CLIP_PENALTY: float = 0.5

# Duration preference terms
DURATION_IN_RANGE_BONUS: float = 0.15
DURATION_SHORT_BONUS: float = 0.05
DURATION_LONG_PENALTY: float = 0.10

# Time-of-day terms
PREFERRED_HOUR_BONUS: float = 0.10
TIME_TOPIC_BONUS: float = 0.15

# Normalizers
TRENDING_NORMALIZER: float = 1000.0
REPUTATION_NORMALIZER: float = 1000.0
TOPIC_ACTIVITY_LOG_BASE: float = 100.0
RECENT_TOPIC_CLIPS_NORMALIZER: float = 10.0
RECENT_TOPIC_ACTIVITY_FACTOR: float = 0.5

# Diversity multipliers applied to the diversity weight
DIVERSITY_SEEN_FACTOR: float = -0.05
DIVERSITY_NEW_FACTOR: float = 0.10

# Lookback windows
COMPLETION_LOOKBACK_DAYS: int = 30
SKIP_LOOKBACK_DAYS: int = 30
LISTENING_PATTERN_DAYS: int = 30
DIVERSITY_LOOKBACK_DAYS: int = 7
RECENT_TOPICS_LIMIT: int = 20
TOPIC_RECENT_HOURS: int = 24

# Trending score
TRENDING_ENGAGEMENT_WEIGHTS: dict[str, float] = {
    "reactions": 2.0,
    "listens": 0.5,
    "replies": 3.0,
    "remixes": 4.0,
}
TRENDING_ENGAGEMENT_LOG_BASE: float = 100.0
TRENDING_DECAY_HOURS: float = 12.0
TRENDING_SCALE: float = 1000.0
SENSITIVE_CONTENT_FACTOR: float = 0.85
MODERATION_RISK_FACTOR: float = 0.3
# Completion rate assumed for clips with no completion data yet
DEFAULT_COMPLETION_RATE: float = 0.5
