"""SQLite schema migrations for the signal store."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from clipfeed.store.errors import MigrationError


logger = structlog.get_logger()

# Current schema version
CURRENT_VERSION = 2


@dataclass(frozen=True)
class Migration:
    """One schema step with its forward and reverse scripts.

    Attributes:
        version: Schema version reached once ``up_sql`` has run.
        description: Short summary stored in ``schema_version``.
        up_sql: Script that creates the step's tables and indexes.
        down_sql: Script that drops them again.
    """

    version: int
    description: str
    up_sql: str
    down_sql: str


# All migrations in order
MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Clips, creators, interaction history and social graph",
        up_sql="""
CREATE TABLE IF NOT EXISTS creators (
    creator_id TEXT PRIMARY KEY,
    reputation INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS clips (
    clip_id TEXT PRIMARY KEY,
    author_id TEXT NOT NULL,
    topic_id TEXT,
    community_id TEXT,
    title TEXT NOT NULL DEFAULT '',
    tags_json TEXT NOT NULL DEFAULT '[]',
    mood_emoji TEXT,
    city TEXT,
    duration_seconds INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    status TEXT NOT NULL,
    listens_count INTEGER NOT NULL DEFAULT 0,
    reactions_json TEXT NOT NULL DEFAULT '{}',
    reactions_total INTEGER NOT NULL DEFAULT 0,
    completion_rate REAL,
    trending_score REAL NOT NULL DEFAULT 0,
    reply_count INTEGER NOT NULL DEFAULT 0,
    remix_count INTEGER NOT NULL DEFAULT 0,
    content_rating TEXT NOT NULL DEFAULT 'general',
    moderation_risk REAL NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_clips_status_created ON clips(status, created_at);
CREATE INDEX IF NOT EXISTS idx_clips_trending ON clips(status, trending_score);
CREATE INDEX IF NOT EXISTS idx_clips_topic ON clips(topic_id, status);
CREATE INDEX IF NOT EXISTS idx_clips_city ON clips(city, status);
CREATE INDEX IF NOT EXISTS idx_clips_author ON clips(author_id, status);

CREATE TABLE IF NOT EXISTS listens (
    listen_id INTEGER PRIMARY KEY AUTOINCREMENT,
    viewer_id TEXT NOT NULL,
    clip_id TEXT NOT NULL REFERENCES clips(clip_id) ON DELETE CASCADE,
    completion_percentage REAL,
    listened_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_listens_viewer ON listens(viewer_id, listened_at);
CREATE INDEX IF NOT EXISTS idx_listens_clip ON listens(clip_id);

CREATE TABLE IF NOT EXISTS clip_skips (
    viewer_id TEXT NOT NULL,
    clip_id TEXT NOT NULL REFERENCES clips(clip_id) ON DELETE CASCADE,
    skipped_at TEXT NOT NULL,
    position_seconds REAL,
    reason TEXT,
    PRIMARY KEY (viewer_id, clip_id)
);
CREATE INDEX IF NOT EXISTS idx_clip_skips_viewer ON clip_skips(viewer_id, skipped_at);

CREATE TABLE IF NOT EXISTS listening_patterns (
    viewer_id TEXT NOT NULL,
    listen_date TEXT NOT NULL,
    listen_hour INTEGER NOT NULL CHECK (listen_hour >= 0 AND listen_hour < 24),
    device_type TEXT NOT NULL DEFAULT '',
    listen_count INTEGER NOT NULL DEFAULT 1,
    total_duration_seconds REAL NOT NULL DEFAULT 0,
    PRIMARY KEY (viewer_id, listen_date, listen_hour, device_type)
);

CREATE TABLE IF NOT EXISTS follows (
    follower_id TEXT NOT NULL,
    creator_id TEXT NOT NULL,
    PRIMARY KEY (follower_id, creator_id)
);
CREATE TABLE IF NOT EXISTS topic_subscriptions (
    viewer_id TEXT NOT NULL,
    topic_id TEXT NOT NULL,
    PRIMARY KEY (viewer_id, topic_id)
);
CREATE TABLE IF NOT EXISTS community_memberships (
    viewer_id TEXT NOT NULL,
    community_id TEXT NOT NULL,
    PRIMARY KEY (viewer_id, community_id)
);
CREATE TABLE IF NOT EXISTS muted_topics (
    viewer_id TEXT NOT NULL,
    topic_id TEXT NOT NULL,
    PRIMARY KEY (viewer_id, topic_id)
);
CREATE TABLE IF NOT EXISTS muted_creators (
    viewer_id TEXT NOT NULL,
    creator_id TEXT NOT NULL,
    PRIMARY KEY (viewer_id, creator_id),
    CHECK (viewer_id != creator_id)
);
CREATE TABLE IF NOT EXISTS user_blocks (
    blocker_id TEXT NOT NULL,
    blocked_id TEXT NOT NULL,
    PRIMARY KEY (blocker_id, blocked_id)
);

CREATE TABLE IF NOT EXISTS viewer_preferences (
    viewer_id TEXT PRIMARY KEY,
    preferred_duration_min INTEGER NOT NULL DEFAULT 15,
    preferred_duration_max INTEGER NOT NULL DEFAULT 30,
    weight_overrides_json TEXT NOT NULL DEFAULT '{}',
    time_aware INTEGER NOT NULL DEFAULT 1,
    use_skip_data INTEGER NOT NULL DEFAULT 1,
    use_listening_patterns INTEGER NOT NULL DEFAULT 1,
    use_device_type INTEGER NOT NULL DEFAULT 1,
    time_topics_json TEXT NOT NULL DEFAULT '{}'
);
""",
        down_sql="""
DROP TABLE IF EXISTS viewer_preferences;
DROP TABLE IF EXISTS user_blocks;
DROP TABLE IF EXISTS muted_creators;
DROP TABLE IF EXISTS muted_topics;
DROP TABLE IF EXISTS community_memberships;
DROP TABLE IF EXISTS topic_subscriptions;
DROP TABLE IF EXISTS follows;
DROP TABLE IF EXISTS listening_patterns;
DROP TABLE IF EXISTS clip_skips;
DROP TABLE IF EXISTS listens;
DROP TABLE IF EXISTS clips;
DROP TABLE IF EXISTS creators;
""",
    ),
    Migration(
        version=2,
        description="Engagement velocity samples keyed by (clip, hour bucket)",
        up_sql="""
CREATE TABLE IF NOT EXISTS clip_engagement_velocity (
    clip_id TEXT NOT NULL REFERENCES clips(clip_id) ON DELETE CASCADE,
    hour_since_creation INTEGER NOT NULL CHECK (hour_since_creation >= 0),
    reactions_count INTEGER NOT NULL DEFAULT 0,
    listens_count INTEGER NOT NULL DEFAULT 0,
    replies_count INTEGER NOT NULL DEFAULT 0,
    remixes_count INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL,
    UNIQUE (clip_id, hour_since_creation)
);
CREATE INDEX IF NOT EXISTS idx_velocity_updated_at
    ON clip_engagement_velocity(updated_at);
""",
        down_sql="""
DROP INDEX IF EXISTS idx_velocity_updated_at;
DROP TABLE IF EXISTS clip_engagement_velocity;
""",
    ),
]


def get_migrations_to_apply(current_version: int) -> list[Migration]:
    """Return the migrations above ``current_version``, oldest first."""
    return [m for m in MIGRATIONS if m.version > current_version]


class MigrationManager:
    """Moves a signal store database between schema versions.

    Each applied version is recorded as a row in ``schema_version``; the
    highest row is the current version.
    """

    VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
);
"""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection
        self._log = logger.bind(component="store", subcomponent="migrations")

    def ensure_version_table(self) -> None:
        """Create ``schema_version`` if the database has none."""
        self._conn.execute(self.VERSION_TABLE_SQL)
        self._conn.commit()

    def get_current_version(self) -> int:
        """Highest recorded schema version (0 for a fresh database)."""
        self.ensure_version_table()
        (version,) = self._conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return version or 0

    def _run_step(self, migration: Migration, *, upgrade: bool) -> None:
        """Run one migration script and update ``schema_version`` atomically.

        Raises:
            MigrationError: If the script or the bookkeeping statement fails.
        """
        try:
            if upgrade:
                self._conn.executescript(migration.up_sql)
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at, description) "
                    "VALUES (?, ?, ?)",
                    (migration.version, datetime.now(UTC).isoformat(), migration.description),
                )
            else:
                self._conn.executescript(migration.down_sql)
                self._conn.execute(
                    "DELETE FROM schema_version WHERE version = ?", (migration.version,)
                )
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            self._log.error(
                "migration_step_failed",
                version=migration.version,
                upgrade=upgrade,
                error=str(e),
            )
            raise MigrationError(migration.version, str(e)) from e

    def apply_migrations(self) -> list[int]:
        """Bring the database up to ``CURRENT_VERSION``.

        Returns:
            Versions applied by this call, oldest first.

        Raises:
            MigrationError: If a migration script fails.
        """
        pending = get_migrations_to_apply(self.get_current_version())
        applied: list[int] = []

        for migration in pending:
            self._run_step(migration, upgrade=True)
            applied.append(migration.version)
            self._log.info(
                "migration_applied",
                version=migration.version,
                description=migration.description,
            )

        return applied

    def rollback_to(self, target_version: int) -> list[int]:
        """Undo migrations until the schema is at ``target_version``.

        Returns:
            Versions rolled back, newest first.

        Raises:
            ValueError: If target version is negative.
            MigrationError: If a rollback script fails.
        """
        if target_version < 0:
            msg = f"Invalid target version: {target_version}"
            raise ValueError(msg)

        by_version = {m.version: m for m in MIGRATIONS}
        rolled_back: list[int] = []

        while (current := self.get_current_version()) > target_version:
            if current not in by_version:
                break
            self._run_step(by_version[current], upgrade=False)
            rolled_back.append(current)
            self._log.info("migration_rolled_back", version=current)

        return rolled_back
