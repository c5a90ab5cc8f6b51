"""SQLite signal store implementation."""

import json
import sqlite3
import threading
import time
import uuid
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from clipfeed.store.errors import ClipNotFoundError, StoreConnectionError
from clipfeed.store.metrics import MetricsRecorder, StoreMetrics, TransactionContext
from clipfeed.store.migrations import CURRENT_VERSION, MigrationManager
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


logger = structlog.get_logger()


def to_db_timestamp(value: datetime) -> str:
    """Format a datetime for storage.

    All timestamps are stored as fixed-width UTC ISO-8601 strings so that
    lexical comparison in SQL matches chronological order.

    Args:
        value: Datetime (naive values are treated as UTC).

    Returns:
        ISO-8601 string with microseconds and a +00:00 offset.
    """
    return ensure_utc(value).isoformat(timespec="microseconds")


def from_db_timestamp(value: str) -> datetime:
    """Parse a stored timestamp."""
    return ensure_utc(datetime.fromisoformat(value))


class SignalStore:
    """SQLite-backed signal store.

    Holds clips and their counters, viewer preferences, the social graph,
    interaction history and the engagement velocity samples. Ranking code
    only reads from it (see ``SignalReader``); the write helpers exist for
    ingestion jobs, the velocity tracker and tests.

    One connection is shared by every thread using the store. A re-entrant
    lock serializes all access to it: a transaction holds the lock from
    its first statement until commit or rollback, and each read holds it
    while its rows are fetched.
    """

    def __init__(
        self,
        db_path: Path | str,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        """Initialize the signal store.

        Args:
            db_path: Path to SQLite database file (``":memory:"`` allowed).
            metrics: Optional metrics recorder (defaults to the singleton).
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._metrics: MetricsRecorder = metrics or StoreMetrics.get_instance()
        self._log = logger.bind(component="store", db_path=str(self._db_path))

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def connect(self) -> None:
        """Open connection to database and apply migrations.

        Creates the database file and parent directories if they don't exist.
        """
        with self._lock:
            if self._conn is None:
                self._open()

    def _open(self) -> None:
        in_memory = str(self._db_path) == ":memory:"
        if not in_memory:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._log.info("connecting_to_database")

        # Shared across threads; every use goes through self._lock.
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        if not in_memory:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        migration_mgr = MigrationManager(self._conn)
        old_version = migration_mgr.get_current_version()
        applied = migration_mgr.apply_migrations()

        self._log.info(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._log.info("database_closed")

    def __enter__(self) -> "SignalStore":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database is connected.

        Returns:
            The database connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Generator[TransactionContext]:
        """Context manager for transactions with timing and logging.

        The store lock is held for the whole transaction, so statements
        from other threads never land between this one's first write and
        its commit or rollback.

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context with timing information.
        """
        with self._lock:
            conn = self._ensure_connected()
            tx_id = str(uuid.uuid4())[:8]
            start_ns = time.perf_counter_ns()
            ctx = TransactionContext(
                tx_id=tx_id, start_time_ns=start_ns, operation=operation
            )

            try:
                yield ctx
                conn.commit()
            except Exception:
                conn.rollback()
                duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
                self._log.error(
                    "transaction_failed",
                    tx_id=tx_id,
                    op=operation,
                    duration_ms=round(duration_ms, 2),
                )
                raise

            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            self._metrics.record_tx_duration(duration_ms)
            self._log.debug(
                "transaction_complete",
                tx_id=tx_id,
                op=operation,
                affected_rows=ctx.affected_rows,
                duration_ms=round(duration_ms, 2),
            )

    def _fetchone(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Row | None:
        """Run a read query and return its first row."""
        with self._lock:
            return self._ensure_connected().execute(sql, tuple(params)).fetchone()

    def _fetchall(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        """Run a read query and return every row."""
        with self._lock:
            return self._ensure_connected().execute(sql, tuple(params)).fetchall()

    def _exists(self, sql: str, params: Iterable[Any]) -> bool:
        """Run an existence query.

        Args:
            sql: Query selecting at most one row.
            params: Query parameters.

        Returns:
            True if the query returned a row.
        """
        return self._fetchone(sql, tuple(params)) is not None

    # ===== Clips and creators =====

    def upsert_creator(self, creator_id: str, reputation: int = 0) -> None:
        """Create or update a creator's reputation.

        Args:
            creator_id: Creator identifier.
            reputation: Externally computed reputation.
        """
        with self._transaction("upsert_creator") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO creators (creator_id, reputation) VALUES (?, ?)
                ON CONFLICT(creator_id) DO UPDATE SET reputation = excluded.reputation
                """,
                (creator_id, reputation),
            )
            ctx.add_affected_rows(1)

    def upsert_clip(self, clip: Clip) -> None:
        """Insert a clip or replace all of its attributes.

        Args:
            clip: Clip to store.
        """
        with self._transaction("upsert_clip") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO clips (
                    clip_id, author_id, topic_id, community_id, title, tags_json,
                    mood_emoji, city, duration_seconds, created_at, status,
                    listens_count, reactions_json, reactions_total,
                    completion_rate, trending_score, reply_count, remix_count,
                    content_rating, moderation_risk
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(clip_id) DO UPDATE SET
                    author_id = excluded.author_id,
                    topic_id = excluded.topic_id,
                    community_id = excluded.community_id,
                    title = excluded.title,
                    tags_json = excluded.tags_json,
                    mood_emoji = excluded.mood_emoji,
                    city = excluded.city,
                    duration_seconds = excluded.duration_seconds,
                    created_at = excluded.created_at,
                    status = excluded.status,
                    listens_count = excluded.listens_count,
                    reactions_json = excluded.reactions_json,
                    reactions_total = excluded.reactions_total,
                    completion_rate = excluded.completion_rate,
                    trending_score = excluded.trending_score,
                    reply_count = excluded.reply_count,
                    remix_count = excluded.remix_count,
                    content_rating = excluded.content_rating,
                    moderation_risk = excluded.moderation_risk
                """,
                (
                    clip.clip_id,
                    clip.author_id,
                    clip.topic_id,
                    clip.community_id,
                    clip.title,
                    json.dumps(clip.tags),
                    clip.mood_emoji,
                    clip.city,
                    clip.duration_seconds,
                    to_db_timestamp(clip.created_at),
                    clip.status.value,
                    clip.listens_count,
                    json.dumps(clip.reactions, sort_keys=True),
                    clip.total_reactions,
                    clip.completion_rate,
                    clip.trending_score,
                    clip.reply_count,
                    clip.remix_count,
                    clip.content_rating,
                    clip.moderation_risk,
                ),
            )
            ctx.add_affected_rows(1)

    def update_clip_counters(
        self,
        clip_id: str,
        listens_count: int | None = None,
        reactions: dict[str, int] | None = None,
        reply_count: int | None = None,
        remix_count: int | None = None,
    ) -> None:
        """Overwrite some of a clip's engagement counters.

        Args:
            clip_id: Clip to update.
            listens_count: New listen count.
            reactions: New reaction-kind to count map.
            reply_count: New reply count.
            remix_count: New remix count.

        Raises:
            ClipNotFoundError: If the clip does not exist.
        """
        assignments: list[str] = []
        params: list[Any] = []
        if listens_count is not None:
            assignments.append("listens_count = ?")
            params.append(listens_count)
        if reactions is not None:
            assignments.extend(["reactions_json = ?", "reactions_total = ?"])
            params.extend([json.dumps(reactions, sort_keys=True), sum(reactions.values())])
        if reply_count is not None:
            assignments.append("reply_count = ?")
            params.append(reply_count)
        if remix_count is not None:
            assignments.append("remix_count = ?")
            params.append(remix_count)
        if not assignments:
            return

        with self._transaction("update_clip_counters") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                f"UPDATE clips SET {', '.join(assignments)} WHERE clip_id = ?",  # noqa: S608
                (*params, clip_id),
            )
            if cursor.rowcount == 0:
                raise ClipNotFoundError(clip_id)
            ctx.add_affected_rows(cursor.rowcount)

    def update_trending_score(self, clip_id: str, score: float) -> None:
        """Store a recomputed trending score.

        Args:
            clip_id: Clip to update.
            score: New trending score.
        """
        with self._transaction("update_trending_score") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "UPDATE clips SET trending_score = ? WHERE clip_id = ?",
                (score, clip_id),
            )
            ctx.add_affected_rows(cursor.rowcount)

    def get_clip(self, clip_id: str) -> Clip | None:
        """Get a clip by ID.

        Args:
            clip_id: The clip ID to look up.

        Returns:
            The Clip, or None if not found.
        """
        row = self._fetchone("SELECT * FROM clips WHERE clip_id = ?", (clip_id,))
        if row is None:
            return None
        return self._row_to_clip(row)

    def live_clip_ids(self, created_after: datetime | None = None, limit: int | None = None) -> list[str]:
        """List live clip IDs, newest first.

        Args:
            created_after: Only clips created after this time.
            limit: Maximum number of IDs.

        Returns:
            Clip IDs ordered by creation time descending.
        """
        sql = "SELECT clip_id FROM clips WHERE status = ?"
        params: list[Any] = [ClipStatus.LIVE.value]
        if created_after is not None:
            sql += " AND created_at > ?"
            params.append(to_db_timestamp(created_after))
        sql += " ORDER BY created_at DESC, clip_id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [row["clip_id"] for row in self._fetchall(sql, params)]

    def fetch_candidates(self, query: CandidateQuery) -> list[Clip]:
        """Select live clips matching a candidate query.

        Mute and block exclusions are independent predicates, each applied
        only when ``exclude_for_viewer`` is set.

        Args:
            query: Pool constraints, pre-ordering and limit.

        Returns:
            Matching clips in the requested pre-order.
        """
        clauses = ["c.status = ?"]
        params: list[Any] = [ClipStatus.LIVE.value]

        if query.created_after is not None:
            clauses.append("c.created_at >= ?")
            params.append(to_db_timestamp(query.created_after))
        if query.topic_id is not None:
            clauses.append("c.topic_id = ?")
            params.append(query.topic_id)
        if query.city is not None:
            clauses.append("c.city = ?")
            params.append(query.city)
        if query.followed_by is not None:
            clauses.append(
                "c.author_id IN (SELECT creator_id FROM follows WHERE follower_id = ?)"
            )
            params.append(query.followed_by)
        if query.unheard_by is not None:
            clauses.append(
                "NOT EXISTS (SELECT 1 FROM listens l"
                " WHERE l.viewer_id = ? AND l.clip_id = c.clip_id)"
            )
            params.append(query.unheard_by)
        if query.min_total_reactions is not None:
            clauses.append("c.reactions_total > ?")
            params.append(query.min_total_reactions)
        if query.exclude_for_viewer is not None:
            viewer = query.exclude_for_viewer
            clauses.append(
                "NOT EXISTS (SELECT 1 FROM muted_topics mt"
                " WHERE mt.viewer_id = ? AND mt.topic_id = c.topic_id)"
            )
            clauses.append(
                "NOT EXISTS (SELECT 1 FROM muted_creators mc"
                " WHERE mc.viewer_id = ? AND mc.creator_id = c.author_id)"
            )
            clauses.append(
                "NOT EXISTS (SELECT 1 FROM user_blocks ub"
                " WHERE ub.blocker_id = ? AND ub.blocked_id = c.author_id)"
            )
            params.extend([viewer, viewer, viewer])

        if query.order == CandidateOrder.TRENDING:
            order_by = "c.trending_score DESC, c.created_at DESC, c.clip_id ASC"
        else:
            order_by = "c.created_at DESC, c.clip_id ASC"

        sql = (
            "SELECT c.* FROM clips c WHERE "  # noqa: S608
            + " AND ".join(clauses)
            + f" ORDER BY {order_by} LIMIT ?"
        )
        params.append(query.limit)

        return [self._row_to_clip(row) for row in self._fetchall(sql, params)]

    def _row_to_clip(self, row: sqlite3.Row) -> Clip:
        """Convert a database row to a Clip.

        Args:
            row: Database row.

        Returns:
            Clip instance.
        """
        return Clip(
            clip_id=row["clip_id"],
            author_id=row["author_id"],
            topic_id=row["topic_id"],
            community_id=row["community_id"],
            title=row["title"],
            tags=json.loads(row["tags_json"]),
            mood_emoji=row["mood_emoji"],
            city=row["city"],
            duration_seconds=row["duration_seconds"],
            created_at=from_db_timestamp(row["created_at"]),
            status=ClipStatus(row["status"]),
            listens_count=row["listens_count"],
            reactions=json.loads(row["reactions_json"]),
            completion_rate=row["completion_rate"],
            trending_score=row["trending_score"],
            reply_count=row["reply_count"],
            remix_count=row["remix_count"],
            content_rating=row["content_rating"],
            moderation_risk=row["moderation_risk"],
        )

    def author_reputation(self, author_id: str) -> int:
        """Get an author's reputation (0 for unknown authors).

        Args:
            author_id: Author identifier.

        Returns:
            Reputation value.
        """
        row = self._fetchone(
            "SELECT reputation FROM creators WHERE creator_id = ?", (author_id,)
        )
        return int(row["reputation"]) if row is not None else 0

    def topic_clip_counts(self, topic_id: str, recent_since: datetime) -> tuple[int, int]:
        """Count live clips in a topic.

        Args:
            topic_id: Topic identifier.
            recent_since: Start of the "recent" window.

        Returns:
            Tuple of (total live clips, live clips created after ``recent_since``).
        """
        row = self._fetchone(
            """
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(CASE WHEN created_at > ? THEN 1 ELSE 0 END), 0) AS recent
            FROM clips
            WHERE topic_id = ? AND status = ?
            """,
            (to_db_timestamp(recent_since), topic_id, ClipStatus.LIVE.value),
        )
        return int(row["total"]), int(row["recent"])

    # ===== Social graph =====

    def follow(self, follower_id: str, creator_id: str) -> None:
        """Record that a viewer follows a creator."""
        self._insert_pair("follow", "follows", ("follower_id", "creator_id"), follower_id, creator_id)

    def subscribe_topic(self, viewer_id: str, topic_id: str) -> None:
        """Record that a viewer subscribes to a topic."""
        self._insert_pair("subscribe_topic", "topic_subscriptions", ("viewer_id", "topic_id"), viewer_id, topic_id)

    def join_community(self, viewer_id: str, community_id: str) -> None:
        """Record that a viewer belongs to a community."""
        self._insert_pair(
            "join_community",
            "community_memberships",
            ("viewer_id", "community_id"),
            viewer_id,
            community_id,
        )

    def mute_topic(self, viewer_id: str, topic_id: str) -> None:
        """Mute a topic for a viewer."""
        self._insert_pair("mute_topic", "muted_topics", ("viewer_id", "topic_id"), viewer_id, topic_id)

    def unmute_topic(self, viewer_id: str, topic_id: str) -> None:
        """Remove a topic mute."""
        self._delete_pair("unmute_topic", "muted_topics", ("viewer_id", "topic_id"), viewer_id, topic_id)

    def mute_creator(self, viewer_id: str, creator_id: str) -> None:
        """Mute a creator for a viewer."""
        self._insert_pair("mute_creator", "muted_creators", ("viewer_id", "creator_id"), viewer_id, creator_id)

    def unmute_creator(self, viewer_id: str, creator_id: str) -> None:
        """Remove a creator mute."""
        self._delete_pair("unmute_creator", "muted_creators", ("viewer_id", "creator_id"), viewer_id, creator_id)

    def block_creator(self, viewer_id: str, creator_id: str) -> None:
        """Block a creator for a viewer."""
        self._insert_pair("block_creator", "user_blocks", ("blocker_id", "blocked_id"), viewer_id, creator_id)

    def _insert_pair(
        self,
        operation: str,
        table: str,
        columns: tuple[str, str],
        left: str,
        right: str,
    ) -> None:
        """Insert a row into a two-column relation table (idempotent)."""
        with self._transaction(operation) as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                f"INSERT OR IGNORE INTO {table} ({columns[0]}, {columns[1]}) VALUES (?, ?)",  # noqa: S608
                (left, right),
            )
            ctx.add_affected_rows(cursor.rowcount)

    def _delete_pair(
        self,
        operation: str,
        table: str,
        columns: tuple[str, str],
        left: str,
        right: str,
    ) -> None:
        """Delete a row from a two-column relation table."""
        with self._transaction(operation) as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                f"DELETE FROM {table} WHERE {columns[0]} = ? AND {columns[1]} = ?",  # noqa: S608
                (left, right),
            )
            ctx.add_affected_rows(cursor.rowcount)

    def is_following(self, viewer_id: str, creator_id: str) -> bool:
        """Whether the viewer follows the creator."""
        return self._exists(
            "SELECT 1 FROM follows WHERE follower_id = ? AND creator_id = ?",
            (viewer_id, creator_id),
        )

    def is_subscribed(self, viewer_id: str, topic_id: str) -> bool:
        """Whether the viewer subscribes to the topic."""
        return self._exists(
            "SELECT 1 FROM topic_subscriptions WHERE viewer_id = ? AND topic_id = ?",
            (viewer_id, topic_id),
        )

    def is_topic_muted(self, viewer_id: str, topic_id: str) -> bool:
        """Whether the viewer muted the topic."""
        return self._exists(
            "SELECT 1 FROM muted_topics WHERE viewer_id = ? AND topic_id = ?",
            (viewer_id, topic_id),
        )

    def is_creator_muted(self, viewer_id: str, creator_id: str) -> bool:
        """Whether the viewer muted the creator."""
        return self._exists(
            "SELECT 1 FROM muted_creators WHERE viewer_id = ? AND creator_id = ?",
            (viewer_id, creator_id),
        )

    def is_blocked(self, viewer_id: str, creator_id: str) -> bool:
        """Whether the viewer blocked the creator."""
        return self._exists(
            "SELECT 1 FROM user_blocks WHERE blocker_id = ? AND blocked_id = ?",
            (viewer_id, creator_id),
        )

    def is_member(self, viewer_id: str, community_id: str) -> bool:
        """Whether the viewer belongs to the community."""
        return self._exists(
            "SELECT 1 FROM community_memberships WHERE viewer_id = ? AND community_id = ?",
            (viewer_id, community_id),
        )

    # ===== Preferences =====

    def save_preferences(self, prefs: ViewerPreference) -> None:
        """Create or replace a viewer's preferences.

        Args:
            prefs: Preferences to store.
        """
        time_topics = {period.value: topics for period, topics in prefs.time_topics.items()}
        with self._transaction("save_preferences") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT OR REPLACE INTO viewer_preferences (
                    viewer_id, preferred_duration_min, preferred_duration_max,
                    weight_overrides_json, time_aware, use_skip_data,
                    use_listening_patterns, use_device_type, time_topics_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    prefs.viewer_id,
                    prefs.preferred_duration_min,
                    prefs.preferred_duration_max,
                    json.dumps(prefs.weight_overrides, sort_keys=True),
                    int(prefs.time_aware),
                    int(prefs.privacy.use_skip_data),
                    int(prefs.privacy.use_listening_patterns),
                    int(prefs.privacy.use_device_type),
                    json.dumps(time_topics, sort_keys=True),
                ),
            )
            ctx.add_affected_rows(1)

    def get_preferences(self, viewer_id: str) -> ViewerPreference | None:
        """Get a viewer's preferences.

        Args:
            viewer_id: Viewer identifier.

        Returns:
            Preferences, or None if the viewer never saved any.
        """
        row = self._fetchone(
            "SELECT * FROM viewer_preferences WHERE viewer_id = ?", (viewer_id,)
        )
        if row is None:
            return None

        raw_topics: dict[str, list[str]] = json.loads(row["time_topics_json"])
        return ViewerPreference(
            viewer_id=row["viewer_id"],
            preferred_duration_min=row["preferred_duration_min"],
            preferred_duration_max=row["preferred_duration_max"],
            weight_overrides=json.loads(row["weight_overrides_json"]),
            time_aware=bool(row["time_aware"]),
            privacy=PrivacyPreferences(
                use_skip_data=bool(row["use_skip_data"]),
                use_listening_patterns=bool(row["use_listening_patterns"]),
                use_device_type=bool(row["use_device_type"]),
            ),
            time_topics={DayPeriod(key): topics for key, topics in raw_topics.items()},
        )

    # ===== Interaction history =====

    def record_listen(self, listen: ListenRecord) -> None:
        """Append a listen record.

        Args:
            listen: Listen to record.
        """
        with self._transaction("record_listen") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO listens (viewer_id, clip_id, completion_percentage, listened_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    listen.viewer_id,
                    listen.clip_id,
                    listen.completion_percentage,
                    to_db_timestamp(listen.listened_at),
                ),
            )
            ctx.add_affected_rows(1)

    def record_skip(self, skip: SkipRecord) -> None:
        """Record a skip; a repeated skip of the same clip replaces the earlier one.

        Args:
            skip: Skip to record.
        """
        with self._transaction("record_skip") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO clip_skips (viewer_id, clip_id, skipped_at, position_seconds, reason)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(viewer_id, clip_id) DO UPDATE SET
                    skipped_at = excluded.skipped_at,
                    position_seconds = excluded.position_seconds,
                    reason = excluded.reason
                """,
                (
                    skip.viewer_id,
                    skip.clip_id,
                    to_db_timestamp(skip.skipped_at),
                    skip.position_seconds,
                    skip.reason,
                ),
            )
            ctx.add_affected_rows(1)

    def record_listening_pattern(
        self,
        viewer_id: str,
        listened_at: datetime,
        duration_seconds: float = 0.0,
        device_type: str | None = None,
    ) -> None:
        """Count one listen into the viewer's hour-of-day pattern.

        Args:
            viewer_id: Viewer identifier.
            listened_at: When the listen happened.
            duration_seconds: Seconds listened.
            device_type: Optional device type.
        """
        moment = ensure_utc(listened_at)
        with self._transaction("record_listening_pattern") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO listening_patterns (
                    viewer_id, listen_date, listen_hour, device_type,
                    listen_count, total_duration_seconds
                ) VALUES (?, ?, ?, ?, 1, ?)
                ON CONFLICT(viewer_id, listen_date, listen_hour, device_type) DO UPDATE SET
                    listen_count = listen_count + 1,
                    total_duration_seconds = total_duration_seconds + excluded.total_duration_seconds
                """,
                (
                    viewer_id,
                    moment.date().isoformat(),
                    moment.hour,
                    device_type or "",
                    duration_seconds,
                ),
            )
            ctx.add_affected_rows(1)

    def has_listened(self, viewer_id: str, clip_id: str) -> bool:
        """Whether the viewer ever listened to the clip."""
        return self._exists(
            "SELECT 1 FROM listens WHERE viewer_id = ? AND clip_id = ? LIMIT 1",
            (viewer_id, clip_id),
        )

    def viewer_clip_completion(self, viewer_id: str, clip_id: str) -> float | None:
        """Viewer's average completion percentage on one clip.

        Args:
            viewer_id: Viewer identifier.
            clip_id: Clip identifier.

        Returns:
            Average completion (0-100), or None without completion data.
        """
        row = self._fetchone(
            """
            SELECT AVG(completion_percentage) AS completion
            FROM listens
            WHERE viewer_id = ? AND clip_id = ? AND completion_percentage IS NOT NULL
            """,
            (viewer_id, clip_id),
        )
        return row["completion"]

    def author_completion_rate(
        self,
        viewer_id: str,
        author_id: str,
        since: datetime,
        exclude_clip_id: str | None = None,
    ) -> float | None:
        """Viewer's average completion percentage on an author's clips.

        Args:
            viewer_id: Viewer identifier.
            author_id: Author identifier.
            since: Only listens after this time.
            exclude_clip_id: Clip to leave out of the average.

        Returns:
            Average completion (0-100), or None without completion data.
        """
        row = self._fetchone(
            """
            SELECT AVG(l.completion_percentage) AS completion
            FROM listens l
            INNER JOIN clips c ON c.clip_id = l.clip_id
            WHERE l.viewer_id = ?
              AND c.author_id = ?
              AND l.completion_percentage IS NOT NULL
              AND l.listened_at > ?
              AND (? IS NULL OR l.clip_id != ?)
            """,
            (viewer_id, author_id, to_db_timestamp(since), exclude_clip_id, exclude_clip_id),
        )
        return row["completion"]

    def skip_rate(
        self,
        viewer_id: str,
        since: datetime,
        author_id: str | None = None,
        topic_id: str | None = None,
    ) -> float:
        """Viewer's rolling skip rate against an author and/or topic.

        The rate is skips divided by clips seen (distinct clips listened to
        plus distinct clips skipped) inside the window, as a percentage.

        Args:
            viewer_id: Viewer identifier.
            since: Window start.
            author_id: Restrict to this author's clips.
            topic_id: Restrict to this topic's clips.

        Returns:
            Skip rate between 0 and 100 (0 when nothing was seen).
        """
        since_ts = to_db_timestamp(since)
        scope = "(? IS NULL OR c.author_id = ?) AND (? IS NULL OR c.topic_id = ?)"
        scope_params = (author_id, author_id, topic_id, topic_id)

        skips = self._fetchone(
            f"""
            SELECT COUNT(*) FROM clip_skips s
            INNER JOIN clips c ON c.clip_id = s.clip_id
            WHERE s.viewer_id = ? AND s.skipped_at >= ? AND {scope}
            """,  # noqa: S608
            (viewer_id, since_ts, *scope_params),
        )[0]
        listened = self._fetchone(
            f"""
            SELECT COUNT(DISTINCT l.clip_id) FROM listens l
            INNER JOIN clips c ON c.clip_id = l.clip_id
            WHERE l.viewer_id = ? AND l.listened_at >= ? AND {scope}
            """,  # noqa: S608
            (viewer_id, since_ts, *scope_params),
        )[0]

        total = skips + listened
        if total == 0:
            return 0.0
        return skips / total * 100.0

    def was_skipped(self, viewer_id: str, clip_id: str) -> bool:
        """Whether the viewer ever skipped this clip."""
        return self._exists(
            "SELECT 1 FROM clip_skips WHERE viewer_id = ? AND clip_id = ?",
            (viewer_id, clip_id),
        )

    def recent_topics(self, viewer_id: str, since: datetime, limit: int = 20) -> list[str]:
        """Distinct topics of clips the viewer listened to since a time.

        Topics are ordered by their most recent listen, so when more than
        ``limit`` topics exist the most recently heard ones are kept.

        Args:
            viewer_id: Viewer identifier.
            since: Window start.
            limit: Maximum number of topics.

        Returns:
            Topic IDs, most recent first.
        """
        rows = self._fetchall(
            """
            SELECT c.topic_id AS topic_id, MAX(l.listened_at) AS last_listen
            FROM listens l
            INNER JOIN clips c ON c.clip_id = l.clip_id
            WHERE l.viewer_id = ? AND l.listened_at > ? AND c.topic_id IS NOT NULL
            GROUP BY c.topic_id
            ORDER BY last_listen DESC, c.topic_id ASC
            LIMIT ?
            """,
            (viewer_id, to_db_timestamp(since), limit),
        )
        return [row["topic_id"] for row in rows]

    def preferred_hours(self, viewer_id: str, since: datetime) -> set[int]:
        """Hours of day in which the viewer listened since a date.

        Args:
            viewer_id: Viewer identifier.
            since: Window start (compared by calendar date).

        Returns:
            Set of hours (0-23).
        """
        rows = self._fetchall(
            """
            SELECT DISTINCT listen_hour FROM listening_patterns
            WHERE viewer_id = ? AND listen_date >= ?
            """,
            (viewer_id, ensure_utc(since).date().isoformat()),
        )
        return {int(row["listen_hour"]) for row in rows}

    # ===== Engagement velocity samples =====

    def upsert_velocity_sample(self, sample: VelocitySample) -> bool:
        """Write a velocity snapshot for (clip, hour bucket).

        The row is overwritten only when a counter differs from what is
        stored, so re-asserting the same snapshot leaves the row untouched
        (including ``updated_at``).

        Args:
            sample: Snapshot to write.

        Returns:
            True if a row was inserted or overwritten.
        """
        with self._transaction("upsert_velocity_sample") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                INSERT INTO clip_engagement_velocity (
                    clip_id, hour_since_creation, reactions_count, listens_count,
                    replies_count, remixes_count, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(clip_id, hour_since_creation) DO UPDATE SET
                    reactions_count = excluded.reactions_count,
                    listens_count = excluded.listens_count,
                    replies_count = excluded.replies_count,
                    remixes_count = excluded.remixes_count,
                    updated_at = excluded.updated_at
                WHERE reactions_count != excluded.reactions_count
                   OR listens_count != excluded.listens_count
                   OR replies_count != excluded.replies_count
                   OR remixes_count != excluded.remixes_count
                """,
                (
                    sample.clip_id,
                    sample.hour_bucket,
                    sample.reactions_count,
                    sample.listens_count,
                    sample.replies_count,
                    sample.remixes_count,
                    to_db_timestamp(sample.updated_at),
                ),
            )
            ctx.add_affected_rows(cursor.rowcount)

        written = cursor.rowcount > 0
        if written:
            self._metrics.record_sample_written()
        else:
            self._metrics.record_sample_unchanged()
        return written

    def get_velocity_samples(
        self, clip_id: str, max_bucket: float | None = None
    ) -> list[VelocitySample]:
        """Get a clip's velocity samples.

        Args:
            clip_id: Clip identifier.
            max_bucket: Only buckets less than or equal to this value.

        Returns:
            Samples ordered by hour bucket ascending.
        """
        sql = "SELECT * FROM clip_engagement_velocity WHERE clip_id = ?"
        params: list[Any] = [clip_id]
        if max_bucket is not None:
            sql += " AND hour_since_creation <= ?"
            params.append(max_bucket)
        sql += " ORDER BY hour_since_creation ASC"

        return [
            VelocitySample(
                clip_id=row["clip_id"],
                hour_bucket=row["hour_since_creation"],
                reactions_count=row["reactions_count"],
                listens_count=row["listens_count"],
                replies_count=row["replies_count"],
                remixes_count=row["remixes_count"],
                updated_at=from_db_timestamp(row["updated_at"]),
            )
            for row in self._fetchall(sql, params)
        ]

    def purge_velocity_samples(self, before: datetime) -> int:
        """Delete velocity samples last updated before a time.

        Args:
            before: Retention cutoff.

        Returns:
            Number of samples deleted.
        """
        with self._transaction("purge_velocity_samples") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "DELETE FROM clip_engagement_velocity WHERE updated_at < ?",
                (to_db_timestamp(before),),
            )
            purged = cursor.rowcount
            ctx.add_affected_rows(purged)

        self._metrics.record_samples_purged(purged)
        return purged

    # ===== Stats =====

    def get_stats(self) -> dict[str, int]:
        """Get row counts for the main tables.

        Returns:
            Dictionary mapping table name to row count.
        """
        stats: dict[str, int] = {}
        for table in ("clips", "listens", "clip_skips", "clip_engagement_velocity"):
            stats[table] = self._fetchone(f"SELECT COUNT(*) FROM {table}")[0]  # noqa: S608
        return stats

    def get_schema_version(self) -> int:
        """Get current schema version.

        Returns:
            Current schema version number.
        """
        with self._lock:
            return MigrationManager(self._ensure_connected()).get_current_version()
