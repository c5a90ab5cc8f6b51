"""Tests for signal store schema migrations."""

import sqlite3
from collections.abc import Generator

import pytest

from clipfeed.store.migrations import (
    CURRENT_VERSION,
    MIGRATIONS,
    MigrationManager,
    get_migrations_to_apply,
)


@pytest.fixture
def connection() -> Generator[sqlite3.Connection]:
    """In-memory SQLite connection."""
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


def _tables(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row[0] for row in rows}


class TestMigrations:
    """Tests for MigrationManager."""

    def test_migrations_are_ordered(self) -> None:
        """Test migration versions are contiguous and end at CURRENT_VERSION."""
        versions = [m.version for m in MIGRATIONS]
        assert versions == list(range(1, CURRENT_VERSION + 1))

    def test_get_migrations_to_apply(self) -> None:
        """Test pending migrations are those above the current version."""
        assert [m.version for m in get_migrations_to_apply(0)] == [1, 2]
        assert [m.version for m in get_migrations_to_apply(1)] == [2]
        assert get_migrations_to_apply(CURRENT_VERSION) == []

    def test_apply_from_scratch(self, connection: sqlite3.Connection) -> None:
        """Test a fresh database is migrated to the current version."""
        manager = MigrationManager(connection)

        assert manager.get_current_version() == 0
        assert manager.apply_migrations() == [1, 2]
        assert manager.get_current_version() == CURRENT_VERSION

        tables = _tables(connection)
        assert {"clips", "listens", "clip_skips", "clip_engagement_velocity"} <= tables

    def test_apply_is_idempotent(self, connection: sqlite3.Connection) -> None:
        """Test re-applying does nothing."""
        manager = MigrationManager(connection)
        manager.apply_migrations()

        assert manager.apply_migrations() == []

    def test_velocity_key_is_unique(self, connection: sqlite3.Connection) -> None:
        """Test at most one sample per (clip, hour bucket)."""
        MigrationManager(connection).apply_migrations()
        connection.execute(
            "INSERT INTO clips (clip_id, author_id, created_at, status) VALUES ('c', 'a', 'x', 'live')"
        )
        insert = (
            "INSERT INTO clip_engagement_velocity (clip_id, hour_since_creation, updated_at)"
            " VALUES ('c', 3, 'x')"
        )
        connection.execute(insert)

        with pytest.raises(sqlite3.IntegrityError):
            connection.execute(insert)

    def test_rollback(self, connection: sqlite3.Connection) -> None:
        """Test rolling back removes the velocity table only."""
        manager = MigrationManager(connection)
        manager.apply_migrations()

        assert manager.rollback_to(1) == [2]
        assert manager.get_current_version() == 1
        tables = _tables(connection)
        assert "clip_engagement_velocity" not in tables
        assert "clips" in tables

    def test_rollback_negative_target(self, connection: sqlite3.Connection) -> None:
        """Test negative targets are rejected."""
        with pytest.raises(ValueError, match="Invalid target version"):
            MigrationManager(connection).rollback_to(-1)
