"""Unit tests for schema migrations."""

import sqlite3
from collections.abc import Generator

import pytest

from discovery.store.migrations import (
    CURRENT_VERSION,
    MIGRATIONS,
    MigrationManager,
    get_migrations_to_apply,
    get_migrations_to_rollback,
)


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    )
    return cursor.fetchone() is not None


def _columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


@pytest.fixture
def temp_db() -> Generator[sqlite3.Connection]:
    """Create a temporary in-memory database."""
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


class TestMigrationConstants:
    """Tests for migration constants."""

    def test_current_version_positive(self) -> None:
        """Test current version is positive."""
        assert CURRENT_VERSION > 0

    def test_migrations_in_order(self) -> None:
        """Test migrations are in ascending version order."""
        versions = [m.version for m in MIGRATIONS]
        assert versions == sorted(versions)

    def test_migrations_have_up_and_down(self) -> None:
        """Test all migrations have up and down SQL."""
        for migration in MIGRATIONS:
            assert migration.up_sql.strip()
            assert migration.down_sql.strip()

    def test_current_version_matches_latest_migration(self) -> None:
        """Test current version matches the latest migration."""
        assert MIGRATIONS[-1].version == CURRENT_VERSION


class TestMigrationSelection:
    """Tests for pending and rollback migration selection."""

    def test_from_zero(self) -> None:
        """Test getting all migrations from version 0."""
        assert len(get_migrations_to_apply(0)) == len(MIGRATIONS)

    def test_from_current(self) -> None:
        """Test no migrations when at current version."""
        assert get_migrations_to_apply(CURRENT_VERSION) == []

    def test_from_intermediate(self) -> None:
        """Test migrations from an intermediate version."""
        pending = get_migrations_to_apply(1)
        assert [m.version for m in pending] == [2, 3]

    def test_rollback_newest_first(self) -> None:
        """Test rollback order is newest first."""
        to_undo = get_migrations_to_rollback(CURRENT_VERSION, 1)
        assert [m.version for m in to_undo] == [3, 2]

    def test_rollback_to_same_version(self) -> None:
        """Test nothing to undo when already at target."""
        assert get_migrations_to_rollback(2, 2) == []


class TestMigrationManager:
    """Tests for MigrationManager."""

    def test_get_current_version_zero_when_empty(
        self, temp_db: sqlite3.Connection
    ) -> None:
        """Test version is 0 when no migrations applied."""
        assert MigrationManager(temp_db).get_current_version() == 0

    def test_apply_migrations(self, temp_db: sqlite3.Connection) -> None:
        """Test applying all migrations."""
        manager = MigrationManager(temp_db)
        applied = manager.apply_migrations()

        assert applied == [m.version for m in MIGRATIONS]
        assert manager.get_current_version() == CURRENT_VERSION

    def test_apply_migrations_idempotent(self, temp_db: sqlite3.Connection) -> None:
        """Test applying migrations twice is idempotent."""
        manager = MigrationManager(temp_db)
        manager.apply_migrations()

        assert manager.apply_migrations() == []
        assert manager.get_current_version() == CURRENT_VERSION

    def test_applied_migrations_recorded(self, temp_db: sqlite3.Connection) -> None:
        """Test applied migrations are recorded in schema_version."""
        manager = MigrationManager(temp_db)
        manager.apply_migrations()

        applied = manager.get_applied_migrations()
        assert len(applied) == len(MIGRATIONS)
        for record, migration in zip(applied, MIGRATIONS, strict=True):
            assert record["version"] == migration.version
            assert record["description"] == migration.description
            assert record["applied_at"] is not None

    def test_tables_created(self, temp_db: sqlite3.Connection) -> None:
        """Test every store table exists after migration."""
        MigrationManager(temp_db).apply_migrations()

        for table in (
            "content",
            "content_topics",
            "users",
            "interactions",
            "domain_reputation",
            "trending_records",
            "similar_edges",
            "experiments",
            "experiment_assignments",
            "experiment_events",
        ):
            assert _table_exists(temp_db, table), table

    def test_content_schema(self, temp_db: sqlite3.Connection) -> None:
        """Test content table carries counters and moderation fields."""
        MigrationManager(temp_db).apply_migrations()

        columns = _columns(temp_db, "content")
        assert {"views", "likes", "saves", "shares", "skips"} <= columns
        assert {"is_active", "moderation_status", "flag_count"} <= columns

    def test_rollback_to_zero(self, temp_db: sqlite3.Connection) -> None:
        """Test rolling back all migrations."""
        manager = MigrationManager(temp_db)
        manager.apply_migrations()

        rolled_back = manager.rollback_to(0)
        assert rolled_back == [3, 2, 1]
        assert manager.get_current_version() == 0
        assert not _table_exists(temp_db, "content")

    def test_rollback_partial(self, temp_db: sqlite3.Connection) -> None:
        """Test partial rollback keeps earlier tables."""
        manager = MigrationManager(temp_db)
        manager.apply_migrations()

        assert manager.rollback_to(2) == [3]
        assert manager.get_current_version() == 2
        assert not _table_exists(temp_db, "experiments")
        assert _table_exists(temp_db, "domain_reputation")

    def test_rollback_invalid_version_raises(self, temp_db: sqlite3.Connection) -> None:
        """Test rollback to invalid version raises error."""
        manager = MigrationManager(temp_db)
        manager.apply_migrations()

        with pytest.raises(ValueError, match="Invalid target version"):
            manager.rollback_to(-1)
