"""SQLite schema migrations for the discovery store."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from discovery.store.errors import MigrationError


logger = structlog.get_logger()

# Current schema version
CURRENT_VERSION = 3


@dataclass(frozen=True)
class Migration:
    """A database migration.

    Attributes:
        version: Target version after applying this migration.
        description: Human-readable description.
        up_sql: SQL to apply the migration.
        down_sql: SQL to rollback the migration.
    """

    version: int
    description: str
    up_sql: str
    down_sql: str


MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Content, topic index, users, and interactions",
        up_sql="""
CREATE TABLE IF NOT EXISTS content (
    id TEXT PRIMARY KEY,
    url TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL DEFAULT '',
    domain TEXT NOT NULL,
    topics_json TEXT NOT NULL DEFAULT '[]',
    quality_score REAL NOT NULL DEFAULT 0.5,
    created_at TEXT NOT NULL,
    views INTEGER NOT NULL DEFAULT 0,
    likes INTEGER NOT NULL DEFAULT 0,
    saves INTEGER NOT NULL DEFAULT 0,
    shares INTEGER NOT NULL DEFAULT 0,
    skips INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    moderation_status TEXT NOT NULL DEFAULT 'approved',
    flag_count INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_content_domain ON content(domain);
CREATE INDEX IF NOT EXISTS idx_content_created_at ON content(created_at);
CREATE INDEX IF NOT EXISTS idx_content_eligible ON content(is_active, moderation_status);

-- One row per (content, topic) so overlap lookups use an index
CREATE TABLE IF NOT EXISTS content_topics (
    content_id TEXT NOT NULL REFERENCES content(id) ON DELETE CASCADE,
    topic TEXT NOT NULL,
    PRIMARY KEY (content_id, topic)
);
CREATE INDEX IF NOT EXISTS idx_content_topics_topic ON content_topics(topic);

CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    preferred_topics_json TEXT NOT NULL DEFAULT '{}',
    wildness REAL NOT NULL DEFAULT 35,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS interactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    content_id TEXT NOT NULL REFERENCES content(id) ON DELETE CASCADE,
    action TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_interactions_user ON interactions(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_interactions_content ON interactions(content_id);
CREATE INDEX IF NOT EXISTS idx_interactions_created_at ON interactions(created_at);
""",
        down_sql="""
DROP INDEX IF EXISTS idx_interactions_created_at;
DROP INDEX IF EXISTS idx_interactions_content;
DROP INDEX IF EXISTS idx_interactions_user;
DROP TABLE IF EXISTS interactions;
DROP TABLE IF EXISTS users;
DROP INDEX IF EXISTS idx_content_topics_topic;
DROP TABLE IF EXISTS content_topics;
DROP INDEX IF EXISTS idx_content_eligible;
DROP INDEX IF EXISTS idx_content_created_at;
DROP INDEX IF EXISTS idx_content_domain;
DROP TABLE IF EXISTS content;
""",
    ),
    Migration(
        version=2,
        description="Reputation, trending, and similar-edge snapshots",
        up_sql="""
CREATE TABLE IF NOT EXISTS domain_reputation (
    domain TEXT PRIMARY KEY,
    trust_score REAL NOT NULL,
    reputation_score REAL NOT NULL,
    is_blacklisted INTEGER NOT NULL DEFAULT 0,
    blacklist_reasons_json TEXT NOT NULL DEFAULT '[]',
    total_count INTEGER NOT NULL DEFAULT 0,
    approved_count INTEGER NOT NULL DEFAULT 0,
    rejected_count INTEGER NOT NULL DEFAULT 0,
    flagged_count INTEGER NOT NULL DEFAULT 0,
    computed_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_domain_reputation_blacklisted
    ON domain_reputation(is_blacklisted);

CREATE TABLE IF NOT EXISTS trending_records (
    content_id TEXT NOT NULL REFERENCES content(id) ON DELETE CASCADE,
    time_window TEXT NOT NULL,
    score REAL NOT NULL,
    velocity REAL NOT NULL,
    interaction_count INTEGER NOT NULL DEFAULT 0,
    view_count INTEGER NOT NULL DEFAULT 0,
    computed_at TEXT NOT NULL,
    PRIMARY KEY (content_id, time_window)
);
CREATE INDEX IF NOT EXISTS idx_trending_window_score
    ON trending_records(time_window, score DESC);
CREATE INDEX IF NOT EXISTS idx_trending_computed_at ON trending_records(computed_at);

CREATE TABLE IF NOT EXISTS similar_edges (
    reference_id TEXT NOT NULL REFERENCES content(id) ON DELETE CASCADE,
    content_id TEXT NOT NULL REFERENCES content(id) ON DELETE CASCADE,
    rank INTEGER NOT NULL,
    similarity REAL NOT NULL,
    overall_score REAL NOT NULL,
    computed_at TEXT NOT NULL,
    PRIMARY KEY (reference_id, content_id)
);
CREATE INDEX IF NOT EXISTS idx_similar_edges_rank ON similar_edges(reference_id, rank);
""",
        down_sql="""
DROP INDEX IF EXISTS idx_similar_edges_rank;
DROP TABLE IF EXISTS similar_edges;
DROP INDEX IF EXISTS idx_trending_computed_at;
DROP INDEX IF EXISTS idx_trending_window_score;
DROP TABLE IF EXISTS trending_records;
DROP INDEX IF EXISTS idx_domain_reputation_blacklisted;
DROP TABLE IF EXISTS domain_reputation;
""",
    ),
    Migration(
        version=3,
        description="Experiments, sticky assignments, and event log",
        up_sql="""
CREATE TABLE IF NOT EXISTS experiments (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL,
    variants_json TEXT NOT NULL,
    min_sample_size INTEGER NOT NULL DEFAULT 100,
    significance_level REAL NOT NULL DEFAULT 0.05,
    winner_variant TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    ended_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_experiments_status ON experiments(status);

CREATE TABLE IF NOT EXISTS experiment_assignments (
    user_id TEXT NOT NULL,
    experiment_id TEXT NOT NULL REFERENCES experiments(id) ON DELETE CASCADE,
    variant TEXT NOT NULL,
    assigned_at TEXT NOT NULL,
    method TEXT NOT NULL,
    PRIMARY KEY (user_id, experiment_id)
);
CREATE INDEX IF NOT EXISTS idx_assignments_experiment
    ON experiment_assignments(experiment_id);

CREATE TABLE IF NOT EXISTS experiment_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    experiment_id TEXT NOT NULL REFERENCES experiments(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    variant TEXT NOT NULL,
    event_type TEXT NOT NULL,
    content_id TEXT,
    time_to_action_ms INTEGER,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_experiment_variant
    ON experiment_events(experiment_id, variant);
""",
        down_sql="""
DROP INDEX IF EXISTS idx_events_experiment_variant;
DROP TABLE IF EXISTS experiment_events;
DROP INDEX IF EXISTS idx_assignments_experiment;
DROP TABLE IF EXISTS experiment_assignments;
DROP INDEX IF EXISTS idx_experiments_status;
DROP TABLE IF EXISTS experiments;
""",
    ),
]


def get_migrations_to_apply(current_version: int) -> list[Migration]:
    """Get migrations that need to be applied.

    Args:
        current_version: The current schema version.

    Returns:
        List of migrations to apply in order.
    """
    return [m for m in MIGRATIONS if m.version > current_version]


def get_migrations_to_rollback(
    current_version: int, target_version: int
) -> list[Migration]:
    """Get migrations to undo, newest first.

    Args:
        current_version: The current schema version.
        target_version: The version to end at.

    Returns:
        Migrations whose down_sql must run, in reverse version order.
    """
    return [
        m
        for m in reversed(MIGRATIONS)
        if target_version < m.version <= current_version
    ]


class MigrationManager:
    """Manages SQLite schema migrations."""

    VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
);
"""

    def __init__(self, connection: sqlite3.Connection) -> None:
        """Initialize the migration manager.

        Args:
            connection: SQLite connection to manage.
        """
        self._conn = connection
        self._log = logger.bind(component="store", operation="migration")

    def ensure_version_table(self) -> None:
        """Ensure the schema_version table exists."""
        self._conn.execute(self.VERSION_TABLE_SQL)
        self._conn.commit()

    def get_current_version(self) -> int:
        """Get the current schema version.

        Returns:
            Current version number, or 0 if no migrations applied.
        """
        self.ensure_version_table()
        row = self._conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def apply_migrations(self) -> list[int]:
        """Apply all pending migrations.

        Returns:
            List of version numbers that were applied.

        Raises:
            MigrationError: If a migration's SQL fails.
        """
        current = self.get_current_version()
        pending = get_migrations_to_apply(current)

        if not pending:
            self._log.debug("no_migrations_pending", current_version=current)
            return []

        applied: list[int] = []
        for migration in pending:
            self._log.info(
                "applying_migration",
                version=migration.version,
                description=migration.description,
            )
            try:
                self._conn.executescript(migration.up_sql)
                self._conn.execute(
                    """
                    INSERT INTO schema_version (version, applied_at, description)
                    VALUES (?, ?, ?)
                    """,
                    (
                        migration.version,
                        datetime.now(UTC).isoformat(),
                        migration.description,
                    ),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

            applied.append(migration.version)
            self._log.info("migration_applied", version=migration.version)

        return applied

    def rollback_to(self, target_version: int) -> list[int]:
        """Rollback to a specific version.

        Args:
            target_version: The version to rollback to.

        Returns:
            List of version numbers that were rolled back.

        Raises:
            ValueError: If target version is negative.
            MigrationError: If a rollback's SQL fails.
        """
        if target_version < 0:
            msg = f"Invalid target version: {target_version}"
            raise ValueError(msg)

        current = self.get_current_version()
        rolled_back: list[int] = []

        for migration in get_migrations_to_rollback(current, target_version):
            self._log.info(
                "rolling_back_migration",
                version=migration.version,
                description=migration.description,
            )
            try:
                self._conn.executescript(migration.down_sql)
                self._conn.execute(
                    "DELETE FROM schema_version WHERE version = ?",
                    (migration.version,),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                self._log.error(
                    "rollback_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

            rolled_back.append(migration.version)
            self._log.info("migration_rolled_back", version=migration.version)

        return rolled_back

    def get_applied_migrations(self) -> list[dict[str, str | int]]:
        """Get list of applied migrations.

        Returns:
            List of dicts with version, applied_at, and description.
        """
        self.ensure_version_table()
        cursor = self._conn.execute(
            """
            SELECT version, applied_at, description
            FROM schema_version
            ORDER BY version
            """
        )
        return [
            {"version": row[0], "applied_at": row[1], "description": row[2]}
            for row in cursor.fetchall()
        ]
