"""SQLite implementation of the discovery store adapter."""

import json
import sqlite3
import time
import uuid
from collections.abc import Generator, Iterable, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import structlog

from discovery.store.errors import (
    AssignmentConflictError,
    ConnectionError as StoreConnectionError,
    ContentNotFoundError,
    QueryTimeoutError,
)
from discovery.store.metrics import MetricsRecorder, StoreMetrics, TransactionContext
from discovery.store.migrations import CURRENT_VERSION, MigrationManager
from discovery.store.models import (
    ContentItem,
    DomainStats,
    Experiment,
    ExperimentAssignment,
    ExperimentEvent,
    ExperimentStatus,
    HistoryEntry,
    InteractionAction,
    ModerationStatus,
    OrderHint,
    ReputationRecord,
    SimilarEdge,
    TrendingRecord,
    TrendingWindow,
    UserContext,
    Variant,
    VariantEventCounts,
)


logger = structlog.get_logger()

# Progress handler granularity (SQLite VM instructions between budget checks)
_PROGRESS_STEPS = 1000

_COUNTER_COLUMNS: dict[InteractionAction, str] = {
    InteractionAction.VIEW: "views",
    InteractionAction.LIKE: "likes",
    InteractionAction.SAVE: "saves",
    InteractionAction.SHARE: "shares",
    InteractionAction.SKIP: "skips",
}

_ELIGIBLE_CONTENT_SQL = "c.is_active = 1 AND c.moderation_status = 'approved'"


def _ts(value: datetime) -> str:
    """Serialize a timestamp so that string order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    """Parse a stored timestamp."""
    if value is None:
        return None
    return datetime.fromisoformat(value)


class DiscoveryStore:
    """SQLite store for content, users, snapshots, and experiments.

    Every user-facing exclusion (session-seen, long-term-seen, blacklisted
    domains) is applied inside the candidate query. Snapshot tables
    (reputation, trending, similar edges) are only written as whole-record
    replacements.
    """

    def __init__(
        self,
        db_path: Path | str,
        run_id: str | None = None,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file.
            run_id: Optional run ID for logging context.
            metrics: Optional metrics recorder (defaults to the singleton).
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._run_id = run_id or str(uuid.uuid4())
        self._conn: sqlite3.Connection | None = None
        self._metrics: MetricsRecorder = metrics or StoreMetrics.get_instance()
        self._log = logger.bind(
            component="store",
            run_id=self._run_id,
            db_path=str(self._db_path),
        )

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def connect(self) -> None:
        """Open the connection and apply pending migrations."""
        if self._conn is not None:
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._log.debug("connecting_to_database")

        # Request handlers may resolve the store on one worker thread and use
        # it on another; a store instance is never shared between requests.
        self._conn = sqlite3.connect(
            str(self._db_path), timeout=5.0, check_same_thread=False
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        migration_mgr = MigrationManager(self._conn)
        old_version = migration_mgr.get_current_version()
        applied = migration_mgr.apply_migrations()

        if applied:
            self._log.info(
                "database_migrated",
                old_version=old_version,
                new_version=CURRENT_VERSION,
                migrations_applied=applied,
            )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._log.debug("database_closed")

    def __enter__(self) -> "DiscoveryStore":
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

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context with timing information.
        """
        conn = self._ensure_connected()
        tx_id = str(uuid.uuid4())[:8]
        start_ns = time.perf_counter_ns()
        ctx = TransactionContext(tx_id=tx_id, start_time_ns=start_ns, operation=operation)

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

    @contextmanager
    def _query_budget(self, operation: str, budget_ms: float | None) -> Generator[None]:
        """Interrupt queries that run past ``budget_ms``.

        Args:
            operation: Name of the operation for errors and logs.
            budget_ms: Latency budget, or None for no limit.

        Raises:
            QueryTimeoutError: If SQLite interrupted the query.
        """
        if budget_ms is None:
            yield
            return

        conn = self._ensure_connected()
        deadline = time.monotonic() + budget_ms / 1000

        def _over_budget() -> int:
            return 1 if time.monotonic() > deadline else 0

        conn.set_progress_handler(_over_budget, _PROGRESS_STEPS)
        try:
            yield
        except sqlite3.OperationalError as e:
            if "interrupted" not in str(e):
                raise
            self._metrics.record_query_timeout()
            self._log.warning("query_budget_exceeded", op=operation, budget_ms=budget_ms)
            raise QueryTimeoutError(operation, budget_ms) from e
        finally:
            conn.set_progress_handler(None, 0)

        if time.monotonic() > deadline:
            self._metrics.record_query_timeout()
            self._log.warning("query_budget_exceeded", op=operation, budget_ms=budget_ms)
            raise QueryTimeoutError(operation, budget_ms)

    def get_schema_version(self) -> int:
        """Get the applied schema version."""
        return MigrationManager(self._ensure_connected()).get_current_version()

    # ===== Content =====

    def upsert_content(self, item: ContentItem) -> None:
        """Insert or fully replace a content row and its topic index.

        Args:
            item: Content item as produced by ingestion.
        """
        with self._transaction("upsert_content") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO content (
                    id, url, title, domain, topics_json, quality_score, created_at,
                    views, likes, saves, shares, skips,
                    is_active, moderation_status, flag_count
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    url = excluded.url,
                    title = excluded.title,
                    domain = excluded.domain,
                    topics_json = excluded.topics_json,
                    quality_score = excluded.quality_score,
                    created_at = excluded.created_at,
                    views = excluded.views,
                    likes = excluded.likes,
                    saves = excluded.saves,
                    shares = excluded.shares,
                    skips = excluded.skips,
                    is_active = excluded.is_active,
                    moderation_status = excluded.moderation_status,
                    flag_count = excluded.flag_count
                """,
                (
                    item.id,
                    item.url,
                    item.title,
                    item.domain,
                    json.dumps(item.topics),
                    item.quality_score,
                    _ts(item.created_at),
                    item.views,
                    item.likes,
                    item.saves,
                    item.shares,
                    item.skips,
                    1 if item.is_active else 0,
                    item.moderation_status.value,
                    item.flag_count,
                ),
            )
            conn.execute("DELETE FROM content_topics WHERE content_id = ?", (item.id,))
            conn.executemany(
                "INSERT INTO content_topics (content_id, topic) VALUES (?, ?)",
                [(item.id, topic) for topic in item.topics],
            )
            ctx.add_affected_rows(1 + len(item.topics))
        self._metrics.record_content_upsert()

    def get_content(self, content_id: str) -> ContentItem | None:
        """Get a content item by id.

        Args:
            content_id: Content identifier.

        Returns:
            The ContentItem, or None if not found.
        """
        conn = self._ensure_connected()
        row = conn.execute("SELECT * FROM content c WHERE c.id = ?", (content_id,)).fetchone()
        return self._row_to_content(row) if row is not None else None

    def record_interaction(
        self,
        user_id: str,
        content_id: str,
        action: InteractionAction,
        occurred_at: datetime | None = None,
    ) -> None:
        """Append an interaction and bump the content's aggregate counter.

        Args:
            user_id: Acting user.
            content_id: Content acted upon.
            action: Interaction type.
            occurred_at: When it happened (defaults to now).

        Raises:
            ContentNotFoundError: If the content id is unknown.
        """
        occurred_at = occurred_at or datetime.now(UTC)
        with self._transaction("record_interaction") as ctx:
            conn = self._ensure_connected()
            exists = conn.execute(
                "SELECT 1 FROM content WHERE id = ?", (content_id,)
            ).fetchone()
            if exists is None:
                raise ContentNotFoundError(content_id)

            conn.execute(
                """
                INSERT INTO interactions (user_id, content_id, action, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, content_id, action.value, _ts(occurred_at)),
            )
            column = _COUNTER_COLUMNS.get(action)
            if column is not None:
                conn.execute(
                    f"UPDATE content SET {column} = {column} + 1 WHERE id = ?",  # noqa: S608
                    (content_id,),
                )
            ctx.add_affected_rows(2 if column else 1)
        self._metrics.record_interaction()

    def apply_moderation_decision(
        self, content_id: str, status: ModerationStatus, flagged: bool = False
    ) -> ContentItem:
        """Record a moderation outcome on a content row.

        Args:
            content_id: Moderated content.
            status: New moderation status.
            flagged: Whether the decision adds a flag to the item.

        Returns:
            The updated content item.

        Raises:
            ContentNotFoundError: If the content id is unknown.
        """
        with self._transaction("apply_moderation_decision") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                UPDATE content
                SET moderation_status = ?, flag_count = flag_count + ?
                WHERE id = ?
                """,
                (status.value, 1 if flagged else 0, content_id),
            )
            if cursor.rowcount == 0:
                raise ContentNotFoundError(content_id)
            ctx.add_affected_rows(cursor.rowcount)

        item = self.get_content(content_id)
        if item is None:
            raise ContentNotFoundError(content_id)
        return item

    def _row_to_content(self, row: sqlite3.Row) -> ContentItem:
        """Convert a content row to a ContentItem."""
        return ContentItem(
            id=row["id"],
            url=row["url"],
            title=row["title"],
            domain=row["domain"],
            topics=json.loads(row["topics_json"]),
            quality_score=row["quality_score"],
            created_at=datetime.fromisoformat(row["created_at"]),
            views=row["views"],
            likes=row["likes"],
            saves=row["saves"],
            shares=row["shares"],
            skips=row["skips"],
            is_active=bool(row["is_active"]),
            moderation_status=ModerationStatus(row["moderation_status"]),
            flag_count=row["flag_count"],
        )

    # ===== Users =====

    def upsert_user(
        self,
        user_id: str,
        preferred_topics: dict[str, float] | Sequence[str] | None = None,
        wildness: float = 35.0,
    ) -> None:
        """Create or replace a user's preferences.

        Args:
            user_id: User identifier.
            preferred_topics: Topic list or topic to weight mapping.
            wildness: Explore/exploit dial in [0, 100].
        """
        context = UserContext(
            user_id=user_id, preferred_topics=preferred_topics, wildness=wildness
        )
        with self._transaction("upsert_user") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO users (user_id, preferred_topics_json, wildness, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    preferred_topics_json = excluded.preferred_topics_json,
                    wildness = excluded.wildness,
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    json.dumps(context.preferred_topics, sort_keys=True),
                    context.wildness,
                    _ts(datetime.now(UTC)),
                ),
            )
            ctx.add_affected_rows(1)

    def fetch_user_context(self, user_id: str, history_limit: int = 100) -> UserContext:
        """Load preferences and recent interaction history.

        Unknown users get an empty profile with the default wildness.

        Args:
            user_id: User identifier.
            history_limit: Maximum number of recent interactions.

        Returns:
            UserContext for scoring.
        """
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT preferred_topics_json, wildness FROM users WHERE user_id = ?",
            (user_id,),
        ).fetchone()

        history_rows = conn.execute(
            """
            SELECT i.content_id, i.action, i.created_at, c.topics_json, c.domain
            FROM interactions i
            JOIN content c ON c.id = i.content_id
            WHERE i.user_id = ?
            ORDER BY i.created_at DESC
            LIMIT ?
            """,
            (user_id, history_limit),
        ).fetchall()

        history = [
            HistoryEntry(
                content_id=h["content_id"],
                action=InteractionAction(h["action"]),
                topics=json.loads(h["topics_json"]),
                domain=h["domain"],
                occurred_at=datetime.fromisoformat(h["created_at"]),
            )
            for h in history_rows
        ]

        if row is None:
            return UserContext(user_id=user_id, history=history)

        return UserContext(
            user_id=user_id,
            preferred_topics=json.loads(row["preferred_topics_json"]),
            wildness=row["wildness"],
            history=history,
        )

    # ===== Candidates =====

    def fetch_candidates(  # noqa: PLR0913
        self,
        user_id: str,
        session_seen_ids: Iterable[str],
        excluded_domains: Iterable[str] = (),
        order_hint: OrderHint = OrderHint.TOPIC_MATCH,
        limit: int = 200,
        topics: Iterable[str] = (),
        exclude_long_term_seen: bool = True,
        budget_ms: float | None = None,
    ) -> list[ContentItem]:
        """Fetch eligible candidates with all exclusions pushed into SQL.

        Excludes inactive or unapproved content, the session-seen ids, content
        the user interacted with before (unless disabled), blacklisted domains,
        and ``excluded_domains``.

        Args:
            user_id: Requesting user.
            session_seen_ids: Ids already shown in this session.
            excluded_domains: Extra domains to exclude.
            order_hint: How to trim the pool when more rows than ``limit`` match.
            limit: Maximum number of candidates.
            topics: Preferred topics used by the TOPIC_MATCH hint.
            exclude_long_term_seen: Whether to exclude previously seen content.
            budget_ms: Latency budget for the query.

        Returns:
            Candidate content items.

        Raises:
            QueryTimeoutError: If the query exceeded ``budget_ms``.
        """
        conn = self._ensure_connected()
        order_sql = {
            OrderHint.TOPIC_MATCH: """
                (SELECT COUNT(*) FROM content_topics ct
                 WHERE ct.content_id = c.id
                   AND ct.topic IN (SELECT value FROM json_each(:topics))) DESC,
                c.quality_score DESC, c.created_at DESC""",
            OrderHint.RECENT: "c.created_at DESC",
            OrderHint.QUALITY: "c.quality_score DESC, c.created_at DESC",
        }[order_hint]

        sql = f"""
            SELECT c.* FROM content c
            WHERE {_ELIGIBLE_CONTENT_SQL}
              AND c.id NOT IN (SELECT value FROM json_each(:seen))
              AND c.domain NOT IN (SELECT value FROM json_each(:excluded))
              AND c.domain NOT IN (
                  SELECT domain FROM domain_reputation WHERE is_blacklisted = 1
              )
              AND (
                  :long_term = 0
                  OR c.id NOT IN (SELECT content_id FROM interactions WHERE user_id = :user_id)
              )
            ORDER BY {order_sql}
            LIMIT :limit
        """  # noqa: S608
        params: dict[str, Any] = {
            "seen": json.dumps(sorted(set(session_seen_ids))),
            "excluded": json.dumps(sorted({d.lower() for d in excluded_domains})),
            "long_term": 1 if exclude_long_term_seen else 0,
            "user_id": user_id,
            "topics": json.dumps(sorted({t.lower() for t in topics})),
            "limit": limit,
        }

        start = time.perf_counter()
        with self._query_budget("fetch_candidates", budget_ms):
            rows = conn.execute(sql, params).fetchall()
        duration_ms = (time.perf_counter() - start) * 1000

        candidates = [self._row_to_content(row) for row in rows]
        self._metrics.record_candidate_fetch(duration_ms, len(candidates))
        self._log.debug(
            "candidates_fetched",
            user_id=user_id,
            order_hint=order_hint.value,
            count=len(candidates),
            duration_ms=round(duration_ms, 2),
        )
        return candidates

    def fetch_peer_engagement(
        self,
        user_id: str,
        topics: Iterable[str],
        content_ids: Iterable[str],
        max_peers: int = 200,
    ) -> dict[str, tuple[int, int]]:
        """Count reactions to candidates by users sharing a preferred topic.

        Args:
            user_id: Requesting user (excluded from peers).
            topics: Requesting user's preferred topics.
            content_ids: Candidate ids to count reactions for.
            max_peers: Maximum number of peers considered.

        Returns:
            Mapping of content id to (positive reactions, all reactions).
        """
        conn = self._ensure_connected()
        rows = conn.execute(
            """
            WITH peers AS (
                SELECT DISTINCT u.user_id
                FROM users u, json_each(u.preferred_topics_json) p
                WHERE p.key IN (SELECT value FROM json_each(:topics))
                  AND u.user_id != :user_id
                LIMIT :max_peers
            )
            SELECT i.content_id,
                   SUM(CASE WHEN i.action IN ('like', 'save', 'share') THEN 1 ELSE 0 END)
                       AS positive,
                   COUNT(*) AS total
            FROM interactions i
            JOIN peers ON peers.user_id = i.user_id
            WHERE i.content_id IN (SELECT value FROM json_each(:content_ids))
              AND i.action != 'view'
            GROUP BY i.content_id
            """,
            {
                "topics": json.dumps(sorted({t.lower() for t in topics})),
                "user_id": user_id,
                "max_peers": max_peers,
                "content_ids": json.dumps(sorted(set(content_ids))),
            },
        ).fetchall()
        return {row["content_id"]: (row["positive"], row["total"]) for row in rows}

    # ===== Domain Reputation =====

    def fetch_domain_reputation(
        self, domains: Iterable[str]
    ) -> dict[str, ReputationRecord]:
        """Batch lookup of reputation snapshots.

        Args:
            domains: Domains to look up.

        Returns:
            Mapping of domain to record (missing domains are absent).
        """
        conn = self._ensure_connected()
        rows = conn.execute(
            """
            SELECT * FROM domain_reputation
            WHERE domain IN (SELECT value FROM json_each(?))
            """,
            (json.dumps(sorted(set(domains))),),
        ).fetchall()
        return {row["domain"]: self._row_to_reputation(row) for row in rows}

    def upsert_reputation_record(self, record: ReputationRecord) -> None:
        """Replace a domain's reputation snapshot.

        Args:
            record: The new snapshot.
        """
        with self._transaction("upsert_reputation") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT OR REPLACE INTO domain_reputation (
                    domain, trust_score, reputation_score, is_blacklisted,
                    blacklist_reasons_json, total_count, approved_count,
                    rejected_count, flagged_count, computed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.domain,
                    record.trust_score,
                    record.reputation_score,
                    1 if record.is_blacklisted else 0,
                    json.dumps(record.blacklist_reasons),
                    record.total_count,
                    record.approved_count,
                    record.rejected_count,
                    record.flagged_count,
                    _ts(record.computed_at),
                ),
            )
            ctx.add_affected_rows(1)

    def get_domain_stats(self, domain: str) -> DomainStats | None:
        """Aggregate moderation and engagement statistics for one domain.

        Args:
            domain: Domain to aggregate.

        Returns:
            DomainStats, or None if the domain has no content.
        """
        rows = self._query_domain_stats("WHERE c.domain = ?", (domain.lower(),))
        return rows[0] if rows else None

    def list_domain_stats(self) -> list[DomainStats]:
        """Aggregate statistics for every domain with content."""
        return self._query_domain_stats("", ())

    def _query_domain_stats(
        self, where_sql: str, params: tuple[Any, ...]
    ) -> list[DomainStats]:
        """Run the per-domain aggregate query."""
        conn = self._ensure_connected()
        rows = conn.execute(
            f"""
            SELECT
                c.domain AS domain,
                COUNT(*) AS total_count,
                SUM(CASE WHEN c.moderation_status = 'approved' THEN 1 ELSE 0 END)
                    AS approved_count,
                SUM(CASE WHEN c.moderation_status = 'rejected' THEN 1 ELSE 0 END)
                    AS rejected_count,
                SUM(CASE WHEN c.flag_count > 0 THEN 1 ELSE 0 END) AS flagged_count,
                AVG(c.quality_score) AS avg_quality,
                AVG(
                    CASE WHEN c.views > 0
                         THEN MIN(1.0, (c.likes + c.saves + c.shares) * 1.0 / c.views)
                         ELSE 0.0 END
                ) AS avg_engagement,
                MAX(c.created_at) AS last_content_at
            FROM content c
            {where_sql}
            GROUP BY c.domain
            ORDER BY c.domain
            """,  # noqa: S608
            params,
        ).fetchall()
        return [
            DomainStats(
                domain=row["domain"],
                total_count=row["total_count"],
                approved_count=row["approved_count"],
                rejected_count=row["rejected_count"],
                flagged_count=row["flagged_count"],
                avg_quality=row["avg_quality"],
                avg_engagement=row["avg_engagement"],
                last_content_at=_parse_ts(row["last_content_at"]),
            )
            for row in rows
        ]

    def list_blacklisted_domains(self) -> list[str]:
        """Domains currently flagged as blacklisted."""
        conn = self._ensure_connected()
        rows = conn.execute(
            "SELECT domain FROM domain_reputation WHERE is_blacklisted = 1 ORDER BY domain"
        ).fetchall()
        return [row["domain"] for row in rows]

    def _row_to_reputation(self, row: sqlite3.Row) -> ReputationRecord:
        """Convert a domain_reputation row."""
        return ReputationRecord(
            domain=row["domain"],
            trust_score=row["trust_score"],
            reputation_score=row["reputation_score"],
            is_blacklisted=bool(row["is_blacklisted"]),
            blacklist_reasons=json.loads(row["blacklist_reasons_json"]),
            total_count=row["total_count"],
            approved_count=row["approved_count"],
            rejected_count=row["rejected_count"],
            flagged_count=row["flagged_count"],
            computed_at=datetime.fromisoformat(row["computed_at"]),
        )

    # ===== Trending =====

    def fetch_window_interactions(
        self, since: datetime, until: datetime
    ) -> list[tuple[str, InteractionAction, datetime]]:
        """Interactions on eligible content inside ``[since, until]``.

        Args:
            since: Window start.
            until: Window end.

        Returns:
            Tuples of (content id, action, occurred at).
        """
        conn = self._ensure_connected()
        rows = conn.execute(
            f"""
            SELECT i.content_id, i.action, i.created_at
            FROM interactions i
            JOIN content c ON c.id = i.content_id
            WHERE i.created_at >= ? AND i.created_at <= ?
              AND {_ELIGIBLE_CONTENT_SQL}
            """,  # noqa: S608
            (_ts(since), _ts(until)),
        ).fetchall()
        return [
            (
                row["content_id"],
                InteractionAction(row["action"]),
                datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def upsert_trending_records(
        self,
        window: TrendingWindow,
        records: Sequence[TrendingRecord],
        retention_cutoff: datetime,
    ) -> int:
        """Replace a window's trending snapshot and prune stale records.

        The window's previous records are deleted and the new ones inserted in
        one transaction, so re-running a computation is a full overwrite.

        Args:
            window: Window being replaced.
            records: New records for the window.
            retention_cutoff: Records computed before this time are deleted.

        Returns:
            Number of stale records pruned.
        """
        with self._transaction("upsert_trending") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                "DELETE FROM trending_records WHERE time_window = ?", (window.value,)
            )
            conn.executemany(
                """
                INSERT INTO trending_records (
                    content_id, time_window, score, velocity,
                    interaction_count, view_count, computed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        r.content_id,
                        window.value,
                        r.score,
                        r.velocity,
                        r.interaction_count,
                        r.view_count,
                        _ts(r.computed_at),
                    )
                    for r in records
                ],
            )
            cursor = conn.execute(
                "DELETE FROM trending_records WHERE computed_at < ?",
                (_ts(retention_cutoff),),
            )
            pruned = cursor.rowcount
            ctx.add_affected_rows(len(records) + pruned)

        if pruned:
            self._metrics.record_rows_pruned("trending_records", pruned)
        return pruned

    def get_trending(
        self, window: TrendingWindow, limit: int = 20
    ) -> list[tuple[TrendingRecord, ContentItem]]:
        """Read the cached trending list for a window.

        Args:
            window: Window to read.
            limit: Maximum entries.

        Returns:
            (record, content) pairs ordered by score descending.
        """
        conn = self._ensure_connected()
        rows = conn.execute(
            f"""
            SELECT c.*, t.score AS t_score, t.velocity AS t_velocity,
                   t.interaction_count AS t_interactions, t.view_count AS t_views,
                   t.computed_at AS t_computed_at
            FROM trending_records t
            JOIN content c ON c.id = t.content_id
            WHERE t.time_window = ? AND {_ELIGIBLE_CONTENT_SQL}
            ORDER BY t.score DESC, c.id
            LIMIT ?
            """,  # noqa: S608
            (window.value, limit),
        ).fetchall()
        return [
            (
                TrendingRecord(
                    content_id=row["id"],
                    window=window,
                    score=row["t_score"],
                    velocity=row["t_velocity"],
                    interaction_count=row["t_interactions"],
                    view_count=row["t_views"],
                    computed_at=datetime.fromisoformat(row["t_computed_at"]),
                ),
                self._row_to_content(row),
            )
            for row in rows
        ]

    def get_trending_scores(
        self, window: TrendingWindow, content_ids: Iterable[str]
    ) -> dict[str, float]:
        """Batch lookup of trending scores for candidates.

        Args:
            window: Window to read.
            content_ids: Candidate ids.

        Returns:
            Mapping of content id to trending score (missing ids are absent).
        """
        conn = self._ensure_connected()
        rows = conn.execute(
            """
            SELECT content_id, score FROM trending_records
            WHERE time_window = ?
              AND content_id IN (SELECT value FROM json_each(?))
            """,
            (window.value, json.dumps(sorted(set(content_ids)))),
        ).fetchall()
        return {row["content_id"]: row["score"] for row in rows}

    # ===== Similarity =====

    def fetch_topic_overlap_candidates(
        self, reference_id: str, topics: Iterable[str], limit: int = 500
    ) -> list[ContentItem]:
        """Eligible items sharing at least one topic with the reference.

        Uses the content_topics index instead of scanning every item.

        Args:
            reference_id: Item to exclude from the result.
            topics: Reference topics.
            limit: Maximum rows (most overlapping first).

        Returns:
            Candidate content items.
        """
        conn = self._ensure_connected()
        rows = conn.execute(
            f"""
            SELECT c.* FROM content c
            JOIN (
                SELECT content_id, COUNT(*) AS overlap
                FROM content_topics
                WHERE topic IN (SELECT value FROM json_each(:topics))
                GROUP BY content_id
            ) o ON o.content_id = c.id
            WHERE c.id != :reference_id AND {_ELIGIBLE_CONTENT_SQL}
            ORDER BY o.overlap DESC, c.quality_score DESC
            LIMIT :limit
            """,  # noqa: S608
            {
                "topics": json.dumps(sorted(set(topics))),
                "reference_id": reference_id,
                "limit": limit,
            },
        ).fetchall()
        return [self._row_to_content(row) for row in rows]

    def topic_document_frequencies(
        self, topics: Iterable[str]
    ) -> tuple[dict[str, int], int]:
        """Document frequency per topic over eligible content.

        Args:
            topics: Topics of interest.

        Returns:
            Tuple of (topic to document count, total eligible documents).
        """
        conn = self._ensure_connected()
        rows = conn.execute(
            f"""
            SELECT ct.topic AS topic, COUNT(*) AS df
            FROM content_topics ct
            JOIN content c ON c.id = ct.content_id
            WHERE ct.topic IN (SELECT value FROM json_each(?))
              AND {_ELIGIBLE_CONTENT_SQL}
            GROUP BY ct.topic
            """,  # noqa: S608
            (json.dumps(sorted(set(topics))),),
        ).fetchall()
        total = conn.execute(
            f"SELECT COUNT(*) FROM content c WHERE {_ELIGIBLE_CONTENT_SQL}"  # noqa: S608
        ).fetchone()[0]
        return {row["topic"]: row["df"] for row in rows}, total

    def get_similar_edges(
        self, reference_id: str, fresh_after: datetime
    ) -> list[SimilarEdge] | None:
        """Cached similar edges for a reference, if computed after ``fresh_after``.

        Args:
            reference_id: Reference content id.
            fresh_after: Oldest acceptable computed_at.

        Returns:
            Edges ordered by rank, or None when there is no fresh cache entry.
        """
        conn = self._ensure_connected()
        rows = conn.execute(
            f"""
            SELECT e.* FROM similar_edges e
            JOIN content c ON c.id = e.content_id
            WHERE e.reference_id = ? AND {_ELIGIBLE_CONTENT_SQL}
            ORDER BY e.rank
            """,  # noqa: S608
            (reference_id,),
        ).fetchall()
        if not rows:
            return None
        edges = [
            SimilarEdge(
                reference_id=row["reference_id"],
                content_id=row["content_id"],
                rank=row["rank"],
                similarity=row["similarity"],
                overall_score=row["overall_score"],
                computed_at=datetime.fromisoformat(row["computed_at"]),
            )
            for row in rows
        ]
        if edges[0].computed_at < fresh_after:
            return None
        return edges

    def replace_similar_edges(
        self, reference_id: str, edges: Sequence[SimilarEdge]
    ) -> None:
        """Replace the cached edge list of one reference item.

        Args:
            reference_id: Reference content id.
            edges: Complete new edge list.
        """
        with self._transaction("replace_similar_edges") as ctx:
            conn = self._ensure_connected()
            conn.execute("DELETE FROM similar_edges WHERE reference_id = ?", (reference_id,))
            conn.executemany(
                """
                INSERT INTO similar_edges (
                    reference_id, content_id, rank, similarity, overall_score, computed_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        e.reference_id,
                        e.content_id,
                        e.rank,
                        e.similarity,
                        e.overall_score,
                        _ts(e.computed_at),
                    )
                    for e in edges
                ],
            )
            ctx.add_affected_rows(len(edges))

    # ===== Experiments =====

    def insert_experiment(self, experiment: Experiment) -> None:
        """Insert a new experiment definition.

        Args:
            experiment: Definition to store.
        """
        self._write_experiment(experiment, "INSERT", "insert_experiment")

    def save_experiment(self, experiment: Experiment) -> None:
        """Replace a stored experiment definition.

        Args:
            experiment: Updated definition (same id).
        """
        self._write_experiment(experiment, "REPLACE", "save_experiment")

    def _write_experiment(self, experiment: Experiment, verb: str, op: str) -> None:
        """Insert or replace an experiments row."""
        with self._transaction(op) as ctx:
            conn = self._ensure_connected()
            conn.execute(
                f"""
                {verb} INTO experiments (
                    id, name, description, status, variants_json, min_sample_size,
                    significance_level, winner_variant, created_at, started_at, ended_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,  # noqa: S608
                (
                    experiment.id,
                    experiment.name,
                    experiment.description,
                    experiment.status.value,
                    json.dumps([v.model_dump() for v in experiment.variants]),
                    experiment.min_sample_size,
                    experiment.significance_level,
                    experiment.winner_variant,
                    _ts(experiment.created_at),
                    _ts(experiment.started_at) if experiment.started_at else None,
                    _ts(experiment.ended_at) if experiment.ended_at else None,
                ),
            )
            ctx.add_affected_rows(1)

    def get_experiment(self, experiment_id: str) -> Experiment | None:
        """Get an experiment by id."""
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT * FROM experiments WHERE id = ?", (experiment_id,)
        ).fetchone()
        return self._row_to_experiment(row) if row is not None else None

    def list_experiments(self, status: ExperimentStatus | None = None) -> list[Experiment]:
        """List experiments, optionally filtered by status (oldest first)."""
        conn = self._ensure_connected()
        if status is None:
            rows = conn.execute(
                "SELECT * FROM experiments ORDER BY created_at, id"
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM experiments WHERE status = ? ORDER BY created_at, id",
                (status.value,),
            ).fetchall()
        return [self._row_to_experiment(row) for row in rows]

    def delete_experiment(self, experiment_id: str) -> bool:
        """Delete an experiment and its dependent rows.

        Returns:
            True if a row was deleted.
        """
        with self._transaction("delete_experiment") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute("DELETE FROM experiments WHERE id = ?", (experiment_id,))
            ctx.add_affected_rows(cursor.rowcount)
            return cursor.rowcount > 0

    def count_assignments(self, experiment_id: str) -> int:
        """Number of users assigned to an experiment."""
        conn = self._ensure_connected()
        return conn.execute(
            "SELECT COUNT(*) FROM experiment_assignments WHERE experiment_id = ?",
            (experiment_id,),
        ).fetchone()[0]

    def get_assignment(
        self, user_id: str, experiment_id: str
    ) -> ExperimentAssignment | None:
        """Get a user's sticky assignment, if any."""
        conn = self._ensure_connected()
        row = conn.execute(
            """
            SELECT * FROM experiment_assignments
            WHERE user_id = ? AND experiment_id = ?
            """,
            (user_id, experiment_id),
        ).fetchone()
        if row is None:
            return None
        return ExperimentAssignment(
            user_id=row["user_id"],
            experiment_id=row["experiment_id"],
            variant=row["variant"],
            assigned_at=datetime.fromisoformat(row["assigned_at"]),
            method=row["method"],
        )

    def insert_assignment(self, assignment: ExperimentAssignment) -> None:
        """Insert an assignment unless one already exists.

        Args:
            assignment: Assignment to persist.

        Raises:
            AssignmentConflictError: If the (user, experiment) pair is taken.
        """
        with self._transaction("insert_assignment") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                INSERT INTO experiment_assignments (
                    user_id, experiment_id, variant, assigned_at, method
                ) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id, experiment_id) DO NOTHING
                """,
                (
                    assignment.user_id,
                    assignment.experiment_id,
                    assignment.variant,
                    _ts(assignment.assigned_at),
                    assignment.method,
                ),
            )
            ctx.add_affected_rows(cursor.rowcount)

        if cursor.rowcount == 0:
            raise AssignmentConflictError(assignment.user_id, assignment.experiment_id)

    def append_experiment_event(self, event: ExperimentEvent) -> None:
        """Append an event to the experiment log."""
        with self._transaction("append_experiment_event") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO experiment_events (
                    experiment_id, user_id, variant, event_type,
                    content_id, time_to_action_ms, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.experiment_id,
                    event.user_id,
                    event.variant,
                    event.event_type.value,
                    event.content_id,
                    event.time_to_action_ms,
                    _ts(event.created_at),
                ),
            )
            ctx.add_affected_rows(1)

    def fetch_variant_event_counts(self, experiment_id: str) -> list[VariantEventCounts]:
        """Per-variant counts over the event log.

        Args:
            experiment_id: Experiment to aggregate.

        Returns:
            One VariantEventCounts per variant with at least one event.
        """
        conn = self._ensure_connected()
        rows = conn.execute(
            """
            SELECT
                variant,
                COUNT(DISTINCT user_id) AS users,
                SUM(CASE WHEN event_type = 'discovery_shown' THEN 1 ELSE 0 END) AS shown,
                SUM(CASE WHEN event_type = 'liked' THEN 1 ELSE 0 END) AS liked,
                SUM(CASE WHEN event_type = 'saved' THEN 1 ELSE 0 END) AS saved,
                SUM(CASE WHEN event_type = 'shared' THEN 1 ELSE 0 END) AS shared,
                SUM(CASE WHEN event_type = 'skipped' THEN 1 ELSE 0 END) AS skipped,
                COUNT(DISTINCT CASE
                    WHEN event_type IN ('liked', 'saved', 'shared')
                    THEN user_id || ':' || COALESCE(content_id, '')
                END) AS engaged,
                COUNT(time_to_action_ms) AS tta_count,
                COALESCE(SUM(time_to_action_ms), 0) AS tta_sum,
                COALESCE(SUM(time_to_action_ms * time_to_action_ms), 0) AS tta_sum_sq
            FROM experiment_events
            WHERE experiment_id = ?
            GROUP BY variant
            ORDER BY variant
            """,
            (experiment_id,),
        ).fetchall()
        return [
            VariantEventCounts(
                variant=row["variant"],
                users=row["users"],
                shown=row["shown"],
                liked=row["liked"],
                saved=row["saved"],
                shared=row["shared"],
                skipped=row["skipped"],
                engaged=row["engaged"],
                time_to_action_count=row["tta_count"],
                time_to_action_sum=float(row["tta_sum"]),
                time_to_action_sum_sq=float(row["tta_sum_sq"]),
            )
            for row in rows
        ]

    def _row_to_experiment(self, row: sqlite3.Row) -> Experiment:
        """Convert an experiments row."""
        return Experiment(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            status=ExperimentStatus(row["status"]),
            variants=[Variant(**v) for v in json.loads(row["variants_json"])],
            min_sample_size=row["min_sample_size"],
            significance_level=row["significance_level"],
            winner_variant=row["winner_variant"],
            created_at=datetime.fromisoformat(row["created_at"]),
            started_at=_parse_ts(row["started_at"]),
            ended_at=_parse_ts(row["ended_at"]),
        )

    # ===== Retention =====

    def prune_interactions(self, retention_days: int, now: datetime | None = None) -> int:
        """Delete interactions older than the retention period.

        Args:
            retention_days: Days of history to keep.
            now: Current time (defaults to now).

        Returns:
            Number of rows deleted.
        """
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(days=retention_days)
        with self._transaction("prune_interactions") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "DELETE FROM interactions WHERE created_at < ?", (_ts(cutoff),)
            )
            ctx.add_affected_rows(cursor.rowcount)
            deleted = cursor.rowcount

        self._metrics.record_rows_pruned("interactions", deleted)
        self._log.info(
            "interactions_pruned",
            retention_days=retention_days,
            cutoff=cutoff.isoformat(),
            deleted=deleted,
        )
        return deleted

    def prune_similar_edges(self, older_than: datetime) -> int:
        """Delete cached similar edges computed before ``older_than``.

        Returns:
            Number of rows deleted.
        """
        with self._transaction("prune_similar_edges") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "DELETE FROM similar_edges WHERE computed_at < ?", (_ts(older_than),)
            )
            ctx.add_affected_rows(cursor.rowcount)
            deleted = cursor.rowcount

        self._metrics.record_rows_pruned("similar_edges", deleted)
        return deleted

    def get_stats(self) -> dict[str, int]:
        """Row counts per table, for the ``db-stats`` command."""
        conn = self._ensure_connected()
        tables = (
            "content",
            "users",
            "interactions",
            "domain_reputation",
            "trending_records",
            "similar_edges",
            "experiments",
            "experiment_assignments",
            "experiment_events",
        )
        stats = {
            table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]  # noqa: S608
            for table in tables
        }
        stats["schema_version"] = self.get_schema_version()
        return stats
