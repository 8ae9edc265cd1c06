"""
PostgreSQL connection pool and store implementations.
Each read-modify-write runs in a single transaction so concurrent workers
see atomic transitions, version numbers and rate-limit increments.
"""
import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import pool
from psycopg2.extras import Json, RealDictCursor

from submission_moderation.config import Settings
from submission_moderation.errors import (
    ContentNotFoundError, ItemNotFoundError, TransitionConflictError
)
from submission_moderation.lib.stores import (
    ContentStore, ModerationItemStore, RateLimitStore, VersionStore
)
from submission_moderation.models.audit import ContentVersion
from submission_moderation.models.enums import QueueStatus, ReviewPriority
from submission_moderation.models.queue import ModerationItem
from submission_moderation.models.rate_limit import RateLimitEntry

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS content_records (
    content_type TEXT NOT NULL,
    id TEXT NOT NULL,
    status TEXT,
    owner_id TEXT,
    data JSONB NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (content_type, id)
);

CREATE TABLE IF NOT EXISTS moderation_items (
    id TEXT PRIMARY KEY,
    content_type TEXT NOT NULL,
    content_id TEXT NOT NULL,
    status TEXT NOT NULL,
    priority SMALLINT NOT NULL,
    data JSONB NOT NULL,
    created_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_moderation_items_queue
    ON moderation_items (status, priority DESC, created_at DESC);

CREATE TABLE IF NOT EXISTS content_version_counters (
    entity_id TEXT PRIMARY KEY,
    current_version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS content_versions (
    id TEXT PRIMARY KEY,
    entity_id TEXT NOT NULL,
    version INTEGER NOT NULL,
    change_type TEXT NOT NULL,
    changed_by TEXT NOT NULL,
    change_summary TEXT NOT NULL,
    changes JSONB NOT NULL,
    previous_data JSONB,
    created_at TIMESTAMP NOT NULL,
    UNIQUE (entity_id, version)
);

CREATE TABLE IF NOT EXISTS rate_limits (
    identifier TEXT NOT NULL,
    action TEXT NOT NULL,
    count INTEGER NOT NULL,
    window_start DOUBLE PRECISION NOT NULL,
    PRIMARY KEY (identifier, action)
);
"""


def _json(value: Any) -> Json:
    return Json(value, dumps=lambda v: json.dumps(v, default=str))


class DatabaseConnection:
    """PostgreSQL connection pool manager"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings.from_env()
        self.connection_pool = None
        self._initialize_pool()

    def _initialize_pool(self):
        """Create connection pool"""
        try:
            self.connection_pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=1,
                maxconn=20,
                host=self.settings.db_host,
                port=self.settings.db_port,
                database=self.settings.db_name,
                user=self.settings.db_user,
                password=self.settings.db_password
            )
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.error(f"Failed to create connection pool: {e}")
            raise

    @contextmanager
    def get_cursor(self, cursor_factory=RealDictCursor):
        """Get database cursor with automatic connection handling"""
        conn = self.connection_pool.getconn()
        cursor = None
        try:
            cursor = conn.cursor(cursor_factory=cursor_factory)
            yield cursor
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            if cursor is not None:
                cursor.close()
            self.connection_pool.putconn(conn)

    def create_schema(self):
        with self.get_cursor() as cursor:
            cursor.execute(SCHEMA_SQL)
        logger.info("Database schema ensured")

    def close(self):
        """Close all connections in pool"""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")


class PostgresContentStore(ContentStore):
    """Listings and reviews as JSONB documents."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def get(self, content_type, content_id):
        with self.db.get_cursor() as cursor:
            cursor.execute(
                "SELECT data FROM content_records WHERE content_type = %s AND id = %s",
                (content_type.value, content_id),
            )
            row = cursor.fetchone()
            return dict(row["data"]) if row else None

    def put(self, content_type, record):
        with self.db.get_cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO content_records (content_type, id, status, owner_id, data)
                VALUES (%(content_type)s, %(id)s, %(status)s, %(owner_id)s, %(data)s)
                ON CONFLICT (content_type, id) DO UPDATE SET
                    status = EXCLUDED.status,
                    owner_id = EXCLUDED.owner_id,
                    data = EXCLUDED.data,
                    updated_at = CURRENT_TIMESTAMP
                """,
                {
                    "content_type": content_type.value,
                    "id": record["id"],
                    "status": record.get("status"),
                    "owner_id": record.get("owner_id"),
                    "data": _json(record),
                },
            )
        return dict(record)

    def set_status(self, content_type, content_id, status):
        with self.db.get_cursor() as cursor:
            cursor.execute(
                """
                UPDATE content_records SET
                    status = %(status)s,
                    data = jsonb_set(data, '{status}', to_jsonb(%(status)s::text)),
                    updated_at = CURRENT_TIMESTAMP
                WHERE content_type = %(content_type)s AND id = %(id)s
                RETURNING data
                """,
                {"status": status, "content_type": content_type.value, "id": content_id},
            )
            row = cursor.fetchone()
        if row is None:
            raise ContentNotFoundError(content_type.value, content_id)
        return dict(row["data"])

    def claim_owner(self, content_type, content_id, owner_id):
        with self.db.get_cursor() as cursor:
            cursor.execute(
                """
                UPDATE content_records SET
                    owner_id = %(owner_id)s,
                    data = jsonb_set(data, '{owner_id}', to_jsonb(%(owner_id)s::text)),
                    updated_at = CURRENT_TIMESTAMP
                WHERE content_type = %(content_type)s AND id = %(id)s AND owner_id IS NULL
                RETURNING id
                """,
                {"owner_id": owner_id, "content_type": content_type.value, "id": content_id},
            )
            if cursor.fetchone():
                return True
            cursor.execute(
                "SELECT 1 FROM content_records WHERE content_type = %s AND id = %s",
                (content_type.value, content_id),
            )
            if cursor.fetchone() is None:
                raise ContentNotFoundError(content_type.value, content_id)
            return False


class PostgresModerationItemStore(ModerationItemStore):
    """Queue items; transitions lock the row for the duration of the check."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def add(self, item):
        with self.db.get_cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO moderation_items (id, content_type, content_id, status, priority, data, created_at)
                VALUES (%(id)s, %(content_type)s, %(content_id)s, %(status)s, %(priority)s, %(data)s, %(created_at)s)
                """,
                self._row(item),
            )
        return item

    def get(self, item_id):
        with self.db.get_cursor() as cursor:
            cursor.execute("SELECT data FROM moderation_items WHERE id = %s", (item_id,))
            row = cursor.fetchone()
        return ModerationItem.model_validate(row["data"]) if row else None

    def transition(self, item_id, updates):
        with self.db.get_cursor() as cursor:
            cursor.execute("SELECT data FROM moderation_items WHERE id = %s FOR UPDATE", (item_id,))
            row = cursor.fetchone()
            if row is None:
                raise ItemNotFoundError(item_id)
            item = ModerationItem.model_validate(row["data"])
            if item.status is not QueueStatus.PENDING:
                raise TransitionConflictError(item_id, item.status.value)

            updated = item.model_copy(update=updates)
            cursor.execute(
                """
                UPDATE moderation_items SET status = %(status)s, data = %(data)s
                WHERE id = %(id)s AND status = 'PENDING'
                """,
                self._row(updated),
            )
        return updated

    def restore(self, item):
        with self.db.get_cursor() as cursor:
            cursor.execute(
                "UPDATE moderation_items SET status = %(status)s, data = %(data)s WHERE id = %(id)s",
                self._row(item),
            )
        return item

    def list(self, status=None, content_type=None, priority=None):
        query = "SELECT data FROM moderation_items WHERE TRUE"
        params: List[Any] = []
        if status is not None:
            query += " AND status = %s"
            params.append(QueueStatus(status).value)
        if content_type is not None:
            query += " AND content_type = %s"
            params.append(content_type.value)
        if priority is not None:
            query += " AND priority = %s"
            params.append(int(priority))
        query += " ORDER BY priority DESC, created_at DESC"

        with self.db.get_cursor() as cursor:
            cursor.execute(query, tuple(params))
            rows = cursor.fetchall()
        return [ModerationItem.model_validate(row["data"]) for row in rows]

    def counts(self):
        with self.db.get_cursor() as cursor:
            cursor.execute(
                "SELECT status, priority, COUNT(*) AS cnt FROM moderation_items GROUP BY status, priority"
            )
            rows = cursor.fetchall()
        return {(row["status"], ReviewPriority(row["priority"]).name): int(row["cnt"]) for row in rows}

    @staticmethod
    def _row(item: ModerationItem) -> Dict[str, Any]:
        return {
            "id": item.id,
            "content_type": item.content_type.value,
            "content_id": item.content_id,
            "status": item.status.value,
            "priority": int(item.priority),
            "data": _json(item.model_dump(mode="json")),
            "created_at": item.created_at,
        }


class PostgresVersionStore(VersionStore):
    """
    Version numbers come from a per-entity counter row incremented in the
    same transaction as the insert, so a failed insert consumes no number.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def append(self, entity_id, build):
        with self.db.get_cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO content_version_counters (entity_id, current_version)
                VALUES (%s, 1)
                ON CONFLICT (entity_id) DO UPDATE SET
                    current_version = content_version_counters.current_version + 1
                RETURNING current_version
                """,
                (entity_id,),
            )
            record = build(int(cursor.fetchone()["current_version"]))
            cursor.execute(
                """
                INSERT INTO content_versions (
                    id, entity_id, version, change_type, changed_by,
                    change_summary, changes, previous_data, created_at
                )
                VALUES (
                    %(id)s, %(entity_id)s, %(version)s, %(change_type)s, %(changed_by)s,
                    %(change_summary)s, %(changes)s, %(previous_data)s, %(created_at)s
                )
                """,
                {
                    "id": record.id,
                    "entity_id": record.entity_id,
                    "version": record.version,
                    "change_type": record.change_type.value,
                    "changed_by": record.changed_by,
                    "change_summary": record.change_summary,
                    "changes": _json(record.changes),
                    "previous_data": _json(record.previous_data) if record.previous_data is not None else None,
                    "created_at": record.created_at,
                },
            )
        return record

    def list(self, entity_id):
        with self.db.get_cursor() as cursor:
            cursor.execute(
                """
                SELECT id, entity_id, version, change_type, changed_by,
                       change_summary, changes, previous_data, created_at
                FROM content_versions
                WHERE entity_id = %s
                ORDER BY version ASC
                """,
                (entity_id,),
            )
            rows = cursor.fetchall()
        return [ContentVersion.model_validate(dict(row)) for row in rows]


class PostgresRateLimitStore(RateLimitStore):
    """Shared counters; the window check and increment are one upsert."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def hit(self, identifier, action, now, window_seconds):
        with self.db.get_cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO rate_limits (identifier, action, count, window_start)
                VALUES (%(identifier)s, %(action)s, 1, %(now)s)
                ON CONFLICT (identifier, action) DO UPDATE SET
                    count = CASE
                        WHEN %(now)s - rate_limits.window_start > %(window)s THEN 1
                        ELSE rate_limits.count + 1
                    END,
                    window_start = CASE
                        WHEN %(now)s - rate_limits.window_start > %(window)s THEN %(now)s
                        ELSE rate_limits.window_start
                    END
                RETURNING identifier, action, count, window_start
                """,
                {"identifier": identifier, "action": action, "now": now, "window": window_seconds},
            )
            row = cursor.fetchone()
        return RateLimitEntry(**row)

    def cleanup(self, now, windows):
        removed = 0
        with self.db.get_cursor() as cursor:
            for action, window in windows.items():
                cursor.execute(
                    "DELETE FROM rate_limits WHERE action = %s AND %s - window_start > %s",
                    (action, now, window),
                )
                removed += cursor.rowcount
        return removed
