# ==============================================================================
# PostgreSQL Analytics Store
# ==============================================================================
"""
PostgreSQL implementation of AnalyticsStore.

Uses a psycopg2 ThreadedConnectionPool so concurrent ingestion threads each
borrow their own connection. Every store call is one short transaction:
- visitor resolution is a single INSERT ... ON CONFLICT (token) DO UPDATE
- closing a session or page view is an UPDATE guarded by `IS NULL`, so a
  replayed leave/end beacon or a concurrent reaper pass is a no-op

Any psycopg2.Error is rolled back and re-raised as StoreUnavailableError.
Tables live in PG_SCHEMA_NAME (see schema/init.sql).
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from sitestats.base.store import AnalyticsStore
from sitestats.core.errors import StoreUnavailableError
from sitestats.core.models import DeviceInfo, PageView, Visitor, VisitorSession
from sitestats.utils.config import Settings, get_settings
from sitestats.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_light, retry_standard

logger = logging.getLogger(__name__)

# Connection timeout
CONNECT_TIMEOUT = 10

# Visitor columns written from event device attributes
VISITOR_ATTRIBUTES = tuple(DeviceInfo.model_fields)


def _add_connect_timeout(conn_string: str) -> str:
    """Add connect_timeout to connection string if not present."""
    if "connect_timeout" not in conn_string:
        separator = "&" if "?" in conn_string else "?"
        return f"{conn_string}{separator}connect_timeout={CONNECT_TIMEOUT}"
    return conn_string


class PostgreSQLAnalyticsStore(AnalyticsStore):
    """
    PostgreSQL implementation of AnalyticsStore.

    Timestamps are stored as TIMESTAMPTZ and sessions are pinned to UTC so
    rows come back as UTC-aware datetimes.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the store.

        Args:
            settings: Application settings. If None, uses get_settings().
        """
        self._settings = settings or get_settings()
        self._pool: ThreadedConnectionPool | None = None
        self._schema = self._settings.postgres.schema_name

    @property
    def schema(self) -> str:
        """Get the database schema name."""
        return self._schema

    @retry_standard(POSTGRES_RETRY_EXCEPTIONS, logger)
    def connect(self) -> None:
        """Open the connection pool (retried with exponential backoff)."""
        pg = self._settings.postgres
        self._pool = ThreadedConnectionPool(
            pg.pool_min_connections,
            pg.pool_max_connections,
            _add_connect_timeout(pg.connection_string),
            options="-c timezone=UTC",
        )
        logger.info(
            "PostgreSQLAnalyticsStore connected (schema=%s, pool=%d-%d)",
            self._schema,
            pg.pool_min_connections,
            pg.pool_max_connections,
        )

    def close(self) -> None:
        """Close all pooled connections."""
        if self._pool:
            try:
                self._pool.closeall()
                logger.info("PostgreSQLAnalyticsStore connections closed")
            except psycopg2.Error as e:
                logger.warning("Error closing connection pool: %s", e)
            finally:
                self._pool = None

    @contextmanager
    def _cursor(self) -> Iterator[RealDictCursor]:
        """Borrow a pooled connection for one transaction."""
        if self._pool is None:
            raise RuntimeError("PostgreSQL connection not established. Call connect() first.")

        try:
            conn = self._pool.getconn()
        except psycopg2.Error as e:
            raise StoreUnavailableError(f"PostgreSQL unavailable: {e}") from e

        broken = False
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as e:
            broken = conn.closed != 0
            if not broken:
                conn.rollback()
            raise StoreUnavailableError(f"PostgreSQL query failed: {e}") from e
        except ValueError as e:
            # psycopg2 refuses some parameters (NUL bytes) before sending the query
            if conn.closed == 0:
                conn.rollback()
            raise StoreUnavailableError(f"PostgreSQL rejected query parameters: {e}") from e
        except BaseException:
            if conn.closed == 0:
                conn.rollback()
            raise
        finally:
            self._pool.putconn(conn, close=broken)

    # ==========================================================================
    # Visitors
    # ==========================================================================

    def upsert_visitor(self, token: str, attributes: dict, now: datetime) -> Visitor:
        params = {name: attributes.get(name) for name in VISITOR_ATTRIBUTES}
        params.update(token=token, now=now)

        columns = ", ".join(VISITOR_ATTRIBUTES)
        values = ", ".join(f"%({name})s" for name in VISITOR_ATTRIBUTES)
        # Attributes absent from the event (NULL) keep their stored value
        merges = ",\n".join(
            f"{name} = COALESCE(EXCLUDED.{name}, v.{name})" for name in VISITOR_ATTRIBUTES
        )

        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO {self._schema}.visitors AS v
                    (token, first_seen, last_seen, visit_count, {columns})
                VALUES
                    (%(token)s, %(now)s, %(now)s, 0, {values})
                ON CONFLICT (token) DO UPDATE SET
                    last_seen = GREATEST(v.last_seen, EXCLUDED.last_seen),
                    {merges}
                RETURNING *
                """,
                params,
            )
            return Visitor.model_validate(cur.fetchone())

    def increment_visit_count(self, visitor_id: int) -> None:
        with self._cursor() as cur:
            cur.execute(
                f"UPDATE {self._schema}.visitors SET visit_count = visit_count + 1 WHERE id = %s",
                (visitor_id,),
            )

    def get_visitor(self, token: str) -> Optional[Visitor]:
        with self._cursor() as cur:
            cur.execute(f"SELECT * FROM {self._schema}.visitors WHERE token = %s", (token,))
            row = cur.fetchone()
        return Visitor.model_validate(row) if row else None

    def get_visitors(self, visitor_ids: list[int]) -> list[Visitor]:
        if not visitor_ids:
            return []
        with self._cursor() as cur:
            cur.execute(
                f"SELECT * FROM {self._schema}.visitors WHERE id = ANY(%s) ORDER BY id",
                (list(visitor_ids),),
            )
            return [Visitor.model_validate(row) for row in cur.fetchall()]

    def list_visitors(
        self,
        offset: int,
        limit: int,
        first_seen_start: Optional[datetime] = None,
        first_seen_end: Optional[datetime] = None,
    ) -> tuple[list[Visitor], int]:
        conditions = []
        params: dict = {"offset": offset, "limit": limit}
        if first_seen_start is not None:
            conditions.append("v.first_seen >= %(first_seen_start)s")
            params["first_seen_start"] = first_seen_start
        if first_seen_end is not None:
            conditions.append("v.first_seen <= %(first_seen_end)s")
            params["first_seen_end"] = first_seen_end
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        with self._cursor() as cur:
            cur.execute(f"SELECT COUNT(*) AS total FROM {self._schema}.visitors v {where}", params)
            total = cur.fetchone()["total"]
            cur.execute(
                f"""
                SELECT v.*,
                    (SELECT COUNT(*) FROM {self._schema}.sessions s
                     WHERE s.visitor_id = v.id) AS session_count
                FROM {self._schema}.visitors v
                {where}
                ORDER BY v.last_seen DESC, v.id DESC
                LIMIT %(limit)s OFFSET %(offset)s
                """,
                params,
            )
            items = [Visitor.model_validate(row) for row in cur.fetchall()]
        return items, total

    # ==========================================================================
    # Sessions
    # ==========================================================================

    def find_latest_session(self, visitor_id: int) -> Optional[VisitorSession]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT * FROM {self._schema}.sessions
                WHERE visitor_id = %s
                ORDER BY start_time DESC, id DESC
                LIMIT 1
                """,
                (visitor_id,),
            )
            row = cur.fetchone()
        return VisitorSession.model_validate(row) if row else None

    def find_open_session(
        self, visitor_id: int, started_after: Optional[datetime] = None
    ) -> Optional[VisitorSession]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT * FROM {self._schema}.sessions
                WHERE visitor_id = %(visitor_id)s
                  AND end_time IS NULL
                  AND (%(started_after)s::timestamptz IS NULL OR start_time >= %(started_after)s)
                ORDER BY start_time DESC, id DESC
                LIMIT 1
                """,
                {"visitor_id": visitor_id, "started_after": started_after},
            )
            row = cur.fetchone()
        return VisitorSession.model_validate(row) if row else None

    def create_session(
        self,
        visitor_id: int,
        start_time: datetime,
        referrer: Optional[str] = None,
        utm_source: Optional[str] = None,
        utm_medium: Optional[str] = None,
        utm_campaign: Optional[str] = None,
    ) -> VisitorSession:
        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO {self._schema}.sessions
                    (visitor_id, start_time, referrer, utm_source, utm_medium, utm_campaign)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (visitor_id, start_time, referrer, utm_source, utm_medium, utm_campaign),
            )
            return VisitorSession.model_validate(cur.fetchone())

    def close_session(self, session_id: int, end_time: datetime, duration: int) -> bool:
        with self._cursor() as cur:
            cur.execute(
                f"""
                UPDATE {self._schema}.sessions
                SET end_time = %s, duration = %s
                WHERE id = %s AND end_time IS NULL
                """,
                (end_time, duration, session_id),
            )
            return cur.rowcount == 1

    def find_sessions(self, start: datetime, end: datetime) -> list[VisitorSession]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT s.*,
                    (SELECT COUNT(*) FROM {self._schema}.page_views pv
                     WHERE pv.session_id = s.id) AS page_view_count
                FROM {self._schema}.sessions s
                WHERE s.start_time BETWEEN %s AND %s
                ORDER BY s.start_time, s.id
                """,
                (start, end),
            )
            return [VisitorSession.model_validate(row) for row in cur.fetchall()]

    def recent_sessions(self, visitor_id: int, limit: int) -> list[VisitorSession]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT * FROM {self._schema}.sessions
                WHERE visitor_id = %s
                ORDER BY start_time DESC, id DESC
                LIMIT %s
                """,
                (visitor_id, limit),
            )
            return [VisitorSession.model_validate(row) for row in cur.fetchall()]

    def find_lapsed_sessions(self, started_before: datetime, limit: int) -> list[VisitorSession]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT * FROM {self._schema}.sessions
                WHERE end_time IS NULL AND start_time < %s
                ORDER BY start_time, id
                LIMIT %s
                """,
                (started_before, limit),
            )
            return [VisitorSession.model_validate(row) for row in cur.fetchall()]

    def last_activity(self, session_id: int) -> Optional[datetime]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT GREATEST(MAX(enter_time), MAX(leave_time)) AS last_activity
                FROM {self._schema}.page_views
                WHERE session_id = %s
                """,
                (session_id,),
            )
            row = cur.fetchone()
        return row["last_activity"] if row else None

    # ==========================================================================
    # Page Views
    # ==========================================================================

    def create_page_view(
        self,
        session_id: int,
        path: str,
        enter_time: datetime,
        title: Optional[str] = None,
        article_id: Optional[str] = None,
    ) -> PageView:
        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO {self._schema}.page_views
                    (session_id, path, title, article_id, enter_time)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING *
                """,
                (session_id, path, title, article_id, enter_time),
            )
            return PageView.model_validate(cur.fetchone())

    def find_open_page_view(self, session_id: int, path: str) -> Optional[PageView]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT * FROM {self._schema}.page_views
                WHERE session_id = %s AND path = %s AND leave_time IS NULL
                ORDER BY enter_time DESC, id DESC
                LIMIT 1
                """,
                (session_id, path),
            )
            row = cur.fetchone()
        return PageView.model_validate(row) if row else None

    def close_page_view(
        self,
        page_view_id: int,
        leave_time: datetime,
        duration: Optional[int],
        scroll_depth: Optional[int],
    ) -> bool:
        with self._cursor() as cur:
            cur.execute(
                f"""
                UPDATE {self._schema}.page_views
                SET leave_time = %s, duration = %s, scroll_depth = %s
                WHERE id = %s AND leave_time IS NULL
                """,
                (leave_time, duration, scroll_depth, page_view_id),
            )
            return cur.rowcount == 1

    def find_page_views(self, start: datetime, end: datetime) -> list[PageView]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT pv.*, s.visitor_id
                FROM {self._schema}.page_views pv
                JOIN {self._schema}.sessions s ON s.id = pv.session_id
                WHERE pv.enter_time BETWEEN %s AND %s
                ORDER BY pv.enter_time, pv.id
                """,
                (start, end),
            )
            return [PageView.model_validate(row) for row in cur.fetchall()]

    def page_views_for_sessions(self, session_ids: list[int]) -> list[PageView]:
        if not session_ids:
            return []
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT * FROM {self._schema}.page_views
                WHERE session_id = ANY(%s)
                ORDER BY enter_time, id
                """,
                (list(session_ids),),
            )
            return [PageView.model_validate(row) for row in cur.fetchall()]

    def recent_page_views(self, since: datetime) -> list[PageView]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT pv.*, s.visitor_id
                FROM {self._schema}.page_views pv
                JOIN {self._schema}.sessions s ON s.id = pv.session_id
                WHERE pv.enter_time >= %s
                ORDER BY pv.enter_time DESC, pv.id DESC
                """,
                (since,),
            )
            return [PageView.model_validate(row) for row in cur.fetchall()]


@retry_light(POSTGRES_RETRY_EXCEPTIONS, logger)
def _probe(conn_string: str) -> None:
    conn = psycopg2.connect(_add_connect_timeout(conn_string))
    conn.close()


def check_postgresql_connection(settings: Settings | None = None) -> bool:
    """
    Check if PostgreSQL is reachable (3 attempts, ~7 seconds).

    Used by CLI commands to fail fast before the pool connects with the
    standard, much longer retry.

    Returns:
        True if connection successful, False otherwise
    """
    settings = settings or get_settings()
    try:
        _probe(settings.postgres.connection_string)
        return True
    except psycopg2.Error:
        return False
