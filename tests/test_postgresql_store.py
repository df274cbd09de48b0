# ==============================================================================
# Tests for the PostgreSQL Analytics Store
# ==============================================================================
"""
Unit tests for PostgreSQLAnalyticsStore with a mocked connection pool.

Tests cover:
- One transaction per call: commit on success, rollback on error
- psycopg2 errors and rejected parameters surfaced as StoreUnavailableError
- Broken connections discarded from the pool
- Row mapping into pydantic records
"""

from unittest.mock import MagicMock

import psycopg2
import pytest

from sitestats.consumers.batch_processor import BatchProcessor
from sitestats.core.errors import StoreUnavailableError
from sitestats.core.tracker import Tracker
from sitestats.infrastructure.locks import LocalVisitorLocks
from sitestats.infrastructure.repositories.postgresql import (
    PostgreSQLAnalyticsStore,
    _add_connect_timeout,
)

from conftest import T0


@pytest.fixture()
def conn():
    conn = MagicMock()
    conn.closed = 0
    return conn


@pytest.fixture()
def cursor(conn):
    cursor = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return cursor


@pytest.fixture()
def pg_store(conn):
    store = PostgreSQLAnalyticsStore()
    store._pool = MagicMock()
    store._pool.getconn.return_value = conn
    return store


class TestConnectTimeout:
    """Tests for _add_connect_timeout()."""

    def test_added(self):
        assert _add_connect_timeout("postgresql://h/db").endswith("?connect_timeout=10")

    def test_appended_to_query(self):
        assert _add_connect_timeout("postgresql://h/db?sslmode=require").endswith(
            "&connect_timeout=10"
        )

    def test_kept(self):
        url = "postgresql://h/db?connect_timeout=3"
        assert _add_connect_timeout(url) == url


class TestTransactions:
    """Tests for the per-call transaction wrapper."""

    def test_commit_and_return_connection(self, pg_store, conn, cursor):
        cursor.rowcount = 1
        assert pg_store.close_session(1, T0, 10) is True
        conn.commit.assert_called_once()
        pg_store._pool.putconn.assert_called_once_with(conn, close=False)

    def test_close_of_closed_row_is_false(self, pg_store, cursor):
        cursor.rowcount = 0
        assert pg_store.close_page_view(1, T0, None, None) is False

    def test_query_error_wrapped(self, pg_store, conn, cursor):
        cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")
        with pytest.raises(StoreUnavailableError, match="query failed"):
            pg_store.get_visitor("v1")
        conn.rollback.assert_called_once()
        pg_store._pool.putconn.assert_called_once_with(conn, close=False)

    def test_broken_connection_discarded(self, pg_store, conn, cursor):
        def die(*args):
            conn.closed = 2
            raise psycopg2.InterfaceError("connection already closed")

        cursor.execute.side_effect = die
        with pytest.raises(StoreUnavailableError):
            pg_store.increment_visit_count(1)
        conn.rollback.assert_not_called()
        pg_store._pool.putconn.assert_called_once_with(conn, close=True)

    def test_pool_exhausted(self, pg_store):
        pg_store._pool.getconn.side_effect = psycopg2.pool.PoolError("connection pool exhausted")
        with pytest.raises(StoreUnavailableError, match="unavailable"):
            pg_store.get_visitor("v1")

    def test_not_connected(self):
        with pytest.raises(RuntimeError, match="connect"):
            PostgreSQLAnalyticsStore().get_visitor("v1")

    def test_rejected_parameters_wrapped(self, pg_store, conn, cursor):
        def adapt(query, params):
            for value in params:
                if isinstance(value, str):
                    psycopg2.extensions.QuotedString(value).getquoted()

        cursor.execute.side_effect = adapt
        with pytest.raises(StoreUnavailableError, match="rejected"):
            pg_store.create_page_view(1, "/a\x00b", T0)
        conn.rollback.assert_called_once()
        pg_store._pool.putconn.assert_called_once_with(conn, close=False)

    def test_rejected_parameters_count_as_failed_event(self, pg_store, cursor):
        cursor.execute.side_effect = ValueError(
            "A string literal cannot contain NUL (0x00) characters."
        )
        processor = BatchProcessor(Tracker(pg_store, LocalVisitorLocks()))
        result = processor.process_batch([{"visitorId": "v1", "eventType": "pageview"}])
        assert result.failed == 1
        assert result.accepted == 0


class TestRowMapping:
    """Rows come back as pydantic records."""

    def test_upsert_returns_visitor(self, pg_store, cursor):
        cursor.fetchone.return_value = {
            "id": 7,
            "token": "v1",
            "country": "DE",
            "first_seen": T0,
            "last_seen": T0,
            "visit_count": 0,
        }
        visitor = pg_store.upsert_visitor("v1", {"country": "DE"}, T0)
        assert visitor.id == 7
        assert visitor.token == "v1"

        sql, params = cursor.execute.call_args.args
        assert "ON CONFLICT (token) DO UPDATE" in sql
        assert params["country"] == "DE"
        assert params["browser"] is None

    def test_get_visitors_empty_skips_query(self, pg_store, cursor):
        assert pg_store.get_visitors([]) == []
        cursor.execute.assert_not_called()

    def test_missing_visitor(self, pg_store, cursor):
        cursor.fetchone.return_value = None
        assert pg_store.get_visitor("nobody") is None
