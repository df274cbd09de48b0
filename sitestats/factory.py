# ==============================================================================
# Component Factory
# ==============================================================================
"""
Builds the configured store, visitor locks, tracker, aggregation engine and
reaper from Settings.

TRACKING_STORE_BACKEND selects postgresql (default) or memory;
TRACKING_LOCK_BACKEND selects local (default) or valkey.
"""

import logging
from typing import Optional

from sitestats.base.locks import VisitorLocks
from sitestats.base.store import AnalyticsStore
from sitestats.core.aggregation import AggregationEngine
from sitestats.core.clock import Clock
from sitestats.core.errors import StoreUnavailableError
from sitestats.core.reaper import SessionReaper
from sitestats.core.tracker import Tracker
from sitestats.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)


def get_store(
    settings: Optional[Settings] = None, connect: bool = True, fail_fast: bool = False
) -> AnalyticsStore:
    """
    Create the configured analytics store.

    Args:
        settings: Application settings. If None, uses get_settings().
        connect: Connect before returning (PostgreSQL retries with backoff)
        fail_fast: Probe PostgreSQL with the light retry first, so an
                   interactive command gives up in seconds, not a minute

    Raises:
        StoreUnavailableError: If fail_fast is set and PostgreSQL is unreachable
    """
    settings = settings or get_settings()
    backend = settings.tracking.store_backend

    if backend == "memory":
        from sitestats.infrastructure.repositories.memory import InMemoryAnalyticsStore

        store: AnalyticsStore = InMemoryAnalyticsStore()
    elif backend == "postgresql":
        from sitestats.infrastructure.repositories.postgresql import (
            PostgreSQLAnalyticsStore,
            check_postgresql_connection,
        )

        if connect and fail_fast and not check_postgresql_connection(settings):
            raise StoreUnavailableError("PostgreSQL is not reachable")

        store = PostgreSQLAnalyticsStore(settings)
    else:
        raise ValueError(f"Unknown store backend: {backend}")

    if connect:
        store.connect()
    return store


def get_visitor_locks(settings: Optional[Settings] = None) -> VisitorLocks:
    """Create the configured per-visitor lock provider."""
    settings = settings or get_settings()
    backend = settings.tracking.lock_backend

    if backend == "local":
        from sitestats.infrastructure.locks.local import LocalVisitorLocks

        return LocalVisitorLocks(wait_seconds=settings.valkey.lock_wait_seconds)
    if backend == "valkey":
        from sitestats.infrastructure.locks.valkey import ValkeyVisitorLocks

        return ValkeyVisitorLocks.from_settings(settings.valkey)
    raise ValueError(f"Unknown lock backend: {backend}")


def build_tracker(
    store: AnalyticsStore,
    locks: VisitorLocks,
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> Tracker:
    settings = settings or get_settings()
    return Tracker(
        store,
        locks,
        timeout_minutes=settings.tracking.session_timeout_minutes,
        clock=clock,
    )


def build_engine(
    store: AnalyticsStore,
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> AggregationEngine:
    settings = settings or get_settings()
    tracking = settings.tracking
    return AggregationEngine(
        store,
        clock=clock,
        report_timezone=tracking.report_timezone,
        default_range_days=tracking.default_range_days,
        realtime_limit=tracking.realtime_limit,
        recent_sessions_limit=tracking.recent_sessions_limit,
    )


def build_reaper(
    store: AnalyticsStore,
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> SessionReaper:
    settings = settings or get_settings()
    return SessionReaper(
        store,
        timeout_minutes=settings.tracking.session_timeout_minutes,
        clock=clock,
    )
