# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- A controllable clock (frozen, advanced explicitly by tests)
- In-memory analytics store, local visitor locks, tracker and engine
- A `track` helper that sends camelCase payloads like the browser tracker
- fakeredis client for Valkey lock tests (clean state per test)
"""

from datetime import UTC, datetime, timedelta

import fakeredis
import pytest

from sitestats.core.aggregation import AggregationEngine
from sitestats.core.tracker import Tracker
from sitestats.infrastructure.locks.local import LocalVisitorLocks
from sitestats.infrastructure.repositories.memory import InMemoryAnalyticsStore

# Monday, so week buckets start on T0's date
T0 = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class FakeClock:
    """Clock that only moves when a test tells it to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store():
    store = InMemoryAnalyticsStore()
    store.connect()
    yield store
    store.close()


@pytest.fixture()
def locks():
    return LocalVisitorLocks(wait_seconds=1.0)


@pytest.fixture()
def tracker(store, locks, clock):
    return Tracker(store, locks, timeout_minutes=30, clock=clock)


@pytest.fixture()
def engine(store, clock):
    return AggregationEngine(store, clock=clock)


@pytest.fixture()
def track(tracker):
    """Send one event: track("v1", "pageview", path="/a", referer="...")."""

    def _track(visitor_id: str, event_type: str = "pageview", **fields):
        payload = {"visitorId": visitor_id, "eventType": event_type, **fields}
        return tracker.track(payload)

    return _track


@pytest.fixture()
def fake_redis():
    """A clean fakeredis instance for each test.

    Uses decode_responses=True to match the real Valkey client.
    """
    server = fakeredis.FakeServer()
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield client
    client.flushall()
    client.close()
