# ==============================================================================
# Tests for SessionReconciler
# ==============================================================================
"""
Unit tests for the session state machine.

Tests cover:
- Opening on first page view, reuse within the window
- Fixed window measured from session start (not last activity)
- Leave and end events never open a session
- Closing sets end time and floored duration, once
"""

from datetime import timedelta

import pytest

from sitestats.core.models import DeviceInfo, PageLeaveEvent, PageViewEvent, SessionEndEvent
from sitestats.core.session_reconciler import SessionReconciler
from sitestats.core.visitor_resolver import VisitorResolver

from conftest import T0


@pytest.fixture()
def reconciler(store):
    return SessionReconciler(store, timeout_minutes=30)


@pytest.fixture()
def visitor(store):
    return VisitorResolver(store).resolve("v1", DeviceInfo(), T0)


def _view(path="/", **fields):
    return PageViewEvent(visitor_token="v1", path=path, **fields)


class TestPageView:
    """Page views reuse or open sessions."""

    def test_first_page_view_opens_session(self, reconciler, visitor, store):
        session, created = reconciler.reconcile(visitor, _view(referrer="https://ref.example/"), T0)
        assert created is True
        assert session.start_time == T0
        assert session.is_open
        assert session.referrer == "https://ref.example/"
        assert store.get_visitor("v1").visit_count == 1

    def test_reuses_open_session_within_window(self, reconciler, visitor, store):
        first, _ = reconciler.reconcile(visitor, _view("/a"), T0)
        second, created = reconciler.reconcile(visitor, _view("/b"), T0 + timedelta(minutes=29))
        assert created is False
        assert second.id == first.id
        assert len(store.sessions) == 1

    def test_window_boundary_is_inclusive(self, reconciler, visitor):
        first, _ = reconciler.reconcile(visitor, _view(), T0)
        second, created = reconciler.reconcile(visitor, _view(), T0 + timedelta(minutes=30))
        assert created is False
        assert second.id == first.id

    def test_window_is_fixed_from_session_start(self, reconciler, visitor, store):
        """Activity at minute 25 does not extend the window to minute 55."""
        first, _ = reconciler.reconcile(visitor, _view("/a"), T0)
        reconciler.reconcile(visitor, _view("/b"), T0 + timedelta(minutes=25))
        second, created = reconciler.reconcile(visitor, _view("/c"), T0 + timedelta(minutes=35))
        assert created is True
        assert second.id != first.id
        assert len(store.sessions) == 2
        assert store.get_visitor("v1").visit_count == 2

    def test_closed_session_not_reused(self, reconciler, visitor):
        first, _ = reconciler.reconcile(visitor, _view(), T0)
        reconciler.close(first, T0 + timedelta(minutes=1))
        second, created = reconciler.reconcile(visitor, _view(), T0 + timedelta(minutes=2))
        assert created is True
        assert second.id != first.id

    def test_campaign_captured_on_open(self, reconciler, visitor):
        event = PageViewEvent.model_validate(
            {"visitor_token": "v1", "path": "/", "campaign": {"source": "mail", "medium": "email"}}
        )
        session, _ = reconciler.reconcile(visitor, event, T0)
        assert session.utm_source == "mail"
        assert session.utm_medium == "email"
        assert session.utm_campaign is None


class TestLeaveAndEnd:
    """Leave and end beacons attach to existing sessions only."""

    def test_leave_without_session_is_dropped(self, reconciler, visitor, store):
        session, created = reconciler.reconcile(visitor, PageLeaveEvent(visitor_token="v1", path="/"), T0)
        assert session is None
        assert created is False
        assert store.sessions == []

    def test_leave_after_window_is_dropped(self, reconciler, visitor):
        reconciler.reconcile(visitor, _view(), T0)
        leave = PageLeaveEvent(visitor_token="v1", path="/")
        session, _ = reconciler.reconcile(visitor, leave, T0 + timedelta(minutes=31))
        assert session is None

    def test_end_finds_open_session_past_window(self, reconciler, visitor):
        opened, _ = reconciler.reconcile(visitor, _view(), T0)
        session, created = reconciler.reconcile(
            visitor, SessionEndEvent(visitor_token="v1"), T0 + timedelta(hours=2)
        )
        assert created is False
        assert session.id == opened.id

    def test_end_without_session_is_dropped(self, reconciler, visitor, store):
        session, _ = reconciler.reconcile(visitor, SessionEndEvent(visitor_token="v1"), T0)
        assert session is None
        assert store.sessions == []


class TestClose:
    """Tests for SessionReconciler.close()."""

    def test_sets_end_time_and_floored_duration(self, reconciler, visitor, store):
        session, _ = reconciler.reconcile(visitor, _view(), T0)
        assert reconciler.close(session, T0 + timedelta(seconds=95, milliseconds=900)) is True
        stored = store.sessions[0]
        assert stored.end_time == T0 + timedelta(seconds=95, milliseconds=900)
        assert stored.duration == 95

    def test_second_close_is_noop(self, reconciler, visitor, store):
        session, _ = reconciler.reconcile(visitor, _view(), T0)
        reconciler.close(session, T0 + timedelta(seconds=10))
        assert reconciler.close(session, T0 + timedelta(seconds=99)) is False
        assert store.sessions[0].duration == 10
