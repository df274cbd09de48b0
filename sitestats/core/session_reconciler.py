# ==============================================================================
# Session Reconciler
# ==============================================================================
"""
Decides which session an incoming event belongs to.

States per visitor:
- none:   no open session
- open:   a session with end_time null whose start lies within the window
- closed: end_time set (explicit session_end, or the session reaper)

Window rule: an open session is reusable while
`now - session.start_time <= timeout`. The window is FIXED from the session
start; later activity does not extend it. A visitor reading for 35 minutes
therefore gets a second session on the next page view. Kept on purpose until
product confirms whether a sliding window is wanted.

Only page views may open a session. Leave and end beacons are sent
unreliably by browsers (often on tab close) and must never fabricate one.

The lookup-then-create sequence is not atomic on its own; callers
serialize it per visitor (see VisitorLocks).
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sitestats.base.store import AnalyticsStore
from sitestats.core.models import (
    PageLeaveEvent,
    PageViewEvent,
    SessionEndEvent,
    Visitor,
    VisitorSession,
)

logger = logging.getLogger(__name__)


class SessionReconciler:
    """Session lookup, creation and closing for one visitor at a time."""

    def __init__(self, store: AnalyticsStore, timeout_minutes: int = 30):
        """
        Initialize the reconciler.

        Args:
            store: Analytics store
            timeout_minutes: Session window, measured from session start
        """
        self._store = store
        self.timeout = timedelta(minutes=timeout_minutes)

    def window_start(self, now: datetime) -> datetime:
        """Earliest start time of a session still reusable at `now`."""
        return now - self.timeout

    def is_reusable(self, session: Optional[VisitorSession], now: datetime) -> bool:
        """Check if a session is open and its fixed window has not lapsed."""
        if session is None or not session.is_open:
            return False
        return now - session.start_time <= self.timeout

    def reconcile(
        self,
        visitor: Visitor,
        event: PageViewEvent | PageLeaveEvent | SessionEndEvent,
        now: datetime,
    ) -> tuple[Optional[VisitorSession], bool]:
        """
        Resolve the session an event attaches to.

        Returns:
            Tuple of (session or None, True if the session was just created)
        """
        if isinstance(event, PageViewEvent):
            return self.for_page_view(visitor, event, now)
        if isinstance(event, PageLeaveEvent):
            return self.for_page_leave(visitor, now), False
        return self.for_session_end(visitor), False

    def for_page_view(
        self, visitor: Visitor, event: PageViewEvent, now: datetime
    ) -> tuple[VisitorSession, bool]:
        """Reuse the latest session if open and in window, else open a new one."""
        latest = self._store.find_latest_session(visitor.id)
        if self.is_reusable(latest, now):
            return latest, False

        session = self._store.create_session(
            visitor.id,
            now,
            referrer=event.referrer,
            utm_source=event.campaign.source,
            utm_medium=event.campaign.medium,
            utm_campaign=event.campaign.campaign,
        )
        self._store.increment_visit_count(visitor.id)
        logger.debug(
            "Opened session %d for visitor %s (previous=%s)",
            session.id,
            visitor.token,
            latest.id if latest else None,
        )
        return session, True

    def for_page_leave(self, visitor: Visitor, now: datetime) -> Optional[VisitorSession]:
        """Latest open session within the window, or None (the leave is dropped)."""
        return self._store.find_open_session(visitor.id, started_after=self.window_start(now))

    def for_session_end(self, visitor: Visitor) -> Optional[VisitorSession]:
        """Latest open session regardless of the window; the client is ending it."""
        return self._store.find_open_session(visitor.id)

    def close(self, session: VisitorSession, now: datetime) -> bool:
        """
        Transition a session to closed at `now`.

        Duration is whole seconds since the session start, floored.

        Returns:
            True if this call closed the session
        """
        duration = max(0, int((now - session.start_time).total_seconds()))
        closed = self._store.close_session(session.id, now, duration)
        if closed:
            logger.debug("Closed session %d after %ds", session.id, duration)
        return closed
