# ==============================================================================
# Event Recorder
# ==============================================================================
"""
Applies a normalized event to the page view / session rows of its session.

- pageview:    insert an open page view
- pageleave:   close the latest open page view for the same path
- session_end: close the session (delegated to the reconciler)

Writes only ever touch rows that are still open, so replaying a duplicate
leave or end beacon changes nothing.
"""

import logging
from datetime import datetime
from typing import Optional

from sitestats.base.store import AnalyticsStore
from sitestats.core.models import (
    PageLeaveEvent,
    PageView,
    PageViewEvent,
    SessionEndEvent,
    VisitorSession,
)
from sitestats.core.session_reconciler import SessionReconciler

logger = logging.getLogger(__name__)


class EventRecorder:
    """Writes page view and session changes for one event."""

    def __init__(self, store: AnalyticsStore, reconciler: SessionReconciler):
        self._store = store
        self._reconciler = reconciler

    def record(
        self,
        event: PageViewEvent | PageLeaveEvent | SessionEndEvent,
        session: VisitorSession,
        now: datetime,
    ) -> Optional[PageView]:
        """
        Apply an event to its resolved session.

        Returns:
            The inserted or closed page view, or None if nothing changed
            on the page view table
        """
        if isinstance(event, PageViewEvent):
            return self._record_page_view(event, session, now)
        if isinstance(event, PageLeaveEvent):
            return self._record_page_leave(event, session, now)
        self._record_session_end(event, session, now)
        return None

    def _record_page_view(
        self, event: PageViewEvent, session: VisitorSession, now: datetime
    ) -> PageView:
        # No dedup: an earlier open view of the same path stays open forever
        # (its leave event was lost). The next leave closes the newest one.
        return self._store.create_page_view(
            session.id,
            event.path,
            now,
            title=event.title,
            article_id=event.article_id,
        )

    def _record_page_leave(
        self, event: PageLeaveEvent, session: VisitorSession, now: datetime
    ) -> Optional[PageView]:
        page_view = self._store.find_open_page_view(session.id, event.path)
        if page_view is None:
            logger.debug("Session %d: no open page view for %s, leave ignored", session.id, event.path)
            return None

        closed = self._store.close_page_view(
            page_view.id,
            now,
            duration=event.duration,
            scroll_depth=event.scroll_depth,
        )
        if not closed:
            return None
        return page_view.model_copy(
            update={
                "leave_time": now,
                "duration": event.duration,
                "scroll_depth": event.scroll_depth,
            }
        )

    def _record_session_end(
        self, event: SessionEndEvent, session: VisitorSession, now: datetime
    ) -> None:
        self._reconciler.close(session, now)
