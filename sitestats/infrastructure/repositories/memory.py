# ==============================================================================
# In-Memory Analytics Store
# ==============================================================================
"""
Dict-backed AnalyticsStore for tests, local replays and single-process runs.

Every method runs under one lock, which makes each call atomic in the same
way a single SQL statement is for the PostgreSQL store. Rows are copied in
and out so callers never share mutable state with the store.
"""

import logging
import threading
from collections import Counter
from datetime import datetime
from itertools import count
from typing import Optional

from sitestats.base.store import AnalyticsStore
from sitestats.core.models import PageView, Visitor, VisitorSession

logger = logging.getLogger(__name__)


class InMemoryAnalyticsStore(AnalyticsStore):
    """Thread-safe in-memory implementation of AnalyticsStore."""

    def __init__(self):
        self._lock = threading.RLock()
        self._visitors: dict[int, Visitor] = {}
        self._visitor_ids: dict[str, int] = {}
        self._sessions: dict[int, VisitorSession] = {}
        self._page_views: dict[int, PageView] = {}
        self._visitor_seq = count(1)
        self._session_seq = count(1)
        self._page_view_seq = count(1)

    def connect(self) -> None:
        logger.debug("InMemoryAnalyticsStore ready")

    def close(self) -> None:
        pass

    # ==========================================================================
    # Introspection (tests, CLI replay summary)
    # ==========================================================================

    @property
    def visitors(self) -> list[Visitor]:
        with self._lock:
            return [v.model_copy() for v in self._visitors.values()]

    @property
    def sessions(self) -> list[VisitorSession]:
        with self._lock:
            return [s.model_copy() for s in self._sessions.values()]

    @property
    def page_views(self) -> list[PageView]:
        with self._lock:
            return [pv.model_copy() for pv in self._page_views.values()]

    # ==========================================================================
    # Visitors
    # ==========================================================================

    def upsert_visitor(self, token: str, attributes: dict, now: datetime) -> Visitor:
        with self._lock:
            visitor_id = self._visitor_ids.get(token)
            if visitor_id is None:
                visitor_id = next(self._visitor_seq)
                visitor = Visitor(
                    id=visitor_id,
                    token=token,
                    first_seen=now,
                    last_seen=now,
                    **attributes,
                )
                self._visitor_ids[token] = visitor_id
            else:
                current = self._visitors[visitor_id]
                visitor = current.model_copy(
                    update={**attributes, "last_seen": max(current.last_seen, now)}
                )
            self._visitors[visitor_id] = visitor
            return visitor.model_copy()

    def increment_visit_count(self, visitor_id: int) -> None:
        with self._lock:
            visitor = self._visitors.get(visitor_id)
            if visitor is not None:
                self._visitors[visitor_id] = visitor.model_copy(
                    update={"visit_count": visitor.visit_count + 1}
                )

    def get_visitor(self, token: str) -> Optional[Visitor]:
        with self._lock:
            visitor_id = self._visitor_ids.get(token)
            if visitor_id is None:
                return None
            return self._visitors[visitor_id].model_copy()

    def get_visitors(self, visitor_ids: list[int]) -> list[Visitor]:
        with self._lock:
            return [
                self._visitors[vid].model_copy()
                for vid in dict.fromkeys(visitor_ids)
                if vid in self._visitors
            ]

    def list_visitors(
        self,
        offset: int,
        limit: int,
        first_seen_start: Optional[datetime] = None,
        first_seen_end: Optional[datetime] = None,
    ) -> tuple[list[Visitor], int]:
        with self._lock:
            matching = [
                v
                for v in self._visitors.values()
                if (first_seen_start is None or v.first_seen >= first_seen_start)
                and (first_seen_end is None or v.first_seen <= first_seen_end)
            ]
            matching.sort(key=lambda v: (v.last_seen, v.id), reverse=True)
            session_counts = Counter(s.visitor_id for s in self._sessions.values())
            items = [
                v.model_copy(update={"session_count": session_counts[v.id]})
                for v in matching[offset : offset + limit]
            ]
            return items, len(matching)

    # ==========================================================================
    # Sessions
    # ==========================================================================

    def _visitor_sessions(self, visitor_id: int) -> list[VisitorSession]:
        return sorted(
            (s for s in self._sessions.values() if s.visitor_id == visitor_id),
            key=lambda s: (s.start_time, s.id),
            reverse=True,
        )

    def find_latest_session(self, visitor_id: int) -> Optional[VisitorSession]:
        with self._lock:
            sessions = self._visitor_sessions(visitor_id)
            return sessions[0].model_copy() if sessions else None

    def find_open_session(
        self, visitor_id: int, started_after: Optional[datetime] = None
    ) -> Optional[VisitorSession]:
        with self._lock:
            for session in self._visitor_sessions(visitor_id):
                if not session.is_open:
                    continue
                if started_after is not None and session.start_time < started_after:
                    continue
                return session.model_copy()
            return None

    def create_session(
        self,
        visitor_id: int,
        start_time: datetime,
        referrer: Optional[str] = None,
        utm_source: Optional[str] = None,
        utm_medium: Optional[str] = None,
        utm_campaign: Optional[str] = None,
    ) -> VisitorSession:
        with self._lock:
            session = VisitorSession(
                id=next(self._session_seq),
                visitor_id=visitor_id,
                start_time=start_time,
                referrer=referrer,
                utm_source=utm_source,
                utm_medium=utm_medium,
                utm_campaign=utm_campaign,
            )
            self._sessions[session.id] = session
            return session.model_copy()

    def close_session(self, session_id: int, end_time: datetime, duration: int) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_open:
                return False
            self._sessions[session_id] = session.model_copy(
                update={"end_time": end_time, "duration": duration}
            )
            return True

    def find_sessions(self, start: datetime, end: datetime) -> list[VisitorSession]:
        with self._lock:
            view_counts = Counter(pv.session_id for pv in self._page_views.values())
            sessions = [
                s.model_copy(update={"page_view_count": view_counts[s.id]})
                for s in self._sessions.values()
                if start <= s.start_time <= end
            ]
            return sorted(sessions, key=lambda s: (s.start_time, s.id))

    def recent_sessions(self, visitor_id: int, limit: int) -> list[VisitorSession]:
        with self._lock:
            return [s.model_copy() for s in self._visitor_sessions(visitor_id)[:limit]]

    def find_lapsed_sessions(self, started_before: datetime, limit: int) -> list[VisitorSession]:
        with self._lock:
            lapsed = sorted(
                (s for s in self._sessions.values() if s.is_open and s.start_time < started_before),
                key=lambda s: (s.start_time, s.id),
            )
            return [s.model_copy() for s in lapsed[:limit]]

    def last_activity(self, session_id: int) -> Optional[datetime]:
        with self._lock:
            times = [
                t
                for pv in self._page_views.values()
                if pv.session_id == session_id
                for t in (pv.enter_time, pv.leave_time)
                if t is not None
            ]
            return max(times) if times else None

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
        with self._lock:
            page_view = PageView(
                id=next(self._page_view_seq),
                session_id=session_id,
                path=path,
                title=title,
                article_id=article_id,
                enter_time=enter_time,
            )
            self._page_views[page_view.id] = page_view
            return page_view.model_copy()

    def find_open_page_view(self, session_id: int, path: str) -> Optional[PageView]:
        with self._lock:
            candidates = [
                pv
                for pv in self._page_views.values()
                if pv.session_id == session_id and pv.path == path and pv.is_open
            ]
            if not candidates:
                return None
            return max(candidates, key=lambda pv: (pv.enter_time, pv.id)).model_copy()

    def close_page_view(
        self,
        page_view_id: int,
        leave_time: datetime,
        duration: Optional[int],
        scroll_depth: Optional[int],
    ) -> bool:
        with self._lock:
            page_view = self._page_views.get(page_view_id)
            if page_view is None or not page_view.is_open:
                return False
            self._page_views[page_view_id] = page_view.model_copy(
                update={
                    "leave_time": leave_time,
                    "duration": duration,
                    "scroll_depth": scroll_depth,
                }
            )
            return True

    def _with_visitor(self, page_view: PageView) -> PageView:
        session = self._sessions.get(page_view.session_id)
        return page_view.model_copy(update={"visitor_id": session.visitor_id if session else None})

    def find_page_views(self, start: datetime, end: datetime) -> list[PageView]:
        with self._lock:
            views = [
                self._with_visitor(pv)
                for pv in self._page_views.values()
                if start <= pv.enter_time <= end
            ]
            return sorted(views, key=lambda pv: (pv.enter_time, pv.id))

    def page_views_for_sessions(self, session_ids: list[int]) -> list[PageView]:
        with self._lock:
            wanted = set(session_ids)
            views = [pv.model_copy() for pv in self._page_views.values() if pv.session_id in wanted]
            return sorted(views, key=lambda pv: (pv.enter_time, pv.id))

    def recent_page_views(self, since: datetime) -> list[PageView]:
        with self._lock:
            views = [
                self._with_visitor(pv)
                for pv in self._page_views.values()
                if pv.enter_time >= since
            ]
            return sorted(views, key=lambda pv: (pv.enter_time, pv.id), reverse=True)
