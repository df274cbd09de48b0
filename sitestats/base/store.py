# ==============================================================================
# Analytics Store Abstract Base Class
# ==============================================================================
"""
Persistence contract for the visitor / session / page view model.

This defines the "what" (find the visitor's open session, close a page view)
not the "how" (SQL, in-memory dicts). Concrete implementations live in
infrastructure/repositories/.

All datetimes passed in and returned are timezone-aware UTC. Implementations
raise StoreUnavailableError when the backing store fails.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from sitestats.core.models import PageView, Visitor, VisitorSession


class AnalyticsStore(ABC):
    """Store for visitors, sessions and page views."""

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the data store."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Close connection and release resources."""
        ...

    # ==========================================================================
    # Visitors
    # ==========================================================================

    @abstractmethod
    def upsert_visitor(self, token: str, attributes: dict, now: datetime) -> Visitor:
        """
        Create or update the visitor for a token in one atomic step.

        New visitors get the attributes, visit_count 0 and first_seen =
        last_seen = now. Existing visitors get last_seen = max(last_seen, now)
        and every attribute present in `attributes` overwritten; attributes
        not present keep their stored value.

        Args:
            token: Client-supplied visitor token
            attributes: Non-empty device/geo attributes (DeviceInfo field names)
            now: Event receive time

        Returns:
            The visitor as stored after the write
        """
        ...

    @abstractmethod
    def increment_visit_count(self, visitor_id: int) -> None:
        """Atomically add one to a visitor's lifetime visit count."""
        ...

    @abstractmethod
    def get_visitor(self, token: str) -> Optional[Visitor]:
        """Get a visitor by token, or None."""
        ...

    @abstractmethod
    def get_visitors(self, visitor_ids: list[int]) -> list[Visitor]:
        """Get visitors by surrogate id. Unknown ids are omitted."""
        ...

    @abstractmethod
    def list_visitors(
        self,
        offset: int,
        limit: int,
        first_seen_start: Optional[datetime] = None,
        first_seen_end: Optional[datetime] = None,
    ) -> tuple[list[Visitor], int]:
        """
        Page through visitors ordered by last_seen descending.

        Returns:
            Tuple of (visitors with session_count populated, total matching)
        """
        ...

    # ==========================================================================
    # Sessions
    # ==========================================================================

    @abstractmethod
    def find_latest_session(self, visitor_id: int) -> Optional[VisitorSession]:
        """Most recent session by start time, open or closed."""
        ...

    @abstractmethod
    def find_open_session(
        self, visitor_id: int, started_after: Optional[datetime] = None
    ) -> Optional[VisitorSession]:
        """
        Most recent open session (end_time is null) by start time.

        Args:
            visitor_id: Visitor surrogate id
            started_after: If given, only sessions with start_time >= this
        """
        ...

    @abstractmethod
    def create_session(
        self,
        visitor_id: int,
        start_time: datetime,
        referrer: Optional[str] = None,
        utm_source: Optional[str] = None,
        utm_medium: Optional[str] = None,
        utm_campaign: Optional[str] = None,
    ) -> VisitorSession:
        """Insert an open session."""
        ...

    @abstractmethod
    def close_session(self, session_id: int, end_time: datetime, duration: int) -> bool:
        """
        Close a session if it is still open.

        Returns:
            True if this call closed it, False if it was already closed
        """
        ...

    @abstractmethod
    def find_sessions(self, start: datetime, end: datetime) -> list[VisitorSession]:
        """Sessions with start_time in [start, end], page_view_count populated."""
        ...

    @abstractmethod
    def recent_sessions(self, visitor_id: int, limit: int) -> list[VisitorSession]:
        """A visitor's sessions, newest first."""
        ...

    @abstractmethod
    def find_lapsed_sessions(self, started_before: datetime, limit: int) -> list[VisitorSession]:
        """Open sessions with start_time < started_before, oldest first."""
        ...

    @abstractmethod
    def last_activity(self, session_id: int) -> Optional[datetime]:
        """Latest enter or leave time across the session's page views."""
        ...

    # ==========================================================================
    # Page Views
    # ==========================================================================

    @abstractmethod
    def create_page_view(
        self,
        session_id: int,
        path: str,
        enter_time: datetime,
        title: Optional[str] = None,
        article_id: Optional[str] = None,
    ) -> PageView:
        """Insert an open page view."""
        ...

    @abstractmethod
    def find_open_page_view(self, session_id: int, path: str) -> Optional[PageView]:
        """Most recent page view for path in the session with leave_time null."""
        ...

    @abstractmethod
    def close_page_view(
        self,
        page_view_id: int,
        leave_time: datetime,
        duration: Optional[int],
        scroll_depth: Optional[int],
    ) -> bool:
        """
        Close a page view if it is still open.

        Returns:
            True if this call closed it, False if it was already closed
        """
        ...

    @abstractmethod
    def find_page_views(self, start: datetime, end: datetime) -> list[PageView]:
        """Page views with enter_time in [start, end], visitor_id populated."""
        ...

    @abstractmethod
    def page_views_for_sessions(self, session_ids: list[int]) -> list[PageView]:
        """All page views of the given sessions, oldest first."""
        ...

    @abstractmethod
    def recent_page_views(self, since: datetime) -> list[PageView]:
        """Page views with enter_time >= since, newest first, visitor_id populated."""
        ...
