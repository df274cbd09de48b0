# ==============================================================================
# Session Reaper
# ==============================================================================
"""
Closes sessions that were left open after their window lapsed.

Browsers frequently never send session_end (tab killed, laptop closed), so
without a sweep those sessions stay open forever and report no duration.

A lapsed session is closed at its last page activity (latest enter or leave
time), bounded to [start, start + timeout]. Closing is conditional on the row
still being open, so a concurrent session_end wins cleanly.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sitestats.base.runner import BaseRunner
from sitestats.base.store import AnalyticsStore
from sitestats.core.clock import Clock, utc_now
from sitestats.core.errors import StoreUnavailableError
from sitestats.core.models import VisitorSession

logger = logging.getLogger(__name__)


class SessionReaper:
    """Sweeps open sessions whose fixed window has lapsed."""

    def __init__(
        self,
        store: AnalyticsStore,
        timeout_minutes: int = 30,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._timeout = timedelta(minutes=timeout_minutes)
        self._clock = clock or utc_now

    def end_time_for(self, session: VisitorSession) -> datetime:
        """Close time for a lapsed session: last activity within its window."""
        window_end = session.start_time + self._timeout
        last = self._store.last_activity(session.id) or session.start_time
        return max(session.start_time, min(last, window_end))

    def reap(self, now: Optional[datetime] = None, limit: int = 500) -> int:
        """
        Close up to `limit` lapsed sessions.

        Args:
            now: Reference time, defaults to the clock
            limit: Maximum sessions handled in this pass

        Returns:
            Number of sessions closed by this pass
        """
        now = now or self._clock()
        lapsed = self._store.find_lapsed_sessions(now - self._timeout, limit)

        closed = 0
        for session in lapsed:
            end_time = self.end_time_for(session)
            duration = int((end_time - session.start_time).total_seconds())
            if self._store.close_session(session.id, end_time, duration):
                closed += 1

        if lapsed:
            logger.info("Reaped %d of %d lapsed sessions", closed, len(lapsed))
        return closed


class ReaperRunner(BaseRunner):
    """Runs the reaper every `interval_seconds` until shutdown."""

    def __init__(
        self,
        reaper: SessionReaper,
        store: AnalyticsStore,
        interval_seconds: float = 60.0,
        batch_size: int = 500,
        log_level: str = "INFO",
    ):
        super().__init__(log_level)
        self._reaper = reaper
        self._store = store
        self._interval = interval_seconds
        self._batch_size = batch_size
        self.total_closed = 0

    def _run(self) -> None:
        logger.info(
            "Session reaper started (interval=%.0fs, batch=%d)",
            self._interval,
            self._batch_size,
        )
        while not self.shutdown_requested:
            try:
                closed = self._reaper.reap(limit=self._batch_size)
                self.total_closed += closed
                # A full batch means more are waiting; go again without sleeping
                if closed >= self._batch_size:
                    continue
            except StoreUnavailableError as e:
                logger.error("Reaper pass failed: %s", e)

            if self.wait(self._interval):
                break

    def _cleanup(self) -> None:
        logger.info("Reaper closed %d sessions in total", self.total_closed)
        self._store.close()
