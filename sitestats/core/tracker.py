# ==============================================================================
# Tracker - Ingestion Entry Point
# ==============================================================================
"""
Turns one inbound tracking payload into writes on the analytics model.

    payload -> parse_event -> [visitor lock] -> VisitorResolver
            -> SessionReconciler -> EventRecorder -> {visitorId, sessionId}

The event kind is dispatched once here (a discriminated union); nothing past
parse_event sees the raw payload.

Transports (Kafka consumer, JSONL replay, CLI) call track() and decide what
to do with failures: InvalidEventError and StoreUnavailableError both mean
the event is dropped.
"""

import logging
from typing import Optional

from sitestats.base.locks import VisitorLocks
from sitestats.base.store import AnalyticsStore
from sitestats.core.clock import Clock, utc_now
from sitestats.core.errors import StoreUnavailableError
from sitestats.core.event_recorder import EventRecorder
from sitestats.core.models import (
    PageLeaveEvent,
    PageViewEvent,
    SessionEndEvent,
    TrackResult,
    parse_event,
)
from sitestats.core.session_reconciler import SessionReconciler
from sitestats.core.visitor_resolver import VisitorResolver

logger = logging.getLogger(__name__)


class Tracker:
    """Coordinates visitor resolution, session reconciliation and recording."""

    def __init__(
        self,
        store: AnalyticsStore,
        locks: VisitorLocks,
        timeout_minutes: int = 30,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the tracker.

        Args:
            store: Analytics store shared by all components
            locks: Per-visitor lock provider
            timeout_minutes: Session window in minutes (fixed from session start)
            clock: Time source, defaults to UTC wall clock
        """
        self._store = store
        self._locks = locks
        self._clock = clock or utc_now
        self.resolver = VisitorResolver(store)
        self.reconciler = SessionReconciler(store, timeout_minutes)
        self.recorder = EventRecorder(store, self.reconciler)

    def track(self, payload: dict) -> TrackResult:
        """
        Validate a raw payload and apply it.

        Raises:
            InvalidEventError: Payload has no visitor token or an unknown type
            StoreUnavailableError: The store failed; the event is lost
        """
        return self.track_event(parse_event(payload))

    def track_event(self, event: PageViewEvent | PageLeaveEvent | SessionEndEvent) -> TrackResult:
        """Apply an already-validated event under its visitor's lock."""
        token = event.visitor_token
        try:
            with self._locks.hold(token) as serialized:
                if not serialized:
                    logger.warning("Processing %s for %s without visitor lock", event.kind.value, token)

                # Read the clock under the lock so one visitor's events are time-ordered
                now = self._clock()
                visitor = self.resolver.resolve(token, event.device, now)
                session, created = self.reconciler.reconcile(visitor, event, now)
                if session is None:
                    logger.debug("No open session for %s, %s dropped", token, event.kind.value)
                else:
                    self.recorder.record(event, session, now)
        except StoreUnavailableError as e:
            logger.error("Dropping %s event for %s: %s", event.kind.value, token, e)
            raise

        return TrackResult(
            visitor_id=visitor.token,
            session_id=session.id if session else None,
            new_session=created,
        )
