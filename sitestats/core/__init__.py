# ==============================================================================
# Core Domain Logic
# ==============================================================================
"""
Tracking and reporting logic, independent of any store or transport.

This package contains:
- Domain models (events, visitors, sessions, page views)
- Ingestion components (VisitorResolver, SessionReconciler, EventRecorder, Tracker)
- Reporting (AggregationEngine) and the SessionReaper

Only the models are re-exported here; import components from their modules.
"""

from sitestats.core.errors import InvalidEventError, StoreUnavailableError
from sitestats.core.models import (
    EventType,
    PageLeaveEvent,
    PageView,
    PageViewEvent,
    SessionEndEvent,
    TrackResult,
    Visitor,
    VisitorSession,
    parse_event,
)

__all__ = [
    "EventType",
    "InvalidEventError",
    "PageLeaveEvent",
    "PageView",
    "PageViewEvent",
    "SessionEndEvent",
    "StoreUnavailableError",
    "TrackResult",
    "Visitor",
    "VisitorSession",
    "parse_event",
]
