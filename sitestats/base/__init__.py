# ==============================================================================
# Base Abstract Classes
# ==============================================================================
"""
Abstract base classes defining the contracts of the ports-and-adapters layout.

- AnalyticsStore: persistence of visitors, sessions and page views
- VisitorLocks: per-visitor serialization of session reconciliation
- BaseRunner: signal handling and lifecycle for long-running loops
"""

from sitestats.base.locks import VisitorLocks
from sitestats.base.runner import BaseRunner
from sitestats.base.store import AnalyticsStore

__all__ = [
    "AnalyticsStore",
    "BaseRunner",
    "VisitorLocks",
]
