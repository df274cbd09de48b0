# ==============================================================================
# Analytics Store Adapters
# ==============================================================================
"""
AnalyticsStore implementations from base/store.py.

- PostgreSQL (postgresql.py): production store
- In-memory (memory.py): tests, local replays, single-process runs
"""

from sitestats.infrastructure.repositories.memory import InMemoryAnalyticsStore
from sitestats.infrastructure.repositories.postgresql import (
    PostgreSQLAnalyticsStore,
    check_postgresql_connection,
)

__all__ = [
    "InMemoryAnalyticsStore",
    "PostgreSQLAnalyticsStore",
    "check_postgresql_connection",
]
