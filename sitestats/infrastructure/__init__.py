# ==============================================================================
# Infrastructure Adapters
# ==============================================================================
"""
Adapters for external services (ports-and-adapters architecture).

- repositories/ - AnalyticsStore adapters (PostgreSQL, in-memory)
- locks/ - VisitorLocks adapters (threading, Valkey)
"""

from sitestats.infrastructure.locks import (
    LocalVisitorLocks,
    ValkeyVisitorLocks,
    get_valkey_client,
)
from sitestats.infrastructure.repositories import (
    InMemoryAnalyticsStore,
    PostgreSQLAnalyticsStore,
    check_postgresql_connection,
)

__all__ = [
    # Locks
    "LocalVisitorLocks",
    "ValkeyVisitorLocks",
    "get_valkey_client",
    # Repositories
    "InMemoryAnalyticsStore",
    "PostgreSQLAnalyticsStore",
    "check_postgresql_connection",
]
