# ==============================================================================
# Visitor Lock Adapters
# ==============================================================================
"""
VisitorLocks implementations.

- LocalVisitorLocks: threading locks for a single process
- ValkeyVisitorLocks: Valkey/Redis locks shared across processes
"""

from sitestats.infrastructure.locks.local import LocalVisitorLocks
from sitestats.infrastructure.locks.valkey import ValkeyVisitorLocks, get_valkey_client

__all__ = [
    "LocalVisitorLocks",
    "ValkeyVisitorLocks",
    "get_valkey_client",
]
