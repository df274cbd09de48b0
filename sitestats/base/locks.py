# ==============================================================================
# Visitor Lock Abstract Base Class
# ==============================================================================
"""
Per-visitor serialization for session reconciliation.

Session reconciliation is a read-then-write sequence (find the open session,
else create one). Two page views for the same visitor handled concurrently
could both miss the open session and create two. Holding the visitor's lock
across resolve -> reconcile -> record gives each visitor a single logical
writer while different visitors proceed in parallel.

Implementations: in-process (threading), Valkey/Redis (multi-process).
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager


class VisitorLocks(ABC):
    """Lock provider keyed by visitor token."""

    @abstractmethod
    def hold(self, token: str) -> AbstractContextManager[bool]:
        """
        Hold the lock for a visitor token for the duration of a `with` block.

        The context value is True if the lock was acquired, False if the
        wait timed out and the block runs unserialized. Implementations
        never raise on a lock timeout: dropping a tracking event is worse
        than risking a duplicate session.

        Example:
            with locks.hold(token) as serialized:
                ...
        """
        ...

    def close(self) -> None:
        """Release resources. Optional override."""
        pass
