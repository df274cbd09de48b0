# ==============================================================================
# In-Process Visitor Locks
# ==============================================================================
"""
threading-based VisitorLocks for a single ingestion process.

One lock per visitor token, created on first use and dropped once no thread
holds or waits for it, so the table only ever contains active visitors.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from sitestats.base.locks import VisitorLocks

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class LocalVisitorLocks(VisitorLocks):
    """Reference-counted per-token threading locks."""

    def __init__(self, wait_seconds: float = 2.0):
        """
        Args:
            wait_seconds: How long an event waits before running unserialized
        """
        self._wait_seconds = wait_seconds
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, token: str) -> Iterator[bool]:
        with self._guard:
            entry = self._entries.get(token)
            if entry is None:
                entry = self._entries[token] = _Entry()
            entry.users += 1

        acquired = entry.lock.acquire(timeout=self._wait_seconds)
        if not acquired:
            logger.warning("Timed out after %.1fs waiting for visitor lock %s", self._wait_seconds, token)
        try:
            yield acquired
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[token]

    @property
    def active_tokens(self) -> int:
        """Number of tokens currently held or waited on."""
        with self._guard:
            return len(self._entries)
