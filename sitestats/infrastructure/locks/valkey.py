# ==============================================================================
# Valkey Visitor Locks
# ==============================================================================
"""
Valkey/Redis implementation of VisitorLocks for multi-process ingestion.

Each visitor token maps to a redis-py Lock on
`{key_prefix}:visitor-lock:{token}`. The lock carries a TTL so a crashed
holder cannot block a visitor forever.

Lock trouble never fails an event: on wait timeout or a Valkey error the
event is processed unserialized and a warning is logged.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

import redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from sitestats.base.locks import VisitorLocks
from sitestats.utils.config import ValkeySettings, get_settings
from sitestats.utils.retry import REDIS_RETRY_EXCEPTIONS, VALKEY_RETRIES

logger = logging.getLogger(__name__)


def get_valkey_client(settings: Optional[ValkeySettings] = None, socket_timeout: int = 10) -> redis.Redis:
    """
    Create a Valkey/Redis client.

    Configured with:
    - socket timeouts for fast failure detection
    - automatic retries with exponential backoff for transient failures
    - health check interval to keep connections alive
    """
    settings = settings or get_settings().valkey
    retry_strategy = Retry(ExponentialBackoff(cap=32, base=1), retries=VALKEY_RETRIES)

    return redis.from_url(
        settings.url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        retry=retry_strategy,
        retry_on_error=[RedisTimeoutError, RedisConnectionError],
        health_check_interval=30,
    )


class ValkeyVisitorLocks(VisitorLocks):
    """Distributed per-visitor locks backed by Valkey."""

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = "sitestats",
        lock_timeout_seconds: float = 10.0,
        wait_seconds: float = 2.0,
    ):
        """
        Initialize Valkey visitor locks.

        Args:
            client: Valkey/Redis client
            key_prefix: Prefix for lock keys
            lock_timeout_seconds: Lock TTL in seconds
            wait_seconds: How long an event waits for its visitor's lock
        """
        self._client = client
        self._key_prefix = key_prefix
        self._lock_timeout = lock_timeout_seconds
        self._wait_seconds = wait_seconds

    @classmethod
    def from_settings(cls, settings: Optional[ValkeySettings] = None) -> "ValkeyVisitorLocks":
        settings = settings or get_settings().valkey
        return cls(
            get_valkey_client(settings),
            key_prefix=settings.key_prefix,
            lock_timeout_seconds=settings.lock_timeout_seconds,
            wait_seconds=settings.lock_wait_seconds,
        )

    @property
    def client(self) -> redis.Redis:
        """Get the underlying Redis client."""
        return self._client

    def lock_key(self, token: str) -> str:
        return f"{self._key_prefix}:visitor-lock:{token}"

    @contextmanager
    def hold(self, token: str) -> Iterator[bool]:
        lock = self._client.lock(
            self.lock_key(token),
            timeout=self._lock_timeout,
            blocking_timeout=self._wait_seconds,
        )
        try:
            acquired = bool(lock.acquire())
        except REDIS_RETRY_EXCEPTIONS as e:
            logger.warning("Valkey unavailable for visitor lock %s: %s", token, e)
            acquired = False
        else:
            if not acquired:
                logger.warning(
                    "Timed out after %.1fs waiting for visitor lock %s", self._wait_seconds, token
                )

        try:
            yield acquired
        finally:
            if acquired:
                self._release(lock, token)

    def _release(self, lock, token: str) -> None:
        try:
            lock.release()
        except LockError as e:
            # TTL expired mid-event; another worker may already hold it
            logger.warning("Visitor lock %s expired before release: %s", token, e)
        except REDIS_RETRY_EXCEPTIONS as e:
            logger.warning("Could not release visitor lock %s: %s", token, e)

    def ping(self) -> bool:
        """Check if Valkey is reachable."""
        try:
            return bool(self._client.ping())
        except REDIS_RETRY_EXCEPTIONS:
            return False

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
