# ==============================================================================
# Retry Configuration
# ==============================================================================
"""
Shared retry configuration for network resilience.

Provides reusable retry decorators with exponential backoff for handling
transient failures while connecting to PostgreSQL and Valkey.

Retries apply to establishing connections only. Individual tracking events
are never retried: a failed write drops that data point.

Standard retry: 10 attempts over ~60 seconds (for long-running consumers)
Light retry: 3 attempts over ~7 seconds (for CLI commands)
"""

import logging
from typing import Tuple, Type

import psycopg2
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# ==============================================================================
# Retry Constants
# ==============================================================================

# Exponential backoff: 1s, 2s, 4s, 8s, 16s, 32s, 32s, 32s, 32s, 32s = ~63s total
RETRY_ATTEMPTS = 10
RETRY_WAIT_MIN = 1  # seconds
RETRY_WAIT_MAX = 32  # seconds

# Exponential backoff: 1s, 2s, 4s = ~7s total
RETRY_ATTEMPTS_LIGHT = 3

# Valkey retry configuration (used by redis-py client)
VALKEY_RETRIES = 3

POSTGRES_RETRY_EXCEPTIONS = (
    psycopg2.OperationalError,
    psycopg2.InterfaceError,
)

REDIS_RETRY_EXCEPTIONS = (
    RedisConnectionError,
    RedisTimeoutError,
)


# ==============================================================================
# Logging Callbacks
# ==============================================================================


def log_retry_attempt(logger: logging.Logger, attempts: int = RETRY_ATTEMPTS):
    """
    Create a callback that logs retry attempts.

    Args:
        logger: Logger instance to use for logging
        attempts: Total attempts, shown in the log line

    Returns:
        Callback function for tenacity's before_sleep parameter
    """

    def _log_retry(retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retry attempt %d/%d after error: %s",
            retry_state.attempt_number,
            attempts,
            exception,
        )

    return _log_retry


# ==============================================================================
# Retry Decorators
# ==============================================================================


def retry_standard(exception_types: Tuple[Type[Exception], ...], logger: logging.Logger):
    """
    Create a standard retry decorator (10 attempts, ~60 seconds).

    Use this for long-running consumers that need high resilience.

    Example:
        @retry_standard(POSTGRES_RETRY_EXCEPTIONS, logger)
        def connect(self):
            ...
    """
    return retry(
        stop=stop_after_attempt(RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=RETRY_WAIT_MIN, max=RETRY_WAIT_MAX),
        retry=retry_if_exception_type(exception_types),
        before_sleep=log_retry_attempt(logger),
        reraise=True,
    )


def retry_light(exception_types: Tuple[Type[Exception], ...], logger: logging.Logger):
    """
    Create a light retry decorator (3 attempts, ~7 seconds).

    Use this for CLI commands and health checks.
    """
    return retry(
        stop=stop_after_attempt(RETRY_ATTEMPTS_LIGHT),
        wait=wait_exponential(multiplier=1, min=RETRY_WAIT_MIN, max=RETRY_WAIT_MAX),
        retry=retry_if_exception_type(exception_types),
        before_sleep=log_retry_attempt(logger, RETRY_ATTEMPTS_LIGHT),
        reraise=True,
    )
