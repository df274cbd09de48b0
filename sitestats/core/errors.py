# ==============================================================================
# Domain Errors
# ==============================================================================
"""
Exceptions raised by the tracking and reporting core.

- InvalidEventError: an inbound event cannot be attributed to anyone
  (no visitor token or an unknown event type). Transports log and drop it.
- StoreUnavailableError: the persistence store failed. Ingestion drops the
  event; reporting surfaces "data unavailable" instead of zeros.
"""


class InvalidEventError(ValueError):
    """Raised when a tracking payload cannot be turned into an event."""


class StoreUnavailableError(RuntimeError):
    """Raised when the analytics store cannot serve a read or write."""
