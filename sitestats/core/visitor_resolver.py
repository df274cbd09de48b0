# ==============================================================================
# Visitor Resolver
# ==============================================================================
"""
Maps a client-supplied visitor token to a durable visitor record.

Resolution is a single store upsert, so concurrent events for the same
token can never create two visitor rows: whichever write lands last wins,
applied on top of one coherent pre-image.
"""

import logging
from datetime import datetime

from sitestats.base.store import AnalyticsStore
from sitestats.core.models import DeviceInfo, Visitor

logger = logging.getLogger(__name__)


class VisitorResolver:
    """Idempotent token -> Visitor resolution with attribute merging."""

    def __init__(self, store: AnalyticsStore):
        self._store = store

    def resolve(self, token: str, device: DeviceInfo, now: datetime) -> Visitor:
        """
        Create or refresh the visitor for a token.

        Only attributes present in this event overwrite stored values;
        an event without, say, a screen size leaves the stored size intact.

        Args:
            token: Client-supplied visitor token
            device: Device/geo attributes reported with the event
            now: Event receive time

        Returns:
            The stored visitor after the upsert
        """
        visitor = self._store.upsert_visitor(token, device.non_empty(), now)
        logger.debug("Resolved visitor %s (id=%d)", token, visitor.id)
        return visitor
