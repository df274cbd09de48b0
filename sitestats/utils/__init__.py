# ==============================================================================
# sitestats Utilities
# ==============================================================================
"""
Shared utilities: configuration, retry policies, paths and schema management.
"""

from sitestats.utils.config import (
    ConsumerSettings,
    KafkaSettings,
    PostgresSettings,
    ReaperSettings,
    Settings,
    TrackingSettings,
    ValkeySettings,
    get_settings,
)
from sitestats.utils.db import (
    ensure_schema,
    reset_schema,
)

__all__ = [
    # Config
    "ConsumerSettings",
    "KafkaSettings",
    "PostgresSettings",
    "ReaperSettings",
    "Settings",
    "TrackingSettings",
    "ValkeySettings",
    "get_settings",
    # Database
    "ensure_schema",
    "reset_schema",
]
