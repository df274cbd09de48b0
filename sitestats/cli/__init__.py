# ==============================================================================
# CLI Commands Module
# ==============================================================================
"""
CLI commands for sitestats.

Commands are organized into separate modules for maintainability:
- shared.py: Common utilities, constants, and helpers
- analytics.py: Reporting queries
- track.py: Event replay and single-event ingestion
- sessions.py: Session reaper
- consumer.py: Kafka tracking consumer
- db.py: Schema management
"""

from sitestats.cli.shared import (
    BOX_WIDTH,
    B,
    Box,
    C,
    Colors,
    I,
    Icons,
    fail,
    open_store,
    parse_datetime,
    print_box,
    print_json,
)

__all__ = [
    "BOX_WIDTH",
    "B",
    "Box",
    "C",
    "Colors",
    "I",
    "Icons",
    "fail",
    "open_store",
    "parse_datetime",
    "print_box",
    "print_json",
]
