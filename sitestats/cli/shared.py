# ==============================================================================
# Shared Utilities for CLI Commands
# ==============================================================================
"""
Shared utilities, constants, and helper functions used across CLI command modules.

This module provides:
- ANSI color codes and box-drawing characters
- Box drawing helpers for formatted output
- Date option parsing and JSON/error output helpers
- Store lifecycle for one command invocation
"""

import json
import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Optional

import typer

from sitestats.base.runner import LOG_FORMAT
from sitestats.base.store import AnalyticsStore
from sitestats.core.clock import ensure_utc
from sitestats.core.errors import StoreUnavailableError
from sitestats.utils.config import Settings, get_settings

# ==============================================================================
# Constants
# ==============================================================================

# Box drawing width (unified for all commands)
BOX_WIDTH = 68

# ANSI escape pattern for visible length calculation
_ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")


# ==============================================================================
# ANSI Colors and Box Drawing
# ==============================================================================


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    # Colors
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    # Bright colors
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"


class Box:
    """Unicode box-drawing characters."""

    H = "─"  # horizontal
    V = "│"  # vertical
    TL = "┌"  # top-left
    TR = "┐"  # top-right
    BL = "└"  # bottom-left
    BR = "┘"  # bottom-right
    LT = "├"  # left-tee
    RT = "┤"  # right-tee


class Icons:
    """Status icons using Unicode symbols."""

    CHECK = "✓"
    CROSS = "✗"
    WARN = "!"
    CIRCLE = "●"
    BULLET = "•"
    ARROW = "→"


# Module-level aliases for convenience
C, B, I = Colors, Box, Icons


# ==============================================================================
# Box Drawing Helpers
# ==============================================================================


def _visible_len(s: str) -> int:
    """Calculate visible length of string, ignoring ANSI escape codes."""
    return len(_ANSI_ESCAPE_PATTERN.sub("", s))


def _truncate(text: str, width: int) -> str:
    """Cut plain text to `width` characters, marking the cut with an ellipsis."""
    if len(text) <= width:
        return text
    return text[: max(0, width - 1)] + "…"


def _box_header(title: str, width: int = BOX_WIDTH) -> str:
    """Create a single-line box header."""
    inner_width = width - 2
    title_padded = f" {title} "
    left_bar = (inner_width - len(title_padded)) // 2
    right_bar = inner_width - left_bar - len(title_padded)
    return (
        f"{C.CYAN}{B.TL}{B.H * left_bar}{C.BOLD}{C.WHITE}{title_padded}"
        f"{C.RESET}{C.CYAN}{B.H * right_bar}{B.TR}{C.RESET}"
    )


def _box_line(content: str, width: int = BOX_WIDTH) -> str:
    """Create a line inside the box with proper padding to right border."""
    inner_width = width - 2
    padding = max(0, inner_width - _visible_len(content))
    return f"{C.CYAN}{B.V}{C.RESET}{content}{' ' * padding}{C.CYAN}{B.V}{C.RESET}"


def _empty_line(width: int = BOX_WIDTH) -> str:
    """Create an empty line inside the box."""
    return f"{C.CYAN}{B.V}{' ' * (width - 2)}{B.V}{C.RESET}"


def _rule(width: int = BOX_WIDTH) -> str:
    """Rule between a table header and its rows, as box line content."""
    return "  " + B.H * (width - 6)


def _box_bottom(width: int = BOX_WIDTH) -> str:
    """Create a box bottom border with the product name centered."""
    text = " sitestats "
    remaining = width - 2 - len(text)
    left_pad = remaining // 2
    right_pad = remaining - left_pad
    return f"{C.CYAN}{B.BL}{B.H * left_pad}{text}{B.H * right_pad}{B.BR}{C.RESET}"


def print_box(title: str, lines: list[str], width: int = BOX_WIDTH) -> None:
    """Print a titled box around pre-formatted lines."""
    print()
    print(_box_header(title, width))
    print(_empty_line(width))
    for line in lines:
        print(_box_line(line, width))
    print(_empty_line(width))
    print(_box_bottom(width))
    print()


# ==============================================================================
# Output Helpers
# ==============================================================================


def print_json(data: Any) -> None:
    """Print a JSON document (already JSON-safe) for scripting."""
    print(json.dumps(data, indent=2))


def fail(message: str, json_output: bool = False) -> None:
    """Report an error and exit with status 1."""
    if json_output:
        print(json.dumps({"error": message}))
    else:
        print(f"\n{C.BRIGHT_RED}{I.CROSS} {message}{C.RESET}\n")
    raise typer.Exit(1)


def success(message: str) -> None:
    print(f"{C.BRIGHT_GREEN}{I.CHECK} {message}{C.RESET}")


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime option value.

    Naive values are taken as UTC.

    Raises:
        typer.BadParameter: If the value is not ISO-8601
    """
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise typer.BadParameter(f"Expected an ISO-8601 date or datetime, got {value!r}") from e
    return ensure_utc(parsed)


def setup_logging(settings: Optional[Settings] = None, level: Optional[str] = None) -> None:
    """Configure root logging for one-shot commands."""
    settings = settings or get_settings()
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)


@contextmanager
def open_store(json_output: bool = False) -> Iterator[AnalyticsStore]:
    """
    Connect the configured store for one command and close it afterwards.

    Connection and query failures are reported as "data unavailable"
    (exit code 1) rather than empty results.
    """
    from sitestats.factory import get_store

    try:
        store = get_store(fail_fast=True)
    except Exception as e:
        fail(f"Analytics store unreachable: {e}", json_output)

    try:
        yield store
    except StoreUnavailableError as e:
        fail(f"Data unavailable: {e}", json_output)
    finally:
        store.close()
