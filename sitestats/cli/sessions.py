# ==============================================================================
# Session Commands
# ==============================================================================
"""
Session maintenance commands: close sessions left open past their window.
"""

from typing import Annotated, Optional

import typer

from sitestats.cli.shared import C, I, fail, open_store, print_json, setup_logging, success
from sitestats.utils.config import get_settings


def sessions_reap(
    watch: Annotated[
        bool, typer.Option("--watch", "-w", help="Keep running, one pass per interval")
    ] = False,
    interval: Annotated[
        Optional[float],
        typer.Option("--interval", "-i", min=1, help="Seconds between passes (with --watch)"),
    ] = None,
    batch_size: Annotated[
        Optional[int], typer.Option("--batch-size", "-b", min=1, help="Sessions closed per pass")
    ] = None,
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output as JSON for scripting")
    ] = False,
) -> None:
    """Close open sessions whose window has lapsed.

    Each lapsed session is closed at its last page activity. Without
    --watch, one pass runs and the command exits.

    Examples:
        sitestats sessions reap
        sitestats sessions reap --watch --interval 60
    """
    from sitestats.core.reaper import ReaperRunner
    from sitestats.factory import build_reaper, get_store

    settings = get_settings()
    interval = interval or settings.reaper.interval_seconds
    batch_size = batch_size or settings.reaper.batch_size

    if watch:
        try:
            store = get_store(settings)
        except Exception as e:
            fail(f"Analytics store unreachable: {e}")
        ReaperRunner(
            build_reaper(store, settings),
            store,
            interval_seconds=interval,
            batch_size=batch_size,
            log_level=settings.log_level,
        ).run()
        return

    setup_logging(settings)
    with open_store(json_output) as store:
        closed = build_reaper(store, settings).reap(limit=batch_size)

    if json_output:
        print_json({"closed": closed})
    elif closed:
        success(f"Closed {C.WHITE}{closed:,}{C.RESET}{C.BRIGHT_GREEN} lapsed sessions")
    else:
        print(f"{C.BRIGHT_YELLOW}{I.CIRCLE} No lapsed sessions{C.RESET}")
