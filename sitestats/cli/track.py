# ==============================================================================
# Track Commands
# ==============================================================================
"""
Ingestion commands for the sitestats CLI: replay a JSON Lines file or send
a single event, both through the same Tracker used by the Kafka consumer.
"""

import json
from pathlib import Path
from typing import Annotated

import typer

from sitestats.cli.shared import C, fail, open_store, print_json, setup_logging, success
from sitestats.core.errors import InvalidEventError, StoreUnavailableError
from sitestats.utils.config import get_settings

# ==============================================================================
# Commands
# ==============================================================================


def track_replay(
    file: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, readable=True, help="JSON Lines file of events"),
    ],
    batch_size: Annotated[
        int, typer.Option("--batch-size", "-b", min=1, help="Events per logged batch")
    ] = 500,
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output totals as JSON for scripting")
    ] = False,
) -> None:
    """Replay tracking events from a JSON Lines file, in file order.

    Invalid lines and events are counted and skipped; the replay continues.

    Examples:
        sitestats track replay events.jsonl
    """
    from sitestats.consumers.batch_processor import BatchProcessor
    from sitestats.consumers.replay import replay_file
    from sitestats.factory import build_tracker, get_visitor_locks

    settings = get_settings()
    setup_logging(settings)

    with open_store(json_output) as store:
        locks = get_visitor_locks(settings)
        try:
            tracker = build_tracker(store, locks, settings)
            result = replay_file(file, BatchProcessor(tracker), batch_size)
        finally:
            locks.close()

    totals = {
        "events": result.total,
        "accepted": result.accepted,
        "newSessions": result.new_sessions,
        "invalid": result.invalid,
        "failed": result.failed,
    }
    if json_output:
        print_json(totals)
    else:
        print()
        success(
            f"Replayed {C.WHITE}{result.total:,}{C.RESET}{C.BRIGHT_GREEN} events from {file.name}"
        )
        print(
            f"  accepted={result.accepted:,} new_sessions={result.new_sessions:,} "
            f"invalid={result.invalid:,} failed={result.failed:,}"
        )
        print()

    if result.failed:
        raise typer.Exit(1)


def track_send(
    payload: Annotated[str, typer.Argument(help="Event as a JSON object")],
) -> None:
    """Send a single tracking event and print {visitorId, sessionId}.

    Examples:
        sitestats track send '{"visitorId": "v1", "eventType": "pageview", "path": "/"}'
    """
    from sitestats.factory import build_tracker, get_visitor_locks

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        fail(f"Invalid JSON: {e}", json_output=True)

    settings = get_settings()
    with open_store(json_output=True) as store:
        locks = get_visitor_locks(settings)
        try:
            result = build_tracker(store, locks, settings).track(data)
        except InvalidEventError as e:
            fail(f"Invalid event: {e}", json_output=True)
        except StoreUnavailableError as e:
            fail(f"Event dropped: {e}", json_output=True)
        finally:
            locks.close()

    print_json(result.to_json())
