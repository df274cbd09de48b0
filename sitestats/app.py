# ==============================================================================
# sitestats CLI
# ==============================================================================
"""
Command-line interface for sitestats visitor analytics.

Usage:
    sitestats --help
    sitestats db init
    sitestats db reset -y
    sitestats track replay events.jsonl
    sitestats track send '{"visitorId": "v1", "eventType": "pageview", "path": "/"}'
    sitestats consumer run
    sitestats sessions reap --watch
    sitestats analytics summary --json
    sitestats analytics top-pages --limit 20
"""

import os

import typer

# Set consistent terminal width for help output formatting
if "COLUMNS" not in os.environ:
    os.environ["COLUMNS"] = "115"

app = typer.Typer(
    name="sitestats",
    help="Visitor analytics ingestion and reporting CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

db_app = typer.Typer(
    help="Database schema management",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")

from sitestats.cli.db import db_init, db_reset

db_app.command("init")(db_init)
db_app.command("reset")(db_reset)

track_app = typer.Typer(
    help="Event ingestion",
    no_args_is_help=True,
)
app.add_typer(track_app, name="track")

from sitestats.cli.track import track_replay, track_send

track_app.command("replay")(track_replay)
track_app.command("send")(track_send)

consumer_app = typer.Typer(
    help="Kafka tracking consumer",
    no_args_is_help=True,
)
app.add_typer(consumer_app, name="consumer")

from sitestats.cli.consumer import consumer_run

consumer_app.command("run")(consumer_run)

sessions_app = typer.Typer(
    help="Session maintenance",
    no_args_is_help=True,
)
app.add_typer(sessions_app, name="sessions")

from sitestats.cli.sessions import sessions_reap

sessions_app.command("reap")(sessions_reap)

analytics_app = typer.Typer(
    help="Analytics reports",
    no_args_is_help=True,
)
app.add_typer(analytics_app, name="analytics")

from sitestats.cli.analytics import (
    analytics_browsers,
    analytics_countries,
    analytics_devices,
    analytics_os,
    analytics_realtime,
    analytics_summary,
    analytics_timeseries,
    analytics_top_pages,
    analytics_top_referrers,
    analytics_visitor,
    analytics_visitors,
)

analytics_app.command("summary")(analytics_summary)
analytics_app.command("timeseries")(analytics_timeseries)
analytics_app.command("top-pages")(analytics_top_pages)
analytics_app.command("top-referrers")(analytics_top_referrers)
analytics_app.command("devices")(analytics_devices)
analytics_app.command("browsers")(analytics_browsers)
analytics_app.command("os")(analytics_os)
analytics_app.command("countries")(analytics_countries)
analytics_app.command("realtime")(analytics_realtime)
analytics_app.command("visitors")(analytics_visitors)
analytics_app.command("visitor")(analytics_visitor)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
