# ==============================================================================
# Tests for CLI Help Commands
# ==============================================================================
"""
Tests that all CLI help commands generate the expected output.

Verifies that every command and subcommand in the sitestats CLI:
- Exits with code 0 when invoked with --help
- Contains the expected description text
- Lists the expected subcommands or options

These tests use the real app from sitestats.app (not minimal Typer apps)
to ensure the full command tree is wired up correctly and that Typer can
introspect all command function signatures without errors.
"""

import pytest
from typer.testing import CliRunner

from sitestats.app import app

runner = CliRunner()


# ==============================================================================
# Root App
# ==============================================================================


class TestRootHelp:
    """Tests for the root `sitestats --help` output."""

    def test_exit_code(self):
        """Root --help exits successfully."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0

    def test_description(self):
        """Root --help shows the app description."""
        result = runner.invoke(app, ["--help"])
        assert "Visitor analytics ingestion and reporting CLI" in result.output

    def test_lists_all_subcommands(self):
        """Root --help lists every top-level command."""
        result = runner.invoke(app, ["--help"])
        for cmd in ["analytics", "consumer", "db", "sessions", "track"]:
            assert cmd in result.output, f"Missing command: {cmd}"


# ==============================================================================
# Command Groups
# ==============================================================================


@pytest.mark.parametrize(
    "group,description,subcommands",
    [
        ("db", "Database schema management", ["init", "reset"]),
        ("track", "Event ingestion", ["replay", "send"]),
        ("consumer", "Kafka tracking consumer", ["run"]),
        ("sessions", "Session maintenance", ["reap"]),
        (
            "analytics",
            "Analytics reports",
            [
                "summary",
                "timeseries",
                "top-pages",
                "top-referrers",
                "devices",
                "browsers",
                "os",
                "countries",
                "realtime",
                "visitors",
                "visitor",
            ],
        ),
    ],
)
class TestGroupHelp:
    """Tests for each command group's --help output."""

    def test_exit_code(self, group, description, subcommands):
        result = runner.invoke(app, [group, "--help"])
        assert result.exit_code == 0

    def test_description(self, group, description, subcommands):
        result = runner.invoke(app, [group, "--help"])
        assert description in result.output

    def test_lists_subcommands(self, group, description, subcommands):
        result = runner.invoke(app, [group, "--help"])
        for cmd in subcommands:
            assert cmd in result.output, f"Missing subcommand: {group} {cmd}"


# ==============================================================================
# Commands
# ==============================================================================


@pytest.mark.parametrize(
    "args,description,options",
    [
        (["db", "reset"], "Drop and recreate the analytics schema", ["--yes"]),
        (["track", "replay"], "Replay tracking events", ["--batch-size", "--json"]),
        (["track", "send"], "Send a single tracking event", []),
        (["sessions", "reap"], "Close open sessions", ["--watch", "--interval", "--batch-size"]),
        (["analytics", "summary"], "Show headline figures", ["--start", "--end", "--json"]),
        (["analytics", "timeseries"], "per time bucket", ["--granularity"]),
        (["analytics", "top-pages"], "most viewed pages", ["--limit"]),
        (["analytics", "realtime"], "active in the last few minutes", ["--minutes"]),
        (["analytics", "visitors"], "List visitors", ["--page", "--page-size"]),
        (["analytics", "visitor"], "Show one visitor", ["TOKEN"]),
    ],
)
class TestCommandHelp:
    """Tests for individual command --help output."""

    def test_exit_code(self, args, description, options):
        result = runner.invoke(app, [*args, "--help"])
        assert result.exit_code == 0

    def test_description(self, args, description, options):
        result = runner.invoke(app, [*args, "--help"])
        assert description in result.output

    def test_lists_options(self, args, description, options):
        result = runner.invoke(app, [*args, "--help"])
        for opt in options:
            assert opt in result.output, f"Missing option: {opt}"
