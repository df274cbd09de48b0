# ==============================================================================
# Database Commands
# ==============================================================================
"""
PostgreSQL schema commands for the sitestats CLI.
"""

from typing import Annotated

import typer

from sitestats.cli.shared import C, fail, success
from sitestats.utils.config import get_settings


def db_init() -> None:
    """Create the database and analytics schema if they do not exist.

    Safe to run repeatedly.

    Examples:
        sitestats db init
    """
    from sitestats.utils.db import ensure_schema

    schema_name = get_settings().postgres.schema_name
    print(f"  Initializing schema '{C.WHITE}{schema_name}{C.RESET}'...")
    try:
        created = ensure_schema()
    except Exception as e:
        fail(f"Failed to initialize schema: {e}")

    if created:
        success(f"Schema '{schema_name}' created")
    else:
        success(f"Schema '{schema_name}' already exists")


def db_reset(
    confirm: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Drop and recreate the analytics schema.

    WARNING: deletes all visitors, sessions and page views.

    Examples:
        sitestats db reset       # With confirmation prompt
        sitestats db reset -y    # Skip confirmation
    """
    from sitestats.utils.db import reset_schema

    schema_name = get_settings().postgres.schema_name
    if not confirm:
        typer.confirm(
            f"This will DELETE all analytics data in schema '{schema_name}'. Are you sure?",
            abort=True,
        )

    print(f"  Resetting schema '{C.WHITE}{schema_name}{C.RESET}'...")
    try:
        reset_schema()
    except RuntimeError as e:
        fail(str(e))
    success(f"Schema '{schema_name}' reset")
