# ==============================================================================
# Path Utilities
# ==============================================================================
"""
Project paths: project root detection and the schema template location.
"""

from pathlib import Path


def get_project_root() -> Path:
    """
    Get the project root directory.

    Looks for pyproject.toml next to the package, then in the current
    working directory. Falls back to the current working directory.
    """
    current = Path(__file__).parent.parent.parent  # utils/paths.py -> sitestats -> project
    if (current / "pyproject.toml").exists():
        return current
    return Path.cwd()


def get_schema_dir() -> Path:
    """Directory containing the SQL schema templates."""
    return get_project_root() / "schema"


def get_init_sql_path() -> Path:
    """Path to the schema initialization template (init.sql)."""
    return get_schema_dir() / "init.sql"
