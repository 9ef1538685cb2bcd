"""Configuration management for openobs.

This module contains all configurable constants for the vault engine.
Magic numbers are documented here rather than scattered throughout the codebase.
"""

import os
from pathlib import Path

from .errors import ConfigurationError

# =============================================================================
# Vault Layout
# =============================================================================

# Sidecar directory holding the index store. Hidden, so never indexed.
APP_DIR_NAME = ".openobs"

# SQLite file inside APP_DIR_NAME
DB_FILENAME = "openobs.db"

# Folders created when scaffolding a new vault
DAILY_NOTES_FOLDER = "Daily Notes"
TEMPLATES_FOLDER = "Templates"
ATTACHMENTS_FOLDER = "Attachments"

# Template used by get_daily_note when present
DAILY_NOTE_TEMPLATE = f"{TEMPLATES_FOLDER}/Daily Note.md"

# Date format of daily note file names (also the get_daily_note argument format)
DAILY_NOTE_DATE_FORMAT = "%Y-%m-%d"

# Maximum directory traversal depth when discovering a vault from cwd.
# Prevents infinite loops on circular symlinks or unusual filesystems.
MAX_VAULT_SEARCH_DEPTH = 50


# =============================================================================
# Search Limits
# =============================================================================

# Default number of results returned by search_notes
DEFAULT_SEARCH_LIMIT = 50

# Number of tokens FTS5 puts in a highlighted snippet
SNIPPET_TOKENS = 32

# Characters of content used as the snippet for tag search results
TAG_SNIPPET_CHARS = 100

# Highlight markers wrapped around matched tokens
SNIPPET_OPEN = "<mark>"
SNIPPET_CLOSE = "</mark>"
SNIPPET_ELLIPSIS = "..."


# =============================================================================
# Graph
# =============================================================================

# Hop count used by get_local_graph when the caller gives none
DEFAULT_LOCAL_GRAPH_DEPTH = 1


# =============================================================================
# Settings
# =============================================================================

APP_SETTINGS_PREFIX = "app."
VAULT_SETTINGS_PREFIX = "vault."

# Number of rows returned by get_recent_vaults
RECENT_VAULTS_LIMIT = 10


def get_db_path(vault_root: Path) -> Path:
    """Location of the index store for a vault."""
    return vault_root / APP_DIR_NAME / DB_FILENAME


def _discover_vault(start_dir: Path | None = None, max_depth: int = MAX_VAULT_SEARCH_DEPTH) -> Path | None:
    """Walk up from start_dir looking for a directory holding APP_DIR_NAME.

    Args:
        start_dir: Directory to start from (defaults to cwd)
        max_depth: Maximum directories to traverse up

    Returns:
        The vault root if found, None otherwise.
    """
    current = Path(start_dir or os.getcwd()).resolve()

    for _ in range(max_depth):
        if (current / APP_DIR_NAME).is_dir():
            return current

        parent = current.parent
        if parent == current:  # Reached filesystem root
            break
        current = parent

    return None


def get_vault_root(explicit: str | None = None) -> Path:
    """Get the vault root for CLI commands.

    Discovery order:
    1. Explicit path (``--vault``)
    2. OPENOBS_VAULT environment variable
    3. Walk up from cwd looking for a ``.openobs/`` directory

    Raises:
        ConfigurationError: If no vault can be found.
    """
    if explicit:
        return Path(explicit)

    root = os.environ.get("OPENOBS_VAULT")
    if root:
        return Path(root)

    discovered = _discover_vault()
    if discovered:
        return discovered

    raise ConfigurationError(
        "No vault found. Options:\n"
        "  1. Run 'openobs init PARENT NAME' to create a vault\n"
        "  2. Pass --vault PATH\n"
        "  3. Set OPENOBS_VAULT to an existing vault directory"
    )
