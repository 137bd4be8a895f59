import os
from pathlib import Path

"""Global constants and configuration path definitions for git-autosync.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the timing defaults used by every repository worker.
"""

# --- Identity ---
APP_NAME = "git-autosync"
"""str: The human-readable application name, also used as the root logger name."""

NOTIFY_TITLE = "GitAutoSync"
"""str: The title used for every user-facing notification."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-autosync"
"""Path: The directory for runtime state data (logs)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-autosync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

# --- Git / Worker Constants ---
GIT_DIR_NAME = ".git"
"""str: The metadata directory whose own writes never trigger a sync."""

IGNORED_STATUS = "!!"
"""str: Porcelain status code for ignored entries, excluded from the change set."""

DEFAULT_COMMIT_MESSAGE = "Auto commit"
"""str: Commit message used when the post-stage change set is empty."""

QUIET_PERIOD = 5.0
"""float: Seconds without file-system events before a pass is dispatched."""

PERIODIC_INTERVAL = 300.0
"""float: Seconds between forced checks, independent of file-system activity."""

START_STAGGER = 10.0
"""float: Seconds the daemon waits between starting two repository workers."""
