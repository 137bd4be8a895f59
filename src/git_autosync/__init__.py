"""git-autosync: Continuous synchronization of git working directories.

This package watches repository working trees for changes, debounces them, and
drives a status, fetch, commit, pull and push cycle against each repository's
upstream, alongside a small daemon and command-line interface.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    events,
    git_wrapper,
    logs,
    manager,
    paths,
    scheduler,
    sync,
    system,
    watcher,
    worker,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "events",
    "git_wrapper",
    "logs",
    "manager",
    "paths",
    "scheduler",
    "sync",
    "system",
    "watcher",
    "worker",
]
