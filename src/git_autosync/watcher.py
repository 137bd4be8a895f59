import os
from pathlib import Path
from typing import Callable

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .events import ChangeEvent, ChangeKind
from .logs import repo_logger
from .paths import is_descendant_of

"""Recursive file-system observation for a repository root."""

EVENT_KINDS = {
    EVENT_TYPE_CREATED: ChangeKind.CREATED,
    EVENT_TYPE_MODIFIED: ChangeKind.CHANGED,
    EVENT_TYPE_DELETED: ChangeKind.DELETED,
    EVENT_TYPE_MOVED: ChangeKind.RENAMED,
}
"""dict[str, ChangeKind]: watchdog event types forwarded as changes."""


class RepoEventHandler(FileSystemEventHandler):
    """Normalizes watchdog events into `ChangeEvent` objects.

    Runs on the observer thread, so it only classifies and forwards. Anything it
    raises is logged at debug level and swallowed so the observer keeps running.
    """

    def __init__(
        self,
        repo_name: str,
        git_dir: Path,
        on_change: Callable[[ChangeEvent], None],
    ):
        super().__init__()
        self.git_dir = git_dir
        self.on_change = on_change
        self.logger = repo_logger(repo_name)

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            kind = EVENT_KINDS.get(event.event_type)
            if kind is None:
                return

            # Renames are reported under their new name.
            raw = event.dest_path if kind is ChangeKind.RENAMED else event.src_path
            path = os.fsdecode(raw)
            if not path or is_descendant_of(self.git_dir, path):
                return

            self.logger.debug(f"File {kind.value} detected: {path}")
            self.on_change(ChangeEvent(path, kind))
        except Exception as e:
            self.logger.debug(f"File watcher error: {e}")


class ChangeObserver:
    """Watches a repository root recursively for every kind of change.

    Attributes:
        root (Path): The directory being watched.
        handler (RepoEventHandler): Classifies and forwards raw events.
    """

    def __init__(
        self,
        repo_name: str,
        root: Path,
        git_dir: Path,
        on_change: Callable[[ChangeEvent], None],
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.root = root
        self.handler = RepoEventHandler(repo_name, git_dir, on_change)
        self.logger = repo_logger(repo_name)
        self._observer_factory = observer_factory
        self._observer: Observer | None = None

    @property
    def running(self) -> bool:
        """Whether the underlying observer thread is active."""
        return self._observer is not None

    def start(self) -> None:
        """Starts watching. Calling it while already running does nothing."""
        if self._observer is not None:
            return
        observer = self._observer_factory()
        observer.schedule(self.handler, str(self.root), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        self.logger.info(f"Watching {self.root}")

    def stop(self, timeout: float = 3.0) -> None:
        """Stops watching and waits briefly for the observer thread to exit."""
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout)
        if observer.is_alive():
            self.logger.warning("File watcher did not stop in time")
