"""Tests for the file-system observer adapter."""

import logging
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from git_autosync.events import ChangeEvent, ChangeKind
from git_autosync.watcher import ChangeObserver, RepoEventHandler


@pytest.fixture
def forwarded() -> list[ChangeEvent]:
    return []


@pytest.fixture
def handler(repo_dir: Path, forwarded: list[ChangeEvent]) -> RepoEventHandler:
    return RepoEventHandler("notes", repo_dir / ".git", forwarded.append)


def test_handler_maps_event_kinds(
    handler: RepoEventHandler, repo_dir: Path, forwarded: list[ChangeEvent]
) -> None:
    """Verifies the watchdog-to-ChangeKind mapping."""
    path = str(repo_dir / "notes.md")

    handler.dispatch(FileCreatedEvent(path))
    handler.dispatch(FileModifiedEvent(path))
    handler.dispatch(FileDeletedEvent(path))

    assert forwarded == [
        ChangeEvent(path, ChangeKind.CREATED),
        ChangeEvent(path, ChangeKind.CHANGED),
        ChangeEvent(path, ChangeKind.DELETED),
    ]


def test_handler_reports_renames_under_new_name(
    handler: RepoEventHandler, repo_dir: Path, forwarded: list[ChangeEvent]
) -> None:
    old = str(repo_dir / "draft.md")
    new = str(repo_dir / "final.md")

    handler.dispatch(FileMovedEvent(old, new))

    assert forwarded == [ChangeEvent(new, ChangeKind.RENAMED)]


def test_handler_drops_metadata_events(
    handler: RepoEventHandler, repo_dir: Path, forwarded: list[ChangeEvent]
) -> None:
    """Verifies that git's own bookkeeping writes are never forwarded."""
    git_dir = repo_dir / ".git"

    handler.dispatch(FileModifiedEvent(str(git_dir / "index")))
    handler.dispatch(FileCreatedEvent(str(git_dir / "index.lock")))
    handler.dispatch(FileMovedEvent(str(git_dir / "index.lock"), str(git_dir / "index")))
    handler.dispatch(DirModifiedEvent(str(git_dir)))

    assert forwarded == []


def test_handler_forwards_directory_events(
    handler: RepoEventHandler, repo_dir: Path, forwarded: list[ChangeEvent]
) -> None:
    handler.dispatch(DirModifiedEvent(str(repo_dir)))

    assert forwarded == [ChangeEvent(str(repo_dir), ChangeKind.CHANGED)]


def test_handler_ignores_access_events(
    handler: RepoEventHandler, repo_dir: Path, forwarded: list[ChangeEvent]
) -> None:
    handler.dispatch(FileClosedEvent(str(repo_dir / "notes.md")))

    assert forwarded == []


def test_handler_swallows_errors(
    repo_dir: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a failing callback is logged at debug and never propagates."""
    caplog.set_level(logging.DEBUG, logger="git-autosync")
    handler = RepoEventHandler(
        "notes", repo_dir / ".git", MagicMock(side_effect=RuntimeError("overflow"))
    )

    handler.dispatch(FileModifiedEvent(str(repo_dir / "notes.md")))

    assert "File watcher error: overflow" in caplog.text


def test_observer_schedules_recursive_watch(repo_dir: Path) -> None:
    """Verifies a single recursive subscription on the repository root."""
    factory = MagicMock()
    observer = ChangeObserver("notes", repo_dir, repo_dir / ".git", MagicMock(), factory)

    observer.start()
    observer.start()

    factory.assert_called_once()
    backend = factory.return_value
    backend.schedule.assert_called_once_with(observer.handler, str(repo_dir), recursive=True)
    backend.start.assert_called_once()
    assert observer.running is True

    backend.is_alive.return_value = False
    observer.stop()
    observer.stop()

    backend.stop.assert_called_once()
    backend.join.assert_called_once()
    assert observer.running is False


def test_observer_delivers_real_events(repo_dir: Path) -> None:
    """Verifies end-to-end delivery from the platform observer."""
    received = threading.Event()
    seen: list[ChangeEvent] = []

    def on_change(event: ChangeEvent) -> None:
        seen.append(event)
        if event.path and event.path.endswith("fresh.txt"):
            received.set()

    observer = ChangeObserver("notes", repo_dir, repo_dir / ".git", on_change)
    observer.start()
    try:
        (repo_dir / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
        (repo_dir / "fresh.txt").write_text("x")
        assert received.wait(10)
    finally:
        observer.stop()

    assert all(".git" not in Path(e.path).parts for e in seen if e.path)
