"""Shared fixtures: a scripted git runner and a fake repository layout."""

import threading
import time
from pathlib import Path

import pytest

from git_autosync.git_wrapper import CommandResult


class FakeGitRunner:
    """Stands in for `GitRunner`, replaying canned results per git subcommand.

    Each subcommand (e.g. 'status', 'rev-list') maps to a list of results that
    are consumed in order; the last one is repeated once the list runs out.
    Unscripted subcommands succeed with empty output.
    """

    def __init__(
        self,
        responses: dict[str, list[CommandResult]] | None = None,
        delay: float = 0.0,
    ):
        self.responses = {k: list(v) for k, v in (responses or {}).items()}
        self.delay = delay
        self.calls: list[list[str]] = []
        self.notify_flags: list[bool] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def run(self, args: list[str], notify_on_error: bool = True) -> CommandResult:
        with self._lock:
            self.calls.append(list(args))
            self.notify_flags.append(notify_on_error)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            queue = self.responses.get(args[0])
            if not queue:
                return CommandResult(tuple(args), 0)
            result = queue.pop(0) if len(queue) > 1 else queue[0]
            return CommandResult(tuple(args), result.returncode, result.stdout, result.stderr)
        finally:
            with self._lock:
                self.active -= 1

    def verbs(self) -> list[str]:
        return [c[0] for c in self.calls]


def ok(stdout: str = "") -> CommandResult:
    """A successful result with the given stdout."""
    return CommandResult((), 0, stdout, "")


def fail(stdout: str = "", stderr: str = "boom") -> CommandResult:
    """A failed result with the given output."""
    return CommandResult((), 1, stdout, stderr)


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    """Creates a working directory with a metadata directory and one file."""
    root = tmp_path / "repo"
    (root / ".git" / "refs").mkdir(parents=True)
    (root / ".git" / "index").write_text("")
    (root / "notes.md").write_text("hello")
    return root


@pytest.fixture
def fake_runner() -> FakeGitRunner:
    return FakeGitRunner()
