import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .constants import APP_NAME, DEFAULT_COMMIT_MESSAGE, IGNORED_STATUS, NOTIFY_TITLE
from .events import ChangeEvent, ChangeKind
from .git_wrapper import GitRunner
from .logs import repo_logger
from .paths import is_descendant_of
from .system import Notifier

"""The git synchronization state machine.

A pass runs, in order: evaluate the drained batch, local status, fetch,
divergence check, commit if dirty, pull/rebase if behind, divergence re-check,
push if needed. Passes for one repository are serialized by a run mutex.
"""

logger = logging.getLogger(APP_NAME)

STATUS_CMD = ["status", "--porcelain"]
FETCH_CMD = ["fetch", "--prune", "--all", "--force", "--verbose"]
UPSTREAM_CMD = ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"]
DIVERGENCE_CMD = ["rev-list", "--left-right", "--count", "HEAD...@{u}"]
STAGE_CMD = ["add", "--all"]
PULL_CMD = ["pull", "--rebase", "--autostash", "--stat"]
PUSH_CMD = ["push", "--verbose"]


@dataclass(frozen=True)
class ChangedFile:
    """One entry of porcelain status output.

    Attributes:
        status (str): The two-character status code (e.g. 'M ', '??').
        path (str): The path as printed by git, starting at column 3.
    """

    status: str
    path: str


@dataclass(frozen=True)
class DivergenceState:
    """How the current branch relates to its upstream tracking reference.

    Attributes:
        has_upstream (bool): Whether a usable upstream exists.
        ahead (int): Commits present only locally.
        behind (int): Commits present only on the upstream.
    """

    has_upstream: bool
    ahead: int = 0
    behind: int = 0

    @classmethod
    def none(cls) -> "DivergenceState":
        """The state used when there is no upstream or it cannot be measured."""
        return cls(False, 0, 0)


@dataclass
class SyncOutcome:
    """What a single synchronization pass did.

    Attributes:
        processed (bool): Whether the pass went past the evaluate step.
        created_commit (bool): Whether a local commit was created.
        commit_message (str): The message of that commit, or ''.
        pulled (bool): Whether a rebase-pull succeeded.
        pushed (bool): Whether a push succeeded.
        aborted (str | None): Why the pass stopped early, if it did.
    """

    processed: bool = False
    created_commit: bool = False
    commit_message: str = ""
    pulled: bool = False
    pushed: bool = False
    aborted: str | None = None


def parse_status_output(output: str) -> list[ChangedFile]:
    """Parses `git status --porcelain` output into changed files.

    Ignored entries ('!!') are dropped. Lines too short to hold a status code
    and a path are logged and skipped.

    Args:
        output (str): The raw command output.

    Returns:
        list[ChangedFile]: The changed files in output order.
    """
    changed = []
    for line in output.splitlines():
        if not line.strip():
            continue
        if len(line) < 4:
            logger.warning(f"Could not parse status line: '{line}'")
            continue
        status = line[:2]
        if status == IGNORED_STATUS:
            continue
        changed.append(ChangedFile(status, line[3:]))
    return changed


def build_commit_message(files: list[ChangedFile]) -> str:
    """Builds a commit message listing every changed file.

    Example: ``"M foo.txt, ?? bar.txt"``.

    Args:
        files (list[ChangedFile]): The staged change set.

    Returns:
        str: The commit message, or 'Auto commit' for an empty change set.
    """
    if not files:
        return DEFAULT_COMMIT_MESSAGE

    entries = []
    for f in files:
        path = f.path.strip().replace('"', '\\"')
        entries.append(f"{f.status.upper().strip()} {path}")
    return ", ".join(entries)


def parse_ahead_behind(output: str) -> DivergenceState:
    """Parses `git rev-list --left-right --count` output.

    Args:
        output (str): Two whitespace-separated integers, 'ahead behind'.

    Returns:
        DivergenceState: The counts, or the no-upstream state if the output
                         cannot be parsed.
    """
    parts = output.split()
    if len(parts) < 2:
        logger.warning(f"Could not parse rev-list output: '{output.strip()}'")
        return DivergenceState.none()
    try:
        return DivergenceState(True, int(parts[0]), int(parts[1]))
    except ValueError:
        logger.warning(f"Could not parse rev-list output: '{output.strip()}'")
        return DivergenceState.none()


class GitSyncEngine:
    """Drives synchronization passes for one repository.

    Attributes:
        repo_name (str): The repository display name.
        git_dir (Path): The metadata directory whose events never count.
        runner (GitRunner): Executes git commands in the repository root.
        notifier (Notifier): Receives user-facing outcome notifications.
    """

    def __init__(
        self, repo_name: str, git_dir: Path, runner: GitRunner, notifier: Notifier
    ):
        self.repo_name = repo_name
        self.git_dir = git_dir
        self.runner = runner
        self.notifier = notifier
        self.logger = repo_logger(repo_name)
        self._run_lock = threading.Lock()

    @property
    def busy(self) -> bool:
        """Whether a pass currently holds the run mutex."""
        return self._run_lock.locked()

    def should_process(self, batch: list[ChangeEvent]) -> bool:
        """Decides whether a drained batch justifies a synchronization pass.

        Args:
            batch (list[ChangeEvent]): The drained events.

        Returns:
            bool: True if the batch holds a forced check or any event outside
                  the metadata directory.
        """
        if not batch:
            return False
        if any(e.kind is ChangeKind.FORCED_CHECK for e in batch):
            return True
        return any(
            not is_descendant_of(self.git_dir, e.path) for e in batch if e.path
        )

    def local_status(self) -> list[ChangedFile]:
        """Runs porcelain status and returns the changed files."""
        result = self.runner.run(STATUS_CMD)
        return parse_status_output(result.stdout)

    def fetch(self) -> bool:
        """Fetches all remotes. Failures are reported but never fatal."""
        return self.runner.run(FETCH_CMD).ok

    def divergence(self) -> DivergenceState:
        """Determines the upstream and the ahead/behind counts against it."""
        upstream = self.runner.run(UPSTREAM_CMD, notify_on_error=False)
        if not upstream.ok:
            return DivergenceState.none()

        counts = self.runner.run(DIVERGENCE_CMD, notify_on_error=False)
        if not counts.ok:
            return DivergenceState.none()

        return parse_ahead_behind(counts.stdout)

    def commit_all(self) -> tuple[bool, str]:
        """Stages everything and commits it.

        The change set is re-read after staging because staging itself can
        change it (line-ending normalization).

        Returns:
            tuple[bool, str]: Whether the commit succeeded and its message.
        """
        self.runner.run(STAGE_CMD)
        message = build_commit_message(self.local_status())
        result = self.runner.run(["commit", "-m", message])
        return result.ok, message

    def pull_rebase(self) -> bool:
        """Rebases local commits onto the upstream, autostashing local edits.

        Returns:
            bool: Whether the pull succeeded.
        """
        result = self.runner.run(PULL_CMD)
        if not result.ok:
            self.logger.warning("Pull with rebase failed")
            self.notifier.notify(
                NOTIFY_TITLE,
                self.repo_name,
                f"Pull/rebase failed (stdout: {result.stdout}, stderr: {result.stderr})",
            )
            return False

        if result.stdout.strip():
            self.notifier.notify(
                NOTIFY_TITLE,
                "Synchronized (rebase) files from remote to local",
                result.stdout,
            )
        return True

    def push(self, commit_message: str) -> bool:
        """Publishes local commits to the upstream.

        Args:
            commit_message (str): The message of the commit created this pass,
                                  included in the success notification.

        Returns:
            bool: Whether the push succeeded.
        """
        result = self.runner.run(PUSH_CMD)
        if not result.ok:
            self.logger.warning("Push failed")
            self.notifier.notify(
                NOTIFY_TITLE,
                self.repo_name,
                f"Push failed (stdout: {result.stdout}, stderr: {result.stderr})",
            )
            return False

        self.notifier.notify(
            NOTIFY_TITLE,
            self.repo_name,
            f"Synchronized (push) files from local to remote {commit_message}",
        )
        return True

    def synchronize(self, drain: Callable[[], list[ChangeEvent]]) -> SyncOutcome:
        """Acquires the run mutex, drains pending events and runs a pass.

        Draining happens after the mutex is acquired, so a pass that waited for
        a previous one picks up every event that arrived in the meantime.

        Args:
            drain (Callable[[], list[ChangeEvent]]): Returns the pending batch.

        Returns:
            SyncOutcome: What the pass did.
        """
        with self._run_lock:
            return self._run(drain())

    def run(self, batch: list[ChangeEvent]) -> SyncOutcome:
        """Runs one synchronization pass for an already drained batch.

        Args:
            batch (list[ChangeEvent]): The events that triggered the pass.

        Returns:
            SyncOutcome: What the pass did.
        """
        with self._run_lock:
            return self._run(batch)

    def _run(self, batch: list[ChangeEvent]) -> SyncOutcome:
        outcome = SyncOutcome()

        # 1. Evaluate.
        if not self.should_process(batch):
            outcome.aborted = "nothing to process"
            return outcome
        outcome.processed = True
        self.logger.info("Synchronizing")

        # 2. Local status.
        self.logger.info("Checking local status")
        changed = self.local_status()
        self.logger.info(f"Local: {len(changed)} files changed")

        # 3. Fetch (best effort).
        self.logger.info("Fetching remote status")
        self.fetch()

        # 4. Divergence.
        state = self.divergence()
        if state.has_upstream:
            self.logger.info(
                f"Remote divergence: ahead={state.ahead}, behind={state.behind}"
            )
        else:
            self.logger.info(
                "No upstream tracking branch configured; pull/push sync skipped"
            )

        # 5. Commit.
        if changed:
            outcome.created_commit, outcome.commit_message = self.commit_all()

        # 6. Pull/rebase, then re-measure.
        if state.has_upstream and state.behind > 0:
            if not self.pull_rebase():
                outcome.aborted = "pull failed"
                return outcome
            outcome.pulled = True
            state = self.divergence()

        # 7. Push.
        should_push = outcome.created_commit or (state.has_upstream and state.ahead > 0)
        if state.has_upstream and should_push:
            outcome.pushed = self.push(outcome.commit_message)

        return outcome
