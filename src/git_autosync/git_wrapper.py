import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .constants import NOTIFY_TITLE
from .logs import repo_logger
from .system import Notifier

TIMEOUT_EXIT_CODE = 124
"""int: Exit code reported when a git command exceeds the configured timeout."""

NOT_FOUND_EXIT_CODE = 127
"""int: Exit code reported when the git executable cannot be started."""


@dataclass(frozen=True)
class CommandResult:
    """The captured outcome of a single git invocation.

    Attributes:
        args (tuple[str, ...]): The arguments passed to git.
        returncode (int): The process exit code.
        stdout (str): Captured standard output.
        stderr (str): Captured standard error.
    """

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """Whether the command exited with status zero."""
        return self.returncode == 0


class GitRunner:
    """Executes git commands inside one repository without raising on failure.

    Unlike a checked subprocess call, a non-zero exit is reported through the
    returned `CommandResult` so that each synchronization step can decide
    whether to continue, abort, or simply report.

    Attributes:
        root (Path): The repository working directory.
        repo_name (str): The display name used for logs and notifications.
        timeout (float | None): Seconds before a command is killed. None waits
                                forever.
    """

    def __init__(
        self,
        root: Path,
        repo_name: str,
        notifier: Notifier,
        timeout: float | None = None,
    ):
        self.root = root
        self.repo_name = repo_name
        self.notifier = notifier
        self.timeout = timeout
        self.logger = repo_logger(repo_name)

    def _execute(self, args: list[str]) -> CommandResult:
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.root,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
            return CommandResult(tuple(args), res.returncode, res.stdout, res.stderr)
        except subprocess.TimeoutExpired as e:
            stdout = e.stdout.decode() if isinstance(e.stdout, bytes) else e.stdout
            return CommandResult(
                tuple(args),
                TIMEOUT_EXIT_CODE,
                stdout or "",
                f"timed out after {self.timeout}s",
            )
        except FileNotFoundError as e:
            return CommandResult(tuple(args), NOT_FOUND_EXIT_CODE, "", str(e))

    def run(self, args: list[str], notify_on_error: bool = True) -> CommandResult:
        """Runs ``git <args>`` in the repository root.

        Args:
            args (list[str]): Arguments passed to git.
            notify_on_error (bool, optional): Whether a non-zero exit produces a
                                              user notification. Defaults to True.

        Returns:
            CommandResult: The exit code and captured output.
        """
        command = " ".join(args)
        self.logger.info(f"Executing: git {command}")
        result = self._execute(args)
        self.logger.info(f"Status: {result.returncode}")

        if result.stdout.strip():
            self.logger.debug(f"Output: {result.stdout}")

        if result.stderr.strip():
            level = logging.DEBUG if result.ok else logging.ERROR
            label = "Stderr" if result.ok else "Error"
            self.logger.log(level, f"{label}: {result.stderr}")

        if not result.ok and notify_on_error:
            self.logger.error(f"Git error occurred, error executing git {command}")
            self.notifier.notify(
                NOTIFY_TITLE, self.repo_name, f"Error executing git {command}"
            )

        return result
