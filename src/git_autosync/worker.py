from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .constants import GIT_DIR_NAME, PERIODIC_INTERVAL, QUIET_PERIOD
from .events import ChangeEvent, PendingEventQueue
from .git_wrapper import GitRunner
from .logs import repo_logger
from .paths import canonical_path
from .scheduler import TriggerScheduler
from .sync import GitSyncEngine, SyncOutcome
from .system import Notifier
from .watcher import ChangeObserver


class ConfigurationError(ValueError):
    """Raised when a repository cannot be watched as configured."""


@dataclass(frozen=True)
class WatchedRepository:
    """The identity of a synchronized repository.

    Attributes:
        name (str): The display name used in logs and notifications.
        root (Path): The canonical working directory.
        git_dir (Path): The canonical metadata directory (``root/.git``).
    """

    name: str
    root: Path
    git_dir: Path

    @classmethod
    def from_path(cls, name: str, path: str | Path) -> "WatchedRepository":
        """Validates and canonicalizes a repository location.

        Args:
            name (str): The display name.
            path (str | Path): The repository root directory.

        Returns:
            WatchedRepository: The repository identity.

        Raises:
            ConfigurationError: If the path has no metadata directory.
        """
        root = canonical_path(Path(path).expanduser().absolute())
        git_dir = canonical_path(root / GIT_DIR_NAME)
        if not git_dir.is_dir():
            raise ConfigurationError(f"Does not contain a .git directory: {root}")
        return cls(name, root, git_dir)


class SyncWorker:
    """Keeps one repository synchronized with its remote.

    A worker is created stopped. `start` wires a fresh event queue to the file
    watcher and both triggers, and queues an initial forced check; `stop` tears
    the triggers down while letting an in-flight pass finish.

    Attributes:
        repo (WatchedRepository): The repository being synchronized.
        engine (GitSyncEngine): Runs the git synchronization passes.
    """

    def __init__(
        self,
        name: str,
        path: str | Path,
        notifier: Notifier,
        quiet_period: float = QUIET_PERIOD,
        periodic_interval: float = PERIODIC_INTERVAL,
        command_timeout: float | None = None,
        observer_factory: Callable | None = None,
    ):
        self.repo = WatchedRepository.from_path(name, path)
        self.notifier = notifier
        self.quiet_period = quiet_period
        self.periodic_interval = periodic_interval
        self.logger = repo_logger(name)
        self.logger.info("Initializing repository worker")

        runner = GitRunner(self.repo.root, name, notifier, timeout=command_timeout)
        self.engine = GitSyncEngine(name, self.repo.git_dir, runner, notifier)

        self._observer_factory = observer_factory
        self.queue = PendingEventQueue()
        self._scheduler: TriggerScheduler | None = None
        self._observer: ChangeObserver | None = None

    @property
    def name(self) -> str:
        return self.repo.name

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        """Moves the worker from Stopped to Running."""
        if self._scheduler is not None:
            return

        self.queue = PendingEventQueue()
        self._scheduler = TriggerScheduler(
            self.repo.name,
            self.queue,
            self.synchronize,
            quiet_period=self.quiet_period,
            periodic_interval=self.periodic_interval,
        )
        observer_kwargs = {}
        if self._observer_factory is not None:
            observer_kwargs["observer_factory"] = self._observer_factory
        self._observer = ChangeObserver(
            self.repo.name,
            self.repo.root,
            self.repo.git_dir,
            self._scheduler.notify_change,
            **observer_kwargs,
        )

        self._observer.start()
        self.queue.put(ChangeEvent.forced())
        self._scheduler.start()
        self.logger.info("Repository worker started")

    def stop(self) -> None:
        """Moves the worker from Running to Stopped.

        Events still waiting in the queue are discarded.
        """
        scheduler, self._scheduler = self._scheduler, None
        observer, self._observer = self._observer, None
        if scheduler is None:
            return

        if observer is not None:
            observer.stop()
        scheduler.stop()

        if dropped := self.queue.clear():
            self.logger.warning(f"Discarded {dropped} pending events on stop")
        self.logger.info("Repository worker stopped")

    def synchronize(self) -> SyncOutcome:
        """Drains the pending queue and runs a pass under the run mutex."""
        return self.engine.synchronize(self.queue.drain)

    def sync_now(self) -> SyncOutcome:
        """Runs a forced pass on the calling thread."""
        self.queue.put(ChangeEvent.forced())
        return self.synchronize()

    def __enter__(self) -> "SyncWorker":
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()
