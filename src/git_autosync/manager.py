import datetime
import logging
import threading
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .constants import APP_NAME
from .paths import canonical_path
from .system import Notifier
from .worker import SyncWorker

logger = logging.getLogger(APP_NAME)


@dataclass
class RepositoryInfo:
    """A snapshot of one managed repository.

    Attributes:
        name (str): The display name.
        path (Path): The canonical repository root.
        running (bool): Whether its worker is running.
        status (str): 'Running' or 'Stopped'.
        last_activity (datetime.datetime | None): When it was last started or stopped.
    """

    name: str
    path: Path
    running: bool
    status: str
    last_activity: datetime.datetime | None = None


class RepositoryManager:
    """Creates, starts and stops one `SyncWorker` per repository.

    Each repository keeps one worker for its whole life. Stopping it tears the
    triggers down; starting it again begins with an empty event queue.
    """

    def __init__(self, config: Config, notifier: Notifier):
        self.config = config
        self.notifier = notifier
        self._workers: dict[str, SyncWorker] = {}
        self._info: dict[str, RepositoryInfo] = {}
        self._lock = threading.Lock()

    def _create_worker(self, name: str, path: Path) -> SyncWorker:
        daemon = self.config.daemon
        return SyncWorker(
            name,
            path,
            self.notifier,
            quiet_period=daemon.quiet_period,
            periodic_interval=daemon.periodic_interval,
            command_timeout=daemon.command_timeout or None,
        )

    def add(self, name: str, path: str | Path, start: bool = True) -> RepositoryInfo:
        """Registers a repository and, by default, starts synchronizing it.

        Args:
            name (str): The display name, unique within the manager.
            path (str | Path): The repository root.
            start (bool, optional): Whether to start its worker. Defaults to True.

        Returns:
            RepositoryInfo: The registered repository.

        Raises:
            ConfigurationError: If the path is not a git working directory.
            ValueError: If the name or path is already managed.
        """
        worker = self._create_worker(name, Path(path))
        root = worker.repo.root

        with self._lock:
            if name in self._info:
                raise ValueError(f"Repository already exists with name: {name}")
            if any(canonical_path(i.path) == root for i in self._info.values()):
                raise ValueError(f"Repository already exists at path: {root}")
            self._workers[name] = worker
            self._info[name] = RepositoryInfo(name, root, False, "Stopped")

        logger.info(f"Repository added: {name} at {root}")
        if start:
            self.start(name)
        return self._info[name]

    def start(self, name: str) -> None:
        """Starts a stopped repository with an empty event queue.

        Raises:
            KeyError: If the repository is unknown.
        """
        with self._lock:
            info = self._info[name]
            if info.running:
                logger.warning(f"Repository {name} is already running")
                return
            # One worker, and so one run mutex, per repository.
            self._workers[name].start()
            info.running = True
            info.status = "Running"
            info.last_activity = datetime.datetime.now()
        logger.info(f"Repository started: {name}")

    def stop(self, name: str) -> None:
        """Stops a running repository. An in-flight pass is left to finish.

        Raises:
            KeyError: If the repository is unknown.
        """
        with self._lock:
            info = self._info[name]
            if not info.running:
                logger.warning(f"Repository {name} is not running")
                return
            self._workers[name].stop()
            info.running = False
            info.status = "Stopped"
            info.last_activity = datetime.datetime.now()
        logger.info(f"Repository stopped: {name}")

    def remove(self, name: str) -> None:
        """Stops and forgets a repository.

        Raises:
            KeyError: If the repository is unknown.
        """
        with self._lock:
            worker = self._workers.pop(name)
            info = self._info.pop(name)
        if info.running:
            worker.stop()
        logger.info(f"Repository removed: {name}")

    def start_all(self) -> None:
        for info in self.repositories():
            if not info.running:
                self.start(info.name)

    def stop_all(self) -> None:
        for info in self.repositories():
            if info.running:
                self.stop(info.name)

    def repositories(self) -> list[RepositoryInfo]:
        with self._lock:
            return list(self._info.values())

    def get(self, name: str) -> RepositoryInfo | None:
        with self._lock:
            return self._info.get(name)

    def worker(self, name: str) -> SyncWorker | None:
        with self._lock:
            return self._workers.get(name)
