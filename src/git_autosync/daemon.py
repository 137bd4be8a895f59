import logging
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType

from rich.console import Console

from .config import Config
from .constants import APP_NAME, LOG_FILE
from .logs import RepoContextFilter
from .manager import RepositoryManager
from .sync import SyncOutcome
from .system import Notifier, SafeNotifier, get_notifier
from .worker import ConfigurationError, SyncWorker

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

console = Console()


def setup_logging(
    interactive: bool, level: int = logging.INFO, max_log_size: int = 5 * 1024 * 1024
) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to stderr
                            and to a rotating log file.
        level (int, optional): The minimum level to emit. Defaults to INFO.
        max_log_size (int, optional): Bytes before the log file is rotated.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s %(repo)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(level)

    # Repeated setup (tests, 'once' after 'run') must not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Always log to a stream (captured by systemd/launchd in daemon mode).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    stream_handler.addFilter(RepoContextFilter())
    logger.addHandler(stream_handler)

    if not interactive:
        # In daemon mode, rotate logs to file.
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(RepoContextFilter())
        logger.addHandler(file_handler)


def start_repositories(
    manager: RepositoryManager,
    config: Config,
    stop_event: threading.Event,
    hostname: str | None = None,
) -> int:
    """Adds and starts every configured repository that matches this host.

    Workers are started one after another, ``start_stagger`` seconds apart, so
    their initial forced checks do not all hit the network at once.

    Returns:
        int: The number of repositories started.
    """
    repos = config.matching_repos(hostname)
    skipped = len(config.repos) - len(repos)
    if skipped:
        logger.info(f"Skipping {skipped} repositories configured for other hosts")

    started = 0
    for index, repo in enumerate(repos):
        if stop_event.is_set():
            break
        if index and config.daemon.start_stagger:
            logger.info(
                f"Waiting {config.daemon.start_stagger:g} seconds before starting next watcher"
            )
            if stop_event.wait(config.daemon.start_stagger):
                break
        try:
            manager.add(repo.name, repo.resolved_path)
            started += 1
        except (ConfigurationError, ValueError) as e:
            logger.error(f"SKIPPED {repo.name}: {e}")
    return started


def run(config: Config, notifier: Notifier | None = None) -> None:
    """Runs the synchronization daemon in the foreground until interrupted.

    Args:
        config (Config): The loaded configuration.
        notifier (Notifier | None, optional): Overrides the configured notifier.
    """
    safe_notifier = SafeNotifier(notifier or get_notifier(config.notifications.mode))
    manager = RepositoryManager(config, safe_notifier)
    stop_event = threading.Event()

    def handle_signal(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"Received signal {signum}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    logger.info(f"Starting {APP_NAME}")
    try:
        if not start_repositories(manager, config, stop_event):
            logger.warning("No repositories to synchronize on this host")
        while not stop_event.wait(3600):
            logger.info(f"{APP_NAME} running, press Ctrl-C to quit")
    finally:
        manager.stop_all()
        safe_notifier.shutdown(wait=True)
        logger.info(f"{APP_NAME} stopped")


def run_once(
    path: Path, name: str | None = None, notifier: Notifier | None = None
) -> SyncOutcome:
    """Runs a single forced synchronization pass for one repository.

    Args:
        path (Path): The repository root.
        name (str | None, optional): The display name. Defaults to the
                                     directory name.
        notifier (Notifier | None, optional): Receives outcome notifications.
                                             Delivery errors are logged only.

    Returns:
        SyncOutcome: What the pass did.

    Raises:
        ConfigurationError: If the path is not a git working directory.
    """
    root = path.expanduser().absolute()
    safe_notifier = SafeNotifier(notifier or Notifier())
    try:
        worker = SyncWorker(name or root.name, root, safe_notifier)
        return worker.sync_now()
    finally:
        safe_notifier.shutdown(wait=True)
