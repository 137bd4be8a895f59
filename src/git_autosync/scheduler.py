import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from .constants import APP_NAME, PERIODIC_INTERVAL, QUIET_PERIOD
from .events import ChangeEvent, PendingEventQueue
from .logs import repo_logger

"""Triggers that decide when a repository gets synchronized.

Two independent triggers feed the same dispatch function: a quiescence timer
re-armed on every change, and a periodic timer that forces a check regardless
of file-system activity. Dispatch hands the pass to a background executor so
timer and observer threads never wait on git.
"""

logger = logging.getLogger(APP_NAME)


class DeadlineTimer:
    """A restartable one-shot timer.

    Each `restart` cancels the pending deadline, if any, and schedules a new one
    ``delay`` seconds from now. The callback runs once per expired deadline.
    """

    def __init__(self, delay: float, callback: Callable[[], None], name: str = ""):
        self.delay = delay
        self.callback = callback
        self.name = name or "autosync-deadline"
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    @property
    def pending(self) -> bool:
        """Whether a deadline is currently scheduled."""
        with self._lock:
            return self._timer is not None

    def restart(self) -> None:
        """Cancels the current deadline and schedules a fresh one."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.delay, self._expire)
            timer.name = self.name
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        """Cancels the current deadline without scheduling a new one."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _expire(self) -> None:
        with self._lock:
            # A restart may have raced the expiry; only the live timer fires.
            if self._timer is not threading.current_thread():
                return
            self._timer = None
        self.callback()


class PeriodicTimer:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, interval: float, callback: Callable[[], None], name: str = ""):
        self.interval = interval
        self.callback = callback
        self.name = name or "autosync-periodic"
        self._stopped: threading.Event | None = None

    @property
    def running(self) -> bool:
        return self._stopped is not None

    def start(self) -> None:
        if self._stopped is not None:
            return
        # Each run owns its stop flag so a stopped loop never outlives a restart.
        stopped = threading.Event()
        self._stopped = stopped
        threading.Thread(
            target=self._loop, args=(stopped,), name=self.name, daemon=True
        ).start()

    def stop(self) -> None:
        if self._stopped is not None:
            self._stopped.set()
            self._stopped = None

    def _loop(self, stopped: threading.Event) -> None:
        while not stopped.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception("Periodic trigger failed")


class TriggerScheduler:
    """Owns the quiescence and periodic triggers of one repository worker.

    Attributes:
        queue (PendingEventQueue): Where change events accumulate.
        dispatch (Callable[[], None]): Runs one drain-and-synchronize pass. It is
                                       always invoked on the background executor.
        quiet_period (float): Seconds of inactivity before a pass is dispatched.
        periodic_interval (float): Seconds between forced checks.
    """

    def __init__(
        self,
        repo_name: str,
        queue: PendingEventQueue,
        dispatch: Callable[[], None],
        quiet_period: float = QUIET_PERIOD,
        periodic_interval: float = PERIODIC_INTERVAL,
    ):
        self.queue = queue
        self.dispatch = dispatch
        self.quiet_period = quiet_period
        self.periodic_interval = periodic_interval
        self.repo_name = repo_name
        self.logger = repo_logger(repo_name)
        self._quiet_timer = DeadlineTimer(
            quiet_period, self.schedule_pass, name=f"autosync-quiet-{repo_name}"
        )
        self._periodic_timer = PeriodicTimer(
            periodic_interval, self.force_check, name=f"autosync-periodic-{repo_name}"
        )
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._executor is not None

    def start(self) -> None:
        """Starts the periodic trigger and arms the quiescence timer."""
        with self._lock:
            if self._executor is not None:
                return
            # Two threads: one pass running, one waiting on the run mutex.
            self._executor = ThreadPoolExecutor(
                max_workers=2, thread_name_prefix=f"autosync-sync-{self.repo_name}"
            )
        self._periodic_timer.start()
        self._quiet_timer.restart()

    def stop(self) -> None:
        """Stops both triggers.

        Passes that were already dispatched still run to completion; nothing
        new is accepted afterwards.
        """
        self._quiet_timer.cancel()
        self._periodic_timer.stop()
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    def notify_change(self, event: ChangeEvent) -> None:
        """Records a qualifying change and re-arms the quiescence timer."""
        self.queue.put(event)
        self._quiet_timer.restart()

    def force_check(self) -> None:
        """Enqueues a forced check and dispatches a pass without waiting."""
        self.logger.info("Periodic timer enqueueing forced check event")
        self.queue.put(ChangeEvent.forced())
        self.schedule_pass()

    def schedule_pass(self) -> Future | None:
        """Hands a synchronization pass to the background executor.

        Returns:
            Future | None: The pass future, or None when nothing is pending or
                           the scheduler is stopped.
        """
        if not len(self.queue):
            return None
        with self._lock:
            if self._executor is None:
                return None
            return self._executor.submit(self._guarded_dispatch)

    def _guarded_dispatch(self) -> None:
        try:
            self.dispatch()
        except Exception:
            self.logger.exception("Synchronization pass failed")
