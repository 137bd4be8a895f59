import logging
import shutil
import socket
import subprocess
import sys
from concurrent.futures import Future, ThreadPoolExecutor

from rich.console import Console
from rich.markup import escape

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

NOTIFICATION_MODES = ("auto", "desktop", "terminal", "off")
"""tuple[str, ...]: Accepted values for the notification mode setting."""


class Notifier:
    """Base class defining the notification interface.

    The base implementation discards every notification and is used when
    notifications are switched off.
    """

    def notify(self, title: str, subtitle: str, message: str) -> None:
        """Delivers a notification to the user.

        Args:
            title (str): The notification title.
            subtitle (str): A secondary heading, usually the repository name.
            message (str): The notification body text.
        """
        pass


class MacOSNotifier(Notifier):
    """Desktop notifications for macOS."""

    def notify(self, title: str, subtitle: str, message: str) -> None:
        """Sends a notification using AppleScript."""
        # Sanitize quotes to prevent AppleScript syntax errors.
        clean_msg = message.replace('"', "'")
        clean_sub = subtitle.replace('"', "'")
        script = (
            f'display notification "{clean_msg}" '
            f'with title "{title}" subtitle "{clean_sub}"'
        )
        subprocess.run(["osascript", "-e", script], stderr=subprocess.DEVNULL, check=True)


class LinuxNotifier(Notifier):
    """Desktop notifications for Linux."""

    def notify(self, title: str, subtitle: str, message: str) -> None:
        """Sends a notification using `notify-send`."""
        subprocess.run(
            ["notify-send", f"{title}: {subtitle}", message],
            stderr=subprocess.DEVNULL,
            check=True,
        )


class TerminalNotifier(Notifier):
    """Prints notifications to the terminal.

    When attached to a terminal, an OSC 9 escape sequence is written as well so
    that terminal emulators supporting it raise a native notification.
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console(stderr=True)

    def notify(self, title: str, subtitle: str, message: str) -> None:
        self.console.print(
            f"[bold blue]{escape(title)}[/bold blue] "
            f"[cyan]{escape(subtitle)}[/cyan]: {escape(message)}"
        )
        if self.console.is_terminal:
            text = f"{title} {subtitle}: {message}".replace("\x07", "")
            self.console.file.write(f"\x1b]9;{text}\x07")
            self.console.file.flush()


def get_desktop_notifier() -> Notifier | None:
    """Returns the platform desktop notifier, or None if its tool is missing."""
    if sys.platform == "darwin" and shutil.which("osascript"):
        return MacOSNotifier()
    if sys.platform.startswith("linux") and shutil.which("notify-send"):
        return LinuxNotifier()
    return None


def get_notifier(mode: str = "auto") -> Notifier:
    """Factory function to retrieve the notifier for a notification mode.

    Args:
        mode (str, optional): One of 'auto', 'desktop', 'terminal' or 'off'.
                              'auto' prefers desktop notifications and falls back
                              to the terminal. Defaults to 'auto'.

    Returns:
        Notifier: The notifier implementation.

    Raises:
        ValueError: If the mode is not recognized.
    """
    if mode not in NOTIFICATION_MODES:
        raise ValueError(
            f"Invalid notification mode '{mode}'. "
            f"Expected one of: {', '.join(NOTIFICATION_MODES)}."
        )
    if mode == "off":
        return Notifier()
    if mode == "terminal":
        return TerminalNotifier()

    desktop = get_desktop_notifier()
    if desktop:
        return desktop
    if mode == "desktop":
        logger.warning("No desktop notification tool found; notifications disabled.")
        return Notifier()
    return TerminalNotifier()


class SafeNotifier(Notifier):
    """Fire-and-forget wrapper around another notifier.

    Notifications are delivered on a single background thread in the order they
    were issued. Delivery failures are logged and never reach the caller.
    """

    def __init__(self, inner: Notifier):
        self.inner = inner
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="autosync-notify"
        )

    def notify(self, title: str, subtitle: str, message: str) -> None:
        try:
            future = self._executor.submit(self.inner.notify, title, subtitle, message)
        except RuntimeError as e:
            logger.warning(f"Notification dropped after shutdown: {e}")
            return
        future.add_done_callback(self._report)

    @staticmethod
    def _report(future: Future) -> None:
        if (error := future.exception()) is not None:
            logger.warning(f"Notification delivery failed: {error}")

    def shutdown(self, wait: bool = True) -> None:
        """Stops the delivery thread, optionally flushing queued notifications."""
        self._executor.shutdown(wait=wait)


def get_hostname() -> str:
    """Returns the machine hostname as reported by the OS."""
    return socket.gethostname()


def matches_hostname(hosts: list[str], hostname: str | None = None) -> bool:
    """Checks whether a repository's host filter admits this machine.

    An empty list admits every host. Otherwise the full hostname must be listed,
    or its first dot-separated label when the full name is not.

    Args:
        hosts (list[str]): The configured host names.
        hostname (str | None, optional): Overrides the detected hostname.

    Returns:
        bool: True if the repository should be synchronized on this machine.
    """
    if not hosts:
        return True

    name = hostname if hostname is not None else get_hostname()
    if name in hosts:
        return True

    if "." in name:
        return name.split(".")[0] in hosts

    return False
