import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import tomlkit

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    PERIODIC_INTERVAL,
    QUIET_PERIOD,
    START_STAGGER,
)
from .system import NOTIFICATION_MODES, matches_hostname

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '5s', '5m') to seconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid time format '{value}'")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Negative duration '{value}'")
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "ms": 0.001,
        "s": 1,
        "sec": 1,
        "m": 60,
        "min": 60,
        "h": 3600,
        "hr": 3600,
    }
    return num * multiplier[unit]


@dataclass
class DaemonConfig:
    """Worker timing settings.

    Attributes:
        quiet_period (float): Seconds without changes before a pass runs.
        periodic_interval (float): Seconds between forced checks.
        start_stagger (float): Seconds between starting two workers.
        command_timeout (float): Seconds before a git command is killed.
                                 0 waits forever.
    """

    quiet_period: float = QUIET_PERIOD
    periodic_interval: float = PERIODIC_INTERVAL
    start_stagger: float = START_STAGGER
    command_timeout: float = 0


@dataclass
class NotificationsConfig:
    """Notification delivery settings.

    Attributes:
        mode (str): One of 'auto', 'desktop', 'terminal' or 'off'.
    """

    mode: str = "auto"


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class RepoConfig:
    """One synchronized repository.

    Attributes:
        name (str): The display name.
        path (str): The repository root, '~' is expanded.
        hosts (list[str]): Machines the repository is synchronized on.
                           Empty means every machine.
    """

    name: str
    path: str
    hosts: list[str] = field(default_factory=list)

    @property
    def resolved_path(self) -> Path:
        return Path(self.path).expanduser()

    def matches_host(self, hostname: str | None = None) -> bool:
        """Whether this repository should be synchronized on this machine."""
        return matches_hostname(self.hosts, hostname)


_TIME_KEYS = {"quiet_period", "periodic_interval", "start_stagger", "command_timeout"}


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        daemon (DaemonConfig): Worker timing settings.
        notifications (NotificationsConfig): Notification settings.
        limits (LimitsConfig): Resource limits.
        repos (list[RepoConfig]): The configured repositories.
        source (Path | None): The file the configuration was read from.
    """

    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    repos: list[RepoConfig] = field(default_factory=list)
    source: Path | None = None

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads configuration from disk, applying defaults where necessary.

        Args:
            path (Path | None): The TOML file to read. Defaults to the user
                                config file.

        Returns:
            Config: The populated configuration object.
        """
        config_path = path or CONFIG_FILE
        instance = cls(source=config_path)
        if config_path.exists():
            instance._merge_from_file(config_path)
        return instance

    def matching_repos(self, hostname: str | None = None) -> list[RepoConfig]:
        """Returns the repositories whose host filter admits this machine."""
        return [r for r in self.repos if r.matches_host(hostname)]

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
            return
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return

        if "daemon" in data:
            self.daemon = self._update_dataclass("daemon", self.daemon, data["daemon"])
        if "notifications" in data:
            self.notifications = self._update_dataclass(
                "notifications", self.notifications, data["notifications"]
            )
        if "limits" in data:
            self.limits = self._update_dataclass("limits", self.limits, data["limits"])
        if "repo" in data:
            self.repos = self._parse_repos(data["repo"])

    @staticmethod
    def _parse_repos(entries: Any) -> list[RepoConfig]:
        """Builds repository entries, skipping incomplete ones."""
        if not isinstance(entries, list):
            logger.warning("Config error: [[repo]] must be an array of tables.")
            return []

        repos = []
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning(
                    f"Config error: [[repo]] entry must be a table, got {entry!r}. Skipping."
                )
                continue
            name = str(entry.get("name") or "").strip()
            path = str(entry.get("path") or "").strip()
            if not name or not path:
                logger.warning("Repo path or name is empty, skipping")
                continue

            hosts = entry.get("hosts", [])
            if not isinstance(hosts, list):
                logger.warning(f"Config error in repo '{name}': hosts must be a list.")
                hosts = []

            unknown = set(entry) - {"name", "path", "hosts"}
            if unknown:
                logger.warning(
                    f"Unknown config keys in repo '{name}': {', '.join(sorted(unknown))}. Ignoring."
                )
            repos.append(RepoConfig(name, path, [str(h) for h in hosts]))
        return repos

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in _TIME_KEYS:
                    seconds = parse_time(v)
                    if k == "periodic_interval" and seconds <= 0:
                        raise ValueError(f"Interval must be positive, got '{v}'")
                    filtered_updates[k] = seconds
                elif k == "mode":
                    if v not in NOTIFICATION_MODES:
                        raise ValueError(f"Invalid notification mode '{v}'")
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)


def _read_document(path: Path) -> tomlkit.TOMLDocument:
    if path.exists():
        return tomlkit.parse(path.read_text())
    return tomlkit.document()


def add_repo_entry(
    name: str, path: Path, hosts: list[str] | None = None, config_file: Path | None = None
) -> None:
    """Appends a ``[[repo]]`` entry, preserving existing formatting and comments.

    Args:
        name (str): The display name.
        path (Path): The repository root.
        hosts (list[str] | None): Optional host filter.
        config_file (Path | None): The file to edit. Defaults to the user config.

    Raises:
        ValueError: If a repository with that name is already configured.
    """
    target = config_file or CONFIG_FILE
    doc = _read_document(target)

    repos = doc.get("repo")
    if repos is None:
        repos = tomlkit.aot()
        doc.append("repo", repos)
    if any(entry.get("name") == name for entry in repos):
        raise ValueError(f"Repository '{name}' is already configured")

    entry = tomlkit.table()
    entry.add("name", name)
    entry.add("path", str(path))
    if hosts:
        entry.add("hosts", hosts)
    repos.append(entry)

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(tomlkit.dumps(doc))


def remove_repo_entry(name: str, config_file: Path | None = None) -> bool:
    """Removes the ``[[repo]]`` entry with the given name.

    Returns:
        bool: True if an entry was removed.
    """
    target = config_file or CONFIG_FILE
    if not target.exists():
        return False

    doc = _read_document(target)
    repos = doc.get("repo")
    if not repos:
        return False

    index = next((i for i, e in enumerate(repos) if e.get("name") == name), None)
    if index is None:
        return False

    del repos[index]
    if not repos:
        del doc["repo"]
    target.write_text(tomlkit.dumps(doc))
    return True
