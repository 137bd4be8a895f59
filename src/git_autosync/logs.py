import logging
from typing import Any, MutableMapping

from .constants import APP_NAME

"""Repository-scoped logging helpers.

Every record emitted by a repository worker carries a ``repo`` attribute so the
daemon's formatter can prefix lines with the repository display name.
"""


class RepoContextFilter(logging.Filter):
    """Ensures every record has a ``repo`` attribute, defaulting to '-'."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "repo"):
            record.repo = "-"
        return True


class RepoLoggerAdapter(logging.LoggerAdapter):
    """A logger adapter that injects the repository name into each record."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("repo", self.extra["repo"] if self.extra else "-")
        kwargs["extra"] = extra
        return msg, kwargs


def repo_logger(repo_name: str) -> RepoLoggerAdapter:
    """Returns the application logger scoped to a single repository.

    Args:
        repo_name (str): The repository display name.

    Returns:
        RepoLoggerAdapter: An adapter over the ``git-autosync`` logger.
    """
    return RepoLoggerAdapter(logging.getLogger(APP_NAME), {"repo": repo_name})
