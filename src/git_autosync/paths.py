import os
from pathlib import Path

"""Path classification for change events.

Paths reported by the file-system observer may use a different letter case than
the entries on disk (case-insensitive filesystems) and may already be gone
(deletes, renames). These helpers rebuild the on-disk spelling of a path and
decide whether it lives inside a repository's metadata directory.
"""


class PathInvariantError(RuntimeError):
    """Raised when a directory holds several entries matching one name."""


def _entry_name(parent: Path, name: str) -> str:
    """Returns the spelling of ``name`` as listed by its parent directory."""
    folded = name.casefold()
    matches = [entry for entry in os.listdir(parent) if entry.casefold() == folded]

    # A case-sensitive filesystem may legitimately hold 'a' and 'A'.
    if name in matches:
        return name
    if len(matches) > 1:
        raise PathInvariantError(
            f"Ambiguous entry '{name}' in {parent}: {', '.join(sorted(matches))}"
        )
    if not matches:
        # Entry vanished between the existence check and the listing.
        return name
    return matches[0]


def canonical_path(path: str | Path) -> Path:
    """Resolves the case-correct spelling of an existing path.

    Each segment is replaced by the name its parent directory actually lists,
    walking up to the filesystem root. Symlinks are not followed. A path that
    does not exist is returned unchanged.

    Args:
        path (str | Path): The path to canonicalize.

    Returns:
        Path: The canonical path, or the input path if it does not exist.

    Raises:
        PathInvariantError: If a directory lists more than one entry matching
                            a segment and none matches exactly.
    """
    if not os.path.lexists(path):
        return Path(path)

    absolute = Path(os.path.abspath(path))
    parent = absolute.parent
    if parent == absolute:
        # Filesystem root; normalize Windows drive letters.
        return Path(str(absolute).upper()) if absolute.drive else absolute

    return canonical_path(parent) / _entry_name(parent, absolute.name)


def is_descendant_of(ancestor: str | Path, candidate: str | Path) -> bool:
    """Determines whether ``candidate`` is ``ancestor`` or lives below it.

    The ascent starts at ``candidate`` itself when it is a directory, otherwise at
    its containing directory. Missing paths (deleted or renamed entries) are
    treated like files.

    Args:
        ancestor (str | Path): The directory to test against.
        candidate (str | Path): The file or directory to classify.

    Returns:
        bool: True if a canonicalized parent of ``candidate`` equals ``ancestor``.
    """
    target = canonical_path(os.path.abspath(ancestor))
    current = Path(os.path.abspath(candidate))
    if not current.is_dir():
        current = current.parent

    while True:
        if canonical_path(current) == target:
            return True
        if current.parent == current:
            return False
        current = current.parent
