import threading
from dataclasses import dataclass
from enum import Enum

"""Change events and the pending-event buffer shared by observer and scheduler."""


class ChangeKind(Enum):
    """The category of a change reported for a repository."""

    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"
    RENAMED = "renamed"
    FORCED_CHECK = "forced_check"


@dataclass(frozen=True)
class ChangeEvent:
    """A single change notification.

    Attributes:
        path (str | None): The affected path, or None for forced checks.
        kind (ChangeKind): What happened to the path.
    """

    path: str | None
    kind: ChangeKind

    @classmethod
    def forced(cls) -> "ChangeEvent":
        """Builds the path-less event that forces a synchronization pass."""
        return cls(None, ChangeKind.FORCED_CHECK)


class PendingEventQueue:
    """A deduplicating, insertion-ordered buffer of pending change events.

    The lock is held only while the buffer is mutated, so the observer can keep
    enqueueing while a previously drained batch is being synchronized.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # dict keys keep insertion order and give O(1) duplicate checks.
        self._events: dict[ChangeEvent, None] = {}

    def put(self, event: ChangeEvent) -> bool:
        """Adds an event unless an equal one is already pending.

        Args:
            event (ChangeEvent): The event to enqueue.

        Returns:
            bool: True if the event was added, False if it was a duplicate.
        """
        with self._lock:
            if event in self._events:
                return False
            self._events[event] = None
            return True

    def drain(self) -> list[ChangeEvent]:
        """Atomically removes and returns every pending event, oldest first."""
        with self._lock:
            batch = list(self._events)
            self._events.clear()
        return batch

    def clear(self) -> int:
        """Discards every pending event.

        Returns:
            int: The number of events discarded.
        """
        with self._lock:
            count = len(self._events)
            self._events.clear()
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
