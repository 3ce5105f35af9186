"""Non-blocking fan-out of the latest metrics to independent consumers."""

import threading
from enum import Enum
from typing import Any


class Category(Enum):
    """Metric categories, one mailbox each."""

    CPU = "cpu"
    GPU = "gpu"
    NET_DISK = "net_disk"
    THERMAL = "thermal"
    UTILIZATION = "utilization"
    MEMORY = "memory"
    PROCESSES = "processes"


class Mailbox:
    """
    Single-slot holder with latest-value-wins semantics.

    ``put`` never blocks: an unread value is overwritten. ``peek`` returns the
    current value without consuming it, so every consumer sees the latest
    publish at its own cadence.
    """

    __slots__ = ("_lock", "_value", "_version", "_overwritten")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: Any = None
        self._version = 0
        self._overwritten = 0

    def put(self, value: Any) -> None:
        with self._lock:
            if self._version > 0:
                self._overwritten += 1
            self._value = value
            self._version += 1

    def peek(self) -> Any | None:
        with self._lock:
            return self._value

    def read(self) -> tuple[Any | None, int]:
        """Return (value, version) atomically."""
        with self._lock:
            return self._value, self._version

    @property
    def version(self) -> int:
        """Number of publishes so far; 0 while the mailbox is empty."""
        with self._lock:
            return self._version

    @property
    def overwritten(self) -> int:
        with self._lock:
            return self._overwritten


class Dispatcher:
    """A fixed set of mailboxes, one per category, registered up front."""

    def __init__(self, categories: type[Category] = Category) -> None:
        self._mailboxes: dict[Category, Mailbox] = {c: Mailbox() for c in categories}

    @property
    def categories(self) -> tuple[Category, ...]:
        return tuple(self._mailboxes)

    def mailbox(self, category: Category) -> Mailbox:
        """
        Return the mailbox for ``category``.

        Raises:
            KeyError: if the category was not registered.
        """
        try:
            return self._mailboxes[category]
        except KeyError:
            raise KeyError(f"unregistered category: {category!r}") from None

    def publish(self, category: Category, value: Any) -> None:
        """Store ``value`` as the latest for ``category``; never blocks."""
        self.mailbox(category).put(value)

    def latest(self, category: Category) -> Any | None:
        return self.mailbox(category).peek()
