"""Event log — bounded, thread-safe event store.

Keeps the most recent events for the ``/__folio/status`` endpoint, which
reports per-type counts and the latest few events.

Thread Safety:
    All methods are protected by a ``threading.Lock``.  The build thread
    and the server's event loop append concurrently.

"""

import threading
from collections import deque
from typing import Any


class EventLog:
    """Ring buffer of events; the oldest are dropped once it is full.

    Args:
        max_events: Maximum number of events to retain.

    """

    __slots__ = ("_events", "_lock", "_max_events")

    def __init__(self, max_events: int = 10_000) -> None:
        self._max_events = max_events
        self._events: deque[Any] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def append(self, event: Any) -> None:
        """Record an event in the log."""
        with self._lock:
            self._events.append(event)

    def recent(self, n: int = 20) -> list[Any]:
        """Return the N most recent events, oldest first."""
        with self._lock:
            items = list(self._events)
        return items[-n:] if n > 0 else []

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def stats(self) -> dict[str, Any]:
        """Return summary statistics about stored events."""
        with self._lock:
            events = list(self._events)

        type_counts: dict[str, int] = {}
        for event in events:
            name = type(event).__name__
            type_counts[name] = type_counts.get(name, 0) + 1

        return {
            "total": len(events),
            "max_events": self._max_events,
            "by_type": type_counts,
        }
