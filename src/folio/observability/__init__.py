"""Observability — one event model for builds, watching and the dev server.

Aggregates events from:
- **Pounce**: Connection lifecycle (open, request, response, disconnect, close)
- **Build orchestrator**: Per-artifact outcomes and completed passes
- **Watch/notify loop**: Change-set flushes and client notifications

All events are frozen dataclasses with nanosecond timestamps, safe for
concurrent production from the build thread and server workers.

Quick Start:
    >>> from folio.observability import BuildCollector, EventLog
    >>> log = EventLog()
    >>> collector = BuildCollector(log)
    >>> # Pass collector to Pounce as lifecycle_collector
    >>> # The orchestrator records events via collector.record_artifact(...)

"""

from folio.observability.collector import BuildCollector
from folio.observability.events import (
    ArtifactEvent,
    BuildCompleted,
    ChangesFlushed,
    FolioEvent,
    NotificationSent,
    event_payload,
    now_ns,
)
from folio.observability.log import EventLog

__all__ = [
    "ArtifactEvent",
    "BuildCollector",
    "BuildCompleted",
    "ChangesFlushed",
    "EventLog",
    "FolioEvent",
    "NotificationSent",
    "event_payload",
    "now_ns",
]
