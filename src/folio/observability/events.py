"""Event model for build and live-reload observability.

Defines event types for the build pipeline and the notification channel.
Pounce lifecycle events are stored alongside them unchanged.

All events are frozen dataclasses with:
- ``timestamp_ns``: Monotonic nanosecond timestamp
- Descriptive fields for the specific event type

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Build pipeline events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ArtifactEvent:
    """An artifact was handled during a build pass.

    Attributes:
        kind: What happened to the artifact.
        artifact: Output path relative to the output root.
        source: Source id that produced it (empty for context artifacts).
        duration_ms: Time spent rendering and writing.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    kind: Literal["rendered", "unchanged", "removed", "failed"]
    artifact: str
    source: str
    duration_ms: float
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class BuildCompleted:
    """A build pass finished.

    Attributes:
        kind: ``"full"`` or ``"incremental"``.
        status: Overall outcome of the pass.
        rebuilt: Number of artifacts written.
        unchanged: Number of artifacts skipped as up to date.
        removed: Number of artifacts deleted.
        failed: Number of artifacts that failed to render.
        duration_ms: Wall-clock duration of the pass.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    kind: Literal["full", "incremental"]
    status: Literal["succeeded", "partially_failed", "failed"]
    rebuilt: int
    unchanged: int
    removed: int
    failed: int
    duration_ms: float
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Watch / notify events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChangesFlushed:
    """The debouncer flushed a burst of filesystem changes.

    Attributes:
        paths: Number of distinct paths in the change set.
        full: Whether the change set forces a full rebuild.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    paths: int
    full: bool
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class NotificationSent:
    """A notification was delivered to one connected client.

    Attributes:
        event: SSE event name without the ``folio:`` prefix.
        epoch: Build epoch the notification refers to.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    event: Literal["hello", "reload", "error"]
    epoch: int
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type FolioEvent = ArtifactEvent | BuildCompleted | ChangesFlushed | NotificationSent


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()


def event_payload(event: object) -> dict[str, Any]:
    """Return the fields of *event* as a dict tagged with its type name.

    Works for Folio's events and Pounce's lifecycle events alike, both
    being dataclasses.
    """
    payload: dict[str, Any] = {"type": type(event).__name__}
    if is_dataclass(event) and not isinstance(event, type):
        payload.update(asdict(event))
    return payload
