"""Build collector — one sink for build, watch and server events.

Implements Pounce's ``LifecycleCollector`` protocol so it can be passed
directly to the server, and provides methods for recording build and
notification events from Folio itself.

Thread Safety:
    The collector delegates to ``EventLog`` which is internally locked.
    Safe for use from the build thread and the server event loop at once.

"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from folio.observability.events import (
    ArtifactEvent,
    BuildCompleted,
    ChangesFlushed,
    NotificationSent,
    now_ns,
)
from folio.observability.log import EventLog

if TYPE_CHECKING:
    from folio.export.orchestrator import BuildReport


class BuildCollector:
    """Unified event collector.

    Args:
        log: The EventLog to store events in.

    """

    __slots__ = ("_log",)

    def __init__(self, log: EventLog | None = None) -> None:
        self._log = log if log is not None else EventLog()

    @property
    def log(self) -> EventLog:
        """The underlying event log."""
        return self._log

    # ----- Pounce LifecycleCollector protocol -----

    def record(self, event: Any) -> None:
        """Record a Pounce lifecycle event.

        Implements the ``LifecycleCollector.record()`` protocol.
        Pounce events are stored directly since they are frozen dataclasses.

        """
        self._log.append(event)

    # ----- Build events -----

    def record_artifact(
        self,
        kind: str,
        artifact: str,
        *,
        source: str = "",
        duration_ms: float = 0.0,
    ) -> None:
        """Record what happened to one artifact."""
        self._log.append(
            ArtifactEvent(
                kind=kind,  # type: ignore[arg-type]
                artifact=artifact,
                source=source,
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )

    def record_build(self, report: BuildReport) -> None:
        """Record the outcome of a build pass."""
        self._log.append(
            BuildCompleted(
                kind=report.kind,
                status=report.status,
                rebuilt=len(report.rebuilt),
                unchanged=len(report.unchanged),
                removed=len(report.removed),
                failed=len(report.failures),
                duration_ms=report.duration_ms,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Watch / notify events -----

    def record_flush(self, paths: int, *, full: bool = False) -> None:
        """Record a debounced change-set flush."""
        self._log.append(ChangesFlushed(paths=paths, full=full, timestamp_ns=now_ns()))

    def record_notification(self, event: str, epoch: int) -> None:
        """Record a notification delivered to one client."""
        self._log.append(
            NotificationSent(
                event=event,  # type: ignore[arg-type]
                epoch=epoch,
                timestamp_ns=now_ns(),
            )
        )
