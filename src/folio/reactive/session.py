"""Build session — the epoch counter and the current build report.

The session is the only state shared between the rebuild loop and the
dev server's request handlers. It has a single writer (the build
coordinator) and any number of readers. Every update swaps one immutable
``SessionSnapshot``, so a reader never sees a half-applied change.

Two counters:

- **epoch** advances when a pass changed at least one output file.
  Clients reload on an epoch increase.
- **generation** advances on every completed pass, changed or not, so
  waiters also learn about failed builds that wrote nothing.

Epoch starts at zero and is never reset while the process runs.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from folio._types import SessionPhase
    from folio.export.orchestrator import BuildReport


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Immutable view of the session at one point in time."""

    epoch: int
    phase: SessionPhase
    generation: int
    report: BuildReport | None = None


class BuildSession:
    """Process-wide build state for one dev-server run.

    Args:
        report: Report of the initial full build, if one already ran.

    """

    __slots__ = ("_condition", "_snapshot", "_subscribers", "_subscribers_lock")

    def __init__(self, report: BuildReport | None = None) -> None:
        phase: SessionPhase = "failed" if report is not None and not report.ok else "idle"
        self._snapshot = SessionSnapshot(epoch=0, phase=phase, generation=0, report=report)
        self._condition = asyncio.Condition()
        self._subscribers: set[object] = set()
        self._subscribers_lock = threading.Lock()

    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def epoch(self) -> int:
        return self._snapshot.epoch

    @property
    def phase(self) -> SessionPhase:
        return self._snapshot.phase

    @property
    def subscriber_count(self) -> int:
        with self._subscribers_lock:
            return len(self._subscribers)

    def add_subscriber(self, subscriber: object) -> None:
        with self._subscribers_lock:
            self._subscribers.add(subscriber)

    def remove_subscriber(self, subscriber: object) -> None:
        with self._subscribers_lock:
            self._subscribers.discard(subscriber)

    def begin(self) -> None:
        """Mark a build as running."""
        self._snapshot = replace(self._snapshot, phase="running")

    async def complete(self, report: BuildReport) -> SessionSnapshot:
        """Publish the outcome of a pass and wake every waiter."""
        current = self._snapshot
        snapshot = SessionSnapshot(
            epoch=current.epoch + 1 if report.changed else current.epoch,
            phase="idle" if report.ok else "failed",
            generation=current.generation + 1,
            report=report,
        )
        async with self._condition:
            self._snapshot = snapshot
            self._condition.notify_all()
        return snapshot

    async def wait_for_update(
        self, seen_generation: int, timeout: float,
    ) -> SessionSnapshot | None:
        """Suspend until a pass newer than *seen_generation* completes.

        Returns:
            The new snapshot, or None if *timeout* seconds passed first.

        """
        try:
            async with asyncio.timeout(timeout):
                async with self._condition:
                    await self._condition.wait_for(
                        lambda: self._snapshot.generation > seen_generation,
                    )
        except TimeoutError:
            return None
        return self._snapshot
