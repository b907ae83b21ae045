"""Watch/notify loop — debounced change sets drive incremental builds.

Flow:
    watcher thread -> bounded queue -> ChangeDebouncer -> ChangeSet
    -> BuildCoordinator -> orchestrator (worker thread) -> BuildSession

The debouncer collapses a burst of events into one ``ChangeSet``: it waits
for a quiet period that is re-armed by every new event. The coordinator
keeps at most one build in flight; change sets flushed while a build runs
merge into a single pending set that the next pass consumes.

A broken watcher is fatal: the loop stops and asks the server to shut
down, because silently losing live reload is worse than exiting.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import TYPE_CHECKING, Protocol

from folio._errors import FolioError, WatchError
from folio.banner import print_rebuild
from folio.content.watcher import ChangeEvent, ChangeSet
from folio.export.orchestrator import ArtifactFailure, BuildReport

if TYPE_CHECKING:
    from collections.abc import Callable

    from folio.config import FolioConfig
    from folio.content.watcher import SourceWatcher
    from folio.export.orchestrator import BuildOrchestrator
    from folio.observability.collector import BuildCollector
    from folio.reactive.session import BuildSession


class ChangeSource(Protocol):
    """What the debouncer reads from (``SourceWatcher`` in practice)."""

    async def get(self) -> ChangeEvent: ...

    def take_overflow(self) -> bool: ...


class ChangeDebouncer:
    """Turns a stream of change events into debounced change sets.

    Args:
        source: Where change events come from.
        debounce_s: Quiet period that must pass before a flush.
        collector: Optional event collector.

    """

    def __init__(
        self,
        source: ChangeSource,
        debounce_s: float,
        *,
        collector: BuildCollector | None = None,
    ) -> None:
        self._source = source
        self._debounce_s = debounce_s
        self._collector = collector

    async def next_batch(self) -> ChangeSet:
        """Wait for the next burst of changes and return it as one set.

        Raises:
            WatchError: If the watcher broke.

        """
        events = [await self._source.get()]
        while True:
            try:
                async with asyncio.timeout(self._debounce_s):
                    events.append(await self._source.get())
            except TimeoutError:
                break

        changes = ChangeSet.from_events(events, full=self._source.take_overflow())
        if self._collector is not None:
            self._collector.record_flush(len(changes), full=changes.full)
        return changes


class BuildCoordinator:
    """Runs incremental builds one at a time.

    Builds run on a worker thread via ``asyncio.to_thread`` so the server
    keeps answering requests. Only this class calls ``session.complete``,
    which makes it the single writer of the epoch.

    Args:
        orchestrator: The build orchestrator.
        session: The build session to publish results to.
        report: Called with every finished report (defaults to a one-line
            summary on stderr).
        reload_config: Re-reads the site config when a config file changed.

    """

    def __init__(
        self,
        orchestrator: BuildOrchestrator,
        session: BuildSession,
        *,
        report: Callable[[BuildReport], None] | None = None,
        reload_config: Callable[[], FolioConfig] | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._session = session
        self._report = report or print_rebuild
        self._reload_config = reload_config
        self._pending: ChangeSet | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = False

    @property
    def pending(self) -> ChangeSet | None:
        """Changes waiting for the next pass."""
        return self._pending

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, changes: ChangeSet) -> None:
        """Queue *changes*, starting a pass unless one is already in flight."""
        if self._stopping or changes.empty:
            return
        self._pending = changes if self._pending is None else self._pending.merge(changes)
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="folio-build")

    async def _run(self) -> None:
        while self._pending is not None and not self._stopping:
            changes, self._pending = self._pending, None
            self._session.begin()
            report = await self._build(changes)
            await self._session.complete(report)
            self._report(report)

    async def _build(self, changes: ChangeSet) -> BuildReport:
        try:
            return await asyncio.to_thread(self._build_sync, changes)
        except FolioError as exc:
            return _failed_report(exc)
        except Exception as exc:
            print(f"  Build error: {exc}", file=sys.stderr)
            return _failed_report(FolioError(f"{type(exc).__name__}: {exc}"))

    def _build_sync(self, changes: ChangeSet) -> BuildReport:
        if self._reload_config is not None and "config" in changes.categories:
            self._orchestrator.reconfigure(self._reload_config())
        return self._orchestrator.build_incremental(changes)

    async def stop(self) -> None:
        """Let the in-flight pass finish; drop anything still pending.

        Never cancels a pass, so an output file is never left half-written.
        """
        self._stopping = True
        self._pending = None
        if self._task is not None:
            await asyncio.shield(self._task)


def _failed_report(exc: FolioError) -> BuildReport:
    return BuildReport(
        kind="incremental",
        status="failed",
        failures=(
            ArtifactFailure(artifact="", source=getattr(exc, "source", "") or "", error=exc),
        ),
    )


def _terminate(exc: WatchError) -> None:
    """Stop the dev server: the server treats SIGTERM as a graceful shutdown."""
    print(f"\n  Fatal: {exc}", file=sys.stderr)
    signal.raise_signal(signal.SIGTERM)


class WatchNotifyLoop:
    """Composes watcher, debouncer and coordinator for the dev server.

    Args:
        watcher: The file watcher.
        orchestrator: The build orchestrator.
        session: The build session.
        debounce_s: Quiet period before a flush.
        collector: Optional event collector.
        on_fatal: Called once with the error if watching breaks.
        reload_config: Re-reads the site config when a config file changed.

    """

    def __init__(
        self,
        watcher: SourceWatcher,
        orchestrator: BuildOrchestrator,
        session: BuildSession,
        *,
        debounce_s: float = 0.3,
        collector: BuildCollector | None = None,
        on_fatal: Callable[[WatchError], None] | None = None,
        reload_config: Callable[[], FolioConfig] | None = None,
    ) -> None:
        self._watcher = watcher
        self._debouncer = ChangeDebouncer(watcher, debounce_s, collector=collector)
        self._coordinator = BuildCoordinator(
            orchestrator, session, reload_config=reload_config,
        )
        self._on_fatal = on_fatal or _terminate
        self._task: asyncio.Task[None] | None = None
        self._fatal: WatchError | None = None

    @property
    def coordinator(self) -> BuildCoordinator:
        return self._coordinator

    @property
    def fatal(self) -> WatchError | None:
        """The error that stopped the loop, if any."""
        return self._fatal

    def start(self) -> None:
        """Start the watcher thread and the consumer task."""
        self._watcher.start()
        self._task = asyncio.create_task(self._consume(), name="folio-watch")

    async def _consume(self) -> None:
        try:
            while True:
                changes = await self._debouncer.next_batch()
                self._coordinator.submit(changes)
        except WatchError as exc:
            self._fatal = exc
            self._on_fatal(exc)

    async def stop(self) -> None:
        """Cancel watching and drain the in-flight build."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        await asyncio.to_thread(self._watcher.stop)
        await self._coordinator.stop()
