"""File watcher — feeds filesystem changes to the rebuild loop.

Monitors the site root (sources, templates and config files) and pushes
categorized change events onto a bounded asyncio queue:

- Source file changed -> incremental rebuild of what depends on it
- Template changed -> shared context version moves, everything re-renders
- Config changed -> full rebuild

Changes under the output root, hidden files and editor leftovers are
ignored so the build never retriggers itself.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from watchfiles import Change

from folio._errors import WatchError
from folio.content.model import is_ignored_name

if TYPE_CHECKING:
    from collections.abc import Iterable

    from folio._types import ChangeCategory
    from folio.config import FolioConfig

# Queue depth between the watcher thread and the loop. When it fills up,
# individual paths are dropped and the next flush becomes a full rebuild.
QUEUE_SIZE = 1024


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A file change detected by the watcher.

    Attributes:
        path: Absolute path to the changed file.
        kind: Type of filesystem change.
        category: What kind of file changed (determines rebuild scope).

    """

    path: Path
    kind: Literal["created", "modified", "deleted"]
    category: ChangeCategory


@dataclass(frozen=True, slots=True)
class ChangeSet:
    """Deduplicated set of changed paths handed to the orchestrator.

    A path that changed several times appears once: the orchestrator
    re-reads it, so only its latest state matters.

    Attributes:
        paths: Sorted, unique absolute paths.
        full: Request a full rebuild regardless of ``paths``.

    """

    paths: tuple[Path, ...] = ()
    full: bool = False
    categories: frozenset[str] = field(default=frozenset(), compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "paths", tuple(sorted(set(self.paths))))

    @classmethod
    def from_events(cls, events: Iterable[ChangeEvent], *, full: bool = False) -> ChangeSet:
        events = list(events)
        return cls(
            paths=tuple(e.path for e in events),
            full=full or any(e.category == "config" for e in events),
            categories=frozenset(e.category for e in events),
        )

    def merge(self, other: ChangeSet) -> ChangeSet:
        """Union of two change sets."""
        return ChangeSet(
            paths=self.paths + other.paths,
            full=self.full or other.full,
            categories=self.categories | other.categories,
        )

    @property
    def empty(self) -> bool:
        return not self.paths and not self.full

    def __len__(self) -> int:
        return len(self.paths)


# Mapping from watchfiles Change enum to our kind literals.
_CHANGE_KIND_MAP: dict[Change, Literal["created", "modified", "deleted"]] = {
    Change.added: "created",
    Change.modified: "modified",
    Change.deleted: "deleted",
}


def _is_within(path: Path, parent: Path) -> bool:
    return path == parent or parent in path.parents


def watch_paths(config: FolioConfig) -> list[Path]:
    """The site root, plus source and template dirs that live outside it."""
    paths = [config.root]
    for extra in (config.source_path, config.templates_path):
        resolved = extra.resolve()
        if resolved.is_dir() and not any(_is_within(resolved, p) for p in paths):
            paths.append(resolved)
    return paths


def categorize_change(path: Path, config: FolioConfig) -> ChangeCategory | None:
    """Determine the category of a changed path based on its location.

    Returns None if the path doesn't belong to any watched category.

    """
    if is_ignored_name(path.name):
        return None
    if _is_within(path, config.output_path.resolve()):
        return None
    if path in config.config_files:
        return "config"
    if _is_within(path, config.templates_path.resolve()):
        return "template"
    source_root = config.source_path.resolve()
    if _is_within(path, source_root):
        rel = path.relative_to(source_root)
        if any(is_ignored_name(part) for part in rel.parts):
            return None
        return "source"
    return None


class SourceWatcher:
    """Watches the site root and bridges events into asyncio.

    Runs ``watchfiles.watch`` in a background thread. Events are handed to
    the event loop with ``call_soon_threadsafe`` and land on a bounded queue
    consumed by the debouncer.

    Must be started from inside a running event loop.

    """

    def __init__(self, config: FolioConfig, *, queue_size: int = QUEUE_SIZE) -> None:
        self._config = config
        self._queue: asyncio.Queue[ChangeEvent | WatchError] = asyncio.Queue(maxsize=queue_size)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._overflowed = False

    @property
    def is_running(self) -> bool:
        """Whether the watcher background thread is active."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def queue(self) -> asyncio.Queue[ChangeEvent | WatchError]:
        return self._queue

    def take_overflow(self) -> bool:
        """Return and reset the overflow flag."""
        overflowed, self._overflowed = self._overflowed, False
        return overflowed

    def start(self) -> None:
        """Start watching for file changes in a background thread."""
        if self.is_running:
            return
        if not self._config.root.is_dir():
            msg = f"Cannot watch {self._config.root}: not a directory"
            raise WatchError(msg)

        self._loop = asyncio.get_running_loop()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_loop,
            name="folio-watcher",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Signal the watcher to stop and wait for the thread to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    async def get(self) -> ChangeEvent:
        """Wait for the next change event.

        Raises:
            WatchError: If filesystem observation broke.

        """
        item = await self._queue.get()
        if isinstance(item, WatchError):
            raise item
        return item

    def _watch_loop(self) -> None:
        """Background thread: run watchfiles and push events to the queue."""
        from watchfiles import watch

        try:
            for raw_changes in watch(
                *watch_paths(self._config),
                stop_event=self._stop_event,
                debounce=50,
                step=25,
            ):
                for change_type, path_str in raw_changes:
                    path = Path(path_str)
                    category = categorize_change(path, self._config)
                    if category is None:
                        continue
                    kind = _CHANGE_KIND_MAP.get(change_type, "modified")
                    self._emit(ChangeEvent(path=path, kind=kind, category=category))
        except Exception as exc:
            error = WatchError(f"File watching stopped: {exc}")
            error.__cause__ = exc
            self._emit(error)
            return

        if not self._stop_event.is_set():
            self._emit(WatchError(f"File watching stopped: {self._config.root} went away"))

    def _emit(self, item: ChangeEvent | WatchError) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._put, item)
        except RuntimeError:
            # Loop closed between the check and the call (shutdown).
            return

    def _put(self, item: ChangeEvent | WatchError) -> None:
        if isinstance(item, WatchError):
            while self._queue.full():
                self._queue.get_nowait()
            self._queue.put_nowait(item)
            return
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self._overflowed = True
