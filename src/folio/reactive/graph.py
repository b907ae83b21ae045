"""Dependency graph — source→artifact and source→source edges.

Answers the question the incremental build asks on every change: "these
sources changed, which artifacts must be re-rendered?"

Two edge kinds are tracked:

- **produces**: source → artifact ids it renders to (empty for partials)
- **includes**: source → source ids it pulls in through include directives

Reverse ``included-by`` edges are maintained alongside so invalidation walks
from a changed partial up to every document that (transitively) includes it.

Thread Safety:
    All methods take an internal lock. Only the build orchestrator mutates
    the graph; other threads may query it concurrently.

"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Iterable
from typing import TYPE_CHECKING

from folio._errors import CyclicDependencyError

if TYPE_CHECKING:
    from folio._types import ArtifactId, SourceId


class DependencyGraph:
    """Bidirectional include graph plus the produces mapping."""

    __slots__ = ("_included_by", "_includes", "_lock", "_producer", "_produces")

    def __init__(self) -> None:
        self._produces: dict[SourceId, frozenset[ArtifactId]] = {}
        self._includes: dict[SourceId, tuple[SourceId, ...]] = {}
        self._included_by: defaultdict[SourceId, set[SourceId]] = defaultdict(set)
        self._producer: dict[ArtifactId, SourceId] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def register(
        self,
        source: SourceId,
        produces: Iterable[ArtifactId],
        includes: Iterable[SourceId],
    ) -> None:
        """Record or replace the outgoing edges of *source*."""
        with self._lock:
            self._drop_edges(source)
            produced = frozenset(produces)
            included = tuple(dict.fromkeys(includes))
            self._produces[source] = produced
            self._includes[source] = included
            for artifact in produced:
                self._producer[artifact] = source
            for target in included:
                self._included_by[target].add(source)

    def unregister(self, source: SourceId) -> frozenset[ArtifactId]:
        """Remove the outgoing edges of *source*, returning what it produced.

        Incoming ``included-by`` edges are kept: other sources may still
        include the removed one, and must rebuild if it reappears.
        """
        with self._lock:
            produced = self._produces.get(source, frozenset())
            self._drop_edges(source)
            self._produces.pop(source, None)
            self._includes.pop(source, None)
            return produced

    def clear(self) -> None:
        with self._lock:
            self._produces.clear()
            self._includes.clear()
            self._included_by.clear()
            self._producer.clear()

    def _drop_edges(self, source: SourceId) -> None:
        for artifact in self._produces.get(source, ()):
            if self._producer.get(artifact) == source:
                del self._producer[artifact]
        for target in self._includes.get(source, ()):
            users = self._included_by.get(target)
            if users is not None:
                users.discard(source)
                if not users:
                    del self._included_by[target]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def affected(self, changed: Iterable[SourceId]) -> list[ArtifactId]:
        """Return the artifacts that depend on any of *changed*, sorted.

        The result is the union over every changed source, so one batched
        call and several single calls yield the same set.

        Raises:
            CyclicDependencyError: If the walk meets an include cycle.

        """
        with self._lock:
            artifacts: set[ArtifactId] = set()
            for source in self.dependents(changed):
                artifacts.update(self._produces.get(source, ()))
            return sorted(artifacts)

    def dependents(self, changed: Iterable[SourceId]) -> set[SourceId]:
        """Return *changed* plus every source that transitively includes one.

        Raises:
            CyclicDependencyError: If the walk meets an include cycle.

        """
        with self._lock:
            seen: set[SourceId] = set()
            for start in sorted(set(changed)):
                self._walk_included_by(start, seen)
            return seen

    def reachable_dependents(self, changed: Iterable[SourceId]) -> set[SourceId]:
        """Like ``dependents`` but tolerates cycles instead of raising."""
        with self._lock:
            seen: set[SourceId] = set()
            pending = list(changed)
            while pending:
                node = pending.pop()
                if node in seen:
                    continue
                seen.add(node)
                pending.extend(self._included_by.get(node, ()))
            return seen

    def _walk_included_by(self, start: SourceId, seen: set[SourceId]) -> None:
        # Depth-first so the current path is known; a back edge is a cycle.
        if start in seen:
            return
        seen.add(start)
        path = [start]
        on_path = {start}
        stack = [iter(sorted(self._included_by.get(start, ())))]
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if nxt in on_path:
                loop = [*path[path.index(nxt):], nxt]
                # Report in include direction: a includes b includes a.
                raise CyclicDependencyError(list(reversed(loop)))
            if nxt in seen:
                continue
            seen.add(nxt)
            path.append(nxt)
            on_path.add(nxt)
            stack.append(iter(sorted(self._included_by.get(nxt, ()))))

    def include_closure(self, source: SourceId) -> set[SourceId]:
        """Every source reachable from *source* through includes (cycle-tolerant).

        *source* itself is only part of the result when it sits on a cycle.
        """
        with self._lock:
            seen: set[SourceId] = set()
            pending = list(self._includes.get(source, ()))
            while pending:
                node = pending.pop()
                if node in seen:
                    continue
                seen.add(node)
                pending.extend(self._includes.get(node, ()))
            return seen

    def in_cycle(self, source: SourceId) -> bool:
        """True if *source* (transitively) includes itself."""
        return source in self.include_closure(source)

    def produces_of(self, source: SourceId) -> frozenset[ArtifactId]:
        with self._lock:
            return self._produces.get(source, frozenset())

    def includes_of(self, source: SourceId) -> tuple[SourceId, ...]:
        with self._lock:
            return self._includes.get(source, ())

    def included_by(self, source: SourceId) -> frozenset[SourceId]:
        with self._lock:
            return frozenset(self._included_by.get(source, ()))

    def producer_of(self, artifact: ArtifactId) -> SourceId | None:
        with self._lock:
            return self._producer.get(artifact)

    @property
    def sources(self) -> list[SourceId]:
        """Registered sources, sorted."""
        with self._lock:
            return sorted(self._produces)

    @property
    def artifacts(self) -> list[ArtifactId]:
        """Every artifact some source produces, sorted."""
        with self._lock:
            return sorted(self._producer)

    def __contains__(self, source: object) -> bool:
        with self._lock:
            return source in self._produces

    def __len__(self) -> int:
        with self._lock:
            return len(self._produces)
