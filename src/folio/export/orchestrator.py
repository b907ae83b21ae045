"""Build orchestrator — decides what to render and commits the results.

Both entry points share this code path: ``folio build`` calls
``build_all()`` once, the dev server calls it once at startup and then
``build_incremental()`` for every debounced change set.

Pipeline for a pass:
    1. Refresh changed sources in the content store
    2. Update include edges and recompute which documents are partials
    3. Expand the change set to affected artifacts through the graph
    4. Rebuild the shared context (re-render everything if its version moved)
    5. Render, skipping artifacts whose fingerprint is unchanged
    6. Write atomically, only when bytes differ; delete stale outputs

Per-artifact errors never abort a pass. They are collected into the
``BuildReport`` and the previous output for that artifact is left in place.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from folio._errors import (
    BuildIOError,
    ConfigError,
    ContextError,
    CyclicDependencyError,
    FolioError,
    OutputConflictError,
    RenderError,
)
from folio.content.model import ContentStore, discover_sources, is_ignored_name, source_id_for
from folio.export.site_index import SITE_INDEX_PATH, generate_site_index
from folio.export.sitemap import SITEMAP_PATH, generate_sitemap
from folio.export.transform import (
    DEFAULT_TEMPLATE,
    SharedContext,
    TransformPipeline,
    fingerprint,
)
from folio.export.writer import output_file, remove_output, write_if_changed
from folio.reactive.graph import DependencyGraph

if TYPE_CHECKING:
    from collections.abc import Callable

    from folio._types import ArtifactId, BuildKind, BuildStatus, SourceId
    from folio.config import FolioConfig
    from folio.content.watcher import ChangeSet
    from folio.observability.collector import BuildCollector


_CONTEXT_ARTIFACTS = frozenset({SITE_INDEX_PATH, SITEMAP_PATH})


@dataclass(frozen=True, slots=True)
class ArtifactFailure:
    """One artifact that could not be produced in a pass.

    Attributes:
        artifact: Output path of the failed artifact (empty when unknown).
        source: Source id the error is attributed to.
        error: The underlying folio error.

    """

    artifact: str
    source: str
    error: FolioError = field(compare=False)

    @property
    def kind(self) -> str:
        return type(self.error).__name__

    @property
    def message(self) -> str:
        if isinstance(self.error, RenderError):
            return self.error.message
        return str(self.error)

    @property
    def line(self) -> int | None:
        return getattr(self.error, "line", None)

    @property
    def column(self) -> int | None:
        return getattr(self.error, "column", None)


@dataclass(frozen=True, slots=True)
class BuildReport:
    """Outcome of one build pass.

    Attributes:
        kind: ``"full"`` for ``build_all``, ``"incremental"`` otherwise.
        status: ``succeeded``, ``partially_failed`` or ``failed``.
        rebuilt: Artifacts whose output file was (re)written.
        unchanged: Artifacts that were up to date.
        removed: Artifacts whose output file was deleted.
        failures: Per-artifact errors.
        duration_ms: Wall-clock duration of the pass.
        context_version: Shared context version the pass rendered against.

    """

    kind: BuildKind
    status: BuildStatus
    rebuilt: tuple[ArtifactId, ...] = ()
    unchanged: tuple[ArtifactId, ...] = ()
    removed: tuple[ArtifactId, ...] = ()
    failures: tuple[ArtifactFailure, ...] = ()
    duration_ms: float = 0.0
    context_version: str = ""

    @property
    def changed(self) -> bool:
        """True when at least one output file was written or deleted."""
        return bool(self.rebuilt or self.removed)

    @property
    def ok(self) -> bool:
        return self.status == "succeeded"

    def summary(self) -> str:
        """One-line human-readable summary."""
        parts = [f"{len(self.rebuilt)} rebuilt", f"{len(self.unchanged)} unchanged"]
        if self.removed:
            parts.append(f"{len(self.removed)} removed")
        if self.failures:
            parts.append(f"{len(self.failures)} failed")
        return f"{self.status} ({', '.join(parts)}) in {self.duration_ms:.0f}ms"


@dataclass(slots=True)
class _Pass:
    """Mutable accumulator for one pass."""

    rebuilt: list[ArtifactId] = field(default_factory=list)
    unchanged: list[ArtifactId] = field(default_factory=list)
    removed: list[ArtifactId] = field(default_factory=list)
    failures: list[ArtifactFailure] = field(default_factory=list)


class BuildOrchestrator:
    """Owns the content store, the dependency graph and the output tree.

    The orchestrator is the only writer of all three. Passes are serialized
    by an internal lock; the dev server additionally never starts a second
    pass while one is in flight.

    Args:
        config: Site configuration.
        pipeline: Transform pipeline (a fresh one by default).
        collector: Optional event collector.

    """

    def __init__(
        self,
        config: FolioConfig,
        *,
        pipeline: TransformPipeline | None = None,
        collector: BuildCollector | None = None,
    ) -> None:
        self._config = config
        self._pipeline = pipeline or TransformPipeline()
        self._collector = collector
        self._store = ContentStore(config.source_path)
        self._graph = DependencyGraph()
        self._context: SharedContext | None = None
        self._fingerprints: dict[ArtifactId, str] = {}
        self._context_artifacts: set[ArtifactId] = set()
        self._failed: set[ArtifactId] = set()
        self._conflicts: list[ArtifactFailure] = []
        self._built = False
        self._lock = threading.Lock()

    @property
    def config(self) -> FolioConfig:
        return self._config

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    @property
    def store(self) -> ContentStore:
        return self._store

    @property
    def context(self) -> SharedContext | None:
        return self._context

    @property
    def has_built(self) -> bool:
        return self._built

    def reconfigure(self, config: FolioConfig) -> None:
        """Switch to a reloaded configuration; the next pass is a full build."""
        with self._lock:
            if config.source_path != self._config.source_path:
                self._store = ContentStore(config.source_path)
            self._config = config
            self._built = False

    def fingerprint_of(self, artifact: ArtifactId) -> str | None:
        """Fingerprint of the last successful render of *artifact*."""
        return self._fingerprints.get(artifact)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def build_all(self) -> BuildReport:
        """Discover every source, rebuild the graph and render everything.

        Raises:
            ConfigError: If the source root is missing or the output root
                overlaps it.

        """
        with self._lock:
            return self._build_all()

    def build_incremental(self, changes: ChangeSet) -> BuildReport:
        """Re-render only what *changes* affects.

        Falls back to ``build_all`` for config changes, watcher overflow,
        and when no full build has run yet.

        Raises:
            ConfigError: If the source root has disappeared.

        """
        with self._lock:
            config_files = set(self._config.config_files)
            if (
                not self._built
                or changes.full
                or any(path in config_files for path in changes.paths)
            ):
                return self._build_all()
            return self._build_incremental(changes)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def _build_all(self) -> BuildReport:
        t0 = time.perf_counter()
        self._validate_roots()
        acc = _Pass()

        previous_artifacts = set(self._graph.artifacts)
        found = discover_sources(
            self._config.source_path, exclude=self._config.output_path,
        )
        found_set = set(found)
        for stale in set(self._store.ids()) - found_set:
            self._store.remove(stale)

        self._failed.clear()
        self._graph.clear()
        for source_id in found:
            try:
                doc = self._store.refresh(source_id)
            except BuildIOError as exc:
                acc.failures.append(ArtifactFailure(artifact="", source=source_id, error=exc))
                continue
            if doc is not None:
                self._graph.register(source_id, (), doc.includes)

        self._assign_outputs()
        acc.failures.extend(self._conflicts)

        try:
            context = self._build_context()
        except ContextError as exc:
            return self._finish_failed_context(t0, "full", acc, exc)

        self._remove_stale(previous_artifacts - set(self._graph.artifacts), acc)
        self._render(self._graph.artifacts, context, acc, force=True)
        self._render_context_artifacts(context, acc)
        self._built = True
        return self._finish(t0, "full", acc, context)

    def _build_incremental(self, changes: ChangeSet) -> BuildReport:
        t0 = time.perf_counter()
        self._validate_roots()
        acc = _Pass()

        changed = self._changed_source_ids(changes.paths)
        previous_artifacts = set(self._graph.artifacts)
        old_dependents = self._graph.reachable_dependents(changed)

        for source_id in sorted(changed):
            try:
                doc = self._store.refresh(source_id)
            except BuildIOError as exc:
                acc.failures.append(ArtifactFailure(
                    artifact=self._output_guess(source_id), source=source_id, error=exc,
                ))
                continue
            if doc is None:
                self._graph.unregister(source_id)
            else:
                self._graph.register(
                    source_id, self._graph.produces_of(source_id), doc.includes,
                )

        reassigned = self._assign_outputs()
        acc.failures.extend(self._conflicts)

        try:
            targets = set(self._graph.affected(changed))
        except CyclicDependencyError:
            targets = {
                artifact
                for source_id in self._graph.reachable_dependents(changed)
                for artifact in self._graph.produces_of(source_id)
            }
        for source_id in old_dependents | reassigned:
            targets.update(self._graph.produces_of(source_id))
        # Artifacts that failed earlier stay targets until they build again.
        self._failed = {
            artifact
            for artifact in self._failed
            if artifact in _CONTEXT_ARTIFACTS or self._graph.producer_of(artifact) is not None
        }
        retry = set(self._failed)
        targets |= retry

        previous_version = self._context.version if self._context is not None else ""
        try:
            context = self._build_context()
        except ContextError as exc:
            self._failed |= targets
            return self._finish_failed_context(t0, "incremental", acc, exc)

        self._remove_stale(previous_artifacts - set(self._graph.artifacts), acc)
        if context.version != previous_version:
            targets = set(self._graph.artifacts)
            self._render_context_artifacts(context, acc)
        elif retry & _CONTEXT_ARTIFACTS:
            self._render_context_artifacts(context, acc)
        self._render(sorted(targets), context, acc, force=False)
        return self._finish(t0, "incremental", acc, context)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _validate_roots(self) -> None:
        source = self._config.source_path.resolve()
        output = self._config.output_path.resolve()
        if not source.is_dir():
            msg = f"Source root {self._config.source_path} does not exist or is not a directory"
            raise ConfigError(msg)
        if output == source or output in source.parents:
            msg = (
                f"Output root {self._config.output_path} must not be the source root "
                f"or contain it"
            )
            raise ConfigError(msg)

    def _changed_source_ids(self, paths: tuple[Path, ...]) -> set[SourceId]:
        """Translate changed filesystem paths into source ids.

        Directory paths expand to every known or present source beneath them.
        """
        source_root = self._config.source_path.resolve()
        output_root = self._config.output_path.resolve()
        changed: set[SourceId] = set()
        known = self._store.ids()
        for path in paths:
            if path == output_root or output_root in path.parents:
                continue
            source_id = source_id_for(path, source_root)
            if source_id is None or any(is_ignored_name(p) for p in source_id.split("/")):
                continue
            prefix = source_id + "/"
            below = [k for k in known if k.startswith(prefix)]
            if path.is_dir():
                changed.update(below)
                changed.update(
                    f"{source_id}/{sub}"
                    for sub in discover_sources(path, exclude=output_root)
                )
            elif below:
                changed.update(below)
            else:
                changed.add(source_id)
        return changed

    def _is_partial(self, source_id: SourceId) -> bool:
        doc = self._store.get(source_id)
        if doc is None or doc.kind != "page":
            return False
        if doc.named_partial:
            return True
        # Included documents only exist to be included, unless the include
        # chain loops back to them: those still render so the cycle surfaces.
        return bool(self._graph.included_by(source_id)) and not self._graph.in_cycle(source_id)

    def _assign_outputs(self) -> set[SourceId]:
        """Recompute what every source produces; return sources whose outputs moved."""
        reassigned: set[SourceId] = set()
        claims: dict[ArtifactId, SourceId] = {}
        self._conflicts = []
        for source_id in self._store.ids():
            doc = self._store.get(source_id)
            if doc is None:
                continue
            produces: frozenset[ArtifactId] = frozenset()
            if not self._is_partial(source_id):
                owner = claims.get(doc.output_path)
                if owner is None:
                    claims[doc.output_path] = source_id
                    produces = frozenset({doc.output_path})
                else:
                    self._conflicts.append(ArtifactFailure(
                        artifact=doc.output_path,
                        source=source_id,
                        error=OutputConflictError(
                            doc.output_path, source=source_id, owner=owner,
                        ),
                    ))
            if source_id not in self._graph or self._graph.produces_of(source_id) != produces:
                reassigned.add(source_id)
                self._graph.register(source_id, produces, doc.includes)
        return reassigned

    def _build_context(self) -> SharedContext:
        pages = [
            source_id
            for source_id in self._graph.sources
            if self._graph.produces_of(source_id)
        ]
        context = SharedContext.build(
            self._config,
            self._store.snapshot(),
            pages,
            previous=self._context,
        )
        self._context = context
        return context

    def _remove_stale(self, stale: set[ArtifactId], acc: _Pass) -> None:
        output_root = self._config.output_path
        for artifact in sorted(stale):
            self._fingerprints.pop(artifact, None)
            self._failed.discard(artifact)
            try:
                removed = remove_output(output_root, output_file(output_root, artifact))
            except BuildIOError as exc:
                acc.failures.append(ArtifactFailure(artifact=artifact, source="", error=exc))
                continue
            if removed:
                acc.removed.append(artifact)
                self._record("removed", artifact)

    def _render(
        self,
        artifacts: list[ArtifactId],
        context: SharedContext,
        acc: _Pass,
        *,
        force: bool,
    ) -> None:
        output_root = self._config.output_path
        for artifact_id in artifacts:
            source_id = self._graph.producer_of(artifact_id)
            doc = self._store.get(source_id) if source_id is not None else None
            if source_id is None or doc is None:
                continue
            dest = output_file(output_root, artifact_id)
            t0 = time.perf_counter()

            if not force and dest.is_file():
                if self._fingerprints.get(artifact_id) == fingerprint(doc, context):
                    acc.unchanged.append(artifact_id)
                    self._record("unchanged", artifact_id, source_id)
                    continue

            try:
                artifact = self._pipeline.render(doc, context)
                written = write_if_changed(dest, artifact.content)
            except (RenderError, CyclicDependencyError, BuildIOError) as exc:
                self._fingerprints.pop(artifact_id, None)
                self._failed.add(artifact_id)
                acc.failures.append(ArtifactFailure(
                    artifact=artifact_id, source=source_id, error=exc,
                ))
                self._record("failed", artifact_id, source_id, t0)
                continue

            self._fingerprints[artifact_id] = artifact.fingerprint
            self._failed.discard(artifact_id)
            if written:
                acc.rebuilt.append(artifact_id)
                self._record("rendered", artifact_id, source_id, t0)
            else:
                acc.unchanged.append(artifact_id)
                self._record("unchanged", artifact_id, source_id, t0)

    def _render_context_artifacts(self, context: SharedContext, acc: _Pass) -> None:
        """Write outputs derived from the shared context alone."""
        output_root = self._config.output_path
        generators: list[tuple[ArtifactId, Callable[[SharedContext], bytes | None]]] = [
            (SITE_INDEX_PATH, generate_site_index),
            (SITEMAP_PATH, generate_sitemap),
        ]
        for artifact_id, generate in generators:
            if self._graph.producer_of(artifact_id) is not None:
                # A source file with the same output path wins.
                self._context_artifacts.discard(artifact_id)
                continue
            data = generate(context)
            if data is None:
                self._failed.discard(artifact_id)
                if artifact_id in self._context_artifacts:
                    self._context_artifacts.discard(artifact_id)
                    self._remove_stale({artifact_id}, acc)
                continue
            t0 = time.perf_counter()
            try:
                written = write_if_changed(output_file(output_root, artifact_id), data)
            except BuildIOError as exc:
                acc.failures.append(ArtifactFailure(artifact=artifact_id, source="", error=exc))
                self._failed.add(artifact_id)
                self._record("failed", artifact_id, "", t0)
                continue
            self._failed.discard(artifact_id)
            self._context_artifacts.add(artifact_id)
            if written:
                acc.rebuilt.append(artifact_id)
                self._record("rendered", artifact_id, "", t0)
            else:
                acc.unchanged.append(artifact_id)
                self._record("unchanged", artifact_id, "", t0)

    def _output_guess(self, source_id: SourceId) -> ArtifactId:
        produced = self._graph.produces_of(source_id)
        return min(produced) if produced else ""

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _status(self, acc: _Pass) -> BuildStatus:
        if not acc.failures:
            return "succeeded"
        failed = {f.artifact for f in acc.failures}
        good = [a for a in self._fingerprints if a not in failed]
        if not good and not self._context_artifacts:
            return "failed"
        return "partially_failed"

    def _finish(
        self, t0: float, kind: BuildKind, acc: _Pass, context: SharedContext,
    ) -> BuildReport:
        report = BuildReport(
            kind=kind,
            status=self._status(acc),
            rebuilt=tuple(sorted(acc.rebuilt)),
            unchanged=tuple(sorted(acc.unchanged)),
            removed=tuple(sorted(acc.removed)),
            failures=tuple(sorted(acc.failures, key=lambda f: (f.artifact, f.source))),
            duration_ms=(time.perf_counter() - t0) * 1000,
            context_version=context.version,
        )
        if self._collector is not None:
            self._collector.record_build(report)
        return report

    def _finish_failed_context(
        self, t0: float, kind: BuildKind, acc: _Pass, exc: ContextError,
    ) -> BuildReport:
        acc.failures.append(ArtifactFailure(artifact="", source=DEFAULT_TEMPLATE, error=exc))
        report = BuildReport(
            kind=kind,
            status="failed",
            failures=tuple(acc.failures),
            duration_ms=(time.perf_counter() - t0) * 1000,
        )
        if self._collector is not None:
            self._collector.record_build(report)
        return report

    def _record(
        self, kind: str, artifact: ArtifactId, source: str = "", t0: float | None = None,
    ) -> None:
        if self._collector is None:
            return
        duration = (time.perf_counter() - t0) * 1000 if t0 is not None else 0.0
        self._collector.record_artifact(kind, artifact, source=source, duration_ms=duration)
