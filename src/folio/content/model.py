"""Content model — source documents and the artifacts derived from them.

A ``SourceDocument`` is an immutable snapshot of one file under the source
root, read once per build pass. An ``Artifact`` is the rendered output for
one output path together with its provenance.

The ``ContentStore`` owns the documents. The build orchestrator is its only
writer; render passes read from an immutable ``snapshot()``.
"""

from __future__ import annotations

import hashlib
import os
import posixpath
import re
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import yaml

from folio._errors import MarkupError
from folio.export.writer import read_bytes

if TYPE_CHECKING:
    from folio._types import ArtifactId, DocumentKind, SourceId

PAGE_SUFFIXES = frozenset({".md", ".markdown"})

_FENCE = ("```", "~~~")
_FRONTMATTER_CLOSE = frozenset({"---", "..."})
_INCLUDE_RE = re.compile(
    r"""^\s*\{%\s*include\s+(?P<q>["'])(?P<target>[^"']+)(?P=q)\s*%\}\s*$"""
)
_INCLUDE_PREFIX_RE = re.compile(r"^\s*\{%\s*include\b")
_HEADING_RE = re.compile(r"^#\s+(?P<title>.+?)\s*#*\s*$", re.MULTILINE)


def hash_bytes(data: bytes) -> str:
    """Return the hex sha256 of *data*."""
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True, slots=True)
class SourceDocument:
    """One source file, read for a build pass.

    Attributes:
        id: Posix path relative to the source root (canonical identity).
        path: Absolute filesystem path.
        content: Raw file bytes.
        content_hash: sha256 of ``content``.
        mtime_ns: Last-modified timestamp at read time.
        kind: ``"page"`` for Markdown, ``"asset"`` for anything copied as-is.
        includes: Source ids named by include directives, in document order.
        metadata: Frontmatter mapping (empty when absent or malformed).
        title: Display title for navigation.
        output_path: Artifact id this document renders to.

    """

    id: SourceId
    path: Path
    content: bytes
    content_hash: str
    mtime_ns: int
    kind: DocumentKind
    includes: tuple[SourceId, ...] = ()
    metadata: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, hash=False,
    )
    title: str = ""
    output_path: ArtifactId = ""

    @property
    def text(self) -> str:
        """Content decoded as UTF-8."""
        return self.content.decode("utf-8", errors="replace")

    @property
    def named_partial(self) -> bool:
        """True when the document declares itself include-only.

        A leading ``_`` on any path segment or ``partial: true`` in the
        frontmatter marks a partial, regardless of who includes it.
        """
        if self.kind != "page":
            return False
        if any(part.startswith("_") for part in self.id.split("/")):
            return True
        return self.metadata.get("partial") is True

    @property
    def href(self) -> str:
        """Site-absolute URL of the rendered document."""
        return href_for(self.output_path)

    @property
    def category(self) -> str:
        """Frontmatter ``category``, else the first directory, else ``general``."""
        explicit = self.metadata.get("category")
        if explicit:
            return str(explicit)
        parts = self.id.split("/")
        return parts[0] if len(parts) > 1 else "general"

    @property
    def tags(self) -> tuple[str, ...]:
        raw = self.metadata.get("tags")
        if isinstance(raw, str):
            raw = raw.split(",")
        if not isinstance(raw, (list, tuple)):
            return ()
        return tuple(sorted({str(t).strip() for t in raw if str(t).strip()}))

    @property
    def description(self) -> str:
        return str(self.metadata.get("description") or "")


@dataclass(frozen=True, slots=True)
class Artifact:
    """A rendered output file and its provenance.

    Attributes:
        id: Posix path relative to the output root.
        content: Rendered bytes.
        content_hash: sha256 of ``content``.
        fingerprint: Deterministic hash of the source set hashes, the shared
            context version and the pipeline version. Equal fingerprints
            imply equal ``content``.
        sources: Source ids the artifact was built from (document first,
            then its transitive includes in sorted order).
        generated_ns: Wall-clock time of generation. Never part of ``content``.

    """

    id: ArtifactId
    content: bytes
    content_hash: str
    fingerprint: str
    sources: tuple[SourceId, ...]
    generated_ns: int = field(default_factory=time.time_ns, compare=False)


# ---------------------------------------------------------------------------
# Frontmatter
# ---------------------------------------------------------------------------


def split_frontmatter(
    text: str,
    *,
    source: SourceId,
    strict: bool = True,
) -> tuple[dict[str, Any], str, int]:
    """Split leading YAML frontmatter from a document.

    Returns ``(metadata, body, body_line)`` where ``body_line`` is the
    1-based line number of the first body line in the original text.

    Raises:
        MarkupError: In strict mode, for an unclosed fence, invalid YAML or
            a frontmatter block that is not a mapping.

    """
    text = text.removeprefix("\ufeff")
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n") != "---":
        return {}, text, 1

    for idx in range(1, len(lines)):
        if lines[idx].rstrip("\r\n").rstrip() in _FRONTMATTER_CLOSE:
            break
    else:
        if strict:
            raise MarkupError("unclosed frontmatter block", source=source, line=1)
        return {}, text, 1

    raw = "".join(lines[1:idx])
    body = "".join(lines[idx + 1:])
    try:
        data = yaml.safe_load(raw) if raw.strip() else {}
    except yaml.YAMLError as exc:
        if not strict:
            return {}, body, idx + 2
        mark = getattr(exc, "problem_mark", None)
        line = mark.line + 2 if mark is not None else 1
        column = mark.column + 1 if mark is not None else None
        problem = getattr(exc, "problem", None) or str(exc)
        raise MarkupError(
            f"invalid frontmatter: {problem}", source=source, line=line, column=column,
        ) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        if strict:
            raise MarkupError("frontmatter must be a mapping", source=source, line=2)
        data = {}
    return data, body, idx + 2


# ---------------------------------------------------------------------------
# Include directives
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class IncludeDirective:
    """An include directive found in a document body."""

    line: int
    target: str
    resolved: SourceId | None


def resolve_include(from_id: SourceId, target: str) -> SourceId | None:
    """Resolve an include target against the including document.

    Targets are relative to the including document's directory, or to the
    source root when they start with ``/``. Returns ``None`` for targets
    that escape the source root.
    """
    if target.startswith("/"):
        joined = target.lstrip("/")
    else:
        joined = posixpath.join(posixpath.dirname(from_id), target)
    normalized = posixpath.normpath(joined)
    if normalized in (".", "..") or normalized.startswith("../"):
        return None
    return normalized


def iter_directives(
    body: str,
    *,
    source: SourceId,
    first_line: int = 1,
    strict: bool = True,
) -> Iterator[tuple[int, str, IncludeDirective | None]]:
    """Yield ``(line_number, line, directive)`` for every body line.

    ``directive`` is ``None`` for ordinary lines and for lines inside fenced
    code blocks.

    Raises:
        MarkupError: In strict mode, for a line that starts an include
            directive but is not well formed.

    """
    fence: str | None = None
    for offset, line in enumerate(body.splitlines(keepends=True)):
        lineno = first_line + offset
        stripped = line.strip()
        if fence is not None:
            if stripped.startswith(fence):
                fence = None
            yield lineno, line, None
            continue
        if stripped.startswith(_FENCE):
            fence = stripped[:3]
            yield lineno, line, None
            continue
        match = _INCLUDE_RE.match(line)
        if match is None:
            if strict and _INCLUDE_PREFIX_RE.match(line):
                raise MarkupError(
                    "malformed include directive, expected {% include \"path\" %}",
                    source=source,
                    line=lineno,
                    column=line.index("{") + 1,
                )
            yield lineno, line, None
            continue
        target = match.group("target").strip()
        yield lineno, line, IncludeDirective(
            line=lineno, target=target, resolved=resolve_include(source, target),
        )


def scan_includes(body: str, *, source: SourceId) -> tuple[SourceId, ...]:
    """Return the resolvable include targets of a body, de-duplicated, in order."""
    seen: dict[SourceId, None] = {}
    for _lineno, _line, directive in iter_directives(body, source=source, strict=False):
        if directive is not None and directive.resolved is not None:
            seen.setdefault(directive.resolved)
    return tuple(seen)


# ---------------------------------------------------------------------------
# Output paths
# ---------------------------------------------------------------------------


def href_for(artifact_id: ArtifactId) -> str:
    """Return the site-absolute URL that serves *artifact_id*."""
    if artifact_id == "index.html":
        return "/"
    if artifact_id.endswith("/index.html"):
        return "/" + artifact_id.removesuffix("index.html")
    return "/" + artifact_id


def derive_output_path(
    source_id: SourceId,
    metadata: Mapping[str, Any],
    kind: DocumentKind,
) -> ArtifactId:
    """Map a source id to its output path.

    Clean URL convention:
        ``index.md``          -> ``index.html``
        ``guide/index.md``    -> ``guide/index.html``
        ``guide/setup.md``    -> ``guide/setup/index.html``
        ``img/logo.png``      -> ``img/logo.png``

    A frontmatter ``output`` key overrides the convention when it stays
    inside the output root.
    """
    if kind == "asset":
        return source_id

    override = metadata.get("output")
    if isinstance(override, str) and override.strip():
        candidate = override.strip().lstrip("/")
        if not candidate or candidate.endswith("/"):
            candidate += "index.html"
        normalized = posixpath.normpath(candidate)
        if not (normalized.startswith("../") or normalized in (".", "..")):
            return normalized

    directory, name = posixpath.split(source_id)
    stem = posixpath.splitext(name)[0]
    if stem == "index":
        return posixpath.join(directory, "index.html")
    return posixpath.join(directory, stem, "index.html")


def _title_for(source_id: SourceId, metadata: Mapping[str, Any], body: str) -> str:
    explicit = metadata.get("title")
    if explicit:
        return str(explicit)
    match = _HEADING_RE.search(body)
    if match:
        return match.group("title")
    stem = posixpath.splitext(posixpath.basename(source_id))[0]
    if stem == "index":
        parent = posixpath.basename(posixpath.dirname(source_id))
        stem = parent or "home"
    return stem.replace("-", " ").replace("_", " ").strip().title()


# ---------------------------------------------------------------------------
# Loading and discovery
# ---------------------------------------------------------------------------


def document_kind(source_id: SourceId) -> DocumentKind:
    return "page" if posixpath.splitext(source_id)[1].lower() in PAGE_SUFFIXES else "asset"


def load_document(source_root: Path, source_id: SourceId) -> SourceDocument:
    """Read one source file into an immutable ``SourceDocument``.

    Frontmatter and include directives are parsed leniently here; malformed
    syntax surfaces later as a ``RenderError`` from the transform pipeline.

    Raises:
        BuildIOError: If the file cannot be read after one retry.

    """
    path = source_root / source_id
    content = read_bytes(path)
    try:
        mtime_ns = path.stat().st_mtime_ns
    except OSError:
        mtime_ns = 0
    kind = document_kind(source_id)

    if kind == "asset":
        return SourceDocument(
            id=source_id,
            path=path,
            content=content,
            content_hash=hash_bytes(content),
            mtime_ns=mtime_ns,
            kind=kind,
            title=posixpath.basename(source_id),
            output_path=source_id,
        )

    text = content.decode("utf-8", errors="replace")
    metadata, body, body_line = split_frontmatter(text, source=source_id, strict=False)
    return SourceDocument(
        id=source_id,
        path=path,
        content=content,
        content_hash=hash_bytes(content),
        mtime_ns=mtime_ns,
        kind=kind,
        includes=scan_includes(body, source=source_id),
        metadata=MappingProxyType(metadata),
        title=_title_for(source_id, metadata, body),
        output_path=derive_output_path(source_id, metadata, kind),
    )


def is_ignored_name(name: str) -> bool:
    """Hidden files and editor leftovers are never sources."""
    return (
        name.startswith(".")
        or name.endswith("~")
        or name.endswith((".swp", ".swx", ".tmp"))
        or name.startswith("#")
    )


def source_id_for(path: Path, source_root: Path) -> SourceId | None:
    """Return the source id for an absolute path, or None if outside the root."""
    try:
        rel = path.relative_to(source_root)
    except ValueError:
        return None
    if not rel.parts:
        return None
    return rel.as_posix()


def discover_sources(source_root: Path, *, exclude: Path | None = None) -> list[SourceId]:
    """Walk the source root and return every source id in sorted order.

    Hidden entries and editor backups are skipped. ``exclude`` (the output
    root, when nested inside the source root) is never descended into.
    """
    found: list[SourceId] = []
    excluded = exclude.resolve() if exclude is not None else None
    for dirpath, dirnames, filenames in os.walk(source_root):
        current = Path(dirpath)
        dirnames[:] = sorted(
            d for d in dirnames
            if not is_ignored_name(d)
            and (excluded is None or (current / d).resolve() != excluded)
        )
        for name in sorted(filenames):
            if is_ignored_name(name):
                continue
            source_id = source_id_for(current / name, source_root)
            if source_id is not None:
                found.append(source_id)
    found.sort()
    return found


class ContentStore:
    """Cache of ``SourceDocument`` objects keyed by source id.

    Written only by the build orchestrator. ``snapshot()`` hands a render
    pass a read-only view that later refreshes cannot disturb.
    """

    __slots__ = ("_docs", "_root")

    def __init__(self, source_root: Path) -> None:
        self._root = source_root
        self._docs: dict[SourceId, SourceDocument] = {}

    @property
    def root(self) -> Path:
        return self._root

    def load(self, source_id: SourceId) -> SourceDocument:
        doc = load_document(self._root, source_id)
        self._docs[source_id] = doc
        return doc

    def refresh(self, source_id: SourceId) -> SourceDocument | None:
        """Re-read a source. Returns None (and forgets it) if it was deleted.

        An unchanged file keeps its cached document.
        """
        path = self._root / source_id
        if not path.is_file():
            self._docs.pop(source_id, None)
            return None
        fresh = load_document(self._root, source_id)
        cached = self._docs.get(source_id)
        if cached is not None and cached.content_hash == fresh.content_hash:
            return cached
        self._docs[source_id] = fresh
        return fresh

    def get(self, source_id: SourceId) -> SourceDocument | None:
        return self._docs.get(source_id)

    def remove(self, source_id: SourceId) -> SourceDocument | None:
        return self._docs.pop(source_id, None)

    def clear(self) -> None:
        self._docs.clear()

    def ids(self) -> list[SourceId]:
        return sorted(self._docs)

    def snapshot(self) -> Mapping[SourceId, SourceDocument]:
        """Immutable view of the current documents."""
        return MappingProxyType(dict(self._docs))

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._docs

    def __len__(self) -> int:
        return len(self._docs)
