"""Transform pipeline — source document + shared context → artifact bytes.

Rendering is a pure function of the document bytes (plus the bytes of
everything it includes), the shared context version and the pipeline
version. Nothing time- or environment-dependent reaches the output, so an
artifact's fingerprint can decide whether it needs re-rendering at all.

Page pipeline:
    1. Strict frontmatter split
    2. Include expansion (recursive, cycle-checked)
    3. Markdown → HTML via Patitas
    4. Kida template (``template`` frontmatter key, default ``page.html``)

Assets are passed through unchanged.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kida import Environment, FileSystemLoader, Markup, TemplateError
from kida import TemplateNotFoundError as KidaTemplateNotFoundError
from kida.lexer import LexerError
from patitas import Markdown
from patitas.errors import PatitasError

from folio import __version__
from folio._errors import (
    ContextError,
    CyclicDependencyError,
    IncludeNotFoundError,
    MarkupError,
    TemplateNotFoundError,
    TemplateRenderError,
)
from folio.content.model import Artifact, hash_bytes, iter_directives, split_frontmatter
from folio.theme import get_template_dirs

if TYPE_CHECKING:
    from folio._types import SourceId
    from folio.config import FolioConfig
    from folio.content.model import SourceDocument

# Bump when rendering changes in a way that alters output bytes.
PIPELINE_VERSION = f"folio-{__version__}+transform.1"

DEFAULT_TEMPLATE = "page.html"


@dataclass(frozen=True, slots=True)
class NavEntry:
    """One rendered page as seen by navigation and the site index."""

    title: str
    href: str
    source: str
    category: str
    tags: tuple[str, ...] = ()
    description: str = ""


@dataclass(frozen=True, slots=True)
class PageView:
    """Template-facing view of the document being rendered."""

    title: str
    href: str
    source: str
    category: str
    tags: tuple[str, ...]
    description: str
    metadata: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class SharedContext:
    """Read-only inputs shared by every render in a pass.

    Attributes:
        site: Site-wide metadata (title, description, base_url).
        nav: Navigation entries for every page that renders, sorted.
        categories: Sorted category names with at least one page.
        documents: Snapshot of the content store for include resolution.
        version: Hash of everything above that affects rendered bytes.

    """

    site: Mapping[str, str]
    nav: tuple[NavEntry, ...]
    categories: tuple[str, ...]
    documents: Mapping[SourceId, SourceDocument] = field(compare=False, repr=False)
    env: Environment = field(compare=False, repr=False)
    markdown: Markdown = field(compare=False, repr=False)
    template_dirs: tuple[Path, ...] = ()
    templates_version: str = ""
    pipeline_version: str = PIPELINE_VERSION
    version: str = ""

    @classmethod
    def build(
        cls,
        config: FolioConfig,
        documents: Mapping[SourceId, SourceDocument],
        pages: Iterable[SourceId],
        *,
        pipeline_version: str = PIPELINE_VERSION,
        previous: SharedContext | None = None,
    ) -> SharedContext:
        """Assemble the context for one render pass.

        Args:
            config: Site configuration.
            documents: Immutable snapshot of all source documents.
            pages: Source ids of the documents that render to pages
                (partials excluded).
            pipeline_version: Version string mixed into ``version``.
            previous: Context of the previous pass. Its template environment
                is reused when no template file changed.

        Raises:
            ContextError: If the Markdown plugins or the default template
                cannot be loaded.

        """
        site = {
            "title": config.title,
            "description": config.description,
            "base_url": config.base_url.rstrip("/"),
        }

        entries: list[NavEntry] = []
        for source_id in sorted(set(pages)):
            doc = documents.get(source_id)
            if doc is None or doc.kind != "page":
                continue
            entries.append(NavEntry(
                title=doc.title,
                href=doc.href,
                source=doc.id,
                category=doc.category,
                tags=doc.tags,
                description=doc.description,
            ))
        entries.sort(key=lambda e: (e.href != "/", e.category, e.href))
        nav = tuple(entries)
        categories = tuple(sorted({e.category for e in nav}))

        template_dirs = tuple(get_template_dirs(config))
        templates_digest = hashlib.sha256()
        templates_digest.update(json.dumps(sorted(config.markdown_plugins)).encode())
        for name, content_hash in _template_hashes(template_dirs):
            templates_digest.update(f"{name}\0{content_hash}\n".encode())
        templates_version = templates_digest.hexdigest()[:16]

        if (
            previous is not None
            and previous.templates_version == templates_version
            and previous.template_dirs == template_dirs
        ):
            env, markdown = previous.env, previous.markdown
        else:
            env, markdown = _load_renderers(config, template_dirs)

        digest = hashlib.sha256()
        digest.update(pipeline_version.encode())
        digest.update(json.dumps(site, sort_keys=True).encode())
        digest.update(templates_version.encode())
        for entry in nav:
            digest.update(json.dumps([
                entry.title, entry.href, entry.source, entry.category,
                list(entry.tags), entry.description,
            ]).encode())

        return cls(
            site=site,
            nav=nav,
            categories=categories,
            documents=documents,
            env=env,
            markdown=markdown,
            template_dirs=template_dirs,
            templates_version=templates_version,
            pipeline_version=pipeline_version,
            version=digest.hexdigest()[:16],
        )


def _load_renderers(
    config: FolioConfig, template_dirs: tuple[Path, ...],
) -> tuple[Environment, Markdown]:
    try:
        markdown = Markdown(plugins=list(config.markdown_plugins))
    except KeyError as exc:
        msg = f"Unknown Markdown plugin in {list(config.markdown_plugins)}: {exc}"
        raise ContextError(msg) from exc

    env = Environment(
        loader=FileSystemLoader([str(d) for d in template_dirs]),
        autoescape=True,
        auto_reload=False,
    )
    try:
        env.get_template(DEFAULT_TEMPLATE)
    except (TemplateError, LexerError) as exc:
        msg = f"Cannot load default template {DEFAULT_TEMPLATE!r}: {exc}"
        raise ContextError(msg) from exc
    return env, markdown


def _template_hashes(template_dirs: Iterable[Path]) -> list[tuple[str, str]]:
    """Hash every template file, tagged with its search-path position."""
    result: list[tuple[str, str]] = []
    for index, directory in enumerate(template_dirs):
        if not directory.is_dir():
            continue
        for path in sorted(p for p in directory.rglob("*") if p.is_file()):
            rel = path.relative_to(directory).as_posix()
            try:
                data = path.read_bytes()
            except OSError:
                data = b""
            result.append((f"{index}:{rel}", hash_bytes(data)))
    return result


def source_closure(doc: SourceDocument, documents: Mapping[SourceId, SourceDocument]) -> list[SourceId]:
    """Return the sorted transitive include set of *doc* (cycle-tolerant)."""
    seen: set[SourceId] = set()
    pending = list(doc.includes)
    while pending:
        source_id = pending.pop()
        if source_id in seen or source_id == doc.id:
            continue
        seen.add(source_id)
        included = documents.get(source_id)
        if included is not None:
            pending.extend(included.includes)
    return sorted(seen)


def fingerprint(doc: SourceDocument, context: SharedContext) -> str:
    """Cache key of the artifact *doc* renders to.

    Depends only on the content hashes of *doc* and its include closure,
    the context version and the pipeline version.
    """
    digest = hashlib.sha256()
    digest.update(context.pipeline_version.encode())
    digest.update(b"\0" + context.version.encode())
    digest.update(f"\0{doc.id}\0{doc.output_path}\0{doc.content_hash}".encode())
    for source_id in source_closure(doc, context.documents):
        included = context.documents.get(source_id)
        content_hash = included.content_hash if included is not None else "missing"
        digest.update(f"\0{source_id}\0{content_hash}".encode())
    return digest.hexdigest()


class TransformPipeline:
    """Renders source documents to artifacts against a shared context."""

    __slots__ = ()

    def render(self, doc: SourceDocument, context: SharedContext) -> Artifact:
        """Render *doc* to an artifact.

        Raises:
            RenderError: A ``MarkupError``, ``IncludeNotFoundError``,
                ``TemplateNotFoundError`` or ``TemplateRenderError``.
            CyclicDependencyError: If include expansion revisits a document.

        """
        if doc.kind == "asset":
            data = doc.content
        else:
            data = self._render_page(doc, context)

        return Artifact(
            id=doc.output_path,
            content=data,
            content_hash=hash_bytes(data),
            fingerprint=fingerprint(doc, context),
            sources=(doc.id, *source_closure(doc, context.documents)),
        )

    def _render_page(self, doc: SourceDocument, context: SharedContext) -> bytes:
        metadata, body, body_line = split_frontmatter(doc.text, source=doc.id, strict=True)
        expanded = self._expand(doc.id, body, body_line, context, [doc.id])

        try:
            html = context.markdown(expanded)
        except PatitasError as exc:
            lineno = getattr(exc, "lineno", None)
            col = getattr(exc, "col_offset", None)
            raise MarkupError(
                str(exc),
                source=doc.id,
                line=body_line + lineno - 1 if lineno else None,
                column=col + 1 if col is not None and lineno else None,
            ) from exc

        template_name = str(metadata.get("template") or DEFAULT_TEMPLATE)
        try:
            template = context.env.get_template(template_name)
        except KidaTemplateNotFoundError as exc:
            raise TemplateNotFoundError(template_name, source=doc.id) from exc
        except (TemplateError, LexerError) as exc:
            raise TemplateRenderError(f"{template_name}: {exc}", source=doc.id) from exc

        page = PageView(
            title=doc.title,
            href=doc.href,
            source=doc.id,
            category=doc.category,
            tags=doc.tags,
            description=doc.description,
            metadata=metadata,
        )
        try:
            rendered = template.render(
                site=context.site,
                page=page,
                content=Markup(html),
                nav=context.nav,
                categories=context.categories,
            )
        except Exception as exc:
            raise TemplateRenderError(f"{template_name}: {exc}", source=doc.id) from exc
        return rendered.encode("utf-8")

    def _expand(
        self,
        source_id: SourceId,
        body: str,
        first_line: int,
        context: SharedContext,
        stack: list[SourceId],
    ) -> str:
        """Replace include directives with the included bodies, recursively."""
        out: list[str] = []
        for lineno, line, directive in iter_directives(
            body, source=source_id, first_line=first_line,
        ):
            if directive is None:
                out.append(line)
                continue
            target = (
                context.documents.get(directive.resolved)
                if directive.resolved is not None
                else None
            )
            if target is None:
                raise IncludeNotFoundError(directive.target, source=source_id, line=lineno)
            if target.id in stack:
                raise CyclicDependencyError([*stack[stack.index(target.id):], target.id])

            if target.kind == "asset":
                text = target.text
            else:
                _meta, target_body, target_line = split_frontmatter(
                    target.text, source=target.id, strict=True,
                )
                text = self._expand(
                    target.id, target_body, target_line, context, [*stack, target.id],
                )
            if text and not text.endswith("\n"):
                text += "\n"
            out.append(text)
        return "".join(out)
