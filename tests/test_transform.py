"""Tests for the transform pipeline and the shared render context."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from folio._errors import (
    CyclicDependencyError,
    IncludeNotFoundError,
    MarkupError,
    TemplateNotFoundError,
)
from folio.config import FolioConfig
from folio.content.model import ContentStore, discover_sources
from folio.export.transform import (
    PIPELINE_VERSION,
    SharedContext,
    TransformPipeline,
    fingerprint,
    source_closure,
)


def _load(config: FolioConfig, pages: list[str] | None = None) -> tuple[ContentStore, SharedContext]:
    store = ContentStore(config.source_path)
    for source_id in discover_sources(config.source_path):
        store.load(source_id)
    if pages is None:
        pages = [s for s in store.ids() if s.endswith(".md") and s != "partial.md"]
    return store, SharedContext.build(config, store.snapshot(), pages)


class TestSharedContext:
    def test_nav_lists_pages_home_first(self, site_config: FolioConfig) -> None:
        _, context = _load(site_config)
        assert [e.href for e in context.nav] == ["/", "/page/"]
        assert context.nav[1].title == "Guide"
        assert context.categories == ("general",)

    def test_site_metadata(self, tmp_site: Path) -> None:
        config = FolioConfig(root=tmp_site, title="Handbook", base_url="https://x.dev/")
        _, context = _load(config)
        assert context.site["title"] == "Handbook"
        assert context.site["base_url"] == "https://x.dev"

    def test_version_stable_across_builds(self, site_config: FolioConfig) -> None:
        _, first = _load(site_config)
        _, second = _load(site_config)
        assert first.version == second.version
        assert first.pipeline_version == PIPELINE_VERSION

    def test_body_edit_keeps_version(
        self, site_config: FolioConfig, write_source: Callable[[str, str], Path],
    ) -> None:
        _, before = _load(site_config)
        write_source("partial.md", "Shared snippet v2.\n")
        _, after = _load(site_config)
        assert before.version == after.version

    def test_title_edit_moves_version(
        self, site_config: FolioConfig, write_source: Callable[[str, str], Path],
    ) -> None:
        _, before = _load(site_config)
        write_source("index.md", "---\ntitle: Start\n---\nHi\n")
        _, after = _load(site_config)
        assert before.version != after.version

    def test_template_edit_moves_version(self, site_config: FolioConfig) -> None:
        _, before = _load(site_config)
        templates = site_config.templates_path
        templates.mkdir()
        (templates / "page.html").write_text("<html><body>{{ content }}</body></html>\n")
        _, after = _load(site_config, pages=["index.md", "page.md"])
        assert before.templates_version != after.templates_version
        assert before.version != after.version

    def test_environment_reused_without_template_changes(self, site_config: FolioConfig) -> None:
        store, first = _load(site_config)
        second = SharedContext.build(
            site_config, store.snapshot(), ["index.md", "page.md"], previous=first,
        )
        assert second.env is first.env


class TestTransformPipeline:
    def test_renders_page_with_partial(self, site_config: FolioConfig) -> None:
        store, context = _load(site_config)
        doc = store.get("page.md")
        assert doc is not None
        artifact = TransformPipeline().render(doc, context)
        html = artifact.content.decode()
        assert artifact.id == "page/index.html"
        assert "Before the partial." in html
        assert "Shared snippet v1." in html
        assert "After the partial." in html
        assert "{% include" not in html
        assert artifact.sources == ("page.md", "partial.md")

    def test_render_is_deterministic(self, site_config: FolioConfig) -> None:
        store, context = _load(site_config)
        doc = store.get("page.md")
        assert doc is not None
        pipeline = TransformPipeline()
        first = pipeline.render(doc, context)
        second = pipeline.render(doc, context)
        assert first.content == second.content
        assert first.fingerprint == second.fingerprint

    def test_user_template_overrides_theme(self, site_config: FolioConfig) -> None:
        site_config.templates_path.mkdir()
        (site_config.templates_path / "page.html").write_text(
            "<main data-custom>{{ page.title }}|{{ content }}</main>\n"
        )
        store, context = _load(site_config)
        doc = store.get("index.md")
        assert doc is not None
        html = TransformPipeline().render(doc, context).content.decode()
        assert html.startswith("<main data-custom>Home|")

    def test_asset_passthrough(
        self, site_config: FolioConfig, write_source: Callable[[str, str], Path],
    ) -> None:
        write_source("css/site.css", "body { margin: 0; }\n")
        store, context = _load(site_config)
        doc = store.get("css/site.css")
        assert doc is not None
        artifact = TransformPipeline().render(doc, context)
        assert artifact.content == b"body { margin: 0; }\n"
        assert artifact.id == "css/site.css"

    def test_missing_include(
        self, site_config: FolioConfig, write_source: Callable[[str, str], Path],
    ) -> None:
        write_source("broken.md", 'Intro\n{% include "nowhere.md" %}\n')
        store, context = _load(site_config)
        doc = store.get("broken.md")
        assert doc is not None
        with pytest.raises(IncludeNotFoundError) as exc_info:
            TransformPipeline().render(doc, context)
        assert exc_info.value.source == "broken.md"
        assert exc_info.value.line == 2

    def test_include_cycle(
        self, site_config: FolioConfig, write_source: Callable[[str, str], Path],
    ) -> None:
        write_source("a.md", '{% include "b.md" %}\n')
        write_source("b.md", '{% include "a.md" %}\n')
        store, context = _load(site_config)
        doc = store.get("a.md")
        assert doc is not None
        with pytest.raises(CyclicDependencyError) as exc_info:
            TransformPipeline().render(doc, context)
        assert exc_info.value.cycle == ("a.md", "b.md", "a.md")

    def test_malformed_frontmatter(
        self, site_config: FolioConfig, write_source: Callable[[str, str], Path],
    ) -> None:
        write_source("bad.md", "---\ntitle: Oops\n")
        store, context = _load(site_config)
        doc = store.get("bad.md")
        assert doc is not None
        with pytest.raises(MarkupError):
            TransformPipeline().render(doc, context)

    def test_malformed_include_in_partial_names_partial(
        self, site_config: FolioConfig, write_source: Callable[[str, str], Path],
    ) -> None:
        write_source("partial.md", "ok\n{% include nope %}\n")
        store, context = _load(site_config)
        doc = store.get("page.md")
        assert doc is not None
        with pytest.raises(MarkupError) as exc_info:
            TransformPipeline().render(doc, context)
        assert exc_info.value.source == "partial.md"
        assert exc_info.value.line == 2

    def test_unknown_template(
        self, site_config: FolioConfig, write_source: Callable[[str, str], Path],
    ) -> None:
        write_source("odd.md", "---\ntemplate: missing.html\n---\nx\n")
        store, context = _load(site_config)
        doc = store.get("odd.md")
        assert doc is not None
        with pytest.raises(TemplateNotFoundError, match="missing.html"):
            TransformPipeline().render(doc, context)


class TestFingerprint:
    def test_partial_edit_changes_includer_fingerprint(
        self, site_config: FolioConfig, write_source: Callable[[str, str], Path],
    ) -> None:
        store, context = _load(site_config)
        page = store.get("page.md")
        index = store.get("index.md")
        assert page is not None and index is not None
        page_before, index_before = fingerprint(page, context), fingerprint(index, context)

        write_source("partial.md", "Shared snippet v2.\n")
        store, context = _load(site_config)
        page = store.get("page.md")
        index = store.get("index.md")
        assert page is not None and index is not None
        assert fingerprint(page, context) != page_before
        assert fingerprint(index, context) == index_before

    def test_source_closure_tolerates_cycles(
        self, site_config: FolioConfig, write_source: Callable[[str, str], Path],
    ) -> None:
        write_source("a.md", '{% include "b.md" %}\n')
        write_source("b.md", '{% include "a.md" %}\n')
        store, _ = _load(site_config)
        doc = store.get("a.md")
        assert doc is not None
        assert source_closure(doc, store.snapshot()) == ["b.md"]
