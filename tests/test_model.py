"""Tests for the content model — frontmatter, includes, output paths, the store."""

from __future__ import annotations

from pathlib import Path

import pytest

from folio._errors import MarkupError
from folio.content.model import (
    ContentStore,
    derive_output_path,
    discover_sources,
    href_for,
    is_ignored_name,
    iter_directives,
    load_document,
    resolve_include,
    scan_includes,
    source_id_for,
    split_frontmatter,
)

# ---------------------------------------------------------------------------
# Frontmatter
# ---------------------------------------------------------------------------


class TestSplitFrontmatter:
    def test_no_frontmatter(self) -> None:
        meta, body, line = split_frontmatter("# Title\n", source="a.md")
        assert meta == {}
        assert body == "# Title\n"
        assert line == 1

    def test_mapping(self) -> None:
        meta, body, line = split_frontmatter(
            "---\ntitle: Hi\ntags: [a]\n---\nBody\n", source="a.md",
        )
        assert meta == {"title": "Hi", "tags": ["a"]}
        assert body == "Body\n"
        assert line == 5

    def test_dot_closer(self) -> None:
        meta, body, _ = split_frontmatter("---\ntitle: Hi\n...\nBody\n", source="a.md")
        assert meta["title"] == "Hi"
        assert body == "Body\n"

    def test_byte_order_mark_stripped(self) -> None:
        meta, _, _ = split_frontmatter("\ufeff---\ntitle: Hi\n---\n", source="a.md")
        assert meta == {"title": "Hi"}

    def test_empty_block(self) -> None:
        meta, body, _ = split_frontmatter("---\n---\nBody\n", source="a.md")
        assert meta == {}
        assert body == "Body\n"

    def test_unclosed_strict_raises(self) -> None:
        with pytest.raises(MarkupError, match="unclosed") as exc_info:
            split_frontmatter("---\ntitle: Hi\n", source="a.md")
        assert exc_info.value.line == 1

    def test_unclosed_lenient_keeps_text(self) -> None:
        meta, body, _ = split_frontmatter("---\ntitle: Hi\n", source="a.md", strict=False)
        assert meta == {}
        assert body.startswith("---")

    def test_invalid_yaml_reports_line(self) -> None:
        with pytest.raises(MarkupError) as exc_info:
            split_frontmatter("---\ntitle: ok\nbad: [x\n---\n", source="a.md")
        assert exc_info.value.source == "a.md"
        assert exc_info.value.line is not None
        assert exc_info.value.line >= 2

    def test_invalid_yaml_lenient(self) -> None:
        meta, body, line = split_frontmatter(
            "---\nbad: [x\n---\nBody\n", source="a.md", strict=False,
        )
        assert meta == {}
        assert body == "Body\n"
        assert line == 4

    def test_non_mapping_strict_raises(self) -> None:
        with pytest.raises(MarkupError, match="mapping"):
            split_frontmatter("---\n- a\n---\n", source="a.md")


# ---------------------------------------------------------------------------
# Include directives
# ---------------------------------------------------------------------------


class TestIncludes:
    def test_resolve_relative(self) -> None:
        assert resolve_include("guide/setup.md", "_snippets/note.md") == "guide/_snippets/note.md"

    def test_resolve_parent(self) -> None:
        assert resolve_include("guide/setup.md", "../shared.md") == "shared.md"

    def test_resolve_root_absolute(self) -> None:
        assert resolve_include("guide/setup.md", "/shared.md") == "shared.md"

    def test_escape_is_unresolvable(self) -> None:
        assert resolve_include("a.md", "../outside.md") is None

    def test_scan_in_order_and_deduplicated(self) -> None:
        body = (
            '{% include "b.md" %}\n'
            "text\n"
            "{% include 'a.md' %}\n"
            '{% include "b.md" %}\n'
        )
        assert scan_includes(body, source="x.md") == ("b.md", "a.md")

    def test_fenced_directives_ignored(self) -> None:
        body = '```\n{% include "a.md" %}\n```\n~~~\n{% include "b.md" %}\n~~~\n'
        assert scan_includes(body, source="x.md") == ()

    def test_malformed_strict_raises_with_position(self) -> None:
        body = "ok\n  {% include missing-quotes %}\n"
        with pytest.raises(MarkupError) as exc_info:
            list(iter_directives(body, source="x.md", first_line=4))
        assert exc_info.value.line == 5
        assert exc_info.value.column == 3

    def test_malformed_lenient_skipped(self) -> None:
        body = "{% include missing-quotes %}\n"
        assert scan_includes(body, source="x.md") == ()

    def test_directive_line_numbers(self) -> None:
        body = 'a\n{% include "p.md" %}\n'
        directives = [d for _, _, d in iter_directives(body, source="x.md", first_line=3) if d]
        assert len(directives) == 1
        assert directives[0].line == 4
        assert directives[0].resolved == "p.md"


# ---------------------------------------------------------------------------
# Output paths
# ---------------------------------------------------------------------------


class TestOutputPaths:
    @pytest.mark.parametrize(
        ("source_id", "expected"),
        [
            ("index.md", "index.html"),
            ("guide/index.md", "guide/index.html"),
            ("guide/setup.md", "guide/setup/index.html"),
            ("page.markdown", "page/index.html"),
        ],
    )
    def test_clean_urls(self, source_id: str, expected: str) -> None:
        assert derive_output_path(source_id, {}, "page") == expected

    def test_asset_keeps_path(self) -> None:
        assert derive_output_path("img/logo.png", {}, "asset") == "img/logo.png"

    def test_override(self) -> None:
        assert derive_output_path("a.md", {"output": "/docs/a.html"}, "page") == "docs/a.html"

    def test_override_directory(self) -> None:
        assert derive_output_path("a.md", {"output": "start/"}, "page") == "start/index.html"

    def test_escaping_override_ignored(self) -> None:
        assert derive_output_path("a.md", {"output": "../evil.html"}, "page") == "a/index.html"

    @pytest.mark.parametrize(
        ("artifact", "href"),
        [
            ("index.html", "/"),
            ("guide/index.html", "/guide/"),
            ("img/logo.png", "/img/logo.png"),
        ],
    )
    def test_href(self, artifact: str, href: str) -> None:
        assert href_for(artifact) == href


# ---------------------------------------------------------------------------
# Loading and discovery
# ---------------------------------------------------------------------------


class TestLoadDocument:
    def test_page(self, tmp_site: Path) -> None:
        doc = load_document(tmp_site / "content", "page.md")
        assert doc.kind == "page"
        assert doc.title == "Guide"
        assert doc.includes == ("partial.md",)
        assert doc.output_path == "page/index.html"
        assert doc.tags == ("intro", "setup")
        assert doc.href == "/page/"
        assert len(doc.content_hash) == 64

    def test_title_from_heading(self, tmp_path: Path) -> None:
        (tmp_path / "setup-guide.md").write_text("Intro\n\n# Install Steps\n")
        assert load_document(tmp_path, "setup-guide.md").title == "Install Steps"

    def test_title_from_file_name(self, tmp_path: Path) -> None:
        (tmp_path / "setup-guide.md").write_text("no heading\n")
        assert load_document(tmp_path, "setup-guide.md").title == "Setup Guide"

    def test_asset(self, tmp_path: Path) -> None:
        (tmp_path / "logo.svg").write_bytes(b"<svg/>")
        doc = load_document(tmp_path, "logo.svg")
        assert doc.kind == "asset"
        assert doc.output_path == "logo.svg"
        assert doc.includes == ()

    def test_malformed_frontmatter_loads_leniently(self, tmp_path: Path) -> None:
        (tmp_path / "a.md").write_text("---\ntitle: [x\n---\nBody\n")
        doc = load_document(tmp_path, "a.md")
        assert dict(doc.metadata) == {}

    def test_named_partial(self, tmp_path: Path) -> None:
        (tmp_path / "_note.md").write_text("n\n")
        (tmp_path / "flagged.md").write_text("---\npartial: true\n---\nx\n")
        (tmp_path / "plain.md").write_text("x\n")
        assert load_document(tmp_path, "_note.md").named_partial
        assert load_document(tmp_path, "flagged.md").named_partial
        assert not load_document(tmp_path, "plain.md").named_partial

    def test_category(self, tmp_path: Path) -> None:
        (tmp_path / "guide").mkdir()
        (tmp_path / "guide" / "a.md").write_text("x\n")
        (tmp_path / "b.md").write_text("---\ncategory: Reference\n---\n")
        (tmp_path / "c.md").write_text("x\n")
        assert load_document(tmp_path, "guide/a.md").category == "guide"
        assert load_document(tmp_path, "b.md").category == "Reference"
        assert load_document(tmp_path, "c.md").category == "general"


class TestDiscovery:
    def test_sorted_and_filtered(self, tmp_path: Path) -> None:
        (tmp_path / "b.md").write_text("b")
        (tmp_path / "a.md").write_text("a")
        (tmp_path / ".hidden.md").write_text("h")
        (tmp_path / "a.md~").write_text("backup")
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "HEAD").write_text("ref")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "c.md").write_text("c")
        assert discover_sources(tmp_path) == ["a.md", "b.md", "sub/c.md"]

    def test_excluded_directory_skipped(self, tmp_path: Path) -> None:
        (tmp_path / "a.md").write_text("a")
        (tmp_path / "dist").mkdir()
        (tmp_path / "dist" / "index.html").write_text("x")
        assert discover_sources(tmp_path, exclude=tmp_path / "dist") == ["a.md"]

    @pytest.mark.parametrize("name", [".DS_Store", "a.swp", "b~", "#c#", "x.tmp"])
    def test_ignored_names(self, name: str) -> None:
        assert is_ignored_name(name)

    def test_source_id_for(self, tmp_path: Path) -> None:
        assert source_id_for(tmp_path / "a" / "b.md", tmp_path) == "a/b.md"
        assert source_id_for(tmp_path, tmp_path) is None
        assert source_id_for(Path("/elsewhere/x.md"), tmp_path) is None


class TestContentStore:
    def test_refresh_keeps_unchanged_document(self, tmp_site: Path) -> None:
        store = ContentStore(tmp_site / "content")
        first = store.load("index.md")
        assert store.refresh("index.md") is first

    def test_refresh_picks_up_edit(self, tmp_site: Path) -> None:
        store = ContentStore(tmp_site / "content")
        first = store.load("partial.md")
        (tmp_site / "content" / "partial.md").write_text("v2\n")
        fresh = store.refresh("partial.md")
        assert fresh is not None
        assert fresh.content_hash != first.content_hash

    def test_refresh_deleted_forgets(self, tmp_site: Path) -> None:
        store = ContentStore(tmp_site / "content")
        store.load("partial.md")
        (tmp_site / "content" / "partial.md").unlink()
        assert store.refresh("partial.md") is None
        assert "partial.md" not in store

    def test_snapshot_is_isolated(self, tmp_site: Path) -> None:
        store = ContentStore(tmp_site / "content")
        store.load("index.md")
        snap = store.snapshot()
        store.load("page.md")
        assert list(snap) == ["index.md"]
        assert len(store) == 2
        with pytest.raises(TypeError):
            snap["x"] = None  # type: ignore[index]
