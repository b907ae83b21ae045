"""Tests for folio.theme — default theme and template fallback chain."""

from __future__ import annotations

from pathlib import Path

from folio.config import FolioConfig
from folio.export.orchestrator import BuildOrchestrator
from folio.theme import bundled_theme_path, get_template_dirs


class TestBundledTheme:
    """Verify the bundled default theme has what every page needs."""

    def test_bundled_path_exists(self) -> None:
        assert bundled_theme_path().is_dir()

    def test_page_template_present(self) -> None:
        assert (bundled_theme_path() / "templates" / "page.html").is_file()

    def test_page_template_renders_content(self) -> None:
        text = (bundled_theme_path() / "templates" / "page.html").read_text(encoding="utf-8")
        assert "{{ content }}" in text
        assert "{% for entry in nav %}" in text


class TestGetTemplateDirs:
    def test_user_dir_first(self, tmp_path: Path) -> None:
        config = FolioConfig(root=tmp_path)
        dirs = get_template_dirs(config)
        assert dirs == [tmp_path / "templates", bundled_theme_path() / "templates"]

    def test_missing_user_dir_still_listed(self, tmp_path: Path) -> None:
        config = FolioConfig(root=tmp_path, templates_dir="layouts")
        assert get_template_dirs(config)[0] == tmp_path / "layouts"


class TestDefaultThemeOutput:
    def test_page_lists_navigation(self, site_config: FolioConfig) -> None:
        BuildOrchestrator(site_config).build_all()
        html = (site_config.output_path / "page" / "index.html").read_text()
        assert "<title>Guide · Documentation</title>" in html
        assert '<a href="/page/" class="current">Guide</a>' in html
        assert '<a href="/">Home</a>' in html
        assert "<span>intro</span>" in html
