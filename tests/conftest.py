"""Shared test fixtures for folio."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from folio.config import FolioConfig

INDEX_MD = "---\ntitle: Home\n---\n\n# Welcome\n\nThis is the home page.\n"

PAGE_MD = (
    "---\n"
    "title: Guide\n"
    "tags: [intro, setup]\n"
    "---\n"
    "\n"
    "# Guide\n"
    "\n"
    "Before the partial.\n"
    "\n"
    '{% include "partial.md" %}\n'
    "\n"
    "After the partial.\n"
)

PARTIAL_MD = "Shared snippet v1.\n"


@pytest.fixture
def tmp_site(tmp_path: Path) -> Path:
    """Create a minimal site: an index, one page and the partial it includes.

    Returns the site root. Sources live in ``content/``, the output goes to
    ``dist/`` (the defaults).
    """
    content = tmp_path / "content"
    content.mkdir()
    (content / "index.md").write_text(INDEX_MD)
    (content / "page.md").write_text(PAGE_MD)
    (content / "partial.md").write_text(PARTIAL_MD)
    return tmp_path


@pytest.fixture
def site_config(tmp_site: Path) -> FolioConfig:
    """FolioConfig for ``tmp_site`` with a short debounce for loop tests."""
    return FolioConfig(root=tmp_site, debounce_ms=20)


@pytest.fixture
def write_source(tmp_site: Path) -> Callable[[str, str], Path]:
    """Return a helper that writes a source file under ``content/``."""

    def _write(source_id: str, text: str) -> Path:
        path = tmp_site / "content" / source_id
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    return _write
