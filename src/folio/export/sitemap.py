"""Sitemap generation — produce sitemap.xml from the rendered pages.

Generates a standard sitemap.xml listing every page in the navigation.
Requires ``base_url`` to be configured; skipped when it is empty.

No ``lastmod`` is emitted: output bytes must depend on sources only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from xml.etree.ElementTree import Element, SubElement, tostring

if TYPE_CHECKING:
    from folio.export.transform import SharedContext

SITEMAP_PATH = "sitemap.xml"

# XML namespace for sitemaps
_SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"


def generate_sitemap(context: SharedContext) -> bytes | None:
    """Render sitemap.xml for *context*, or None when no base_url is set."""
    base = context.site.get("base_url", "").rstrip("/")
    if not base:
        return None

    urlset = Element("urlset")
    urlset.set("xmlns", _SITEMAP_NS)

    for href in sorted(entry.href for entry in context.nav):
        url_el = SubElement(urlset, "url")
        loc = SubElement(url_el, "loc")
        loc.text = base + href

    xml = tostring(urlset, encoding="unicode", xml_declaration=False)
    return ('<?xml version="1.0" encoding="UTF-8"?>\n' + xml + "\n").encode("utf-8")
