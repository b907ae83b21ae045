"""Site index — ``search.json`` metadata for client-side search.

Lists every rendered page with its category and tags, plus the sorted
category and tag vocabularies. Rendered from the shared context only, so
it changes exactly when the context version does.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from folio.export.transform import SharedContext

SITE_INDEX_PATH = "search.json"


def generate_site_index(context: SharedContext) -> bytes:
    """Render the site index for *context* as UTF-8 JSON bytes."""
    from folio import __version__

    tags = sorted({tag for entry in context.nav for tag in entry.tags})
    payload = {
        "site": {
            "title": context.site["title"],
            "description": context.site["description"],
        },
        "generator": f"folio {__version__}",
        "pages": [
            {
                "title": entry.title,
                "href": entry.href,
                "source": entry.source,
                "category": entry.category,
                "tags": list(entry.tags),
                "description": entry.description,
            }
            for entry in context.nav
        ],
        "categories": list(context.categories),
        "tags": tags,
    }
    return (json.dumps(payload, indent=2, ensure_ascii=False) + "\n").encode("utf-8")
