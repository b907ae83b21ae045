"""Content layer — source documents, discovery and file watching.

Handles the source model (documents, frontmatter, include directives),
the content store, and the watcher that turns filesystem events into
change sets. The dev server's output router lives here too.
"""

from folio.content.model import ContentStore, SourceDocument, discover_sources
from folio.content.watcher import ChangeEvent, ChangeSet, SourceWatcher

__all__ = [
    "ChangeEvent",
    "ChangeSet",
    "ContentStore",
    "SourceDocument",
    "SourceWatcher",
    "discover_sources",
]
