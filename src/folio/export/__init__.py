"""Export layer — static output generation.

Renders source documents into the output tree: the transform pipeline,
the build orchestrator, atomic file writes, and the site index and
sitemap derived from the shared context.

Import from the submodules directly (``folio.export.orchestrator``,
``folio.export.transform``); the content model depends on
``folio.export.writer``, so this package stays import-free.
"""
