"""Folio — a static documentation site generator with live reload.

Builds a tree of Markdown sources into a static HTML site, and keeps it
up to date while you write. Edit a page (or a partial it includes) and
only the affected outputs are re-rendered, then the browser reloads.

Quick start::

    import folio

    folio.build("my-docs/")       # One-shot static build
    folio.dev("my-docs/")         # Incremental rebuilds + live reload

Built on:

    pounce      ASGI server       (serves the dev server)
    chirp       Web framework     (routes, SSE)
    kida        Template engine   (renders HTML)
    patitas     Markdown parser   (parses content)
    watchfiles  File watching     (drives incremental rebuilds)

"""

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0"
__all__ = [
    "BuildReport",
    "FolioConfig",
    "__version__",
    "build",
    "dev",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import folio`` fast; the build pipeline and the server stack
    are only imported when first used.
    """
    if name == "FolioConfig":
        from folio.config import FolioConfig

        return FolioConfig

    if name == "BuildReport":
        from folio.export.orchestrator import BuildReport

        return BuildReport

    if name == "dev":
        from folio.app import dev

        return dev

    if name == "build":
        from folio.app import build

        return build

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
