"""Folio error hierarchy.

All folio-specific errors inherit from FolioError for easy catching.

Per-artifact errors (``RenderError`` and its variants, ``CyclicDependencyError``,
``BuildIOError``) are collected into a ``BuildReport`` and never abort a pass.
``ConfigError``, ``ContextError`` and ``WatchError`` are fatal to what raised them.
"""

from __future__ import annotations


class FolioError(Exception):
    """Base error for all folio operations."""


class ConfigError(FolioError):
    """Invalid or missing configuration, or an unusable source/output root."""


class ContextError(FolioError):
    """The shared render context (templates, navigation) cannot be built."""


class RenderError(FolioError):
    """A single artifact could not be rendered.

    Attributes:
        source: Source id of the offending document.
        line: 1-based line number, when known.
        column: 1-based column number, when known.

    """

    def __init__(
        self,
        message: str,
        *,
        source: str,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        self.message = message
        self.source = source
        self.line = line
        self.column = column
        super().__init__(f"{self.location}: {message}")

    @property
    def location(self) -> str:
        """Human-readable ``source:line:column`` location."""
        loc = self.source
        if self.line is not None:
            loc += f":{self.line}"
            if self.column is not None:
                loc += f":{self.column}"
        return loc


class MarkupError(RenderError):
    """Malformed source syntax (frontmatter, directives, Markdown)."""


class IncludeNotFoundError(RenderError):
    """An include directive references a source that does not exist."""

    def __init__(self, target: str, *, source: str, line: int | None = None) -> None:
        self.target = target
        super().__init__(f"included file {target!r} not found", source=source, line=line)


class TemplateNotFoundError(RenderError):
    """A document references a template that no template directory provides."""

    def __init__(self, template: str, *, source: str) -> None:
        self.template = template
        super().__init__(f"template {template!r} not found", source=source)


class TemplateRenderError(RenderError):
    """A template failed to compile or raised while rendering."""


class OutputConflictError(RenderError):
    """Two sources claim the same output path."""

    def __init__(self, artifact: str, *, source: str, owner: str) -> None:
        self.artifact = artifact
        self.owner = owner
        super().__init__(f"output {artifact!r} is already produced by {owner!r}", source=source)


class CyclicDependencyError(FolioError):
    """An include cycle was found.

    Attributes:
        cycle: Source ids along the cycle; the first id is repeated at the end.

    """

    def __init__(self, cycle: tuple[str, ...] | list[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__("include cycle: " + " -> ".join(self.cycle))

    @property
    def source(self) -> str:
        """The source the cycle was entered from."""
        return self.cycle[0] if self.cycle else ""


class BuildIOError(FolioError):
    """Reading a source or writing an artifact failed after a retry."""

    def __init__(self, path: str, operation: str, cause: OSError) -> None:
        self.path = path
        self.operation = operation
        self.cause = cause
        super().__init__(f"cannot {operation} {path}: {cause}")


class WatchError(FolioError):
    """Filesystem observation broke; live reload can no longer be trusted."""
