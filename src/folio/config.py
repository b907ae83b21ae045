"""Folio configuration.

FolioConfig is the central configuration object, frozen after creation.
"""

from dataclasses import dataclass, field
from pathlib import Path

CONFIG_FILENAMES = ("folio.yaml", "folio.yml", "folio.toml")


@dataclass(frozen=True, slots=True)
class FolioConfig:
    """Configuration for a Folio site.

    Attributes:
        root: Path to the site root directory (contains content/, templates/).
              Always resolved to an absolute path on construction.
        source_dir: Directory containing source documents, relative to root.
        templates_dir: Directory containing Kida templates, relative to root.
        output: Output directory for generated files. Relative paths are
            resolved against root.
        host: Bind address for the dev server.
        port: Bind port for the dev server.
        title: Site title passed to templates and the site index.
        description: Site description passed to templates and the site index.
        base_url: Base URL for the site (enables sitemap generation).
        debounce_ms: Quiet period before a burst of file events is flushed.
        keepalive_s: How long a notification client waits before a ping.
        markdown_plugins: Patitas plugins enabled for Markdown rendering.

    """

    root: Path = field(default_factory=Path.cwd)
    source_dir: str = "content"
    templates_dir: str = "templates"
    output: Path = field(default_factory=lambda: Path("dist"))
    host: str = "localhost"
    port: int = 8000
    title: str = "Documentation"
    description: str = ""
    base_url: str = ""
    debounce_ms: int = 300
    keepalive_s: float = 15.0
    markdown_plugins: tuple[str, ...] = ("table", "strikethrough", "task_lists")

    def __post_init__(self) -> None:
        # watchfiles reports absolute paths; keep root comparable with them.
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())
        if not isinstance(self.output, Path):
            object.__setattr__(self, "output", Path(self.output))
        if not isinstance(self.markdown_plugins, tuple):
            object.__setattr__(self, "markdown_plugins", tuple(self.markdown_plugins))

    @property
    def source_path(self) -> Path:
        """Absolute path to the source document tree."""
        return self.root / self.source_dir

    @property
    def templates_path(self) -> Path:
        """Absolute path to the user templates directory."""
        return self.root / self.templates_dir

    @property
    def output_path(self) -> Path:
        """Absolute path to the output directory."""
        if self.output.is_absolute():
            return self.output
        return self.root / self.output

    @property
    def config_files(self) -> tuple[Path, ...]:
        """Candidate config file paths at the site root."""
        return tuple(self.root / name for name in CONFIG_FILENAMES)
