"""Console output — startup banner and build summaries.

The banner and rebuild lines go to stderr. The summary of a one-shot
``folio build`` goes to stdout so it can be captured or piped. Detects
``NO_COLOR`` / ``TERM`` for safe fallback.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from folio.config import FolioConfig
    from folio.export.orchestrator import BuildReport


# ---------------------------------------------------------------------------
# ANSI helpers; respect NO_COLOR (https://no-color.org)
# ---------------------------------------------------------------------------

def _supports_color() -> bool:
    """Return True if the terminal supports ANSI colors."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


_COLOR = _supports_color()

_RESET = "\033[0m" if _COLOR else ""
_BOLD = "\033[1m" if _COLOR else ""
_DIM = "\033[2m" if _COLOR else ""
_CYAN = "\033[36m" if _COLOR else ""
_GREEN = "\033[32m" if _COLOR else ""
_YELLOW = "\033[33m" if _COLOR else ""
_RED = "\033[31m" if _COLOR else ""


# ---------------------------------------------------------------------------
# Mode badges
# ---------------------------------------------------------------------------

_MODE_STYLES: dict[str, tuple[str, str]] = {
    "dev": (_GREEN, "dev"),
    "build": (_YELLOW, "build"),
}

_STATUS_STYLES: dict[str, str] = {
    "succeeded": _GREEN,
    "partially_failed": _YELLOW,
    "failed": _RED,
}


def _mode_badge(mode: str) -> str:
    """Return a styled [mode] badge."""
    color, label = _MODE_STYLES.get(mode, (_DIM, mode))
    return f"{color}[{label}]{_RESET}"


def _clickable_url(url: str) -> str:
    """Wrap *url* in an OSC 8 hyperlink escape if the terminal supports it."""
    if not _COLOR:
        return url
    return f"\033]8;;{url}\033\\{_BOLD}{_CYAN}{url}{_RESET}\033]8;;\033\\"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def print_banner(
    config: FolioConfig,
    source_count: int,
    mode: str,
    *,
    load_ms: float = 0.0,
    warnings: list[str] | None = None,
) -> None:
    """Print the Folio startup banner to stderr.

    Args:
        config: Resolved FolioConfig.
        source_count: Number of source documents discovered.
        mode: ``"dev"`` or ``"build"``.
        load_ms: Time spent on the initial build in milliseconds.
        warnings: Optional list of warning messages to display.

    """
    from folio import __version__

    badge = _mode_badge(mode)
    header = f"  {_BOLD}Folio{_RESET} {_DIM}v{__version__}{_RESET}  {badge}"

    lines: list[str] = [
        "",
        header,
        f"  {_DIM}{'─' * 43}{_RESET}",
    ]

    timing = f" {_DIM}in {load_ms:.0f}ms{_RESET}" if load_ms > 0 else ""
    lines.append(f"  {_DIM}├─{_RESET} {_plural(source_count, 'source')}{timing}")
    lines.append(f"  {_DIM}├─{_RESET} content: {_DIM}{config.source_path}{_RESET}")
    lines.append(f"  {_DIM}├─{_RESET} templates: {_DIM}{config.templates_path}{_RESET}")

    if mode == "dev":
        lines.append(
            f"  {_DIM}├─{_RESET} {_GREEN}live{_RESET} "
            f"reload on {_DIM}/__folio/events{_RESET}"
        )
    lines.append(f"  {_DIM}└─{_RESET} output: {_DIM}{config.output_path}{_RESET}")

    if mode == "dev":
        url = f"http://{config.host}:{config.port}"
        lines.append("")
        lines.append(f"  {_clickable_url(url)}")
        lines.append("")
        lines.append(f"  {_DIM}Watching for changes...{_RESET}")

    if warnings:
        lines.append("")
        lines.extend(f"  {_YELLOW}!{_RESET} {w}" for w in warnings)

    lines.append("")

    print("\n".join(lines), file=sys.stderr)


def format_failures(report: BuildReport) -> list[str]:
    """One line per failed artifact: ``artifact (source:line): Kind: message``."""
    lines: list[str] = []
    for failure in report.failures:
        where = failure.source
        if failure.line is not None:
            where = f"{where}:{failure.line}"
        target = failure.artifact or "-"
        lines.append(f"{target} ({where}): {failure.kind}: {failure.message}")
    return lines


def print_build_summary(report: BuildReport, output: str, *, file: TextIO | None = None) -> None:
    """Print the summary of a one-shot build (stdout by default)."""
    stream = file if file is not None else sys.stdout
    lines = [
        "",
        "─" * 41,
        f"  Rebuilt {_plural(len(report.rebuilt), 'artifact')}",
    ]
    if report.unchanged:
        lines.append(f"  Unchanged {len(report.unchanged)}")
    if report.removed:
        lines.append(f"  Removed {_plural(len(report.removed), 'stale artifact')}")
    if report.failures:
        lines.append(f"  Failed {_plural(len(report.failures), 'artifact')}:")
        lines.extend(f"    {line}" for line in format_failures(report))
    lines.append(f"  Output: {output}")
    lines.append(f"  Status: {report.status}")
    lines.append(f"  Done in {report.duration_ms:.0f}ms")

    print("\n".join(lines), file=stream)


def print_rebuild(report: BuildReport) -> None:
    """Print a one-line rebuild summary to stderr, plus any failures."""
    color = _STATUS_STYLES.get(report.status, "")
    print(f"  {color}{report.kind}{_RESET} {report.summary()}", file=sys.stderr)
    for line in format_failures(report):
        print(f"    {_RED}!{_RESET} {line}", file=sys.stderr)
