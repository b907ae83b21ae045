"""Dev-mode error overlay — surfaces build failures in the browser.

Provides two mechanisms:
1. ``format_report_event`` — an SSE-safe JSON payload for the
   ``folio:error`` event. The live-reload script turns
   them into an error toast without reloading the page.
2. ``render_failure_page`` — a styled HTML page served in place of an
   artifact that has never been built successfully.
"""

from __future__ import annotations

import html
import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from folio.export.orchestrator import ArtifactFailure, BuildReport

# Toasts only show this many failures; the rest are counted.
MAX_REPORTED_FAILURES = 10


# ---------------------------------------------------------------------------
# Error page template; inline CSS so it renders even when the output tree is broken
# ---------------------------------------------------------------------------

_ERROR_PAGE = """\
<!DOCTYPE html>
<html lang="en" data-theme="dark">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Folio — Build error</title>
<style>
*,*::before,*::after{{box-sizing:border-box}}
body{{margin:0;font-family:ui-monospace,SFMono-Regular,Menlo,Monaco,Consolas,monospace;
  background:#1a1a1a;color:#e0e0e0;line-height:1.6}}
.overlay{{max-width:860px;margin:2rem auto;padding:0 1.5rem}}
.error-header{{background:#2d1010;border:1px solid #e74c3c;border-radius:8px;
  padding:1.25rem 1.5rem;margin-bottom:1.5rem}}
.error-header h1{{margin:0;font-size:1rem;color:#e74c3c;font-weight:600}}
.error-header .message{{margin:0.5rem 0 0;font-size:0.95rem;color:#f0a0a0;
  word-break:break-word}}
.error-header .file{{margin-top:0.5rem;font-size:0.8rem;color:#9e9e9e}}
.actions button{{padding:0.5rem 1.25rem;border-radius:6px;border:1px solid #e74c3c;
  background:#e74c3c;color:#fff;cursor:pointer;font-size:0.85rem;font-family:inherit}}
</style>
</head>
<body>
<div class="overlay">
  <div class="error-header">
    <h1>{error_type}</h1>
    <p class="message">{error_message}</p>
    <div class="file">{location}</div>
  </div>
  <div class="actions">
    <button onclick="location.reload()">Reload</button>
  </div>
</div>
</body>
</html>
"""


def _failure_location(failure: ArtifactFailure) -> str:
    if failure.line is None:
        return failure.source
    if failure.column is None:
        return f"{failure.source}:{failure.line}"
    return f"{failure.source}:{failure.line}:{failure.column}"


def failure_payload(failure: ArtifactFailure) -> dict[str, Any]:
    """JSON-ready description of one failed artifact."""
    return {
        "type": failure.kind,
        "message": failure.message,
        "artifact": failure.artifact,
        "file": failure.source,
        "line": failure.line,
        "column": failure.column,
    }


def format_report_event(report: BuildReport) -> str:
    """Format a failed build report as a JSON payload for ``folio:error``.

    The top-level ``type``/``message``/``file``/``line`` keys describe the
    first failure so the toast has something to show at a glance.

    """
    failures = [failure_payload(f) for f in report.failures[:MAX_REPORTED_FAILURES]]
    first = failures[0] if failures else {"type": "BuildError", "message": "", "file": "", "line": None}
    return json.dumps({
        "type": first["type"],
        "message": first["message"],
        "file": first["file"],
        "line": first["line"],
        "status": report.status,
        "failures": failures,
        "total": len(report.failures),
    })


def render_failure_page(failure: ArtifactFailure) -> str:
    """Render a full HTML error page for an artifact that failed to build."""
    return _ERROR_PAGE.format(
        error_type=html.escape(failure.kind),
        error_message=html.escape(failure.message),
        location=html.escape(_failure_location(failure)),
    )
