"""Live reload — script injection for dev mode.

Injects a small script into served HTML pages that connects the browser
to Folio's notification endpoint. Only active in dev mode; ``folio build``
output never contains it.

The injected script:
1. Connects with the epoch the page was served at (``since``)
2. Reloads the page on ``folio:reload``
3. Shows an error toast on ``folio:error`` and keeps the page as is

``live_reload_middleware`` stamps the script into every HTML response,
including the static pages served by Chirp's ``StaticFiles``.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from chirp.http.request import Request
    from chirp.middleware.protocol import AnyResponse, Next

    from folio.reactive.session import BuildSession

EVENTS_ENDPOINT = "/__folio/events"

# The script injected before </body> in dev mode. No dependencies, just
# native EventSource.
_LIVE_RELOAD_SCRIPT = """\
<script data-folio-live-reload>
(function() {
  var since = %(epoch)d;
  var src = new EventSource('%(endpoint)s?since=' + since);
  src.addEventListener('folio:reload', function() {
    src.close();
    location.reload();
  });
  src.addEventListener('folio:error', function(e) {
    try { var d = JSON.parse(e.data); _showError(d); } catch(x) {}
  });
  // No onerror handler: EventSource reconnects with the same since, and
  // the server answers a stale since with an immediate reload.
  function _showError(d) {
    _dismissError();
    var el = document.createElement('div');
    el.id = 'folio-error-toast';
    el.style.cssText = 'position:fixed;bottom:1rem;right:1rem;max-width:480px;'
      + 'background:#2d1010;border:1px solid #e74c3c;border-radius:8px;'
      + 'padding:1rem 1.25rem;font-family:ui-monospace,monospace;font-size:0.85rem;'
      + 'color:#f0a0a0;z-index:99999;box-shadow:0 4px 24px rgba(0,0,0,0.4);'
      + 'line-height:1.5;word-break:break-word';
    var title = document.createElement('strong');
    title.style.cssText = 'display:block;color:#e74c3c;margin-bottom:0.25rem';
    title.textContent = d.type || 'Build error';
    var msg = document.createElement('div');
    msg.textContent = d.message || '';
    var loc = document.createElement('div');
    loc.style.cssText = 'margin-top:0.5rem;color:#9e9e9e;font-size:0.75rem';
    loc.textContent = (d.file || '') + (d.line ? ':' + d.line : '')
      + (d.total > 1 ? ' (+' + (d.total - 1) + ' more)' : '');
    var close = document.createElement('button');
    close.textContent = 'Dismiss';
    close.style.cssText = 'margin-top:0.75rem;padding:0.25rem 0.75rem;'
      + 'background:#3a1515;border:1px solid #e74c3c;border-radius:4px;'
      + 'color:#e0e0e0;cursor:pointer;font-family:inherit;font-size:0.8rem';
    close.onclick = _dismissError;
    el.appendChild(title);
    el.appendChild(msg);
    el.appendChild(loc);
    el.appendChild(close);
    document.body.appendChild(el);
  }
  function _dismissError() {
    var old = document.getElementById('folio-error-toast');
    if (old) old.remove();
  }
})();
</script>
"""


def live_reload_script(epoch: int) -> str:
    """Return the script tag for a page served at *epoch*."""
    return _LIVE_RELOAD_SCRIPT % {"epoch": epoch, "endpoint": EVENTS_ENDPOINT}


def inject_live_reload(body: str | bytes, epoch: int) -> str:
    """Inject the live-reload script into an HTML document.

    Injects before ``</body>`` (or ``</html>``), otherwise appends.

    """
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")

    script = live_reload_script(epoch)
    if "</body>" in body:
        return body.replace("</body>", script + "</body>", 1)
    if "</html>" in body:
        return body.replace("</html>", script + "</html>", 1)
    return body + script


def live_reload_middleware(
    session: BuildSession,
) -> Callable[[Request, Next], Awaitable[AnyResponse]]:
    """Return Chirp middleware that injects the live-reload script.

    Static HTML pages arrive as ``FileResponse`` and are read into a
    buffered ``Response`` first. HEAD requests, non-HTML files and
    streams pass through unchanged.

    """

    async def middleware(request: Request, next: Next) -> AnyResponse:
        from chirp.errors import NotFound
        from chirp.http.response import FileResponse, Response

        # Read the epoch before the file: the page is then at least as new
        # as the build that produced this epoch.
        epoch = session.epoch
        response = await next(request)

        if request.method == "HEAD":
            return response

        if isinstance(response, FileResponse):
            if not response.resolved_content_type.startswith("text/html"):
                return response
            try:
                raw = await asyncio.to_thread(response.path.read_bytes)
            except FileNotFoundError:
                # Removed by a build between the lookup and the read.
                raise NotFound() from None
            response = Response(
                body=raw,
                status=response.status,
                content_type="text/html; charset=utf-8",
                headers=response.headers,
                cookies=response.cookies,
            )

        if not isinstance(response, Response) or "text/html" not in response.content_type:
            return response
        if 300 <= response.status < 400:
            return response

        return replace(response, body=inject_live_reload(response.body, epoch))

    return middleware
