"""Output router — serves the built output tree through Chirp.

The dev server never renders anything itself. Chirp's ``StaticFiles``
serves whatever the orchestrator last committed to the output root, so a
request during a build sees either the old or the new file (writes are
atomic renames), never a partial one.

Middleware, outermost first:
    live reload  -> stamps the served epoch into HTML responses
    StaticFiles  -> ``/`` and ``/a/`` resolve to ``index.html``, ``/a``
                    redirects to ``/a/``
    failure page -> an artifact that failed and was never built answers
                    500 with the error instead of a bare 404

``/__folio/`` paths are reserved for the notification and status
endpoints.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from folio.observability.events import event_payload
from folio.reactive.error_overlay import failure_payload, render_failure_page
from folio.reactive.hmr import EVENTS_ENDPOINT, live_reload_middleware

if TYPE_CHECKING:
    from chirp import App, Request
    from chirp.middleware.protocol import AnyResponse, Next

    from folio.config import FolioConfig
    from folio.export.orchestrator import ArtifactFailure
    from folio.observability.collector import BuildCollector
    from folio.reactive.broadcaster import Broadcaster
    from folio.reactive.session import BuildSession


STATUS_ENDPOINT = "/__folio/status"
RESERVED_PREFIX = "/__folio/"
RECENT_EVENTS = 20

_NO_STORE = ("Cache-Control", "no-store")


def _artifact_urls(artifact: str) -> tuple[str, ...]:
    """Request paths that StaticFiles would resolve to *artifact*."""
    url = "/" + artifact
    if artifact == "index.html":
        return ("/", url)
    if url.endswith("/index.html"):
        directory = url[: -len("index.html")]
        return (directory, directory.rstrip("/"), url)
    return (url,)


class OutputRouter:
    """Serves output files and the ``/__folio`` endpoints.

    Args:
        app: Chirp App to register on (must not yet be frozen).
        config: Site configuration (for the output root).
        session: Build session, read for the epoch and the last report.
        broadcaster: Notification broadcaster.
        collector: Optional event collector (for the status endpoint).

    The output root is fixed for the life of the app; a config reload
    keeps the output directory the server started with.

    """

    def __init__(
        self,
        app: App,
        config: FolioConfig,
        session: BuildSession,
        broadcaster: Broadcaster,
        collector: BuildCollector | None = None,
    ) -> None:
        self._app = app
        self._config = config
        self._session = session
        self._broadcaster = broadcaster
        self._collector = collector

    def register(self) -> None:
        """Register both endpoints and the serving middleware."""
        from chirp.middleware import StaticFiles

        self.register_events_endpoint()
        self.register_status_endpoint()
        self._app.add_middleware(live_reload_middleware(self._session))
        self._app.add_middleware(
            StaticFiles(
                directory=self._config.output_path,
                prefix="/",
                cache_control="no-store",
            )
        )
        self._app.add_middleware(self.failure_middleware)

    def register_events_endpoint(self) -> None:
        """Register the ``/__folio/events`` SSE endpoint.

        Clients pass ``since`` (the epoch their page was served at). The
        route returns a Chirp ``EventStream`` fed by the broadcaster.

        """
        from chirp import EventStream

        broadcaster = self._broadcaster

        async def events_handler(request: Request) -> Any:
            since_raw = request.query.get("since")
            try:
                since = int(since_raw) if since_raw is not None else None
            except ValueError:
                since = None
            sub = broadcaster.subscribe(since)
            return EventStream(broadcaster.client_events(sub))

        events_handler.__name__ = "folio_events"
        events_handler.__qualname__ = "OutputRouter.folio_events"

        self._app.route(EVENTS_ENDPOINT, name="folio:events")(events_handler)

    def register_status_endpoint(self) -> None:
        """Register the ``/__folio/status`` JSON endpoint.

        Returns the session state, the last build report, event log
        statistics and the most recent events.

        """
        session = self._session
        broadcaster = self._broadcaster
        collector = self._collector

        async def status_handler(request: Request) -> Any:
            from chirp.http.response import Response

            snap = session.snapshot()
            report = snap.report
            payload: dict[str, Any] = {
                "epoch": snap.epoch,
                "phase": snap.phase,
                "generation": snap.generation,
                "subscribers": broadcaster.subscriber_count,
                "report": None,
            }
            if report is not None:
                payload["report"] = {
                    "kind": report.kind,
                    "status": report.status,
                    "rebuilt": list(report.rebuilt),
                    "unchanged": len(report.unchanged),
                    "removed": list(report.removed),
                    "failures": [failure_payload(f) for f in report.failures],
                    "duration_ms": round(report.duration_ms, 2),
                }
            if collector is not None:
                payload["event_log"] = {
                    **collector.log.stats(),
                    "recent": [event_payload(e) for e in collector.log.recent(RECENT_EVENTS)],
                }

            return Response(
                body=json.dumps(payload, indent=2, default=str),
                status=200,
                content_type="application/json",
                headers=(_NO_STORE,),
            )

        status_handler.__name__ = "folio_status"
        status_handler.__qualname__ = "OutputRouter.folio_status"

        self._app.route(STATUS_ENDPOINT, name="folio:status")(status_handler)

    async def failure_middleware(self, request: Request, next: Next) -> AnyResponse:
        """Answer paths StaticFiles passed on whose artifact failed to build.

        Anything else goes on to the app, which 404s for unrouted paths.

        """
        if request.method not in ("GET", "HEAD") or request.path.startswith(RESERVED_PREFIX):
            return await next(request)

        failure = self._failure_for(request.path)
        if failure is None:
            return await next(request)

        from chirp.http.response import Response

        return Response(
            body=render_failure_page(failure),
            status=500,
            content_type="text/html; charset=utf-8",
            headers=(_NO_STORE,),
        )

    def _failure_for(self, path: str) -> ArtifactFailure | None:
        report = self._session.snapshot().report
        if report is None:
            return None
        for failure in report.failures:
            if failure.artifact and path in _artifact_urls(failure.artifact):
                return failure
        return None
