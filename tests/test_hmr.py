"""Tests for folio.reactive.hmr — live-reload script injection."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
from chirp.errors import NotFound
from chirp.http.response import FileResponse, Response

from folio.export.orchestrator import BuildReport
from folio.reactive.hmr import (
    EVENTS_ENDPOINT,
    inject_live_reload,
    live_reload_middleware,
    live_reload_script,
)
from folio.reactive.session import BuildSession


def _respond(response: object):
    async def next(request: object) -> object:
        return response

    return next


class TestLiveReloadScript:
    def test_carries_epoch_and_endpoint(self) -> None:
        script = live_reload_script(7)
        assert "var since = 7;" in script
        assert EVENTS_ENDPOINT in script
        assert "data-folio-live-reload" in script

    def test_listens_for_reload_and_error(self) -> None:
        script = live_reload_script(0)
        assert "folio:reload" in script
        assert "folio:error" in script
        assert "folio-error-toast" in script

    def test_endpoint_is_reserved(self) -> None:
        assert EVENTS_ENDPOINT == "/__folio/events"


class TestInjectLiveReload:
    def test_before_closing_body(self) -> None:
        html = inject_live_reload("<html><body><p>x</p></body></html>", 3)
        assert html.index("data-folio-live-reload") < html.index("</body>")
        assert html.endswith("</body></html>")

    def test_only_first_body_tag(self) -> None:
        html = inject_live_reload("<body></body><pre>&lt;/body&gt;</pre></body>", 0)
        assert html.count("data-folio-live-reload") == 1

    def test_before_closing_html_without_body(self) -> None:
        html = inject_live_reload("<html><p>x</p></html>", 1)
        assert html.index("data-folio-live-reload") < html.index("</html>")

    def test_appends_to_fragment(self) -> None:
        html = inject_live_reload("<p>fragment</p>", 1)
        assert html.startswith("<p>fragment</p>")
        assert "data-folio-live-reload" in html

    def test_accepts_bytes(self) -> None:
        html = inject_live_reload("<body>é</body>".encode(), 2)
        assert isinstance(html, str)
        assert "é" in html
        assert "var since = 2;" in html


class TestLiveReloadMiddleware:
    """live_reload_middleware — wraps StaticFiles and handler responses."""

    @pytest.mark.asyncio
    async def test_static_html_is_buffered_and_injected(self, tmp_path: Path) -> None:
        page = tmp_path / "index.html"
        page.write_text("<html><body>Hi</body></html>")
        served = FileResponse(path=page, content_type="text/html").with_header("Cache-Control", "no-store")

        middleware = live_reload_middleware(BuildSession())
        response = await middleware(SimpleNamespace(method="GET"), _respond(served))

        assert isinstance(response, Response)
        assert "Hi" in response.body
        assert "var since = 0;" in response.body
        assert response.header("Cache-Control") == "no-store"
        assert page.read_text() == "<html><body>Hi</body></html>"

    @pytest.mark.asyncio
    async def test_epoch_read_before_the_response(self) -> None:
        session = BuildSession()

        async def next(request: object) -> Response:
            await session.complete(BuildReport(kind="incremental", status="succeeded", rebuilt=("index.html",)))
            return Response(body="<body></body>")

        response = await live_reload_middleware(session)(SimpleNamespace(method="GET"), next)
        assert "var since = 0;" in response.body
        assert session.epoch == 1

    @pytest.mark.asyncio
    async def test_non_html_file_streams_unchanged(self, tmp_path: Path) -> None:
        data = tmp_path / "search.json"
        data.write_text("{}")
        served = FileResponse(path=data, content_type="application/json")
        response = await live_reload_middleware(BuildSession())(SimpleNamespace(method="GET"), _respond(served))
        assert response is served

    @pytest.mark.asyncio
    async def test_head_passes_through(self, tmp_path: Path) -> None:
        page = tmp_path / "index.html"
        page.write_text("<body></body>")
        served = FileResponse(path=page, content_type="text/html")
        response = await live_reload_middleware(BuildSession())(SimpleNamespace(method="HEAD"), _respond(served))
        assert response is served

    @pytest.mark.asyncio
    async def test_file_removed_before_read_is_not_found(self, tmp_path: Path) -> None:
        served = FileResponse(path=tmp_path / "gone.html", content_type="text/html")
        with pytest.raises(NotFound):
            await live_reload_middleware(BuildSession())(SimpleNamespace(method="GET"), _respond(served))

    @pytest.mark.asyncio
    async def test_redirect_untouched(self) -> None:
        redirect = Response(body="", status=301).with_header("Location", "/page/")
        response = await live_reload_middleware(BuildSession())(SimpleNamespace(method="GET"), _respond(redirect))
        assert response is redirect

    @pytest.mark.asyncio
    async def test_json_response_untouched(self) -> None:
        status = Response(body="{}", content_type="application/json")
        response = await live_reload_middleware(BuildSession())(SimpleNamespace(method="GET"), _respond(status))
        assert response is status
