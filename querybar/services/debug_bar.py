import logging
from typing import Callable, Protocol

from fastapi import Request
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import MutableHeaders
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from querybar.services.collector import QueryCollector

logger = logging.getLogger(__name__)


class BarPanel(Protocol):
    def render_tab(self) -> str: ...

    def render_panel(self) -> str: ...


class DebugBar:
    """Holds the panels of one request and renders them as a single fragment."""

    def __init__(self):
        self.panels: list[BarPanel] = []

    def add_panel(self, panel: BarPanel) -> None:
        self.panels.append(panel)

    def _render_panel(self, idx: int, panel: BarPanel) -> str:
        try:
            tab = panel.render_tab()
            body = panel.render_panel()
        except Exception:
            # A broken panel must not take the page down
            logger.exception("Debug bar panel %s failed to render", type(panel).__name__)
            return (
                f'<div class="querybar-item querybar-error" id="querybar-panel-{idx}">'
                f"{type(panel).__name__}: rendering failed</div>"
            )
        return (
            f'<div class="querybar-item" id="querybar-panel-{idx}">'
            f'<details><summary>{tab}</summary>{body}</details>'
            "</div>"
        )

    def render(self) -> str:
        items = "".join(self._render_panel(idx, panel) for idx, panel in enumerate(self.panels))
        return f'<div id="querybar">{items}</div>'


def inject_bar(html: str, bar_html: str) -> str:
    """Inserts the bar before the last </body>, or appends it."""
    idx = html.lower().rfind("</body>")
    if idx == -1:
        return html + bar_html
    return html[:idx] + bar_html + html[idx:]


class DebugBarMiddleware(BaseHTTPMiddleware):
    """
    Gives every request its own connection, debug bar and query panel.

    Routes get them from ``request.state.db_connection``,
    ``request.state.debug_bar`` and ``request.state.query_panel``. The bar is
    added to HTML responses only.
    """

    def __init__(
        self,
        app,
        engine: Engine,
        library_paths: tuple[str, ...] = (),
        bar_factory: Callable[[], DebugBar] = DebugBar,
        enabled: bool = True,
    ):
        super().__init__(app)
        self.engine = engine
        self.library_paths = library_paths
        self.bar_factory = bar_factory
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next):
        if not self.enabled:
            return await call_next(request)

        # Pool checkout may block
        connection = await run_in_threadpool(self.engine.connect)
        bar = self.bar_factory()
        panel = QueryCollector.register(connection, self.library_paths, bar=bar)
        request.state.db_connection = connection
        request.state.debug_bar = bar
        request.state.query_panel = panel

        try:
            response = await call_next(request)
            content_type = response.headers.get("content-type", "")
            if not content_type.startswith("text/html"):
                return response
            return await self._with_bar(response, bar)
        finally:
            logger.debug(
                "%s %s issued %d queries",
                request.method,
                request.url.path,
                panel.query_count,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "query_count": panel.query_count,
                },
            )
            if panel.connection is not None:
                panel.connection.close()
            await run_in_threadpool(connection.close)

    async def _with_bar(self, response: Response, bar: DebugBar) -> Response:
        charset = getattr(response, "charset", None) or "utf-8"
        body = b""
        async for chunk in response.body_iterator:
            body += chunk if isinstance(chunk, bytes) else chunk.encode(charset)

        html = inject_bar(body.decode(charset, errors="replace"), bar.render())
        content = html.encode(charset)

        headers = MutableHeaders(raw=[(k, v) for k, v in response.raw_headers if k.lower() != b"content-length"])
        headers["content-length"] = str(len(content))
        return Response(
            content=content,
            status_code=response.status_code,
            headers=headers,
            background=getattr(response, "background", None),
        )
