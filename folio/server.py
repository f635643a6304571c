"""Development server for folio.

Serves documents straight from the content directory, rendering each one
when it is requested:
- Maps request paths to documents, answering 404 for anything else.
- Serves non-document files (images next to an essay) as they are.
- Optionally watches the content directory; every change bumps a
  generation counter that invalidates the render cache.
- Optionally pushes reload messages to open browser tabs over a websocket.

Key classes:
- DevServer: Binds, serves and stops the development server.
- Response: Status, headers and body computed for one request.
- _DocumentHandler: HTTP request handler delegating to DevServer.respond.
- _ChangeHandler: File system event handler bumping the generation counter.
"""

from __future__ import annotations

import asyncio
import json
import logging
import mimetypes
import threading
from dataclasses import dataclass, field
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from . import __version__
from .content import ContentSource
from .errors import BindError, DecodeError, MarkupError, NotFoundError
from .renderers import RenderedPage, Renderer
from .templates import PageTemplate
from .utils import escape_html, is_internal_path

logger = logging.getLogger(__name__)

# Event types that change file contents; opened/closed events are ignored
# because serving a page opens its source file.
_CHANGE_EVENTS = {"created", "modified", "deleted", "moved"}

RELOAD_SCRIPT_TEMPLATE = """
<script>
(() => {{
  const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
  ws.onmessage = (event) => {{
    const data = JSON.parse(event.data || '{{}}');
    if (data.type === 'reload') location.reload();
  }};
}})();
</script>
"""


@dataclass
class Response:
    """Outcome of one request.

    Attributes:
        status: HTTP status.
        body: Response body.
        content_type: Value of the Content-Type header.
        headers: Extra headers.
    """

    status: HTTPStatus
    body: bytes
    content_type: str = "text/html; charset=utf-8"
    headers: dict[str, str] = field(default_factory=dict)


def _error_page(status: HTTPStatus, detail: str) -> bytes:
    return (
        "<!DOCTYPE html>\n<html><head><meta charset=\"utf-8\">"
        f"<title>{status.value} {status.phrase}</title></head>\n"
        f"<body><h1>{status.value} {status.phrase}</h1>\n"
        f"<p>{escape_html(detail)}</p></body></html>\n"
    ).encode("utf-8")


class _FolioHTTPServer(ThreadingHTTPServer):
    """Thread-per-request HTTP server that refuses to share its port."""

    daemon_threads = True
    allow_reuse_port = False


class _DocumentHandler(BaseHTTPRequestHandler):
    """HTTP request handler that asks the DevServer for every response.

    Attributes:
        dev_server: Server instance, set on a per-server subclass.
    """

    dev_server: DevServer
    server_version = f"folio/{__version__}"
    protocol_version = "HTTP/1.1"

    def do_GET(self):
        self._send(head_only=False)

    def do_HEAD(self):
        self._send(head_only=True)

    def _send(self, head_only: bool) -> None:
        response = self.dev_server.respond(self.path)
        self.send_response(response.status)
        self.send_header("Content-Type", response.content_type)
        self.send_header("Content-Length", str(len(response.body)))
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        for key, value in response.headers.items():
            self.send_header(key, value)
        self.end_headers()
        if not head_only:
            self.wfile.write(response.body)

    def log_message(self, format, *args):
        logger.info("%s %s", self.address_string(), format % args)


class DevServer:
    """Development server rendering documents on request.

    Attributes:
        source: Content source documents are looked up in.
        renderer: Renderer used for every request.
        host: Interface to bind.
        port: HTTP port; updated to the real port after bind() when 0.
        watch: Whether to watch the content directory for changes.
        livereload: Whether to run the live reload websocket server.
        ws_port: Port of the live reload websocket server.
        generation: Counter bumped on every content change.
    """

    def __init__(
        self,
        content_dir: Path,
        host: str = "127.0.0.1",
        port: int = 4000,
        include_drafts: bool = False,
        watch: bool = True,
        livereload: bool = False,
        ws_port: int | None = None,
        site_title: str = "",
    ):
        """Initialize the development server.

        Args:
            content_dir: Directory holding the documents.
            host: Interface to bind.
            port: HTTP port, 0 for any free port.
            include_drafts: Whether draft documents are served.
            watch: Whether to watch for changes.
            livereload: Whether to push reload messages to browsers.
            ws_port: Websocket port, defaults to port + 1.
            site_title: Site title for the page template.

        Raises:
            NotFoundError: If content_dir does not exist.
        """
        self.source = ContentSource(content_dir, include_drafts=include_drafts)
        self.renderer = Renderer(PageTemplate(site_title))
        self.host = host
        self.port = port
        self.watch = watch
        self.livereload = livereload
        self.ws_port = ws_port if ws_port is not None else port + 1
        self.generation = 0
        self._cache: dict[str, tuple[int, RenderedPage]] = {}
        self._httpd: _FolioHTTPServer | None = None
        self._serving = False
        self._observer: Observer | None = None
        self._ws_clients: set = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def include_drafts(self) -> bool:
        return self.source.include_drafts

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"

    @property
    def reload_script(self) -> str:
        return RELOAD_SCRIPT_TEMPLATE.format(ws_port=self.ws_port)

    # Request handling

    def render(self, request_path: str) -> RenderedPage:
        """Render the document served at a request path.

        While watching, pages are cached per document URL together with the
        generation they were rendered at; a page from an older generation
        is rendered again. A change that lands during a render leaves the
        cached page one generation behind, which the next request repairs.

        Raises:
            NotFoundError: If no visible document maps to the path.
            DecodeError: If the document is not valid UTF-8.
        """
        generation = self.generation
        url = self.source.url_deriver.normalize(request_path)
        if self.watch:
            cached = self._cache.get(url)
            if cached is not None and cached[0] == generation:
                return cached[1]
        page = self.renderer.render(self.source.find(request_path))
        if self.watch:
            self._cache[url] = (generation, page)
        return page

    def respond(self, request_path: str) -> Response:
        """Compute the response for a GET or HEAD request."""
        try:
            page = self.render(request_path)
        except NotFoundError as exc:
            return self._respond_static(request_path, exc)
        except DecodeError as exc:
            logger.error("Cannot serve %s: %s", request_path, exc)
            return Response(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                _error_page(HTTPStatus.INTERNAL_SERVER_ERROR, "The document could not be decoded."),
            )
        except MarkupError as exc:
            logger.error("Cannot render %s: %s", request_path, exc)
            return Response(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                _error_page(HTTPStatus.INTERNAL_SERVER_ERROR, "The document could not be rendered."),
            )
        html = page.html
        if self.livereload:
            if "</body>" in html:
                html = html.replace("</body>", f"{self.reload_script}</body>")
            else:
                html += self.reload_script
        return Response(HTTPStatus.OK, html.encode("utf-8"))

    def _respond_static(self, request_path: str, not_found: NotFoundError) -> Response:
        try:
            path = self.source.static_file(request_path)
        except NotFoundError:
            logger.debug("404 %s: %s", request_path, not_found)
            return Response(
                HTTPStatus.NOT_FOUND,
                _error_page(HTTPStatus.NOT_FOUND, f"Nothing is published at {request_path}."),
            )
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return Response(HTTPStatus.OK, path.read_bytes(), content_type)

    # Lifecycle

    def bind(self) -> None:
        """Open the listening socket.

        Raises:
            BindError: If the address is unavailable (e.g. port in use).
        """
        handler_cls = type("_BoundDocumentHandler", (_DocumentHandler,), {"dev_server": self})
        try:
            self._httpd = _FolioHTTPServer((self.host, self.port), handler_cls)
        except OSError as exc:
            raise BindError(self.host, self.port, exc.strerror or str(exc)) from exc
        self.port = self._httpd.server_address[1]
        logger.info("Listening on %s", self.url)

    def serve_in_background(self) -> threading.Thread:
        """Serve requests on a daemon thread; bind() must have been called."""
        if self._httpd is None:
            raise RuntimeError("bind() must be called before serving")
        self._serving = True
        thread = threading.Thread(target=self._serve, name="folio-http", daemon=True)
        thread.start()
        return thread

    def _serve(self) -> None:
        if self._httpd is None:
            raise RuntimeError("bind() must be called before serving")
        self._serving = True
        self._httpd.serve_forever()

    def start(self) -> None:  # pragma: no cover - integration path
        """Bind (unless already bound) and serve until interrupted.

        Raises:
            BindError: If the listening socket cannot be opened.
        """
        if self._httpd is None:
            self.bind()
        if self.watch:
            self._start_watcher()
        if self.livereload:
            threading.Thread(target=self._start_ws, name="folio-ws", daemon=True).start()
        try:
            self._serve()
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self.stop()

    def stop(self) -> None:
        """Close the listening socket and stop the watcher."""
        if self._httpd is not None:
            if self._serving:
                self._httpd.shutdown()
                self._serving = False
            self._httpd.server_close()
            self._httpd = None
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._loop.stop)

    # Watching

    def _start_watcher(self) -> None:
        observer = Observer()
        observer.schedule(_ChangeHandler(self), str(self.source.root), recursive=True)
        observer.start()
        self._observer = observer

    def invalidate(self) -> None:
        """Mark every cached page stale and ask browsers to reload."""
        self.generation += 1
        logger.debug("Content changed; generation %d", self.generation)
        if self.livereload and self._loop is not None:
            self._broadcast_reload()

    # Live reload

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            logger.warning("Live reload server failed to start (port %s): %s", self.ws_port, exc)
        except RuntimeError:
            # Loop stopped by stop().
            logger.debug("Live reload server stopped")

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, self.host, self.ws_port):
            await asyncio.Future()  # Run forever

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _broadcast_reload(self):
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str):
        stale = set()
        for ws in list(self._ws_clients):
            try:
                await ws.send(message)
            except websockets.ConnectionClosed:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory or event.event_type not in _CHANGE_EVENTS:
            return
        root = self.server.source.root
        paths = [event.src_path, getattr(event, "dest_path", "")]
        for raw in paths:
            if not raw:
                continue
            path = Path(raw.decode() if isinstance(raw, bytes) else raw)
            try:
                rel = path.relative_to(root)
            except ValueError:
                continue
            if not is_internal_path(rel):
                self.server.invalidate()
                return
