import asyncio
import http.client
import urllib.request
from http import HTTPStatus
from pathlib import Path
from urllib.error import HTTPError

import pytest
import websockets

from folio.errors import BindError, NotFoundError
from folio.server import DevServer, _ChangeHandler


class DummyEvent:
    def __init__(self, path, event_type="modified", is_directory=False, dest_path=""):
        self.src_path = str(path)
        self.dest_path = str(dest_path) if dest_path else ""
        self.event_type = event_type
        self.is_directory = is_directory


def create_site(tmp_path: Path) -> Path:
    site = tmp_path / "site"
    site.mkdir(parents=True)
    (site / "hello.md").write_text("# Hi\n", encoding="utf-8")
    (site / "secret.md").write_text("---\ndraft: true\n---\n# Secret\n", encoding="utf-8")
    (site / "logo.png").write_bytes(b"\x89PNG")
    return site


@pytest.fixture
def running_server(tmp_path):
    server = DevServer(create_site(tmp_path), port=0, watch=False)
    server.bind()
    server.serve_in_background()
    yield server
    server.stop()


def fetch(server: DevServer, path: str):
    with urllib.request.urlopen(f"http://127.0.0.1:{server.port}{path}", timeout=5) as resp:
        return resp.status, resp.read().decode("utf-8")


def test_serves_document_over_http(running_server):
    status, body = fetch(running_server, "/hello")
    assert status == 200
    assert '<h1 id="hi">Hi</h1>' in body


def test_missing_path_is_404_over_http(running_server):
    with pytest.raises(HTTPError) as exc:
        fetch(running_server, "/missing")
    assert exc.value.code == 404


def test_head_request(running_server):
    conn = http.client.HTTPConnection("127.0.0.1", running_server.port, timeout=5)
    try:
        conn.request("HEAD", "/hello")
        resp = conn.getresponse()
        assert resp.status == 200
        assert int(resp.getheader("Content-Length")) > 0
        assert resp.read() == b""
    finally:
        conn.close()


def test_second_server_on_same_port_fails(running_server, tmp_path):
    other = DevServer(running_server.source.root, port=running_server.port, watch=False)
    with pytest.raises(BindError) as exc:
        other.bind()
    assert f":{running_server.port}" in str(exc.value)


def test_defaults(tmp_path):
    server = DevServer(create_site(tmp_path))
    assert server.host == "127.0.0.1"
    assert server.port == 4000
    assert server.ws_port == 4001
    assert server.include_drafts is False
    assert server.url == "http://127.0.0.1:4000/"


def test_missing_content_directory(tmp_path):
    with pytest.raises(NotFoundError):
        DevServer(tmp_path / "missing")


def test_respond_document_and_404(tmp_path):
    server = DevServer(create_site(tmp_path), watch=False)
    ok = server.respond("/hello")
    assert ok.status == HTTPStatus.OK
    assert ok.content_type == "text/html; charset=utf-8"
    assert b'<h1 id="hi">Hi</h1>' in ok.body

    missing = server.respond("/nope")
    assert missing.status == HTTPStatus.NOT_FOUND
    assert b"/nope" in missing.body


def test_drafts_toggle(tmp_path):
    site = create_site(tmp_path)
    assert DevServer(site, watch=False).respond("/secret").status == HTTPStatus.NOT_FOUND
    shown = DevServer(site, watch=False, include_drafts=True).respond("/secret")
    assert shown.status == HTTPStatus.OK
    assert b"Secret" in shown.body


def test_static_file(tmp_path):
    response = DevServer(create_site(tmp_path), watch=False).respond("/logo.png")
    assert response.status == HTTPStatus.OK
    assert response.content_type == "image/png"
    assert response.body == b"\x89PNG"


def test_undecodable_document_is_500(tmp_path, caplog):
    site = create_site(tmp_path)
    (site / "bad.md").write_bytes(b"# Bad \xff\n")
    server = DevServer(site, watch=False)
    response = server.respond("/bad")
    assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
    assert "Cannot serve /bad" in caplog.text
    # Other documents are unaffected.
    assert server.respond("/hello").status == HTTPStatus.OK


def test_malformed_markup_still_served(tmp_path):
    site = create_site(tmp_path)
    (site / "broken.md").write_text("# Broken\n\n```\nnever closed\n", encoding="utf-8")
    response = DevServer(site, watch=False).respond("/broken")
    assert response.status == HTTPStatus.OK
    assert b"never closed" in response.body


def test_generation_invalidates_cache(tmp_path):
    site = create_site(tmp_path)
    server = DevServer(site, watch=True)
    first = server.render("/hello")
    (site / "hello.md").write_text("# Bye\n", encoding="utf-8")
    assert server.render("/hello") is first

    server.invalidate()
    assert server.generation == 1
    assert '<h1 id="bye">Bye</h1>' in server.render("/hello").html


def test_no_cache_without_watch(tmp_path):
    site = create_site(tmp_path)
    server = DevServer(site, watch=False)
    server.render("/hello")
    (site / "hello.md").write_text("# Bye\n", encoding="utf-8")
    assert "Bye" in server.render("/hello").html


def test_change_handler_filters_events(tmp_path):
    server = DevServer(create_site(tmp_path), watch=False)
    root = server.source.root
    handler = _ChangeHandler(server)

    handler.on_any_event(DummyEvent(root / "_site" / "index.html"))
    handler.on_any_event(DummyEvent(root / ".hello.md.swp"))
    handler.on_any_event(DummyEvent(root / "hello.md", event_type="opened"))
    handler.on_any_event(DummyEvent(root / "hello.md", event_type="closed"))
    handler.on_any_event(DummyEvent(root / "posts", event_type="created", is_directory=True))
    handler.on_any_event(DummyEvent(tmp_path / "elsewhere.md"))
    assert server.generation == 0

    handler.on_any_event(DummyEvent(root / "hello.md"))
    assert server.generation == 1

    handler.on_any_event(
        DummyEvent(root / ".tmp-hello.md", event_type="moved", dest_path=root / "hello.md")
    )
    assert server.generation == 2


def test_livereload_script_injected(tmp_path):
    server = DevServer(create_site(tmp_path), watch=False, livereload=True, ws_port=4567)
    body = server.respond("/hello").body.decode("utf-8")
    assert ":4567" in body
    assert body.index("new WebSocket") < body.index("</body>")

    plain = DevServer(create_site(tmp_path / "other"), watch=False)
    assert b"WebSocket" not in plain.respond("/hello").body


def test_async_broadcast_tracks_stale_clients(tmp_path):
    server = DevServer(create_site(tmp_path), watch=False)

    class GoodWS:
        def __init__(self):
            self.messages = []

        async def send(self, msg):
            self.messages.append(msg)

    class ClosedWS:
        async def send(self, msg):
            raise websockets.ConnectionClosed(None, None)

    good = GoodWS()
    closed = ClosedWS()
    server._ws_clients = {good, closed}
    asyncio.run(server._async_broadcast("reload"))
    assert good.messages == ["reload"]
    assert closed not in server._ws_clients
    assert good in server._ws_clients


def test_stop_without_serving(tmp_path):
    server = DevServer(create_site(tmp_path), port=0, watch=False)
    server.bind()
    server.stop()
    # The port is released and can be bound again.
    again = DevServer(server.source.root, port=server.port, watch=False)
    again.bind()
    again.stop()


def test_null_byte_path_is_404(tmp_path):
    server = DevServer(create_site(tmp_path), watch=False)
    assert server.respond("/%00").status == HTTPStatus.NOT_FOUND


def test_null_byte_path_is_404_over_http(running_server):
    with pytest.raises(HTTPError) as exc:
        fetch(running_server, "/%00")
    assert exc.value.code == 404
    # The server keeps answering afterwards.
    assert fetch(running_server, "/hello")[0] == 200


def test_cache_keyed_by_document_url(tmp_path):
    server = DevServer(create_site(tmp_path), watch=True)
    first = server.render("/hello?a=1")
    assert server.render("/hello?a=2") is first
    assert server.render("/hello/") is first
    assert server.render("/hello.html") is first
    assert len(server._cache) == 1


def test_async_broadcast_tolerates_disconnects(tmp_path):
    server = DevServer(create_site(tmp_path), watch=False)

    class DisconnectingWS:
        def __init__(self):
            self.messages = []

        async def send(self, msg):
            self.messages.append(msg)
            server._ws_clients.discard(self)

    clients = [DisconnectingWS() for _ in range(3)]
    server._ws_clients = set(clients)
    asyncio.run(server._async_broadcast("reload"))
    assert all(client.messages == ["reload"] for client in clients)
    assert server._ws_clients == set()
