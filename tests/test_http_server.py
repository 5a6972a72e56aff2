import socket
from email.message import Message
from http.client import parse_headers
from io import BytesIO
from pathlib import Path

from staticServer import ServerConfig, StaticServer


def _http_get(host: str, port: int, path: str, method: str = "GET", timeout: float = 2.0) -> bytes:
    s = socket.create_connection((host, port), timeout=timeout)
    try:
        s.sendall(f"{method} {path} HTTP/1.1\r\nHost: {host}\r\nConnection: close\r\n\r\n".encode("utf-8"))
        s.settimeout(timeout)
        data = b""
        while True:
            part = s.recv(4096)
            if not part:
                break
            data += part
        return data
    finally:
        s.close()


def _split(resp: bytes) -> tuple[bytes, bytes]:
    head, _, body = resp.partition(b"\r\n\r\n")
    return head, body


def _headers(head: bytes) -> Message:
    """Case-insensitive view of the header block (status line dropped)."""
    _, _, fields = head.partition(b"\r\n")
    return parse_headers(BytesIO(fields + b"\r\n\r\n"))


def _server(root: Path, **kwargs) -> StaticServer:
    cfg = ServerConfig(host="127.0.0.1", port=0, root_dir=str(root), **kwargs).validate()
    return StaticServer(cfg)


def test_http_serves_index_html(site: Path):
    with _server(site) as server:
        server.start()
        resp = _http_get("127.0.0.1", server.sock_port, "/index.html")
    head, body = _split(resp)
    assert head.startswith(b"HTTP/1.0 200") or head.startswith(b"HTTP/1.1 200")
    assert _headers(head)["content-type"] == "text/html"
    assert body == (site / "index.html").read_bytes()


def test_http_serves_binary_identical(site: Path):
    payload = bytes(range(256)) * 64
    (site / "assets").mkdir()
    (site / "assets" / "blob.bin").write_bytes(payload)
    with _server(site) as server:
        server.start()
        resp = _http_get("127.0.0.1", server.sock_port, "/assets/blob.bin")
    head, body = _split(resp)
    assert b" 200 " in head.split(b"\r\n")[0]
    assert body == payload


def test_http_404_for_missing(site: Path):
    with _server(site) as server:
        server.start()
        resp = _http_get("127.0.0.1", server.sock_port, "/missing.html")
    assert b" 404 " in resp.split(b"\r\n")[0]


def test_http_block_path_traversal(tmp_path: Path, site: Path):
    (tmp_path / "outside.txt").write_bytes(b"secret")
    with _server(site) as server:
        server.start()
        resp = _http_get("127.0.0.1", server.sock_port, "/../outside.txt")
    assert b"200 OK" not in resp
    assert b"secret" not in resp


def test_http_root_serves_index(site: Path):
    with _server(site) as server:
        server.start()
        resp = _http_get("127.0.0.1", server.sock_port, "/")
    assert b"200 OK" in resp
    assert b"<h1>home</h1>" in resp


def test_http_directory_redirects_to_slash(site: Path):
    (site / "docs").mkdir()
    (site / "docs" / "index.html").write_text("docs")
    with _server(site) as server:
        server.start()
        resp = _http_get("127.0.0.1", server.sock_port, "/docs")
    head, _ = _split(resp)
    assert b" 301 " in head.split(b"\r\n")[0]
    assert _headers(head)["location"] == "/docs/"


def test_http_directory_without_index_is_404(site: Path):
    (site / "empty").mkdir()
    (site / "empty" / "file.txt").write_text("x")
    with _server(site) as server:
        server.start()
        resp = _http_get("127.0.0.1", server.sock_port, "/empty/")
    assert b" 404 " in resp.split(b"\r\n")[0]
    assert b"file.txt" not in resp


def test_http_directory_listing_when_browse(site: Path):
    (site / "empty").mkdir()
    (site / "empty" / "file.txt").write_text("x")
    with _server(site, browse=True) as server:
        server.start()
        resp = _http_get("127.0.0.1", server.sock_port, "/empty/")
    assert b"200 OK" in resp
    assert b"file.txt" in resp


def test_http_cache_control_header(site: Path):
    with _server(site, max_age=3600) as server:
        server.start()
        ok = _http_get("127.0.0.1", server.sock_port, "/index.html")
        missing = _http_get("127.0.0.1", server.sock_port, "/missing.html")
    assert _headers(_split(ok)[0])["cache-control"] == "public, max-age=3600"
    assert "cache-control" not in _headers(_split(missing)[0])


def test_http_no_cache_control_by_default(site: Path):
    with _server(site) as server:
        server.start()
        resp = _http_get("127.0.0.1", server.sock_port, "/index.html")
    assert "cache-control" not in _headers(_split(resp)[0])


def test_http_head_has_no_body(site: Path):
    with _server(site) as server:
        server.start()
        resp = _http_get("127.0.0.1", server.sock_port, "/index.html", method="HEAD")
    head, body = _split(resp)
    assert b"200 OK" in head
    assert body == b""


def test_http_unsupported_method(site: Path):
    with _server(site) as server:
        server.start()
        resp = _http_get("127.0.0.1", server.sock_port, "/index.html", method="DELETE")
    assert b" 501 " in resp.split(b"\r\n")[0]
