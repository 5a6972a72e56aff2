from __future__ import annotations

import json
import logging
import ssl
import sys
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Optional

LOG = logging.getLogger(__name__)
ACCESS_LOG = logging.getLogger("staticServer.access")

LOG_FORMATS = ("plain", "json")


class AccessLogMixin:
    """
    Request-logging middleware for `BaseHTTPRequestHandler` subclasses.

    Emits exactly one entry on the access logger per request, after the
    wrapped handler has written its response, whatever the status. The
    stdlib's own per-request lines are demoted to DEBUG.
    """

    access_log: logging.Logger = ACCESS_LOG
    log_format: str = "plain"

    def handle_one_request(self) -> None:
        self._access_started = time.perf_counter()
        self._access_status: Optional[int] = None
        self._access_size: Optional[int] = None
        # stale values from a previous keep-alive request
        self.command = None
        self.path = None
        try:
            super().handle_one_request()  # type: ignore[misc]
        finally:
            if self._access_status is not None:
                self._log_access()

    def log_request(self, code: Any = "-", size: Any = "-") -> None:
        try:
            self._access_status = int(code)
        except (TypeError, ValueError):
            self._access_status = 0

    def send_header(self, keyword: str, value: str) -> None:
        if keyword.lower() == "content-length":
            try:
                self._access_size = int(value)
            except (TypeError, ValueError):
                pass
        super().send_header(keyword, value)  # type: ignore[misc]

    def log_message(self, format: str, *args: Any) -> None:
        LOG.debug("%s - - %s", self.client_address[0], format % args)  # type: ignore[attr-defined]

    def _log_access(self) -> None:
        latency_ms = (time.perf_counter() - self._access_started) * 1000
        client = self.client_address[0]  # type: ignore[attr-defined]
        method = self.command or "-"
        path = self.path or "-"
        if self.log_format == "json":
            event = {
                "client": client,
                "method": method,
                "path": path,
                "status": self._access_status,
                "bytes_out": self._access_size,
                "latency_ms": round(latency_ms, 3),
            }
            self.access_log.info(json.dumps(event, sort_keys=True))
            return
        self.access_log.info("%3d | %9.3fms | %s | %s | %s", self._access_status, latency_ms, client, method, path)


class StaticRequestHandler(AccessLogMixin, SimpleHTTPRequestHandler):
    """Serves files under `directory`; directories only list when `browse` is set."""

    server_version = "staticServer/0.1"

    def __init__(
        self,
        *args: Any,
        directory: Optional[str] = None,
        browse: bool = False,
        max_age: int = 0,
        log_format: str = "plain",
        access_log: Optional[logging.Logger] = None,
        **kwargs: Any,
    ) -> None:
        # the base constructor handles the request, so configure first
        self.browse = browse
        self.max_age = max_age
        self.log_format = log_format
        if access_log is not None:
            self.access_log = access_log
        super().__init__(*args, directory=directory, **kwargs)

    def list_directory(self, path: str | Path):
        if not self.browse:
            self.send_error(404, "File not found")
            return None
        return super().list_directory(path)

    def end_headers(self) -> None:
        if self.max_age > 0 and self._access_status in (200, 304):
            self.send_header("Cache-Control", f"public, max-age={self.max_age}")
        super().end_headers()


class _StaticHTTPServer(ThreadingHTTPServer):
    def handle_error(self, request: Any, client_address: Any) -> None:
        exc = sys.exc_info()[1]
        if isinstance(exc, (ConnectionError, TimeoutError, ssl.SSLError)):
            LOG.debug("Connection from %s dropped: %s", client_address[0], exc)
            return
        LOG.exception("Error handling request from %s", client_address[0])


class _TLSHTTPServer(_StaticHTTPServer):
    """Performs the TLS handshake in each connection's worker thread."""

    handshake_timeout = 10.0

    def __init__(self, server_address: Any, handler: Any, ssl_context: ssl.SSLContext) -> None:
        self.ssl_context = ssl_context
        super().__init__(server_address, handler)

    def finish_request(self, request: Any, client_address: Any) -> None:
        request.settimeout(self.handshake_timeout)
        try:
            conn = self.ssl_context.wrap_socket(request, server_side=True)
        except (ssl.SSLError, OSError) as exc:
            # includes plaintext HTTP sent to the TLS port; never fall back
            LOG.debug("TLS handshake with %s failed: %s", client_address[0], exc)
            return
        conn.settimeout(None)
        try:
            self.RequestHandlerClass(conn, client_address, self)
        finally:
            self.shutdown_request(conn)


class HttpFileServer:
    scheme = "http"

    def __init__(
        self,
        root_dir: str | Path,
        host: str = "0.0.0.0",
        port: int = 80,
        logger: Optional[logging.Logger] = None,
        browse: bool = False,
        max_age: int = 0,
        log_format: str = "plain",
    ) -> None:
        if log_format not in LOG_FORMATS:
            raise ValueError(f"unknown log format: {log_format}")
        self.root_dir = Path(root_dir).resolve()
        self.host = host
        self.port = port
        self.logger = logger or LOG
        self.browse = browse
        self.max_age = max_age
        self.log_format = log_format
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._serving = False
        self.sock_port: Optional[int] = None

    def _handler(self, *args: Any, **kwargs: Any) -> StaticRequestHandler:
        return StaticRequestHandler(
            *args,
            directory=str(self.root_dir),
            browse=self.browse,
            max_age=self.max_age,
            log_format=self.log_format,
            **kwargs,
        )

    def _create_server(self) -> ThreadingHTTPServer:
        return _StaticHTTPServer((self.host, self.port), self._handler)

    def bind(self) -> ThreadingHTTPServer:
        """Open the listening socket without serving yet. Raises OSError on bind failure."""
        if self._server:
            return self._server
        server = self._create_server()
        self._server = server
        self.sock_port = server.server_address[1]
        self.logger.info("%s server serving %s on %s:%d", self.scheme.upper(), self.root_dir, self.host, self.sock_port)
        return server

    def start(self) -> None:
        if self._thread:
            return
        server = self.bind()
        self._serving = True
        thr = threading.Thread(target=server.serve_forever, daemon=True)
        self._thread = thr
        thr.start()

    def serve_forever(self) -> None:
        """Serve from the calling thread until `stop()` is called from another one."""
        server = self.bind()
        self._serving = True
        server.serve_forever()

    def stop(self) -> None:
        if self._server:
            if self._serving:
                try:
                    self._server.shutdown()
                except Exception:
                    self.logger.exception("Error shutting down %s server", self.scheme.upper())
            try:
                self._server.server_close()
            except Exception:
                self.logger.exception("Error closing %s server", self.scheme.upper())
            self._server = None
        self._serving = False
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._thread = None
        self.sock_port = None

    def reload_certificates(self) -> None:
        """Plaintext servers hold no key material."""


class HttpsFileServer(HttpFileServer):
    scheme = "https"

    def __init__(
        self,
        root_dir: str | Path,
        host: str = "0.0.0.0",
        port: int = 443,
        certfile: str | None = None,
        keyfile: str | None = None,
        logger: Optional[logging.Logger] = None,
        browse: bool = False,
        max_age: int = 0,
        log_format: str = "plain",
    ) -> None:
        super().__init__(root_dir, host=host, port=port, logger=logger, browse=browse, max_age=max_age, log_format=log_format)
        self.certfile = certfile
        self.keyfile = keyfile

    def _ssl_context(self) -> ssl.SSLContext:
        if not self.certfile or not self.keyfile:
            raise ValueError("Both certfile and keyfile are required for HTTPS")
        ctx = ssl.create_default_context(purpose=ssl.Purpose.CLIENT_AUTH)
        ctx.minimum_version = ssl.TLSVersion.TLSv1_2
        ctx.load_cert_chain(certfile=self.certfile, keyfile=self.keyfile)
        return ctx

    def _create_server(self) -> ThreadingHTTPServer:
        # load the key pair before binding so bad material never opens a port
        ctx = self._ssl_context()
        return _TLSHTTPServer((self.host, self.port), self._handler, ctx)

    def reload_certificates(self) -> None:
        """
        Re-read certfile/keyfile (e.g. after an ACME renewal) and use them for
        new connections. On failure the previous context stays active.
        """
        ctx = self._ssl_context()
        server = self._server
        if isinstance(server, _TLSHTTPServer):
            server.ssl_context = ctx
        self.logger.info("Reloaded TLS certificate from %s", self.certfile)
