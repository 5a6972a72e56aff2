from __future__ import annotations

import logging
from typing import Optional

from .config import ServerConfig
from .http_server import HttpFileServer, HttpsFileServer

LOG = logging.getLogger(__name__)


class StaticServer:
    """
    Serves `config.root_dir` at `/` over plaintext HTTP or TLS, chosen once
    from `config.tls_enabled`.

    Used as a context manager the listener is bound on entry and always
    closed on exit.
    """

    def __init__(self, config: ServerConfig, logger: Optional[logging.Logger] = None, log_format: str = "plain") -> None:
        self.config = config
        self.logger = logger or LOG
        self._impl: HttpFileServer
        if config.tls_enabled:
            self._impl = HttpsFileServer(
                config.root_dir,
                host=config.host,
                port=config.port,
                certfile=config.certfile,
                keyfile=config.keyfile,
                logger=self.logger,
                browse=config.browse,
                max_age=config.max_age,
                log_format=log_format,
            )
        else:
            self._impl = HttpFileServer(
                config.root_dir,
                host=config.host,
                port=config.port,
                logger=self.logger,
                browse=config.browse,
                max_age=config.max_age,
                log_format=log_format,
            )

    @property
    def tls_enabled(self) -> bool:
        return self.config.tls_enabled

    @property
    def scheme(self) -> str:
        return self._impl.scheme

    @property
    def sock_port(self) -> Optional[int]:
        return self._impl.sock_port

    def bind(self) -> None:
        self._impl.bind()

    def start(self) -> None:
        self._impl.start()

    def serve_forever(self) -> None:
        self._impl.serve_forever()

    def stop(self) -> None:
        self._impl.stop()

    def reload_certificates(self) -> None:
        self._impl.reload_certificates()

    def __enter__(self) -> "StaticServer":
        self.bind()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()


def run(config: ServerConfig, logger: Optional[logging.Logger] = None, log_format: str = "plain") -> None:
    """
    Validate `config` and serve until interrupted.

    Configuration errors (`ConfigError`) and bind/certificate failures
    (`OSError`, `ssl.SSLError`) propagate before any connection is accepted.
    """
    config = config.validate()
    with StaticServer(config, logger=logger, log_format=log_format) as server:
        server.serve_forever()
