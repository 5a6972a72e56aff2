from .config import ConfigError, ServerConfig
from .http_server import HttpFileServer, HttpsFileServer, StaticRequestHandler
from .server import StaticServer, run

__all__ = ["ConfigError", "ServerConfig", "HttpFileServer", "HttpsFileServer", "StaticRequestHandler", "StaticServer", "run"]
