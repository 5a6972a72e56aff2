from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import Mapping, Optional

from .config import ConfigError, ServerConfig
from .http_server import LOG_FORMATS
from .server import StaticServer

LOG = logging.getLogger("staticServer.cli")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="static-server", description="Serve a static directory over HTTP or HTTPS")
    p.add_argument("--root-dir", "-r", default=None, help="Directory to serve files from (default: .)")
    p.add_argument("--host", default=None, help="Host/interface to bind (default: 0.0.0.0)")
    p.add_argument("--port", type=int, default=None, help="Port to listen on (0 for ephemeral)")
    # TLS options
    p.add_argument("--tls", dest="tls_enabled", action="store_true", default=None, help="Terminate TLS on the listener")
    p.add_argument("--no-tls", dest="tls_enabled", action="store_false", help="Serve plaintext HTTP")
    p.add_argument("--ssl-certfile", type=str, default=None, help="Path to the PEM certificate chain")
    p.add_argument("--ssl-keyfile", type=str, default=None, help="Path to the PEM private key")
    # profiles
    p.add_argument("--debug", action="store_true", default=None, help="Debug profile: plaintext on :8080")
    p.add_argument("--domain", default=None, help="Production profile: TLS on :443 with Let's Encrypt paths for DOMAIN")
    p.add_argument("--browse", action="store_true", default=None, help="List directories without an index file")
    p.add_argument("--max-age", type=int, default=None, help="Cache-Control max-age in seconds (0 disables)")
    p.add_argument("--log-level", default="INFO", help="Logging level")
    p.add_argument("--log-format", choices=LOG_FORMATS, default="plain", help="Access log format")
    return p


def build_config(args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None) -> ServerConfig:
    """Defaults, then environment, then the debug/production profile, then explicit flags."""
    cfg = ServerConfig.from_env(environ)
    if args.debug or args.domain:
        cfg = ServerConfig.for_mode(bool(args.debug), args.domain, base=cfg)
    overrides = {
        "root_dir": args.root_dir,
        "host": args.host,
        "port": args.port,
        "tls_enabled": args.tls_enabled,
        "certfile": args.ssl_certfile,
        "keyfile": args.ssl_keyfile,
        "browse": args.browse,
        "max_age": args.max_age,
    }
    return cfg.replace(**{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[list[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = build_config(args, environ).validate()
    except ConfigError as e:
        LOG.error("%s", e)
        return 2

    server = StaticServer(config, logger=LOG, log_format=args.log_format)

    # graceful shutdown handling
    stop_requested = False

    def _on_signal(signum, frame):
        nonlocal stop_requested
        LOG.info("Received signal %s, stopping...", signum)
        stop_requested = True

    def _on_reload(signum, frame):
        try:
            server.reload_certificates()
        except Exception:
            LOG.exception("Certificate reload failed; keeping the current certificate")

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _on_reload)

    try:
        server.start()
        LOG.info("Serving %s at %s://%s:%s", config.root_dir, server.scheme, config.host, server.sock_port)
        # wait until signal
        while not stop_requested:
            signal.pause()
    except KeyboardInterrupt:
        LOG.info("Keyboard interrupt received, stopping server")
    except Exception:
        LOG.exception("Server failed")
        return 1
    finally:
        try:
            server.stop()
        except Exception:
            LOG.exception("Error during stop")
        LOG.info("Server stopped")

    return 0


if __name__ == "__main__":
    sys.exit(main())
