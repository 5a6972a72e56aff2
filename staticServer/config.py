from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

ENV_PREFIX = "STATIC_SERVER_"
ACME_LIVE_DIR = "/etc/letsencrypt/live"

DEBUG_PORT = 8080
TLS_PORT = 443

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


class ConfigError(ValueError):
    """Raised when the server configuration cannot be used to start serving."""


def parse_bool(value: str, name: str = "value") -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigError(f"{name}: expected a boolean, got {value!r}")


def parse_int(value: str, name: str = "value") -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ConfigError(f"{name}: expected an integer, got {value!r}") from None


def _check_readable_file(path: Optional[str], label: str) -> None:
    if not path:
        raise ConfigError(f"TLS enabled but no {label} given")
    p = Path(path)
    if not p.is_file():
        raise ConfigError(f"{label} does not exist or is not a file: {p}")
    if not os.access(p, os.R_OK):
        raise ConfigError(f"{label} is not readable: {p}")


@dataclass(frozen=True)
class ServerConfig:
    """
    Everything needed to start a static file server.

    Built once at startup (from defaults, environment and flags) and never
    mutated afterwards. Use `validate()` before handing it to a server.
    """

    host: str = "0.0.0.0"
    port: int = DEBUG_PORT
    tls_enabled: bool = False
    certfile: Optional[str] = None
    keyfile: Optional[str] = None
    root_dir: str = "."
    browse: bool = False
    max_age: int = 0

    def replace(self, **changes) -> "ServerConfig":
        return dataclasses.replace(self, **changes)

    def validate(self) -> "ServerConfig":
        """Check invariants and return a copy with `root_dir` resolved."""
        root = Path(self.root_dir).expanduser().resolve()
        if not root.exists():
            raise ConfigError(f"root directory does not exist: {root}")
        if not root.is_dir():
            raise ConfigError(f"root directory is not a directory: {root}")
        if not os.access(root, os.R_OK | os.X_OK):
            raise ConfigError(f"root directory is not readable: {root}")
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"port out of range: {self.port}")
        if self.max_age < 0:
            raise ConfigError(f"max-age must not be negative: {self.max_age}")
        if self.tls_enabled:
            _check_readable_file(self.certfile, "certificate file")
            _check_readable_file(self.keyfile, "key file")
        elif self.certfile or self.keyfile:
            # mode and key material must agree
            raise ConfigError("certificate/key given but TLS is disabled")
        return self.replace(root_dir=str(root))

    @classmethod
    def for_mode(
        cls,
        debug: bool,
        domain: Optional[str] = None,
        root_dir: Optional[str] = None,
        base: Optional["ServerConfig"] = None,
    ) -> "ServerConfig":
        """
        Debug serves plaintext on :8080; production terminates TLS on :443
        with the ACME certificate layout for `domain`.

        Only the listener fields (port, TLS flag, key material) come from the
        profile; everything else is kept from `base`.
        """
        cfg = base or cls()
        if root_dir is not None:
            cfg = cfg.replace(root_dir=root_dir)
        if debug:
            return cfg.replace(port=DEBUG_PORT, tls_enabled=False, certfile=None, keyfile=None)
        if not domain:
            raise ConfigError("production mode requires a domain for the ACME certificate paths")
        live = Path(ACME_LIVE_DIR) / domain
        return cfg.replace(
            port=TLS_PORT,
            tls_enabled=True,
            certfile=str(live / "fullchain.pem"),
            keyfile=str(live / "privkey.pem"),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, base: Optional["ServerConfig"] = None) -> "ServerConfig":
        """
        Layer `STATIC_SERVER_*` variables over `base`. DEBUG and/or DOMAIN pick
        a profile first; explicit variables then win over the profile.
        """
        env = os.environ if environ is None else environ
        cfg = base or cls()
        values = {key: env.get(ENV_PREFIX + key) for key in _ENV_FIELDS}
        values = {key: value for key, value in values.items() if value}

        debug = env.get(ENV_PREFIX + "DEBUG")
        domain = env.get(ENV_PREFIX + "DOMAIN")
        if debug or domain:
            is_debug = parse_bool(debug, ENV_PREFIX + "DEBUG") if debug else False
            cfg = cls.for_mode(is_debug, domain or None, base=cfg)

        changes: Dict[str, Any] = {}
        for key, value in values.items():
            field_name, kind = _ENV_FIELDS[key]
            if kind is bool:
                changes[field_name] = parse_bool(value, ENV_PREFIX + key)
            elif kind is int:
                changes[field_name] = parse_int(value, ENV_PREFIX + key)
            else:
                changes[field_name] = value
        return cfg.replace(**changes)


# environment key -> (field, type)
_ENV_FIELDS: Dict[str, Tuple[str, type]] = {
    "HOST": ("host", str),
    "PORT": ("port", int),
    "TLS": ("tls_enabled", bool),
    "CERTFILE": ("certfile", str),
    "KEYFILE": ("keyfile", str),
    "ROOT": ("root_dir", str),
    "BROWSE": ("browse", bool),
    "MAX_AGE": ("max_age", int),
}
