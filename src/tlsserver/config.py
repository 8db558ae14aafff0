"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

One immutable object describes how the server runs. It is built once at
startup and handed explicitly to every component that needs it; nothing
reads ambient global state.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m tlsserver --port 8443 --plain                   │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── TLS_SERVER_PORT=8443 python -m tlsserver                  │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
TLS MODES
=============================================================================

    tls_enabled=False
        Plain TCP. cert/key/CA paths are ignored.

    tls_enabled=True, require_client_cert=False
        Server authenticates itself; any client may connect.

    tls_enabled=True, require_client_cert=True   (default)
        Mutual TLS. Clients must present a certificate that chains to
        trust_anchor_path or the handshake fails.

=============================================================================
"""

import os
import dataclasses
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigError


LOG_FORMATS = ("text", "json")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the TLS server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK
    - host, port, backlog, timeout

    TLS
    - tls_enabled, cert_path, key_path, trust_anchor_path,
      require_client_cert

    THREADING
    - min_workers, max_workers, queue_size

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """Interface to bind. "0.0.0.0" is every IPv4 interface."""

    port: int = 8080
    """Listening port. 0 lets the OS choose a free port (tests)."""

    backlog: int = 128
    """Pending-connection queue length passed to listen()."""

    timeout: Optional[float] = 30.0
    """
    Per-connection deadline in seconds for the handshake, the read and
    each send. None disables it and lets a silent peer hold a worker
    forever.
    """

    # ─────────────────────────────────────────────────────────────────────
    # TLS SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    tls_enabled: bool = True

    cert_path: Optional[str] = "server.crt"
    """PEM server certificate (leaf first if it is a chain)."""

    key_path: Optional[str] = "server.key"
    """PEM private key matching cert_path. Must not be encrypted."""

    trust_anchor_path: Optional[str] = "ca.crt"
    """PEM CA certificate(s) that client certificates must chain to."""

    require_client_cert: bool = True

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    queue_size: int = 100
    """
    Accepted connections waiting for a worker. When full, new
    connections are closed immediately instead of blocking accept().
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    log_format: str = "text"
    """Access log format: 'text' (one line) or 'json'."""

    server_name: str = "TinyTLSServer/1.0"
    """Value of the Server response header."""

    @property
    def scheme(self) -> str:
        return "https" if self.tls_enabled else "http"

    @classmethod
    def plaintext(cls, **overrides) -> "ServerConfig":
        """Configuration for plain HTTP (no TLS)."""
        overrides.setdefault("tls_enabled", False)
        return cls(**overrides)

    def replace(self, **changes) -> "ServerConfig":
        """Return a copy with some fields changed (the original is frozen)."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        TLS_SERVER_HOST                 Bind address (default: 0.0.0.0)
        TLS_SERVER_PORT                 Port (default: 8080)
        TLS_SERVER_TLS                  TLS on/off (default: on)
        TLS_SERVER_CERT                 Certificate (default: server.crt)
        TLS_SERVER_KEY                  Private key (default: server.key)
        TLS_SERVER_CA                   Trust anchor (default: ca.crt)
        TLS_SERVER_REQUIRE_CLIENT_CERT  Mutual TLS (default: on)
        TLS_SERVER_TIMEOUT              Per-connection deadline (default: 30)
        TLS_SERVER_WORKERS              Max worker threads (default: 16)
        TLS_SERVER_LOG_LEVEL            Logging level (default: INFO)
        TLS_SERVER_LOG_FORMAT           text | json (default: text)

        =====================================================================
        """
        defaults = cls()
        max_workers = _env_number("TLS_SERVER_WORKERS", defaults.max_workers, int)
        return cls(
            host=os.getenv("TLS_SERVER_HOST", defaults.host),
            port=_env_number("TLS_SERVER_PORT", defaults.port, int),
            tls_enabled=_env_bool("TLS_SERVER_TLS", defaults.tls_enabled),
            cert_path=os.getenv("TLS_SERVER_CERT", defaults.cert_path),
            key_path=os.getenv("TLS_SERVER_KEY", defaults.key_path),
            trust_anchor_path=os.getenv("TLS_SERVER_CA", defaults.trust_anchor_path),
            require_client_cert=_env_bool(
                "TLS_SERVER_REQUIRE_CLIENT_CERT", defaults.require_client_cert
            ),
            timeout=_env_number("TLS_SERVER_TIMEOUT", defaults.timeout, float),
            min_workers=min(defaults.min_workers, max_workers),
            max_workers=max_workers,
            log_level=os.getenv("TLS_SERVER_LOG_LEVEL", defaults.log_level),
            log_format=os.getenv("TLS_SERVER_LOG_FORMAT", defaults.log_format),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by TLSServer before anything touches the network so a bad
        value fails at startup with a clear message.

        Raises:
            ConfigError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ConfigError("backlog must be >= 1")

        if self.min_workers < 1:
            raise ConfigError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ConfigError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ConfigError("queue_size must be >= 1")

        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError("timeout must be > 0")

        if self.log_format not in LOG_FORMATS:
            raise ConfigError(
                f"log_format must be one of {', '.join(LOG_FORMATS)}, got {self.log_format!r}"
            )

        if self.tls_enabled:
            if not self.cert_path:
                raise ConfigError("cert_path is required when TLS is enabled")
            if not self.key_path:
                raise ConfigError("key_path is required when TLS is enabled")
            if self.require_client_cert and not self.trust_anchor_path:
                raise ConfigError(
                    "trust_anchor_path is required when client certificates are required"
                )
