"""
=============================================================================
TLSSERVER - Minimal TLS-Terminating HTTP Server
=============================================================================

Accepts TCP connections, optionally negotiates TLS (with optional
client-certificate verification), reads one request, and answers with a
small HTML page echoing the request's method and target. Then it closes
the connection.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    tlsserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m tlsserver)
    ├── server.py            # TLSServer orchestrator
    ├── handler.py           # Per-connection state machine driver
    ├── config.py            # ServerConfig (frozen dataclass)
    ├── errors.py            # Startup vs per-connection error taxonomy
    ├── access_log.py        # One record per answered connection
    ├── core/
    │   ├── tls_context.py   # PEM files → shared ssl.SSLContext
    │   ├── socket_server.py # Bind / listen / accept loop
    │   ├── thread_pool.py   # Worker threads
    │   └── connection.py    # Handshake, read, write, close
    └── http/
        ├── request_line.py  # Method + target extraction
        └── response.py      # HTML page + HTTP/1.1 200 response

=============================================================================
QUICK START
=============================================================================

    from tlsserver import TLSServer, ServerConfig

    # Mutual TLS on 8080 (server.crt / server.key / ca.crt in cwd)
    TLSServer(ServerConfig()).run()

    # Plain HTTP
    TLSServer(ServerConfig.plaintext(port=8080)).run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import TLSServer
from .errors import (
    ServerError,
    StartupError,
    ConfigError,
    CertificateLoadError,
    KeyLoadError,
    TrustAnchorLoadError,
    BindError,
    ConnectionFailure,
    HandshakeError,
    ReadError,
    WriteError,
)

__all__ = [
    "TLSServer",
    "ServerConfig",
    "ServerError",
    "StartupError",
    "ConfigError",
    "CertificateLoadError",
    "KeyLoadError",
    "TrustAnchorLoadError",
    "BindError",
    "ConnectionFailure",
    "HandshakeError",
    "ReadError",
    "WriteError",
    "__version__",
]
