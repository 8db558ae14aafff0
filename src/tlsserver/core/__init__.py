"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing, independent of what the bytes mean:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  TLS CONTEXT      PEM files → one shared, read-only ssl context     │
    ├─────────────────────────────────────────────────────────────────────┤
    │  SOCKET SERVER    bind, listen, accept; hands sockets off at once   │
    ├─────────────────────────────────────────────────────────────────────┤
    │  THREAD POOL      workers that run one connection each              │
    ├─────────────────────────────────────────────────────────────────────┤
    │  CONNECTION       handshake, bounded read, full write, clean close  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState, READ_BUFFER_SIZE
from .socket_server import SocketServer
from .thread_pool import ThreadPool
from .tls_context import TlsContext, build_tls_context, tls_context_from_config

__all__ = [
    "Connection",
    "ConnectionState",
    "READ_BUFFER_SIZE",
    "SocketServer",
    "ThreadPool",
    "TlsContext",
    "build_tls_context",
    "tls_context_from_config",
]
