"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the server knows about falls into one of two families:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         ServerError                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   StartupError  (FATAL - the process exits with status 1)           │
    │   ├── ConfigError            bad ServerConfig values                │
    │   ├── CertificateLoadError   server certificate unusable            │
    │   ├── KeyLoadError           private key unusable / mismatched      │
    │   ├── TrustAnchorLoadError   CA file unusable                       │
    │   └── BindError              port in use, no privilege              │
    │                                                                      │
    │   ConnectionFailure  (RECOVERABLE - only one client is affected)    │
    │   ├── HandshakeError         TLS negotiation failed                 │
    │   ├── ReadError              nothing usable came from the peer      │
    │   └── WriteError             response could not be delivered        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Startup errors unwind all the way to __main__. Connection failures are
caught by the worker that owns the connection and never reach the
listener or any other client.

=============================================================================
"""

from typing import Optional


class ServerError(Exception):
    """Base class for every error raised by tlsserver."""


# =============================================================================
# STARTUP (FATAL)
# =============================================================================


class StartupError(ServerError):
    """
    The server cannot start.

    Attributes:
        path: The file the failure relates to, if any.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class ConfigError(StartupError):
    """ServerConfig failed validation."""


class CertificateLoadError(StartupError):
    """Server certificate is missing, unreadable or not a certificate."""


class KeyLoadError(StartupError):
    """Private key is missing, malformed, or does not match the certificate."""


class TrustAnchorLoadError(StartupError):
    """Client verification was requested but the CA file could not be loaded."""


class BindError(StartupError):
    """The listening socket could not be bound or put into listen mode."""

    def __init__(self, message: str, host: str, port: int):
        super().__init__(message)
        self.host = host
        self.port = port


# =============================================================================
# PER-CONNECTION (RECOVERABLE)
# =============================================================================


class ConnectionFailure(ServerError):
    """A single connection had to be abandoned."""

    def __init__(self, message: str, connection_id: str = ""):
        super().__init__(message)
        self.connection_id = connection_id


class HandshakeError(ConnectionFailure):
    """TLS handshake failed (bad or missing client certificate, timeout...)."""


class ReadError(ConnectionFailure):
    """Reading the request failed."""


class WriteError(ConnectionFailure):
    """Writing the response failed."""
