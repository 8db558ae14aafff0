"""
=============================================================================
CONNECTION
=============================================================================

One accepted client socket and everything that happens on it: the
optional TLS handshake, the single request read, the response write and
the teardown.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    ACCEPTED ──► HANDSHAKING ──► READING ──► PARSING ──► RESPONDING ──┐
        │        (TLS only)         │                        │         │
        │             │             │                        │         │
        │             ▼             ▼                        ▼         ▼
        └───────────────────────► CLOSED ◄───────────────────┴─────────┘

    Any failure jumps straight to CLOSED. CLOSED is terminal and is
    reached exactly once: close() is idempotent and the handler always
    runs inside `with conn:`.

=============================================================================
ONE READ, BOUNDED
=============================================================================

The server answers from the request LINE only, so it never accumulates
a whole request. It performs a single recv() of at most READ_BUFFER_SIZE
bytes:

    recv() → b"GET /index.html HTTP/1.1\r\nHost: ...\r\n\r\n"   use it
    recv() → b""                                               peer left
    recv() → timeout / reset / TLS alert                       give up

Anything beyond the buffer capacity is simply never read.

=============================================================================
PARTIAL WRITES
=============================================================================

send() may accept fewer bytes than offered (full kernel buffer, TLS
record limits). We loop until every byte is out:

    total = 0
    while total < len(data):
        total += sock.send(data[total:])

A send() that raises, or reports 0 bytes, ends the loop for good.

=============================================================================
TLS TEARDOWN
=============================================================================

    TLS session:   unwrap()  → sends close_notify, waits briefly for the
                                peer's close_notify
    any session:   shutdown(SHUT_WR), drain unread bytes, close()

    A failing unwrap() is logged and ignored; the TCP socket is closed
    regardless. The drain stops at SHUTDOWN_TIMEOUT after close() began
    or after DRAIN_LIMIT bytes, whichever comes first.

    close(drain=False) skips all of that and just releases the socket.
    Connections dropped by the accept thread go this way.

=============================================================================
"""

import socket
import ssl
import time
import uuid
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

from ..errors import HandshakeError, ReadError, WriteError


logger = logging.getLogger(__name__)


READ_BUFFER_SIZE = 4096
"""Maximum bytes read from a client."""

SHUTDOWN_TIMEOUT = 1.0
"""Upper bound on the whole graceful teardown, however chatty the peer."""

DRAIN_LIMIT = 64 * 1024
"""Most unread client bytes discarded at close before giving up."""


class ConnectionState(Enum):
    """Lifecycle of a single connection."""
    ACCEPTED = "accepted"        # Returned by accept(), nothing done yet
    HANDSHAKING = "handshaking"  # TLS negotiation in progress
    READING = "reading"          # Waiting for request bytes
    PARSING = "parsing"          # Extracting method and target
    RESPONDING = "responding"    # Writing the response
    CLOSED = "closed"            # Socket released


def _format_subject(subject) -> str:
    """Turn getpeercert()'s nested subject tuples into 'commonName=x, ...'."""
    return ", ".join(f"{name}={value}" for rdn in subject for name, value in rdn)


@dataclass
class Connection:
    """
    A client connection, plain or TLS.

    Attributes:
        socket: The client socket. Replaced by the SSLSocket after a
            successful wrap.
        address: Client's (ip, port) tuple.
        id: Short unique id used in log lines.
        state: Current ConnectionState.
        timeout: Deadline in seconds applied to every blocking step.
        tls: True once a TLS session is established.
        peer_subject: Client certificate subject (mutual TLS only).
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.ACCEPTED
    created_at: float = field(default_factory=time.time)

    timeout: Optional[float] = 30.0
    buffer_size: int = READ_BUFFER_SIZE

    tls: bool = False
    peer_subject: str = ""
    bytes_received: int = 0
    bytes_sent: int = 0

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # HANDSHAKE
    # =========================================================================

    def handshake(self, tls_context) -> None:
        """
        Run the server side of the TLS handshake.

        The socket is wrapped first and stored on the connection, so that
        close() releases the right object even if the handshake fails.

        Args:
            tls_context: The shared TlsContext.

        Raises:
            HandshakeError: Negotiation failed, the client certificate was
                missing or untrusted, or the deadline expired.
        """
        self.state = ConnectionState.HANDSHAKING

        try:
            self.socket = tls_context.wrap(self.socket)
            self.socket.do_handshake()
        except socket.timeout as e:
            raise HandshakeError(f"TLS handshake timed out: {e}", self.id) from e
        except (ssl.SSLError, OSError, ValueError) as e:
            raise HandshakeError(f"TLS handshake failed: {e}", self.id) from e

        self.tls = True

        peer_cert = self.socket.getpeercert()
        if peer_cert:
            self.peer_subject = _format_subject(peer_cert.get("subject", ()))

        logger.debug(
            f"[{self.id}] Handshake complete: {self.socket.version()} "
            f"{self.socket.cipher()[0]}"
            + (f", peer {self.peer_subject}" if self.peer_subject else "")
        )

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read the request bytes with one bounded read.

        Returns:
            Up to buffer_size bytes, or None if the peer sent nothing
            (orderly close, TLS close_notify, reset).

        Raises:
            ReadError: Timeout or any other transport failure.
        """
        self.state = ConnectionState.READING

        try:
            data = self.socket.recv(self.buffer_size)
        except (ssl.SSLZeroReturnError, ssl.SSLEOFError, ConnectionResetError):
            return None
        except socket.timeout as e:
            raise ReadError("Request read timed out", self.id) from e
        except OSError as e:
            raise ReadError(f"Request read failed: {e}", self.id) from e

        if not data:
            return None

        self.bytes_received += len(data)
        return data

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> int:
        """
        Write all of `data`, retrying partial sends.

        Returns:
            Number of bytes written (always len(data) on success).

        Raises:
            WriteError: The transport failed before everything was sent.
        """
        self.state = ConnectionState.RESPONDING

        view = memoryview(data)
        total = 0
        try:
            while total < len(view):
                sent = self.socket.send(view[total:])
                if sent == 0:
                    raise WriteError(
                        f"Peer stopped accepting data after {total} bytes", self.id
                    )
                total += sent
        except socket.timeout as e:
            raise WriteError(f"Response write timed out after {total} bytes", self.id) from e
        except OSError as e:
            raise WriteError(f"Response write failed after {total} bytes: {e}", self.id) from e
        finally:
            self.bytes_sent += total

        return total

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self, drain: bool = True):
        """
        Release the connection. Safe to call more than once.

        Args:
            drain: Shut down gracefully (TLS close_notify, half-close, and
                a short drain of unread client bytes). With False the
                socket is closed at once and never read from, which is
                what the accept thread needs when it drops a connection.

        The whole graceful teardown is bounded by SHUTDOWN_TIMEOUT and
        DRAIN_LIMIT, however fast the peer keeps sending. TLS shutdown
        failures are logged at debug level and do not stop the close.
        """
        if self.state == ConnectionState.CLOSED:
            return

        sock = self.socket

        if drain:
            deadline = time.monotonic() + SHUTDOWN_TIMEOUT

            if self.tls:
                try:
                    sock.settimeout(SHUTDOWN_TIMEOUT / 2)
                    sock = sock.unwrap()
                except (OSError, ValueError) as e:
                    logger.debug(f"[{self.id}] TLS shutdown failed: {e}")

            try:
                sock.shutdown(socket.SHUT_WR)
            except OSError:
                pass  # Peer already gone

            self._drain(sock, deadline)

        try:
            sock.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def _drain(self, sock, deadline: float) -> None:
        # Unread client bytes at close() turn into a RST that can discard
        # the response, so swallow what is in flight. Bounded in time and size.
        drained = 0
        try:
            while drained < DRAIN_LIMIT:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                sock.settimeout(remaining)
                chunk = sock.recv(READ_BUFFER_SIZE)
                if not chunk:
                    break
                drained += len(chunk)
        except (OSError, ValueError):
            pass

        if drained:
            logger.debug(f"[{self.id}] Discarded {drained} unread bytes at close")

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
