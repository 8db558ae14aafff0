"""
=============================================================================
LISTENER
=============================================================================

Owns the listening socket and the accept loop. It does not know anything
about TLS or HTTP: every accepted socket is wrapped in a Connection and
handed to a callback, which queues it for a worker and returns at once.

=============================================================================
SOCKET LIFECYCLE
=============================================================================

    socket()  ──►  setsockopt()  ──►  bind()  ──►  listen()  ──►  accept()…
                   SO_REUSEADDR       │            │
                   TCP_NODELAY        │            │
                                      └────────────┴──► BindError (fatal)

    accept() runs with a 1 second timeout so the loop can notice
    shutdown() without needing another connection to wake it up:

        while running:
            try:
                accept()          ← at most 1s
            except timeout:
                continue          ← re-check running

=============================================================================
SIGNALS
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd) stop the accept
loop; the server then drains its workers. Python only allows installing
signal handlers from the main thread, so when the listener runs in a
background thread (tests, embedding) signals are left alone and
shutdown() must be called explicitly.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from ..errors import BindError
from .connection import Connection


logger = logging.getLogger(__name__)


ACCEPT_POLL_INTERVAL = 1.0


class SocketServer:
    """
    TCP listener with an interruptible accept loop.

    Usage:
        def dispatch(conn: Connection):
            pool.submit(handle, conn)

        server = SocketServer(config)
        server.start(dispatch)        # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound_address: Optional[Tuple[str, int]] = None

        self._listening_event = threading.Event()
        self._original_handlers: dict = {}

        self.connections_accepted = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The (host, port) actually bound. With port=0 in the config this is
        where the OS-assigned port shows up.
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restart without waiting for TIME_WAIT to expire.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # One small response per connection; send it immediately.
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(ACCEPT_POLL_INTERVAL)
        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def bind(self):
        """
        Create, bind and listen. Split out of start() so startup failures
        surface before any thread is spawned.

        Raises:
            BindError: Port in use, insufficient privilege, bad address.
        """
        sock = self._create_socket()
        host, port = self.config.host, self.config.port

        try:
            sock.bind((host, port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {host}:{port}: {e}")
            raise BindError(f"Cannot listen on {host}:{port}: {e}", host, port) from e

        self._socket = sock
        self._bound_address = sock.getsockname()[:2]

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown(). Blocks.

        Args:
            connection_handler: Called with each new Connection. Must not
                block on the connection's I/O.

        Raises:
            BindError: If the socket cannot be bound.
        """
        if self._socket is None:
            self.bind()

        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Listening on {host}:{port}")
        self._listening_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                # Listening socket closed underneath us, or out of fds.
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            self.connections_accepted += 1

            try:
                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    timeout=self.config.timeout,
                )
            except OSError as e:
                logger.warning(f"Dropping connection from {client_address[0]}: {e}")
                client_socket.close()
                continue

            logger.debug(
                f"[{conn.id}] Accepted connection from {conn.client_ip}:{conn.client_port}"
            )
            connection_handler(conn)

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is bound and accepting. False on timeout."""
        return self._listening_event.wait(timeout)

    def shutdown(self):
        """Stop the accept loop. Idempotent, callable from any thread."""
        if self._running:
            logger.info("Shutting down listener...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._listening_event.clear()
        logger.info("Listener stopped")
