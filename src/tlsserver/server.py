"""
=============================================================================
TLS SERVER
=============================================================================

Wires the pieces together and owns their lifecycle.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          TLSServer                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   __init__    validate config ──► build TlsContext (fail fast)      │
    │                                                                      │
    │   run()       bind ──► start pool ──► accept loop (blocks)          │
    │                                                                      │
    │                ┌──────────────┐   submit   ┌──────────────┐         │
    │                │ SocketServer │ ─────────► │  ThreadPool  │         │
    │                │  (1 thread)  │            │  (N workers) │         │
    │                └──────────────┘            └──────┬───────┘         │
    │                                                   │                  │
    │                                                   ▼                  │
    │                                         ConnectionHandler(conn)     │
    │                                         handshake → read → parse    │
    │                                         → respond → close           │
    │                                                                      │
    │   shutdown()  stop accepting ──► drain pool ──► close leftovers     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STARTUP ORDER
=============================================================================

Anything that can fail fatally happens before the first connection is
accepted:

    1. ServerConfig.validate()        ConfigError
    2. build_tls_context()            CertificateLoadError / KeyLoadError /
                                      TrustAnchorLoadError
    3. SocketServer.bind()            BindError

Only then are worker threads started. If any step raises, the process
never listens.

=============================================================================
"""

import logging
import threading
from typing import Optional, Tuple

from .config import ServerConfig
from .core import SocketServer, Connection, ThreadPool
from .core.tls_context import TlsContext, tls_context_from_config
from .handler import ConnectionHandler


logger = logging.getLogger(__name__)


DRAIN_TIMEOUT = 10.0


class TLSServer:
    """
    Single-request-per-connection HTTP server, over TLS or plain TCP.

    Usage:
        server = TLSServer(ServerConfig(
            port=8443,
            cert_path="server.crt",
            key_path="server.key",
            trust_anchor_path="ca.crt",
        ))
        server.run()      # blocks until Ctrl+C / SIGTERM / shutdown()

    Raises (from the constructor):
        ConfigError, CertificateLoadError, KeyLoadError,
        TrustAnchorLoadError
    """

    def __init__(self, config: Optional[ServerConfig] = None, tls_context: Optional[TlsContext] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        if tls_context is None:
            tls_context = tls_context_from_config(self.config)
        self.tls_context = tls_context

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._handler = ConnectionHandler(self.config, self.tls_context)

        self._running = False
        self._stopped = threading.Event()

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); meaningful once the server is listening."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict:
        return {
            "accepted": self._socket_server.connections_accepted,
            "pool": self._thread_pool.stats,
        }

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Bind, start workers and serve until shutdown. Blocks.

        Raises:
            BindError: The port could not be bound.
        """
        self._setup_logging()

        self._socket_server.bind()
        self._thread_pool.start()
        self._running = True
        self._stopped.clear()

        self._log_startup_banner()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def serve_in_background(self) -> threading.Thread:
        """Run the server on a daemon thread; returns once it is listening."""
        thread = threading.Thread(target=self.run, name="tls-listener", daemon=True)
        thread.start()
        if not self.wait_until_listening(timeout=5.0):
            raise RuntimeError("Server failed to start listening")
        return thread

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_listening(timeout)

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Ask the server to stop, from any thread.

        Args:
            timeout: If given, wait up to this long for run() to finish.

        Returns:
            True if the server has stopped (or timeout is None).
        """
        self._socket_server.shutdown()
        if timeout is None:
            return True
        return self._stopped.wait(timeout)

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("tlsserver").setLevel(level)

    def _log_startup_banner(self):
        host, port = self.address
        logger.info(f"Serving {self.config.scheme}://{host}:{port}")
        if self.tls_context is not None:
            logger.info(f"TLS certificate: {self.tls_context.subject}")
            logger.info(f"TLS client verification: {self.tls_context.mode_description}")
        else:
            logger.info("TLS disabled, serving plaintext HTTP")
        logger.info(
            f"Workers: {self.config.min_workers}-{self.config.max_workers}, "
            f"per-connection timeout: {self.config.timeout}s"
        )

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False

        abandoned = self._thread_pool.shutdown(wait=True, timeout=DRAIN_TIMEOUT)
        for task in abandoned:
            for arg in task.args:
                if isinstance(arg, Connection):
                    arg.close(drain=False)

        self._stopped.set()
        logger.info("Server stopped")

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Called on the accept thread; must return without doing I/O."""
        try:
            submitted = self._thread_pool.submit(self._handler, conn)
        except RuntimeError:
            submitted = False

        if not submitted:
            logger.warning(f"[{conn.id}] Worker queue full, dropping {conn.client_ip}")
            conn.close(drain=False)
