"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Runs on a worker thread, one connection at a time, strictly in order:

    1. HANDSHAKE   (TLS mode only)   conn.handshake(tls_context)
    2. READ                          conn.read_request()
    3. PARSE                         parse_request_line(data)
    4. RESPOND                       synthesize(...) → conn.send_response()
    5. CLOSE                         `with conn:` guarantees it

    Outcome per connection:

        handshake fails   →  no response, close, log WARNING
        peer sends nothing→  no response, close
        read fails        →  no response, close, log INFO
        write fails       →  partial response at most, close, log WARNING
        otherwise         →  exactly one 200 response, close, access log

Nothing here touches state shared with other connections except the
read-only TlsContext.

=============================================================================
"""

import time
import logging
from typing import Optional

from .access_log import ExchangeLog, log_exchange
from .config import ServerConfig
from .core.connection import Connection, ConnectionState
from .core.tls_context import TlsContext
from .errors import ConnectionFailure, HandshakeError, ReadError, WriteError
from .http.request_line import parse_request_line
from .http.response import ResponseDocument, synthesize


logger = logging.getLogger(__name__)


class ConnectionHandler:
    """
    Callable that serves one Connection from accept to close.

    Args:
        config: Server configuration (server name, log format).
        tls_context: Shared TLS context, or None for plaintext.
    """

    def __init__(self, config: ServerConfig, tls_context: Optional[TlsContext] = None):
        self.config = config
        self.tls_context = tls_context

    @property
    def tls_enabled(self) -> bool:
        return self.tls_context is not None

    def __call__(self, conn: Connection) -> Optional[ResponseDocument]:
        """
        Serve `conn` and close it. Never raises ConnectionFailure.

        Returns:
            The response that was written, or None if none was.
        """
        with conn:
            try:
                return self.serve(conn)
            except HandshakeError as e:
                logger.warning(f"[{conn.id}] {conn.client_ip}: {e}")
            except ReadError as e:
                logger.info(f"[{conn.id}] {conn.client_ip}: {e}")
            except WriteError as e:
                logger.warning(f"[{conn.id}] {conn.client_ip}: {e}")
            except ConnectionFailure as e:
                logger.warning(f"[{conn.id}] Connection abandoned: {e}")
        return None

    def serve(self, conn: Connection) -> Optional[ResponseDocument]:
        """
        Drive the connection through its states. Does not close it.

        Raises:
            HandshakeError, ReadError, WriteError: The connection has to
                be abandoned.
        """
        start = time.time()

        if self.tls_context is not None:
            conn.handshake(self.tls_context)

        data = conn.read_request()
        if data is None:
            logger.debug(f"[{conn.id}] Peer closed without sending a request")
            return None

        conn.state = ConnectionState.PARSING
        request_line = parse_request_line(data)
        logger.debug(
            f"[{conn.id}] Received {len(data)} bytes, request line "
            f"{request_line.method!r} {request_line.target!r}"
        )

        response = synthesize(
            request_line,
            tls=self.tls_enabled,
            server_name=self.config.server_name,
        )
        sent = conn.send_response(response.to_bytes())

        log_exchange(
            ExchangeLog(
                connection_id=conn.id,
                client_ip=str(conn.client_ip),
                tls=conn.tls,
                method=request_line.method,
                target=request_line.target,
                status_code=response.status_code,
                bytes_sent=sent,
                duration_ms=(time.time() - start) * 1000,
                peer_subject=conn.peer_subject,
            ),
            self.config.log_format,
        )
        return response
