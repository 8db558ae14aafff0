"""
=============================================================================
ACCESS LOG
=============================================================================

One record per answered connection on the "tlsserver.access" logger,
separate from the diagnostic loggers so it can be routed on its own:

    logging.getLogger("tlsserver.access").addHandler(file_handler)

Two renderings:

    text   127.0.0.1 - [a1b2c3d4] https "GET /index.html" 200 215 1.84ms
    json   {"connection_id": "a1b2c3d4", "client_ip": "127.0.0.1", ...}

=============================================================================
"""

import json
import logging
from dataclasses import dataclass, asdict


logger = logging.getLogger("tlsserver.access")


@dataclass
class ExchangeLog:
    """What happened on one connection, for the access log."""
    connection_id: str
    client_ip: str
    tls: bool
    method: str
    target: str
    status_code: int
    bytes_sent: int
    duration_ms: float
    peer_subject: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        scheme = "https" if self.tls else "http"
        line = (
            f'{self.client_ip} - [{self.connection_id}] {scheme} '
            f'"{self.method} {self.target}" {self.status_code} '
            f'{self.bytes_sent} {self.duration_ms:.2f}ms'
        )
        if self.peer_subject:
            line += f' peer="{self.peer_subject}"'
        return line


def log_exchange(entry: ExchangeLog, log_format: str = "text") -> None:
    if not logger.isEnabledFor(logging.INFO):
        return
    if log_format == "json":
        logger.info(json.dumps(entry.to_dict()))
    else:
        logger.info(entry.to_text())
