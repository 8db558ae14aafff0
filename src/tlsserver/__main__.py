"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    # Mutual TLS with server.crt / server.key / ca.crt from the cwd
    python -m tlsserver

    # TLS, but do not ask clients for a certificate
    python -m tlsserver --no-client-cert

    # Explicit files and port
    python -m tlsserver --cert certs/server.crt --key certs/server.key \\
                        --ca certs/ca.crt --port 8443

    # Plain HTTP
    python -m tlsserver --plain

Flags override TLS_SERVER_* environment variables, which override the
ServerConfig defaults.

Exit status: 0 after a clean shutdown, 1 when the server cannot start
(bad config, certificate, key, trust anchor or port), 2 on bad usage.

=============================================================================
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig, LOG_FORMATS
from .errors import StartupError
from .server import TLSServer


logger = logging.getLogger("tlsserver")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tlsserver",
        description="Minimal TLS-terminating HTTP server (one request per connection)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tlsserver                                 # mutual TLS on :8080
  python -m tlsserver --no-client-cert                # TLS, no client certs
  python -m tlsserver --plain --port 8000             # plain HTTP
  python -m tlsserver --cert s.crt --key s.key --ca ca.crt
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", default=None, help="Address to bind (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, default=None, help="Port to listen on (default: 8080)")
    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=None,
        help="Per-connection handshake/read/write deadline in seconds (default: 30)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--plain",
        dest="tls_enabled",
        action="store_false",
        default=None,
        help="Serve plain HTTP instead of TLS",
    )
    parser.add_argument("--cert", default=None, help="PEM server certificate (default: server.crt)")
    parser.add_argument("--key", default=None, help="PEM private key (default: server.key)")
    parser.add_argument("--ca", default=None, help="PEM trust anchor for client certs (default: ca.crt)")
    parser.add_argument(
        "--no-client-cert",
        dest="require_client_cert",
        action="store_false",
        default=None,
        help="Do not require clients to present a certificate",
    )

    # ─────────────────────────────────────────────────────────────────────
    # WORKERS AND LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads (default: 16)",
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Access log format (default: text)",
    )

    parser.add_argument("--version", "-v", action="version", version=f"tlsserver {__version__}")

    return parser


def config_from_args(args: argparse.Namespace, base: Optional[ServerConfig] = None) -> ServerConfig:
    """Overlay the flags that were actually given onto `base` (env/defaults)."""
    base = base or ServerConfig.from_env()

    changes = {
        "host": args.host,
        "port": args.port,
        "timeout": args.timeout,
        "tls_enabled": args.tls_enabled,
        "cert_path": args.cert,
        "key_path": args.key,
        "trust_anchor_path": args.ca,
        "require_client_cert": args.require_client_cert,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    changes = {name: value for name, value in changes.items() if value is not None}

    if args.workers is not None:
        changes["max_workers"] = args.workers
        changes["min_workers"] = min(base.min_workers, args.workers)

    return base.replace(**changes)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except StartupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        server = TLSServer(config)
        server.run()
    except StartupError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
