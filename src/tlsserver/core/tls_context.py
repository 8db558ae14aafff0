"""
=============================================================================
TLS CONTEXT BUILDER
=============================================================================

Turns three PEM files on disk into one reusable, read-only handshake
configuration that every connection shares.

=============================================================================
WHAT GOES INTO A SERVER TLS CONTEXT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        TlsContext                                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   server.crt   Certificate we show to clients.                      │
    │                Proves "I am localhost" (signed by some CA).         │
    │                                                                      │
    │   server.key   Private half of the certificate's key pair.          │
    │                Never leaves the server. MUST match server.crt,      │
    │                otherwise the handshake could never succeed.         │
    │                                                                      │
    │   ca.crt       Trust anchor for CLIENT certificates (mutual TLS).   │
    │                A client cert is accepted only if it chains to it.   │
    │                                                                      │
    │   verify_mode  CERT_NONE      → clients need no certificate         │
    │                CERT_REQUIRED  → no/untrusted cert = handshake fails │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LOAD ORDER AND ERROR MAPPING
=============================================================================

    1. certificate  ──► CertificateLoadError   (missing, not PEM, not X.509)
    2. private key  ──► KeyLoadError           (missing, malformed, encrypted)
    3. key ⇄ cert   ──► KeyLoadError           (public keys differ)
    4. trust anchor ──► TrustAnchorLoadError   (only if client certs required)

The files are parsed with `cryptography` before being handed to the
`ssl` module. OpenSSL reports every PEM problem as the same SSLError;
parsing first lets us say exactly WHICH file is wrong.

=============================================================================
THREAD SAFETY
=============================================================================

The context is built once, before the listener starts. After that it is
only ever used to wrap sockets, which OpenSSL allows from any number of
threads at once. Nothing mutates it, so no lock is needed.

=============================================================================
"""

import ssl
import logging
from dataclasses import dataclass, field
from typing import Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from ..errors import CertificateLoadError, KeyLoadError, TrustAnchorLoadError


logger = logging.getLogger(__name__)


def _read_file(path: str) -> bytes:
    with open(path, "rb") as fh:
        return fh.read()


def _public_key_der(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@dataclass(frozen=True, eq=False)
class TlsContext:
    """
    Immutable, shareable server-side TLS configuration.

    Attributes:
        ssl_context: The configured `ssl.SSLContext`.
        cert_path: Certificate file the context was built from.
        key_path: Private key file.
        trust_anchor_path: CA file, or None when clients are not verified.
        require_client_cert: True for mutual TLS.
        subject: RFC 4514 subject of the server certificate (for logs).
    """

    ssl_context: ssl.SSLContext = field(repr=False)
    cert_path: str
    key_path: str
    trust_anchor_path: Optional[str] = None
    require_client_cert: bool = False
    subject: str = ""

    @property
    def verify_mode(self) -> ssl.VerifyMode:
        return self.ssl_context.verify_mode

    @property
    def mode_description(self) -> str:
        if self.require_client_cert:
            return f"client certificate required (trust anchor: {self.trust_anchor_path})"
        return "no client certificate required"

    def wrap(self, sock) -> ssl.SSLSocket:
        """
        Wrap an accepted socket for the server side of a handshake.

        The handshake itself is NOT performed here; the caller runs
        `do_handshake()` under its own deadline.
        """
        return self.ssl_context.wrap_socket(
            sock,
            server_side=True,
            do_handshake_on_connect=False,
        )


def _load_certificate(cert_path: str) -> x509.Certificate:
    try:
        data = _read_file(cert_path)
    except OSError as e:
        raise CertificateLoadError(
            f"Cannot read certificate {cert_path}: {e.strerror or e}", path=cert_path
        ) from e

    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise CertificateLoadError(
            f"{cert_path} is not a PEM-encoded X.509 certificate: {e}", path=cert_path
        ) from e


def _load_private_key(key_path: str, certificate: x509.Certificate):
    try:
        data = _read_file(key_path)
    except OSError as e:
        raise KeyLoadError(
            f"Cannot read private key {key_path}: {e.strerror or e}", path=key_path
        ) from e

    try:
        key = serialization.load_pem_private_key(data, password=None)
    except TypeError as e:
        # Raised for encrypted keys when no password is supplied.
        raise KeyLoadError(f"{key_path} is encrypted: {e}", path=key_path) from e
    except (ValueError, UnsupportedAlgorithm) as e:
        raise KeyLoadError(
            f"{key_path} is not a usable PEM private key: {e}", path=key_path
        ) from e

    if _public_key_der(key.public_key()) != _public_key_der(certificate.public_key()):
        raise KeyLoadError(
            f"Private key {key_path} does not match the loaded certificate",
            path=key_path,
        )

    return key


def _load_trust_anchor(ssl_context: ssl.SSLContext, trust_anchor_path: Optional[str]) -> int:
    """Install the CA file into the context. Returns the number of anchors."""
    if not trust_anchor_path:
        raise TrustAnchorLoadError("Client verification requires a trust anchor file")

    try:
        data = _read_file(trust_anchor_path)
    except OSError as e:
        raise TrustAnchorLoadError(
            f"Cannot read trust anchor {trust_anchor_path}: {e.strerror or e}",
            path=trust_anchor_path,
        ) from e

    try:
        anchors = x509.load_pem_x509_certificates(data)
    except ValueError as e:
        raise TrustAnchorLoadError(
            f"{trust_anchor_path} contains no PEM certificates: {e}",
            path=trust_anchor_path,
        ) from e

    try:
        ssl_context.load_verify_locations(cafile=trust_anchor_path)
    except (ssl.SSLError, OSError) as e:
        raise TrustAnchorLoadError(
            f"OpenSSL rejected trust anchor {trust_anchor_path}: {e}",
            path=trust_anchor_path,
        ) from e

    return len(anchors)


def build_tls_context(
    cert_path: str,
    key_path: str,
    trust_anchor_path: Optional[str] = None,
    require_client_cert: bool = True,
) -> TlsContext:
    """
    Build the server TLS context, or fail with a file-specific error.

    Args:
        cert_path: PEM server certificate.
        key_path: PEM private key (unencrypted) matching the certificate.
        trust_anchor_path: PEM CA bundle for client verification.
        require_client_cert: Require and verify a client certificate.

    Returns:
        A fully initialised TlsContext.

    Raises:
        CertificateLoadError: Certificate missing or malformed.
        KeyLoadError: Key missing, malformed, or not matching the certificate.
        TrustAnchorLoadError: Client verification requested but the CA
            file cannot be loaded.
    """
    certificate = _load_certificate(cert_path)
    _load_private_key(key_path, certificate)

    ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ssl_context.minimum_version = ssl.TLSVersion.TLSv1_2

    try:
        ssl_context.load_cert_chain(certfile=cert_path, keyfile=key_path)
    except (ssl.SSLError, OSError) as e:
        # Both files already parsed, so this is OpenSSL disagreeing about
        # the pair (e.g. an algorithm it cannot use).
        if "KEY" in (getattr(e, "reason", None) or "").upper():
            raise KeyLoadError(f"OpenSSL rejected {key_path}: {e}", path=key_path) from e
        raise CertificateLoadError(f"OpenSSL rejected {cert_path}: {e}", path=cert_path) from e

    if require_client_cert:
        count = _load_trust_anchor(ssl_context, trust_anchor_path)
        ssl_context.verify_mode = ssl.CERT_REQUIRED
        logger.debug(f"Loaded {count} trust anchor(s) from {trust_anchor_path}")
    else:
        ssl_context.verify_mode = ssl.CERT_NONE

    context = TlsContext(
        ssl_context=ssl_context,
        cert_path=cert_path,
        key_path=key_path,
        trust_anchor_path=trust_anchor_path if require_client_cert else None,
        require_client_cert=require_client_cert,
        subject=certificate.subject.rfc4514_string(),
    )
    logger.info(f"TLS context ready for {context.subject}: {context.mode_description}")
    return context


def tls_context_from_config(config) -> Optional[TlsContext]:
    """Build the context described by a ServerConfig, or None in plaintext mode."""
    if not config.tls_enabled:
        return None
    return build_tls_context(
        cert_path=config.cert_path,
        key_path=config.key_path,
        trust_anchor_path=config.trust_anchor_path,
        require_client_cert=config.require_client_cert,
    )
