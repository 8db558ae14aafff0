"""
pytest configuration and fixtures.
"""

import datetime
import ipaddress
import socket
import ssl
import threading
from dataclasses import dataclass
from typing import Generator, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from tlsserver import TLSServer, ServerConfig


# =============================================================================
# CERTIFICATE MATERIAL
# =============================================================================


@dataclass
class PemFiles:
    """Paths to the PEM files generated for a test session."""
    ca_cert: str
    server_cert: str
    server_key: str
    client_cert: str
    client_key: str
    other_key: str
    rogue_ca_cert: str
    rogue_client_cert: str
    rogue_client_key: str
    garbage: str
    directory: Path


def _new_key():
    return ec.generate_private_key(ec.SECP256R1())


def _name(common_name: str) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "tlsserver tests"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])


def _make_ca(common_name: str):
    key = _new_key()
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name))
        .issuer_name(_name(common_name))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )
    return key, cert


def _make_leaf(common_name: str, ca_key, ca_cert, server: bool):
    key = _new_key()
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage(
                [ExtendedKeyUsageOID.SERVER_AUTH if server else ExtendedKeyUsageOID.CLIENT_AUTH]
            ),
            critical=False,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
    )
    if server:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
    return key, builder.sign(ca_key, hashes.SHA256())


def _write_cert(path: Path, cert) -> str:
    path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    return str(path)


def _write_key(path: Path, key) -> str:
    path.write_bytes(key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    return str(path)


@pytest.fixture(scope="session")
def pem_files(tmp_path_factory) -> PemFiles:
    """CA, server and client certificates plus a few deliberately bad files."""
    directory = tmp_path_factory.mktemp("pki")

    ca_key, ca_cert = _make_ca("Test Root CA")
    server_key, server_cert = _make_leaf("localhost", ca_key, ca_cert, server=True)
    client_key, client_cert = _make_leaf("test-client", ca_key, ca_cert, server=False)

    rogue_ca_key, rogue_ca_cert = _make_ca("Rogue Root CA")
    rogue_key, rogue_cert = _make_leaf("rogue-client", rogue_ca_key, rogue_ca_cert, server=False)

    garbage = directory / "garbage.pem"
    garbage.write_text("-----BEGIN CERTIFICATE-----\nnot base64 at all\n-----END CERTIFICATE-----\n")

    return PemFiles(
        ca_cert=_write_cert(directory / "ca.crt", ca_cert),
        server_cert=_write_cert(directory / "server.crt", server_cert),
        server_key=_write_key(directory / "server.key", server_key),
        client_cert=_write_cert(directory / "client.crt", client_cert),
        client_key=_write_key(directory / "client.key", client_key),
        other_key=_write_key(directory / "other.key", _new_key()),
        rogue_ca_cert=_write_cert(directory / "rogue-ca.crt", rogue_ca_cert),
        rogue_client_cert=_write_cert(directory / "rogue-client.crt", rogue_cert),
        rogue_client_key=_write_key(directory / "rogue-client.key", rogue_key),
        garbage=str(garbage),
        directory=directory,
    )


def client_ssl_context(
    pem: PemFiles,
    cert: Optional[str] = None,
    key: Optional[str] = None,
) -> ssl.SSLContext:
    """Client context trusting the test CA, optionally presenting a certificate."""
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=pem.ca_cert)
    if cert:
        context.load_cert_chain(certfile=cert, keyfile=key)
    return context


# =============================================================================
# CLIENT HELPERS
# =============================================================================


def exchange(
    port: int,
    request: bytes,
    context: Optional[ssl.SSLContext] = None,
    timeout: float = 5.0,
) -> bytes:
    """
    Connect, send `request`, read until the server closes.

    Returns everything received; b"" when the server dropped the
    connection without answering (including TLS alerts and resets).
    """
    chunks = []
    raw = socket.create_connection(("127.0.0.1", port), timeout=timeout)
    sock = raw
    try:
        if context is not None:
            sock = context.wrap_socket(raw, server_hostname="localhost")
        sock.sendall(request)
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    except (ssl.SSLError, ConnectionError):
        pass
    finally:
        sock.close()
    return b"".join(chunks)


def split_response(raw: bytes) -> Tuple[str, dict, bytes]:
    """Split a raw response into (status line, headers, body)."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("iso-8859-1").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip()] = value.strip()
    return lines[0], headers, body


# =============================================================================
# SERVER HARNESS
# =============================================================================


class ServerHarness:
    """Runs a TLSServer on a background thread."""

    def __init__(self, server: TLSServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> "ServerHarness":
        self._thread = self.server.serve_in_background()
        return self

    def stop(self):
        self.server.shutdown(timeout=15.0)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


def base_config(**overrides) -> ServerConfig:
    """Test defaults: loopback, OS-chosen port, short deadlines."""
    settings = dict(
        host="127.0.0.1",
        port=0,
        timeout=5.0,
        min_workers=2,
        max_workers=16,
        log_level="WARNING",
    )
    settings.update(overrides)
    return ServerConfig(**settings)


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def plain_server() -> Generator[ServerHarness, None, None]:
    """Plaintext server on a random port."""
    harness = ServerHarness(TLSServer(base_config(tls_enabled=False))).start()
    yield harness
    harness.stop()


@pytest.fixture
def mtls_server(pem_files: PemFiles) -> Generator[ServerHarness, None, None]:
    """TLS server requiring client certificates signed by the test CA."""
    config = base_config(
        cert_path=pem_files.server_cert,
        key_path=pem_files.server_key,
        trust_anchor_path=pem_files.ca_cert,
        require_client_cert=True,
    )
    harness = ServerHarness(TLSServer(config)).start()
    yield harness
    harness.stop()


@pytest.fixture
def tls_server(pem_files: PemFiles) -> Generator[ServerHarness, None, None]:
    """TLS server that does not ask for client certificates."""
    config = base_config(
        cert_path=pem_files.server_cert,
        key_path=pem_files.server_key,
        require_client_cert=False,
    )
    harness = ServerHarness(TLSServer(config)).start()
    yield harness
    harness.stop()


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /index.html HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"\r\n"
    )
