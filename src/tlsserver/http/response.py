"""
=============================================================================
RESPONSE SYNTHESIS
=============================================================================

Every request, well-formed or not, gets the same kind of answer: a small
HTML page echoing the method and target that were parsed.

=============================================================================
WIRE FORMAT
=============================================================================

    HTTP/1.1 200 OK\r\n                     ← status line (always 200)
    Content-Type: text/html\r\n
    Content-Length: 187\r\n                 ← len(body) in BYTES
    Connection: close\r\n                   ← one request per connection
    Server: TinyTLSServer/1.0\r\n
    \r\n                                    ← end of headers
    <!DOCTYPE html>...                      ← body

There is deliberately no Date header: the same request line always
produces byte-for-byte the same response.

=============================================================================
SIZING
=============================================================================

The response is assembled from Python strings and encoded once, so there
is no fixed output buffer to overflow. Content-Length is computed from
the encoded body, never guessed. The parser's length caps keep the whole
response small (well under 1 KB).

=============================================================================
"""

from dataclasses import dataclass
from http import HTTPStatus

from .request_line import RequestLine, WIRE_ENCODING


HTTP_VERSION = "HTTP/1.1"
DEFAULT_SERVER_NAME = "TinyTLSServer/1.0"

TLS_TITLE = "Secure Server Response"
TLS_HEADING = "Hello from the TLS server!"
PLAIN_TITLE = "Plain Server Response"
PLAIN_HEADING = "Hello from the plaintext server!"

_PAGE_TEMPLATE = (
    "<!DOCTYPE html>\n"
    "<html>\n"
    "<head><title>{title}</title></head>\n"
    "<body>\n"
    "<h1>{heading}</h1>\n"
    "<p>Method: {method}</p>\n"
    "<p>URL: {target}</p>\n"
    "</body>\n"
    "</html>\n"
)


@dataclass(frozen=True)
class ResponseDocument:
    """
    A finished response: status plus HTML body.

    Attributes:
        status_code: HTTP status code (200 for everything this server sends).
        html_body: The page, as text.
        server_name: Value for the Server header.
    """
    status_code: int
    html_body: str
    server_name: str = DEFAULT_SERVER_NAME

    @property
    def status_line(self) -> str:
        return f"{HTTP_VERSION} {self.status_code} {HTTPStatus(self.status_code).phrase}"

    @property
    def body_bytes(self) -> bytes:
        return self.html_body.encode(WIRE_ENCODING)

    @property
    def headers(self) -> dict:
        return {
            "Content-Type": "text/html",
            "Content-Length": str(len(self.body_bytes)),
            "Connection": "close",
            "Server": self.server_name,
        }

    def to_bytes(self) -> bytes:
        """Serialize status line, headers, blank line and body."""
        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in self.headers.items())
        head = ("\r\n".join(lines) + "\r\n\r\n").encode(WIRE_ENCODING)
        return head + self.body_bytes


def render_page(request_line: RequestLine, tls: bool) -> str:
    """Build the HTML page; method and target are inserted unescaped."""
    return _PAGE_TEMPLATE.format(
        title=TLS_TITLE if tls else PLAIN_TITLE,
        heading=TLS_HEADING if tls else PLAIN_HEADING,
        method=request_line.method,
        target=request_line.target,
    )


def synthesize(
    request_line: RequestLine,
    tls: bool,
    server_name: str = DEFAULT_SERVER_NAME,
) -> ResponseDocument:
    """
    Build the response for a parsed request line.

    Args:
        request_line: Parsed method/target (possibly both empty).
        tls: Whether the exchange happened over TLS; picks title/heading.
        server_name: Value for the Server header.
    """
    return ResponseDocument(
        status_code=HTTPStatus.OK.value,
        html_body=render_page(request_line, tls),
        server_name=server_name,
    )
