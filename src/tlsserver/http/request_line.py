"""
=============================================================================
REQUEST LINE PARSING
=============================================================================

The only part of a request this server looks at is its first line:

    GET /index.html HTTP/1.1\r\n
    └─┘ └─────────┘ └──────┘
   method  target    (ignored)

=============================================================================
RULES
=============================================================================

    1. The line ends at the first CR or LF, or at the end of the buffer
       (a request cut short by the read buffer still parses).
    2. Leading whitespace is skipped.
    3. method = bytes up to the first whitespace.
       target = the next whitespace-delimited token (may be empty).
    4. No whitespace at all on the line → method and target are both "".
       This is NOT an error; the caller still answers.
    5. Nothing is validated. "BREW" is as good a method as "GET".
    6. method is capped at MAX_METHOD_LENGTH bytes, target at
       MAX_TARGET_LENGTH bytes. Longer values are truncated.

Bytes are decoded as ISO-8859-1: each byte becomes exactly one
character and encodes back to the same byte, so whatever the client
sent can be echoed back verbatim.

    parse_request_line(b"GET /a HTTP/1.1\r\n")   → ("GET", "/a")
    parse_request_line(b"GET\r\n")                → ("", "")
    parse_request_line(b"")                       → ("", "")
    parse_request_line(b"POST ")                  → ("POST", "")

=============================================================================
"""

from dataclasses import dataclass


MAX_METHOD_LENGTH = 16
MAX_TARGET_LENGTH = 256

WIRE_ENCODING = "iso-8859-1"

_WHITESPACE = b" \t\x0b\x0c"


@dataclass(frozen=True)
class RequestLine:
    """Method and target taken from the first line of a request."""
    method: str = ""
    target: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.method and not self.target


def _first_line(data: bytes) -> bytes:
    end = len(data)
    for terminator in (b"\r", b"\n"):
        index = data.find(terminator)
        if index != -1 and index < end:
            end = index
    return data[:end]


def _split_token(line: bytes) -> tuple:
    """Return (token, rest) where token is everything before the first whitespace."""
    for index, byte in enumerate(line):
        if byte in _WHITESPACE:
            return line[:index], line[index:]
    return line, b""


def parse_request_line(data: bytes) -> RequestLine:
    """
    Extract method and target from raw request bytes.

    Args:
        data: Bytes as read from the client (any length, any content).

    Returns:
        RequestLine, with empty fields when no separator was found.
    """
    line = _first_line(data).lstrip(_WHITESPACE)

    method, rest = _split_token(line)
    if not rest:
        return RequestLine()

    target, _ = _split_token(rest.lstrip(_WHITESPACE))

    return RequestLine(
        method=method[:MAX_METHOD_LENGTH].decode(WIRE_ENCODING),
        target=target[:MAX_TARGET_LENGTH].decode(WIRE_ENCODING),
    )
