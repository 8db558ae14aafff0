"""
Unit tests for response synthesis.
"""

import pytest

from tlsserver.http.request_line import RequestLine, parse_request_line
from tlsserver.http.response import (
    ResponseDocument,
    synthesize,
    render_page,
    TLS_TITLE,
    PLAIN_TITLE,
    DEFAULT_SERVER_NAME,
)


def _split(raw: bytes):
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("iso-8859-1").split("\r\n")
    headers = dict(line.split(": ", 1) for line in lines[1:])
    return lines[0], headers, body


class TestSynthesize:
    """Tests for the response built from a request line."""

    def test_status_line(self):
        """Test that every response is 200 OK."""
        response = synthesize(RequestLine("GET", "/"), tls=True)

        assert response.status_code == 200
        assert response.status_line == "HTTP/1.1 200 OK"

    def test_empty_request_line_still_200(self):
        """Test that malformed input is answered normally."""
        response = synthesize(RequestLine(), tls=False)

        assert response.status_code == 200
        assert "<p>Method: </p>" in response.html_body
        assert "<p>URL: </p>" in response.html_body

    def test_method_and_target_echoed(self):
        """Test that method and target appear in the page."""
        response = synthesize(RequestLine("GET", "/index.html"), tls=True)

        assert "<p>Method: GET</p>" in response.html_body
        assert "<p>URL: /index.html</p>" in response.html_body

    def test_values_not_escaped(self):
        """Test that markup in the target is inserted verbatim."""
        response = synthesize(RequestLine("GET", "/<script>"), tls=True)
        assert "<p>URL: /<script></p>" in response.html_body

    def test_tls_and_plain_titles_differ(self):
        """Test that the page says which transport was used."""
        line = RequestLine("GET", "/")

        assert TLS_TITLE in render_page(line, tls=True)
        assert PLAIN_TITLE in render_page(line, tls=False)
        assert TLS_TITLE not in render_page(line, tls=False)

    def test_server_name(self):
        """Test the Server header."""
        assert synthesize(RequestLine(), tls=True).headers["Server"] == DEFAULT_SERVER_NAME
        assert synthesize(RequestLine(), tls=True, server_name="X/2").headers["Server"] == "X/2"


class TestWireFormat:
    """Tests for ResponseDocument.to_bytes()."""

    def test_headers(self):
        """Test the required headers."""
        status, headers, _ = _split(synthesize(RequestLine("GET", "/"), tls=True).to_bytes())

        assert status == "HTTP/1.1 200 OK"
        assert headers["Content-Type"] == "text/html"
        assert headers["Connection"] == "close"

    @pytest.mark.parametrize("raw", [
        b"GET /index.html HTTP/1.1\r\n",
        b"",
        b"GET /caf\xc3\xa9\xff HTTP/1.1\r\n",
        b"X" * 40 + b" /" + b"y" * 600,
    ])
    def test_content_length_matches_body(self, raw):
        """Test that Content-Length is the body's byte count."""
        response = synthesize(parse_request_line(raw), tls=False)
        _, headers, body = _split(response.to_bytes())

        assert int(headers["Content-Length"]) == len(body)
        assert body == response.body_bytes

    def test_non_ascii_target_bytes_preserved(self):
        """Test that the client's bytes appear unchanged in the body."""
        target = b"/\xe9t\xe9"
        response = synthesize(parse_request_line(b"GET " + target + b" HTTP/1.1"), tls=True)

        assert b"<p>URL: " + target + b"</p>" in response.to_bytes()

    def test_identical_requests_identical_bytes(self):
        """Test that the response does not vary between calls."""
        line = parse_request_line(b"GET /same HTTP/1.1\r\n")

        assert synthesize(line, tls=True).to_bytes() == synthesize(line, tls=True).to_bytes()

    def test_head_and_body_separator(self):
        """Test the blank line between headers and body."""
        raw = ResponseDocument(status_code=200, html_body="<p>x</p>").to_bytes()

        assert raw.endswith(b"\r\n\r\n<p>x</p>")
        assert raw.count(b"\r\n\r\n") == 1
