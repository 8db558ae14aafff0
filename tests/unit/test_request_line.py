"""
Unit tests for request-line parsing.
"""

import pytest

from tlsserver.http.request_line import (
    RequestLine,
    parse_request_line,
    MAX_METHOD_LENGTH,
    MAX_TARGET_LENGTH,
)


class TestParseRequestLine:
    """Tests for method/target extraction."""

    def test_simple_get(self):
        """Test a standard request line."""
        line = parse_request_line(b"GET /index.html HTTP/1.1\r\nHost: x\r\n\r\n")

        assert line.method == "GET"
        assert line.target == "/index.html"

    def test_headers_are_ignored(self):
        """Test that only the first line is looked at."""
        data = b"POST /submit HTTP/1.1\r\nX-Evil: DELETE /other\r\n\r\nbody"
        assert parse_request_line(data) == RequestLine("POST", "/submit")

    def test_unknown_method_accepted(self):
        """Test that the method is not validated."""
        assert parse_request_line(b"BREW /pot HTTP/1.1\r\n") == RequestLine("BREW", "/pot")

    def test_bare_lf_terminator(self):
        """Test a line ending in LF only."""
        assert parse_request_line(b"GET /a HTTP/1.0\n") == RequestLine("GET", "/a")

    def test_no_line_terminator(self):
        """Test a request cut short before the end of the line."""
        assert parse_request_line(b"GET /partial") == RequestLine("GET", "/partial")

    def test_method_with_trailing_space_only(self):
        """Test that a missing target yields an empty target."""
        assert parse_request_line(b"POST ") == RequestLine("POST", "")

    def test_target_without_version(self):
        """Test HTTP/0.9-style lines."""
        assert parse_request_line(b"GET /old\r\n") == RequestLine("GET", "/old")

    def test_leading_whitespace_skipped(self):
        """Test leading spaces before the method."""
        assert parse_request_line(b"   GET /x HTTP/1.1\r\n") == RequestLine("GET", "/x")

    def test_multiple_separators(self):
        """Test runs of whitespace between tokens."""
        assert parse_request_line(b"GET \t /spaced HTTP/1.1\r\n") == RequestLine("GET", "/spaced")


class TestMalformedInput:
    """Tests for input with no usable request line."""

    @pytest.mark.parametrize("data", [
        b"",
        b"\r\n",
        b"GET\r\n",
        b"NOSPACEATALL",
        b"   ",
        b"\r\nGET / HTTP/1.1\r\n",
    ])
    def test_empty_result(self, data):
        """Test that unparseable input gives empty fields, not an error."""
        line = parse_request_line(data)

        assert line.method == ""
        assert line.target == ""
        assert line.is_empty

    def test_binary_garbage(self):
        """Test that arbitrary bytes never raise."""
        line = parse_request_line(bytes(range(256)))
        assert isinstance(line, RequestLine)


class TestLengthCaps:
    """Tests for method and target truncation."""

    def test_long_method_truncated(self):
        """Test the method cap."""
        method = b"M" * (MAX_METHOD_LENGTH + 10)
        line = parse_request_line(method + b" /x HTTP/1.1\r\n")

        assert line.method == "M" * MAX_METHOD_LENGTH
        assert line.target == "/x"

    def test_long_target_truncated(self):
        """Test the target cap."""
        target = b"/" + b"a" * 1000
        line = parse_request_line(b"GET " + target + b" HTTP/1.1\r\n")

        assert len(line.target) == MAX_TARGET_LENGTH
        assert line.target == target[:MAX_TARGET_LENGTH].decode()

    def test_values_at_cap_untouched(self):
        """Test values exactly at the caps."""
        method = "X" * MAX_METHOD_LENGTH
        target = "/" + "b" * (MAX_TARGET_LENGTH - 1)
        line = parse_request_line(f"{method} {target} HTTP/1.1\r\n".encode())

        assert line == RequestLine(method, target)


class TestVerbatimBytes:
    """Tests for byte-exact decoding."""

    def test_non_ascii_target_round_trips(self):
        """Test that high bytes come back unchanged when re-encoded."""
        target = b"/caf\xc3\xa9/\xff"
        line = parse_request_line(b"GET " + target + b" HTTP/1.1\r\n")

        assert line.target.encode("iso-8859-1") == target

    def test_markup_kept_as_is(self):
        """Test that nothing is escaped or normalized."""
        line = parse_request_line(b"GET /<b>%20&x=1 HTTP/1.1\r\n")
        assert line.target == "/<b>%20&x=1"
