"""
HTTP pieces: request-line parsing and response synthesis.
"""

from .request_line import (
    RequestLine,
    parse_request_line,
    MAX_METHOD_LENGTH,
    MAX_TARGET_LENGTH,
)
from .response import ResponseDocument, synthesize, render_page

__all__ = [
    "RequestLine",
    "parse_request_line",
    "MAX_METHOD_LENGTH",
    "MAX_TARGET_LENGTH",
    "ResponseDocument",
    "synthesize",
    "render_page",
]
