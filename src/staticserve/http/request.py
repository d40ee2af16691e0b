"""
=============================================================================
HTTP REQUEST VIEW AND PARSER
=============================================================================

The file pipeline only ever READS three things from a request:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  method             GET / HEAD (anything else falls through)        │
    │  url                "/public/app.js?v=3"  (query stripped later)    │
    │  headers            lowercase keys; "range", "if-modified-since"    │
    └─────────────────────────────────────────────────────────────────────┘

HTTPRequest is that read-only view. RequestParser turns the raw header
block read by the host server into one.

=============================================================================
REQUEST HEAD FORMAT (RFC 7230)
=============================================================================

    GET /public/video.mp4 HTTP/1.1\r\n      ← request line
    Host: localhost:8080\r\n                ← headers
    Range: bytes=0-1023\r\n
    \r\n                                    ← end of head

Header names are case-insensitive, so they are normalized to lowercase at
parse time and never lowercased again downstream.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import unquote, urlsplit
import re


class HTTPParseError(Exception):
    """
    Raised when a request head cannot be parsed.

    Carries the status the host should answer with:

        400 Bad Request                 - Malformed syntax
        405 Method Not Allowed          - Unknown method
        431 Header Fields Too Large     - Head exceeds the size limit
        505 HTTP Version Not Supported  - Not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class HTTPRequest:
    """
    Read-only view of an incoming request.

    Attributes:
        method:         Uppercase HTTP method.
        url:            Request target exactly as received (may hold a query).
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header name (lowercase) → value.
        client_address: (ip, port) of the peer, for logging.
    """

    method: str = "GET"
    url: str = "/"
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    client_address: tuple[str, int] = ("", 0)

    @property
    def path(self) -> str:
        """URL path with the query stripped and percent-escapes decoded."""
        return unquote(urlsplit(self.url).path) or "/"

    @property
    def query(self) -> str:
        return urlsplit(self.url).query

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 connections persist unless "Connection: close" is sent.
        HTTP/1.0 connections close unless "Connection: keep-alive" is sent.
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.0":
            return connection == "keep-alive"
        return connection != "close"

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses a raw request head (request line + headers) into an HTTPRequest.

    The host server reads up to the blank line that ends the head and hands
    the bytes here. Bodies are never parsed: a static file server has no use
    for them.

    ==========================================================================
    REGEX PATTERNS
    ==========================================================================

    REQUEST_LINE_PATTERN: ^([A-Z]+) ([^ ]+) (HTTP/\\d\\.\\d)$
        method, request target, version

    HEADER_PATTERN: ^([^:]+):\\s*(.*)$
        name, value (leading whitespace dropped)

    ==========================================================================
    """

    VALID_METHODS = {
        "GET", "HEAD", "POST", "PUT", "DELETE",
        "PATCH", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_head_size: int = 64 * 1024):
        self.max_head_size = max_head_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse a request head.

        Args:
            data: Bytes up to and including the terminating blank line.
            client_address: Peer address for logging.

        Raises:
            HTTPParseError: If the head is malformed or oversized.
        """
        if len(data) > self.max_head_size:
            raise HTTPParseError(
                f"Request head too large: {len(data)} bytes",
                status_code=431,
            )

        head = data.split(b"\r\n\r\n", 1)[0]
        text = head.decode("latin-1")
        lines = text.split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request")

        method, url, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        return HTTPRequest(
            method=method,
            url=url,
            version=version,
            headers=headers,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, url, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        return method, url, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a lowercase-keyed dict.

        - Obsolete line folding (leading SP/HTAB) continues the previous value.
        - Repeated headers are joined with ", " per RFC 7230 §3.2.2.
        - Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}
        current_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
) -> HTTPRequest:
    """Parse a request head with default limits."""
    return RequestParser().parse(data, client_address)
