"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes a static file server can produce, with reason phrases.

A single request resolves to exactly one of these:

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  200   │ OK                  - Full file body                      │
    │  206   │ Partial Content     - Satisfiable byte range              │
    │  304   │ Not Modified        - If-Modified-Since still fresh       │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  403   │ Forbidden           - Dotfile denied / permission error   │
    │  404   │ Not Found           - Missing file or index               │
    │  416   │ Range Not Satisfiable - Range outside the file            │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  500   │ Internal Server Error - Everything else                   │
    └────────┴───────────────────────────────────────────────────────────┘

The host server (server.py) additionally uses the 4xx/5xx codes needed to
reject malformed requests before they reach the pipeline.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    Being an IntEnum, members compare equal to plain integers:

        >>> HTTPStatus.PARTIAL_CONTENT == 206
        True
        >>> HTTPStatus.PARTIAL_CONTENT.phrase
        'Partial Content'
    """

    # =========================================================================
    # 2xx SUCCESS
    # =========================================================================
    OK = 200
    PARTIAL_CONTENT = 206               # Range request fulfilled

    # =========================================================================
    # 3xx REDIRECTION
    # =========================================================================
    NOT_MODIFIED = 304                  # Cached copy is still valid

    # =========================================================================
    # 4xx CLIENT ERRORS
    # =========================================================================
    BAD_REQUEST = 400                   # Malformed request syntax
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408               # Client took too long to send headers
    PAYLOAD_TOO_LARGE = 413
    RANGE_NOT_SATISFIABLE = 416
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431

    # =========================================================================
    # 5xx SERVER ERRORS
    # =========================================================================
    INTERNAL_SERVER_ERROR = 500
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """
        Reason phrase for the status line.

            HTTP/1.1 206 Partial Content
                     ─── ───────────────
                      │         └── phrase
                      └──────────── code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_error(self) -> bool:
        """4xx or 5xx."""
        return self >= 400


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.PARTIAL_CONTENT: "Partial Content",
    HTTPStatus.NOT_MODIFIED: "Not Modified",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.RANGE_NOT_SATISFIABLE: "Range Not Satisfiable",
    HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE: "Request Header Fields Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
