"""
=============================================================================
HTTP RESPONSE MODEL
=============================================================================

A response is accumulated in a ResponseBuilder and finalized ONCE into an
HTTPResponse, which a ResponseSink then writes in a single step:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   ResponseBuilder            HTTPResponse              ResponseSink  │
    │   ───────────────            ────────────              ────────────  │
    │   .status(206)        ─►     status                ─►  head  (once)  │
    │   .header(...)               headers                   body / stream │
    │   .stream(FileStream)        body | stream                           │
    │   .build()                                                           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Nothing touches the wire until the whole header set is known, so an error
discovered half-way through composing a response can still replace it
completely.

=============================================================================
BODY SOURCES
=============================================================================

    body   : bytes                         small, in-memory (JSON errors)
    stream : AsyncIterable[bytes] | None   file windows, read lazily

When a stream is set the body bytes are ignored. Streams that need
explicit release (FileStream) are closed by whoever opened them, not by
the sink.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterable, Dict, Optional, Union
import json

from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """
    A finalized response: status, headers, and a body source.

    `headers` holds exactly what the application decided. Transport headers
    (Date, Server, Connection) are added at serialization time only.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    stream: Optional[AsyncIterable[bytes]] = None
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def head_bytes(
        self,
        server_name: str = "staticserve",
        extra: Optional[Dict[str, str]] = None,
    ) -> bytes:
        """
        Serialize the status line and headers.

            HTTP/1.1 206 Partial Content\\r\\n
            Content-Range: bytes 0-99/1000\\r\\n
            Content-Length: 100\\r\\n
            Date: ...\\r\\n                   ← added here
            Server: staticserve\\r\\n        ← added here
            \\r\\n

        Args:
            server_name: Value for the Server header.
            extra: Transport headers (e.g. Connection) appended last.
        """
        response_headers = dict(self.headers)

        if (
            self.stream is None
            and self.get_header("Content-Length") is None
            and self.status != HTTPStatus.NOT_MODIFIED
        ):
            response_headers["Content-Length"] = str(len(self.body))

        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)
        if extra:
            response_headers.update(extra)

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")
        return "\r\n".join(lines).encode("latin-1") + b"\r\n"

    def to_bytes(self, server_name: str = "staticserve") -> bytes:
        """Head and in-memory body in one buffer. Streams are not consumed."""
        return self.head_bytes(server_name) + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.PARTIAL_CONTENT)
            .header("Content-Range", "bytes 0-99/1000")
            .header("Content-Length", "100")
            .stream(file_stream)
            .build())

    Setting a header replaces any previous header with the same name in a
    different case, so "cache-control" and "Cache-Control" never coexist.
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body = b""
        self._stream: Optional[AsyncIterable[bytes]] = None

    def status(self, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: Union[str, int]) -> "ResponseBuilder":
        lowered = name.lower()
        for existing in [k for k in self._headers if k.lower() == lowered]:
            del self._headers[existing]
        self._headers[name] = str(value)
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        for name, value in headers.items():
            self.header(name, value)
        return self

    def has_header(self, name: str) -> bool:
        lowered = name.lower()
        return any(k.lower() == lowered for k in self._headers)

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def json(self, data: Any) -> "ResponseBuilder":
        """Serialize `data` as the body with an application/json type."""
        self._body = json.dumps(data).encode("utf-8")
        return self.content_type("application/json")

    def stream(self, stream: AsyncIterable[bytes]) -> "ResponseBuilder":
        self._stream = stream
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
            stream=self._stream,
        )


# =============================================================================
# HTTP DATES
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an IMF-fixdate (RFC 7231 §7.1.1.1).

        Wed, 15 Jun 2024 10:00:00 GMT

    HTTP dates are always GMT; aware datetimes are converted first.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)

    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def parse_http_date(value: str) -> Optional[datetime]:
    """
    Parse an HTTP date header into an aware UTC datetime.

    Accepts the three formats RFC 7231 requires recipients to handle
    (IMF-fixdate, RFC 850, asctime). Returns None for anything unparsable.
    """
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
