"""
=============================================================================
CONDITIONAL AND RANGE EVALUATION
=============================================================================

Given a file's size and modification time, decide which status the response
gets and which bytes it carries.

=============================================================================
DECISION TABLE (first row that applies wins)
=============================================================================

    ┌──────────────────────────────────────┬────────┬───────────────────────┐
    │ Condition                            │ Status │ Window / headers      │
    ├──────────────────────────────────────┼────────┼───────────────────────┤
    │ size == 0, Range present, ranges on  │  416   │ bytes */0             │
    │ size == 0                            │  200   │ empty                 │
    │ size > max_allowed_size              │   -    │ TooLargeError         │
    │ GET, If-Modified-Since >= mtime      │  304   │ nothing               │
    │ Range present, ranges on, valid      │  206   │ [start, end]          │
    │ Range present, ranges on, invalid    │  416   │ bytes */size          │
    │ otherwise                            │  200   │ [0, size - 1]         │
    └──────────────────────────────────────┴────────┴───────────────────────┘

=============================================================================
RANGE GRAMMAR
=============================================================================

Only a single "bytes=<start>-<end>?" range is supported:

    bytes=0-499       → [0, 499]
    bytes=500-        → [500, size - 1]
    bytes=-500        → unsatisfiable (suffix ranges need a start)
    bytes=0-1,5-9     → unsatisfiable (no multipart responses)

A range is satisfiable when start <= end < size.

=============================================================================
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional
import re

from .response import parse_http_date
from .status_codes import HTTPStatus
from ..errors import TooLargeError


RANGE_PATTERN = re.compile(r"^bytes=([0-9]+)-([0-9]*)$")


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte window [start, end]."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


@dataclass(frozen=True)
class ResponseDecision:
    """
    What the composer should send.

    `window` is None whenever no bytes are sent (304, 416, empty file).
    `content_range` is set for 206 and 416.
    """

    status: HTTPStatus
    window: Optional[ByteRange] = None
    content_range: Optional[str] = None

    @property
    def length(self) -> int:
        return self.window.length if self.window else 0


def parse_range(header: str, size: int) -> Optional[ByteRange]:
    """
    Parse a Range header against a file size.

    Returns None when the header is malformed or the window is not
    satisfiable; the caller answers 416 in that case.

        >>> parse_range("bytes=0-499", 1000)
        ByteRange(start=0, end=499)
        >>> parse_range("bytes=900-", 1000)
        ByteRange(start=900, end=999)
        >>> parse_range("bytes=0-1000", 1000) is None
        True
    """
    match = RANGE_PATTERN.match(header.strip())
    if not match:
        return None

    start_text, end_text = match.groups()
    start = int(start_text)
    end = int(end_text) if end_text else size - 1

    if start >= size or end >= size or start > end:
        return None
    return ByteRange(start, end)


def is_not_modified(if_modified_since: Optional[str], mtime: float) -> bool:
    """
    True when the client's copy is at least as new as the file.

    HTTP dates have whole-second resolution, so the file time is truncated
    to the second before comparing. Otherwise a client echoing back our own
    Last-Modified value would never get a 304.
    """
    if not if_modified_since:
        return False
    since = parse_http_date(if_modified_since)
    if since is None:
        return False
    modified = datetime.fromtimestamp(int(mtime), tz=timezone.utc)
    return since >= modified


def evaluate(
    method: str,
    headers: Mapping[str, str],
    size: int,
    mtime: float,
    accept_ranges: bool = True,
    max_allowed_size: Optional[int] = None,
) -> ResponseDecision:
    """
    Choose the status and byte window for a resolved file.

    Args:
        method: Request method (HEAD still gets a window; the composer
            decides whether to stream it).
        headers: Request headers with lowercase keys.
        size: File size in bytes.
        mtime: Modification time, seconds since the epoch.
        accept_ranges: Whether Range headers are honored at all.
        max_allowed_size: Byte ceiling, or None for no limit.

    Raises:
        TooLargeError: If the file exceeds max_allowed_size.
    """
    range_header = headers.get("range") if accept_ranges else None

    if size == 0:
        if range_header:
            return ResponseDecision(
                HTTPStatus.RANGE_NOT_SATISFIABLE,
                content_range="bytes */0",
            )
        return ResponseDecision(HTTPStatus.OK)

    if max_allowed_size and size > max_allowed_size:
        raise TooLargeError("File Size is greater than the allowed size")

    if method == "GET" and is_not_modified(headers.get("if-modified-since"), mtime):
        return ResponseDecision(HTTPStatus.NOT_MODIFIED)

    if range_header:
        window = parse_range(range_header, size)
        if window is None:
            return ResponseDecision(
                HTTPStatus.RANGE_NOT_SATISFIABLE,
                content_range=f"bytes */{size}",
            )
        return ResponseDecision(
            HTTPStatus.PARTIAL_CONTENT,
            window=window,
            content_range=window.content_range(size),
        )

    return ResponseDecision(HTTPStatus.OK, window=ByteRange(0, size - 1))
