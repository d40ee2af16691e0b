"""
=============================================================================
SEND FILE
=============================================================================

`send_file()` drives one file through the whole pipeline and writes at most
one response:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   resolve_file()  ──►  evaluate()  ──►  compose  ──►  sink.send()   │
    │        │                   │                              │          │
    │        └───────────────────┴──── failure ─────────────────┘          │
    │                                     │                                │
    │                                     ▼                                │
    │                               _settle_failure()                      │
    │                     not-applicable  → nothing written               │
    │                     dotfile deny    → 403 always                    │
    │                     fallthrough on  → nothing written               │
    │                     fallthrough off → JSON error response           │
    │                     headers already out → abort connection          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The outcome is returned as a SendResult, and reported once more to the
optional callback, so callers never need to inspect the sink to learn what
happened.

=============================================================================
RESPONSE HEADERS
=============================================================================

    Accept-Ranges: bytes                    unless already set upstream
    Cache-Control: public, max-age=3600     unless already set upstream
    <custom headers>                        verbatim, except Accept-Ranges,
                                            Cache-Control, Pragma, Expires
                                            when already set upstream
    Last-Modified: Wed, 15 Jun 2024 ...     when enabled
    ETag: 1024-1718445600000                <size>-<mtime in ms>
    Content-Length: <window length>
    Content-Type: text/css                  see mime_types.resolve_content_type

304 responses carry no headers of their own; 416 carries only
Content-Range.

=============================================================================
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional, Union
import asyncio
import inspect
import logging

import aiofiles

from ..config import StaticOptions
from ..errors import (
    ForbiddenError,
    InternalError,
    error_response,
    is_not_applicable,
    status_for,
)
from ..http.mime_types import resolve_content_type
from ..http.ranges import ResponseDecision, evaluate
from ..http.request import HTTPRequest
from ..http.response import ResponseBuilder, format_http_date
from ..http.sink import ResponseSink
from ..http.status_codes import HTTPStatus
from .resolver import FileInfo, resolve_file


logger = logging.getLogger(__name__)


CHUNK_SIZE = 64 * 1024

# Defaults that an upstream handler may already have decided
SUPPRESSIBLE_HEADERS = ("accept-ranges", "cache-control", "pragma", "expires")

Callback = Callable[[Optional[BaseException]], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class SendResult:
    """
    Outcome of one send_file() call.

    handled is True when a response was written (or started) for the
    request. It is False when control should continue with the next
    handler. `error` is the failure, if any, whether or not it was turned
    into a response.
    """

    handled: bool
    error: Optional[BaseException] = None

    def __bool__(self) -> bool:
        return self.handled


class FileStream:
    """
    Async iterator over the inclusive byte window [start, end] of a file.

        stream = FileStream("/srv/video.mp4", 0, 1023)
        try:
            await stream.open()
            async for chunk in stream:
                ...
        finally:
            await stream.aclose()

    The window is read in chunks of at most `chunk_size` bytes. aclose() is
    idempotent and must run on every exit path so the descriptor is released
    even when the client disconnects mid-transfer.
    """

    def __init__(self, path: str, start: int, end: int, chunk_size: int = CHUNK_SIZE):
        self.path = path
        self.start = start
        self.end = end
        self.chunk_size = chunk_size
        self.closed = False
        self._file = None
        self._remaining = end - start + 1

    async def open(self) -> None:
        """Open and seek. Raises OSError before any byte is sent."""
        if self._file is not None:
            return
        self._file = await aiofiles.open(self.path, "rb")
        if self.start:
            await self._file.seek(self.start)

    def __aiter__(self) -> "FileStream":
        return self

    async def __anext__(self) -> bytes:
        if self.closed or self._remaining <= 0:
            raise StopAsyncIteration
        if self._file is None:
            await self.open()

        chunk = await self._file.read(min(self.chunk_size, self._remaining))
        if not chunk:
            raise InternalError(f"{self.path} was truncated while streaming")
        self._remaining -= len(chunk)
        return chunk

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        handle, self._file = self._file, None
        if handle is not None:
            await handle.close()

    async def __aenter__(self) -> "FileStream":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


# =============================================================================
# RESPONSE COMPOSER
# =============================================================================

def compose_headers(
    builder: ResponseBuilder,
    info: FileInfo,
    decision: ResponseDecision,
    options: StaticOptions,
) -> ResponseBuilder:
    """Apply the header set for a 200/206 (or empty-file 200) response."""
    existing = options.existing_headers

    if options.accept_ranges and "accept-ranges" not in existing:
        builder.header("Accept-Ranges", "bytes")
    if options.cache_control and "cache-control" not in existing:
        builder.header("Cache-Control", options.cache_control_value)

    for name, value in options.headers.items():
        if name.lower() in SUPPRESSIBLE_HEADERS and name.lower() in existing:
            continue
        builder.header(name, value)

    if options.last_modified:
        builder.header(
            "Last-Modified",
            format_http_date(datetime.fromtimestamp(info.mtime, tz=timezone.utc)),
        )
    if options.etag:
        builder.header("ETag", f"{info.size}-{info.mtime_ms}")

    builder.header("Content-Length", decision.length)
    return builder


def compose_empty_file_headers(
    builder: ResponseBuilder,
    info: FileInfo,
    options: StaticOptions,
) -> ResponseBuilder:
    """Headers for a zero-length file: no cache or custom headers."""
    builder.header("Content-Length", 0)
    if options.last_modified:
        builder.header(
            "Last-Modified",
            format_http_date(datetime.fromtimestamp(info.mtime, tz=timezone.utc)),
        )
    if options.etag:
        builder.header("ETag", f"0-{info.mtime_ms}")
    if options.accept_ranges:
        builder.header("Accept-Ranges", "bytes")
    return builder


async def _serve(
    path: str,
    options: StaticOptions,
    sink: ResponseSink,
    request: HTTPRequest,
) -> None:
    info = await resolve_file(path, options)
    content_type = resolve_content_type(
        info.extension,
        custom=options.mime_types,
        lookup=options.mime_lookup,
        default=options.default_mime_type,
    )
    decision = evaluate(
        request.method,
        request.headers,
        info.size,
        info.mtime,
        accept_ranges=options.accept_ranges,
        max_allowed_size=options.max_allowed_size,
    )
    builder = ResponseBuilder().status(decision.status)

    if decision.status == HTTPStatus.NOT_MODIFIED:
        await sink.send(builder.build())
        return

    if decision.status == HTTPStatus.RANGE_NOT_SATISFIABLE:
        builder.header("Content-Range", decision.content_range)
        await sink.send(builder.build())
        return

    if info.size == 0:
        builder.content_type(content_type)
        compose_empty_file_headers(builder, info, options)
        await sink.send(builder.build())
        return

    if decision.content_range:
        builder.header("Content-Range", decision.content_range)
    compose_headers(builder, info, decision, options)
    builder.content_type(content_type)

    if request.method == "HEAD":
        await sink.send(builder.build())
        return

    window = decision.window
    stream = FileStream(info.path, window.start, window.end)
    try:
        await stream.open()
        await sink.send(builder.stream(stream).build())
    finally:
        await stream.aclose()

    logger.debug(f"Served {info.path} [{window.start}-{window.end}] as {int(decision.status)}")


# =============================================================================
# FAILURE HANDLING
# =============================================================================

async def _settle_failure(
    error: BaseException,
    options: StaticOptions,
    sink: ResponseSink,
) -> bool:
    """Write (or not) the response for a failure. Returns `handled`."""
    if is_not_applicable(error):
        return False

    if sink.headers_sent:
        if isinstance(error, ConnectionError):
            logger.debug(f"Client disconnected mid-response: {error!r}")
        else:
            logger.error(f"Failed after response started, aborting: {error!r}")
        await sink.abort()
        return True

    if options.fallthrough and not isinstance(error, ForbiddenError):
        if status_for(error) == HTTPStatus.INTERNAL_SERVER_ERROR:
            logger.error(f"Static file error (falling through): {error!r}")
        return False

    response = error_response(error)
    try:
        await sink.send(response)
    except ConnectionError as exc:
        logger.debug(f"Client went away before error response: {exc!r}")
        await sink.abort()
    return True


async def _notify(callback: Optional[Callback], error: Optional[BaseException]) -> None:
    if callback is None:
        return
    outcome = callback(error)
    if inspect.isawaitable(outcome):
        await outcome


async def send_file(
    path: str,
    options: Union[StaticOptions, Mapping[str, Any], None],
    sink: ResponseSink,
    request: Optional[HTTPRequest] = None,
    callback: Optional[Callback] = None,
) -> SendResult:
    """
    Serve the file at `path` into `sink`.

    Args:
        path: Filesystem path (a directory resolves through the index list).
        options: StaticOptions, or a mapping of overrides over the defaults.
        sink: Where the response goes.
        request: Request view; defaults to a bare GET without headers.
        callback: Called exactly once with None on success or the failure.
            May be a coroutine function.

    Returns:
        SendResult. Request-level failures never raise.
    """
    if not isinstance(options, StaticOptions):
        options = StaticOptions.create(options or {})
    if request is None:
        request = HTTPRequest()

    error: Optional[BaseException] = None
    try:
        await _serve(path, options, sink, request)
        handled = True
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        error = exc
        handled = await _settle_failure(exc, options, sink)

    await _notify(callback, error)
    return SendResult(handled, error)
