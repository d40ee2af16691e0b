"""
=============================================================================
ASYNCIO HTTP HOST
=============================================================================

A small HTTP/1.1 server for running static mounts standalone:

    server = StaticServer(ServerConfig(port=8080))
    server.use(LoggingMiddleware())
    server.use(serve_static("public", base_path="/"))
    asyncio.run(server.serve_forever())

=============================================================================
CONNECTION LOOP
=============================================================================

Every connection is one task on the event loop. No threads: the file
pipeline awaits its disk I/O, so one slow client never blocks another.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   read head (until \\r\\n\\r\\n, bounded by max_head_size)              │
    │        │                                                             │
    │        ▼                                                             │
    │   RequestParser.parse()  ── HTTPParseError ──► error response, close│
    │        │                                                             │
    │        ▼                                                             │
    │   middleware chain ──► terminal 404 handler                         │
    │        │                                                             │
    │        ▼                                                             │
    │   keep-alive and not aborted?  yes → read next head                 │
    │                                no  → close                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The first request on a connection gets `read_timeout` seconds to arrive;
idle keep-alive connections are closed after `keep_alive_timeout`.

=============================================================================
"""

from typing import Optional
import asyncio
import logging

from .config import ServerConfig
from .http.request import HTTPParseError, HTTPRequest, RequestParser
from .http.response import ResponseBuilder
from .http.sink import ResponseSink, StreamSink
from .http.status_codes import HTTPStatus
from .middleware.base import Middleware, MiddlewarePipeline, NextHandler


logger = logging.getLogger(__name__)


# Request bodies are read and discarded up to this size; larger ones close
# the connection.
MAX_DISCARDED_BODY = 1024 * 1024


async def not_found_handler(request: HTTPRequest, sink: ResponseSink) -> None:
    """Terminal handler: nothing in the chain answered."""
    await sink.send(
        ResponseBuilder()
        .status(HTTPStatus.NOT_FOUND)
        .json({
            "statusCode": 404,
            "message": "Not Found",
            "error": f"Cannot {request.method} {request.path}",
        })
        .build()
    )


class StaticServer:
    """
    asyncio host for a middleware chain.

    Args:
        config: Listener settings. Defaults to ServerConfig().
        fallback: Terminal handler when no middleware answers.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        fallback: NextHandler = not_found_handler,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        self._parser = RequestParser(max_head_size=self.config.max_head_size)
        self._middleware = MiddlewarePipeline()
        self._fallback = fallback
        self._handler: Optional[NextHandler] = None
        self._server: Optional[asyncio.AbstractServer] = None

    def use(self, middleware: Middleware) -> "StaticServer":
        """Add middleware. First added runs first."""
        self._middleware.add(middleware)
        self._handler = None
        return self

    @property
    def handler(self) -> NextHandler:
        if self._handler is None:
            self._handler = self._middleware.wrap(self._fallback)
        return self._handler

    @property
    def port(self) -> int:
        """Bound port (useful when configured with port 0)."""
        if self._server and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self.config.port

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle_connection,
            self.config.host,
            self.config.port,
            limit=self.config.max_head_size,
        )
        logger.info(f"Listening on http://{self.config.host}:{self.port}")

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Server stopped")

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    async def __aenter__(self) -> "StaticServer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        peer = writer.get_extra_info("peername") or ("", 0)
        address = (str(peer[0]), int(peer[1]))
        timeout = self.config.read_timeout

        try:
            while True:
                head = await self._read_head(reader, writer, timeout)
                if head is None:
                    break

                try:
                    request = self._parser.parse(head, address)
                except HTTPParseError as e:
                    await self._send_error(writer, HTTPStatus(e.status_code), str(e))
                    break

                if not await self._discard_body(reader, request):
                    break

                keep_alive = self.config.keep_alive and request.is_keep_alive
                sink = StreamSink(
                    writer,
                    server_name=self.config.server_name,
                    keep_alive=keep_alive,
                    keep_alive_timeout=self.config.keep_alive_timeout,
                )

                try:
                    await self.handler(request, sink)
                except ConnectionError:
                    break
                except Exception as e:
                    logger.exception(f"Handler error for {request.method} {request.path}: {e}")
                    if sink.headers_sent:
                        await sink.abort()
                        break
                    await self._send_error(
                        writer, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error"
                    )
                    break

                if sink.aborted or not sink.headers_sent or not keep_alive:
                    break
                timeout = self.config.keep_alive_timeout
        except ConnectionError as e:
            logger.debug(f"Connection from {address[0]} lost: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass  # already gone

    async def _read_head(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        timeout: float,
    ) -> Optional[bytes]:
        """Read one request head, or None when the connection should close."""
        try:
            return await asyncio.wait_for(reader.readuntil(b"\r\n\r\n"), timeout)
        except asyncio.IncompleteReadError:
            return None
        except asyncio.LimitOverrunError:
            await self._send_error(
                writer,
                HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE,
                "Request head too large",
            )
            return None
        except asyncio.TimeoutError:
            if timeout == self.config.read_timeout:
                await self._send_error(writer, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
            return None

    async def _discard_body(self, reader: asyncio.StreamReader, request: HTTPRequest) -> bool:
        length = request.get_header("content-length")
        if not length:
            return True
        try:
            size = int(length)
        except ValueError:
            return False
        if size < 0 or size > MAX_DISCARDED_BODY:
            return False
        if size:
            try:
                await reader.readexactly(size)
            except asyncio.IncompleteReadError:
                return False
        return True

    async def _send_error(
        self,
        writer: asyncio.StreamWriter,
        status: HTTPStatus,
        message: str,
    ) -> None:
        """Error response for failures outside the middleware chain."""
        sink = StreamSink(writer, server_name=self.config.server_name, keep_alive=False)
        response = (ResponseBuilder()
            .status(status)
            .json({"statusCode": int(status), "message": status.phrase, "error": message})
            .build())
        try:
            await sink.send(response)
        except ConnectionError:
            logger.debug("Client went away before error response")
