"""
=============================================================================
RESPONSE SINKS
=============================================================================

A sink is where a finalized HTTPResponse goes. The pipeline never writes
headers piecemeal: it calls `await sink.send(response)` once, and the sink
writes the head followed by the body.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        SINK LIFECYCLE                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   idle ──send()──► head written ──► body chunks ──► finished        │
    │                     headers_sent=True      │                        │
    │                                            │ error mid-body         │
    │                                            ▼                        │
    │                                         abort()                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Once `headers_sent` is True the status can no longer change. A failure
after that point can only be surfaced by aborting the connection.

Backpressure: StreamSink awaits `writer.drain()` after every chunk, so the
file reader is suspended whenever the socket buffer is full.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional
import asyncio
import logging

from .response import HTTPResponse
from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class ResponseAlreadySentError(RuntimeError):
    """Raised when a second response is sent through the same sink."""


class ResponseSink(ABC):
    """
    Outbound port for one request's response.

    Subclasses implement the three primitive writes; `send()` sequences them.
    """

    def __init__(self):
        self.headers_sent = False
        self.finished = False
        self.aborted = False
        self.status: Optional[HTTPStatus] = None
        self.bytes_sent = 0

    async def send(self, response: HTTPResponse) -> None:
        """
        Write `response` in full.

        Raises:
            ResponseAlreadySentError: If a head was already written.
            Exception: Whatever the body stream or transport raises; by then
                headers_sent is True and the caller decides whether to abort.
        """
        if self.headers_sent:
            raise ResponseAlreadySentError(
                f"Response already started with status {self.status}"
            )

        self.status = response.status
        await self._write_head(response)
        self.headers_sent = True

        if response.stream is not None:
            async for chunk in response.stream:
                if chunk:
                    await self._write_body(chunk)
                    self.bytes_sent += len(chunk)
        elif response.body:
            await self._write_body(response.body)
            self.bytes_sent += len(response.body)

        await self._finish()
        self.finished = True

    async def abort(self) -> None:
        """Tear down without completing the body."""
        self.aborted = True
        await self._abort()

    @abstractmethod
    async def _write_head(self, response: HTTPResponse) -> None: ...

    @abstractmethod
    async def _write_body(self, chunk: bytes) -> None: ...

    async def _finish(self) -> None:
        pass

    async def _abort(self) -> None:
        pass


class BufferedSink(ResponseSink):
    """
    Collects the response in memory.

    Useful for embedding the pipeline behind another framework, and as the
    test double for a connection:

        sink = BufferedSink()
        await send_file(path, options, sink)
        assert sink.status == 206
        assert sink.body == expected_bytes
    """

    def __init__(self):
        super().__init__()
        self.headers: Dict[str, str] = {}
        self._body = bytearray()

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive access to a written header."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    async def _write_head(self, response: HTTPResponse) -> None:
        self.headers = dict(response.headers)

    async def _write_body(self, chunk: bytes) -> None:
        self._body.extend(chunk)


class StreamSink(ResponseSink):
    """
    Writes HTTP/1.1 responses to an asyncio StreamWriter.

    Args:
        writer: The connection's writer.
        server_name: Value for the Server header.
        keep_alive: Whether to advertise a persistent connection.
        keep_alive_timeout: Seconds advertised in the Keep-Alive header.
    """

    def __init__(
        self,
        writer: asyncio.StreamWriter,
        server_name: str = "staticserve",
        keep_alive: bool = True,
        keep_alive_timeout: float = 5.0,
    ):
        super().__init__()
        self._writer = writer
        self._server_name = server_name
        self._keep_alive = keep_alive
        self._keep_alive_timeout = keep_alive_timeout

    async def _write_head(self, response: HTTPResponse) -> None:
        if self._keep_alive:
            extra = {
                "Connection": "keep-alive",
                "Keep-Alive": f"timeout={int(self._keep_alive_timeout)}",
            }
        else:
            extra = {"Connection": "close"}
        self._writer.write(response.head_bytes(self._server_name, extra))
        await self._writer.drain()

    async def _write_body(self, chunk: bytes) -> None:
        self._writer.write(chunk)
        await self._writer.drain()

    async def _abort(self) -> None:
        transport = self._writer.transport
        if transport is not None and not transport.is_closing():
            logger.debug("Aborting connection after partial response")
            transport.abort()
