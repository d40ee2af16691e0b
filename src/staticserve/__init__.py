"""
=============================================================================
STATICSERVE
=============================================================================

Static file serving for asyncio HTTP stacks: resolves a request to a file
on disk and answers with the right status, caching headers and byte range.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   request ──► StaticMiddleware ──► send_file() ──► ResponseSink     │
    │                    │                    │                            │
    │               not under mount      resolve → policies → MIME        │
    │               or fallthrough       → 200/206/304/416 → compose      │
    │                    │                                                 │
    │                    ▼                                                 │
    │               next handler                                           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Direct use:

    from staticserve import BufferedSink, HTTPRequest, send_file

    sink = BufferedSink()
    result = await send_file("public/app.css", {"maxAge": 60}, sink,
                             HTTPRequest(headers={"range": "bytes=0-99"}))

As middleware in the bundled server:

    server = StaticServer(ServerConfig(port=8080))
    server.use(serve_static("public"))
    asyncio.run(server.serve_forever())

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, StaticOptions
from .errors import (
    FailureKind,
    ForbiddenError,
    InternalError,
    NoIndexError,
    NotApplicableError,
    NotFoundError,
    StaticError,
    TooLargeError,
    UnsupportedExtensionError,
)
from .handlers import FileStream, SendResult, send_file
from .http import BufferedSink, HTTPRequest, HTTPResponse, HTTPStatus, ResponseSink, StreamSink
from .middleware import LoggingMiddleware, MiddlewarePipeline, StaticMiddleware, serve_static
from .server import StaticServer

__all__ = [
    "BufferedSink",
    "FailureKind",
    "FileStream",
    "ForbiddenError",
    "HTTPRequest",
    "HTTPResponse",
    "HTTPStatus",
    "InternalError",
    "LoggingMiddleware",
    "MiddlewarePipeline",
    "NoIndexError",
    "NotApplicableError",
    "NotFoundError",
    "ResponseSink",
    "SendResult",
    "ServerConfig",
    "StaticError",
    "StaticMiddleware",
    "StaticOptions",
    "StaticServer",
    "StreamSink",
    "TooLargeError",
    "UnsupportedExtensionError",
    "__version__",
    "send_file",
    "serve_static",
]
