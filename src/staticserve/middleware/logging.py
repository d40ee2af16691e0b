"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

Times each request and writes one access-log line once the rest of the
chain has finished with it. The status and byte count are read back from
the sink, because by then the response has already been written.

=============================================================================
LOG FORMATS
=============================================================================

    text (default):
        127.0.0.1 - - [15/Jun/2024:10:00:00 +0000] "GET /public/app.css" 200 5120 1.84ms

    json:
        {"request_id": "a1b2c3d4", "method": "GET", "path": "/public/app.css",
         "status_code": 200, "bytes_sent": 5120, "duration_ms": 1.84, ...}

Access lines go to the "staticserve.access" logger, so they can be routed
separately from application logs:

    logging.getLogger("staticserve.access").addHandler(file_handler)

=============================================================================
"""

from dataclasses import asdict, dataclass
from typing import Iterable, Optional
import json
import logging
import time
import uuid

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.sink import ResponseSink


logger = logging.getLogger("staticserve.access")


@dataclass
class RequestLog:
    """
    One access-log entry.

    status_code is 0 when nothing was written (the chain fell through
    without a terminal handler). aborted marks responses cut off after
    the head went out.
    """

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    bytes_sent: int
    duration_ms: float
    timestamp: str
    aborted: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        line = (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code or "-"} '
            f'{self.bytes_sent} {self.duration_ms:.2f}ms'
        )
        if self.aborted:
            line += " (aborted)"
        return line


class LoggingMiddleware(Middleware):
    """
    Request logging middleware. Add it FIRST so it sees every request.

        pipeline.add(LoggingMiddleware(log_format="json"))
        pipeline.add(serve_static("public"))
    """

    def __init__(
        self,
        log_format: str = "text",
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        """
        Args:
            log_format: "text" or "json".
            log_level: Level used for access lines.
            skip_paths: Exact paths that are never logged.
        """
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown log format: {log_format!r}")
        self.log_format = log_format
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    async def __call__(
        self,
        request: HTTPRequest,
        sink: ResponseSink,
        next: NextHandler,
    ) -> None:
        request_id = uuid.uuid4().hex[:8]
        start_time = time.perf_counter()

        try:
            await next(request, sink)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        if request.path in self.skip_paths:
            return

        entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=request.query,
            client_ip=request.client_address[0] or "-",
            user_agent=request.user_agent or "-",
            status_code=int(sink.status) if sink.status is not None else 0,
            bytes_sent=sink.bytes_sent,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
            aborted=sink.aborted,
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())
