"""
=============================================================================
ASYNC MIDDLEWARE CHAIN
=============================================================================

Middleware here is asynchronous and writes to a sink instead of returning a
response. Each layer either answers the request through the sink or hands
it to `next`:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   LoggingMiddleware ──► StaticMiddleware ──► not_found_handler      │
    │         │                     │                     │                │
    │         │               file found?                 │                │
    │         │               yes: sink.send(...)         │                │
    │         │               no:  await next(...) ───────┘                │
    │         │                                                            │
    │   (after next returns: read sink.status, log the request)           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The contract:

    async def __call__(self, request, sink, next) -> None

A middleware that answers must not also call `next`, and a request must
reach the sink at most once.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional
import logging

from ..http.request import HTTPRequest
from ..http.sink import ResponseSink


logger = logging.getLogger(__name__)


# The next middleware, or the terminal handler.
NextHandler = Callable[[HTTPRequest, ResponseSink], Awaitable[None]]


class Middleware(ABC):
    """
    Abstract base class for async middleware.

        class Timing(Middleware):
            async def __call__(self, request, sink, next):
                started = time.perf_counter()
                await next(request, sink)
                logger.info(f"{request.path} took {time.perf_counter() - started:.3f}s")
    """

    @abstractmethod
    async def __call__(
        self,
        request: HTTPRequest,
        sink: ResponseSink,
        next: NextHandler,
    ) -> None:
        """
        Process the request.

        Args:
            request: The incoming request view.
            sink: Where this request's response is written.
            next: Continues the chain. Skip it to short-circuit.
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a terminal handler.

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())     # first added = outermost
        pipeline.add(serve_static("public"))
        handler = pipeline.wrap(not_found_handler)

        await handler(request, sink)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append a middleware. Returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain MW1 → MW2 → ... → handler.

        Wrapping runs in reverse so the first-added middleware is the
        outermost layer.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler,
    ) -> NextHandler:
        async def wrapped(request: HTTPRequest, sink: ResponseSink) -> None:
            await middleware(request, sink, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)


class FunctionMiddleware(Middleware):
    """
    Wraps a coroutine function as middleware.

        async def add_nothing(request, sink, next):
            await next(request, sink)

        pipeline.add(FunctionMiddleware(add_nothing))
    """

    def __init__(
        self,
        func: Callable[[HTTPRequest, ResponseSink, NextHandler], Awaitable[None]],
        name: Optional[str] = None,
    ):
        self._func = func
        self._name = name or func.__name__

    async def __call__(
        self,
        request: HTTPRequest,
        sink: ResponseSink,
        next: NextHandler,
    ) -> None:
        await self._func(request, sink, next)

    @property
    def name(self) -> str:
        return self._name
