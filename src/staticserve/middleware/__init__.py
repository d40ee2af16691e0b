"""
Async middleware: the chain itself, access logging, and static mounts.
"""

from .base import FunctionMiddleware, Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog
from .static import StaticMiddleware, serve_static

__all__ = [
    "FunctionMiddleware",
    "LoggingMiddleware",
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "RequestLog",
    "StaticMiddleware",
    "serve_static",
]
