"""
HTTP building blocks: request view, response model, sinks, status codes,
MIME types. The range evaluator lives in `staticserve.http.ranges`.
"""

from .mime_types import DEFAULT_MIME_TYPE, lookup_mime, resolve_content_type
from .request import HTTPParseError, HTTPRequest, RequestParser, parse_request
from .response import HTTPResponse, ResponseBuilder, format_http_date, parse_http_date
from .sink import BufferedSink, ResponseAlreadySentError, ResponseSink, StreamSink
from .status_codes import HTTPStatus

__all__ = [
    "BufferedSink",
    "DEFAULT_MIME_TYPE",
    "HTTPParseError",
    "HTTPRequest",
    "HTTPResponse",
    "HTTPStatus",
    "RequestParser",
    "ResponseAlreadySentError",
    "ResponseBuilder",
    "ResponseSink",
    "StreamSink",
    "format_http_date",
    "lookup_mime",
    "parse_http_date",
    "parse_request",
    "resolve_content_type",
]
