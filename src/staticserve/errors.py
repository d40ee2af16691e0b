"""
=============================================================================
FAILURE TAXONOMY AND ERROR MAPPER
=============================================================================

Every way a static request can fail is one of these kinds:

    ┌─────────────────────────┬────────┬──────────────────────────────────┐
    │ Kind                    │ Status │ Notes                            │
    ├─────────────────────────┼────────┼──────────────────────────────────┤
    │ not-applicable          │   -    │ Falls through, never a body      │
    │ not-found / no-index    │  404   │ code ENOENT                      │
    │ forbidden               │  403   │ code EACCESS, errorCode in body  │
    │ unsupported-extension   │  500   │ no code                          │
    │ too-large               │  500   │ no code                          │
    │ internal                │  500   │ logged, generic body             │
    └─────────────────────────┴────────┴──────────────────────────────────┘

Invalid ranges are NOT errors: they are a normal 416 decision made by the
range evaluator.

Filesystem OSErrors are classified by errno, so an EACCES raised by open()
half-way through the pipeline still maps to 403.

JSON body:

    {"statusCode": 404, "message": "Not Found", "error": "<detail>"}
    {"statusCode": 403, "message": "Forbidden", "error": "...", "errorCode": "EACCESS"}

=============================================================================
"""

from enum import Enum
from typing import Optional
import errno
import logging

from .http.response import HTTPResponse, ResponseBuilder
from .http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


ENOENT = "ENOENT"
EACCESS = "EACCESS"


class FailureKind(Enum):
    NOT_APPLICABLE = "not-applicable"
    NOT_FOUND = "not-found"
    NO_INDEX = "no-index"
    FORBIDDEN = "forbidden"
    UNSUPPORTED_EXTENSION = "unsupported-extension"
    TOO_LARGE = "too-large"
    INTERNAL = "internal"


class StaticError(Exception):
    """
    Base class for pipeline failures.

    Attributes:
        kind: Which branch of the taxonomy this is.
        code: Error code used for status mapping ("ENOENT", "EACCESS") or None.
        message: Human-readable detail, copied into the JSON "error" field.
    """

    kind = FailureKind.INTERNAL
    code: Optional[str] = None

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotApplicableError(StaticError):
    """The request is not ours to serve. Continue with the next handler."""

    kind = FailureKind.NOT_APPLICABLE


class NotFoundError(StaticError):
    kind = FailureKind.NOT_FOUND
    code = ENOENT


class NoIndexError(StaticError):
    """A directory was requested and no index file could be used."""

    kind = FailureKind.NO_INDEX
    code = ENOENT


class ForbiddenError(StaticError):
    kind = FailureKind.FORBIDDEN
    code = EACCESS


class UnsupportedExtensionError(StaticError):
    kind = FailureKind.UNSUPPORTED_EXTENSION


class TooLargeError(StaticError):
    kind = FailureKind.TOO_LARGE


class InternalError(StaticError):
    kind = FailureKind.INTERNAL


# =============================================================================
# STATUS CLASSIFICATION
# =============================================================================

_NOT_FOUND_ERRNOS = {errno.ENOENT, errno.ENOTDIR}
_FORBIDDEN_ERRNOS = {errno.EACCES, errno.EPERM}


def error_code(error: BaseException) -> Optional[str]:
    """The string code of a failure, or None."""
    if isinstance(error, StaticError):
        return error.code
    if isinstance(error, OSError) and error.errno is not None:
        if error.errno in _NOT_FOUND_ERRNOS:
            return ENOENT
        if error.errno in _FORBIDDEN_ERRNOS:
            return EACCESS
        return errno.errorcode.get(error.errno)
    return None


def status_for(error: BaseException) -> HTTPStatus:
    """ENOENT → 404, EACCESS → 403, anything else → 500."""
    code = error_code(error)
    if code == ENOENT:
        return HTTPStatus.NOT_FOUND
    if code == EACCESS:
        return HTTPStatus.FORBIDDEN
    return HTTPStatus.INTERNAL_SERVER_ERROR


def is_not_applicable(error: Optional[BaseException]) -> bool:
    return isinstance(error, NotApplicableError)


# =============================================================================
# ERROR MAPPER
# =============================================================================

def error_response(error: BaseException) -> Optional[HTTPResponse]:
    """
    Convert a failure into its terminal HTTP response.

    Returns None for not-applicable failures, which never produce a body.
    Server-side failures are logged here, before conversion.
    """
    if is_not_applicable(error):
        return None

    status = status_for(error)
    builder = ResponseBuilder().status(status)

    if status == HTTPStatus.NOT_FOUND:
        return builder.json({
            "statusCode": 404,
            "message": "Not Found",
            "error": _detail(error),
        }).build()

    if status == HTTPStatus.FORBIDDEN:
        return builder.json({
            "statusCode": 403,
            "message": "Forbidden",
            "error": _detail(error),
            "errorCode": error_code(error),
        }).build()

    if isinstance(error, (StaticError, OSError)):
        logger.error(f"Static file error: {type(error).__name__}: {error}")
        detail = _detail(error)
    else:
        logger.error(f"Unexpected error while serving file: {error!r}", exc_info=error)
        detail = "Unexpected error"

    return builder.json({
        "statusCode": 500,
        "message": "Internal Server Error",
        "error": detail,
    }).build()


def _detail(error: BaseException) -> str:
    if isinstance(error, StaticError):
        return error.message
    if isinstance(error, OSError):
        return error.strerror or str(error)
    return str(error)
