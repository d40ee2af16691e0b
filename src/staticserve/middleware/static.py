"""
=============================================================================
STATIC FILE MIDDLEWARE
=============================================================================

Mounts a directory under a URL prefix:

    pipeline.add(serve_static("public", base_path="/assets", max_age=86400))

    GET  /assets/app.css     → public/app.css
    GET  /assets/            → public/index.html
    GET  /assets/about       → public/about.html (extension fallback)
    GET  /api/users          → next handler (not under the mount)
    POST /assets/app.css     → next handler (only GET and HEAD are served)

When a file cannot be served and `fallthrough` is on, the request simply
continues down the chain, so several mounts (or a mount followed by an
application router) can share one URL space. Dotfile denial always answers
403, whatever `fallthrough` says.

=============================================================================
"""

from dataclasses import replace
from typing import Any, Mapping, Union
import logging

from .base import Middleware, NextHandler
from ..config import StaticOptions
from ..errors import ForbiddenError, NotApplicableError, StaticError, error_response
from ..handlers.resolver import (
    check_dotfile_path,
    mount_relative_path,
    resolve_request_path,
)
from ..handlers.static import send_file
from ..http.request import HTTPRequest
from ..http.sink import ResponseSink


logger = logging.getLogger(__name__)


SERVED_METHODS = ("GET", "HEAD")


class StaticMiddleware(Middleware):
    """
    Serves files for requests under `options.base_path`.

    Args:
        options: StaticOptions, or a mapping of overrides over the defaults.
        **overrides: Further overrides (snake_case or camelCase).
    """

    def __init__(
        self,
        options: Union[StaticOptions, Mapping[str, Any], None] = None,
        **overrides: Any,
    ):
        if isinstance(options, StaticOptions):
            self.options = options.merge(**overrides) if overrides else options
        else:
            self.options = StaticOptions.create(options, **overrides)
        logger.info(
            f"Serving {self.options.serving_dir} at {self.options.mount_path}"
        )

    async def __call__(
        self,
        request: HTTPRequest,
        sink: ResponseSink,
        next: NextHandler,
    ) -> None:
        if request.method not in SERVED_METHODS:
            await next(request, sink)
            return

        options = self.options
        try:
            relative = mount_relative_path(request.url, options)
            check_dotfile_path(relative, options.dotfiles)
            path = resolve_request_path(request.url, options)
        except NotApplicableError:
            await next(request, sink)
            return
        except ForbiddenError as exc:
            await sink.send(error_response(exc))
            return
        except StaticError as exc:
            if options.fallthrough:
                logger.debug(f"Falling through for {request.url!r}: {exc}")
                await next(request, sink)
            else:
                await sink.send(error_response(exc))
            return

        # Request headers mark defaults that are already decided upstream
        per_request = replace(options, existing_headers=request.headers)
        result = await send_file(path, per_request, sink, request)

        if not result:
            await next(request, sink)

    @property
    def name(self) -> str:
        return f"StaticMiddleware({self.options.mount_path})"


def serve_static(dir: str, **overrides: Any) -> StaticMiddleware:
    """
    Shorthand for StaticMiddleware(StaticOptions.create(dir=dir, ...)).

        serve_static("public")
        serve_static("dist", basePath="/", maxAge=0, fallthrough=False)
    """
    return StaticMiddleware(StaticOptions.create(dir=dir, **overrides))
