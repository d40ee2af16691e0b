"""
Unit tests for the async middleware chain, the static mount and access
logging.
"""

import json
import logging

import pytest

from staticserve.config import StaticOptions
from staticserve.http.sink import BufferedSink
from staticserve.middleware import (
    FunctionMiddleware,
    LoggingMiddleware,
    MiddlewarePipeline,
    RequestLog,
    StaticMiddleware,
    serve_static,
)

from conftest import make_request


pytestmark = pytest.mark.anyio


class Recorder:
    """Terminal handler that records whether the chain fell through."""

    def __init__(self):
        self.calls = []

    async def __call__(self, request, sink):
        self.calls.append(request.url)


async def run(middleware, request, sink=None):
    sink = sink or BufferedSink()
    terminal = Recorder()
    await middleware(request, sink, terminal)
    return sink, terminal


class TestPipeline:

    async def test_order(self):
        order = []

        def layer(name):
            async def mw(request, sink, next):
                order.append(f"{name} in")
                await next(request, sink)
                order.append(f"{name} out")
            return FunctionMiddleware(mw, name=name)

        pipeline = MiddlewarePipeline().use(layer("a"), layer("b"))
        terminal = Recorder()
        await pipeline.wrap(terminal)(make_request("/x"), BufferedSink())

        assert order == ["a in", "b in", "b out", "a out"]
        assert terminal.calls == ["/x"]
        assert len(pipeline) == 2
        assert [mw.name for mw in pipeline] == ["a", "b"]

    async def test_short_circuit(self):
        async def stop(request, sink, next):
            pass

        terminal = Recorder()
        handler = MiddlewarePipeline().add(FunctionMiddleware(stop)).wrap(terminal)
        await handler(make_request(), BufferedSink())

        assert terminal.calls == []


class TestStaticMiddleware:

    async def test_serves_under_mount(self, options):
        sink, terminal = await run(StaticMiddleware(options), make_request("/public/hello.txt"))

        assert sink.status == 200
        assert sink.body == b"Hello, World!"
        assert terminal.calls == []

    async def test_mount_is_case_insensitive(self, options):
        sink, _ = await run(StaticMiddleware(options), make_request("/PUBLIC/hello.txt?x=1"))
        assert sink.body == b"Hello, World!"

    async def test_directory_and_extension_fallback(self, options):
        sink, _ = await run(StaticMiddleware(options), make_request("/public/docs/"))
        assert sink.body == b"<h1>Docs</h1>"

        sink, _ = await run(StaticMiddleware(options), make_request("/public/about"))
        assert sink.body == b"<h1>About</h1>"

    async def test_outside_mount_falls_through(self, options):
        sink, terminal = await run(StaticMiddleware(options), make_request("/api/users"))

        assert not sink.headers_sent
        assert terminal.calls == ["/api/users"]

    async def test_traversal_falls_through(self, options):
        sink, terminal = await run(
            StaticMiddleware(options), make_request("/public/../../etc/passwd")
        )

        assert not sink.headers_sent
        assert terminal.calls == ["/public/../../etc/passwd"]

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "OPTIONS"])
    async def test_other_methods_fall_through(self, options, method):
        sink, terminal = await run(
            StaticMiddleware(options), make_request("/public/hello.txt", method=method)
        )

        assert not sink.headers_sent
        assert len(terminal.calls) == 1

    async def test_head(self, options):
        sink, _ = await run(
            StaticMiddleware(options), make_request("/public/hello.txt", method="HEAD")
        )

        assert sink.status == 200
        assert sink.header("Content-Length") == "13"
        assert sink.body == b""

    async def test_missing_falls_through(self, options):
        sink, terminal = await run(StaticMiddleware(options), make_request("/public/nope.txt"))

        assert not sink.headers_sent
        assert terminal.calls == ["/public/nope.txt"]

    async def test_missing_without_fallthrough(self, options):
        middleware = StaticMiddleware(options, fallthrough=False)
        sink, terminal = await run(middleware, make_request("/public/nope.txt"))

        assert sink.status == 404
        assert json.loads(sink.body)["statusCode"] == 404
        assert terminal.calls == []

    async def test_dotfile_deny(self, options):
        sink, terminal = await run(StaticMiddleware(options), make_request("/public/.env"))

        assert sink.status == 403
        assert json.loads(sink.body)["errorCode"] == "EACCESS"
        assert terminal.calls == []

    @pytest.mark.parametrize("dotfiles", ["deny", "ignore"])
    async def test_dot_directory_is_not_a_dotfile(self, options, dotfiles):
        middleware = StaticMiddleware(options, dotfiles=dotfiles, fallthrough=False)
        sink, terminal = await run(middleware, make_request("/public/.hidden/page.txt"))

        assert sink.status == 200
        assert sink.body == b"hidden"
        assert terminal.calls == []

    async def test_null_byte_falls_through(self, options):
        sink, terminal = await run(StaticMiddleware(options), make_request("/public/a%00b.txt"))

        assert not sink.headers_sent
        assert terminal.calls == ["/public/a%00b.txt"]

    async def test_null_byte_without_fallthrough(self, options):
        middleware = StaticMiddleware(options, fallthrough=False)
        sink, terminal = await run(middleware, make_request("/public/a%00b.txt"))

        assert sink.status == 404
        assert json.loads(sink.body)["statusCode"] == 404
        assert terminal.calls == []

    async def test_dotfile_ignore(self, options):
        middleware = StaticMiddleware(options.merge(dotfiles="ignore", fallthrough=False))
        sink, terminal = await run(middleware, make_request("/public/.env"))

        assert not sink.headers_sent
        assert terminal.calls == ["/public/.env"]

    async def test_dotfile_allow(self, options):
        middleware = StaticMiddleware(options, dotfiles="allow")
        sink, _ = await run(middleware, make_request("/public/.hidden/page.txt"))

        assert sink.body == b"hidden"

    async def test_allowed_extensions(self, options):
        middleware = StaticMiddleware(options, allowedExtensions=["txt"])

        sink, terminal = await run(middleware, make_request("/public/image.jpg"))
        assert not sink.headers_sent
        assert terminal.calls == ["/public/image.jpg"]

        sink, _ = await run(middleware, make_request("/public/hello.txt"))
        assert sink.status == 200

    async def test_request_headers_suppress_defaults(self, options):
        request = make_request("/public/hello.txt", headers={"Cache-Control": "no-cache"})
        sink, _ = await run(StaticMiddleware(options), request)

        assert sink.status == 200
        assert sink.header("Cache-Control") is None
        assert sink.header("Accept-Ranges") == "bytes"

    async def test_range_request(self, options):
        request = make_request("/public/digits.txt", headers={"Range": "bytes=2-4"})
        sink, _ = await run(StaticMiddleware(options), request)

        assert sink.status == 206
        assert sink.body == b"234"

    async def test_options_are_shared_not_mutated(self, options):
        middleware = StaticMiddleware(options)
        request = make_request("/public/hello.txt", headers={"Cache-Control": "no-cache"})
        await run(middleware, request)

        assert middleware.options.existing_headers == {}

    async def test_serve_static_factory(self, site):
        middleware = serve_static(str(site / "public"), basePath="/assets", maxAge=10)

        assert isinstance(middleware, StaticMiddleware)
        sink, _ = await run(middleware, make_request("/assets/hello.txt"))
        assert sink.header("Cache-Control") == "public, max-age=10"

    async def test_root_mount(self, site):
        middleware = StaticMiddleware(StaticOptions.create(root=str(site), dir="public", base_path="/"))
        sink, terminal = await run(middleware, make_request("/"))

        # public/ has no index.html
        assert not sink.headers_sent
        assert terminal.calls == ["/"]

        sink, _ = await run(middleware, make_request("/hello.txt"))
        assert sink.body == b"Hello, World!"


class TestLoggingMiddleware:

    async def test_text_log(self, options, caplog):
        pipeline = MiddlewarePipeline().use(LoggingMiddleware(), StaticMiddleware(options))
        handler = pipeline.wrap(Recorder())

        with caplog.at_level(logging.INFO, logger="staticserve.access"):
            await handler(make_request("/public/hello.txt"), BufferedSink())

        line = [r.getMessage() for r in caplog.records if r.name == "staticserve.access"][0]
        assert '"GET /public/hello.txt" 200 13' in line
        assert line.startswith("127.0.0.1")

    async def test_json_log(self, options, caplog):
        pipeline = MiddlewarePipeline().use(
            LoggingMiddleware(log_format="json"), StaticMiddleware(options)
        )
        handler = pipeline.wrap(Recorder())

        with caplog.at_level(logging.INFO, logger="staticserve.access"):
            await handler(
                make_request("/public/digits.txt", headers={"Range": "bytes=0-3"}),
                BufferedSink(),
            )

        record = [r for r in caplog.records if r.name == "staticserve.access"][0]
        entry = json.loads(record.getMessage())
        assert entry["status_code"] == 206
        assert entry["bytes_sent"] == 4
        assert entry["path"] == "/public/digits.txt"

    async def test_skip_paths(self, caplog):
        middleware = LoggingMiddleware(skip_paths=["/health"])

        with caplog.at_level(logging.INFO, logger="staticserve.access"):
            await run(middleware, make_request("/health"))

        assert not [r for r in caplog.records if r.name == "staticserve.access"]

    async def test_failures_are_logged_and_reraised(self, caplog):
        async def boom(request, sink):
            raise RuntimeError("handler failed")

        with caplog.at_level(logging.ERROR, logger="staticserve.access"):
            with pytest.raises(RuntimeError):
                await LoggingMiddleware()(make_request("/x"), BufferedSink(), boom)

        assert "handler failed" in caplog.text

    async def test_unknown_format(self):
        with pytest.raises(ValueError):
            LoggingMiddleware(log_format="xml")

    async def test_request_log_text(self):
        entry = RequestLog(
            request_id="abc", method="GET", path="/p", query="", client_ip="1.2.3.4",
            user_agent="-", status_code=0, bytes_sent=0, duration_ms=1.0,
            timestamp="now", aborted=True,
        )
        assert entry.to_text() == '1.2.3.4 - - [now] "GET /p" - 0 1.00ms (aborted)'
