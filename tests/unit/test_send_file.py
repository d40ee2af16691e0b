"""
Unit tests for send_file(): the pipeline driver and response composer.
"""

import json
import os

import pytest

from staticserve.errors import (
    ForbiddenError,
    NotApplicableError,
    NotFoundError,
    NoIndexError,
    TooLargeError,
    UnsupportedExtensionError,
)
from staticserve.handlers.static import FileStream, SendResult, send_file
from staticserve.http.sink import BufferedSink

from conftest import make_request


pytestmark = pytest.mark.anyio

LAST_MODIFIED = "Sat, 15 Jun 2024 10:00:00 GMT"


class TestFullResponses:

    async def test_serves_file(self, public_dir, options, sink):
        result = await send_file(str(public_dir / "hello.txt"), options, sink)

        assert result.handled
        assert result.error is None
        assert sink.status == 200
        assert sink.body == b"Hello, World!"
        assert sink.header("Content-Type") == "text/plain"
        assert sink.header("Content-Length") == "13"
        assert sink.header("Cache-Control") == "public, max-age=3600"
        assert sink.header("Accept-Ranges") == "bytes"
        assert sink.header("Last-Modified") == LAST_MODIFIED
        assert sink.header("ETag") == "13-1718445600000"

    async def test_default_request_and_mapping_options(self, public_dir, sink):
        result = await send_file(str(public_dir / "hello.txt"), {"maxAge": 60}, sink)

        assert result
        assert sink.header("Cache-Control") == "public, max-age=60"

    async def test_binary_file(self, public_dir, options, sink):
        await send_file(str(public_dir / "image.jpg"), options, sink)

        assert sink.body == bytes(range(256))
        assert sink.header("Content-Type") == "image/jpeg"

    async def test_large_file_streams_in_chunks(self, public_dir, options, sink):
        data = os.urandom(200 * 1024)
        (public_dir / "big.bin").write_bytes(data)

        await send_file(str(public_dir / "big.bin"), options, sink)

        assert sink.body == data
        assert sink.header("Content-Length") == str(len(data))

    async def test_head_sends_headers_only(self, public_dir, options, sink):
        request = make_request(method="HEAD")
        result = await send_file(str(public_dir / "hello.txt"), options, sink, request)

        assert result.handled
        assert sink.status == 200
        assert sink.body == b""
        assert sink.header("Content-Length") == "13"

    async def test_head_is_idempotent(self, public_dir, options):
        first, second = BufferedSink(), BufferedSink()
        request = make_request(method="HEAD")

        await send_file(str(public_dir / "hello.txt"), options, first, request)
        await send_file(str(public_dir / "hello.txt"), options, second, request)

        assert first.headers == second.headers
        assert first.body == second.body == b""

    async def test_directory_index(self, public_dir, options, sink):
        await send_file(str(public_dir / "docs"), options, sink)

        assert sink.status == 200
        assert sink.body == b"<h1>Docs</h1>"
        assert sink.header("Content-Type") == "text/html"

    async def test_index_list_scenario(self, public_dir, options, sink):
        options = options.merge(index=["index.html", "index.htm", "default.html"])
        await send_file(str(public_dir / "fallback"), options, sink)

        assert sink.status == 200
        assert sink.body == b"<p>default</p>"
        assert sink.header("Content-Length") == str(len(b"<p>default</p>"))

    async def test_extension_fallback(self, public_dir, options, sink):
        await send_file(str(public_dir / "about"), options, sink)
        assert sink.body == b"<h1>About</h1>"


class TestHeaders:

    async def test_toggles_off(self, public_dir, options, sink):
        options = options.merge(
            etag=False, last_modified=False, cache_control=False, accept_ranges=False
        )
        await send_file(str(public_dir / "hello.txt"), options, sink)

        for name in ("ETag", "Last-Modified", "Cache-Control", "Accept-Ranges"):
            assert sink.header(name) is None
        assert sink.header("Content-Length") == "13"

    async def test_immutable(self, public_dir, options, sink):
        await send_file(str(public_dir / "hello.txt"), options.merge(immutable=True), sink)
        assert sink.header("Cache-Control") == "public, max-age=3600, immutable"

    async def test_custom_headers(self, public_dir, options, sink):
        options = options.merge(headers={"X-Frame-Options": "DENY", "Cache-Control": "no-cache"})
        await send_file(str(public_dir / "hello.txt"), options, sink)

        assert sink.header("X-Frame-Options") == "DENY"
        assert sink.header("Cache-Control") == "no-cache"

    async def test_existing_headers_suppress_defaults(self, public_dir, options, sink):
        options = options.merge(
            existing_headers={"Cache-Control": "no-store", "Accept-Ranges": "none", "Pragma": "x"},
            headers={"Pragma": "no-cache", "Expires": "0"},
        )
        await send_file(str(public_dir / "hello.txt"), options, sink)

        assert sink.header("Cache-Control") is None
        assert sink.header("Accept-Ranges") is None
        assert sink.header("Pragma") is None
        assert sink.header("Expires") == "0"

    async def test_custom_mime_type(self, public_dir, options, sink):
        options = options.merge(mimeTypes={"TXT": "text/x-custom"})
        await send_file(str(public_dir / "hello.txt"), options, sink)
        assert sink.header("Content-Type") == "text/x-custom"

    async def test_default_mime_type(self, public_dir, options, sink):
        (public_dir / "data.zzqx").write_bytes(b"??")
        await send_file(str(public_dir / "data.zzqx"), options.merge(default_mime_type="text/plain"), sink)
        assert sink.header("Content-Type") == "text/plain"

    async def test_injected_lookup(self, public_dir, options, sink):
        options = options.merge(mime_lookup=lambda ext: "application/x-test")
        await send_file(str(public_dir / "hello.txt"), options, sink)
        assert sink.header("Content-Type") == "application/x-test"


class TestEmptyFile:

    async def test_zero_length(self, public_dir, options, sink):
        options = options.merge(headers={"X-Custom": "1"})
        await send_file(str(public_dir / "empty.txt"), options, sink)

        assert sink.status == 200
        assert sink.body == b""
        assert sink.header("Content-Length") == "0"
        assert sink.header("Content-Type") == "text/plain"
        assert sink.header("ETag") == "0-1718445600000"
        assert sink.header("Last-Modified") == LAST_MODIFIED
        assert sink.header("Accept-Ranges") == "bytes"
        assert sink.header("Cache-Control") is None
        assert sink.header("X-Custom") is None

    @pytest.mark.parametrize("header", ["bytes=0-0", "bytes=0-", "bytes=10-5"])
    async def test_zero_length_range(self, public_dir, options, sink, header):
        request = make_request(headers={"Range": header})
        await send_file(str(public_dir / "empty.txt"), options, sink, request)

        assert sink.status == 416
        assert sink.header("Content-Range") == "bytes */0"
        assert sink.body == b""


class TestRanges:

    @pytest.mark.parametrize("start,end", [(0, 0), (0, 9), (3, 6), (9, 9), (2, 8)])
    async def test_satisfiable(self, public_dir, options, sink, start, end):
        request = make_request(headers={"Range": f"bytes={start}-{end}"})
        await send_file(str(public_dir / "digits.txt"), options, sink, request)

        assert sink.status == 206
        assert sink.header("Content-Range") == f"bytes {start}-{end}/10"
        assert sink.header("Content-Length") == str(end - start + 1)
        assert sink.body == b"0123456789"[start:end + 1]

    async def test_open_ended(self, public_dir, options, sink):
        request = make_request(headers={"Range": "bytes=7-"})
        await send_file(str(public_dir / "digits.txt"), options, sink, request)

        assert sink.status == 206
        assert sink.body == b"789"
        assert sink.header("Content-Range") == "bytes 7-9/10"

    @pytest.mark.parametrize("header", ["bytes=10-", "bytes=0-10", "bytes=5-2", "bytes=x-1"])
    async def test_unsatisfiable(self, public_dir, options, sink, header):
        request = make_request(headers={"Range": header})
        result = await send_file(str(public_dir / "digits.txt"), options, sink, request)

        assert result.handled
        assert sink.status == 416
        assert sink.headers == {"Content-Range": "bytes */10"}
        assert sink.body == b""

    async def test_ranges_disabled(self, public_dir, options, sink):
        request = make_request(headers={"Range": "bytes=0-1"})
        await send_file(str(public_dir / "digits.txt"), options.merge(accept_ranges=False), sink, request)

        assert sink.status == 200
        assert sink.body == b"0123456789"

    async def test_head_range(self, public_dir, options, sink):
        request = make_request(method="HEAD", headers={"Range": "bytes=0-4"})
        await send_file(str(public_dir / "digits.txt"), options, sink, request)

        assert sink.status == 206
        assert sink.header("Content-Length") == "5"
        assert sink.body == b""


class TestConditional:

    async def test_not_modified(self, public_dir, options, sink):
        request = make_request(headers={"If-Modified-Since": LAST_MODIFIED})
        result = await send_file(str(public_dir / "hello.txt"), options, sink, request)

        assert result.handled
        assert sink.status == 304
        assert sink.headers == {}
        assert sink.body == b""

    async def test_modified(self, public_dir, options, sink):
        request = make_request(headers={"If-Modified-Since": "Fri, 14 Jun 2024 10:00:00 GMT"})
        await send_file(str(public_dir / "hello.txt"), options, sink, request)

        assert sink.status == 200
        assert sink.body == b"Hello, World!"

    async def test_invalid_date_is_ignored(self, public_dir, options, sink):
        request = make_request(headers={"If-Modified-Since": "whenever"})
        await send_file(str(public_dir / "hello.txt"), options, sink, request)
        assert sink.status == 200


class TestFailures:

    async def test_missing_with_fallthrough(self, public_dir, options, sink):
        result = await send_file(str(public_dir / "missing.txt"), options, sink)

        assert not result
        assert isinstance(result.error, NotFoundError)
        assert not sink.headers_sent

    async def test_missing_without_fallthrough(self, public_dir, options, sink):
        result = await send_file(str(public_dir / "missing.txt"), options.merge(fallthrough=False), sink)

        assert result.handled
        assert sink.status == 404
        body = json.loads(sink.body)
        assert body["statusCode"] == 404
        assert body["message"] == "Not Found"
        assert "missing.txt" in body["error"]

    async def test_no_index(self, public_dir, options, sink):
        result = await send_file(str(public_dir / "nested"), options.merge(fallthrough=False), sink)

        assert isinstance(result.error, NoIndexError)
        assert sink.status == 404

    async def test_index_disabled(self, public_dir, options, sink):
        result = await send_file(str(public_dir / "docs"), options.merge(index=False, fallthrough=False), sink)

        assert isinstance(result.error, NoIndexError)
        assert sink.status == 404

    async def test_dotfile_deny_always_answers(self, public_dir, options, sink):
        result = await send_file(str(public_dir / ".env"), options, sink)

        assert result.handled
        assert isinstance(result.error, ForbiddenError)
        assert sink.status == 403
        assert json.loads(sink.body)["errorCode"] == "EACCESS"

    async def test_dotfile_ignore(self, public_dir, options, sink):
        result = await send_file(str(public_dir / ".env"), options.merge(dotfiles="ignore", fallthrough=False), sink)

        assert not result.handled
        assert isinstance(result.error, NotApplicableError)
        assert not sink.headers_sent

    async def test_dotfile_allow(self, public_dir, options, sink):
        await send_file(str(public_dir / ".env"), options.merge(dotfiles="allow"), sink)

        assert sink.status == 200
        assert sink.body == b"SECRET=1"

    async def test_unsupported_extension_never_streamed(self, public_dir, options, sink):
        options = options.merge(allowed_extensions=["txt"])

        result = await send_file(str(public_dir / "image.jpg"), options, sink)
        assert not result
        assert isinstance(result.error, UnsupportedExtensionError)
        assert not sink.headers_sent

        strict = BufferedSink()
        await send_file(str(public_dir / "image.jpg"), options.merge(fallthrough=False), strict)
        assert strict.status == 500
        assert strict.body != bytes(range(256))

    async def test_too_large(self, public_dir, options, sink):
        options = options.merge(max_allowed_size=5, fallthrough=False)
        result = await send_file(str(public_dir / "hello.txt"), options, sink)

        assert isinstance(result.error, TooLargeError)
        assert sink.status == 500
        assert json.loads(sink.body)["error"] == "File Size is greater than the allowed size"


class TestCallback:

    async def test_success_callback(self, public_dir, options, sink):
        calls = []
        await send_file(str(public_dir / "hello.txt"), options, sink, callback=calls.append)
        assert calls == [None]

    async def test_failure_callback(self, public_dir, options, sink):
        calls = []
        await send_file(str(public_dir / "missing.txt"), options, sink, callback=calls.append)

        assert len(calls) == 1
        assert isinstance(calls[0], NotFoundError)

    async def test_async_callback(self, public_dir, options, sink):
        calls = []

        async def callback(error):
            calls.append(error)

        await send_file(str(public_dir / "hello.txt"), options, sink, callback=callback)
        assert calls == [None]

    async def test_callback_on_not_modified(self, public_dir, options, sink):
        calls = []
        request = make_request(headers={"If-Modified-Since": LAST_MODIFIED})
        await send_file(str(public_dir / "hello.txt"), options, sink, request, calls.append)
        assert calls == [None]


class FailingSink(BufferedSink):
    """Accepts the head, then fails while writing the body."""

    async def _write_body(self, chunk: bytes) -> None:
        raise ConnectionResetError("client went away")


class TestStreamFailures:

    async def test_mid_stream_failure_aborts(self, public_dir, options):
        sink = FailingSink()
        result = await send_file(str(public_dir / "hello.txt"), options, sink)

        assert result.handled
        assert isinstance(result.error, ConnectionResetError)
        assert sink.status == 200
        assert sink.aborted

    async def test_stream_is_closed_on_failure(self, public_dir, options, monkeypatch):
        streams = []
        original_init = FileStream.__init__

        def tracking_init(self, *args, **kwargs):
            original_init(self, *args, **kwargs)
            streams.append(self)

        monkeypatch.setattr(FileStream, "__init__", tracking_init)

        await send_file(str(public_dir / "hello.txt"), options, FailingSink())

        assert len(streams) == 1
        assert streams[0].closed


class TestFileStream:

    async def test_window(self, public_dir):
        stream = FileStream(str(public_dir / "digits.txt"), 2, 5, chunk_size=2)
        try:
            chunks = [chunk async for chunk in stream]
        finally:
            await stream.aclose()

        assert chunks == [b"23", b"45"]

    async def test_context_manager_and_idempotent_close(self, public_dir):
        async with FileStream(str(public_dir / "digits.txt"), 0, 9) as stream:
            data = b"".join([chunk async for chunk in stream])

        assert data == b"0123456789"
        assert stream.closed
        await stream.aclose()

    async def test_open_error_surfaces_before_iteration(self, public_dir):
        stream = FileStream(str(public_dir / "missing.bin"), 0, 9)
        with pytest.raises(FileNotFoundError):
            await stream.open()
        await stream.aclose()


async def test_send_result_truthiness():
    assert SendResult(True)
    assert not SendResult(False, NotFoundError("x"))
