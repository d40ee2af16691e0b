"""
pytest configuration and fixtures.
"""

import os
from pathlib import Path
from typing import Dict, Optional
import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from staticserve import StaticOptions
from staticserve.http import BufferedSink, HTTPRequest


# Fixed modification time: Sat, 15 Jun 2024 10:00:00 GMT
MTIME = 1718445600


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """
    A real serving directory:

        site/
          public/
            hello.txt          "Hello, World!"
            digits.txt         "0123456789"
            empty.txt          ""
            about.html         "<h1>About</h1>"
            .env               "SECRET=1"
            .hidden/page.txt   "hidden"
            image.jpg          binary
            docs/
              index.html       "<h1>Docs</h1>"
            fallback/
              default.html     "<p>default</p>"
            nested/            (no index)
    """
    public = tmp_path / "public"
    files: Dict[str, bytes] = {
        "hello.txt": b"Hello, World!",
        "digits.txt": b"0123456789",
        "empty.txt": b"",
        "about.html": b"<h1>About</h1>",
        ".env": b"SECRET=1",
        ".hidden/page.txt": b"hidden",
        "image.jpg": bytes(range(256)),
        "docs/index.html": b"<h1>Docs</h1>",
        "fallback/default.html": b"<p>default</p>",
    }
    for name, content in files.items():
        path = public / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        os.utime(path, (MTIME, MTIME))
    (public / "nested").mkdir()
    return tmp_path


@pytest.fixture
def public_dir(site: Path) -> Path:
    return site / "public"


@pytest.fixture
def options(site: Path) -> StaticOptions:
    """Mount site/public at /public."""
    return StaticOptions.create(root=str(site), dir="public")


@pytest.fixture
def sink() -> BufferedSink:
    return BufferedSink()


def make_request(
    url: str = "/",
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
) -> HTTPRequest:
    """Request view with lowercase header names, as the parser produces."""
    return HTTPRequest(
        method=method,
        url=url,
        headers={k.lower(): v for k, v in (headers or {}).items()},
        client_address=("127.0.0.1", 50000),
    )


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request for a static asset."""
    return (
        b"GET /public/app.css?v=3 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Range: bytes=0-99\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )
