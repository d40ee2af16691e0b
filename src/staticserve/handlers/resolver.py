"""
=============================================================================
FILE RESOLUTION
=============================================================================

Turns a request path into exactly one regular file, or a typed failure.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     RESOLUTION STAGES                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   GET /public/docs/guide?v=2                                        │
    │        │                                                             │
    │        ▼  resolve_request_path()   strip query, decode, normalize,  │
    │   /srv/site/docs/guide             match the mount prefix           │
    │        │                                                             │
    │        ▼  probe_existence()        guide? guide.html? guide.htm?    │
    │   /srv/site/docs/guide.html                                          │
    │        │                                                             │
    │        ▼  resolve_directory()      directory → first index file     │
    │        │                                                             │
    │        ▼  apply_policies()         dotfiles, allowed extensions     │
    │   FileInfo(path, size, mtime)                                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

The URL path is normalized BEFORE the mount prefix is matched, so ".."
segments collapse first:

    /public/../etc/passwd   →  /etc/passwd      (not under /public: skip)
    /public/a/../../x       →  /x               (not under /public: skip)
    /public/%2e%2e/secret   →  /secret          (decoded, then collapsed)

A final containment check on the joined filesystem path guards the
same boundary again without touching the disk.

All filesystem queries go through aiofiles.os, so a slow disk suspends
only the request that is waiting on it.

=============================================================================
"""

from dataclasses import dataclass
from typing import Iterable
from urllib.parse import unquote
import logging
import os
import posixpath
import stat

import aiofiles.os

from ..config import StaticOptions
from ..errors import (
    ENOENT,
    ForbiddenError,
    NoIndexError,
    NotApplicableError,
    NotFoundError,
    UnsupportedExtensionError,
    error_code,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileInfo:
    """Metadata for one resolved filesystem entry. Never cached."""

    path: str
    size: int
    mtime: float
    mtime_ms: int
    is_dir: bool = False

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def extension(self) -> str:
        """Lowercase extension without the dot ("" when there is none)."""
        return os.path.splitext(self.name)[1].lstrip(".").lower()


async def stat_file(path: str) -> FileInfo:
    """
    Query metadata for `path`.

    Raises:
        OSError: Straight from the filesystem (classified later by errno).
    """
    result = await aiofiles.os.stat(path)
    return FileInfo(
        path=path,
        size=result.st_size,
        mtime=result.st_mtime,
        mtime_ms=result.st_mtime_ns // 1_000_000,
        is_dir=stat.S_ISDIR(result.st_mode),
    )


# =============================================================================
# PATH RESOLVER
# =============================================================================

def normalize_url_path(url: str) -> str:
    """
    Reduce a request target to a clean absolute URL path.

        >>> normalize_url_path("/public/a/../b.css?v=1")
        '/public/b.css'
    """
    path = url.split("?", 1)[0].split("#", 1)[0]
    path = unquote(path)
    normalized = posixpath.normpath("/" + path.lstrip("/"))
    return "/" + normalized.lstrip("/")


def mount_relative_path(url: str, options: StaticOptions) -> str:
    """
    The part of `url` below the mount prefix, starting with "/".

    The prefix matches case-insensitively and only on a segment boundary:
    with base path "/public", "/PUBLIC/x" matches and "/publicity" does not.

    Raises:
        NotApplicableError: If the path is outside the mount.
    """
    path = normalize_url_path(url)
    mount = options.mount_path

    if mount == "/":
        return path

    head = path[:len(mount)]
    rest = path[len(mount):]
    if head.lower() != mount.lower() or (rest and not rest.startswith("/")):
        raise NotApplicableError(f"{path} is not under {mount}")
    return rest or "/"


def resolve_request_path(url: str, options: StaticOptions) -> str:
    """
    Map a request URL onto a candidate path inside the serving directory.

    Raises:
        NotApplicableError: Outside the mount, or escaping the serving dir.
        NotFoundError: The path contains a NUL byte.
    """
    relative = mount_relative_path(url, options)
    if "\x00" in relative:
        raise NotFoundError("Invalid path")

    serving_dir = options.serving_dir
    candidate = os.path.normpath(os.path.join(serving_dir, relative.lstrip("/")))

    if os.path.commonpath([serving_dir, candidate]) != serving_dir:
        logger.warning(f"Rejected path outside serving directory: {url!r}")
        raise NotApplicableError(f"{url} escapes the serving directory")

    logger.debug(f"Resolved {url!r} to {candidate}")
    return candidate


# =============================================================================
# EXISTENCE PROBER
# =============================================================================

async def probe_existence(candidate: str, extensions: Iterable[str]) -> str:
    """
    Find the file a candidate path refers to.

    Paths that already carry an extension are probed once. Extensionless
    paths fall back to each configured extension in order:

        /srv/about  →  /srv/about, /srv/about.html, /srv/about.htm

    Raises:
        NotFoundError: If nothing exists.
    """
    if await aiofiles.os.path.exists(candidate):
        return candidate

    if not os.path.splitext(candidate)[1]:
        for extension in extensions:
            alternate = f"{candidate}.{extension}"
            if await aiofiles.os.path.exists(alternate):
                logger.debug(f"Extension fallback: {candidate} → {alternate}")
                return alternate

    raise NotFoundError(f"ENOENT: no such file or directory, stat '{candidate}'")


# =============================================================================
# DIRECTORY RESOLVER
# =============================================================================

async def resolve_directory(info: FileInfo, index: Iterable[str]) -> FileInfo:
    """
    Replace a directory with its first existing index file.

    Each index name is tried once, in order; the loop never recurses, so
    an index entry that is itself a directory is skipped rather than
    descended into.

    Raises:
        NoIndexError: Index search disabled, or no index file found.
    """
    if not info.is_dir:
        return info

    names = [name for name in index if name]
    if not names:
        raise NoIndexError(f"Directory index disabled: {info.path}")

    for name in names:
        candidate = os.path.join(info.path, name)
        try:
            entry = await stat_file(candidate)
        except OSError as exc:
            if error_code(exc) == ENOENT:
                continue
            raise
        if entry.is_dir:
            continue
        logger.debug(f"Directory {info.path} resolved to index {name}")
        return entry

    raise NoIndexError(f"No index file found in {info.path}")


# =============================================================================
# POLICY FILTER
# =============================================================================

def check_dotfile(name: str, policy: str) -> None:
    """
    Apply the dotfile policy to one file name.

    Raises:
        ForbiddenError: policy "deny".
        NotApplicableError: policy "ignore".
    """
    if not name.startswith(".") or policy == "allow":
        return
    if policy == "deny":
        logger.warning(f"Denied dotfile request: {name}")
        raise ForbiddenError("Dot files are not allowed")
    raise NotApplicableError(f"Ignoring dotfile {name}")


def check_dotfile_path(relative_path: str, policy: str) -> None:
    """
    Apply the dotfile policy to the base name of a mount-relative path.

    Directories above it are not checked: /.well-known/x.txt is a plain
    file request.
    """
    check_dotfile(posixpath.basename(relative_path), policy)


def apply_policies(info: FileInfo, options: StaticOptions) -> None:
    """
    Dotfile policy first, then the extension allow-list.

    Raises:
        ForbiddenError, NotApplicableError: From the dotfile policy.
        UnsupportedExtensionError: Extension not in allowed_extensions.
    """
    check_dotfile(info.name, options.dotfiles)

    if options.allows_any_extension:
        return
    allowed = {ext.lower() for ext in options.allowed_extensions}
    if info.extension not in allowed:
        raise UnsupportedExtensionError(
            f"File extension {info.extension or '(none)'} is not supported"
        )


# =============================================================================
# FULL RESOLUTION
# =============================================================================

async def resolve_file(path: str, options: StaticOptions) -> FileInfo:
    """
    Run a filesystem path through probing, index lookup and policies.

    Returns:
        Metadata of a regular file that may be served.
    """
    found = await probe_existence(path, options.extensions)
    info = await stat_file(found)
    info = await resolve_directory(info, options.index)
    apply_policies(info, options)
    return info
