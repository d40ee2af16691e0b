"""
=============================================================================
MIME TYPE RESOLUTION
=============================================================================

Maps file extensions to the Content-Type sent with a file.

=============================================================================
LOOKUP ORDER
=============================================================================

    ┌────────────────────────────────────────────────────────────────────┐
    │                  CONTENT-TYPE FOR "report.PDF"                     │
    ├────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  extension = "pdf"            (lowercased, no leading dot)         │
    │                                                                     │
    │  1. options.mime_types["pdf"]        custom override               │
    │        │ miss                                                       │
    │        ▼                                                            │
    │  2. lookup("pdf")                    registry (injectable)         │
    │        │ miss                                                       │
    │        ▼                                                            │
    │  3. options.default_mime_type        "application/octet-stream"    │
    │                                                                     │
    └────────────────────────────────────────────────────────────────────┘

=============================================================================
THE REGISTRY
=============================================================================

The registry is keyed by MIME type, each entry listing the extensions it
claims (the same shape as the IANA-derived "mime-db" tables). Several
entries may claim the same extension, e.g. both "text/javascript" and
"application/javascript" claim "js".

The extension index is built ONCE at import time by walking the registry
and then the platform table from the standard library `mimetypes` module.
The FIRST entry that claims an extension wins. The winner therefore depends
on table iteration order, and for extensions only the platform table knows
about, on whatever /etc/mime.types the host ships. That tie-break is
inherited from the external registries and is intentionally left as is.

After import the index is never mutated, so concurrent requests may read
it without locking.

=============================================================================
"""

import mimetypes
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple


# Injected lookup signature: extension (no dot, lowercase) → MIME or None
MimeLookup = Callable[[str], Optional[str]]

DEFAULT_MIME_TYPE = "application/octet-stream"


# =============================================================================
# MIME REGISTRY
# =============================================================================
#
# MIME type → extensions (lowercase, no leading dot).
# Order matters: earlier entries win ties.
#
# =============================================================================

MIME_REGISTRY: Dict[str, Tuple[str, ...]] = {
    # -------------------------------------------------------------------------
    # TEXT
    # -------------------------------------------------------------------------
    "text/html": ("html", "htm", "shtml"),
    "text/css": ("css",),
    "text/javascript": ("js", "mjs"),
    "application/javascript": ("js", "mjs", "cjs"),
    "application/json": ("json", "map"),
    "application/manifest+json": ("webmanifest",),
    "application/xml": ("xml", "xsl", "xsd"),
    "text/xml": ("xml",),
    "text/plain": ("txt", "text", "conf", "log", "ini"),
    "text/markdown": ("md", "markdown"),
    "text/csv": ("csv",),
    "text/calendar": ("ics",),
    "text/yaml": ("yaml", "yml"),

    # -------------------------------------------------------------------------
    # IMAGES
    # -------------------------------------------------------------------------
    "image/png": ("png",),
    "image/jpeg": ("jpg", "jpeg", "jpe"),
    "image/gif": ("gif",),
    "image/svg+xml": ("svg", "svgz"),
    "image/x-icon": ("ico",),
    "image/vnd.microsoft.icon": ("ico",),
    "image/webp": ("webp",),
    "image/avif": ("avif",),
    "image/bmp": ("bmp",),
    "image/tiff": ("tif", "tiff"),

    # -------------------------------------------------------------------------
    # FONTS
    # -------------------------------------------------------------------------
    "font/woff": ("woff",),
    "font/woff2": ("woff2",),
    "font/ttf": ("ttf",),
    "font/otf": ("otf",),
    "application/vnd.ms-fontobject": ("eot",),

    # -------------------------------------------------------------------------
    # AUDIO / VIDEO
    # -------------------------------------------------------------------------
    "audio/mpeg": ("mp3", "mpga"),
    "audio/wav": ("wav",),
    "audio/x-wav": ("wav",),
    "audio/ogg": ("ogg", "oga", "opus"),
    "audio/mp4": ("m4a", "mp4a"),
    "audio/flac": ("flac",),
    "video/mp4": ("mp4", "mp4v", "mpg4"),
    "video/webm": ("webm",),
    "video/x-msvideo": ("avi",),
    "video/quicktime": ("mov", "qt"),
    "video/x-matroska": ("mkv",),

    # -------------------------------------------------------------------------
    # DOCUMENTS / ARCHIVES
    # -------------------------------------------------------------------------
    "application/pdf": ("pdf",),
    "application/msword": ("doc", "dot"),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ("docx",),
    "application/vnd.ms-excel": ("xls",),
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ("xlsx",),
    "application/zip": ("zip",),
    "application/x-tar": ("tar",),
    "application/gzip": ("gz",),
    "application/x-7z-compressed": ("7z",),
    "application/wasm": ("wasm",),

    # Registered type with no extension; never enters the index
    "application/octet-stream": (),
}


# =============================================================================
# INDEX CONSTRUCTION
# =============================================================================

def build_extension_index(
    *tables: Iterable[Tuple[str, Iterable[str]]],
) -> Dict[str, str]:
    """
    Build an extension → MIME index from one or more registry tables.

    Each table yields (mime_type, extensions) pairs. Entries without any
    extension are skipped. The first claim on an extension wins.

        >>> build_extension_index([("a/x", ("js",)), ("b/y", ("js", "mjs"))])
        {'js': 'a/x', 'mjs': 'b/y'}
    """
    index: Dict[str, str] = {}
    for table in tables:
        for mime_type, extensions in table:
            for extension in extensions:
                index.setdefault(extension.lower().lstrip("."), mime_type)
    return index


def _platform_table() -> Iterable[Tuple[str, Tuple[str, ...]]]:
    """The standard library's table, reshaped to (mime, extensions) pairs."""
    if not mimetypes.inited:
        mimetypes.init()
    for suffix, mime_type in mimetypes.types_map.items():
        yield mime_type, (suffix,)


EXTENSION_INDEX: Mapping[str, str] = build_extension_index(
    MIME_REGISTRY.items(),
    _platform_table(),
)


# =============================================================================
# PUBLIC FUNCTIONS
# =============================================================================

def lookup_mime(extension: str) -> Optional[str]:
    """
    Registry lookup for an extension.

    Accepts "css", ".css" or "CSS". Returns None when nothing claims the
    extension so callers can apply their own default.

        >>> lookup_mime("css")
        'text/css'
        >>> lookup_mime("no-such-ext") is None
        True
    """
    return EXTENSION_INDEX.get(extension.lower().lstrip("."))


def resolve_content_type(
    extension: str,
    custom: Optional[Mapping[str, str]] = None,
    lookup: MimeLookup = lookup_mime,
    default: str = DEFAULT_MIME_TYPE,
) -> str:
    """
    Resolve the Content-Type for a file extension.

    Args:
        extension: File extension, with or without the leading dot.
        custom: Per-instance overrides keyed by lowercase extension.
        lookup: Extension database lookup (injectable for tests/embedding).
        default: Used when neither the overrides nor the lookup match.

    Returns:
        The MIME type string. Never empty.
    """
    key = extension.lower().lstrip(".")
    if custom and key in custom:
        return custom[key]
    if key:
        found = lookup(key)
        if found:
            return found
    return default
