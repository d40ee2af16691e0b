"""
=============================================================================
CONFIGURATION
=============================================================================

Two configuration objects live here:

    StaticOptions   how one static mount resolves and answers requests
    ServerConfig    how the bundled asyncio host listens

=============================================================================
DEFAULTS LAYERED UNDER OVERRIDES
=============================================================================

StaticOptions is built ONCE per middleware instance by merging caller
overrides over the defaults, then frozen:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   defaults (dataclass fields)                                        │
    │        ▲                                                             │
    │        │ overridden by                                               │
    │   StaticOptions.create(dir="public", maxAge=60, index=[...])         │
    │        │                                                             │
    │        ▼                                                             │
    │   frozen StaticOptions  ──►  shared read-only by every request       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Both snake_case names and the camelCase names common in JavaScript
static-file middleware (basePath, maxAge, allowedExtensions, ...) are
accepted, so existing option blobs can be reused verbatim.

=============================================================================
"""

from dataclasses import dataclass, field, fields, replace
from typing import Any, Iterable, Mapping, Optional, Tuple, Union
import os

from .http.mime_types import DEFAULT_MIME_TYPE, MimeLookup, lookup_mime


DOTFILE_POLICIES = ("allow", "deny", "ignore")

# camelCase option name → field name
OPTION_ALIASES = {
    "basePath": "base_path",
    "urlPath": "base_path",
    "url_path": "base_path",
    "maxAge": "max_age",
    "lastModified": "last_modified",
    "acceptRanges": "accept_ranges",
    "cacheControl": "cache_control",
    "allowedExtensions": "allowed_extensions",
    "defaultMimeType": "default_mime_type",
    "mimeTypes": "mime_types",
    "mimeLookup": "mime_lookup",
    "maxAllowedSize": "max_allowed_size",
    "existingHeaders": "existing_headers",
}

def _names(value: Union[None, bool, str, Iterable[str]]) -> Tuple[str, ...]:
    """Normalize "a" / ["a", "b"] / False / None into a tuple of names."""
    if value is None or value is False:
        return ()
    if isinstance(value, str):
        return (value,) if value else ()
    return tuple(str(v) for v in value)


def _extensions(value: Union[None, str, Iterable[str]]) -> Tuple[str, ...]:
    return tuple(ext.lstrip(".") for ext in _names(value) if ext.lstrip("."))


@dataclass(frozen=True)
class StaticOptions:
    """
    Immutable options for one static mount.

    =========================================================================
    OPTION GROUPS
    =========================================================================

    WHERE FILES COME FROM
    - dir, root, base_path

    WHAT MAY BE SERVED
    - dotfiles, index, extensions, allowed_extensions, max_allowed_size

    RESPONSE HEADERS
    - max_age, immutable, private, cache_control, last_modified, etag,
      accept_ranges, headers, existing_headers

    CONTENT TYPES
    - mime_types, mime_lookup, default_mime_type

    CONTROL FLOW
    - fallthrough

    =========================================================================
    """

    dir: str = ""
    """Serving directory, relative to `root` (or the working directory)."""

    root: Optional[str] = None
    """Optional mount root that `dir` is joined onto."""

    base_path: str = "/public"
    """URL prefix this mount answers for. Matched case-insensitively."""

    dotfiles: str = "deny"
    """allow | deny (403) | ignore (fall through)."""

    max_age: int = 3600
    immutable: bool = False
    private: bool = False
    """Use "private, max-age=N" instead of "public, max-age=N"."""

    headers: Mapping[str, str] = field(default_factory=dict)
    """Custom response headers, applied verbatim."""

    existing_headers: Mapping[str, str] = field(default_factory=dict)
    """Headers already present upstream (lowercase keys). Suppresses defaults."""

    last_modified: bool = True
    etag: bool = True
    accept_ranges: bool = True
    cache_control: bool = True

    index: Tuple[str, ...] = ("index.html",)
    """Index names tried in order for directories. Empty disables."""

    extensions: Tuple[str, ...] = ("html", "htm")
    """Fallback extensions tried for extensionless paths."""

    allowed_extensions: Tuple[str, ...] = ("*",)

    default_mime_type: str = DEFAULT_MIME_TYPE
    mime_types: Mapping[str, str] = field(default_factory=dict)
    mime_lookup: MimeLookup = lookup_mime

    max_allowed_size: Optional[int] = None
    fallthrough: bool = True

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def create(
        cls,
        options: Optional[Mapping[str, Any]] = None,
        **overrides: Any,
    ) -> "StaticOptions":
        """
        Merge overrides over the defaults and validate.

            StaticOptions.create(dir="public", maxAge=60)
            StaticOptions.create({"dir": "public", "index": False})

        Raises:
            TypeError: For unknown option names.
            ValueError: For invalid option values.
        """
        merged = dict(options or {})
        merged.update(overrides)
        return cls().merge(**merged)

    def merge(self, **overrides: Any) -> "StaticOptions":
        """Return a validated copy with `overrides` applied."""
        known = {f.name for f in fields(self)}
        values = {}
        for name, value in overrides.items():
            key = OPTION_ALIASES.get(name, name)
            if key not in known:
                raise TypeError(f"Unknown static option: {name!r}")
            values[key] = value

        if "index" in values:
            values["index"] = tuple(n for n in _names(values["index"]) if n)
        if "extensions" in values:
            values["extensions"] = _extensions(values["extensions"])
        if "allowed_extensions" in values:
            values["allowed_extensions"] = _extensions(values["allowed_extensions"])
        if "mime_types" in values:
            values["mime_types"] = {
                k.lower().lstrip("."): v for k, v in (values["mime_types"] or {}).items()
            }
        if "existing_headers" in values:
            values["existing_headers"] = {
                k.lower(): v for k, v in (values["existing_headers"] or {}).items()
            }
        if "headers" in values:
            values["headers"] = dict(values["headers"] or {})
        if values.get("dir") is None and "dir" in values:
            values["dir"] = ""

        options = replace(self, **values)
        options.validate()
        return options

    @classmethod
    def from_env(cls, prefix: str = "STATIC_") -> "StaticOptions":
        """
        Build options from environment variables.

        STATIC_DIR          serving directory
        STATIC_ROOT         mount root
        STATIC_BASE_PATH    URL prefix (default /public)
        STATIC_MAX_AGE      Cache-Control max-age seconds
        STATIC_DOTFILES     allow | deny | ignore
        STATIC_FALLTHROUGH  "0"/"false" to answer errors instead of passing on
        """
        env = os.environ
        overrides: dict = {"dir": env.get(f"{prefix}DIR", "")}
        if f"{prefix}ROOT" in env:
            overrides["root"] = env[f"{prefix}ROOT"]
        if f"{prefix}BASE_PATH" in env:
            overrides["base_path"] = env[f"{prefix}BASE_PATH"]
        if f"{prefix}MAX_AGE" in env:
            overrides["max_age"] = int(env[f"{prefix}MAX_AGE"])
        if f"{prefix}DOTFILES" in env:
            overrides["dotfiles"] = env[f"{prefix}DOTFILES"]
        if f"{prefix}FALLTHROUGH" in env:
            overrides["fallthrough"] = env[f"{prefix}FALLTHROUGH"].lower() not in ("0", "false", "no")
        return cls.create(overrides)

    def validate(self) -> None:
        """Fail fast on values that cannot work."""
        if self.dotfiles not in DOTFILE_POLICIES:
            raise ValueError(
                f"dotfiles must be one of {', '.join(DOTFILE_POLICIES)}, got {self.dotfiles!r}"
            )
        if self.max_age < 0:
            raise ValueError("max_age must be >= 0")
        if self.max_allowed_size is not None and self.max_allowed_size <= 0:
            raise ValueError("max_allowed_size must be > 0")
        if not callable(self.mime_lookup):
            raise ValueError("mime_lookup must be callable")

    # =========================================================================
    # DERIVED VALUES
    # =========================================================================

    @property
    def serving_dir(self) -> str:
        """Absolute, normalized serving directory (root joined with dir)."""
        if self.root:
            return os.path.abspath(os.path.join(self.root, self.dir))
        return os.path.abspath(self.dir)

    @property
    def mount_path(self) -> str:
        """base_path with exactly one leading slash and no trailing slash."""
        return "/" + self.base_path.strip("/")

    @property
    def cache_control_value(self) -> str:
        visibility = "private" if self.private else "public"
        value = f"{visibility}, max-age={self.max_age}"
        if self.immutable:
            value += ", immutable"
        return value

    @property
    def allows_any_extension(self) -> bool:
        return not self.allowed_extensions or "*" in self.allowed_extensions


@dataclass
class ServerConfig:
    """
    Configuration for the bundled asyncio host.

    Development:
        ServerConfig(host="127.0.0.1", port=8080, log_level="DEBUG")

    Containers:
        ServerConfig(host="0.0.0.0", port=80)
    """

    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"
    server_name: str = "staticserve"

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    """Idle seconds before a persistent connection is closed."""

    read_timeout: float = 30.0
    """Seconds allowed to receive a complete request head."""

    max_head_size: int = 64 * 1024

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        HTTP_HOST, HTTP_PORT, HTTP_LOG_LEVEL, HTTP_TIMEOUT.
        """
        return cls(
            host=os.getenv("HTTP_HOST", "127.0.0.1"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
            read_timeout=float(os.getenv("HTTP_TIMEOUT", "30")),
        )

    def validate(self) -> None:
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")
        if self.read_timeout <= 0:
            raise ValueError("read_timeout must be > 0")
        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")
        if self.max_head_size < 1024:
            raise ValueError("max_head_size must be >= 1024")
