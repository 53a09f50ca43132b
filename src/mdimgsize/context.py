"""Per-document and per-process state threaded through the image pipeline.

Three lifetimes are involved:

- ``DiagnosticsRegistry`` lives for the whole process. The caller creates
  one and hands it to every extension or post-processing context so
  repeated renders do not repeat the same warning.
- ``DocumentContext`` is the resolved frontmatter of one document. It is a
  value object; ``DocumentContextResolver`` recomputes it only when the
  frontmatter *object* changes (``is`` comparison). Passing a new but equal
  dict triggers recomputation; mutating the same dict in place does not.
- ``RenderState`` holds the probe cache and warned-sets of a single render.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import unquote, urlsplit

from .cache import SizeCache
from .config import SharedOptions
from .metadata import resolve_frontmatter, resolve_image_base
from .urls import is_file_url

_UNSET = object()


@dataclass(frozen=True)
class DocumentContext:
    """Resolved image settings for one document."""

    url: str = ""
    image_base: str = ""
    lid: str = ""
    image_dir: str = ""
    has_image_dir: bool = False
    lmd: str = ""
    image_scale: float | None = None
    md_dir: str = ""
    # False when there is no frontmatter and no fallback image base: src is left alone
    active: bool = False


def file_url_to_path(value: str) -> str:
    """Convert a ``file://`` URL to a filesystem path, or ``""`` if it is not one."""
    if not is_file_url(value):
        return ""
    try:
        parts = urlsplit(value)
    except ValueError:
        return ""
    if parts.netloc and parts.netloc != "localhost":
        return ""
    path = unquote(parts.path)
    # file:///C:/x -> C:/x
    if len(path) > 2 and path[0] == "/" and path[2] == ":":
        path = path[1:]
    return path


def resolve_md_dir(value) -> str:
    """Return the directory used to resolve relative local image paths.

    Accepts a markdown file path, a directory, or a ``file://`` URL. When the
    path does not exist a trailing separator or a file extension decides
    whether it names a directory or a file.
    """
    if not value:
        return ""
    text = str(value)
    if is_file_url(text):
        text = file_url_to_path(text)
        if not text:
            return ""

    path = Path(text)
    try:
        if path.is_dir():
            return text
        if path.exists():
            return str(path.parent)
    except OSError:
        pass

    if text.endswith(("/", "\\")):
        return text.rstrip("/\\") or text[:1]
    if os.path.splitext(text)[1]:
        return os.path.dirname(text)
    return text


def build_document_context(
    frontmatter, options: SharedOptions, md_path=None
) -> DocumentContext:
    """Resolve frontmatter and options into a DocumentContext.

    Args:
        frontmatter: Document metadata mapping (may be None or empty)
        options: Normalized options
        md_path: Markdown file path or directory for local sizing

    Returns:
        DocumentContext; ``active`` is False when neither frontmatter nor
        ``url_image_base`` is available
    """
    md_dir = resolve_md_dir(md_path)
    has_frontmatter = isinstance(frontmatter, Mapping) and len(frontmatter) > 0
    if not (has_frontmatter or options.url_image_base):
        return DocumentContext(md_dir=md_dir)

    fields = resolve_frontmatter(frontmatter if has_frontmatter else {})
    return DocumentContext(
        url=fields.url,
        image_base=resolve_image_base(fields, options.url_image_base),
        lid=fields.lid,
        image_dir=fields.image_dir,
        has_image_dir=fields.has_image_dir,
        lmd=fields.lmd,
        image_scale=fields.image_scale,
        md_dir=md_dir,
        active=True,
    )


class DocumentContextResolver:
    """Cache the DocumentContext of the last frontmatter object seen.

    The cache is keyed on object identity. Callers that build a fresh
    frontmatter dict for every render get a fresh context every time; callers
    that reuse one dict get the cached context even if they mutated it.
    """

    def __init__(self, options: SharedOptions):
        self.options = options
        self._source = _UNSET
        self._md_path = _UNSET
        self._context: DocumentContext | None = None
        self.computations = 0

    def resolve(self, frontmatter, md_path=None) -> DocumentContext:
        if (
            self._context is None
            or frontmatter is not self._source
            or md_path != self._md_path
        ):
            self._context = build_document_context(frontmatter, self.options, md_path)
            self._source = frontmatter
            self._md_path = md_path
            self.computations += 1
        return self._context


class DiagnosticsRegistry:
    """Process-lifetime de-duplication of image diagnostics.

    Losing the contents (e.g. on restart) only means a warning may be shown
    again; nothing depends on it for correctness.
    """

    def __init__(self):
        self.missing_path_warnings: set[str] = set()
        self.failed_loads: set[str] = set()

    def claim_missing_path(self, ref: str) -> bool:
        """Return True the first time ``ref`` is reported as unresolvable."""
        if ref in self.missing_path_warnings:
            return False
        self.missing_path_warnings.add(ref)
        return True

    def claim_failed_load(self, key: str) -> bool:
        """Return True the first time the cache key ``key`` fails to load."""
        if key in self.failed_loads:
            return False
        self.failed_loads.add(key)
        return True

    def clear(self) -> None:
        self.missing_path_warnings.clear()
        self.failed_loads.clear()


@dataclass
class RenderState:
    """Probe cache and warned-sets for one document render. Not thread-safe."""

    cache: SizeCache = field(default_factory=SizeCache)
    warned: set[str] = field(default_factory=set)
    missing_path_warnings: set[str] = field(default_factory=set)

    @classmethod
    def for_options(cls, options) -> "RenderState":
        return cls(cache=SizeCache(getattr(options, "cache_max", 64)))
