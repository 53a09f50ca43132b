"""Rewrite a raw image reference into the src written to the output."""

from dataclasses import dataclass

from .context import DocumentContext
from .paths import get_basename, normalize_path
from .urls import Kind, apply_output_url_mode, classify, safe_decode_uri, split_query_hash


@dataclass(frozen=True)
class ImageReference:
    """A classified image reference.

    ``suffix`` is the query and fragment, carried verbatim through every
    rewriting step and reattached once at the end.
    """

    raw: str
    base: str
    suffix: str
    kind: Kind

    @classmethod
    def parse(cls, raw: str | None) -> "ImageReference":
        raw = raw or ""
        base, suffix = split_query_hash(raw)
        return cls(raw=raw, base=base, suffix=suffix, kind=classify(raw))

    @property
    def is_remote(self) -> bool:
        return self.kind in (Kind.HTTP, Kind.PROTOCOL_RELATIVE)

    @property
    def is_local(self) -> bool:
        return self.kind is Kind.LOCAL_PATH


def strip_logical_root(path: str, lid: str) -> str:
    """Remove the logical root ``lid`` from the front of a local path.

    ``images/cat.jpg`` and ``./images/cat.jpg`` both lose ``images/``; a
    ``../content/`` root also matches ``./content/...`` references.
    """
    if not lid or not path:
        return path
    if path.startswith(lid):
        return path[len(lid) :]
    if path.startswith("./"):
        if path[2:].startswith(lid):
            return path[2 + len(lid) :]
        if ("." + path).startswith(lid):
            return ("." + path)[len(lid) :]
    return path


def resolve_local_base(base: str, ctx: DocumentContext) -> str:
    """Apply the logical root and image base to the base of a local path."""
    path = normalize_path(strip_logical_root(base, ctx.lid))
    if ctx.image_base and not path.startswith("/"):
        if ctx.has_image_dir:
            path = get_basename(path)
            if ctx.image_dir:
                path = f"{ctx.image_dir}{path}"
        path = f"{ctx.image_base}{path}"
    return normalize_path(path)


def rewrite_reference(
    ref: ImageReference,
    ctx: DocumentContext | None,
    output_mode: str = "absolute",
    resolve: bool = True,
) -> str:
    """Produce the final output src for a reference.

    Args:
        ref: Parsed reference
        ctx: Document context; rewriting only happens when it is active
        output_mode: ``absolute``, ``protocol-relative`` or ``path-only``
        resolve: False skips the frontmatter-driven rewriting

    Returns:
        The final src with the original query/hash suffix
    """
    base = ref.base
    if resolve and ctx is not None and ctx.active and base and ref.is_local:
        base = resolve_local_base(base, ctx)

    if ref.kind is not Kind.SPECIAL_SCHEME:
        base = safe_decode_uri(base)
    return apply_output_url_mode(base, output_mode) + ref.suffix
