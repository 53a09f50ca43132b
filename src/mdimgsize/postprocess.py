"""Post-processing of rendered HTML with BeautifulSoup.

Applies the same src rewriting and sizing rules as the markdown extension
to ``<img>`` elements that are already in a document:
- rewrites src from the document frontmatter (or previews it in a data
  attribute, see ``preview_mode``)
- probes every image concurrently, sharing in-flight probes and a cache
- moves resize directives out of the title into a data attribute and
  reads them back on the next pass
"""

import asyncio
import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from bs4 import BeautifulSoup

from .config import DomOptions, build_extension_pattern, normalize_options
from .context import (
    DiagnosticsRegistry,
    DocumentContext,
    RenderState,
    build_document_context,
)
from .metadata import read_frontmatter
from .paths import get_image_name
from .probe import AsyncDimensionResolver, AsyncProbeProvider
from .rewrite import ImageReference, rewrite_reference, strip_logical_root
from .sizing import compute_size, parse_resize_directive, parse_stored_resize
from .urls import is_file_url

META_NAME = "markdown-frontmatter"


@dataclass
class TransformContext:
    """Everything one document's image passes need, resolved once."""

    options: DomOptions
    document: DocumentContext
    frontmatter: dict
    resolver: AsyncDimensionResolver
    extension_pattern: re.Pattern


@dataclass
class ImageResult:
    """What happened to one <img>; passed to ``on_image_processed``."""

    source_src: str
    output_src: str
    load_src: str
    width: int | None = None
    height: int | None = None
    status: str = "skipped"


@dataclass
class TransformSummary:
    """Result of one ``apply_image_transforms`` pass."""

    results: list[ImageResult] = field(default_factory=list)
    # Size probes still running when await_size_probes is False
    pending: list[asyncio.Task] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def sized(self) -> int:
        return sum(1 for r in self.results if r.status == "sized")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status in ("failed", "too-large", "timeout"))


def read_meta_frontmatter(soup) -> dict:
    """Read frontmatter JSON from ``<meta name="markdown-frontmatter" content=...>``."""
    from .logging import warning

    if soup is None:
        return {}
    meta = soup.find("meta", attrs={"name": META_NAME})
    if meta is None or not meta.get("content"):
        return {}
    try:
        data = json.loads(meta["content"])
    except json.JSONDecodeError as e:
        warning(f"Ignoring unreadable {META_NAME} meta: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def create_context(
    markdown: str | None = None,
    options=None,
    *,
    frontmatter: dict | None = None,
    soup=None,
    md_path=None,
    diagnostics: DiagnosticsRegistry | None = None,
    probe: AsyncProbeProvider | None = None,
) -> TransformContext:
    """Resolve options and frontmatter for one document.

    Args:
        markdown: Markdown source; its frontmatter is used when ``frontmatter`` is None
        options: DomOptions, dict of options, or None for defaults
        frontmatter: Document metadata, taking precedence over everything else
        soup: Parsed document, read for the frontmatter meta when ``read_meta`` is on
        md_path: Markdown file path or directory for local sizing
        diagnostics: Process-wide registry shared between contexts
        probe: Async provider used instead of AsyncPillowProbe

    Returns:
        TransformContext for ``apply_image_transforms``
    """
    opts = normalize_options(DomOptions, options, section="dom")

    if frontmatter is None and markdown:
        frontmatter, _ = read_frontmatter(markdown)
    if frontmatter is None and opts.read_meta:
        frontmatter = read_meta_frontmatter(soup)
    frontmatter = frontmatter or {}

    resolver = AsyncDimensionResolver(
        opts,
        provider=probe,
        state=RenderState.for_options(opts),
        diagnostics=diagnostics,
    )
    return TransformContext(
        options=opts,
        document=build_document_context(frontmatter, opts, md_path),
        frontmatter=frontmatter,
        resolver=resolver,
        extension_pattern=build_extension_pattern(opts.check_img_extensions),
    )


def lmd_file_uri(lmd: str) -> str:
    """Turn the ``lmd`` mount directory into a ``file://`` URI prefix."""
    if is_file_url(lmd):
        return lmd
    text = lmd.replace("\\", "/")
    return f"file://{text}" if text.startswith("/") else f"file:///{text}"


def choose_load_src(ref: ImageReference, output_src: str, context: TransformContext) -> str:
    """Pick the src the image is actually loaded (and probed) from.

    Order: ``load_src_resolver``, ``load_src_map``, the ``lmd`` mount for
    local references, then the output src.
    """
    from .logging import warning

    opts = context.options
    if opts.load_src_resolver is not None:
        try:
            resolved = opts.load_src_resolver(ref.raw, context)
        except Exception as e:  # user callback
            warning(f"load_src_resolver failed for {ref.raw}: {e}")
            resolved = None
        if resolved:
            return str(resolved)

    if opts.load_src_map and ref.raw in opts.load_src_map:
        return str(opts.load_src_map[ref.raw])

    lmd = context.document.lmd
    if lmd and ref.is_local and ref.base and opts.resolve_src:
        relative = strip_logical_root(ref.base, context.document.lid)
        if relative.startswith("./"):
            relative = relative[2:]
        return lmd_file_uri(lmd) + relative.lstrip("/") + ref.suffix

    return output_src


def _handle_title(img, opts: DomOptions):
    """Apply the title / data-attribute round trip and return the directive."""
    title = img.get("title") or ""
    data_attr = (opts.resize_data_attr or "").strip()
    stored = img.get(data_attr) if data_attr else None

    if not opts.resize:
        return None

    directive = parse_resize_directive(title)
    if directive is not None:
        if opts.auto_hide_resize_title:
            del img["title"]
            if data_attr:
                img[data_attr] = directive.normalized
        elif data_attr and stored is not None:
            del img[data_attr]
        return directive

    if title:
        if data_attr and stored is not None:
            del img[data_attr]
        return None
    return parse_stored_resize(stored)


def _notify(context: TransformContext, img, result: ImageResult) -> None:
    from .logging import warning

    callback: Callable | None = context.options.on_image_processed
    if callback is None:
        return
    try:
        callback(img, result)
    except Exception as e:  # user callback
        warning(f"on_image_processed failed for {result.source_src}: {e}")


async def _size_image(img, load_ref, image_name, directive, context, result) -> ImageResult:
    outcome = await context.resolver.resolve(load_ref, context.document)
    result.status = outcome.status
    if outcome.size is not None:
        opts = context.options
        width, height = compute_size(
            outcome.size,
            image_name=image_name,
            scale_suffix=opts.scale_suffix,
            resize=opts.resize,
            image_scale=context.document.image_scale if context.document.active else None,
            no_upscale=opts.no_upscale,
            directive=directive,
        )
        img["width"] = str(width)
        img["height"] = str(height)
        result.width, result.height = width, height
    _notify(context, img, result)
    return result


def transform_image(img, context: TransformContext):
    """Apply the synchronous part of the pass to one <img>.

    Returns:
        Tuple of (ImageResult, coroutine or None); the coroutine probes and
        sizes the image and must be awaited or scheduled by the caller
    """
    opts = context.options
    src_raw = img.get("src") or ""
    ref = ImageReference.parse(src_raw)
    output_src = rewrite_reference(
        ref, context.document, output_mode=opts.output_url_mode, resolve=opts.resolve_src
    )
    load_src = choose_load_src(ref, output_src, context)
    result = ImageResult(source_src=src_raw, output_src=output_src, load_src=load_src)

    if opts.preview_mode == "output":
        if opts.set_dom_src and src_raw:
            img["src"] = output_src
    elif src_raw:
        if opts.preview_mode == "local":
            img["src"] = load_src
        if opts.preview_output_src_attr:
            img[opts.preview_output_src_attr] = output_src

    if img.get("alt") is None:
        img["alt"] = ""

    directive = _handle_title(img, opts)
    is_valid_ext = bool(context.extension_pattern.search(src_raw))

    if is_valid_ext and opts.async_decode and not img.get("decoding"):
        img["decoding"] = "async"
    if is_valid_ext and opts.lazy_load and not img.get("loading"):
        img["loading"] = "lazy"

    if not (is_valid_ext and opts.enable_size_probe and src_raw):
        return result, None

    load_ref = ImageReference.parse(load_src)
    probe = _size_image(img, load_ref, get_image_name(ref.base), directive, context, result)
    return result, probe


async def apply_image_transforms(root, context: TransformContext, images=None) -> TransformSummary:
    """Rewrite and size every <img> under ``root``.

    Args:
        root: BeautifulSoup document or tag
        context: Context from ``create_context``
        images: Only process these <img> tags instead of every image in ``root``

    Returns:
        TransformSummary; with ``await_size_probes`` off, the probes are still
        running and listed in ``pending``
    """
    from .logging import debug

    summary = TransformSummary()
    probes = []
    for img in images if images is not None else root.find_all("img"):
        result, probe = transform_image(img, context)
        summary.results.append(result)
        if probe is None:
            _notify(context, img, result)
        else:
            probes.append(probe)

    if context.options.await_size_probes:
        await asyncio.gather(*probes)
    else:
        summary.pending = [asyncio.ensure_future(p) for p in probes]

    debug(f"Processed {summary.processed} images ({summary.sized} sized, {summary.failed} failed)")
    return summary


async def apply_image_transforms_to_string(
    html_content: str, markdown: str | None = None, options=None, **kwargs
) -> str:
    """Transform the images of an HTML string and return the new HTML.

    Size probes are always awaited before serializing.
    """
    soup = BeautifulSoup(html_content, "html.parser")
    context = create_context(markdown, options, soup=soup, **kwargs)
    summary = await apply_image_transforms(soup, context)
    if summary.pending:
        await asyncio.gather(*summary.pending)
    return str(soup)


def process_html_file(
    html_file: Path,
    markdown_file: Path | None = None,
    options=None,
    output: Path | None = None,
) -> bool:
    """Transform the images of an HTML file.

    Args:
        html_file: Path to HTML file
        markdown_file: Markdown source providing frontmatter and md_path
        options: DomOptions or dict of options
        output: Where to write the result; defaults to rewriting html_file

    Returns:
        True if the file was processed, False otherwise
    """
    from .logging import debug, error

    try:
        content = html_file.read_text(encoding="utf-8")
        markdown = markdown_file.read_text(encoding="utf-8") if markdown_file else None
        result = asyncio.run(
            apply_image_transforms_to_string(
                content, markdown, options, md_path=markdown_file or html_file
            )
        )
        target = output or html_file
        target.write_text(result, encoding="utf-8")
        debug(f"  Processed: {html_file} -> {target}")
        return True
    except Exception as e:
        error(f"Processing {html_file}: {e}")
        return False
