"""
Markdown extension that rewrites image sources and adds width/height.

Converts ![cat](images/cat@2x.png "resize:50%") into
<img src="https://example.com/cat@2x.png" alt="cat" width="200" height="150"
data-img-resize="50%"> using the document frontmatter.
"""

from markdown import Extension
from markdown.treeprocessors import Treeprocessor

from .config import RenderOptions, build_extension_pattern, normalize_options
from .context import DiagnosticsRegistry, DocumentContextResolver, RenderState
from .paths import get_image_name
from .probe import DimensionResolver, ProbeProvider
from .rewrite import ImageReference, rewrite_reference
from .sizing import compute_size, normalize_resize_value


def _flatten_meta(meta) -> dict:
    """Turn the ``meta`` extension's ``{key: [value]}`` into plain values."""
    flat = {}
    for key, value in (meta or {}).items():
        if isinstance(value, list):
            value = "\n".join(value) if len(value) != 1 else value[0]
        flat[key] = value
    return flat


class ImageSizeTreeprocessor(Treeprocessor):
    """Process every <img> produced by the inline pass."""

    def __init__(self, md, extension: "ImageSizeExtension"):
        super().__init__(md)
        self.extension = extension

    def _document_env(self) -> tuple[object, object]:
        env = getattr(self.md, "image_env", None) or {}
        if "frontmatter" in env:
            frontmatter = env["frontmatter"]
        elif getattr(self.md, "Meta", None):
            frontmatter = _flatten_meta(self.md.Meta)
        else:
            frontmatter = None
        return frontmatter, env.get("md_path")

    def run(self, root):
        options = self.extension.options
        frontmatter, md_path = self._document_env()
        ctx = self.extension.contexts.resolve(frontmatter, md_path)
        resolver = DimensionResolver(
            options,
            provider=self.extension.probe,
            state=RenderState.for_options(options),
            diagnostics=self.extension.diagnostics,
        )
        for img in root.iter("img"):
            self.process_image(img, ctx, resolver)

    def process_image(self, img, ctx, resolver: DimensionResolver) -> None:
        options = self.extension.options
        src_raw = img.get("src", "")
        title = img.get("title")
        ref = ImageReference.parse(src_raw)

        final_src = rewrite_reference(
            ref, ctx, output_mode=options.output_url_mode, resolve=options.resolve_src
        )
        is_valid_ext = bool(self.extension.extension_pattern.search(src_raw))

        if is_valid_ext:
            size = resolver.resolve(ref, ctx)
            if size is not None:
                width, height = compute_size(
                    size,
                    image_name=get_image_name(ref.base),
                    scale_suffix=options.scale_suffix,
                    resize=options.resize,
                    title=title,
                    image_scale=ctx.image_scale if ctx.active else None,
                    no_upscale=options.no_upscale,
                )
                img.set("width", str(width))
                img.set("height", str(height))

        img.set("src", final_src)
        img.set("alt", img.get("alt") or "")

        resize_value = normalize_resize_value(title) if options.resize else ""
        if options.auto_hide_resize_title and resize_value:
            data_attr = (options.resize_data_attr or "").strip()
            if data_attr:
                img.set(data_attr, resize_value)
            img.attrib.pop("title", None)

        if is_valid_ext and options.async_decode:
            img.set("decoding", "async")
        if is_valid_ext and options.lazy_load:
            img.set("loading", "lazy")


class ImageSizeExtension(Extension):
    """Markdown extension for frontmatter-aware image src and size attributes.

    Per-document input is read from ``md.image_env``
    (``{"frontmatter": {...}, "md_path": "docs/page.md"}``) or, when that is
    not set, from ``md.Meta`` filled by the ``meta`` extension.
    """

    def __init__(
        self,
        options=None,
        diagnostics: DiagnosticsRegistry | None = None,
        probe: ProbeProvider | None = None,
        **kwargs,
    ):
        super().__init__()
        self.md = None
        self.options = normalize_options(RenderOptions, options, section="extension", **kwargs)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsRegistry()
        self.probe = probe
        self.extension_pattern = build_extension_pattern(self.options.check_img_extensions)
        self.contexts = DocumentContextResolver(self.options)

    def extendMarkdown(self, md):
        """Register the treeprocessor with markdown."""
        md.registerExtension(self)
        self.md = md
        md.image_env = {}
        processor = ImageSizeTreeprocessor(md, self)
        # After "inline" (20), which creates the <img> elements
        md.treeprocessors.register(processor, "image_size", 15)

    def reset(self):
        if self.md is not None:
            self.md.image_env = {}


def makeExtension(**kwargs):
    """Entry point for markdown extension."""
    return ImageSizeExtension(**kwargs)
