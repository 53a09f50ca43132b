"""Markdown processing utilities for mdimgsize."""

from functools import lru_cache
from pathlib import Path

import markdown

from .config import RenderOptions, normalize_options
from .extension import ImageSizeExtension
from .metadata import read_frontmatter

# Markdown extensions configuration
MARKDOWN_EXTENSIONS = [
    "extra",  # tables, footnotes, attr_list, etc.
    "sane_lists",
]


def parse_markdown_file(filepath: Path) -> tuple[dict, str]:
    """Parse a markdown file with YAML frontmatter.

    Args:
        filepath: Path to the markdown file

    Returns:
        Tuple of (metadata dict, markdown content string)
    """
    with open(filepath, "r", encoding="utf-8") as f:
        return read_frontmatter(f.read())


@lru_cache(maxsize=8)
def get_markdown_converter(options: RenderOptions) -> markdown.Markdown:
    """Get or create a cached Markdown converter for the given options.

    The image extension keeps its own DiagnosticsRegistry, so warnings are
    de-duplicated across every document rendered with the same options.
    """
    return markdown.Markdown(
        extensions=[*MARKDOWN_EXTENSIONS, ImageSizeExtension(options)],
    )


def render_markdown(
    content: str,
    frontmatter: dict | None = None,
    md_path=None,
    options=None,
) -> str:
    """Render markdown to HTML with image src and size attributes.

    Args:
        content: Markdown content (without frontmatter)
        frontmatter: Document metadata driving src rewriting
        md_path: Markdown file path, used to find local images
        options: RenderOptions, dict of options, or None for defaults

    Returns:
        HTML string
    """
    md = get_markdown_converter(normalize_options(RenderOptions, options, section="render"))
    md.reset()
    md.image_env = {"frontmatter": frontmatter, "md_path": str(md_path) if md_path else None}
    return md.convert(content)


def render_markdown_file(filepath: Path, options=None) -> str:
    """Read a markdown file and render it, using its frontmatter and location."""
    metadata, content = parse_markdown_file(filepath)
    return render_markdown(content, frontmatter=metadata, md_path=filepath, options=options)


def render_directory(
    source_dir: Path,
    output_dir: Path,
    options=None,
    files: list[Path] | None = None,
) -> int:
    """Render markdown files under source_dir into HTML files under output_dir.

    Args:
        source_dir: Directory containing markdown files
        output_dir: Directory receiving ``<name>.html`` files, mirroring the tree
        options: RenderOptions or dict of options
        files: Only render these files (default: every ``*.md`` file)

    Returns:
        Number of files rendered
    """
    from .logging import debug, error

    source_dir = Path(source_dir)
    output_dir = Path(output_dir)
    if files is None:
        files = sorted(source_dir.rglob("*.md"))

    rendered = 0
    for md_file in files:
        try:
            relative = md_file.resolve().relative_to(source_dir.resolve())
        except ValueError:
            error(f"{md_file} is outside {source_dir}")
            continue
        out_file = output_dir / relative.with_suffix(".html")
        out_file.parent.mkdir(parents=True, exist_ok=True)
        out_file.write_text(render_markdown_file(md_file, options), encoding="utf-8")
        debug(f"  Rendered: {relative} -> {out_file}")
        rendered += 1
    return rendered
