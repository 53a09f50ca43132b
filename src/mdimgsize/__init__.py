"""Frontmatter-aware image src rewriting and sizing for markdown."""

from .extension import ImageSizeExtension, makeExtension
from .markdown_utils import render_markdown, render_markdown_file
from .postprocess import (
    apply_image_transforms,
    apply_image_transforms_to_string,
    create_context,
)

__version__ = "0.4.0"

__all__ = [
    "ImageSizeExtension",
    "apply_image_transforms",
    "apply_image_transforms_to_string",
    "create_context",
    "makeExtension",
    "render_markdown",
    "render_markdown_file",
]
