"""Watch mode for mdimgsize - re-process images when things change.

Two layers:
- ``ImageChangeBatcher`` turns node change notifications from a live
  document into debounced, scoped re-processing passes
- ``MarkdownEventHandler`` + ``watch`` re-render markdown files when they or
  their images change on disk
"""

import asyncio
import threading
import time
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from bs4 import Tag
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config import DomOptions, RenderOptions, normalize_options
from .postprocess import META_NAME, apply_image_transforms, create_context

# Attribute changes on an <img> that need a new pass
WATCHED_IMG_ATTRIBUTES = {"src", "title"}


def _is_frontmatter_meta(node) -> bool:
    return isinstance(node, Tag) and node.name == "meta" and node.get("name") == META_NAME


def _images_in(node) -> list:
    if not isinstance(node, Tag):
        return []
    if node.name == "img":
        return [node]
    return node.find_all("img")


class ImageChangeBatcher:
    """Coalesce node changes into one re-processing pass.

    ``apply_callback(images)`` receives the list of <img> tags to process,
    or None when the frontmatter meta changed and every image needs a pass.
    """

    def __init__(
        self,
        apply_callback: Callable,
        debounce_seconds: float = 0.05,
        watched_attributes: Iterable[str] | None = None,
    ):
        self.apply_callback = apply_callback
        self.debounce_seconds = debounce_seconds
        self.watched_attributes = set(watched_attributes or WATCHED_IMG_ATTRIBUTES)
        self.full_pass = False
        # Keyed by id(): bs4 tags compare by content, not identity
        self.pending: dict[int, Tag] = {}
        self.lock = threading.Lock()
        self._debounce_timer: threading.Timer | None = None

    def on_nodes_changed(self, added_nodes=(), removed_nodes=(), attribute_changes=()):
        """Record a batch of changes.

        Args:
            added_nodes: Tags inserted into the document
            removed_nodes: Tags removed from the document
            attribute_changes: ``(tag, attribute_name)`` pairs
        """
        with self.lock:
            scheduled = False
            for node in added_nodes:
                if _is_frontmatter_meta(node):
                    self.full_pass = True
                    scheduled = True
                for img in _images_in(node):
                    self.pending[id(img)] = img
                    scheduled = True

            for node in removed_nodes:
                if _is_frontmatter_meta(node):
                    self.full_pass = True
                    scheduled = True
                for img in _images_in(node):
                    self.pending.pop(id(img), None)

            for node, attribute in attribute_changes:
                if _is_frontmatter_meta(node):
                    self.full_pass = True
                    scheduled = True
                elif isinstance(node, Tag) and node.name == "img":
                    if attribute in self.watched_attributes:
                        self.pending[id(node)] = node
                        scheduled = True

            if not scheduled:
                return

            # Cancel existing timer and start a new one (debounce reset)
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()

            self._debounce_timer = threading.Timer(self.debounce_seconds, self.flush)
            self._debounce_timer.daemon = True
            self._debounce_timer.start()

    def flush(self):
        """Run the pending pass now."""
        with self.lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
                self._debounce_timer = None
            full_pass = self.full_pass
            images = list(self.pending.values())
            self.full_pass = False
            self.pending.clear()

        if full_pass:
            self.apply_callback(None)
        elif images:
            self.apply_callback(images)

    def cancel(self):
        with self.lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
                self._debounce_timer = None
            self.full_pass = False
            self.pending.clear()


def make_document_callback(soup, options=None, **context_kwargs) -> Callable:
    """Build an ``apply_callback`` re-processing images of a parsed document.

    A full pass rebuilds the TransformContext so changed frontmatter (for
    example a new ``<meta name="markdown-frontmatter">``) takes effect.
    """
    opts = normalize_options(DomOptions, options, section="dom")
    state = {"context": create_context(options=opts, soup=soup, **context_kwargs)}

    async def run_pass(images):
        summary = await apply_image_transforms(soup, state["context"], images=images)
        if summary.pending:
            await asyncio.gather(*summary.pending)
        return summary

    def apply(images):
        if images is None:
            state["context"] = create_context(options=opts, soup=soup, **context_kwargs)
        return asyncio.run(run_pass(images))

    return apply


class MarkdownEventHandler(FileSystemEventHandler):
    """Handle file system events for mdimgsize watch mode."""

    def __init__(
        self,
        options: RenderOptions,
        render_callback,
        debounce_seconds: float = 0.2,
        ignored_paths: Iterable[Path] = (),
    ):
        super().__init__()
        self.options = options
        self.render_callback = render_callback
        self.debounce_seconds = debounce_seconds
        self.ignored_paths = [Path(p).resolve() for p in ignored_paths]
        self.pending_changes: list[str] = []
        self.render_lock = threading.Lock()
        self._debounce_timer: threading.Timer | None = None

        # Relevant file extensions
        self.image_extensions = {
            f".{ext.strip().lstrip('.').lower()}"
            for ext in options.check_img_extensions.split(",")
            if ext.strip().lstrip(".")
        }
        self.relevant_extensions = {".md"} | self.image_extensions

    def on_any_event(self, event):
        if event.is_directory:
            return

        src_path = str(event.src_path)
        normalized_path = src_path.replace("\\", "/")

        # Ignore git internals and our own output
        if "/.git/" in normalized_path:
            return
        resolved = Path(src_path).resolve()
        if any(resolved.is_relative_to(ignored) for ignored in self.ignored_paths):
            return

        ext = Path(src_path).suffix.lower()
        if ext not in self.relevant_extensions:
            return

        with self.render_lock:
            if src_path not in self.pending_changes:
                self.pending_changes.append(src_path)

            # Cancel existing timer and start a new one (debounce reset)
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()

            self._debounce_timer = threading.Timer(
                self.debounce_seconds, self.process_changes
            )
            self._debounce_timer.daemon = True
            self._debounce_timer.start()

    def process_changes(self):
        """Process pending file changes."""
        with self.render_lock:
            if not self.pending_changes:
                return
            changes = self.pending_changes.copy()
            self.pending_changes.clear()

        # An image change may alter the size of any page that shows it
        needs_full_render = False
        md_files = []

        for changed_path in changes:
            path = Path(changed_path)
            suffix = path.suffix.lower()
            if suffix in self.image_extensions:
                needs_full_render = True
            elif suffix == ".md" and path.exists():
                md_files.append(path)

        if needs_full_render:
            self.render_callback(None)
        elif md_files:
            self.render_callback(md_files)


def watch(source_dir: Path, output_dir: Path, options=None, verbose: bool = False) -> None:
    """Render markdown to HTML and re-render on changes until interrupted.

    Args:
        source_dir: Directory containing markdown files and images
        output_dir: Directory receiving HTML files
        options: RenderOptions or dict of options
        verbose: Enable verbose output
    """
    from .logging import error, info, setup_logging
    from .markdown_utils import render_directory

    setup_logging(verbose=verbose)
    opts = normalize_options(RenderOptions, options, section="render")

    source_dir = Path(source_dir)
    output_dir = Path(output_dir)
    if not source_dir.is_dir():
        error(f"Source directory '{source_dir}' does not exist")
        return

    info("Watch mode: Rendering markdown...")
    info("=" * 60)
    count = render_directory(source_dir, output_dir, opts)
    info(f"Rendered {count} files")
    info("Watching for changes... (Press Ctrl+C to stop)")
    info("=" * 60)

    def render_callback(files: list[Path] | None):
        timestamp = datetime.now().strftime("%H:%M:%S")
        info(f"\n[{timestamp}] Rendering...")
        start_time = time.time()
        rendered = render_directory(source_dir, output_dir, opts, files=files)
        elapsed = time.time() - start_time
        info(f"[{timestamp}] Rendered {rendered} files ({elapsed:.2f}s)")

    handler = MarkdownEventHandler(opts, render_callback, ignored_paths=[output_dir])
    observer = Observer()
    observer.schedule(handler, str(source_dir), recursive=True)
    observer.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        info("\nStopping watch mode...")
        observer.stop()
        info("Watch mode stopped.")

    observer.join()
