"""Probing image pixel sizes, with caching and the reporting policy.

Reading pixels is delegated to a provider: ``PillowProbe`` (blocking, used by
the markdown extension) or ``AsyncPillowProbe`` (used by the HTML
post-processor). Both read local files with Pillow and remote files with
httpx. The resolvers decide *whether* to probe, with which target, and how
failures are cached and reported.
"""

import asyncio
import io
import os
from typing import NamedTuple, Protocol

import httpx
from PIL import Image, UnidentifiedImageError

from .cache import MISSING, cache_key
from .context import (
    DiagnosticsRegistry,
    DocumentContext,
    RenderState,
    file_url_to_path,
    resolve_md_dir,
)
from .errors import (
    Locality,
    ProbeFailed,
    ProbeTimedOut,
    ProbeTooLarge,
    UnresolvableLocalPath,
    should_report,
)
from .rewrite import ImageReference, strip_logical_root
from .sizing import ImageSize
from .urls import Kind, has_url_scheme, is_file_url, safe_decode_uri, to_absolute_remote

__all__ = [
    "AsyncDimensionResolver",
    "AsyncPillowProbe",
    "DimensionResolver",
    "ImageSize",
    "PillowProbe",
    "ProbeOutcome",
    "resolve_local_path",
]

HEADERS = {"User-Agent": "mdimgsize (+https://pypi.org/project/mdimgsize/)"}


class ProbeProvider(Protocol):
    def probe_local(self, path: str) -> ImageSize: ...

    def probe_remote(
        self, url: str, timeout: float | None = None, max_bytes: int | None = None
    ) -> ImageSize: ...


class AsyncProbeProvider(Protocol):
    async def probe_local(self, path: str) -> ImageSize: ...

    async def probe_remote(
        self, url: str, timeout: float | None = None, max_bytes: int | None = None
    ) -> ImageSize: ...


def _decode_size(source, target: str) -> ImageSize:
    """Read the pixel size from an image header without decoding pixels."""
    try:
        with Image.open(source) as img:
            width, height = img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise ProbeFailed(f"Cannot read image {target}: {e}", target) from e
    return ImageSize(width, height)


def read_local_size(path: str) -> ImageSize:
    return _decode_size(path, path)


def _content_length(headers) -> int | None:
    value = headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _check_content_length(response: httpx.Response, url: str, max_bytes: int | None) -> None:
    length = _content_length(response.headers)
    if max_bytes and length is not None and length > max_bytes:
        raise ProbeTooLarge(
            f"Image too large ({length} bytes): {url}", url, content_length=length
        )


class PillowProbe:
    """Blocking provider: Pillow for local files, an httpx.Client for URLs."""

    def __init__(self, client: httpx.Client | None = None):
        self._client = client

    def probe_local(self, path: str) -> ImageSize:
        return read_local_size(path)

    def probe_remote(
        self, url: str, timeout: float | None = None, max_bytes: int | None = None
    ) -> ImageSize:
        client = self._client or httpx.Client(follow_redirects=True, headers=HEADERS)
        kwargs = {"timeout": timeout} if timeout is not None else {}
        try:
            with client.stream("GET", url, **kwargs) as response:
                response.raise_for_status()
                _check_content_length(response, url, max_bytes)
                data = response.read()
        except httpx.TimeoutException as e:
            raise ProbeTimedOut(f"Timed out fetching {url}", url) from e
        except httpx.HTTPError as e:
            raise ProbeFailed(f"Cannot fetch {url}: {e}", url) from e
        finally:
            if self._client is None:
                client.close()
        return _decode_size(io.BytesIO(data), url)


class AsyncPillowProbe:
    """Async provider: Pillow in a worker thread, an httpx.AsyncClient for URLs."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    async def probe_local(self, path: str) -> ImageSize:
        return await asyncio.to_thread(read_local_size, path)

    async def probe_remote(
        self, url: str, timeout: float | None = None, max_bytes: int | None = None
    ) -> ImageSize:
        client = self._client or httpx.AsyncClient(follow_redirects=True, headers=HEADERS)
        kwargs = {"timeout": timeout} if timeout is not None else {}
        try:
            async with client.stream("GET", url, **kwargs) as response:
                response.raise_for_status()
                _check_content_length(response, url, max_bytes)
                data = await response.aread()
        except httpx.TimeoutException as e:
            raise ProbeTimedOut(f"Timed out fetching {url}", url) from e
        except httpx.HTTPError as e:
            raise ProbeFailed(f"Cannot fetch {url}: {e}", url) from e
        finally:
            if self._client is None:
                await client.aclose()
        return await asyncio.to_thread(_decode_size, io.BytesIO(data), url)


def resolve_local_path(ref: ImageReference, ctx: DocumentContext | None, md_dir: str = "") -> str:
    """Find the file on disk that holds the pixels of a reference.

    Args:
        ref: Parsed reference
        ctx: Document context (provides ``lmd``/``lid`` when no md_dir is known)
        md_dir: Directory of the markdown file

    Returns:
        Absolute filesystem path, or ``""`` when it cannot be determined
    """
    if ref.kind is Kind.FILE_URL:
        return file_url_to_path(ref.base)
    if ref.kind is not Kind.LOCAL_PATH or not ref.base:
        return ""

    decoded = safe_decode_uri(ref.base)
    if md_dir:
        return os.path.abspath(os.path.join(md_dir, decoded.replace("/", os.sep)))

    if ctx is not None and ctx.lmd:
        mount = file_url_to_path(ctx.lmd) if is_file_url(ctx.lmd) else ctx.lmd
        if mount and not has_url_scheme(mount):
            relative = strip_logical_root(decoded, ctx.lid).lstrip("/")
            return os.path.abspath(os.path.join(mount, relative.replace("/", os.sep)))
    return ""


def _consume_exception(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()


class ProbeOutcome(NamedTuple):
    """Result of one async probe: a size, or why there is none."""

    size: ImageSize | None
    status: str  # sized | failed | too-large | timeout | skipped


class _ResolverBase:
    def __init__(
        self,
        options,
        state: RenderState,
        diagnostics: DiagnosticsRegistry | None = None,
    ):
        self.options = options
        self.state = state
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsRegistry()
        self._option_md_dir = resolve_md_dir(getattr(options, "md_path", ""))

    def md_dir(self, ctx: DocumentContext | None) -> str:
        return self._option_md_dir or (ctx.md_dir if ctx is not None else "")

    def warn_unresolvable(self, raw: str) -> None:
        """Warn once per reference per process that a local path has no base directory."""
        from .logging import warning

        if raw in self.state.missing_path_warnings:
            return
        self.state.missing_path_warnings.add(raw)
        if not should_report(Locality.LOCAL, self.options.suppress_errors):
            return
        if self.diagnostics.claim_missing_path(raw):
            warning(f"Set md_path in options or env to read local image dimensions: {raw}")

    def report_failure(self, locality: Locality, key: str, error: Exception) -> None:
        """Log a probe failure once per render (and once per process for load errors)."""
        from .logging import warning

        if key in self.state.warned:
            return
        self.state.warned.add(key)
        if not should_report(locality, self.options.suppress_errors):
            return
        target = key.split(":", 1)[1]
        if isinstance(error, ProbeTooLarge):
            warning(f"Skip image (too large: {error.content_length} bytes): {target}")
        elif isinstance(error, ProbeTimedOut):
            warning(f"Timed out reading image size: {target}")
        elif self.diagnostics.claim_failed_load(key):
            warning(f"Can't load image: {target}")

    def local_target(self, ref: ImageReference, ctx: DocumentContext | None) -> str:
        """Return the file to probe for a local reference.

        Raises:
            UnresolvableLocalPath: A relative path has no directory to resolve against
        """
        path = resolve_local_path(ref, ctx, self.md_dir(ctx))
        if not path and ref.is_local:
            raise UnresolvableLocalPath(f"No base directory for {ref.raw}", ref.raw)
        return path

    def probe_target(self, ref: ImageReference, ctx: DocumentContext | None):
        """Return ``(locality, target)`` or None when the reference cannot be probed."""
        if ref.is_remote:
            if getattr(self.options, "disable_remote_size", False):
                return None
            return Locality.REMOTE, to_absolute_remote(ref.raw)
        try:
            path = self.local_target(ref, ctx)
        except UnresolvableLocalPath as e:
            self.warn_unresolvable(e.target)
            return None
        if not path:
            return None
        return Locality.LOCAL, path


class DimensionResolver(_ResolverBase):
    """Blocking size lookup used by the markdown extension."""

    def __init__(
        self,
        options,
        provider: ProbeProvider | None = None,
        state: RenderState | None = None,
        diagnostics: DiagnosticsRegistry | None = None,
    ):
        super().__init__(options, state or RenderState.for_options(options), diagnostics)
        self.provider = provider if provider is not None else PillowProbe()

    def resolve(self, ref: ImageReference, ctx: DocumentContext | None = None) -> ImageSize | None:
        """Return the pixel size of ``ref``, or None when it is unavailable."""
        probe = self.probe_target(ref, ctx)
        if probe is None:
            return None
        locality, target = probe
        key = cache_key(locality, target)

        cached = self.state.cache.get(key)
        if cached is not MISSING:
            return cached

        try:
            if locality is Locality.REMOTE:
                timeout = self.options.remote_timeout / 1000 if self.options.remote_timeout else None
                size = self.provider.probe_remote(
                    target, timeout=timeout, max_bytes=self.options.remote_max_bytes or None
                )
            else:
                size = self.provider.probe_local(target)
        except Exception as e:  # providers are black boxes
            self.report_failure(locality, key, e)
            self.state.cache.set(key, None)
            return None

        size = ImageSize(int(size[0]), int(size[1]))
        self.state.cache.set(key, size)
        return size


class AsyncDimensionResolver(_ResolverBase):
    """Concurrent size lookup used by the HTML post-processor.

    Concurrent requests for the same target share one in-flight probe. Each
    caller races that probe against its own timeout; a caller that timed out
    ignores the probe's later result, but the result still lands in the cache.
    """

    def __init__(
        self,
        options,
        provider: AsyncProbeProvider | None = None,
        state: RenderState | None = None,
        diagnostics: DiagnosticsRegistry | None = None,
    ):
        super().__init__(options, state or RenderState.for_options(options), diagnostics)
        self.provider = provider if provider is not None else AsyncPillowProbe()
        self._inflight: dict[str, asyncio.Task] = {}

    async def _run_probe(self, locality: Locality, target: str, key: str) -> ImageSize:
        try:
            if locality is Locality.REMOTE:
                size = await self.provider.probe_remote(
                    target, max_bytes=self.options.remote_max_bytes or None
                )
            else:
                size = await self.provider.probe_local(target)
            size = ImageSize(int(size[0]), int(size[1]))
            self.state.cache.set(key, size)
            return size
        except Exception:
            self.state.cache.set(key, None)
            raise
        finally:
            self._inflight.pop(key, None)

    async def resolve_target(self, locality: Locality, target: str) -> ProbeOutcome:
        key = cache_key(locality, target)
        cached = self.state.cache.get(key)
        if cached is not MISSING:
            return ProbeOutcome(cached, "sized" if cached else "failed")

        # Without a cache every reference gets its own probe
        task = self._inflight.get(key) if self.state.cache.enabled else None
        if task is None:
            task = asyncio.ensure_future(self._run_probe(locality, target, key))
            # A caller that timed out never awaits the task
            task.add_done_callback(_consume_exception)
            if self.state.cache.enabled:
                self._inflight[key] = task

        timeout_ms = self.options.size_probe_timeout_ms
        try:
            if timeout_ms:
                size = await asyncio.wait_for(asyncio.shield(task), timeout_ms / 1000)
            else:
                size = await task
        except asyncio.TimeoutError:
            self.report_failure(
                locality, key, ProbeTimedOut(f"Timed out reading {target}", target)
            )
            return ProbeOutcome(None, "timeout")
        except ProbeTooLarge as e:
            self.report_failure(locality, key, e)
            return ProbeOutcome(None, "too-large")
        except ProbeTimedOut as e:
            self.report_failure(locality, key, e)
            return ProbeOutcome(None, "timeout")
        except Exception as e:  # providers are black boxes
            self.report_failure(locality, key, e)
            return ProbeOutcome(None, "failed")
        return ProbeOutcome(size, "sized")

    async def resolve(self, ref: ImageReference, ctx: DocumentContext | None = None) -> ProbeOutcome:
        probe = self.probe_target(ref, ctx)
        if probe is None:
            return ProbeOutcome(None, "skipped")
        return await self.resolve_target(*probe)
