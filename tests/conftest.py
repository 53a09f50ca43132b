"""Shared fixtures for mdimgsize tests."""

import logging

import pytest
from PIL import Image

from mdimgsize import logging as mdimgsize_logging
from mdimgsize.sizing import ImageSize


@pytest.fixture(autouse=True)
def reset_logger():
    """Reset the logger state between tests."""
    mdimgsize_logging._logger = None
    logging.getLogger("mdimgsize").handlers.clear()
    yield
    mdimgsize_logging._logger = None


@pytest.fixture
def make_image(tmp_path):
    """Factory writing a PNG of the given size under tmp_path."""

    def _make(relative: str, width: int, height: int):
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", (width, height), "white").save(path, format="PNG")
        return path

    return _make


class FakeProbe:
    """Provider returning fixed sizes and counting calls."""

    def __init__(self, sizes=None, error=None):
        self.sizes = sizes or {}
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def _lookup(self, target):
        if self.error is not None:
            raise self.error
        if target not in self.sizes:
            raise FileNotFoundError(target)
        return ImageSize(*self.sizes[target])

    def probe_local(self, path):
        self.calls.append(("local", path))
        return self._lookup(path)

    def probe_remote(self, url, timeout=None, max_bytes=None):
        self.calls.append(("remote", url))
        return self._lookup(url)


class FakeAsyncProbe(FakeProbe):
    """Async variant of FakeProbe with an optional delay."""

    def __init__(self, sizes=None, error=None, delay: float = 0):
        super().__init__(sizes, error)
        self.delay = delay

    async def probe_local(self, path):
        import asyncio

        self.calls.append(("local", path))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._lookup(path)

    async def probe_remote(self, url, timeout=None, max_bytes=None):
        import asyncio

        self.calls.append(("remote", url))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._lookup(url)


@pytest.fixture
def fake_probe():
    return FakeProbe


@pytest.fixture
def fake_async_probe():
    return FakeAsyncProbe
