"""Tests for the per-render size cache."""

from mdimgsize.cache import MISSING, SizeCache, cache_key
from mdimgsize.errors import Locality
from mdimgsize.sizing import ImageSize


class TestCacheKey:
    """Tests for cache_key."""

    def test_prefix_by_locality(self):
        assert cache_key(Locality.LOCAL, "/a/cat.png") == "local:/a/cat.png"
        assert cache_key("remote", "https://x.com/a.png") == "remote:https://x.com/a.png"


class TestSizeCache:
    """Tests for SizeCache."""

    def test_miss_returns_missing(self):
        cache = SizeCache()
        assert cache.get("local:/a.png") is MISSING

    def test_stores_sizes_and_failures(self):
        """A known failure (None) is distinct from a miss."""
        cache = SizeCache()
        cache.set("local:/a.png", ImageSize(10, 20))
        cache.set("local:/b.png", None)

        assert cache.get("local:/a.png") == (10, 20)
        assert cache.get("local:/b.png") is None
        assert "local:/b.png" in cache

    def test_evicts_oldest(self):
        cache = SizeCache(max_entries=2)
        cache.set("a", ImageSize(1, 1))
        cache.set("b", ImageSize(2, 2))
        cache.set("c", ImageSize(3, 3))

        assert cache.keys() == ["b", "c"]
        assert cache.get("a") is MISSING

    def test_zero_disables(self):
        cache = SizeCache(max_entries=0)
        cache.set("a", ImageSize(1, 1))

        assert not cache.enabled
        assert len(cache) == 0
        assert cache.get("a") is MISSING
        assert "a" not in cache

    def test_unbounded(self):
        cache = SizeCache(max_entries=None)
        for i in range(200):
            cache.set(str(i), ImageSize(i, i))
        assert len(cache) == 200

    def test_clear(self):
        cache = SizeCache()
        cache.set("a", None)
        cache.clear()
        assert len(cache) == 0
