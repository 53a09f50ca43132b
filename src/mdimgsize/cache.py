"""Per-render cache of probed image sizes."""

from .errors import Locality

# Returned by SizeCache.get when a key was never stored
MISSING = object()


def cache_key(locality: Locality | str, target: str) -> str:
    """Build the ``local:/abs/path`` / ``remote:https://...`` cache key."""
    return f"{Locality(locality).value}:{target}"


class SizeCache:
    """Insertion-ordered cache of probe results.

    Values are an ``ImageSize`` or ``None`` for a known failure, so a broken
    asset is neither fetched nor reported twice in one render. Once the
    number of entries exceeds ``max_entries`` the oldest entry is dropped.
    ``max_entries=0`` disables caching entirely; ``None`` means unbounded.

    Not thread-safe: one cache belongs to one document render.
    """

    def __init__(self, max_entries: int | None = 64):
        self.max_entries = max_entries
        self._entries: dict[str, object] = {}

    @property
    def enabled(self) -> bool:
        return self.max_entries != 0

    def get(self, key: str):
        """Return the cached value, or MISSING."""
        if not self.enabled:
            return MISSING
        return self._entries.get(key, MISSING)

    def set(self, key: str, value) -> None:
        if not self.enabled:
            return
        self._entries[key] = value
        if self.max_entries is not None and len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.enabled and key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)
