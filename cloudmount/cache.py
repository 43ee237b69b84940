import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from cachetools import TTLCache

from .paths import normalize_path, parent_path
from .stats import FileStats

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    data: bytes
    timestamp: float


class ContentCache:
    """
    Per-path byte-buffer cache in front of remote reads.

    An entry is valid while ``now - timestamp < ttl``. Validity is checked on
    every access; nothing is expired in the background. The store is a
    cachetools TTLCache, so once ``max_entries`` is reached the least recently
    used buffer is dropped to make room.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1024,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._timer = timer
        self._cache: TTLCache = TTLCache(maxsize=max(1, max_entries), ttl=ttl_seconds, timer=timer)

    def get(self, path: str) -> bytes | None:
        """
        Retrieve cached contents if present and not expired.

        Args:
            path: The file path to look up.

        Returns:
            The cached bytes, or None on a miss or an expired entry.
        """
        entry = self._cache.get(normalize_path(path))
        if entry is None:
            return None
        return entry.data

    def put(self, path: str, data: bytes) -> None:
        """Store ``data`` for ``path``, superseding any previous entry."""
        self._cache[normalize_path(path)] = CacheEntry(data=bytes(data), timestamp=self._timer())

    async def get_or_fetch(self, path: str, fetch: Callable[[str], Awaitable[bytes]]) -> bytes:
        """
        Return cached bytes, or await ``fetch(path)`` and cache the result.

        Args:
            path: The file path.
            fetch: Coroutine function reading the full object from the remote.

        Returns:
            The full contents of the object.
        """
        path = normalize_path(path)
        data = self.get(path)
        if data is not None:
            logger.debug("Content cache hit: %s", path)
            return data

        logger.debug("Content cache miss: %s", path)
        data = bytes(await fetch(path))
        self.put(path, data)
        return data

    def invalidate(self, path: str) -> None:
        self._cache.pop(normalize_path(path), None)

    def invalidate_children(self, path: str) -> None:
        """Remove the entry for ``path`` and everything below it."""
        path = normalize_path(path)
        prefix = path if path.endswith("/") else path + "/"
        for key in [k for k in list(self._cache.keys()) if k == path or k.startswith(prefix)]:
            self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()


class DirectoryCache:
    """
    Cache for directory listings.

    Maps a directory path to its ordered child names. Entries have no TTL;
    they live until invalidated.
    """

    def __init__(self):
        self._cache: dict[str, list[str]] = {}

    def get(self, path: str) -> list[str] | None:
        listing = self._cache.get(normalize_path(path))
        return list(listing) if listing is not None else None

    def put(self, path: str, listing: list[str]) -> None:
        self._cache[normalize_path(path)] = list(listing)

    def invalidate(self, path: str) -> None:
        self._cache.pop(normalize_path(path), None)

    def invalidate_children(self, path: str) -> None:
        """Remove the entry for ``path`` and everything below it."""
        path = normalize_path(path)
        prefix = path if path.endswith("/") else path + "/"
        for key in [k for k in list(self._cache.keys()) if k == path or k.startswith(prefix)]:
            self._cache.pop(key, None)

    def invalidate_parent(self, path: str) -> None:
        """
        Invalidate the parent directory of a path (its child set changed).

        Args:
            path: The path whose parent should be invalidated.
        """
        self.invalidate(parent_path(path))

    def clear(self) -> None:
        self._cache.clear()


class MetadataCache:
    """Cache for stat results, keyed by path, kept until invalidated."""

    def __init__(self):
        self._cache: dict[str, FileStats] = {}

    def get(self, path: str) -> FileStats | None:
        return self._cache.get(normalize_path(path))

    def put(self, path: str, stats: FileStats) -> None:
        self._cache[normalize_path(path)] = stats

    def invalidate(self, path: str) -> None:
        self._cache.pop(normalize_path(path), None)

    def invalidate_children(self, path: str) -> None:
        """Remove the entry for ``path`` and everything below it."""
        path = normalize_path(path)
        prefix = path if path.endswith("/") else path + "/"
        for key in [k for k in self._cache if k == path or k.startswith(prefix)]:
            del self._cache[key]

    def clear(self) -> None:
        self._cache.clear()
