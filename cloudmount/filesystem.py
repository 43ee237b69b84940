"""
Generic cloud filesystem.

This module implements the POSIX-like composite operations (rename, mkdir,
rmdir, unlink, read, write, ...) once, in terms of the primitive operations
a RemoteBackend supplies. Every backend failure is converted into a
CloudFSError exactly once, at the primitive call site.
"""

import logging
import stat
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

from .cache import ContentCache, DirectoryCache, MetadataCache
from .config import CacheConfig
from .errors import CloudFSError, ErrorCode
from .paths import normalize_path, parent_path
from .remote_client import RemoteBackend, supports_touch
from .stats import STAT_FIELDS, FileStats

logger = logging.getLogger(__name__)

ROOT_MODE = 0o755

# Size follows content and is never set directly
TOUCH_FIELDS = tuple(f for f in STAT_FIELDS if f != "size")


def operation(fn):
    """Decorator for filesystem operations - logs the outcome of each call."""
    name = fn.__name__

    @wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            result = await fn(self, *args, **kwargs)
            logger.debug("%s: OK", name)
            return result
        except Exception as exc:
            logger.debug("%s: FAIL - %s", name, exc)
            raise

    return wrapper


class CloudFileSystem:
    """
    Filesystem facade over one remote backend.

    Owns the content cache (TTL-bounded), the metadata cache and the directory
    listing cache. Performs no locking: concurrent operations on the same path
    are not serialized, and two concurrent writes to one path may lose an update.
    """

    def __init__(
        self,
        backend: RemoteBackend,
        cache_config: CacheConfig | None = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        cache_config = cache_config or CacheConfig()
        self.backend = backend
        self.cache_enabled = cache_config.enabled
        self.content_cache = ContentCache(
            cache_config.content_ttl_seconds, cache_config.max_entries, timer
        )
        self.dir_cache = DirectoryCache()
        self.meta_cache = MetadataCache()
        logger.info(
            "CloudFileSystem initialized for %s (content TTL=%ss, metadata cache %s)",
            backend.name,
            cache_config.content_ttl_seconds,
            "on" if self.cache_enabled else "off",
        )

    @property
    def name(self) -> str:
        return self.backend.name

    @property
    def cache_ttl(self) -> float:
        return self.content_cache.ttl_seconds

    async def _call(self, path: str, syscall: str, call: Awaitable[Any]) -> Any:
        """Await a backend primitive, converting native failures once."""
        try:
            return await call
        except CloudFSError as e:
            # Errors raised inside a backend (e.g. path resolution) lack the operation
            if e.syscall is None:
                e.syscall = syscall
            raise
        except Exception as e:
            raise self.backend.convert_error(e, path, syscall) from e

    def _invalidate(self, path: str) -> None:
        """Drop everything cached for ``path`` and its parent's listing."""
        self.meta_cache.invalidate(path)
        self.content_cache.invalidate(path)
        self.dir_cache.invalidate(path)
        self.dir_cache.invalidate_parent(path)

    def _invalidate_tree(self, path: str) -> None:
        self._invalidate(path)
        self.meta_cache.invalidate_children(path)
        self.content_cache.invalidate_children(path)
        self.dir_cache.invalidate_children(path)

    async def _contents(self, path: str, syscall: str) -> bytes:
        return await self.content_cache.get_or_fetch(
            path, lambda p: self._call(p, syscall, self.backend.read(p))
        )

    @operation
    async def rename(self, old_path: str, new_path: str) -> None:
        """Rename or move a file/directory. Renaming a path to itself does nothing."""
        old_path = normalize_path(old_path)
        new_path = normalize_path(new_path)
        if old_path == new_path:
            return

        await self._call(old_path, "rename", self.backend.move(old_path, new_path))
        self._invalidate_tree(old_path)
        self._invalidate_tree(new_path)

    @operation
    async def stat(self, path: str) -> FileStats:
        """Get metadata for a path. The root is always a directory."""
        path = normalize_path(path)
        if path == "/":
            return FileStats.directory(ROOT_MODE)

        if self.cache_enabled:
            cached = self.meta_cache.get(path)
            if cached is not None:
                return cached

        stats = await self._call(path, "stat", self.backend.stat(path))
        if self.cache_enabled:
            self.meta_cache.put(path, stats)
        return stats

    async def exists(self, path: str) -> bool:
        try:
            await self.stat(path)
        except CloudFSError as e:
            if e.code is ErrorCode.NOT_FOUND:
                return False
            raise
        return True

    @operation
    async def create_file(self, path: str, mode: int = 0o644) -> FileStats:
        """
        Create an empty regular file.

        Args:
            path: Path of the new file.
            mode: Permission bits.

        Returns:
            The metadata record the file was created with.
        """
        path = normalize_path(path)
        stats = FileStats.now(stat.S_IFREG | stat.S_IMODE(mode))

        await self._call(path, "createFile", self.backend.create(path, stats))
        self._invalidate(path)
        self.content_cache.put(path, b"")
        return stats

    @operation
    async def mkdir(self, path: str, mode: int = 0o755) -> None:
        """
        Create a directory.

        The parent must already exist: some stores create folders
        recursively, so the check is done here.

        Raises:
            CloudFSError: NOT_A_DIRECTORY if the parent is not a directory,
                ALREADY_EXISTS for the root.
        """
        path = normalize_path(path)
        if path == "/":
            raise CloudFSError(ErrorCode.ALREADY_EXISTS, None, path, "mkdir")

        parent = parent_path(path)
        parent_stats = await self.stat(parent)
        if not parent_stats.is_dir:
            raise CloudFSError(ErrorCode.NOT_A_DIRECTORY, None, parent, "mkdir")

        stats = FileStats.now(stat.S_IFDIR | stat.S_IMODE(mode))
        await self._call(path, "mkdir", self.backend.create(path, stats))
        self._invalidate(path)

    @operation
    async def unlink(self, path: str) -> None:
        """Delete a file. Directories are refused with IS_A_DIRECTORY."""
        path = normalize_path(path)
        stats = await self.stat(path)
        if stats.is_dir:
            raise CloudFSError(ErrorCode.IS_A_DIRECTORY, None, path, "unlink")

        await self._call(path, "unlink", self.backend.delete(path, False))
        self._invalidate(path)

    @operation
    async def rmdir(self, path: str) -> None:
        """Delete an empty directory."""
        path = normalize_path(path)
        if path == "/":
            raise CloudFSError(ErrorCode.PERMISSION_DENIED, None, path, "rmdir")

        stats = await self.stat(path)
        if not stats.is_dir:
            raise CloudFSError(ErrorCode.NOT_A_DIRECTORY, None, path, "rmdir")

        children = await self.readdir(path)
        if children:
            raise CloudFSError(ErrorCode.NOT_EMPTY, None, path, "rmdir")

        await self._call(path, "rmdir", self.backend.delete(path, True))
        self._invalidate_tree(path)

    @operation
    async def readdir(self, path: str) -> list[str]:
        """List child names of a directory, in store order."""
        path = normalize_path(path)
        if self.cache_enabled:
            cached = self.dir_cache.get(path)
            if cached is not None:
                return cached

        names = await self._call(path, "readdir", self.backend.list_dir(path))
        if self.cache_enabled:
            self.dir_cache.put(path, names)
        return list(names)

    @operation
    async def read(self, path: str, offset: int = 0, length: int | None = None) -> bytes:
        """
        Read bytes from a file through the content cache.

        Args:
            path: File path.
            offset: Byte offset to start reading from.
            length: Number of bytes to read (None for rest of file).
        """
        path = normalize_path(path)
        data = await self._contents(path, "read")
        end = len(data) if length is None else offset + length
        return data[offset:end]

    @operation
    async def write(self, path: str, data: bytes, offset: int = 0) -> int:
        """
        Write bytes at ``offset`` by read-modify-write of the whole object.

        The current contents are fetched (or taken from the cache), grown with
        zero bytes if ``offset + len(data)`` is past the end, overlaid with
        ``data`` and uploaded in full. Each call costs O(object size), so this
        is not suited to incremental appends to large objects.

        Returns:
            Number of bytes written.
        """
        path = normalize_path(path)
        if offset < 0:
            raise CloudFSError(ErrorCode.INVALID_ARGUMENT, "negative offset", path, "write")

        buffer = bytearray(await self._contents(path, "write"))
        end = offset + len(data)
        if end > len(buffer):
            buffer.extend(bytes(end - len(buffer)))
        buffer[offset:end] = data

        await self._call(path, "write", self.backend.write(path, bytes(buffer)))
        self.meta_cache.invalidate(path)
        self.dir_cache.invalidate_parent(path)
        self.content_cache.put(path, buffer)
        return len(data)

    @operation
    async def sync(self, path: str, data: bytes) -> None:
        """Replace the whole file with ``data``."""
        path = normalize_path(path)
        await self._call(path, "sync", self.backend.write(path, bytes(data)))
        self.meta_cache.invalidate(path)
        self.dir_cache.invalidate_parent(path)
        self.content_cache.put(path, data)

    @operation
    async def touch(self, path: str, **changes: Any) -> None:
        """
        Update metadata fields (e.g. ``mode``, ``atime``) without touching content.

        A no-op for backends without a metadata-update primitive.
        """
        path = normalize_path(path)
        unknown = sorted(set(changes) - set(TOUCH_FIELDS))
        if unknown:
            raise CloudFSError(
                ErrorCode.INVALID_ARGUMENT, f"Cannot touch fields: {', '.join(unknown)}", path, "touch"
            )
        if not supports_touch(self.backend):
            logger.debug("%s has no metadata update, ignoring touch of %s", self.name, path)
            return

        await self._call(path, "touch", self.backend.touch(path, changes))
        self.meta_cache.invalidate(path)

    async def link(self, target: str, path: str) -> None:
        raise CloudFSError(ErrorCode.NOT_SUPPORTED, None, normalize_path(target), "link")
