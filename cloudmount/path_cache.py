"""
Path-to-ID resolver for ID-addressed stores.

Google Drive is ID-based, not path-based. This module resolves filesystem
paths (e.g., "/Documents/notes.txt") to store IDs by walking the folder
hierarchy one segment at a time, caching each resolved prefix.
"""

import logging
from collections.abc import Awaitable, Callable

from .errors import CloudFSError, ErrorCode
from .paths import normalize_path, parent_path, split_path

logger = logging.getLogger(__name__)

# find_child(parent_id, name) -> child ID, or None when there is no such child
ChildLookup = Callable[[str, str], Awaitable[str | None]]


class PathCache:
    """
    Path-to-ID cache owned by one backend instance.

    The root path is pre-seeded and never evicted. An entry for a path implies
    entries for all of its ancestors: ``set`` refuses orphans and
    ``invalidate`` drops a path together with everything below it. Entries
    have no TTL.
    """

    def __init__(self, find_child: ChildLookup, root_id: str = "root"):
        """
        Args:
            find_child: Coroutine function querying the store for a named child.
            root_id: Identifier of the mounted root folder.
        """
        self._find_child = find_child
        self._root_id = root_id
        self._cache: dict[str, str] = {"/": root_id}

    @property
    def root_id(self) -> str:
        return self._root_id

    def get(self, path: str) -> str | None:
        return self._cache.get(normalize_path(path))

    def set(self, path: str, file_id: str) -> bool:
        """
        Record ``path -> file_id``.

        Returns:
            False (and records nothing) when the parent path has no entry,
            since that would break the ancestor invariant.
        """
        path = normalize_path(path)
        if path == "/":
            return False
        if parent_path(path) not in self._cache:
            logger.debug("Not caching %s: parent is unresolved", path)
            return False
        self._cache[path] = file_id
        return True

    async def resolve(self, path: str) -> str:
        """
        Resolve a filesystem path to a store ID.

        Args:
            path: Filesystem path like "/Documents/notes.txt"

        Returns:
            The ID of the final segment.

        Raises:
            CloudFSError: NOT_FOUND if any segment does not exist.
        """
        path = normalize_path(path)
        cached = self._cache.get(path)
        if cached is not None:
            return cached

        current_id = self._root_id
        partial_path = ""
        for segment in split_path(path):
            partial_path += "/" + segment

            cached = self._cache.get(partial_path)
            if cached is not None:
                current_id = cached
                continue

            file_id = await self._find_child(current_id, segment)
            if file_id is None:
                logger.debug("Path segment not found: %s in parent %s", segment, current_id)
                raise CloudFSError(ErrorCode.NOT_FOUND, f"No such file or directory: {path}", path)

            self._cache[partial_path] = file_id
            current_id = file_id

        return current_id

    def invalidate(self, path: str) -> None:
        """Remove ``path`` and every cached path below it. The root stays."""
        path = normalize_path(path)
        if path == "/":
            self.clear()
            return
        prefix = path + "/"
        for key in [k for k in self._cache if k == path or k.startswith(prefix)]:
            del self._cache[key]

    def clear(self) -> None:
        """Drop everything except the root entry."""
        self._cache = {"/": self._root_id}

    def __contains__(self, path: str) -> bool:
        return normalize_path(path) in self._cache

    def __len__(self) -> int:
        return len(self._cache)
