"""
Remote backend protocol definition.

Defines the primitive operations each store implements, allowing
CloudFileSystem to work with S3, Dropbox or Google Drive through one set of
composite operations.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .errors import CloudFSError
from .stats import FileStats


@runtime_checkable
class RemoteBackend(Protocol):
    """Protocol defining the primitive operations of a remote store.

    Primitives raise the store's native errors; CloudFileSystem converts
    them through ``convert_error`` exactly once. A backend may also define
    ``async def touch(path, changes: dict) -> None`` for metadata-only
    updates; CloudFileSystem treats ``touch`` as a no-op without it.
    """

    name: str

    def convert_error(self, error: Exception, path: str, syscall: str) -> CloudFSError:
        """Map a native error onto the normalized taxonomy."""
        ...

    async def move(self, old_path: str, new_path: str) -> None:
        """Rename or move a file/directory."""
        ...

    async def stat(self, path: str) -> FileStats:
        """Get metadata for a single file or directory (never the root).

        Raises:
            Native not-found error if the path does not exist.
        """
        ...

    async def create(self, path: str, stats: FileStats) -> None:
        """Create an empty file or a directory, as ``stats.mode`` says."""
        ...

    async def delete(self, path: str, is_dir: bool) -> None:
        """Delete a file, or an empty directory."""
        ...

    async def read(self, path: str) -> bytes:
        """Read the whole object."""
        ...

    async def write(self, path: str, data: bytes) -> None:
        """Replace the whole object with ``data``."""
        ...

    async def list_dir(self, path: str) -> list[str]:
        """List child names of a directory, in store order."""
        ...


def supports_touch(backend: Any) -> bool:
    return callable(getattr(backend, "touch", None))
