"""
Dropbox backend implementation using the official dropbox SDK.

Dropbox is path-addressed, creates folders recursively and pages folder
listings with a cursor. Its errors are nested tagged unions (stone unions),
which convert_error descends until it reaches a classifiable leaf tag.

All SDK calls run in a thread via asyncio.to_thread() because the SDK is
synchronous.
"""

import asyncio
import logging
import stat
import time
from datetime import datetime, timezone
from typing import Any

from dropbox.exceptions import (
    ApiError,
    AuthError,
    BadInputError,
    HttpError,
    InternalServerError,
    RateLimitError,
)
from dropbox.files import DeletedMetadata, FileMetadata, FolderMetadata, WriteMode

from .errors import CloudFSError, ErrorCode
from .paging import Page, list_all
from .paths import normalize_path
from .stats import FileStats

logger = logging.getLogger(__name__)

# Tags that only wrap a more specific error one level down
CATEGORY_TAGS = frozenset({"path", "path_lookup", "path_write", "from_lookup", "from_write", "to"})

# Leaf tag -> normalized code
LEAF_CODES = {
    "malformed_path": ErrorCode.BAD_FILE_DESCRIPTOR,
    "disallowed_name": ErrorCode.BAD_FILE_DESCRIPTOR,
    "cant_move_folder_into_itself": ErrorCode.BAD_FILE_DESCRIPTOR,
    "duplicated_or_nested_paths": ErrorCode.BAD_FILE_DESCRIPTOR,
    "not_found": ErrorCode.NOT_FOUND,
    "not_file": ErrorCode.IS_A_DIRECTORY,
    "not_folder": ErrorCode.NOT_A_DIRECTORY,
    "restricted_content": ErrorCode.PERMISSION_DENIED,
    "conflict": ErrorCode.PERMISSION_DENIED,
    "no_write_permission": ErrorCode.PERMISSION_DENIED,
    "team_folder": ErrorCode.PERMISSION_DENIED,
    "cant_copy_shared_folder": ErrorCode.PERMISSION_DENIED,
    "cant_nest_shared_folder": ErrorCode.PERMISSION_DENIED,
    "insufficient_space": ErrorCode.OUT_OF_SPACE,
    "insufficient_quota": ErrorCode.OUT_OF_SPACE,
    "too_many_files": ErrorCode.OUT_OF_SPACE,
    "too_many_write_operations": ErrorCode.TRY_AGAIN,
    "locked": ErrorCode.BUSY,
    "content_hash_mismatch": ErrorCode.BAD_MESSAGE,
    "unsupported_content_type": ErrorCode.UNSUPPORTED_MESSAGE,
    "payload_too_large": ErrorCode.MESSAGE_TOO_LARGE,
    "cant_transfer_ownership": ErrorCode.IO_ERROR,
    "internal_error": ErrorCode.IO_ERROR,
    "cant_move_shared_folder": ErrorCode.IO_ERROR,
    "cant_move_into_vault": ErrorCode.IO_ERROR,
    "cant_move_into_family": ErrorCode.IO_ERROR,
    "operation_suppressed": ErrorCode.IO_ERROR,
    "template_error": ErrorCode.IO_ERROR,
    "properties_error": ErrorCode.IO_ERROR,
    "other": ErrorCode.IO_ERROR,
}

# Unions nest a handful of levels; anything deeper is not a Dropbox error
MAX_ERROR_DEPTH = 8


def fix_path(path: str) -> str:
    """Dropbox addresses the root as "" rather than "/"."""
    path = normalize_path(path)
    return "" if path == "/" else path


def _convert_union(
    error: Any, message: str | None, path: str | None, syscall: str | None, depth: int = 0
) -> CloudFSError:
    if depth > MAX_ERROR_DEPTH:
        return CloudFSError(ErrorCode.IO_ERROR, message, path, syscall)

    tag = getattr(error, "_tag", None)
    if tag is None:
        # Struct wrappers (e.g. UploadWriteFailed) carry the union in ``reason``
        reason = getattr(error, "reason", None)
        if reason is not None:
            return _convert_union(reason, message, path, syscall, depth + 1)
        return CloudFSError(ErrorCode.IO_ERROR, message or str(error), path, syscall)

    if tag in CATEGORY_TAGS:
        return _convert_union(getattr(error, "_value", None), message, path, syscall, depth + 1)

    code = LEAF_CODES.get(tag)
    if code is None:
        return CloudFSError(ErrorCode.INVALID_ARGUMENT, f"Unknown error tag: {tag}", path, syscall)
    return CloudFSError(code, message, path, syscall)


def convert_error(
    error: Exception, path: str | None = None, syscall: str | None = None
) -> CloudFSError:
    """
    Convert a Dropbox SDK error into a CloudFSError.

    ApiError is the response envelope; its ``error`` is a route-specific
    union (GetMetadataError, RelocationError, ...) whose category tags
    (``path``, ``path_lookup``, ``from_lookup``, ``to``, ...) are unwrapped
    until a leaf tag is found. The user-facing message from the envelope, if
    any, is attached to the result. Unknown leaf tags give INVALID_ARGUMENT.
    """
    if isinstance(error, CloudFSError):
        return error
    if isinstance(error, ApiError):
        message = error.user_message_text or str(error.error)
        return _convert_union(error.error, message, path, syscall)
    if isinstance(error, AuthError):
        return CloudFSError(ErrorCode.ACCESS_DENIED, str(error.error), path, syscall)
    if isinstance(error, RateLimitError):
        return CloudFSError(ErrorCode.TRY_AGAIN, "Rate limited", path, syscall)
    if isinstance(error, BadInputError):
        return CloudFSError(ErrorCode.INVALID_ARGUMENT, error.message, path, syscall)
    if isinstance(error, (InternalServerError, HttpError)):
        return CloudFSError(ErrorCode.IO_ERROR, f"HTTP {error.status_code}", path, syscall)
    if hasattr(error, "_tag"):
        return _convert_union(error, None, path, syscall)
    return CloudFSError(ErrorCode.IO_ERROR, str(error), path, syscall)


def _timestamp(value: datetime | None) -> float:
    if value is None:
        return time.time()
    # The SDK returns naive UTC datetimes
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


class DropboxBackend:
    """
    Dropbox backend implementing the RemoteBackend primitives.

    Args:
        client: An authenticated ``dropbox.Dropbox`` client.
    """

    name = "dropbox"

    def __init__(self, client: Any):
        self.client = client
        logger.info("Dropbox backend ready")

    def convert_error(self, error: Exception, path: str, syscall: str) -> CloudFSError:
        return convert_error(error, path, syscall)

    async def move(self, old_path: str, new_path: str) -> None:
        await asyncio.to_thread(
            self.client.files_move_v2, from_path=fix_path(old_path), to_path=fix_path(new_path)
        )
        logger.debug("Moved %s -> %s", old_path, new_path)

    async def stat(self, path: str) -> FileStats:
        result = await asyncio.to_thread(self.client.files_get_metadata, fix_path(path))

        if isinstance(result, FileMetadata):
            mtime = _timestamp(result.server_modified)
            symlink = getattr(result, "symlink_info", None)
            if symlink is not None:
                mode = stat.S_IFLNK | 0o777
                size = len(symlink.target or "") or result.size
            else:
                mode = stat.S_IFREG | 0o777
                size = result.size
            return FileStats(
                mode=mode,
                size=size,
                atime=time.time(),
                mtime=mtime,
                ctime=mtime,
                birthtime=_timestamp(result.client_modified),
            )
        if isinstance(result, FolderMetadata):
            return FileStats.directory(0o777)
        if isinstance(result, DeletedMetadata):
            raise CloudFSError(ErrorCode.NOT_FOUND, None, path, "stat")
        raise CloudFSError(ErrorCode.INVALID_ARGUMENT, "Invalid file type", path, "stat")

    async def create(self, path: str, stats: FileStats) -> None:
        if stats.is_dir:
            await asyncio.to_thread(self.client.files_create_folder_v2, fix_path(path))
        else:
            await asyncio.to_thread(self.client.files_upload, b"", fix_path(path))
        logger.debug("Created %s: %s", "directory" if stats.is_dir else "file", path)

    async def delete(self, path: str, is_dir: bool) -> None:
        await asyncio.to_thread(self.client.files_delete_v2, fix_path(path))
        logger.debug("Deleted %s", path)

    @staticmethod
    def _page(result: Any) -> Page:
        return Page(
            entries=[entry.name for entry in result.entries if entry.name],
            has_more=bool(result.has_more),
            cursor=result.cursor,
        )

    async def list_dir(self, path: str) -> list[str]:
        """List child names, following the continuation cursor."""
        dropbox_path = fix_path(path)

        async def first_page() -> Page:
            result = await asyncio.to_thread(self.client.files_list_folder, dropbox_path)
            return self._page(result)

        async def next_page(cursor: str) -> Page:
            result = await asyncio.to_thread(self.client.files_list_folder_continue, cursor)
            return self._page(result)

        names = await list_all(first_page, next_page)
        logger.debug("Listed %d entries in %s", len(names), path)
        return names

    async def read(self, path: str) -> bytes:
        def _read_internal() -> bytes:
            _, response = self.client.files_download(fix_path(path))
            try:
                return response.content
            finally:
                response.close()

        data = await asyncio.to_thread(_read_internal)
        logger.debug("Read %d bytes from %s", len(data), path)
        return data

    async def write(self, path: str, data: bytes) -> None:
        await asyncio.to_thread(
            self.client.files_upload, bytes(data), fix_path(path), mode=WriteMode.overwrite
        )
        logger.debug("Wrote %d bytes to %s", len(data), path)
