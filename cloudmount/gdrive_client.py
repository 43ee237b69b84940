"""
Google Drive backend implementation.

Drive addresses files by ID, not by path: every primitive first resolves its
path through a PathCache, which walks the folder hierarchy one segment at a
time with "find child named X under parent Y" queries.

All Drive API requests execute in a thread via asyncio.to_thread() because
google-api-python-client is synchronous.
"""

import asyncio
import io
import logging
import time
from datetime import datetime
from typing import Any

from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload, MediaIoBaseUpload

from .errors import CloudFSError, ErrorCode, error_from_status
from .paging import Page, list_all
from .path_cache import PathCache
from .paths import base_name, join_path, normalize_path, parent_path
from .stats import FileStats

logger = logging.getLogger(__name__)

FOLDER_MIME = "application/vnd.google-apps.folder"

# Google Workspace MIME types and the formats they are exported to on read
WORKSPACE_EXPORT_MAP = {
    "application/vnd.google-apps.document": (
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    ),
    "application/vnd.google-apps.spreadsheet": (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    ),
    "application/vnd.google-apps.presentation": (
        "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    ),
    "application/vnd.google-apps.drawing": "application/pdf",
}

# All Google Workspace MIME types (including ones we don't export)
WORKSPACE_MIMES = {
    "application/vnd.google-apps.document",
    "application/vnd.google-apps.spreadsheet",
    "application/vnd.google-apps.presentation",
    "application/vnd.google-apps.drawing",
    "application/vnd.google-apps.form",
    "application/vnd.google-apps.map",
    "application/vnd.google-apps.site",
    "application/vnd.google-apps.jam",
    "application/vnd.google-apps.script",
}

# Fields to request from the Drive API for file metadata
FILE_FIELDS = "id, name, mimeType, size, modifiedTime, createdTime, trashed"
LIST_FIELDS = f"nextPageToken, files({FILE_FIELDS})"

# Uploads larger than this use a resumable session
RESUMABLE_THRESHOLD = 5 * 1024 * 1024


def convert_error(error: Exception, path: str, syscall: str) -> CloudFSError:
    """Convert a Drive API failure into a CloudFSError by HTTP status."""
    if isinstance(error, CloudFSError):
        return error
    if isinstance(error, HttpError):
        status = getattr(error.resp, "status", None)
        message = getattr(error, "reason", None) or str(error)
        return error_from_status(int(status) if status else None, message, path, syscall)
    return CloudFSError(ErrorCode.IO_ERROR, str(error), path, syscall)


def _parse_time(value: str | None) -> float:
    if not value:
        return time.time()
    # Drive API returns RFC 3339: "2024-06-15T10:30:00.000Z"
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


def _escape(value: str) -> str:
    """Escape a value for a single-quoted Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveBackend:
    """
    Google Drive backend implementing the RemoteBackend primitives.

    Mounts "My Drive", a specific folder or a shared drive using the Drive
    API v3.

    Args:
        service: Drive API v3 service from ``googleapiclient.discovery.build``.
        root_folder_id: Folder ID the filesystem root maps to.
        shared_drive_id: Shared drive ID; when set it is also the root.
        use_trash: Move deleted files to trash instead of deleting them.
    """

    name = "gdrive"

    def __init__(
        self,
        service: Any,
        root_folder_id: str = "root",
        shared_drive_id: str | None = None,
        use_trash: bool = True,
    ):
        self.service = service
        self.shared_drive_id = shared_drive_id
        self.use_trash = use_trash
        self.path_cache = PathCache(
            self._find_child, root_id=shared_drive_id or root_folder_id or "root"
        )
        logger.info("Google Drive backend rooted at %s", self.path_cache.root_id)

    def convert_error(self, error: Exception, path: str, syscall: str) -> CloudFSError:
        return convert_error(error, path, syscall)

    def _drive_kwargs(self, listing: bool = False) -> dict:
        """Extra request arguments needed when working inside a shared drive."""
        if not self.shared_drive_id:
            return {}
        kwargs = {"supportsAllDrives": True}
        if listing:
            kwargs["corpora"] = "drive"
            kwargs["driveId"] = self.shared_drive_id
            kwargs["includeItemsFromAllDrives"] = True
        return kwargs

    async def _execute(self, request: Any) -> Any:
        return await asyncio.to_thread(request.execute)

    async def _find_child(self, parent_id: str, name: str) -> str | None:
        """
        Find a child file/folder by name within a parent folder.

        If multiple files have the same name, returns the first match.
        """
        query = f"name='{_escape(name)}' and '{parent_id}' in parents and trashed=false"
        request = self.service.files().list(
            q=query,
            fields="files(id, name, mimeType)",
            pageSize=1,
            **self._drive_kwargs(listing=True),
        )
        result = await self._execute(request)
        files = result.get("files", [])
        if not files:
            return None

        file_id = files[0]["id"]
        logger.debug("Resolved '%s' in %s -> %s", name, parent_id, file_id)
        return file_id

    async def _get_metadata(self, file_id: str) -> dict:
        request = self.service.files().get(
            fileId=file_id, fields=FILE_FIELDS, **self._drive_kwargs()
        )
        return await self._execute(request)

    @staticmethod
    def _stats_from_metadata(meta: dict) -> FileStats:
        """Convert Drive API metadata to FileStats."""
        mime = meta.get("mimeType", "")
        mtime = _parse_time(meta.get("modifiedTime"))
        times = {
            "atime": mtime,
            "mtime": mtime,
            "ctime": mtime,
            "birthtime": _parse_time(meta.get("createdTime") or meta.get("modifiedTime")),
        }

        if mime == FOLDER_MIME:
            return FileStats.directory(0o755, **times)

        # Workspace files have no size until exported
        size = 0 if mime in WORKSPACE_MIMES else int(meta.get("size", 0))
        return FileStats.regular(0o644, size=size, **times)

    async def stat(self, path: str) -> FileStats:
        file_id = await self.path_cache.resolve(path)
        meta = await self._get_metadata(file_id)
        return self._stats_from_metadata(meta)

    async def list_dir(self, path: str) -> list[str]:
        """List child names, recording each child's ID in the path cache."""
        path = normalize_path(path)
        folder_id = await self.path_cache.resolve(path)
        query = f"'{folder_id}' in parents and trashed=false"

        async def fetch(page_token: str | None = None) -> Page:
            kwargs = {
                "q": query,
                "fields": LIST_FIELDS,
                "pageSize": 1000,
                "orderBy": "name",
                **self._drive_kwargs(listing=True),
            }
            if page_token:
                kwargs["pageToken"] = page_token
            response = await self._execute(self.service.files().list(**kwargs))
            token = response.get("nextPageToken")
            return Page(entries=response.get("files", []), has_more=bool(token), cursor=token)

        names: list[str] = []
        seen = set()
        for meta in await list_all(fetch, fetch):
            name = meta.get("name")
            mime = meta.get("mimeType", "")
            # Skip Workspace files that we can't export
            if not name or (mime in WORKSPACE_MIMES and mime not in WORKSPACE_EXPORT_MAP):
                continue
            # Drive allows duplicate names; the first one wins, as in lookups
            if name in seen:
                continue
            seen.add(name)
            names.append(name)
            self.path_cache.set(join_path(path, name), meta["id"])

        logger.debug("Listed %d entries in %s", len(names), path)
        return names

    async def read(self, path: str) -> bytes:
        file_id = await self.path_cache.resolve(path)
        meta = await self._get_metadata(file_id)
        mime = meta.get("mimeType", "")

        def _read_internal() -> bytes:
            # Workspace files need export
            if mime in WORKSPACE_EXPORT_MAP:
                request = self.service.files().export_media(
                    fileId=file_id, mimeType=WORKSPACE_EXPORT_MAP[mime]
                )
            else:
                request = self.service.files().get_media(fileId=file_id, **self._drive_kwargs())

            buffer = io.BytesIO()
            downloader = MediaIoBaseDownload(buffer, request)
            done = False
            while not done:
                _, done = downloader.next_chunk()
            return buffer.getvalue()

        data = await asyncio.to_thread(_read_internal)
        logger.debug("Read %d bytes from %s", len(data), path)
        return data

    async def write(self, path: str, data: bytes) -> None:
        file_id = await self.path_cache.resolve(path)
        meta = await self._get_metadata(file_id)

        # Cannot write to Workspace files
        if meta.get("mimeType", "") in WORKSPACE_MIMES:
            raise CloudFSError(
                ErrorCode.PERMISSION_DENIED, "Cannot write to Google Workspace file", path, "write"
            )

        media = MediaIoBaseUpload(
            io.BytesIO(data),
            mimetype="application/octet-stream",
            resumable=len(data) > RESUMABLE_THRESHOLD,
        )
        request = self.service.files().update(
            fileId=file_id, media_body=media, **self._drive_kwargs()
        )
        await self._execute(request)
        logger.debug("Wrote %d bytes to %s", len(data), path)

    async def create(self, path: str, stats: FileStats) -> None:
        path = normalize_path(path)
        parent_id = await self.path_cache.resolve(parent_path(path))

        body = {"name": base_name(path), "parents": [parent_id]}
        if stats.is_dir:
            body["mimeType"] = FOLDER_MIME

        request = self.service.files().create(body=body, fields="id", **self._drive_kwargs())
        result = await self._execute(request)
        self.path_cache.set(path, result["id"])
        logger.debug("Created %s: %s", "directory" if stats.is_dir else "file", path)

    async def delete(self, path: str, is_dir: bool) -> None:
        """Move a file or directory to trash, or delete it permanently."""
        file_id = await self.path_cache.resolve(path)

        if self.use_trash:
            request = self.service.files().update(
                fileId=file_id, body={"trashed": True}, **self._drive_kwargs()
            )
        else:
            request = self.service.files().delete(fileId=file_id, **self._drive_kwargs())
        await self._execute(request)

        self.path_cache.invalidate(path)
        logger.debug("%s %s", "Trashed" if self.use_trash else "Deleted", path)

    async def move(self, old_path: str, new_path: str) -> None:
        """Rename in place; also reparent when the parent directory changes."""
        old_path = normalize_path(old_path)
        new_path = normalize_path(new_path)
        file_id = await self.path_cache.resolve(old_path)

        old_parent = parent_path(old_path)
        new_parent = parent_path(new_path)

        kwargs = {
            "fileId": file_id,
            "body": {"name": base_name(new_path)},
            "fields": "id, parents",
            **self._drive_kwargs(),
        }
        # If parent directory changed, move the file
        if old_parent != new_parent:
            kwargs["addParents"] = await self.path_cache.resolve(new_parent)
            kwargs["removeParents"] = await self.path_cache.resolve(old_parent)

        await self._execute(self.service.files().update(**kwargs))

        self.path_cache.invalidate(old_path)
        self.path_cache.invalidate(new_path)
        logger.debug("Moved %s -> %s", old_path, new_path)
