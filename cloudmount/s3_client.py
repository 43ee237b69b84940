"""
S3 backend implementation using boto3.

Maps the flat key space of a bucket onto a directory tree: every file or
directory is an object whose user-metadata carries the encoded FileStats
record, and listing splits keys on "/". Works with AWS S3 and any
S3-compatible service.

All boto3 calls run in a thread via asyncio.to_thread() because boto3 is
synchronous.
"""

import asyncio
import logging
import time
from typing import Any

from botocore.exceptions import ClientError

from .errors import CloudFSError, ErrorCode, error_from_status
from .paging import Page, list_all
from .paths import normalize_path
from .stats import FileStats

logger = logging.getLogger(__name__)

# S3 assigns LastModified itself; these fields are never stored on the object
SERVER_TIME_FIELDS = ("mtime", "ctime")

# LastModified has one-second resolution
MTIME_TOLERANCE_SECONDS = 1.0


def _status(error: ClientError) -> int | None:
    return (error.response or {}).get("ResponseMetadata", {}).get("HTTPStatusCode")


def _is_not_found(error: Exception) -> bool:
    if not isinstance(error, ClientError):
        return False
    code = (error.response or {}).get("Error", {}).get("Code")
    return _status(error) == 404 or code in ("404", "NoSuchKey", "NotFound")


def convert_error(error: Exception, path: str, syscall: str) -> CloudFSError:
    """Convert a boto3/botocore failure into a CloudFSError by HTTP status."""
    if isinstance(error, CloudFSError):
        return error
    if isinstance(error, ClientError):
        detail = (error.response or {}).get("Error", {})
        message = detail.get("Message") or detail.get("Code") or str(error)
        status = _status(error)
        if status is None and _is_not_found(error):
            status = 404
        return error_from_status(status, message, path, syscall)
    return CloudFSError(ErrorCode.IO_ERROR, str(error), path, syscall)


class S3Backend:
    """
    S3 bucket backend implementing the RemoteBackend primitives.

    Args:
        client: An authenticated boto3 S3 client.
        bucket: Bucket name.
        prefix: Key prefix the filesystem root maps to (e.g. "mounts/home").
    """

    name = "s3"

    def __init__(self, client: Any, bucket: str, prefix: str = ""):
        self.client = client
        self.bucket = bucket
        prefix = prefix.replace("\\", "/").strip("/")
        self.prefix = prefix + "/" if prefix else ""
        logger.info("S3 backend for bucket %s (prefix %r)", bucket, self.prefix)

    def convert_error(self, error: Exception, path: str, syscall: str) -> CloudFSError:
        return convert_error(error, path, syscall)

    def _key(self, path: str) -> str:
        """Build the object key for a logical path."""
        return self.prefix + normalize_path(path).lstrip("/")

    def _dir_prefix(self, path: str) -> str:
        """Key prefix shared by every child of a directory."""
        key = self._key(path)
        if key and not key.endswith("/"):
            key += "/"
        return key

    def _stats_from_head(self, path: str, head: dict) -> FileStats:
        length = head.get("ContentLength", 0)
        last_modified = head.get("LastModified")
        server_mtime = last_modified.timestamp() if last_modified else time.time()
        times = {
            "atime": server_mtime,
            "mtime": server_mtime,
            "ctime": server_mtime,
            "birthtime": server_mtime,
        }
        metadata = head.get("Metadata") or {}

        if "mode" not in metadata:
            # Object uploaded by another client: no encoded record
            return FileStats.regular(0o644, size=length, **times)

        try:
            stats = FileStats.from_attributes(metadata, **times)
        except ValueError as e:
            raise CloudFSError(ErrorCode.BAD_MESSAGE, f"Unreadable metadata: {e}", path, "stat")

        if stats.size != length:
            logger.warning(
                "Mismatch between stats size and content length: %s (%d != %d)",
                path,
                stats.size,
                length,
            )
            raise CloudFSError(
                ErrorCode.BAD_MESSAGE, "Mismatch between stats size and content length", path, "stat"
            )
        if "mtime" in metadata and abs(stats.mtime - server_mtime) > MTIME_TOLERANCE_SECONDS:
            logger.warning("Mismatch between stats mtime and last modified time: %s", path)
            raise CloudFSError(
                ErrorCode.BAD_MESSAGE, "Mismatch between stats mtime and last modified time", path, "stat"
            )
        return stats

    async def _has_children(self, path: str) -> bool:
        response = await asyncio.to_thread(
            self.client.list_objects_v2,
            Bucket=self.bucket,
            Prefix=self._dir_prefix(path),
            MaxKeys=1,
        )
        return bool(response.get("KeyCount") or response.get("Contents"))

    async def stat(self, path: str) -> FileStats:
        """Head the object; a missing key with children is an implicit directory."""
        try:
            head = await asyncio.to_thread(
                self.client.head_object, Bucket=self.bucket, Key=self._key(path)
            )
        except ClientError as e:
            if _is_not_found(e) and await self._has_children(path):
                return FileStats.directory(0o755)
            raise
        return self._stats_from_head(path, head)

    async def _list_page(self, prefix: str, delimiter: str | None, token: str | None = None) -> Page:
        kwargs = {"Bucket": self.bucket, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        if token:
            kwargs["ContinuationToken"] = token
        response = await asyncio.to_thread(self.client.list_objects_v2, **kwargs)

        keys = [p["Prefix"] for p in response.get("CommonPrefixes", [])]
        keys += [obj["Key"] for obj in response.get("Contents", []) if obj["Key"] != prefix]
        return Page(
            entries=keys,
            has_more=bool(response.get("IsTruncated")),
            cursor=response.get("NextContinuationToken"),
        )

    async def _list_keys(self, prefix: str, delimiter: str | None = None) -> list[str]:
        return await list_all(
            lambda: self._list_page(prefix, delimiter),
            lambda token: self._list_page(prefix, delimiter, token),
        )

    async def list_dir(self, path: str) -> list[str]:
        """List child names: common prefixes first, then objects."""
        prefix = self._dir_prefix(path)
        keys = await self._list_keys(prefix, "/")

        names = [key[len(prefix) :].rstrip("/") for key in keys]
        # A directory marker and its common prefix yield the same name
        return list(dict.fromkeys(name for name in names if name))

    async def create(self, path: str, stats: FileStats) -> None:
        syscall = "mkdir" if stats.is_dir else "createFile"
        # The root directory always exists
        if normalize_path(path) == "/":
            raise CloudFSError(ErrorCode.ALREADY_EXISTS, None, "/", syscall)

        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=self._key(path),
            Body=b"",
            ContentLength=0,
            Metadata=stats.replace(size=0).to_attributes(exclude=SERVER_TIME_FIELDS),
        )
        logger.debug("Created %s: %s", "directory" if stats.is_dir else "file", path)

    async def delete(self, path: str, is_dir: bool) -> None:
        if normalize_path(path) == "/":
            raise CloudFSError(ErrorCode.PERMISSION_DENIED, None, "/", "rmdir" if is_dir else "unlink")

        await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=self._key(path))
        logger.debug("Deleted %s", path)

    async def _move_key(self, source: str, target: str) -> None:
        await asyncio.to_thread(
            self.client.copy_object,
            Bucket=self.bucket,
            CopySource={"Bucket": self.bucket, "Key": source},
            Key=target,
            MetadataDirective="COPY",
        )
        await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=source)

    async def move(self, old_path: str, new_path: str) -> None:
        """Copy then delete. Directories move every key under their prefix."""
        stats = await self.stat(old_path)
        old_key = self._key(old_path)
        new_key = self._key(new_path)

        if stats.is_dir:
            old_prefix = self._dir_prefix(old_path)
            new_prefix = self._dir_prefix(new_path)
            for key in await self._list_keys(old_prefix):
                await self._move_key(key, new_prefix + key[len(old_prefix) :])
            try:
                await self._move_key(old_key, new_key)
            except ClientError as e:
                # Implicit directories have no marker object
                if not _is_not_found(e):
                    raise
        else:
            await self._move_key(old_key, new_key)

        logger.debug("Moved %s -> %s", old_path, new_path)

    async def read(self, path: str) -> bytes:
        def _read_internal() -> bytes:
            response = self.client.get_object(Bucket=self.bucket, Key=self._key(path))
            return response["Body"].read()

        data = await asyncio.to_thread(_read_internal)
        if data is None:
            raise CloudFSError(ErrorCode.IO_ERROR, "Object has no body", path, "read")
        logger.debug("Read %d bytes from %s", len(data), path)
        return data

    async def write(self, path: str, data: bytes) -> None:
        """Upload the full buffer, keeping the existing record apart from size."""
        current = await self.stat(path)
        stats = current.replace(size=len(data), atime=time.time())

        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=self._key(path),
            Body=data,
            ContentLength=len(data),
            ContentType="application/octet-stream",
            Metadata=stats.to_attributes(exclude=SERVER_TIME_FIELDS),
        )
        logger.debug("Wrote %d bytes to %s", len(data), path)

    async def touch(self, path: str, changes: dict) -> None:
        """
        Rewrite the object's metadata in place with a self-copy.

        Raises:
            CloudFSError: NOT_SUPPORTED if ``changes`` names mtime or ctime,
                which S3 assigns on every write.
        """
        server_fields = sorted(set(changes) & set(SERVER_TIME_FIELDS))
        if server_fields:
            raise CloudFSError(
                ErrorCode.NOT_SUPPORTED,
                f"S3 assigns {', '.join(server_fields)} itself",
                path,
                "touch",
            )

        current = await self.stat(path)
        stats = current.replace(**changes)

        await asyncio.to_thread(
            self.client.copy_object,
            Bucket=self.bucket,
            CopySource={"Bucket": self.bucket, "Key": self._key(path)},
            Key=self._key(path),
            ContentType="application/octet-stream",
            Metadata=stats.replace(size=current.size).to_attributes(exclude=SERVER_TIME_FIELDS),
            MetadataDirective="REPLACE",
        )
        logger.debug("Updated metadata of %s: %s", path, sorted(changes))
