"""
Unit tests for cloudmount.dropbox_client module.

Tests cover:
- Recursive error conversion through envelope and category tags
- Unknown leaf tags yield INVALID_ARGUMENT
- SDK envelope errors (auth, rate limit, bad input, HTTP)
- stat for files, folders, deleted entries
- Cursor-paged listing
- create/delete/move/read/write request shapes
"""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from dropbox import files
from dropbox.auth import AuthError as AuthErrorReason
from dropbox.exceptions import (
    ApiError,
    AuthError,
    BadInputError,
    HttpError,
    InternalServerError,
    RateLimitError,
)

from cloudmount.dropbox_client import LEAF_CODES, DropboxBackend, convert_error, fix_path
from cloudmount.errors import CloudFSError, ErrorCode
from cloudmount.filesystem import CloudFileSystem


def api_error(error, user_message=None) -> ApiError:
    return ApiError("req-1", error, user_message, "en" if user_message else None)


def union(tag, value=None):
    """Duck-typed stand-in for a stone union, allowing tags the SDK does not know."""
    return SimpleNamespace(_tag=tag, _value=value)


class TestConvertError:
    """Tests for the recursive tagged-union conversion."""

    def test_three_level_not_found(self):
        """envelope -> path_lookup -> not_found is NOT_FOUND."""
        error = api_error(files.DeleteError.path_lookup(files.LookupError.not_found))

        converted = convert_error(error, "/a.txt", "unlink")

        assert converted.code is ErrorCode.NOT_FOUND
        assert converted.path == "/a.txt"
        assert converted.syscall == "unlink"

    def test_get_metadata_path_not_found(self):
        error = api_error(files.GetMetadataError.path(files.LookupError.not_found))
        assert convert_error(error, "/a", "stat").code is ErrorCode.NOT_FOUND

    def test_move_source_lookup(self):
        error = api_error(files.RelocationError.from_lookup(files.LookupError.not_folder))
        assert convert_error(error, "/a", "rename").code is ErrorCode.NOT_A_DIRECTORY

    def test_write_conflict(self):
        error = api_error(
            files.DeleteError.path_write(files.WriteError.conflict(files.WriteConflictError.file))
        )
        assert convert_error(error, "/a", "unlink").code is ErrorCode.PERMISSION_DENIED

    def test_upload_failure_descends_into_reason(self):
        failed = files.UploadWriteFailed(
            reason=files.WriteError.insufficient_space, upload_session_id="session"
        )
        error = api_error(files.UploadError.path(failed))

        assert convert_error(error, "/a", "write").code is ErrorCode.OUT_OF_SPACE

    def test_leaf_at_top_level(self):
        error = api_error(files.DeleteError.too_many_write_operations)
        assert convert_error(error, "/a", "unlink").code is ErrorCode.TRY_AGAIN

    def test_user_message_is_attached(self):
        error = api_error(files.GetMetadataError.path(files.LookupError.not_found), "File is gone")

        assert convert_error(error, "/a", "stat").message == "File is gone"

    def test_summary_used_without_user_message(self):
        error = api_error(files.GetMetadataError.path(files.LookupError.not_found))

        assert "not_found" in convert_error(error, "/a", "stat").message

    def test_unknown_leaf_tag_is_invalid_argument(self):
        """An unrecognized tag is classified, not a conversion failure."""
        error = api_error(union("path", union("brand_new_reason")))

        converted = convert_error(error, "/a", "stat")

        assert converted.code is ErrorCode.INVALID_ARGUMENT
        assert "brand_new_reason" in converted.message

    @pytest.mark.parametrize("tag", sorted(LEAF_CODES))
    def test_every_leaf_tag_under_category(self, tag):
        error = api_error(union("to", union(tag)))
        assert convert_error(error, "/a", "rename").code is LEAF_CODES[tag]

    @pytest.mark.parametrize(
        "tag,code",
        [
            ("malformed_path", ErrorCode.BAD_FILE_DESCRIPTOR),
            ("not_file", ErrorCode.IS_A_DIRECTORY),
            ("locked", ErrorCode.BUSY),
            ("content_hash_mismatch", ErrorCode.BAD_MESSAGE),
            ("unsupported_content_type", ErrorCode.UNSUPPORTED_MESSAGE),
            ("payload_too_large", ErrorCode.MESSAGE_TOO_LARGE),
            ("too_many_files", ErrorCode.OUT_OF_SPACE),
            ("internal_error", ErrorCode.IO_ERROR),
            ("other", ErrorCode.IO_ERROR),
        ],
    )
    def test_leaf_mapping(self, tag, code):
        assert convert_error(api_error(union(tag)), "/a", "x").code is code

    def test_runaway_nesting_is_bounded(self):
        error = union("path")
        for _ in range(50):
            error = union("path", error)

        assert convert_error(api_error(error), "/a", "stat").code is ErrorCode.IO_ERROR

    def test_missing_value_under_category(self):
        assert convert_error(api_error(union("path")), "/a", "x").code is ErrorCode.IO_ERROR

    def test_bare_union_without_envelope(self):
        error = files.LookupError.not_found
        assert convert_error(error, "/a", "stat").code is ErrorCode.NOT_FOUND

    def test_auth_error(self):
        error = AuthError("req-1", AuthErrorReason.invalid_access_token)
        assert convert_error(error, "/a", "stat").code is ErrorCode.ACCESS_DENIED

    def test_rate_limit(self):
        error = RateLimitError("req-1", None, 5)
        assert convert_error(error, "/a", "stat").code is ErrorCode.TRY_AGAIN

    def test_bad_input(self):
        error = BadInputError("req-1", "Error in call to API function")

        converted = convert_error(error, "/a", "stat")

        assert converted.code is ErrorCode.INVALID_ARGUMENT
        assert converted.message == "Error in call to API function"

    def test_http_errors(self):
        assert convert_error(InternalServerError("r", 500, "oops"), "/a", "x").code is ErrorCode.IO_ERROR
        assert convert_error(HttpError("r", 502, "bad gateway"), "/a", "x").code is ErrorCode.IO_ERROR

    def test_unrelated_exception(self):
        assert convert_error(ConnectionError("reset"), "/a", "x").code is ErrorCode.IO_ERROR


@pytest.fixture
def dbx():
    return DropboxBackend(MagicMock())


def file_metadata(size=5, symlink_target=None):
    meta = MagicMock(spec=files.FileMetadata)
    meta.name = "a.txt"
    meta.size = size
    meta.server_modified = datetime(2024, 6, 15, 10, 30)
    meta.client_modified = datetime(2024, 6, 1, 8, 0)
    meta.symlink_info = SimpleNamespace(target=symlink_target) if symlink_target else None
    return meta


class TestStat:
    """Tests for DropboxBackend.stat."""

    def test_fix_path(self):
        assert fix_path("/") == ""
        assert fix_path("") == ""
        assert fix_path("docs\\a.txt") == "/docs/a.txt"

    @pytest.mark.asyncio
    async def test_file(self, dbx):
        dbx.client.files_get_metadata.return_value = file_metadata(size=12)

        stats = await dbx.stat("/a.txt")

        assert stats.is_file
        assert stats.size == 12
        assert stats.mtime == stats.ctime
        assert stats.birthtime < stats.mtime
        dbx.client.files_get_metadata.assert_called_once_with("/a.txt")

    @pytest.mark.asyncio
    async def test_symlink(self, dbx):
        dbx.client.files_get_metadata.return_value = file_metadata(symlink_target="/target")

        stats = await dbx.stat("/link")

        assert stats.is_symlink
        assert stats.size == len("/target")

    @pytest.mark.asyncio
    async def test_folder(self, dbx):
        dbx.client.files_get_metadata.return_value = MagicMock(spec=files.FolderMetadata)

        assert (await dbx.stat("/docs")).is_dir

    @pytest.mark.asyncio
    async def test_deleted_entry_is_not_found(self, dbx):
        dbx.client.files_get_metadata.return_value = MagicMock(spec=files.DeletedMetadata)

        with pytest.raises(CloudFSError) as exc_info:
            await dbx.stat("/gone")

        assert exc_info.value.code is ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_metadata_type(self, dbx):
        dbx.client.files_get_metadata.return_value = object()

        with pytest.raises(CloudFSError) as exc_info:
            await dbx.stat("/odd")

        assert exc_info.value.code is ErrorCode.INVALID_ARGUMENT


class TestListDir:
    """Tests for DropboxBackend.list_dir."""

    @pytest.mark.asyncio
    async def test_follows_cursor(self, dbx):
        dbx.client.files_list_folder.return_value = SimpleNamespace(
            entries=[SimpleNamespace(name="a"), SimpleNamespace(name="b")],
            has_more=True,
            cursor="cursor-1",
        )
        dbx.client.files_list_folder_continue.side_effect = [
            SimpleNamespace(
                entries=[SimpleNamespace(name="c"), SimpleNamespace(name="d")],
                has_more=True,
                cursor="cursor-2",
            ),
            SimpleNamespace(entries=[SimpleNamespace(name="e")], has_more=False, cursor="cursor-3"),
        ]

        names = await dbx.list_dir("/")

        assert names == ["a", "b", "c", "d", "e"]
        dbx.client.files_list_folder.assert_called_once_with("")
        cursors = [c.args[0] for c in dbx.client.files_list_folder_continue.call_args_list]
        assert cursors == ["cursor-1", "cursor-2"]

    @pytest.mark.asyncio
    async def test_endless_cursor_rejected(self, dbx):
        page = SimpleNamespace(entries=[SimpleNamespace(name="x")], has_more=True, cursor="again")
        dbx.client.files_list_folder.return_value = page
        dbx.client.files_list_folder_continue.return_value = page

        with pytest.raises(CloudFSError) as exc_info:
            await dbx.list_dir("/docs")

        assert exc_info.value.code is ErrorCode.IO_ERROR


class TestMutations:
    """Tests for create, delete, move, read and write."""

    @pytest.mark.asyncio
    async def test_create_folder(self, dbx):
        from cloudmount.stats import FileStats

        await dbx.create("/docs", FileStats.directory())

        dbx.client.files_create_folder_v2.assert_called_once_with("/docs")
        dbx.client.files_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_file_uploads_empty_body(self, dbx):
        from cloudmount.stats import FileStats

        await dbx.create("/a.txt", FileStats.regular())

        dbx.client.files_upload.assert_called_once_with(b"", "/a.txt")

    @pytest.mark.asyncio
    async def test_delete(self, dbx):
        await dbx.delete("/a.txt", False)
        dbx.client.files_delete_v2.assert_called_once_with("/a.txt")

    @pytest.mark.asyncio
    async def test_move(self, dbx):
        await dbx.move("/a.txt", "/docs/b.txt")
        dbx.client.files_move_v2.assert_called_once_with(from_path="/a.txt", to_path="/docs/b.txt")

    @pytest.mark.asyncio
    async def test_read_closes_response(self, dbx):
        response = MagicMock()
        response.content = b"payload"
        dbx.client.files_download.return_value = (file_metadata(), response)

        assert await dbx.read("/a.txt") == b"payload"
        response.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_write_overwrites(self, dbx):
        await dbx.write("/a.txt", b"data")

        dbx.client.files_upload.assert_called_once_with(
            b"data", "/a.txt", mode=files.WriteMode.overwrite
        )

    @pytest.mark.asyncio
    async def test_filesystem_maps_api_error(self, dbx):
        """End to end: a nested not_found surfaces through exists() as False."""
        dbx.client.files_get_metadata.side_effect = api_error(
            files.GetMetadataError.path(files.LookupError.not_found)
        )
        fs = CloudFileSystem(dbx)

        assert await fs.exists("/missing") is False

    @pytest.mark.asyncio
    async def test_filesystem_has_no_touch(self, dbx):
        """Dropbox has no metadata update; touch is accepted and ignored."""
        fs = CloudFileSystem(dbx)

        await fs.touch("/a.txt", mtime=1.0)

        assert dbx.client.method_calls == []
