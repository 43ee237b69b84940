"""
Normalized error taxonomy.

Every backend failure leaves the filesystem layer as a CloudFSError carrying
one ErrorCode. Backends supply their own conversion functions; this module
only holds the codes, the exception type and the HTTP status table shared by
the status-coded backends (S3 and Google Drive).
"""

import errno as _errno
from enum import Enum


class ErrorCode(Enum):
    """POSIX-like failure codes. Values are the matching errno numbers."""

    NOT_FOUND = _errno.ENOENT
    ACCESS_DENIED = _errno.EACCES
    INVALID_ARGUMENT = _errno.EINVAL
    ALREADY_EXISTS = _errno.EEXIST
    PERMISSION_DENIED = _errno.EPERM
    OUT_OF_SPACE = _errno.ENOSPC
    TRY_AGAIN = _errno.EAGAIN
    BUSY = _errno.EBUSY
    BAD_MESSAGE = _errno.EBADMSG
    UNSUPPORTED_MESSAGE = _errno.ENOMSG
    MESSAGE_TOO_LARGE = _errno.EMSGSIZE
    IS_A_DIRECTORY = _errno.EISDIR
    NOT_A_DIRECTORY = _errno.ENOTDIR
    BAD_FILE_DESCRIPTOR = _errno.EBADF
    NOT_EMPTY = _errno.ENOTEMPTY
    NOT_SUPPORTED = _errno.ENOTSUP
    IO_ERROR = _errno.EIO

    @property
    def errno_name(self) -> str:
        return _errno.errorcode.get(self.value, "EIO")


class CloudFSError(OSError):
    """
    A backend failure converted into the normalized taxonomy.

    Subclasses OSError so callers can catch it like any filesystem error;
    ``errno`` is set from the code.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        path: str | None = None,
        syscall: str | None = None,
    ):
        self.code = code
        self.message = message or code.errno_name
        self.path = path
        self.syscall = syscall
        super().__init__(code.value, self.message)

    def __str__(self) -> str:
        text = f"{self.code.errno_name}: {self.message}"
        if self.syscall:
            text += f", '{self.syscall}'"
        if self.path:
            text += f" {self.path}"
        return text

    def __repr__(self) -> str:
        return f"CloudFSError({self.code.name}, {self.message!r}, path={self.path!r})"


# Status table shared by the HTTP-coded backends. Anything unlisted is IO_ERROR.
HTTP_STATUS_CODES = {
    404: ErrorCode.NOT_FOUND,
    403: ErrorCode.ACCESS_DENIED,
    400: ErrorCode.INVALID_ARGUMENT,
    409: ErrorCode.ALREADY_EXISTS,
}


def error_from_status(
    status: int | None,
    message: str | None = None,
    path: str | None = None,
    syscall: str | None = None,
) -> CloudFSError:
    """
    Map an HTTP status onto a CloudFSError.

    Args:
        status: HTTP status code, or None when the failure carried none.
        message: Optional human-readable detail.
        path: Logical path the operation targeted.
        syscall: Name of the filesystem operation.

    Returns:
        CloudFSError with the mapped code (IO_ERROR when unmapped).
    """
    code = HTTP_STATUS_CODES.get(status, ErrorCode.IO_ERROR) if status else ErrorCode.IO_ERROR
    return CloudFSError(code, message, path, syscall)
