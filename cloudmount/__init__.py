__version__ = "0.1.0"

# Public API exports
from .backends import (
    Backend,
    Dropbox,
    GoogleDrive,
    OptionSpec,
    S3Bucket,
    get_backend,
    open_filesystem,
)
from .cache import ContentCache, DirectoryCache, MetadataCache
from .config import (
    AppConfig,
    CacheConfig,
    GoogleDriveConfig,
    LogConfig,
    S3Config,
    load_config,
)
from .errors import CloudFSError, ErrorCode
from .filesystem import CloudFileSystem
from .logger import setup_logging
from .paging import Page, list_all
from .path_cache import PathCache
from .remote_client import RemoteBackend
from .stats import FileStats


def get_s3_backend():
    """Lazy loader for S3Backend.

    Returns the S3Backend class, importing it on first use so that
    importing cloudmount does not require boto3.
    """
    from .s3_client import S3Backend

    return S3Backend


def get_dropbox_backend():
    """Lazy loader for DropboxBackend (requires the dropbox SDK)."""
    from .dropbox_client import DropboxBackend

    return DropboxBackend


def get_google_drive_backend():
    """Lazy loader for GoogleDriveBackend (requires google-api-python-client)."""
    from .gdrive_client import GoogleDriveBackend

    return GoogleDriveBackend


__all__ = [
    "__version__",
    # Configuration
    "AppConfig",
    "CacheConfig",
    "S3Config",
    "GoogleDriveConfig",
    "LogConfig",
    "load_config",
    "setup_logging",
    # Errors
    "CloudFSError",
    "ErrorCode",
    # Backends
    "RemoteBackend",
    "Backend",
    "OptionSpec",
    "S3Bucket",
    "Dropbox",
    "GoogleDrive",
    "get_backend",
    "open_filesystem",
    "get_s3_backend",
    "get_dropbox_backend",
    "get_google_drive_backend",
    "FileStats",
    # Caches and listing
    "ContentCache",
    "DirectoryCache",
    "MetadataCache",
    "PathCache",
    "Page",
    "list_all",
    # Filesystem
    "CloudFileSystem",
]
