"""
Backend registration.

Each store is described by a Backend: a name, an options schema, an
availability probe and a factory that builds a CloudFileSystem from
validated options. Backend modules are imported by the factories, so a
missing vendor SDK only matters for the backend that needs it.
"""

import dataclasses
import importlib.util
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .config import AppConfig, CacheConfig, GoogleDriveConfig
from .filesystem import CloudFileSystem
from .logger import setup_logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptionSpec:
    type: type | tuple[type, ...]
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class Backend:
    """
    Descriptor for one remote store.

    Attributes:
        name: Display name.
        options: Option name -> OptionSpec.
        factory: Callable taking the validated options as keywords.
        requires: Top-level import name of the vendor SDK the backend needs.
    """

    name: str
    options: dict[str, OptionSpec]
    factory: Callable[..., CloudFileSystem]
    requires: str

    def is_available(self) -> bool:
        return importlib.util.find_spec(self.requires) is not None

    def validate(self, options: dict[str, Any]) -> None:
        """
        Check options against the schema.

        Raises:
            ValueError: An option is unknown or a required one is missing.
            TypeError: An option has the wrong type.
        """
        unknown = sorted(set(options) - set(self.options))
        if unknown:
            raise ValueError(f"Unknown options for {self.name}: {', '.join(unknown)}")

        for key, spec in self.options.items():
            value = options.get(key)
            if value is None:
                if spec.required:
                    raise ValueError(f"Missing required option for {self.name}: {key}")
                continue
            if not isinstance(value, spec.type):
                raise TypeError(
                    f"Option {key} for {self.name} must be {_type_name(spec.type)}, "
                    f"got {type(value).__name__}"
                )

    def create(self, **options: Any) -> CloudFileSystem:
        self.validate(options)
        logger.debug("Creating %s filesystem with options: %s", self.name, sorted(options))
        return self.factory(**{k: v for k, v in options.items() if v is not None})


def _type_name(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _cache_config(cache_config: CacheConfig | None, cache_ttl: float | None) -> CacheConfig:
    cache_config = cache_config or CacheConfig()
    if cache_ttl is not None:
        cache_config = dataclasses.replace(cache_config, content_ttl_seconds=cache_ttl)
    return cache_config


def _create_s3(
    client: Any,
    bucket_name: str,
    prefix: str = "",
    cache_ttl: float | None = None,
    cache_config: CacheConfig | None = None,
) -> CloudFileSystem:
    from .s3_client import S3Backend

    backend = S3Backend(client, bucket_name, prefix)
    return CloudFileSystem(backend, _cache_config(cache_config, cache_ttl))


def _create_dropbox(
    client: Any, cache_ttl: float | None = None, cache_config: CacheConfig | None = None
) -> CloudFileSystem:
    from .dropbox_client import DropboxBackend

    return CloudFileSystem(DropboxBackend(client), _cache_config(cache_config, cache_ttl))


def _create_gdrive(
    service: Any,
    root_folder_id: str = "root",
    shared_drive_id: str | None = None,
    use_trash: bool = True,
    cache_ttl: float | None = None,
    cache_config: CacheConfig | None = None,
) -> CloudFileSystem:
    from .gdrive_client import GoogleDriveBackend

    backend = GoogleDriveBackend(service, root_folder_id, shared_drive_id, use_trash)
    return CloudFileSystem(backend, _cache_config(cache_config, cache_ttl))


_COMMON_OPTIONS = {
    "cache_ttl": OptionSpec((int, float), description="Content cache TTL in seconds"),
    "cache_config": OptionSpec(CacheConfig, description="Cache settings"),
}

S3Bucket = Backend(
    name="S3",
    options={
        "client": OptionSpec(object, required=True, description="Authenticated boto3 S3 client"),
        "bucket_name": OptionSpec(str, required=True, description="Bucket name"),
        "prefix": OptionSpec(str, description="Key prefix the root maps to"),
        **_COMMON_OPTIONS,
    },
    factory=_create_s3,
    requires="boto3",
)

Dropbox = Backend(
    name="Dropbox",
    options={
        "client": OptionSpec(object, required=True, description="Authenticated dropbox.Dropbox client"),
        **_COMMON_OPTIONS,
    },
    factory=_create_dropbox,
    requires="dropbox",
)

GoogleDrive = Backend(
    name="GoogleDrive",
    options={
        "service": OptionSpec(object, required=True, description="Drive API v3 service"),
        "root_folder_id": OptionSpec(str, description="Folder ID the root maps to"),
        "shared_drive_id": OptionSpec(str, description="Shared drive ID"),
        "use_trash": OptionSpec(bool, description="Trash instead of permanent delete"),
        **_COMMON_OPTIONS,
    },
    factory=_create_gdrive,
    requires="googleapiclient",
)

BACKENDS = {
    "s3": S3Bucket,
    "dropbox": Dropbox,
    "gdrive": GoogleDrive,
}


def get_backend(name: str) -> Backend:
    """
    Look up a backend by its config name ("s3", "dropbox", "gdrive").

    Raises:
        ValueError: If no backend has that name.
    """
    try:
        return BACKENDS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Invalid backend: {name}. Must be one of: {', '.join(BACKENDS)}")


def open_filesystem(
    config: AppConfig, client: Any, configure_logging: bool = True
) -> CloudFileSystem:
    """
    Build the filesystem described by ``config`` around an authenticated client.

    Args:
        config: Loaded application configuration.
        client: boto3 S3 client, dropbox.Dropbox client or Drive API service,
            matching ``config.backend``.
        configure_logging: Apply ``config.logging`` to the root logger first.
            Pass False when the host application owns logging.

    Returns:
        CloudFileSystem: The ready-to-use filesystem.

    Raises:
        ValueError: If the backend name or its settings are invalid.
        ImportError: If the backend's SDK is not installed.
    """
    if configure_logging:
        setup_logging(config.logging)

    backend = get_backend(config.backend)
    if not backend.is_available():
        raise ImportError(f"{backend.name} backend requires the {backend.requires} package")

    options: dict[str, Any] = {"cache_config": config.cache}
    if backend is S3Bucket:
        if config.s3 is None:
            raise ValueError("Missing [s3] configuration")
        options.update(client=client, bucket_name=config.s3.bucket, prefix=config.s3.prefix)
    elif backend is GoogleDrive:
        gdrive = config.gdrive or GoogleDriveConfig()
        options.update(
            service=client,
            root_folder_id=gdrive.root_folder_id,
            shared_drive_id=gdrive.shared_drive_id,
            use_trash=gdrive.use_trash,
        )
    else:
        options["client"] = client

    logger.info("Opening %s filesystem", backend.name)
    return backend.create(**options)
