import configparser
from dataclasses import dataclass, field
from pathlib import Path

BACKENDS = ("s3", "dropbox", "gdrive")

_TRUE_VALUES = ("true", "1", "yes")


@dataclass
class CacheConfig:
    enabled: bool = True  # metadata and directory listing caches
    content_ttl_seconds: int = 3600
    max_entries: int = 1024


@dataclass
class S3Config:
    bucket: str
    prefix: str = ""


@dataclass
class GoogleDriveConfig:
    root_folder_id: str = "root"
    shared_drive_id: str | None = None  # Shared drive ID (optional)
    use_trash: bool = True  # Trash instead of permanent delete


@dataclass
class LogConfig:
    level: str = "INFO"
    file: str = "cloudmount.log"
    console: bool = True


@dataclass
class AppConfig:
    backend: str
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LogConfig = field(default_factory=LogConfig)
    s3: S3Config | None = None
    gdrive: GoogleDriveConfig | None = None


def _parse_int(section: configparser.SectionProxy, key: str) -> int:
    value = section.get(key)
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid {key} value in config: '{value}' - must be an integer")


def _parse_bool(section: configparser.SectionProxy, key: str, default: str) -> bool:
    return section.get(key, default).lower() in _TRUE_VALUES


def load_config(config_path: str | None = None, **cli_args) -> AppConfig:
    """
    Load configuration from an INI file and/or keyword overrides.
    Keyword overrides take precedence over the config file.

    Args:
        config_path: Path to the INI configuration file.
        **cli_args: Key-value overrides (backend, bucket, prefix,
            root_folder_id, shared_drive_id, use_trash, cache_ttl, debug).

    Returns:
        AppConfig: The populated configuration object.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ValueError: If required fields are missing or values are invalid.
    """
    cache_config = {
        "enabled": True,
        "content_ttl_seconds": 3600,
        "max_entries": 1024,
    }
    s3_config = {
        "bucket": None,
        "prefix": "",
    }
    gdrive_config = {
        "root_folder_id": "root",
        "shared_drive_id": None,
        "use_trash": True,
    }
    log_config = {
        "level": "INFO",
        "file": "cloudmount.log",
        "console": True,
    }
    backend = None

    if config_path is not None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        parser = configparser.ConfigParser()
        parser.read(config_file, encoding="utf-8")

        if parser.has_section("general") and parser["general"].get("backend"):
            backend = parser["general"]["backend"].strip().lower()

        if parser.has_section("cache"):
            cache_section = parser["cache"]
            if cache_section.get("enabled"):
                cache_config["enabled"] = _parse_bool(cache_section, "enabled", "true")
            for key in ("content_ttl_seconds", "max_entries"):
                if cache_section.get(key):
                    cache_config[key] = _parse_int(cache_section, key)

        if parser.has_section("s3"):
            s3_section = parser["s3"]
            if s3_section.get("bucket"):
                s3_config["bucket"] = s3_section.get("bucket")
            if s3_section.get("prefix"):
                s3_config["prefix"] = s3_section.get("prefix")

        if parser.has_section("gdrive"):
            gdrive_section = parser["gdrive"]
            if gdrive_section.get("root_folder_id"):
                gdrive_config["root_folder_id"] = gdrive_section.get("root_folder_id")
            if gdrive_section.get("shared_drive_id"):
                gdrive_config["shared_drive_id"] = gdrive_section.get("shared_drive_id")
            if gdrive_section.get("use_trash"):
                gdrive_config["use_trash"] = _parse_bool(gdrive_section, "use_trash", "true")

        if parser.has_section("logging"):
            log_section = parser["logging"]
            if log_section.get("level"):
                log_config["level"] = log_section.get("level")
            if log_section.get("file"):
                log_config["file"] = log_section.get("file")
            if log_section.get("console"):
                log_config["console"] = _parse_bool(log_section, "console", "false")

    # Override with keyword arguments (cli_args take precedence)
    if cli_args.get("backend") is not None:
        backend = cli_args["backend"].lower()
    if cli_args.get("bucket") is not None:
        s3_config["bucket"] = cli_args["bucket"]
    if cli_args.get("prefix") is not None:
        s3_config["prefix"] = cli_args["prefix"]
    if cli_args.get("root_folder_id") is not None:
        gdrive_config["root_folder_id"] = cli_args["root_folder_id"]
    if cli_args.get("shared_drive_id") is not None:
        gdrive_config["shared_drive_id"] = cli_args["shared_drive_id"] or None
    if cli_args.get("use_trash") is not None:
        gdrive_config["use_trash"] = bool(cli_args["use_trash"])
    if cli_args.get("cache_ttl") is not None:
        cache_config["content_ttl_seconds"] = int(cli_args["cache_ttl"])
    if cli_args.get("debug"):
        log_config["level"] = "DEBUG"
        log_config["console"] = True

    # Validate required fields
    missing_fields = []
    if not backend:
        missing_fields.append("backend")
    elif backend == "s3" and not s3_config["bucket"]:
        missing_fields.append("bucket")

    if missing_fields:
        raise ValueError(f"Missing required configuration fields: {', '.join(missing_fields)}")

    if backend not in BACKENDS:
        raise ValueError(f"Invalid backend: {backend}. Must be one of: {', '.join(BACKENDS)}")
    if cache_config["content_ttl_seconds"] < 0:
        raise ValueError("content_ttl_seconds must not be negative")
    if cache_config["max_entries"] < 1:
        raise ValueError("max_entries must be at least 1")

    return AppConfig(
        backend=backend,
        cache=CacheConfig(
            enabled=cache_config["enabled"],
            content_ttl_seconds=cache_config["content_ttl_seconds"],
            max_entries=cache_config["max_entries"],
        ),
        logging=LogConfig(
            level=log_config["level"],
            file=log_config["file"],
            console=log_config["console"],
        ),
        s3=S3Config(bucket=s3_config["bucket"], prefix=s3_config["prefix"])
        if backend == "s3"
        else None,
        gdrive=GoogleDriveConfig(
            root_folder_id=gdrive_config["root_folder_id"],
            shared_drive_id=gdrive_config["shared_drive_id"],
            use_trash=gdrive_config["use_trash"],
        )
        if backend == "gdrive"
        else None,
    )
