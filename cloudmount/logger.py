import logging
import sys
from pathlib import Path

from .config import LogConfig

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

# SDK loggers that trace every HTTP request at DEBUG
VENDOR_LOGGERS = ("botocore", "boto3", "urllib3", "dropbox", "googleapiclient.discovery_cache")


def _file_handler(file: str) -> logging.Handler:
    log_path = Path(file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(log_path, mode="a", encoding="utf-8")


def setup_logging(config: LogConfig) -> None:
    """
    Apply a [logging] section to the root logger.

    Replaces any handlers already installed, so calling it again (for example
    once per opened filesystem) never duplicates output. Vendor SDK loggers
    are held at INFO or above so DEBUG shows cloudmount's own operation trace
    rather than raw request logs.

    Args:
        config: LogConfig object containing settings.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers: list[logging.Handler] = []
    if config.file:
        handlers.append(_file_handler(config.file))
    if config.console:
        handlers.append(logging.StreamHandler(sys.stderr))

    formatter = logging.Formatter(LOG_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in VENDOR_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))
