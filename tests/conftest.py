"""
Shared pytest fixtures for cloudmount tests.
"""

import logging
from collections import Counter
from collections.abc import Generator
from pathlib import Path

import pytest

from cloudmount.config import CacheConfig
from cloudmount.errors import CloudFSError, ErrorCode
from cloudmount.filesystem import CloudFileSystem
from cloudmount.paths import parent_path
from cloudmount.stats import FileStats


class FakeTimer:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryBackend:
    """
    In-memory RemoteBackend used to drive CloudFileSystem.

    Missing paths raise KeyError and existing ones FileExistsError, which
    convert_error maps like a real store would. ``calls`` counts primitive
    invocations and ``converted`` records every conversion.
    """

    name = "memory"

    def __init__(self):
        self.stats: dict[str, FileStats] = {}
        self.files: dict[str, bytes] = {}
        self.calls: Counter = Counter()
        self.converted: list[tuple[Exception, str, str]] = []
        self.fail_with: Exception | None = None

    def add_file(self, path: str, data: bytes = b"", mode: int = 0o644) -> None:
        self.stats[path] = FileStats.regular(mode, size=len(data))
        self.files[path] = data

    def add_dir(self, path: str, mode: int = 0o755) -> None:
        self.stats[path] = FileStats.directory(mode)

    def convert_error(self, error: Exception, path: str, syscall: str) -> CloudFSError:
        self.converted.append((error, path, syscall))
        if isinstance(error, KeyError):
            return CloudFSError(ErrorCode.NOT_FOUND, None, path, syscall)
        if isinstance(error, FileExistsError):
            return CloudFSError(ErrorCode.ALREADY_EXISTS, None, path, syscall)
        return CloudFSError(ErrorCode.IO_ERROR, str(error), path, syscall)

    def _check_failure(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def move(self, old_path: str, new_path: str) -> None:
        self.calls["move"] += 1
        self._check_failure()
        if old_path not in self.stats:
            raise KeyError(old_path)
        prefix = old_path + "/"
        for key in [k for k in self.stats if k == old_path or k.startswith(prefix)]:
            new_key = new_path + key[len(old_path) :]
            self.stats[new_key] = self.stats.pop(key)
            if key in self.files:
                self.files[new_key] = self.files.pop(key)

    async def stat(self, path: str) -> FileStats:
        self.calls["stat"] += 1
        self._check_failure()
        return self.stats[path]

    async def create(self, path: str, stats: FileStats) -> None:
        self.calls["create"] += 1
        self._check_failure()
        if path in self.stats:
            raise FileExistsError(path)
        self.stats[path] = stats.replace(size=0)
        if not stats.is_dir:
            self.files[path] = b""

    async def delete(self, path: str, is_dir: bool) -> None:
        self.calls["delete"] += 1
        self._check_failure()
        del self.stats[path]
        self.files.pop(path, None)

    async def read(self, path: str) -> bytes:
        self.calls["read"] += 1
        self._check_failure()
        return self.files[path]

    async def write(self, path: str, data: bytes) -> None:
        self.calls["write"] += 1
        self._check_failure()
        self.files[path] = bytes(data)
        self.stats[path] = self.stats[path].replace(size=len(data))

    async def list_dir(self, path: str) -> list[str]:
        self.calls["list_dir"] += 1
        self._check_failure()
        if path != "/" and path not in self.stats:
            raise KeyError(path)
        return [k.rsplit("/", 1)[-1] for k in self.stats if k != "/" and parent_path(k) == path]


class TouchableMemoryBackend(MemoryBackend):
    """MemoryBackend with the optional metadata-update primitive."""

    async def touch(self, path: str, changes: dict) -> None:
        self.calls["touch"] += 1
        self.stats[path] = self.stats[path].replace(**changes)


@pytest.fixture
def fake_timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(enabled=True, content_ttl_seconds=60, max_entries=16)


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def filesystem(memory_backend, cache_config, fake_timer) -> CloudFileSystem:
    """CloudFileSystem over an empty MemoryBackend with a 60s content TTL."""
    return CloudFileSystem(memory_backend, cache_config, timer=fake_timer)


@pytest.fixture
def tmp_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a temporary INI configuration file for config tests.

    Returns:
        Path to the temporary config file.
    """
    config_content = """[general]
backend = gdrive

[cache]
enabled = false
content_ttl_seconds = 120
max_entries = 64

[s3]
bucket = ignored-bucket

[gdrive]
root_folder_id = folder123
shared_drive_id = drive456
use_trash = false

[logging]
level = DEBUG
file = test.log
console = false
"""
    config_path = tmp_path / "test_config.ini"
    config_path.write_text(config_content, encoding="utf-8")
    yield config_path


@pytest.fixture
def s3_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a minimal INI configuration file for the S3 backend.

    Returns:
        Path to the temporary config file.
    """
    config_content = """[general]
backend = s3

[s3]
bucket = my-bucket
prefix = mounts/home
"""
    config_path = tmp_path / "s3_config.ini"
    config_path.write_text(config_content, encoding="utf-8")
    yield config_path


@pytest.fixture
def touchable_backend() -> TouchableMemoryBackend:
    return TouchableMemoryBackend()


@pytest.fixture
def root_logger() -> Generator[logging.Logger, None, None]:
    """The root logger, with its handlers and level restored after the test."""
    logger = logging.getLogger()
    saved_handlers = logger.handlers[:]
    saved_level = logger.level
    yield logger
    for handler in logger.handlers[:]:
        if handler not in saved_handlers:
            handler.close()
    logger.handlers[:] = saved_handlers
    logger.setLevel(saved_level)
