"""
Metadata record shared by every backend.

FileStats is an immutable snapshot produced by each stat-equivalent call.
The attribute helpers implement the string-map encoding the S3 backend
stores as object user-metadata.
"""

import dataclasses
import stat
import time
from dataclasses import dataclass, fields

# Serialized field order; also the set of keys recognized when parsing
STAT_FIELDS = ("mode", "size", "atime", "mtime", "ctime", "birthtime", "uid", "gid")
_INT_FIELDS = {"mode", "size", "uid", "gid"}


@dataclass(frozen=True)
class FileStats:
    mode: int
    size: int = 0
    atime: float = 0.0
    mtime: float = 0.0
    ctime: float = 0.0
    birthtime: float = 0.0
    uid: int = 0
    gid: int = 0

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    @property
    def is_file(self) -> bool:
        return stat.S_ISREG(self.mode)

    @property
    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.mode)

    @property
    def permissions(self) -> int:
        return stat.S_IMODE(self.mode)

    @classmethod
    def directory(cls, mode: int = 0o755, **kwargs) -> "FileStats":
        """Directory record; ``mode`` holds permission bits only."""
        return cls(mode=stat.S_IFDIR | stat.S_IMODE(mode), **kwargs)

    @classmethod
    def regular(cls, mode: int = 0o644, size: int = 0, **kwargs) -> "FileStats":
        """Regular-file record; ``mode`` holds permission bits only."""
        return cls(mode=stat.S_IFREG | stat.S_IMODE(mode), size=size, **kwargs)

    @classmethod
    def now(cls, mode: int, size: int = 0, **kwargs) -> "FileStats":
        """Record with every timestamp set to the current time."""
        current = time.time()
        times = {"atime": current, "mtime": current, "ctime": current, "birthtime": current}
        times.update(kwargs)
        return cls(mode=mode, size=size, **times)

    def replace(self, **changes) -> "FileStats":
        """Copy with ``changes`` applied. Unknown field names raise TypeError."""
        return dataclasses.replace(self, **changes)

    def to_attributes(self, exclude: tuple[str, ...] = ()) -> dict[str, str]:
        """
        Serialize to a string-keyed map of stringified values.

        Args:
            exclude: Field names to leave out of the map.

        Returns:
            Dict suitable for object user-metadata.
        """
        attrs = {}
        for name in STAT_FIELDS:
            if name in exclude:
                continue
            value = getattr(self, name)
            attrs[name] = str(int(value)) if name in _INT_FIELDS else repr(float(value))
        return attrs

    @classmethod
    def from_attributes(cls, attrs: dict[str, str], **defaults) -> "FileStats":
        """
        Parse a map produced by to_attributes.

        Known fields are coerced to numbers; unknown keys are ignored. Fields
        missing from the map fall back to ``defaults``, then to the dataclass
        defaults.

        Raises:
            ValueError: If a known field is not numeric, or mode is missing.
        """
        data = dict(defaults)
        for name in STAT_FIELDS:
            raw = attrs.get(name)
            if raw is None:
                continue
            number = float(raw)
            data[name] = int(number) if name in _INT_FIELDS else number
        if "mode" not in data:
            raise ValueError("metadata has no mode field")
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
