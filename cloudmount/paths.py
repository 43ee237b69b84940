"""Logical path helpers. Paths are slash-separated and absolute."""


def normalize_path(path: str) -> str:
    """Ensure path has leading slash, uses forward slashes and no trailing slash."""
    path = path.replace("\\", "/")
    if not path.startswith("/"):
        path = "/" + path
    while "//" in path:
        path = path.replace("//", "/")
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/")
    return path


def parent_path(path: str) -> str:
    """Parent directory of ``path``; the root is its own parent."""
    path = normalize_path(path)
    return path.rsplit("/", 1)[0] or "/"


def base_name(path: str) -> str:
    return normalize_path(path).rsplit("/", 1)[-1]


def join_path(directory: str, name: str) -> str:
    directory = normalize_path(directory)
    if directory == "/":
        return "/" + name
    return directory + "/" + name


def split_path(path: str) -> list[str]:
    """Non-empty segments of ``path``; empty for the root."""
    return [s for s in normalize_path(path).split("/") if s]
