from __future__ import annotations

import os
from pathlib import Path, PurePosixPath
from urllib.parse import quote, unquote, urlparse

_FILE_SCHEME = "file://"
_UNKNOWN_LABEL = "unknown"


def is_uri(resource_id: str) -> bool:
    """Tell whether a resource id is a URI (``scheme://...``) rather than a path."""
    return "://" in resource_id


def _path_part(resource_id: str) -> str:
    if is_uri(resource_id):
        return unquote(urlparse(resource_id).path)
    return resource_id.replace("\\", "/")


def to_path(resource_id: str) -> Path:
    """Convert a resource id (absolute path or ``file://`` URI) to a local path.

    Args:
        resource_id (str): the resource identifier

    Returns:
        Path: the local filesystem path designated by the id
    """
    if resource_id.startswith(_FILE_SCHEME):
        return Path(unquote(urlparse(resource_id).path))
    return Path(resource_id)


def canonical_id(path: str | Path) -> str:
    """Build the canonical resource id of a local path (absolute, normalized, POSIX separators).

    `file://` URIs become the path they designate, so they compare equal to the
    paths returned by file searches. Other URIs are returned unchanged.

    Args:
        path (str | Path): a local path, relative paths are made absolute against the cwd

    Returns:
        str: the canonical resource id
    """
    if isinstance(path, str) and is_uri(path):
        if not path.startswith(_FILE_SCHEME):
            return path
        path = to_path(path)
    return Path(os.path.abspath(path)).as_posix()


def to_file_uri(path: str | Path) -> str:
    """Render a local path as a ``file://`` URI."""
    return _FILE_SCHEME + quote(Path(os.path.abspath(path)).as_posix())


def label_for(resource_id: str) -> str:
    """Return the display label of a resource: its last path segment."""
    name = _path_part(resource_id).rstrip("/").rsplit("/", 1)[-1]
    return name or _UNKNOWN_LABEL


def file_extension(resource_id: str) -> str:
    """Return the extension of a resource without the leading dot ("" when none)."""
    return PurePosixPath(_path_part(resource_id)).suffix.lstrip(".")


def id_segments(resource_id: str) -> tuple[str, ...]:
    """Split a resource id into comparable segments.

    URIs keep their scheme and authority as the first segment so that a
    ``file://`` id is never considered a relative of a plain path.

    Args:
        resource_id (str): the resource identifier

    Returns:
        tuple[str, ...]: the non-empty segments of the id
    """
    if is_uri(resource_id):
        parsed = urlparse(resource_id)
        head = f"{parsed.scheme}://{parsed.netloc}"
        return (head, *(s for s in unquote(parsed.path).split("/") if s))
    return tuple(s for s in resource_id.replace("\\", "/").split("/") if s)


def is_child_of(parent: str, child: str) -> bool:
    """Check whether `child` is `parent` itself or lies below it.

    Comparison is done on whole path segments, so ``/a/bc`` is not a child of ``/a/b``.

    Args:
        parent (str): the candidate ancestor id
        child (str): the candidate descendant id

    Returns:
        bool: True if every segment of `parent` prefixes `child`
    """
    parent_parts = id_segments(parent)
    child_parts = id_segments(child)
    return len(child_parts) >= len(parent_parts) and child_parts[: len(parent_parts)] == parent_parts


def rebase_id(resource_id: str, old_root: str, new_root: str) -> str | None:
    """Move a resource id from `old_root` to `new_root`, keeping its relative part.

    Args:
        resource_id (str): the id to move
        old_root (str): the former ancestor
        new_root (str): the new ancestor

    Returns:
        str | None: the rebased id, or None when `resource_id` is not under `old_root`
    """
    if not is_child_of(old_root, resource_id):
        return None
    rest = id_segments(resource_id)[len(id_segments(old_root)) :]
    if not rest:
        return new_root
    return new_root.rstrip("/") + "/" + "/".join(rest)


def relpath(resource_id: str, root: str | Path | None) -> str:
    """Send the relative path of a resource from root.

    Args:
        resource_id (str): the resource to "relativise"
        root (str | Path | None): the root to relativise from

    Returns:
        str: the relative path from root to the resource, with POSIX separators.
            If the resource is not under root (or root is None), returns its path.
    """
    path = to_path(resource_id)
    if root is None:
        return path.as_posix()
    try:
        return path.relative_to(Path(root)).as_posix()
    except ValueError:
        return path.as_posix()
