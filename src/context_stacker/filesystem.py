"""Host file-system services consumed by discovery and the content pipeline.

`FileSystem` is the seam: the pipeline only ever awaits these four calls.
`LocalFileSystem` implements them on the local disk, running the blocking
work in worker threads so the event loop keeps scheduling other tasks.
"""

from __future__ import annotations

import asyncio
import os
import stat as stat_module
from dataclasses import dataclass
from enum import StrEnum, auto
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from context_stacker.exclusions import build_spec
from context_stacker.file_manipulation import to_path

if TYPE_CHECKING:
    import pathspec

    from context_stacker.scheduling import CancellationToken

ALL_FILES = "**/*"


class EntryKind(StrEnum):
    FILE = auto()
    DIRECTORY = auto()
    OTHER = auto()


@dataclass(frozen=True, slots=True)
class FileStat:
    kind: EntryKind
    size: int
    mtime: float


class FileSystem(Protocol):
    async def stat(self, resource_id: str) -> FileStat: ...

    async def read_bytes(self, resource_id: str) -> bytes: ...

    async def find_files(
        self,
        root: str,
        include: str = ALL_FILES,
        exclude: str | None = None,
        limit: int | None = None,
        token: CancellationToken | None = None,
    ) -> list[str]: ...

    async def list_children(self, resource_id: str) -> list[tuple[str, bool]]: ...


def _stat_sync(path: Path) -> FileStat:
    st = path.stat()
    if stat_module.S_ISREG(st.st_mode):
        kind = EntryKind.FILE
    elif stat_module.S_ISDIR(st.st_mode):
        kind = EntryKind.DIRECTORY
    else:
        kind = EntryKind.OTHER
    return FileStat(kind=kind, size=st.st_size, mtime=st.st_mtime)


def _list_children_sync(path: Path) -> list[tuple[str, bool]]:
    with os.scandir(path) as entries:
        return sorted((e.name, e.is_dir(follow_symlinks=False)) for e in entries)


def walk_matching(
    root: Path,
    include: pathspec.PathSpec,
    exclude: pathspec.PathSpec,
    limit: int | None = None,
    token: CancellationToken | None = None,
) -> list[str]:
    """Walk `root` and collect files matching `include` and not `exclude`.

    Patterns are matched against paths relative to `root`, so a search never
    looks outside it. Excluded directories are pruned without being entered.

    Args:
        root (Path): the directory to search
        include (pathspec.PathSpec): files must match this spec
        exclude (pathspec.PathSpec): files and directories matching it are skipped
        limit (int | None, optional): stop after this many results
        token (CancellationToken | None, optional): checked before each directory

    Returns:
        list[str]: absolute POSIX paths, in walk order (sorted within a directory)
    """
    results: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        if token is not None and token.is_cancelled:
            break
        base = Path(dirpath)
        rel_dir = base.relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else rel_dir + "/"
        dirnames[:] = sorted(d for d in dirnames if not exclude.match_file(prefix + d + "/"))
        for name in sorted(filenames):
            rel = prefix + name
            if exclude.match_file(rel) or not include.match_file(rel):
                continue
            results.append((base / name).as_posix())
            if limit is not None and len(results) >= limit:
                return results
    return results


class LocalFileSystem:
    """`FileSystem` backed by the local disk."""

    async def stat(self, resource_id: str) -> FileStat:
        return await asyncio.to_thread(_stat_sync, to_path(resource_id))

    async def read_bytes(self, resource_id: str) -> bytes:
        return await asyncio.to_thread(to_path(resource_id).read_bytes)

    async def find_files(
        self,
        root: str,
        include: str = ALL_FILES,
        exclude: str | None = None,
        limit: int | None = None,
        token: CancellationToken | None = None,
    ) -> list[str]:
        return await asyncio.to_thread(
            walk_matching,
            to_path(root),
            build_spec(include),
            build_spec(exclude),
            limit,
            token,
        )

    async def list_children(self, resource_id: str) -> list[tuple[str, bool]]:
        return await asyncio.to_thread(_list_children_sync, to_path(resource_id))
