"""Discovery Engine: expand a mixed selection of files and folders into file ids."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from context_stacker.config import (
    FOLDER_MARKERS,
    MAX_DISCOVERY_RESULTS,
    MIN_SCAN_CONCURRENCY,
    STAT_BATCH_SIZE,
)
from context_stacker.file_manipulation import canonical_id, id_segments, is_child_of
from context_stacker.filesystem import ALL_FILES, EntryKind
from context_stacker.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from context_stacker.filesystem import FileSystem
    from context_stacker.models import StagedFile
    from context_stacker.scheduling import CancellationToken
    from context_stacker.track_store import TrackStore

    BatchCallback = Callable[[list[str]], None]


@dataclass
class Categorized:
    files: list[str] = field(default_factory=list)
    folders: list[str] = field(default_factory=list)


def scan_concurrency() -> int:
    """Number of folders searched at once: available CPUs, at least two."""
    return max(MIN_SCAN_CONCURRENCY, os.cpu_count() or 1)


async def categorize_targets(
    fs: FileSystem,
    targets: Sequence[str],
    batch_size: int = STAT_BATCH_SIZE,
) -> Categorized:
    """Partition targets into files and folders with batched stat calls.

    Batches run one after the other so that at most `batch_size` stat calls
    are in flight; the event loop gets control back between batches.
    Unreadable targets are skipped with a warning.

    Args:
        fs (FileSystem): the file-system service
        targets (Sequence[str]): raw selection of resource ids
        batch_size (int, optional): stat calls per batch. Defaults to STAT_BATCH_SIZE.

    Returns:
        Categorized: files and folders, each in selection order
    """
    result = Categorized()
    for start in range(0, len(targets), batch_size):
        batch = targets[start : start + batch_size]
        stats = await asyncio.gather(*(fs.stat(t) for t in batch), return_exceptions=True)
        for target, st in zip(batch, stats, strict=True):
            if isinstance(st, BaseException):
                logger.warning("Skipping unreadable item: %s (%s)", target, st)
            elif st.kind is EntryKind.FILE:
                result.files.append(target)
            elif st.kind is EntryKind.DIRECTORY:
                result.folders.append(target)
        await asyncio.sleep(0)
    return result


async def _scan_folder(
    fs: FileSystem,
    folder: str,
    exclude_glob: str,
    on_batch_found: BatchCallback,
    token: CancellationToken | None,
) -> None:
    if token is not None and token.is_cancelled:
        return
    try:
        found = await fs.find_files(folder, ALL_FILES, exclude_glob, token=token)
    except OSError as e:
        logger.error("Failed to scan folder %s: %s", folder, e)
        return
    if found:
        on_batch_found(found)


async def scan_folders(
    fs: FileSystem,
    folders: Sequence[str],
    exclude_glob: str,
    on_batch_found: BatchCallback,
    token: CancellationToken | None = None,
    concurrency: int | None = None,
) -> None:
    """Recursively search folders and report each folder's files as soon as it completes.

    Each search is scoped to its own folder. Folders are processed in batches
    of `concurrency`; the token is checked before every batch and every
    folder. Files already delivered stay delivered after a cancellation.

    Args:
        fs (FileSystem): the file-system service
        folders (Sequence[str]): folders to expand
        exclude_glob (str): compiled exclusion set
        on_batch_found (BatchCallback): receives the file ids of one folder
        token (CancellationToken | None, optional): cooperative cancellation
        concurrency (int | None, optional): folders per batch. Defaults to `scan_concurrency()`.
    """
    size = concurrency or scan_concurrency()
    for start in range(0, len(folders), size):
        if token is not None and token.is_cancelled:
            logger.info("Folder scan cancelled after %s of %s folders", start, len(folders))
            break
        batch = folders[start : start + size]
        await asyncio.gather(*(_scan_folder(fs, f, exclude_glob, on_batch_found, token) for f in batch))


def prune_nested_folders(folders: Sequence[str]) -> list[str]:
    """Drop folders already covered by an ancestor in the same list.

    Candidates are visited ancestors first (fewest path segments first) and
    rejected when an accepted folder contains them, comparing whole segments.

    Args:
        folders (Sequence[str]): folder ids, possibly nested or duplicated

    Returns:
        list[str]: the distinct top-most folders
    """
    accepted: list[str] = []
    for folder in sorted(folders, key=lambda f: len(id_segments(f))):
        if not any(is_child_of(parent, folder) for parent in accepted):
            accepted.append(folder)
    return accepted


async def _shallow_folders(fs: FileSystem, roots: Sequence[str]) -> list[str]:
    results: list[str] = []
    for root in roots:
        results.append(root)
        try:
            children = await fs.list_children(root)
        except OSError as e:
            logger.warning("Cannot list %s: %s", root, e)
            continue
        results.extend(f"{root.rstrip('/')}/{name}" for name, is_dir in children if is_dir)
    return results


async def _marked_folders(fs: FileSystem, roots: Sequence[str], exclude_glob: str, limit: int) -> list[str]:
    markers = "{" + ",".join(f"**/{m}" for m in FOLDER_MARKERS) + "}"
    results: list[str] = []
    for root in roots:
        remaining = limit - len(results)
        if remaining <= 0:
            break
        try:
            found = await fs.find_files(root, markers, exclude_glob, limit=remaining)
        except OSError as e:
            logger.warning("Marker search failed under %s: %s", root, e)
            continue
        results.extend(str(PurePosixPath(f).parent) for f in found)
    return results


async def discover_workspace_folders(
    fs: FileSystem,
    roots: Sequence[str],
    exclude_glob: str,
    limit: int = MAX_DISCOVERY_RESULTS,
) -> list[str]:
    """List candidate folders for a folder picker.

    Merges a shallow listing (each root and its direct sub-directories) with
    a deep one (directories holding project marker files, from a search
    capped at `limit` results).

    Args:
        fs (FileSystem): the file-system service
        roots (Sequence[str]): workspace root folders
        exclude_glob (str): compiled exclusion set for the deep search
        limit (int, optional): maximum marker files examined. Defaults to MAX_DISCOVERY_RESULTS.

    Returns:
        list[str]: distinct folders, sorted
    """
    shallow, marked = await asyncio.gather(
        _shallow_folders(fs, roots),
        _marked_folders(fs, roots, exclude_glob, limit),
    )
    return sorted(set(shallow) | set(marked))


async def stage_targets(
    fs: FileSystem,
    store: TrackStore,
    targets: Sequence[str],
    exclude_glob: str,
    token: CancellationToken | None = None,
) -> list[StagedFile]:
    """Stage a mixed selection into the active track.

    Direct file targets are added first; folders are pruned of nested
    duplicates, then scanned, each folder's files being added as it completes.

    Args:
        fs (FileSystem): the file-system service
        store (TrackStore): receives the files
        targets (Sequence[str]): files and folders to stage, as paths or ``file://`` URIs
        exclude_glob (str): compiled exclusion set
        token (CancellationToken | None, optional): cooperative cancellation

    Returns:
        list[StagedFile]: the entries newly added by this call
    """
    categorized = await categorize_targets(fs, [canonical_id(t) for t in targets])
    added = store.add_files_to_active(categorized.files)

    def absorb(found: list[str]) -> None:
        added.extend(store.add_files_to_active(found))

    await scan_folders(fs, prune_nested_folders(categorized.folders), exclude_glob, absorb, token)
    return added
