from __future__ import annotations

import asyncio
import math
from typing import TYPE_CHECKING

from context_stacker.config import CHARS_PER_TOKEN, MAX_ANALYSIS_BYTES
from context_stacker.logging import logger
from context_stacker.models import ContentStats
from context_stacker.output_construction import is_binary_content
from context_stacker.tokens import measure

if TYPE_CHECKING:
    from collections.abc import Iterable

    from context_stacker.filesystem import FileSystem
    from context_stacker.models import StagedFile


async def analyze_file(fs: FileSystem, file: StagedFile, max_analysis_bytes: int = MAX_ANALYSIS_BYTES) -> None:
    """Set `is_binary` and `stats` on one staged file.

    Files above `max_analysis_bytes` are not read: they are assumed to be
    text and estimated from their size. Errors leave zero stats so the file
    is not retried forever.

    Args:
        fs (FileSystem): the file-system service
        file (StagedFile): the entry to enrich, modified in place
        max_analysis_bytes (int, optional): read limit. Defaults to MAX_ANALYSIS_BYTES.
    """
    try:
        st = await fs.stat(file.id)
        if st.size > max_analysis_bytes:
            file.is_binary = False
            file.stats = ContentStats(token_count=math.ceil(st.size / CHARS_PER_TOKEN), char_count=st.size)
            return

        data = await fs.read_bytes(file.id)
        if is_binary_content(data):
            file.is_binary = True
            file.stats = ContentStats()
            return
        file.is_binary = False
        file.stats = measure(data.decode("utf-8", errors="replace"))
    except Exception as e:  # noqa: BLE001
        logger.warning("Failed to read stats for %s: %s", file.id, e)
        file.stats = ContentStats()


async def enrich_file_stats(
    fs: FileSystem,
    files: Iterable[StagedFile],
    max_analysis_bytes: int = MAX_ANALYSIS_BYTES,
) -> int:
    """Analyze, in parallel, every file whose stats are still pending.

    Args:
        fs (FileSystem): the file-system service
        files (Iterable[StagedFile]): candidate entries
        max_analysis_bytes (int, optional): read limit. Defaults to MAX_ANALYSIS_BYTES.

    Returns:
        int: number of files analyzed
    """
    pending = [f for f in files if f.stats is None]
    if pending:
        await asyncio.gather(*(analyze_file(fs, f, max_analysis_bytes) for f in pending))
    return len(pending)
