from __future__ import annotations

import asyncio
import io
from typing import TYPE_CHECKING

from context_stacker.config import BINARY_SNIFF_BYTES
from context_stacker.file_manipulation import file_extension, relpath
from context_stacker.logging import logger
from context_stacker.tokens import format_tokens, measure

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from context_stacker.filesystem import FileSystem
    from context_stacker.models import StagedFile


def is_binary_content(data: bytes, sniff_bytes: int = BINARY_SNIFF_BYTES) -> bool:
    """Heuristic binary check: a null byte within the first `sniff_bytes` bytes."""
    return b"\x00" in data[:sniff_bytes]


def render_block(rel: str, extension: str, content: str) -> str:
    """Render one file as a path header and a fenced block tagged with its extension."""
    return f"File: {rel}\n```{extension}\n{content}\n```\n"


async def format_file(fs: FileSystem, file: StagedFile, root: str | Path | None = None) -> str:
    """Format one staged file; never raises, whatever the file-system service raises.

    Args:
        fs (FileSystem): the file-system service
        file (StagedFile): the file to render
        root (str | Path | None, optional): workspace root used for display paths

    Returns:
        str: the rendered block, a placeholder line, or "" for content
            detected as binary
    """
    rel = relpath(file.id, root)
    if file.is_binary:
        logger.warning("Skipping binary file: %s", file.id)
        return f"> Skipped binary file: {rel}"

    try:
        data = await fs.read_bytes(file.id)
        if is_binary_content(data):
            logger.warning("Skipping binary or unreadable file: %s", file.id)
            return ""
        content = data.decode("utf-8")
    except Exception as e:  # noqa: BLE001
        logger.error("Failed to read file %s: %s", file.id, e)
        return f"> Error reading file: {rel}"

    return render_block(rel, file_extension(file.id), content)


async def format_files(
    fs: FileSystem,
    files: Sequence[StagedFile],
    root: str | Path | None = None,
) -> str:
    """Read and format staged files into a single text payload.

    Files are processed concurrently and independently: one file failing
    only produces a placeholder line for that file.

    Args:
        fs (FileSystem): the file-system service
        files (Sequence[StagedFile]): the files to render, in output order
        root (str | Path | None, optional): workspace root used for display paths

    Returns:
        str: the non-empty blocks joined by newlines, in input order
    """
    blocks = await asyncio.gather(*(format_file(fs, f, root) for f in files))
    return "\n".join(b for b in blocks if b)


async def build_payload(
    fs: FileSystem,
    files: Sequence[StagedFile],
    root: str | Path | None = None,
    *,
    header: bool = False,
) -> str:
    """Build the final text handed to an LLM.

    Args:
        fs (FileSystem): the file-system service
        files (Sequence[StagedFile]): the staged files
        root (str | Path | None, optional): workspace root used for display paths
        header (bool, optional): prepend a short summary (file count and token
            estimate of the rendered body). Defaults to False.

    Returns:
        str: the payload
    """
    body = await format_files(fs, files, root)
    if not header:
        return body
    out = io.StringIO()
    out.write("# Context\n")
    out.write(f"files={len(files)}\n")
    out.write(f"estimate={format_tokens(measure(body))}\n\n")
    out.write(body)
    return out.getvalue()
