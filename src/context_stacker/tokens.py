"""Model-agnostic token estimates.

Two heuristics are computed and the larger one wins: words times
`WORDS_TO_TOKENS_RATIO` (source code tokenizes into more tokens than words)
and characters divided by `CHARS_PER_TOKEN` (guards dense text such as
minified code). Very large texts only get the character estimate.
"""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

from context_stacker.config import CHARS_PER_TOKEN, LARGE_TEXT_THRESHOLD, WORDS_TO_TOKENS_RATIO
from context_stacker.models import ContentStats

if TYPE_CHECKING:
    from collections.abc import Iterable

    from context_stacker.models import StagedFile


_WORD = re.compile(r"[^\x00-\x20]+")


def count_words(text: str) -> int:
    """Count runs of characters above U+0020; control characters and space separate words."""
    return sum(1 for _ in _WORD.finditer(text))


def char_estimate(char_count: int) -> int:
    return math.ceil(char_count / CHARS_PER_TOKEN)


def measure(text: str) -> ContentStats:
    """Estimate the token and character count of a text.

    Args:
        text (str): the text to measure

    Returns:
        ContentStats: ``max(ceil(words * 1.3), ceil(chars / 4))`` tokens, or
            only the character estimate above LARGE_TEXT_THRESHOLD characters
    """
    if not text:
        return ContentStats(token_count=0, char_count=0)

    char_count = len(text)
    if char_count > LARGE_TEXT_THRESHOLD:
        return ContentStats(token_count=char_estimate(char_count), char_count=char_count)

    word_based = math.ceil(count_words(text) * WORDS_TO_TOKENS_RATIO)
    return ContentStats(token_count=max(word_based, char_estimate(char_count)), char_count=char_count)


def format_tokens(stats: ContentStats) -> str:
    """Render ``~1,234 tokens``."""
    return f"~{stats.token_count:,} tokens"


def format_shorthand(count: int) -> str:
    """Render a count compactly: ``999``, ``1.2k``, ``3.4M``."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}k"
    return str(count)


def total_tokens(files: Iterable[StagedFile]) -> int:
    """Sum the token estimates of files whose stats are known."""
    return sum(f.stats.token_count for f in files if f.stats is not None)
