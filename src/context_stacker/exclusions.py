"""Exclusion Compiler: gitignore lines and user patterns to one glob set."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import pathspec

from context_stacker.config import FALLBACK_EXCLUDE_PATTERNS
from context_stacker.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

_RX_NEWLINE = re.compile(r"\r?\n")


def is_valid_ignore_line(line: str) -> bool:
    """Keep non-empty lines that are neither comments nor (unsupported) negations."""
    return bool(line) and not line.startswith("#") and not line.startswith("!")


def convert_to_glob(line: str) -> str:
    """Normalize one ignore rule so that it matches at any depth.

    Strip a single leading and a single trailing slash, then prefix ``**/``
    unless the rule already starts with ``**``.

    Args:
        line (str): a trimmed ignore rule

    Returns:
        str: the normalized glob
    """
    clean = line.removeprefix("/").removesuffix("/")
    return clean if clean.startswith("**") else f"**/{clean}"


def parse_ignore_content(content: str) -> list[str]:
    if not content:
        return []
    lines = (ln.strip() for ln in _RX_NEWLINE.split(content))
    return [convert_to_glob(ln) for ln in lines if is_valid_ignore_line(ln)]


def compile_excludes(
    ignore_content: str,
    user_patterns: Sequence[str] = (),
    defaults: Iterable[str] | None = None,
) -> str:
    """Merge ignore-file rules, user patterns and built-in defaults into one glob set.

    Args:
        ignore_content (str): raw ``.gitignore`` text (may be empty)
        user_patterns (Sequence[str]): extra patterns from the user settings
        defaults (Iterable[str] | None): safety patterns that are always
            included. Defaults to FALLBACK_EXCLUDE_PATTERNS.

    Returns:
        str: a brace alternation ``{p1,p2,...}`` with every pattern once
    """
    patterns = dict.fromkeys(parse_ignore_content(ignore_content))
    for pattern in user_patterns:
        pattern = pattern.strip()  # noqa: PLW2901
        if pattern:
            patterns[convert_to_glob(pattern)] = None
    for pattern in FALLBACK_EXCLUDE_PATTERNS if defaults is None else defaults:
        patterns[pattern] = None
    return "{" + ",".join(patterns) + "}"


DEFAULT_EXCLUDES = compile_excludes("", [])


def split_glob_set(glob: str | None) -> list[str]:
    """Split a brace alternation back into its patterns.

    Commas nested inside inner braces (``*.{js,ts}``) stay within their pattern.
    A glob without an outer brace group is returned as a single pattern.

    Args:
        glob (str | None): a glob set as produced by `compile_excludes`

    Returns:
        list[str]: the individual patterns, empty ones dropped
    """
    if not glob:
        return []
    body = glob.strip()
    if not (body.startswith("{") and body.endswith("}") and _closing_brace(body) == len(body) - 1):
        return [body]
    body = body[1:-1]

    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in body:
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def _closing_brace(text: str) -> int:
    depth = 0
    for i, ch in enumerate(text):
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _expand_braces(pattern: str) -> list[str]:
    start = pattern.find("{")
    if start == -1:
        return [pattern]
    end = _closing_brace(pattern[start:])
    if end == -1:
        return [pattern]
    end += start
    head, tail = pattern[:start], pattern[end + 1 :]
    return [
        expanded
        for option in split_glob_set(pattern[start : end + 1])
        for expanded in _expand_braces(head + option + tail)
    ]


def build_spec(glob: str | None) -> pathspec.PathSpec:
    """Compile a glob set into a gitwildmatch `PathSpec` (inner braces expanded).

    Args:
        glob (str | None): a glob set or a single glob

    Returns:
        pathspec.PathSpec: the compiled matcher (matches nothing for an empty set)
    """
    lines = [expanded for pattern in split_glob_set(glob) for expanded in _expand_braces(pattern)]
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


class ExcludeProvider:
    """Compile and cache the workspace exclusion set.

    The cache is dropped with `invalidate` whenever the ignore file or the
    user settings change.
    """

    def __init__(
        self,
        workspace: Path,
        user_patterns: Sequence[str] = (),
        defaults: Sequence[str] | None = None,
    ) -> None:
        self.workspace = workspace
        self.user_patterns = list(user_patterns)
        self.defaults = defaults
        self._cached: str | None = None

    @property
    def ignore_file(self) -> Path:
        return self.workspace / ".gitignore"

    def _read_ignore_content(self) -> str:
        try:
            return self.ignore_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read %s: %s", self.ignore_file, e)
            return ""

    def get_exclude_patterns(self) -> str:
        if self._cached is None:
            try:
                self._cached = compile_excludes(self._read_ignore_content(), self.user_patterns, self.defaults)
            except Exception as e:  # noqa: BLE001
                logger.error("Failed to generate exclude patterns: %s", e)
                return DEFAULT_EXCLUDES
        return self._cached

    def invalidate(self) -> None:
        self._cached = None
