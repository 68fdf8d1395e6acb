"""Live preview of the active track.

A `PreviewSession` renders the active track into a sink (a callable taking
the rendered text) and re-renders after track changes, coalescing bursts
with a `Debouncer`. At most one session per key lives at a time: the
`PreviewRegistry` creates a session when none exists and re-shows the
existing one otherwise.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

from context_stacker.config import DEFAULT_LARGE_FILE_TOKENS, PREVIEW_REFRESH_DELAY
from context_stacker.file_manipulation import relpath
from context_stacker.output_construction import build_payload
from context_stacker.scheduling import Debouncer
from context_stacker.stats import enrich_file_stats
from context_stacker.tokens import format_shorthand, total_tokens

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from context_stacker.filesystem import FileSystem
    from context_stacker.models import ContextTrack
    from context_stacker.track_store import TrackStore

    PreviewSink = Callable[[str], None]

PREVIEW_KEY = "context-preview"


def render_summary(
    track: ContextTrack,
    root: str | Path | None = None,
    large_file_tokens: int = DEFAULT_LARGE_FILE_TOKENS,
) -> str:
    """Render a per-file token table for a track, flagging large files.

    Args:
        track (ContextTrack): the track to summarize (stats should be enriched)
        root (str | Path | None, optional): workspace root used for display paths
        large_file_tokens (int, optional): files at or above this estimate are flagged

    Returns:
        str: one line per file followed by the total
    """
    out = io.StringIO()
    out.write(f"Track: {track.name} ({len(track.files)} files)\n")
    for f in track.files:
        pin = "*" if f.is_pinned else " "
        if f.is_binary:
            size = "binary"
        elif f.stats is None:
            size = "..."
        else:
            size = format_shorthand(f.stats.token_count)
        large = "  [large]" if f.stats is not None and f.stats.token_count >= large_file_tokens else ""
        out.write(f"{pin} {relpath(f.id, root)}  {size}{large}\n")
    out.write(f"Total: ~{format_shorthand(total_tokens(track.files))} tokens\n")
    return out.getvalue()


class PreviewSession:
    """Keep a rendered preview of the active track up to date."""

    def __init__(
        self,
        store: TrackStore,
        fs: FileSystem,
        sink: PreviewSink,
        *,
        root: str | Path | None = None,
        delay: float = PREVIEW_REFRESH_DELAY,
        large_file_tokens: int = DEFAULT_LARGE_FILE_TOKENS,
    ) -> None:
        self.store = store
        self.fs = fs
        self.sink = sink
        self.root = root
        self.large_file_tokens = large_file_tokens
        self.renders = 0
        self._debouncer = Debouncer(delay, self.refresh)
        self._unsubscribe: Callable[[], None] | None = store.subscribe(lambda _track: self.schedule_refresh())

    @property
    def disposed(self) -> bool:
        return self._unsubscribe is None

    def schedule_refresh(self) -> None:
        if not self.disposed:
            self._debouncer.trigger()

    async def wait(self) -> None:
        await self._debouncer.wait()

    async def refresh(self) -> str:
        """Render the active track now and push the text to the sink."""
        track = self.store.get_active_track()
        await enrich_file_stats(self.fs, track.files)
        summary = render_summary(track, self.root, self.large_file_tokens)
        payload = await build_payload(self.fs, track.files, self.root)
        text = f"{summary}\n{payload}" if payload else summary
        self.renders += 1
        self.sink(text)
        return text

    def dispose(self) -> None:
        self._debouncer.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


class PreviewRegistry:
    """Guarded factory holding at most one live preview session per key."""

    def __init__(self) -> None:
        self._sessions: dict[str, PreviewSession] = {}

    def get(self, key: str = PREVIEW_KEY) -> PreviewSession | None:
        session = self._sessions.get(key)
        if session is not None and session.disposed:
            del self._sessions[key]
            return None
        return session

    def open(self, factory: Callable[[], PreviewSession], key: str = PREVIEW_KEY) -> tuple[PreviewSession, bool]:
        """Return the live session for `key`, creating it with `factory` when absent.

        Args:
            factory (Callable[[], PreviewSession]): builds a new session
            key (str, optional): registry slot. Defaults to PREVIEW_KEY.

        Returns:
            tuple[PreviewSession, bool]: the session and whether it was just created.
                An existing session gets a refresh scheduled instead.
        """
        session = self.get(key)
        if session is not None:
            session.schedule_refresh()
            return session, False
        session = factory()
        self._sessions[key] = session
        return session, True

    def close(self, key: str = PREVIEW_KEY) -> None:
        session = self._sessions.pop(key, None)
        if session is not None:
            session.dispose()
