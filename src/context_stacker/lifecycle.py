"""Keep tracks consistent with deletions and renames made outside the tool."""

from __future__ import annotations

from typing import TYPE_CHECKING

from context_stacker.config import FILE_EVENT_FLUSH_DELAY
from context_stacker.filesystem import EntryKind
from context_stacker.logging import logger
from context_stacker.scheduling import Debouncer

if TYPE_CHECKING:
    from context_stacker.filesystem import FileSystem
    from context_stacker.track_store import TrackStore


class FileEventQueue:
    """Collect file-system events and apply them to the store in one pass.

    Events arriving within `delay` seconds of each other are coalesced.
    Deletions are applied first, as a single batch; renames follow in
    arrival order (a later rename of the same source wins).
    """

    def __init__(self, store: TrackStore, fs: FileSystem, delay: float = FILE_EVENT_FLUSH_DELAY) -> None:
        self.store = store
        self.fs = fs
        self._deletes: dict[str, None] = {}
        self._renames: dict[str, str] = {}
        self._debouncer = Debouncer(delay, self.flush)

    def queue_delete(self, resource_id: str) -> None:
        self._deletes[resource_id] = None
        self._debouncer.trigger()

    def queue_rename(self, old_id: str, new_id: str) -> None:
        self._renames[old_id] = new_id
        self._debouncer.trigger()

    async def wait(self) -> None:
        await self._debouncer.wait()

    async def flush(self) -> None:
        """Apply every queued event now."""
        self._debouncer.cancel()
        deletes, self._deletes = list(self._deletes), {}
        renames, self._renames = list(self._renames.items()), {}

        if deletes:
            self.store.remove_ids_under(deletes)

        for old_id, new_id in renames:
            if self.store.has_id(old_id):
                self.store.replace_id(old_id, new_id)
                continue
            try:
                st = await self.fs.stat(new_id)
            except OSError as e:
                logger.warning("Rename target %s is gone: %s", new_id, e)
                continue
            if st.kind is EntryKind.DIRECTORY:
                self.store.replace_id_prefix(old_id, new_id)
