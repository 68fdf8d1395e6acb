"""Track Store: the named tracks of staged files and the active track.

Every mutating operation persists the full collection and then broadcasts a
single change notification carrying the active track. Subscribers re-read
state from the store rather than receiving deltas.

Mutations are not locked. Callers are expected to serialize them (the CLI and
the event loop do so naturally).
"""

from __future__ import annotations

import random
import string
import time
from typing import TYPE_CHECKING, Literal

from context_stacker.config import DEFAULT_TRACK_ID, DEFAULT_TRACK_NAME
from context_stacker.file_manipulation import is_child_of, rebase_id
from context_stacker.logging import logger
from context_stacker.models import ContextTrack, StagedFile
from context_stacker.state_mapper import from_serialized

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from context_stacker.persistence import PersistenceService

    TrackListener = Callable[[ContextTrack], None]

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _unique_by_id(files: list[StagedFile]) -> list[StagedFile]:
    seen: set[str] = set()
    unique: list[StagedFile] = []
    for f in files:
        if f.id not in seen:
            seen.add(f.id)
            unique.append(f)
    return unique


def generate_id(prefix: str = "id") -> str:
    """Generate a ``{prefix}_{epoch ms}_{random}`` identifier.

    The random suffix only avoids collisions between ids created within the
    same millisecond; it carries no security meaning.

    Args:
        prefix (str, optional): leading label. Defaults to "id".

    Returns:
        str: the new identifier
    """
    suffix = "".join(random.choices(_ID_ALPHABET, k=5))  # noqa: S311
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class TrackStore:
    """Owns every ContextTrack and StagedFile; persists and notifies on change."""

    def __init__(self, persistence: PersistenceService) -> None:
        self._persistence = persistence
        self._tracks: dict[str, ContextTrack] = {}
        self._track_order: list[str] = []
        self._active_track_id = DEFAULT_TRACK_ID
        self._listeners: list[TrackListener] = []
        self._load_state()

    # --- observers ---------------------------------------------------------

    def subscribe(self, listener: TrackListener) -> Callable[[], None]:
        """Register a change listener.

        Args:
            listener (TrackListener): called with the active track after each mutation

        Returns:
            Callable[[], None]: a function removing the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _fire_change(self) -> None:
        track = self.get_active_track()
        for listener in list(self._listeners):
            listener(track)

    def _persist(self) -> None:
        self._persistence.save(self._tracks, self._active_track_id, self._track_order)

    def _finalize_change(self) -> None:
        self._persist()
        self._fire_change()

    # --- loading -----------------------------------------------------------

    def _load_state(self) -> None:
        result = from_serialized(self._persistence.load())
        if result is None or not result.tracks:
            logger.info("No previous state found, using default track")
            self._create_default_track(reset=True)
            return

        self._tracks = result.tracks
        self._track_order = result.track_order
        self._active_track_id = result.active_track_id
        if self._active_track_id not in self._tracks:
            logger.warning("Active track %s is missing, falling back", self._active_track_id)
            self._active_track_id = self._track_order[0]

    def _create_default_track(self, *, reset: bool) -> ContextTrack:
        if reset or DEFAULT_TRACK_ID not in self._tracks:
            self._tracks[DEFAULT_TRACK_ID] = ContextTrack(id=DEFAULT_TRACK_ID, name=DEFAULT_TRACK_NAME)
        if DEFAULT_TRACK_ID not in self._track_order:
            self._track_order.append(DEFAULT_TRACK_ID)
        self._active_track_id = DEFAULT_TRACK_ID
        return self._tracks[DEFAULT_TRACK_ID]

    # --- queries -----------------------------------------------------------

    @property
    def active_track_id(self) -> str:
        return self._active_track_id

    @property
    def track_order(self) -> list[str]:
        return list(self._track_order)

    @property
    def all_tracks(self) -> list[ContextTrack]:
        return [self._tracks[tid] for tid in self._track_order if tid in self._tracks]

    def get_track(self, track_id: str) -> ContextTrack | None:
        return self._tracks.get(track_id)

    def find_track_by_name(self, name: str) -> ContextTrack | None:
        return next((t for t in self.all_tracks if t.name == name), None)

    def is_name_taken(self, name: str, *, excluding: str | None = None) -> bool:
        return any(t.name == name and t.id != excluding for t in self._tracks.values())

    def get_active_track(self) -> ContextTrack:
        """Return the active track, recreating the default track if the active id is dangling."""
        track = self._tracks.get(self._active_track_id)
        if track is None:
            track = self._create_default_track(reset=False)
        return track

    def has_id(self, resource_id: str) -> bool:
        """Tell whether any track (not only the active one) stages this resource."""
        return any(f.id == resource_id for t in self._tracks.values() for f in t.files)

    # --- track lifecycle ---------------------------------------------------

    def switch_to_track(self, track_id: str) -> None:
        if track_id not in self._tracks:
            return
        self._active_track_id = track_id
        self._finalize_change()

    def _ensure_unique_name(self, base_name: str) -> str:
        if not self.is_name_taken(base_name):
            return base_name
        counter = 2
        while self.is_name_taken(f"{base_name} ({counter})"):
            counter += 1
        return f"{base_name} ({counter})"

    def create_track(self, name: str) -> str:
        """Create an empty track, make it active and return its id."""
        track_id = generate_id("track")
        while track_id in self._tracks:
            track_id = generate_id("track")
        self._tracks[track_id] = ContextTrack(id=track_id, name=self._ensure_unique_name(name))
        self._track_order.append(track_id)
        self.switch_to_track(track_id)
        return track_id

    def rename_track(self, track_id: str, new_name: str) -> bool:
        """Rename a track.

        Args:
            track_id (str): the track to rename
            new_name (str): the new display name

        Returns:
            bool: False if the track is unknown or another track already uses the name
        """
        track = self._tracks.get(track_id)
        if track is None:
            return False
        if track.name == new_name:
            return True
        if self.is_name_taken(new_name, excluding=track_id):
            return False
        track.name = new_name
        self._finalize_change()
        return True

    def delete_track(self, track_id: str) -> bool:
        """Delete a track. The last remaining track can never be deleted.

        Args:
            track_id (str): the track to delete

        Returns:
            bool: True if the track was removed
        """
        if track_id not in self._tracks:
            return False
        if len(self._tracks) <= 1:
            logger.warning("Cannot delete the last remaining track.")
            return False

        del self._tracks[track_id]
        self._track_order = [tid for tid in self._track_order if tid != track_id]
        if self._active_track_id == track_id:
            if self._track_order:
                self._active_track_id = self._track_order[0]
            else:
                self._create_default_track(reset=True)
        self._finalize_change()
        return True

    def move_track_relative(self, track_id: str, direction: Literal["up", "down"]) -> None:
        if track_id not in self._track_order:
            return
        index = self._track_order.index(track_id)
        new_index = index - 1 if direction == "up" else index + 1
        if not 0 <= new_index < len(self._track_order):
            return
        order = self._track_order
        order[index], order[new_index] = order[new_index], order[index]
        self._finalize_change()

    def reorder_tracks(self, source_id: str, target_id: str | None) -> None:
        """Move `source_id` before `target_id`, or to the end when no target is given."""
        if source_id not in self._track_order or source_id == target_id:
            return
        self._track_order.remove(source_id)
        if target_id is None or target_id not in self._track_order:
            self._track_order.append(source_id)
        else:
            self._track_order.insert(self._track_order.index(target_id), source_id)
        self._finalize_change()

    def hard_reset(self) -> None:
        """Drop every track and the stored state, then start over with the default track."""
        logger.warning("Hard reset initiated.")
        self._tracks.clear()
        self._track_order = []
        self._persistence.clear()
        self._create_default_track(reset=True)
        self._finalize_change()

    # --- staged files ------------------------------------------------------

    def add_files_to_active(self, resource_ids: Iterable[str]) -> list[StagedFile]:
        """Stage resources in the active track.

        Args:
            resource_ids (Iterable[str]): canonical ids to stage

        Returns:
            list[StagedFile]: only the entries created by this call, so callers
                can enrich them without reprocessing existing ones
        """
        track = self.get_active_track()
        existing = track.file_ids()
        new_files: list[StagedFile] = []
        for resource_id in resource_ids:
            if not resource_id or resource_id in existing:
                continue
            existing.add(resource_id)
            new_files.append(StagedFile(id=resource_id))

        if new_files:
            track.files.extend(new_files)
            self._finalize_change()
        return new_files

    def remove_files_from_active(self, files: Iterable[StagedFile]) -> None:
        targets = {f.id for f in files}
        track = self.get_active_track()
        track.files = [f for f in track.files if f.id not in targets]
        self._finalize_change()

    def clear_active(self) -> None:
        """Remove every non-pinned file from the active track."""
        track = self.get_active_track()
        track.files = [f for f in track.files if f.is_pinned]
        self._finalize_change()

    def toggle_files_pin(self, files: Iterable[StagedFile]) -> None:
        files = list(files)
        if not files:
            return
        for f in files:
            f.is_pinned = not f.is_pinned
        self._finalize_change()

    def unpin_all_in_active(self) -> None:
        for f in self.get_active_track().files:
            f.is_pinned = False
        self._finalize_change()

    # --- external file-system events ---------------------------------------

    def remove_id_everywhere(self, resource_id: str) -> None:
        """Forget a resource in every track (the file was deleted)."""
        changed = False
        for track in self._tracks.values():
            kept = [f for f in track.files if f.id != resource_id]
            if len(kept) != len(track.files):
                track.files = kept
                changed = True
        if changed:
            self._finalize_change()

    def remove_ids_under(self, resource_ids: Iterable[str]) -> int:
        """Forget deleted resources, including every file below a deleted folder.

        Args:
            resource_ids (Iterable[str]): deleted files or folders

        Returns:
            int: number of staged entries removed across all tracks
        """
        roots = list(dict.fromkeys(resource_ids))
        if not roots:
            return 0
        exact = set(roots)
        removed = 0
        for track in self._tracks.values():
            kept = [f for f in track.files if f.id not in exact and not any(is_child_of(r, f.id) for r in roots)]
            removed += len(track.files) - len(kept)
            track.files = kept
        if removed:
            self._finalize_change()
            logger.info("Processed batch deletion of %s roots, %s entries removed.", len(roots), removed)
        return removed

    def replace_id(self, old_id: str, new_id: str) -> None:
        """Follow a file rename in every track. Cached stats are kept."""
        if old_id == new_id:
            return
        changed = False
        for track in self._tracks.values():
            target = next((f for f in track.files if f.id == old_id), None)
            if target is None:
                continue
            if new_id in track.file_ids():
                # Already staged under the new id: keep that entry only.
                track.files = [f for f in track.files if f is not target]
            else:
                target.move_to(new_id)
            changed = True
        if changed:
            self._finalize_change()

    def replace_id_prefix(self, old_root: str, new_root: str) -> None:
        """Follow a folder rename: rebase every staged file below `old_root`."""
        changed = False
        for track in self._tracks.values():
            for f in track.files:
                new_id = rebase_id(f.id, old_root, new_root)
                if new_id is not None and new_id != f.id:
                    f.move_to(new_id)
                    changed = True
            if changed:
                track.files = _unique_by_id(track.files)
        if changed:
            self._finalize_change()
            logger.info("Processed folder rename: %s -> %s", old_root, new_root)
