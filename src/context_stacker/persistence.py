from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any, Protocol

from context_stacker.config import DEFAULT_MAX_STATE_BYTES, STORAGE_KEY
from context_stacker.exceptions import StateTooLargeError, StateWriteError
from context_stacker.logging import logger
from context_stacker.state_mapper import to_serialized

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from context_stacker.models import ContextTrack


class StateStorage(Protocol):
    """Key/value store holding one serialized blob per key."""

    def get(self, key: str) -> Any: ...  # noqa: ANN401

    def update(self, key: str, value: Any) -> None: ...  # noqa: ANN401


class JsonFileStorage:
    """Workspace storage backed by a single JSON object on disk.

    Unreadable or malformed files are treated as empty; writes go through a
    temporary sibling file and an atomic replace.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read_all(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any:  # noqa: ANN401
        return self._read_all().get(key)

    def update(self, key: str, value: Any) -> None:  # noqa: ANN401
        data = self._read_all()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            raise StateWriteError(path=self.path, reason=str(e)) from e


class PersistenceService:
    """Serialize the track collection into a storage slot.

    Identical consecutive states are written once: the service keeps the
    sha256 fingerprint of the last payload it wrote or loaded.
    """

    def __init__(
        self,
        storage: StateStorage,
        *,
        key: str = STORAGE_KEY,
        max_bytes: int = DEFAULT_MAX_STATE_BYTES,
    ) -> None:
        self.storage = storage
        self.key = key
        self.max_bytes = max_bytes
        self._last_fingerprint = ""

    @staticmethod
    def _fingerprint(payload: str) -> str:
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def load(self) -> Any:  # noqa: ANN401
        """Return the raw persisted state, or None when nothing was saved."""
        raw = self.storage.get(self.key)
        if raw is not None:
            self._last_fingerprint = self._fingerprint(json.dumps(raw, sort_keys=True))
        return raw

    def save(
        self,
        tracks: Mapping[str, ContextTrack],
        active_track_id: str,
        track_order: Sequence[str],
    ) -> bool:
        """Persist the full track collection.

        Args:
            tracks (Mapping[str, ContextTrack]): every track keyed by id
            active_track_id (str): the active track id
            track_order (Sequence[str]): display order of the track ids

        Raises:
            StateTooLargeError: if the serialized state exceeds `max_bytes`
            StateWriteError: if the storage cannot be written

        Returns:
            bool: True if a write happened, False if the state was unchanged
        """
        state = to_serialized(tracks, active_track_id, track_order)
        payload = json.dumps(state, sort_keys=True)
        fingerprint = self._fingerprint(payload)
        if fingerprint == self._last_fingerprint:
            return False

        size = len(payload.encode("utf-8"))
        if size > self.max_bytes:
            logger.warning("State size %s bytes exceeds limit of %s. Aborting save.", size, self.max_bytes)
            raise StateTooLargeError(size=size, limit=self.max_bytes)

        self.storage.update(self.key, state)
        self._last_fingerprint = fingerprint
        return True

    def clear(self) -> None:
        self._last_fingerprint = ""
        self.storage.update(self.key, None)
