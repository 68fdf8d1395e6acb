from __future__ import annotations

from typing import Any

import pytest

from context_stacker.persistence import PersistenceService
from context_stacker.track_store import TrackStore


class MemoryStorage:
    """In-memory `StateStorage` recording every write."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(initial or {})
        self.writes = 0

    def get(self, key: str) -> Any:  # noqa: ANN401
        return self.data.get(key)

    def update(self, key: str, value: Any) -> None:  # noqa: ANN401
        self.writes += 1
        if value is None:
            self.data.pop(key, None)
        else:
            self.data[key] = value


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage: MemoryStorage) -> TrackStore:
    return TrackStore(PersistenceService(storage))
