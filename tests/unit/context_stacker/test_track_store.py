from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from context_stacker.config import DEFAULT_TRACK_ID, STORAGE_KEY
from context_stacker.models import ContentStats
from context_stacker.persistence import PersistenceService
from context_stacker.track_store import TrackStore, generate_id

if TYPE_CHECKING:
    from context_stacker.models import ContextTrack


@pytest.mark.unit
def test_new_store_starts_with_default_track(store: TrackStore) -> None:
    track = store.get_active_track()

    assert track.id == DEFAULT_TRACK_ID
    assert track.name == "Main"
    assert store.track_order == [DEFAULT_TRACK_ID]


@pytest.mark.unit
def test_generate_id_has_prefix_and_random_suffix() -> None:
    prefix, millis, suffix = generate_id("track").split("_")

    assert prefix == "track"
    assert millis.isdigit()
    assert len(suffix) == 5


@pytest.mark.unit
def test_add_files_is_idempotent(store: TrackStore) -> None:
    calls: list[ContextTrack] = []
    store.subscribe(calls.append)

    first = store.add_files_to_active(["/w/a.py", "/w/a.py", "/w/b.py"])
    second = store.add_files_to_active(["/w/a.py"])

    assert [f.id for f in first] == ["/w/a.py", "/w/b.py"]
    assert second == []
    assert [f.id for f in store.get_active_track().files] == ["/w/a.py", "/w/b.py"]
    assert len(calls) == 1
    assert first[0].label == "a.py"


@pytest.mark.unit
def test_deleting_last_track_is_a_noop(store: TrackStore) -> None:
    assert store.delete_track(DEFAULT_TRACK_ID) is False
    assert [t.id for t in store.all_tracks] == [DEFAULT_TRACK_ID]


@pytest.mark.unit
def test_delete_unknown_track_returns_false(store: TrackStore) -> None:
    store.create_track("Other")

    assert store.delete_track("nope") is False
    assert len(store.all_tracks) == 2


@pytest.mark.unit
def test_deleting_active_track_activates_first_in_order(store: TrackStore) -> None:
    second = store.create_track("Second")
    assert store.active_track_id == second

    assert store.delete_track(second) is True
    assert store.active_track_id == DEFAULT_TRACK_ID
    assert store.track_order == [DEFAULT_TRACK_ID]


@pytest.mark.unit
def test_clear_keeps_pinned_files(store: TrackStore) -> None:
    files = store.add_files_to_active(["/w/a.py", "/w/b.py", "/w/c.py"])
    store.toggle_files_pin([files[1]])

    store.clear_active()

    remaining = store.get_active_track().files
    assert [f.id for f in remaining] == ["/w/b.py"]
    assert remaining[0].is_pinned is True


@pytest.mark.unit
def test_unpin_all(store: TrackStore) -> None:
    files = store.add_files_to_active(["/w/a.py", "/w/b.py"])
    store.toggle_files_pin(files)

    store.unpin_all_in_active()

    assert not any(f.is_pinned for f in store.get_active_track().files)


@pytest.mark.unit
def test_remove_files_from_active(store: TrackStore) -> None:
    files = store.add_files_to_active(["/w/a.py", "/w/b.py"])

    store.remove_files_from_active([files[0]])

    assert [f.id for f in store.get_active_track().files] == ["/w/b.py"]


@pytest.mark.unit
def test_create_track_makes_names_unique(store: TrackStore) -> None:
    first = store.create_track("Main")
    second = store.create_track("Main")

    assert store.get_track(first).name == "Main (2)"
    assert store.get_track(second).name == "Main (3)"
    assert store.track_order == [DEFAULT_TRACK_ID, first, second]
    assert store.active_track_id == second


@pytest.mark.unit
def test_rename_track_rejects_a_taken_name(store: TrackStore) -> None:
    other = store.create_track("Other")

    assert store.rename_track(other, "Main") is False
    assert store.rename_track(other, "Bugfix") is True
    assert store.get_track(other).name == "Bugfix"
    assert store.rename_track("missing", "X") is False


@pytest.mark.unit
def test_switch_to_unknown_track_is_ignored(store: TrackStore) -> None:
    store.switch_to_track("missing")

    assert store.active_track_id == DEFAULT_TRACK_ID


@pytest.mark.unit
def test_move_and_reorder_tracks(store: TrackStore) -> None:
    b = store.create_track("B")
    c = store.create_track("C")

    store.move_track_relative(c, "up")
    assert store.track_order == [DEFAULT_TRACK_ID, c, b]

    store.move_track_relative(DEFAULT_TRACK_ID, "up")
    assert store.track_order == [DEFAULT_TRACK_ID, c, b]

    store.reorder_tracks(b, DEFAULT_TRACK_ID)
    assert store.track_order == [b, DEFAULT_TRACK_ID, c]

    store.reorder_tracks(b, None)
    assert store.track_order == [DEFAULT_TRACK_ID, c, b]


@pytest.mark.unit
def test_state_survives_a_new_store(store: TrackStore, storage) -> None:  # noqa: ANN001
    other = store.create_track("Work")
    files = store.add_files_to_active(["/w/a.py", "/w/b.py"])
    store.toggle_files_pin([files[0]])

    reloaded = TrackStore(PersistenceService(storage))

    assert reloaded.active_track_id == other
    assert reloaded.track_order == [DEFAULT_TRACK_ID, other]
    track = reloaded.get_active_track()
    assert [(f.id, f.is_pinned) for f in track.files] == [("/w/a.py", True), ("/w/b.py", False)]


@pytest.mark.unit
def test_dangling_active_id_falls_back_to_first_track(storage) -> None:  # noqa: ANN001
    storage.data[STORAGE_KEY] = {
        "tracks": {"t1": {"id": "t1", "name": "One", "items": []}},
        "activeTrackId": "gone",
        "trackOrder": ["t1"],
    }

    store = TrackStore(PersistenceService(storage))

    assert store.active_track_id == "t1"


@pytest.mark.unit
def test_hard_reset(store: TrackStore, storage) -> None:  # noqa: ANN001
    store.create_track("Work")
    store.add_files_to_active(["/w/a.py"])

    store.hard_reset()

    assert [t.id for t in store.all_tracks] == [DEFAULT_TRACK_ID]
    assert store.get_active_track().files == []
    assert storage.data[STORAGE_KEY]["trackOrder"] == [DEFAULT_TRACK_ID]


@pytest.mark.unit
def test_subscribe_and_unsubscribe(store: TrackStore) -> None:
    seen: list[str] = []
    unsubscribe = store.subscribe(lambda track: seen.append(track.id))

    store.add_files_to_active(["/w/a.py"])
    unsubscribe()
    store.add_files_to_active(["/w/b.py"])

    assert seen == [DEFAULT_TRACK_ID]


@pytest.mark.unit
def test_remove_ids_under_removes_folder_contents_in_every_track(store: TrackStore) -> None:
    store.add_files_to_active(["/w/src/a.py", "/w/src/pkg/b.py", "/w/srcx/c.py"])
    store.create_track("Other")
    store.add_files_to_active(["/w/src/a.py", "/w/d.py"])

    removed = store.remove_ids_under(["/w/src"])

    assert removed == 3
    assert [f.id for f in store.get_track(DEFAULT_TRACK_ID).files] == ["/w/srcx/c.py"]
    assert [f.id for f in store.get_active_track().files] == ["/w/d.py"]
    assert store.remove_ids_under([]) == 0


@pytest.mark.unit
def test_remove_id_everywhere(store: TrackStore) -> None:
    store.add_files_to_active(["/w/a.py"])
    store.create_track("Other")
    store.add_files_to_active(["/w/a.py", "/w/b.py"])

    store.remove_id_everywhere("/w/a.py")

    assert not store.has_id("/w/a.py")
    assert store.has_id("/w/b.py")


@pytest.mark.unit
def test_replace_id_keeps_pin_and_stats(store: TrackStore) -> None:
    (staged,) = store.add_files_to_active(["/w/old.py"])
    staged.stats = ContentStats(token_count=12, char_count=40)
    store.toggle_files_pin([staged])

    store.replace_id("/w/old.py", "/w/new.py")

    (moved,) = store.get_active_track().files
    assert moved.id == "/w/new.py"
    assert moved.label == "new.py"
    assert moved.is_pinned is True
    assert moved.stats == ContentStats(token_count=12, char_count=40)


@pytest.mark.unit
def test_replace_id_onto_an_already_staged_id_drops_the_old_entry(store: TrackStore) -> None:
    store.add_files_to_active(["/w/a.py", "/w/b.py"])

    store.replace_id("/w/a.py", "/w/b.py")

    assert [f.id for f in store.get_active_track().files] == ["/w/b.py"]


@pytest.mark.unit
def test_replace_id_prefix_rebases_folder_contents(store: TrackStore) -> None:
    store.add_files_to_active(["/w/old/a.py", "/w/old/sub/b.py", "/w/older/c.py"])

    store.replace_id_prefix("/w/old", "/w/new")

    assert [f.id for f in store.get_active_track().files] == [
        "/w/new/a.py",
        "/w/new/sub/b.py",
        "/w/older/c.py",
    ]
