from __future__ import annotations

import pytest
from pydantic import ValidationError

from context_stacker.models import ContextTrack, LegacySerializedTrack, StagedFile, track_shape
from context_stacker.state_mapper import decode_track, from_serialized, to_serialized


def _tracks() -> dict[str, ContextTrack]:
    return {
        "default": ContextTrack(
            id="default",
            name="Main",
            files=[StagedFile(id="/w/a.py", is_pinned=True), StagedFile(id="/w/b.py")],
        ),
        "t2": ContextTrack(id="t2", name="Second"),
    }


@pytest.mark.unit
def test_to_serialized_uses_camel_case_keys() -> None:
    raw = to_serialized(_tracks(), "t2", ["t2", "default"])

    assert set(raw) == {"tracks", "activeTrackId", "trackOrder"}
    assert raw["activeTrackId"] == "t2"
    assert raw["tracks"]["default"]["items"] == [
        {"uri": "/w/a.py", "isPinned": True},
        {"uri": "/w/b.py", "isPinned": False},
    ]


@pytest.mark.unit
def test_round_trip_preserves_tracks_pins_and_order() -> None:
    restored = from_serialized(to_serialized(_tracks(), "t2", ["t2", "default"]))

    assert restored is not None
    assert restored.active_track_id == "t2"
    assert restored.track_order == ["t2", "default"]
    main = restored.tracks["default"]
    assert main.name == "Main"
    assert [(f.id, f.is_pinned, f.label) for f in main.files] == [
        ("/w/a.py", True, "a.py"),
        ("/w/b.py", False, "b.py"),
    ]
    assert main.files[0].stats is None


@pytest.mark.unit
def test_legacy_uris_are_migrated() -> None:
    raw = {
        "tracks": {"old": {"id": "old", "name": "Old", "uris": ["/w/a.py", "/w/b.py", "/w/a.py"]}},
        "activeTrackId": "old",
    }

    restored = from_serialized(raw)

    assert restored is not None
    track = restored.tracks["old"]
    assert [f.id for f in track.files] == ["/w/a.py", "/w/b.py"]
    assert not any(f.is_pinned for f in track.files)
    assert restored.track_order == ["old"]


@pytest.mark.unit
def test_track_shape_detection() -> None:
    assert track_shape({"id": "x", "name": "X", "uris": []}) == "legacy"
    assert track_shape({"id": "x", "name": "X", "items": [], "uris": []}) == "current"
    assert track_shape({"id": "x", "name": "X"}) == "current"
    assert track_shape(LegacySerializedTrack(id="x", name="X")) == "legacy"


@pytest.mark.unit
def test_decode_track_rejects_garbage() -> None:
    with pytest.raises(ValidationError):
        decode_track("garbage")


@pytest.mark.unit
def test_corrupt_track_records_are_dropped_individually() -> None:
    raw = {
        "tracks": {
            "good": {"id": "good", "name": "Good", "items": [{"uri": "/w/a.py"}]},
            "bad": {"items": "not-a-list"},
        },
        "activeTrackId": "good",
        "trackOrder": ["bad", "good", "good", 7],
    }

    restored = from_serialized(raw)

    assert restored is not None
    assert list(restored.tracks) == ["good"]
    assert restored.track_order == ["good"]


@pytest.mark.unit
def test_missing_order_lists_every_track() -> None:
    raw = {
        "tracks": {
            "a": {"id": "a", "name": "A"},
            "b": {"id": "b", "name": "B"},
        },
    }

    restored = from_serialized(raw)

    assert restored is not None
    assert restored.track_order == ["a", "b"]
    assert restored.active_track_id == "default"


@pytest.mark.unit
@pytest.mark.parametrize("raw", [None, "text", 3, {}, {"tracks": []}])
def test_unusable_state_returns_none(raw: object) -> None:
    assert from_serialized(raw) is None
