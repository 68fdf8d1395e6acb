"""Conversion between the in-memory track collection and its persisted projection."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from context_stacker.config import DEFAULT_TRACK_ID
from context_stacker.logging import logger
from context_stacker.models import (
    ContextTrack,
    SerializedItem,
    SerializedState,
    SerializedTrack,
    StagedFile,
    TrackRecord,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

_TRACK_ADAPTER: TypeAdapter[Any] = TypeAdapter(TrackRecord)


@dataclass
class HydrationResult:
    """Track collection restored from storage."""

    tracks: dict[str, ContextTrack] = field(default_factory=dict)
    active_track_id: str = DEFAULT_TRACK_ID
    track_order: list[str] = field(default_factory=list)


def to_serialized(
    tracks: Mapping[str, ContextTrack],
    active_track_id: str,
    track_order: Sequence[str],
) -> dict[str, Any]:
    """Project the track collection onto its persisted (camelCase) shape.

    Stats and binary flags are runtime data and are not persisted.

    Args:
        tracks (Mapping[str, ContextTrack]): every track keyed by id
        active_track_id (str): the active track id
        track_order (Sequence[str]): display order of the track ids

    Returns:
        dict[str, Any]: a JSON-compatible mapping
    """
    state = SerializedState(
        tracks={
            t.id: SerializedTrack(
                id=t.id,
                name=t.name,
                items=[SerializedItem(uri=f.id, is_pinned=f.is_pinned) for f in t.files],
            )
            for t in tracks.values()
        },
        active_track_id=active_track_id,
        track_order=list(track_order),
    )
    return state.model_dump(mode="json", by_alias=True)


def decode_track(record: Any) -> SerializedTrack:  # noqa: ANN401
    """Decode one persisted track record, upgrading the legacy ``uris`` shape.

    Args:
        record (Any): the raw record read from storage

    Raises:
        ValidationError: if the record matches neither known shape

    Returns:
        SerializedTrack: the record in the current shape
    """
    decoded = _TRACK_ADAPTER.validate_python(record)
    if isinstance(decoded, SerializedTrack):
        return decoded
    return decoded.upgrade()


def _to_track(record: SerializedTrack) -> ContextTrack:
    files: list[StagedFile] = []
    seen: set[str] = set()
    for item in record.items:
        if item.uri in seen:
            continue
        seen.add(item.uri)
        files.append(StagedFile(id=item.uri, is_pinned=item.is_pinned))
    return ContextTrack(id=record.id, name=record.name, files=files)


def from_serialized(raw: Any) -> HydrationResult | None:  # noqa: ANN401
    """Hydrate the track collection from a persisted mapping.

    Every track record is decoded independently: a corrupt record is logged
    and dropped, the others survive. The returned order lists exactly the
    restored tracks (unknown ids removed, missing ones appended).

    Args:
        raw (Any): the value read from storage

    Returns:
        HydrationResult | None: the restored collection, or None when `raw`
            holds no usable state
    """
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning("Ignoring persisted state of unexpected type %s", type(raw).__name__)
        return None

    raw_tracks = raw.get("tracks")
    if not isinstance(raw_tracks, Mapping):
        return None

    tracks: dict[str, ContextTrack] = {}
    for key, record in raw_tracks.items():
        try:
            track = _to_track(decode_track(record))
        except ValidationError as e:
            logger.warning("Dropping corrupt track record %s: %s", key, e.error_count())
            continue
        tracks[track.id] = track

    raw_order = raw.get("trackOrder")
    order = [tid for tid in raw_order if isinstance(tid, str) and tid in tracks] if isinstance(raw_order, list) else []
    order = list(dict.fromkeys(order))
    order.extend(tid for tid in tracks if tid not in order)

    active = raw.get("activeTrackId")
    return HydrationResult(
        tracks=tracks,
        active_track_id=active if isinstance(active, str) and active else DEFAULT_TRACK_ID,
        track_order=order,
    )
