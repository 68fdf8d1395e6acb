from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, model_validator
from pydantic.alias_generators import to_camel

from context_stacker.file_manipulation import label_for


class ContentStats(BaseModel):
    """Size estimate of a file's text content."""

    token_count: int = Field(default=0, ge=0, description="Estimated LLM tokens")
    char_count: int = Field(default=0, ge=0, description="Number of characters")


class StagedFile(BaseModel):
    """One staged file reference.

    Attributes:
        id: Canonical resource identifier (absolute path or URI); unique within a track.
        label: Display name, the last path segment of `id`.
        is_pinned: Pinned files survive `clear_active`.
        is_binary: Set by content analysis, never by discovery. None while unknown.
        stats: Token/char estimate, None while analysis is pending.
    """

    id: str = Field(..., min_length=1, description="Canonical resource identifier")
    label: str = Field(default="", description="Display name")
    is_pinned: bool = Field(default=False, description="Protected from bulk clear")
    is_binary: bool | None = Field(default=None, description="Detected binary content")
    stats: ContentStats | None = Field(default=None, description="Content size estimate")

    @model_validator(mode="after")
    def _default_label(self) -> StagedFile:
        if not self.label:
            self.label = label_for(self.id)
        return self

    def move_to(self, new_id: str) -> None:
        """Point this entry at a new resource id, keeping pin flag and cached stats."""
        self.id = new_id
        self.label = label_for(new_id)


class ContextTrack(BaseModel):
    """A named, ordered collection of staged files."""

    id: str
    name: str
    files: list[StagedFile] = Field(default_factory=list)

    def file_ids(self) -> set[str]:
        return {f.id for f in self.files}


# --- Persisted projection -------------------------------------------------


class _Serialized(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SerializedItem(_Serialized):
    uri: str = Field(..., min_length=1)
    is_pinned: bool = False


class SerializedTrack(_Serialized):
    """Current on-disk shape of a track."""

    id: str
    name: str
    items: list[SerializedItem] = Field(default_factory=list)


class LegacySerializedTrack(_Serialized):
    """Earlier on-disk shape: plain URI strings, no pin flags."""

    id: str
    name: str
    uris: list[str] = Field(default_factory=list)

    def upgrade(self) -> SerializedTrack:
        return SerializedTrack(
            id=self.id,
            name=self.name,
            items=[SerializedItem(uri=u) for u in self.uris if u],
        )


TrackShape = Literal["current", "legacy"]


def track_shape(value: Any) -> TrackShape:  # noqa: ANN401
    """Tell which persisted track shape a raw record uses.

    Records holding ``items`` (or neither field) are current; records holding
    only ``uris`` are legacy.

    Args:
        value (Any): a raw mapping or an already built model

    Returns:
        TrackShape: "current" or "legacy"
    """
    if isinstance(value, LegacySerializedTrack):
        return "legacy"
    if isinstance(value, dict) and "items" not in value and "uris" in value:
        return "legacy"
    return "current"


TrackRecord = Annotated[
    Annotated[SerializedTrack, Tag("current")] | Annotated[LegacySerializedTrack, Tag("legacy")],
    Discriminator(track_shape),
]


class SerializedState(_Serialized):
    """The persisted projection of every track, the active id and the display order."""

    tracks: dict[str, SerializedTrack] = Field(default_factory=dict)
    active_track_id: str = "default"
    track_order: list[str] = Field(default_factory=list)
