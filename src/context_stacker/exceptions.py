from dataclasses import dataclass
from pathlib import Path


@dataclass
class ContextStackerError(Exception):
    """Base exception for errors in the context_stacker package."""

    message: str = "context_stacker error"

    def __str__(self) -> str:
        return self.message


@dataclass
class StateTooLargeError(ContextStackerError):
    """Raised when the serialized track state exceeds the storage limit."""

    size: int = 0
    limit: int = 0
    message: str = "Track state is too large to save. Remove some files."


@dataclass
class StateWriteError(ContextStackerError):
    """Raised when the track state cannot be written to storage."""

    path: Path | None = None
    reason: str = ""
    message: str = "Failed to write track state."


@dataclass
class TrackNotFoundError(ContextStackerError):
    """Raised when a track cannot be resolved by id or name."""

    track: str = ""
    message: str = "No such track."


@dataclass
class SettingsFileError(ContextStackerError):
    """Raised when the workspace settings file cannot be parsed."""

    path: Path | None = None
    reason: str = ""
    message: str = "Invalid settings file."
