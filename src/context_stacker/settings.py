from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator

from context_stacker.config import (
    DEFAULT_LARGE_FILE_TOKENS,
    DEFAULT_MAX_STATE_BYTES,
    ENV_PREFIX,
    FALLBACK_EXCLUDE_PATTERNS,
    MAX_ANALYSIS_BYTES,
    SETTINGS_FILE_NAME,
    STATE_DIR_NAME,
    STATE_FILE_NAME,
)
from context_stacker.exceptions import SettingsFileError

if TYPE_CHECKING:
    from collections.abc import Mapping

_LIST_FIELDS = frozenset({"excludes", "default_excludes"})


class Settings(BaseModel):
    """Configuration settings for the context_stacker package."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="ignore")

    workspace: Path = Field(default_factory=Path.cwd, description="Workspace root.")
    state_file: Path = Field(
        default=Path(STATE_DIR_NAME) / STATE_FILE_NAME,
        description="Track state file, relative to the workspace unless absolute.",
    )
    excludes: list[str] = Field(default_factory=list, description="User exclusion globs.")
    default_excludes: list[str] = Field(
        default_factory=lambda: list(FALLBACK_EXCLUDE_PATTERNS),
        description="Exclusions applied on top of .gitignore.",
    )
    large_file_threshold: int = Field(
        default=DEFAULT_LARGE_FILE_TOKENS,
        description="Token estimate above which a staged file is flagged as large.",
    )
    max_state_bytes: int = Field(default=DEFAULT_MAX_STATE_BYTES, description="Maximum persisted state size.")
    max_analysis_bytes: int = Field(default=MAX_ANALYSIS_BYTES, description="Files above are estimated from size.")
    log_file: str = Field(default="", description="Log file path.")
    log_level: str = Field(default="INFO", description="Minimum log level.")

    @model_validator(mode="after")
    def _resolve_paths(self) -> Settings:
        self.workspace = self.workspace.expanduser().resolve()
        if not self.state_file.is_absolute():
            self.state_file = self.workspace / self.state_file
        return self


def _read_settings_file(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, yaml.YAMLError) as e:
        raise SettingsFileError(path=path, reason=str(e)) from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise SettingsFileError(path=path, reason="top level must be a mapping")
    return {str(k).replace("-", "_"): v for k, v in raw.items()}


def _from_env(environ: Mapping[str, str | None]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX) or value is None:
            continue
        key = name.removeprefix(ENV_PREFIX).lower()
        if key not in Settings.model_fields:
            continue
        values[key] = [p.strip() for p in value.split(",") if p.strip()] if key in _LIST_FIELDS else value
    return values


def load_settings(workspace: str | Path | None = None, overrides: Mapping[str, Any] | None = None) -> Settings:
    """Build settings from every configuration layer.

    Layers, lowest priority first: field defaults, the workspace
    `.context-stacker.yaml`, `CONTEXT_STACKER_*` entries of the nearest `.env`
    file, the process environment, then `overrides` (entries set to None are
    ignored).

    Args:
        workspace (str | Path | None, optional): workspace root. Defaults to the
            current directory.
        overrides (Mapping[str, Any] | None, optional): explicit values, usually CLI flags.

    Raises:
        SettingsFileError: the settings file is not valid YAML or not a mapping

    Returns:
        Settings: the merged settings
    """
    root = Path(workspace) if workspace is not None else Path.cwd()
    merged: dict[str, Any] = {}
    merged.update(_read_settings_file(root / SETTINGS_FILE_NAME))

    env_file = find_dotenv(usecwd=True)
    if env_file:
        merged.update(_from_env(dotenv_values(env_file)))
    merged.update(_from_env(os.environ))

    merged.update({k: v for k, v in (overrides or {}).items() if v is not None})
    merged["workspace"] = root
    return Settings(**merged)
