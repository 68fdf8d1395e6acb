from __future__ import annotations

from pathlib import Path

import pytest

from context_stacker.config import DEFAULT_LARGE_FILE_TOKENS, FALLBACK_EXCLUDE_PATTERNS
from context_stacker.exceptions import SettingsFileError
from context_stacker.settings import Settings, load_settings


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("CONTEXT_STACKER_EXCLUDES", "CONTEXT_STACKER_LOG_LEVEL", "CONTEXT_STACKER_LARGE_FILE_THRESHOLD"):
        monkeypatch.delenv(name, raising=False)


@pytest.mark.unit
def test_settings_defaults(tmp_path: Path) -> None:
    settings = Settings(workspace=tmp_path)

    assert settings.workspace == tmp_path.resolve()
    assert settings.state_file == tmp_path.resolve() / ".context-stacker" / "state.json"
    assert settings.excludes == []
    assert settings.default_excludes == list(FALLBACK_EXCLUDE_PATTERNS)
    assert settings.large_file_threshold == DEFAULT_LARGE_FILE_TOKENS
    assert settings.log_level == "INFO"


@pytest.mark.unit
def test_relative_state_file_is_anchored_in_the_workspace(tmp_path: Path) -> None:
    settings = Settings(workspace=tmp_path, state_file=Path("custom.json"))

    assert settings.state_file == tmp_path.resolve() / "custom.json"


@pytest.mark.unit
def test_load_settings_layers(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".context-stacker.yaml").write_text(
        "excludes:\n  - '*.log'\nlarge-file-threshold: 100\nlog_level: DEBUG\n",
        encoding="utf-8",
    )
    (tmp_path / ".env").write_text("CONTEXT_STACKER_LARGE_FILE_THRESHOLD=200\nOTHER=1\n", encoding="utf-8")
    monkeypatch.setenv("CONTEXT_STACKER_EXCLUDES", "dist/, build/ ,")

    settings = load_settings(tmp_path, {"log_level": "WARNING", "log_file": None})

    assert settings.excludes == ["dist/", "build/"]
    assert settings.large_file_threshold == 200
    assert settings.log_level == "WARNING"
    assert settings.log_file == ""


@pytest.mark.unit
def test_load_settings_without_any_file(tmp_path: Path) -> None:
    settings = load_settings(tmp_path)

    assert settings.workspace == tmp_path.resolve()
    assert settings.max_state_bytes == Settings(workspace=tmp_path).max_state_bytes


@pytest.mark.unit
@pytest.mark.parametrize("content", ["excludes: [unclosed\n", "- just\n- a list\n"])
def test_invalid_settings_file_raises(tmp_path: Path, content: str) -> None:
    (tmp_path / ".context-stacker.yaml").write_text(content, encoding="utf-8")

    with pytest.raises(SettingsFileError) as exc_info:
        load_settings(tmp_path)

    assert exc_info.value.path == tmp_path / ".context-stacker.yaml"
