from pathlib import Path

import pytest

from context_stacker import cli


def _run(workspace: Path, *argv: str) -> int:
    return cli.main(["--workspace", str(workspace), *argv])


def test_end_to_end_track_workflow(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    ws = tmp_path
    (ws / "pkg").mkdir()
    (ws / "pkg" / "package.json").write_text("{}", encoding="utf-8")
    (ws / "pkg" / "index.js").write_text("export const a = 1;\n", encoding="utf-8")
    (ws / "notes.md").write_text("some notes here\n", encoding="utf-8")
    (ws / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00")

    assert _run(ws, "add", str(ws / "pkg"), str(ws / "notes.md"), str(ws / "logo.png")) == 0
    assert _run(ws, "pin", str(ws / "notes.md")) == 0
    assert _run(ws, "track", "new", "Review") == 0
    assert _run(ws, "add", str(ws / "pkg" / "index.js")) == 0
    assert _run(ws, "track", "rename", "Review", "Code review") == 0
    assert _run(ws, "track", "move", "Code review", "up") == 0
    capsys.readouterr()

    assert _run(ws, "track", "list") == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("* Code review")
    assert lines[1].startswith("  Main")

    assert _run(ws, "track", "switch", "Main") == 0
    assert _run(ws, "clear") == 0
    capsys.readouterr()
    assert _run(ws, "list") == 0
    assert capsys.readouterr().out.splitlines() == ["Main (1 files)", "* notes.md"]

    (ws / "pkg" / "index.js").unlink()
    assert _run(ws, "prune") == 0
    assert "Pruned 1 missing files" in capsys.readouterr().out

    assert _run(ws, "track", "switch", "Code review") == 0
    capsys.readouterr()
    assert _run(ws, "list") == 0
    assert capsys.readouterr().out.splitlines() == ["Code review (0 files)"]

    assert _run(ws, "track", "delete", "Code review") == 0
    assert _run(ws, "track", "delete", "Main") == 1
    assert _run(ws, "reset") == 1
    assert _run(ws, "reset", "--yes") == 0
    capsys.readouterr()
    assert _run(ws, "track", "list") == 0
    assert capsys.readouterr().out.startswith("* Main")


def test_end_to_end_preview_and_folders(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    ws = tmp_path
    (ws / "app").mkdir()
    (ws / "app" / "pyproject.toml").write_text("[project]\nname = 'demo'\n", encoding="utf-8")
    (ws / "app" / "main.py").write_text("print('demo')\n", encoding="utf-8")

    assert _run(ws, "folders") == 0
    assert capsys.readouterr().out.splitlines() == [".", "app"]

    assert _run(ws, "add", str(ws / "app")) == 0
    capsys.readouterr()
    assert _run(ws, "preview") == 0
    out = capsys.readouterr().out
    assert out.startswith("Track: Main (2 files)")
    assert "File: app/main.py\n```py\nprint('demo')\n\n```\n" in out
