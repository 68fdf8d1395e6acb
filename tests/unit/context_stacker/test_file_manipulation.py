from __future__ import annotations

from pathlib import Path

import pytest

from context_stacker.file_manipulation import (
    canonical_id,
    file_extension,
    id_segments,
    is_child_of,
    label_for,
    rebase_id,
    relpath,
    to_file_uri,
    to_path,
)


@pytest.mark.unit
def test_is_child_of_compares_whole_segments() -> None:
    assert is_child_of("/a/b", "/a/b/c.py")
    assert is_child_of("/a/b", "/a/b")
    assert is_child_of("/a/b/", "/a/b/c.py")
    assert not is_child_of("/a/b", "/a/bc/d.py")
    assert not is_child_of("/a/b/c", "/a/b")


@pytest.mark.unit
def test_uri_ids_never_relate_to_plain_paths() -> None:
    assert id_segments("file:///a/b")[0] == "file://"
    assert not is_child_of("/a", "file:///a/b")


@pytest.mark.unit
def test_rebase_id() -> None:
    assert rebase_id("/w/old/x/y.py", "/w/old", "/w/new") == "/w/new/x/y.py"
    assert rebase_id("/w/old", "/w/old", "/w/new") == "/w/new"
    assert rebase_id("/w/older/y.py", "/w/old", "/w/new") is None


@pytest.mark.unit
def test_labels_and_extensions() -> None:
    assert label_for("/w/src/main.py") == "main.py"
    assert label_for("file:///w/my%20file.txt") == "my file.txt"
    assert label_for("/") == "unknown"
    assert file_extension("/w/archive.tar.gz") == "gz"
    assert file_extension("/w/Makefile") == ""


@pytest.mark.unit
def test_paths_and_uris(tmp_path: Path) -> None:
    uri = to_file_uri(tmp_path / "a b.txt")

    assert uri.startswith("file://")
    assert to_path(uri) == tmp_path / "a b.txt"
    assert canonical_id(uri) == (tmp_path / "a b.txt").as_posix()
    assert canonical_id("vscode-remote://host/w/a.py") == "vscode-remote://host/w/a.py"
    assert canonical_id(tmp_path / "x" / ".." / "y.py") == (tmp_path / "y.py").as_posix()


@pytest.mark.unit
def test_relpath() -> None:
    assert relpath("/w/src/a.py", "/w") == "src/a.py"
    assert relpath("/other/a.py", "/w") == "/other/a.py"
    assert relpath("/w/src/a.py", None) == "/w/src/a.py"
